from __future__ import annotations

import copy
import threading
import time
from typing import Any


class InMemoryCacheBackend:
    """Thread-safe TTL key-value store.

    Values are deep-copied on the way in and out so callers can mutate what
    they get back without corrupting the cached entry.
    """

    def __init__(self) -> None:
        self._entries: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry and time.monotonic() < entry["expires_at"]:
                self._hits += 1
                value = entry["value"]
            else:
                if entry:
                    del self._entries[key]
                self._misses += 1
                return None
        return copy.deepcopy(value)

    def set(self, key: str, value: Any, ttl: int) -> None:
        stored = copy.deepcopy(value)
        with self._lock:
            self._entries[key] = {"value": stored, "expires_at": time.monotonic() + ttl}

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
            }

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
