from __future__ import annotations

import hashlib
import json
import logging
import re
import threading
from typing import Any

from pydantic import BaseModel

from ..pipeline.interfaces import CacheBackend
from .backend import InMemoryCacheBackend
from .config import DEFAULT_CACHE_CONFIG, CacheConfig

logger = logging.getLogger(__name__)

_CONTEXT_RE = re.compile(r"[^a-z0-9_\-]")


def canonicalize(value: Any) -> Any:
    """Return a JSON-ready form of ``value`` that ignores key/set ordering."""
    if isinstance(value, BaseModel):
        return canonicalize(value.model_dump(mode="json"))
    if isinstance(value, dict):
        return {str(k): canonicalize(v) for k, v in sorted(value.items(), key=lambda kv: str(kv[0]))}
    if isinstance(value, (set, frozenset)):
        return sorted((canonicalize(v) for v in value), key=lambda v: json.dumps(v, sort_keys=True))
    if isinstance(value, (list, tuple)):
        return [canonicalize(v) for v in value]
    return value


def payload_digest(payload: Any) -> str:
    normalized = json.dumps(canonicalize(payload), sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(normalized.encode()).hexdigest()[:32]


class CacheService:
    """Stage-scoped memoisation on top of a key-value backend.

    Backend failures never propagate: a failed read is a miss and a failed
    write is dropped, both logged.
    """

    def __init__(
        self,
        backend: CacheBackend | None = None,
        config: CacheConfig = DEFAULT_CACHE_CONFIG,
    ) -> None:
        self.backend = backend if backend is not None else InMemoryCacheBackend()
        self.config = config
        self._version = config.version
        self._lock = threading.Lock()

    @property
    def ttl_pipeline(self) -> int:
        return self.config.ttl_pipeline

    @property
    def ttl_long(self) -> int:
        return self.config.ttl_long

    def build_key(self, context: str, payload: Any) -> str:
        label = _CONTEXT_RE.sub("", context.lower())
        return f"{self.config.prefix}_v{self._version}_{label}_{payload_digest(payload)}"

    def get(self, context: str, payload: Any) -> Any | None:
        key = self.build_key(context, payload)
        try:
            value = self.backend.get(key)
        except Exception:
            logger.warning("Cache read failed for context=%s, treating as miss", context, exc_info=True)
            return None
        logger.debug("Cache %s: %s", "hit" if value is not None else "miss", key)
        return value

    def set(self, context: str, payload: Any, value: Any, ttl: int | None = None) -> None:
        key = self.build_key(context, payload)
        try:
            self.backend.set(key, value, ttl if ttl is not None else self.ttl_pipeline)
        except Exception:
            logger.warning("Cache write failed for context=%s, dropping entry", context, exc_info=True)

    def delete(self, context: str, payload: Any) -> None:
        key = self.build_key(context, payload)
        try:
            self.backend.delete(key)
        except Exception:
            logger.warning("Cache delete failed for context=%s", context, exc_info=True)

    def invalidate_all(self) -> int:
        """Orphan every existing entry by bumping the key prefix version."""
        with self._lock:
            self._version += 1
            return self._version

    def stats(self) -> dict[str, Any]:
        stats_fn = getattr(self.backend, "stats", None)
        stats = stats_fn() if callable(stats_fn) else {}
        return {**stats, "key_version": self._version}
