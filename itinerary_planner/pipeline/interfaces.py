"""
Contracts for the external collaborators the pipeline consumes.

Concrete adapters live next to the stage that uses them; tests substitute
``MagicMock`` objects satisfying the same shape.
"""
from __future__ import annotations

from typing import Any, Protocol, Sequence


class VectorIndex(Protocol):
    def query(
        self,
        index: str,
        vector: Sequence[float],
        top_k: int,
        filter: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Return ``[{"id", "score", "metadata"}]``; raise DependencyUnavailable when unreachable."""


class PlacesDirectory(Protocol):
    def nearby(self, lat: float, lng: float, category: str, radius: int) -> list[dict[str, Any]]: ...

    def details(self, identity: str) -> dict[str, Any]: ...


class RelationalStore(Protocol):
    def select(
        self,
        table: str,
        filter: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]: ...

    def select_in(self, table: str, column: str, values: Sequence[Any]) -> list[dict[str, Any]]: ...

    def replace(
        self,
        table: str,
        rows: list[dict[str, Any]],
        columns: Sequence[str] | None = None,
    ) -> int: ...


class RoutingService(Protocol):
    def matrix(
        self,
        origin: tuple[float, float],
        destinations: list[tuple[str, float, float]],
        mode: str,
    ) -> list[dict[str, Any]]:
        """Return ``[{"identity", "duration_seconds"}]``; unknown durations are ``None``."""


class DirectionsService(Protocol):
    def route(
        self,
        origin: tuple[float, float],
        waypoints: list[tuple[float, float]],
        mode: str,
    ) -> dict[str, Any]:
        """Return ``{"polyline", "legs", "total_seconds", "total_text", "overview_url"}``."""


class CompletionClient(Protocol):
    def complete(self, prompt: str, schema_hint: str) -> str: ...


class CacheBackend(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, ttl: int) -> None: ...

    def delete(self, key: str) -> None: ...


class TelemetrySink(Protocol):
    def log(self, event_name: str, context: dict[str, Any]) -> None: ...
