from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Protocol

import numpy as np

from ..cache.service import CacheService
from ..embeddings.encoder import encode_text
from ..pipeline.errors import DependencyError, DependencyRejected, DependencyUnavailable
from ..pipeline.interfaces import PlacesDirectory, RelationalStore, VectorIndex
from ..pipeline.models import Candidate, RequestProfile, VenueData
from .config import DEFAULT_RETRIEVAL_CONFIG, RetrievalConfig

logger = logging.getLogger(__name__)

_VENUE_KEYS = ("slug", "score", "session_id")


def _rating_score(row: dict[str, Any]) -> float | None:
    try:
        rating = float(row["rating"])
    except (KeyError, TypeError, ValueError):
        return None
    return max(0.0, min(5.0, rating)) / 5.0


def candidate_from_row(row: dict[str, Any], source: str, score: float | None) -> Candidate | None:
    """Build a candidate from a venue row; malformed rows are logged and skipped."""
    data = {k: v for k, v in row.items() if k not in _VENUE_KEYS and v is not None}
    try:
        return Candidate(
            slug=str(row["slug"]),
            score=score,
            sources={source},
            data=VenueData.model_validate(data),
        )
    except (KeyError, ValueError) as exc:
        logger.warning("Skipping malformed venue row %r from %s: %s", row.get("slug"), source, exc)
        return None


def _collect(candidates: list[Candidate | None]) -> list[Candidate]:
    return [c for c in candidates if c is not None]


class DependencyHealth:
    """Per-run memory of failed mechanisms.

    ``down`` holds the ones that failed to connect and are not retried this
    run; ``failed`` also includes those whose query was rejected.
    """

    def __init__(self) -> None:
        self._down: dict[str, str] = {}
        self._failed: set[str] = set()

    def mark_down(self, name: str, reason: str) -> None:
        self._down[name] = reason
        self._failed.add(name)

    def mark_failed(self, name: str) -> None:
        self._failed.add(name)

    def is_down(self, name: str) -> bool:
        return name in self._down

    @property
    def down(self) -> dict[str, str]:
        return dict(self._down)

    @property
    def failed(self) -> frozenset[str]:
        return frozenset(self._failed)


class Retriever(Protocol):
    name: str

    def is_applicable(self, profile: RequestProfile) -> bool: ...

    def retrieve(self, profile: RequestProfile) -> list[Candidate]: ...


# ---------------------------------------------------------------------------
# Vector similarity
# ---------------------------------------------------------------------------


def build_query_text(profile: RequestProfile) -> str:
    parts = [", ".join(profile.interests), f"{profile.budget} budget"]
    if profile.accessibility_preferences:
        parts.append("accessible: " + ", ".join(profile.accessibility_preferences))
    return "; ".join(parts)


class VectorRetriever:
    name = "vector"

    def __init__(
        self,
        index: VectorIndex,
        store: RelationalStore | None,
        cache: CacheService,
        config: RetrievalConfig = DEFAULT_RETRIEVAL_CONFIG,
        encoder: Callable[[str], np.ndarray] = encode_text,
    ) -> None:
        self.index = index
        self.store = store
        self.cache = cache
        self.config = config
        self.encoder = encoder

    def is_applicable(self, profile: RequestProfile) -> bool:
        return True

    def _embed(self, text: str) -> list[float]:
        payload = {"text": text}
        cached = self.cache.get("embedding", payload)
        if cached is not None:
            return cached
        try:
            vector = [float(v) for v in np.asarray(self.encoder(text)).ravel()]
        except Exception as exc:
            raise DependencyUnavailable("embedding model failed", service="embedding_model") from exc
        self.cache.set("embedding", payload, vector, self.cache.ttl_long)
        return vector

    def _hydrate(self, ids: list[str]) -> dict[str, dict[str, Any]]:
        if self.store is None or not ids:
            return {}
        try:
            rows = self.store.select_in(self.config.venues_table, "slug", ids)
        except DependencyError as exc:
            logger.warning("Venue hydration failed, using index metadata only: %s", exc.message)
            return {}
        return {str(row["slug"]): row for row in rows if row.get("slug") is not None}

    def retrieve(self, profile: RequestProfile) -> list[Candidate]:
        vector = self._embed(build_query_text(profile))
        matches = self.index.query(self.config.vector_index_name, vector, self.config.vector_top_k)

        ids = [str(m["id"]) for m in matches if m.get("id") is not None]
        rows = self._hydrate(ids)

        candidates: list[Candidate | None] = []
        for match in matches:
            if match.get("id") is None:
                continue
            slug = str(match["id"])
            row = rows.get(slug) or {**(match.get("metadata") or {}), "slug": slug}
            score = match.get("score")
            candidates.append(candidate_from_row(row, self.name, float(score) if score is not None else None))
        return _collect(candidates)


# ---------------------------------------------------------------------------
# Points-of-interest directory
# ---------------------------------------------------------------------------


class DirectoryRetriever:
    name = "places"

    def __init__(self, places: PlacesDirectory, config: RetrievalConfig = DEFAULT_RETRIEVAL_CONFIG) -> None:
        self.places = places
        self.config = config

    def is_applicable(self, profile: RequestProfile) -> bool:
        return profile.location is not None

    def _details(self, row: dict[str, Any]) -> dict[str, Any]:
        try:
            details = self.places.details(row["slug"])
        except DependencyError as exc:
            logger.warning("Details fetch failed for %s: %s", row["slug"], exc.message)
            return row
        return {**row, **{k: v for k, v in details.items() if v not in (None, "", [])}}

    def retrieve(self, profile: RequestProfile) -> list[Candidate]:
        location = profile.location
        if location is None:
            return []
        seen: dict[str, dict[str, Any]] = {}
        rejected = 0
        for interest in profile.interests:
            category = self.config.category_for(interest)
            try:
                results = self.places.nearby(location.lat, location.lng, category, self.config.places_radius)
            except DependencyRejected as exc:
                logger.warning("Directory search rejected for interest=%s: %s", interest, exc.message)
                rejected += 1
                continue
            for row in results:
                slug = row.get("slug")
                if slug and slug not in seen:
                    seen[slug] = {**row, "interest": interest}

        if rejected == len(profile.interests):
            raise DependencyRejected("every directory query was rejected", service="places_directory")

        ranked = sorted(seen.values(), key=lambda r: -(r.get("rating") or 0.0))
        top = ranked[: self.config.max_details_fetch]
        with ThreadPoolExecutor(max_workers=self.config.details_workers) as pool:
            detailed = list(pool.map(self._details, top))

        return _collect([candidate_from_row(row, self.name, _rating_score(row)) for row in detailed])


# ---------------------------------------------------------------------------
# Relational fallback
# ---------------------------------------------------------------------------


class RelationalFallbackRetriever:
    name = "fallback"

    def __init__(self, store: RelationalStore, config: RetrievalConfig = DEFAULT_RETRIEVAL_CONFIG) -> None:
        self.store = store
        self.config = config

    def is_applicable(self, profile: RequestProfile) -> bool:
        return True

    def retrieve(self, profile: RequestProfile) -> list[Candidate]:
        rows = self.store.select(self.config.venues_table, limit=self.config.fallback_limit)
        return _collect([
            candidate_from_row(row, self.name, _rating_score(row))
            for row in rows if row.get("slug") is not None
        ])


class CandidateRetrieval:
    """Runs the primary mechanisms, with one shared fallback on failure."""

    def __init__(self, primaries: list[Retriever], fallback: Retriever | None = None) -> None:
        self.primaries = primaries
        self.fallback = fallback

    def retrieve(self, profile: RequestProfile, health: DependencyHealth) -> list[list[Candidate]]:
        applicable = [p for p in self.primaries if p.is_applicable(profile)]
        if not applicable and self.fallback is None:
            raise DependencyUnavailable(
                "no retrieval mechanism available", service="retrieval", stage="retrieval",
            )

        results: list[list[Candidate]] = []
        failures: list[str] = []
        for mechanism in applicable:
            if health.is_down(mechanism.name):
                failures.append(mechanism.name)
                continue
            try:
                results.append(mechanism.retrieve(profile))
            except DependencyUnavailable as exc:
                logger.warning("Retrieval mechanism %s unavailable: %s", mechanism.name, exc.message)
                health.mark_down(mechanism.name, exc.message)
                failures.append(mechanism.name)
            except DependencyRejected as exc:
                logger.warning("Retrieval mechanism %s rejected the query: %s", mechanism.name, exc.message)
                health.mark_failed(mechanism.name)
                failures.append(mechanism.name)

        if applicable and not failures:
            return results

        if self.fallback is None or health.is_down(self.fallback.name):
            if results:
                return results
            raise DependencyUnavailable(
                "all retrieval mechanisms failed",
                service="retrieval",
                stage="retrieval",
                context={"failed": failures},
            )

        logger.info("Using %s retrieval (failed primaries: %s)", self.fallback.name, failures or "none applicable")
        try:
            results.append(self.fallback.retrieve(profile))
        except DependencyError as exc:
            if isinstance(exc, DependencyUnavailable):
                health.mark_down(self.fallback.name, exc.message)
            else:
                health.mark_failed(self.fallback.name)
            if results:
                logger.warning("Fallback retrieval failed, continuing with primaries: %s", exc.message)
                return results
            exc.stage = "retrieval"
            exc.context.setdefault("failed", failures)
            raise
        return results
