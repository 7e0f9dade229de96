from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..cache.service import CacheService
from ..filters.chain import FilterChain
from ..llm.reorder import ReorderAdapter
from ..mining.config import DEFAULT_BOOST_CONFIG, BoostConfig
from ..mining.miner import AssociationRuleMiner
from ..mining.rule_store import RuleStore
from ..retrieval.adapters import CandidateRetrieval, DependencyHealth
from ..scoring.boost import apply_association_boost
from ..scoring.fusion import fuse_candidates
from .errors import DependencyError, EmptyResultError, PipelineError
from .interfaces import DirectionsService, TelemetrySink
from .models import Candidate, Directions, Itinerary, PipelineResult, RequestProfile, validate_profile

logger = logging.getLogger(__name__)

PIPELINE_NAME = "itinerary_v1"


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 1)


class StageEvents:
    """Event channel from the orchestrator to the telemetry sink.

    Sink failures are logged and never reach the caller.
    """

    def __init__(self, sink: TelemetrySink | None) -> None:
        self.sink = sink

    def emit(self, event_name: str, context: dict[str, Any]) -> None:
        if self.sink is None:
            return
        try:
            self.sink.log(event_name, context)
        except Exception:
            logger.warning("Telemetry sink failed for event %s", event_name, exc_info=True)

    @contextmanager
    def stage(self, name: str) -> Iterator[dict[str, Any]]:
        start = time.perf_counter()
        info: dict[str, Any] = {"candidate_count": 0}
        outcome = "error"
        try:
            yield info
            outcome = "ok"
        finally:
            self.emit("pipeline_stage", {
                "stage": name,
                "candidate_count": info["candidate_count"],
                "duration_ms": _elapsed_ms(start),
                "outcome": outcome,
            })


class ItineraryPipeline:
    def __init__(
        self,
        retrieval: CandidateRetrieval,
        filters: FilterChain,
        reorder: ReorderAdapter,
        cache: CacheService,
        rule_store: RuleStore | None = None,
        miner: AssociationRuleMiner | None = None,
        telemetry: TelemetrySink | None = None,
        boost_config: BoostConfig = DEFAULT_BOOST_CONFIG,
        directions: DirectionsService | None = None,
    ) -> None:
        self.retrieval = retrieval
        self.filters = filters
        self.reorder = reorder
        self.cache = cache
        self.rule_store = rule_store
        self.miner = miner
        self.telemetry = telemetry
        self.boost_config = boost_config
        self.directions = directions

    # ------------------------------------------------------------------
    # Host entry points
    # ------------------------------------------------------------------

    def generate(self, profile: RequestProfile | dict[str, Any]) -> PipelineResult:
        """Build an itinerary for ``profile``; fatal failures raise PipelineError."""
        start = time.perf_counter()
        events = StageEvents(self.telemetry)

        try:
            validated = validate_profile(profile)
        except PipelineError as exc:
            events.emit("itinerary_failed", {"kind": exc.kind, "stage": exc.stage})
            raise

        cache_payload = validated.model_dump(mode="json")
        cached = self._cached_result(cache_payload)
        if cached is not None:
            logger.info("Cache hit - returning cached itinerary")
            cached.meta["cache_hit"] = True
            self._log_request(events, validated, cached, start)
            return cached

        try:
            result = self._run(validated, events, start)
        except PipelineError as exc:
            logger.warning("Itinerary generation failed at %s: %s", exc.stage, exc.message)
            events.emit("itinerary_failed", {"kind": exc.kind, "stage": exc.stage})
            raise

        self.cache.set("itinerary", cache_payload, result.model_dump(mode="json"), self.cache.ttl_long)
        self._log_request(events, validated, result, start)
        logger.info("Itinerary generation complete. Venues: %d", len(result.itinerary.items))
        return result

    def generate_rules(self) -> int:
        """Recompute and atomically replace the association-rule set."""
        if self.miner is None:
            raise ValueError("pipeline was built without a rule miner")
        start = time.perf_counter()
        count = self.miner.generate_rules()
        version = self.rule_store.snapshot().version if self.rule_store is not None else None
        StageEvents(self.telemetry).emit("rules_generated", {
            "rule_count": count,
            "version": version,
            "duration_ms": _elapsed_ms(start),
        })
        return count

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _run(self, profile: RequestProfile, events: StageEvents, start: float) -> PipelineResult:
        health = DependencyHealth()

        candidates = self._retrieve_and_fuse(profile, events, health)

        with events.stage("boost") as stage:
            rule_version, boosted = self._boost(candidates)
            stage["candidate_count"] = len(candidates)

        with events.stage("filters") as stage:
            survivors, report = self.filters.run(candidates, profile)
            stage["candidate_count"] = len(survivors)
        if not survivors:
            raise EmptyResultError(
                "No venues match your filters. Try relaxing your constraints.",
                stage="filters",
                context=report.as_dict(),
            )

        with events.stage("reorder") as stage:
            reordered = self.reorder.reorder(profile, survivors)
            stage["candidate_count"] = len(reordered.itinerary.items)

        with events.stage("directions") as stage:
            directions = self._route(profile, reordered.itinerary, reordered.candidates)
            stage["candidate_count"] = len(directions.legs)

        status = "complete" if reordered.itinerary.items else "partial"
        meta = {
            "pipeline": PIPELINE_NAME,
            "duration_ms": _elapsed_ms(start),
            "candidate_count": len(reordered.candidates),
            "rule_version": rule_version,
            "boosted": boosted,
            "filters": report.as_dict(),
            "degraded": health.down,
            "reorder_fallback": reordered.fallback,
            "fallback_reason": reordered.reason,
            "total_travel": directions.total_text,
            "cache_hit": False,
        }
        return PipelineResult(
            candidates=reordered.candidates,
            itinerary=reordered.itinerary,
            directions=directions,
            meta=meta,
            status=status,
        )

    def _retrieve_and_fuse(
        self,
        profile: RequestProfile,
        events: StageEvents,
        health: DependencyHealth,
    ) -> list[Candidate]:
        payload = profile.model_dump(
            mode="json", include={"interests", "budget", "accessibility_preferences", "location"},
        )
        cached = self.cache.get("fusion", payload)
        if cached is not None:
            try:
                candidates = [Candidate.model_validate(c) for c in cached]
            except PydanticValidationError:
                logger.warning("Discarding malformed cached candidates")
            else:
                events.emit("pipeline_stage", {
                    "stage": "fusion", "candidate_count": len(candidates), "duration_ms": 0.0, "outcome": "cached",
                })
                return candidates

        with events.stage("retrieval") as stage:
            candidate_lists = self.retrieval.retrieve(profile, health)
            stage["candidate_count"] = sum(len(c) for c in candidate_lists)
        if stage["candidate_count"] == 0:
            raise EmptyResultError(
                "No venues found matching your criteria. Try different interests or location.",
                stage="retrieval",
            )

        with events.stage("fusion") as stage:
            candidates = fuse_candidates(*candidate_lists)
            stage["candidate_count"] = len(candidates)

        if not health.failed:
            self.cache.set(
                "fusion", payload, [c.model_dump(mode="json") for c in candidates], self.cache.ttl_pipeline,
            )
        return candidates

    def _boost(self, candidates: list[Candidate]) -> tuple[int | None, int]:
        if self.rule_store is None:
            return None, 0
        try:
            snapshot = self.rule_store.snapshot()
        except PipelineError as exc:
            logger.warning("Rule store unavailable, skipping boost: %s", exc.message)
            return None, 0
        return snapshot.version, apply_association_boost(candidates, snapshot, self.boost_config)

    def _route(
        self,
        profile: RequestProfile,
        itinerary: Itinerary,
        candidates: list[Candidate],
    ) -> Directions:
        if self.directions is None or profile.location is None:
            return Directions()
        by_slug = {c.slug: c.data for c in candidates}
        waypoints = [
            (data.latitude, data.longitude)
            for data in (by_slug.get(item.slug) for item in itinerary.items)
            if data is not None and data.has_coordinates
        ]
        if not waypoints:
            return Directions()
        try:
            route = self.directions.route((profile.location.lat, profile.location.lng), waypoints, profile.mode)
            return Directions.model_validate(route)
        except DependencyError as exc:
            logger.warning("Directions failed, continuing without a route: %s", exc.message)
        except PydanticValidationError:
            logger.warning("Directions response was malformed, continuing without a route")
        return Directions()

    # ------------------------------------------------------------------
    # Cache / telemetry helpers
    # ------------------------------------------------------------------

    def _cached_result(self, payload: dict[str, Any]) -> PipelineResult | None:
        cached = self.cache.get("itinerary", payload)
        if cached is None:
            return None
        try:
            return PipelineResult.model_validate(cached)
        except PydanticValidationError:
            logger.warning("Discarding malformed cached itinerary")
            return None

    def _log_request(
        self,
        events: StageEvents,
        profile: RequestProfile,
        result: PipelineResult,
        start: float,
    ) -> None:
        events.emit("itinerary_generated", {
            "interests": list(profile.interests),
            "venue_count": len(result.itinerary.items),
            "status": result.status,
            "cache_hit": bool(result.meta.get("cache_hit")),
            "reorder_fallback": bool(result.meta.get("reorder_fallback")),
            "duration_ms": _elapsed_ms(start),
            "pipeline": PIPELINE_NAME,
        })
