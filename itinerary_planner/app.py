from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends, FastAPI, HTTPException

from .analytics.aggregator import compute_analytics
from .analytics.store import get_events
from .pipeline.errors import (
    DependencyRejected,
    DependencyUnavailable,
    EmptyResultError,
    PipelineError,
    ValidationError,
)
from .pipeline.factory import build_pipeline
from .pipeline.models import ItineraryRequest, PipelineResult
from .pipeline.orchestrator import ItineraryPipeline

logger = logging.getLogger(__name__)

app = FastAPI(title="Itinerary Planner API", version="1.0.0")

_STATUS_CODES: list[tuple[type[PipelineError], int]] = [
    (ValidationError, 422),
    (EmptyResultError, 404),
    (DependencyUnavailable, 503),
    (DependencyRejected, 502),
]


@lru_cache(maxsize=1)
def get_pipeline() -> ItineraryPipeline:
    return build_pipeline()


def _http_error(exc: PipelineError) -> HTTPException:
    status = next((code for kind, code in _STATUS_CODES if isinstance(exc, kind)), 500)
    return HTTPException(status_code=status, detail=exc.to_dict())


# ── Public endpoints ─────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/itinerary", response_model=PipelineResult)
def itinerary(
    body: ItineraryRequest,
    pipeline: ItineraryPipeline = Depends(get_pipeline),
) -> PipelineResult:
    try:
        return pipeline.generate(body.to_profile_input())
    except PipelineError as exc:
        raise _http_error(exc) from exc


# ── Admin endpoints ──────────────────────────────────────────────────────


@app.post("/rules/generate")
def generate_rules(pipeline: ItineraryPipeline = Depends(get_pipeline)) -> dict:
    try:
        count = pipeline.generate_rules()
    except PipelineError as exc:
        raise _http_error(exc) from exc
    version = pipeline.rule_store.snapshot().version if pipeline.rule_store is not None else None
    return {"rule_count": count, "version": version}


@app.get("/cache/stats")
def cache_stats(pipeline: ItineraryPipeline = Depends(get_pipeline)) -> dict:
    return pipeline.cache.stats()


@app.get("/analytics")
def analytics() -> dict:
    return compute_analytics(get_events())
