from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

from ..cache.service import CacheService
from ..pipeline.errors import DependencyError
from ..pipeline.interfaces import RoutingService
from ..pipeline.models import Candidate, RequestProfile
from .config import DEFAULT_FILTER_CONFIG, FilterConfig

logger = logging.getLogger(__name__)

# Highest price tier each budget accepts (0 = free ... 4 = very expensive).
BUDGET_MAX_TIER = {"low": 1, "medium": 2, "high": 4}


@dataclass
class FilterReport:
    dropped: dict[str, int] = field(default_factory=dict)
    skipped: dict[str, str] = field(default_factory=dict)

    def as_dict(self) -> dict[str, dict]:
        return {"dropped": dict(self.dropped), "skipped": dict(self.skipped)}


class CandidateFilter(Protocol):
    name: str

    def apply(
        self,
        candidates: list[Candidate],
        profile: RequestProfile,
        report: FilterReport,
    ) -> list[Candidate]: ...


class BudgetFilter:
    name = "budget"

    def apply(self, candidates, profile, report):
        max_tier = BUDGET_MAX_TIER[profile.budget]
        return [
            c for c in candidates
            if c.data.price_level is None or c.data.price_level <= max_tier
        ]


class AccessibilityFilter:
    name = "accessibility"

    def apply(self, candidates, profile, report):
        required = set(profile.accessibility_preferences)
        if not required:
            return candidates
        return [c for c in candidates if required.issubset(c.data.accessibility or ())]


class OperationalFilter:
    name = "operational"

    def apply(self, candidates, profile, report):
        kept = []
        for c in candidates:
            status = c.data.business_status
            if status is not None and status.upper() != "OPERATIONAL":
                continue
            if c.data.open_now is False:
                continue
            kept.append(c)
        return kept


class TravelFeasibilityFilter:
    """Drops venues too far from the origin for the visitor's time window.

    Allowed one-way travel is a fraction of the time window, clamped to a
    fixed range. Routing failures skip the filter entirely.
    """

    name = "travel"

    def __init__(
        self,
        routing: RoutingService | None,
        cache: CacheService | None = None,
        config: FilterConfig = DEFAULT_FILTER_CONFIG,
    ) -> None:
        self.routing = routing
        self.cache = cache
        self.config = config

    def allowed_minutes(self, profile: RequestProfile) -> float:
        budget = profile.time_window * self.config.travel_fraction
        return max(self.config.min_travel_minutes, min(self.config.max_travel_minutes, budget))

    def _durations(self, profile, destinations) -> dict[str, float | None]:
        payload = {
            "origin": [profile.location.lat, profile.location.lng],
            "destinations": destinations,
            "mode": profile.mode,
        }
        if self.cache is not None:
            cached = self.cache.get("distance", payload)
            if cached is not None:
                return cached

        origin = (profile.location.lat, profile.location.lng)
        rows = self.routing.matrix(origin, destinations, profile.mode)
        durations = {str(r["identity"]): r.get("duration_seconds") for r in rows if "identity" in r}
        if self.cache is not None:
            self.cache.set("distance", payload, durations, self.cache.ttl_pipeline)
        return durations

    def apply(self, candidates, profile, report):
        if self.routing is None:
            report.skipped[self.name] = "routing service not configured"
            return candidates
        if profile.location is None:
            report.skipped[self.name] = "no origin"
            return candidates

        destinations = [
            (c.slug, c.data.latitude, c.data.longitude)
            for c in candidates if c.data.has_coordinates
        ]
        if not destinations:
            return candidates

        try:
            durations = self._durations(profile, destinations)
        except DependencyError as exc:
            logger.warning("Routing failed, skipping travel filter: %s", exc.message)
            report.skipped[self.name] = exc.kind
            return candidates

        allowed = self.allowed_minutes(profile)
        kept = []
        for c in candidates:
            seconds = durations.get(c.slug)
            if seconds is None:
                kept.append(c)
                continue
            minutes = seconds / 60.0
            if minutes <= allowed:
                c.meta["travel_minutes"] = round(minutes)
                kept.append(c)
        return kept


class PartnerBoostFilter:
    """Non-dropping: lifts partner venues' scores by a fixed factor."""

    name = "partner"

    def __init__(self, factor: float = DEFAULT_FILTER_CONFIG.partner_boost) -> None:
        self.factor = factor

    def apply(self, candidates, profile, report):
        for c in candidates:
            if not c.data.is_partner:
                continue
            if c.score is not None:
                c.score *= self.factor
            c.add_source("partner")
            c.meta["partner_boost"] = self.factor
        return candidates


class FilterChain:
    def __init__(self, filters: list[CandidateFilter], disabled: frozenset[str] = frozenset()) -> None:
        self.filters = filters
        self.disabled = disabled

    def run(self, candidates: list[Candidate], profile: RequestProfile) -> tuple[list[Candidate], FilterReport]:
        report = FilterReport()
        survivors = list(candidates)
        for candidate_filter in self.filters:
            if candidate_filter.name in self.disabled:
                report.skipped[candidate_filter.name] = "disabled"
                continue
            before = len(survivors)
            survivors = candidate_filter.apply(survivors, profile, report)
            report.dropped[candidate_filter.name] = before - len(survivors)
            logger.debug("Filter %s: %d -> %d", candidate_filter.name, before, len(survivors))
        return survivors, report


def build_filter_chain(
    routing: RoutingService | None,
    cache: CacheService | None = None,
    config: FilterConfig = DEFAULT_FILTER_CONFIG,
) -> FilterChain:
    return FilterChain(
        [
            BudgetFilter(),
            AccessibilityFilter(),
            OperationalFilter(),
            TravelFeasibilityFilter(routing, cache, config),
            PartnerBoostFilter(config.partner_boost),
        ],
        disabled=config.disabled,
    )
