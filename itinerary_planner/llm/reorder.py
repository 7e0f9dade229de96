from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from ..cache.service import CacheService
from ..pipeline.errors import DependencyError, DependencyUnavailable, ReorderParseError
from ..pipeline.interfaces import CompletionClient
from ..pipeline.models import Candidate, Itinerary, ItineraryItem, RequestProfile
from ..scoring.fusion import sort_key
from .config import DEFAULT_LLM_CONFIG, LLMConfig

logger = logging.getLogger(__name__)

SCHEMA_HINT = (
    '{"items": [{"slug": "<candidate slug>", "title": "<venue name>", "sequence": 1, '
    '"arrival_minute": 0, "duration_minutes": 45, "notes": "<one friendly sentence>"}]}'
)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)

_CATEGORY_PHRASES = {
    "restaurant": "dining spot",
    "cafe": "cozy café",
    "bar": "local bar",
    "night_club": "nightlife venue",
    "museum": "cultural attraction",
    "art_gallery": "art space",
    "park": "outdoor space",
    "tourist_attraction": "must-see attraction",
}


class CompletionItem(BaseModel):
    slug: str = Field(..., min_length=1)
    title: str = ""
    sequence: int = Field(..., ge=1)
    arrival_minute: int = Field(default=0, ge=0)
    duration_minutes: int = Field(default=45, ge=1, le=480)
    notes: str = ""


_ITEMS_ADAPTER = TypeAdapter(list[CompletionItem])


@dataclass
class ReorderResult:
    candidates: list[Candidate]
    itinerary: Itinerary
    fallback: bool
    reason: str | None = None


def parse_completion(text: str, known_slugs: set[str]) -> list[CompletionItem]:
    """Parse and validate a completion; every failure is a ReorderParseError."""
    try:
        parsed = json.loads(_FENCE_RE.sub("", text.strip()))
    except ValueError as exc:
        raise ReorderParseError("completion is not valid JSON") from exc

    raw_items = parsed.get("items") if isinstance(parsed, dict) else parsed
    if not isinstance(raw_items, list):
        raise ReorderParseError("completion has no item list")
    try:
        items = _ITEMS_ADAPTER.validate_python(raw_items)
    except PydanticValidationError as exc:
        raise ReorderParseError(
            "completion items failed validation",
            context={"errors": exc.errors(include_url=False, include_context=False, include_input=False)},
        ) from exc

    slugs = [item.slug for item in items]
    unknown = sorted(set(slugs) - known_slugs)
    if unknown:
        raise ReorderParseError("completion references unknown venues", context={"unknown": unknown})
    if len(set(slugs)) != len(slugs):
        raise ReorderParseError("completion lists a venue more than once")
    return sorted(items, key=lambda item: item.sequence)


def fallback_sort(candidates: list[Candidate]) -> list[Candidate]:
    """Rating first, then score, then slug. Deterministic for any input order."""
    return sorted(
        candidates,
        key=lambda c: (-(c.data.rating or 0.0), -(c.score or 0.0), c.slug),
    )


def vibe_summary(candidate: Candidate) -> str:
    phrase = next(
        (_CATEGORY_PHRASES[c] for c in candidate.data.categories if c in _CATEGORY_PHRASES),
        "local spot",
    )
    rating = candidate.data.rating or 0.0
    rating_text = "highly-rated" if rating >= 4.5 else "popular" if rating >= 4.0 else ""
    return f"{rating_text} {phrase}.".strip().capitalize()


def build_context(profile: RequestProfile, candidates: list[Candidate]) -> dict[str, Any]:
    return {
        "profile": {
            "interests": list(profile.interests),
            "budget": profile.budget,
            "time_window": profile.time_window,
            "party_size": profile.party_size,
            "accessibility": list(profile.accessibility_preferences),
            "mode": profile.mode,
        },
        "candidates": [
            {
                "slug": c.slug,
                "name": c.data.name,
                "categories": c.data.categories[:3],
                "rating": c.data.rating,
                "price_level": c.data.price_level,
                "travel_minutes": c.meta.get("travel_minutes"),
            }
            for c in candidates
        ],
    }


def build_prompt(context: dict[str, Any]) -> str:
    profile = context["profile"]
    lines = ["## Visitor"]
    lines.append(f"- Interests: {', '.join(profile['interests'])}")
    lines.append(f"- Budget: {profile['budget']}")
    lines.append(f"- Time window: {profile['time_window']} minutes")
    lines.append(f"- Party size: {profile['party_size']}")
    lines.append(f"- Getting around: {profile['mode']}")
    if profile["accessibility"]:
        lines.append(f"- Accessibility needs: {', '.join(profile['accessibility'])}")

    lines.append("\n## Candidate Venues")
    lines.append("| Slug | Name | Categories | Rating | Price | Travel (min) |")
    lines.append("|---|---|---|---|---|---|")
    for c in context["candidates"]:
        lines.append(
            f"| {c['slug']} | {c['name']} | {', '.join(c['categories'])} "
            f"| {c['rating'] if c['rating'] is not None else 'N/A'} "
            f"| {c['price_level'] if c['price_level'] is not None else '?'} "
            f"| {c['travel_minutes'] if c['travel_minutes'] is not None else '?'} |"
        )
    return "\n".join(lines)


class ReorderAdapter:
    def __init__(
        self,
        client: CompletionClient | None,
        cache: CacheService,
        config: LLMConfig = DEFAULT_LLM_CONFIG,
    ) -> None:
        self.client = client
        self.cache = cache
        self.config = config

    def reorder(self, profile: RequestProfile, candidates: list[Candidate]) -> ReorderResult:
        ranked = sorted(candidates, key=sort_key)
        shortlist = ranked[: self.config.max_candidates]
        try:
            items = self._complete(profile, shortlist)
        except ReorderParseError as exc:
            logger.warning("Reorder response rejected, using fallback sort: %s", exc.message)
            return self.fallback(profile, candidates, exc.kind)
        except DependencyError as exc:
            logger.warning("Completion service failed, using fallback sort: %s", exc.message)
            return self.fallback(profile, candidates, exc.kind)

        by_slug = {c.slug: c for c in ranked}
        ordered: list[Candidate] = []
        itinerary_items: list[ItineraryItem] = []
        for position, item in enumerate(items, start=1):
            candidate = by_slug[item.slug]
            candidate.meta["reorder_position"] = position
            ordered.append(candidate)
            itinerary_items.append(ItineraryItem(
                slug=item.slug,
                title=item.title or candidate.data.name or item.slug,
                order=position,
                arrival_minute=item.arrival_minute,
                duration_minutes=item.duration_minutes,
                notes=item.notes,
                provenance="llm",
            ))
        chosen = {c.slug for c in ordered}
        ordered.extend(c for c in ranked if c.slug not in chosen)

        return ReorderResult(
            candidates=ordered,
            itinerary=Itinerary(items=itinerary_items, meta=self._meta(itinerary_items, fallback=False)),
            fallback=False,
        )

    def _complete(self, profile: RequestProfile, shortlist: list[Candidate]) -> list[CompletionItem]:
        if self.client is None:
            raise DependencyUnavailable("completion service not configured", service="completion")

        context = build_context(profile, shortlist)
        known = {c.slug for c in shortlist}
        payload = {"schema": self.config.prompt_version, "context": context}

        cached = self.cache.get("completion", payload)
        if cached is not None:
            return parse_completion(cached, known)

        text = self.client.complete(build_prompt(context), SCHEMA_HINT)
        items = parse_completion(text, known)
        self.cache.set("completion", payload, text, self.cache.ttl_long)
        return items

    def fallback(self, profile: RequestProfile, candidates: list[Candidate], reason: str) -> ReorderResult:
        ordered = fallback_sort(candidates)
        items: list[ItineraryItem] = []
        clock = 0
        for candidate in ordered[: self.config.fallback_max_items]:
            arrival = clock + int(candidate.meta.get("travel_minutes") or 0)
            duration = self.config.default_visit_minutes
            if items and arrival + duration > profile.time_window:
                break
            items.append(ItineraryItem(
                slug=candidate.slug,
                title=candidate.data.name or candidate.slug,
                order=len(items) + 1,
                arrival_minute=arrival,
                duration_minutes=duration,
                notes=vibe_summary(candidate),
                provenance="fallback",
            ))
            clock = arrival + duration

        meta = self._meta(items, fallback=True)
        meta["fallback_reason"] = reason
        return ReorderResult(
            candidates=ordered,
            itinerary=Itinerary(items=items, meta=meta),
            fallback=True,
            reason=reason,
        )

    def _meta(self, items: list[ItineraryItem], *, fallback: bool) -> dict[str, Any]:
        total = max((i.arrival_minute + i.duration_minutes for i in items), default=0)
        return {
            "venue_count": len(items),
            "fallback": fallback,
            "prompt_version": self.config.prompt_version,
            "total_minutes": total,
        }
