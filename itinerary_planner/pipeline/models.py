from __future__ import annotations

import json
import math
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError

DEFAULT_INTERESTS: tuple[str, ...] = ("art", "food")
MIN_TIME_WINDOW = 60
MAX_TIME_WINDOW = 480
MAX_TAGS = 10

Budget = Literal["low", "medium", "high"]
TravelMode = Literal["walking", "driving", "transit", "bicycling"]
ResultStatus = Literal["complete", "partial"]


def _split_tags(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, str):
        return value.split(",")
    if isinstance(value, float) and math.isnan(value):
        return []
    return list(value)


def _normalize_tags(value: Any) -> tuple[str, ...]:
    tags = {str(v).strip().lower() for v in _split_tags(value)}
    tags.discard("")
    return tuple(sorted(tags))


# ---------------------------------------------------------------------------
# Request profile
# ---------------------------------------------------------------------------


class LatLng(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)


class RequestProfile(BaseModel):
    """A validated, normalised visitor profile. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    interests: tuple[str, ...] = DEFAULT_INTERESTS
    budget: Budget = "medium"
    time_window: int = Field(default=240, description="Minutes available, clamped into [60, 480]")
    location: LatLng | None = None
    accessibility_preferences: tuple[str, ...] = ()
    party_size: int = Field(default=1, ge=1, le=50)
    mode: TravelMode = "walking"

    @field_validator("interests", "accessibility_preferences", mode="before")
    @classmethod
    def _tags(cls, value: Any) -> tuple[str, ...]:
        tags = _normalize_tags(value)
        if len(tags) > MAX_TAGS:
            raise ValueError(f"at most {MAX_TAGS} tags allowed")
        return tags

    @field_validator("interests")
    @classmethod
    def _default_interests(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return value or DEFAULT_INTERESTS

    @field_validator("budget", "mode", mode="before")
    @classmethod
    def _lower(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("time_window")
    @classmethod
    def _clamp_time_window(cls, value: int) -> int:
        return max(MIN_TIME_WINDOW, min(MAX_TIME_WINDOW, value))

    @field_validator("location", mode="before")
    @classmethod
    def _coerce_location(cls, value: Any) -> Any:
        if isinstance(value, (tuple, list)):
            if len(value) != 2:
                raise ValueError("location must be a (lat, lng) pair")
            return {"lat": value[0], "lng": value[1]}
        return value


def validate_profile(raw: RequestProfile | dict[str, Any]) -> RequestProfile:
    """Validate and normalise a raw profile, translating pydantic errors."""
    if isinstance(raw, RequestProfile):
        raw = raw.model_dump()
    if not isinstance(raw, dict):
        raise ValidationError("profile must be a mapping", field=None)
    try:
        return RequestProfile.model_validate(raw)
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ValidationError(
            f"invalid profile: {first.get('msg', 'validation failed')}",
            field=field,
            context={"errors": exc.errors(include_url=False, include_context=False, include_input=False)},
        ) from exc


# ---------------------------------------------------------------------------
# Candidates
# ---------------------------------------------------------------------------


class VenueData(BaseModel):
    """Venue attributes. Unknown fields are kept in the open attribute bag."""

    model_config = ConfigDict(extra="allow")

    name: str = ""
    address: str = ""
    latitude: float | None = None
    longitude: float | None = None
    categories: list[str] = Field(default_factory=list)
    hours: dict[str, str] | None = None
    open_now: bool | None = None
    business_status: str | None = None
    price_level: int | None = None
    rating: float | None = None
    accessibility: list[str] | None = None
    phone: str = ""
    website: str = ""
    is_partner: bool = False

    @field_validator("name", "address", "phone", "website", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("categories", mode="before")
    @classmethod
    def _categories(cls, value: Any) -> list[str]:
        return [str(c).strip() for c in _split_tags(value) if str(c).strip()]

    @field_validator("accessibility", mode="before")
    @classmethod
    def _accessibility(cls, value: Any) -> list[str] | None:
        if value is None:
            return None
        return list(_normalize_tags(value))

    @field_validator("price_level", mode="before")
    @classmethod
    def _price_level(cls, value: Any) -> int | None:
        if value is None or value == "":
            return None
        if isinstance(value, float) and math.isnan(value):
            return None
        if isinstance(value, str) and set(value.strip()) == {"$"}:
            return len(value.strip())
        return int(float(value))

    @field_validator("is_partner", mode="before")
    @classmethod
    def _partner(cls, value: Any) -> Any:
        return False if value is None else value

    @field_validator("hours", mode="before")
    @classmethod
    def _hours(cls, value: Any) -> Any:
        # Stored tables keep hours as a JSON object string
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError:
                return None
            return value if isinstance(value, dict) else None
        return value

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def populated_fields(self) -> int:
        return sum(
            1 for value in self.model_dump().values()
            if value is not None and value is not False and value not in ("", [], {})
        )


class Candidate(BaseModel):
    slug: str = Field(..., min_length=1)
    score: float | None = None
    sources: set[str] = Field(default_factory=set)
    data: VenueData = Field(default_factory=VenueData)
    meta: dict[str, Any] = Field(default_factory=dict)

    def add_source(self, tag: str) -> None:
        self.sources.add(tag)


# ---------------------------------------------------------------------------
# Association rules
# ---------------------------------------------------------------------------


class AssociationRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    seed_slug: str
    recommendation_slug: str
    support: float = Field(..., ge=0.0, le=1.0)
    confidence: float = Field(..., ge=0.0, le=1.0)
    lift: float = Field(..., ge=0.0)


class RuleSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    version: int = 0
    rules: tuple[AssociationRule, ...] = ()
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def rules_for_seeds(self, seeds: set[str]) -> list[AssociationRule]:
        return [r for r in self.rules if r.seed_slug in seeds]


# ---------------------------------------------------------------------------
# Itinerary
# ---------------------------------------------------------------------------


class ItineraryItem(BaseModel):
    slug: str
    title: str = ""
    order: int = Field(..., ge=1)
    arrival_minute: int = Field(default=0, ge=0)
    duration_minutes: int = Field(default=45, ge=1)
    notes: str = ""
    provenance: Literal["llm", "fallback"] = "fallback"


class Itinerary(BaseModel):
    items: list[ItineraryItem] = Field(default_factory=list)
    meta: dict[str, Any] = Field(default_factory=dict)


class Directions(BaseModel):
    """Multi-stop route through the itinerary. The defaults mean "no route"."""

    polyline: str = ""
    legs: list[dict[str, Any]] = Field(default_factory=list)
    total_seconds: int = 0
    total_text: str = ""
    overview_url: str = "#"


class PipelineResult(BaseModel):
    candidates: list[Candidate]
    itinerary: Itinerary
    directions: Directions = Field(default_factory=Directions)
    meta: dict[str, Any] = Field(default_factory=dict)
    status: ResultStatus = "complete"


# ---------------------------------------------------------------------------
# HTTP request body
# ---------------------------------------------------------------------------


class ItineraryRequest(BaseModel):
    """Loosely typed request body; normalisation happens in validate_profile."""

    interests: list[str] | str | None = None
    budget: str | None = None
    time_window: int | None = None
    location: LatLng | list[float] | None = None
    accessibility_preferences: list[str] | str | None = None
    party_size: int | None = None
    mode: str | None = None

    def to_profile_input(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)
