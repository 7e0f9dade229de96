from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


def _disabled_from_env() -> frozenset[str]:
    raw = os.getenv("ITINERARY_DISABLED_FILTERS", "")
    return frozenset(name.strip().lower() for name in raw.split(",") if name.strip())


@dataclass(frozen=True)
class FilterConfig:
    maps_api_key: str = os.getenv("GOOGLE_MAPS_API_KEY", "")
    routing_timeout: float = 5.0
    travel_fraction: float = 0.5  # share of the time window allowed for one-way travel
    min_travel_minutes: float = 10.0
    max_travel_minutes: float = 120.0
    partner_boost: float = 1.2
    disabled: frozenset[str] = field(default_factory=_disabled_from_env)


DEFAULT_FILTER_CONFIG = FilterConfig()
