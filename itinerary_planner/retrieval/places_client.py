"""
Google Places web-service client.

Nearby search returns basic venue info per category; details fills in
hours, accessibility and contact fields. Both are normalised into venue
rows with the same columns as the relational ``venues`` table.
"""
from __future__ import annotations

import logging
import re
from typing import Any

import httpx

from ..pipeline.http import check_api_status, get_json
from .config import DEFAULT_RETRIEVAL_CONFIG, RetrievalConfig

logger = logging.getLogger(__name__)

_NEARBY_URL = "https://maps.googleapis.com/maps/api/place/nearbysearch/json"
_DETAILS_URL = "https://maps.googleapis.com/maps/api/place/details/json"
_SERVICE = "places_directory"

DETAIL_FIELDS = (
    "place_id",
    "name",
    "formatted_address",
    "geometry",
    "opening_hours",
    "business_status",
    "price_level",
    "rating",
    "types",
    "wheelchair_accessible_entrance",
    "formatted_phone_number",
    "website",
)

_WEEKDAY_RE = re.compile(r"^(\w+):\s*(.+)$")


def _format_hours(opening_hours: dict[str, Any]) -> dict[str, str] | None:
    weekday_text = opening_hours.get("weekday_text") or []
    if not weekday_text:
        return None
    hours: dict[str, str] = {}
    for line in weekday_text:
        # "Monday: 9:00 AM – 5:00 PM"
        match = _WEEKDAY_RE.match(line)
        if match:
            hours[match.group(1)] = match.group(2)
    return hours


def normalize_place(place: dict[str, Any]) -> dict[str, Any]:
    """Map a Places API result onto the venue row schema."""
    location = (place.get("geometry") or {}).get("location") or {}
    opening_hours = place.get("opening_hours") or {}
    wheelchair = place.get("wheelchair_accessible_entrance")
    return {
        "slug": place.get("place_id", ""),
        "name": place.get("name", ""),
        "address": place.get("formatted_address") or place.get("vicinity", ""),
        "latitude": location.get("lat"),
        "longitude": location.get("lng"),
        "categories": list(place.get("types") or []),
        "hours": _format_hours(opening_hours),
        "open_now": opening_hours.get("open_now"),
        "business_status": place.get("business_status"),
        "price_level": place.get("price_level"),
        "rating": place.get("rating"),
        "accessibility": ["wheelchair"] if wheelchair is True else None,
        "phone": place.get("formatted_phone_number", ""),
        "website": place.get("website", ""),
    }


class GooglePlacesClient:
    def __init__(
        self,
        api_key: str,
        config: RetrievalConfig = DEFAULT_RETRIEVAL_CONFIG,
        client: httpx.Client | None = None,
    ) -> None:
        self._api_key = api_key
        self._config = config
        self._client = client or httpx.Client()

    def nearby(self, lat: float, lng: float, category: str, radius: int) -> list[dict[str, Any]]:
        logger.info("Places nearby search: type=%s lat=%s lng=%s radius=%s", category, lat, lng, radius)
        body = get_json(
            self._client,
            _NEARBY_URL,
            {"location": f"{lat},{lng}", "radius": radius, "type": category, "key": self._api_key},
            service=_SERVICE,
            timeout=self._config.timeout,
        )
        if not check_api_status(body, service=_SERVICE):
            return []
        return [normalize_place(p) for p in body.get("results", []) if p.get("place_id")]

    def details(self, identity: str) -> dict[str, Any]:
        body = get_json(
            self._client,
            _DETAILS_URL,
            {"place_id": identity, "fields": ",".join(DETAIL_FIELDS), "key": self._api_key},
            service=_SERVICE,
            timeout=self._config.timeout,
        )
        check_api_status(body, service=_SERVICE)
        row = normalize_place(body.get("result") or {})
        row["slug"] = row["slug"] or identity
        return row
