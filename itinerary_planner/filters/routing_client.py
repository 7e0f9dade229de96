"""
Google Distance Matrix and Directions clients.

The matrix client takes one origin and many destinations, sent in chunks of
25 (the per-request limit of the web service). The directions client routes
from the origin through every stop in order, ending at the last one.
"""
from __future__ import annotations

import logging
from typing import Any

import httpx

from ..pipeline.http import check_api_status, get_json
from .config import DEFAULT_FILTER_CONFIG, FilterConfig

logger = logging.getLogger(__name__)

_MATRIX_URL = "https://maps.googleapis.com/maps/api/distancematrix/json"
_DIRECTIONS_URL = "https://maps.googleapis.com/maps/api/directions/json"
_SHARE_URL = "https://www.google.com/maps/dir/"
_SERVICE = "routing"
_MAX_DESTINATIONS = 25


class GoogleDistanceMatrixClient:
    def __init__(
        self,
        api_key: str,
        config: FilterConfig = DEFAULT_FILTER_CONFIG,
        client: httpx.Client | None = None,
    ) -> None:
        self._api_key = api_key
        self._config = config
        self._client = client or httpx.Client()

    def matrix(
        self,
        origin: tuple[float, float],
        destinations: list[tuple[str, float, float]],
        mode: str,
    ) -> list[dict[str, Any]]:
        results: list[dict[str, Any]] = []
        for start in range(0, len(destinations), _MAX_DESTINATIONS):
            chunk = destinations[start:start + _MAX_DESTINATIONS]
            results.extend(self._matrix_chunk(origin, chunk, mode))
        return results

    def _matrix_chunk(
        self,
        origin: tuple[float, float],
        chunk: list[tuple[str, float, float]],
        mode: str,
    ) -> list[dict[str, Any]]:
        body = get_json(
            self._client,
            _MATRIX_URL,
            {
                "origins": f"{origin[0]},{origin[1]}",
                "destinations": "|".join(f"{lat},{lng}" for _, lat, lng in chunk),
                "mode": mode,
                "key": self._api_key,
            },
            service=_SERVICE,
            timeout=self._config.routing_timeout,
        )
        if not check_api_status(body, service=_SERVICE):
            return [{"identity": identity, "duration_seconds": None} for identity, _, _ in chunk]

        rows = body.get("rows") or [{}]
        elements = rows[0].get("elements") or []
        results = []
        for i, (identity, _, _) in enumerate(chunk):
            element = elements[i] if i < len(elements) else {}
            seconds = None
            if element.get("status") == "OK":
                seconds = (element.get("duration") or {}).get("value")
            results.append({"identity": identity, "duration_seconds": seconds})
        return results


def _point(point: tuple[float, float]) -> str:
    return f"{point[0]},{point[1]}"


def format_duration(seconds: int) -> str:
    hours, minutes = seconds // 3600, (seconds % 3600) // 60
    return f"{hours}h {minutes}m" if hours else f"{minutes}m"


def build_maps_url(origin: tuple[float, float], waypoints: list[tuple[float, float]], mode: str) -> str:
    """Shareable Google Maps link for the same multi-stop route."""
    if not waypoints:
        return "#"
    params = {
        "api": 1,
        "origin": _point(origin),
        "destination": _point(waypoints[-1]),
        "travelmode": mode,
    }
    if len(waypoints) > 1:
        params["waypoints"] = "|".join(_point(w) for w in waypoints[:-1])
    return f"{_SHARE_URL}?{httpx.QueryParams(params)}"


class GoogleDirectionsClient:
    def __init__(
        self,
        api_key: str,
        config: FilterConfig = DEFAULT_FILTER_CONFIG,
        client: httpx.Client | None = None,
    ) -> None:
        self._api_key = api_key
        self._config = config
        self._client = client or httpx.Client()

    def route(
        self,
        origin: tuple[float, float],
        waypoints: list[tuple[float, float]],
        mode: str,
    ) -> dict[str, Any]:
        if not waypoints:
            return {}
        params = {
            "origin": _point(origin),
            "destination": _point(waypoints[-1]),
            "mode": mode,
            "key": self._api_key,
        }
        if len(waypoints) > 1:
            params["waypoints"] = "|".join(_point(w) for w in waypoints[:-1])

        logger.info("Directions request: %d stops, mode=%s", len(waypoints), mode)
        body = get_json(
            self._client,
            _DIRECTIONS_URL,
            params,
            service=_SERVICE,
            timeout=self._config.routing_timeout,
        )
        if not check_api_status(body, service=_SERVICE):
            return {}
        routes = body.get("routes") or []
        if not routes:
            return {}

        route = routes[0]
        legs = route.get("legs") or []
        total = sum(int((leg.get("duration") or {}).get("value") or 0) for leg in legs)
        return {
            "polyline": (route.get("overview_polyline") or {}).get("points", ""),
            "legs": legs,
            "total_seconds": total,
            "total_text": format_duration(total),
            "overview_url": build_maps_url(origin, waypoints, mode),
        }
