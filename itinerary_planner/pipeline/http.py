from __future__ import annotations

import logging
from typing import Any

import httpx

from .errors import DependencyRejected, DependencyUnavailable

logger = logging.getLogger(__name__)

# Google web-service statuses that mean "the query worked, nothing matched".
EMPTY_STATUSES = {"ZERO_RESULTS"}


def get_json(
    client: httpx.Client,
    url: str,
    params: dict[str, Any],
    *,
    service: str,
    timeout: float,
) -> dict[str, Any]:
    """GET ``url`` and return the decoded body, translating every failure."""
    try:
        response = client.get(url, params=params, timeout=timeout)
    except httpx.TimeoutException as exc:
        raise DependencyUnavailable(f"{service} timed out", service=service) from exc
    except httpx.TransportError as exc:
        raise DependencyUnavailable(f"{service} unreachable: {exc}", service=service) from exc

    if response.status_code >= 400:
        raise DependencyRejected(
            f"{service} returned HTTP {response.status_code}",
            service=service,
            status_code=response.status_code,
        )
    try:
        body = response.json()
    except ValueError as exc:
        raise DependencyRejected(
            f"{service} returned invalid JSON", service=service, status_code=response.status_code,
        ) from exc
    if not isinstance(body, dict):
        raise DependencyRejected(f"{service} returned an unexpected payload", service=service)
    return body


def check_api_status(body: dict[str, Any], *, service: str) -> bool:
    """Return False for an empty-but-valid result, raise for API-level errors."""
    status = body.get("status", "UNKNOWN")
    if status == "OK":
        return True
    if status in EMPTY_STATUSES:
        return False
    logger.warning("%s API status: %s - %s", service, status, body.get("error_message", ""))
    raise DependencyRejected(
        f"{service} returned status {status}",
        service=service,
        context={"api_status": status, "error_message": body.get("error_message", "")},
    )
