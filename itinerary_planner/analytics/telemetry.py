from __future__ import annotations

import logging
from typing import Any

from .store import record_event

logger = logging.getLogger(__name__)


class AnalyticsTelemetry:
    """Telemetry sink writing to the in-process analytics store."""

    def log(self, event_name: str, context: dict[str, Any]) -> None:
        record_event(event_name, context)
        logger.debug("Telemetry event %s: %s", event_name, context)
