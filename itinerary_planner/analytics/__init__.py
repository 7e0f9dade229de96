"""
Pipeline telemetry.

Responsibilities:
- Record structured, non-identifying events for every pipeline stage and request.
- Summarise recorded events for the analytics endpoint.
"""
