"""
Itinerary pipeline orchestration.

Responsibilities:
- Validate and normalise the visitor profile.
- Sequence retrieval, fusion, boost, filtering and reordering.
- Classify stage failures as fatal or non-fatal and degrade gracefully.
- Emit per-stage telemetry and memoise complete results.
"""
