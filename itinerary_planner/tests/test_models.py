from __future__ import annotations

import pytest
from pydantic import ValidationError as PydanticValidationError

from itinerary_planner.pipeline.errors import ValidationError
from itinerary_planner.pipeline.models import (
    Candidate,
    ItineraryRequest,
    LatLng,
    RequestProfile,
    VenueData,
    validate_profile,
)


def test_profile_normalises_tags():
    profile = validate_profile({"interests": ["Food", " art ", "food"], "accessibility_preferences": "Wheelchair"})

    assert profile.interests == ("art", "food")
    assert profile.accessibility_preferences == ("wheelchair",)


def test_profile_defaults_empty_interests():
    profile = validate_profile({"interests": []})

    assert profile.interests == ("art", "food")
    assert profile.budget == "medium"
    assert profile.mode == "walking"


def test_profile_clamps_time_window():
    assert validate_profile({"time_window": 20}).time_window == 60
    assert validate_profile({"time_window": 1000}).time_window == 480
    assert validate_profile({"time_window": 180}).time_window == 180


def test_profile_clamps_zero_and_negative_time_window():
    assert validate_profile({"time_window": 0}).time_window == 60
    assert validate_profile({"time_window": -30}).time_window == 60


def test_profile_accepts_location_pair():
    profile = validate_profile({"location": [40.7, -74.0]})

    assert profile.location == LatLng(lat=40.7, lng=-74.0)


def test_invalid_budget_raises_validation_error():
    with pytest.raises(ValidationError) as exc_info:
        validate_profile({"budget": "luxury"})

    assert exc_info.value.field == "budget"
    assert exc_info.value.stage == "validation"
    assert exc_info.value.to_dict()["kind"] == "validation_error"


def test_out_of_range_location_raises_validation_error():
    with pytest.raises(ValidationError) as exc_info:
        validate_profile({"location": [100.0, 0.0]})

    assert exc_info.value.field.startswith("location")


def test_too_many_interests_rejected():
    with pytest.raises(ValidationError):
        validate_profile({"interests": [f"tag{i}" for i in range(11)]})


def test_non_mapping_profile_rejected():
    with pytest.raises(ValidationError):
        validate_profile(["food"])


def test_profile_is_frozen():
    profile = validate_profile({})

    with pytest.raises(PydanticValidationError):
        profile.budget = "high"


def test_validate_profile_accepts_existing_profile():
    profile = RequestProfile(interests=("parks",))

    assert validate_profile(profile) == profile


def test_itinerary_request_drops_unset_fields():
    body = ItineraryRequest(interests=["food"], time_window=120)

    assert body.to_profile_input() == {"interests": ["food"], "time_window": 120}


def test_venue_data_coercions():
    data = VenueData(
        categories="museum, art_gallery",
        price_level="$$",
        accessibility="Wheelchair,step_free",
        hours='{"Monday": "9:00 AM - 5:00 PM"}',
        is_partner="False",
        vibe="quiet",
    )

    assert data.categories == ["museum", "art_gallery"]
    assert data.price_level == 2
    assert data.accessibility == ["step_free", "wheelchair"]
    assert data.hours == {"Monday": "9:00 AM - 5:00 PM"}
    assert data.is_partner is False
    assert data.model_extra == {"vibe": "quiet"}


def test_venue_data_keeps_undeclared_accessibility():
    assert VenueData().accessibility is None
    assert VenueData(accessibility=[]).accessibility == []


def test_populated_fields_counts_zero_values():
    sparse = VenueData(name="Cafe")
    rich = VenueData(name="Cafe", price_level=0, rating=4.1, latitude=0.0, longitude=0.0)

    assert sparse.populated_fields() == 1
    assert rich.populated_fields() == 5


def test_candidate_sources_only_grow():
    candidate = Candidate(slug="a", sources={"vector"})
    candidate.add_source("places")
    candidate.add_source("vector")

    assert candidate.sources == {"vector", "places"}
