from __future__ import annotations

import pytest

from itinerary_planner.pipeline.models import Candidate, VenueData
from itinerary_planner.scoring.fusion import fuse_candidates, weighted_mean_score


def _candidate(slug, score, source, **data):
    return Candidate(slug=slug, score=score, sources={source}, data=VenueData(**data))


def _summary(candidates):
    return [(c.slug, c.score, sorted(c.sources), c.data.name) for c in candidates]


def test_overlapping_slug_keeps_max_and_unions_sources():
    vector = [_candidate("a", 0.8, "vector", name="Gallery A")]
    places = [_candidate("a", 0.6, "places", name="Gallery A", rating=4.5, address="1 Main St")]

    fused = fuse_candidates(vector, places)

    assert len(fused) == 1
    assert fused[0].score == 0.8
    assert fused[0].sources == {"vector", "places"}
    # Richer record wins
    assert fused[0].data.address == "1 Main St"


def test_fusion_is_order_independent():
    list_a = [_candidate("a", 0.8, "vector", name="A"), _candidate("b", 0.4, "vector", name="B")]
    list_b = [_candidate("b", 0.9, "places", name="B"), _candidate("c", None, "places", name="C")]

    assert _summary(fuse_candidates(list_a, list_b)) == _summary(fuse_candidates(list_b, list_a))


def test_fusion_with_empty_list_is_idempotent():
    fused = fuse_candidates(
        [_candidate("a", 0.8, "vector", name="A")],
        [_candidate("b", 0.5, "places", name="B")],
    )

    assert _summary(fuse_candidates(fused, [])) == _summary(fused)


def test_fusion_orders_by_score_with_unscored_last():
    fused = fuse_candidates(
        [_candidate("z", None, "fallback"), _candidate("b", 0.5, "vector"), _candidate("a", 0.5, "vector")],
        [_candidate("c", 0.9, "places")],
    )

    assert [c.slug for c in fused] == ["c", "a", "b", "z"]


def test_fusion_does_not_mutate_inputs():
    original = _candidate("a", 0.3, "vector")
    fuse_candidates([original], [_candidate("a", 0.9, "places")])

    assert original.score == 0.3
    assert original.sources == {"vector"}


def test_missing_scores_do_not_count():
    fused = fuse_candidates([_candidate("a", None, "fallback")], [_candidate("a", 0.4, "vector")])

    assert fused[0].score == 0.4


def test_meta_is_merged():
    first = _candidate("a", 0.5, "vector")
    first.meta["travel_minutes"] = 12
    second = _candidate("a", 0.5, "places")
    second.meta["interest"] = "art"

    fused = fuse_candidates([first], [second])

    assert fused[0].meta == {"travel_minutes": 12, "interest": "art"}


def test_alternative_combiner():
    fused = fuse_candidates(
        [_candidate("a", 0.9, "vector")],
        [_candidate("a", 0.3, "places")],
        combine=weighted_mean_score,
    )

    assert fused[0].score == pytest.approx((2 * 0.9 + 0.3) / 3)
