from __future__ import annotations

import json
from collections.abc import Callable, Iterable

from ..pipeline.models import Candidate

ScoreCombiner = Callable[[list[float]], float]


def max_score(scores: list[float]) -> float:
    return max(scores)


def weighted_mean_score(scores: list[float]) -> float:
    """Mean that gives the strongest signal double weight."""
    ordered = sorted(scores, reverse=True)
    weights = [2.0] + [1.0] * (len(ordered) - 1)
    return sum(w * s for w, s in zip(weights, ordered)) / sum(weights)


def sort_key(candidate: Candidate) -> tuple[bool, float, str]:
    """Score descending, unscored last, slug as the tie-break."""
    return (candidate.score is None, -(candidate.score or 0.0), candidate.slug)


def _precedence(candidate: Candidate) -> tuple[int, tuple[str, ...], str]:
    # Richer venue data wins; the rest only matters for ties.
    return (
        -candidate.data.populated_fields(),
        tuple(sorted(candidate.sources)),
        json.dumps(candidate.data.model_dump(mode="json"), sort_keys=True, default=str),
    )


def _merge(group: list[Candidate], combine: ScoreCombiner) -> Candidate:
    ordered = sorted(group, key=_precedence)
    scores = [c.score for c in group if c.score is not None]

    merged = ordered[0].model_copy(deep=True)
    merged.score = combine(scores) if scores else None

    meta: dict = {}
    for candidate in reversed(ordered):
        meta.update(candidate.meta)
    merged.meta = meta

    for candidate in ordered[1:]:
        for tag in candidate.sources:
            merged.add_source(tag)
    return merged


def fuse_candidates(
    *candidate_lists: Iterable[Candidate],
    combine: ScoreCombiner = max_score,
) -> list[Candidate]:
    """
    Merge candidate lists by slug.

    Overlapping slugs get one combined score (``combine`` must be commutative)
    and the union of their source tags. The output order depends only on the
    merged content, so argument order never matters and fusing an already
    fused list with an empty one is a no-op. Inputs are not mutated.
    """
    groups: dict[str, list[Candidate]] = {}
    for candidates in candidate_lists:
        for candidate in candidates:
            groups.setdefault(candidate.slug, []).append(candidate)

    fused = [_merge(group, combine) for group in groups.values()]
    return sorted(fused, key=sort_key)
