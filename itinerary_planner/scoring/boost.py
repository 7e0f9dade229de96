from __future__ import annotations

import logging

from ..mining.config import DEFAULT_BOOST_CONFIG, BoostConfig
from ..pipeline.models import AssociationRule, Candidate, RuleSnapshot
from .fusion import sort_key

logger = logging.getLogger(__name__)


def usable_rules(snapshot: RuleSnapshot, config: BoostConfig) -> list[AssociationRule]:
    return [
        r for r in snapshot.rules
        if r.support >= config.min_support
        and r.confidence >= config.min_confidence
        and r.lift >= config.min_lift
    ]


def apply_association_boost(
    candidates: list[Candidate],
    snapshot: RuleSnapshot,
    config: BoostConfig = DEFAULT_BOOST_CONFIG,
) -> int:
    """
    Multiply the scores of candidates recommended by the top-scoring seeds.

    The top ``config.seed_count`` scored candidates act as seeds. Each
    candidate named as a seed rule's recommendation gets its score multiplied by
    the lift of the single strongest matching rule. Returns how many
    candidates were boosted; candidates are updated in place.
    """
    scored = sorted((c for c in candidates if c.score is not None), key=sort_key)
    seeds = {c.slug for c in scored[: config.seed_count]}
    if not seeds:
        return 0

    best: dict[str, AssociationRule] = {}
    for rule in usable_rules(snapshot, config):
        if rule.seed_slug not in seeds:
            continue
        current = best.get(rule.recommendation_slug)
        if current is None or (rule.lift, rule.confidence) > (current.lift, current.confidence):
            best[rule.recommendation_slug] = rule

    boosted = 0
    for candidate in candidates:
        rule = best.get(candidate.slug)
        if rule is None or candidate.score is None:
            continue
        candidate.score *= rule.lift
        candidate.add_source("mba")
        candidate.meta["mba"] = {
            "seed": rule.seed_slug,
            "lift": rule.lift,
            "confidence": rule.confidence,
            "rule_version": snapshot.version,
        }
        boosted += 1

    logger.debug("Association boost applied to %d candidates (%d seeds)", boosted, len(seeds))
    return boosted
