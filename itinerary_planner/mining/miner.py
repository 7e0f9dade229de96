"""
Batch association-rule miner.

Usage:
    miner = AssociationRuleMiner(store, rule_store)
    count = miner.generate_rules()
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from itertools import combinations
from typing import Any, Iterable

import pandas as pd

from ..pipeline.errors import EmptyResultError
from ..pipeline.interfaces import RelationalStore
from ..pipeline.models import AssociationRule
from .config import DEFAULT_MINING_CONFIG, MiningConfig
from .rule_store import RuleStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuleStatistics:
    seed_slug: str
    recommendation_slug: str
    support: float
    confidence: float
    lift: float

    def to_rule(self) -> AssociationRule:
        return AssociationRule(
            seed_slug=self.seed_slug,
            recommendation_slug=self.recommendation_slug,
            support=self.support,
            confidence=self.confidence,
            lift=self.lift,
        )


def group_sessions(rows: list[dict[str, Any]]) -> list[frozenset[str]]:
    """Collapse ``(session_id, venue_slug)`` rows into one venue set per session."""
    if not rows:
        return []
    df = pd.DataFrame(rows, columns=["session_id", "venue_slug"])
    df = df.dropna()
    df = df[(df["session_id"].astype(str) != "") & (df["venue_slug"].astype(str) != "")]
    return [
        frozenset(group["venue_slug"].astype(str))
        for _, group in df.groupby(df["session_id"].astype(str), sort=True)
    ]


def compute_rule_statistics(
    sessions: Iterable[Iterable[str]],
    min_support: float,
) -> list[RuleStatistics]:
    """
    Support, confidence and lift for both directions of every frequent pair.

    Support of a pair is the share of sessions containing both venues;
    confidence(A -> B) = support(A, B) / support(A);
    lift(A -> B) = confidence(A -> B) / support(B).
    Ratios are taken on raw counts so the statistics are exact.
    """
    baskets = [frozenset(s) for s in sessions]
    total = len(baskets)
    if total == 0:
        return []

    item_counts: Counter[str] = Counter()
    for basket in baskets:
        item_counts.update(basket)
    frequent = {item for item, count in item_counts.items() if count / total >= min_support}

    pair_counts: Counter[tuple[str, str]] = Counter()
    for basket in baskets:
        items = sorted(item for item in basket if item in frequent)
        pair_counts.update(combinations(items, 2))

    stats: list[RuleStatistics] = []
    for (item_a, item_b), count in sorted(pair_counts.items()):
        for antecedent, consequent in ((item_a, item_b), (item_b, item_a)):
            confidence = count / item_counts[antecedent]
            stats.append(RuleStatistics(
                seed_slug=antecedent,
                recommendation_slug=consequent,
                support=count / total,
                confidence=confidence,
                lift=confidence * total / item_counts[consequent],
            ))
    return stats


class AssociationRuleMiner:
    def __init__(
        self,
        store: RelationalStore | None = None,
        rule_store: RuleStore | None = None,
        config: MiningConfig = DEFAULT_MINING_CONFIG,
    ) -> None:
        self.store = store
        self.rule_store = rule_store
        self.config = config

    def mine(self, sessions: Iterable[Iterable[str]]) -> list[AssociationRule]:
        stats = compute_rule_statistics(sessions, self.config.min_support)
        kept = [
            s for s in stats
            if s.confidence >= self.config.min_confidence and s.lift >= self.config.min_lift
        ]
        kept.sort(key=lambda s: (-s.lift, s.seed_slug, s.recommendation_slug))
        return [s.to_rule() for s in kept[: self.config.max_rules]]

    def fetch_sessions(self) -> list[frozenset[str]]:
        if self.store is None:
            return []
        rows = self.store.select(
            self.config.transactions_table,
            limit=self.config.transaction_limit,
        )
        return group_sessions(rows)

    def generate_rules(self) -> int:
        """Recompute the rule set from history and atomically replace it."""
        if self.rule_store is None:
            raise ValueError("generate_rules requires a rule store")

        sessions = self.fetch_sessions()
        if not sessions:
            raise EmptyResultError(
                "no transaction data available for analysis",
                stage="mining",
                context={"table": self.config.transactions_table},
            )

        rules = self.mine(sessions)
        self.rule_store.replace(rules)
        logger.info("Mined %d rules from %d sessions", len(rules), len(sessions))
        return len(rules)
