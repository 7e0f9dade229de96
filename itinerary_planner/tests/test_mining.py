from __future__ import annotations

import threading
from unittest.mock import MagicMock

import pandas as pd
import pytest

from itinerary_planner.mining.config import MiningConfig
from itinerary_planner.mining.miner import (
    AssociationRuleMiner,
    compute_rule_statistics,
    group_sessions,
)
from itinerary_planner.mining.rule_store import RuleStore
from itinerary_planner.pipeline.errors import DependencyRejected, EmptyResultError
from itinerary_planner.pipeline.models import AssociationRule
from itinerary_planner.retrieval.config import DataStoreConfig
from itinerary_planner.retrieval.data_store import DataFrameStore

# A in 4 of 5 sessions, B in 4, C in 3; A and B together in 3.
SESSIONS = [{"A", "B"}, {"A", "B"}, {"A", "C"}, {"B", "C"}, {"A", "B", "C"}]
# A and B always together, C on its own.
CORRELATED = [{"A", "B"}, {"A", "B"}, {"C"}, {"C"}]


def _stat(stats, seed, rec):
    return next(s for s in stats if s.seed_slug == seed and s.recommendation_slug == rec)


def _rule(seed, rec, lift=1.5):
    return AssociationRule(seed_slug=seed, recommendation_slug=rec, support=0.2, confidence=0.5, lift=lift)


def _store(tmp_path, **tables):
    return DataFrameStore(
        DataStoreConfig(data_dir=tmp_path),
        tables={name: pd.DataFrame(rows) for name, rows in tables.items()},
    )


def test_rule_statistics_are_exact():
    stats = compute_rule_statistics(SESSIONS, min_support=0.2)
    a_to_b = _stat(stats, "A", "B")

    assert a_to_b.support == pytest.approx(0.6)
    assert a_to_b.confidence == pytest.approx(0.75)
    assert a_to_b.lift == pytest.approx(0.9375)


def test_statistics_cover_both_directions():
    stats = compute_rule_statistics(SESSIONS, min_support=0.2)
    c_to_a = _stat(stats, "C", "A")
    a_to_c = _stat(stats, "A", "C")

    assert c_to_a.confidence == pytest.approx(2 / 3)
    assert a_to_c.confidence == pytest.approx(0.5)
    assert c_to_a.lift == pytest.approx(a_to_c.lift) == pytest.approx(5 / 6)
    assert len(stats) == 6


def test_min_support_prunes_rare_items():
    stats = compute_rule_statistics(SESSIONS, min_support=0.7)

    assert {(s.seed_slug, s.recommendation_slug) for s in stats} == {("A", "B"), ("B", "A")}


def test_mine_applies_lift_threshold():
    miner = AssociationRuleMiner(config=MiningConfig(min_support=0.2, min_confidence=0.5, min_lift=1.0))

    # Every pair here co-occurs less often than chance
    assert miner.mine(SESSIONS) == []


def test_mine_keeps_positively_correlated_pairs():
    miner = AssociationRuleMiner(config=MiningConfig(min_support=0.2, min_confidence=0.5, min_lift=1.0))

    rules = miner.mine(CORRELATED)

    assert [(r.seed_slug, r.recommendation_slug) for r in rules] == [("A", "B"), ("B", "A")]
    assert rules[0].lift == pytest.approx(2.0)
    assert rules[0].confidence == pytest.approx(1.0)
    assert rules[0].support == pytest.approx(0.5)


def test_mine_caps_rule_count():
    miner = AssociationRuleMiner(config=MiningConfig(min_support=0.0, min_confidence=0.0, min_lift=0.0, max_rules=2))

    assert len(miner.mine(SESSIONS)) == 2


def test_group_sessions_collapses_rows():
    rows = [
        {"session_id": "s1", "venue_slug": "A"},
        {"session_id": "s1", "venue_slug": "B"},
        {"session_id": "s1", "venue_slug": "A"},
        {"session_id": "s2", "venue_slug": "C"},
        {"session_id": None, "venue_slug": "D"},
    ]

    assert group_sessions(rows) == [frozenset({"A", "B"}), frozenset({"C"})]
    assert group_sessions([]) == []


def test_generate_rules_replaces_rule_set(tmp_path):
    rows = [
        {"session_id": f"s{i}", "venue_slug": slug}
        for i, session in enumerate(CORRELATED)
        for slug in sorted(session)
    ]
    store = _store(tmp_path, training_dataset=rows)
    rule_store = RuleStore(store)
    miner = AssociationRuleMiner(store, rule_store, MiningConfig(min_support=0.0, min_lift=1.0))

    count = miner.generate_rules()

    snapshot = rule_store.snapshot()
    assert count == len(snapshot.rules) > 0
    assert snapshot.version == 1
    assert len(store.select("association_rules")) == count


def test_generate_rules_without_history_fails(tmp_path):
    store = _store(tmp_path, training_dataset=[])
    miner = AssociationRuleMiner(store, RuleStore(store))

    with pytest.raises(EmptyResultError) as exc_info:
        miner.generate_rules()

    assert exc_info.value.stage == "mining"


def test_generate_rules_requires_rule_store():
    with pytest.raises(ValueError):
        AssociationRuleMiner().generate_rules()


def test_rule_store_versions_increase():
    rule_store = RuleStore()

    assert rule_store.snapshot().version == 0
    first = rule_store.replace([_rule("A", "B")])
    second = rule_store.replace([_rule("B", "C"), _rule("C", "A")])

    assert (first.version, second.version) == (1, 2)
    assert rule_store.snapshot() is second


def test_reader_snapshot_is_stable_across_replace():
    rule_store = RuleStore()
    rule_store.replace([_rule("A", "B")])
    held = rule_store.snapshot()

    rule_store.replace([_rule("X", "Y")])

    assert [r.seed_slug for r in held.rules] == ["A"]
    assert [r.seed_slug for r in rule_store.snapshot().rules] == ["X"]


def test_concurrent_readers_never_see_mixed_sets():
    rule_store = RuleStore()
    old = [_rule("A", f"old{i}") for i in range(50)]
    new = [_rule("B", f"new{i}") for i in range(50)]
    rule_store.replace(old)
    seen = []

    def reader():
        for _ in range(200):
            seeds = {r.seed_slug for r in rule_store.snapshot().rules}
            seen.append(seeds)

    threads = [threading.Thread(target=reader) for _ in range(4)]
    for t in threads:
        t.start()
    for _ in range(20):
        rule_store.replace(new)
        rule_store.replace(old)
    for t in threads:
        t.join()

    assert all(seeds in ({"A"}, {"B"}) for seeds in seen)


def test_rule_store_loads_persisted_rules(tmp_path):
    store = _store(tmp_path, association_rules=[_rule("A", "B").model_dump()])

    snapshot = RuleStore(store).snapshot()

    assert snapshot.version == 1
    assert snapshot.rules[0].recommendation_slug == "B"


def test_rule_store_rejects_malformed_rows():
    store = MagicMock()
    store.select.return_value = [{"seed_slug": "A"}]

    with pytest.raises(DependencyRejected):
        RuleStore(store).snapshot()


def test_missing_rules_table_gives_cached_empty_snapshot():
    store = MagicMock()
    store.select.side_effect = DependencyRejected("no table", service="relational_store", status_code=404)
    rule_store = RuleStore(store)

    first = rule_store.snapshot()
    second = rule_store.snapshot()

    assert first.version == 0
    assert first.rules == ()
    assert second is first
    store.select.assert_called_once()


def test_unreadable_rules_table_still_raises():
    store = MagicMock()
    store.select.side_effect = DependencyRejected("table 'association_rules' is malformed", service="relational_store")

    with pytest.raises(DependencyRejected):
        RuleStore(store).snapshot()


def test_zero_rules_survive_a_restart(tmp_path):
    config = DataStoreConfig(data_dir=tmp_path, persist=True)
    store = DataFrameStore(config, tables={"training_dataset": pd.DataFrame(
        [{"session_id": f"s{i}", "venue_slug": slug} for i, session in enumerate(SESSIONS) for slug in sorted(session)]
    )})
    miner = AssociationRuleMiner(store, RuleStore(store), MiningConfig(min_support=0.2, min_lift=1.0))

    assert miner.generate_rules() == 0

    snapshot = RuleStore(DataFrameStore(config)).snapshot()
    assert snapshot.rules == ()
    assert snapshot.version == 1
