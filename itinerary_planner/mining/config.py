from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class MiningConfig:
    min_support: float = 0.005  # item appears in at least 0.5% of sessions
    min_confidence: float = 0.1
    min_lift: float = 1.2  # positive correlation only
    max_rules: int = 1000
    transaction_limit: int = 5000
    transactions_table: str = "training_dataset"
    rules_table: str = "association_rules"


@dataclass(frozen=True)
class BoostConfig:
    seed_count: int = 5
    min_support: float = 0.005
    min_confidence: float = 0.1
    min_lift: float = 1.2


DEFAULT_MINING_CONFIG = MiningConfig()
DEFAULT_BOOST_CONFIG = BoostConfig()
