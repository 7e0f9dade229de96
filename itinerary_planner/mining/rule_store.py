from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone

from ..pipeline.errors import DependencyRejected
from ..pipeline.interfaces import RelationalStore
from ..pipeline.models import AssociationRule, RuleSnapshot
from .config import DEFAULT_MINING_CONFIG, MiningConfig

logger = logging.getLogger(__name__)

RULE_COLUMNS = ("seed_slug", "recommendation_slug", "support", "confidence", "lift")


class RuleStore:
    """Versioned holder of the active association-rule set.

    Writers build a complete new snapshot and swap it in under a lock;
    readers grab one snapshot and use it for the whole run, so they see
    either the old rule set or the new one, never a mix.
    """

    def __init__(
        self,
        store: RelationalStore | None = None,
        config: MiningConfig = DEFAULT_MINING_CONFIG,
    ) -> None:
        self._store = store
        self._config = config
        self._lock = threading.Lock()
        self._snapshot: RuleSnapshot | None = None

    def snapshot(self) -> RuleSnapshot:
        current = self._snapshot
        if current is not None:
            return current
        with self._lock:
            if self._snapshot is None:
                self._snapshot = self._load()
            return self._snapshot

    def replace(self, rules: list[AssociationRule]) -> RuleSnapshot:
        with self._lock:
            previous = self._snapshot.version if self._snapshot is not None else 0
            snapshot = RuleSnapshot(
                version=previous + 1,
                rules=tuple(rules),
                generated_at=datetime.now(timezone.utc),
            )
            if self._store is not None:
                rows = [
                    {**rule.model_dump(), "generated_at": snapshot.generated_at.isoformat()}
                    for rule in rules
                ]
                self._store.replace(self._config.rules_table, rows, columns=(*RULE_COLUMNS, "generated_at"))
            self._snapshot = snapshot
        logger.info("Association rules replaced: version=%d rules=%d", snapshot.version, len(rules))
        return snapshot

    def _load(self) -> RuleSnapshot:
        if self._store is None:
            return RuleSnapshot(version=0, rules=())
        try:
            rows = self._store.select(self._config.rules_table)
        except DependencyRejected as exc:
            if exc.status_code != 404:
                raise
            # Nothing mined yet
            logger.info("No %s table yet, starting with an empty rule set", self._config.rules_table)
            return RuleSnapshot(version=0, rules=())
        try:
            rules = tuple(
                AssociationRule.model_validate({k: row[k] for k in RULE_COLUMNS})
                for row in rows
            )
        except (KeyError, ValueError) as exc:
            raise DependencyRejected(
                "stored association rules are malformed",
                service="relational_store",
                stage="boost",
            ) from exc
        logger.info("Loaded %d association rules from %s", len(rules), self._config.rules_table)
        return RuleSnapshot(version=1, rules=rules)
