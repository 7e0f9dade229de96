from __future__ import annotations

import logging
import threading
from typing import Any, Sequence

import pandas as pd

from ..pipeline.errors import DependencyRejected, DependencyUnavailable
from .config import DEFAULT_DATA_STORE_CONFIG, DataStoreConfig

logger = logging.getLogger(__name__)

_SERVICE = "relational_store"


def _records(df: pd.DataFrame) -> list[dict[str, Any]]:
    # NaN cells become None so downstream models see missing values, not floats.
    return df.astype(object).where(pd.notna(df), None).to_dict("records")


class DataFrameStore:
    """Relational venue store over in-memory pandas tables.

    Tables are loaded from ``<data_dir>/<table>.csv`` on first use, or passed
    in directly. ``replace`` swaps a whole table at once.
    """

    def __init__(
        self,
        config: DataStoreConfig = DEFAULT_DATA_STORE_CONFIG,
        tables: dict[str, pd.DataFrame] | None = None,
    ) -> None:
        self.config = config
        self._tables: dict[str, pd.DataFrame] = dict(tables or {})
        self._lock = threading.Lock()

    def _table(self, table: str) -> pd.DataFrame:
        df = self._tables.get(table)
        if df is not None:
            return df
        path = self.config.data_dir / f"{table}.csv"
        if not path.exists():
            raise DependencyRejected(
                f"table '{table}' does not exist",
                service=_SERVICE,
                status_code=404,
                context={"table": table},
            )
        try:
            loaded = pd.read_csv(path)
        except OSError as exc:
            raise DependencyUnavailable(
                f"could not read table '{table}'", service=_SERVICE, context={"table": table},
            ) from exc
        except ValueError as exc:
            # pandas parse and decode errors subclass ValueError
            raise DependencyRejected(
                f"table '{table}' is malformed: {exc}",
                service=_SERVICE,
                context={"table": table, "path": str(path)},
            ) from exc
        with self._lock:
            return self._tables.setdefault(table, loaded)

    def select(
        self,
        table: str,
        filter: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        df = self._table(table)
        if filter:
            mask = pd.Series(True, index=df.index)
            for column, value in filter.items():
                if column not in df.columns:
                    raise DependencyRejected(
                        f"unknown column '{column}'", service=_SERVICE, status_code=400,
                        context={"table": table, "column": column},
                    )
                if isinstance(value, (list, tuple, set, frozenset)):
                    mask &= df[column].isin(list(value))
                else:
                    mask &= df[column] == value
            df = df.loc[mask]
        if limit is not None:
            df = df.head(limit)
        return _records(df)

    def select_in(self, table: str, column: str, values: Sequence[Any]) -> list[dict[str, Any]]:
        if not values:
            return []
        return self.select(table, {column: list(values)})

    def replace(
        self,
        table: str,
        rows: list[dict[str, Any]],
        columns: Sequence[str] | None = None,
    ) -> int:
        # Explicit columns keep an empty table readable after a round trip to CSV
        df = pd.DataFrame(rows, columns=list(columns) if columns is not None else None)
        with self._lock:
            self._tables[table] = df
        if self.config.persist:
            self.config.data_dir.mkdir(parents=True, exist_ok=True)
            df.to_csv(self.config.data_dir / f"{table}.csv", index=False)
        logger.info("Replaced table %s with %d rows", table, len(df))
        return len(df)
