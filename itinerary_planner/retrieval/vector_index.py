from __future__ import annotations

import logging
from typing import Any, Sequence

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity

from ..embeddings.config import DEFAULT_EMBEDDING_CONFIG, EmbeddingConfig
from ..pipeline.errors import DependencyRejected, DependencyUnavailable
from ..pipeline.interfaces import RelationalStore

logger = logging.getLogger(__name__)

_SERVICE = "vector_index"


class InMemoryVectorIndex:
    """Cosine-similarity index over precomputed venue embeddings."""

    def __init__(
        self,
        name: str,
        ids: list[str],
        embeddings: np.ndarray | None,
        metadata: list[dict[str, Any]] | None = None,
    ) -> None:
        if embeddings is not None and len(ids) != embeddings.shape[0]:
            raise ValueError("ids and embeddings must have the same length")
        self.name = name
        self._ids = list(ids)
        self._embeddings = embeddings
        self._metadata = metadata or [{} for _ in self._ids]

    @classmethod
    def from_store(
        cls,
        store: RelationalStore,
        table: str = "venues",
        config: EmbeddingConfig = DEFAULT_EMBEDDING_CONFIG,
    ) -> "InMemoryVectorIndex":
        """Pair ``embeddings.npy`` rows with the venue table, row for row."""
        embeddings = None
        if config.embeddings_path.exists():
            try:
                embeddings = np.load(config.embeddings_path)
            except (OSError, ValueError) as exc:
                raise DependencyRejected(
                    "embeddings file is unreadable",
                    service=_SERVICE,
                    context={"path": str(config.embeddings_path)},
                ) from exc
        rows = store.select(table) if embeddings is not None else []
        if any(row.get("slug") is None for row in rows):
            raise DependencyRejected(
                f"table '{table}' has rows without a slug", service=_SERVICE, context={"table": table},
            )
        ids = [str(row["slug"]) for row in rows]
        if embeddings is not None and len(ids) != embeddings.shape[0]:
            logger.warning(
                "Embeddings (%d) do not match %s rows (%d); vector index disabled",
                embeddings.shape[0], table, len(ids),
            )
            return cls(table, [], None)
        metadata = [{"category": row.get("categories")} for row in rows]
        return cls(table, ids, embeddings, metadata)

    def query(
        self,
        index: str,
        vector: Sequence[float],
        top_k: int,
        filter: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        if self._embeddings is None:
            raise DependencyUnavailable("vector index is not loaded", service=_SERVICE)
        if index != self.name:
            raise DependencyRejected(f"unknown index '{index}'", service=_SERVICE, status_code=404)

        query_vec = np.asarray(vector, dtype=float).reshape(1, -1)
        if query_vec.shape[1] != self._embeddings.shape[1]:
            raise DependencyRejected(
                "query vector has the wrong dimension",
                service=_SERVICE,
                status_code=400,
                context={"expected": int(self._embeddings.shape[1]), "got": int(query_vec.shape[1])},
            )

        sims = cosine_similarity(query_vec, self._embeddings).flatten()
        # Normalise cosine similarity from [-1, 1] to [0, 1]
        scores = (sims + 1.0) / 2.0

        matches: list[dict[str, Any]] = []
        for i in np.argsort(-scores, kind="stable"):
            meta = self._metadata[i]
            if filter and any(meta.get(k) != v for k, v in filter.items()):
                continue
            matches.append({"id": self._ids[i], "score": float(scores[i]), "metadata": dict(meta)})
            if len(matches) >= top_k:
                break
        return matches
