from __future__ import annotations

from dataclasses import dataclass

TTL_PIPELINE = 60 * 60  # 1 hour for intra-pipeline intermediates
TTL_LONG = 24 * 60 * 60  # 24 hours for embeddings, completions, itineraries


@dataclass(frozen=True)
class CacheConfig:
    prefix: str = "itp"
    version: int = 1
    ttl_pipeline: int = TTL_PIPELINE
    ttl_long: int = TTL_LONG


DEFAULT_CACHE_CONFIG = CacheConfig()
