"""
Wiring for the default pipeline.

Usage:
    pipeline = build_pipeline()
    result = pipeline.generate({"interests": ["food"], "location": [40.7, -74.0]})
"""
from __future__ import annotations

import logging

from ..analytics.telemetry import AnalyticsTelemetry
from ..cache.service import CacheService
from ..filters.chain import build_filter_chain
from ..filters.config import DEFAULT_FILTER_CONFIG, FilterConfig
from ..filters.routing_client import GoogleDirectionsClient, GoogleDistanceMatrixClient
from ..llm.config import DEFAULT_LLM_CONFIG, LLMConfig
from ..llm.groq_client import GroqCompletionClient
from ..llm.reorder import ReorderAdapter
from ..mining.miner import AssociationRuleMiner
from ..mining.rule_store import RuleStore
from ..retrieval.adapters import (
    CandidateRetrieval,
    DirectoryRetriever,
    RelationalFallbackRetriever,
    Retriever,
    VectorRetriever,
)
from ..retrieval.config import (
    DEFAULT_DATA_STORE_CONFIG,
    DEFAULT_RETRIEVAL_CONFIG,
    DataStoreConfig,
    RetrievalConfig,
)
from ..retrieval.data_store import DataFrameStore
from ..retrieval.places_client import GooglePlacesClient
from ..retrieval.vector_index import InMemoryVectorIndex
from .errors import DependencyError
from .orchestrator import ItineraryPipeline

logger = logging.getLogger(__name__)


def _vector_index(store: DataFrameStore, config: RetrievalConfig) -> InMemoryVectorIndex:
    try:
        return InMemoryVectorIndex.from_store(store, config.venues_table)
    except DependencyError as exc:
        logger.warning("Vector index not loaded: %s", exc.message)
        return InMemoryVectorIndex(config.vector_index_name, [], None)


def build_pipeline(
    retrieval_config: RetrievalConfig = DEFAULT_RETRIEVAL_CONFIG,
    filter_config: FilterConfig = DEFAULT_FILTER_CONFIG,
    llm_config: LLMConfig = DEFAULT_LLM_CONFIG,
    data_config: DataStoreConfig = DEFAULT_DATA_STORE_CONFIG,
    cache: CacheService | None = None,
) -> ItineraryPipeline:
    """Build a pipeline from configuration; remote services are wired only when keyed."""
    cache = cache or CacheService()
    store = DataFrameStore(data_config)

    primaries: list[Retriever] = [
        VectorRetriever(_vector_index(store, retrieval_config), store, cache, retrieval_config),
    ]
    if retrieval_config.places_api_key:
        places = GooglePlacesClient(retrieval_config.places_api_key, retrieval_config)
        primaries.append(DirectoryRetriever(places, retrieval_config))
    else:
        logger.info("GOOGLE_PLACES_API_KEY not set - directory retrieval disabled")

    routing = directions = None
    if filter_config.maps_api_key:
        routing = GoogleDistanceMatrixClient(filter_config.maps_api_key, filter_config)
        directions = GoogleDirectionsClient(filter_config.maps_api_key, filter_config)
    else:
        logger.info("GOOGLE_MAPS_API_KEY not set - travel filter and directions disabled")

    completion = GroqCompletionClient(llm_config)
    if not completion.available:
        logger.info("GROQ_API_KEY not set - itineraries use the fallback ordering")

    rule_store = RuleStore(store)
    return ItineraryPipeline(
        retrieval=CandidateRetrieval(primaries, RelationalFallbackRetriever(store, retrieval_config)),
        filters=build_filter_chain(routing, cache, filter_config),
        reorder=ReorderAdapter(completion if completion.available else None, cache, llm_config),
        cache=cache,
        rule_store=rule_store,
        miner=AssociationRuleMiner(store, rule_store),
        telemetry=AnalyticsTelemetry(),
        directions=directions,
    )
