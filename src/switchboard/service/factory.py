"""Orchestrator factory - builds the routing core from settings.

The service layer owns construction; api/deps.py only caches the result.
"""

from __future__ import annotations

from pathlib import Path

import logfire

from ..config import Settings
from ..domain.agent_catalog import AgentCatalog
from ..domain.classifier import Classifier, KeywordClassifier, LLMClassifier
from ..domain.orchestrator import Orchestrator, OrchestratorConfig
from ..domain.retriever import QdrantRetrieverConfig
from .storage import MemoryStoreConfig, StorageService, create_storage_service


def storage_from_settings(settings: Settings) -> StorageService:
    vector_config = None
    if settings.qdrant_url:
        vector_config = QdrantRetrieverConfig(
            qdrant_url=settings.qdrant_url,
            collection=settings.qdrant_collection,
            ollama_base_url=settings.ollama_base_url,
            embedding_model=settings.ollama_embedding_model,
        )
    return create_storage_service(
        memory_config=MemoryStoreConfig(url=settings.redis_url, ttl_seconds=settings.history_ttl_seconds),
        vector_config=vector_config,
    )


def classifier_from_settings(settings: Settings, catalog: AgentCatalog) -> Classifier:
    """Model-backed routing when CLASSIFIER_MODEL is set, keyword rules otherwise."""
    if settings.classifier_model:
        return LLMClassifier(settings.classifier_model)
    return KeywordClassifier(catalog.keyword_rules())


def create_orchestrator(settings: Settings, storage: StorageService | None = None) -> Orchestrator:
    """
    Wire catalog agents, classifier, store and policy into an Orchestrator.

    Args:
        settings: Application settings
        storage: Backends to use (built from settings when omitted)

    Returns:
        Orchestrator with every catalog agent registered in catalog order

    Raises:
        AgentNotFound: DEFAULT_AGENT_ID is not a catalog agent
    """
    storage = storage or storage_from_settings(settings)
    catalog = AgentCatalog.from_json_file(Path(settings.agent_catalog_path))
    agents = catalog.build_agents(settings.agent_model, retriever=storage.get_retriever())

    orchestrator = Orchestrator(
        classifier=classifier_from_settings(settings, catalog),
        store=storage.get_conversation_store(),
        config=OrchestratorConfig.from_settings(settings),
        agents=agents,
    )
    # Fails fast on a DEFAULT_AGENT_ID that names no catalog agent
    orchestrator.default_agent()
    logfire.info(
        "Orchestrator ready with {count} agents",
        count=len(agents),
        agents=list(catalog.ids),
        classifier=type(orchestrator.classifier).__name__,
        store=type(orchestrator.store).__name__,
    )
    return orchestrator


__all__ = ["classifier_from_settings", "create_orchestrator", "storage_from_settings"]
