"""Service layer - construction and infrastructure wiring, no routing logic."""

from .factory import classifier_from_settings, create_orchestrator, storage_from_settings
from .storage import MemoryStoreConfig, StorageService, create_storage_service

__all__ = [
    "MemoryStoreConfig",
    "StorageService",
    "classifier_from_settings",
    "create_orchestrator",
    "create_storage_service",
    "storage_from_settings",
]
