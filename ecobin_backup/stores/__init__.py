"""
Store adapters for the EcoBin backup engine.

This module exposes the document and tree store abstractions and builds
the configured implementations from settings.
"""

from ecobin_backup.models.config import DocumentBackend, StoreSettings, TreeBackend
from ecobin_backup.stores.base import (
    DEFAULT_MAX_BATCH_SIZE,
    DocumentStoreAdapter,
    DocumentWrite,
    StoredDocument,
    TreeStoreAdapter,
)
from ecobin_backup.stores.memory import InMemoryDocumentStore, InMemoryTreeStore
from ecobin_backup.stores.mongo import MongoDocumentStore
from ecobin_backup.stores.redis_tree import RedisTreeStore


def build_document_store(
    settings: StoreSettings,
    max_batch_size: int = DEFAULT_MAX_BATCH_SIZE
) -> DocumentStoreAdapter:
    """Create the document store adapter named in settings."""
    if settings.document == DocumentBackend.MONGODB:
        return MongoDocumentStore(
            uri=settings.mongodb.uri,
            database=settings.mongodb.database,
            timeout_seconds=settings.mongodb.timeout_seconds,
            max_batch_size=max_batch_size,
        )
    return InMemoryDocumentStore(max_batch_size=max_batch_size)


def build_tree_store(settings: StoreSettings) -> TreeStoreAdapter:
    """Create the tree store adapter named in settings."""
    if settings.tree == TreeBackend.REDIS:
        return RedisTreeStore(url=settings.redis.url, key=settings.redis.key)
    return InMemoryTreeStore()


__all__ = [
    "DEFAULT_MAX_BATCH_SIZE",
    "DocumentStoreAdapter",
    "DocumentWrite",
    "StoredDocument",
    "TreeStoreAdapter",
    "InMemoryDocumentStore",
    "InMemoryTreeStore",
    "MongoDocumentStore",
    "RedisTreeStore",
    "build_document_store",
    "build_tree_store",
]
