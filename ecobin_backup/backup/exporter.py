"""
Snapshot exporter for the EcoBin backup engine.

This module reads the full state of the document store and the tree
store and assembles it into an in-memory BackupArtifact.
"""

import logging
from collections import deque
from typing import Any, Deque, List, Optional

from ecobin_backup.backup.locks import StoreLocks
from ecobin_backup.core.exceptions import SourceReadError
from ecobin_backup.models.artifact import (
    BackupArtifact,
    DocumentDataset,
    DocumentMetadata,
    DocumentRecord,
    normalize_tier,
)
from ecobin_backup.stores.base import DocumentStoreAdapter, TreeStoreAdapter
from ecobin_backup.utils.logging import MAX_RECORDED_ENTRIES, LogCategory, LogEntry, LogLevel, emit


logger = logging.getLogger(__name__)


class SnapshotExporter:
    """Reads both stores into a single artifact. Never writes to a store."""

    def __init__(
        self,
        document_store: DocumentStoreAdapter,
        tree_store: TreeStoreAdapter,
        locks: Optional[StoreLocks] = None
    ):
        self.document_store = document_store
        self.tree_store = tree_store
        self.locks = locks or StoreLocks()
        self._export_logs: Deque[LogEntry] = deque(maxlen=MAX_RECORDED_ENTRIES)

    def _log(self, level: LogLevel, message: str, backup_id: Optional[str] = None, **kwargs):
        """Add a log entry."""
        log_entry = LogEntry(
            level=level,
            category=LogCategory.EXPORT,
            component="SnapshotExporter",
            message=message,
            backup_id=backup_id,
            details=kwargs
        )
        self._export_logs.append(log_entry)
        emit(logger, log_entry)

    async def export(self, tier: Any) -> BackupArtifact:
        """
        Capture both stores under a new artifact.

        Args:
            tier: Retention tier the artifact belongs to

        Returns:
            The assembled artifact (not yet persisted)

        Raises:
            SourceReadError: If either store cannot be read
        """
        tier = normalize_tier(tier)

        async with self.locks.both():
            self._log(LogLevel.INFO, f"Exporting {tier} snapshot of the document store")
            document_store = await self._export_documents()

            self._log(LogLevel.INFO, f"Exporting {tier} snapshot of the tree store")
            tree_store = await self._export_tree()

        artifact = BackupArtifact.create(tier, document_store, tree_store)
        self._log(
            LogLevel.INFO,
            "Snapshot exported",
            artifact.id,
            collections=len(document_store),
            documents=artifact.document_count
        )
        return artifact

    async def _export_documents(self) -> DocumentDataset:
        store = self.document_store.name
        dataset: DocumentDataset = {}

        try:
            collections = await self.document_store.list_collections()
        except Exception as e:
            self._log(LogLevel.ERROR, f"Listing collections failed: {str(e)}")
            raise SourceReadError(f"Failed to list collections: {str(e)}", store=store) from e

        for collection in collections:
            logger.debug(f"Exporting collection: {collection}")
            try:
                documents = await self.document_store.list_documents(collection)
            except Exception as e:
                self._log(LogLevel.ERROR, f"Reading collection {collection} failed: {str(e)}")
                raise SourceReadError(
                    f"Failed to read collection {collection}: {str(e)}", store=store
                ) from e

            dataset[collection] = {
                document.id: DocumentRecord(
                    data=document.fields,
                    metadata=DocumentMetadata(
                        create_time=document.create_time,
                        update_time=document.update_time,
                        id_type=document.id_type,
                    ),
                )
                for document in documents
            }

        return dataset

    async def _export_tree(self) -> Any:
        try:
            return await self.tree_store.read_tree()
        except Exception as e:
            self._log(LogLevel.ERROR, f"Reading tree root failed: {str(e)}")
            raise SourceReadError(
                f"Failed to read tree root: {str(e)}", store=self.tree_store.name
            ) from e

    def get_logs(self) -> List[LogEntry]:
        """Return the log entries recorded by this exporter."""
        return list(self._export_logs)
