"""
Restore engine for replaying artifacts into the live stores.

The document phase replays every document as a full overwrite, grouped
into write batches no larger than the document store's limit. The tree
phase overwrites the whole tree root. The two phases are independent:
a failure in one is recorded and the other still runs. Batches already
committed are not rolled back.
"""

import logging
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from ecobin_backup.backup.locks import StoreLocks
from ecobin_backup.backup.repository import BackupRepository
from ecobin_backup.core.exceptions import ArtifactFormatError, ArtifactNotFoundError, RestoreFailedError
from ecobin_backup.models.artifact import DocumentRecord, document_dataset, tree_dataset
from ecobin_backup.models.results import RestoreOptions, RestoreResult
from ecobin_backup.stores.base import DocumentStoreAdapter, DocumentWrite, TreeStoreAdapter
from ecobin_backup.utils.logging import MAX_RECORDED_ENTRIES, LogCategory, LogEntry, LogLevel, emit


logger = logging.getLogger(__name__)

ARTIFACT_STAGE = "artifact"


class WriteBatch:
    """Accumulates document writes and commits them in one call."""

    def __init__(self, store: DocumentStoreAdapter, max_size: int, dry_run: bool = False):
        self.store = store
        self.max_size = max_size
        self.dry_run = dry_run
        self._pending: List[DocumentWrite] = []

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def full(self) -> bool:
        return len(self._pending) >= self.max_size

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], id_type: Optional[str] = None):
        """Queue a full overwrite of one document."""
        self._pending.append(
            DocumentWrite(collection=collection, doc_id=doc_id, data=data, id_type=id_type)
        )

    async def commit(self) -> int:
        """Commit pending writes. Returns how many were committed (or would be, in a dry run)."""
        if not self._pending:
            return 0

        writes, self._pending = self._pending, []
        if not self.dry_run:
            await self.store.write_batch(writes)
        return len(writes)


class RestoreEngine:
    """Replays a persisted artifact into the document and tree stores."""

    def __init__(
        self,
        repository: BackupRepository,
        document_store: DocumentStoreAdapter,
        tree_store: TreeStoreAdapter,
        locks: Optional[StoreLocks] = None,
        max_batch_size: Optional[int] = None
    ):
        self.repository = repository
        self.document_store = document_store
        self.tree_store = tree_store
        self.locks = locks or StoreLocks()
        self.max_batch_size = min(
            max_batch_size or document_store.max_batch_size,
            document_store.max_batch_size
        )
        self._restore_logs: Deque[LogEntry] = deque(maxlen=MAX_RECORDED_ENTRIES)

    def _log(self, level: LogLevel, message: str, backup_id: Optional[str] = None, **kwargs):
        """Add a log entry."""
        log_entry = LogEntry(
            level=level,
            category=LogCategory.RESTORE,
            component="RestoreEngine",
            message=message,
            backup_id=backup_id,
            details=kwargs
        )
        self._restore_logs.append(log_entry)
        emit(logger, log_entry)

    async def restore(self, backup_id: str, options: Optional[RestoreOptions] = None) -> RestoreResult:
        """
        Replay an artifact into the stores.

        In a dry run nothing is written; documents and batches are still
        counted and the tree overwrite is reported as simulated.

        Args:
            backup_id: ID of the artifact to restore
            options: Which stores to restore and whether to write

        Returns:
            Result with per-store outcome and any phase failures

        Raises:
            RestoreFailedError: If the artifact cannot be found or read
        """
        options = options or RestoreOptions()

        try:
            _, payload = await self.repository.load(backup_id)
        except (ArtifactNotFoundError, ArtifactFormatError) as e:
            self._log(LogLevel.ERROR, f"Restore failed: {e.message}", backup_id)
            raise RestoreFailedError(ARTIFACT_STAGE, e.message) from e

        result = RestoreResult(artifact_id=backup_id, dry_run=options.dry_run)
        self._log(LogLevel.INFO, "Starting restore", backup_id, dry_run=options.dry_run)

        documents = document_dataset(payload)
        if options.restore_document_store and documents is not None:
            await self._restore_documents(backup_id, documents, options.dry_run, result)

        tree = tree_dataset(payload)
        if options.restore_tree_store and tree is not None:
            await self._restore_tree(backup_id, tree, options.dry_run, result)

        if result.success:
            self._log(
                LogLevel.INFO,
                "Restore completed",
                backup_id,
                documents=result.documents_written,
                batches=result.batches_committed
            )
        else:
            self._log(
                LogLevel.ERROR,
                "Restore finished with failures",
                backup_id,
                failures=[failure.model_dump() for failure in result.failures]
            )
        return result

    async def restore_or_raise(self, backup_id: str, options: Optional[RestoreOptions] = None) -> RestoreResult:
        """Restore, raising RestoreFailedError for the first failed phase."""
        result = await self.restore(backup_id, options)
        if result.failures:
            failure = result.failures[0]
            raise RestoreFailedError(failure.store, failure.cause)
        return result

    async def _restore_documents(
        self,
        backup_id: str,
        dataset: Any,
        dry_run: bool,
        result: RestoreResult
    ):
        store = self.document_store.name

        if not isinstance(dataset, dict):
            result.add_failure(store, "Document store data is not an object")
            return

        batch = WriteBatch(self.document_store, self.max_batch_size, dry_run)

        async with self.locks.document:
            try:
                for collection, documents in dataset.items():
                    logger.debug(f"Restoring collection: {collection}")
                    for doc_id, raw_record in (documents or {}).items():
                        record = DocumentRecord.model_validate(raw_record)
                        batch.set(collection, doc_id, record.data, record.metadata.id_type)

                        if batch.full:
                            result.documents_written += await batch.commit()
                            result.batches_committed += 1

                if len(batch):
                    result.documents_written += await batch.commit()
                    result.batches_committed += 1
            except Exception as e:
                self._log(
                    LogLevel.ERROR,
                    f"Document store restore failed: {str(e)}",
                    backup_id,
                    committed_batches=result.batches_committed
                )
                result.add_failure(store, str(e))
                return

        result.restored_document_store = True

    async def _restore_tree(self, backup_id: str, tree: Any, dry_run: bool, result: RestoreResult):
        if dry_run:
            logger.debug(f"Dry run: skipping tree overwrite for {backup_id}")
            result.restored_tree_store = True
            return

        async with self.locks.tree:
            try:
                await self.tree_store.write_tree(tree)
            except Exception as e:
                self._log(LogLevel.ERROR, f"Tree store restore failed: {str(e)}", backup_id)
                result.add_failure(self.tree_store.name, str(e))
                return

        result.restored_tree_store = True

    def get_logs(self, backup_id: Optional[str] = None) -> List[LogEntry]:
        """Get restore logs, optionally filtered by backup ID."""
        if backup_id:
            return [log for log in self._restore_logs if log.backup_id == backup_id]
        return list(self._restore_logs)
