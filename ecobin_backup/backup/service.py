"""
Backup service facade.

BackupService wires the exporter, repository, validator, restore engine
and scheduler together and exposes the operations a controller or the
CLI calls.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from ecobin_backup.backup.exporter import SnapshotExporter
from ecobin_backup.backup.locks import StoreLocks
from ecobin_backup.backup.mirror import RemoteMirror, build_mirror
from ecobin_backup.backup.repository import BackupRepository
from ecobin_backup.backup.restore import ARTIFACT_STAGE, RestoreEngine
from ecobin_backup.backup.validator import BackupValidator
from ecobin_backup.core.exceptions import ArtifactNotFoundError, RestoreFailedError
from ecobin_backup.models.artifact import BackupTier
from ecobin_backup.models.config import BackupSettings, ScheduleConfig
from ecobin_backup.models.results import (
    BackupPage,
    BackupRunResult,
    RepositoryStats,
    RestoreOptions,
    RestoreResult,
    TestBackupResult,
    ValidationReport,
)
from ecobin_backup.scheduler.scheduler import RetentionScheduler
from ecobin_backup.stores import build_document_store, build_tree_store
from ecobin_backup.stores.base import DocumentStoreAdapter, TreeStoreAdapter


logger = logging.getLogger(__name__)


class BackupService:
    """Entry point for every backup, restore and schedule operation."""

    def __init__(
        self,
        repository: BackupRepository,
        exporter: SnapshotExporter,
        validator: BackupValidator,
        restore_engine: RestoreEngine,
        scheduler: RetentionScheduler
    ):
        self.repository = repository
        self.exporter = exporter
        self.validator = validator
        self.restore_engine = restore_engine
        self.scheduler = scheduler

    @classmethod
    def from_settings(
        cls,
        settings: BackupSettings,
        document_store: Optional[DocumentStoreAdapter] = None,
        tree_store: Optional[TreeStoreAdapter] = None,
        mirror: Optional[RemoteMirror] = None
    ) -> "BackupService":
        """
        Build a service from settings.

        Stores and mirror not passed in are created from the settings.
        """
        document_store = document_store or build_document_store(settings.stores, settings.max_batch_size)
        tree_store = tree_store or build_tree_store(settings.stores)
        if mirror is None:
            mirror = build_mirror(settings.mirror)

        locks = StoreLocks()
        repository = BackupRepository(settings.backup_dir, mirror=mirror)
        exporter = SnapshotExporter(document_store, tree_store, locks=locks)
        validator = BackupValidator(repository)
        restore_engine = RestoreEngine(
            repository,
            document_store,
            tree_store,
            locks=locks,
            max_batch_size=settings.max_batch_size
        )
        scheduler = RetentionScheduler(exporter, repository, validator, schedules=settings.schedules)

        return cls(repository, exporter, validator, restore_engine, scheduler)

    async def create(self, tier: Any = BackupTier.MANUAL) -> BackupRunResult:
        """Create a backup on the given tier now."""
        return await self.scheduler.trigger_manual(tier)

    async def list(self, tier: Optional[str] = None, limit: int = 50, offset: int = 0) -> BackupPage:
        """List backups, newest first, one page at a time."""
        limit = max(0, limit)
        offset = max(0, offset)

        backups = await self.repository.list(tier)
        total = len(backups)
        return BackupPage(
            backups=backups[offset:offset + limit],
            total=total,
            limit=limit,
            offset=offset,
            has_more=offset + limit < total,
        )

    async def get_details(self, backup_id: str) -> ValidationReport:
        """Validation report of one backup, including its metadata."""
        return await self.validator.validate(backup_id)

    async def restore(self, backup_id: str, options: Optional[RestoreOptions] = None) -> RestoreResult:
        """
        Validate a backup and, if it is valid, restore it.

        An invalid backup is not restored; the result carries the reason.
        """
        options = options or RestoreOptions()

        validation = await self.validator.validate(backup_id)
        if not validation.valid:
            result = RestoreResult(artifact_id=backup_id, dry_run=options.dry_run)
            result.add_failure(ARTIFACT_STAGE, f"Invalid backup: {validation.reason}")
            return result

        logger.info(f"Restoring from backup: {backup_id}")
        try:
            return await self.restore_engine.restore(backup_id, options)
        except RestoreFailedError as e:
            result = RestoreResult(artifact_id=backup_id, dry_run=options.dry_run)
            result.add_failure(e.store, e.cause)
            return result

    async def delete(self, backup_id: str) -> bool:
        """Delete a backup. Returns False when it does not exist."""
        return await self.repository.delete(backup_id)

    async def stats(self) -> RepositoryStats:
        return await self.repository.stats()

    async def cleanup(self, retention_days: int = 30) -> int:
        """Delete backups of every tier older than ``retention_days``."""
        return await self.repository.cleanup(retention_days)

    def scheduler_status(self) -> Dict[str, Any]:
        return self.scheduler.get_status()

    async def update_schedule(self, tier: str, **config: Any) -> ScheduleConfig:
        return await self.scheduler.update_schedule(tier, **config)

    async def test_backup(self) -> TestBackupResult:
        """Create a test-tier backup and validate it."""
        return await self.scheduler.test_backup()

    async def download(self, backup_id: str) -> Path:
        """
        Local path of a backup file.

        Raises:
            ArtifactNotFoundError: If no file matches the ID
        """
        path = await self.repository.find(backup_id)
        if path is None:
            raise ArtifactNotFoundError(backup_id)
        return path

    async def start_scheduler(self):
        await self.scheduler.start()

    async def shutdown(self):
        """Stop the scheduler, wait for running backups, and close the stores."""
        await self.scheduler.shutdown()
        await self.exporter.document_store.close()
        await self.exporter.tree_store.close()
