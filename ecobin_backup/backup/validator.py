"""
Backup validator for checking artifact integrity before a restore.

Validation is read-only: it opens the artifact file, checks its
structure, and reports the result without ever raising for a malformed
or missing artifact.
"""

import logging
from collections import deque
from typing import Any, Deque, List, Optional

from ecobin_backup.backup.repository import BackupRepository
from ecobin_backup.core.exceptions import ArtifactFormatError, ArtifactNotFoundError
from ecobin_backup.models.artifact import document_dataset, tree_dataset
from ecobin_backup.models.results import ValidationReport
from ecobin_backup.utils.logging import MAX_RECORDED_ENTRIES, LogCategory, LogEntry, LogLevel, emit


logger = logging.getLogger(__name__)


def _is_dataset(value: Any) -> bool:
    return isinstance(value, (dict, list))


class BackupValidator:
    """Checks that an artifact exists, parses, and carries data."""

    def __init__(self, repository: BackupRepository):
        self.repository = repository
        self._validation_logs: Deque[LogEntry] = deque(maxlen=MAX_RECORDED_ENTRIES)

    def _log(self, level: LogLevel, message: str, backup_id: Optional[str] = None, **kwargs):
        """Add a log entry."""
        log_entry = LogEntry(
            level=level,
            category=LogCategory.VALIDATION,
            component="BackupValidator",
            message=message,
            backup_id=backup_id,
            details=kwargs
        )
        self._validation_logs.append(log_entry)
        emit(logger, log_entry)

    async def validate(self, backup_id: str) -> ValidationReport:
        """
        Validate the structure of an artifact.

        Checks, in order: the file exists, it parses to a JSON object, it
        has metadata with a backup ID, and at least one store dataset is
        a JSON object or array.

        Args:
            backup_id: ID of the artifact to validate

        Returns:
            A report with ``valid`` and, on failure, the ``reason``
        """
        try:
            path, payload = await self.repository.load(backup_id)
        except ArtifactNotFoundError:
            return self._invalid(backup_id, "Backup file not found")
        except ArtifactFormatError as e:
            return self._invalid(backup_id, f"Invalid JSON format: {e.message}")

        metadata = payload.get("metadata")
        if not isinstance(metadata, dict) or not metadata.get("backupId"):
            return self._invalid(backup_id, "Invalid backup metadata")

        has_document_store = _is_dataset(document_dataset(payload))
        has_tree_store = _is_dataset(tree_dataset(payload))
        if not has_document_store and not has_tree_store:
            return self._invalid(backup_id, "No database data found")

        try:
            size_bytes = path.stat().st_size
        except OSError:
            size_bytes = None

        self._log(LogLevel.INFO, "Backup validation successful", backup_id)
        return ValidationReport(
            backup_id=backup_id,
            valid=True,
            metadata=metadata,
            has_document_store=has_document_store,
            has_tree_store=has_tree_store,
            size_bytes=size_bytes,
            path=path,
        )

    def _invalid(self, backup_id: str, reason: str) -> ValidationReport:
        self._log(LogLevel.WARNING, f"Backup validation failed: {reason}", backup_id)
        return ValidationReport(backup_id=backup_id, valid=False, reason=reason)

    def get_logs(self, backup_id: Optional[str] = None) -> List[LogEntry]:
        """Get validation logs, optionally filtered by backup ID."""
        if backup_id:
            return [log for log in self._validation_logs if log.backup_id == backup_id]
        return list(self._validation_logs)
