"""
Backup repository with tiered storage and retention.

This module owns the on-disk layout of artifacts: one file per artifact
under ``{backup_dir}/{tier}/{id}.json`` plus an ``index.json`` mapping
artifact IDs to tiers. Flat files directly under ``backup_dir`` written
by older deployments are still found, loaded and deleted.
"""

import asyncio
import json
import logging
import os
import re
import tempfile
import threading
from collections import deque
from datetime import datetime, timedelta, UTC
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional, Tuple, Union

from ecobin_backup.backup.mirror import RemoteMirror
from ecobin_backup.core.exceptions import ArtifactFormatError, ArtifactNotFoundError, BackupError
from ecobin_backup.models.artifact import BackupArtifact, normalize_tier
from ecobin_backup.models.config import retention_window
from ecobin_backup.models.results import ArtifactSummary, PersistResult, RepositoryStats, TierStats
from ecobin_backup.utils.helpers import parse_backup_id, utcnow
from ecobin_backup.utils.logging import MAX_RECORDED_ENTRIES, LogCategory, LogEntry, LogLevel, emit


logger = logging.getLogger(__name__)

INDEX_FILE = "index.json"
ARTIFACT_SUFFIX = ".json"

_SAFE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]*$")


class BackupRepository:
    """Stores artifacts on the local filesystem, organised by tier."""

    def __init__(self, backup_dir: Union[str, Path], mirror: Optional[RemoteMirror] = None):
        self.backup_dir = Path(backup_dir)
        self.remote = mirror
        self._index_lock = threading.Lock()
        self._repository_logs: Deque[LogEntry] = deque(maxlen=MAX_RECORDED_ENTRIES)
        self._ensure_base_path()

    def _ensure_base_path(self):
        """Ensure the base backup path exists."""
        self.backup_dir.mkdir(parents=True, exist_ok=True)

    def _log(
        self,
        level: LogLevel,
        message: str,
        backup_id: Optional[str] = None,
        category: LogCategory = LogCategory.REPOSITORY,
        **kwargs
    ):
        """Add a log entry."""
        log_entry = LogEntry(
            level=level,
            category=category,
            component="BackupRepository",
            message=message,
            backup_id=backup_id,
            tier=kwargs.pop("tier", None),
            details=kwargs
        )
        self._repository_logs.append(log_entry)
        emit(logger, log_entry)

    @property
    def index_path(self) -> Path:
        return self.backup_dir / INDEX_FILE

    def tier_path(self, tier: Any) -> Path:
        """Directory holding the artifacts of a tier."""
        return self.backup_dir / normalize_tier(tier)

    def artifact_path(self, artifact_id: str, tier: Any) -> Path:
        """Canonical file of an artifact."""
        return self.tier_path(tier) / f"{artifact_id}{ARTIFACT_SUFFIX}"

    # Persisting

    async def persist(self, artifact: BackupArtifact) -> PersistResult:
        """
        Serialise an artifact and write it to its tier directory.

        The file is written to a temporary name and renamed into place, so
        a crash never leaves a truncated artifact. An existing artifact is
        never overwritten. The remote mirror is attempted afterwards and
        its failure does not fail the persist.

        Raises:
            BackupError: If the artifact exists already or cannot be written
        """
        path = self.artifact_path(artifact.id, artifact.tier)
        content = json.dumps(artifact.to_payload(), indent=2, ensure_ascii=False).encode("utf-8")

        try:
            await asyncio.to_thread(self._write_atomic, path, content)
        except FileExistsError:
            self._log(LogLevel.ERROR, "Backup already exists", artifact.id, tier=artifact.tier)
            raise BackupError(f"Backup already exists: {artifact.id}")
        except OSError as e:
            self._log(LogLevel.ERROR, f"Failed to write backup: {str(e)}", artifact.id, tier=artifact.tier)
            raise BackupError(f"Failed to persist backup: {str(e)}") from e

        try:
            await asyncio.to_thread(self._index_update, artifact.id, artifact.tier)
        except OSError as e:
            # The artifact is still found by the directory scan
            self._log(LogLevel.WARNING, f"Failed to update backup index: {str(e)}", artifact.id)

        self._log(
            LogLevel.INFO,
            "Backup written",
            artifact.id,
            tier=artifact.tier,
            path=str(path),
            size_bytes=len(content)
        )

        remote_key = await self.mirror(path, artifact.id)

        return PersistResult(
            artifact_id=artifact.id,
            tier=artifact.tier,
            path=path,
            size_bytes=len(content),
            timestamp=artifact.created_at,
            remote_key=remote_key,
        )

    def _write_atomic(self, path: Path, content: bytes):
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.exists():
            raise FileExistsError(str(path))

        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.remove(tmp_name)
            raise

    async def mirror(self, path: Union[str, Path], artifact_id: str) -> Optional[str]:
        """
        Upload an artifact file to the remote mirror, if one is configured.

        Returns:
            The remote key, or None when skipped or failed
        """
        if self.remote is None:
            logger.debug(f"Skipping cloud upload of {artifact_id} - no mirror configured")
            return None

        try:
            key = await self.remote.upload(path, artifact_id)
        except Exception as e:
            self._log(LogLevel.WARNING, f"Cloud upload failed: {str(e)}", artifact_id, LogCategory.MIRROR)
            return None

        self._log(LogLevel.INFO, f"Backup uploaded to cloud storage: {key}", artifact_id, LogCategory.MIRROR)
        return key

    # Index

    def _read_index(self) -> Dict[str, str]:
        if not self.index_path.exists():
            return {}
        try:
            with open(self.index_path, "r", encoding="utf-8") as f:
                index = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable backup index {self.index_path}: {e}")
            return {}
        return index if isinstance(index, dict) else {}

    def _write_index(self, index: Dict[str, str]):
        fd, tmp_name = tempfile.mkstemp(dir=self.backup_dir, prefix=".index.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(index, f, indent=2, sort_keys=True)
            os.replace(tmp_name, self.index_path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.remove(tmp_name)
            raise

    def _index_update(self, artifact_id: str, tier: Optional[str]):
        with self._index_lock:
            index = self._read_index()
            if tier is None:
                if index.pop(artifact_id, None) is None:
                    return
            else:
                index[artifact_id] = tier
            self._write_index(index)

    # Lookup

    async def find(self, artifact_id: str) -> Optional[Path]:
        """
        Locate the file of an artifact.

        Looks up the index first, then the flat root, then every tier
        directory, matching the ID as a substring of the file name.
        """
        return await asyncio.to_thread(self._find, artifact_id)

    def _find(self, artifact_id: str) -> Optional[Path]:
        if not _is_artifact_id(artifact_id):
            return None

        tier = self._read_index().get(artifact_id)
        if tier:
            indexed = self.backup_dir / tier / f"{artifact_id}{ARTIFACT_SUFFIX}"
            if indexed.is_file():
                return indexed

        flat = self.backup_dir / f"{artifact_id}{ARTIFACT_SUFFIX}"
        if flat.is_file():
            return flat

        for tier_dir in self._tier_dirs():
            for candidate in sorted(tier_dir.glob(f"*{ARTIFACT_SUFFIX}")):
                if artifact_id in candidate.name:
                    return candidate

        return None

    def _tier_dirs(self) -> List[Path]:
        return sorted(
            entry for entry in self.backup_dir.iterdir()
            if entry.is_dir() and not entry.name.startswith(".")
        )

    async def load(self, artifact_id: str) -> Tuple[Path, Dict[str, Any]]:
        """
        Read the raw JSON payload of an artifact.

        Raises:
            ArtifactNotFoundError: If no file matches the ID
            ArtifactFormatError: If the file is not a JSON object
        """
        path = await self.find(artifact_id)
        if path is None:
            raise ArtifactNotFoundError(artifact_id)

        try:
            payload = await asyncio.to_thread(_read_json, path)
        except (ValueError, UnicodeDecodeError) as e:
            raise ArtifactFormatError(f"Backup {artifact_id} is not valid JSON: {str(e)}") from e
        except OSError as e:
            raise ArtifactFormatError(f"Backup {artifact_id} cannot be read: {str(e)}") from e

        if not isinstance(payload, dict):
            raise ArtifactFormatError(f"Backup {artifact_id} is not a JSON object")

        return path, payload

    # Listing

    async def list(self, tier: Optional[Any] = None) -> List[ArtifactSummary]:
        """List artifacts in tier directories, newest first."""
        return await asyncio.to_thread(self._list, tier)

    def _list(self, tier: Optional[Any]) -> List[ArtifactSummary]:
        if tier is not None:
            tier_dir = self.tier_path(tier)
            tier_dirs = [tier_dir] if tier_dir.is_dir() else []
        else:
            tier_dirs = self._tier_dirs()

        summaries = []
        for tier_dir in tier_dirs:
            for backup_file in tier_dir.glob(f"*{ARTIFACT_SUFFIX}"):
                if backup_file.name.startswith("."):
                    continue
                try:
                    file_stat = backup_file.stat()
                except OSError:
                    continue

                modified_at = datetime.fromtimestamp(file_stat.st_mtime, UTC)
                parsed = parse_backup_id(backup_file.stem)
                summaries.append(ArtifactSummary(
                    id=backup_file.stem,
                    tier=tier_dir.name,
                    path=backup_file,
                    size_bytes=file_stat.st_size,
                    created_at=parsed[1] if parsed else modified_at,
                    modified_at=modified_at,
                ))

        summaries.sort(key=lambda s: s.created_at, reverse=True)
        return summaries

    # Deletion and retention

    async def delete(self, artifact_id: str) -> bool:
        """
        Delete an artifact and its index entry.

        Returns:
            False if no artifact matches the ID

        Raises:
            BackupError: If the file exists but cannot be removed
        """
        try:
            deleted = await asyncio.to_thread(self._delete, artifact_id)
        except OSError as e:
            self._log(LogLevel.ERROR, f"Failed to delete backup: {str(e)}", artifact_id)
            raise BackupError(f"Failed to delete backup: {str(e)}") from e

        if deleted:
            self._log(LogLevel.INFO, "Backup deleted", artifact_id)
        else:
            self._log(LogLevel.WARNING, "Backup file not found for deletion", artifact_id)
        return deleted

    def _delete(self, artifact_id: str) -> bool:
        if not _is_artifact_id(artifact_id):
            return False

        file_name = f"{artifact_id}{ARTIFACT_SUFFIX}"
        paths = [
            path for path in [self.backup_dir / file_name] + [d / file_name for d in self._tier_dirs()]
            if path.is_file()
        ]
        if not paths:
            found = self._find(artifact_id)
            paths = [found] if found else []

        for path in paths:
            path.unlink()

        self._index_update(artifact_id, None)
        return bool(paths)

    async def delete_expired(self, tier: Any, retention: int) -> int:
        """
        Delete artifacts of one tier older than its retention window.

        Only the given tier is touched. A file that cannot be removed is
        logged and skipped.

        Returns:
            Number of artifacts deleted
        """
        tier = normalize_tier(tier)
        cutoff = utcnow() - retention_window(tier, retention)
        return await self._delete_older_than(cutoff, tier)

    async def cleanup(self, retention_days: int = 30) -> int:
        """Delete artifacts of every tier older than the given number of days."""
        cutoff = utcnow() - timedelta(days=retention_days)
        self._log(LogLevel.INFO, f"Starting cleanup of backups older than {retention_days} days")
        return await self._delete_older_than(cutoff, None)

    async def _delete_older_than(self, cutoff: datetime, tier: Optional[str]) -> int:
        deleted_count = 0

        for summary in await self.list(tier):
            if summary.created_at >= cutoff:
                continue
            try:
                if await self.delete(summary.id):
                    deleted_count += 1
            except BackupError as e:
                self._log(LogLevel.WARNING, f"Skipping expired backup: {e.message}", summary.id, tier=summary.tier)

        self._log(
            LogLevel.INFO,
            f"Cleanup completed, deleted {deleted_count} backups",
            tier=tier,
            cutoff=cutoff.isoformat()
        )
        return deleted_count

    async def stats(self) -> RepositoryStats:
        """Aggregate counts and sizes over every listed artifact."""
        summaries = await self.list()
        stats = RepositoryStats()

        for summary in summaries:
            stats.total_count += 1
            stats.total_size_bytes += summary.size_bytes

            tier_stats = stats.per_tier.setdefault(summary.tier, TierStats())
            tier_stats.count += 1
            tier_stats.size_bytes += summary.size_bytes

            if stats.oldest is None or summary.created_at < stats.oldest:
                stats.oldest = summary.created_at
            if stats.newest is None or summary.created_at > stats.newest:
                stats.newest = summary.created_at

        stats.total_size_mb = round(stats.total_size_bytes / (1024 * 1024), 2)
        return stats

    def get_logs(self) -> List[LogEntry]:
        """Return the log entries recorded by this repository."""
        return list(self._repository_logs)


def _is_artifact_id(artifact_id: str) -> bool:
    return bool(artifact_id) and bool(_SAFE_ID_PATTERN.match(artifact_id)) \
        and f"{artifact_id}{ARTIFACT_SUFFIX}" != INDEX_FILE


def _read_json(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)
