"""
Backup, restore and retention for the EcoBin backup engine.

This module provides snapshot export, tiered artifact storage, remote
mirroring, validation, restore, and the service facade over them.
"""

from ecobin_backup.backup.exporter import SnapshotExporter
from ecobin_backup.backup.locks import StoreLocks
from ecobin_backup.backup.mirror import GCSMirror, RemoteMirror, S3Mirror, build_mirror
from ecobin_backup.backup.repository import BackupRepository
from ecobin_backup.backup.restore import RestoreEngine, WriteBatch
from ecobin_backup.backup.validator import BackupValidator

__all__ = [
    "SnapshotExporter",
    "StoreLocks",
    "GCSMirror",
    "RemoteMirror",
    "S3Mirror",
    "build_mirror",
    "BackupRepository",
    "RestoreEngine",
    "WriteBatch",
    "BackupValidator",
]
