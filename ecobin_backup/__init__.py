"""
EcoBin Backup Engine

Point-in-time backups of the EcoBin document and tree stores, with
tiered retention, validation, restore, and cron-driven scheduling.
"""

__version__ = "1.0.0"
__author__ = "EcoBin Team"

from ecobin_backup.backup.service import BackupService
from ecobin_backup.models.artifact import BackupArtifact, BackupTier
from ecobin_backup.models.config import BackupSettings, ScheduleConfig, load_settings
from ecobin_backup.models.results import RestoreOptions, RestoreResult

__all__ = [
    "BackupService",
    "BackupArtifact",
    "BackupTier",
    "BackupSettings",
    "ScheduleConfig",
    "load_settings",
    "RestoreOptions",
    "RestoreResult",
]
