"""
Data models for the EcoBin backup engine.
"""

from ecobin_backup.models.artifact import (
    BackupArtifact,
    BackupTier,
    DocumentDataset,
    DocumentMetadata,
    DocumentRecord,
    normalize_tier,
)
from ecobin_backup.models.config import (
    BackupSettings,
    MirrorConfig,
    MirrorProvider,
    ScheduleConfig,
    StoreSettings,
    default_schedules,
    load_settings,
    retention_window,
)
from ecobin_backup.models.results import (
    ArtifactSummary,
    BackupPage,
    BackupRunResult,
    PersistResult,
    RepositoryStats,
    RestoreOptions,
    RestoreResult,
    StoreFailure,
    TestBackupResult,
    TierStats,
    ValidationReport,
)

__all__ = [
    "BackupArtifact",
    "BackupTier",
    "DocumentDataset",
    "DocumentMetadata",
    "DocumentRecord",
    "normalize_tier",
    "BackupSettings",
    "MirrorConfig",
    "MirrorProvider",
    "ScheduleConfig",
    "StoreSettings",
    "default_schedules",
    "load_settings",
    "retention_window",
    "ArtifactSummary",
    "BackupPage",
    "BackupRunResult",
    "PersistResult",
    "RepositoryStats",
    "RestoreOptions",
    "RestoreResult",
    "StoreFailure",
    "TestBackupResult",
    "TierStats",
    "ValidationReport",
]
