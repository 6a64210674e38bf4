"""
Core module for the EcoBin backup engine.

This module contains the exception hierarchy shared by every
component of the engine.
"""

from ecobin_backup.core.exceptions import (
    BackupEngineError,
    ConfigurationError,
    StoreError,
    SourceReadError,
    StoreWriteError,
    BackupError,
    ArtifactNotFoundError,
    ArtifactFormatError,
    RestoreFailedError,
    MirrorError,
    SchedulerError,
)

__all__ = [
    "BackupEngineError",
    "ConfigurationError",
    "StoreError",
    "SourceReadError",
    "StoreWriteError",
    "BackupError",
    "ArtifactNotFoundError",
    "ArtifactFormatError",
    "RestoreFailedError",
    "MirrorError",
    "SchedulerError",
]
