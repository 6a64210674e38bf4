"""
Custom exceptions for the EcoBin backup engine.

This module defines the exception hierarchy used throughout the engine
so callers can tell source-read, artifact, and restore failures apart.
"""

from typing import Any, Dict, Optional


class BackupEngineError(Exception):
    """Base exception class for backup engine errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}


class ConfigurationError(BackupEngineError):
    """Raised when there's an error in configuration."""
    pass


class StoreError(BackupEngineError):
    """Raised when a store adapter operation fails."""

    def __init__(self, message: str, store: str, **kwargs):
        super().__init__(message, **kwargs)
        self.store = store


class SourceReadError(StoreError):
    """Raised when reading a store during export fails."""
    pass


class StoreWriteError(StoreError):
    """Raised when writing to a store during restore fails."""
    pass


class BackupError(BackupEngineError):
    """Raised when backup creation or persistence fails."""
    pass


class ArtifactNotFoundError(BackupEngineError):
    """Raised when no artifact matches a backup ID."""

    def __init__(self, backup_id: str, **kwargs):
        super().__init__(f"Backup file not found: {backup_id}", **kwargs)
        self.backup_id = backup_id


class ArtifactFormatError(BackupEngineError):
    """Raised when an artifact file cannot be parsed."""
    pass


class RestoreFailedError(BackupEngineError):
    """Raised when replaying an artifact into a store fails."""

    def __init__(self, store: str, cause: str, **kwargs):
        super().__init__(f"Restore of {store} failed: {cause}", **kwargs)
        self.store = store
        self.cause = cause


class MirrorError(BackupEngineError):
    """Raised when uploading an artifact to remote storage fails."""
    pass


class SchedulerError(BackupEngineError):
    """Raised when a schedule cannot be created or updated."""
    pass
