"""
Result models for the EcoBin backup engine.

This module defines the Pydantic models returned by the repository,
validator, restore engine, and scheduler.
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ArtifactSummary(BaseModel):
    """Listing entry for a stored artifact."""
    id: str
    tier: str
    path: Path
    size_bytes: int
    created_at: datetime
    modified_at: datetime


class PersistResult(BaseModel):
    """Outcome of writing an artifact to durable storage."""
    artifact_id: str
    tier: str
    path: Path
    size_bytes: int
    timestamp: datetime
    remote_key: Optional[str] = None


class TierStats(BaseModel):
    """Count and size of the artifacts of one tier."""
    count: int = 0
    size_bytes: int = 0


class RepositoryStats(BaseModel):
    """Aggregate statistics over every listed artifact."""
    total_count: int = 0
    total_size_bytes: int = 0
    total_size_mb: float = 0.0
    per_tier: Dict[str, TierStats] = Field(default_factory=dict)
    oldest: Optional[datetime] = None
    newest: Optional[datetime] = None


class ValidationReport(BaseModel):
    """Structural validation outcome for one artifact."""
    backup_id: str
    valid: bool
    reason: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    has_document_store: bool = False
    has_tree_store: bool = False
    size_bytes: Optional[int] = None
    path: Optional[Path] = None


class RestoreOptions(BaseModel):
    """Which stores to replay and whether to write at all."""
    restore_document_store: bool = True
    restore_tree_store: bool = True
    dry_run: bool = False


class StoreFailure(BaseModel):
    """A restore phase that failed, with its cause."""
    store: str
    cause: str


class RestoreResult(BaseModel):
    """Outcome of replaying an artifact into the live stores."""
    artifact_id: str
    success: bool = True
    dry_run: bool = False
    restored_document_store: bool = False
    restored_tree_store: bool = False
    documents_written: int = 0
    batches_committed: int = 0
    failures: List[StoreFailure] = Field(default_factory=list)

    def add_failure(self, store: str, cause: str):
        """Record a failed phase."""
        self.failures.append(StoreFailure(store=store, cause=cause))
        self.success = False


class BackupRunResult(BaseModel):
    """Outcome of one create-and-persist run."""
    success: bool
    tier: str
    backup_id: Optional[str] = None
    path: Optional[Path] = None
    size_bytes: Optional[int] = None
    timestamp: Optional[datetime] = None
    deleted_expired: int = 0
    error: Optional[str] = None


class TestBackupResult(BaseModel):
    """Outcome of the create-and-validate health check."""
    success: bool
    backup_id: Optional[str] = None
    validation: Optional[ValidationReport] = None
    error: Optional[str] = None


class BackupPage(BaseModel):
    """Paginated artifact listing."""
    backups: List[ArtifactSummary] = Field(default_factory=list)
    total: int = 0
    limit: int = 50
    offset: int = 0
    has_more: bool = False
