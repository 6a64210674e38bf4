"""
Artifact models for the EcoBin backup engine.

This module defines the Pydantic models for a backup artifact and the
mapping between the in-memory model and its durable JSON layout.
"""

import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ecobin_backup.utils.helpers import format_timestamp, generate_backup_id, utcnow


SCHEMA_VERSION = "1.0.0"

DOCUMENT_STORE_KEY = "documentStore"
TREE_STORE_KEY = "treeStore"

# Key names used by artifacts written before the store rename
LEGACY_DOCUMENT_STORE_KEY = "firestore"
LEGACY_TREE_STORE_KEY = "realtime"

TIER_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


class BackupTier(str, Enum):
    """Retention tiers an artifact can belong to."""
    MANUAL = "manual"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    TEST = "test"
    SETUP = "setup"


def normalize_tier(tier: Any) -> str:
    """Return the tier as a plain string, rejecting names unsafe for a directory."""
    value = tier.value if isinstance(tier, BackupTier) else str(tier)
    if not TIER_NAME_PATTERN.match(value):
        raise ValueError(f"Invalid backup tier: {value!r}")
    return value


class DocumentMetadata(BaseModel):
    """Timestamps and native id type captured for a single document."""
    model_config = ConfigDict(populate_by_name=True)

    create_time: Optional[str] = Field(default=None, alias="createTime")
    update_time: Optional[str] = Field(default=None, alias="updateTime")
    id_type: Optional[str] = Field(default=None, alias="idType")


class DocumentRecord(BaseModel):
    """One document of the document store with its field map."""
    data: Dict[str, Any] = Field(default_factory=dict)
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)


DocumentDataset = Dict[str, Dict[str, DocumentRecord]]


class BackupArtifact(BaseModel):
    """A point-in-time snapshot of both stores plus its metadata."""
    model_config = ConfigDict(frozen=True)

    id: str
    tier: str
    created_at: datetime
    schema_version: str = SCHEMA_VERSION
    stores: List[str] = Field(default_factory=lambda: [DOCUMENT_STORE_KEY, TREE_STORE_KEY])
    document_store: Optional[DocumentDataset] = None
    tree_store: Any = None

    @field_validator("tier", mode="before")
    @classmethod
    def tier_must_be_safe(cls, v):
        return normalize_tier(v)

    @classmethod
    def create(
        cls,
        tier: Any,
        document_store: Optional[DocumentDataset],
        tree_store: Any,
        created_at: Optional[datetime] = None
    ) -> "BackupArtifact":
        """Build a new artifact, deriving its ID from the tier and creation time."""
        tier = normalize_tier(tier)
        created_at = created_at or utcnow()
        return cls(
            id=generate_backup_id(tier, created_at),
            tier=tier,
            created_at=created_at,
            document_store=document_store,
            tree_store=tree_store,
        )

    @property
    def document_count(self) -> int:
        """Total number of documents across all collections."""
        if not self.document_store:
            return 0
        return sum(len(documents) for documents in self.document_store.values())

    def to_payload(self) -> Dict[str, Any]:
        """Convert the artifact to its durable JSON layout."""
        document_store = None
        if self.document_store is not None:
            document_store = {
                collection: {
                    doc_id: record.model_dump(by_alias=True)
                    for doc_id, record in documents.items()
                }
                for collection, documents in self.document_store.items()
            }

        return {
            "metadata": {
                "backupId": self.id,
                "type": self.tier,
                "timestamp": format_timestamp(self.created_at),
                "version": self.schema_version,
                "stores": list(self.stores),
            },
            DOCUMENT_STORE_KEY: document_store,
            TREE_STORE_KEY: self.tree_store,
        }


def document_dataset(payload: Dict[str, Any]) -> Any:
    """Return the raw document-store dataset of a payload, honoring the legacy key."""
    if DOCUMENT_STORE_KEY in payload:
        return payload[DOCUMENT_STORE_KEY]
    return payload.get(LEGACY_DOCUMENT_STORE_KEY)


def tree_dataset(payload: Dict[str, Any]) -> Any:
    """Return the raw tree-store dataset of a payload, honoring the legacy key."""
    if TREE_STORE_KEY in payload:
        return payload[TREE_STORE_KEY]
    return payload.get(LEGACY_TREE_STORE_KEY)
