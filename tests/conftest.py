"""
Pytest configuration and fixtures for the EcoBin backup engine tests.

This module provides in-memory stores, a temporary backup directory, and
the engine components wired the same way BackupService wires them.
"""

import json
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import pytest

from ecobin_backup.backup.exporter import SnapshotExporter
from ecobin_backup.backup.locks import StoreLocks
from ecobin_backup.backup.repository import BackupRepository
from ecobin_backup.backup.restore import RestoreEngine
from ecobin_backup.backup.service import BackupService
from ecobin_backup.backup.validator import BackupValidator
from ecobin_backup.models.config import BackupSettings
from ecobin_backup.stores.memory import InMemoryDocumentStore, InMemoryTreeStore
from ecobin_backup.utils.helpers import format_timestamp, generate_backup_id


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def backup_dir(temp_dir) -> Path:
    return temp_dir / "backups"


@pytest.fixture
def sample_collections() -> Dict[str, Dict[str, Dict[str, Any]]]:
    """Sample document store contents."""
    return {
        "bins": {
            "bin-001": {"location": "Central Market", "level": 85, "status": "full"},
            "bin-002": {"location": "City Hall", "level": 20, "status": "ok"},
        },
        "users": {
            "staff-1": {"name": "Dana Cruz", "role": "janitor", "active": True},
        },
    }


@pytest.fixture
def sample_tree() -> Dict[str, Any]:
    """Sample tree store contents."""
    return {
        "monitoring": {
            "bin-001": {"gps": {"lat": 10.3157, "lng": 123.8854}, "weight": 12.5},
        },
        "status": "ok",
    }


@pytest.fixture
def document_store(sample_collections) -> InMemoryDocumentStore:
    return InMemoryDocumentStore(sample_collections)


@pytest.fixture
def tree_store(sample_tree) -> InMemoryTreeStore:
    return InMemoryTreeStore(sample_tree)


@pytest.fixture
def store_locks() -> StoreLocks:
    return StoreLocks()


@pytest.fixture
def repository(backup_dir) -> BackupRepository:
    return BackupRepository(backup_dir)


@pytest.fixture
def exporter(document_store, tree_store, store_locks) -> SnapshotExporter:
    return SnapshotExporter(document_store, tree_store, locks=store_locks)


@pytest.fixture
def validator(repository) -> BackupValidator:
    return BackupValidator(repository)


@pytest.fixture
def restore_engine(repository, document_store, tree_store, store_locks) -> RestoreEngine:
    return RestoreEngine(repository, document_store, tree_store, locks=store_locks)


@pytest.fixture
def settings(backup_dir) -> BackupSettings:
    return BackupSettings(backup_dir=backup_dir)


@pytest.fixture
def service(settings, document_store, tree_store) -> BackupService:
    return BackupService.from_settings(settings, document_store, tree_store)


@pytest.fixture
def write_artifact(backup_dir):
    """Factory writing an artifact file directly, bypassing the repository."""

    def _write(
        tier: str,
        created_at: datetime,
        payload: Optional[Dict[str, Any]] = None,
        flat: bool = False
    ) -> Path:
        backup_id = generate_backup_id(tier, created_at)
        if payload is None:
            payload = {
                "metadata": {
                    "backupId": backup_id,
                    "type": tier,
                    "timestamp": format_timestamp(created_at),
                    "version": "1.0.0",
                    "stores": ["documentStore", "treeStore"],
                },
                "documentStore": {"bins": {"bin-001": {"data": {"level": 1}, "metadata": {}}}},
                "treeStore": {"status": "ok"},
            }

        target_dir = backup_dir if flat else backup_dir / tier
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / f"{backup_id}.json"
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        return path

    return _write
