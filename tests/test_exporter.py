"""
Unit tests for the snapshot exporter.
"""

import pytest

from ecobin_backup.backup.exporter import SnapshotExporter
from ecobin_backup.core.exceptions import SourceReadError
from ecobin_backup.stores.memory import InMemoryDocumentStore, InMemoryTreeStore
from ecobin_backup.utils.helpers import parse_backup_id


class TestSnapshotExporter:
    """Test cases for SnapshotExporter."""

    @pytest.mark.asyncio
    async def test_export_captures_every_collection(self, exporter, sample_collections):
        artifact = await exporter.export("manual")

        assert set(artifact.document_store) == set(sample_collections)
        assert set(artifact.document_store["bins"]) == {"bin-001", "bin-002"}
        assert artifact.document_store["bins"]["bin-001"].data == sample_collections["bins"]["bin-001"]
        assert artifact.document_count == 3

    @pytest.mark.asyncio
    async def test_export_captures_document_timestamps(self, exporter):
        artifact = await exporter.export("manual")

        metadata = artifact.document_store["users"]["staff-1"].metadata
        assert metadata.create_time is not None
        assert metadata.update_time is not None
        assert metadata.create_time.endswith("Z")

    @pytest.mark.asyncio
    async def test_export_captures_tree_root(self, exporter, sample_tree):
        artifact = await exporter.export("daily")
        assert artifact.tree_store == sample_tree

    @pytest.mark.asyncio
    async def test_export_assigns_tiered_id(self, exporter):
        artifact = await exporter.export("hourly")

        assert artifact.id.startswith("backup_hourly_")
        assert artifact.tier == "hourly"
        tier, created_at = parse_backup_id(artifact.id)
        assert tier == "hourly"
        assert abs((created_at - artifact.created_at).total_seconds()) < 0.001

    @pytest.mark.asyncio
    async def test_export_empty_stores(self):
        exporter = SnapshotExporter(InMemoryDocumentStore(), InMemoryTreeStore())
        artifact = await exporter.export("manual")

        assert artifact.document_store == {}
        assert artifact.tree_store is None
        assert artifact.document_count == 0

    @pytest.mark.asyncio
    async def test_document_read_failure_raises_source_read_error(self, exporter, document_store):
        document_store.read_error = ConnectionError("store unavailable")

        with pytest.raises(SourceReadError) as exc_info:
            await exporter.export("manual")

        assert exc_info.value.store == "documentStore"
        assert "store unavailable" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_tree_read_failure_raises_source_read_error(self, exporter, tree_store):
        tree_store.read_error = TimeoutError("tree timeout")

        with pytest.raises(SourceReadError) as exc_info:
            await exporter.export("manual")

        assert exc_info.value.store == "treeStore"

    @pytest.mark.asyncio
    async def test_export_never_writes(self, exporter, document_store, tree_store):
        before_documents = document_store.snapshot()

        await exporter.export("manual")

        assert document_store.snapshot() == before_documents
        assert document_store.committed_batches == []
        assert tree_store.write_count == 0

    @pytest.mark.asyncio
    async def test_export_releases_locks(self, exporter, store_locks, document_store):
        await exporter.export("manual")
        assert not store_locks.locked()

        document_store.read_error = RuntimeError("boom")
        with pytest.raises(SourceReadError):
            await exporter.export("manual")
        assert not store_locks.locked()

    @pytest.mark.asyncio
    async def test_export_records_log_entries(self, exporter):
        artifact = await exporter.export("manual")

        logs = exporter.get_logs()
        assert any(log.backup_id == artifact.id for log in logs)

    @pytest.mark.asyncio
    async def test_invalid_tier_rejected(self, exporter):
        with pytest.raises(ValueError):
            await exporter.export("../etc")
