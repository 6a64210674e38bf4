"""
Tests for the store adapters.

The MongoDB and Redis adapters are exercised against mocked clients.
"""

import json
from datetime import datetime, UTC
from unittest.mock import MagicMock, patch

import pytest
from bson import ObjectId
from pymongo import ReplaceOne
from pymongo.errors import PyMongoError
from redis.exceptions import RedisError

from ecobin_backup.core.exceptions import StoreError
from ecobin_backup.models.config import StoreSettings
from ecobin_backup.stores import (
    InMemoryDocumentStore,
    InMemoryTreeStore,
    MongoDocumentStore,
    RedisTreeStore,
    build_document_store,
    build_tree_store,
)
from ecobin_backup.stores.base import DocumentWrite
from ecobin_backup.stores.mongo import from_json_fields, to_json_fields
from ecobin_backup.utils.helpers import format_timestamp


@pytest.fixture
def mongo_collection():
    return MagicMock()


@pytest.fixture
def mongo_client(mongo_collection):
    client = MagicMock()
    db = client.__getitem__.return_value
    db.__getitem__.return_value = mongo_collection
    db.list_collection_names.return_value = ["bins", "system.views", "users"]
    return client


@pytest.fixture
def redis_client():
    return MagicMock()


class TestInMemoryStores:
    """Test cases for the in-memory adapters."""

    @pytest.mark.asyncio
    async def test_write_batch_rejects_oversized_batch(self):
        store = InMemoryDocumentStore(max_batch_size=2)
        writes = [DocumentWrite(collection="bins", doc_id=str(i), data={}) for i in range(3)]

        with pytest.raises(ValueError):
            await store.write_batch(writes)

        assert store.snapshot() == {}

    @pytest.mark.asyncio
    async def test_overwrite_keeps_create_time(self):
        store = InMemoryDocumentStore({"bins": {"b1": {"level": 1}}})
        created = (await store.list_documents("bins"))[0].create_time

        await store.write_batch([DocumentWrite(collection="bins", doc_id="b1", data={"level": 2})])

        document = (await store.list_documents("bins"))[0]
        assert document.create_time == created
        assert document.fields == {"level": 2}

    @pytest.mark.asyncio
    async def test_tree_store_returns_copies(self):
        store = InMemoryTreeStore({"status": "ok"})

        tree = await store.read_tree()
        tree["status"] = "changed"

        assert store.root == {"status": "ok"}


class TestMongoDocumentStore:
    """Test cases for MongoDocumentStore."""

    @pytest.mark.asyncio
    async def test_list_collections_skips_system(self, mongo_client):
        store = MongoDocumentStore(client=mongo_client)
        assert await store.list_collections() == ["bins", "users"]

    @pytest.mark.asyncio
    async def test_list_documents(self, mongo_client, mongo_collection):
        object_id = ObjectId("65a4c6f0e4b0a1b2c3d4e5f6")
        emptied_at = datetime(2024, 1, 15, 2, 0, tzinfo=UTC)
        mongo_collection.find.return_value = [
            {"_id": object_id, "level": 85, "emptiedAt": emptied_at},
            {"_id": "bin-002", "level": 20, "_createdAt": emptied_at, "_updatedAt": emptied_at},
        ]
        store = MongoDocumentStore(client=mongo_client)

        documents = await store.list_documents("bins")

        first, second = documents
        assert first.id == str(object_id)
        assert first.fields["level"] == 85
        assert "$date" in first.fields["emptiedAt"]
        assert first.create_time == format_timestamp(object_id.generation_time)
        assert first.update_time is None
        assert second.id == "bin-002"
        assert second.create_time == "2024-01-15T02:00:00.000Z"
        assert "$date" in second.fields["_createdAt"]
        assert "_updatedAt" in second.fields
        assert first.id_type == "objectId"
        assert second.id_type == "string"

    @pytest.mark.asyncio
    async def test_read_failure_wrapped(self, mongo_client):
        mongo_client.__getitem__.return_value.list_collection_names.side_effect = PyMongoError("down")
        store = MongoDocumentStore(client=mongo_client)

        with pytest.raises(StoreError) as exc_info:
            await store.list_collections()

        assert exc_info.value.store == "documentStore"

    @pytest.mark.asyncio
    async def test_write_batch_upserts(self, mongo_client, mongo_collection):
        object_id = ObjectId("65a4c6f0e4b0a1b2c3d4e5f6")
        store = MongoDocumentStore(client=mongo_client)

        await store.write_batch([
            DocumentWrite(collection="bins", doc_id=str(object_id), data={"level": 3}),
            DocumentWrite(collection="bins", doc_id="bin-002", data={"level": 4}),
        ])

        mongo_collection.bulk_write.assert_called_once_with(
            [
                ReplaceOne({"_id": object_id}, {"level": 3, "_id": object_id}, upsert=True),
                ReplaceOne({"_id": "bin-002"}, {"level": 4, "_id": "bin-002"}, upsert=True),
            ],
            ordered=True
        )

    @pytest.mark.asyncio
    async def test_timestamp_fields_survive_rewrite(self, mongo_client, mongo_collection):
        stamped_at = datetime(2024, 1, 15, 2, 0, tzinfo=UTC)
        mongo_collection.find.return_value = [
            {"_id": "bin-1", "level": 3, "_createdAt": stamped_at, "_updatedAt": stamped_at},
        ]
        store = MongoDocumentStore(client=mongo_client)

        document = (await store.list_documents("bins"))[0]
        await store.write_batch([
            DocumentWrite(
                collection="bins",
                doc_id=document.id,
                id_type=document.id_type,
                data=document.fields,
            )
        ])

        replacement = {"level": 3, "_createdAt": stamped_at, "_updatedAt": stamped_at, "_id": "bin-1"}
        mongo_collection.bulk_write.assert_called_once_with(
            [ReplaceOne({"_id": "bin-1"}, replacement, upsert=True)],
            ordered=True
        )

    @pytest.mark.asyncio
    async def test_hex_string_id_keeps_its_type(self, mongo_client, mongo_collection):
        hex_id = "65a4c6f0e4b0a1b2c3d4e5f6"
        mongo_collection.find.return_value = [{"_id": hex_id, "level": 5}]
        store = MongoDocumentStore(client=mongo_client)

        document = (await store.list_documents("bins"))[0]
        await store.write_batch([
            DocumentWrite(
                collection="bins",
                doc_id=document.id,
                id_type=document.id_type,
                data=document.fields,
            )
        ])

        mongo_collection.bulk_write.assert_called_once_with(
            [ReplaceOne({"_id": hex_id}, {"level": 5, "_id": hex_id}, upsert=True)],
            ordered=True
        )

    @pytest.mark.asyncio
    async def test_object_id_type_restored(self, mongo_client, mongo_collection):
        object_id = ObjectId("65a4c6f0e4b0a1b2c3d4e5f6")
        store = MongoDocumentStore(client=mongo_client)

        await store.write_batch([
            DocumentWrite(collection="bins", doc_id=str(object_id), id_type="objectId", data={"level": 1}),
        ])

        mongo_collection.bulk_write.assert_called_once_with(
            [ReplaceOne({"_id": object_id}, {"level": 1, "_id": object_id}, upsert=True)],
            ordered=True
        )

    @pytest.mark.asyncio
    async def test_write_batch_limit(self, mongo_client, mongo_collection):
        store = MongoDocumentStore(client=mongo_client, max_batch_size=1)
        writes = [DocumentWrite(collection="bins", doc_id=str(i), data={}) for i in range(2)]

        with pytest.raises(ValueError):
            await store.write_batch(writes)

        mongo_collection.bulk_write.assert_not_called()

    @pytest.mark.asyncio
    async def test_write_failure_wrapped(self, mongo_client, mongo_collection):
        mongo_collection.bulk_write.side_effect = PyMongoError("not primary")
        store = MongoDocumentStore(client=mongo_client)

        with pytest.raises(StoreError, match="not primary"):
            await store.write_batch([DocumentWrite(collection="bins", doc_id="b1", data={})])

    def test_extended_json_round_trip(self):
        document = {
            "ref": ObjectId("65a4c6f0e4b0a1b2c3d4e5f6"),
            "emptiedAt": datetime(2024, 1, 15, 2, 0, tzinfo=UTC),
            "level": 85,
        }

        fields = to_json_fields(document)
        json.dumps(fields)

        assert from_json_fields(fields) == document

    @pytest.mark.asyncio
    async def test_close(self, mongo_client):
        await MongoDocumentStore(client=mongo_client).close()
        mongo_client.close.assert_called_once()


class TestRedisTreeStore:
    """Test cases for RedisTreeStore."""

    @pytest.mark.asyncio
    async def test_read_tree(self, redis_client):
        redis_client.get.return_value = '{"status": "ok"}'
        store = RedisTreeStore(client=redis_client)

        assert await store.read_tree() == {"status": "ok"}
        redis_client.get.assert_called_once_with("ecobin:tree")

    @pytest.mark.asyncio
    async def test_read_missing_tree(self, redis_client):
        redis_client.get.return_value = None
        assert await RedisTreeStore(client=redis_client).read_tree() is None

    @pytest.mark.asyncio
    async def test_write_tree(self, redis_client):
        store = RedisTreeStore(key="custom:tree", client=redis_client)

        await store.write_tree({"monitoring": {"bin-001": {"weight": 12.5}}})

        redis_client.set.assert_called_once_with(
            "custom:tree", json.dumps({"monitoring": {"bin-001": {"weight": 12.5}}})
        )

    @pytest.mark.asyncio
    async def test_write_none_deletes_key(self, redis_client):
        await RedisTreeStore(client=redis_client).write_tree(None)

        redis_client.delete.assert_called_once_with("ecobin:tree")
        redis_client.set.assert_not_called()

    @pytest.mark.asyncio
    async def test_failures_wrapped(self, redis_client):
        redis_client.get.side_effect = RedisError("connection refused")
        redis_client.set.side_effect = RedisError("read only replica")
        store = RedisTreeStore(client=redis_client)

        with pytest.raises(StoreError) as exc_info:
            await store.read_tree()
        assert exc_info.value.store == "treeStore"

        with pytest.raises(StoreError, match="read only replica"):
            await store.write_tree({"status": "ok"})


class TestStoreFactories:
    """Test cases for building stores from settings."""

    def test_memory_defaults(self):
        settings = StoreSettings()

        document_store = build_document_store(settings, max_batch_size=100)

        assert isinstance(document_store, InMemoryDocumentStore)
        assert document_store.max_batch_size == 100
        assert isinstance(build_tree_store(settings), InMemoryTreeStore)

    def test_mongodb(self):
        settings = StoreSettings(document="mongodb", mongodb={"uri": "mongodb://db:27017", "database": "prod"})

        with patch("ecobin_backup.stores.mongo.MongoClient") as client_class:
            store = build_document_store(settings, max_batch_size=250)

        assert isinstance(store, MongoDocumentStore)
        assert store.max_batch_size == 250
        client_class.assert_called_once_with(
            "mongodb://db:27017", serverSelectionTimeoutMS=10000, tz_aware=True
        )
        client_class.return_value.__getitem__.assert_called_once_with("prod")

    def test_redis(self):
        settings = StoreSettings(tree="redis", redis={"url": "redis://cache:6379/1", "key": "bins:tree"})

        with patch("ecobin_backup.stores.redis_tree.redis.Redis.from_url") as from_url:
            store = build_tree_store(settings)

        assert isinstance(store, RedisTreeStore)
        assert store.key == "bins:tree"
        from_url.assert_called_once_with("redis://cache:6379/1", decode_responses=True)
