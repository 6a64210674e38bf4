"""MongoDB document store adapter using pymongo."""

import asyncio
import json
import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId, json_util
from bson.json_util import JSONOptions, JSONMode
from pymongo import MongoClient, ReplaceOne
from pymongo.errors import PyMongoError

from ecobin_backup.core.exceptions import StoreError, StoreWriteError
from ecobin_backup.stores.base import (
    DEFAULT_MAX_BATCH_SIZE,
    DocumentStoreAdapter,
    DocumentWrite,
    StoredDocument,
)
from ecobin_backup.utils.helpers import format_timestamp


logger = logging.getLogger(__name__)

# Relaxed extended JSON keeps ObjectId and date fields recoverable on restore
_JSON_OPTIONS = JSONOptions(json_mode=JSONMode.RELAXED, tz_aware=True)

CREATE_TIME_FIELD = "_createdAt"
UPDATE_TIME_FIELD = "_updatedAt"

OBJECT_ID_TYPE = "objectId"
STRING_ID_TYPE = "string"


def to_json_fields(document: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a BSON document (without ``_id``) to plain JSON-safe fields."""
    return json.loads(json_util.dumps(document, json_options=_JSON_OPTIONS))


def from_json_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Convert extended-JSON fields back into BSON values."""
    return json_util.loads(json.dumps(fields), json_options=_JSON_OPTIONS)


def _timestamp(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return format_timestamp(value)
    return str(value)


def _id_type(raw_id: Any) -> Optional[str]:
    if isinstance(raw_id, ObjectId):
        return OBJECT_ID_TYPE
    if isinstance(raw_id, str):
        return STRING_ID_TYPE
    return None


def _document_id(doc_id: str, id_type: Optional[str] = None) -> Any:
    if id_type == OBJECT_ID_TYPE:
        return ObjectId(doc_id)
    if id_type is None and ObjectId.is_valid(doc_id):
        # Artifacts without a recorded id type
        return ObjectId(doc_id)
    return doc_id


class MongoDocumentStore(DocumentStoreAdapter):
    """Document store backed by a MongoDB database.

    Collections map to MongoDB collections and document IDs to ``_id``.
    The create time comes from an ObjectId ``_id`` when there is one.
    """

    def __init__(
        self,
        uri: str = "mongodb://localhost:27017",
        database: str = "ecobin",
        timeout_seconds: int = 10,
        max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
        client: Optional[MongoClient] = None
    ):
        super().__init__(max_batch_size)
        self._client = client or MongoClient(
            uri,
            serverSelectionTimeoutMS=timeout_seconds * 1000,
            tz_aware=True
        )
        self._db = self._client[database]
        logger.debug(f"MongoDB document store configured for database {database}")

    async def list_collections(self) -> List[str]:
        try:
            names = await asyncio.to_thread(self._db.list_collection_names)
        except PyMongoError as e:
            raise StoreError(f"Failed to list collections: {e}", store=self.name) from e
        return sorted(name for name in names if not name.startswith("system."))

    async def list_documents(self, collection: str) -> List[StoredDocument]:
        try:
            raw_documents = await asyncio.to_thread(
                lambda: list(self._db[collection].find())
            )
        except PyMongoError as e:
            raise StoreError(
                f"Failed to read collection {collection}: {e}", store=self.name
            ) from e

        return [self._to_stored(document) for document in raw_documents]

    def _to_stored(self, document: Dict[str, Any]) -> StoredDocument:
        raw_id = document.pop("_id")
        create_time = document.get(CREATE_TIME_FIELD)
        update_time = document.get(UPDATE_TIME_FIELD)

        if create_time is None and isinstance(raw_id, ObjectId):
            create_time = raw_id.generation_time

        return StoredDocument(
            id=str(raw_id),
            id_type=_id_type(raw_id),
            fields=to_json_fields(document),
            create_time=_timestamp(create_time),
            update_time=_timestamp(update_time),
        )

    async def write_batch(self, writes: List[DocumentWrite]) -> None:
        if len(writes) > self.max_batch_size:
            raise ValueError(
                f"Batch of {len(writes)} writes exceeds limit of {self.max_batch_size}"
            )

        operations: Dict[str, List[ReplaceOne]] = defaultdict(list)
        for write in writes:
            doc_id = _document_id(write.doc_id, write.id_type)
            replacement = from_json_fields(write.data)
            replacement["_id"] = doc_id
            operations[write.collection].append(
                ReplaceOne({"_id": doc_id}, replacement, upsert=True)
            )

        def _commit():
            for collection, requests in operations.items():
                self._db[collection].bulk_write(requests, ordered=True)

        try:
            await asyncio.to_thread(_commit)
        except PyMongoError as e:
            raise StoreWriteError(f"Failed to commit write batch: {e}", store=self.name) from e

    async def close(self) -> None:
        self._client.close()
        logger.debug("Closed MongoDB document store")
