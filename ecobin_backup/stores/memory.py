"""In-memory store adapters.

Used for local runs without a database and as the stores under test.
Read and write failures can be injected by setting ``read_error`` or
``write_error`` to an exception instance.
"""

import copy
from typing import Any, Dict, List, Optional

from ecobin_backup.stores.base import (
    DEFAULT_MAX_BATCH_SIZE,
    DocumentStoreAdapter,
    DocumentWrite,
    StoredDocument,
    TreeStoreAdapter,
)
from ecobin_backup.utils.helpers import format_timestamp, utcnow


class InMemoryDocumentStore(DocumentStoreAdapter):
    """Document store held in a dict of ``{collection: {doc_id: fields}}``."""

    def __init__(
        self,
        collections: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None,
        max_batch_size: int = DEFAULT_MAX_BATCH_SIZE
    ):
        super().__init__(max_batch_size)
        self._documents: Dict[str, Dict[str, StoredDocument]] = {}
        self.committed_batches: List[int] = []
        self.read_error: Optional[Exception] = None
        self.write_error: Optional[Exception] = None

        for collection, documents in (collections or {}).items():
            for doc_id, fields in documents.items():
                self._put(collection, doc_id, fields)

    def _put(self, collection: str, doc_id: str, fields: Dict[str, Any]):
        now = format_timestamp(utcnow())
        existing = self._documents.get(collection, {}).get(doc_id)
        self._documents.setdefault(collection, {})[doc_id] = StoredDocument(
            id=doc_id,
            fields=copy.deepcopy(fields),
            create_time=existing.create_time if existing else now,
            update_time=now,
        )

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Return a copy of a document's fields, or None."""
        document = self._documents.get(collection, {}).get(doc_id)
        return copy.deepcopy(document.fields) if document else None

    def snapshot(self) -> Dict[str, Dict[str, Dict[str, Any]]]:
        """Return a copy of every document's fields."""
        return {
            collection: {doc_id: copy.deepcopy(doc.fields) for doc_id, doc in documents.items()}
            for collection, documents in self._documents.items()
        }

    async def list_collections(self) -> List[str]:
        if self.read_error:
            raise self.read_error
        return list(self._documents)

    async def list_documents(self, collection: str) -> List[StoredDocument]:
        if self.read_error:
            raise self.read_error
        return [doc.model_copy(deep=True) for doc in self._documents.get(collection, {}).values()]

    async def write_batch(self, writes: List[DocumentWrite]) -> None:
        if self.write_error:
            raise self.write_error
        if len(writes) > self.max_batch_size:
            raise ValueError(
                f"Batch of {len(writes)} writes exceeds limit of {self.max_batch_size}"
            )

        for write in writes:
            self._put(write.collection, write.doc_id, write.data)
        self.committed_batches.append(len(writes))


class InMemoryTreeStore(TreeStoreAdapter):
    """Tree store holding a single JSON value."""

    def __init__(self, root: Any = None):
        self._root = copy.deepcopy(root)
        self.write_count = 0
        self.read_error: Optional[Exception] = None
        self.write_error: Optional[Exception] = None

    @property
    def root(self) -> Any:
        return copy.deepcopy(self._root)

    async def read_tree(self) -> Any:
        if self.read_error:
            raise self.read_error
        return copy.deepcopy(self._root)

    async def write_tree(self, value: Any) -> None:
        if self.write_error:
            raise self.write_error
        self._root = copy.deepcopy(value)
        self.write_count += 1
