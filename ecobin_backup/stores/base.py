"""Base store adapter abstract classes and related models."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


DEFAULT_MAX_BATCH_SIZE = 500


class StoredDocument(BaseModel):
    """A document as read from the document store."""
    id: str
    id_type: Optional[str] = None
    fields: Dict[str, Any] = Field(default_factory=dict)
    create_time: Optional[str] = None
    update_time: Optional[str] = None


class DocumentWrite(BaseModel):
    """A full overwrite of one document, queued in a write batch."""
    collection: str
    doc_id: str
    id_type: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class DocumentStoreAdapter(ABC):
    """Abstract base class for collection-of-documents stores."""

    name = "documentStore"

    def __init__(self, max_batch_size: int = DEFAULT_MAX_BATCH_SIZE):
        self.max_batch_size = max_batch_size

    @abstractmethod
    async def list_collections(self) -> List[str]:
        """Return the names of every top-level collection."""
        pass

    @abstractmethod
    async def list_documents(self, collection: str) -> List[StoredDocument]:
        """Return every document of a collection with its timestamps."""
        pass

    @abstractmethod
    async def write_batch(self, writes: List[DocumentWrite]) -> None:
        """Commit a batch of full-document overwrites.

        Args:
            writes: At most ``max_batch_size`` writes
        """
        pass

    async def close(self) -> None:
        """Release any connection held by the adapter."""
        return None


class TreeStoreAdapter(ABC):
    """Abstract base class for single-tree JSON stores."""

    name = "treeStore"

    @abstractmethod
    async def read_tree(self) -> Any:
        """Read the whole tree from its root in one call."""
        pass

    @abstractmethod
    async def write_tree(self, value: Any) -> None:
        """Overwrite the whole tree at its root."""
        pass

    async def close(self) -> None:
        """Release any connection held by the adapter."""
        return None
