"""
Document store interface.

The migration engine only talks to stores through this interface, so the
copy loop, verification and orchestration run unchanged against MongoDB,
Amazon DocumentDB or the in-memory store used in tests.

This module provides:
- Document: Type alias for a stored JSON document
- IndexSpec: Description of a secondary index
- DocumentStore: Abstract base class for connected store handles
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

Document = dict[str, Any]

DEFAULT_INDEX_NAME = "_id_"


@dataclass(frozen=True)
class IndexSpec:
    """
    Description of an index of a collection.

    Attributes:
        name: Index name.
        keys: Ordered (field, direction) pairs.
        options: Creation options (unique, sparse, partialFilterExpression,
            expireAfterSeconds).
    """

    name: str
    keys: tuple[tuple[str, Any], ...]
    options: dict[str, Any] = field(default_factory=dict)

    @property
    def is_default(self) -> bool:
        """True for the implicit ``_id`` index every collection has."""
        return self.name == DEFAULT_INDEX_NAME


class DocumentStore(ABC):
    """
    Abstract base class for a connected document store handle.

    A handle is bound to one database and is acquired at the start of an
    invocation and closed when it ends. Collections are addressed by name.

    Implementations must:
    - Order windows by ascending ``_id`` so offsets are stable between invocations
    - Insert unordered, so one duplicate does not prevent the rest of a batch
    - Raise DuplicateKeyError for duplicate ``_id`` values and
      TransientWriteError for other write failures
    - Raise StoreConnectionError when the store cannot be reached

    Concrete implementations:
    - InMemoryDocumentStore: For testing and development
    - MongoDocumentStore: MongoDB and Amazon DocumentDB through motor

    Example:
        >>> total = await store.count("markers")
        >>> window = await store.find_window("markers", offset=0, limit=1000)
        >>> written = await target.insert_many("markers", window)
    """

    @property
    @abstractmethod
    def endpoint(self) -> str:
        """Host of the store, safe to log (never includes credentials)."""
        pass

    @abstractmethod
    async def count(self, collection: str) -> int:
        """
        Count documents in a collection.

        Args:
            collection: Collection name.

        Returns:
            Number of documents (0 for a missing collection).
        """
        pass

    @abstractmethod
    async def find_window(self, collection: str, offset: int, limit: int) -> list[Document]:
        """
        Read a window of documents ordered by ascending ``_id``.

        Args:
            collection: Collection name.
            offset: Number of documents to skip.
            limit: Maximum number of documents to return.

        Returns:
            Up to ``limit`` documents; empty when ``offset`` is past the end.
        """
        pass

    @abstractmethod
    async def insert_many(self, collection: str, documents: list[Document]) -> int:
        """
        Insert documents without stopping at the first failure.

        Args:
            collection: Collection name.
            documents: Documents to insert (must not be empty).

        Returns:
            Number of documents inserted.

        Raises:
            DuplicateKeyError: If any document already exists; every other
                document of the batch has been inserted.
            TransientWriteError: If the write failed for another reason.
        """
        pass

    @abstractmethod
    async def find_by_id(self, collection: str, document_id: Any) -> Document | None:
        """Fetch one document by ``_id``, or None when it does not exist."""
        pass

    @abstractmethod
    async def list_indexes(self, collection: str) -> list[IndexSpec]:
        """List the indexes of a collection, including the default ``_id`` index."""
        pass

    @abstractmethod
    async def create_index(self, collection: str, index: IndexSpec) -> bool:
        """
        Create an index.

        Returns:
            True if the index was created, False if it already existed.
        """
        pass

    @abstractmethod
    async def list_collections(self) -> list[str]:
        pass

    @abstractmethod
    async def ping(self) -> None:
        """
        Check that the store answers.

        Raises:
            StoreConnectionError: If the store cannot be reached.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        pass

    async def first_document(self, collection: str) -> Document | None:
        """
        Return the first document of a collection by ascending ``_id``.

        Used as the sample document when comparing document shapes.
        """
        window = await self.find_window(collection, offset=0, limit=1)
        return window[0] if window else None

    async def index_count(self, collection: str) -> int:
        return len(await self.list_indexes(collection))


__all__ = [
    "DEFAULT_INDEX_NAME",
    "Document",
    "IndexSpec",
    "DocumentStore",
]
