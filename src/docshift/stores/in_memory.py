"""
In-memory document store implementation.

Useful for testing and development. Not suitable for production
as all documents are lost when the process terminates.
"""

import asyncio
import copy
from typing import Any

from docshift.exceptions import DuplicateKeyError, StoreConnectionError
from docshift.observability import (
    ATTR_BATCH_OFFSET,
    ATTR_BATCH_SIZE,
    ATTR_COLLECTION,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_DOCUMENT_COUNT,
    Tracer,
    create_tracer,
)
from docshift.stores.interface import DEFAULT_INDEX_NAME, Document, DocumentStore, IndexSpec


def _sort_key(document_id: Any) -> tuple[str, Any]:
    # Mixed _id types sort by type name first, then by value.
    return (type(document_id).__name__, document_id)


class InMemoryDocumentStore(DocumentStore):
    """
    In-memory implementation of the document store.

    Stores documents in dictionaries keyed by ``_id``. Suitable for:

    - Unit testing
    - Development environments
    - Dry runs of orchestration logic

    Documents are copied on the way in and on the way out so callers never
    share state with the store.

    Features:
        - OpenTelemetry tracing support via Tracer composition
        - ``online`` flag to simulate an unreachable store

    Example:
        >>> store = InMemoryDocumentStore(endpoint="source.local")
        >>> await store.insert_many("markers", [{"_id": 1, "name": "Rome"}])
        1
        >>> await store.count("markers")
        1
    """

    def __init__(
        self,
        endpoint: str = "in-memory",
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._endpoint = endpoint
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._collections: dict[str, dict[Any, Document]] = {}
        self._indexes: dict[str, dict[str, IndexSpec]] = {}
        self._lock = asyncio.Lock()
        self.online = True
        self.closed = False

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def _check_online(self) -> None:
        if not self.online:
            raise StoreConnectionError(self._endpoint, "store is offline")

    def _ensure_collection(self, collection: str) -> dict[Any, Document]:
        if collection not in self._collections:
            self._collections[collection] = {}
            self._indexes[collection] = {
                DEFAULT_INDEX_NAME: IndexSpec(name=DEFAULT_INDEX_NAME, keys=(("_id", 1),))
            }
        return self._collections[collection]

    def seed(self, collection: str, documents: list[Document]) -> None:
        """Load documents synchronously, replacing documents with the same ``_id``."""
        docs = self._ensure_collection(collection)
        for document in documents:
            docs[document["_id"]] = copy.deepcopy(document)

    async def count(self, collection: str) -> int:
        self._check_online()
        return len(self._collections.get(collection, {}))

    async def find_window(self, collection: str, offset: int, limit: int) -> list[Document]:
        with self._tracer.span(
            "inmemory_document_store.find_window",
            {
                ATTR_DB_SYSTEM: "memory",
                ATTR_DB_OPERATION: "find",
                ATTR_COLLECTION: collection,
                ATTR_BATCH_OFFSET: offset,
                ATTR_BATCH_SIZE: limit,
            },
        ):
            self._check_online()
            async with self._lock:
                docs = self._collections.get(collection, {})
                ordered = sorted(docs, key=_sort_key)
                return [copy.deepcopy(docs[key]) for key in ordered[offset : offset + limit]]

    async def insert_many(self, collection: str, documents: list[Document]) -> int:
        if not documents:
            raise ValueError("documents must not be empty")

        with self._tracer.span(
            "inmemory_document_store.insert_many",
            {
                ATTR_DB_SYSTEM: "memory",
                ATTR_DB_OPERATION: "insert_many",
                ATTR_COLLECTION: collection,
                ATTR_DOCUMENT_COUNT: len(documents),
            },
        ):
            self._check_online()
            async with self._lock:
                docs = self._ensure_collection(collection)
                inserted = 0
                duplicates = 0
                for document in documents:
                    if document["_id"] in docs:
                        duplicates += 1
                        continue
                    docs[document["_id"]] = copy.deepcopy(document)
                    inserted += 1

            if duplicates:
                raise DuplicateKeyError(
                    f"E11000 duplicate key error: {duplicates} documents already exist",
                    collection=collection,
                    inserted_count=inserted,
                    duplicate_count=duplicates,
                )
            return inserted

    async def find_by_id(self, collection: str, document_id: Any) -> Document | None:
        self._check_online()
        document = self._collections.get(collection, {}).get(document_id)
        return copy.deepcopy(document) if document is not None else None

    async def list_indexes(self, collection: str) -> list[IndexSpec]:
        self._check_online()
        return list(self._indexes.get(collection, {}).values())

    async def create_index(self, collection: str, index: IndexSpec) -> bool:
        self._check_online()
        self._ensure_collection(collection)
        if index.name in self._indexes[collection]:
            return False
        self._indexes[collection][index.name] = index
        return True

    async def list_collections(self) -> list[str]:
        self._check_online()
        return sorted(self._collections)

    async def ping(self) -> None:
        self._check_online()

    async def close(self) -> None:
        self.closed = True


__all__ = ["InMemoryDocumentStore"]
