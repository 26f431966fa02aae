"""
MongoDB and Amazon DocumentDB document store.

Built on motor's asyncio client. DocumentDB clusters are detected from the
host name and connected over TLS with the RDS certificate bundle.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote_plus

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, WriteConcern
from pymongo.errors import (
    BulkWriteError,
    ConnectionFailure,
    OperationFailure,
    PyMongoError,
)
from pymongo.errors import DuplicateKeyError as PyMongoDuplicateKeyError

from docshift.config import EngineSettings
from docshift.credentials import StoreCredentials
from docshift.exceptions import DuplicateKeyError, StoreConnectionError, TransientWriteError
from docshift.observability import (
    ATTR_BATCH_OFFSET,
    ATTR_BATCH_SIZE,
    ATTR_COLLECTION,
    ATTR_DB_NAME,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_DOCUMENT_COUNT,
    Tracer,
    create_tracer,
)
from docshift.stores.interface import Document, DocumentStore, IndexSpec

logger = logging.getLogger(__name__)

DUPLICATE_KEY_CODE = 11000
INDEX_ALREADY_EXISTS_CODE = 85

# Index options carried over when copying an index definition
_INDEX_OPTIONS = ("unique", "sparse", "partialFilterExpression", "expireAfterSeconds")

MAJORITY_JOURNALED = WriteConcern(w="majority", j=True)


class MongoDocumentStore(DocumentStore):
    """
    Document store backed by a motor client bound to one database.

    The store owns the client and closes it in :meth:`close`.

    Example:
        >>> client = AsyncIOMotorClient("mongodb://localhost:27017")
        >>> store = MongoDocumentStore(client, "chronas", endpoint="localhost:27017")
        >>> await store.count("markers")
    """

    def __init__(
        self,
        client: AsyncIOMotorClient,
        database: str,
        *,
        endpoint: str,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._client = client
        self._db: AsyncIOMotorDatabase = client[database]
        self._database = database
        self._endpoint = endpoint
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def _span_attributes(self, operation: str, collection: str) -> dict[str, Any]:
        return {
            ATTR_DB_SYSTEM: "mongodb",
            ATTR_DB_NAME: self._database,
            ATTR_DB_OPERATION: operation,
            ATTR_COLLECTION: collection,
        }

    async def count(self, collection: str) -> int:
        with self._tracer.span(
            "mongodb_document_store.count", self._span_attributes("count", collection)
        ):
            try:
                return await self._db[collection].count_documents({})
            except ConnectionFailure as e:
                raise StoreConnectionError(self._endpoint, str(e)) from e

    async def find_window(self, collection: str, offset: int, limit: int) -> list[Document]:
        attributes = self._span_attributes("find", collection)
        attributes[ATTR_BATCH_OFFSET] = offset
        attributes[ATTR_BATCH_SIZE] = limit
        with self._tracer.span("mongodb_document_store.find_window", attributes):
            cursor = self._db[collection].find({}).sort("_id", ASCENDING).skip(offset).limit(limit)
            try:
                return await cursor.to_list(length=limit)
            except ConnectionFailure as e:
                raise StoreConnectionError(self._endpoint, str(e)) from e

    async def insert_many(self, collection: str, documents: list[Document]) -> int:
        if not documents:
            raise ValueError("documents must not be empty")

        attributes = self._span_attributes("insert_many", collection)
        attributes[ATTR_DOCUMENT_COUNT] = len(documents)
        with self._tracer.span("mongodb_document_store.insert_many", attributes):
            handle = self._db[collection].with_options(write_concern=MAJORITY_JOURNALED)
            try:
                result = await handle.insert_many(documents, ordered=False)
            except BulkWriteError as e:
                raise self._translate_bulk_error(collection, e) from e
            except PyMongoDuplicateKeyError as e:
                raise DuplicateKeyError(str(e), collection=collection, duplicate_count=1) from e
            except PyMongoError as e:
                raise TransientWriteError(str(e), collection=collection) from e
            return len(result.inserted_ids)

    @staticmethod
    def _translate_bulk_error(collection: str, error: BulkWriteError) -> Exception:
        details = error.details or {}
        write_errors = details.get("writeErrors", [])
        inserted = details.get("nInserted", 0)
        duplicates = [w for w in write_errors if w.get("code") == DUPLICATE_KEY_CODE]

        if write_errors and len(duplicates) == len(write_errors):
            return DuplicateKeyError(
                f"E11000 duplicate key error: {len(duplicates)} documents already exist",
                collection=collection,
                inserted_count=inserted,
                duplicate_count=len(duplicates),
            )

        first = write_errors[0].get("errmsg", str(error)) if write_errors else str(error)
        return TransientWriteError(
            f"bulk write failed after {inserted} inserts: {first}", collection=collection
        )

    async def find_by_id(self, collection: str, document_id: Any) -> Document | None:
        return await self._db[collection].find_one({"_id": document_id})

    async def list_indexes(self, collection: str) -> list[IndexSpec]:
        indexes: list[IndexSpec] = []
        async for info in self._db[collection].list_indexes():
            options = {key: info[key] for key in _INDEX_OPTIONS if key in info}
            indexes.append(
                IndexSpec(name=info["name"], keys=tuple(info["key"].items()), options=options)
            )
        return indexes

    async def create_index(self, collection: str, index: IndexSpec) -> bool:
        with self._tracer.span(
            "mongodb_document_store.create_index",
            self._span_attributes("create_index", collection),
        ):
            try:
                await self._db[collection].create_index(
                    list(index.keys), name=index.name, background=True, **index.options
                )
            except OperationFailure as e:
                if e.code == INDEX_ALREADY_EXISTS_CODE:
                    logger.info("Index %s already exists on %s, skipping", index.name, collection)
                    return False
                raise
            return True

    async def list_collections(self) -> list[str]:
        try:
            return sorted(await self._db.list_collection_names())
        except ConnectionFailure as e:
            raise StoreConnectionError(self._endpoint, str(e)) from e

    async def ping(self) -> None:
        try:
            await self._db.command("ping")
        except PyMongoError as e:
            raise StoreConnectionError(self._endpoint, str(e)) from e

    async def close(self) -> None:
        self._client.close()


class MongoStoreConnector:
    """
    Opens MongoDocumentStore handles from resolved credentials.

    Connection behaviour:
    - TLS is used when the host name contains ``docdb`` unless the
      credentials set ``tls`` to false; the CA bundle comes from settings
    - DocumentDB connections join the ``rs0`` replica set with retryable
      writes disabled, as DocumentDB requires
    - Connect, socket and server selection timeouts are independent

    Example:
        >>> connector = MongoStoreConnector(EngineSettings.from_env())
        >>> store = await connector.connect(credentials, "source")
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._settings = settings or EngineSettings()
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @staticmethod
    def use_tls(credentials: StoreCredentials) -> bool:
        return credentials.tls is not False and "docdb" in credentials.host

    def connection_uri(self, credentials: StoreCredentials) -> str:
        database = credentials.database or self._settings.db_name
        user = quote_plus(credentials.username)
        password = quote_plus(credentials.password.get_secret_value())
        uri = f"mongodb://{user}:{password}@{credentials.endpoint}/{database}?retryWrites=false"
        if "docdb" in credentials.host:
            uri += "&replicaSet=rs0"
        return uri

    def client_options(self, credentials: StoreCredentials) -> dict[str, Any]:
        s = self._settings
        options: dict[str, Any] = {
            "serverSelectionTimeoutMS": s.server_selection_timeout_ms,
            "connectTimeoutMS": s.connect_timeout_ms,
            "socketTimeoutMS": s.socket_timeout_ms,
            "maxPoolSize": s.max_pool_size,
            "minPoolSize": s.min_pool_size,
            "maxIdleTimeMS": 30000,
            "heartbeatFrequencyMS": 10000,
        }
        if self.use_tls(credentials):
            options["tls"] = True
            options["tlsCAFile"] = s.tls_ca_file
            options["tlsAllowInvalidHostnames"] = False
            options["tlsAllowInvalidCertificates"] = False
        return options

    async def connect(self, credentials: StoreCredentials, label: str) -> DocumentStore:
        """
        Connect to a store and verify it answers.

        Args:
            credentials: Resolved credentials of the store.
            label: "source" or "target", used in logs and errors.

        Returns:
            A connected MongoDocumentStore.

        Raises:
            StoreConnectionError: If the store does not answer a ping.
        """
        logger.info("Creating %s connection to %s", label, credentials.endpoint)
        client: AsyncIOMotorClient = AsyncIOMotorClient(
            self.connection_uri(credentials), **self.client_options(credentials)
        )
        store = MongoDocumentStore(
            client,
            credentials.database or self._settings.db_name,
            endpoint=credentials.host,
            tracer=self._tracer,
        )
        try:
            await store.ping()
        except StoreConnectionError as e:
            client.close()
            raise StoreConnectionError(label, f"{credentials.host} did not answer a ping") from e
        logger.info("%s connection established", label)
        return store


__all__ = [
    "DUPLICATE_KEY_CODE",
    "INDEX_ALREADY_EXISTS_CODE",
    "MongoDocumentStore",
    "MongoStoreConnector",
]
