"""
Document store handles used by the migration engine.

- DocumentStore: Abstract base class every store implements
- InMemoryDocumentStore: For testing and development
- MongoDocumentStore / MongoStoreConnector: MongoDB and Amazon DocumentDB
- open_store_pair: Opens source and target for one invocation
"""

from docshift.stores.connector import StoreConnector, StorePair, close_quietly, open_store_pair
from docshift.stores.in_memory import InMemoryDocumentStore
from docshift.stores.interface import DEFAULT_INDEX_NAME, Document, DocumentStore, IndexSpec
from docshift.stores.mongodb import MongoDocumentStore, MongoStoreConnector

__all__ = [
    "DEFAULT_INDEX_NAME",
    "Document",
    "DocumentStore",
    "IndexSpec",
    "InMemoryDocumentStore",
    "MongoDocumentStore",
    "MongoStoreConnector",
    "StoreConnector",
    "StorePair",
    "close_quietly",
    "open_store_pair",
]
