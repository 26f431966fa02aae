"""
Scoped acquisition of the source and target stores of an invocation.

Both stores are opened at the start of an invocation and closed on every
exit path, including failures while opening the second store.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from docshift.credentials import CredentialProvider, StoreCredentials
from docshift.stores.interface import DocumentStore

logger = logging.getLogger(__name__)


@runtime_checkable
class StoreConnector(Protocol):
    """Opens a connected DocumentStore from resolved credentials."""

    async def connect(self, credentials: StoreCredentials, label: str) -> DocumentStore: ...


@dataclass(frozen=True)
class StorePair:
    source: DocumentStore
    target: DocumentStore


async def close_quietly(store: DocumentStore, label: str) -> None:
    """Close a store, logging instead of raising on failure."""
    try:
        await store.close()
        logger.info("%s connection closed", label)
    except Exception as e:
        logger.warning("Error closing %s connection: %s", label, e)


@asynccontextmanager
async def open_store_pair(
    credentials: CredentialProvider,
    connector: StoreConnector,
    source_ref: str,
    target_ref: str,
) -> AsyncIterator[StorePair]:
    """
    Resolve credentials and open both stores for the duration of a block.

    Args:
        credentials: Provider resolving the credential references.
        connector: Connector opening the store handles.
        source_ref: Credential reference of the source store.
        target_ref: Credential reference of the target store.

    Yields:
        The connected StorePair.

    Raises:
        CredentialResolutionError: If a reference cannot be resolved.
        StoreConnectionError: If a store cannot be reached.

    Example:
        >>> async with open_store_pair(provider, connector, "src", "dst") as stores:
        ...     result = await BatchProcessor(stores.source, stores.target).process(job)
    """
    source_credentials = await credentials.resolve(source_ref)
    target_credentials = await credentials.resolve(target_ref)

    source = await connector.connect(source_credentials, "source")
    try:
        target = await connector.connect(target_credentials, "target")
    except BaseException:
        await close_quietly(source, "source")
        raise

    try:
        yield StorePair(source=source, target=target)
    finally:
        await close_quietly(source, "source")
        await close_quietly(target, "target")


__all__ = ["StoreConnector", "StorePair", "open_store_pair", "close_quietly"]
