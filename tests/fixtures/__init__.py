"""
Shared test doubles for the docshift test suite.

- FakeClock / RecordingSleep: deterministic time for budget and backoff tests
- FaultyDocumentStore: in-memory store with failure injection
- StaticConnector: StoreConnector handing out prepared stores
- make_documents / make_credentials: sample data builders
"""

from __future__ import annotations

from typing import Any

from pydantic import SecretStr

from docshift.credentials import StoreCredentials
from docshift.exceptions import StoreConnectionError, TransientWriteError
from docshift.stores.in_memory import InMemoryDocumentStore
from docshift.stores.interface import Document, DocumentStore


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Awaitable sleep that records the requested delays and returns at once."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FaultyDocumentStore(InMemoryDocumentStore):
    """
    In-memory store with injectable failures.

    Attributes:
        insert_failures: Number of upcoming inserts that raise TransientWriteError.
        fail_count: Whether count() raises StoreConnectionError.
        fail_reads_from: Offset from which find_window() raises StoreConnectionError.
        write_duration: Seconds the clock advances on each insert.
        read_duration: Seconds the clock advances on each find_window().
        insert_calls: Number of insert attempts made.
    """

    def __init__(
        self,
        endpoint: str = "faulty.local",
        *,
        clock: FakeClock | None = None,
        write_duration: float = 0.0,
        read_duration: float = 0.0,
    ) -> None:
        super().__init__(endpoint, enable_tracing=False)
        self.insert_failures = 0
        self.fail_count = False
        self.fail_reads_from: int | None = None
        self.write_duration = write_duration
        self.read_duration = read_duration
        self.insert_calls = 0
        self._clock = clock

    async def count(self, collection: str) -> int:
        if self.fail_count:
            raise StoreConnectionError(self.endpoint, "count timed out")
        return await super().count(collection)

    async def find_window(self, collection: str, offset: int, limit: int) -> list[Document]:
        if self.fail_reads_from is not None and offset >= self.fail_reads_from:
            raise StoreConnectionError(self.endpoint, "cursor killed")
        if self._clock is not None:
            self._clock.advance(self.read_duration)
        return await super().find_window(collection, offset, limit)

    async def insert_many(self, collection: str, documents: list[Document]) -> int:
        self.insert_calls += 1
        if self._clock is not None:
            self._clock.advance(self.write_duration)
        if self.insert_failures > 0:
            self.insert_failures -= 1
            raise TransientWriteError("not primary", collection=collection)
        return await super().insert_many(collection, documents)


class StaticConnector:
    """
    StoreConnector returning prepared stores by label.

    Attributes:
        connected: Labels connected, in order.
        unreachable: Labels whose connect() raises StoreConnectionError.
    """

    def __init__(self, stores: dict[str, DocumentStore]) -> None:
        self._stores = stores
        self.connected: list[str] = []
        self.unreachable: set[str] = set()

    async def connect(self, credentials: StoreCredentials, label: str) -> DocumentStore:
        if label in self.unreachable:
            raise StoreConnectionError(label, f"{credentials.host} did not answer a ping")
        self.connected.append(label)
        return self._stores[label]


def make_documents(count: int, start: int = 0) -> list[dict[str, Any]]:
    return [
        {"_id": i, "name": f"marker-{i}", "year": 1000 + i % 900, "tags": ["city"]}
        for i in range(start, start + count)
    ]


def make_credentials(host: str = "localhost", **overrides: Any) -> StoreCredentials:
    values: dict[str, Any] = {
        "host": host,
        "username": "migrator",
        "password": SecretStr("s3cret"),
    }
    values.update(overrides)
    return StoreCredentials(**values)


__all__ = [
    "FakeClock",
    "RecordingSleep",
    "FaultyDocumentStore",
    "StaticConnector",
    "make_documents",
    "make_credentials",
]
