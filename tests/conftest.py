"""
Shared pytest fixtures for the docshift test suite.

This module provides:
- Store fixtures (source_store, target_store, seeded_source)
- Deterministic time fixtures (fake_clock, recording_sleep)
- Component fixtures (processor, mock_tracer)
- Credential fixtures (credential_provider, connector)
"""

from __future__ import annotations

import pytest

from docshift.batch_processor import BatchProcessor
from docshift.credentials import StaticCredentialProvider
from docshift.observability import MockTracer
from docshift.progress import CollectingProgressSink
from docshift.retry import WriteRetryPolicy
from docshift.stores.in_memory import InMemoryDocumentStore
from tests.fixtures import (
    FakeClock,
    FaultyDocumentStore,
    RecordingSleep,
    StaticConnector,
    make_credentials,
    make_documents,
)

COLLECTION = "markers"
SOURCE_REF = "chronas/mongodb/source"
TARGET_REF = "chronas/docdb/target"


@pytest.fixture
def fake_clock() -> FakeClock:
    """Provide a clock that only advances when told to."""
    return FakeClock()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    """Provide a sleep that records delays instead of waiting."""
    return RecordingSleep()


@pytest.fixture
def source_store() -> InMemoryDocumentStore:
    """Provide an empty source store."""
    return InMemoryDocumentStore("source.local", enable_tracing=False)


@pytest.fixture
def seeded_source(source_store: InMemoryDocumentStore) -> InMemoryDocumentStore:
    """Provide a source store holding 2 500 documents in ``markers``."""
    source_store.seed(COLLECTION, make_documents(2500))
    return source_store


@pytest.fixture
def target_store(fake_clock: FakeClock) -> FaultyDocumentStore:
    """Provide an empty target store with failure injection."""
    return FaultyDocumentStore("cluster.docdb.local", clock=fake_clock)


@pytest.fixture
def progress_sink() -> CollectingProgressSink:
    return CollectingProgressSink()


@pytest.fixture
def processor(
    seeded_source: InMemoryDocumentStore,
    target_store: FaultyDocumentStore,
    fake_clock: FakeClock,
    recording_sleep: RecordingSleep,
    progress_sink: CollectingProgressSink,
) -> BatchProcessor:
    """Provide a BatchProcessor copying ``seeded_source`` into ``target_store``."""
    return BatchProcessor(
        seeded_source,
        target_store,
        write_retry=WriteRetryPolicy(),
        progress_sink=progress_sink,
        clock=fake_clock,
        sleep=recording_sleep,
        enable_tracing=False,
        enable_metrics=False,
    )


@pytest.fixture
def mock_tracer() -> MockTracer:
    """Provide a tracer recording span names and attributes."""
    return MockTracer()


@pytest.fixture
def credential_provider() -> StaticCredentialProvider:
    return StaticCredentialProvider(
        {
            SOURCE_REF: make_credentials("mongo.source.local"),
            TARGET_REF: make_credentials("cluster.docdb.local"),
        }
    )


@pytest.fixture
def connector(
    seeded_source: InMemoryDocumentStore, target_store: FaultyDocumentStore
) -> StaticConnector:
    return StaticConnector({"source": seeded_source, "target": target_store})
