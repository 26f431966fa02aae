"""Unit tests for progress snapshots and sinks."""

import logging
from unittest.mock import MagicMock

import pytest

from docshift.progress import (
    CollectingProgressSink,
    LoggingProgressSink,
    ProgressSink,
    ProgressSnapshot,
    StepFunctionsHeartbeatSink,
    emit_best_effort,
)


def snapshot(current_offset: int = 500, total: int = 2000) -> ProgressSnapshot:
    return ProgressSnapshot(
        collection_name="markers",
        processed_batches=5,
        processed_documents=current_offset,
        remaining_documents=total - current_offset,
        current_offset=current_offset,
        total_documents=total,
    )


class FailingSink:
    async def emit(self, snapshot: ProgressSnapshot) -> None:
        raise RuntimeError("task timed out")


class TestProgressSnapshot:
    def test_progress_percent(self):
        assert snapshot(500, 2000).progress_percent == 25.0
        assert snapshot(1, 3).progress_percent == 33.3

    def test_empty_collection_is_complete(self):
        assert snapshot(0, 0).progress_percent == 100.0

    def test_to_dict(self):
        data = snapshot().to_dict()

        assert data["collectionName"] == "markers"
        assert data["currentOffset"] == 500
        assert data["remainingDocuments"] == 1500
        assert data["progressPercent"] == 25.0


class TestSinks:
    def test_sinks_satisfy_protocol(self):
        assert isinstance(LoggingProgressSink(), ProgressSink)
        assert isinstance(CollectingProgressSink(), ProgressSink)

    @pytest.mark.asyncio
    async def test_logging_sink(self, caplog):
        with caplog.at_level(logging.INFO, logger="docshift.progress"):
            await LoggingProgressSink().emit(snapshot())

        assert "500/2000 documents (25.0%) for markers" in caplog.text

    @pytest.mark.asyncio
    async def test_heartbeat_sink(self):
        client = MagicMock()
        sink = StepFunctionsHeartbeatSink("task-token", client=client)

        await sink.emit(snapshot())

        client.send_task_heartbeat.assert_called_once_with(taskToken="task-token")


class TestEmitBestEffort:
    @pytest.mark.asyncio
    async def test_accepted(self):
        sink = CollectingProgressSink()

        assert await emit_best_effort(sink, snapshot()) is True
        assert len(sink.snapshots) == 1

    @pytest.mark.asyncio
    async def test_failure_is_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="docshift.progress"):
            accepted = await emit_best_effort(FailingSink(), snapshot())

        assert accepted is False
        assert "task timed out" in caplog.text
