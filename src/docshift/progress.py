"""
Progress heartbeats for long-running batch invocations.

The batch processor emits a ProgressSnapshot every few batches. Sinks are
best-effort: a failing sink is logged and never aborts the copy loop.

Sinks:
    - LoggingProgressSink: Logs each snapshot (the default)
    - StepFunctionsHeartbeatSink: Sends an AWS Step Functions task heartbeat
    - CollectingProgressSink: Keeps snapshots in memory, for tests
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

import boto3

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressSnapshot:
    """
    Point-in-time progress of a batch invocation.

    Attributes:
        collection_name: Collection being migrated.
        processed_batches: Batches handled so far.
        processed_documents: Documents handled so far.
        remaining_documents: Documents left.
        current_offset: Offset of the next window.
        total_documents: Source document count.
        timestamp: When the snapshot was taken.
    """

    collection_name: str
    processed_batches: int
    processed_documents: int
    remaining_documents: int
    current_offset: int
    total_documents: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def progress_percent(self) -> float:
        if self.total_documents == 0:
            return 100.0
        return round(self.current_offset / self.total_documents * 100, 1)

    def to_dict(self) -> dict[str, Any]:
        return {
            "collectionName": self.collection_name,
            "processedBatches": self.processed_batches,
            "processedDocuments": self.processed_documents,
            "remainingDocuments": self.remaining_documents,
            "currentOffset": self.current_offset,
            "progressPercent": self.progress_percent,
            "timestamp": self.timestamp.isoformat(),
        }


@runtime_checkable
class ProgressSink(Protocol):
    """Receives progress snapshots from the batch processor."""

    async def emit(self, snapshot: ProgressSnapshot) -> None: ...


class LoggingProgressSink:
    async def emit(self, snapshot: ProgressSnapshot) -> None:
        logger.info(
            "Progress: %d/%d documents (%.1f%%) for %s",
            snapshot.current_offset,
            snapshot.total_documents,
            snapshot.progress_percent,
            snapshot.collection_name,
        )


class CollectingProgressSink:
    def __init__(self) -> None:
        self.snapshots: list[ProgressSnapshot] = []

    async def emit(self, snapshot: ProgressSnapshot) -> None:
        self.snapshots.append(snapshot)


class StepFunctionsHeartbeatSink:
    """
    Keeps an AWS Step Functions task alive while a collection is copied.

    Each snapshot sends a task heartbeat for ``task_token``. The blocking
    boto3 call runs in a worker thread.

    Example:
        >>> sink = StepFunctionsHeartbeatSink(event["taskToken"], region_name="eu-west-1")
        >>> processor = BatchProcessor(source, target, progress_sink=sink)
    """

    def __init__(
        self,
        task_token: str,
        *,
        client: Any | None = None,
        region_name: str = "eu-west-1",
    ) -> None:
        self._task_token = task_token
        self._client = client or boto3.client("stepfunctions", region_name=region_name)

    async def emit(self, snapshot: ProgressSnapshot) -> None:
        logger.info(
            "Sending task heartbeat: %d documents processed", snapshot.processed_documents
        )
        await asyncio.to_thread(self._client.send_task_heartbeat, taskToken=self._task_token)


async def emit_best_effort(sink: ProgressSink, snapshot: ProgressSnapshot) -> bool:
    """
    Emit a snapshot, logging instead of raising when the sink fails.

    Returns:
        True if the sink accepted the snapshot.
    """
    try:
        await sink.emit(snapshot)
    except Exception as e:
        logger.warning("Failed to emit progress for %s: %s", snapshot.collection_name, e)
        return False
    return True


__all__ = [
    "ProgressSnapshot",
    "ProgressSink",
    "LoggingProgressSink",
    "CollectingProgressSink",
    "StepFunctionsHeartbeatSink",
    "emit_best_effort",
]
