"""
BatchProcessor - Copies one collection from source to target in batches.

The BatchProcessor runs one time-bounded invocation of a collection
migration. It reads windows of documents from the source through the
BatchCursor, writes them to the target with retry and backoff, and stops
cleanly when the collection is done, the time budget is used up, the batch
limit is reached or a batch fails fatally. The returned MigrationResult
carries the resume token for the next invocation.

Responsibilities:
    - Resolve the source document count once per invocation
    - Copy windows in ascending ``_id`` order with unordered inserts
    - Skip batches that already exist at the target
    - Respect the time budget between batches
    - Emit progress heartbeats every few batches

Usage:
    >>> from docshift.batch_processor import BatchProcessor
    >>> from docshift.models import MigrationJob
    >>>
    >>> processor = BatchProcessor(source, target)
    >>> result = await processor.process(MigrationJob(collection_name="markers"))
    >>> while not result.completed and result.success:
    ...     result = await processor.process(job.resume(result))
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime

from docshift.cursor import BatchCursor
from docshift.metrics import MigrationMetrics
from docshift.models import (
    BatchClassification,
    BatchOutcome,
    CollectionProgress,
    MigrationJob,
    MigrationResult,
    StopReason,
)
from docshift.observability import (
    ATTR_BATCH_CLASSIFICATION,
    ATTR_BATCH_NUMBER,
    ATTR_BATCH_OFFSET,
    ATTR_BATCH_SIZE,
    ATTR_COLLECTION,
    ATTR_DOCUMENT_COUNT,
    ATTR_MIGRATION_DRY_RUN,
    ATTR_MIGRATION_START_OFFSET,
    ATTR_MIGRATION_TOTAL_DOCUMENTS,
    Tracer,
    create_tracer,
)
from docshift.progress import LoggingProgressSink, ProgressSink, ProgressSnapshot, emit_best_effort
from docshift.retry import Sleep, WriteRetryPolicy, write_with_retry
from docshift.stores.interface import Document, DocumentStore

logger = logging.getLogger(__name__)


class BatchProcessor:
    """
    Runs time-bounded batch invocations of a collection migration.

    The processor is stateless between invocations; everything needed to
    continue is in the MigrationResult it returns. One processor can serve
    any number of collections, but only one job per collection may run at
    a time.

    Example:
        >>> processor = BatchProcessor(
        ...     source,
        ...     target,
        ...     write_retry=WriteRetryPolicy(max_attempts=5),
        ... )
        >>> result = await processor.process(MigrationJob(collection_name="areas"))
        >>> result.next_resume_token
        None

    Attributes:
        _source: Store to read from.
        _target: Store to write to.
        _write_retry: Retry policy of batch writes.
        _progress_sink: Receiver of progress heartbeats.
        _clock: Monotonic clock in seconds, used for the time budget.
        _sleep: Awaitable sleep used between write retries.
    """

    def __init__(
        self,
        source: DocumentStore,
        target: DocumentStore,
        *,
        write_retry: WriteRetryPolicy | None = None,
        progress_sink: ProgressSink | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Sleep = asyncio.sleep,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
        enable_metrics: bool = True,
    ) -> None:
        """
        Initialize the batch processor.

        Args:
            source: DocumentStore to read from.
            target: DocumentStore to write to.
            write_retry: Retry policy for batch writes (defaults to 3 attempts).
            progress_sink: Receiver of heartbeats (defaults to logging them).
            clock: Monotonic clock in seconds.
            sleep: Awaitable sleep taking seconds.
            tracer: Optional custom Tracer instance. If not provided, one is
                   created based on enable_tracing setting.
            enable_tracing: Whether to enable OpenTelemetry tracing.
                          Ignored if tracer is explicitly provided.
            enable_metrics: Whether to record OpenTelemetry metrics.
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._source = source
        self._target = target
        self._write_retry = write_retry or WriteRetryPolicy()
        self._progress_sink: ProgressSink = progress_sink or LoggingProgressSink()
        self._clock = clock
        self._sleep = sleep
        self._enable_metrics = enable_metrics

    async def process(self, job: MigrationJob) -> MigrationResult:
        """
        Run one invocation of a collection migration.

        Never raises for store failures: a failed count, read or write is
        recorded as a fatal error in the result, whose resume token points
        at the batch that failed.

        Args:
            job: Parameters of the invocation.

        Returns:
            MigrationResult describing what was done and where to resume.
        """
        started = self._clock()
        result = MigrationResult(
            collection_name=job.collection_name,
            batch_size=job.batch_size,
            start_offset=job.start_offset,
            dry_run=job.dry_run,
        )
        metrics = MigrationMetrics(job.collection_name, enable_metrics=self._enable_metrics)

        with self._tracer.span(
            "docshift.batch_processor.process",
            {
                ATTR_COLLECTION: job.collection_name,
                ATTR_BATCH_SIZE: job.batch_size,
                ATTR_MIGRATION_START_OFFSET: job.start_offset,
                ATTR_MIGRATION_DRY_RUN: job.dry_run,
            },
        ):
            logger.info(
                "Starting batch processing of %s: batch size %d, start offset %d, "
                "max batches %s, dry run %s",
                job.collection_name,
                job.batch_size,
                job.start_offset,
                job.max_batches or "unlimited",
                job.dry_run,
            )

            try:
                result.total_documents = await self._source.count(job.collection_name)
            except Exception as e:
                logger.error("Failed to count documents in %s: %s", job.collection_name, e)
                result.record_error(1, job.start_offset, str(e), BatchClassification.FATAL)
                return self._finish(result, StopReason.FATAL)

            result.remaining_documents = max(0, result.total_documents - job.start_offset)
            logger.info(
                "Total documents in %s: %d", job.collection_name, result.total_documents
            )

            stop_reason = await self._run_batches(job, result, metrics, started)
            return self._finish(result, stop_reason)

    async def _run_batches(
        self,
        job: MigrationJob,
        result: MigrationResult,
        metrics: MigrationMetrics,
        started: float,
    ) -> StopReason:
        cursor = BatchCursor(self._source, job.collection_name)
        batch_number = 0

        while result.current_offset < result.total_documents:
            offset = result.current_offset

            elapsed_ms = (self._clock() - started) * 1000
            if elapsed_ms >= job.time_budget_ms:
                logger.info("Time limit reached (%dms), stopping at offset %d", elapsed_ms, offset)
                return StopReason.TIME_BUDGET

            if job.max_batches is not None and batch_number >= job.max_batches:
                logger.info("Batch limit reached (%d), stopping at offset %d", batch_number, offset)
                return StopReason.BATCH_LIMIT

            batch_number += 1
            batch_started = self._clock()

            try:
                window = await cursor.next_window(offset, job.batch_size)
            except Exception as e:
                logger.error("Failed to read batch %d at offset %d: %s", batch_number, offset, e)
                result.record_error(batch_number, offset, str(e), BatchClassification.FATAL)
                return StopReason.FATAL

            if not window:
                logger.info("No more documents to process in %s", job.collection_name)
                return StopReason.COMPLETED

            outcome = await self._write_batch(job, batch_number, offset, window)
            metrics.record_batch(
                outcome.classification.value,
                documents_written=outcome.documents_written,
                duration_ms=(self._clock() - batch_started) * 1000,
                attempts=outcome.attempts,
            )
            result.documents_written += outcome.documents_written

            if outcome.classification == BatchClassification.OK:
                result.advance(len(window))
            elif outcome.classification == BatchClassification.DUPLICATE_SKIP:
                logger.warning(
                    "Duplicate key error at offset %d, continuing with next batch", offset
                )
                result.record_error(
                    batch_number, offset, outcome.error or "duplicate key", outcome.classification
                )
                result.skipped_batches += 1
                result.advance(job.batch_size)
            else:
                logger.error(
                    "Batch processing error at offset %d: %s", offset, outcome.error
                )
                result.record_error(
                    batch_number, offset, outcome.error or "write failed", outcome.classification
                )
                return StopReason.FATAL

            if batch_number % job.progress_interval == 0:
                await emit_best_effort(
                    self._progress_sink,
                    ProgressSnapshot(
                        collection_name=job.collection_name,
                        processed_batches=result.processed_batches,
                        processed_documents=result.processed_documents,
                        remaining_documents=result.remaining_documents,
                        current_offset=result.current_offset,
                        total_documents=result.total_documents,
                    ),
                )

        return StopReason.COMPLETED

    async def _write_batch(
        self,
        job: MigrationJob,
        batch_number: int,
        offset: int,
        window: list[Document],
    ) -> BatchOutcome:
        with self._tracer.span(
            "docshift.batch_processor.write_batch",
            {
                ATTR_COLLECTION: job.collection_name,
                ATTR_BATCH_NUMBER: batch_number,
                ATTR_BATCH_OFFSET: offset,
                ATTR_DOCUMENT_COUNT: len(window),
            },
        ) as span:
            if job.dry_run:
                logger.info("DRY RUN: Would insert %d documents", len(window))
                outcome = BatchOutcome(
                    documents_read=len(window),
                    documents_written=0,
                    classification=BatchClassification.OK,
                    attempts=0,
                )
            else:
                outcome = await write_with_retry(
                    lambda: self._target.insert_many(job.collection_name, window),
                    documents_read=len(window),
                    policy=self._write_retry,
                    sleep=self._sleep,
                    operation_name=f"batch {batch_number} of {job.collection_name}",
                )

            if span is not None:
                span.set_attribute(ATTR_BATCH_CLASSIFICATION, outcome.classification.value)

            logger.debug(
                "Batch %d at offset %d: %s (%d/%d written)",
                batch_number,
                offset,
                outcome.classification.value,
                outcome.documents_written,
                outcome.documents_read,
            )
            return outcome

    def _finish(self, result: MigrationResult, stop_reason: StopReason) -> MigrationResult:
        result.finished_at = datetime.now(UTC)

        if stop_reason == StopReason.COMPLETED:
            result.completed = True
            result.next_resume_token = None
        else:
            result.completed = False
            result.next_resume_token = result.current_offset
        result.stop_reason = stop_reason

        if result.completed:
            logger.info("Collection %s processing completed", result.collection_name)
        else:
            logger.info(
                "Collection %s processing paused at offset %d (%s)",
                result.collection_name,
                result.current_offset,
                stop_reason.value,
            )

        logger.info(
            "Batch processing summary for %s: %d batches, %d documents, %d remaining, "
            "%d errors, %sms",
            result.collection_name,
            result.processed_batches,
            result.processed_documents,
            result.remaining_documents,
            len(result.errors),
            result.duration_ms,
        )
        return result

    async def collection_progress(self, collection_name: str) -> CollectionProgress:
        """
        Derive the migration progress of a collection from document counts.

        Args:
            collection_name: Collection to inspect.

        Returns:
            CollectionProgress comparing source and target counts.
        """
        with self._tracer.span(
            "docshift.batch_processor.collection_progress",
            {ATTR_COLLECTION: collection_name},
        ) as span:
            source_count = await self._source.count(collection_name)
            target_count = await self._target.count(collection_name)
            if span is not None:
                span.set_attribute(ATTR_MIGRATION_TOTAL_DOCUMENTS, source_count)

            progress = CollectionProgress.from_counts(collection_name, source_count, target_count)
            logger.info(
                "Status of %s: %d/%d migrated (%.1f%%)",
                collection_name,
                progress.migrated_count,
                progress.source_count,
                progress.progress_percent,
            )
            return progress


__all__ = ["BatchProcessor"]
