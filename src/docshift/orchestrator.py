"""
MigrationOrchestrator - Sequences a complete migration.

The orchestrator drives a migration through a linear state machine:

    PRE_VALIDATION -> MIGRATION -> CONFIG_UPDATE -> DONE
          |               |              |
          +---------------+--------------+----> FAILED

Each step runs through the same retry wrapper (3 attempts, linear
backoff of ``attempt * 2s``). The first step that exhausts its attempts,
or fails with a non-retryable error, fails the run; later steps never
execute.

Responsibilities:
    - Verify both stores before copying anything
    - Own the resume loop: re-invoke the batch runner with each resume
      token until the collection completes, one collection at a time
    - Optionally copy secondary indexes after each collection
    - Point the application at the target store once migration is done

Rollback is never triggered here. It is a manual operation of the
VerificationController.

Usage:
    >>> orchestrator = MigrationOrchestrator(
    ...     verifier=VerificationController(source, target),
    ...     batch_runner=BatchProcessor(source, target),
    ...     config_updater=updater,
    ...     target_credential_ref="chronas/docdb/target",
    ... )
    >>> run = await orchestrator.run(["users", "areas", "markers"])
    >>> run.state
    <OrchestrationState.DONE: 'Done'>
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable

from docshift.config_updater import ConfigurationUpdater
from docshift.exceptions import (
    BatchProcessingError,
    MigrationStalledError,
    StepFailedError,
    VerificationMismatchError,
    log_classified_error,
)
from docshift.indexes import migrate_indexes
from docshift.models import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_TIME_BUDGET_MS,
    BatchClassification,
    CollectionSummary,
    MigrationJob,
    MigrationResult,
    OrchestrationRun,
    OrchestrationState,
    StepRecord,
    StepStatus,
    VerificationReport,
)
from docshift.observability import (
    ATTR_COLLECTION,
    ATTR_ERROR_TYPE,
    ATTR_MIGRATION_ATTEMPT,
    ATTR_MIGRATION_DRY_RUN,
    ATTR_MIGRATION_STEP,
    Tracer,
    create_tracer,
)
from docshift.retry import Sleep, StepRetryPolicy, is_step_retryable
from docshift.stores.interface import DocumentStore

logger = logging.getLogger(__name__)

STEP_PRE_VALIDATION = "PreValidation"
STEP_MIGRATION = "Migration"
STEP_CONFIG_UPDATE = "ConfigUpdate"


@runtime_checkable
class BatchRunner(Protocol):
    """Runs one time-bounded invocation of a collection migration."""

    async def process(self, job: MigrationJob) -> MigrationResult: ...


@runtime_checkable
class Verifier(Protocol):
    """Compares source and target collections."""

    async def verify(self, collections: list[str]) -> list[VerificationReport]: ...


class MigrationOrchestrator:
    """
    Runs pre-validation, migration and configuration update in order.

    Example:
        >>> run = await orchestrator.run(["markers"], dry_run=True)
        >>> [s.step_name for s in run.steps]
        ['PreValidation']

    Attributes:
        _verifier: Verifies collections during pre-validation.
        _batch_runner: Copies collections one invocation at a time.
        _config_updater: Points the application at the target store.
        _target_credential_ref: Reference the application is pointed at.
        _source: Source store, needed only for index migration.
        _target: Target store, needed only for index migration.
        _step_retry: Retry policy shared by every step.
    """

    def __init__(
        self,
        verifier: Verifier,
        batch_runner: BatchRunner,
        config_updater: ConfigurationUpdater,
        *,
        target_credential_ref: str,
        source: DocumentStore | None = None,
        target: DocumentStore | None = None,
        step_retry: StepRetryPolicy | None = None,
        sleep: Sleep = asyncio.sleep,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            verifier: Verifier used for pre-validation.
            batch_runner: Runner of batch invocations (usually a BatchProcessor).
            config_updater: Updater of the application configuration.
            target_credential_ref: Credential reference of the target store.
            source: Source store, required when indexes are migrated.
            target: Target store, required when indexes are migrated.
            step_retry: Step retry policy (defaults to 3 attempts, 2s linear).
            sleep: Awaitable sleep taking seconds.
            tracer: Optional custom Tracer instance.
            enable_tracing: Whether to enable OpenTelemetry tracing.
                          Ignored if tracer is explicitly provided.
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._verifier = verifier
        self._batch_runner = batch_runner
        self._config_updater = config_updater
        self._target_credential_ref = target_credential_ref
        self._source = source
        self._target = target
        self._step_retry = step_retry or StepRetryPolicy()
        self._sleep = sleep

    async def run(
        self,
        collections: list[str],
        *,
        dry_run: bool = False,
        skip_validation: bool = False,
        auto_rollback: bool = False,
        migrate_indexes: bool = False,
        batch_size: int = DEFAULT_BATCH_SIZE,
        time_budget_ms: int = DEFAULT_TIME_BUDGET_MS,
    ) -> OrchestrationRun:
        """
        Run a complete migration of ``collections``.

        Args:
            collections: Collections to migrate, in order.
            dry_run: Validate only; migration and configuration update are skipped.
            skip_validation: Skip the pre-validation step.
            auto_rollback: Accepted for compatibility; rollback stays manual.
            migrate_indexes: Copy secondary indexes after each collection.
            batch_size: Batch size of every invocation.
            time_budget_ms: Time budget of every invocation.

        Returns:
            OrchestrationRun ending in DONE or FAILED. Step failures are
            reported in the run, never raised.

        Raises:
            ValueError: If indexes are requested without source and target stores.
        """
        if migrate_indexes and (self._source is None or self._target is None):
            raise ValueError("migrate_indexes requires the source and target stores")

        run = OrchestrationRun(dry_run=dry_run)
        offsets: dict[str, int] = {}

        if auto_rollback:
            logger.info("auto_rollback requested; rollback remains a manual operation")

        logger.info(
            "Starting migration orchestration: collections=%s, batch size %d, dry run %s",
            ", ".join(collections),
            batch_size,
            dry_run,
        )

        with self._tracer.span(
            "docshift.orchestrator.run",
            {ATTR_MIGRATION_DRY_RUN: dry_run},
        ):
            try:
                if skip_validation:
                    logger.info("Skipping pre-validation")
                else:
                    run.state = OrchestrationState.PRE_VALIDATION
                    await self._execute_step(
                        run, STEP_PRE_VALIDATION, lambda: self._pre_validate(collections)
                    )

                run.state = OrchestrationState.MIGRATION
                if dry_run:
                    logger.info("DRY RUN: Skipping data migration")
                else:
                    await self._execute_step(
                        run,
                        STEP_MIGRATION,
                        lambda: self._migrate(
                            run, collections, offsets, batch_size, time_budget_ms, migrate_indexes
                        ),
                    )

                run.state = OrchestrationState.CONFIG_UPDATE
                if dry_run:
                    logger.info("DRY RUN: Skipping application configuration update")
                else:
                    await self._execute_step(run, STEP_CONFIG_UPDATE, self._update_configuration)

                run.state = OrchestrationState.DONE
                run.success = True
                logger.info("Migration orchestration completed successfully")
            except StepFailedError as e:
                run.state = OrchestrationState.FAILED
                run.error = str(e)
                logger.error("Migration orchestration failed: %s", e)

        run.finished_at = datetime.now(UTC)
        return run

    async def _execute_step(
        self,
        run: OrchestrationRun,
        step_name: str,
        operation: Callable[[], Awaitable[str | None]],
    ) -> None:
        policy = self._step_retry
        logger.info("Executing: %s", step_name)

        for attempt in range(1, policy.max_attempts + 1):
            with self._tracer.span(
                "docshift.orchestrator.step",
                {ATTR_MIGRATION_STEP: step_name, ATTR_MIGRATION_ATTEMPT: attempt},
            ) as span:
                try:
                    detail = await operation()
                except Exception as e:
                    if span is not None:
                        span.set_attribute(ATTR_ERROR_TYPE, type(e).__name__)
                    log_classified_error(
                        logger, f"{step_name} (attempt {attempt}/{policy.max_attempts})", e
                    )
                    if attempt == policy.max_attempts or not is_step_retryable(e):
                        run.steps.append(
                            StepRecord(step_name, StepStatus.FAILED, attempt, detail=str(e))
                        )
                        raise StepFailedError(step_name, attempt, e) from e
                else:
                    run.steps.append(
                        StepRecord(step_name, StepStatus.SUCCESS, attempt, detail=detail)
                    )
                    logger.info("Completed: %s", step_name)
                    return

            delay = policy.delay(attempt)
            logger.info("Retrying %s in %.1fs", step_name, delay)
            await self._sleep(delay)

    async def _pre_validate(self, collections: list[str]) -> str:
        reports = await self._verifier.verify(collections)
        failed = [r for r in reports if not r.is_match]
        if failed:
            raise VerificationMismatchError(failed)
        return f"{len(reports)} collections verified"

    async def _migrate(
        self,
        run: OrchestrationRun,
        collections: list[str],
        offsets: dict[str, int],
        batch_size: int,
        time_budget_ms: int,
        copy_indexes: bool,
    ) -> str:
        summaries = {s.collection_name: s for s in run.collections}

        for name in collections:
            summary = summaries.get(name)
            if summary is None:
                summary = CollectionSummary(collection_name=name)
                summaries[name] = summary
                run.collections.append(summary)
            if summary.completed:
                continue

            logger.info("Migrating collection: %s", name)
            with self._tracer.span("docshift.orchestrator.collection", {ATTR_COLLECTION: name}):
                job = MigrationJob(
                    collection_name=name,
                    batch_size=batch_size,
                    start_offset=offsets.get(name, 0),
                    time_budget_ms=time_budget_ms,
                )
                await self._migrate_collection(job, summary, offsets)

                if copy_indexes:
                    if self._source is None or self._target is None:
                        raise ValueError("migrate_indexes requires the source and target stores")
                    indexes = await migrate_indexes(self._source, self._target, name)
                    summary.indexes_created = indexes.migrated_count

        documents = sum(s.documents_written for s in run.collections)
        return f"{len(collections)} collections migrated, {documents} documents written"

    async def _migrate_collection(
        self,
        job: MigrationJob,
        summary: CollectionSummary,
        offsets: dict[str, int],
    ) -> None:
        while True:
            result = await self._batch_runner.process(job)
            summary.invocations += 1
            summary.total_documents = result.total_documents
            summary.documents_written += result.documents_written
            summary.skipped_batches += result.skipped_batches

            if not result.success:
                fatal = [e for e in result.errors if e.classification == BatchClassification.FATAL]
                offsets[job.collection_name] = (
                    result.next_resume_token
                    if result.next_resume_token is not None
                    else job.start_offset
                )
                raise BatchProcessingError(
                    job.collection_name, result.next_resume_token, fatal[-1].message
                )

            if result.completed:
                summary.completed = True
                offsets.pop(job.collection_name, None)
                logger.info(
                    "Collection %s completed after %d invocations",
                    job.collection_name,
                    summary.invocations,
                )
                return

            token = result.next_resume_token
            if token is None or token <= job.start_offset:
                raise MigrationStalledError(job.collection_name, job.start_offset)

            offsets[job.collection_name] = token
            logger.info(
                "Collection %s paused at offset %d (%s), resuming",
                job.collection_name,
                token,
                result.stop_reason.value if result.stop_reason else "unknown",
            )
            job = job.resume(result)

    async def _update_configuration(self) -> str:
        await self._config_updater.point_to(self._target_credential_ref)
        return f"application configuration points at {self._target_credential_ref}"


__all__ = [
    "STEP_PRE_VALIDATION",
    "STEP_MIGRATION",
    "STEP_CONFIG_UPDATE",
    "BatchRunner",
    "Verifier",
    "MigrationOrchestrator",
]
