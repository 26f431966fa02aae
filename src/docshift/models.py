"""
Data models for the docshift migration engine.

This module defines the values exchanged between the batch processor, the
verification controller, the orchestrator and the invocation handlers.

Models in this module:

Enums:
    - BatchClassification: How a batch write ended
    - StopReason: Why a batch invocation stopped
    - VerificationStatus: Outcome of verifying one collection
    - StoreState: Reachability of a store in a status report
    - StepStatus: Status of an orchestration step
    - OrchestrationState: Orchestrator state machine

Invocation:
    - MigrationJob: Parameters of one batch invocation (validated, immutable)

Batch processing:
    - BatchOutcome: Result of writing one batch
    - BatchError: Error recorded against a batch
    - MigrationResult: Progress of an invocation, threaded through the copy loop
    - CollectionProgress: Migration progress of a collection derived from counts

Verification:
    - VerificationReport: Per-collection comparison of source and target
    - StoreStatus / CollectionStatus / StatusReport: Shallow health report
    - RollbackResult: Result of re-pointing the application configuration

Orchestration:
    - StepRecord: One attempt of an orchestration step
    - CollectionSummary: Migration summary of one collection
    - OrchestrationRun: Full record of an orchestrated migration
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DEFAULT_BATCH_SIZE = 1000
DEFAULT_TIME_BUDGET_MS = 840_000
DEFAULT_PROGRESS_INTERVAL = 10


class BatchClassification(Enum):
    """
    Classification of a batch write.

    Attributes:
        OK: Every document of the batch was written (or counted, on dry run).
        DUPLICATE_SKIP: The batch already exists at the target and is skipped.
        FATAL: The batch failed after all retries; the invocation aborts.
    """

    OK = "ok"
    DUPLICATE_SKIP = "duplicate-skip"
    FATAL = "fatal"


class StopReason(Enum):
    """Why a batch invocation stopped."""

    COMPLETED = "completed"
    TIME_BUDGET = "time-budget"
    BATCH_LIMIT = "batch-limit"
    FATAL = "fatal"


class MigrationJob(BaseModel):
    """
    Parameters of one batch invocation.

    Jobs are immutable and never persisted by the engine. Both snake_case
    field names and the camelCase names used in invocation payloads are
    accepted.

    Attributes:
        collection_name: Name of the collection to copy.
        batch_size: Documents per batch (default 1000).
        start_offset: Document offset into the source collection ordered by
            ascending ``_id`` (default 0).
        max_batches: Upper bound on batches handled by this invocation.
        time_budget_ms: Wall-clock budget of the invocation in milliseconds
            (default 840000, a 15 minute limit minus one minute of margin).
        dry_run: Read and count without writing (default False).
        progress_interval: Emit a progress heartbeat every N batches (default 10).

    Example:
        >>> job = MigrationJob(collectionName="markers", batchSize=500)
        >>> job.batch_size
        500
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    collection_name: str = Field(
        ...,
        min_length=1,
        description="Collection to migrate",
    )
    batch_size: int = Field(
        default=DEFAULT_BATCH_SIZE,
        ge=1,
        description="Documents per batch",
    )
    start_offset: int = Field(
        default=0,
        ge=0,
        description="Offset of the first document to process",
    )
    max_batches: int | None = Field(
        default=None,
        ge=1,
        description="Maximum number of batches for this invocation",
    )
    time_budget_ms: int = Field(
        default=DEFAULT_TIME_BUDGET_MS,
        gt=0,
        description="Wall-clock budget of the invocation in milliseconds",
    )
    dry_run: bool = Field(
        default=False,
        description="Count documents without writing them",
    )
    progress_interval: int = Field(
        default=DEFAULT_PROGRESS_INTERVAL,
        ge=1,
        description="Batches between progress heartbeats",
    )

    def resume(self, result: MigrationResult) -> MigrationJob:
        """
        Build the job that continues where ``result`` stopped.

        Args:
            result: Result of a previous invocation of this job.

        Returns:
            A copy of this job starting at the result's resume token.

        Raises:
            ValueError: If the result is already completed.
        """
        if result.completed or result.next_resume_token is None:
            raise ValueError(f"Migration of '{result.collection_name}' is already completed")
        return self.model_copy(update={"start_offset": result.next_resume_token})


@dataclass(frozen=True)
class BatchOutcome:
    """
    Result of writing one batch.

    Batch writes return an outcome instead of raising, so a fatal failure
    has to be inspected by the caller.

    Attributes:
        documents_read: Documents in the window.
        documents_written: Documents the target accepted.
        classification: How the write ended.
        error: Error message, None when the classification is OK.
        attempts: Number of write attempts made (0 on dry run).
    """

    documents_read: int
    documents_written: int
    classification: BatchClassification
    error: str | None = None
    attempts: int = 1

    @property
    def is_fatal(self) -> bool:
        return self.classification == BatchClassification.FATAL


@dataclass(frozen=True)
class BatchError:
    """
    Error recorded against a batch.

    Attributes:
        batch_number: 1-based number of the batch within the invocation.
        offset: Offset of the first document of the batch.
        message: Error message.
        classification: DUPLICATE_SKIP or FATAL.
        timestamp: When the error was recorded (UTC).
    """

    batch_number: int
    offset: int
    message: str
    classification: BatchClassification
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "batchNumber": self.batch_number,
            "offset": self.offset,
            "error": self.message,
            "classification": self.classification.value,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class MigrationResult:
    """
    Progress of one batch invocation.

    A result is created when the invocation starts and threaded through the
    copy loop, which updates the counters after every batch.

    Invariant: ``remaining_documents == max(0, total_documents -
    (start_offset + processed_documents))``.

    Attributes:
        collection_name: Collection being migrated.
        batch_size: Batch size of the job.
        start_offset: Offset the invocation started at.
        total_documents: Source document count resolved at invocation start.
        dry_run: Whether the invocation wrote anything.
        processed_batches: Batches handled, including skipped batches.
        processed_documents: Documents handled, including skipped windows.
        remaining_documents: Documents left after this invocation.
        skipped_batches: Batches classified as duplicate-skip.
        documents_written: Documents the target accepted.
        errors: Errors recorded in batch order.
        completed: Whether the collection is fully migrated.
        next_resume_token: Offset to resume from, None when completed.
        stop_reason: Why the invocation stopped.
        started_at: When the invocation started.
        finished_at: When the invocation stopped.
    """

    collection_name: str
    batch_size: int
    start_offset: int
    total_documents: int = 0
    dry_run: bool = False
    processed_batches: int = 0
    processed_documents: int = 0
    remaining_documents: int = 0
    skipped_batches: int = 0
    documents_written: int = 0
    errors: list[BatchError] = field(default_factory=list)
    completed: bool = False
    next_resume_token: int | None = None
    stop_reason: StopReason | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None

    @property
    def current_offset(self) -> int:
        """Offset of the next document this invocation would read."""
        return self.start_offset + self.processed_documents

    @property
    def success(self) -> bool:
        """True when no fatal error was recorded."""
        return not any(e.classification == BatchClassification.FATAL for e in self.errors)

    @property
    def duration_ms(self) -> int | None:
        if self.finished_at is None:
            return None
        return int((self.finished_at - self.started_at).total_seconds() * 1000)

    def advance(self, documents: int) -> None:
        """Count one handled batch of ``documents`` documents."""
        self.processed_batches += 1
        self.processed_documents += documents
        self.remaining_documents = max(0, self.total_documents - self.current_offset)

    def record_error(
        self,
        batch_number: int,
        offset: int,
        message: str,
        classification: BatchClassification,
    ) -> BatchError:
        error = BatchError(
            batch_number=batch_number,
            offset=offset,
            message=message,
            classification=classification,
        )
        self.errors.append(error)
        return error

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to dictionary for JSON serialization.

        Keys are camelCase to match invocation payloads.

        Returns:
            Dictionary representation suitable for JSON.
        """
        return {
            "collectionName": self.collection_name,
            "batchSize": self.batch_size,
            "startOffset": self.start_offset,
            "totalDocuments": self.total_documents,
            "dryRun": self.dry_run,
            "processedBatches": self.processed_batches,
            "processedDocuments": self.processed_documents,
            "remainingDocuments": self.remaining_documents,
            "skippedBatches": self.skipped_batches,
            "documentsWritten": self.documents_written,
            "errors": [e.to_dict() for e in self.errors],
            "completed": self.completed,
            "nextResumeToken": self.next_resume_token,
            "stopReason": self.stop_reason.value if self.stop_reason else None,
            "success": self.success,
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "durationMs": self.duration_ms,
        }


@dataclass(frozen=True)
class CollectionProgress:
    """
    Migration progress of a collection, derived from document counts.

    Attributes:
        collection_name: Collection inspected.
        source_count: Documents in the source collection.
        target_count: Documents in the target collection.
        migrated_count: Documents already at the target.
        remaining_count: Documents still to copy (never negative).
        progress_percent: Percentage migrated, rounded to one decimal.
        completed: True when both counts are equal.
    """

    collection_name: str
    source_count: int
    target_count: int
    migrated_count: int
    remaining_count: int
    progress_percent: float
    completed: bool

    @classmethod
    def from_counts(
        cls, collection_name: str, source_count: int, target_count: int
    ) -> CollectionProgress:
        percent = (target_count / source_count * 100) if source_count > 0 else 0.0
        return cls(
            collection_name=collection_name,
            source_count=source_count,
            target_count=target_count,
            migrated_count=target_count,
            remaining_count=max(0, source_count - target_count),
            progress_percent=round(percent, 1),
            completed=source_count == target_count,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "collectionName": self.collection_name,
            "sourceCount": self.source_count,
            "targetCount": self.target_count,
            "migratedCount": self.migrated_count,
            "remainingCount": self.remaining_count,
            "progressPercent": f"{self.progress_percent:.1f}",
            "completed": self.completed,
        }


# =============================================================================
# Verification
# =============================================================================


class VerificationStatus(Enum):
    MATCH = "match"
    MISMATCH = "mismatch"
    ERROR = "error"


@dataclass(frozen=True)
class VerificationReport:
    """
    Comparison of one collection between source and target.

    Attributes:
        collection: Collection verified.
        old_count: Document count at the source.
        new_count: Document count at the target.
        counts_match: Whether the counts are equal.
        old_index_count: Index count at the source.
        new_index_count: Index count at the target.
        indexes_match: Whether the index counts are equal.
        sample_shape_match: Whether the sampled documents have the same keys on both sides.
        deep_match: Whether every document is identical on both sides; None when not checked.
        checksum_match: Whether the collection checksums are equal; None when not checked.
        status: MATCH only when every check passed.
        error: Error message when the collection could not be verified.
    """

    collection: str
    status: VerificationStatus
    old_count: int | None = None
    new_count: int | None = None
    counts_match: bool = False
    old_index_count: int | None = None
    new_index_count: int | None = None
    indexes_match: bool = False
    sample_shape_match: bool = False
    deep_match: bool | None = None
    checksum_match: bool | None = None
    error: str | None = None

    @property
    def is_match(self) -> bool:
        return self.status == VerificationStatus.MATCH

    @classmethod
    def failed(cls, collection: str, error: str) -> VerificationReport:
        """Report for a collection that could not be verified."""
        return cls(collection=collection, status=VerificationStatus.ERROR, error=error)

    def to_dict(self) -> dict[str, Any]:
        if self.status == VerificationStatus.ERROR:
            return {
                "collection": self.collection,
                "status": self.status.value,
                "error": self.error,
            }
        data: dict[str, Any] = {
            "collection": self.collection,
            "oldCount": self.old_count,
            "newCount": self.new_count,
            "countsMatch": self.counts_match,
            "oldIndexCount": self.old_index_count,
            "newIndexCount": self.new_index_count,
            "indexesMatch": self.indexes_match,
            "sampleShapeMatch": self.sample_shape_match,
            "status": self.status.value,
        }
        if self.deep_match is not None:
            data["deepMatch"] = self.deep_match
        if self.checksum_match is not None:
            data["checksumMatch"] = self.checksum_match
        return data


class StoreState(Enum):
    ACTIVE = "active"
    UNREACHABLE = "unreachable"


@dataclass(frozen=True)
class StoreStatus:
    """
    Shallow health of one store.

    Attributes:
        label: "source" or "target".
        endpoint: Host of the store; never includes credentials.
        online: Whether the store answered a ping.
        state: ACTIVE or UNREACHABLE.
        collection_count: Number of collections in the database.
        error: Error message when the store is unreachable.
    """

    label: str
    endpoint: str
    online: bool
    state: StoreState
    collection_count: int | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "endpoint": self.endpoint,
            "online": self.online,
            "state": self.state.value,
            "collections": self.collection_count,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class CollectionStatus:
    collection: str
    source_count: int | None
    target_count: int | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "collection": self.collection,
            "oldCount": self.source_count,
            "newCount": self.target_count,
        }


@dataclass(frozen=True)
class StatusReport:
    """Health of both stores plus per-collection counts."""

    source: StoreStatus
    target: StoreStatus
    collections: list[CollectionStatus] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "oldCluster": self.source.to_dict(),
            "newCluster": self.target.to_dict(),
            "collections": [c.to_dict() for c in self.collections],
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class RollbackResult:
    """
    Result of a rollback.

    Rollback only re-points the application configuration at the source
    store; it never copies documents back.

    Attributes:
        success: Whether the configuration now points at the source store.
        message: Human-readable summary.
        source_endpoint: Host the application now points at.
        timestamp: When the rollback finished.
    """

    success: bool
    message: str
    source_endpoint: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "sourceEndpoint": self.source_endpoint,
            "timestamp": self.timestamp.isoformat(),
        }


# =============================================================================
# Orchestration
# =============================================================================


class StepStatus(Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class OrchestrationState(Enum):
    """
    Orchestrator state machine.

    State transitions:
        PRE_VALIDATION -> MIGRATION -> CONFIG_UPDATE -> DONE
              |               |              |
              +---------------+--------------+----> FAILED
    """

    PRE_VALIDATION = "PreValidation"
    MIGRATION = "Migration"
    CONFIG_UPDATE = "ConfigUpdate"
    DONE = "Done"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (OrchestrationState.DONE, OrchestrationState.FAILED)


@dataclass(frozen=True)
class StepRecord:
    """
    One attempt of an orchestration step.

    Attributes:
        step_name: Name of the step.
        status: Status of the attempt.
        attempt: 1-based attempt number.
        timestamp: When the attempt ended.
        detail: Error message or summary of the attempt.
    """

    step_name: str
    status: StepStatus
    attempt: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    detail: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step_name,
            "status": self.status.value,
            "attempt": self.attempt,
            "timestamp": self.timestamp.isoformat(),
            "detail": self.detail,
        }


@dataclass
class CollectionSummary:
    """Migration summary of one collection across all of its invocations."""

    collection_name: str
    total_documents: int = 0
    documents_written: int = 0
    skipped_batches: int = 0
    invocations: int = 0
    completed: bool = False
    indexes_created: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "collectionName": self.collection_name,
            "totalDocuments": self.total_documents,
            "documentsWritten": self.documents_written,
            "skippedBatches": self.skipped_batches,
            "invocations": self.invocations,
            "completed": self.completed,
            "indexesCreated": self.indexes_created,
        }


@dataclass
class OrchestrationRun:
    """
    Full record of an orchestrated migration.

    Attributes:
        dry_run: Whether migration and configuration update were skipped.
        state: Current state of the orchestrator.
        steps: Step attempts in the order they happened.
        collections: Per-collection migration summaries.
        success: True once the run reached DONE.
        rollback_executed: Always False; rollback is manual.
        error: Error message of the step that failed the run.
        started_at: When the run started.
        finished_at: When the run reached a terminal state.
    """

    dry_run: bool = False
    state: OrchestrationState = OrchestrationState.PRE_VALIDATION
    steps: list[StepRecord] = field(default_factory=list)
    collections: list[CollectionSummary] = field(default_factory=list)
    success: bool = False
    rollback_executed: bool = False
    error: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "state": self.state.value,
            "dryRun": self.dry_run,
            "rollbackExecuted": self.rollback_executed,
            "steps": [s.to_dict() for s in self.steps],
            "collections": [c.to_dict() for c in self.collections],
            "error": self.error,
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
        }


__all__ = [
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_TIME_BUDGET_MS",
    "DEFAULT_PROGRESS_INTERVAL",
    "BatchClassification",
    "StopReason",
    "MigrationJob",
    "BatchOutcome",
    "BatchError",
    "MigrationResult",
    "CollectionProgress",
    "VerificationStatus",
    "VerificationReport",
    "StoreState",
    "StoreStatus",
    "CollectionStatus",
    "StatusReport",
    "RollbackResult",
    "StepStatus",
    "OrchestrationState",
    "StepRecord",
    "CollectionSummary",
    "OrchestrationRun",
]
