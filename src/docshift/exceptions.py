"""
Exceptions for the docshift migration engine.

This module defines every exception the engine raises, organized by the
component that raises it, together with the error classification system
used to decide whether an error is retried, skipped or aborts the run.

Exception Hierarchy:
    DocshiftError (base)
    +-- StoreError
    |   +-- StoreConnectionError
    |   +-- TransientWriteError
    |   +-- DuplicateKeyError
    +-- InvalidPayloadError
    +-- CredentialResolutionError
    +-- BatchProcessingError
    +-- MigrationStalledError
    +-- VerificationMismatchError
    +-- RollbackNotForcedError
    +-- ConfigurationUpdateError
    +-- StepFailedError

Error Taxonomy:
    - transient-write-error: retried with exponential backoff
    - duplicate-key: skipped, never retried, logged
    - fatal: aborts the current invocation, preserving the last good resume token
    - verification-mismatch: surfaced to the caller, blocks the orchestrator
    - time-budget-exceeded: not an error; a normal pause condition
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from docshift.models import BatchClassification

if TYPE_CHECKING:
    from docshift.models import VerificationReport


class ErrorSeverity(Enum):
    """
    Severity level of engine errors.

    Used for alerting and logging decisions.

    Attributes:
        CRITICAL: Failure requiring immediate attention (data may be inconsistent).
        ERROR: Significant failure that may require operator intervention.
        WARNING: Issue that should be monitored but may self-resolve.
        INFO: Informational condition, not a failure.
    """

    CRITICAL = "critical"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    @property
    def should_alert(self) -> bool:
        """True for CRITICAL and ERROR levels."""
        return self in (ErrorSeverity.CRITICAL, ErrorSeverity.ERROR)

    @property
    def log_level(self) -> int:
        """
        Get the corresponding Python logging level.

        Returns:
            Python logging level constant.
        """
        level_map = {
            ErrorSeverity.CRITICAL: logging.CRITICAL,
            ErrorSeverity.ERROR: logging.ERROR,
            ErrorSeverity.WARNING: logging.WARNING,
            ErrorSeverity.INFO: logging.INFO,
        }
        return level_map[self]


class ErrorRecoverability(Enum):
    """
    Recoverability classification for engine errors.

    Attributes:
        RECOVERABLE: Needs operator action; automatic retry will not help.
            Examples: verification mismatch, duplicate documents at the target.
        TRANSIENT: Temporary error that may resolve on retry.
            Examples: network timeout, primary election in the target cluster.
        FATAL: Unrecoverable for the current invocation.
            Examples: malformed payload, missing credentials, unforced rollback.
    """

    RECOVERABLE = "recoverable"
    TRANSIENT = "transient"
    FATAL = "fatal"

    @property
    def should_retry(self) -> bool:
        """True only for TRANSIENT errors."""
        return self == ErrorRecoverability.TRANSIENT


@dataclass(frozen=True)
class ErrorClassification:
    """
    Rich metadata for error classification.

    Attributes:
        severity: The severity level of the error.
        recoverability: How the error can be recovered from.
        error_code: Unique error code for programmatic handling.
        category: Error category for grouping related errors.
        suggested_action: Human-readable guidance for operators.
    """

    severity: ErrorSeverity
    recoverability: ErrorRecoverability
    error_code: str
    category: str
    suggested_action: str


class DocshiftError(Exception):
    """
    Base exception for all docshift errors.

    Attributes:
        message: Human-readable error description.
        collection: The collection involved, if applicable.
        classification: Rich error classification metadata.
    """

    _default_classification: ErrorClassification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="DOCSHIFT_ERROR",
        category="general",
        suggested_action="Review the invocation logs",
    )

    def __init__(self, message: str, *, collection: str | None = None) -> None:
        self.message = message
        self.collection = collection
        super().__init__(message)

    def __str__(self) -> str:
        if self.collection:
            return f"{self.message} collection={self.collection}"
        return self.message

    @property
    def classification(self) -> ErrorClassification:
        """
        Get the error classification for this exception.

        Subclasses override _default_classification to provide
        specific classification metadata for their error type.
        """
        return self._default_classification


# =============================================================================
# Store errors
# =============================================================================


class StoreError(DocshiftError):
    """Base class for errors raised by a document store handle."""


class StoreConnectionError(StoreError):
    """
    Raised when a store cannot be reached or the connection is lost.

    Attributes:
        label: Which side of the migration failed ("source" or "target").
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.TRANSIENT,
        error_code="STORE_CONNECTION_ERROR",
        category="connectivity",
        suggested_action=(
            "Check network reachability, TLS certificate and credentials of the store, "
            "then re-run the invocation with the last resume token."
        ),
    )

    def __init__(self, label: str, message: str) -> None:
        self.label = label
        super().__init__(f"{label} store unavailable: {message}")


class TransientWriteError(StoreError):
    """
    Raised when a batch write fails for a reason that may resolve on retry.

    Attributes:
        original_error: Message of the underlying driver error.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        recoverability=ErrorRecoverability.TRANSIENT,
        error_code="TRANSIENT_WRITE_ERROR",
        category="write",
        suggested_action="The write is retried with backoff; act only if it persists.",
    )

    def __init__(self, message: str, *, collection: str | None = None) -> None:
        self.original_error = message
        super().__init__(message, collection=collection)


class DuplicateKeyError(StoreError):
    """
    Raised when a write is rejected because documents already exist at the target.

    Writes are unordered, so every non-duplicate document of the batch has
    been inserted when this is raised.

    Attributes:
        inserted_count: Number of documents the store accepted.
        duplicate_count: Number of documents rejected as duplicates.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.INFO,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="DUPLICATE_KEY",
        category="write",
        suggested_action="The batch is treated as already migrated and skipped.",
    )

    def __init__(
        self,
        message: str,
        *,
        collection: str | None = None,
        inserted_count: int = 0,
        duplicate_count: int = 0,
    ) -> None:
        self.inserted_count = inserted_count
        self.duplicate_count = duplicate_count
        super().__init__(message, collection=collection)


# =============================================================================
# Invocation errors
# =============================================================================


class InvalidPayloadError(DocshiftError):
    """
    Raised when an invocation payload is malformed or misses required parameters.

    Attributes:
        details: Field-level validation messages.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="INVALID_PAYLOAD",
        category="invocation",
        suggested_action="Fix the invocation payload and invoke again.",
    )

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        self.details = details or []
        super().__init__(message)


class CredentialResolutionError(DocshiftError):
    """
    Raised when a credential reference cannot be resolved.

    The message names the reference only, never any secret material.

    Attributes:
        credential_ref: The opaque reference that failed to resolve.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="CREDENTIAL_RESOLUTION_ERROR",
        category="configuration",
        suggested_action="Check that the secret exists and holds host, username and password.",
    )

    def __init__(self, credential_ref: str, reason: str) -> None:
        self.credential_ref = credential_ref
        super().__init__(f"Cannot resolve credentials '{credential_ref}': {reason}")


# =============================================================================
# Migration errors
# =============================================================================


class BatchProcessingError(DocshiftError):
    """
    Raised by the orchestrator when a batch invocation ends with a fatal error.

    The failing batch can be retried by resuming from ``resume_token``.

    Attributes:
        resume_token: Offset of the batch that failed.
        original_error: The recorded error message of the failing batch.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.TRANSIENT,
        error_code="BATCH_PROCESSING_ERROR",
        category="migration",
        suggested_action="Resume the collection from the reported resume token.",
    )

    def __init__(self, collection: str, resume_token: int | None, error: str) -> None:
        self.resume_token = resume_token
        self.original_error = error
        super().__init__(
            f"Batch processing failed at offset {resume_token}: {error}",
            collection=collection,
        )


class MigrationStalledError(DocshiftError):
    """
    Raised when an invocation ends without completing and without advancing.

    Usually means the time budget is too small to process a single batch.

    Attributes:
        offset: The offset the collection is stuck at.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="MIGRATION_STALLED",
        category="migration",
        suggested_action="Increase the time budget or lower the batch size.",
    )

    def __init__(self, collection: str, offset: int) -> None:
        self.offset = offset
        super().__init__(f"Migration made no progress at offset {offset}", collection=collection)


class VerificationMismatchError(DocshiftError):
    """
    Raised when verification finds source and target out of agreement.

    Attributes:
        reports: The verification reports that did not match.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.CRITICAL,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="VERIFICATION_MISMATCH",
        category="verification",
        suggested_action=(
            "Inspect the reported collections; reconcile the stores before running the "
            "migration again."
        ),
    )

    def __init__(self, reports: list[VerificationReport]) -> None:
        self.reports = reports
        names = ", ".join(r.collection for r in reports)
        super().__init__(f"Verification failed for: {names}")


class RollbackNotForcedError(DocshiftError):
    """Raised when rollback is invoked without the explicit force flag."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        recoverability=ErrorRecoverability.FATAL,
        error_code="ROLLBACK_NOT_FORCED",
        category="rollback",
        suggested_action="Invoke rollback again with force=true once the decision is confirmed.",
    )

    def __init__(self) -> None:
        super().__init__("Rollback requires force=true parameter for safety")


class ConfigurationUpdateError(DocshiftError):
    """
    Raised when the application's connection configuration cannot be rewritten.

    Attributes:
        config_ref: Reference of the configuration that failed to update.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.TRANSIENT,
        error_code="CONFIGURATION_UPDATE_ERROR",
        category="configuration",
        suggested_action="Check write access to the application configuration secret.",
    )

    def __init__(self, config_ref: str, reason: str) -> None:
        self.config_ref = config_ref
        super().__init__(f"Failed to update configuration '{config_ref}': {reason}")


class StepFailedError(DocshiftError):
    """
    Raised by the orchestrator when a step exhausts its attempts.

    Attributes:
        step_name: Name of the failed step.
        attempts: Number of attempts made.
        last_error: The exception raised by the last attempt.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="STEP_FAILED",
        category="orchestration",
        suggested_action="Inspect the step error; the run stops at the first failed step.",
    )

    def __init__(self, step_name: str, attempts: int, last_error: BaseException) -> None:
        self.step_name = step_name
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{step_name} failed after {attempts} attempts: {last_error}")


def classify_exception(exc: BaseException) -> ErrorClassification:
    """
    Classify any exception and return its error classification.

    For DocshiftError subclasses, returns their specific classification.
    Other exceptions are unknown and treated as transient, matching how the
    write and step retry policies treat driver errors.

    Args:
        exc: The exception to classify.

    Returns:
        ErrorClassification for the exception.
    """
    if isinstance(exc, DocshiftError):
        return exc.classification

    return ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.TRANSIENT,
        error_code="UNKNOWN_ERROR",
        category="unknown",
        suggested_action="An unexpected error occurred. Review logs.",
    )


def log_classified_error(
    log: logging.Logger, operation: str, exc: BaseException
) -> ErrorClassification:
    """
    Log an error at the level its severity maps to.

    Errors whose severity warrants alerting carry their traceback.

    Args:
        log: Logger of the calling module.
        operation: Name of the failed operation.
        exc: The exception to log.

    Returns:
        The classification the error was logged with.
    """
    classification = classify_exception(exc)
    log.log(
        classification.severity.log_level,
        "Error in '%s': %s [code=%s, recoverable=%s] %s",
        operation,
        exc,
        classification.error_code,
        classification.recoverability.value,
        classification.suggested_action,
        exc_info=exc if classification.severity.should_alert else None,
    )
    return classification


def classify_write_error(exc: BaseException) -> BatchClassification:
    """
    Map a failed batch write to its batch classification.

    Duplicate-key failures mean the batch is already present at the target
    and can be skipped; anything else is fatal once retries are exhausted.

    Args:
        exc: The exception raised by the final write attempt.

    Returns:
        BatchClassification.DUPLICATE_SKIP or BatchClassification.FATAL.
    """
    if isinstance(exc, DuplicateKeyError):
        return BatchClassification.DUPLICATE_SKIP
    return BatchClassification.FATAL


__all__ = [
    "ErrorSeverity",
    "ErrorRecoverability",
    "ErrorClassification",
    "DocshiftError",
    "StoreError",
    "StoreConnectionError",
    "TransientWriteError",
    "DuplicateKeyError",
    "InvalidPayloadError",
    "CredentialResolutionError",
    "BatchProcessingError",
    "MigrationStalledError",
    "VerificationMismatchError",
    "RollbackNotForcedError",
    "ConfigurationUpdateError",
    "StepFailedError",
    "classify_exception",
    "classify_write_error",
    "log_classified_error",
]
