"""
OpenTelemetry metrics for migration operations.

This module provides metrics instrumentation for the batch processor and
the verification controller, tracking documents copied, batch outcomes,
batch durations, write retries and verification failures.

Instruments are created from the global meter provider; when the hosting
process configures no SDK they are non-recording. Passing
``enable_metrics=False`` swaps in no-op instruments entirely.

Example:
    >>> from docshift.metrics import MigrationMetrics
    >>>
    >>> metrics = MigrationMetrics("markers")
    >>> metrics.record_batch("ok", documents_written=1000, duration_ms=850.0, attempts=1)
    >>> metrics.record_verification_failure("count_mismatch")

Metrics Exposed:
    - docshift.documents.copied (Counter): Documents written to the target
    - docshift.batches (Counter): Batches handled, by classification
    - docshift.batch.duration (Histogram): Time to read and write one batch
    - docshift.write.retries (Counter): Batch write retries
    - docshift.verification.failures (Counter): Collections failing verification

All metrics include the 'collection' attribute for filtering.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from opentelemetry import metrics

# Module-level meter instance
_meter: Any = None


def _get_meter() -> Any:
    """Get or create the meter for the docshift namespace."""
    global _meter
    if _meter is None:
        _meter = metrics.get_meter("docshift", version="1.0.0")
    return _meter


def reset_meter() -> None:
    """
    Reset the global meter instance.

    Useful for testing to ensure fresh meter state between tests.
    """
    global _meter
    _meter = None


class NoOpCounter:
    """Counter used when metrics are disabled."""

    def add(
        self,
        amount: int | float,
        attributes: dict[str, Any] | None = None,
    ) -> None:
        pass


class NoOpHistogram:
    """Histogram used when metrics are disabled."""

    def record(
        self,
        value: float,
        attributes: dict[str, Any] | None = None,
    ) -> None:
        pass


@dataclass(frozen=True)
class MigrationMetricSnapshot:
    """
    Snapshot of metric values recorded for a collection.

    Useful for testing and debugging to see what values
    would be reported to OpenTelemetry.

    Attributes:
        documents_copied: Documents written to the target.
        batches: Batches handled, keyed by classification.
        write_retries: Batch write retries.
        verification_failures: Verification failures, keyed by reason.
        batch_durations_ms: Recorded batch durations.
    """

    documents_copied: int = 0
    batches: dict[str, int] = field(default_factory=dict)
    write_retries: int = 0
    verification_failures: dict[str, int] = field(default_factory=dict)
    batch_durations_ms: list[float] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "documents_copied": self.documents_copied,
            "batches": dict(self.batches),
            "write_retries": self.write_retries,
            "verification_failures": dict(self.verification_failures),
            "batch_durations_ms": list(self.batch_durations_ms),
        }


@dataclass
class MigrationMetrics:
    """
    Container for migration metrics instruments.

    Attributes:
        collection_name: Collection label of every recorded value.
        enable_metrics: Whether instruments record (default True).

    Example:
        >>> metrics = MigrationMetrics("markers", enable_metrics=False)
        >>> metrics.record_batch("duplicate-skip", documents_written=0, duration_ms=12.0)
        >>> metrics.get_snapshot().batches
        {'duplicate-skip': 1}
    """

    collection_name: str
    enable_metrics: bool = True

    # Instruments
    _documents_copied_counter: Any = field(default=None, init=False, repr=False)
    _batches_counter: Any = field(default=None, init=False, repr=False)
    _batch_duration_histogram: Any = field(default=None, init=False, repr=False)
    _write_retries_counter: Any = field(default=None, init=False, repr=False)
    _verification_failures_counter: Any = field(default=None, init=False, repr=False)

    # Internal counters for snapshot
    _documents_copied: int = field(default=0, init=False, repr=False)
    _batches: dict[str, int] = field(default_factory=dict, init=False, repr=False)
    _write_retries: int = field(default=0, init=False, repr=False)
    _verification_failures: dict[str, int] = field(default_factory=dict, init=False, repr=False)
    _batch_durations: list[float] = field(default_factory=list, init=False, repr=False)

    def __post_init__(self) -> None:
        """Initialize metric instruments."""
        if self.enable_metrics:
            self._setup_metrics()
        else:
            self._setup_noop()

    def _setup_metrics(self) -> None:
        meter = _get_meter()

        self._documents_copied_counter = meter.create_counter(
            name="docshift.documents.copied",
            unit="documents",
            description="Documents written to the target store",
        )
        self._batches_counter = meter.create_counter(
            name="docshift.batches",
            unit="batches",
            description="Batches handled, by classification",
        )
        self._batch_duration_histogram = meter.create_histogram(
            name="docshift.batch.duration",
            unit="ms",
            description="Time to read and write one batch in milliseconds",
        )
        self._write_retries_counter = meter.create_counter(
            name="docshift.write.retries",
            unit="retries",
            description="Batch write retries after a failed attempt",
        )
        self._verification_failures_counter = meter.create_counter(
            name="docshift.verification.failures",
            unit="failures",
            description="Collections that failed verification",
        )

    def _setup_noop(self) -> None:
        self._documents_copied_counter = NoOpCounter()
        self._batches_counter = NoOpCounter()
        self._batch_duration_histogram = NoOpHistogram()
        self._write_retries_counter = NoOpCounter()
        self._verification_failures_counter = NoOpCounter()

    def _base_attributes(self) -> dict[str, str]:
        return {"collection": self.collection_name}

    def record_batch(
        self,
        classification: str,
        *,
        documents_written: int,
        duration_ms: float,
        attempts: int = 1,
    ) -> None:
        """
        Record one handled batch.

        Args:
            classification: Batch classification value ("ok", "duplicate-skip", "fatal").
            documents_written: Documents the target accepted.
            duration_ms: Time to read and write the batch.
            attempts: Write attempts made; attempts beyond the first count as retries.
        """
        attrs = self._base_attributes()
        self._batches_counter.add(1, {**attrs, "classification": classification})
        self._batch_duration_histogram.record(duration_ms, attrs)
        if documents_written:
            self._documents_copied_counter.add(documents_written, attrs)
        retries = max(0, attempts - 1)
        if retries:
            self._write_retries_counter.add(retries, attrs)

        self._documents_copied += documents_written
        self._batches[classification] = self._batches.get(classification, 0) + 1
        self._write_retries += retries
        self._batch_durations.append(duration_ms)

    def record_verification_failure(self, reason: str) -> None:
        """
        Record a collection failing verification.

        Args:
            reason: Failure reason (e.g., "count_mismatch", "index_mismatch", "error").
        """
        self._verification_failures_counter.add(1, {**self._base_attributes(), "reason": reason})
        self._verification_failures[reason] = self._verification_failures.get(reason, 0) + 1

    def get_snapshot(self) -> MigrationMetricSnapshot:
        """
        Get a snapshot of current metric values.

        Returns:
            MigrationMetricSnapshot with accumulated values
        """
        return MigrationMetricSnapshot(
            documents_copied=self._documents_copied,
            batches=dict(self._batches),
            write_retries=self._write_retries,
            verification_failures=dict(self._verification_failures),
            batch_durations_ms=list(self._batch_durations),
        )

    @property
    def metrics_enabled(self) -> bool:
        return self.enable_metrics


__all__ = [
    "MigrationMetrics",
    "MigrationMetricSnapshot",
    "NoOpCounter",
    "NoOpHistogram",
    "reset_meter",
]
