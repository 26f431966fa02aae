"""
Retry utilities for batch writes and orchestration steps.

This module provides:
- WriteRetryPolicy: Exponential backoff for batch writes
- write_with_retry: Run a batch write and classify how it ended
- StepRetryPolicy: Linear backoff for orchestration steps
- is_step_retryable: Whether a failed step may be attempted again
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from docshift.config import EngineSettings
from docshift.exceptions import DuplicateKeyError, classify_exception, classify_write_error
from docshift.models import BatchClassification, BatchOutcome

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class WriteRetryPolicy:
    """
    Exponential backoff for batch writes.

    The delay before retry ``n`` (1-based) is
    ``min(base_delay_ms * 2 ** (n - 1), max_delay_ms)``, giving 1s, 2s, 4s,
    8s, then 10s with the defaults.

    Attributes:
        max_attempts: Total write attempts, including the first (default 3).
        base_delay_ms: Delay before the first retry (default 1000).
        max_delay_ms: Cap on the delay (default 10000).

    Example:
        >>> policy = WriteRetryPolicy()
        >>> [policy.delay_ms(n) for n in (1, 2, 3)]
        [1000, 2000, 4000]
    """

    max_attempts: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 10000

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

        if self.base_delay_ms < 0:
            raise ValueError(f"base_delay_ms must be >= 0, got {self.base_delay_ms}")

        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError(
                f"max_delay_ms ({self.max_delay_ms}) must be >= base_delay_ms ({self.base_delay_ms})"
            )

    @classmethod
    def from_settings(cls, settings: EngineSettings) -> WriteRetryPolicy:
        return cls(
            max_attempts=settings.max_retries,
            base_delay_ms=settings.retry_base_delay_ms,
            max_delay_ms=settings.retry_max_delay_ms,
        )

    def delay_ms(self, retry_number: int) -> int:
        """
        Delay before a retry.

        Args:
            retry_number: 1-based number of the retry.

        Returns:
            Delay in milliseconds.
        """
        if retry_number < 1:
            raise ValueError(f"retry_number must be >= 1, got {retry_number}")
        return min(self.base_delay_ms * 2 ** (retry_number - 1), self.max_delay_ms)


async def write_with_retry(
    write: Callable[[], Awaitable[int]],
    *,
    documents_read: int,
    policy: WriteRetryPolicy | None = None,
    sleep: Sleep = asyncio.sleep,
    operation_name: str = "batch write",
) -> BatchOutcome:
    """
    Run a batch write with exponential backoff and classify how it ended.

    Duplicate-key failures end the write immediately as DUPLICATE_SKIP.
    Any other exception is retried until the policy is exhausted, after
    which the outcome is FATAL. Nothing is raised for write failures.

    Args:
        write: Performs the write and returns the number of documents written.
        documents_read: Documents in the batch being written.
        policy: Retry policy (defaults to WriteRetryPolicy()).
        sleep: Awaitable sleep taking seconds.
        operation_name: Name for logging purposes.

    Returns:
        BatchOutcome describing the write.

    Example:
        >>> outcome = await write_with_retry(
        ...     lambda: target.insert_many("markers", window),
        ...     documents_read=len(window),
        ... )
        >>> outcome.classification
        <BatchClassification.OK: 'ok'>
    """
    policy = policy or WriteRetryPolicy()

    for attempt in range(1, policy.max_attempts + 1):
        try:
            written = await write()
        except DuplicateKeyError as e:
            logger.warning("Duplicate key error in %s, skipping batch: %s", operation_name, e)
            return BatchOutcome(
                documents_read=documents_read,
                documents_written=e.inserted_count,
                classification=BatchClassification.DUPLICATE_SKIP,
                error=str(e),
                attempts=attempt,
            )
        except Exception as e:
            if attempt < policy.max_attempts:
                delay = policy.delay_ms(attempt)
                logger.warning(
                    "Retrying %s after failure (attempt %d/%d, delay %dms): %s",
                    operation_name,
                    attempt,
                    policy.max_attempts,
                    delay,
                    e,
                    extra={
                        "operation": operation_name,
                        "attempt": attempt,
                        "delay_ms": delay,
                        "error_type": type(e).__name__,
                    },
                )
                await sleep(delay / 1000)
                continue

            logger.error(
                "All %d attempts exhausted for %s: %s",
                policy.max_attempts,
                operation_name,
                e,
                extra={"operation": operation_name, "error_type": type(e).__name__},
            )
            return BatchOutcome(
                documents_read=documents_read,
                documents_written=0,
                classification=classify_write_error(e),
                error=str(e),
                attempts=attempt,
            )
        else:
            if attempt > 1:
                logger.info("%s succeeded on attempt %d", operation_name, attempt)
            return BatchOutcome(
                documents_read=documents_read,
                documents_written=written,
                classification=BatchClassification.OK,
                attempts=attempt,
            )

    raise AssertionError("unreachable")  # pragma: no cover


@dataclass(frozen=True)
class StepRetryPolicy:
    """
    Linear backoff for orchestration steps.

    The delay after failed attempt ``n`` is ``n * delay_seconds``.

    Attributes:
        max_attempts: Attempts per step (default 3).
        delay_seconds: Base delay in seconds (default 2.0).
    """

    max_attempts: int = 3
    delay_seconds: float = 2.0

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

        if self.delay_seconds < 0:
            raise ValueError(f"delay_seconds must be >= 0, got {self.delay_seconds}")

    def delay(self, attempt: int) -> float:
        return attempt * self.delay_seconds


def is_step_retryable(exc: BaseException) -> bool:
    """
    Check whether an orchestration step may be attempted again after ``exc``.

    Transient errors and unknown exceptions are retried. Verification
    mismatches, invalid payloads, unforced rollbacks and stalled migrations
    are not.
    """
    return classify_exception(exc).recoverability.should_retry


__all__ = [
    "Sleep",
    "WriteRetryPolicy",
    "write_with_retry",
    "StepRetryPolicy",
    "is_step_retryable",
]
