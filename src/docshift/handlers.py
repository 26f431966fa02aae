"""
Invocation handlers.

Each handler takes the JSON payload of one invocation, opens the source and
target stores for its duration and returns a response of the form
``{"statusCode": 200 | 500, "body": {...}}``. Handlers never raise: every
failure becomes a 500 response carrying ``error``, ``timestamp`` and, when
``INCLUDE_STACK_TRACES`` is set, ``stack``.

Handlers:
    - handle_batch: One time-bounded batch invocation of a collection
    - handle_resume: A batch invocation continuing from a resume token
    - handle_status: Progress of a collection derived from counts
    - handle_verification: verify, status or rollback
    - handle_orchestration: A complete migration run

The async handlers are wrapped by synchronous ``*_lambda_handler``
functions for AWS Lambda.

Example:
    >>> response = await handle_batch(
    ...     {"collectionName": "markers", "batchSize": 500},
    ...     HandlerDependencies.from_settings(),
    ... )
    >>> response["body"]["nextResumeToken"]
    42000
"""

from __future__ import annotations

import asyncio
import logging
import time
import traceback
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from docshift.batch_processor import BatchProcessor
from docshift.config import EngineSettings
from docshift.config_updater import (
    ConfigurationUpdater,
    InMemoryConfigurationUpdater,
    SecretsManagerConfigurationUpdater,
)
from docshift.credentials import CredentialProvider, SecretsManagerCredentialProvider
from docshift.exceptions import InvalidPayloadError, log_classified_error
from docshift.models import MigrationJob
from docshift.observability import Tracer
from docshift.orchestrator import MigrationOrchestrator
from docshift.progress import ProgressSink, StepFunctionsHeartbeatSink
from docshift.retry import Sleep, WriteRetryPolicy
from docshift.stores.connector import StoreConnector, StorePair, open_store_pair
from docshift.stores.mongodb import MongoStoreConnector
from docshift.verification import VerificationController

logger = logging.getLogger(__name__)

Response = dict[str, Any]

_InvocationT = TypeVar("_InvocationT", bound=BaseModel)


class _Invocation(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="ignore",
    )

    source_credential_ref: str | None = None
    target_credential_ref: str | None = None

    def credential_refs(self, settings: EngineSettings) -> tuple[str, str]:
        source_ref = self.source_credential_ref or settings.source_secret_name
        target_ref = self.target_credential_ref or settings.target_secret_name
        missing = [
            name
            for name, ref in (
                ("sourceCredentialRef", source_ref),
                ("targetCredentialRef", target_ref),
            )
            if not ref
        ]
        if missing or source_ref is None or target_ref is None:
            raise InvalidPayloadError("Credential references are required", details=missing)
        return source_ref, target_ref


class BatchInvocation(_Invocation):
    """
    Payload of a batch invocation.

    ``resumeToken``, when given, takes precedence over ``startOffset``.
    Batch size, time budget and progress interval default to the
    engine settings.
    """

    collection_name: str | None = None
    batch_size: int | None = Field(default=None, ge=1)
    start_offset: int = Field(default=0, ge=0)
    max_batches: int | None = Field(default=None, ge=1)
    resume_token: int | None = Field(default=None, ge=0)
    dry_run: bool = False
    task_token: str | None = None

    def to_job(self, settings: EngineSettings) -> MigrationJob:
        if not self.collection_name:
            raise InvalidPayloadError("collectionName is required")

        start_offset = self.start_offset
        if self.resume_token is not None:
            start_offset = self.resume_token

        return MigrationJob(
            collection_name=self.collection_name,
            batch_size=self.batch_size or settings.batch_size,
            start_offset=start_offset,
            max_batches=self.max_batches,
            time_budget_ms=settings.max_processing_time_ms,
            dry_run=self.dry_run,
            progress_interval=settings.progress_update_interval,
        )


class StatusInvocation(_Invocation):
    collection_name: str = Field(..., min_length=1)


class VerificationInvocation(_Invocation):
    """
    Payload of a verification invocation.

    ``force`` must be the JSON literal ``true`` for a rollback; strings
    such as ``"true"`` are rejected as an invalid payload. ``sampleSize``,
    ``deepValidation`` and ``checksumValidation`` only apply to ``verify``.
    """

    collections: list[str] = Field(default_factory=list)
    operation: Literal["verify", "status", "rollback"] = "verify"
    force: bool = Field(default=False, strict=True)
    sample_size: int = Field(default=1, ge=1)
    deep_validation: bool = False
    checksum_validation: bool = False


class OrchestrationInvocation(_Invocation):
    collections: list[str] = Field(..., min_length=1)
    dry_run: bool = False
    skip_validation: bool = False
    auto_rollback: bool = False
    migrate_indexes: bool = False
    batch_size: int | None = Field(default=None, ge=1)


@dataclass
class HandlerDependencies:
    """
    Collaborators shared by the handlers.

    Production code builds them from the environment with
    :meth:`from_settings`; tests pass in-memory doubles.

    Attributes:
        settings: Engine settings.
        credentials: Resolves credential references.
        connector: Opens store handles.
        config_updater: Rewrites the application configuration, if configured.
        clock: Monotonic clock in seconds.
        sleep: Awaitable sleep taking seconds.
        progress_sink: Overrides the heartbeat sink of batch invocations.
        tracer: Tracer handed to every component.
        enable_tracing: Whether components trace when no tracer is given.
        enable_metrics: Whether components record metrics.
    """

    settings: EngineSettings
    credentials: CredentialProvider
    connector: StoreConnector
    config_updater: ConfigurationUpdater | None = None
    clock: Callable[[], float] = time.monotonic
    sleep: Sleep = asyncio.sleep
    progress_sink: ProgressSink | None = None
    tracer: Tracer | None = None
    enable_tracing: bool = True
    enable_metrics: bool = True

    @classmethod
    def from_settings(cls, settings: EngineSettings | None = None) -> HandlerDependencies:
        """Build AWS-backed dependencies from settings (defaults to the environment)."""
        settings = settings or EngineSettings.from_env()
        config_updater: ConfigurationUpdater | None = None
        if settings.app_secret_name:
            config_updater = SecretsManagerConfigurationUpdater(
                settings.app_secret_name,
                region_name=settings.aws_region,
            )
        return cls(
            settings=settings,
            credentials=SecretsManagerCredentialProvider(
                region_name=settings.aws_region,
                cache_ttl_seconds=settings.secret_cache_ttl_seconds,
            ),
            connector=MongoStoreConnector(settings),
            config_updater=config_updater,
        )

    def batch_processor(
        self, stores: StorePair, progress_sink: ProgressSink | None = None
    ) -> BatchProcessor:
        return BatchProcessor(
            stores.source,
            stores.target,
            write_retry=WriteRetryPolicy.from_settings(self.settings),
            progress_sink=progress_sink or self.progress_sink,
            clock=self.clock,
            sleep=self.sleep,
            tracer=self.tracer,
            enable_tracing=self.enable_tracing,
            enable_metrics=self.enable_metrics,
        )


def _parse(model: type[_InvocationT], event: dict[str, Any] | None) -> _InvocationT:
    try:
        return model.model_validate(event or {})
    except ValidationError as e:
        details = [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        ]
        raise InvalidPayloadError("Invalid invocation payload", details=details) from None


def _timestamp() -> str:
    return datetime.now(UTC).isoformat()


def error_response(error: BaseException, settings: EngineSettings) -> Response:
    """Build the 500 response of a failed invocation."""
    body: dict[str, Any] = {"error": str(error), "timestamp": _timestamp()}
    if settings.include_stack_traces:
        body["stack"] = "".join(
            traceback.format_exception(type(error), error, error.__traceback__)
        )
    return {"statusCode": 500, "body": body}


def _response(success: bool, body: dict[str, Any]) -> Response:
    return {"statusCode": 200 if success else 500, "body": body}


async def handle_batch(
    event: dict[str, Any] | None,
    deps: HandlerDependencies | None = None,
) -> Response:
    """
    Run one batch invocation.

    The response body is the MigrationResult; its ``nextResumeToken`` is
    the ``resumeToken`` of the next invocation. The status code is 500 when
    a batch failed fatally.
    """
    settings = deps.settings if deps else EngineSettings()
    try:
        deps = deps or HandlerDependencies.from_settings()
        settings = deps.settings
        invocation = _parse(BatchInvocation, event)
        job = invocation.to_job(settings)
        source_ref, target_ref = invocation.credential_refs(settings)

        sink = None
        if invocation.task_token and deps.progress_sink is None:
            sink = StepFunctionsHeartbeatSink(
                invocation.task_token, region_name=settings.aws_region
            )

        logger.info(
            "Batch invocation for %s at offset %d", job.collection_name, job.start_offset
        )
        async with open_store_pair(
            deps.credentials, deps.connector, source_ref, target_ref
        ) as stores:
            result = await deps.batch_processor(stores, sink).process(job)
    except Exception as e:
        log_classified_error(logger, "Batch processing", e)
        return error_response(e, settings)

    return _response(result.success, result.to_dict())


async def handle_resume(
    event: dict[str, Any] | None,
    deps: HandlerDependencies | None = None,
) -> Response:
    """Run a batch invocation starting at ``resumeToken`` (0 when absent)."""
    event = dict(event or {})
    event["startOffset"] = event.pop("resumeToken", None) or 0
    return await handle_batch(event, deps)


async def handle_status(
    event: dict[str, Any] | None,
    deps: HandlerDependencies | None = None,
) -> Response:
    """Report the progress of a collection from source and target counts."""
    settings = deps.settings if deps else EngineSettings()
    try:
        deps = deps or HandlerDependencies.from_settings()
        settings = deps.settings
        invocation = _parse(StatusInvocation, event)
        source_ref, target_ref = invocation.credential_refs(settings)
        async with open_store_pair(
            deps.credentials, deps.connector, source_ref, target_ref
        ) as stores:
            progress = await deps.batch_processor(stores).collection_progress(
                invocation.collection_name
            )
    except Exception as e:
        log_classified_error(logger, "Status check", e)
        return error_response(e, settings)

    return _response(True, progress.to_dict())


async def handle_verification(
    event: dict[str, Any] | None,
    deps: HandlerDependencies | None = None,
) -> Response:
    """
    Run a verification operation: ``verify``, ``status`` or ``rollback``.

    The body is ``{success, operation, timestamp, results}``. A rollback
    without ``force: true`` fails with a 500 and changes nothing.
    """
    settings = deps.settings if deps else EngineSettings()
    try:
        deps = deps or HandlerDependencies.from_settings()
        settings = deps.settings
        invocation = _parse(VerificationInvocation, event)
        source_ref, target_ref = invocation.credential_refs(settings)
        logger.info("Verification operation: %s", invocation.operation)

        async with open_store_pair(
            deps.credentials, deps.connector, source_ref, target_ref
        ) as stores:
            controller = VerificationController(
                stores.source,
                stores.target,
                config_updater=deps.config_updater,
                source_credential_ref=source_ref,
                tracer=deps.tracer,
                enable_tracing=deps.enable_tracing,
                enable_metrics=deps.enable_metrics,
            )

            if invocation.operation == "verify":
                reports = await controller.verify(
                    invocation.collections,
                    sample_size=invocation.sample_size,
                    deep=invocation.deep_validation,
                    checksum=invocation.checksum_validation,
                )
                success = all(r.is_match for r in reports)
                results = [r.to_dict() for r in reports]
            elif invocation.operation == "status":
                report = await controller.status(invocation.collections)
                success = True
                results = [report.to_dict()]
            else:
                rollback = await controller.rollback(force=invocation.force)
                success = rollback.success
                results = [rollback.to_dict()]
    except Exception as e:
        log_classified_error(logger, "Verification operation", e)
        return error_response(e, settings)

    return _response(
        success,
        {
            "success": success,
            "operation": invocation.operation,
            "timestamp": _timestamp(),
            "results": results,
        },
    )


async def handle_orchestration(
    event: dict[str, Any] | None,
    deps: HandlerDependencies | None = None,
) -> Response:
    """
    Run a complete migration through the MigrationOrchestrator.

    The target credential reference becomes the application's database
    after a successful run, so ``APP_SECRET_NAME`` must be configured
    unless ``dryRun`` is set.
    """
    settings = deps.settings if deps else EngineSettings()
    try:
        deps = deps or HandlerDependencies.from_settings()
        settings = deps.settings
        invocation = _parse(OrchestrationInvocation, event)
        source_ref, target_ref = invocation.credential_refs(settings)

        config_updater = deps.config_updater
        if config_updater is None:
            if not invocation.dry_run:
                raise InvalidPayloadError("APP_SECRET_NAME is not configured")
            config_updater = InMemoryConfigurationUpdater()

        async with open_store_pair(
            deps.credentials, deps.connector, source_ref, target_ref
        ) as stores:
            orchestrator = MigrationOrchestrator(
                VerificationController(
                    stores.source,
                    stores.target,
                    tracer=deps.tracer,
                    enable_tracing=deps.enable_tracing,
                    enable_metrics=deps.enable_metrics,
                ),
                deps.batch_processor(stores),
                config_updater,
                target_credential_ref=target_ref,
                source=stores.source,
                target=stores.target,
                sleep=deps.sleep,
                tracer=deps.tracer,
                enable_tracing=deps.enable_tracing,
            )
            run = await orchestrator.run(
                invocation.collections,
                dry_run=invocation.dry_run,
                skip_validation=invocation.skip_validation,
                auto_rollback=invocation.auto_rollback,
                migrate_indexes=invocation.migrate_indexes,
                batch_size=invocation.batch_size or settings.batch_size,
                time_budget_ms=settings.max_processing_time_ms,
            )
    except Exception as e:
        log_classified_error(logger, "Migration orchestration", e)
        return error_response(e, settings)

    return _response(run.success, run.to_dict())


def batch_lambda_handler(event: dict[str, Any], context: Any = None) -> Response:
    return asyncio.run(handle_batch(event))


def resume_lambda_handler(event: dict[str, Any], context: Any = None) -> Response:
    return asyncio.run(handle_resume(event))


def status_lambda_handler(event: dict[str, Any], context: Any = None) -> Response:
    return asyncio.run(handle_status(event))


def verification_lambda_handler(event: dict[str, Any], context: Any = None) -> Response:
    return asyncio.run(handle_verification(event))


def orchestration_lambda_handler(event: dict[str, Any], context: Any = None) -> Response:
    return asyncio.run(handle_orchestration(event))


__all__ = [
    "Response",
    "BatchInvocation",
    "StatusInvocation",
    "VerificationInvocation",
    "OrchestrationInvocation",
    "HandlerDependencies",
    "error_response",
    "handle_batch",
    "handle_resume",
    "handle_status",
    "handle_verification",
    "handle_orchestration",
    "batch_lambda_handler",
    "resume_lambda_handler",
    "status_lambda_handler",
    "verification_lambda_handler",
    "orchestration_lambda_handler",
]
