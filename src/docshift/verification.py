"""
VerificationController - Verifies, inspects and rolls back migrations.

The VerificationController compares source and target after a migration,
reports the health of both stores, and performs the manual rollback that
points the application back at the source store.

Responsibilities:
    - Compare document counts, index counts and the shape of sampled documents
    - Optionally compare every document and a checksum of each collection
    - Capture per-collection failures without aborting other collections
    - Report reachability and per-collection counts of both stores
    - Re-point the application configuration at the source store on a forced rollback

Usage:
    >>> from docshift.verification import VerificationController
    >>>
    >>> controller = VerificationController(source, target)
    >>> reports = await controller.verify(["markers", "areas"])
    >>> if all(r.is_match for r in reports):
    ...     print("Verification passed")
"""

from __future__ import annotations

import hashlib
import json
import logging

from docshift.config_updater import ConfigurationUpdater
from docshift.exceptions import ConfigurationUpdateError, RollbackNotForcedError
from docshift.metrics import MigrationMetrics
from docshift.models import (
    CollectionStatus,
    RollbackResult,
    StatusReport,
    StoreState,
    StoreStatus,
    VerificationReport,
    VerificationStatus,
)
from docshift.observability import (
    ATTR_COLLECTION,
    ATTR_ERROR_TYPE,
    ATTR_MIGRATION_OPERATION,
    Tracer,
    create_tracer,
)
from docshift.stores.interface import Document, DocumentStore

logger = logging.getLogger(__name__)

# Largest collection compared document by document
DEEP_VALIDATION_THRESHOLD = 10_000

SCAN_WINDOW_SIZE = 1000

# Bookkeeping fields that may legitimately differ between stores
IGNORED_FIELDS = frozenset({"__v"})


def _comparable(document: Document) -> Document:
    return {key: value for key, value in document.items() if key not in IGNORED_FIELDS}


async def collection_checksum(store: DocumentStore, collection: str) -> str:
    """
    Compute the SHA-256 digest of a collection.

    Documents are read in ascending ``_id`` order and hashed as canonical
    JSON (sorted keys), so equal collections produce equal digests on any
    store.
    """
    digest = hashlib.sha256()
    offset = 0
    while True:
        window = await store.find_window(collection, offset, SCAN_WINDOW_SIZE)
        if not window:
            return digest.hexdigest()
        for document in window:
            digest.update(
                json.dumps(_comparable(document), sort_keys=True, default=str).encode("utf-8")
            )
        offset += len(window)


class VerificationController:
    """
    Verifies migrated collections and controls rollback.

    Rollback never copies documents: it checks that the source store is
    reachable and then points the application configuration back at it.
    It refuses to run unless explicitly forced.

    Example:
        >>> controller = VerificationController(
        ...     source,
        ...     target,
        ...     config_updater=updater,
        ...     source_credential_ref="chronas/mongodb/source",
        ... )
        >>> await controller.rollback(force=True)

    Attributes:
        _source: The original store.
        _target: The migrated store.
        _config_updater: Updater of the application configuration.
        _source_credential_ref: Reference the application is pointed back at.
    """

    def __init__(
        self,
        source: DocumentStore,
        target: DocumentStore,
        *,
        config_updater: ConfigurationUpdater | None = None,
        source_credential_ref: str | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
        enable_metrics: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._source = source
        self._target = target
        self._config_updater = config_updater
        self._source_credential_ref = source_credential_ref
        self._enable_metrics = enable_metrics

    async def verify(
        self,
        collections: list[str],
        *,
        sample_size: int = 1,
        deep: bool = False,
        checksum: bool = False,
    ) -> list[VerificationReport]:
        """
        Verify each collection independently.

        A collection that cannot be verified is reported with status
        ``error``; the remaining collections are still verified.

        Args:
            collections: Collection names to verify.
            sample_size: Number of leading source documents whose keys are
                compared with their migrated copies.
            deep: Compare every document field by field. Collections larger
                than ``DEEP_VALIDATION_THRESHOLD`` documents are not compared.
            checksum: Compare SHA-256 digests of both collections.

        Returns:
            One VerificationReport per collection, in input order.

        Raises:
            ValueError: If sample_size is less than 1.
        """
        if sample_size < 1:
            raise ValueError(f"sample_size must be >= 1, got {sample_size}")

        reports: list[VerificationReport] = []
        with self._tracer.span(
            "docshift.verification.verify",
            {ATTR_MIGRATION_OPERATION: "verify"},
        ):
            for collection in collections:
                metrics = MigrationMetrics(collection, enable_metrics=self._enable_metrics)
                try:
                    report = await self._verify_collection(
                        collection, sample_size=sample_size, deep=deep, checksum=checksum
                    )
                except Exception as e:
                    logger.error("Verification error for %s: %s", collection, e)
                    metrics.record_verification_failure("error")
                    reports.append(VerificationReport.failed(collection, str(e)))
                    continue

                if not report.counts_match:
                    metrics.record_verification_failure("count_mismatch")
                if not report.indexes_match:
                    metrics.record_verification_failure("index_mismatch")
                if not report.sample_shape_match:
                    metrics.record_verification_failure("shape_mismatch")
                if report.deep_match is False:
                    metrics.record_verification_failure("content_mismatch")
                if report.checksum_match is False:
                    metrics.record_verification_failure("checksum_mismatch")
                reports.append(report)

        return reports

    async def _verify_collection(
        self, collection: str, *, sample_size: int, deep: bool, checksum: bool
    ) -> VerificationReport:
        with self._tracer.span(
            "docshift.verification.verify_collection",
            {ATTR_COLLECTION: collection},
        ):
            old_count = await self._source.count(collection)
            new_count = await self._target.count(collection)
            old_index_count = await self._source.index_count(collection)
            new_index_count = await self._target.index_count(collection)
            sample_shape_match = await self._sample_shape_matches(collection, sample_size)

            deep_match: bool | None = None
            if deep:
                if old_count <= DEEP_VALIDATION_THRESHOLD:
                    deep_match = await self._documents_match(collection)
                else:
                    logger.warning(
                        "Deep validation skipped for %s: %d documents exceed %d",
                        collection,
                        old_count,
                        DEEP_VALIDATION_THRESHOLD,
                    )

            checksum_match: bool | None = None
            if checksum:
                source_digest = await collection_checksum(self._source, collection)
                target_digest = await collection_checksum(self._target, collection)
                checksum_match = source_digest == target_digest
                if not checksum_match:
                    logger.warning(
                        "Checksum mismatch for %s: source=%s, target=%s",
                        collection,
                        source_digest,
                        target_digest,
                    )

            counts_match = old_count == new_count
            indexes_match = old_index_count == new_index_count
            matched = (
                counts_match
                and indexes_match
                and sample_shape_match
                and deep_match is not False
                and checksum_match is not False
            )

            if matched:
                logger.info("Verified %s: %d documents", collection, new_count)
            else:
                logger.warning(
                    "Verification mismatch for %s: counts %d/%d, indexes %d/%d, shape %s",
                    collection,
                    old_count,
                    new_count,
                    old_index_count,
                    new_index_count,
                    "match" if sample_shape_match else "mismatch",
                )

            return VerificationReport(
                collection=collection,
                status=VerificationStatus.MATCH if matched else VerificationStatus.MISMATCH,
                old_count=old_count,
                new_count=new_count,
                counts_match=counts_match,
                old_index_count=old_index_count,
                new_index_count=new_index_count,
                indexes_match=indexes_match,
                sample_shape_match=sample_shape_match,
                deep_match=deep_match,
                checksum_match=checksum_match,
            )

    async def _sample_shape_matches(self, collection: str, sample_size: int) -> bool:
        samples = await self._source.find_window(collection, 0, sample_size)
        for sample in samples:
            migrated = await self._target.find_by_id(collection, sample["_id"])
            if migrated is None:
                logger.warning(
                    "Sample document %r missing from target %s", sample["_id"], collection
                )
                return False
            if set(sample) != set(migrated):
                return False
        return True

    async def _documents_match(self, collection: str) -> bool:
        offset = 0
        while True:
            window = await self._source.find_window(collection, offset, SCAN_WINDOW_SIZE)
            if not window:
                return True
            for document in window:
                migrated = await self._target.find_by_id(collection, document["_id"])
                if migrated is None or _comparable(document) != _comparable(migrated):
                    logger.warning(
                        "Document %r differs between source and target %s",
                        document["_id"],
                        collection,
                    )
                    return False
            offset += len(window)

    async def status(self, collections: list[str]) -> StatusReport:
        """
        Report reachability of both stores and per-collection counts.

        Unreachable stores are reported, never raised. No deep comparison
        is made.

        Args:
            collections: Collections whose counts are reported.

        Returns:
            StatusReport for both stores.
        """
        with self._tracer.span(
            "docshift.verification.status",
            {ATTR_MIGRATION_OPERATION: "status"},
        ):
            source_status = await self._store_status(self._source, "source")
            target_status = await self._store_status(self._target, "target")

            counts: list[CollectionStatus] = []
            for collection in collections:
                counts.append(
                    CollectionStatus(
                        collection=collection,
                        source_count=await self._count_if_online(
                            self._source, source_status, collection
                        ),
                        target_count=await self._count_if_online(
                            self._target, target_status, collection
                        ),
                    )
                )

            return StatusReport(source=source_status, target=target_status, collections=counts)

    async def _store_status(self, store: DocumentStore, label: str) -> StoreStatus:
        try:
            await store.ping()
            names = await store.list_collections()
        except Exception as e:
            logger.warning("%s store %s is unreachable: %s", label, store.endpoint, e)
            return StoreStatus(
                label=label,
                endpoint=store.endpoint,
                online=False,
                state=StoreState.UNREACHABLE,
                error=str(e),
            )
        return StoreStatus(
            label=label,
            endpoint=store.endpoint,
            online=True,
            state=StoreState.ACTIVE,
            collection_count=len(names),
        )

    @staticmethod
    async def _count_if_online(
        store: DocumentStore, status: StoreStatus, collection: str
    ) -> int | None:
        if not status.online:
            return None
        try:
            return await store.count(collection)
        except Exception as e:
            logger.warning("Failed to count %s on %s: %s", collection, status.label, e)
            return None

    async def rollback(self, force: bool = False) -> RollbackResult:
        """
        Point the application back at the source store.

        Args:
            force: Must be True; rollback is never implicit.

        Returns:
            RollbackResult describing the switch.

        Raises:
            RollbackNotForcedError: If force is not True. Nothing is touched.
            StoreConnectionError: If the source store is not reachable.
            ConfigurationUpdateError: If the configuration cannot be rewritten.
        """
        if force is not True:
            raise RollbackNotForcedError()

        with self._tracer.span(
            "docshift.verification.rollback",
            {ATTR_MIGRATION_OPERATION: "rollback"},
        ) as span:
            if self._config_updater is None or not self._source_credential_ref:
                raise ConfigurationUpdateError(
                    "application",
                    "rollback needs a configuration updater and a source credential reference",
                )

            logger.info("Performing connection switch rollback to %s", self._source.endpoint)
            try:
                await self._source.ping()
            except Exception as e:
                if span is not None:
                    span.set_attribute(ATTR_ERROR_TYPE, type(e).__name__)
                raise
            logger.info("Original cluster is accessible and ready")

            await self._config_updater.point_to(self._source_credential_ref)

            return RollbackResult(
                success=True,
                message="Application configuration points at the original cluster",
                source_endpoint=self._source.endpoint,
            )


__all__ = [
    "DEEP_VALIDATION_THRESHOLD",
    "VerificationController",
    "collection_checksum",
]
