"""
Standard span and metric attributes for docshift.

This module defines attribute constants used across all docshift components
for consistent span naming and metrics labeling. These follow OpenTelemetry
semantic conventions where applicable.

Example:
    >>> from docshift.observability.attributes import (
    ...     ATTR_COLLECTION,
    ...     ATTR_BATCH_OFFSET,
    ... )
    >>>
    >>> with tracer.span(
    ...     "docshift.batch_processor.write_batch",
    ...     {ATTR_COLLECTION: "areas", ATTR_BATCH_OFFSET: 4000},
    ... ):
    ...     pass
"""

# =============================================================================
# Database Attributes (OTEL semantic conventions)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database system identifier (e.g., 'mongodb')."""

ATTR_DB_NAME = "db.name"
"""Database name."""

ATTR_DB_OPERATION = "db.operation"
"""Database operation name (e.g., 'insert_many', 'count')."""

# =============================================================================
# Collection / Batch Attributes
# =============================================================================

ATTR_COLLECTION = "docshift.collection"
"""Name of the collection being migrated or verified."""

ATTR_BATCH_SIZE = "docshift.batch.size"
"""Configured batch size (integer)."""

ATTR_BATCH_NUMBER = "docshift.batch.number"
"""1-based number of the batch within one invocation."""

ATTR_BATCH_OFFSET = "docshift.batch.offset"
"""Document offset at which the batch starts."""

ATTR_BATCH_CLASSIFICATION = "docshift.batch.classification"
"""Outcome classification of a batch (ok, duplicate-skip, fatal)."""

ATTR_DOCUMENT_COUNT = "docshift.document.count"
"""Number of documents in an operation (integer)."""

# =============================================================================
# Migration Attributes
# =============================================================================

ATTR_MIGRATION_START_OFFSET = "docshift.migration.start_offset"
"""Offset at which an invocation started (resume token)."""

ATTR_MIGRATION_TOTAL_DOCUMENTS = "docshift.migration.total_documents"
"""Total number of documents in the source collection."""

ATTR_MIGRATION_DRY_RUN = "docshift.migration.dry_run"
"""Whether the invocation is a dry run (boolean)."""

ATTR_MIGRATION_STEP = "docshift.migration.step"
"""Orchestration step name."""

ATTR_MIGRATION_ATTEMPT = "docshift.migration.attempt"
"""Attempt number of a retried operation (1-based)."""

ATTR_MIGRATION_OPERATION = "docshift.migration.operation"
"""Verification controller operation (verify, status, rollback)."""

# =============================================================================
# Error Attributes
# =============================================================================

ATTR_ERROR_TYPE = "error.type"
"""Type of error that occurred (exception class name)."""


__all__ = [
    "ATTR_DB_SYSTEM",
    "ATTR_DB_NAME",
    "ATTR_DB_OPERATION",
    "ATTR_COLLECTION",
    "ATTR_BATCH_SIZE",
    "ATTR_BATCH_NUMBER",
    "ATTR_BATCH_OFFSET",
    "ATTR_BATCH_CLASSIFICATION",
    "ATTR_DOCUMENT_COUNT",
    "ATTR_MIGRATION_START_OFFSET",
    "ATTR_MIGRATION_TOTAL_DOCUMENTS",
    "ATTR_MIGRATION_DRY_RUN",
    "ATTR_MIGRATION_STEP",
    "ATTR_MIGRATION_ATTEMPT",
    "ATTR_MIGRATION_OPERATION",
    "ATTR_ERROR_TYPE",
]
