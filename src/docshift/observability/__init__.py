"""
Observability utilities for docshift.

This module provides tracing and standard attribute definitions for
consistent observability across the migration engine.

Example:
    >>> from docshift.observability import create_tracer, ATTR_COLLECTION
    >>>
    >>> class MyStore:
    ...     def __init__(self, enable_tracing: bool = True):
    ...         self._tracer = create_tracer(__name__, enable_tracing)
    ...
    ...     async def count(self, collection: str) -> int:
    ...         with self._tracer.span("my_store.count", {ATTR_COLLECTION: collection}):
    ...             ...
"""

from docshift.observability.attributes import (
    ATTR_BATCH_CLASSIFICATION,
    ATTR_BATCH_NUMBER,
    ATTR_BATCH_OFFSET,
    ATTR_BATCH_SIZE,
    ATTR_COLLECTION,
    ATTR_DB_NAME,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_DOCUMENT_COUNT,
    ATTR_ERROR_TYPE,
    ATTR_MIGRATION_ATTEMPT,
    ATTR_MIGRATION_DRY_RUN,
    ATTR_MIGRATION_OPERATION,
    ATTR_MIGRATION_START_OFFSET,
    ATTR_MIGRATION_STEP,
    ATTR_MIGRATION_TOTAL_DOCUMENTS,
)
from docshift.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
)

__all__ = [
    # Tracers
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "create_tracer",
    # Attributes
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
