"""
Tracers handed to every migration component.

The batch processor, orchestrator, verification controller and document
stores never import OpenTelemetry themselves; each takes a ``Tracer`` and
opens its spans through it. Passing ``enable_tracing=False`` (or a
``NullTracer``) turns span creation off for one component without touching
the global tracer provider.

Spans opened by the engine:

    docshift.orchestrator.run                  one migration run
      docshift.orchestrator.step               one attempt of a step
        docshift.orchestrator.collection       one collection of the Migration step
          docshift.batch_processor.process     one time-bounded invocation
            <store>.find_window                read of one window
            docshift.batch_processor.write_batch
              <store>.insert_many              one write attempt
    docshift.verification.verify
      docshift.verification.verify_collection
    docshift.verification.status
    docshift.verification.rollback

Store spans are named after the store class (``mongodb_document_store``,
``inmemory_document_store``) and carry the ``db.*`` attributes of
:mod:`docshift.observability.attributes`.

Example:
    >>> from docshift.observability import ATTR_COLLECTION, create_tracer
    >>>
    >>> class IndexCopier:
    ...     def __init__(self, tracer: Tracer | None = None, enable_tracing: bool = True):
    ...         self._tracer = tracer or create_tracer(__name__, enable_tracing)
    ...
    ...     async def copy(self, collection: str) -> None:
    ...         with self._tracer.span("docshift.indexes.copy", {ATTR_COLLECTION: collection}):
    ...             await self._copy(collection)
"""

from __future__ import annotations

import contextlib
from collections.abc import Generator
from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from opentelemetry import trace

if TYPE_CHECKING:
    from opentelemetry.trace import Span


@runtime_checkable
class Tracer(Protocol):
    """
    What a migration component needs from a tracer.

    Implementations:
    - NullTracer: tracing switched off for the component
    - OpenTelemetryTracer: spans through the global OpenTelemetry API
    - MockTracer: records span names and attributes for test assertions
    """

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        """
        Open a span around one unit of migration work.

        Args:
            name: Span name, such as "docshift.batch_processor.write_batch"
            attributes: Initial attributes, such as the collection and batch offset

        Returns:
            Context manager yielding the live Span, or None when nothing records.
            Callers that add attributes later must check for None.
        """
        ...

    @property
    def enabled(self) -> bool:
        """True when spans are handed to OpenTelemetry (or recorded in tests)."""
        ...


class NullTracer:
    """
    Tracer that opens no spans.

    Used by components built with ``enable_tracing=False``; the batch
    processor's per-batch spans then cost nothing.

    Example:
        >>> tracer = NullTracer()
        >>> with tracer.span("docshift.batch_processor.write_batch") as span:
        ...     assert span is None
    """

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[None, None, None]:
        yield None

    @property
    def enabled(self) -> bool:
        return False


class OpenTelemetryTracer:
    """
    Tracer backed by the OpenTelemetry API.

    Spans are exported only when the hosting process (a Lambda layer or a
    CLI wrapper) installs an SDK tracer provider; without one the API hands
    out non-recording spans and ``set_attribute`` calls are dropped.

    Args:
        tracer_name: Instrumentation scope, usually the module ``__name__``
    """

    def __init__(self, tracer_name: str) -> None:
        self._tracer = trace.get_tracer(tracer_name)

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        """Start a span and make it current for nested store and batch spans."""
        return self._tracer.start_as_current_span(
            name,
            attributes=attributes or {},
        )

    @property
    def enabled(self) -> bool:
        return True


class MockTracer:
    """
    Tracer that records every span it is asked to open.

    Tests inject it to assert which migration spans were opened and with
    which attributes, without an OpenTelemetry SDK.

    Example:
        >>> tracer = MockTracer()
        >>> with tracer.span("docshift.orchestrator.step", {"docshift.migration.attempt": 1}):
        ...     pass
        >>> tracer.span_names
        ['docshift.orchestrator.step']
    """

    def __init__(self) -> None:
        self.spans: list[tuple[str, dict[str, Any] | None]] = []

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[None, None, None]:
        self.spans.append((name, attributes))
        yield None

    @property
    def enabled(self) -> bool:
        return True

    @property
    def span_names(self) -> list[str]:
        """Names of the recorded spans, in opening order."""
        return [name for name, _ in self.spans]

    def clear(self) -> None:
        self.spans.clear()


def create_tracer(
    name: str,
    enable_tracing: bool = True,
) -> Tracer:
    """
    Pick the tracer for a component that was not given one.

    Args:
        name: Instrumentation scope, usually the module ``__name__``
        enable_tracing: False yields a NullTracer

    Returns:
        OpenTelemetryTracer when tracing is enabled, NullTracer otherwise
    """
    if enable_tracing:
        return OpenTelemetryTracer(name)
    return NullTracer()


__all__ = [
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "create_tracer",
]
