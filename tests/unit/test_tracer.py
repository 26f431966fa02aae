"""Unit tests for the tracer implementations."""

from opentelemetry import trace

from docshift.observability import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
)


class TestCreateTracer:
    def test_enabled(self):
        tracer = create_tracer(__name__, enable_tracing=True)
        assert isinstance(tracer, OpenTelemetryTracer)
        assert tracer.enabled is True

    def test_disabled(self):
        tracer = create_tracer(__name__, enable_tracing=False)
        assert isinstance(tracer, NullTracer)
        assert tracer.enabled is False


class TestTracers:
    def test_all_satisfy_protocol(self):
        for tracer in (NullTracer(), MockTracer(), OpenTelemetryTracer(__name__)):
            assert isinstance(tracer, Tracer)

    def test_null_span_yields_none(self):
        with NullTracer().span("docshift.test", {"k": "v"}) as span:
            assert span is None

    def test_opentelemetry_span_without_sdk(self):
        with OpenTelemetryTracer(__name__).span("docshift.test", {"k": 1}) as span:
            span.set_attribute("docshift.collection", "markers")

    def test_mock_records_spans(self):
        tracer = MockTracer()

        with tracer.span("outer", {"docshift.collection": "markers"}):
            with tracer.span("inner"):
                pass

        assert tracer.span_names == ["outer", "inner"]
        assert tracer.spans[0] == ("outer", {"docshift.collection": "markers"})

        tracer.clear()
        assert tracer.spans == []

    def test_mock_is_enabled_and_yields_none(self):
        tracer = MockTracer()

        attributes = {"docshift.migration.step": "Migration"}
        with tracer.span("docshift.orchestrator.step", attributes) as span:
            assert span is None

        assert tracer.enabled is True
        assert tracer.span_names == ["docshift.orchestrator.step"]

    def test_opentelemetry_span_is_current(self):
        with OpenTelemetryTracer(__name__).span("docshift.orchestrator.run") as span:
            assert trace.get_current_span() is span
