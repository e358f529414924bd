"""Tracing support built on the OpenTelemetry API."""

from shopflow.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    SpanKindEnum,
    Tracer,
    create_tracer,
    extract_trace_context,
    inject_trace_context,
)

__all__ = [
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "SpanKindEnum",
    "create_tracer",
    "inject_trace_context",
    "extract_trace_context",
]
