"""
Tracer protocol and implementations.

Components take an optional ``Tracer`` and fall back to ``create_tracer``,
so tracing can be switched off per component or replaced by
``MockTracer`` in tests.

Example:
    >>> class Publisher:
    ...     def __init__(self, tracer: Tracer | None = None, enable_tracing: bool = True):
    ...         self._tracer = tracer or create_tracer(__name__, enable_tracing)
    ...
    ...     async def publish(self, event):
    ...         with self._tracer.span("shopflow.publish", {ATTR_EVENT_TYPE: event.event_type}):
    ...             ...
"""

from __future__ import annotations

import contextlib
from collections.abc import Generator, Mapping, MutableMapping
from contextlib import AbstractContextManager
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from opentelemetry import propagate, trace
from opentelemetry.context import Context
from opentelemetry.trace import Span, SpanKind


class SpanKindEnum(Enum):
    """Role of a span: internal work, publishing, or consuming."""

    INTERNAL = "internal"
    PRODUCER = "producer"
    CONSUMER = "consumer"


_OTEL_KINDS = {
    SpanKindEnum.INTERNAL: SpanKind.INTERNAL,
    SpanKindEnum.PRODUCER: SpanKind.PRODUCER,
    SpanKindEnum.CONSUMER: SpanKind.CONSUMER,
}


@runtime_checkable
class Tracer(Protocol):
    """Creates tracing spans for a component."""

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        """Context manager yielding the active span, or None when disabled."""
        ...

    @property
    def enabled(self) -> bool: ...

    def start_span(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: dict[str, Any] | None = None,
        context: Context | None = None,
    ) -> Span | None:
        """
        Start a span that the caller must end.

        Used for messaging, where the span has to outlive a single
        ``with`` block (publish then confirm, receive then settle).
        """
        ...


class NullTracer:
    """No-op tracer used when tracing is disabled."""

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

    def start_span(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: dict[str, Any] | None = None,
        context: Context | None = None,
    ) -> None:
        return None


class OpenTelemetryTracer:
    """Tracer backed by the OpenTelemetry API."""

    def __init__(self, tracer_name: str) -> None:
        self._tracer = trace.get_tracer(tracer_name)

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        return self._tracer.start_as_current_span(name, attributes=attributes or {})

    @property
    def enabled(self) -> bool:
        return True

    def start_span(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: dict[str, Any] | None = None,
        context: Context | None = None,
    ) -> Span:
        return self._tracer.start_span(
            name,
            kind=_OTEL_KINDS[kind],
            attributes=attributes or {},
            context=context,
        )


class MockTracer:
    """
    Tracer that records span names and attributes for assertions.

    Example:
        >>> tracer = MockTracer()
        >>> with tracer.span("operation", {"key": "value"}):
        ...     pass
        >>> tracer.span_names
        ['operation']
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
        return [name for name, _ in self.spans]

    def start_span(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: dict[str, Any] | None = None,
        context: Context | None = None,
    ) -> None:
        self.spans.append((name, attributes))
        return None


def create_tracer(name: str, enable_tracing: bool = True) -> Tracer:
    """Return an OpenTelemetryTracer when tracing is enabled, else a NullTracer."""
    if enable_tracing:
        return OpenTelemetryTracer(name)
    return NullTracer()


def inject_trace_context(headers: MutableMapping[str, Any]) -> None:
    """Write the current trace context into message headers."""
    propagate.inject(headers)


def extract_trace_context(headers: Mapping[str, Any] | None) -> Context | None:
    """Read a trace context from message headers, if any were sent."""
    if not headers:
        return None
    carrier = {k: v.decode() if isinstance(v, bytes) else str(v) for k, v in headers.items()}
    return propagate.extract(carrier)
