"""
Span creation for rediscoord components.

Lockers and rate limiters hold a :class:`Tracer` rather than calling
OpenTelemetry themselves. The default comes from :func:`create_tracer`, which
falls back to a no-op when tracing is disabled or the ``telemetry`` extra is
not installed. Tests pass a :class:`MockTracer` and assert on what it saw.

Example:
    >>> from rediscoord.observability import MockTracer
    >>>
    >>> tracer = MockTracer()
    >>> locker = Locker(client, tracer=tracer)
    >>> await locker.acquire("reports:daily")
    >>> tracer.span_names
    ['rediscoord.lock.acquire']
"""

from __future__ import annotations

import contextlib
from collections.abc import Iterator
from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Any, NamedTuple, Protocol, runtime_checkable

if TYPE_CHECKING:
    from opentelemetry.trace import Span

try:
    from opentelemetry import trace

    OTEL_AVAILABLE = True
except ImportError:
    OTEL_AVAILABLE = False
    trace = None  # type: ignore[assignment]


@runtime_checkable
class Tracer(Protocol):
    """Anything that can open a named span with attributes."""

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        """
        Open a span around a block.

        Args:
            name: Span name, e.g. "rediscoord.ratelimit.allow"
            attributes: Initial span attributes

        Returns:
            Context manager yielding the live span, or None when the
            tracer does not produce real spans
        """
        ...

    @property
    def enabled(self) -> bool:
        """Whether spans are actually exported."""
        ...


class NullTracer:
    """Tracer that opens no spans."""

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Iterator[None]:
        yield None

    @property
    def enabled(self) -> bool:
        return False


class OpenTelemetryTracer:
    """
    Tracer backed by the global OpenTelemetry tracer provider.

    Exceptions escaping a span are recorded on it and mark it as failed,
    which is OpenTelemetry's default behaviour for current spans.

    Args:
        tracer_name: Instrumentation scope name, usually the module's __name__

    Raises:
        ImportError: If opentelemetry-api is not installed
    """

    def __init__(self, tracer_name: str) -> None:
        from opentelemetry import trace as otel_trace

        self._tracer = otel_trace.get_tracer(tracer_name)

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        return self._tracer.start_as_current_span(name, attributes=attributes or {})

    @property
    def enabled(self) -> bool:
        return True


class RecordedSpan(NamedTuple):
    """A span seen by :class:`MockTracer`; compares equal to a plain tuple."""

    name: str
    attributes: dict[str, Any] | None


class MockTracer:
    """
    Tracer for tests: remembers every span opened, in order.

    Example:
        >>> tracer = MockTracer()
        >>> with tracer.span("rediscoord.lock.release", {"rediscoord.lock.key": "lock:a"}):
        ...     pass
        >>> tracer.spans
        [RecordedSpan(name='rediscoord.lock.release', attributes={'rediscoord.lock.key': 'lock:a'})]
    """

    def __init__(self) -> None:
        self.spans: list[RecordedSpan] = []

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Iterator[None]:
        # Recorded on entry, so spans whose block raises are kept too
        self.spans.append(RecordedSpan(name, attributes))
        yield None

    @property
    def enabled(self) -> bool:
        return True

    @property
    def span_names(self) -> list[str]:
        return [recorded.name for recorded in self.spans]

    def attributes_of(self, name: str) -> dict[str, Any]:
        """
        Attributes of the most recent span with the given name.

        Raises:
            KeyError: If no such span was recorded
        """
        for recorded in reversed(self.spans):
            if recorded.name == name:
                return dict(recorded.attributes or {})
        raise KeyError(name)

    def clear(self) -> None:
        self.spans.clear()


def create_tracer(name: str, enable_tracing: bool = True) -> Tracer:
    """
    Pick the tracer a component uses when none is injected.

    Returns:
        OpenTelemetryTracer when tracing is enabled and OpenTelemetry is
        importable, NullTracer otherwise
    """
    if enable_tracing and OTEL_AVAILABLE:
        return OpenTelemetryTracer(name)
    return NullTracer()


__all__ = [
    "OTEL_AVAILABLE",
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "RecordedSpan",
    "MockTracer",
    "create_tracer",
]
