"""
Observability utilities for rediscoord.

Tracing is optional: when OpenTelemetry is not installed every component
falls back to a NullTracer.

Example:
    >>> from rediscoord.observability import OTEL_AVAILABLE, create_tracer
    >>> tracer = create_tracer(__name__, enable_tracing=True)
    >>> tracer.enabled == OTEL_AVAILABLE
    True
"""

from rediscoord.observability.attributes import (
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_LOCK_ACQUIRED,
    ATTR_LOCK_ATTEMPTS,
    ATTR_LOCK_KEY,
    ATTR_LOCK_TTL_MS,
    ATTR_RATELIMIT_ALGORITHM,
    ATTR_RATELIMIT_KEY,
    ATTR_RATELIMIT_LIMIT,
    ATTR_RATELIMIT_N,
    DB_SYSTEM_REDIS,
)
from rediscoord.observability.tracer import (
    OTEL_AVAILABLE,
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    RecordedSpan,
    Tracer,
    create_tracer,
)

__all__ = [
    "OTEL_AVAILABLE",
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "RecordedSpan",
    "MockTracer",
    "create_tracer",
    "ATTR_DB_SYSTEM",
    "ATTR_DB_OPERATION",
    "DB_SYSTEM_REDIS",
    "ATTR_LOCK_KEY",
    "ATTR_LOCK_TTL_MS",
    "ATTR_LOCK_ACQUIRED",
    "ATTR_LOCK_ATTEMPTS",
    "ATTR_RATELIMIT_KEY",
    "ATTR_RATELIMIT_N",
    "ATTR_RATELIMIT_LIMIT",
    "ATTR_RATELIMIT_ALGORITHM",
]
