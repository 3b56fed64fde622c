"""
rediscoord - Redis-backed coordination primitives for asyncio services.

This library provides:
- Distributed locks with owner-scoped release and extension
- Fixed-window and sliding-window rate limiting
- A prefixed key/value cache with JSON helpers
- A user session store with per-user indexes
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("rediscoord")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from rediscoord.cache import Cache, KeyBuilder
from rediscoord.client import RedisClient, RedisConfig, RedisMode
from rediscoord.exceptions import (
    ConfigurationError,
    CoordinationError,
    CoordinationTimeoutError,
    ErrorCode,
    KeyNotFoundError,
    LockContentionError,
    LockError,
    LockNotHeldError,
    LockTimeoutError,
    SerializationError,
    StoreConnectionError,
    StoreError,
    StoreTimeoutError,
    error_code,
    from_redis_error,
)
from rediscoord.locks import Lock, Locker, LockState
from rediscoord.observability import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
)
from rediscoord.ratelimit import (
    RateLimiter,
    RateLimitResult,
    ip_rate_limiter,
    user_rate_limiter,
)
from rediscoord.sessions import Session, SessionStore
from rediscoord.tokens import generate_owner_token, generate_session_id

__all__ = [
    "__version__",
    # Client
    "RedisClient",
    "RedisConfig",
    "RedisMode",
    # Locks
    "Lock",
    "Locker",
    "LockState",
    # Rate limiting
    "RateLimiter",
    "RateLimitResult",
    "user_rate_limiter",
    "ip_rate_limiter",
    # Cache
    "Cache",
    "KeyBuilder",
    # Sessions
    "Session",
    "SessionStore",
    # Tokens
    "generate_owner_token",
    "generate_session_id",
    # Exceptions
    "CoordinationError",
    "ConfigurationError",
    "CoordinationTimeoutError",
    "ErrorCode",
    "KeyNotFoundError",
    "LockError",
    "LockContentionError",
    "LockNotHeldError",
    "LockTimeoutError",
    "SerializationError",
    "StoreError",
    "StoreConnectionError",
    "StoreTimeoutError",
    "error_code",
    "from_redis_error",
    # Observability
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "create_tracer",
]
