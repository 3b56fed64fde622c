"""
Standard span attributes for rediscoord.

Names follow OpenTelemetry semantic conventions where one exists
(``db.system``, ``db.operation``).
"""

# =============================================================================
# Database (OTEL semantic conventions)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database system identifier; always "redis"."""

ATTR_DB_OPERATION = "db.operation"
"""Redis command or script name (e.g., 'SET', 'compare_and_delete')."""

DB_SYSTEM_REDIS = "redis"

# =============================================================================
# Lock Attributes
# =============================================================================

ATTR_LOCK_KEY = "rediscoord.lock.key"
"""Fully-qualified lock key."""

ATTR_LOCK_TTL_MS = "rediscoord.lock.ttl_ms"
"""Requested lease length in milliseconds."""

ATTR_LOCK_ACQUIRED = "rediscoord.lock.acquired"
"""Whether the lock was acquired (boolean)."""

ATTR_LOCK_ATTEMPTS = "rediscoord.lock.attempts"
"""Maximum number of acquisition attempts (integer)."""

# =============================================================================
# Rate Limit Attributes
# =============================================================================

ATTR_RATELIMIT_KEY = "rediscoord.ratelimit.key"
"""Fully-qualified rate limit key."""

ATTR_RATELIMIT_N = "rediscoord.ratelimit.n"
"""Number of operations requested (integer)."""

ATTR_RATELIMIT_LIMIT = "rediscoord.ratelimit.limit"
"""Effective ceiling, max requests plus burst (integer)."""

ATTR_RATELIMIT_ALGORITHM = "rediscoord.ratelimit.algorithm"
"""Either "fixed_window" or "sliding_window"."""

__all__ = [
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
