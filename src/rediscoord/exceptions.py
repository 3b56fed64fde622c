"""Library exceptions for the rediscoord package.

Every error raised by rediscoord derives from :class:`CoordinationError` and
carries an :class:`ErrorCode` so callers can branch on the kind of failure
without matching on class names:

- lock contention is retryable by the caller
- lock-not-held is never retryable (logic error or an expired lease)
- connectivity and timeout errors come from the Redis round trip

Example:
    >>> try:
    ...     lock = await locker.acquire("orders:42")
    ... except LockContentionError:
    ...     print("someone else holds it")
    ... except StoreConnectionError:
    ...     print("redis is unreachable")
"""

from __future__ import annotations

from enum import Enum

from redis import exceptions as redis_exceptions


class ErrorCode(str, Enum):
    """Stable error codes, suitable for logs and API payloads."""

    NOT_FOUND = "REDIS_NOT_FOUND"
    CONNECTION = "REDIS_CONNECTION"
    TIMEOUT = "REDIS_TIMEOUT"
    LOCK_CONTENTION = "REDIS_LOCK_FAILED"
    LOCK_NOT_HELD = "REDIS_LOCK_NOT_HELD"
    SERIALIZATION = "REDIS_SERIALIZATION"
    INTERNAL = "REDIS_INTERNAL"


class CoordinationError(Exception):
    """Base exception for rediscoord."""

    code: ErrorCode = ErrorCode.INTERNAL


class ConfigurationError(CoordinationError):
    """Raised when a client configuration is invalid."""

    pass


class KeyNotFoundError(CoordinationError):
    """Raised when a required key does not exist in the store."""

    code = ErrorCode.NOT_FOUND

    def __init__(self, key: str, message: str | None = None) -> None:
        self.key = key
        super().__init__(message or f"Key not found: {key}")


class SerializationError(CoordinationError):
    """Raised when a value cannot be encoded to or decoded from JSON."""

    code = ErrorCode.SERIALIZATION


class StoreError(CoordinationError):
    """Raised when a Redis operation fails."""

    pass


class CoordinationTimeoutError(CoordinationError):
    """Raised when an operation or a wait ran out of time."""

    code = ErrorCode.TIMEOUT


class StoreConnectionError(StoreError):
    """Raised when the Redis server cannot be reached."""

    code = ErrorCode.CONNECTION


class StoreTimeoutError(StoreError, CoordinationTimeoutError):
    """Raised when a Redis round trip timed out."""

    code = ErrorCode.TIMEOUT


class LockError(CoordinationError):
    """
    Base class for lock failures.

    Attributes:
        key: The fully-qualified lock key
    """

    def __init__(self, key: str, message: str) -> None:
        self.key = key
        super().__init__(f"Lock '{key}': {message}")


class LockContentionError(LockError):
    """
    Raised when a lock is already held by another owner.

    Attributes:
        key: The lock key that could not be acquired
        attempts: Number of acquisition attempts made (1 for a single try)
    """

    code = ErrorCode.LOCK_CONTENTION

    def __init__(self, key: str, attempts: int | None = None) -> None:
        # attempts is given only when a retry budget ran out
        if attempts is None:
            self.attempts = 1
            message = "lock is already held by another owner"
        else:
            self.attempts = attempts
            message = f"failed to acquire lock after {attempts} attempts"
        super().__init__(key, message)


class LockNotHeldError(LockError):
    """Raised when releasing or extending a lock this owner does not hold."""

    code = ErrorCode.LOCK_NOT_HELD

    def __init__(self, key: str, message: str = "lock is not held by this owner") -> None:
        super().__init__(key, message)


class LockTimeoutError(LockError, CoordinationTimeoutError):
    """
    Raised when waiting for a lock exceeded its deadline.

    Attributes:
        key: The lock key being waited on
        timeout: The deadline in seconds
        attempts: Number of attempts made before giving up
    """

    code = ErrorCode.TIMEOUT

    def __init__(self, key: str, timeout: float, attempts: int) -> None:
        self.timeout = timeout
        self.attempts = attempts
        super().__init__(
            key, f"lock acquisition timed out after {timeout}s ({attempts} attempts)"
        )


_CONNECTION_PATTERNS = (
    "connection refused",
    "connection reset",
    "no connection",
    "eof",
    "broken pipe",
)

_TIMEOUT_PATTERNS = (
    "timeout",
    "timed out",
    "deadline exceeded",
)


STORE_ERRORS: tuple[type[BaseException], ...] = (
    redis_exceptions.RedisError,
    ConnectionError,
    TimeoutError,
)
"""Exceptions a Redis round trip may raise; catch these and translate."""


def from_redis_error(exc: BaseException) -> CoordinationError:
    """
    Translate a redis-py (or socket level) exception into a CoordinationError.

    The returned error should be raised ``from`` the original so the cause
    stays attached.

    Args:
        exc: The exception raised by the Redis client

    Returns:
        The matching CoordinationError subclass instance

    Example:
        >>> try:
        ...     await redis.get(key)
        ... except RedisError as e:
        ...     raise from_redis_error(e) from e
    """
    if isinstance(exc, CoordinationError):
        return exc
    if isinstance(exc, redis_exceptions.TimeoutError | TimeoutError):
        return StoreTimeoutError(f"Redis operation timeout: {exc}")
    if isinstance(exc, redis_exceptions.ConnectionError | ConnectionError):
        return StoreConnectionError(f"Redis connection error: {exc}")

    if isinstance(exc, redis_exceptions.ResponseError):
        # A command error reported by the server, whatever its wording
        return StoreError(f"Redis operation failed: {exc}")

    message = str(exc).lower()
    if any(pattern in message for pattern in _CONNECTION_PATTERNS):
        return StoreConnectionError(f"Redis connection error: {exc}")
    if any(pattern in message for pattern in _TIMEOUT_PATTERNS):
        return StoreTimeoutError(f"Redis operation timeout: {exc}")
    return StoreError(f"Redis operation failed: {exc}")


def error_code(exc: BaseException) -> ErrorCode:
    """Return the ErrorCode of an exception, INTERNAL for foreign exceptions."""
    if isinstance(exc, CoordinationError):
        return exc.code
    return ErrorCode.INTERNAL


__all__ = [
    "ErrorCode",
    "CoordinationError",
    "ConfigurationError",
    "KeyNotFoundError",
    "SerializationError",
    "StoreError",
    "StoreConnectionError",
    "StoreTimeoutError",
    "CoordinationTimeoutError",
    "LockError",
    "LockContentionError",
    "LockNotHeldError",
    "LockTimeoutError",
    "STORE_ERRORS",
    "from_redis_error",
    "error_code",
]
