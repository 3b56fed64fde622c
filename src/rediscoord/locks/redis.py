"""
Redis-backed distributed locks.

A lock is a single key holding a random owner token with a store-managed
expiry (``SET key token PX ttl NX``). Release and extension are atomic
compare-then-act scripts, so only the current owner can remove or renew it.

Expiry-based locks give best-effort exclusion: if a holder stalls past its
lease the lock is granted to someone else. Long critical sections should
call :meth:`Lock.extend` periodically or check :meth:`Lock.verify`.

Usage:
    >>> locker = Locker(client)
    >>> async with locker.hold("orders:42", timeout=5.0) as lock:
    ...     # Critical section - only one holder at a time
    ...     await process_order()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar

from rediscoord.exceptions import (
    STORE_ERRORS,
    CoordinationError,
    LockContentionError,
    LockNotHeldError,
    LockTimeoutError,
    from_redis_error,
)
from rediscoord.locks.scripts import EXTEND_SCRIPT, RELEASE_SCRIPT
from rediscoord.observability import (
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_LOCK_ACQUIRED,
    ATTR_LOCK_ATTEMPTS,
    ATTR_LOCK_KEY,
    ATTR_LOCK_TTL_MS,
    DB_SYSTEM_REDIS,
    NullTracer,
    Tracer,
    create_tracer,
)
from rediscoord.tokens import TokenFactory, generate_owner_token

if TYPE_CHECKING:
    from rediscoord.client import RedisClient

T = TypeVar("T")

DEFAULT_LOCK_PREFIX = "lock"
DEFAULT_LOCK_TTL = 30.0
DEFAULT_RETRY_DELAY = 0.05
DEFAULT_RETRY_COUNT = 100


def _to_millis(seconds: float) -> int:
    return max(1, int(seconds * 1000))


class LockState(Enum):
    """Ownership state of a :class:`Lock` as last observed by its holder."""

    UNACQUIRED = "unacquired"
    HELD = "held"
    RELEASED = "released"


class Lock:
    """
    A lock acquired by a :class:`Locker`.

    The ``state`` and ``expires_at`` fields are local bookkeeping; the store
    is the authority. ``HELD`` means "acquired and not yet observed lost",
    not a guarantee that the lease is still live.

    Attributes:
        key: Fully-qualified lock key
        owner: Owner token written at acquisition
        ttl: Lease length in seconds
        expires_at: Local estimate of the lease end (UTC)

    Example:
        >>> lock = await locker.acquire("reports:daily")
        >>> async with lock:
        ...     await build_report()
    """

    def __init__(
        self,
        client: RedisClient,
        key: str,
        owner: str,
        ttl: float,
        *,
        state: LockState = LockState.HELD,
        logger: logging.Logger | None = None,
        tracer: Tracer | None = None,
    ) -> None:
        self._client = client
        self.key = key
        self.owner = owner
        self.ttl = ttl
        self.expires_at = datetime.now(UTC) + timedelta(seconds=ttl)
        self._state = state
        self._logger = logger or logging.getLogger(__name__)
        self._tracer = tracer or NullTracer()

    @property
    def state(self) -> LockState:
        """Current ownership state."""
        return self._state

    @property
    def acquired(self) -> bool:
        """True while the lock is believed to be held."""
        return self._state is LockState.HELD

    @property
    def is_expired(self) -> bool:
        """Whether the lease has likely ended, judged by the local clock."""
        return datetime.now(UTC) >= self.expires_at

    def _require_held(self) -> None:
        if self._state is LockState.RELEASED:
            raise LockNotHeldError(self.key, "lock was already released")
        if self._state is not LockState.HELD:
            raise LockNotHeldError(self.key, "lock was never acquired or has been lost")

    async def release(self) -> None:
        """
        Release the lock if this owner still holds it.

        Raises:
            LockNotHeldError: If the lock is not held, was already released,
                or is now owned by someone else (nothing is deleted)
            StoreError: If the Redis round trip failed
        """
        self._require_held()

        with self._tracer.span(
            "rediscoord.lock.release",
            {
                ATTR_LOCK_KEY: self.key,
                ATTR_DB_SYSTEM: DB_SYSTEM_REDIS,
                ATTR_DB_OPERATION: "compare_and_delete",
            },
        ):
            try:
                result = await self._client.run_script(RELEASE_SCRIPT, [self.key], [self.owner])
            except STORE_ERRORS as e:
                self._logger.error("Lock release failed: key=%s, error=%s", self.key, e)
                raise from_redis_error(e) from e

        if int(result) == 0:
            self._state = LockState.UNACQUIRED
            self._logger.warning(
                "Lock release failed, not held by this owner: key=%s, owner=%s",
                self.key,
                self.owner,
            )
            raise LockNotHeldError(self.key)

        self._state = LockState.RELEASED
        self._logger.debug("Released lock: key=%s", self.key)

    async def extend(self, ttl: float | None = None) -> None:
        """
        Reset the lease to ``ttl`` seconds from now.

        Args:
            ttl: New lease length (defaults to the current ``ttl``)

        Raises:
            ValueError: If ttl is not positive
            LockNotHeldError: If this owner no longer holds the lock
            StoreError: If the Redis round trip failed
        """
        self._require_held()
        new_ttl = self.ttl if ttl is None else ttl
        if new_ttl <= 0:
            raise ValueError(f"Lock TTL must be positive, got {new_ttl}")

        ttl_ms = _to_millis(new_ttl)
        with self._tracer.span(
            "rediscoord.lock.extend",
            {
                ATTR_LOCK_KEY: self.key,
                ATTR_LOCK_TTL_MS: ttl_ms,
                ATTR_DB_SYSTEM: DB_SYSTEM_REDIS,
                ATTR_DB_OPERATION: "compare_and_pexpire",
            },
        ):
            try:
                result = await self._client.run_script(
                    EXTEND_SCRIPT, [self.key], [self.owner, ttl_ms]
                )
            except STORE_ERRORS as e:
                self._logger.error("Lock extend failed: key=%s, error=%s", self.key, e)
                raise from_redis_error(e) from e

        if int(result) == 0:
            self._state = LockState.UNACQUIRED
            self._logger.warning(
                "Lock extend failed, not held by this owner: key=%s, owner=%s",
                self.key,
                self.owner,
            )
            raise LockNotHeldError(self.key)

        self.ttl = new_ttl
        self.expires_at = datetime.now(UTC) + timedelta(seconds=new_ttl)
        self._logger.debug("Extended lock: key=%s, ttl_ms=%d", self.key, ttl_ms)

    async def verify(self) -> bool:
        """
        Check with the store whether this owner still holds the lock.

        Never modifies the store. A lock found missing or owned by someone
        else moves to ``UNACQUIRED``.

        Returns:
            True if the stored token is this owner's

        Raises:
            StoreError: If the Redis round trip failed
        """
        if self._state is not LockState.HELD:
            return False

        with self._tracer.span(
            "rediscoord.lock.verify",
            {
                ATTR_LOCK_KEY: self.key,
                ATTR_DB_SYSTEM: DB_SYSTEM_REDIS,
                ATTR_DB_OPERATION: "GET",
            },
        ):
            try:
                value = await self._client.redis.get(self.key)
            except STORE_ERRORS as e:
                self._logger.error("Lock verify failed: key=%s, error=%s", self.key, e)
                raise from_redis_error(e) from e

        if isinstance(value, bytes):
            # Injected clients may not decode responses
            value = value.decode()
        if value != self.owner:
            self._state = LockState.UNACQUIRED
            self._logger.debug("Lock no longer held: key=%s", self.key)
            return False
        return True

    async def remaining_ttl(self) -> float | None:
        """
        Remaining lease according to the store.

        Returns:
            Seconds until expiry, or None if the key is missing or has no expiry
        """
        try:
            pttl = await self._client.redis.pttl(self.key)
        except STORE_ERRORS as e:
            raise from_redis_error(e) from e
        if pttl is None or pttl < 0:
            return None
        return pttl / 1000

    async def release_quietly(self) -> None:
        """
        Release if still held, logging instead of raising on failure.

        Used on context-manager exit so a failed release never replaces the
        outcome of the guarded block.
        """
        if self._state is not LockState.HELD:
            return
        try:
            await self.release()
        except CoordinationError as e:
            self._logger.warning("Error releasing lock: key=%s, error=%s", self.key, e)

    async def __aenter__(self) -> Lock:
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.release_quietly()

    def __repr__(self) -> str:
        return f"Lock(key={self.key!r}, state={self._state.value}, ttl={self.ttl})"


class Locker:
    """
    Creates and acquires distributed locks on a shared Redis.

    Example:
        >>> locker = Locker(client, key_prefix="jobs", default_ttl=10.0)
        >>>
        >>> # Single attempt
        >>> try:
        ...     lock = await locker.acquire("nightly-export")
        ... except LockContentionError:
        ...     print("Another instance is exporting")
        >>>
        >>> # Retrying, bounded by a deadline
        >>> async with locker.hold("nightly-export", timeout=5.0):
        ...     await export()
    """

    def __init__(
        self,
        client: RedisClient,
        *,
        key_prefix: str = DEFAULT_LOCK_PREFIX,
        default_ttl: float = DEFAULT_LOCK_TTL,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        retry_count: int = DEFAULT_RETRY_COUNT,
        token_factory: TokenFactory = generate_owner_token,
        logger: logging.Logger | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the locker.

        Args:
            client: Redis client shared with other components
            key_prefix: Prefix for lock keys (default: "lock")
            default_ttl: Lease length in seconds when none is given (default: 30)
            retry_delay: Seconds between attempts in acquire_with_retry
                (default: 0.05)
            retry_count: Maximum attempts in acquire_with_retry (default: 100)
            token_factory: Source of owner tokens
            logger: Optional logger (defaults to this module's logger)
            tracer: Optional custom Tracer instance. If not provided, one is
                   created based on enable_tracing setting.
            enable_tracing: Whether to enable OpenTelemetry tracing.
                          Ignored if tracer is explicitly provided.

        Raises:
            ValueError: If a numeric option is out of range
        """
        if default_ttl <= 0:
            raise ValueError(f"default_ttl must be positive, got {default_ttl}")
        if retry_delay < 0:
            raise ValueError(f"retry_delay must not be negative, got {retry_delay}")
        if retry_count < 1:
            raise ValueError(f"retry_count must be at least 1, got {retry_count}")

        self._client = client
        self._key_prefix = key_prefix
        self._default_ttl = default_ttl
        self._retry_delay = retry_delay
        self._retry_count = retry_count
        self._token_factory = token_factory
        self._logger = logger or logging.getLogger(__name__)
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @property
    def key_prefix(self) -> str:
        return self._key_prefix

    @property
    def default_ttl(self) -> float:
        return self._default_ttl

    def lock_key(self, resource: str) -> str:
        """Build the full key for a resource: ``<prefix>:<resource>``."""
        return f"{self._key_prefix}:{resource}"

    def _resolve_ttl(self, ttl: float | None) -> float:
        if ttl is None:
            return self._default_ttl
        if ttl <= 0:
            raise ValueError(f"Lock TTL must be positive, got {ttl}")
        return ttl

    async def _attempt(self, key: str, ttl: float) -> Lock:
        owner = self._token_factory()
        try:
            ok = await self._client.redis.set(key, owner, px=_to_millis(ttl), nx=True)
        except STORE_ERRORS as e:
            self._logger.error("Lock acquisition error: key=%s, error=%s", key, e)
            raise from_redis_error(e) from e

        if not ok:
            self._logger.debug("Lock acquisition failed, already held: key=%s", key)
            raise LockContentionError(key)

        self._logger.debug("Acquired lock: key=%s, owner=%s, ttl=%s", key, owner, ttl)
        return Lock(
            self._client,
            key,
            owner,
            ttl,
            logger=self._logger,
            tracer=self._tracer,
        )

    async def acquire(self, resource: str, ttl: float | None = None) -> Lock:
        """
        Make a single acquisition attempt.

        Args:
            resource: Name of the protected resource
            ttl: Lease length in seconds (defaults to default_ttl)

        Returns:
            The held Lock

        Raises:
            LockContentionError: If another owner holds the lock
            StoreError: If the Redis round trip failed
        """
        ttl = self._resolve_ttl(ttl)
        key = self.lock_key(resource)
        with self._tracer.span(
            "rediscoord.lock.acquire",
            {
                ATTR_LOCK_KEY: key,
                ATTR_LOCK_TTL_MS: _to_millis(ttl),
                ATTR_LOCK_ATTEMPTS: 1,
                ATTR_DB_SYSTEM: DB_SYSTEM_REDIS,
            },
        ):
            return await self._attempt(key, ttl)

    async def acquire_with_retry(
        self,
        resource: str,
        ttl: float | None = None,
        *,
        timeout: float | None = None,
    ) -> Lock:
        """
        Acquire the lock, retrying on contention.

        Makes up to ``retry_count`` attempts spaced ``retry_delay`` apart.
        Only contention is retried; any other error propagates immediately.

        Args:
            resource: Name of the protected resource
            ttl: Lease length in seconds (defaults to default_ttl)
            timeout: Maximum seconds to keep trying (None = attempts only).
                Zero or negative fails without contacting Redis.

        Returns:
            The held Lock

        Raises:
            LockTimeoutError: If the deadline passed first
            LockContentionError: If every attempt met contention
            StoreError: If a Redis round trip failed
        """
        ttl = self._resolve_ttl(ttl)
        key = self.lock_key(resource)
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        last_error: LockContentionError | None = None

        with self._tracer.span(
            "rediscoord.lock.acquire",
            {
                ATTR_LOCK_KEY: key,
                ATTR_LOCK_TTL_MS: _to_millis(ttl),
                ATTR_LOCK_ATTEMPTS: self._retry_count,
                ATTR_DB_SYSTEM: DB_SYSTEM_REDIS,
            },
        ) as span:
            for attempt in range(1, self._retry_count + 1):
                if deadline is not None and loop.time() >= deadline:
                    raise LockTimeoutError(key, timeout, attempt - 1) from last_error

                try:
                    lock = await self._attempt(key, ttl)
                except LockContentionError as e:
                    last_error = e
                else:
                    if span is not None:
                        span.set_attribute(ATTR_LOCK_ACQUIRED, True)
                    return lock

                if attempt == self._retry_count:
                    break

                delay = self._retry_delay
                if deadline is not None:
                    remaining = deadline - loop.time()
                    if remaining <= 0:
                        raise LockTimeoutError(key, timeout, attempt) from last_error
                    delay = min(delay, remaining)
                await asyncio.sleep(delay)

        self._logger.debug(
            "Lock acquisition gave up: key=%s, attempts=%d", key, self._retry_count
        )
        raise LockContentionError(key, attempts=self._retry_count) from last_error

    async def try_acquire(self, resource: str, ttl: float | None = None) -> Lock | None:
        """
        Try to acquire a lock without retrying.

        Returns:
            The held Lock, or None if another owner holds it

        Raises:
            StoreError: If the Redis round trip failed
        """
        try:
            return await self.acquire(resource, ttl)
        except LockContentionError:
            return None

    @asynccontextmanager
    async def hold(
        self,
        resource: str,
        ttl: float | None = None,
        *,
        timeout: float | None = None,
    ) -> AsyncIterator[Lock]:
        """
        Acquire (with retry) as a context manager, releasing on exit.

        A failed release on exit is logged at WARNING and never raised.

        Example:
            >>> async with locker.hold("cutover:tenant-123", timeout=5.0) as lock:
            ...     await perform_cutover()
        """
        lock = await self.acquire_with_retry(resource, ttl, timeout=timeout)
        try:
            yield lock
        finally:
            await lock.release_quietly()

    async def with_lock(
        self,
        resource: str,
        fn: Callable[[Lock], Awaitable[T]],
        ttl: float | None = None,
        *,
        timeout: float | None = None,
    ) -> T:
        """
        Run ``fn(lock)`` while holding the lock.

        Returns:
            Whatever ``fn`` returns; its exceptions propagate after release
        """
        async with self.hold(resource, ttl, timeout=timeout) as lock:
            return await fn(lock)


__all__ = [
    "DEFAULT_LOCK_PREFIX",
    "DEFAULT_LOCK_TTL",
    "DEFAULT_RETRY_DELAY",
    "DEFAULT_RETRY_COUNT",
    "LockState",
    "Lock",
    "Locker",
]
