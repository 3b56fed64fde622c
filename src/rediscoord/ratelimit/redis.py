"""
Redis-backed request rate limiting.

Two algorithms share one limiter:

- Fixed window: a counter per identifier whose expiry is set when the window
  opens and never refreshed inside it. Cheap, but allows up to twice the
  ceiling across a window boundary.
- Sliding window: a sorted set of admission timestamps, pruned to the last
  ``window`` seconds before every decision. Smoother, one member per request.

Both decisions run as a single Lua script, so concurrent callers never
over-admit. A denial is a normal result, not an error.

Usage:
    >>> limiter = RateLimiter(client, window=60.0, max_requests=100, burst=10)
    >>> result = await limiter.allow("user:42")
    >>> if not result.allowed:
    ...     raise TooManyRequests(retry_after=result.retry_after)
"""

from __future__ import annotations

import itertools
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from rediscoord.exceptions import STORE_ERRORS, from_redis_error
from rediscoord.observability import (
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_RATELIMIT_ALGORITHM,
    ATTR_RATELIMIT_KEY,
    ATTR_RATELIMIT_LIMIT,
    ATTR_RATELIMIT_N,
    DB_SYSTEM_REDIS,
    Tracer,
    create_tracer,
)
from rediscoord.ratelimit.scripts import FIXED_WINDOW_SCRIPT, SLIDING_WINDOW_SCRIPT
from rediscoord.tokens import TokenFactory, generate_owner_token

if TYPE_CHECKING:
    from rediscoord.client import RedisClient

DEFAULT_RATELIMIT_PREFIX = "ratelimit"
DEFAULT_WINDOW = 60.0
DEFAULT_MAX_REQUESTS = 100
DEFAULT_BURST = 0

USER_RATELIMIT_PREFIX = "ratelimit:user"
IP_RATELIMIT_PREFIX = "ratelimit:ip"


@dataclass(frozen=True)
class RateLimitResult:
    """
    Outcome of a rate limit decision.

    Attributes:
        allowed: Whether the request was admitted
        remaining: Admissions left in the window. May be negative when the
            ceiling was lowered below the current count.
        reset_at: When the window frees up (UTC)
        total: Effective ceiling, max_requests + burst
    """

    allowed: bool
    remaining: int
    reset_at: datetime
    total: int

    @property
    def retry_after(self) -> float:
        """Seconds until ``reset_at``, never negative."""
        return max(0.0, (self.reset_at - datetime.now(UTC)).total_seconds())

    @property
    def remaining_display(self) -> int:
        """``remaining`` floored at zero, for response headers."""
        return max(self.remaining, 0)


class RateLimiter:
    """
    Admission controller keyed by an arbitrary identifier (user id, IP, ...).

    Example:
        >>> limiter = RateLimiter(client, key_prefix="api", max_requests=5)
        >>> for _ in range(6):
        ...     result = await limiter.allow("client-a")
        >>> result.allowed
        False
    """

    def __init__(
        self,
        client: RedisClient,
        *,
        key_prefix: str = DEFAULT_RATELIMIT_PREFIX,
        window: float = DEFAULT_WINDOW,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        burst: int = DEFAULT_BURST,
        token_factory: TokenFactory = generate_owner_token,
        clock: Callable[[], float] = time.time,
        logger: logging.Logger | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the rate limiter.

        Args:
            client: Redis client shared with other components
            key_prefix: Prefix for counter keys (default: "ratelimit")
            window: Window length in seconds (default: 60)
            max_requests: Admissions per window (default: 100)
            burst: Extra admissions on top of max_requests (default: 0)
            token_factory: Source of the per-limiter tag used in sliding
                window members
            clock: Wall-clock source in epoch seconds (default: time.time)
            logger: Optional logger (defaults to this module's logger)
            tracer: Optional custom Tracer instance. If not provided, one is
                   created based on enable_tracing setting.
            enable_tracing: Whether to enable OpenTelemetry tracing.
                          Ignored if tracer is explicitly provided.

        Raises:
            ValueError: If a numeric option is out of range
        """
        if window <= 0:
            raise ValueError(f"window must be positive, got {window}")
        if max_requests < 1:
            raise ValueError(f"max_requests must be at least 1, got {max_requests}")
        if burst < 0:
            raise ValueError(f"burst must not be negative, got {burst}")

        self._client = client
        self._key_prefix = key_prefix
        self._window = window
        self._max_requests = max_requests
        self._burst = burst
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._instance_tag = token_factory()
        self._sequence = itertools.count(1)

    @property
    def key_prefix(self) -> str:
        return self._key_prefix

    @property
    def window(self) -> float:
        return self._window

    @property
    def total(self) -> int:
        """Effective ceiling per window, max_requests + burst."""
        return self._max_requests + self._burst

    @property
    def _window_ms(self) -> int:
        return max(1, int(self._window * 1000))

    def counter_key(self, identifier: str) -> str:
        """Fixed-window key: ``<prefix>:<identifier>``."""
        return f"{self._key_prefix}:{identifier}"

    def sliding_key(self, identifier: str) -> str:
        """Sliding-window key: ``<prefix>:<identifier>:sliding``."""
        return f"{self._key_prefix}:{identifier}:sliding"

    def _span_attributes(self, key: str, n: int, algorithm: str) -> dict[str, Any]:
        return {
            ATTR_RATELIMIT_KEY: key,
            ATTR_RATELIMIT_N: n,
            ATTR_RATELIMIT_LIMIT: self.total,
            ATTR_RATELIMIT_ALGORITHM: algorithm,
            ATTR_DB_SYSTEM: DB_SYSTEM_REDIS,
        }

    def _result(self, reply: Any, now: float) -> RateLimitResult:
        allowed, remaining, reset_ms, ceiling = (int(v) for v in reply)
        return RateLimitResult(
            allowed=allowed == 1,
            remaining=remaining,
            reset_at=datetime.fromtimestamp(now, UTC) + timedelta(milliseconds=reset_ms),
            total=ceiling,
        )

    async def allow(self, identifier: str) -> RateLimitResult:
        """Fixed-window decision for a single request."""
        return await self.allow_n(identifier, 1)

    async def allow_n(self, identifier: str, n: int) -> RateLimitResult:
        """
        Fixed-window decision for ``n`` requests at once.

        Either all ``n`` are admitted or none are.

        Raises:
            ValueError: If n is less than 1
            StoreError: If the Redis round trip failed
        """
        if n < 1:
            raise ValueError(f"n must be at least 1, got {n}")

        key = self.counter_key(identifier)
        with self._tracer.span(
            "rediscoord.ratelimit.allow",
            self._span_attributes(key, n, "fixed_window"),
        ):
            try:
                reply = await self._client.run_script(
                    FIXED_WINDOW_SCRIPT, [key], [self.total, self._window_ms, n]
                )
            except STORE_ERRORS as e:
                self._logger.error("Rate limit check error: key=%s, error=%s", key, e)
                raise from_redis_error(e) from e

        result = self._result(reply, self._clock())
        if not result.allowed:
            self._logger.debug(
                "Rate limit exceeded: key=%s, remaining=%d", key, result.remaining
            )
        return result

    async def sliding_window_allow(self, identifier: str) -> RateLimitResult:
        """Sliding-window decision for a single request."""
        return await self.sliding_window_allow_n(identifier, 1)

    async def sliding_window_allow_n(self, identifier: str, n: int) -> RateLimitResult:
        """
        Sliding-window decision for ``n`` requests at once.

        Admissions older than ``window`` seconds are dropped before counting.
        Each admitted request is stored as its own member.

        Raises:
            ValueError: If n is less than 1
            StoreError: If the Redis round trip failed
        """
        if n < 1:
            raise ValueError(f"n must be at least 1, got {n}")

        key = self.sliding_key(identifier)
        now = self._clock()
        now_ms = int(now * 1000)
        call_tag = f"{self._instance_tag}:{next(self._sequence)}"

        with self._tracer.span(
            "rediscoord.ratelimit.sliding_window_allow",
            self._span_attributes(key, n, "sliding_window"),
        ):
            try:
                reply = await self._client.run_script(
                    SLIDING_WINDOW_SCRIPT,
                    [key],
                    [self.total, self._window_ms, now_ms, n, call_tag],
                )
            except STORE_ERRORS as e:
                self._logger.error(
                    "Sliding window rate limit error: key=%s, error=%s", key, e
                )
                raise from_redis_error(e) from e

        result = self._result(reply, now)
        if not result.allowed:
            self._logger.debug(
                "Sliding window rate limit exceeded: key=%s, remaining=%d",
                key,
                result.remaining,
            )
        return result

    async def reset(self, identifier: str) -> None:
        """
        Clear both the fixed and the sliding window state for an identifier.

        Raises:
            StoreError: If the Redis round trip failed
        """
        key = self.counter_key(identifier)
        with self._tracer.span(
            "rediscoord.ratelimit.reset",
            {
                ATTR_RATELIMIT_KEY: key,
                ATTR_DB_SYSTEM: DB_SYSTEM_REDIS,
                ATTR_DB_OPERATION: "DEL",
            },
        ):
            # Separate DELs: the two keys may hash to different cluster slots.
            pipe = self._client.pipeline(transaction=False)
            pipe.delete(key)
            pipe.delete(self.sliding_key(identifier))
            try:
                await pipe.execute()
            except STORE_ERRORS as e:
                self._logger.error("Rate limit reset error: key=%s, error=%s", key, e)
                raise from_redis_error(e) from e

        self._logger.debug("Rate limit reset: identifier=%s", identifier)

    async def get_status(self, identifier: str) -> RateLimitResult:
        """
        Report the fixed-window state without consuming anything.

        A missing or non-numeric counter counts as zero. ``remaining`` is
        floored at zero and ``allowed`` means at least one more request fits.

        Raises:
            StoreError: If the Redis round trip failed
        """
        key = self.counter_key(identifier)
        with self._tracer.span(
            "rediscoord.ratelimit.status",
            {
                ATTR_RATELIMIT_KEY: key,
                ATTR_RATELIMIT_LIMIT: self.total,
                ATTR_DB_SYSTEM: DB_SYSTEM_REDIS,
                ATTR_DB_OPERATION: "GET",
            },
        ):
            pipe = self._client.pipeline(transaction=False)
            pipe.get(key)
            pipe.pttl(key)
            try:
                raw_count, pttl = await pipe.execute()
            except STORE_ERRORS as e:
                self._logger.error("Rate limit status error: key=%s, error=%s", key, e)
                raise from_redis_error(e) from e

        try:
            current = int(raw_count) if raw_count is not None else 0
        except (TypeError, ValueError):
            current = 0
        ttl_ms = pttl if isinstance(pttl, int) and pttl > 0 else self._window_ms

        remaining = max(self.total - current, 0)
        return RateLimitResult(
            allowed=remaining > 0,
            remaining=remaining,
            reset_at=datetime.fromtimestamp(self._clock(), UTC)
            + timedelta(milliseconds=ttl_ms),
            total=self.total,
        )


def user_rate_limiter(
    client: RedisClient,
    max_requests: int,
    window: float,
    **kwargs: Any,
) -> RateLimiter:
    """
    Create a limiter for per-user limits (keys under ``ratelimit:user``).

    Example:
        >>> limiter = user_rate_limiter(client, max_requests=1000, window=3600)
        >>> await limiter.allow(str(user.id))
    """
    kwargs.setdefault("key_prefix", USER_RATELIMIT_PREFIX)
    return RateLimiter(client, max_requests=max_requests, window=window, **kwargs)


def ip_rate_limiter(
    client: RedisClient,
    max_requests: int,
    window: float,
    **kwargs: Any,
) -> RateLimiter:
    """Create a limiter for per-IP limits (keys under ``ratelimit:ip``)."""
    kwargs.setdefault("key_prefix", IP_RATELIMIT_PREFIX)
    return RateLimiter(client, max_requests=max_requests, window=window, **kwargs)


__all__ = [
    "DEFAULT_RATELIMIT_PREFIX",
    "DEFAULT_WINDOW",
    "DEFAULT_MAX_REQUESTS",
    "DEFAULT_BURST",
    "USER_RATELIMIT_PREFIX",
    "IP_RATELIMIT_PREFIX",
    "RateLimitResult",
    "RateLimiter",
    "user_rate_limiter",
    "ip_rate_limiter",
]
