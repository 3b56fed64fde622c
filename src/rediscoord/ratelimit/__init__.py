"""
Rate limiting for rediscoord.

Example:
    >>> from rediscoord.ratelimit import RateLimiter, ip_rate_limiter
    >>>
    >>> limiter = ip_rate_limiter(client, max_requests=60, window=60.0)
    >>> result = await limiter.sliding_window_allow(request.client.host)
    >>> response.headers["X-RateLimit-Remaining"] = str(result.remaining_display)
"""

from rediscoord.ratelimit.redis import (
    DEFAULT_BURST,
    DEFAULT_MAX_REQUESTS,
    DEFAULT_RATELIMIT_PREFIX,
    DEFAULT_WINDOW,
    IP_RATELIMIT_PREFIX,
    USER_RATELIMIT_PREFIX,
    RateLimiter,
    RateLimitResult,
    ip_rate_limiter,
    user_rate_limiter,
)

__all__ = [
    "DEFAULT_BURST",
    "DEFAULT_MAX_REQUESTS",
    "DEFAULT_RATELIMIT_PREFIX",
    "DEFAULT_WINDOW",
    "IP_RATELIMIT_PREFIX",
    "USER_RATELIMIT_PREFIX",
    "RateLimiter",
    "RateLimitResult",
    "ip_rate_limiter",
    "user_rate_limiter",
]
