"""
Key/value cache on Redis.

Values are strings (the client decodes responses); JSON helpers layer
:mod:`rediscoord.serialization` on top for structured values. Every key is
namespaced by the cache's ``key_prefix`` when one is set.

Example:
    >>> cache = Cache(client, key_prefix="catalog", default_ttl=300)
    >>>
    >>> async def load_product() -> dict:
    ...     return await repository.get_product(42)
    >>>
    >>> product = await cache.get_or_set_json("product:42", load_product)
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import TYPE_CHECKING, Any

from rediscoord.exceptions import STORE_ERRORS, StoreError, from_redis_error
from rediscoord.serialization import json_dumps, json_loads

if TYPE_CHECKING:
    from rediscoord.client import RedisClient

DEFAULT_CACHE_TTL = 15 * 60.0
"""Default entry lifetime in seconds (15 minutes)."""

SCAN_BATCH_SIZE = 100


def _ttl_ms(ttl: float) -> int | None:
    # Non-positive TTL stores the entry without expiry
    if ttl <= 0:
        return None
    return max(1, int(ttl * 1000))


class Cache:
    """
    Prefixed string cache with TTLs.

    Misses are reported as ``None``, never as errors. Store failures raise
    the translated :class:`~rediscoord.exceptions.StoreError` subclasses.
    """

    def __init__(
        self,
        client: RedisClient,
        *,
        key_prefix: str = "",
        default_ttl: float = DEFAULT_CACHE_TTL,
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Initialize the cache.

        Args:
            client: Redis client shared with other components
            key_prefix: Namespace joined to keys with ":" (default: none)
            default_ttl: Entry lifetime in seconds when none is given
                (default: 900). Zero or negative means no expiry.
            logger: Optional logger (defaults to this module's logger)
        """
        self._client = client
        self._key_prefix = key_prefix
        self._default_ttl = default_ttl
        self._logger = logger or logging.getLogger(__name__)

    def prefix_key(self, key: str) -> str:
        """Apply the cache's namespace to a key."""
        if self._key_prefix:
            return f"{self._key_prefix}:{key}"
        return key

    def _resolve_ttl(self, ttl: float | None) -> int | None:
        return _ttl_ms(self._default_ttl if ttl is None else ttl)

    async def get(self, key: str) -> str | None:
        """Return the cached value, or None on a miss."""
        full_key = self.prefix_key(key)
        try:
            value = await self._client.redis.get(full_key)
        except STORE_ERRORS as e:
            self._logger.error("Cache get error: key=%s, error=%s", full_key, e)
            raise from_redis_error(e) from e

        if value is None:
            self._logger.debug("Cache miss: key=%s", full_key)
        else:
            self._logger.debug("Cache hit: key=%s", full_key)
        return value

    async def get_json(self, key: str) -> Any | None:
        """
        Return the decoded JSON value, or None on a miss.

        Raises:
            SerializationError: If the stored value is not valid JSON
        """
        value = await self.get(key)
        if value is None:
            return None
        return json_loads(value)

    async def set(self, key: str, value: str | bytes, ttl: float | None = None) -> None:
        """Store a value, expiring after ``ttl`` seconds (default_ttl if None)."""
        full_key = self.prefix_key(key)
        try:
            await self._client.redis.set(full_key, value, px=self._resolve_ttl(ttl))
        except STORE_ERRORS as e:
            self._logger.error("Cache set error: key=%s, error=%s", full_key, e)
            raise from_redis_error(e) from e
        self._logger.debug("Cache set: key=%s", full_key)

    async def set_json(self, key: str, value: Any, ttl: float | None = None) -> None:
        """
        Store a value as JSON.

        Raises:
            SerializationError: If the value cannot be encoded
        """
        await self.set(key, json_dumps(value), ttl)

    async def delete(self, *keys: str) -> int:
        """Delete keys; returns how many existed."""
        if not keys:
            return 0
        full_keys = [self.prefix_key(key) for key in keys]
        try:
            deleted = await self._client.redis.delete(*full_keys)
        except STORE_ERRORS as e:
            self._logger.error("Cache delete error: keys=%s, error=%s", full_keys, e)
            raise from_redis_error(e) from e
        self._logger.debug("Cache delete: keys=%d, deleted=%d", len(full_keys), deleted)
        return int(deleted)

    async def exists(self, key: str) -> bool:
        try:
            count = await self._client.redis.exists(self.prefix_key(key))
        except STORE_ERRORS as e:
            raise from_redis_error(e) from e
        return int(count) > 0

    async def get_or_set(
        self,
        key: str,
        compute: Callable[[], Awaitable[str]],
        ttl: float | None = None,
    ) -> str:
        """
        Return the cached value, computing and storing it on a miss.

        Failing to store the computed value is logged at WARNING; the
        computed value is returned regardless. Errors from ``compute``
        propagate and nothing is stored.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached

        value = await compute()
        try:
            await self.set(key, value, ttl)
        except StoreError as e:
            self._logger.warning(
                "Failed to cache computed value: key=%s, error=%s", self.prefix_key(key), e
            )
        return value

    async def get_or_set_json(
        self,
        key: str,
        compute: Callable[[], Awaitable[Any]],
        ttl: float | None = None,
    ) -> Any:
        """
        JSON variant of :meth:`get_or_set`.

        The computed value is returned in its decoded JSON form, so a hit
        and a miss yield the same shape.

        Raises:
            SerializationError: If the cached or computed value is not JSON
        """
        cached = await self.get(key)
        if cached is not None:
            return json_loads(cached)

        encoded = json_dumps(await compute())
        try:
            await self.set(key, encoded, ttl)
        except StoreError as e:
            self._logger.warning(
                "Failed to cache computed value: key=%s, error=%s", self.prefix_key(key), e
            )
        return json_loads(encoded)

    async def mget(self, *keys: str) -> dict[str, str | None]:
        """
        Fetch several keys in one round trip.

        Returns:
            Mapping of each requested (unprefixed) key to its value or None
        """
        if not keys:
            return {}
        try:
            values = await self._client.redis.mget([self.prefix_key(key) for key in keys])
        except STORE_ERRORS as e:
            self._logger.error("Cache mget error: keys=%d, error=%s", len(keys), e)
            raise from_redis_error(e) from e

        result = dict(zip(keys, values, strict=True))
        hits = sum(1 for value in values if value is not None)
        self._logger.debug(
            "Cache mget: keys=%d, hits=%d, misses=%d", len(keys), hits, len(keys) - hits
        )
        return result

    async def mset(self, values: Mapping[str, str | bytes], ttl: float | None = None) -> None:
        """Store several values, each with the same TTL, in one pipeline."""
        if not values:
            return
        ttl_ms = self._resolve_ttl(ttl)
        pipe = self._client.pipeline(transaction=False)
        for key, value in values.items():
            pipe.set(self.prefix_key(key), value, px=ttl_ms)
        try:
            await pipe.execute()
        except STORE_ERRORS as e:
            self._logger.error("Cache mset error: count=%d, error=%s", len(values), e)
            raise from_redis_error(e) from e
        self._logger.debug("Cache mset: count=%d, ttl_ms=%s", len(values), ttl_ms)

    async def delete_by_pattern(self, pattern: str) -> int:
        """
        Delete every key matching a glob pattern (within the prefix).

        Uses SCAN, so it does not block the server, but it is linear in the
        keyspace size. Keys are deleted in batches.

        Returns:
            Number of keys deleted
        """
        full_pattern = self.prefix_key(pattern)
        deleted = 0
        batch: list[str] = []
        try:
            async for key in self._client.redis.scan_iter(
                match=full_pattern, count=SCAN_BATCH_SIZE
            ):
                batch.append(key)
                if len(batch) >= SCAN_BATCH_SIZE:
                    deleted += await self._client.redis.delete(*batch)
                    batch.clear()
            if batch:
                deleted += await self._client.redis.delete(*batch)
        except STORE_ERRORS as e:
            self._logger.error(
                "Cache delete by pattern error: pattern=%s, deleted=%d, error=%s",
                full_pattern,
                deleted,
                e,
            )
            raise from_redis_error(e) from e

        self._logger.debug(
            "Cache delete by pattern: pattern=%s, deleted=%d", full_pattern, deleted
        )
        return deleted

    async def ttl(self, key: str) -> float | None:
        """
        Remaining lifetime of a key in seconds.

        Returns:
            Seconds left, or None if the key is missing or never expires
        """
        try:
            pttl = await self._client.redis.pttl(self.prefix_key(key))
        except STORE_ERRORS as e:
            raise from_redis_error(e) from e
        if pttl is None or pttl < 0:
            return None
        return pttl / 1000

    async def expire(self, key: str, ttl: float) -> bool:
        """Set a new lifetime on an existing key; False if it does not exist."""
        try:
            ok = await self._client.redis.pexpire(self.prefix_key(key), max(1, int(ttl * 1000)))
        except STORE_ERRORS as e:
            raise from_redis_error(e) from e
        return bool(ok)


class KeyBuilder:
    """
    Builds consistent ``service:entity:id`` keys.

    Example:
        >>> keys = KeyBuilder("billing")
        >>> keys.key("invoice", "42")
        'billing:invoice:42'
        >>> keys.pattern("invoice")
        'billing:invoice:*'
    """

    def __init__(self, service: str) -> None:
        self.service = service

    def key(self, entity: str, id: str) -> str:
        return f"{self.service}:{entity}:{id}"

    def key_with_parts(self, *parts: str) -> str:
        return ":".join((self.service, *parts))

    def pattern(self, entity: str) -> str:
        """Glob matching every key of an entity, for delete_by_pattern."""
        return f"{self.service}:{entity}:*"


__all__ = [
    "DEFAULT_CACHE_TTL",
    "Cache",
    "KeyBuilder",
]
