"""
Redis client wrapper shared by all rediscoord components.

The wrapper owns connection construction for the three deployment modes,
health checking, lifecycle, and the atomic script executor used by the lock
and the rate limiter.

Example:
    >>> from rediscoord.client import RedisClient, RedisConfig
    >>>
    >>> config = RedisConfig(addresses=["redis.internal:6379"], pool_size=20)
    >>> async with RedisClient(config) as client:
    ...     await client.ping()
    >>>
    >>> # Or from a URL
    >>> client = RedisClient(RedisConfig.from_url("rediss://:secret@cache:6380/2"))
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from urllib.parse import unquote, urlparse

from redis.asyncio import Redis
from redis.asyncio.cluster import ClusterNode, RedisCluster
from redis.asyncio.sentinel import Sentinel

from rediscoord.exceptions import STORE_ERRORS, ConfigurationError, from_redis_error

DEFAULT_ADDRESS = "localhost:6379"
DEFAULT_POOL_SIZE = 10
DEFAULT_SOCKET_TIMEOUT = 3.0
DEFAULT_SOCKET_CONNECT_TIMEOUT = 5.0
DEFAULT_HEALTH_CHECK_INTERVAL = 30


class RedisMode(Enum):
    """Redis deployment mode."""

    STANDALONE = "standalone"
    CLUSTER = "cluster"
    SENTINEL = "sentinel"


def parse_address(address: str) -> tuple[str, int]:
    """
    Split a ``host:port`` address.

    Args:
        address: Address such as ``"localhost:6379"`` or ``"[::1]:6379"``

    Returns:
        Tuple of host and port

    Raises:
        ConfigurationError: If the address is malformed
    """
    host, sep, port = address.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ConfigurationError(f"Invalid Redis address: {address!r} (expected host:port)")
    return host.strip("[]"), int(port)


@dataclass
class RedisConfig:
    """Configuration for the Redis client.

    Attributes:
        addresses: Redis addresses as ``host:port``. Standalone mode uses the
            first one, cluster mode uses all as startup nodes, sentinel mode
            treats them as sentinel addresses.
        password: Password for AUTH (also used for sentinels)
        db: Database number (standalone and sentinel only)
        pool_size: Maximum number of connections in the pool (default: 10)
        socket_timeout: Read/write timeout in seconds (default: 3.0)
        socket_connect_timeout: Connect timeout in seconds (default: 5.0)
        health_check_interval: Seconds between idle connection health checks
            (default: 30)
        mode: Deployment mode (default: standalone)
        master_name: Master name, required in sentinel mode
        ssl: Use TLS connections (default: False)
    """

    addresses: list[str] = field(default_factory=lambda: [DEFAULT_ADDRESS])
    password: str | None = None
    db: int = 0
    pool_size: int = DEFAULT_POOL_SIZE
    socket_timeout: float = DEFAULT_SOCKET_TIMEOUT
    socket_connect_timeout: float = DEFAULT_SOCKET_CONNECT_TIMEOUT
    health_check_interval: int = DEFAULT_HEALTH_CHECK_INTERVAL
    mode: RedisMode = RedisMode.STANDALONE
    master_name: str | None = None
    ssl: bool = False

    @classmethod
    def from_url(cls, url: str, **overrides: Any) -> RedisConfig:
        """
        Build a standalone configuration from a ``redis://`` or ``rediss://`` URL.

        Args:
            url: URL such as ``redis://:password@host:6379/0``
            **overrides: Any other RedisConfig field

        Returns:
            RedisConfig for the URL

        Raises:
            ConfigurationError: If the URL scheme or database is invalid
        """
        parsed = urlparse(url)
        if parsed.scheme not in ("redis", "rediss"):
            raise ConfigurationError(f"Unsupported Redis URL scheme: {parsed.scheme!r}")

        db_part = parsed.path.lstrip("/")
        if db_part and not db_part.isdigit():
            raise ConfigurationError(f"Invalid Redis database in URL: {db_part!r}")

        values: dict[str, Any] = {
            "addresses": [f"{parsed.hostname or 'localhost'}:{parsed.port or 6379}"],
            "password": unquote(parsed.password) if parsed.password else None,
            "db": int(db_part) if db_part else 0,
            "ssl": parsed.scheme == "rediss",
        }
        values.update(overrides)
        return cls(**values)

    def validate(self) -> None:
        """
        Validate the configuration.

        Raises:
            ConfigurationError: If the configuration cannot produce a client
        """
        if not self.addresses:
            raise ConfigurationError("At least one Redis address is required")
        for address in self.addresses:
            parse_address(address)
        if self.mode is RedisMode.SENTINEL and not self.master_name:
            raise ConfigurationError("Master name is required for sentinel mode")
        if self.pool_size <= 0:
            raise ConfigurationError("Pool size must be positive")


class RedisClient:
    """
    Thin lifecycle wrapper around a ``redis.asyncio`` client.

    The underlying client is created lazily on first use, so constructing a
    RedisClient never performs network I/O. Call :meth:`connect` at startup to
    fail fast when Redis is unreachable.

    An already-built client may be injected with ``redis=``; this is how tests
    substitute a mock.

    Example:
        >>> client = RedisClient(RedisConfig())
        >>> await client.connect()
        >>> value = await client.redis.get("some-key")
        >>> await client.close()
    """

    def __init__(
        self,
        config: RedisConfig | None = None,
        *,
        redis: Any | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            config: Connection configuration. Defaults to RedisConfig().
            redis: Optional pre-built redis.asyncio client to wrap
            logger: Optional logger (defaults to this module's logger)

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        self._config = config or RedisConfig()
        self._config.validate()
        self._redis = redis
        self._logger = logger or logging.getLogger(__name__)
        self._scripts: dict[str, Any] = {}

    @property
    def config(self) -> RedisConfig:
        """Get the configuration."""
        return self._config

    @property
    def name(self) -> str:
        """Component name for lifecycle integration."""
        return "redis"

    @property
    def redis(self) -> Any:
        """The underlying redis.asyncio client, created on first access."""
        if self._redis is None:
            self._redis = self._build()
        return self._redis

    def _build(self) -> Any:
        cfg = self._config
        common: dict[str, Any] = {
            "password": cfg.password,
            "socket_timeout": cfg.socket_timeout,
            "socket_connect_timeout": cfg.socket_connect_timeout,
            "health_check_interval": cfg.health_check_interval,
            "decode_responses": True,
        }

        if cfg.mode is RedisMode.CLUSTER:
            nodes = [ClusterNode(*parse_address(address)) for address in cfg.addresses]
            return RedisCluster(
                startup_nodes=nodes,
                max_connections=cfg.pool_size,
                ssl=cfg.ssl,
                **common,
            )

        if cfg.mode is RedisMode.SENTINEL:
            sentinel = Sentinel(
                [parse_address(address) for address in cfg.addresses],
                sentinel_kwargs={"password": cfg.password},
                ssl=cfg.ssl,
                **common,
            )
            return sentinel.master_for(
                cfg.master_name,
                db=cfg.db,
                max_connections=cfg.pool_size,
            )

        host, port = parse_address(cfg.addresses[0])
        return Redis(
            host=host,
            port=port,
            db=cfg.db,
            max_connections=cfg.pool_size,
            ssl=cfg.ssl,
            **common,
        )

    async def connect(self) -> None:
        """
        Verify connectivity with a PING.

        Raises:
            StoreConnectionError: If Redis cannot be reached
            StoreTimeoutError: If the PING timed out
        """
        self._logger.info(
            "Connecting to Redis: addresses=%s, mode=%s",
            self._config.addresses,
            self._config.mode.value,
        )
        try:
            await self.ping()
        except Exception as e:
            self._logger.error(
                "Redis connection failed: addresses=%s, error=%s",
                self._config.addresses,
                e,
            )
            raise
        self._logger.info(
            "Redis connected: addresses=%s, mode=%s, pool_size=%d",
            self._config.addresses,
            self._config.mode.value,
            self._config.pool_size,
        )

    async def ping(self) -> None:
        """Round-trip a PING, translating failures."""
        try:
            await self.redis.ping()
        except STORE_ERRORS as e:
            raise from_redis_error(e) from e

    async def check(self) -> None:
        """Health check hook; same as :meth:`ping`."""
        await self.ping()

    async def close(self) -> None:
        """Close the underlying client and its connection pool."""
        if self._redis is None:
            return
        try:
            await self._redis.aclose()
        except STORE_ERRORS as e:
            raise from_redis_error(e) from e
        finally:
            self._redis = None
            self._scripts.clear()

    async def run_script(
        self,
        source: str,
        keys: Sequence[str],
        args: Sequence[Any],
    ) -> Any:
        """
        Execute a Lua script atomically.

        Scripts are registered once per client and invoked by SHA; redis-py
        reloads them transparently if the server's script cache was flushed.
        Redis errors are raised untranslated so callers can log them with
        their own context before translating.

        Args:
            source: Lua source
            keys: KEYS passed to the script
            args: ARGV passed to the script

        Returns:
            The script's raw reply
        """
        script = self._scripts.get(source)
        if script is None:
            script = self.redis.register_script(source)
            self._scripts[source] = script
        return await script(keys=list(keys), args=list(args))

    def pipeline(self, *, transaction: bool = False) -> Any:
        """Create a pipeline on the underlying client."""
        return self.redis.pipeline(transaction=transaction)

    async def __aenter__(self) -> RedisClient:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.close()


__all__ = [
    "DEFAULT_ADDRESS",
    "DEFAULT_POOL_SIZE",
    "DEFAULT_SOCKET_TIMEOUT",
    "DEFAULT_SOCKET_CONNECT_TIMEOUT",
    "DEFAULT_HEALTH_CHECK_INTERVAL",
    "RedisMode",
    "RedisConfig",
    "RedisClient",
    "parse_address",
]
