"""
Shared fixtures for unit tests.

Unit tests never talk to Redis: the redis.asyncio client is replaced with a
MagicMock whose commands are AsyncMocks. Lua scripts resolve to a single
AsyncMock reachable as ``mock_redis.register_script.return_value``, and
pipelines to a MagicMock whose ``execute`` is an AsyncMock.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from rediscoord.client import RedisClient
from rediscoord.observability import MockTracer


@pytest.fixture
def mock_redis() -> MagicMock:
    """Provide a mocked redis.asyncio client."""
    redis = MagicMock()
    redis.ping = AsyncMock(return_value=True)
    redis.aclose = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)
    redis.exists = AsyncMock(return_value=0)
    redis.pttl = AsyncMock(return_value=-2)
    redis.pexpire = AsyncMock(return_value=True)
    redis.mget = AsyncMock(return_value=[])
    redis.smembers = AsyncMock(return_value=set())
    redis.scard = AsyncMock(return_value=0)
    redis.srem = AsyncMock(return_value=0)

    redis.register_script = MagicMock(return_value=AsyncMock(return_value=1))

    pipeline = MagicMock()
    pipeline.execute = AsyncMock(return_value=[])
    redis.pipeline = MagicMock(return_value=pipeline)
    return redis


@pytest.fixture
def script(mock_redis: MagicMock) -> AsyncMock:
    """The AsyncMock standing in for every registered Lua script."""
    return mock_redis.register_script.return_value


@pytest.fixture
def pipeline(mock_redis: MagicMock) -> MagicMock:
    """The MagicMock returned by ``redis.pipeline()``."""
    return mock_redis.pipeline.return_value


@pytest.fixture
def client(mock_redis: MagicMock) -> RedisClient:
    """Provide a RedisClient wrapping the mocked redis client."""
    return RedisClient(redis=mock_redis)


@pytest.fixture
def tracer() -> MockTracer:
    return MockTracer()
