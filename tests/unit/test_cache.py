"""
Unit tests for Cache and KeyBuilder.
"""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis import exceptions as redis_exceptions

from rediscoord.cache import DEFAULT_CACHE_TTL, Cache, KeyBuilder
from rediscoord.client import RedisClient
from rediscoord.exceptions import SerializationError, StoreConnectionError, StoreTimeoutError


@pytest.fixture
def cache(client: RedisClient) -> Cache:
    return Cache(client, key_prefix="app", default_ttl=60.0)


class TestKeys:
    def test_prefix_joined_with_colon(self, cache: Cache) -> None:
        assert cache.prefix_key("user:1") == "app:user:1"

    def test_empty_prefix_leaves_key_alone(self, client: RedisClient) -> None:
        assert Cache(client).prefix_key("user:1") == "user:1"

    def test_default_ttl_is_fifteen_minutes(self) -> None:
        assert DEFAULT_CACHE_TTL == 900.0


class TestGetSet:
    """Tests for get/set and their JSON variants."""

    async def test_miss_returns_none(self, cache: Cache, mock_redis: MagicMock) -> None:
        mock_redis.get.return_value = None
        assert await cache.get("k") is None
        mock_redis.get.assert_awaited_once_with("app:k")

    async def test_hit(self, cache: Cache, mock_redis: MagicMock) -> None:
        mock_redis.get.return_value = "v"
        assert await cache.get("k") == "v"

    async def test_set_uses_default_ttl(self, cache: Cache, mock_redis: MagicMock) -> None:
        await cache.set("k", "v")
        mock_redis.set.assert_awaited_once_with("app:k", "v", px=60000)

    async def test_set_with_ttl(self, cache: Cache, mock_redis: MagicMock) -> None:
        await cache.set("k", "v", ttl=1.5)
        mock_redis.set.assert_awaited_once_with("app:k", "v", px=1500)

    async def test_non_positive_ttl_means_no_expiry(
        self, cache: Cache, mock_redis: MagicMock
    ) -> None:
        await cache.set("k", "v", ttl=0)
        mock_redis.set.assert_awaited_once_with("app:k", "v", px=None)

    async def test_set_json_and_get_json(self, cache: Cache, mock_redis: MagicMock) -> None:
        await cache.set_json("k", {"a": [1, 2]})
        stored = mock_redis.set.call_args.args[1]
        assert stored == '{"a":[1,2]}'

        mock_redis.get.return_value = stored
        assert await cache.get_json("k") == {"a": [1, 2]}

    async def test_get_json_miss(self, cache: Cache) -> None:
        assert await cache.get_json("k") is None

    async def test_get_json_corrupt_value(self, cache: Cache, mock_redis: MagicMock) -> None:
        mock_redis.get.return_value = "{oops"
        with pytest.raises(SerializationError):
            await cache.get_json("k")

    async def test_set_json_unencodable(self, cache: Cache, mock_redis: MagicMock) -> None:
        with pytest.raises(SerializationError):
            await cache.set_json("k", object())
        mock_redis.set.assert_not_awaited()

    async def test_store_errors_are_translated(
        self, cache: Cache, mock_redis: MagicMock
    ) -> None:
        mock_redis.get.side_effect = redis_exceptions.TimeoutError("Timeout")
        with pytest.raises(StoreTimeoutError):
            await cache.get("k")


class TestGetOrSet:
    """Tests for get_or_set / get_or_set_json."""

    async def test_hit_skips_compute(self, cache: Cache, mock_redis: MagicMock) -> None:
        mock_redis.get.return_value = "cached"
        compute = AsyncMock(return_value="fresh")

        assert await cache.get_or_set("k", compute) == "cached"
        compute.assert_not_awaited()
        mock_redis.set.assert_not_awaited()

    async def test_miss_computes_and_stores(self, cache: Cache, mock_redis: MagicMock) -> None:
        compute = AsyncMock(return_value="fresh")

        assert await cache.get_or_set("k", compute, ttl=5) == "fresh"
        mock_redis.set.assert_awaited_once_with("app:k", "fresh", px=5000)

    async def test_failed_write_is_logged_and_value_returned(
        self,
        cache: Cache,
        mock_redis: MagicMock,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        mock_redis.set.side_effect = redis_exceptions.ConnectionError("Connection refused")

        with caplog.at_level(logging.WARNING):
            value = await cache.get_or_set("k", AsyncMock(return_value="fresh"))

        assert value == "fresh"
        assert "Failed to cache computed value" in caplog.text

    async def test_compute_error_propagates(self, cache: Cache, mock_redis: MagicMock) -> None:
        compute = AsyncMock(side_effect=LookupError("not in database"))

        with pytest.raises(LookupError):
            await cache.get_or_set("k", compute)
        mock_redis.set.assert_not_awaited()

    async def test_json_miss_returns_decoded_value(
        self, cache: Cache, mock_redis: MagicMock
    ) -> None:
        value = await cache.get_or_set_json("k", AsyncMock(return_value={"ids": (1, 2)}))

        assert value == {"ids": [1, 2]}
        assert mock_redis.set.call_args.args[1] == '{"ids":[1,2]}'

    async def test_json_hit(self, cache: Cache, mock_redis: MagicMock) -> None:
        mock_redis.get.return_value = '{"n":1}'
        assert await cache.get_or_set_json("k", AsyncMock()) == {"n": 1}


class TestBulk:
    """Tests for mget, mset, delete and delete_by_pattern."""

    async def test_mget_maps_requested_keys(self, cache: Cache, mock_redis: MagicMock) -> None:
        mock_redis.mget.return_value = ["1", None]

        assert await cache.mget("a", "b") == {"a": "1", "b": None}
        mock_redis.mget.assert_awaited_once_with(["app:a", "app:b"])

    async def test_mget_no_keys(self, cache: Cache, mock_redis: MagicMock) -> None:
        assert await cache.mget() == {}
        mock_redis.mget.assert_not_awaited()

    async def test_mset_uses_pipeline(self, cache: Cache, pipeline: MagicMock) -> None:
        await cache.mset({"a": "1", "b": "2"}, ttl=2)

        pipeline.set.assert_any_call("app:a", "1", px=2000)
        pipeline.set.assert_any_call("app:b", "2", px=2000)
        pipeline.execute.assert_awaited_once()

    async def test_mset_empty(self, cache: Cache, mock_redis: MagicMock) -> None:
        await cache.mset({})
        mock_redis.pipeline.assert_not_called()

    async def test_delete(self, cache: Cache, mock_redis: MagicMock) -> None:
        mock_redis.delete.return_value = 2
        assert await cache.delete("a", "b", "c") == 2
        mock_redis.delete.assert_awaited_once_with("app:a", "app:b", "app:c")

    async def test_delete_nothing(self, cache: Cache, mock_redis: MagicMock) -> None:
        assert await cache.delete() == 0
        mock_redis.delete.assert_not_awaited()

    async def test_delete_by_pattern_batches(self, cache: Cache, mock_redis: MagicMock) -> None:
        keys = [f"app:user:{i}" for i in range(250)]

        async def scan_iter(**kwargs):
            for key in keys:
                yield key

        mock_redis.scan_iter = MagicMock(side_effect=scan_iter)
        mock_redis.delete = AsyncMock(side_effect=lambda *batch: len(batch))

        assert await cache.delete_by_pattern("user:*") == 250
        mock_redis.scan_iter.assert_called_once_with(match="app:user:*", count=100)
        assert [len(call.args) for call in mock_redis.delete.await_args_list] == [100, 100, 50]

    async def test_delete_by_pattern_error(self, cache: Cache, mock_redis: MagicMock) -> None:
        async def scan_iter(**kwargs):
            raise redis_exceptions.ConnectionError("Connection reset")
            yield  # pragma: no cover

        mock_redis.scan_iter = MagicMock(side_effect=scan_iter)

        with pytest.raises(StoreConnectionError):
            await cache.delete_by_pattern("*")


class TestExpiry:
    async def test_exists(self, cache: Cache, mock_redis: MagicMock) -> None:
        mock_redis.exists.return_value = 1
        assert await cache.exists("k") is True

    async def test_ttl(self, cache: Cache, mock_redis: MagicMock) -> None:
        mock_redis.pttl.return_value = 2500
        assert await cache.ttl("k") == 2.5

    @pytest.mark.parametrize("pttl", [-1, -2])
    async def test_ttl_missing_or_persistent(
        self, cache: Cache, mock_redis: MagicMock, pttl: int
    ) -> None:
        mock_redis.pttl.return_value = pttl
        assert await cache.ttl("k") is None

    async def test_expire(self, cache: Cache, mock_redis: MagicMock) -> None:
        mock_redis.pexpire.return_value = False
        assert await cache.expire("k", 10) is False
        mock_redis.pexpire.assert_awaited_once_with("app:k", 10000)


class TestKeyBuilder:
    def test_key(self) -> None:
        assert KeyBuilder("billing").key("invoice", "42") == "billing:invoice:42"

    def test_key_with_parts(self) -> None:
        keys = KeyBuilder("billing")
        assert keys.key_with_parts("invoice", "42", "lines") == "billing:invoice:42:lines"
        assert keys.key_with_parts() == "billing"

    def test_pattern(self) -> None:
        assert KeyBuilder("billing").pattern("invoice") == "billing:invoice:*"
