"""
Integration tests for Redis locks.

These tests require a real Redis and verify:
- Mutual exclusion between independent clients
- Release and extension only act on the caller's own lock
- Expiry hands the lock to the next owner
- Retry, deadline and cancellation behaviour
"""

from __future__ import annotations

import asyncio

import pytest

from rediscoord.client import RedisClient
from rediscoord.exceptions import (
    CoordinationTimeoutError,
    LockContentionError,
    LockNotHeldError,
    LockTimeoutError,
)
from rediscoord.locks import Locker, LockState

from .conftest import skip_if_no_redis_infra

# Mark all tests in this module as integration tests requiring Redis
pytestmark = [pytest.mark.integration, pytest.mark.redis, skip_if_no_redis_infra]


@pytest.fixture
def locker(redis_client: RedisClient) -> Locker:
    return Locker(redis_client, retry_delay=0.01, retry_count=50, enable_tracing=False)


@pytest.fixture
def other_locker(second_client: RedisClient) -> Locker:
    return Locker(second_client, retry_delay=0.01, retry_count=50, enable_tracing=False)


class TestMutualExclusion:
    """At most one owner holds a key at a time."""

    async def test_second_acquire_is_contended(
        self, locker: Locker, other_locker: Locker
    ) -> None:
        lock = await locker.acquire("resource", ttl=5)

        with pytest.raises(LockContentionError):
            await other_locker.acquire("resource", ttl=5)
        assert await other_locker.try_acquire("resource") is None

        await lock.release()
        second = await other_locker.acquire("resource", ttl=5)
        assert second.acquired

    async def test_concurrent_acquires_have_one_winner(
        self, locker: Locker, other_locker: Locker
    ) -> None:
        attempts = [locker.try_acquire("hot") for _ in range(10)]
        attempts += [other_locker.try_acquire("hot") for _ in range(10)]

        results = await asyncio.gather(*attempts)

        assert sum(lock is not None for lock in results) == 1

    async def test_store_holds_owner_token_with_expiry(
        self, locker: Locker, redis_client: RedisClient
    ) -> None:
        lock = await locker.acquire("resource", ttl=5)

        assert await redis_client.redis.get("lock:resource") == lock.owner
        remaining = await lock.remaining_ttl()
        assert remaining is not None
        assert 0 < remaining <= 5


class TestOwnership:
    """Release and extend never affect another owner's lock."""

    async def test_expired_holder_cannot_release_new_owner(
        self, locker: Locker, other_locker: Locker, redis_client: RedisClient
    ) -> None:
        stale = await locker.acquire("resource", ttl=0.1)
        await asyncio.sleep(0.2)
        current = await other_locker.acquire("resource", ttl=5)

        with pytest.raises(LockNotHeldError):
            await stale.release()

        assert stale.state is LockState.UNACQUIRED
        assert await redis_client.redis.get("lock:resource") == current.owner

    async def test_expired_holder_cannot_extend_new_owner(
        self, locker: Locker, other_locker: Locker, redis_client: RedisClient
    ) -> None:
        stale = await locker.acquire("resource", ttl=0.1)
        await asyncio.sleep(0.2)
        current = await other_locker.acquire("resource", ttl=5)

        with pytest.raises(LockNotHeldError):
            await stale.extend(60)

        assert await current.remaining_ttl() <= 5

    async def test_release_is_idempotent_in_effect(
        self, locker: Locker, other_locker: Locker
    ) -> None:
        lock = await locker.acquire("resource", ttl=5)
        await lock.release()
        replacement = await other_locker.acquire("resource", ttl=5)

        with pytest.raises(LockNotHeldError):
            await lock.release()

        assert await replacement.verify() is True

    async def test_verify_detects_loss(self, locker: Locker) -> None:
        lock = await locker.acquire("resource", ttl=0.1)
        assert await lock.verify() is True

        await asyncio.sleep(0.2)

        assert await lock.verify() is False
        assert lock.state is LockState.UNACQUIRED

    async def test_extend_keeps_lock_alive(self, locker: Locker, other_locker: Locker) -> None:
        lock = await locker.acquire("resource", ttl=0.3)
        await lock.extend(5)
        await asyncio.sleep(0.4)

        assert await lock.verify() is True
        assert await other_locker.try_acquire("resource") is None


class TestRetry:
    """Retrying acquisition, deadlines and cancellation."""

    async def test_acquire_with_retry_waits_for_release(
        self, locker: Locker, other_locker: Locker
    ) -> None:
        held = await locker.acquire("resource", ttl=5)

        async def release_soon() -> None:
            await asyncio.sleep(0.05)
            await held.release()

        releaser = asyncio.create_task(release_soon())
        lock = await other_locker.acquire_with_retry("resource", ttl=5, timeout=2)
        await releaser

        assert lock.acquired

    async def test_acquire_with_retry_after_expiry(
        self, locker: Locker, other_locker: Locker
    ) -> None:
        await locker.acquire("resource", ttl=0.1)

        lock = await other_locker.acquire_with_retry("resource", ttl=5, timeout=2)

        assert lock.acquired

    async def test_gives_up_after_retry_count(
        self, locker: Locker, redis_client: RedisClient
    ) -> None:
        await locker.acquire("resource", ttl=30)
        impatient = Locker(redis_client, retry_delay=0, retry_count=3, enable_tracing=False)

        with pytest.raises(LockContentionError) as exc_info:
            await impatient.acquire_with_retry("resource")
        assert exc_info.value.attempts == 3

    async def test_deadline_raises_timeout_class_error(
        self, locker: Locker, other_locker: Locker
    ) -> None:
        await locker.acquire("resource", ttl=30)

        with pytest.raises(CoordinationTimeoutError) as exc_info:
            await other_locker.acquire_with_retry("resource", timeout=0.1)

        assert isinstance(exc_info.value, LockTimeoutError)

    async def test_cancelled_waiter_leaves_lock_untouched(
        self, locker: Locker, other_locker: Locker, redis_client: RedisClient
    ) -> None:
        held = await locker.acquire("resource", ttl=30)

        waiter = asyncio.create_task(other_locker.acquire_with_retry("resource"))
        await asyncio.sleep(0.05)
        waiter.cancel()

        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert await redis_client.redis.get("lock:resource") == held.owner


class TestScoped:
    async def test_with_lock_serializes_critical_sections(
        self, locker: Locker, other_locker: Locker
    ) -> None:
        inside = 0
        max_inside = 0

        async def critical(_lock) -> None:
            nonlocal inside, max_inside
            inside += 1
            max_inside = max(max_inside, inside)
            await asyncio.sleep(0.02)
            inside -= 1

        await asyncio.gather(
            *(
                (locker if i % 2 else other_locker).with_lock("resource", critical, timeout=5)
                for i in range(6)
            )
        )

        assert max_inside == 1

    async def test_hold_releases_key(self, locker: Locker, redis_client: RedisClient) -> None:
        async with locker.hold("resource", ttl=5):
            assert await redis_client.redis.exists("lock:resource") == 1

        assert await redis_client.redis.exists("lock:resource") == 0
