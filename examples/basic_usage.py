"""
Basic Usage Example

This example demonstrates the coordination primitives against a local Redis:
- Taking a distributed lock and handling contention
- Fixed-window and sliding-window rate limiting
- Caching a computed value
- Creating and listing user sessions

Requires a Redis at localhost:6379 (override with REDIS_URL).

Run with: python examples/basic_usage.py
"""

import asyncio
import logging
import os

from rediscoord import (
    Cache,
    LockContentionError,
    Locker,
    RateLimiter,
    RedisClient,
    RedisConfig,
    SessionStore,
)


async def demo_locks(client: RedisClient) -> None:
    print("\n1. Distributed locks:")

    worker_a = Locker(client, default_ttl=5.0)
    worker_b = Locker(client, retry_delay=0.05, retry_count=5)

    lock = await worker_a.acquire("reports:daily")
    print(f"   Worker A holds {lock.key} until ~{lock.expires_at:%H:%M:%S}")

    try:
        await worker_b.acquire("reports:daily")
    except LockContentionError as e:
        print(f"   Worker B blocked: {e}")

    await lock.release()

    async def build_report(lock) -> str:
        return f"report built under {lock.key}"

    print(f"   {await worker_b.with_lock('reports:daily', build_report, timeout=2.0)}")


async def demo_rate_limits(client: RedisClient) -> None:
    print("\n2. Rate limiting (3 per minute):")

    limiter = RateLimiter(client, key_prefix="example:rl", window=60.0, max_requests=3)
    await limiter.reset("client-1")

    for i in range(1, 5):
        result = await limiter.allow("client-1")
        verdict = "allowed" if result.allowed else f"denied, retry in {result.retry_after:.0f}s"
        print(f"   Request {i}: {verdict} (remaining={result.remaining_display})")

    result = await limiter.sliding_window_allow("client-1")
    print(f"   Sliding window is tracked separately: allowed={result.allowed}")


async def demo_cache(client: RedisClient) -> None:
    print("\n3. Cache:")

    cache = Cache(client, key_prefix="example", default_ttl=30)

    async def load_settings() -> dict:
        print("   (computing settings)")
        return {"theme": "dark", "items_per_page": 50}

    for _ in range(2):
        settings = await cache.get_or_set_json("settings:user-42", load_settings)
        print(f"   Settings: {settings}")


async def demo_sessions(client: RedisClient) -> None:
    print("\n4. Sessions:")

    store = SessionStore(client, key_prefix="example:session")
    session = await store.create("user-42", device_id="laptop", ttl=3600)
    await store.create("user-42", device_id="phone", ttl=3600)

    for s in await store.list_by_user("user-42"):
        print(f"   {s.id[:12]}... device={s.device_id} expires={s.expires_at:%H:%M}")

    await store.delete(session.id)
    print(f"   After logout: {await store.count('user-42')} session(s)")
    await store.delete_by_user("user-42")


async def main() -> None:
    logging.basicConfig(level=logging.WARNING)

    print("=" * 60)
    print("rediscoord Basic Usage Example")
    print("=" * 60)

    config = RedisConfig.from_url(os.environ.get("REDIS_URL", "redis://localhost:6379/0"))
    async with RedisClient(config) as client:
        await demo_locks(client)
        await demo_rate_limits(client)
        await demo_cache(client)
        await demo_sessions(client)

    print("\n" + "=" * 60)
    print("Example completed successfully!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
