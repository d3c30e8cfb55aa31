"""Integration tests for the response cache against a real Redis.

Tests key storage, sliding expiration and paged invalidation.
"""

from __future__ import annotations

import pytest
from redis.asyncio import Redis

from respcache.cache.availability import AvailabilityMonitor
from respcache.cache.interceptor import CacheInterceptor, CacheRequest
from respcache.cache.invalidation import InvalidationEngine
from respcache.cache.keys import CacheKeys
from respcache.cache.policy import PolicyRegistry
from respcache.cache.redis import RedisCacheStore

pytestmark = pytest.mark.integration


def _interceptor(registry: PolicyRegistry, store: RedisCacheStore) -> CacheInterceptor:
    return CacheInterceptor(registry, store, AvailabilityMonitor(store.ping))


class TestRedisCacheStore:
    """Tests for RedisCacheStore operations."""

    @pytest.mark.asyncio
    async def test_set_get_with_ttl(
        self, redis_store: RedisCacheStore, redis_client: Redis
    ) -> None:
        await redis_store.set("cache:u1:bookings:0123456789", "payload", 1800)

        assert await redis_store.get("cache:u1:bookings:0123456789") == "payload"
        assert 0 < await redis_client.ttl("cache:u1:bookings:0123456789") <= 1800

    @pytest.mark.asyncio
    async def test_scan_pages_to_completion(
        self, redis_store: RedisCacheStore, redis_client: Redis
    ) -> None:
        for i in range(250):
            await redis_client.set(f"cache:u1:bookings:{i:010x}", "x")
        await redis_client.set("cache:u2:bookings:0000000000", "x")

        seen: set[str] = set()
        cursor = "0"
        while True:
            cursor, keys = await redis_store.scan(cursor, "cache:u1:bookings:*", 100)
            seen.update(keys)
            if cursor == "0":
                break

        assert len(seen) == 250

    @pytest.mark.asyncio
    async def test_delete_counts_existing_keys(
        self, redis_store: RedisCacheStore, redis_client: Redis
    ) -> None:
        await redis_client.set("cache:u1:user:aaaaaaaaaa", "x")

        deleted = await redis_store.delete(["cache:u1:user:aaaaaaaaaa", "cache:u1:user:missing"])

        assert deleted == 1

    @pytest.mark.asyncio
    async def test_ping(self, redis_store: RedisCacheStore) -> None:
        assert await redis_store.ping() is True


class TestReadThrough:
    """Tests for the interceptor with Redis."""

    @pytest.mark.asyncio
    async def test_hit_resets_ttl(
        self, registry: PolicyRegistry, redis_store: RedisCacheStore, redis_client: Redis
    ) -> None:
        interceptor = _interceptor(registry, redis_store)
        request = CacheRequest(method="GET", path="/api/bookings", user_id="u1")

        miss = await interceptor.try_serve_from_cache(request)
        await miss.complete(200, {"bookings": []})
        assert miss.key is not None
        await redis_client.expire(miss.key, 5)

        hit = await interceptor.try_serve_from_cache(request)

        assert hit.served
        assert hit.body == {"bookings": []}
        assert await redis_client.ttl(miss.key) > 5


class TestInvalidation:
    """Tests for InvalidationEngine with Redis."""

    @pytest.mark.asyncio
    async def test_invalidate_purges_user_and_admin_entries(
        self, registry: PolicyRegistry, redis_store: RedisCacheStore, redis_client: Redis
    ) -> None:
        for user in ("u1", "u2"):
            for page in range(150):
                key = CacheKeys.build(
                    user,
                    "/api/bookings",
                    {"page": str(page)},
                    registry.match_policy("/api/bookings"),
                )
                await redis_client.set(key, "x")
        admin_key = CacheKeys.build(
            "a1", "/api/admin/bookings", {}, registry.match_policy("/api/admin/bookings")
        )
        await redis_client.set(admin_key, "x")
        engine = InvalidationEngine(registry, redis_store)

        result = await engine.invalidate("booking-updated", {"userId": "u1"})

        assert result == (151, True)
        remaining = [key async for key in redis_client.scan_iter(match="cache:*")]
        assert len(remaining) == 150
        assert all(key.startswith("cache:u2:") for key in remaining)

    @pytest.mark.asyncio
    async def test_user_login_purges_detail_page(
        self, registry: PolicyRegistry, redis_store: RedisCacheStore, redis_client: Redis
    ) -> None:
        user_id = "507f1f77bcf86cd799439011"
        path = f"/api/admin/users/{user_id}"
        detail_key = CacheKeys.build("a1", path, {}, registry.match_policy(path))
        list_key = CacheKeys.build(
            "a1", "/api/admin/users", {}, registry.match_policy("/api/admin/users")
        )
        await redis_client.set(detail_key, "x")
        await redis_client.set(list_key, "x")
        engine = InvalidationEngine(registry, redis_store)

        result = await engine.invalidate("user-login", {"userId": user_id})

        assert result == (1, True)
        assert await redis_client.exists(detail_key) == 0
        assert await redis_client.exists(list_key) == 1
