"""Redis backing store for cached responses.

``CacheStore`` is the narrow interface the cache core depends on;
``RedisCacheStore`` implements it with the redis-py async client and
translates every Redis failure into ``CacheStoreError``.
"""

from __future__ import annotations

from collections.abc import Awaitable, Sequence
from typing import TYPE_CHECKING, Protocol, cast

import redis.asyncio as redis
from redis.exceptions import RedisError

from respcache.config import settings
from respcache.errors import CacheStoreError

if TYPE_CHECKING:
    from redis.asyncio import Redis

# Cursor value that ends a SCAN iteration
SCAN_DONE = "0"

# Module-level connection pool
_redis_client: Redis | None = None


async def get_redis(url: str | None = None) -> Redis:
    """Get or create the Redis client.

    Uses connection pooling for efficient connection management.
    """
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(  # type: ignore[no-untyped-call]
            url or settings.redis_url,
            encoding="utf-8",
            decode_responses=True,  # Entries are base64 text
        )
    return _redis_client


async def close_redis() -> None:
    """Close Redis connections."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


class CacheStore(Protocol):
    """Key-value operations the response cache needs from its backing store."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def expire(self, key: str, ttl_seconds: int) -> None: ...

    async def scan(self, cursor: str, match: str, count: int) -> tuple[str, list[str]]: ...

    async def delete(self, keys: Sequence[str]) -> int: ...

    async def ping(self) -> bool: ...


def _text(value: str | bytes) -> str:
    return value.decode() if isinstance(value, bytes) else value


class RedisCacheStore:
    """CacheStore backed by a redis-py asyncio client."""

    def __init__(self, client: Redis):
        self.client = client

    async def get(self, key: str) -> str | None:
        try:
            value = await self.client.get(key)
        except RedisError as e:
            raise CacheStoreError("GET", str(e)) from e
        return None if value is None else _text(value)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self.client.set(key, value, ex=ttl_seconds)
        except RedisError as e:
            raise CacheStoreError("SET", str(e)) from e

    async def expire(self, key: str, ttl_seconds: int) -> None:
        try:
            await self.client.expire(key, ttl_seconds)
        except RedisError as e:
            raise CacheStoreError("EXPIRE", str(e)) from e

    async def scan(self, cursor: str, match: str, count: int) -> tuple[str, list[str]]:
        """One SCAN page. Returns the next cursor ("0" when done) and its keys."""
        try:
            next_cursor, keys = await self.client.scan(cursor=int(cursor), match=match, count=count)
        except RedisError as e:
            raise CacheStoreError("SCAN", str(e)) from e
        return str(next_cursor), [_text(k) for k in keys]

    async def delete(self, keys: Sequence[str]) -> int:
        if not keys:
            return 0
        try:
            return cast(int, await self.client.delete(*keys))
        except RedisError as e:
            raise CacheStoreError("DEL", str(e)) from e

    async def ping(self) -> bool:
        """Check Redis connectivity."""
        try:
            await cast(Awaitable[bool], self.client.ping())
            return True
        except (RedisError, OSError):
            return False
