"""Integration test fixtures using Docker.

Provides a containerized Redis for exercising the cache against the real
SCAN/DEL/EXPIRE semantics.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator

import pytest
import pytest_asyncio
import redis.asyncio as redis

from respcache.cache.redis import RedisCacheStore
from tests.integration.docker_utils import (
    RedisService,
    get_docker_client,
    run_redis,
    wait_for_redis,
)


@pytest.fixture(scope="session")
def docker_client():
    """Create a Docker client or skip if Docker is unavailable."""
    try:
        client = get_docker_client()
        client.ping()
    except Exception as exc:
        pytest.skip(f"Docker not available: {exc}")
    yield client
    client.close()


@pytest.fixture(scope="session")
def redis_container(docker_client) -> Iterator[RedisService]:
    """Start Redis container for the test session."""
    with run_redis(docker_client) as service:
        yield service


@pytest.fixture(scope="session")
def redis_url(redis_container: RedisService) -> str:
    return redis_container.url


@pytest_asyncio.fixture
async def redis_client(redis_url: str) -> AsyncIterator[redis.Redis]:
    """Create a Redis client for tests."""
    client = redis.from_url(redis_url, decode_responses=True)
    await wait_for_redis(client)
    yield client
    await client.flushdb()  # Clean up after each test
    await client.aclose()


@pytest.fixture
def redis_store(redis_client: redis.Redis) -> RedisCacheStore:
    return RedisCacheStore(redis_client)
