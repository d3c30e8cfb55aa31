"""Docker helpers for integration tests."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

if TYPE_CHECKING:
    from docker.client import DockerClient
    from docker.models.containers import Container
    from redis.asyncio import Redis
else:
    DockerClient = Any  # type: ignore[misc,assignment]
    Container = Any  # type: ignore[misc,assignment]

REDIS_IMAGE = "redis:7-alpine"
REDIS_PORT = 6379


def get_docker_client() -> DockerClient:
    """Create a Docker client from environment settings."""
    import docker

    return docker.from_env()


def published_host(client: DockerClient) -> str:
    """Host on which published container ports are reachable."""
    base_url = client.api.base_url
    if base_url.startswith(("unix://", "npipe://", "http+docker://")):
        return "localhost"
    return urlparse(base_url).hostname or "localhost"


@dataclass
class RedisService:
    """A running Redis container."""

    container: Container
    host: str

    @property
    def port(self) -> int:
        self.container.reload()
        bindings = self.container.attrs["NetworkSettings"]["Ports"].get(f"{REDIS_PORT}/tcp")
        if not bindings:
            raise RuntimeError(f"Redis port not published on {self.container.short_id}")
        return int(bindings[0]["HostPort"])

    @property
    def url(self) -> str:
        return f"redis://{self.host}:{self.port}/0"


@contextmanager
def run_redis(client: DockerClient, image: str = REDIS_IMAGE) -> Iterator[RedisService]:
    """Start Redis on a random host port and remove it afterwards."""
    container = client.containers.run(
        image,
        detach=True,
        ports={f"{REDIS_PORT}/tcp": None},
    )
    try:
        yield RedisService(container=container, host=published_host(client))
    finally:
        container.remove(force=True, v=True)


async def wait_for_redis(client: Redis, timeout: float = 30.0) -> None:
    """Wait for Redis to accept connections."""
    deadline = time.monotonic() + timeout
    while True:
        try:
            await client.ping()
            return
        except Exception:
            if time.monotonic() >= deadline:
                raise
            await asyncio.sleep(0.5)
