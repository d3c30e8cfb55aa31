"""Global pytest configuration and fixtures."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from respcache.cache.policy import PolicyRegistry
from respcache.cache.redis import SCAN_DONE
from tests.fakes import FakeClock, InMemoryStore


@pytest.fixture
def registry() -> PolicyRegistry:
    """Registry built from the built-in tables."""
    return PolicyRegistry.default()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def mock_store() -> AsyncMock:
    """Create mock CacheStore."""
    mock = AsyncMock()
    mock.get = AsyncMock(return_value=None)
    mock.set = AsyncMock(return_value=None)
    mock.expire = AsyncMock(return_value=None)
    mock.scan = AsyncMock(return_value=(SCAN_DONE, []))
    mock.delete = AsyncMock(return_value=0)
    mock.ping = AsyncMock(return_value=True)
    return mock
