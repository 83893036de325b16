"""Shared pytest fixtures for the broker core test suite.

Database and cache collaborators are ``MagicMock`` objects with
``AsyncMock`` query methods; Redis-backed tests use fakeredis.
"""

import contextlib
from collections.abc import AsyncGenerator, AsyncIterator, Generator
from datetime import date
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from asyncpg.pool import PoolConnectionProxy
from fakeredis import FakeAsyncRedis

from broker_core.core.cache import Cache
from broker_core.core.config import clear_settings_cache
from broker_core.core.retry import RetryPolicy


@pytest.fixture(autouse=True)
def reset_settings() -> Generator[None, None, None]:
    """Rebuild settings from the environment for every test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def today() -> date:
    """Fixed evaluation date."""
    return date(2025, 7, 1)


@pytest.fixture
def no_retry() -> RetryPolicy:
    """Retry policy that never sleeps."""
    return RetryPolicy(max_attempts=3, base_delay_seconds=0.0)


class MockPoolConnection(PoolConnectionProxy):
    """Pooled connection whose query methods are ``AsyncMock`` attributes.

    Subclassing the pool proxy keeps ``isinstance(conn, asyncpg.Connection)``
    true, which the beartype-checked writers require.
    """

    def __init__(self) -> None:
        self._con = None
        self._holder = None


@pytest.fixture
def mock_conn() -> MockPoolConnection:
    """Connection handed out by ``mock_db.transaction()``."""
    conn = MockPoolConnection()
    conn.execute = AsyncMock(return_value="INSERT 0 1")
    conn.fetchrow = AsyncMock(return_value=None)
    conn.fetchval = AsyncMock(return_value=None)
    conn.fetch = AsyncMock(return_value=[])
    return conn


@pytest.fixture
def mock_db(mock_conn: MockPoolConnection) -> MagicMock:
    """Create mock database for testing."""
    db = MagicMock()
    db.fetchval = AsyncMock(return_value=None)
    db.fetchrow = AsyncMock(return_value=None)
    db.fetch = AsyncMock(return_value=[])
    db.execute = AsyncMock(return_value="INSERT 0 1")

    @contextlib.asynccontextmanager
    async def transaction() -> AsyncIterator[Any]:
        yield mock_conn

    db.transaction = MagicMock(side_effect=transaction)
    return db


@pytest.fixture
def mock_cache() -> MagicMock:
    """Create mock cache for testing."""
    cache = MagicMock()
    cache.get = AsyncMock(return_value=None)
    cache.set = AsyncMock(return_value=True)
    cache.delete = AsyncMock(return_value=True)
    cache.exists = AsyncMock(return_value=False)
    return cache


@pytest_asyncio.fixture
async def fake_cache() -> AsyncGenerator[Cache, None]:
    """Cache backed by fakeredis."""
    client = FakeAsyncRedis(decode_responses=True)
    cache = Cache(client)
    yield cache
    await client.flushall()
    await client.aclose()
