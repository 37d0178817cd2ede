"""Pytest configuration and shared fixtures for eliza-cache tests."""

import os
import tempfile
from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio
import structlog
from sqlalchemy.ext.asyncio import AsyncEngine

# Keep config and logs out of the real home directory; must run before imports
os.environ["ELIZA_CACHE_HOME"] = tempfile.mkdtemp(prefix="eliza-cache-test-")

from eliza_cache.cache import CacheManager, FsCacheAdapter, MemoryCacheAdapter
from eliza_cache.database import build_engine, prepare_database, sqlite_url
from eliza_cache.services import CacheService
from eliza_cache.utils.circuit_breaker import CircuitBreaker


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo any structlog configuration a test (e.g. a CLI run) applied."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def memory_store() -> MemoryCacheAdapter:
    return MemoryCacheAdapter()


@pytest.fixture
def memory_cache(memory_store) -> CacheManager:
    return CacheManager(memory_store)


@pytest.fixture
def cache_root(tmp_path) -> Path:
    """Cache root that does not exist yet."""
    return tmp_path / "cache"


@pytest.fixture
def fs_store(cache_root) -> FsCacheAdapter:
    return FsCacheAdapter(cache_root)


@pytest.fixture
def db_url(tmp_path) -> str:
    return sqlite_url(tmp_path / "data" / "cache.db")


@pytest_asyncio.fixture
async def db_engine(db_url) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite engine with the cache table created."""
    engine = build_engine(db_url)
    await prepare_database(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def cache_service(db_engine) -> CacheService:
    """Cache service with fast retries so failure tests stay quick."""
    return CacheService(
        db_engine,
        operation_timeout=5.0,
        base_delay=0.0,
        max_delay=0.0,
        jitter=0.0,
        breaker=CircuitBreaker(failure_threshold=100),
    )
