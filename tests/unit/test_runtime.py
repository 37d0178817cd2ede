"""Unit tests for open_cache wiring and shutdown."""

import asyncio

import pytest

from eliza_cache.cache import DbCacheAdapter, FsCacheAdapter, MemoryCacheAdapter
from eliza_cache.config import CacheConfig
from eliza_cache.runtime import open_cache

AGENT = "33333333-3333-3333-3333-333333333333"


@pytest.fixture
def settings(tmp_path) -> CacheConfig:
    return CacheConfig(tmp_path / "home" / "config.json")


class TestOpenCache:
    """Test cases for open_cache."""

    @pytest.mark.asyncio
    async def test_memory_backend_is_default(self, settings):
        async with open_cache(settings=settings) as cache:
            assert isinstance(cache.store, MemoryCacheAdapter)
            await cache.set("k", "v")
            assert await cache.get("k") == "v"

    @pytest.mark.asyncio
    async def test_backend_from_settings(self, settings, tmp_path):
        settings.update_config(**{"cache.backend": "fs", "cache.fs_root": str(tmp_path / "fsroot")})

        async with open_cache(settings=settings) as cache:
            assert isinstance(cache.store, FsCacheAdapter)
            assert cache.store.data_dir == tmp_path / "fsroot"

    @pytest.mark.asyncio
    async def test_fs_backend_persists_between_opens(self, settings, cache_root):
        async with open_cache("filesystem", data_dir=cache_root, settings=settings) as cache:
            await cache.set("a/b", [1, 2, 3])

        async with open_cache("fs", data_dir=cache_root, settings=settings) as cache:
            assert await cache.get("a/b") == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_database_backend_persists_between_opens(self, settings, db_url):
        async with open_cache("database", agent_id=AGENT, database_url=db_url, settings=settings) as cache:
            assert isinstance(cache.store, DbCacheAdapter)
            assert cache.store.agent_id == AGENT
            await cache.set("k", {"n": 1})

        async with open_cache("database", agent_id=AGENT, database_url=db_url, settings=settings) as cache:
            assert await cache.get("k") == {"n": 1}

        other = "44444444-4444-4444-4444-444444444444"
        async with open_cache("database", agent_id=other, database_url=db_url, settings=settings) as cache:
            assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_pending_cleanups_finish_on_exit(self, settings):
        async with open_cache("memory", settings=settings) as cache:
            store = cache.store
            await cache.set("k", "v", {"expires": 1})
            assert await cache.get("k") is None

        assert "k" not in store.data

    @pytest.mark.asyncio
    async def test_sweeper_runs_when_enabled(self, settings):
        async with open_cache("memory", sweep_interval=0.01, settings=settings) as cache:
            await cache.set("k", "v", {"expires": 1})
            for _ in range(100):
                if "k" not in cache.store.data:
                    break
                await asyncio.sleep(0.01)
            assert "k" not in cache.store.data

    @pytest.mark.asyncio
    async def test_unknown_backend(self, settings):
        with pytest.raises(ValueError):
            async with open_cache("redis", settings=settings):
                pass
