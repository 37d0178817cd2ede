"""Unit tests for the background expiry sweeper."""

import asyncio
import json

import pytest

from eliza_cache.cache import CacheManager, ExpirySweeper, MemoryCacheAdapter


class _NoKeysStore:
    async def get(self, key):
        return None

    async def set(self, key, value):
        return True

    async def delete(self, key):
        return True


class TestExpirySweeper:
    """Test cases for ExpirySweeper."""

    def test_requires_key_listing(self):
        with pytest.raises(TypeError):
            ExpirySweeper(_NoKeysStore())

    @pytest.mark.parametrize("interval", [0, -1.5])
    def test_rejects_non_positive_interval(self, interval):
        with pytest.raises(ValueError):
            ExpirySweeper(MemoryCacheAdapter(), interval=interval)

    @pytest.mark.asyncio
    async def test_sweep_once_purges_only_expired(self, memory_cache, memory_store):
        await memory_cache.set("stale", "v", {"expires": 1})
        await memory_cache.set("fresh", "v")
        await memory_cache.set("later", "v", {"expires": 2**53})

        assert await ExpirySweeper(memory_store).sweep_once() == 1
        assert sorted(memory_store.data) == ["fresh", "later"]

    @pytest.mark.asyncio
    async def test_sweep_skips_malformed_entries(self, memory_store):
        memory_store.data["garbage"] = "{oops"
        memory_store.data["list"] = "[1]"
        memory_store.data["empty"] = ""
        memory_store.data["stale"] = json.dumps({"value": 1, "expires": 1})

        assert await ExpirySweeper(memory_store).sweep_once() == 1
        assert sorted(memory_store.data) == ["empty", "garbage", "list"]

    @pytest.mark.asyncio
    async def test_sweeps_filesystem_store(self, fs_store):
        cache = CacheManager(fs_store)
        await cache.set("a/old", "v", {"expires": 1})
        await cache.set("a/new", "v")

        assert await ExpirySweeper(fs_store).sweep_once() == 1
        assert await fs_store.keys() == ["a/new"]

    @pytest.mark.asyncio
    async def test_start_and_stop(self, memory_cache, memory_store):
        await memory_cache.set("stale", "v", {"expires": 1})
        sweeper = ExpirySweeper(memory_store, interval=0.01)

        await sweeper.start()
        assert sweeper.running
        for _ in range(100):
            if "stale" not in memory_store.data:
                break
            await asyncio.sleep(0.01)
        await sweeper.stop()

        assert not sweeper.running
        assert "stale" not in memory_store.data

    @pytest.mark.asyncio
    async def test_stop_without_start_is_noop(self):
        sweeper = ExpirySweeper(MemoryCacheAdapter())
        await sweeper.stop()
        assert not sweeper.running
