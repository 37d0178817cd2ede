"""Unit tests for the SQL cache service (database cache contract)."""

import asyncio
from unittest.mock import Mock

import pytest
from sqlalchemy.exc import OperationalError

from eliza_cache.cache import IDatabaseCacheAdapter
from eliza_cache.cache.database import SupportsCacheKeyListing
from eliza_cache.models import CircuitState
from eliza_cache.services import CacheService
from eliza_cache.utils.circuit_breaker import CircuitBreaker

AGENT_A = "11111111-1111-1111-1111-111111111111"
AGENT_B = "22222222-2222-2222-2222-222222222222"


def _locked_error() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("database is locked"))


class TestCacheService:
    """Test cases for CacheService against a real SQLite file."""

    def test_protocol_compliance(self, cache_service):
        assert isinstance(cache_service, IDatabaseCacheAdapter)
        assert isinstance(cache_service, SupportsCacheKeyListing)

    def test_requires_engine_or_session_factory(self):
        with pytest.raises(ValueError):
            CacheService()

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, cache_service):
        assert await cache_service.get_cache(agent_id=AGENT_A, key="k") is None

    @pytest.mark.asyncio
    async def test_set_then_get(self, cache_service):
        assert await cache_service.set_cache(agent_id=AGENT_A, key="k", value="1") is True
        assert await cache_service.get_cache(agent_id=AGENT_A, key="k") == "1"

    @pytest.mark.asyncio
    async def test_repeated_set_keeps_one_row(self, cache_service):
        await cache_service.set_cache(agent_id=AGENT_A, key="k", value="1")
        await cache_service.set_cache(agent_id=AGENT_A, key="k", value="2")

        assert await cache_service.get_cache(agent_id=AGENT_A, key="k") == "2"
        assert await cache_service.count_rows(agent_id=AGENT_A, key="k") == 1

    @pytest.mark.asyncio
    async def test_agents_are_isolated(self, cache_service):
        await cache_service.set_cache(agent_id=AGENT_A, key="k", value="v1")
        await cache_service.set_cache(agent_id=AGENT_B, key="k", value="v2")

        assert await cache_service.get_cache(agent_id=AGENT_A, key="k") == "v1"
        assert await cache_service.get_cache(agent_id=AGENT_B, key="k") == "v2"

        await cache_service.delete_cache(agent_id=AGENT_B, key="k")
        assert await cache_service.get_cache(agent_id=AGENT_A, key="k") == "v1"
        assert await cache_service.get_cache(agent_id=AGENT_B, key="k") is None

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, cache_service):
        await cache_service.set_cache(agent_id=AGENT_A, key="k", value="v")
        assert await cache_service.delete_cache(agent_id=AGENT_A, key="k") is True
        assert await cache_service.delete_cache(agent_id=AGENT_A, key="k") is True
        assert await cache_service.count_rows(agent_id=AGENT_A) == 0

    @pytest.mark.asyncio
    async def test_concurrent_sets_do_not_duplicate(self, cache_service):
        results = await asyncio.gather(*(
            cache_service.set_cache(agent_id=AGENT_A, key="k", value=str(i)) for i in range(10)
        ))

        assert all(results)
        assert await cache_service.count_rows(agent_id=AGENT_A, key="k") == 1
        assert await cache_service.get_cache(agent_id=AGENT_A, key="k") in {str(i) for i in range(10)}

    @pytest.mark.asyncio
    async def test_list_cache_keys_is_per_agent(self, cache_service):
        await cache_service.set_cache(agent_id=AGENT_A, key="b", value="1")
        await cache_service.set_cache(agent_id=AGENT_A, key="a", value="1")
        await cache_service.set_cache(agent_id=AGENT_B, key="c", value="1")

        assert await cache_service.list_cache_keys(agent_id=AGENT_A) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_uuid_agent_ids_are_normalized(self, cache_service):
        import uuid

        agent = uuid.UUID(AGENT_A)
        await cache_service.set_cache(agent_id=agent, key="k", value="v")
        assert await cache_service.get_cache(agent_id=AGENT_A, key="k") == "v"


class TestCacheServiceFailures:
    """Backend failures become misses and False results."""

    def _failing_service(self, **kwargs) -> tuple[CacheService, Mock]:
        session_factory = Mock(side_effect=_locked_error())
        service = CacheService(
            session_factory=session_factory,
            base_delay=0.0,
            max_delay=0.0,
            jitter=0.0,
            **kwargs,
        )
        return service, session_factory

    @pytest.mark.asyncio
    async def test_failures_are_swallowed(self):
        service, _ = self._failing_service(breaker=CircuitBreaker(failure_threshold=100))

        assert await service.get_cache(agent_id=AGENT_A, key="k") is None
        assert await service.set_cache(agent_id=AGENT_A, key="k", value="v") is False
        assert await service.delete_cache(agent_id=AGENT_A, key="k") is False

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self):
        service, session_factory = self._failing_service(max_retries=2)

        await service.get_cache(agent_id=AGENT_A, key="k")
        assert session_factory.call_count == 3

    @pytest.mark.asyncio
    async def test_non_transient_errors_are_not_retried(self):
        session_factory = Mock(side_effect=ValueError("bad statement"))
        service = CacheService(session_factory=session_factory, base_delay=0.0, max_retries=3)

        assert await service.get_cache(agent_id=AGENT_A, key="k") is None
        assert session_factory.call_count == 1

    @pytest.mark.asyncio
    async def test_circuit_opens_and_stops_calling_database(self):
        service, session_factory = self._failing_service(
            max_retries=0,
            breaker=CircuitBreaker(failure_threshold=2, reset_timeout=60.0),
        )

        await service.get_cache(agent_id=AGENT_A, key="k")
        await service.get_cache(agent_id=AGENT_A, key="k")
        assert service.breaker.state == CircuitState.OPEN
        assert session_factory.call_count == 2

        assert await service.set_cache(agent_id=AGENT_A, key="k", value="v") is False
        assert session_factory.call_count == 2

    @pytest.mark.asyncio
    async def test_operation_timeout_raises_timeout_error(self, db_engine):
        service = CacheService(db_engine, operation_timeout=0.01, max_retries=0)

        async def _slow(session):
            await asyncio.sleep(1)

        with pytest.raises(TimeoutError):
            await service.with_database(_slow, "slow")
