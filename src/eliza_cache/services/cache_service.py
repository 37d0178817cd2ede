"""SQL implementation of the database cache contract."""

import asyncio
from datetime import datetime
from typing import Any, Awaitable, Callable

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ..cache.database import AgentId
from ..database import execute_with_retry, get_session_factory
from ..models import CacheRecord
from ..utils.circuit_breaker import CircuitBreaker

logger = structlog.get_logger()

# Dialects whose insert() supports ON CONFLICT DO UPDATE
UPSERT_DIALECTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class CacheService:
    """Reads and writes the ``cache`` table for any number of agents.

    Implements ``IDatabaseCacheAdapter``. Every call goes through a circuit
    breaker, then retry with exponential backoff, then a per-attempt deadline.
    Failures never propagate: reads return None and writes return False.

    Args:
        engine: Engine to open sessions on (ignored if ``session_factory`` is given)
        session_factory: Explicit session factory
        operation_timeout: Deadline in seconds for one attempt; None disables it
        max_retries: Retries after the first attempt for transient errors
        base_delay: First backoff delay in seconds
        max_delay: Backoff ceiling in seconds
        jitter: Upper bound of random delay added to each backoff
        breaker: Circuit breaker shared by all operations
    """

    def __init__(
        self,
        engine: AsyncEngine | None = None,
        *,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        operation_timeout: float | None = 5.0,
        max_retries: int = 3,
        base_delay: float = 0.1,
        max_delay: float = 5.0,
        jitter: float = 0.1,
        breaker: CircuitBreaker | None = None,
    ):
        if session_factory is None:
            if engine is None:
                raise ValueError("CacheService needs an engine or a session factory")
            session_factory = get_session_factory(engine)

        self._session_factory = session_factory
        self.operation_timeout = operation_timeout
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self.breaker = breaker or CircuitBreaker()

    async def with_database(
        self,
        query_func: Callable[[AsyncSession], Awaitable[Any]],
        context: str,
    ) -> Any:
        """Run ``query_func`` with a fresh session under breaker, retry and deadline.

        Args:
            query_func: Async function that takes a session as its only parameter
            context: Operation name for logs

        Returns:
            Result of query_func
        """
        async def _attempt():
            async with asyncio.timeout(self.operation_timeout):
                async with self._session_factory() as session:
                    return await query_func(session)

        async def _with_retry():
            return await execute_with_retry(
                _attempt,
                max_retries=self.max_retries,
                base_delay=self.base_delay,
                max_delay=self.max_delay,
                jitter=self.jitter,
            )

        return await self.breaker.execute(_with_retry, context=context)

    async def get_cache(self, *, agent_id: AgentId, key: str) -> str | None:
        """Fetch the raw value for ``(agent_id, key)``, or None."""
        agent_id = str(agent_id)

        async def _get_cache(session: AsyncSession):
            stmt = select(CacheRecord.value).where(
                CacheRecord.key == key,
                CacheRecord.agent_id == agent_id,
            )
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

        try:
            return await self.with_database(_get_cache, "get_cache")
        except Exception as e:
            logger.error("Error fetching cache", key=key, agent_id=agent_id, error=str(e))
            return None

    async def set_cache(self, *, agent_id: AgentId, key: str, value: str) -> bool:
        """Insert or overwrite the value for ``(agent_id, key)``.

        Returns:
            True if the value was written
        """
        agent_id = str(agent_id)

        async def _set_cache(session: AsyncSession):
            dialect = session.get_bind().dialect.name
            async with session.begin():
                insert = UPSERT_DIALECTS.get(dialect)
                if insert is None:
                    # No native upsert; merge by primary key instead
                    await session.merge(CacheRecord(key=key, agent_id=agent_id, value=value, created_at=datetime.now()))
                    return True

                table = CacheRecord.__table__
                stmt = insert(table).values(key=key, agentId=agent_id, value=value, createdAt=func.now())
                stmt = stmt.on_conflict_do_update(
                    index_elements=[table.c["key"], table.c["agentId"]],
                    set_={"value": stmt.excluded["value"], "createdAt": func.now()},
                )
                await session.execute(stmt)
            return True

        try:
            return await self.with_database(_set_cache, "set_cache")
        except Exception as e:
            logger.error("Error setting cache", key=key, agent_id=agent_id, error=str(e))
            return False

    async def delete_cache(self, *, agent_id: AgentId, key: str) -> bool:
        """Remove ``(agent_id, key)``. Removing a missing row succeeds.

        Returns:
            True unless the database call failed
        """
        agent_id = str(agent_id)

        async def _delete_cache(session: AsyncSession):
            async with session.begin():
                await session.execute(
                    delete(CacheRecord).where(
                        CacheRecord.key == key,
                        CacheRecord.agent_id == agent_id,
                    )
                )
            return True

        try:
            return await self.with_database(_delete_cache, "delete_cache")
        except Exception as e:
            logger.error("Error removing cache", key=key, agent_id=agent_id, error=str(e))
            return False

    async def list_cache_keys(self, *, agent_id: AgentId) -> list[str]:
        """All keys stored for one agent, sorted."""
        agent_id = str(agent_id)

        async def _list_cache_keys(session: AsyncSession):
            stmt = select(CacheRecord.key).where(CacheRecord.agent_id == agent_id).order_by(CacheRecord.key)
            result = await session.execute(stmt)
            return list(result.scalars().all())

        return await self.with_database(_list_cache_keys, "list_cache_keys")

    async def count_rows(self, *, agent_id: AgentId, key: str | None = None) -> int:
        """Number of cache rows for an agent, optionally for a single key."""
        agent_id = str(agent_id)

        async def _count_rows(session: AsyncSession):
            stmt = select(func.count()).select_from(CacheRecord).where(CacheRecord.agent_id == agent_id)
            if key is not None:
                stmt = stmt.where(CacheRecord.key == key)
            result = await session.execute(stmt)
            return result.scalar_one()

        return await self.with_database(_count_rows, "count_rows")
