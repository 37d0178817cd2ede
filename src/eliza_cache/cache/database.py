"""Database-backed cache store and the contract a database must satisfy."""

import uuid
from typing import Protocol, runtime_checkable

import structlog

logger = structlog.get_logger()

AgentId = uuid.UUID | str


@runtime_checkable
class IDatabaseCacheAdapter(Protocol):
    """Cache table access keyed by ``(agent_id, key)``.

    ``agent_id`` is passed on every call so one instance can serve many
    agents. Writes report their outcome as a bool instead of raising.
    """

    async def get_cache(self, *, agent_id: AgentId, key: str) -> str | None:
        ...

    async def set_cache(self, *, agent_id: AgentId, key: str, value: str) -> bool:
        ...

    async def delete_cache(self, *, agent_id: AgentId, key: str) -> bool:
        ...


@runtime_checkable
class SupportsCacheKeyListing(Protocol):
    """Database bindings that can enumerate one agent's cache keys."""

    async def list_cache_keys(self, *, agent_id: AgentId) -> list[str]:
        ...


class DbCacheAdapter:
    """Key/value store over an ``IDatabaseCacheAdapter`` bound to one agent.

    Any exception the database raises is logged and turned into a miss or a
    False result, whatever the database implementation.
    """

    def __init__(self, db: IDatabaseCacheAdapter, agent_id: AgentId):
        self.db = db
        self.agent_id = str(agent_id)

    async def get(self, key: str) -> str | None:
        try:
            return await self.db.get_cache(agent_id=self.agent_id, key=key)
        except Exception as e:
            logger.error("Cache lookup failed", key=key, agent_id=self.agent_id, error=str(e))
            return None

    async def set(self, key: str, value: str) -> bool:
        try:
            return bool(await self.db.set_cache(agent_id=self.agent_id, key=key, value=value))
        except Exception as e:
            logger.error("Cache write failed", key=key, agent_id=self.agent_id, error=str(e))
            return False

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self.db.delete_cache(agent_id=self.agent_id, key=key))
        except Exception as e:
            logger.error("Cache delete failed", key=key, agent_id=self.agent_id, error=str(e))
            return False

    async def keys(self) -> list[str]:
        if not isinstance(self.db, SupportsCacheKeyListing):
            logger.debug("Database cannot list cache keys", db=type(self.db).__name__)
            return []
        try:
            return await self.db.list_cache_keys(agent_id=self.agent_id)
        except Exception as e:
            logger.error("Cache key listing failed", agent_id=self.agent_id, error=str(e))
            return []

    def __repr__(self) -> str:
        return f"DbCacheAdapter(db={type(self.db).__name__}, agent_id={self.agent_id!r})"
