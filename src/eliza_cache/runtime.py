"""Build a configured cache and tear it down cleanly."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine

from .cache import (
    CacheManager,
    DbCacheAdapter,
    ExpirySweeper,
    FsCacheAdapter,
    KeyValueStore,
    MemoryCacheAdapter,
)
from .cache.database import AgentId
from .config import CacheConfig, get_config
from .database import build_engine, prepare_database
from .models import BackendType
from .services import CacheService
from .utils.circuit_breaker import CircuitBreaker

logger = structlog.get_logger()


def build_cache_service(engine: AsyncEngine, settings: CacheConfig) -> CacheService:
    """CacheService tuned from the ``database`` config section."""
    return CacheService(
        engine,
        operation_timeout=settings.get("database.operation_timeout"),
        max_retries=settings.get("database.max_retries", 3),
        base_delay=settings.get("database.base_delay", 0.1),
        max_delay=settings.get("database.max_delay", 5.0),
        breaker=CircuitBreaker(
            failure_threshold=settings.get("database.failure_threshold", 5),
            reset_timeout=settings.get("database.reset_timeout", 60.0),
            half_open_max_attempts=settings.get("database.half_open_max_attempts", 3),
        ),
    )


@asynccontextmanager
async def open_cache(
    backend: BackendType | str | None = None,
    *,
    agent_id: AgentId | None = None,
    data_dir: str | Path | None = None,
    database_url: str | None = None,
    sweep_interval: float | None = None,
    settings: CacheConfig | None = None,
) -> AsyncIterator[CacheManager]:
    """Open a ``CacheManager`` for the configured backend.

    Arguments override the matching configuration values. On exit the sweeper
    is stopped, pending expiry cleanups are awaited and any engine created
    here is disposed.

    Args:
        backend: memory, fs or database
        agent_id: Owning agent (database backend)
        data_dir: Root directory (fs backend)
        database_url: SQLAlchemy URL (database backend)
        sweep_interval: Seconds between expiry sweeps; 0 disables sweeping
        settings: Configuration to read defaults from

    Yields:
        CacheManager: Ready-to-use cache
    """
    settings = settings or get_config()
    backend = BackendType.normalize(backend or settings.get("cache.backend", "memory"))
    if sweep_interval is None:
        sweep_interval = settings.get("cache.sweep_interval_seconds", 0) or 0

    engine: AsyncEngine | None = None
    store: KeyValueStore
    if backend == BackendType.MEMORY:
        store = MemoryCacheAdapter()
    elif backend == BackendType.FILESYSTEM:
        store = FsCacheAdapter(data_dir or settings.fs_root(), timeout=settings.get("cache.fs_timeout"))
    else:
        engine = build_engine(database_url or settings.database_url())
        await prepare_database(engine)
        store = DbCacheAdapter(
            build_cache_service(engine, settings),
            agent_id or settings.get("database.agent_id"),
        )

    manager = CacheManager(store)
    sweeper = ExpirySweeper(store, sweep_interval) if sweep_interval > 0 else None
    if sweeper is not None:
        await sweeper.start()

    logger.debug("Cache opened", backend=str(backend), store=repr(store))
    try:
        yield manager
    finally:
        if sweeper is not None:
            await sweeper.stop()
        await manager.wait_for_cleanup()
        if engine is not None:
            await engine.dispose()
        logger.debug("Cache closed", backend=str(backend))
