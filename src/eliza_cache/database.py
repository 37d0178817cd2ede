"""Database engine setup, migrations and retry helpers for the cache table."""

import asyncio
import random
import sqlite3
from pathlib import Path
from typing import Any, Callable

import structlog
from alembic import command
from alembic.config import Config
from sqlalchemy import inspect, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .models import Base, CacheRecord

logger = structlog.get_logger()

# Substrings of driver errors worth retrying
RETRYABLE_TERMS = ("database is locked", "busy", "timeout", "connection")


def sqlite_url(db_path: Path) -> str:
    return f"sqlite+aiosqlite:///{db_path}"


def sqlite_path(url: str) -> Path | None:
    """Return the on-disk path of a SQLite URL, or None for other databases."""
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return None
    if not parsed.database or parsed.database == ":memory:":
        return None
    return Path(parsed.database)


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for the cache database.

    Args:
        url: SQLAlchemy URL (``sqlite+aiosqlite:///...`` or ``postgresql+asyncpg://...``)
        echo: Log SQL statements

    Returns:
        AsyncEngine: Unconnected engine
    """
    db_path = sqlite_path(url)
    if db_path is not None:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return create_async_engine(
            url,
            echo=echo,
            pool_pre_ping=True,
            connect_args={
                "check_same_thread": False,  # Allow cross-thread usage
                "timeout": 30,               # Wait on locked database
            },
        )

    return create_async_engine(url, echo=echo, pool_pre_ping=True)


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to ``engine``."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def _enable_wal_mode(engine: AsyncEngine) -> None:
    """Enable SQLite WAL mode for better concurrent access."""
    if engine.dialect.name != "sqlite":
        return

    try:
        async with engine.begin() as conn:
            await conn.execute(text("PRAGMA journal_mode = WAL;"))
            await conn.execute(text("PRAGMA busy_timeout = 30000;"))
            await conn.execute(text("PRAGMA synchronous = NORMAL;"))

        logger.debug("SQLite WAL mode enabled")
    except SQLAlchemyError as e:
        logger.warning("Failed to enable WAL mode, proceeding with defaults", error=str(e))


async def create_tables(engine: AsyncEngine) -> None:
    """Create the cache table directly from model metadata."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Cache tables created", dialect=engine.dialect.name)


async def prepare_database(engine: AsyncEngine) -> None:
    """Make ``engine`` ready for cache traffic (pragmas + schema)."""
    await _enable_wal_mode(engine)
    await create_tables(engine)


def find_alembic_config() -> Path | None:
    """Locate alembic.ini at the project root (source checkouts only)."""
    package_root = Path(__file__).parent.parent.parent
    alembic_cfg_path = package_root / "alembic.ini"
    return alembic_cfg_path if alembic_cfg_path.exists() else None


async def _has_untracked_schema(url: str) -> bool:
    """Whether the cache table exists without Alembic version tracking.

    True for databases created by ``create_tables`` (e.g. through ``open_cache``).
    """
    engine = build_engine(url)
    try:
        async with engine.connect() as conn:
            tables = await conn.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))
    finally:
        await engine.dispose()
    return CacheRecord.__tablename__ in tables and "alembic_version" not in tables


def _upgrade_to_head(alembic_cfg: Config, stamp_existing: bool) -> None:
    if stamp_existing:
        # Existing schema matches the baseline revision; record it instead of recreating it
        logger.info("Stamping existing database at current migration version")
        command.stamp(alembic_cfg, "head")
    command.upgrade(alembic_cfg, "head")


async def run_migrations(url: str) -> None:
    """Bring the cache schema up to date.

    Runs Alembic migrations when ``alembic.ini`` is available and falls back
    to ``metadata.create_all`` otherwise. A cache table created without
    Alembic is stamped at head before upgrading.

    Args:
        url: SQLAlchemy URL of the database to migrate
    """
    db_path = sqlite_path(url)
    if db_path is not None:
        db_path.parent.mkdir(parents=True, exist_ok=True)

    alembic_cfg_path = find_alembic_config()
    if alembic_cfg_path is None:
        logger.warning("Alembic configuration not found, using fallback method")
        engine = build_engine(url)
        try:
            await prepare_database(engine)
        finally:
            await engine.dispose()
        return

    alembic_cfg = Config(str(alembic_cfg_path))
    alembic_cfg.set_main_option("sqlalchemy.url", url.replace("%", "%%"))

    stamp_existing = await _has_untracked_schema(url)

    # Alembic's env.py runs its own event loop, so keep it off this one
    loop = asyncio.get_running_loop()
    logger.info("Applying database migrations", url=make_url(url).render_as_string(hide_password=True))
    await loop.run_in_executor(None, _upgrade_to_head, alembic_cfg, stamp_existing)
    logger.info("Database migrations completed")


def is_database_ready(db_path: Path) -> bool:
    """Quick check that a SQLite database file exists and has the cache table.

    Args:
        db_path: Path to SQLite database file

    Returns:
        bool: True if the cache table is present
    """
    try:
        if not db_path.exists() or db_path.stat().st_size == 0:
            logger.debug("Database file missing or empty", db_path=str(db_path))
            return False

        with sqlite3.connect(str(db_path), timeout=5) as conn:
            cursor = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name='cache'"
            )
            return cursor.fetchone() is not None

    except sqlite3.Error as e:
        logger.debug("Database readiness check failed", error=str(e), db_path=str(db_path))
        return False


def is_retryable_error(error: BaseException) -> bool:
    """Whether a failed database call is worth another attempt."""
    if isinstance(error, (OperationalError, TimeoutError)):
        return True
    if isinstance(error, DBAPIError) and error.connection_invalidated:
        return True
    error_str = str(error).lower()
    return any(term in error_str for term in RETRYABLE_TERMS)


async def execute_with_retry(
    operation: Callable,
    max_retries: int = 3,
    base_delay: float = 0.1,
    max_delay: float = 5.0,
    jitter: float = 0.0,
) -> Any:
    """Execute database operation with exponential backoff retry for busy database.

    Args:
        operation: Async function to execute
        max_retries: Maximum number of retry attempts
        base_delay: Initial retry delay in seconds
        max_delay: Maximum retry delay in seconds
        jitter: Upper bound of random delay added to each backoff

    Returns:
        Result of the operation

    Raises:
        Exception: Re-raises the last exception if all retries fail
    """
    for attempt in range(max_retries + 1):
        try:
            return await operation()
        except Exception as e:
            if attempt >= max_retries or not is_retryable_error(e):
                logger.error("Database operation failed", attempts=attempt + 1, error=str(e))
                raise

            delay = min(base_delay * (2 ** attempt), max_delay) + random.uniform(0, jitter)
            logger.warning(
                "Database operation failed, retrying",
                attempt=attempt + 1,
                max_retries=max_retries,
                delay=round(delay, 3),
                error=str(e),
            )
            await asyncio.sleep(delay)

    # range() always runs at least once and every path returns or raises
    raise RuntimeError("Database operation failed after all retries")
