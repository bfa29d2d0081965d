"""Database wiring: one async engine per process and sessions bound to it."""

from collections.abc import AsyncIterator
from functools import lru_cache

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from simple_analytics.config import get_settings

SQLITE_BUSY_TIMEOUT = 30


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _is_sqlite_file(url: str) -> bool:
    return _is_sqlite(url) and ":memory:" not in url


def _enable_wal(dbapi_connection, connection_record) -> None:
    # Aggregate reads no longer wait behind ingestion writes.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


@lru_cache
def get_engine() -> AsyncEngine:
    """Build the process-wide engine from settings on first use."""
    settings = get_settings()
    url = settings.database_url

    connect_args = {}
    if _is_sqlite(url):
        # writers queue on the database lock for up to SQLITE_BUSY_TIMEOUT s
        connect_args = {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT}

    engine = create_async_engine(
        url,
        echo=settings.environment == "development",
        connect_args=connect_args,
    )
    if _is_sqlite_file(url):
        event.listen(engine.sync_engine, "connect", _enable_wal)
    return engine


@lru_cache
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(get_engine(), expire_on_commit=False)


async def init_db() -> None:
    """Create the visits table if it does not exist yet."""
    from simple_analytics.models import Base

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_session() -> AsyncIterator[AsyncSession]:
    """Request-scoped session: committed on success, rolled back on error."""
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def engine_started() -> bool:
    return get_engine.cache_info().currsize > 0


async def dispose_engine() -> None:
    """Close pooled connections and forget the engine (app shutdown)."""
    if engine_started():
        await get_engine().dispose()
    get_session_factory.cache_clear()
    get_engine.cache_clear()
