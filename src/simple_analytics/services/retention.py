"""Retention job - deletes visits older than the retention window."""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from simple_analytics.config import get_settings
from simple_analytics.models.visit import Visit

logger = logging.getLogger(__name__)


async def purge_expired_visits(
    db: AsyncSession,
    retention_days: int = 30,
    now: datetime | None = None,
) -> int:
    """Delete visits with a timestamp before ``now - retention_days``.

    Returns the number of deleted rows. The caller owns the transaction.
    """
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=retention_days)
    result = await db.execute(delete(Visit).where(Visit.timestamp < cutoff))
    return result.rowcount or 0


async def run_retention_once(
    session_factory: async_sessionmaker[AsyncSession],
    retention_days: int = 30,
    now: datetime | None = None,
) -> int:
    """Run one purge in its own transaction.

    Failures are logged and reported as zero deleted rows; the next
    scheduled run tries again.
    """
    try:
        async with session_factory() as db:
            async with db.begin():
                deleted = await purge_expired_visits(db, retention_days, now)
    except Exception:
        logger.exception("Retention purge failed; retrying on next run")
        return 0

    if deleted > 0:
        logger.info("Cleaned %d old records", deleted)
    return deleted


async def run_retention_loop(
    session_factory: Callable[[], async_sessionmaker[AsyncSession]],
    interval_seconds: float | None = None,
    retention_days: int | None = None,
) -> None:
    """Purge expired visits every ``interval_seconds`` until cancelled."""
    settings = get_settings()
    interval = interval_seconds or settings.retention_interval_seconds
    days = retention_days or settings.retention_days

    logger.info("Retention job scheduled every %ss (window %d days)", interval, days)
    while True:
        await asyncio.sleep(interval)
        await run_retention_once(session_factory(), days)
