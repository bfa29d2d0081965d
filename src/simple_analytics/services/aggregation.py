"""Aggregate queries over stored visits.

Every query runs directly against the visits table; there is no snapshot
or cache layer, so results are only as fresh as the last committed insert.
"""

from datetime import datetime, timedelta, timezone

from sqlalchemy import extract, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from simple_analytics.models.visit import Visit


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _day_bounds(now: datetime) -> tuple[datetime, datetime]:
    """Return [start, end) of the UTC calendar day containing ``now``."""
    start = now.astimezone(timezone.utc).replace(
        hour=0, minute=0, second=0, microsecond=0
    )
    return start, start + timedelta(days=1)


async def get_daily_page_stats(db: AsyncSession, limit: int = 30) -> list[dict]:
    """Visits and distinct IPs per (calendar date, page), newest dates first."""
    day = func.date(Visit.timestamp).label("date")
    stmt = (
        select(
            day,
            func.count(Visit.id).label("visits"),
            func.count(Visit.ip.distinct()).label("unique_visitors"),
            Visit.page_url,
        )
        .group_by(day, Visit.page_url)
        .order_by(day.desc(), Visit.page_url)
        .limit(limit)
    )
    result = await db.execute(stmt)

    return [
        {
            "date": str(row.date),
            "visits": row.visits,
            "unique_visitors": row.unique_visitors,
            "page_url": row.page_url,
        }
        for row in result.all()
    ]


async def get_location_stats(db: AsyncSession, limit: int = 100) -> list[dict]:
    """Visit counts per (country, city), busiest locations first."""
    visits = func.count(Visit.id).label("visits")
    stmt = (
        select(Visit.country, Visit.city, visits)
        .group_by(Visit.country, Visit.city)
        .order_by(visits.desc(), Visit.country, Visit.city)
        .limit(limit)
    )
    result = await db.execute(stmt)

    return [
        {"country": row.country, "city": row.city, "visits": row.visits}
        for row in result.all()
    ]


async def get_overview(
    db: AsyncSession,
    window_days: int = 30,
    now: datetime | None = None,
) -> dict:
    """Totals across visits whose timestamp is within the last ``window_days``."""
    cutoff = (now or _utcnow()) - timedelta(days=window_days)
    stmt = select(
        func.count(Visit.id).label("total_visits"),
        func.count(Visit.ip.distinct()).label("unique_visitors"),
        func.count(Visit.page_url.distinct()).label("total_pages"),
        func.count(Visit.country.distinct()).label("total_countries"),
    ).where(Visit.timestamp >= cutoff)
    result = await db.execute(stmt)
    row = result.one()

    return {
        "total_visits": row.total_visits or 0,
        "unique_visitors": row.unique_visitors or 0,
        "total_pages": row.total_pages or 0,
        "total_countries": row.total_countries or 0,
    }


async def get_hourly_stats(db: AsyncSession, now: datetime | None = None) -> list[dict]:
    """Visits per hour of the current UTC day, in ascending hour order."""
    start, end = _day_bounds(now or _utcnow())
    hour = extract("hour", Visit.timestamp).label("hour")
    stmt = (
        select(hour, func.count(Visit.id).label("visits"))
        .where(Visit.timestamp >= start)
        .where(Visit.timestamp < end)
        .group_by(hour)
        .order_by(hour)
    )
    result = await db.execute(stmt)

    return [
        {"hour": f"{int(row.hour):02d}", "visits": row.visits}
        for row in result.all()
    ]
