"""Analytics endpoints - visit ingestion and aggregate queries."""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from simple_analytics.config import Settings
from simple_analytics.dependencies import get_app_settings, get_db
from simple_analytics.models.visit import Visit
from simple_analytics.schemas.stats import (
    DailyPageStats,
    HourlyStats,
    LocationStats,
    OverviewStats,
)
from simple_analytics.schemas.visit import ErrorResponse, SyncResponse, VisitPayload
from simple_analytics.services.aggregation import (
    get_daily_page_stats,
    get_hourly_stats,
    get_location_stats,
    get_overview,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/analytics", tags=["analytics"])

_ERROR_RESPONSES = {500: {"model": ErrorResponse}}


def _server_error() -> JSONResponse:
    return JSONResponse(
        content={"error": "Internal server error"},
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


@router.post("/sync", response_model=SyncResponse, responses=_ERROR_RESPONSES)
async def sync_visit(
    payload: VisitPayload,
    db: AsyncSession = Depends(get_db),
):
    """Store one visit record sent by a collector.

    Client-supplied fields are trusted as-is. The row is committed before
    the acknowledgment is returned.
    """
    visit = Visit(
        timestamp=payload.timestamp,
        page_url=payload.page_url,
        ip=payload.ip,
        country=payload.country,
        region=payload.region,
        city=payload.city,
        user_agent=payload.user_agent,
        referrer=payload.referrer,
    )
    try:
        db.add(visit)
        await db.commit()
    except SQLAlchemyError:
        logger.exception("Error saving visit for %s", payload.page_url)
        await db.rollback()
        return _server_error()

    return SyncResponse(success=True)


@router.get("/stats", response_model=list[DailyPageStats], responses=_ERROR_RESPONSES)
async def daily_stats(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    """Visits and unique visitors per (date, page), most recent dates first."""
    try:
        rows = await get_daily_page_stats(db, limit=settings.stats_limit)
    except SQLAlchemyError:
        logger.exception("Error getting stats")
        return _server_error()
    return [DailyPageStats(**row) for row in rows]


@router.get(
    "/location-stats",
    response_model=list[LocationStats],
    responses=_ERROR_RESPONSES,
)
async def location_stats(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    """Visits per (country, city), busiest first."""
    try:
        rows = await get_location_stats(db, limit=settings.location_stats_limit)
    except SQLAlchemyError:
        logger.exception("Error getting location stats")
        return _server_error()
    return [LocationStats(**row) for row in rows]


@router.get("/overview", response_model=OverviewStats, responses=_ERROR_RESPONSES)
async def overview(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    """Totals across the retention window."""
    try:
        data = await get_overview(db, window_days=settings.retention_days)
    except SQLAlchemyError:
        logger.exception("Error getting overview stats")
        return _server_error()
    return OverviewStats(**data)


@router.get("/hourly", response_model=list[HourlyStats], responses=_ERROR_RESPONSES)
async def hourly(db: AsyncSession = Depends(get_db)):
    """Visits per hour of the current UTC day."""
    try:
        rows = await get_hourly_stats(db)
    except SQLAlchemyError:
        logger.exception("Error getting hourly stats")
        return _server_error()
    return [HourlyStats(**row) for row in rows]
