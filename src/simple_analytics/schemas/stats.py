"""Schemas for the aggregate query endpoints."""

from pydantic import BaseModel, ConfigDict, Field


class DailyPageStats(BaseModel):
    """Visits for one (date, page) group."""

    model_config = ConfigDict(populate_by_name=True)

    date: str
    visits: int
    unique_visitors: int
    page_url: str = Field(alias="pageUrl")


class LocationStats(BaseModel):
    """Visits for one (country, city) group."""

    country: str
    city: str
    visits: int


class OverviewStats(BaseModel):
    """Totals over the retention window."""

    total_visits: int = 0
    unique_visitors: int = 0
    total_pages: int = 0
    total_countries: int = 0


class HourlyStats(BaseModel):
    """Visits in one hour of the current day; ``hour`` is zero padded."""

    hour: str
    visits: int
