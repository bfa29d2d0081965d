"""Schemas for the /api/analytics/sync endpoint."""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator

UNKNOWN = "unknown"


class VisitPayload(BaseModel):
    """Visit record as sent by a collector.

    String fields are stored as received: no length limits and no
    sanitization. Only the shape and a parseable timestamp are enforced.
    Unknown keys (for example the collector-local ``synced`` flag) are ignored.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    timestamp: datetime
    page_url: str = Field(alias="pageUrl")
    ip: str = UNKNOWN
    country: str = UNKNOWN
    region: str = UNKNOWN
    city: str = UNKNOWN
    user_agent: str | None = Field(default=None, alias="userAgent")
    referrer: str | None = None

    @field_validator("timestamp")
    @classmethod
    def _normalize_to_utc(cls, value: datetime) -> datetime:
        # Naive timestamps are taken to be UTC already.
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @field_validator("ip", "country", "region", "city", mode="before")
    @classmethod
    def _null_to_sentinel(cls, value):
        return UNKNOWN if value is None else value


class SyncResponse(BaseModel):
    """Acknowledgment returned after a visit is stored."""

    success: bool = True


class ErrorResponse(BaseModel):
    """Body of every 500 response from the analytics routes."""

    error: str
