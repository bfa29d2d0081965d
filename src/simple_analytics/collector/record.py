"""Visit record built by the collector for every page view."""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

UNKNOWN = "unknown"


class GeoInfo(BaseModel):
    """Coarse location of the visitor, or sentinels when it could not be resolved."""

    model_config = ConfigDict(frozen=True)

    ip: str = UNKNOWN
    country: str = UNKNOWN
    region: str = UNKNOWN
    city: str = UNKNOWN


UNKNOWN_GEO = GeoInfo()


def isoformat_utc(moment: datetime) -> str:
    """Render an instant as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    return (
        moment.astimezone(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


class VisitRecord(BaseModel):
    """One page view.

    Every field except ``synced`` is frozen once the record exists, and
    ``synced`` only ever goes from False to True through ``mark_synced``.
    """

    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    timestamp: str = Field(frozen=True)
    page_url: str = Field(alias="pageUrl", frozen=True)
    ip: str = Field(default=UNKNOWN, frozen=True)
    country: str = Field(default=UNKNOWN, frozen=True)
    region: str = Field(default=UNKNOWN, frozen=True)
    city: str = Field(default=UNKNOWN, frozen=True)
    user_agent: str = Field(default=UNKNOWN, alias="userAgent", frozen=True)
    referrer: str | None = Field(default=None, frozen=True)
    synced: bool = False

    @classmethod
    def create(
        cls,
        page_url: str,
        geo: GeoInfo,
        user_agent: str,
        referrer: str | None = None,
        now: datetime | None = None,
    ) -> "VisitRecord":
        return cls(
            timestamp=isoformat_utc(now or datetime.now(timezone.utc)),
            page_url=page_url,
            ip=geo.ip,
            country=geo.country,
            region=geo.region,
            city=geo.city,
            user_agent=user_agent,
            referrer=referrer,
        )

    @property
    def date_key(self) -> str:
        return self.timestamp.split("T")[0]

    def __setattr__(self, name: str, value) -> None:
        if name == "synced" and self.synced and not value:
            raise ValueError("A synced visit cannot be marked unsynced")
        super().__setattr__(name, value)

    def mark_synced(self) -> None:
        self.synced = True

    def to_payload(self) -> dict:
        """Wire form sent to the sync endpoint (camelCase, no ``synced``)."""
        return self.model_dump(by_alias=True, exclude={"synced"})

    def to_storage(self) -> dict:
        return self.model_dump(by_alias=True)
