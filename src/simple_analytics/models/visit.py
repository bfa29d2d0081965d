"""Visit model - one row per page view received from a collector."""

from datetime import datetime, timezone

from sqlalchemy import DateTime, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from simple_analytics.models.base import Base


class Visit(Base):
    __tablename__ = "visits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    page_url: Mapped[str] = mapped_column(Text, nullable=False)
    ip: Mapped[str] = mapped_column(Text, nullable=False, default="unknown")
    country: Mapped[str] = mapped_column(Text, nullable=False, default="unknown")
    region: Mapped[str] = mapped_column(Text, nullable=False, default="unknown")
    city: Mapped[str] = mapped_column(Text, nullable=False, default="unknown")
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    referrer: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_visits_timestamp", "timestamp"),
        Index("ix_visits_page_url", "page_url"),
    )
