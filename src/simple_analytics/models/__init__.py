"""SQLAlchemy ORM models."""

from simple_analytics.models.base import Base
from simple_analytics.models.visit import Visit

__all__ = [
    "Base",
    "Visit",
]
