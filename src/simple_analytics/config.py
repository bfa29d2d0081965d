"""Application configuration via environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    database_url: str = "sqlite+aiosqlite:///./analytics.db"
    api_host: str = "0.0.0.0"
    api_port: int = 3000
    cors_origins: str = "*"
    environment: str = "development"

    # Retention job
    retention_days: int = 30
    retention_interval_seconds: int = 24 * 60 * 60

    # Aggregate query caps
    stats_limit: int = 30
    location_stats_limit: int = 100

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    """Return cached settings singleton."""
    return Settings()
