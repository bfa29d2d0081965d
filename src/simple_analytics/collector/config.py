"""Collector configuration via environment variables."""

from pydantic_settings import BaseSettings


class CollectorSettings(BaseSettings):
    """Settings for an embedded collector, read from ANALYTICS_COLLECTOR_* variables."""

    api_endpoint: str = "http://localhost:3000/api/analytics/sync"
    retry_times: int = 3
    retry_delay: float = 1.0
    request_timeout: float = 2.0
    drain_timeout: float = 5.0

    geo_timeout: float = 2.0
    ip_lookup_url: str = "https://api.ipify.org?format=json"
    geo_lookup_url: str = "https://ipapi.co/json/"

    retention_days: int = 30
    storage_key: str = "pageVisits"

    model_config = {"env_prefix": "ANALYTICS_COLLECTOR_"}
