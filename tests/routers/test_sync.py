"""Tests for the /api/analytics/sync endpoint."""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from simple_analytics.dependencies import get_db
from simple_analytics.main import create_app
from simple_analytics.models.visit import Visit


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _payload(**overrides) -> dict:
    """Build a visit payload the way the collector sends it."""
    return {
        "timestamp": (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat(),
        "pageUrl": "/home",
        "ip": "1.2.3.4",
        "country": "US",
        "region": "NY",
        "city": "NYC",
        "userAgent": "Mozilla/5.0 (pytest)",
        **overrides,
    }


class _BrokenSession:
    """Session stand-in whose every database call fails."""

    def add(self, obj):
        pass

    async def commit(self):
        raise OperationalError("INSERT INTO visits", {}, Exception("disk I/O error"))

    async def rollback(self):
        pass

    async def execute(self, *args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is locked"))


@pytest.fixture
def broken_client():
    async def override_get_db():
        yield _BrokenSession()

    app = create_app()
    app.dependency_overrides[get_db] = override_get_db
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


# ---------------------------------------------------------------------------
# Basic flow
# ---------------------------------------------------------------------------


class TestSyncFlow:
    @pytest.mark.asyncio
    async def test_valid_payload_returns_success(self, client: AsyncClient):
        resp = await client.post("/api/analytics/sync", json=_payload())
        assert resp.status_code == 200
        assert resp.json() == {"success": True}

    @pytest.mark.asyncio
    async def test_row_is_stored_with_server_fields(self, client: AsyncClient, db_session):
        await client.post("/api/analytics/sync", json=_payload(pageUrl="/stored"))

        result = await db_session.execute(select(Visit).where(Visit.page_url == "/stored"))
        visit = result.scalar_one()
        assert visit.id is not None
        assert visit.created_at is not None
        assert visit.ip == "1.2.3.4"
        assert visit.user_agent == "Mozilla/5.0 (pytest)"

    @pytest.mark.asyncio
    async def test_each_post_creates_a_new_row(self, client: AsyncClient, db_session):
        body = _payload(pageUrl="/twice")
        await client.post("/api/analytics/sync", json=body)
        await client.post("/api/analytics/sync", json=body)

        result = await db_session.execute(select(Visit).where(Visit.page_url == "/twice"))
        visits = result.scalars().all()
        assert len(visits) == 2
        assert visits[0].id != visits[1].id

    @pytest.mark.asyncio
    async def test_synced_flag_from_collector_is_ignored(self, client: AsyncClient):
        resp = await client.post("/api/analytics/sync", json=_payload(synced=False))
        assert resp.status_code == 200

    @pytest.mark.asyncio
    async def test_referrer_is_optional_and_stored(self, client: AsyncClient, db_session):
        await client.post(
            "/api/analytics/sync",
            json=_payload(pageUrl="/ref", referrer="https://news.example.com/"),
        )
        result = await db_session.execute(select(Visit).where(Visit.page_url == "/ref"))
        assert result.scalar_one().referrer == "https://news.example.com/"


# ---------------------------------------------------------------------------
# Permissive input
# ---------------------------------------------------------------------------


class TestPermissiveInput:
    @pytest.mark.asyncio
    async def test_missing_location_fields_default_to_unknown(
        self, client: AsyncClient, db_session
    ):
        body = {"timestamp": "2024-01-15T10:30:00Z", "pageUrl": "/bare"}
        resp = await client.post("/api/analytics/sync", json=body)
        assert resp.status_code == 200

        result = await db_session.execute(select(Visit).where(Visit.page_url == "/bare"))
        visit = result.scalar_one()
        assert (visit.ip, visit.country, visit.region, visit.city) == (
            "unknown",
            "unknown",
            "unknown",
            "unknown",
        )

    @pytest.mark.asyncio
    async def test_null_location_fields_become_unknown(self, client: AsyncClient, db_session):
        resp = await client.post(
            "/api/analytics/sync", json=_payload(pageUrl="/nulls", country=None, city=None)
        )
        assert resp.status_code == 200

        result = await db_session.execute(select(Visit).where(Visit.page_url == "/nulls"))
        visit = result.scalar_one()
        assert visit.country == "unknown"
        assert visit.city == "unknown"

    @pytest.mark.asyncio
    async def test_long_strings_are_stored_verbatim(self, client: AsyncClient, db_session):
        long_ua = "X" * 10_000
        resp = await client.post(
            "/api/analytics/sync", json=_payload(pageUrl="/long", userAgent=long_ua)
        )
        assert resp.status_code == 200

        result = await db_session.execute(select(Visit).where(Visit.page_url == "/long"))
        assert result.scalar_one().user_agent == long_ua

    @pytest.mark.asyncio
    async def test_offset_timestamp_is_normalized_to_utc(self, client: AsyncClient, db_session):
        await client.post(
            "/api/analytics/sync",
            json=_payload(pageUrl="/tz", timestamp="2024-01-15T12:30:00+02:00"),
        )
        result = await db_session.execute(select(Visit).where(Visit.page_url == "/tz"))
        stored = result.scalar_one().timestamp
        assert (stored.hour, stored.minute) == (10, 30)


# ---------------------------------------------------------------------------
# Rejected and failing requests
# ---------------------------------------------------------------------------


class TestSyncErrors:
    @pytest.mark.asyncio
    async def test_missing_timestamp_returns_422(self, client: AsyncClient):
        body = _payload()
        del body["timestamp"]
        resp = await client.post("/api/analytics/sync", json=body)
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_unparseable_timestamp_returns_422(self, client: AsyncClient):
        resp = await client.post("/api/analytics/sync", json=_payload(timestamp="yesterday"))
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_missing_page_url_returns_422(self, client: AsyncClient):
        body = _payload()
        del body["pageUrl"]
        resp = await client.post("/api/analytics/sync", json=body)
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_persistence_failure_returns_500(self, broken_client: AsyncClient):
        async with broken_client as ac:
            resp = await ac.post("/api/analytics/sync", json=_payload())
        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error"}
