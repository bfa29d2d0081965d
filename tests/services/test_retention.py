"""Tests for simple_analytics.services.retention."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from simple_analytics.models.visit import Visit
from simple_analytics.services import retention
from simple_analytics.services.retention import (
    purge_expired_visits,
    run_retention_loop,
    run_retention_once,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _visit(timestamp: datetime, page_url: str) -> Visit:
    return Visit(timestamp=timestamp, page_url=page_url, ip="1.2.3.4")


async def _remaining_pages(db_session) -> set[str]:
    result = await db_session.execute(select(Visit.page_url))
    return set(result.scalars().all())


class TestPurgeExpiredVisits:
    @pytest.mark.asyncio
    async def test_deletes_only_rows_before_cutoff(self, db_session):
        db_session.add_all(
            [
                _visit(NOW - timedelta(days=30, seconds=1), "/expired"),
                _visit(NOW - timedelta(days=45), "/ancient"),
                _visit(NOW - timedelta(days=29), "/kept"),
                _visit(NOW, "/today"),
            ]
        )
        await db_session.commit()

        deleted = await purge_expired_visits(db_session, retention_days=30, now=NOW)
        await db_session.commit()

        assert deleted == 2
        assert await _remaining_pages(db_session) == {"/kept", "/today"}

    @pytest.mark.asyncio
    async def test_nothing_to_delete(self, db_session):
        db_session.add(_visit(NOW, "/today"))
        await db_session.commit()

        assert await purge_expired_visits(db_session, now=NOW) == 0


class TestRunRetentionOnce:
    @pytest.mark.asyncio
    async def test_commits_and_logs_count(self, session_factory, db_session, caplog):
        db_session.add(_visit(NOW - timedelta(days=31), "/old"))
        await db_session.commit()

        with caplog.at_level(logging.INFO, logger="simple_analytics.services.retention"):
            deleted = await run_retention_once(session_factory, 30, now=NOW)

        assert deleted == 1
        assert "Cleaned 1 old records" in caplog.text
        assert await _remaining_pages(db_session) == set()

    @pytest.mark.asyncio
    async def test_zero_deletions_are_not_logged(self, session_factory, caplog):
        with caplog.at_level(logging.INFO, logger="simple_analytics.services.retention"):
            assert await run_retention_once(session_factory, 30, now=NOW) == 0
        assert "Cleaned" not in caplog.text

    @pytest.mark.asyncio
    async def test_failure_is_logged_not_raised(self, caplog):
        def broken_factory():
            raise RuntimeError("database unavailable")

        with caplog.at_level(logging.ERROR, logger="simple_analytics.services.retention"):
            assert await run_retention_once(broken_factory, 30, now=NOW) == 0
        assert "Retention purge failed" in caplog.text


class TestRunRetentionLoop:
    @pytest.mark.asyncio
    async def test_runs_every_interval_until_cancelled(self, monkeypatch, session_factory):
        calls = []

        async def fake_run_once(factory, days, now=None):
            calls.append(days)
            return 0

        monkeypatch.setattr(retention, "run_retention_once", fake_run_once)

        task = asyncio.create_task(
            run_retention_loop(lambda: session_factory, interval_seconds=0.01, retention_days=30)
        )
        while len(calls) < 3:
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert calls[:3] == [30, 30, 30]

    @pytest.mark.asyncio
    async def test_first_run_waits_one_interval(self, monkeypatch, session_factory):
        calls = []

        async def fake_run_once(factory, days, now=None):
            calls.append(days)
            return 0

        monkeypatch.setattr(retention, "run_retention_once", fake_run_once)

        task = asyncio.create_task(
            run_retention_loop(lambda: session_factory, interval_seconds=3600)
        )
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert calls == []
