"""Embedded visit collector.

Records page views without ever blocking or failing the host: every public
method swallows and logs its own errors, and all network work runs in
detached asyncio tasks.
"""

import asyncio
import json
import logging
from collections import Counter
from collections.abc import Awaitable, Callable
from datetime import date, datetime, timezone

import httpx

from simple_analytics.collector.cache import VisitCache
from simple_analytics.collector.config import CollectorSettings
from simple_analytics.collector.geo import Geolocator
from simple_analytics.collector.navigation import NavigationEvents
from simple_analytics.collector.record import UNKNOWN, UNKNOWN_GEO, GeoInfo, VisitRecord
from simple_analytics.collector.storage import MemoryStorage, Storage

logger = logging.getLogger(__name__)

# Fire-and-forget sender: (endpoint, body) -> True if the body was queued.
Beacon = Callable[[str, bytes], bool]
Scheduler = Callable[[Callable[[], None]], object]

_DRAIN_POLL_INTERVAL = 0.01


class Collector:
    """Records visits into a local cache and syncs them to the aggregator.

    One instance lives for the host session. Use ``record_visit`` for page
    views, ``attach`` for client-side navigation, and ``drain``/``aclose``
    (or ``async with``) on shutdown.
    """

    def __init__(
        self,
        settings: CollectorSettings | None = None,
        *,
        storage: Storage | None = None,
        client: httpx.AsyncClient | None = None,
        beacon: Beacon | None = None,
        geolocator: Geolocator | None = None,
        scheduler: Scheduler | None = None,
        user_agent: str = UNKNOWN,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.settings = settings or CollectorSettings()
        self.user_agent = user_agent
        self._beacon = beacon
        self._scheduler = scheduler
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._tasks: set[asyncio.Task] = set()
        self._pending: set[object] = set()

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.settings.request_timeout)
        self._geolocator = geolocator or Geolocator(
            self._client,
            ip_lookup_url=self.settings.ip_lookup_url,
            geo_lookup_url=self.settings.geo_lookup_url,
            timeout=self.settings.geo_timeout,
        )

        self._cache = VisitCache(storage or MemoryStorage(), self.settings.storage_key)
        try:
            self._cache.load()
            self.prune_old_buckets()
        except Exception:
            logger.warning("Analytics initialization failed", exc_info=True)

    async def __aenter__(self) -> "Collector":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.drain()
        await self.aclose()

    @property
    def cache(self) -> VisitCache:
        return self._cache

    # ── Recording ────────────────────────────────────────────────────

    def record_visit(self, page_url: str, referrer: str | None = None) -> None:
        """Schedule recording of one page view and return immediately.

        The work starts on a later loop iteration (or whenever the host's
        scheduler runs it), never inside this call.
        """
        try:
            loop = asyncio.get_running_loop()
            schedule = self._scheduler or loop.call_soon
            ticket = object()
            self._pending.add(ticket)
            try:
                schedule(lambda: self._start_recording(ticket, page_url, referrer))
            except Exception:
                self._pending.discard(ticket)
                raise
        except Exception:
            logger.warning("Analytics record failed for %s", page_url, exc_info=True)

    def _start_recording(
        self, ticket: object, page_url: str, referrer: str | None
    ) -> None:
        self._pending.discard(ticket)
        try:
            self._spawn(self._record, page_url, referrer)
        except Exception:
            logger.warning("Analytics record failed for %s", page_url, exc_info=True)

    def attach(self, navigation: NavigationEvents) -> Callable[[], None]:
        """Record a visit for every navigation reported to ``navigation``.

        Returns a callable that detaches the collector again.
        """
        try:
            return navigation.subscribe(lambda kind, url: self.record_visit(url))
        except Exception:
            logger.warning("Analytics navigation listener setup failed", exc_info=True)
            return lambda: None

    async def drain(self) -> None:
        """Wait until every in-flight recording and delivery has finished.

        Visits handed to the scheduler but not started within
        ``settings.drain_timeout`` seconds are abandoned, so a scheduler that
        drops callbacks cannot stall shutdown.
        """
        loop = asyncio.get_running_loop()
        deadline = None
        while self._tasks or self._pending:
            if self._tasks:
                deadline = None
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
                continue
            if deadline is None:
                deadline = loop.time() + self.settings.drain_timeout
            elif loop.time() >= deadline:
                logger.warning(
                    "Abandoning %d scheduled visit(s) that never started",
                    len(self._pending),
                )
                self._pending.clear()
                return
            await asyncio.sleep(_DRAIN_POLL_INTERVAL)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _spawn(self, func, *args) -> None:
        coro = func(*args)
        try:
            task = asyncio.create_task(coro)
        except RuntimeError:
            coro.close()
            raise
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _build(self, page_url: str, geo: GeoInfo, referrer: str | None) -> VisitRecord:
        return VisitRecord.create(
            page_url,
            geo,
            user_agent=self.user_agent,
            referrer=referrer,
            now=self._clock(),
        )

    async def _record(self, page_url: str, referrer: str | None) -> None:
        record = None
        try:
            self.prune_old_buckets()
            geo = await self._geolocator.lookup()
            record = self._build(page_url, geo, referrer)
        except Exception:
            logger.warning("Analytics record failed for %s", page_url, exc_info=True)

        try:
            if record is None:
                record = self._build(page_url, UNKNOWN_GEO, referrer)
            self._cache.append(record)
            self._persist()
            self._spawn(self._deliver, record)
        except Exception:
            logger.warning("Analytics basic record failed for %s", page_url, exc_info=True)

    def _persist(self) -> None:
        if self._cache.save():
            return
        # Storage may be full: drop expired buckets and try once more.
        if self._cache.prune(self._clock(), self.settings.retention_days):
            self._cache.save()

    # ── Delivery ─────────────────────────────────────────────────────

    async def _deliver(self, record: VisitRecord) -> None:
        """Send ``record`` with exponential backoff between attempts.

        After ``retry_times`` failed retries the record stays unsynced for
        good.
        """
        body = json.dumps(record.to_payload()).encode("utf-8")
        retries = self.settings.retry_times

        for attempt in range(retries + 1):
            if await self._send(body):
                record.mark_synced()
                self._persist()
                return
            if attempt < retries:
                delay = self.settings.retry_delay * 2**attempt
                logger.debug("Retrying sync of %s in %.1fs", record.page_url, delay)
                await self._sleep(delay)

        logger.warning(
            "Giving up syncing visit to %s after %d retries", record.page_url, retries
        )

    async def _send(self, body: bytes) -> bool:
        endpoint = self.settings.api_endpoint

        if self._beacon is not None:
            try:
                if self._beacon(endpoint, body):
                    return True
            except Exception:
                logger.warning("Beacon send to %s failed", endpoint, exc_info=True)

        try:
            response = await self._client.post(
                endpoint,
                content=body,
                headers={"Content-Type": "application/json"},
                timeout=self.settings.request_timeout,
            )
            response.raise_for_status()
        except Exception as exc:
            logger.warning("Sync to server failed: %r", exc)
            return False
        return True

    # ── Local cache queries ──────────────────────────────────────────

    def prune_old_buckets(self) -> int:
        """Drop cache buckets older than the retention window and persist."""
        try:
            removed = self._cache.prune(self._clock(), self.settings.retention_days)
            if removed:
                self._cache.save()
            return removed
        except Exception:
            logger.warning("Analytics cleanup failed", exc_info=True)
            return 0

    def stats_by_date(self, day: date | str) -> list[VisitRecord]:
        """Records from buckets dated exactly ``day``."""
        try:
            day = day.isoformat() if isinstance(day, date) else day
            return [
                record
                for (bucket_day, _), records in self._cache.items()
                if bucket_day == day
                for record in records
            ]
        except Exception:
            logger.warning("Analytics stats query failed", exc_info=True)
            return []

    def today_stats(self) -> list[VisitRecord]:
        try:
            return self.stats_by_date(self._clock().astimezone(timezone.utc).date())
        except Exception:
            logger.warning("Analytics today stats failed", exc_info=True)
            return []

    def page_stats(self, page_url: str) -> list[VisitRecord]:
        """Records from every bucket whose page URL contains ``page_url``."""
        try:
            return [
                record
                for (_, bucket_page), records in self._cache.items()
                if page_url in bucket_page
                for record in records
            ]
        except Exception:
            logger.warning("Analytics page stats query failed", exc_info=True)
            return []

    def location_stats(self) -> dict[str, int]:
        """Visit counts keyed by ``"<country>-<city>"``."""
        try:
            counts = Counter(
                f"{record.country}-{record.city}" for record in self._cache.records()
            )
            return dict(counts)
        except Exception:
            logger.warning("Analytics location stats query failed", exc_info=True)
            return {}
