"""Local visit cache bucketed by (date, page URL)."""

import json
import logging
from collections.abc import Iterator
from datetime import date, datetime, timedelta, timezone

from simple_analytics.collector.record import VisitRecord
from simple_analytics.collector.storage import Storage

logger = logging.getLogger(__name__)

BucketKey = tuple[str, str]


def _encode_key(key: BucketKey) -> str:
    return f"{key[0]}:{key[1]}"


def _decode_key(raw: str) -> BucketKey:
    day, _, page_url = raw.partition(":")
    return day, page_url


class VisitCache:
    """Append-only buckets of visit records, mirrored to durable storage."""

    def __init__(self, storage: Storage, storage_key: str = "pageVisits") -> None:
        self._storage = storage
        self._storage_key = storage_key
        self._buckets: dict[BucketKey, list[VisitRecord]] = {}

    def __len__(self) -> int:
        return sum(len(records) for records in self._buckets.values())

    def items(self) -> Iterator[tuple[BucketKey, list[VisitRecord]]]:
        return iter(list(self._buckets.items()))

    def records(self) -> Iterator[VisitRecord]:
        for _, records in self.items():
            yield from records

    def append(self, record: VisitRecord) -> None:
        key = (record.date_key, record.page_url)
        self._buckets.setdefault(key, []).append(record)

    def load(self) -> None:
        """Replace the in-memory buckets with the stored ones.

        Missing or corrupt storage leaves the cache empty.
        """
        self._buckets = {}
        try:
            raw = self._storage.get_item(self._storage_key)
            if not raw:
                return
            stored = json.loads(raw)
            self._buckets = {
                _decode_key(key): [VisitRecord.model_validate(item) for item in items]
                for key, items in stored.items()
            }
        except Exception:
            logger.warning("Analytics storage load failed; starting empty", exc_info=True)
            self._buckets = {}

    def save(self) -> bool:
        """Write all buckets to storage. Returns False if the write failed."""
        try:
            data = {
                _encode_key(key): [record.to_storage() for record in records]
                for key, records in self._buckets.items()
            }
            self._storage.set_item(self._storage_key, json.dumps(data))
        except Exception:
            logger.warning("Analytics storage save failed", exc_info=True)
            return False
        return True

    def prune(self, now: datetime | None = None, retention_days: int = 30) -> int:
        """Drop buckets dated more than ``retention_days`` before ``now``.

        Buckets whose date cannot be parsed are dropped as well. Returns the
        number of buckets removed.
        """
        now = now or datetime.now(timezone.utc)
        horizon = timedelta(days=retention_days)
        expired = []
        for key in self._buckets:
            try:
                day = date.fromisoformat(key[0])
            except ValueError:
                expired.append(key)
                continue
            bucket_start = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
            if now - bucket_start > horizon:
                expired.append(key)

        for key in expired:
            del self._buckets[key]
        return len(expired)
