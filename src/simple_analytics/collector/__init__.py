"""Embeddable visit collector that syncs to the analytics API."""

from simple_analytics.collector.cache import VisitCache
from simple_analytics.collector.collector import Collector
from simple_analytics.collector.config import CollectorSettings
from simple_analytics.collector.geo import Geolocator
from simple_analytics.collector.navigation import NavigationEvents
from simple_analytics.collector.record import UNKNOWN, GeoInfo, VisitRecord
from simple_analytics.collector.storage import JsonFileStorage, MemoryStorage

__all__ = [
    "UNKNOWN",
    "Collector",
    "CollectorSettings",
    "GeoInfo",
    "Geolocator",
    "JsonFileStorage",
    "MemoryStorage",
    "NavigationEvents",
    "VisitCache",
    "VisitRecord",
]
