"""Visitor IP and geolocation lookup through public HTTP services."""

import asyncio
import logging

import httpx

from simple_analytics.collector.record import UNKNOWN, UNKNOWN_GEO, GeoInfo

logger = logging.getLogger(__name__)


class Geolocator:
    """Resolves the visitor's public IP and its coarse location.

    The IP lookup and the geolocation lookup run concurrently and share a
    single deadline. Any failure resolves to ``UNKNOWN_GEO``.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        ip_lookup_url: str = "https://api.ipify.org?format=json",
        geo_lookup_url: str = "https://ipapi.co/json/",
        timeout: float = 2.0,
    ) -> None:
        self._client = client
        self.ip_lookup_url = ip_lookup_url
        self.geo_lookup_url = geo_lookup_url
        self.timeout = timeout

    async def _fetch_json(self, url: str) -> dict:
        response = await self._client.get(url, timeout=self.timeout)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected response body from {url}")
        return data

    async def _fetch_both(self) -> list[dict]:
        results = await asyncio.gather(
            self._fetch_json(self.ip_lookup_url),
            self._fetch_json(self.geo_lookup_url),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                raise result
        return results

    async def lookup(self) -> GeoInfo:
        try:
            ip_data, geo_data = await asyncio.wait_for(
                self._fetch_both(), timeout=self.timeout
            )
        except (httpx.HTTPError, asyncio.TimeoutError, ValueError) as exc:
            logger.warning("Geo location fetch failed: %r", exc)
            return UNKNOWN_GEO

        return GeoInfo(
            ip=ip_data.get("ip") or UNKNOWN,
            country=geo_data.get("country_name") or UNKNOWN,
            region=geo_data.get("region") or UNKNOWN,
            city=geo_data.get("city") or UNKNOWN,
        )
