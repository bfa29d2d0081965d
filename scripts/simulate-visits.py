#!/usr/bin/env python3
"""
simulate-visits.py: drive an embedded Collector against a running analytics API.

Records a burst of page views (an initial load followed by client-side
navigation), waits for delivery, then prints what the aggregate endpoints
report.

Usage:
    python scripts/simulate-visits.py
    python scripts/simulate-visits.py --api-url http://localhost:3000 --visits 25
    python scripts/simulate-visits.py --no-geo --storage /tmp/page-visits.json
"""

import argparse
import asyncio
import random
import sys

import httpx

from simple_analytics.collector import (
    Collector,
    CollectorSettings,
    JsonFileStorage,
    MemoryStorage,
    NavigationEvents,
)
from simple_analytics.collector.record import UNKNOWN_GEO


# ANSI color codes
class C:
    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    CYAN = "\033[96m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    RESET = "\033[0m"


PAGES = ["/", "/blog", "/blog/hello-world", "/about", "/contact", "/pricing"]

USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/126.0 Safari/537.36"
)


class _NoGeolocator:
    async def lookup(self):
        return UNKNOWN_GEO


async def fetch_json(client: httpx.AsyncClient, url: str):
    try:
        resp = await client.get(url, timeout=5)
        resp.raise_for_status()
        return resp.json()
    except httpx.HTTPError as e:
        print(f"  {C.RED}GET {url} failed: {e}{C.RESET}")
        return None


async def run_simulation(args: argparse.Namespace) -> None:
    """Record visits and report the resulting aggregates."""
    api_url = args.api_url.rstrip("/")
    settings = CollectorSettings(api_endpoint=f"{api_url}/api/analytics/sync")
    storage = JsonFileStorage(args.storage) if args.storage else MemoryStorage()

    print(f"\n{C.BOLD}Visit Simulator{C.RESET}")
    print(f"{C.DIM}{'=' * 60}{C.RESET}\n")
    print(f"  {C.BOLD}API URL:{C.RESET}       {C.CYAN}{api_url}{C.RESET}")
    print(f"  {C.BOLD}Visits:{C.RESET}        {args.visits}")
    print(f"  {C.BOLD}Geolocation:{C.RESET}   {'off' if args.no_geo else 'on'}")
    print(f"  {C.BOLD}Storage:{C.RESET}       {args.storage or 'memory'}")
    print()

    navigation = NavigationEvents()
    collector = Collector(
        settings,
        storage=storage,
        geolocator=_NoGeolocator() if args.no_geo else None,
        user_agent=USER_AGENT,
    )

    async with collector:
        collector.attach(navigation)
        collector.record_visit("/", referrer=args.referrer)
        for _ in range(args.visits - 1):
            navigation.push_state(random.choice(PAGES))
        print(f"  {C.DIM}Waiting for delivery...{C.RESET}")
        await collector.drain()

    records = list(collector.cache.records())
    synced = sum(1 for r in records if r.synced)
    color = C.GREEN if synced == len(records) else C.YELLOW
    print(f"  {color}{synced}/{len(records)} visits synced{C.RESET}")

    print(f"\n  {C.BOLD}Local location stats:{C.RESET}")
    for location, count in sorted(collector.location_stats().items()):
        print(f"    {location}: {count}")

    async with httpx.AsyncClient() as client:
        overview = await fetch_json(client, f"{api_url}/api/analytics/overview")
        hourly = await fetch_json(client, f"{api_url}/api/analytics/hourly")
        stats = await fetch_json(client, f"{api_url}/api/analytics/stats")

    if overview:
        print(f"\n  {C.BOLD}Overview (last 30 days):{C.RESET}")
        for key, val in overview.items():
            print(f"    {key}: {val}")

    if hourly:
        print(f"\n  {C.BOLD}Today by hour:{C.RESET}")
        for row in hourly:
            print(f"    {row['hour']}:00  {'#' * min(row['visits'], 50)} {row['visits']}")

    if stats:
        print(f"\n  {C.BOLD}Top daily pages:{C.RESET}")
        for row in stats[:10]:
            print(
                f"    {row['date']}  {row['pageUrl']:<24} "
                f"{row['visits']} visits / {row['unique_visitors']} unique"
            )

    print(f"\n{C.DIM}{'=' * 60}{C.RESET}")
    print(f"  {C.GREEN}Simulation complete{C.RESET}")
    print(f"{C.DIM}{'=' * 60}{C.RESET}\n")

    if synced < len(records):
        sys.exit(1)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Record simulated page visits through the collector"
    )
    parser.add_argument(
        "--api-url",
        type=str,
        default="http://localhost:3000",
        help="Analytics API base URL (default: http://localhost:3000)",
    )
    parser.add_argument(
        "--visits",
        type=int,
        default=10,
        help="Number of page views to record (default: 10)",
    )
    parser.add_argument(
        "--referrer",
        type=str,
        default=None,
        help="Referrer to attach to the initial page load",
    )
    parser.add_argument(
        "--storage",
        type=str,
        default=None,
        help="JSON file for the collector's local cache (default: in memory)",
    )
    parser.add_argument(
        "--no-geo",
        action="store_true",
        help="Skip the third-party IP/geolocation lookups",
    )
    args = parser.parse_args()

    asyncio.run(run_simulation(args))


if __name__ == "__main__":
    main()
