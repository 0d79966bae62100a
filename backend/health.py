from __future__ import annotations

import time
from typing import Dict, Optional, TypedDict

from backend.cache import CacheStats, TTLCache
from backend.stations import StationDirectory


START_TIME = time.time()


class StationsHealth(TypedDict):
    count: int
    complexes: int


class CacheHealth(TypedDict):
    ttl_ms: int
    entries: int
    hits: int
    misses: int
    last_refresh: str


class HealthStatus(TypedDict):
    status: str
    uptime_seconds: int
    stations: StationsHealth
    caches: Dict[str, CacheHealth]


def _format_age(last_refresh_ms: Optional[int], now: int) -> str:
    if not last_refresh_ms:
        return "never"
    delta = max(0, now - last_refresh_ms // 1000)
    return f"{delta}s ago"


def _cache_health(stats: CacheStats, now: int) -> CacheHealth:
    return {
        "ttl_ms": stats["ttl_ms"],
        "entries": stats["entries"],
        "hits": stats["hits"],
        "misses": stats["misses"],
        "last_refresh": _format_age(stats["last_refresh"], now),
    }


def get_health_status(directory: StationDirectory, *caches: TTLCache) -> HealthStatus:
    now = int(time.time())
    station_count = len(directory)
    return {
        "status": "healthy" if station_count > 0 else "degraded",
        "uptime_seconds": int(now - START_TIME),
        "stations": {
            "count": station_count,
            "complexes": directory.complex_count,
        },
        "caches": {cache.name: _cache_health(cache.stats(), now) for cache in caches},
    }
