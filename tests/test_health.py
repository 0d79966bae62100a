from __future__ import annotations

from backend.cache import TTLCache
from backend.health import get_health_status
from backend.stations import StationDirectory
from fakes import FakeClock


def test_empty_directory_reports_degraded() -> None:
    status = get_health_status(StationDirectory())

    assert status["status"] == "degraded"
    assert status["stations"] == {"count": 0, "complexes": 0}
    assert status["caches"] == {}


def test_cache_sections_are_keyed_by_name(directory: StationDirectory, clock: FakeClock) -> None:
    arrivals = TTLCache("arrivals", 20_000, clock=clock)
    routes = TTLCache("routes", 300_000, clock=clock)

    status = get_health_status(directory, arrivals, routes)

    assert status["status"] == "healthy"
    assert status["caches"]["arrivals"] == {
        "ttl_ms": 20_000,
        "entries": 0,
        "hits": 0,
        "misses": 0,
        "last_refresh": "never",
    }
    assert set(status["caches"]) == {"arrivals", "routes"}
    assert status["uptime_seconds"] >= 0
