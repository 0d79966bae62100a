from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set, TypedDict, TypeVar

from backend.cache import TTLCache
from backend.fetchers.transiter import (
    GOOD_SERVICE,
    ArrivalEntry,
    PlatformArrivals,
    TransiterClient,
    TransiterClientError,
)
from backend.stations import StationDirectory, name_sort_key


logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 30

T = TypeVar("T")


class ConsolidatedStation(TypedDict):
    id: str
    name: str
    platform_ids: List[str]


class ArrivalView(TypedDict):
    line: str
    stop: str
    terminal: str
    scheduled: int
    status: str


class ArrivalsResponse(TypedDict):
    stationName: str
    platformIds: List[str]
    data: List[ArrivalView]


def _project(entry: ArrivalEntry) -> ArrivalView:
    return {
        "line": entry.route_id,
        "stop": entry.current_stop,
        "terminal": entry.last_stop_name,
        "scheduled": entry.arrival_time,
        "status": entry.service_status,
    }


class ArrivalsService:
    """Consolidates per-platform arrivals into one board per station complex."""

    def __init__(
        self,
        directory: StationDirectory,
        client: TransiterClient,
        arrivals_cache: TTLCache[PlatformArrivals],
        routes_cache: TTLCache[Set[str]],
        max_workers: int = 8,
        default_max_results: int = DEFAULT_MAX_RESULTS,
    ) -> None:
        self.directory = directory
        self.client = client
        self.arrivals_cache = arrivals_cache
        self.routes_cache = routes_cache
        self.default_max_results = default_max_results
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="transiter")

    def close(self) -> None:
        self._executor.shutdown(wait=False)

    def _gather(self, fn: Callable[[str], T], keys: Sequence[str]) -> List[T]:
        # Results come back in the order of ``keys`` regardless of completion order.
        if len(keys) == 1:
            return [fn(keys[0])]
        return list(self._executor.map(fn, keys))

    # A failed fetch degrades to an empty result that is never cached, so the
    # next request for that platform goes upstream again.
    def _platform_arrivals(self, platform_id: str) -> PlatformArrivals:
        try:
            return self.arrivals_cache.get(platform_id, self.client.fetch_platform_arrivals)
        except TransiterClientError as exc:
            logger.warning("Arrivals fetch failed for %s: %s", platform_id, exc)
            return PlatformArrivals(station_name=platform_id)

    def _platform_routes(self, platform_id: str) -> Set[str]:
        try:
            return self.routes_cache.get(platform_id, self.client.fetch_platform_routes)
        except TransiterClientError as exc:
            logger.warning("Routes fetch failed for %s: %s", platform_id, exc)
            return set()

    def list_stations(self) -> List[ConsolidatedStation]:
        consolidated: Dict[str, ConsolidatedStation] = {}
        for station in self.directory.stations:
            entry = consolidated.get(station.parent_id)
            if entry is None:
                entry = {"id": station.parent_id, "name": station.name, "platform_ids": []}
                consolidated[station.parent_id] = entry
            entry["platform_ids"].append(station.id)
        return sorted(consolidated.values(), key=lambda entry: name_sort_key(entry["name"]))

    def get_station(self, any_id: str) -> Dict[str, Any]:
        return self.directory.lookup(any_id)

    def get_routes_for_station(self, any_id: str) -> List[str]:
        platform_ids = self.directory.resolve_complex(any_id)
        routes: Set[str] = set()
        for platform_routes in self._gather(self._platform_routes, platform_ids):
            routes.update(platform_routes)
        return sorted(routes)

    def get_arrivals(
        self,
        any_id: str,
        route_filter: Optional[Iterable[str]] = None,
        max_results: Optional[int] = None,
    ) -> ArrivalsResponse:
        """Return the merged, sorted arrivals board for a station or complex.

        ``route_filter=None`` keeps every route; an empty filter keeps none.
        """

        if max_results is None or max_results <= 0:
            max_results = self.default_max_results

        platform_ids = self.directory.resolve_complex(any_id)
        results = self._gather(self._platform_arrivals, platform_ids)

        station_name = ""
        merged: List[ArrivalEntry] = []
        for result in results:
            if not station_name and result.station_name:
                station_name = result.station_name
            merged.extend(result.arrivals)

        statuses = self.client.fetch_service_status()
        entries = [
            replace(entry, service_status=statuses.get(entry.route_id, GOOD_SERVICE))
            for entry in merged
        ]

        if route_filter is not None:
            allowed = set(route_filter)
            entries = [entry for entry in entries if entry.route_id in allowed]

        entries.sort(key=lambda entry: entry.arrival_time)

        return {
            "stationName": station_name,
            "platformIds": platform_ids,
            "data": [_project(entry) for entry in entries[:max_results]],
        }
