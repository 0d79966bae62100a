from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple
from urllib.parse import quote

import requests


logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"
MAINTENANCE_MARKER = "MAINTENANCE"

GOOD_SERVICE = "Good Service"
DELAYS = "Delays"
SERVICE_CHANGE = "Service Change"


class TransiterClientError(RuntimeError):
    """Raised when a Transiter request fails or returns an unusable body."""


def _mapping(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _sequence(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _text(value: Any, default: Optional[str] = None) -> Optional[str]:
    if isinstance(value, str) and value:
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return default


@dataclass(frozen=True)
class StopTime:
    departure_time: Optional[int]
    route_id: Optional[str]
    destination_name: Optional[str]

    @classmethod
    def from_json(cls, raw: Any) -> "StopTime":
        raw = _mapping(raw)
        trip = _mapping(raw.get("trip"))
        departure_raw = _text(_mapping(raw.get("departure")).get("time"))
        try:
            departure_time = int(float(departure_raw)) if departure_raw is not None else None
        except (ValueError, OverflowError):
            departure_time = None
        return cls(
            departure_time=departure_time,
            route_id=_text(_mapping(trip.get("route")).get("id")),
            destination_name=_text(_mapping(trip.get("destination")).get("name")),
        )


@dataclass(frozen=True)
class StopDetail:
    name: Optional[str]
    stop_times: Tuple[StopTime, ...]

    @classmethod
    def from_json(cls, raw: Any) -> "StopDetail":
        raw = _mapping(raw)
        return cls(
            name=_text(raw.get("name")),
            stop_times=tuple(StopTime.from_json(item) for item in _sequence(raw.get("stopTimes"))),
        )


@dataclass(frozen=True)
class RouteAlert:
    cause: str
    effect: str

    @classmethod
    def from_json(cls, raw: Any) -> "RouteAlert":
        raw = _mapping(raw)
        return cls(cause=_text(raw.get("cause"), ""), effect=_text(raw.get("effect"), ""))

    def is_maintenance(self) -> bool:
        return MAINTENANCE_MARKER in self.cause.upper() or MAINTENANCE_MARKER in self.effect.upper()


@dataclass(frozen=True)
class RouteSummary:
    id: Optional[str]
    alerts: Tuple[RouteAlert, ...]

    @classmethod
    def from_json(cls, raw: Any) -> "RouteSummary":
        raw = _mapping(raw)
        return cls(
            id=_text(raw.get("id")),
            alerts=tuple(RouteAlert.from_json(item) for item in _sequence(raw.get("alerts"))),
        )

    @property
    def status(self) -> str:
        if not self.alerts:
            return GOOD_SERVICE
        if any(alert.is_maintenance() for alert in self.alerts):
            return SERVICE_CHANGE
        return DELAYS


@dataclass(frozen=True)
class ArrivalEntry:
    route_id: str
    arrival_time: int
    current_stop: str
    last_stop_name: str
    service_status: str = GOOD_SERVICE


@dataclass(frozen=True)
class PlatformArrivals:
    station_name: str
    arrivals: Tuple[ArrivalEntry, ...] = field(default_factory=tuple)


def minutes_until_departure(departure_timestamp: int, now_seconds: float) -> int:
    return math.floor((departure_timestamp - now_seconds) / 60)


class TransiterClient:
    """Reads stop details and route alerts from a Transiter instance.

    The per-platform fetches raise ``TransiterClientError`` so callers can keep
    failures out of their caches. ``fetch_service_status`` never raises: a
    failure is logged and yields an empty mapping.
    """

    def __init__(
        self,
        base_url: str,
        system_id: str,
        timeout_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._system_id = system_id
        self._timeout_seconds = timeout_seconds
        self._clock = clock

    def _system_url(self) -> str:
        return f"{self._base_url}/systems/{quote(self._system_id, safe='')}"

    def stop_url(self, platform_id: str) -> str:
        return f"{self._system_url()}/stops/{quote(platform_id, safe='')}"

    def routes_url(self) -> str:
        return f"{self._system_url()}/routes"

    def _load_stop(self, platform_id: str) -> StopDetail:
        return StopDetail.from_json(self._get_json(self.stop_url(platform_id)))

    def fetch_platform_arrivals(self, platform_id: str) -> PlatformArrivals:
        detail = self._load_stop(platform_id)
        station_name = detail.name or platform_id
        now_seconds = self._clock()
        arrivals: List[ArrivalEntry] = []
        for stop_time in detail.stop_times:
            if not stop_time.departure_time:
                continue
            minutes = minutes_until_departure(stop_time.departure_time, now_seconds)
            if minutes < 0:
                continue
            arrivals.append(
                ArrivalEntry(
                    route_id=stop_time.route_id or UNKNOWN,
                    arrival_time=minutes,
                    current_stop=station_name,
                    last_stop_name=stop_time.destination_name or UNKNOWN,
                )
            )

        arrivals.sort(key=lambda entry: entry.arrival_time)
        logger.debug("Fetched %s arrivals for %s", len(arrivals), platform_id)
        return PlatformArrivals(station_name=station_name, arrivals=tuple(arrivals))

    def fetch_platform_routes(self, platform_id: str) -> Set[str]:
        detail = self._load_stop(platform_id)
        return {stop_time.route_id for stop_time in detail.stop_times if stop_time.route_id}

    def fetch_service_status(self) -> Dict[str, str]:
        try:
            payload = _mapping(self._get_json(self.routes_url()))
        except TransiterClientError as exc:
            logger.warning("Service status fetch failed: %s", exc)
            return {}

        statuses: Dict[str, str] = {}
        for raw_route in _sequence(payload.get("routes")):
            route = RouteSummary.from_json(raw_route)
            if route.id is None:
                continue
            statuses[route.id] = route.status
        return statuses

    def _get_json(self, url: str) -> Any:
        try:
            response = requests.get(url, timeout=self._timeout_seconds)
        except requests.RequestException as exc:
            raise TransiterClientError(f"Transiter request failed: {exc}") from exc

        if response.status_code != 200:
            detail = f"Status {response.status_code}"
            body_text = (response.text or "").strip()
            if body_text:
                detail = f"{detail}, Body: {body_text[:200]}"
            raise TransiterClientError(f"Transiter request failed: {detail}")

        try:
            return response.json()
        except ValueError as exc:
            raise TransiterClientError("Transiter response was not valid JSON") from exc
