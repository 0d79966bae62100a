from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional


logger = logging.getLogger(__name__)

MIN_FIELDS = 5


@dataclass(frozen=True)
class Station:
    id: str
    name: str
    lat: float
    lon: float
    parent_id: str


class StationNotFoundError(KeyError):
    pass


def name_sort_key(name: str) -> tuple:
    return (name.casefold(), name)


def _parse_row(fields: List[str]) -> Optional[Station]:
    if len(fields) < MIN_FIELDS:
        return None
    station_id, name, lat, lon, parent_id = (field.strip() for field in fields[:MIN_FIELDS])
    if not station_id:
        return None
    try:
        return Station(
            id=station_id,
            name=name,
            lat=float(lat),
            lon=float(lon),
            parent_id=parent_id,
        )
    except ValueError:
        return None


class StationDirectory:
    """Static station list indexed by station id and by complex (parent) id.

    Populated once via ``load``; read-only afterwards.
    """

    def __init__(self) -> None:
        self._stations: List[Station] = []
        self._station_map: Dict[str, Station] = {}
        self._parent_map: Dict[str, List[str]] = {}

    @classmethod
    def from_path(cls, path: Path) -> "StationDirectory":
        directory = cls()
        try:
            with path.open(newline="", encoding="utf-8") as handle:
                directory.load(handle)
        except (OSError, UnicodeDecodeError, csv.Error) as exc:
            logger.error("Failed to read stations file %s: %s", path, exc)
            return cls()
        logger.info("Loaded %s stations from %s", len(directory), path)
        return directory

    def load(self, source: Iterable[str]) -> List[Station]:
        reader = csv.reader(source)
        next(reader, None)  # header

        skipped = 0
        for fields in reader:
            station = _parse_row(fields)
            if station is None:
                skipped += 1
                continue
            self._stations.append(station)
            self._station_map[station.id] = station
            members = self._parent_map.setdefault(station.parent_id, [])
            if station.id not in members:
                members.append(station.id)

        if skipped:
            logger.warning("Skipped %s malformed station rows", skipped)
        self._stations.sort(key=lambda station: name_sort_key(station.name))
        return list(self._stations)

    def __len__(self) -> int:
        return len(self._stations)

    @property
    def stations(self) -> List[Station]:
        return list(self._stations)

    @property
    def complex_count(self) -> int:
        return len(self._parent_map)

    def get(self, station_id: str) -> Optional[Station]:
        return self._station_map.get(station_id)

    def is_complex(self, parent_id: str) -> bool:
        return bool(self._parent_map.get(parent_id))

    def complex_members(self, parent_id: str) -> List[str]:
        return list(self._parent_map.get(parent_id, []))

    def resolve_complex(self, any_id: str) -> List[str]:
        """Return the platform ids that make up the complex ``any_id`` belongs to.

        ``any_id`` may be a complex (parent) id or a platform id. Unknown ids are
        treated as self-contained platforms.
        """

        members = self._parent_map.get(any_id)
        if members:
            return list(members)
        station = self._station_map.get(any_id)
        if station is None:
            return [any_id]
        return list(self._parent_map.get(station.parent_id) or [any_id])

    def lookup(self, any_id: str) -> Dict[str, object]:
        members = self._parent_map.get(any_id)
        if members:
            first = self._station_map.get(members[0])
            return {
                "id": any_id,
                "name": first.name if first else any_id,
                "platformIds": list(members),
            }
        station = self._station_map.get(any_id)
        if station is None:
            raise StationNotFoundError(any_id)
        return {
            "id": any_id,
            "name": station.name,
            "platformIds": self.resolve_complex(any_id),
        }
