from __future__ import annotations

import io

import pytest

from backend.arrivals import ArrivalsService
from backend.cache import TTLCache
from backend.stations import StationDirectory
from fakes import FakeClock, FakeTransiterClient


STATIONS_CSV = """id,name,lat,lon,parent_id
101,Union Sq,40.7357,-73.9905,R20
102,Union Sq,40.7347,-73.9907,R20
201,Astor Pl,40.7300,-73.9910,A10
"""


@pytest.fixture()
def directory() -> StationDirectory:
    station_directory = StationDirectory()
    station_directory.load(io.StringIO(STATIONS_CSV))
    return station_directory


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def fake_client() -> FakeTransiterClient:
    return FakeTransiterClient()


@pytest.fixture()
def service(directory: StationDirectory, fake_client: FakeTransiterClient, clock: FakeClock):
    arrivals_service = ArrivalsService(
        directory=directory,
        client=fake_client,
        arrivals_cache=TTLCache("arrivals", 20_000, clock=clock),
        routes_cache=TTLCache("routes", 300_000, clock=clock),
        max_workers=4,
    )
    yield arrivals_service
    arrivals_service.close()
