from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from flask.testing import FlaskClient

from backend.app import create_app, prune_caches_task
from backend.arrivals import ArrivalsService
from backend.fetchers.transiter import PlatformArrivals
from fakes import FakeTransiterClient, make_entry


@pytest.fixture()
def http(service: ArrivalsService) -> FlaskClient:
    app = create_app(service=service)
    app.config["TESTING"] = True
    return app.test_client()


@pytest.fixture()
def board(fake_client: FakeTransiterClient) -> FakeTransiterClient:
    fake_client.arrivals["101"] = PlatformArrivals("Union Sq", (make_entry("1", 3), make_entry("N", 7)))
    fake_client.arrivals["102"] = PlatformArrivals("Union Sq", (make_entry("2", 1),))
    fake_client.routes = {"101": {"1", "N"}, "102": {"2"}}
    return fake_client


def test_stations_endpoint(http: FlaskClient) -> None:
    response = http.get("/api/stations")

    assert response.status_code == 200
    assert [entry["id"] for entry in response.get_json()] == ["A10", "R20"]


def test_station_lookup_by_parent(http: FlaskClient) -> None:
    response = http.get("/api/stations/R20")

    assert response.status_code == 200
    assert response.get_json() == {"id": "R20", "name": "Union Sq", "platformIds": ["101", "102"]}


def test_station_lookup_unknown_is_404(http: FlaskClient) -> None:
    response = http.get("/api/stations/NOPE")

    assert response.status_code == 404
    assert response.get_json() == {"error": "Station not found"}


def test_routes_endpoint(http: FlaskClient, board: FakeTransiterClient) -> None:
    response = http.get("/api/stations/R20/routes")

    assert response.get_json() == ["1", "2", "N"]


def test_arrivals_endpoint(http: FlaskClient, board: FakeTransiterClient) -> None:
    payload = http.get("/api/stations/R20/arrivals").get_json()

    assert payload["stationName"] == "Union Sq"
    assert payload["platformIds"] == ["101", "102"]
    assert [row["scheduled"] for row in payload["data"]] == [1, 3, 7]


def test_arrivals_endpoint_route_filter_and_max(http: FlaskClient, board: FakeTransiterClient) -> None:
    payload = http.get("/api/stations/R20/arrivals?routes=1,N&max=1").get_json()

    assert [row["line"] for row in payload["data"]] == ["1"]


def test_arrivals_endpoint_empty_routes_param_means_none_selected(
    http: FlaskClient, board: FakeTransiterClient
) -> None:
    payload = http.get("/api/stations/R20/arrivals?routes=").get_json()

    assert payload["data"] == []


@pytest.mark.parametrize("raw_max", ["abc", "0", "-3"])
def test_arrivals_endpoint_invalid_max_uses_default(
    http: FlaskClient, fake_client: FakeTransiterClient, raw_max: str
) -> None:
    fake_client.arrivals["101"] = PlatformArrivals(
        "Union Sq", tuple(make_entry("6", minutes) for minutes in range(40))
    )

    payload = http.get(f"/api/stations/R20/arrivals?max={raw_max}").get_json()

    assert len(payload["data"]) == 30


def test_query_style_arrivals_endpoint(http: FlaskClient, board: FakeTransiterClient) -> None:
    payload = http.get("/api/arrivals?station=R20&routes=2").get_json()

    assert [row["line"] for row in payload["data"]] == ["2"]


def test_query_style_arrivals_requires_station(http: FlaskClient) -> None:
    response = http.get("/api/arrivals")

    assert response.status_code == 400


def test_health_endpoint(http: FlaskClient, board: FakeTransiterClient) -> None:
    http.get("/api/stations/R20/arrivals")
    payload = http.get("/health").get_json()

    assert payload["status"] == "healthy"
    assert payload["stations"] == {"count": 3, "complexes": 2}
    assert payload["caches"]["arrivals"]["misses"] == 2
    assert payload["caches"]["routes"]["entries"] == 0


def test_cors_headers_present(http: FlaskClient) -> None:
    response = http.get("/api/stations", headers={"Origin": "http://display.local"})

    assert response.headers.get("Access-Control-Allow-Origin") in ("*", "http://display.local")


def test_prune_caches_task_prunes_both_caches() -> None:
    service = MagicMock()
    service.arrivals_cache.prune.return_value = 1
    service.routes_cache.prune.return_value = 0

    prune_caches_task(service)

    service.arrivals_cache.prune.assert_called_once_with()
    service.routes_cache.prune.assert_called_once_with()
