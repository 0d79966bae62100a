from __future__ import annotations

import logging
from typing import Any, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS

from backend.arrivals import ArrivalsService
from backend.cache import TTLCache
from backend.config import AppConfig, load_config
from backend.fetchers.transiter import TransiterClient
from backend.health import get_health_status
from backend.stations import StationDirectory, StationNotFoundError


logger = logging.getLogger(__name__)

SERVICE_KEY = "arrivals_service"

api = Blueprint("api", __name__)


def _service() -> ArrivalsService:
    return current_app.extensions[SERVICE_KEY]


def _parse_route_filter(raw: Optional[str]) -> Optional[List[str]]:
    if raw is None:
        return None
    return [route.strip() for route in raw.split(",") if route.strip()]


def _parse_max_results(raw: Optional[str]) -> Optional[int]:
    try:
        value = int(raw) if raw is not None else None
    except ValueError:
        return None
    if value is None or value <= 0:
        return None
    return value


def _arrivals_response(station_id: str) -> Any:
    route_filter = _parse_route_filter(request.args.get("routes"))
    max_results = _parse_max_results(request.args.get("max"))
    return jsonify(_service().get_arrivals(station_id, route_filter, max_results))


@api.route("/api/stations")
def api_stations() -> Any:
    return jsonify(_service().list_stations())


@api.route("/api/stations/<station_id>")
def api_station(station_id: str) -> Any:
    try:
        return jsonify(_service().get_station(station_id))
    except StationNotFoundError:
        return jsonify({"error": "Station not found"}), 404


@api.route("/api/stations/<station_id>/routes")
def api_station_routes(station_id: str) -> Any:
    return jsonify(_service().get_routes_for_station(station_id))


@api.route("/api/stations/<station_id>/arrivals")
def api_station_arrivals(station_id: str) -> Any:
    return _arrivals_response(station_id)


@api.route("/api/arrivals")
def api_arrivals() -> Any:
    station_id = (request.args.get("station") or "").strip()
    if not station_id:
        return jsonify({"error": "station is required"}), 400
    return _arrivals_response(station_id)


@api.route("/health")
def health_alias() -> Any:
    return api_health()


@api.route("/api/health")
def api_health() -> Any:
    service = _service()
    return jsonify(get_health_status(service.directory, service.arrivals_cache, service.routes_cache))


def build_service(config: AppConfig) -> ArrivalsService:
    directory = StationDirectory.from_path(config.stations.path)
    client = TransiterClient(
        base_url=config.transiter.base_url,
        system_id=config.transiter.system_id,
        timeout_seconds=config.transiter.request_timeout_seconds,
    )
    return ArrivalsService(
        directory=directory,
        client=client,
        arrivals_cache=TTLCache("arrivals", config.cache.arrivals_ttl_ms),
        routes_cache=TTLCache("routes", config.cache.routes_ttl_ms),
        max_workers=config.arrivals.max_workers,
        default_max_results=config.arrivals.default_max_results,
    )


def create_app(config: Optional[AppConfig] = None, service: Optional[ArrivalsService] = None) -> Flask:
    config = config or AppConfig()
    app = Flask(__name__)
    CORS(app)
    app.extensions[SERVICE_KEY] = service or build_service(config)
    app.register_blueprint(api)
    return app


def prune_caches_task(service: ArrivalsService) -> None:
    removed = service.arrivals_cache.prune() + service.routes_cache.prune()
    if removed:
        logger.debug("Cache pruning removed %s entries", removed)


def start_scheduler(service: ArrivalsService, interval_seconds: int) -> BackgroundScheduler:
    scheduler = BackgroundScheduler()
    scheduler.add_job(prune_caches_task, "interval", seconds=interval_seconds, args=[service])
    scheduler.start()
    logger.info("Scheduler started: cache pruning every %ss", interval_seconds)
    return scheduler


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    try:
        config = load_config()
    except Exception as exc:
        logger.error("Failed to load config: %s", exc)
        return

    logging.getLogger().setLevel(config.log.level)

    service = build_service(config)
    app = create_app(config, service)
    scheduler = start_scheduler(service, config.cache.prune_interval_seconds)

    logger.info("Flask server starting on http://%s:%s", config.server.host, config.server.port)
    try:
        app.run(host=config.server.host, port=config.server.port)
    finally:
        scheduler.shutdown(wait=False)
        service.close()


if __name__ == "__main__":
    main()
