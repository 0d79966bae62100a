from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, TypeVar

import yaml


ROOT_DIR = Path(__file__).resolve().parents[1]
CONFIG_PATH = ROOT_DIR / "config.yaml"
CONFIG_ENV_VAR = "DISPLAY_HUB_CONFIG"

logger = logging.getLogger(__name__)

V = TypeVar("V")


def _coerce(value: Any, cast: Callable[[Any], V], default: V, minimum: Optional[V] = None) -> V:
    """Cast a raw YAML value, keeping ``default`` for absent or unusable input."""

    if value is None or value == "":
        return default
    try:
        result = cast(value)
    except (TypeError, ValueError):
        return default
    if minimum is not None and result < minimum:
        return minimum
    return result


def _text(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(value)
    return value.strip()


@dataclass(frozen=True)
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 5001

    @classmethod
    def from_mapping(cls, section: Mapping[str, Any], environ: Mapping[str, str]) -> "ServerConfig":
        host = environ.get("HOST") or section.get("host")
        port = environ.get("PORT") or section.get("port")
        return cls(host=_coerce(host, _text, cls.host), port=_coerce(port, int, cls.port))


@dataclass(frozen=True)
class TransiterConfig:
    base_url: str = "https://demo.transiter.dev"
    system_id: str = "us-ny-subway"
    # None leaves requests without a timeout.
    request_timeout_seconds: Optional[float] = None

    @classmethod
    def from_mapping(cls, section: Mapping[str, Any]) -> "TransiterConfig":
        timeout = _coerce(section.get("request_timeout_seconds"), float, None)
        return cls(
            base_url=_coerce(section.get("base_url"), _text, cls.base_url).rstrip("/"),
            system_id=_coerce(section.get("system_id"), _text, cls.system_id),
            request_timeout_seconds=timeout if timeout and timeout > 0 else None,
        )


@dataclass(frozen=True)
class StationsConfig:
    path: Path = ROOT_DIR / "data" / "stations.csv"

    @classmethod
    def from_mapping(cls, section: Mapping[str, Any]) -> "StationsConfig":
        path = _coerce(section.get("path"), lambda raw: Path(_text(raw)), cls.path)
        return cls(path=path if path.is_absolute() else ROOT_DIR / path)


@dataclass(frozen=True)
class CacheConfig:
    arrivals_ttl_ms: int = 20_000
    routes_ttl_ms: int = 300_000
    prune_interval_seconds: int = 60

    @classmethod
    def from_mapping(cls, section: Mapping[str, Any]) -> "CacheConfig":
        return cls(
            arrivals_ttl_ms=_coerce(section.get("arrivals_ttl_ms"), int, cls.arrivals_ttl_ms, minimum=0),
            routes_ttl_ms=_coerce(section.get("routes_ttl_ms"), int, cls.routes_ttl_ms, minimum=0),
            prune_interval_seconds=_coerce(
                section.get("prune_interval_seconds"), int, cls.prune_interval_seconds, minimum=1
            ),
        )


@dataclass(frozen=True)
class ArrivalsConfig:
    default_max_results: int = 30
    max_workers: int = 8

    @classmethod
    def from_mapping(cls, section: Mapping[str, Any]) -> "ArrivalsConfig":
        return cls(
            default_max_results=_coerce(
                section.get("default_max_results"), int, cls.default_max_results, minimum=1
            ),
            max_workers=_coerce(section.get("max_workers"), int, cls.max_workers, minimum=1),
        )


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"

    @classmethod
    def from_mapping(cls, section: Mapping[str, Any]) -> "LoggingConfig":
        level = _coerce(section.get("level"), _text, cls.level).upper()
        if not isinstance(logging.getLevelName(level), int):
            logger.warning("Unknown logging level '%s'; using %s.", level, cls.level)
            return cls()
        return cls(level=level)


@dataclass(frozen=True)
class AppConfig:
    server: ServerConfig = ServerConfig()
    transiter: TransiterConfig = TransiterConfig()
    stations: StationsConfig = StationsConfig()
    cache: CacheConfig = CacheConfig()
    arrivals: ArrivalsConfig = ArrivalsConfig()
    log: LoggingConfig = LoggingConfig()


def _section(data: Mapping[str, Any], name: str) -> Dict[str, Any]:
    section = data.get(name)
    return section if isinstance(section, dict) else {}


def resolve_config_path() -> Path:
    override = os.environ.get(CONFIG_ENV_VAR)
    return Path(override) if override else CONFIG_PATH


def parse_config(data: Mapping[str, Any], environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Build an AppConfig from a parsed YAML mapping.

    Values of the wrong type fall back to their defaults; HOST and PORT from the
    environment take precedence over the server section.
    """

    return AppConfig(
        server=ServerConfig.from_mapping(_section(data, "server"), os.environ if environ is None else environ),
        transiter=TransiterConfig.from_mapping(_section(data, "transiter")),
        stations=StationsConfig.from_mapping(_section(data, "stations")),
        cache=CacheConfig.from_mapping(_section(data, "cache")),
        arrivals=ArrivalsConfig.from_mapping(_section(data, "arrivals")),
        log=LoggingConfig.from_mapping(_section(data, "logging")),
    )


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    path = config_path or resolve_config_path()
    if not path.is_file():
        raise FileNotFoundError(f"No configuration file at {path}")
    logger.info("Reading configuration from %s", path)
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, not {type(data).__name__}")
    return parse_config(data)
