"""Configuration loading and dataclasses for the plot viewer."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml


@dataclass(frozen=True)
class ServerConfig:
    host: str
    token: Optional[str] = None
    tls: bool = False
    use_push: bool = True


@dataclass(frozen=True)
class PollingConfig:
    fast_interval_s: float = 0.5
    slow_interval_s: float = 5.0
    upgrade_cooldown_s: float = 0.0
    request_timeout_s: float = 5.0

    def __post_init__(self) -> None:
        if self.fast_interval_s <= 0 or self.slow_interval_s <= 0:
            raise ValueError("poll intervals must be greater than zero")
        if self.upgrade_cooldown_s < 0:
            raise ValueError("upgrade_cooldown_s must not be negative")
        if self.request_timeout_s <= 0:
            raise ValueError("request_timeout_s must be greater than zero")


@dataclass(frozen=True)
class ViewerConfig:
    scale_default: float = 0.8
    resize_cooldown_s: float = 0.2

    def __post_init__(self) -> None:
        if self.scale_default <= 0:
            raise ValueError("scale_default must be greater than zero")


@dataclass(frozen=True)
class LoggingConfig:
    level: str


@dataclass(frozen=True)
class AppConfig:
    server: ServerConfig
    polling: PollingConfig
    viewer: ViewerConfig
    logging: LoggingConfig


def load_config(path: Path) -> AppConfig:
    """Load configuration from a YAML file."""
    with path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}

    if "server" not in raw or "host" not in (raw["server"] or {}):
        raise KeyError("Configuration requires server.host")

    return AppConfig(
        server=_parse_server(raw["server"]),
        polling=_parse_polling(raw.get("polling", {})),
        viewer=_parse_viewer(raw.get("viewer", {})),
        logging=LoggingConfig(level=str(raw.get("logging", {}).get("level", "INFO"))),
    )


def _parse_server(raw: Any) -> ServerConfig:
    token = raw.get("token")
    return ServerConfig(
        host=str(raw["host"]),
        token=str(token) if token else None,
        tls=bool(raw.get("tls", False)),
        use_push=bool(raw.get("use_push", True)),
    )


def _parse_polling(raw: Any) -> PollingConfig:
    if not isinstance(raw, dict):
        raw = {}
    return PollingConfig(
        fast_interval_s=float(raw.get("fast_interval_s", 0.5)),
        slow_interval_s=float(raw.get("slow_interval_s", 5.0)),
        upgrade_cooldown_s=float(raw.get("upgrade_cooldown_s", 0.0)),
        request_timeout_s=float(raw.get("request_timeout_s", 5.0)),
    )


def _parse_viewer(raw: Any) -> ViewerConfig:
    if not isinstance(raw, dict):
        raw = {}
    return ViewerConfig(
        scale_default=float(raw.get("scale_default", 0.8)),
        resize_cooldown_s=float(raw.get("resize_cooldown_s", 0.2)),
    )


def load_default_config() -> AppConfig:
    """Load the default config.yaml shipped with the package."""
    path = Path(__file__).resolve().parent / "config.yaml"
    return load_config(path)


__all__ = [
    "AppConfig",
    "LoggingConfig",
    "PollingConfig",
    "ServerConfig",
    "ViewerConfig",
    "load_config",
    "load_default_config",
]
