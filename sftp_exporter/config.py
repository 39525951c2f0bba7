"""
sftp_exporter.config
AUTHOR: carter-vin

Exporter configuration

Sources (lowest -> highest precedence):
- built-in defaults
- YAML config file (optional)
- explicit overrides (CLI options / env vars, resolved by typer)

Design goals:
- One frozen object handed to every component
- Validation up front; a bad config never reaches the session
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Optional

import yaml

from sftp_exporter.errors import ConfigError
from sftp_exporter.logging import LEVELS


@dataclass(frozen=True)
class ExporterConfig:
    """
    Connection, collection and listener settings
    """

    sftp_host: str = ""
    sftp_port: int = 22
    sftp_user: str = ""
    sftp_pass: Optional[str] = None
    sftp_key: Optional[str] = None
    sftp_key_passphrase: Optional[str] = None
    sftp_paths: tuple[str, ...] = ("/",)
    known_hosts_file: Optional[str] = None

    bind_address: str = "127.0.0.1"
    port: int = 8080

    # seconds; scrape_timeout 0 disables the endpoint deadline
    connect_timeout: float = 10.0
    io_timeout: float = 30.0
    scrape_timeout: float = 0.0

    log_level: str = "info"

    def to_dict(self) -> dict[str, Any]:
        """
        Safe view for logging: secrets masked
        """
        return {
            "sftp_host": self.sftp_host,
            "sftp_port": self.sftp_port,
            "sftp_user": self.sftp_user,
            "sftp_pass": "***" if self.sftp_pass else None,
            "sftp_key": self.sftp_key,
            "sftp_paths": list(self.sftp_paths),
            "known_hosts_file": self.known_hosts_file,
            "bind_address": self.bind_address,
            "port": self.port,
            "connect_timeout": self.connect_timeout,
            "io_timeout": self.io_timeout,
            "scrape_timeout": self.scrape_timeout,
            "log_level": self.log_level,
        }


_FIELD_NAMES = {f.name for f in fields(ExporterConfig)}


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e

    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ConfigError(f"config file {path} must contain a mapping")

    unknown = sorted(set(payload) - _FIELD_NAMES)
    if unknown:
        raise ConfigError(f"unknown config keys in {path}: {', '.join(unknown)}")

    return payload


def _normalize_paths(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        # "a,b" form from env vars
        items = [p.strip() for p in value.split(",")]
    elif isinstance(value, (list, tuple)):
        items = [str(p).strip() for p in value]
    else:
        raise ConfigError(f"sftp_paths must be a list of paths, got {type(value).__name__}")

    # one series per path: "/data", "/data/" and repeats collapse
    paths = tuple(dict.fromkeys(posixpath.normpath(p) for p in items if p))
    if not paths:
        raise ConfigError("sftp_paths must name at least one path")
    return paths


def validate_config(config: ExporterConfig) -> None:
    """
    Raise ConfigError on invalid settings
    """
    if not config.sftp_host:
        raise ConfigError("sftp_host is required")
    if not config.sftp_user:
        raise ConfigError("sftp_user is required")
    if not 0 < config.sftp_port < 65536:
        raise ConfigError(f"sftp_port out of range: {config.sftp_port}")
    if not 0 < config.port < 65536:
        raise ConfigError(f"port out of range: {config.port}")
    if config.connect_timeout <= 0 or config.io_timeout <= 0:
        raise ConfigError("connect_timeout and io_timeout must be > 0")
    if config.scrape_timeout < 0:
        raise ConfigError("scrape_timeout must be >= 0")
    if str(config.log_level).lower() not in LEVELS:
        raise ConfigError(f"log_level must be one of: {sorted(LEVELS)}")
    for path in config.sftp_paths:
        if not path.startswith("/"):
            raise ConfigError(f"sftp_paths entries must be absolute: {path}")


def load_config(config_file: Path | None = None, **overrides: Any) -> ExporterConfig:
    """
    Build a validated ExporterConfig

    overrides with value None are ignored so unset CLI options fall through
    to the file and then the defaults.
    """
    values: dict[str, Any] = {}

    if config_file is not None:
        values.update(_read_config_file(config_file))

    for key, value in overrides.items():
        if key not in _FIELD_NAMES:
            raise ConfigError(f"unknown config key: {key}")
        if value is not None:
            values[key] = value

    if "sftp_paths" in values:
        values["sftp_paths"] = _normalize_paths(values["sftp_paths"])

    try:
        for key in ("sftp_port", "port"):
            if key in values:
                values[key] = int(values[key])
        for key in ("connect_timeout", "io_timeout", "scrape_timeout"):
            if key in values:
                values[key] = float(values[key])
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid numeric config value: {e}") from e

    config = replace(ExporterConfig(), **values)
    validate_config(config)
    return config
