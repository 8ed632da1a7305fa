"""Viewer configuration via YAML file and environment variables."""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

from .errors import InvalidInput

CONFIG_FILE = "gybview.yaml"
DEFAULT_ACCOUNTS_DIR = "./accounts"

# Environment variable -> config field
ENV_OVERRIDES = {
    "GYB_ACCOUNTS_DIR": "accounts_dir",
    "GYBVIEW_HOST": "host",
    "GYBVIEW_PORT": "port",
    "GYBVIEW_PAGE_SIZE": "page_size",
    "GYBVIEW_READ_TIMEOUT": "read_timeout",
    "GYBVIEW_LOG_LEVEL": "log_level",
}


@dataclass
class ViewerConfig:
    """Top-level viewer configuration."""
    accounts_dir: Path = field(default_factory=lambda: Path(DEFAULT_ACCOUNTS_DIR))
    host: str = "127.0.0.1"
    port: int = 8765
    page_size: int = 30
    read_timeout: float = 10.0  # seconds, per raw-file read during enrichment
    log_level: str = "WARNING"


def get_config_path(path: str | Path | None = None) -> Path:
    """Resolve config path: explicit arg, then $GYBVIEW_CONFIG, then ./gybview.yaml."""
    if path:
        return Path(path)
    env_path = os.environ.get("GYBVIEW_CONFIG")
    if env_path:
        return Path(env_path)
    return Path.cwd() / CONFIG_FILE


def _coerce(name: str, value):
    """Convert a raw YAML/env value to the type of field `name`."""
    try:
        if name == "accounts_dir":
            return Path(value).expanduser()
        if name in ("port", "page_size"):
            n = int(value)
            if n < 1:
                raise ValueError(f"must be >= 1, got {n}")
            return n
        if name == "read_timeout":
            t = float(value)
            if t <= 0:
                raise ValueError(f"must be > 0, got {t}")
            return t
        if name == "log_level":
            level = str(value).upper()
            if not isinstance(logging.getLevelName(level), int):
                raise ValueError(f"unknown level {value!r}")
            return level
        return str(value)
    except (TypeError, ValueError) as e:
        raise InvalidInput(f"Invalid config value for {name}: {e}") from e


def load_config(path: str | Path | None = None) -> ViewerConfig:
    """Load config from YAML (if present), then apply environment overrides."""
    config_path = get_config_path(path)
    data = {}
    if config_path.exists():
        with open(config_path) as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise InvalidInput(f"Invalid config file {config_path}: {e}") from e
        if not isinstance(data, dict):
            raise InvalidInput(f"Invalid config file {config_path}: expected a mapping")
    elif path:
        raise InvalidInput(f"Config file not found: {config_path}")

    known = {f.name for f in fields(ViewerConfig)}
    values = {}
    for key, value in data.items():
        key = key.replace("-", "_")
        if key not in known:
            raise InvalidInput(f"Unknown config key: {key}")
        values[key] = _coerce(key, value)

    for env_var, name in ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            values[name] = _coerce(name, value)

    return ViewerConfig(**values)


def setup_logging(level: str = "WARNING") -> None:
    """Configure root logging for CLI and web entry points."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
