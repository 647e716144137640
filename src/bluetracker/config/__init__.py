"""Configuration loader for bluetracker.

Loads settings from a YAML file with built-in defaults. Supports environment
variable overrides using the BLUETRACKER_ prefix with double-underscore
nesting (e.g., BLUETRACKER_STORE__HASH_ADDRESSES=true).
"""

from __future__ import annotations

import os
import pathlib
from datetime import timedelta
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from bluetracker.exceptions import ConfigError


# ---------------------------------------------------------------------------
# Config sub-models
# ---------------------------------------------------------------------------

class StoreConfig(BaseModel):
    db_path: str = "~/.bluetracker/bluetooth_devices.db"
    hash_addresses: bool = False

    @property
    def resolved_db_path(self) -> pathlib.Path:
        return pathlib.Path(self.db_path).expanduser()


class ManufacturersConfig(BaseModel):
    table_path: str | None = None


class ScanConfig(BaseModel):
    latitude: float | None = None
    longitude: float | None = None
    output_dir: str = "./scans"


class AnalyticsConfig(BaseModel):
    visit_gap_minutes: int = Field(default=30, ge=1)

    @property
    def visit_gap(self) -> timedelta:
        return timedelta(minutes=self.visit_gap_minutes)


class LoggingConfig(BaseModel):
    level: str = "INFO"


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

class Settings(BaseModel):
    store: StoreConfig = Field(default_factory=StoreConfig)
    manufacturers: ManufacturersConfig = Field(default_factory=ManufacturersConfig)
    scan: ScanConfig = Field(default_factory=ScanConfig)
    analytics: AnalyticsConfig = Field(default_factory=AnalyticsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# ---------------------------------------------------------------------------
# Deep merge helper
# ---------------------------------------------------------------------------

def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *override* into *base*, returning a new dict."""
    merged = dict(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------

_ENV_PREFIX = "BLUETRACKER_"


def _collect_env_overrides() -> dict[str, Any]:
    """Collect BLUETRACKER_* env vars and build a nested dict.

    Double-underscore separates nesting levels.
    Example: BLUETRACKER_STORE__DB_PATH=/data/bt.db
    becomes  {"store": {"db_path": "/data/bt.db"}}
    """
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(_ENV_PREFIX):
            continue
        parts = key[len(_ENV_PREFIX) :].lower().split("__")
        current = overrides
        for part in parts[:-1]:
            current = current.setdefault(part, {})
        # Attempt numeric coercion
        final_value: Any = value
        try:
            final_value = int(value)
        except ValueError:
            try:
                final_value = float(value)
            except ValueError:
                if value.lower() in ("true", "false"):
                    final_value = value.lower() == "true"
        current[parts[-1]] = final_value
    return overrides


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_BUILTIN_DEFAULTS_PATH = pathlib.Path(__file__).resolve().parents[3] / "config" / "defaults.yaml"


def _read_yaml(path: pathlib.Path) -> dict[str, Any]:
    try:
        with open(path) as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}", path=str(path)) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping", path=str(path))
    return data


def load_settings(
    config_path: pathlib.Path | None = None,
) -> Settings:
    """Load settings with layered precedence: defaults < file < env vars.

    Parameters
    ----------
    config_path:
        Path to a YAML config file. If ``None``, the built-in defaults file
        is used when present. An explicit path that does not exist is a
        ``ConfigError``.
    """
    base: dict[str, Any] = {}

    if config_path is not None:
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}", path=str(config_path))
        base = _deep_merge(base, _read_yaml(config_path))
    elif _BUILTIN_DEFAULTS_PATH.exists():
        base = _deep_merge(base, _read_yaml(_BUILTIN_DEFAULTS_PATH))

    env_overrides = _collect_env_overrides()
    if env_overrides:
        base = _deep_merge(base, env_overrides)

    try:
        return Settings(**base)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
