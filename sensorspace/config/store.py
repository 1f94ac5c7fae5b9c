"""Helpers to load, validate and persist configuration files."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

import yaml
from dotenv import dotenv_values

from .schema import DBTransportSettings, SensorspaceConfig

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).resolve().parent
DEFAULT_CONFIG_PATH = Path(os.getenv("SENSORSPACE_CONFIG", CONFIG_DIR / "sensorspace.yaml"))


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(path)
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping at {path}, found {type(data).__name__}")
    return data


def _write_yaml(path: Path, payload: Mapping[str, Any]):
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        yaml.safe_dump(payload, fh, sort_keys=False, allow_unicode=True)


def load_config(path: Optional[Path] = None) -> SensorspaceConfig:
    """Read and validate sensorspace.yaml."""

    cfg_path = path or DEFAULT_CONFIG_PATH
    raw = _read_yaml(cfg_path)
    return SensorspaceConfig.from_mapping(raw)


def save_config(config: SensorspaceConfig, path: Optional[Path] = None):
    """Persist the configuration using the canonical schema."""

    cfg_path = path or DEFAULT_CONFIG_PATH
    _write_yaml(cfg_path, config.to_dict())


def apply_transport_lines(settings: DBTransportSettings, lines: Iterable[str]) -> List[str]:
    """Feed legacy ``key=value`` lines to ``settings``.

    Returns the lines no transport key matched so other handlers can try them.
    """

    leftover: List[str] = []
    for line in lines:
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        if not settings.apply_config_line(line):
            leftover.append(line)
    if leftover:
        logger.debug("%d líneas de configuración sin procesar por el transporte", len(leftover))
    return leftover


def transport_settings_from_env(
    env: Mapping[str, Any], base: Optional[DBTransportSettings] = None
) -> DBTransportSettings:
    """Overlay ``SENSORSPACE_DB_*`` variables on top of ``base``."""

    payload = (base or DBTransportSettings()).to_dict()
    mapping = {
        "SENSORSPACE_DB_ENGINE": "engine",
        "SENSORSPACE_DB_NAME": "db",
        "SENSORSPACE_DB_HOST": "host",
        "SENSORSPACE_DB_USER": "user",
        "SENSORSPACE_DB_PASS": "password",
        "SENSORSPACE_DB_PORT": "port",
        "SENSORSPACE_DB_POOL_RECYCLE_S": "pool_recycle_s",
    }
    for env_key, field_name in mapping.items():
        value = env.get(env_key)
        if value not in (None, ""):
            payload[field_name] = value
    return DBTransportSettings.from_mapping(payload)


def default_config() -> SensorspaceConfig:
    """Return a template configuration backed by a local SQLite file."""

    payload = {
        "payload_format": "json",
        "sinks": ["db"],
        "metrics_log_interval_s": 60.0,
        "transport": {"engine": "sqlite", "db": "sensorspace.db"},
        "export": {"rrdtool_bin": "rrdtool", "bindings": []},
    }
    return SensorspaceConfig.from_mapping(payload)


def load_env_file(path: Path) -> Mapping[str, str]:
    """Load key/value pairs from a dotenv file."""

    values = dotenv_values(str(path))
    return {k: v for k, v in values.items() if v is not None}
