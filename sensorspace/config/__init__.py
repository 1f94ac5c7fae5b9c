"""Configuration helpers for sensorspace."""

from .schema import (
    CurrentCostSettings,
    DBTransportSettings,
    ExportSettings,
    RRDBindingSettings,
    SensorspaceConfig,
    engine_from_string,
)
from .store import (
    apply_transport_lines,
    default_config,
    load_config,
    load_env_file,
    save_config,
    transport_settings_from_env,
)

__all__ = [
    "CurrentCostSettings",
    "DBTransportSettings",
    "ExportSettings",
    "RRDBindingSettings",
    "SensorspaceConfig",
    "apply_transport_lines",
    "default_config",
    "engine_from_string",
    "load_config",
    "load_env_file",
    "save_config",
    "transport_settings_from_env",
]
