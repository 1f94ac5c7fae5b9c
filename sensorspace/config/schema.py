"""Typed configuration models implemented with dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

ENGINE_NONE = "none"
ENGINE_MYSQL = "mysql"
ENGINE_SQLITE = "sqlite"

PAYLOAD_FORMATS = ("json", "ini", "currentcost")
MAX_RRD_BINDINGS = 32


def _as_str(value: Any, field_name: str, *, optional: bool = False) -> Optional[str]:
    if value is None:
        if optional:
            return None
        raise ValueError(f"'{field_name}' es obligatorio")
    text = str(value).strip()
    if not text and not optional:
        raise ValueError(f"'{field_name}' no puede estar vacío")
    return text or None


def _as_int(value: Any, field_name: str) -> int:
    if value is None:
        raise ValueError(f"'{field_name}' es obligatorio")
    try:
        result = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"'{field_name}' debe ser un entero válido") from exc
    return result


def _as_optional_int(value: Any, field_name: str) -> Optional[int]:
    if value is None or value == "":
        return None
    return _as_int(value, field_name)


def _as_float(value: Any, field_name: str) -> float:
    if value is None:
        raise ValueError(f"'{field_name}' es obligatorio")
    try:
        result = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"'{field_name}' debe ser numérico") from exc
    return result


def _as_bool(value: Any, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in {"1", "true", "yes", "si", "sí"}:
        return True
    if text in {"0", "false", "no"}:
        return False
    return default


def _as_str_list(value: Any, field_name: str) -> List[str]:
    if value in (None, ""):
        return []
    if isinstance(value, str):
        return [s.strip() for s in value.split(",") if s.strip()]
    if isinstance(value, Sequence):
        return [str(item).strip() for item in value if str(item).strip()]
    raise ValueError(f"{field_name} debe ser una lista o cadena")


def engine_from_string(text: Optional[str]) -> str:
    """Traduce el texto de ``engine=`` a un motor conocido.

    La comparación no distingue mayúsculas y basta con que el texto contenga
    ``SQLITE`` o ``MYSQL``; cualquier otro valor selecciona ``none``.
    """

    upper = (text or "").upper()
    if "SQLITE" in upper:
        return ENGINE_SQLITE
    if "MYSQL" in upper:
        return ENGINE_MYSQL
    return ENGINE_NONE


@dataclass
class DBTransportSettings:
    engine: str = ENGINE_NONE
    db: str = ""
    host: str = "localhost"
    user: str = ""
    password: str = ""
    port: Optional[int] = None
    pool_recycle_s: int = 3600
    create_schema: bool = True

    # Líneas heredadas ``clave=valor`` y el atributo que rellenan.
    CONFIG_KEYS = {
        "db=": "db",
        "engine=": "engine",
        "host=": "host",
        "user=": "user",
        "pass=": "password",
    }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "DBTransportSettings":
        if not data:
            return cls()
        engine = engine_from_string(_as_str(data.get("engine"), "transport.engine", optional=True))
        db = _as_str(data.get("db", ""), "transport.db", optional=True) or ""
        if engine != ENGINE_NONE and not db:
            raise ValueError("transport.db es obligatorio cuando hay motor configurado")
        host = _as_str(data.get("host", "localhost"), "transport.host", optional=True) or "localhost"
        user = _as_str(data.get("user", ""), "transport.user", optional=True) or ""
        password = str(data.get("password", data.get("pass", "")) or "")
        port = _as_optional_int(data.get("port"), "transport.port")
        if port is not None and not 0 < port < 65536:
            raise ValueError("transport.port debe estar entre 1 y 65535")
        recycle = _as_int(data.get("pool_recycle_s", 3600), "transport.pool_recycle_s")
        if recycle <= 0:
            raise ValueError("transport.pool_recycle_s debe ser > 0")
        create_schema = _as_bool(data.get("create_schema"), True)
        return cls(
            engine=engine,
            db=db,
            host=host,
            user=user,
            password=password,
            port=port,
            pool_recycle_s=recycle,
            create_schema=create_schema,
        )

    def apply_config_line(self, line: str) -> bool:
        """Aplica una línea ``clave=valor``; ``False`` si la clave no es nuestra."""

        stripped = line.strip()
        for prefix, attr in self.CONFIG_KEYS.items():
            if stripped.startswith(prefix):
                value = stripped[len(prefix):].strip()
                if attr == "engine":
                    value = engine_from_string(value)
                setattr(self, attr, value)
                return True
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "engine": self.engine,
            "db": self.db,
            "host": self.host,
            "user": self.user,
            "password": self.password,
            "port": self.port,
            "pool_recycle_s": self.pool_recycle_s,
            "create_schema": self.create_schema,
        }


@dataclass
class RRDBindingSettings:
    file: str
    sensor_id: Optional[int] = None
    sensor_name: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RRDBindingSettings":
        file = _as_str(data.get("file"), "export.bindings[].file")
        sensor_id = _as_optional_int(data.get("sensor_id"), "export.bindings[].sensor_id")
        if sensor_id is not None and sensor_id <= 0:
            raise ValueError("export.bindings[].sensor_id debe ser > 0")
        sensor_name = _as_str(data.get("sensor_name"), "export.bindings[].sensor_name", optional=True)
        if sensor_id is None and sensor_name is None:
            raise ValueError("export.bindings[] requiere sensor_id o sensor_name")
        return cls(file=file, sensor_id=sensor_id, sensor_name=sensor_name)

    def to_dict(self) -> Dict[str, Any]:
        return {"file": self.file, "sensor_id": self.sensor_id, "sensor_name": self.sensor_name}


@dataclass
class ExportSettings:
    rrdtool_bin: str = "rrdtool"
    bindings: List[RRDBindingSettings] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "ExportSettings":
        if not data:
            return cls()
        rrdtool_bin = _as_str(data.get("rrdtool_bin", "rrdtool"), "export.rrdtool_bin") or "rrdtool"
        bindings_payload = data.get("bindings") or []
        if not isinstance(bindings_payload, Sequence) or isinstance(bindings_payload, str):
            raise ValueError("export.bindings debe ser una lista")
        bindings = [RRDBindingSettings.from_mapping(item) for item in bindings_payload]
        if len(bindings) > MAX_RRD_BINDINGS:
            raise ValueError(f"export.bindings admite como máximo {MAX_RRD_BINDINGS} entradas")
        return cls(rrdtool_bin=rrdtool_bin, bindings=bindings)

    def to_dict(self) -> Dict[str, Any]:
        return {"rrdtool_bin": self.rrdtool_bin, "bindings": [b.to_dict() for b in self.bindings]}


@dataclass
class CurrentCostSettings:
    """Identificadores que se asignan a las lecturas CC128, que no los transportan."""

    device_id: int = 0
    temperature_sensor_id: int = 0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "CurrentCostSettings":
        if not data:
            return cls()
        return cls(
            device_id=_as_int(data.get("device_id", 0), "currentcost.device_id"),
            temperature_sensor_id=_as_int(
                data.get("temperature_sensor_id", 0), "currentcost.temperature_sensor_id"
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"device_id": self.device_id, "temperature_sensor_id": self.temperature_sensor_id}


@dataclass
class SensorspaceConfig:
    payload_format: str = "json"
    sinks: List[str] = field(default_factory=lambda: ["db"])
    metrics_log_interval_s: float = 60.0
    transport: DBTransportSettings = field(default_factory=DBTransportSettings)
    export: ExportSettings = field(default_factory=ExportSettings)
    currentcost: CurrentCostSettings = field(default_factory=CurrentCostSettings)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "SensorspaceConfig":
        if not data:
            return cls()
        payload_format = (_as_str(data.get("payload_format", "json"), "payload_format") or "json").lower()
        if payload_format not in PAYLOAD_FORMATS:
            raise ValueError(f"payload_format debe ser uno de {', '.join(PAYLOAD_FORMATS)}")
        sinks = [s.lower() for s in _as_str_list(data.get("sinks"), "sinks")] or ["db"]
        interval = _as_float(data.get("metrics_log_interval_s", 60.0), "metrics_log_interval_s")
        if interval < 0:
            raise ValueError("metrics_log_interval_s debe ser >= 0")
        transport_payload = data.get("transport")
        if transport_payload is not None and not isinstance(transport_payload, Mapping):
            raise ValueError("El bloque 'transport' debe ser un mapa")
        export_payload = data.get("export")
        if export_payload is not None and not isinstance(export_payload, Mapping):
            raise ValueError("El bloque 'export' debe ser un mapa")
        currentcost_payload = data.get("currentcost")
        if currentcost_payload is not None and not isinstance(currentcost_payload, Mapping):
            raise ValueError("El bloque 'currentcost' debe ser un mapa")
        return cls(
            payload_format=payload_format,
            sinks=sinks,
            metrics_log_interval_s=interval,
            transport=DBTransportSettings.from_mapping(transport_payload),
            export=ExportSettings.from_mapping(export_payload),
            currentcost=CurrentCostSettings.from_mapping(currentcost_payload),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "payload_format": self.payload_format,
            "sinks": list(self.sinks),
            "metrics_log_interval_s": self.metrics_log_interval_s,
            "transport": self.transport.to_dict(),
            "export": self.export.to_dict(),
            "currentcost": self.currentcost.to_dict(),
        }
