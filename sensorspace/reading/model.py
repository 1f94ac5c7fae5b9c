"""Modelo canónico de lecturas y mediciones."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import List, Optional

from sensorspace.errors import NoMatchError

from .bounded import BoundedList
from .timefmt import format_db_date

logger = logging.getLogger(__name__)

MEAS_VALUE_MAX_LEN = 32
NAME_MAX_LEN = 128
MAX_MEASUREMENTS = 64


class MeasurementType(IntEnum):
    UNKNOWN = 0
    TEMPERATURE = 1
    CURRENT = 2
    VOLTAGE = 3
    POWER = 4
    FLOW = 5

    @classmethod
    def parse(cls, value: object) -> "MeasurementType":
        """Acepta el código numérico o el nombre (``"power"``, ``"POWER"``)."""

        if isinstance(value, MeasurementType):
            return value
        text = str(value).strip()
        if text.isdigit():
            return cls(int(text))
        try:
            return cls[text.upper()]
        except KeyError as exc:
            raise ValueError(f"tipo de medición desconocido: {value!r}") from exc


@dataclass
class Measurement:
    """Valor de un sensor dentro de una lectura.

    ``value`` se guarda como texto crudo; su interpretación depende del backend.
    """

    sensor_id: int = 0
    type: MeasurementType = MeasurementType.UNKNOWN
    name: str = ""
    value: str = ""


@dataclass
class Reading:
    """Instantánea de las mediciones de un dispositivo."""

    reading_id: int = 0
    timestamp: Optional[datetime] = None
    device_id: int = 0
    name: str = ""
    measurements: BoundedList[Measurement] = field(
        default_factory=lambda: BoundedList(MAX_MEASUREMENTS, label="reading.measurements")
    )

    @property
    def count(self) -> int:
        return len(self.measurements)

    def add_measurement(self, measurement: Optional[Measurement] = None) -> Measurement:
        """Añade una medición (vacía si no se indica) y la devuelve."""

        return self.measurements.append(measurement if measurement is not None else Measurement())

    def validate(self, now: Optional[datetime] = None) -> List[str]:
        """Normaliza la fecha y devuelve la lista de errores encontrados."""

        errors: List[str] = []
        current = now or datetime.now()
        ts = self.timestamp
        if ts is None or ts.month != current.month or ts.year != current.year:
            logger.warning("Fecha inválida o ausente (%s); se usa la hora actual.", ts)
            self.timestamp = current.replace(microsecond=0)

        if self.device_id == 0:
            errors.append("device_id inválido")

        if len(self.name) > NAME_MAX_LEN:
            errors.append(f"nombre de dispositivo excede {NAME_MAX_LEN} caracteres")

        for idx, meas in enumerate(self.measurements):
            if meas.sensor_id == 0:
                errors.append(f"measurements[{idx}]: sensor_id inválido")
            if not meas.value:
                errors.append(f"measurements[{idx}]: valor vacío")
            elif len(meas.value) > MEAS_VALUE_MAX_LEN:
                errors.append(f"measurements[{idx}]: valor excede {MEAS_VALUE_MAX_LEN} caracteres")
            if len(meas.name) > NAME_MAX_LEN:
                errors.append(f"measurements[{idx}]: nombre excede {NAME_MAX_LEN} caracteres")

        for message in errors:
            logger.error("Lectura inválida: %s", message)
        return errors

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        return not self.validate(now)

    def release(self) -> None:
        """Libera todas las mediciones; puede invocarse más de una vez."""

        self.measurements.clear()

    # Búsquedas -----------------------------------------------------------------
    def find_by_sensor_id(self, sensor_id: int) -> int:
        for idx, meas in enumerate(self.measurements):
            if meas.sensor_id == sensor_id:
                return idx
        raise NoMatchError(f"sin medición para sensor_id={sensor_id}")

    def find_by_name(self, name: str) -> int:
        for idx, meas in enumerate(self.measurements):
            if meas.name == name:
                return idx
        raise NoMatchError(f"sin medición con nombre {name!r}")

    def measurement_value_by_sensor_id(self, sensor_id: int) -> str:
        return self.measurements[self.find_by_sensor_id(sensor_id)].value

    def measurement_value_by_name(self, name: str) -> str:
        return self.measurements[self.find_by_name(name)].value

    def describe(self) -> str:
        """Representación legible, pensada para logs de depuración."""

        date_text = format_db_date(self.timestamp) if self.timestamp else "-"
        lines = [
            "**** New Reading ****",
            f"Device: device_id={self.device_id} name={self.name or '-'}",
            f"Reading Date: {date_text}",
            "Measurements:",
        ]
        for meas in self.measurements:
            lines.append(
                f"\tsensor_id={meas.sensor_id} type={meas.type.name.lower()} "
                f"name={meas.name or '-'} value={meas.value}"
            )
        return "\n".join(lines)
