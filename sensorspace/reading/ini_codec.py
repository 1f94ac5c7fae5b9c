"""Formato INI heredado: un único registro por buffer.

    [reading]
    DID=7
    DATE=2014-01-02 03:04:05
    MEAS=1;21.5
"""

from __future__ import annotations

import logging
from typing import List, Optional, Union

from sensorspace.errors import MalformedInputError, MultipleReadingsError

from .model import Measurement, Reading
from .timefmt import format_db_date, parse_db_date

logger = logging.getLogger(__name__)

INI_SECTION = "[reading]"
INI_DEVICE_ID = "DID="
INI_DATE = "DATE="
INI_MEAS = "MEAS="
INI_MEAS_DELIM = ";"


def _parse_int(text: str, field_name: str) -> int:
    try:
        return int(text.strip())
    except ValueError as exc:
        raise MalformedInputError(f"{field_name}: valor no numérico {text!r}") from exc


def _decode_lines(text: str, reading: Reading) -> None:
    sections = 0
    for lineno, raw_line in enumerate(text.split("\n"), start=1):
        line = raw_line.rstrip("\r")
        if not line.strip():
            continue

        if line.startswith("["):
            sections += 1
            if sections > 1:
                raise MultipleReadingsError(f"línea {lineno}: múltiples lecturas no soportadas")
            continue

        if line.startswith(INI_DEVICE_ID):
            reading.device_id = _parse_int(line[len(INI_DEVICE_ID):], "DID")
        elif line.startswith(INI_DATE):
            reading.timestamp = parse_db_date(line[len(INI_DATE):])
        elif line.startswith(INI_MEAS):
            body = line[len(INI_MEAS):]
            sensor_text, delim, value = body.partition(INI_MEAS_DELIM)
            if not delim:
                raise MalformedInputError(f"línea {lineno}: MEAS sin delimitador '{INI_MEAS_DELIM}'")
            meas = Measurement(sensor_id=_parse_int(sensor_text, "MEAS"), value=value)
            reading.add_measurement(meas)
            logger.debug("Nueva medición: sensor_id=%d meas=%s", meas.sensor_id, meas.value)
        else:
            logger.debug("Línea %d ignorada: %r", lineno, line)


def decode_ini(payload: Union[str, bytes], reading: Optional[Reading] = None) -> Reading:
    """Convierte un buffer INI en :class:`Reading`; libera la lectura si falla."""

    target = reading if reading is not None else Reading()
    try:
        text = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        _decode_lines(text, target)
    except UnicodeDecodeError as exc:
        target.release()
        raise MalformedInputError("payload no es UTF-8 válido") from exc
    except Exception:
        logger.error("Fallo al convertir la lectura desde INI")
        target.release()
        raise
    return target


def encode_ini(reading: Reading) -> str:
    lines: List[str] = [INI_SECTION]
    if reading.device_id:
        lines.append(f"{INI_DEVICE_ID}{reading.device_id}")
    if reading.timestamp is not None:
        lines.append(f"{INI_DATE}{format_db_date(reading.timestamp)}")
    for meas in reading.measurements:
        lines.append(f"{INI_MEAS}{meas.sensor_id}{INI_MEAS_DELIM}{meas.value}")
    return "\n".join(lines) + "\n"
