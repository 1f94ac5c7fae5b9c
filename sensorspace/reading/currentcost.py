"""Decodificador de mensajes XML del monitor de energía CurrentCost CC128."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from datetime import datetime
from typing import Optional, Union

from sensorspace.errors import MalformedInputError, NoMatchError

from .model import Measurement, MeasurementType, Reading

logger = logging.getLogger(__name__)

CC_MSG_MARKER = "<msg><src>CC128-v"
CC_HISTORY_TAG = "hist"
CC_MAX_CHANNELS = 10
TEMPERATURE_NAME = "Temperature (ºC)"


def is_currentcost_message(text: str) -> bool:
    return CC_MSG_MARKER in text


def _parse_root(text: str) -> ET.Element:
    start = text.find("<msg>")
    end = text.find("</msg>")
    if start < 0 or end < 0:
        raise MalformedInputError("mensaje CurrentCost incompleto")
    try:
        return ET.fromstring(text[start : end + len("</msg>")])
    except ET.ParseError as exc:
        raise MalformedInputError(f"XML CurrentCost inválido: {exc}") from exc


def _int_text(node: Optional[ET.Element], default: int = 0) -> int:
    if node is None or node.text is None:
        return default
    try:
        return int(node.text.strip())
    except ValueError:
        return default


def decode_currentcost(
    payload: Union[str, bytes],
    reading: Optional[Reading] = None,
    *,
    device_id: int = 0,
    temperature_sensor_id: int = 0,
    now: Optional[datetime] = None,
) -> Reading:
    """Convierte un mensaje CC128 en una lectura con temperatura y potencia.

    El mensaje no identifica el dispositivo ni el sensor de temperatura;
    ambos se toman de ``device_id`` y ``temperature_sensor_id``.
    Los paquetes históricos (``<hist>``) se descartan con :class:`NoMatchError`.
    """

    text = payload.decode("utf-8", errors="replace") if isinstance(payload, bytes) else payload
    if not is_currentcost_message(text):
        raise NoMatchError("mensaje CurrentCost no encontrado")

    root = _parse_root(text)
    if root.find(CC_HISTORY_TAG) is not None:
        logger.warning("Descartando paquete histórico CurrentCost")
        raise NoMatchError("paquetes históricos no soportados")

    target = reading if reading is not None else Reading()
    try:
        target.timestamp = (now or datetime.now()).replace(microsecond=0)
        if device_id:
            target.device_id = device_id

        tmpr = root.findtext("tmpr")
        if tmpr is not None:
            try:
                celsius = float(tmpr)
            except ValueError as exc:
                raise MalformedInputError(f"temperatura inválida {tmpr!r}") from exc
            target.add_measurement(
                Measurement(
                    sensor_id=temperature_sensor_id,
                    type=MeasurementType.TEMPERATURE,
                    name=TEMPERATURE_NAME,
                    value=f"{celsius:.1f}",
                )
            )
            logger.debug("Nueva medición de temperatura: %.1f degC", celsius)

        sensor_id = _int_text(root.find("id"))
        sensor_index = _int_text(root.find("sensor"))
        for channel in range(1, CC_MAX_CHANNELS):
            watts_node = root.find(f"ch{channel}/watts")
            if watts_node is None:
                continue
            watts = _int_text(watts_node)
            target.add_measurement(
                Measurement(
                    sensor_id=sensor_id,
                    type=MeasurementType.POWER,
                    name=f"Power Sensor {sensor_index} (Watts)",
                    value=str(watts),
                )
            )
            logger.debug("Nueva medición de potencia (ch%d): %d watts", channel, watts)
    except Exception:
        target.release()
        raise
    return target
