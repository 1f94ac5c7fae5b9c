"""Conversión de lecturas desde/hacia JSON.

El decodificador no carga el documento completo: extrae cada clave buscando
su forma entrecomillada en el nivel superior del objeto y delimita el valor
con un escaneo balanceado por profundidad, de modo que arrays y objetos
anidados no cortan el contenedor en un límite interior.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, Optional, Tuple, Union

from sensorspace.errors import MalformedInputError, NoMatchError, WriteError

from .model import Measurement, MeasurementType, Reading
from .timefmt import format_db_date, parse_db_date

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 2048

_WHITESPACE = " \t\r\n"


class JsonKind(Enum):
    STRING = "string"
    ARRAY = "array"
    OBJECT = "object"


_OPENERS: Dict[str, Tuple[JsonKind, str]] = {
    '"': (JsonKind.STRING, '"'),
    "[": (JsonKind.ARRAY, "]"),
    "{": (JsonKind.OBJECT, "}"),
}


@dataclass(frozen=True)
class JsonValue:
    """Valor extraído: el contenido para cadenas, el bloque completo para contenedores."""

    kind: JsonKind
    text: str


class FieldPolicy(Enum):
    OPTIONAL = "optional"
    REQUIRED = "required"


# Ausencia de una clave: OPTIONAL la deja sin asignar, REQUIRED aborta la
# decodificación. Un valor presente pero mal formado aborta siempre.
FIELD_POLICY: Dict[str, FieldPolicy] = {
    "date": FieldPolicy.OPTIONAL,
    "device": FieldPolicy.OPTIONAL,
    "sensors": FieldPolicy.OPTIONAL,
    "device.id": FieldPolicy.OPTIONAL,
    "device.name": FieldPolicy.OPTIONAL,
    "sensors[].id": FieldPolicy.REQUIRED,
    "sensors[].name": FieldPolicy.OPTIONAL,
    "sensors[].meas": FieldPolicy.OPTIONAL,
    "sensors[].type": FieldPolicy.OPTIONAL,
}


# Escaneo -----------------------------------------------------------------------
def _skip_whitespace(text: str, pos: int) -> int:
    while pos < len(text) and text[pos] in _WHITESPACE:
        pos += 1
    return pos


def _string_end(text: str, start: int) -> int:
    """Índice de la comilla que cierra la cadena abierta en ``start``."""

    pos = start + 1
    while pos < len(text):
        char = text[pos]
        if char == "\\":
            pos += 2
            continue
        if char == '"':
            return pos
        pos += 1
    raise MalformedInputError(f"cadena sin cerrar en la posición {start}")


def _container_end(text: str, start: int) -> int:
    """Índice del delimitador que cierra el contenedor que empieza en ``start``."""

    opener = text[start]
    if opener not in _OPENERS:
        raise MalformedInputError(f"valor no soportado {opener!r} en la posición {start}")
    if opener == '"':
        return _string_end(text, start)

    closer = _OPENERS[opener][1]
    depth = 0
    pos = start
    while pos < len(text):
        char = text[pos]
        if char == '"':
            pos = _string_end(text, pos) + 1
            continue
        if char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return pos
        pos += 1
    raise MalformedInputError(f"contenedor {opener!r} sin cerrar en la posición {start}")


def _value_at(text: str, pos: int) -> Tuple[JsonValue, int]:
    pos = _skip_whitespace(text, pos)
    if pos >= len(text):
        raise MalformedInputError("valor ausente tras el delimitador")
    char = text[pos]
    if char not in _OPENERS:
        raise MalformedInputError(f"valor no soportado {char!r} en la posición {pos}")
    kind = _OPENERS[char][0]
    end = _container_end(text, pos)
    if kind is JsonKind.STRING:
        return JsonValue(kind, _unescape(text[pos : end + 1])), end + 1
    return JsonValue(kind, text[pos : end + 1]), end + 1


def _unescape(quoted: str) -> str:
    if "\\" not in quoted:
        return quoted[1:-1]
    try:
        return json.loads(quoted)
    except ValueError as exc:
        raise MalformedInputError(f"secuencia de escape inválida en {quoted!r}") from exc


def json_get_key_value(text: str, key: str) -> JsonValue:
    """Devuelve el valor asociado a ``key`` en el nivel superior del objeto ``text``.

    Lanza :class:`NoMatchError` si la clave no existe y
    :class:`MalformedInputError` si la estructura está rota.
    """

    start = _skip_whitespace(text, 0)
    if start >= len(text) or text[start] != "{":
        raise MalformedInputError("se esperaba un objeto JSON")

    target = f'"{key}"'
    depth = 0
    pos = start
    while pos < len(text):
        char = text[pos]
        if char == '"':
            end = _string_end(text, pos)
            if depth == 1 and text[pos : end + 1] == target:
                colon = _skip_whitespace(text, end + 1)
                if colon < len(text) and text[colon] == ":":
                    value, _ = _value_at(text, colon + 1)
                    return value
            pos = end + 1
            continue
        if char in "{[":
            depth += 1
        elif char in "}]":
            depth -= 1
            if depth == 0:
                break
        pos += 1
    raise NoMatchError(f"clave {key!r} no encontrada")


def iter_json_array(array_text: str) -> Iterator[str]:
    """Itera los bloques de primer nivel de un array en orden."""

    pos = _skip_whitespace(array_text, 0)
    if pos >= len(array_text) or array_text[pos] != "[":
        raise MalformedInputError("se esperaba un array JSON")
    pos = _skip_whitespace(array_text, pos + 1)
    if pos < len(array_text) and array_text[pos] == "]":
        return
    while pos < len(array_text):
        end = _container_end(array_text, pos)
        yield array_text[pos : end + 1]
        pos = _skip_whitespace(array_text, end + 1)
        if pos >= len(array_text):
            break
        if array_text[pos] == "]":
            return
        if array_text[pos] != ",":
            raise MalformedInputError(f"se esperaba ',' entre elementos en la posición {pos}")
        pos = _skip_whitespace(array_text, pos + 1)
    raise MalformedInputError("array sin cerrar")


def json_array_element(array_text: str, index: int) -> str:
    """Bloque ``index`` del array; un índice fuera de rango es un rechazo."""

    if index < 0:
        raise NoMatchError(f"índice negativo {index}")
    for current, block in enumerate(iter_json_array(array_text)):
        if current == index:
            return block
    raise NoMatchError(f"el array no tiene elemento {index}")


# Codificación ------------------------------------------------------------------
def encode_json(reading: Reading, buffer_size: int = DEFAULT_BUFFER_SIZE) -> str:
    """Serializa ``reading`` como JSON compacto.

    Lanza :class:`WriteError` si el resultado (más el terminador) no cabe en
    ``buffer_size`` bytes.
    """

    payload: Dict[str, object] = {
        "date": format_db_date(reading.timestamp) if reading.timestamp else "",
    }
    if reading.device_id:
        device: Dict[str, str] = {"id": str(reading.device_id)}
        if reading.name:
            device["name"] = reading.name
        payload["device"] = device

    sensors = []
    for meas in reading.measurements:
        element: Dict[str, str] = {}
        if meas.sensor_id:
            element["id"] = str(meas.sensor_id)
        if meas.name:
            element["name"] = meas.name
        if meas.value:
            element["meas"] = meas.value
        sensors.append(element)
    payload["sensors"] = sensors

    text = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
    used = encoded_length(text)
    if used > buffer_size:
        logger.error("No se pudo convertir la lectura a JSON: %d bytes > buffer de %d", used, buffer_size)
        raise WriteError(f"buffer de {buffer_size} bytes insuficiente ({used} necesarios)")
    return text


def encoded_length(text: str) -> int:
    """Bytes ocupados por ``text`` en UTF-8 incluyendo el terminador."""

    return len(text.encode("utf-8")) + 1


# Decodificación ----------------------------------------------------------------
def _lookup(text: str, key: str, policy_key: str) -> Optional[JsonValue]:
    try:
        return json_get_key_value(text, key)
    except NoMatchError:
        if FIELD_POLICY[policy_key] is FieldPolicy.REQUIRED:
            raise
        logger.debug("Clave %s ausente; se deja sin asignar", policy_key)
        return None


def _expect(value: JsonValue, kind: JsonKind, field_name: str) -> str:
    if value.kind is not kind:
        raise MalformedInputError(f"{field_name}: se esperaba {kind.value}, se obtuvo {value.kind.value}")
    return value.text


def _parse_id(text: str, field_name: str) -> int:
    try:
        return int(text.strip())
    except ValueError as exc:
        raise MalformedInputError(f"{field_name}: identificador no numérico {text!r}") from exc


def _decode_measurement(block: str, meas: Measurement) -> None:
    value = _lookup(block, "id", "sensors[].id")
    if value is not None:
        meas.sensor_id = _parse_id(_expect(value, JsonKind.STRING, "sensors[].id"), "sensors[].id")

    value = _lookup(block, "name", "sensors[].name")
    if value is not None:
        meas.name = _expect(value, JsonKind.STRING, "sensors[].name")

    value = _lookup(block, "meas", "sensors[].meas")
    if value is not None:
        # Un contenedor anidado se conserva como texto crudo.
        meas.value = value.text

    value = _lookup(block, "type", "sensors[].type")
    if value is not None:
        try:
            meas.type = MeasurementType.parse(_expect(value, JsonKind.STRING, "sensors[].type"))
        except ValueError as exc:
            raise MalformedInputError(str(exc)) from exc


def _decode_into(text: str, reading: Reading) -> None:
    value = _lookup(text, "date", "date")
    if value is not None:
        reading.timestamp = parse_db_date(_expect(value, JsonKind.STRING, "date"))

    value = _lookup(text, "device", "device")
    if value is not None:
        device = _expect(value, JsonKind.OBJECT, "device")
        dev_id = _lookup(device, "id", "device.id")
        if dev_id is not None:
            reading.device_id = _parse_id(_expect(dev_id, JsonKind.STRING, "device.id"), "device.id")
        dev_name = _lookup(device, "name", "device.name")
        if dev_name is not None:
            reading.name = _expect(dev_name, JsonKind.STRING, "device.name")

    value = _lookup(text, "sensors", "sensors")
    if value is None:
        return
    sensors = _expect(value, JsonKind.ARRAY, "sensors")
    for index, block in enumerate(iter_json_array(sensors)):
        if not block.startswith("{"):
            raise MalformedInputError(f"sensors[{index}]: se esperaba un objeto")
        meas = Measurement()
        _decode_measurement(block, meas)
        reading.add_measurement(meas)


def decode_json(payload: Union[str, bytes], reading: Optional[Reading] = None) -> Reading:
    """Convierte un payload JSON en :class:`Reading`.

    Ante cualquier error la lectura se libera antes de propagar la excepción.
    """

    target = reading if reading is not None else Reading()
    try:
        text = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        _decode_into(text, target)
    except UnicodeDecodeError as exc:
        target.release()
        raise MalformedInputError("payload no es UTF-8 válido") from exc
    except Exception:
        logger.error("Fallo al convertir la lectura desde JSON")
        target.release()
        raise
    return target
