"""Modelo de lecturas y códecs de texto (JSON, INI, CurrentCost)."""

from .accumulator import FrameAccumulator
from .bounded import BoundedList
from .currentcost import decode_currentcost, is_currentcost_message
from .ini_codec import decode_ini, encode_ini
from .json_codec import (
    FIELD_POLICY,
    FieldPolicy,
    JsonKind,
    JsonValue,
    decode_json,
    encode_json,
    encoded_length,
    iter_json_array,
    json_array_element,
    json_get_key_value,
)
from .model import MAX_MEASUREMENTS, Measurement, MeasurementType, Reading
from .timefmt import format_db_date, parse_db_date, to_epoch

__all__ = [
    "BoundedList",
    "FIELD_POLICY",
    "FieldPolicy",
    "FrameAccumulator",
    "JsonKind",
    "JsonValue",
    "MAX_MEASUREMENTS",
    "Measurement",
    "MeasurementType",
    "Reading",
    "decode_currentcost",
    "decode_ini",
    "decode_json",
    "encode_ini",
    "encode_json",
    "encoded_length",
    "format_db_date",
    "is_currentcost_message",
    "iter_json_array",
    "json_array_element",
    "json_get_key_value",
    "parse_db_date",
    "to_epoch",
]
