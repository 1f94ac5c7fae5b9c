"""Tests for the JSON codec and its scanning primitives."""

from __future__ import annotations

from datetime import datetime

import pytest

from sensorspace.errors import CapacityExceededError, MalformedInputError, NoMatchError, WriteError
from sensorspace.reading import (
    JsonKind,
    Measurement,
    MeasurementType,
    Reading,
    decode_json,
    encode_json,
    encoded_length,
    iter_json_array,
    json_array_element,
    json_get_key_value,
)

EXAMPLE = '{"date":"2014-01-02 03:04:05","device":{"id":"7"},"sensors":[{"id":"1","name":"T","meas":"21.5"}]}'


def test_decode_reference_payload():
    reading = decode_json(EXAMPLE)

    assert reading.device_id == 7
    assert reading.timestamp == datetime(2014, 1, 2, 3, 4, 5)
    assert reading.count == 1
    meas = reading.measurements[0]
    assert (meas.sensor_id, meas.name, meas.value) == (1, "T", "21.5")


def test_decode_accepts_bytes_and_whitespace():
    payload = b'{ "device" : { "id" : "3", "name" : "cocina" },\n  "sensors" : [ { "id" : "9", "meas" : "1" } ] }'

    reading = decode_json(payload)

    assert reading.device_id == 3
    assert reading.name == "cocina"
    assert reading.measurements[0].sensor_id == 9


def test_nested_meas_object_does_not_cut_element_boundary():
    payload = (
        '{"device":{"id":"7"},"sensors":['
        '{"id":"2","meas":{"v":"1","u":{"x":"]"}},"name":"N"},'
        '{"id":"3","meas":"4"}]}'
    )

    reading = decode_json(payload)

    assert reading.count == 2
    first, second = reading.measurements
    assert first.value == '{"v":"1","u":{"x":"]"}}'
    assert first.name == "N"
    assert (second.sensor_id, second.value) == (3, "4")


def test_missing_top_level_keys_are_left_unset():
    reading = decode_json('{"device":{"id":"5"}}')

    assert reading.device_id == 5
    assert reading.timestamp is None
    assert reading.count == 0


def test_key_lookup_only_matches_top_level():
    value = json_get_key_value('{"device":{"id":"7"},"id":"1"}', "id")

    assert value.kind is JsonKind.STRING
    assert value.text == "1"
    with pytest.raises(NoMatchError):
        json_get_key_value('{"device":{"name":"x"}}', "name")


def test_key_lookup_classifies_containers():
    value = json_get_key_value('{"sensors":[{"id":"1"},{"id":"2"}]}', "sensors")

    assert value.kind is JsonKind.ARRAY
    assert value.text == '[{"id":"1"},{"id":"2"}]'


def test_array_element_past_end_is_rejected():
    array = '[{"id":"1"}, {"id":"2"}]'

    assert json_array_element(array, 1) == '{"id":"2"}'
    with pytest.raises(NoMatchError):
        json_array_element(array, 2)
    assert list(iter_json_array("[]")) == []


def test_missing_sensor_id_is_fatal_and_releases_reading():
    reading = Reading()

    with pytest.raises(NoMatchError):
        decode_json('{"device":{"id":"7"},"sensors":[{"id":"1","meas":"2"},{"meas":"3"}]}', reading)

    assert reading.count == 0


@pytest.mark.parametrize(
    "payload",
    [
        '{"device":{"id":"7"},"sensors":[{"id":"1","meas":"2"}',
        '{"device":{"id":"siete"}}',
        '{"device":{"id":"-"}}',
        '{"device":"7"}',
        '{"sensors":["1"]}',
        '{"sensors":[{"id":"1","type":"presion"}]}',
    ],
)
def test_malformed_nested_structure_is_fatal(payload):
    with pytest.raises(MalformedInputError):
        decode_json(payload)


def test_decode_rejects_more_than_sixty_four_sensors(caplog):
    sensors = ",".join(f'{{"id":"{idx}","meas":"1"}}' for idx in range(1, 66))
    reading = Reading()

    with pytest.raises(CapacityExceededError):
        decode_json(f'{{"device":{{"id":"1"}},"sensors":[{sensors}]}}', reading)

    assert reading.count == 0
    errors = [record.getMessage() for record in caplog.records if record.levelname == "ERROR"]
    assert errors == ["Fallo al convertir la lectura desde JSON"]


def test_decode_parses_measurement_type():
    reading = decode_json('{"sensors":[{"id":"4","type":"power","meas":"12"}]}')

    assert reading.measurements[0].type is MeasurementType.POWER


def test_encode_omits_empty_fields():
    reading = Reading(device_id=7, timestamp=datetime(2014, 1, 2, 3, 4, 5))
    reading.add_measurement(Measurement(sensor_id=1, value="21.5"))
    reading.add_measurement(Measurement(name="solo-nombre"))

    text = encode_json(reading)

    assert text == (
        '{"date":"2014-01-02 03:04:05","device":{"id":"7"},'
        '"sensors":[{"id":"1","meas":"21.5"},{"name":"solo-nombre"}]}'
    )


def test_round_trip_preserves_valid_reading():
    original = Reading(device_id=12, name="garaje", timestamp=datetime(2024, 2, 29, 23, 59, 59))
    original.add_measurement(Measurement(sensor_id=1, name="Temperatura", value="18.25"))
    original.add_measurement(Measurement(sensor_id=2, name="Potencia \"red\"", value="1500"))

    text = encode_json(original)
    decoded = decode_json(text)

    assert decoded.device_id == original.device_id
    assert decoded.name == original.name
    assert decoded.timestamp == original.timestamp
    assert [(m.sensor_id, m.name, m.value) for m in decoded.measurements] == [
        (m.sensor_id, m.name, m.value) for m in original.measurements
    ]
    assert encode_json(decoded) == text


def test_round_trip_keeps_negative_identifiers():
    reading = Reading(device_id=-3, timestamp=datetime(2024, 1, 1, 0, 0, 0))
    reading.add_measurement(Measurement(sensor_id=-1, value="1"))
    assert reading.validate(now=datetime(2024, 1, 15)) == []

    decoded = decode_json(encode_json(reading))

    assert decoded.device_id == -3
    assert [(m.sensor_id, m.value) for m in decoded.measurements] == [(-1, "1")]


def test_encode_raises_when_buffer_too_small():
    reading = Reading(device_id=1, name="x" * 100)

    text = encode_json(reading)
    assert encode_json(reading, buffer_size=encoded_length(text)) == text
    with pytest.raises(WriteError):
        encode_json(reading, buffer_size=encoded_length(text) - 1)


def test_encoded_length_counts_utf8_bytes_and_terminator():
    assert encoded_length("ºC") == 4
