"""Tests for the CurrentCost CC128 decoder and the serial frame accumulator."""

from __future__ import annotations

from datetime import datetime

import pytest

from sensorspace.errors import MalformedInputError, NoMatchError
from sensorspace.reading import (
    FrameAccumulator,
    MeasurementType,
    Reading,
    decode_currentcost,
    is_currentcost_message,
)

CC_MESSAGE = (
    "<msg><src>CC128-v0.11</src><dsb>00089</dsb><time>13:02:39</time>"
    "<tmpr>18.7</tmpr><sensor>1</sensor><id>01234</id><type>1</type>"
    "<ch1><watts>00345</watts></ch1><ch2><watts>02151</watts></ch2>"
    "<ch3><watts>00000</watts></ch3></msg>"
)


def test_decode_realtime_message():
    now = datetime(2024, 5, 10, 8, 0, 0, 5000)

    reading = decode_currentcost(CC_MESSAGE, temperature_sensor_id=90, now=now)

    assert reading.timestamp == datetime(2024, 5, 10, 8, 0, 0)
    assert reading.count == 4
    temperature = reading.measurements[0]
    assert (temperature.sensor_id, temperature.type, temperature.value) == (90, MeasurementType.TEMPERATURE, "18.7")
    powers = [(m.sensor_id, m.name, m.value) for m in reading.measurements[1:]]
    assert powers == [
        (1234, "Power Sensor 1 (Watts)", "345"),
        (1234, "Power Sensor 1 (Watts)", "2151"),
        (1234, "Power Sensor 1 (Watts)", "0"),
    ]
    assert all(m.type is MeasurementType.POWER for m in reading.measurements[1:])


def test_device_id_is_assigned_from_argument():
    reading = decode_currentcost(CC_MESSAGE, device_id=3, temperature_sensor_id=90)

    assert reading.device_id == 3
    assert reading.validate() == []


def test_history_packets_are_discarded():
    message = "<msg><src>CC128-v0.11</src><hist><dsw>00030</dsw></hist></msg>"

    with pytest.raises(NoMatchError):
        decode_currentcost(message)


def test_non_currentcost_text_is_not_matched():
    assert not is_currentcost_message('{"device":{"id":"1"}}')
    with pytest.raises(NoMatchError):
        decode_currentcost('{"device":{"id":"1"}}')


def test_invalid_temperature_releases_reading():
    message = CC_MESSAGE.replace("<tmpr>18.7</tmpr>", "<tmpr>n/a</tmpr>")
    reading = Reading()

    with pytest.raises(MalformedInputError):
        decode_currentcost(message, reading)

    assert reading.count == 0


def test_accumulator_joins_partial_reads():
    acc = FrameAccumulator()

    assert acc.feed("<msg><src>CC128-v0.11</src>") is None
    frame = acc.feed("<tmpr>18.7</tmpr></msg><msg>")

    assert frame == "<msg><src>CC128-v0.11</src><tmpr>18.7</tmpr></msg>"
    assert acc.pending == "<msg>"


def test_accumulator_returns_buffered_frames_one_by_one():
    acc = FrameAccumulator()

    assert acc.feed("\nuno\ndos\ntres") == "uno"
    assert acc.feed() == "dos"
    assert acc.feed() is None
    assert acc.pending == "tres"


def test_accumulator_discards_oversized_frame_and_its_tail():
    acc = FrameAccumulator(capacity=8)

    assert acc.feed("123456789") is None
    assert acc.pending == ""
    assert acc.feed("cola\nsiguiente\n") == "siguiente"
