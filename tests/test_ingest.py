"""Tests for the payload replay entrypoint."""

from __future__ import annotations

import json
from datetime import datetime

import yaml

from sensorspace import ingest
from sensorspace.config.schema import DBTransportSettings
from sensorspace.reading import Reading, format_db_date
from sensorspace.sinks.db import DBTransport, PayloadKind


def test_iter_payloads_json_lines():
    text = '{"a":"1"}\n\n{"b":"2"}\n'

    assert list(ingest.iter_payloads(text, "json")) == ['{"a":"1"}', '{"b":"2"}']


def test_iter_payloads_ini_is_one_record():
    text = "[reading]\nDID=1\nMEAS=1;2\n"

    assert list(ingest.iter_payloads(text, "ini")) == [text]


def test_iter_payloads_currentcost_frames():
    frame = "<msg><src>CC128-v0.11</src><tmpr>18.7</tmpr></msg>"
    text = (frame + "\r\n") * 3 + "<msg><src>CC128"

    assert list(ingest.iter_payloads(text, "currentcost")) == [frame] * 3


def test_main_replays_into_sqlite(tmp_path):
    db_path = tmp_path / "sensorspace.db"
    config_path = tmp_path / "sensorspace.yaml"
    config_path.write_text(
        yaml.safe_dump(
            {
                "payload_format": "json",
                "sinks": ["db"],
                "transport": {"engine": "sqlite", "db": str(db_path)},
            }
        ),
        encoding="utf-8",
    )
    now = format_db_date(datetime.now())
    payloads = tmp_path / "capture.jsonl"
    payloads.write_text(
        "\n".join(
            [
                json.dumps({"date": now, "device": {"id": "7"}, "sensors": [{"id": "1", "meas": "21.5"}]}),
                json.dumps({"date": now, "device": {"id": "7"}, "sensors": [{"id": "2", "meas": "300"}]}),
                '{"device":{"id":"7"},"sensors":[{"meas":"1"}]}',
            ]
        ),
        encoding="utf-8",
    )

    exit_code = ingest.main([str(payloads), "--config", str(config_path)])

    assert exit_code == 1  # el tercer payload no tiene id de sensor
    transport = DBTransport(DBTransportSettings(engine="sqlite", db=str(db_path)))
    transport.connect()
    try:
        result = transport.get(PayloadKind.READING, Reading(device_id=7))
        assert sorted(r.measurements[0].value for r in result) == ["21.5", "300"]
        result.release()
    finally:
        transport.close()
