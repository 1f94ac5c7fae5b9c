"""Tests for the rrdtool fan-out exporter."""

from __future__ import annotations

import logging
import subprocess
from datetime import datetime
from typing import List, Tuple

import pytest

from sensorspace.config.schema import ExportSettings
from sensorspace.errors import CapacityExceededError
from sensorspace.reading import Measurement, Reading, to_epoch
from sensorspace.sinks.rrdtool import RRDBinding, RRDExporter, rrdtool_cli_updater

TIMESTAMP = datetime(2014, 1, 2, 3, 4, 5)


class RecordingUpdater:
    def __init__(self, failing: Tuple[str, ...] = ()) -> None:
        self.calls: List[Tuple[str, str]] = []
        self.failing = failing

    def __call__(self, file: str, value: str) -> None:
        self.calls.append((file, value))
        if file in self.failing:
            raise RuntimeError("ERROR: opening '%s': No such file or directory" % file)


def build_reading() -> Reading:
    reading = Reading(device_id=7, timestamp=TIMESTAMP)
    reading.add_measurement(Measurement(sensor_id=1, name="T", value="21.5"))
    reading.add_measurement(Measurement(sensor_id=2, name="Power", value="300"))
    return reading


def test_two_matching_bindings_issue_two_updates():
    updater = RecordingUpdater()
    exporter = RRDExporter(updater=updater)
    exporter.add_binding("temp.rrd", sensor_id=1)
    exporter.add_binding("power.rrd", sensor_name="Power")
    exporter.add_binding("other.rrd", sensor_id=99)

    updated = exporter.export(build_reading())

    epoch = to_epoch(TIMESTAMP)
    assert updated == 2
    assert updater.calls == [("temp.rrd", f"{epoch}:21.5"), ("power.rrd", f"{epoch}:300")]


def test_identity_lookup_wins_over_name():
    updater = RecordingUpdater()
    exporter = RRDExporter([RRDBinding("t.rrd", sensor_id=2, sensor_name="T")], updater=updater)

    exporter.handle_reading(build_reading())

    assert updater.calls == [("t.rrd", f"{to_epoch(TIMESTAMP)}:300")]


def test_failed_update_is_logged_and_skipped(caplog):
    updater = RecordingUpdater(failing=("temp.rrd",))
    exporter = RRDExporter(
        [RRDBinding("temp.rrd", sensor_id=1), RRDBinding("power.rrd", sensor_id=2)],
        updater=updater,
    )

    with caplog.at_level(logging.ERROR):
        updated = exporter.export(build_reading())

    assert updated == 1
    assert [call[0] for call in updater.calls] == ["temp.rrd", "power.rrd"]
    assert "temp.rrd" in caplog.text


def test_binding_table_is_bounded():
    exporter = RRDExporter(updater=RecordingUpdater())
    for idx in range(32):
        exporter.add_binding(f"{idx}.rrd", sensor_id=idx + 1)

    with pytest.raises(CapacityExceededError):
        exporter.add_binding("extra.rrd", sensor_id=100)
    assert len(exporter.bindings) == 32


def test_binding_requires_a_key():
    with pytest.raises(ValueError):
        RRDExporter(updater=RecordingUpdater()).add_binding("x.rrd")


def test_from_settings_builds_bindings():
    settings = ExportSettings.from_mapping(
        {"rrdtool_bin": "/usr/bin/rrdtool", "bindings": [{"file": "a.rrd", "sensor_id": 4}]}
    )

    exporter = RRDExporter.from_settings(settings)

    assert exporter.bindings == [RRDBinding("a.rrd", sensor_id=4)]


def test_cli_updater_invokes_rrdtool(monkeypatch):
    calls = []

    def fake_run(args, **kwargs):
        calls.append((args, kwargs))
        return subprocess.CompletedProcess(args, 0, stdout="", stderr="")

    monkeypatch.setattr(subprocess, "run", fake_run)

    rrdtool_cli_updater("/opt/rrdtool")("temp.rrd", "1388631845:21.5")

    assert calls[0][0] == ["/opt/rrdtool", "update", "temp.rrd", "1388631845:21.5"]
    assert calls[0][1]["check"] is True


def test_cli_updater_reports_command_errors(monkeypatch):
    def fake_run(args, **kwargs):
        raise subprocess.CalledProcessError(1, args, output="", stderr="illegal attempt to update")

    monkeypatch.setattr(subprocess, "run", fake_run)

    with pytest.raises(RuntimeError, match="illegal attempt"):
        rrdtool_cli_updater()("temp.rrd", "1:2")
