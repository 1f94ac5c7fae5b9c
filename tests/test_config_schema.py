"""Unit tests for the typed configuration schema helpers."""

from __future__ import annotations

import pytest

from sensorspace.config import (
    CurrentCostSettings,
    DBTransportSettings,
    ExportSettings,
    SensorspaceConfig,
    apply_transport_lines,
    default_config,
    engine_from_string,
    load_config,
    load_env_file,
    save_config,
    transport_settings_from_env,
)


@pytest.mark.parametrize(
    "text, expected",
    [("SQLITE", "sqlite"), ("qsqlite3", "sqlite"), ("MySQL", "mysql"), ("postgres", "none"), ("", "none")],
)
def test_engine_from_string(text, expected):
    assert engine_from_string(text) == expected


def test_apply_config_line_matches_known_keys():
    settings = DBTransportSettings()

    assert settings.apply_config_line("engine=MYSQL")
    assert settings.apply_config_line("db=casa")
    assert settings.apply_config_line("host=192.168.1.10")
    assert settings.apply_config_line("user=sensor")
    assert settings.apply_config_line("pass=secreto")
    assert not settings.apply_config_line("rrd=/var/lib/temp.rrd")

    assert (settings.engine, settings.db, settings.host, settings.user, settings.password) == (
        "mysql",
        "casa",
        "192.168.1.10",
        "sensor",
        "secreto",
    )


def test_apply_transport_lines_returns_leftovers():
    settings = DBTransportSettings()

    leftover = apply_transport_lines(settings, ["# comentario", "engine=sqlite", "db=/tmp/s.db", "", "broker=localhost"])

    assert leftover == ["broker=localhost"]
    assert settings.engine == "sqlite"


def test_transport_requires_db_when_engine_selected():
    with pytest.raises(ValueError, match="transport.db"):
        DBTransportSettings.from_mapping({"engine": "mysql"})


def test_transport_rejects_invalid_port():
    with pytest.raises(ValueError, match="transport.port"):
        DBTransportSettings.from_mapping({"engine": "mysql", "db": "casa", "port": 70000})


def test_export_bindings_need_sensor_key():
    with pytest.raises(ValueError, match="sensor_id o sensor_name"):
        ExportSettings.from_mapping({"bindings": [{"file": "a.rrd"}]})


def test_export_bindings_are_bounded():
    bindings = [{"file": f"{idx}.rrd", "sensor_id": idx + 1} for idx in range(33)]

    with pytest.raises(ValueError, match="como máximo 32"):
        ExportSettings.from_mapping({"bindings": bindings})


def test_config_parses_sinks_from_string_list():
    config = SensorspaceConfig.from_mapping({"sinks": "db, RRDtool", "payload_format": "INI"})

    assert config.sinks == ["db", "rrdtool"]
    assert config.payload_format == "ini"


def test_config_rejects_unknown_payload_format():
    with pytest.raises(ValueError, match="payload_format"):
        SensorspaceConfig.from_mapping({"payload_format": "xml"})


def test_currentcost_block_is_parsed():
    config = SensorspaceConfig.from_mapping({"currentcost": {"device_id": "3", "temperature_sensor_id": 90}})

    assert config.currentcost == CurrentCostSettings(device_id=3, temperature_sensor_id=90)
    assert SensorspaceConfig.from_mapping({}).currentcost == CurrentCostSettings()


def test_currentcost_block_must_be_a_mapping():
    with pytest.raises(ValueError, match="currentcost"):
        SensorspaceConfig.from_mapping({"currentcost": ["3"]})


def test_yaml_round_trip(tmp_path):
    path = tmp_path / "conf" / "sensorspace.yaml"
    config = default_config()
    config.export = ExportSettings.from_mapping({"bindings": [{"file": "t.rrd", "sensor_name": "T"}]})
    config.currentcost = CurrentCostSettings(device_id=3, temperature_sensor_id=90)

    save_config(config, path)
    loaded = load_config(path)

    assert loaded == config


def test_load_config_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")


def test_env_overrides_transport(tmp_path):
    env_path = tmp_path / ".env"
    env_path.write_text("SENSORSPACE_DB_ENGINE=mysql\nSENSORSPACE_DB_NAME=casa\nSENSORSPACE_DB_PORT=3307\n", encoding="utf-8")

    settings = transport_settings_from_env(load_env_file(env_path), DBTransportSettings(host="db.local"))

    assert settings.engine == "mysql"
    assert settings.db == "casa"
    assert settings.port == 3307
    assert settings.host == "db.local"
