"""Motor SQLite basado en fichero."""

from __future__ import annotations

import logging

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError

from sensorspace.config.schema import DBTransportSettings
from sensorspace.errors import InitError, TransportConnectionError

from .engine import EngineFactory, ReconnectStatus, SQLAlchemyEngine

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS = (
    "CREATE TABLE IF NOT EXISTS sensors_reading ("
    "readingID INTEGER PRIMARY KEY AUTOINCREMENT, "
    "deviceID INTEGER NOT NULL, "
    "date TEXT NOT NULL)",
    "CREATE TABLE IF NOT EXISTS sensors_measurement ("
    "measurementID INTEGER PRIMARY KEY AUTOINCREMENT, "
    "readingID INTEGER NOT NULL REFERENCES sensors_reading(readingID), "
    "sensorID INTEGER NOT NULL, "
    "measurement TEXT NOT NULL)",
    "CREATE INDEX IF NOT EXISTS idx_measurement_sensor ON sensors_measurement (sensorID)",
)


class SQLiteEngine(SQLAlchemyEngine):
    name = "sqlite"
    schema_statements = SCHEMA_STATEMENTS

    def __init__(self, settings: DBTransportSettings, *, engine_factory: EngineFactory = create_engine) -> None:
        super().__init__(engine_factory=engine_factory)
        self.settings = settings

    def url(self) -> str:
        if self.settings.db in ("", ":memory:"):
            return "sqlite://"
        return f"sqlite:///{self.settings.db}"

    def open(self) -> None:
        logger.info("Abriendo base de datos SQLite %s", self.settings.db or ":memory:")
        try:
            self._connect(self.url())
        except SQLAlchemyError as exc:
            self.close()
            raise InitError(f"sqlite: no se pudo abrir {self.settings.db}: {exc}") from exc

    def reconnect(self) -> ReconnectStatus:
        """Cierra y reabre el fichero sin comprobar nada antes."""

        self.close()
        try:
            self._connect(self.url())
        except SQLAlchemyError as exc:
            raise TransportConnectionError(f"sqlite: no se pudo reabrir {self.settings.db}: {exc}") from exc
        logger.info("SQLite reabierto")
        return ReconnectStatus.REOPENED
