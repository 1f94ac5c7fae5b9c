"""Motor MySQL (PyMySQL vía SQLAlchemy) con detección de reconexiones silenciosas."""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from sensorspace.config.schema import DBTransportSettings
from sensorspace.errors import InitError, TransportConnectionError

from .engine import EngineFactory, ReconnectStatus, SQLAlchemyEngine

logger = logging.getLogger(__name__)

CONNECTION_ID_SQL = "SELECT CONNECTION_ID()"

SCHEMA_STATEMENTS = (
    "CREATE TABLE IF NOT EXISTS sensors_reading ("
    "readingID INT UNSIGNED NOT NULL AUTO_INCREMENT PRIMARY KEY, "
    "deviceID INT UNSIGNED NOT NULL, "
    "date DATETIME NOT NULL)",
    "CREATE TABLE IF NOT EXISTS sensors_measurement ("
    "measurementID INT UNSIGNED NOT NULL AUTO_INCREMENT PRIMARY KEY, "
    "readingID INT UNSIGNED NOT NULL, "
    "sensorID INT UNSIGNED NOT NULL, "
    "measurement VARCHAR(32) NOT NULL, "
    "INDEX idx_measurement_reading (readingID), "
    "INDEX idx_measurement_sensor (sensorID))",
)


class MySQLEngine(SQLAlchemyEngine):
    """Conexión MySQL con identificador de sesión como *epoch*.

    El pool de SQLAlchemy reabre conexiones caídas por su cuenta
    (``pool_pre_ping``), de modo que un fallo puede quedar oculto. Tras un
    error se compara ``CONNECTION_ID()`` con el registrado al abrir: si
    cambió, la sesión es otra y se informa :attr:`ReconnectStatus.RECONNECTED`.
    """

    name = "mysql"
    schema_statements = SCHEMA_STATEMENTS

    def __init__(self, settings: DBTransportSettings, *, engine_factory: EngineFactory = create_engine) -> None:
        super().__init__(engine_factory=engine_factory)
        self.settings = settings
        self.epoch: Optional[int] = None

    def url(self) -> URL:
        return URL.create(
            "mysql+pymysql",
            username=self.settings.user or None,
            password=self.settings.password or None,
            host=self.settings.host or None,
            port=self.settings.port,
            database=self.settings.db,
            query={"charset": "utf8mb4"},
        )

    def open(self) -> None:
        logger.info("Conectando a MySQL %s@%s", self.settings.db, self.settings.host)
        try:
            self._connect(
                self.url(),
                pool_pre_ping=True,
                pool_recycle=self.settings.pool_recycle_s,
            )
            self.epoch = self._connection_id()
        except SQLAlchemyError as exc:
            self.close()
            raise InitError(f"mysql: no se pudo conectar a {self.settings.host}: {exc}") from exc
        logger.info("MySQL conectado (connection_id=%s)", self.epoch)

    def _connection_id(self) -> int:
        conn = self._require_connection()
        value = conn.execute(text(CONNECTION_ID_SQL)).scalar()
        return int(value)

    def _fresh_connection(self) -> Any:
        stale, self._conn = self._conn, None
        if stale is not None:
            try:
                stale.close()
            except SQLAlchemyError:
                logger.debug("mysql: conexión previa ya estaba cerrada")
        self._conn = self._engine.connect()
        return self._conn

    def reconnect(self) -> ReconnectStatus:
        if self._engine is None:
            raise TransportConnectionError("mysql: motor no inicializado")
        logger.info("Comprobando la conexión con MySQL")
        try:
            if self._conn is None or self._conn.closed or self._conn.invalidated:
                self._fresh_connection()
            try:
                current = self._connection_id()
            except DBAPIError as exc:
                if not exc.connection_invalidated:
                    raise
                self._fresh_connection()
                current = self._connection_id()
        except SQLAlchemyError as exc:
            raise TransportConnectionError(f"mysql: servidor no disponible: {exc}") from exc

        if current != self.epoch:
            logger.warning("MySQL reconectado (connection_id %s -> %s)", self.epoch, current)
            self.epoch = current
            return ReconnectStatus.RECONNECTED
        return ReconnectStatus.ALIVE
