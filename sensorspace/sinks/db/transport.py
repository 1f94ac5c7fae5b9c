"""Transporte de persistencia: serializa el acceso al motor y reintenta una vez."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError

from sensorspace.config.schema import ENGINE_MYSQL, ENGINE_SQLITE, DBTransportSettings
from sensorspace.errors import ConfigError, GetError, PostError, TransportError
from sensorspace.metrics import TransportMetrics
from sensorspace.reading import Measurement, Reading, format_db_date

from .engine import DatabaseEngine, ReconnectStatus
from .mysql import MySQLEngine
from .query import (
    INSERT_MEASUREMENT_SQL,
    INSERT_READING_SQL,
    PayloadKind,
    Query,
    QueryType,
    ResultSet,
    TransportStatus,
    build_select,
)
from .sqlite import SQLiteEngine

logger = logging.getLogger(__name__)


def build_engine(settings: DBTransportSettings) -> Optional[DatabaseEngine]:
    """Motor correspondiente a ``settings.engine``; ``None`` si no hay ninguno."""

    if settings.engine == ENGINE_MYSQL:
        return MySQLEngine(settings)
    if settings.engine == ENGINE_SQLITE:
        return SQLiteEngine(settings)
    return None


class DBTransport:
    """Acceso a la base de datos compartido entre hilos.

    Cada llamada al motor ocurre dentro de la sección crítica del
    transporte. Una sentencia fallida provoca exactamente un intento de
    reconexión y un único reintento; un segundo fallo es terminal.
    También actúa como sink: cada lectura recibida se inserta con
    :meth:`post`.
    """

    def __init__(
        self,
        settings: DBTransportSettings,
        *,
        engine: Optional[DatabaseEngine] = None,
        metrics: Optional[TransportMetrics] = None,
    ) -> None:
        self.settings = settings
        self._engine = engine if engine is not None else build_engine(settings)
        self._metrics = metrics
        self._lock = threading.Lock()
        self._connected = False

    @property
    def engine(self) -> Optional[DatabaseEngine]:
        return self._engine

    @property
    def connected(self) -> bool:
        return self._connected

    @contextmanager
    def _critical_section(self) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            logger.debug("Transporte ocupado; esperando el bloqueo (hilo %s)", threading.get_ident())
            self._lock.acquire()
        try:
            yield
        finally:
            self._lock.release()

    def _require_engine(self) -> DatabaseEngine:
        if self._engine is None:
            raise ConfigError("no hay motor de base de datos configurado")
        return self._engine

    def _count(self, counter: str, amount: int = 1) -> None:
        if self._metrics is not None:
            self._metrics.increment(counter, amount)

    # Ciclo de vida ----------------------------------------------------------
    def connect(self) -> None:
        with self._critical_section():
            engine = self._require_engine()
            if self._connected:
                logger.debug("Transporte %s ya conectado", engine.name)
                return
            engine.open()
            self._connected = True
        logger.info("Transporte %s conectado", engine.name)

    def ensure_schema(self) -> None:
        with self._critical_section():
            engine = self._require_engine()
            try:
                engine.create_schema()
            except SQLAlchemyError as exc:
                raise PostError(f"{engine.name}: no se pudo crear el esquema: {exc}") from exc

    def close(self) -> None:
        with self._critical_section():
            if self._engine is None:
                return
            was_connected, self._connected = self._connected, False
            self._engine.close()
        if was_connected:
            logger.info("Transporte cerrado")

    # Ejecución --------------------------------------------------------------
    def execute(self, query: Query) -> TransportStatus:
        """Ejecuta ``query`` con un reintento tras reconectar.

        Devuelve ``RECONNECTED`` si el reintento tuvo éxito después de que
        el motor detectara una sesión nueva, y ``SUCCESS`` en el resto de
        casos satisfactorios.
        """

        with self._critical_section():
            engine = self._require_engine()
            logger.debug("Query (%s):\n\t%s", engine.name, query.statement)
            try:
                engine.execute(query)
            except SQLAlchemyError as exc:
                logger.error("%s: la sentencia falló: %s", engine.name, exc)
                self._count("query_failures")
            else:
                self._count("queries_executed")
                return TransportStatus.SUCCESS

            reconnect = engine.reconnect()
            if reconnect is ReconnectStatus.RECONNECTED:
                self._count("reconnects")
            self._count("retries")
            try:
                engine.execute(query)
            except SQLAlchemyError as exc:
                if query.query_type is QueryType.SELECT:
                    self._count("get_errors")
                    raise GetError(f"{engine.name}: SELECT falló tras reintentar: {exc}") from exc
                self._count("post_errors")
                raise PostError(f"{engine.name}: {query.query_type.value} falló tras reintentar: {exc}") from exc

            self._count("queries_executed")
            if reconnect is ReconnectStatus.RECONNECTED:
                return TransportStatus.RECONNECTED
            return TransportStatus.SUCCESS

    # API pública ------------------------------------------------------------
    def post(self, kind: PayloadKind, entity: Any, *, reading_id: int = 0) -> TransportStatus:
        """Inserta ``entity`` según ``kind``.

        ``READING`` inserta la fila de la lectura y una fila por medición, en
        secuencia y sin transacción. Si alguna medición falla se siguen
        intentando las demás y al final se lanza :class:`PostError`.
        ``MEASUREMENT`` inserta una sola medición para ``reading_id``.
        """

        if entity is None:
            raise ValueError("post requiere una entidad")
        with Query(QueryType.INSERT, kind, entity) as qry:
            if kind is PayloadKind.READING:
                return self._post_reading(qry, entity)
            if kind is PayloadKind.MEASUREMENT:
                if reading_id <= 0:
                    raise ValueError("post(MEASUREMENT) requiere reading_id > 0")
                qry.bind(INSERT_MEASUREMENT_SQL, self._measurement_params(reading_id, entity))
                return self.execute(qry)
        raise ValueError(f"tipo de payload no soportado: {kind}")

    @staticmethod
    def _measurement_params(reading_id: int, meas: Measurement) -> dict:
        return {"reading_id": reading_id, "sensor_id": meas.sensor_id, "value": meas.value}

    def _post_reading(self, qry: Query, reading: Reading) -> TransportStatus:
        timestamp = reading.timestamp or datetime.now().replace(microsecond=0)
        qry.bind(INSERT_READING_SQL, {"device_id": reading.device_id, "date": format_db_date(timestamp)})
        status = self.execute(qry)
        reading_id = qry.insert_id
        reading.reading_id = reading_id

        failed = 0
        for meas in reading.measurements:
            qry.bind(INSERT_MEASUREMENT_SQL, self._measurement_params(reading_id, meas))
            try:
                step = self.execute(qry)
            except TransportError as exc:
                failed += 1
                logger.error("No se pudo insertar la medición del sensor %d: %s", meas.sensor_id, exc)
                continue
            if step is TransportStatus.RECONNECTED:
                status = step

        if failed:
            raise PostError(f"{failed} de {reading.count} mediciones de la lectura {reading_id} no se insertaron")
        logger.debug("Lectura %d insertada con %d mediciones", reading_id, reading.count)
        return status

    def get(self, kind: PayloadKind, entity: Any) -> ResultSet:
        """Consulta por ``kind`` filtrando con ``entity``.

        El resultado pertenece al llamador, que debe liberarlo con
        ``release()``. Sin filas, ``result.status`` es ``EMPTY``.
        """

        statement, params = build_select(kind, entity)
        with Query(QueryType.SELECT, kind, entity) as qry:
            qry.bind(statement, params)
            status = self.execute(qry)
            result = qry.detach_result()
        if result.dropped:
            self._count("results_dropped", result.dropped)
        result.status = status if result.count else TransportStatus.EMPTY
        return result

    # API del ReadingSink ----------------------------------------------------
    def open(self) -> None:
        self.connect()
        if self.settings.create_schema:
            self.ensure_schema()

    def handle_reading(self, reading: Reading) -> None:
        self.post(PayloadKind.READING, reading)
