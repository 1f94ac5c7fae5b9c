"""Consultas a la base de datos y conjuntos de resultados por tipo de payload."""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Generic, Iterable, List, Mapping, Optional, Tuple, TypeVar

from sensorspace.reading import BoundedList, Measurement, Reading, parse_db_date

logger = logging.getLogger(__name__)

MAX_RESULTS = 2048

T = TypeVar("T")


class QueryType(Enum):
    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class PayloadKind(Enum):
    READING = "reading"
    MEASUREMENT = "measurement"


class TransportStatus(Enum):
    SUCCESS = "success"
    RECONNECTED = "reconnected"
    EMPTY = "empty"


# SQL --------------------------------------------------------------------------
INSERT_READING_SQL = "INSERT INTO sensors_reading (deviceID, date) VALUES (:device_id, :date)"
INSERT_MEASUREMENT_SQL = (
    "INSERT INTO sensors_measurement (readingID, sensorID, measurement) "
    "VALUES (:reading_id, :sensor_id, :value)"
)
SELECT_READING_SQL = (
    "SELECT r.readingID AS reading_id, r.deviceID AS device_id, r.date AS date, "
    "m.sensorID AS sensor_id, m.measurement AS measurement "
    "FROM sensors_reading AS r, sensors_measurement AS m "
    "WHERE r.readingID = m.readingID"
)
SELECT_MEASUREMENT_SQL = (
    "SELECT m.sensorID AS sensor_id, m.measurement AS measurement "
    "FROM sensors_measurement AS m WHERE m.sensorID = :sensor_id "
    "ORDER BY m.readingID DESC, m.measurementID DESC"
)


def build_select(kind: PayloadKind, entity: Any, limit: int = MAX_RESULTS + 1) -> Tuple[str, Dict[str, Any]]:
    """Construye el SELECT adecuado para ``kind`` filtrando por ``entity``.

    El límite por defecto pide una fila más de las que caben en el
    :class:`ResultSet` para que el desbordamiento se detecte y se registre.
    """

    if kind is PayloadKind.READING:
        if not isinstance(entity, Reading):
            raise TypeError("PayloadKind.READING requiere una Reading como filtro")
        sql = SELECT_READING_SQL
        params: Dict[str, Any] = {}
        if entity.device_id:
            sql += " AND r.deviceID = :device_id"
            params["device_id"] = entity.device_id
        sensor_ids = [m.sensor_id for m in entity.measurements if m.sensor_id]
        if sensor_ids:
            names = []
            for idx, sensor_id in enumerate(sensor_ids):
                names.append(f":sensor_{idx}")
                params[f"sensor_{idx}"] = sensor_id
            sql += f" AND m.sensorID IN ({', '.join(names)})"
        sql += " ORDER BY r.readingID DESC"
    elif kind is PayloadKind.MEASUREMENT:
        if not isinstance(entity, Measurement):
            raise TypeError("PayloadKind.MEASUREMENT requiere una Measurement como filtro")
        sql = SELECT_MEASUREMENT_SQL
        params = {"sensor_id": entity.sensor_id}
    else:  # pragma: no cover - enum exhaustivo
        raise ValueError(f"tipo de payload no soportado: {kind}")
    sql += f" LIMIT {int(limit)}"
    return sql, params


# Resultados ---------------------------------------------------------------------
class ResultSet(Generic[T]):
    """Entidades decodificadas de un SELECT, acotadas a ``MAX_RESULTS``."""

    def __init__(self, capacity: int = MAX_RESULTS) -> None:
        self.items: BoundedList[T] = BoundedList(capacity, label="query.results")
        self.status = TransportStatus.EMPTY
        self.dropped = 0

    @property
    def count(self) -> int:
        return len(self.items)

    def add(self, item: T) -> bool:
        if self.items.try_append(item):
            return True
        self.dropped += 1
        if self.dropped == 1:
            logger.warning("La base de datos devolvió más de %d resultados; se descartan", self.items.capacity)
        return False

    def release(self) -> None:
        self.items.clear()

    def __iter__(self):
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


class ReadingResultSet(ResultSet[Reading]):
    """Resultados de tipo lectura; cada fila aporta una única medición."""

    def release(self) -> None:
        for reading in self.items:
            reading.release()
        super().release()


class MeasurementResultSet(ResultSet[Measurement]):
    pass


def _row_date(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    return parse_db_date(None if value is None else str(value))


def _reading_from_row(row: Mapping[str, Any]) -> Reading:
    reading = Reading(
        reading_id=int(row["reading_id"]),
        device_id=int(row["device_id"]),
        timestamp=_row_date(row["date"]),
    )
    reading.add_measurement(Measurement(sensor_id=int(row["sensor_id"]), value=str(row["measurement"])))
    return reading


def _measurement_from_row(row: Mapping[str, Any]) -> Measurement:
    return Measurement(sensor_id=int(row["sensor_id"]), value=str(row["measurement"]))


_RESULT_TYPES: Dict[PayloadKind, Tuple[Callable[[], ResultSet], Callable[[Mapping[str, Any]], Any]]] = {
    PayloadKind.READING: (ReadingResultSet, _reading_from_row),
    PayloadKind.MEASUREMENT: (MeasurementResultSet, _measurement_from_row),
}


# Query --------------------------------------------------------------------------
class Query:
    """Sentencia, dirección, entidad asociada y resultados.

    Los handles nativos registrados con :meth:`attach` y las entidades
    decodificadas se liberan en :meth:`close` (también al salir del bloque
    ``with``) salvo que el resultado se haya cedido con :meth:`detach_result`.
    """

    def __init__(self, query_type: QueryType, kind: PayloadKind, entity: Any = None) -> None:
        self.query_type = query_type
        self.kind = kind
        self.entity = entity
        self.statement = ""
        self.params: Dict[str, Any] = {}
        self.insert_id = 0
        self.rowcount = 0
        result_factory, self._decode_row = _RESULT_TYPES[kind]
        self.result: Optional[ResultSet] = result_factory()
        self._handles: List[Any] = []
        self.closed = False

    def bind(self, statement: str, params: Optional[Mapping[str, Any]] = None) -> "Query":
        self.statement = statement
        self.params = dict(params or {})
        self.insert_id = 0
        self.rowcount = 0
        return self

    def attach(self, handle: Any) -> Any:
        """Registra un handle nativo que debe cerrarse junto con la consulta."""

        self._handles.append(handle)
        return handle

    def load_rows(self, rows: Iterable[Mapping[str, Any]]) -> int:
        if self.result is None:
            raise RuntimeError("la consulta ya cedió su resultado")
        loaded = 0
        for row in rows:
            if self.result.add(self._decode_row(row)):
                loaded += 1
        return loaded

    def detach_result(self) -> ResultSet:
        if self.result is None:
            raise RuntimeError("la consulta ya cedió su resultado")
        result, self.result = self.result, None
        return result

    def release_handles(self) -> None:
        while self._handles:
            handle = self._handles.pop()
            close = getattr(handle, "close", None)
            if callable(close):
                try:
                    close()
                except Exception:  # pragma: no cover - best effort
                    logger.exception("Error al cerrar handle de resultado")

    def close(self) -> None:
        if self.closed:
            return
        self.release_handles()
        if self.result is not None:
            self.result.release()
        self.closed = True

    def __enter__(self) -> "Query":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
