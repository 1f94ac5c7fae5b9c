"""Contrato común de los motores SQL y ejecución compartida sobre SQLAlchemy."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Protocol, Sequence

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError

from sensorspace.errors import TransportConnectionError

from .query import Query, QueryType

logger = logging.getLogger(__name__)

EngineFactory = Callable[..., Any]


class ReconnectStatus(Enum):
    ALIVE = "alive"
    RECONNECTED = "reconnected"
    REOPENED = "reopened"


class DatabaseEngine(Protocol):
    """Operaciones que el transporte espera de cada motor."""

    name: str

    def open(self) -> None:
        ...

    def execute(self, query: Query) -> None:
        ...

    def reconnect(self) -> ReconnectStatus:
        ...

    def create_schema(self) -> None:
        ...

    def close(self) -> None:
        ...


class SQLAlchemyEngine:
    """Base para motores que hablan SQL a través de una ``Connection`` de SQLAlchemy.

    Las subclases deciden cómo abrir y cómo recuperar la conexión; la
    ejecución de sentencias, el commit y la lectura de filas son comunes.
    """

    name = "sql"
    schema_statements: Sequence[str] = ()

    def __init__(self, *, engine_factory: EngineFactory = create_engine) -> None:
        self._engine_factory = engine_factory
        self._engine: Any = None
        self._conn: Any = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def _require_connection(self) -> Any:
        if self._conn is None:
            raise TransportConnectionError(f"{self.name}: conexión no inicializada")
        return self._conn

    def execute(self, query: Query) -> None:
        conn = self._require_connection()
        query.release_handles()
        try:
            result = query.attach(conn.execute(text(query.statement), query.params))
            if result.returns_rows:
                rows = result.mappings().all()
                query.load_rows(rows)
                query.rowcount = len(rows)
            else:
                query.rowcount = result.rowcount
                if query.query_type is QueryType.INSERT:
                    query.insert_id = int(result.lastrowid or 0)
            conn.commit()
        except SQLAlchemyError:
            self._rollback(conn)
            raise

    def _rollback(self, conn: Any) -> None:
        try:
            conn.rollback()
        except SQLAlchemyError as exc:
            logger.debug("%s: rollback fallido tras error: %s", self.name, exc)

    def create_schema(self) -> None:
        conn = self._require_connection()
        try:
            for statement in self.schema_statements:
                conn.execute(text(statement))
            conn.commit()
        except SQLAlchemyError:
            self._rollback(conn)
            raise
        logger.info("%s: esquema verificado", self.name)

    def close(self) -> None:
        conn, self._conn = self._conn, None
        engine, self._engine = self._engine, None
        if conn is not None:
            try:
                conn.close()
            except SQLAlchemyError as exc:
                logger.warning("%s: error al cerrar la conexión: %s", self.name, exc)
        if engine is not None:
            engine.dispose()
            logger.info("%s: conexión cerrada", self.name)

    def _connect(self, url: Any, **engine_kwargs: Any) -> None:
        self.close()
        self._engine = self._engine_factory(url, **engine_kwargs)
        self._conn = self._engine.connect()

    def reconnect(self) -> ReconnectStatus:  # pragma: no cover - abstracto
        raise NotImplementedError

    def open(self) -> None:  # pragma: no cover - abstracto
        raise NotImplementedError
