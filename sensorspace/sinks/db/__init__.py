"""Persistencia en bases de datos relacionales (MySQL y SQLite)."""

from .engine import DatabaseEngine, ReconnectStatus, SQLAlchemyEngine
from .mysql import MySQLEngine
from .query import (
    MAX_RESULTS,
    MeasurementResultSet,
    PayloadKind,
    Query,
    QueryType,
    ReadingResultSet,
    ResultSet,
    TransportStatus,
    build_select,
)
from .sqlite import SQLiteEngine
from .transport import DBTransport, build_engine

__all__ = [
    "DBTransport",
    "DatabaseEngine",
    "MAX_RESULTS",
    "MeasurementResultSet",
    "MySQLEngine",
    "PayloadKind",
    "Query",
    "QueryType",
    "ReadingResultSet",
    "ReconnectStatus",
    "ResultSet",
    "SQLAlchemyEngine",
    "SQLiteEngine",
    "TransportStatus",
    "build_engine",
    "build_select",
]
