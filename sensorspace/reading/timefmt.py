"""Conversión entre ``datetime`` y el formato de fecha de la base de datos."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Optional

DB_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# year-month-day, then hour:minute:second
_DATE_SCANS = (
    re.compile(r"\s*(\d+)-(\d+)-(\d+)"),
    re.compile(r"\s+(\d+):(\d+):(\d+)"),
)


def format_db_date(value: datetime) -> str:
    """Devuelve ``value`` como ``YYYY-MM-DD HH:MM:SS``."""

    return (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d} "
        f"{value.hour:02d}:{value.minute:02d}:{value.second:02d}"
    )


def parse_db_date(text: Optional[str]) -> Optional[datetime]:
    """Interpreta ``YYYY-MM-DD HH:MM:SS``.

    Texto ausente, incompleto o fuera de rango devuelve ``None`` en lugar de
    una fecha parcialmente rellenada.
    """

    if not text:
        return None
    fields = []
    pos = 0
    for pattern in _DATE_SCANS:
        match = pattern.match(text, pos)
        if match is None:
            return None
        fields.extend(int(group) for group in match.groups())
        pos = match.end()
    year, month, day, hour, minute, second = fields
    try:
        return datetime(year, month, day, hour, minute, second)
    except ValueError:
        return None


def to_epoch(value: datetime) -> int:
    """Segundos UNIX; las fechas naive se interpretan en hora local."""

    return int(value.timestamp())
