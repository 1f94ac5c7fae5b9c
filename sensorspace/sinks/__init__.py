"""Registro de sinks disponibles y utilidades de construcción."""

from __future__ import annotations

import logging
from typing import List, Optional

from sensorspace.config.schema import ENGINE_NONE, SensorspaceConfig
from sensorspace.metrics import TransportMetrics

from .base import ReadingSink
from .db import DBTransport
from .rrdtool import RRDBinding, RRDExporter

logger = logging.getLogger(__name__)

__all__ = [
    "DBTransport",
    "RRDBinding",
    "RRDExporter",
    "ReadingSink",
    "build_sinks",
]


def build_sinks(config: SensorspaceConfig, metrics: Optional[TransportMetrics] = None) -> List[ReadingSink]:
    """Inicializa los sinks indicados en la configuración."""

    sinks: List[ReadingSink] = []
    seen = set()

    for name in [name.lower() for name in config.sinks]:
        if name in seen:
            continue
        seen.add(name)
        if name in {"db", "database", "mysql", "sqlite"}:
            if config.transport.engine == ENGINE_NONE:
                logger.error("Sink de base de datos solicitado pero sin motor configurado; se omite.")
                continue
            sinks.append(DBTransport(config.transport, metrics=metrics))
        elif name in {"rrd", "rrdtool"}:
            if not config.export.bindings:
                logger.info("RRDExporter solicitado pero sin bindings configurados; se omite.")
                continue
            sinks.append(RRDExporter.from_settings(config.export, metrics=metrics))
        else:
            logger.warning("Sink '%s' no está soportado y será ignorado.", name)

    return sinks
