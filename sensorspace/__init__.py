"""Núcleo de telemetría sensorspace: modelo de lecturas, códecs y backends."""

__all__ = [
    "config",
    "dispatch",
    "errors",
    "ingest",
    "metrics",
    "reading",
    "sinks",
]

__version__ = "0.3.0"
