"""Jerarquía de excepciones compartida por el modelo, los códecs y los sinks."""

from __future__ import annotations


class SensorspaceError(Exception):
    """Raíz de todos los errores propios del paquete."""


class CapacityExceededError(SensorspaceError):
    """Un contenedor acotado alcanzó su capacidad máxima."""

    def __init__(self, capacity: int, what: str = "container") -> None:
        super().__init__(f"{what} lleno: capacidad máxima {capacity}")
        self.capacity = capacity


class MalformedInputError(SensorspaceError):
    """El payload recibido no respeta el formato esperado por el códec."""


class MultipleReadingsError(MalformedInputError):
    """El buffer INI contiene más de una sección (multi-registro no soportado)."""


class NoMatchError(SensorspaceError):
    """Búsqueda sin resultado; no necesariamente fatal para el llamador."""


class ConfigError(SensorspaceError):
    """Configuración incompleta o incoherente (p. ej. sin motor de base de datos)."""


class WriteError(SensorspaceError):
    """El buffer de salida es demasiado pequeño para el texto codificado."""


class InitError(SensorspaceError):
    """Fallo al abrir o inicializar un backend."""


class TransportError(SensorspaceError):
    """Error terminal de la capa de persistencia."""


class TransportConnectionError(TransportError):
    """La conexión con el motor no pudo verificarse ni restablecerse."""


class PostError(TransportError):
    """Una sentencia de escritura falló incluso tras el reintento."""


class GetError(TransportError):
    """Una consulta SELECT falló incluso tras el reintento."""


__all__ = [
    "SensorspaceError",
    "CapacityExceededError",
    "MalformedInputError",
    "MultipleReadingsError",
    "NoMatchError",
    "ConfigError",
    "WriteError",
    "InitError",
    "TransportError",
    "TransportConnectionError",
    "PostError",
    "GetError",
]
