"""Interfaces comunes para los backends que reciben lecturas."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from sensorspace.reading import Reading


@runtime_checkable
class ReadingSink(Protocol):
    """Contrato mínimo para los sinks de persistencia y exportación."""

    def open(self) -> None:
        """Inicializa recursos del sink previo a recibir lecturas."""

    def handle_reading(self, reading: Reading) -> None:
        """Procesa una lectura validada."""

    def close(self) -> None:
        """Libera los recursos asociados al sink."""
