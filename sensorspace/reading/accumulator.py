"""Acumulador explícito para lecturas parciales de un puerto serie."""

from __future__ import annotations

import logging
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 1024
FRAME_TERMINATORS: Tuple[str, ...] = ("\n", "</msg>")


class FrameAccumulator:
    """Reúne fragmentos hasta completar una trama.

    Una trama termina en salto de línea o ``</msg>``. Si el buffer llega a
    ``capacity`` sin terminador se descarta junto con el resto de la trama
    sobredimensionada. Lo recibido tras un terminador queda pendiente para
    la siguiente llamada.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity debe ser >= 1")
        self.capacity = capacity
        self._buffer = ""
        self._oversized = False

    @property
    def pending(self) -> str:
        return self._buffer

    def reset(self) -> None:
        self._buffer = ""
        self._oversized = False

    def feed(self, chunk: str = "") -> Optional[str]:
        """Añade ``chunk``; devuelve la siguiente trama completa o ``None``."""

        self._buffer += chunk
        while True:
            cut = self._frame_end(self._buffer)
            if cut is None:
                if len(self._buffer) >= self.capacity:
                    logger.error("Trama de %d bytes sobredimensionada; se descarta", len(self._buffer))
                    self._oversized = True
                    self._buffer = ""
                else:
                    logger.debug("Esperando más datos (%d bytes acumulados)", len(self._buffer))
                return None

            frame, self._buffer = self._buffer[:cut], self._buffer[cut:]
            if self._oversized:
                self._oversized = False
                logger.debug("Descartando el resto de una trama sobredimensionada")
                continue

            frame = frame.strip()
            if frame:
                return frame
            logger.debug("Línea vacía ignorada")

    @staticmethod
    def _frame_end(buffer: str) -> Optional[int]:
        ends = [buffer.find(term) + len(term) for term in FRAME_TERMINATORS if term in buffer]
        return min(ends) if ends else None
