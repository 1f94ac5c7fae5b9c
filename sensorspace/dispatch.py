"""Decodifica payloads entrantes y reparte las lecturas válidas entre los sinks."""

from __future__ import annotations

import logging
from functools import partial
from typing import Callable, Dict, List, Optional, Sequence, Union

from sensorspace.config.schema import SensorspaceConfig
from sensorspace.errors import NoMatchError, SensorspaceError
from sensorspace.metrics import TransportMetrics
from sensorspace.reading import Reading, decode_currentcost, decode_ini, decode_json
from sensorspace.sinks import ReadingSink, build_sinks

logger = logging.getLogger(__name__)

Payload = Union[str, bytes]
Decoder = Callable[[Payload], Reading]

DECODERS: Dict[str, Decoder] = {
    "json": decode_json,
    "ini": decode_ini,
    "currentcost": decode_currentcost,
}


class ReadingDispatcher:
    """Coordina decodificación, validación y entrega a los sinks configurados."""

    def __init__(
        self,
        config: SensorspaceConfig,
        *,
        sink_factory: Callable[..., Sequence[ReadingSink]] = build_sinks,
        metrics: Optional[TransportMetrics] = None,
    ) -> None:
        if config.payload_format not in DECODERS:
            raise ValueError(f"Formato de payload no soportado: {config.payload_format}")
        self.config = config
        self._decoder = self._build_decoder(config)
        self._sink_factory = sink_factory
        self._metrics = metrics
        self._active_sinks: Sequence[ReadingSink] = ()

    @staticmethod
    def _build_decoder(config: SensorspaceConfig) -> Decoder:
        decoder = DECODERS[config.payload_format]
        if config.payload_format == "currentcost":
            return partial(
                decoder,
                device_id=config.currentcost.device_id,
                temperature_sensor_id=config.currentcost.temperature_sensor_id,
            )
        return decoder

    @property
    def sinks(self) -> Sequence[ReadingSink]:
        return self._active_sinks

    def open(self) -> None:
        self._active_sinks = self._initialize_sinks()

    def close(self) -> None:
        self._shutdown_sinks()
        if self._metrics is not None:
            self._metrics.maybe_log(force=True)

    def __enter__(self) -> "ReadingDispatcher":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _count(self, counter: str) -> None:
        if self._metrics is not None:
            self._metrics.increment(counter)

    def dispatch(self, payload: Payload) -> bool:
        """Procesa un payload; ``True`` si la lectura llegó a los sinks."""

        self._count("readings_received")
        try:
            reading = self._decoder(payload)
        except NoMatchError as exc:
            logger.info("Payload descartado: %s", exc)
            self._count("decode_errors")
            return False
        except SensorspaceError as exc:
            logger.error("No se pudo decodificar el payload (%s): %s", self.config.payload_format, exc)
            self._count("decode_errors")
            return False

        try:
            errors = reading.validate()
            if errors:
                logger.warning("Lectura inválida descartada: %s", "; ".join(errors))
                self._count("readings_invalid")
                return False
            logger.debug("%s", reading.describe())
            self._deliver(reading)
            return True
        finally:
            reading.release()

    # Internal helpers --------------------------------------------------------
    def _initialize_sinks(self) -> Sequence[ReadingSink]:
        sinks = list(self._sink_factory(self.config, self._metrics))
        if not sinks:
            logger.warning("No hay sinks configurados; las lecturas no se almacenarán.")
            return []
        ready: List[ReadingSink] = []
        for sink in sinks:
            try:
                sink.open()
            except Exception:
                logger.exception("Error al inicializar sink %r", sink)
                continue
            ready.append(sink)
        if not ready:
            logger.error("No fue posible inicializar ningún sink.")
        return ready

    def _shutdown_sinks(self) -> None:
        for sink in self._active_sinks:
            try:
                sink.close()
            except Exception:
                logger.exception("Error al cerrar sink %r", sink)
        self._active_sinks = ()

    def _deliver(self, reading: Reading) -> None:
        for sink in self._active_sinks:
            try:
                sink.handle_reading(reading)
            except Exception:
                logger.exception("Sink %r rechazó la lectura", sink)
                self._count("sink_errors")
