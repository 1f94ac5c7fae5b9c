"""Exportación de mediciones a ficheros RRD mediante ``rrdtool update``."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from sensorspace.config.schema import MAX_RRD_BINDINGS, ExportSettings, RRDBindingSettings
from sensorspace.errors import NoMatchError
from sensorspace.metrics import TransportMetrics
from sensorspace.reading import BoundedList, Reading, to_epoch

logger = logging.getLogger(__name__)

Updater = Callable[[str, str], None]


@dataclass(frozen=True)
class RRDBinding:
    file: str
    sensor_id: Optional[int] = None
    sensor_name: Optional[str] = None


def rrdtool_cli_updater(binary: str = "rrdtool") -> Updater:
    """Updater que invoca ``<binary> update <file> <epoch>:<value>``."""

    def _update(file: str, value: str) -> None:
        args_list = [binary, "update", file, value]
        try:
            subprocess.run(args_list, check=True, capture_output=True, text=True)
        except FileNotFoundError as exc:
            raise RuntimeError(f"Comando no encontrado: {args_list!r}") from exc
        except subprocess.CalledProcessError as exc:
            stderr = exc.stderr.strip() if exc.stderr else (exc.stdout or "").strip()
            detail = f": {stderr}" if stderr else ""
            raise RuntimeError(
                f"El comando {' '.join(args_list)} finalizó con código {exc.returncode}{detail}"
            ) from exc

    return _update


class RRDExporter:
    """Reparte cada lectura entre los ficheros RRD asociados a sus sensores.

    Para cada binding se busca primero la medición por ``sensor_id`` y, sólo
    si no aparece, por nombre. Una actualización fallida se registra y se
    pasa al siguiente binding; no hay marcha atrás de lo ya escrito.
    """

    def __init__(
        self,
        bindings: Iterable[RRDBinding] = (),
        *,
        updater: Optional[Updater] = None,
        metrics: Optional[TransportMetrics] = None,
    ) -> None:
        self._bindings: BoundedList[RRDBinding] = BoundedList(MAX_RRD_BINDINGS, label="rrd.bindings")
        self._updater = updater or rrdtool_cli_updater()
        self._metrics = metrics
        for binding in bindings:
            self._bindings.append(binding)

    @classmethod
    def from_settings(
        cls, settings: ExportSettings, *, metrics: Optional[TransportMetrics] = None
    ) -> "RRDExporter":
        bindings = [cls._binding_from_settings(item) for item in settings.bindings]
        return cls(bindings, updater=rrdtool_cli_updater(settings.rrdtool_bin), metrics=metrics)

    @staticmethod
    def _binding_from_settings(item: RRDBindingSettings) -> RRDBinding:
        return RRDBinding(file=item.file, sensor_id=item.sensor_id, sensor_name=item.sensor_name)

    @property
    def bindings(self) -> List[RRDBinding]:
        return list(self._bindings)

    def add_binding(
        self, file: str, sensor_id: Optional[int] = None, sensor_name: Optional[str] = None
    ) -> RRDBinding:
        if sensor_id is None and not sensor_name:
            raise ValueError("un binding requiere sensor_id o sensor_name")
        return self._bindings.append(RRDBinding(file=file, sensor_id=sensor_id, sensor_name=sensor_name))

    def _count(self, counter: str) -> None:
        if self._metrics is not None:
            self._metrics.increment(counter)

    @staticmethod
    def _match(reading: Reading, binding: RRDBinding) -> Optional[str]:
        if binding.sensor_id is not None:
            try:
                return reading.measurement_value_by_sensor_id(binding.sensor_id)
            except NoMatchError:
                pass
        if binding.sensor_name:
            try:
                return reading.measurement_value_by_name(binding.sensor_name)
            except NoMatchError:
                pass
        return None

    def export(self, reading: Reading) -> int:
        """Actualiza cada fichero con medición coincidente; devuelve los éxitos."""

        epoch = to_epoch(reading.timestamp or datetime.now())
        updated = 0
        for binding in self._bindings:
            value = self._match(reading, binding)
            if value is None:
                continue
            sample = f"{epoch}:{value}"
            try:
                self._updater(binding.file, sample)
            except Exception as exc:
                logger.error("rrdtool update %s %s falló: %s", binding.file, sample, exc)
                self._count("rrd_failures")
                continue
            logger.debug("rrdtool update %s %s", binding.file, sample)
            self._count("rrd_updates")
            updated += 1
        return updated

    # API del ReadingSink ------------------------------------------------------
    def open(self) -> None:
        for binding in self._bindings:
            if not Path(binding.file).exists():
                logger.warning("El fichero RRD %s no existe; crearlo con 'rrdtool create'", binding.file)

    def handle_reading(self, reading: Reading) -> None:
        self.export(reading)

    def close(self) -> None:
        logger.debug("RRDExporter cerrado (%d bindings)", len(self._bindings))
