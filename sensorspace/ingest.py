"""Replay captured payloads through the dispatcher into the configured sinks."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

from sensorspace.config.schema import PAYLOAD_FORMATS, SensorspaceConfig
from sensorspace.config.store import (
    DEFAULT_CONFIG_PATH,
    load_config,
    load_env_file,
    transport_settings_from_env,
)
from sensorspace.dispatch import ReadingDispatcher
from sensorspace.metrics import TransportMetrics
from sensorspace.reading import FrameAccumulator

logger = logging.getLogger(__name__)

READ_CHUNK = 256


def iter_payloads(text: str, payload_format: str) -> Iterator[str]:
    """Split a capture file into individual payloads.

    JSON captures hold one payload per line, INI captures one record per
    file and CurrentCost captures are raw serial output cut into frames.
    """

    if payload_format == "ini":
        if text.strip():
            yield text
        return
    if payload_format == "json":
        for line in text.splitlines():
            if line.strip():
                yield line
        return

    accumulator = FrameAccumulator()
    for start in range(0, len(text), READ_CHUNK):
        frame = accumulator.feed(text[start : start + READ_CHUNK])
        while frame is not None:
            yield frame
            frame = accumulator.feed()
    if accumulator.pending.strip():
        logger.warning("Trama incompleta al final de la captura: %d bytes", len(accumulator.pending))


def replay(dispatcher: ReadingDispatcher, paths: Iterable[Path]) -> int:
    """Dispatch every payload in ``paths``; return the number of rejected payloads."""

    rejected = 0
    for path in paths:
        text = path.read_text(encoding="utf-8")
        for payload in iter_payloads(text, dispatcher.config.payload_format):
            if not dispatcher.dispatch(payload):
                rejected += 1
    return rejected


def _build_config(args: argparse.Namespace) -> SensorspaceConfig:
    config = load_config(args.config)
    if args.env is not None:
        config.transport = transport_settings_from_env(load_env_file(args.env), config.transport)
    if args.format:
        config.payload_format = args.format
    return config


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("payloads", nargs="+", type=Path, help="Ficheros con payloads capturados")
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help="Ruta a sensorspace.yaml",
    )
    parser.add_argument("--env", type=Path, default=None, help="Archivo .env con credenciales de la base de datos")
    parser.add_argument("--format", choices=PAYLOAD_FORMATS, default=None, help="Formato de los payloads")
    args = parser.parse_args(argv)

    if not logging.getLogger().hasHandlers():
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    config = _build_config(args)
    metrics = TransportMetrics(log_interval_s=config.metrics_log_interval_s)
    try:
        with ReadingDispatcher(config, metrics=metrics) as dispatcher:
            rejected = replay(dispatcher, args.payloads)
    except KeyboardInterrupt:
        logger.info("Reproducción interrumpida por el usuario.")
        return 130
    if rejected:
        logger.warning("%d payloads rechazados", rejected)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
