import json
import logging
import threading
import time
from typing import Dict


class TransportMetrics:
    """Thread-safe accumulator for dispatcher, transport and exporter counters."""

    COUNTERS = (
        "readings_received",
        "readings_invalid",
        "decode_errors",
        "sink_errors",
        "queries_executed",
        "query_failures",
        "reconnects",
        "retries",
        "post_errors",
        "get_errors",
        "results_dropped",
        "rrd_updates",
        "rrd_failures",
    )

    def __init__(self, log_interval_s: float = 60.0, logger: logging.Logger | None = None) -> None:
        self.log_interval_s = max(0.0, float(log_interval_s))
        self._logger = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._start_time = time.time()
        self._last_log_time = self._start_time
        self._counters: Dict[str, int] = {key: 0 for key in self.COUNTERS}
        self._last_snapshot = self._counters.copy()

    def increment(self, counter: str, amount: int = 1) -> None:
        if amount <= 0:
            return
        if counter not in self._counters:
            raise KeyError(f"contador desconocido: {counter}")
        with self._lock:
            self._counters[counter] += amount
        self.maybe_log()

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return self._counters.copy()

    def maybe_log(self, force: bool = False) -> None:
        now = time.time()
        with self._lock:
            interval = now - self._last_log_time
            if not force and self.log_interval_s > 0.0 and interval < self.log_interval_s:
                return

            payload = self._build_payload(now, interval)
            self._last_log_time = now
            self._last_snapshot = self._counters.copy()

        self._logger.info("transport_metrics %s", json.dumps(payload, sort_keys=True))

    def _build_payload(self, now: float, interval: float) -> Dict[str, object]:
        delta = {
            key: self._counters[key] - self._last_snapshot.get(key, 0)
            for key in self._counters
        }
        return {
            "type": "transport_metrics",
            "uptime_s": round(now - self._start_time, 3),
            "interval_s": round(interval, 3),
            "counters": self._counters.copy(),
            "delta": delta,
        }
