"""
Shared metrics for the repository cache layer.

The recorder keeps an exact in-process snapshot (cache counters plus
per-operation latency buckets) and mirrors every event into Prometheus
collectors so the admin service can export them.
"""

import copy
import threading
import time
from typing import Any, Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest


CACHE_EVENTS = ("hits", "misses", "puts", "invalidations")


def _empty_snapshot() -> Dict[str, Any]:
    return {
        "cache": {event: 0 for event in CACHE_EVENTS},
        "db": {"perOp": {}},
    }


class MetricsRecorder:
    """Process-wide cache and latency metrics."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self._lock = threading.Lock()
        self._state = _empty_snapshot()
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up the Prometheus mirror collectors."""
        self._cache_events = Counter(
            "repo_cache_events_total",
            "Total cache events",
            ["event"],
            registry=self.registry
        )

        self._db_duration = Histogram(
            "repo_db_operation_duration_seconds",
            "Repository operation duration in seconds",
            ["operation"],
            registry=self.registry
        )

    @staticmethod
    def start_timer() -> float:
        """Return a start mark for ``record_timing``."""
        return time.perf_counter()

    def record_timing(self, op_name: str, start_mark: Optional[float]) -> None:
        """Record elapsed time since ``start_mark`` into the ``op_name`` bucket."""
        if start_mark is None:
            return

        duration_ms = (time.perf_counter() - start_mark) * 1000.0
        with self._lock:
            bucket = self._state["db"]["perOp"].setdefault(
                op_name,
                {"count": 0, "totalMs": 0.0, "minMs": float("inf"), "maxMs": 0.0}
            )
            bucket["count"] += 1
            bucket["totalMs"] += duration_ms
            if duration_ms < bucket["minMs"]:
                bucket["minMs"] = duration_ms
            if duration_ms > bucket["maxMs"]:
                bucket["maxMs"] = duration_ms

        self._db_duration.labels(operation=op_name).observe(duration_ms / 1000.0)

    def _increment(self, event: str, amount: int = 1) -> None:
        if amount <= 0:
            return
        with self._lock:
            self._state["cache"][event] += amount
        self._cache_events.labels(event=event).inc(amount)

    def record_cache_hit(self) -> None:
        self._increment("hits")

    def record_cache_miss(self) -> None:
        self._increment("misses")

    def record_cache_put(self) -> None:
        self._increment("puts")

    def record_invalidations(self, count: int) -> None:
        self._increment("invalidations", count)

    def snapshot(self) -> Dict[str, Any]:
        """Deep, independent copy of the current metrics."""
        with self._lock:
            return copy.deepcopy(self._state)

    def reset(self) -> None:
        """Zero every counter and drop all per-operation buckets."""
        with self._lock:
            self._state = _empty_snapshot()

    def export_prometheus(self) -> bytes:
        """Render the mirror collectors in Prometheus text format."""
        return generate_latest(self.registry)


_recorder: Optional[MetricsRecorder] = None


def get_metrics_recorder() -> MetricsRecorder:
    """Get the process-wide metrics recorder."""
    global _recorder
    if _recorder is None:
        _recorder = MetricsRecorder()
    return _recorder
