"""Observability: in-process counters and timers, logged as a run summary.

Chat turns run in worker threads under the web service, so updates go
through a lock.
"""

import threading
import time
from contextlib import contextmanager
from typing import Any

import structlog

logger = structlog.get_logger().bind(source="observability")


class Metrics:
    """Counters (tool calls, LLM round-trips, nudges) and millisecond timers."""

    def __init__(self):
        self._counters: dict[str, int] = {}
        self._timers: dict[str, list[float]] = {}
        self._lock = threading.Lock()

    def counter(self, name: str, value: int = 1):
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + value

    @contextmanager
    def timer(self, name: str):
        """Time the enclosed block, recording it even if it raises."""
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            with self._lock:
                self._timers.setdefault(name, []).append(elapsed_ms)

    def summary(self) -> dict[str, Any]:
        with self._lock:
            timers = {
                name: {
                    "count": len(samples),
                    "total_ms": round(sum(samples), 1),
                    "avg_ms": round(sum(samples) / len(samples), 1),
                    "max_ms": round(max(samples), 1),
                }
                for name, samples in self._timers.items()
                if samples
            }
            return {"counters": dict(self._counters), "timers": timers}

    def reset(self):
        with self._lock:
            self._counters.clear()
            self._timers.clear()


metrics = Metrics()


def log_run_summary():
    """Log collected metrics; no-op when nothing was recorded."""
    summary = metrics.summary()
    if not summary["counters"] and not summary["timers"]:
        return
    logger.info("run_summary", **summary)
