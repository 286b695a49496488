"""
Routing metrics.

Thread-safe counters, gauges and timers for the routing core:
- grid classification (cells classified, polygon failures)
- cost refreshes
- route searches (expansions, latency)

Usage:
    from seaplan.metrics import metrics, timed

    @timed("plan_route")
    def plan():
        ...

    with metrics.timer("classify_grid"):
        classify()

    metrics.increment("classification_failures")
"""

import logging
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from functools import wraps
from threading import Lock
from typing import Callable, Dict, Optional

from seaplan.config import settings

logger = logging.getLogger(__name__)


@dataclass
class TimingStats:
    """Statistics for a timed operation."""
    name: str
    count: int = 0
    total_ms: float = 0.0
    min_ms: float = float('inf')
    max_ms: float = 0.0
    recent_ms: deque = field(default_factory=lambda: deque(maxlen=100))

    @property
    def avg_ms(self) -> float:
        return self.total_ms / self.count if self.count > 0 else 0.0

    def record(self, duration_ms: float):
        self.count += 1
        self.total_ms += duration_ms
        self.min_ms = min(self.min_ms, duration_ms)
        self.max_ms = max(self.max_ms, duration_ms)
        self.recent_ms.append(duration_ms)

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "avg_ms": round(self.avg_ms, 3),
            "min_ms": round(self.min_ms, 3) if self.min_ms != float('inf') else 0,
            "max_ms": round(self.max_ms, 3),
        }


class PerformanceMetrics:
    """
    Metrics collector shared by the routing components.

    Searches on large grids can take seconds, so anything slower than
    ``SLOW_THRESHOLD_MS`` is logged at warning level.
    """

    SLOW_THRESHOLD_MS = 2_000.0

    def __init__(self, enable_logging: bool = False):
        self._timings: Dict[str, TimingStats] = {}
        self._counters: Dict[str, int] = {}
        self._gauges: Dict[str, float] = {}
        self._lock = Lock()
        self._enable_logging = enable_logging

    @property
    def logging_enabled(self) -> bool:
        """Whether every timing is logged at debug level."""
        return self._enable_logging

    @contextmanager
    def timer(self, name: str):
        """Context manager for timing a block of code."""
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            with self._lock:
                if name not in self._timings:
                    self._timings[name] = TimingStats(name=name)
                self._timings[name].record(elapsed_ms)

            if elapsed_ms > self.SLOW_THRESHOLD_MS:
                logger.warning(
                    f"Slow operation: {name} took {elapsed_ms:.1f}ms "
                    f"(threshold: {self.SLOW_THRESHOLD_MS}ms)"
                )
            elif self._enable_logging:
                logger.debug(f"{name} took {elapsed_ms:.1f}ms")

    def increment(self, name: str, amount: int = 1):
        """Increment a counter."""
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + amount

    def set_gauge(self, name: str, value: float):
        """Set a gauge value."""
        with self._lock:
            self._gauges[name] = value

    def get_counter(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)

    def get_gauge(self, name: str) -> float:
        with self._lock:
            return self._gauges.get(name, 0.0)

    def get_timing(self, name: str) -> Optional[TimingStats]:
        with self._lock:
            return self._timings.get(name)

    def get_summary(self) -> dict:
        """Get complete metrics summary."""
        with self._lock:
            return {
                "timings": {
                    name: stats.to_dict()
                    for name, stats in self._timings.items()
                },
                "counters": self._counters.copy(),
                "gauges": {k: round(v, 4) for k, v in self._gauges.items()},
            }

    def reset(self):
        """Reset all metrics."""
        with self._lock:
            self._timings.clear()
            self._counters.clear()
            self._gauges.clear()


# Global metrics instance
metrics = PerformanceMetrics(enable_logging=settings.metrics_logging)


def timed(name: str):
    """Decorator to time a function under ``name``."""
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            with metrics.timer(name):
                return func(*args, **kwargs)
        return wrapper
    return decorator


def get_metrics() -> PerformanceMetrics:
    """Get the global metrics instance."""
    return metrics
