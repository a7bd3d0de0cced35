"""
Engine metrics.

Counters and timers for the layer engine, read by the HTTP service:
- timeline builds and how long they take
- timeline cache hits and misses per layer set
- merged query counts, split by outcome

Usage:
    from weatherlayers.metrics import metrics, timed

    @timed("timeline_build")
    def build():
        ...

    with metrics.timer("coverage_area"):
        area = layer_set.get_coverage_area(slot)

    metrics.increment("timeline_cache_hit")
    summary = metrics.get_summary()
"""

import logging
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from functools import wraps
from threading import Lock
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class TimingStats:
    """Running statistics for one timed operation."""
    name: str
    count: int = 0
    total_ms: float = 0.0
    min_ms: float = float('inf')
    max_ms: float = 0.0
    recent_ms: deque = field(default_factory=lambda: deque(maxlen=50))

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
        recent = sum(self.recent_ms) / len(self.recent_ms) if self.recent_ms else 0.0
        return {
            "count": self.count,
            "avg_ms": round(self.avg_ms, 3),
            "min_ms": round(self.min_ms, 3) if self.count else 0,
            "max_ms": round(self.max_ms, 3),
            "recent_avg_ms": round(recent, 3),
        }


class EngineMetrics:
    """Thread-safe counters, gauges and timers."""

    # Timeline builds slower than this are logged
    SLOW_THRESHOLD_MS = 250.0

    def __init__(self):
        self._timings: Dict[str, TimingStats] = {}
        self._counters: Dict[str, int] = {}
        self._gauges: Dict[str, float] = {}
        self._lock = Lock()
        self._start_time = datetime.now()

    @contextmanager
    def timer(self, name: str):
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record_timing(name, (time.perf_counter() - start) * 1000)

    def record_timing(self, name: str, elapsed_ms: float):
        with self._lock:
            stats = self._timings.get(name)
            if stats is None:
                stats = self._timings[name] = TimingStats(name=name)
            stats.record(elapsed_ms)

        if elapsed_ms > self.SLOW_THRESHOLD_MS:
            logger.warning(f"Slow operation: {name} took {elapsed_ms:.1f}ms")

    def increment(self, name: str, amount: int = 1):
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + amount

    def set_gauge(self, name: str, value: float):
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
        with self._lock:
            hits = self._counters.get("timeline_cache_hit", 0)
            misses = self._counters.get("timeline_cache_miss", 0)
            lookups = hits + misses
            return {
                "uptime_seconds": round((datetime.now() - self._start_time).total_seconds(), 1),
                "timings": {name: stats.to_dict() for name, stats in self._timings.items()},
                "counters": self._counters.copy(),
                "gauges": {k: round(v, 4) for k, v in self._gauges.items()},
                "timeline_cache_hit_rate": round(hits / lookups, 4) if lookups else None,
            }

    def reset(self):
        with self._lock:
            self._timings.clear()
            self._counters.clear()
            self._gauges.clear()
            self._start_time = datetime.now()


# Global metrics instance
metrics = EngineMetrics()


def timed(name: str):
    """Decorator timing every call of the wrapped function under ``name``."""
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            with metrics.timer(name):
                return func(*args, **kwargs)
        return wrapper
    return decorator


def get_metrics() -> EngineMetrics:
    return metrics
