from __future__ import annotations

from collections import deque
from functools import wraps
from threading import Lock
from time import perf_counter
from typing import Any, Callable

MAX_TIMING_SAMPLES = 50


class MetricsRegistry:
    def __init__(self, max_samples: int = MAX_TIMING_SAMPLES) -> None:
        self._lock = Lock()
        self._max_samples = max_samples
        self._counters: dict[str, int] = {}
        self._timings: dict[str, deque[float]] = {}

    def counter(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)

    def increment(self, name: str, value: int = 1) -> None:
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + value

    def record_timing(self, name: str, milliseconds: float) -> None:
        with self._lock:
            bucket = self._timings.setdefault(name, deque(maxlen=self._max_samples))
            bucket.append(milliseconds)

    def timings(self, name: str) -> list[float]:
        with self._lock:
            return list(self._timings.get(name, ()))

    def snapshot(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            counters = dict(self._counters)
            timings = {name: list(values) for name, values in self._timings.items()}
        return {
            "counters": counters,
            "timings_ms": {name: summarize_timings(values) for name, values in timings.items()},
        }


def summarize_timings(values: list[float]) -> dict[str, float]:
    return {
        "count": len(values),
        "last": values[-1] if values else 0.0,
        "min": min(values) if values else 0.0,
        "avg": (sum(values) / len(values)) if values else 0.0,
        "max": max(values) if values else 0.0,
    }


def append_capped(bucket: list[float], value: float, cap: int = MAX_TIMING_SAMPLES) -> None:
    """Append ``value`` and drop the oldest samples beyond ``cap``."""
    bucket.append(value)
    overflow = len(bucket) - cap
    if overflow > 0:
        del bucket[:overflow]


def measure_time(metric_name: str, registry: MetricsRegistry) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                elapsed_ms = (perf_counter() - started) * 1000
                registry.record_timing(metric_name, elapsed_ms)

        return wrapper

    return decorator
