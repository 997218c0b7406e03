from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from compliance_store.application.state_container import StateContainer
from compliance_store.core.metrics import MAX_TIMING_SAMPLES, MetricsRegistry, append_capped, summarize_timings
from compliance_store.domain.state import IntegrationState, MemoryUsage, SyncPerformance


@dataclass(frozen=True)
class TimingStats:
    count: int
    min: float
    avg: float
    max: float


@dataclass(frozen=True)
class PerformanceReport:
    component_render_times: dict[str, list[float]]
    state_update_times: dict[str, list[float]]
    average_render_times: dict[str, float]
    average_update_times: dict[str, float]
    render_stats: dict[str, TimingStats]
    update_stats: dict[str, TimingStats]
    sync_performance: SyncPerformance
    memory_usage: MemoryUsage
    total_state_size: int
    counters: dict[str, int] = field(default_factory=dict)


def estimate_state_size(state: IntegrationState) -> int:
    """Bytes of the JSON-serialised snapshot; a rough footprint, not real memory."""
    return len(json.dumps(state.to_dict(), default=str).encode("utf-8"))


def _stats(samples: dict[str, list[float]]) -> dict[str, TimingStats]:
    stats: dict[str, TimingStats] = {}
    for key, values in samples.items():
        summary = summarize_timings(values)
        stats[key] = TimingStats(
            count=int(summary["count"]),
            min=summary["min"],
            avg=summary["avg"],
            max=summary["max"],
        )
    return stats


class PerformanceTracker:
    """Per-key render/update timing history kept inside the store snapshot.

    Purely observational: nothing in the store reads these numbers to decide
    what to do next.
    """

    def __init__(
        self,
        container: StateContainer,
        metrics: MetricsRegistry | None = None,
        *,
        max_samples: int = MAX_TIMING_SAMPLES,
    ) -> None:
        self._container = container
        self._metrics = metrics or MetricsRegistry()
        self._max_samples = max_samples

    @property
    def metrics(self) -> MetricsRegistry:
        return self._metrics

    def track_component_render(self, component_id: str, render_time_ms: float) -> None:
        def _mutate(state: IntegrationState) -> None:
            bucket = state.performance_metrics.component_render_times.setdefault(component_id, [])
            append_capped(bucket, float(render_time_ms), self._max_samples)

        self._container.set_state(_mutate)

    def track_state_update(self, state_key: str, update_time_ms: float) -> None:
        def _mutate(state: IntegrationState) -> None:
            bucket = state.performance_metrics.state_update_times.setdefault(state_key, [])
            append_capped(bucket, float(update_time_ms), self._max_samples)

        self._container.set_state(_mutate)

    def record_sync_outcome(self, duration_ms: float, *, succeeded: bool) -> None:
        self._metrics.increment("sync.attempts")
        if succeeded:
            self._metrics.record_timing("sync.load", duration_ms)
        else:
            self._metrics.increment("sync.failures")
        attempts = self._metrics.counter("sync.attempts")
        failures = self._metrics.counter("sync.failures")
        load_times = self._metrics.timings("sync.load")
        average = sum(load_times) / len(load_times) if load_times else 0.0
        success_rate = ((attempts - failures) / attempts) * 100 if attempts else 100.0

        def _mutate(state: IntegrationState) -> None:
            sync_performance = state.performance_metrics.sync_performance
            sync_performance.average_time = average
            sync_performance.success_rate = success_rate
            sync_performance.error_count = failures

        self._container.set_state(_mutate)

    def get_performance_report(self) -> PerformanceReport:
        state = self._container.get_state()
        metrics = state.performance_metrics
        render_stats = _stats(metrics.component_render_times)
        update_stats = _stats(metrics.state_update_times)
        state_size = estimate_state_size(state)
        return PerformanceReport(
            component_render_times=metrics.component_render_times,
            state_update_times=metrics.state_update_times,
            average_render_times={key: stats.avg for key, stats in render_stats.items()},
            average_update_times={key: stats.avg for key, stats in update_stats.items()},
            render_stats=render_stats,
            update_stats=update_stats,
            sync_performance=metrics.sync_performance,
            memory_usage=MemoryUsage(
                state_size=state_size,
                component_count=metrics.memory_usage.component_count,
                subscription_count=metrics.memory_usage.subscription_count,
            ),
            total_state_size=state_size,
            counters=dict(self._metrics.snapshot()["counters"]),
        )

    def report_as_dict(self) -> dict[str, Any]:
        report = self.get_performance_report()
        return {
            "average_render_times": report.average_render_times,
            "average_update_times": report.average_update_times,
            "sync_performance": {
                "average_time": report.sync_performance.average_time,
                "success_rate": report.sync_performance.success_rate,
                "error_count": report.sync_performance.error_count,
            },
            "memory_usage": {
                "state_size": report.memory_usage.state_size,
                "component_count": report.memory_usage.component_count,
                "subscription_count": report.memory_usage.subscription_count,
            },
            "total_state_size": report.total_state_size,
            "counters": report.counters,
        }
