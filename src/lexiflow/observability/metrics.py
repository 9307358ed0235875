"""
Workflow metrics on top of the OpenTelemetry metrics API.
"""

import time
from collections import defaultdict
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry.metrics import Counter, Histogram, Meter, NoOpMeter

from .logging import get_logger

logger = get_logger(__name__)


class MetricsCollector:
    """Centralized metrics collection for chat and workflow requests."""

    def __init__(self, meter: Meter):
        self.meter = meter
        self._counters: dict[str, Counter] = {}
        self._histograms: dict[str, Histogram] = {}

        # In-process aggregates served by the health endpoint
        self._requests = defaultdict(int)
        self._failures = defaultdict(int)
        self._retries = defaultdict(int)
        self._step_durations: list[float] = []

        self._setup_default_metrics()

    def _setup_default_metrics(self):
        self._counters["requests_total"] = self.meter.create_counter(
            "lexiflow_requests_total", description="Chat requests by mode", unit="1"
        )
        self._counters["workflow_failures_total"] = self.meter.create_counter(
            "lexiflow_workflow_failures_total",
            description="Workflows that ended with an error frame",
            unit="1",
        )
        self._counters["retries_total"] = self.meter.create_counter(
            "lexiflow_model_call_retries_total",
            description="Retried model calls by label",
            unit="1",
        )
        self._counters["planner_fallbacks_total"] = self.meter.create_counter(
            "lexiflow_planner_fallbacks_total",
            description="Plans degraded to an empty step list",
            unit="1",
        )
        self._histograms["step_duration"] = self.meter.create_histogram(
            "lexiflow_workflow_step_duration_seconds",
            description="Workflow step duration",
            unit="s",
        )
        self._histograms["workflow_steps"] = self.meter.create_histogram(
            "lexiflow_workflow_steps", description="Planned steps per workflow", unit="1"
        )

    def counter(self, name: str, description: str = "", unit: str = "1") -> Counter:
        """Get or create a counter metric."""
        if name not in self._counters:
            self._counters[name] = self.meter.create_counter(
                f"lexiflow_{name}", description=description, unit=unit
            )
        return self._counters[name]

    def histogram(self, name: str, description: str = "", unit: str = "1") -> Histogram:
        """Get or create a histogram metric."""
        if name not in self._histograms:
            self._histograms[name] = self.meter.create_histogram(
                f"lexiflow_{name}", description=description, unit=unit
            )
        return self._histograms[name]

    def record_request(self, mode: str) -> None:
        self._counters["requests_total"].add(1, {"mode": mode})
        self._requests[mode] += 1

    def record_workflow_failure(self, error_type: str) -> None:
        self._counters["workflow_failures_total"].add(1, {"error_type": error_type})
        self._failures[error_type] += 1

    def record_retry(self, label: str, status_code: int | None) -> None:
        self._counters["retries_total"].add(
            1, {"label": label, "status_code": str(status_code or "unknown")}
        )
        self._retries[label] += 1

    def record_planner_fallback(self) -> None:
        self._counters["planner_fallbacks_total"].add(1)

    def record_plan(self, step_count: int) -> None:
        self._histograms["workflow_steps"].record(step_count)

    def record_step(self, duration: float, final: bool) -> None:
        self._histograms["step_duration"].record(duration, {"final": str(final).lower()})
        self._step_durations.append(duration)

    def get_summary(self) -> dict[str, Any]:
        """Aggregated counters since process start."""
        durations = self._step_durations
        return {
            "requests": dict(self._requests),
            "workflow_failures": dict(self._failures),
            "retries": dict(self._retries),
            "steps_executed": len(durations),
            "avg_step_duration": sum(durations) / len(durations) if durations else 0.0,
        }


_metrics_collector: MetricsCollector | None = None


def setup_metrics(meter: Meter) -> MetricsCollector:
    """Setup global metrics collector."""
    global _metrics_collector
    _metrics_collector = MetricsCollector(meter)
    return _metrics_collector


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector, creating a no-op one on first use."""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector(NoOpMeter("lexiflow"))
    return _metrics_collector


@contextmanager
def timer(metric_name: str, attributes: dict[str, str] | None = None) -> Iterator[None]:
    """Context manager recording the block duration into a histogram."""
    start_time = time.perf_counter()
    try:
        yield
    finally:
        duration = time.perf_counter() - start_time
        get_metrics_collector().histogram(
            f"{metric_name}_duration", "Operation duration", "s"
        ).record(duration, attributes or {})
