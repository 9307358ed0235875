"""
Operation probes: always-on timing logs plus an OpenTelemetry span.
"""

import contextlib
import time
from collections.abc import Iterator
from typing import Any

from opentelemetry import trace

from .logging import get_logger

log = get_logger("lexiflow.probe")
tracer = trace.get_tracer("lexiflow")

# Per-trace timing store, read back by tests and the health endpoint
_METRICS_STORE: dict[str, dict[str, Any]] = {}


@contextlib.contextmanager
def probe(op: str, trace_id: str | None = None, **labels) -> Iterator[None]:
    """
    Time a block, open a span for it and log the outcome.

    Args:
        op: Operation name (e.g., "workflow.step")
        trace_id: Optional trace ID for correlation
        **labels: Additional labels written to the log line and span
    """
    start_time = time.perf_counter()
    ok = True
    error_type = None

    with tracer.start_as_current_span(op) as span:
        for key, value in labels.items():
            span.set_attribute(f"lexiflow.{key}", str(value))
        try:
            yield
        except BaseException as e:
            ok = False
            error_type = type(e).__name__
            raise
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            log.info(
                f'op={op} ms={duration_ms:.1f} trace={trace_id or "-"} ok={str(ok).lower()}'
                + (f" error={error_type}" if error_type else "")
                + "".join(f" {k}={v}" for k, v in labels.items())
            )

            if trace_id:
                _METRICS_STORE.setdefault(trace_id, {})[op] = {
                    "duration_ms": duration_ms,
                    "success": ok,
                    "error_type": error_type,
                    "labels": labels,
                    "timestamp": time.time(),
                }


def get_trace_metrics(trace_id: str) -> dict[str, Any]:
    """Get all probe timings recorded for a trace ID."""
    return _METRICS_STORE.get(trace_id, {})


def clear_trace_metrics(trace_id: str) -> None:
    """Clear probe timings for a trace ID."""
    _METRICS_STORE.pop(trace_id, None)
