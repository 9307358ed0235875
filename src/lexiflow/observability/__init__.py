"""
Observability for Lexiflow: structured logging, probes, metrics and tracing.

Usage:
    >>> from lexiflow.observability.logging import get_logger
    >>> from lexiflow.observability.probe import probe
    >>>
    >>> logger = get_logger(__name__)
    >>> with probe("workflow.plan", trace_id):
    ...     plan = await planner.parse_steps(text)

Environment variables:
    - LEX_OBSERVABILITY__LOG_LEVEL=INFO
    - LEX_OBSERVABILITY__ENABLE_TRACING=true
    - LEX_OBSERVABILITY__OTLP_ENDPOINT=http://collector:4317
"""

from .logging import get_logger, setup_logging
from .metrics import get_metrics_collector, timer
from .tracing import get_tracing_manager, setup_tracing, trace_span

__all__ = [
    "get_logger",
    "setup_logging",
    "get_metrics_collector",
    "timer",
    "trace_span",
    "get_tracing_manager",
    "setup_tracing",
]
