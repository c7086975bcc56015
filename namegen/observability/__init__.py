"""
Observability - structlog logging, Prometheus metrics, OpenTelemetry tracing.
"""

from namegen.observability.logging import get_logger, log_context, setup_logging
from namegen.observability.metrics import metrics
from namegen.observability.tracing import setup_tracing, trace_operation

__all__ = [
    "get_logger",
    "log_context",
    "metrics",
    "setup_logging",
    "setup_tracing",
    "trace_operation",
]
