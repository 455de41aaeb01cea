"""Observability layer - logging, metrics, and tracing."""

from kchoo.observability.logging import setup_logging
from kchoo.observability.metrics import MetricsCollector, get_metrics
from kchoo.observability.tracing import get_tracer, setup_tracing

__all__ = [
    "MetricsCollector",
    "get_metrics",
    "get_tracer",
    "setup_logging",
    "setup_tracing",
]
