"""
Observability for the roadmap pipeline.

- Structured logging: single-line key=value records carrying the run ID
- Metrics: OpenTelemetry counters and histograms for runs, stage attempts,
  retries, fallback plans and persistence failures
- Tracing: one span per run and per stage attempt

Environment variables:
- ROADMAP_OBSERVABILITY__LOG_LEVEL=INFO
- ROADMAP_OBSERVABILITY__ENABLE_TRACING=false
- ROADMAP_OBSERVABILITY__OTLP_ENDPOINT=http://collector:4317
"""

from .logging import get_logger, setup_logging
from .metrics import MetricsCollector, get_metrics_collector, setup_metrics
from .tracing import setup_tracing, trace_span

__all__ = [
    "get_logger",
    "setup_logging",
    "MetricsCollector",
    "get_metrics_collector",
    "setup_metrics",
    "setup_tracing",
    "trace_span",
]
