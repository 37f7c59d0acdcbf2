"""
Pipeline metrics on top of the OpenTelemetry metrics API.

Instruments are recorded against whatever meter the application installs with
``setup_metrics``; until then a no-op meter is used. Business tallies are also
kept in-process so callers and tests can inspect them without an exporter.
"""

from collections import defaultdict
from typing import Any

from opentelemetry.metrics import Counter, Histogram, Meter, NoOpMeter

from .logging import get_logger

logger = get_logger(__name__)

RUN_OUTCOMES = ("completed", "degraded", "failed")


class MetricsCollector:
    """Centralized metrics collection for pipeline runs."""

    def __init__(self, meter: Meter):
        self.meter = meter
        self._counters: dict[str, Counter] = {}
        self._histograms: dict[str, Histogram] = {}

        self._runs: dict[str, int] = defaultdict(int)
        self._stage_attempts: dict[str, int] = defaultdict(int)
        self._stage_retries: dict[str, int] = defaultdict(int)
        self._stage_failures: dict[str, int] = defaultdict(int)
        self._fallbacks = 0
        self._persistence_failures = 0

        self._setup_default_metrics()

    def _setup_default_metrics(self):
        self._counters["runs_total"] = self.meter.create_counter(
            "roadmap_pipeline_runs_total", description="Pipeline runs by outcome", unit="1"
        )
        self._histograms["run_duration"] = self.meter.create_histogram(
            "roadmap_pipeline_run_duration_seconds", description="Pipeline run duration", unit="s"
        )
        self._counters["stage_attempts_total"] = self.meter.create_counter(
            "roadmap_pipeline_stage_attempts_total", description="Stage attempts", unit="1"
        )
        self._counters["stage_retries_total"] = self.meter.create_counter(
            "roadmap_pipeline_stage_retries_total", description="Stage retries", unit="1"
        )
        self._histograms["stage_duration"] = self.meter.create_histogram(
            "roadmap_pipeline_stage_duration_seconds",
            description="Stage attempt duration",
            unit="s",
        )
        self._counters["fallback_plans_total"] = self.meter.create_counter(
            "roadmap_pipeline_fallback_plans_total",
            description="Plans replaced by the fallback plan",
            unit="1",
        )
        self._counters["persistence_failures_total"] = self.meter.create_counter(
            "roadmap_pipeline_persistence_failures_total",
            description="Assessment writes that failed",
            unit="1",
        )

    def record_stage_attempt(self, stage: str, duration: float, success: bool):
        attributes = {"stage": stage, "success": str(success).lower()}
        self._counters["stage_attempts_total"].add(1, attributes)
        self._histograms["stage_duration"].record(duration, attributes)

        self._stage_attempts[stage] += 1
        if not success:
            self._stage_failures[stage] += 1

    def record_stage_retry(self, stage: str):
        self._counters["stage_retries_total"].add(1, {"stage": stage})
        self._stage_retries[stage] += 1

    def record_run(self, outcome: str, duration: float):
        if outcome not in RUN_OUTCOMES:
            raise ValueError(f"Unknown run outcome: {outcome}")
        self._counters["runs_total"].add(1, {"outcome": outcome})
        self._histograms["run_duration"].record(duration, {"outcome": outcome})
        self._runs[outcome] += 1

    def record_fallback(self, reason: str):
        self._counters["fallback_plans_total"].add(1, {"reason": reason})
        self._fallbacks += 1

    def record_persistence_failure(self, backend: str):
        self._counters["persistence_failures_total"].add(1, {"backend": backend})
        self._persistence_failures += 1

    def get_business_metrics(self) -> dict[str, Any]:
        """Aggregated in-process tallies."""
        total_runs = sum(self._runs.values())
        return {
            "runs": dict(self._runs),
            "success_rate": self._runs.get("completed", 0) / total_runs if total_runs else 0.0,
            "stage_attempts": dict(self._stage_attempts),
            "stage_retries": dict(self._stage_retries),
            "stage_failures": dict(self._stage_failures),
            "fallback_plans": self._fallbacks,
            "persistence_failures": self._persistence_failures,
        }


_metrics_collector: MetricsCollector | None = None


def setup_metrics(meter: Meter) -> MetricsCollector:
    """Setup global metrics collector."""
    global _metrics_collector
    _metrics_collector = MetricsCollector(meter)
    return _metrics_collector


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector, creating a no-op backed one on first use."""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector(NoOpMeter("roadmap_pipeline"))
    return _metrics_collector


def reset_metrics() -> None:
    global _metrics_collector
    _metrics_collector = None
