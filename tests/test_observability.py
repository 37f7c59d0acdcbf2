"""
Tests for logging, metrics, tracing helpers and the service container.
"""

import io
import logging
from unittest.mock import patch

import pytest
from opentelemetry.metrics import NoOpMeter
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from roadmap_pipeline.config.container import Container, setup_container
from roadmap_pipeline.core.errors import GenerationError, GenerationErrorKind
from roadmap_pipeline.core.state import RunStatus
from roadmap_pipeline.observability.logging import (
    StructuredFormatter,
    get_logger,
    run_id_ctx,
)
from roadmap_pipeline.observability.metrics import (
    MetricsCollector,
    get_metrics_collector,
    setup_metrics,
)
from roadmap_pipeline.observability.tracing import trace_span
from roadmap_pipeline.stages import build_pipeline


def format_record(msg, **extra):
    record = logging.LogRecord("roadmap.stages.finalize", logging.INFO, __file__, 1, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return StructuredFormatter().format(record)


class TestStructuredLogging:
    def test_formatter_fields(self):
        line = format_record("Stage completed", run_id="run-42", ms=12.345, stage="Finalize")

        assert "level=INFO" in line
        assert "run=run-42" in line
        assert "mod=finalize" in line
        assert "ms=12.3" in line
        assert 'msg="Stage completed"' in line
        assert "stage=Finalize" in line

    def test_run_id_from_context(self):
        token = run_id_ctx.set("ctx-run")
        try:
            assert "run=ctx-run" in format_record("hello")
        finally:
            run_id_ctx.reset(token)

    def test_no_run_id(self):
        assert "run=-" in format_record("hello")

    def test_logger_passes_fields(self):
        stream = io.StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(StructuredFormatter())
        log = get_logger("roadmap.test.fields")
        log.logger.addHandler(handler)
        log.logger.setLevel(logging.INFO)
        try:
            log.info("Persisted", subject="s-1", backend="local")
        finally:
            log.logger.removeHandler(handler)

        output = stream.getvalue()
        assert "subject=s-1" in output
        assert "backend=local" in output

    def test_get_logger_cached(self):
        assert get_logger("roadmap.same") is get_logger("roadmap.same")


class TestMetricsCollector:
    def test_business_metrics(self):
        metrics = MetricsCollector(NoOpMeter("test"))
        metrics.record_run("completed", 0.5)
        metrics.record_run("degraded", 0.7)
        metrics.record_run("failed", 0.1)
        metrics.record_stage_attempt("GenerateContent", 0.2, success=False)
        metrics.record_stage_attempt("GenerateContent", 0.3, success=True)
        metrics.record_stage_retry("GenerateContent")
        metrics.record_fallback("no_json")
        metrics.record_persistence_failure("local")

        summary = metrics.get_business_metrics()

        assert summary["runs"] == {"completed": 1, "degraded": 1, "failed": 1}
        assert summary["success_rate"] == pytest.approx(1 / 3)
        assert summary["stage_attempts"] == {"GenerateContent": 2}
        assert summary["stage_failures"] == {"GenerateContent": 1}
        assert summary["stage_retries"] == {"GenerateContent": 1}
        assert summary["fallback_plans"] == 1
        assert summary["persistence_failures"] == 1

    def test_empty_success_rate(self):
        summary = MetricsCollector(NoOpMeter("test")).get_business_metrics()
        assert summary["success_rate"] == 0.0
        assert summary["runs"] == {}

    def test_unknown_outcome(self):
        with pytest.raises(ValueError, match="Unknown run outcome"):
            MetricsCollector(NoOpMeter("test")).record_run("exploded", 1.0)

    def test_global_collector(self):
        assert get_metrics_collector() is get_metrics_collector()
        installed = setup_metrics(NoOpMeter("custom"))
        assert get_metrics_collector() is installed


class TestTraceSpan:
    @pytest.mark.asyncio
    async def test_async_function(self):
        @trace_span("test.async")
        async def double(x):
            return x * 2

        assert await double(21) == 42
        assert double.__name__ == "double"

    def test_sync_function(self):
        @trace_span()
        def add(a, b):
            return a + b

        assert add(2, 3) == 5

    @pytest.mark.asyncio
    async def test_exception_propagates(self):
        @trace_span("test.fails")
        async def boom():
            raise RuntimeError("nope")

        with pytest.raises(RuntimeError, match="nope"):
            await boom()


@pytest.fixture
def span_exporter():
    """Route trace_span through an SDK provider that keeps finished spans in memory."""
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    with patch(
        "roadmap_pipeline.observability.tracing.get_tracer",
        return_value=provider.get_tracer("test"),
    ):
        yield exporter
    provider.shutdown()


def event_names(exporter):
    return [event.name for span in exporter.get_finished_spans() for event in span.events]


class TestPipelineSpanEvents:
    @pytest.mark.asyncio
    async def test_retry_event(
        self, span_exporter, settings, store, state, make_generator, valid_response_text
    ):
        generator = make_generator(
            [GenerationError(GenerationErrorKind.TIMEOUT), valid_response_text]
        )
        result = await build_pipeline(settings, generator, store).run(state)

        assert result.status is RunStatus.COMPLETED
        retries = [
            event
            for span in span_exporter.get_finished_spans()
            for event in span.events
            if event.name == "stage.retry"
        ]
        assert len(retries) == 1
        assert retries[0].attributes["stage"] == "GenerateContent"
        assert retries[0].attributes["attempt"] == 2
        assert "content.fallback" not in event_names(span_exporter)

    @pytest.mark.asyncio
    async def test_fallback_event(self, span_exporter, settings, store, state, make_generator):
        result = await build_pipeline(settings, make_generator(["no json here"]), store).run(state)

        assert result.is_fallback is True
        assert "content.fallback" in event_names(span_exporter)
        span_names = {span.name for span in span_exporter.get_finished_spans()}
        assert {"pipeline.run", "pipeline.stage_attempt"} <= span_names


class Closeable:
    def __init__(self, fail=False):
        self.closed = False
        self.fail = fail

    def close(self):
        if self.fail:
            raise OSError("already gone")
        self.closed = True


class AsyncCloseable:
    def __init__(self):
        self.closed = False

    async def aclose(self):
        self.closed = True


class TestContainer:
    def test_factory_built_once(self, settings):
        container = Container(settings)
        built = []
        container.register_factory("thing", lambda c: built.append(c) or object())

        first = container.get("thing")

        assert container.get("thing") is first
        assert len(built) == 1
        assert built[0] is container

    def test_singleton_wins(self, settings):
        container = Container(settings)
        container.register_factory("thing", lambda c: "from factory")
        container.register_singleton("thing", "singleton")

        assert container.get("thing") == "singleton"

    def test_missing_service_default(self, settings):
        assert Container(settings).get("nothing", default=7) == 7

    @pytest.mark.asyncio
    async def test_cleanup_closes_built_services(self, settings):
        container = Container(settings)
        sync_resource, async_resource, broken = Closeable(), AsyncCloseable(), Closeable(fail=True)
        container.register_factory("sync", lambda c: sync_resource)
        container.register_factory("async", lambda c: async_resource)
        container.register_factory("broken", lambda c: broken)
        injected = Closeable()
        container.register_singleton("injected", injected)
        for name in ("sync", "async", "broken", "injected"):
            container.get(name)

        await container.cleanup()

        assert sync_resource.closed is True
        assert async_resource.closed is True
        assert injected.closed is False

    @pytest.mark.asyncio
    async def test_default_wiring(self, settings, make_generator):
        container = setup_container(settings)
        container.register_singleton("generation_client", make_generator(["{}"]))

        async with container.lifespan():
            pipeline = container.get("pipeline")
            store = container.get("assessment_store")
            assert pipeline.get_stage_names() == [
                "CollectInput",
                "ScoreReadiness",
                "BuildPrompt",
                "GenerateContent",
                "ValidateContent",
                "Finalize",
            ]
            assert store.backend == "local"
            assert container.get("pipeline") is pipeline
