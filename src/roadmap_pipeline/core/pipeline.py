"""
Sequential stage executor with per-stage validation gates and bounded retry.

Run phases:

    PENDING -> RUNNING -> (RETRYING -> RUNNING)* -> COMPLETED | FAILED

Stages run strictly in registration order against one ``PipelineState``.
A stage attempt fails when ``execute`` raises, when ``validate`` returns
False, or when it clears a field an earlier stage populated. A retryable
stage is attempted again, in place, until its per-run budget is spent;
earlier stages are never re-run. The first unrecovered failure stops the run
and is recorded on the state, which is returned rather than raised.
"""

import time
import uuid
from collections.abc import Sequence

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_none,
)

from ..observability.logging import get_logger, run_id_ctx
from ..observability.metrics import get_metrics_collector
from ..observability.tracing import add_span_attributes, add_span_event, trace_span
from .errors import StageValidationError, StateInvariantError
from .stage import Stage
from .state import PipelineState, RunStatus, StageMetrics

logger = get_logger(__name__)


class Pipeline:
    """Ordered, fixed list of stages plus the retry/validate state machine."""

    def __init__(
        self,
        name: str,
        stages: Sequence[Stage],
        retry_backoff_multiplier: float = 0.0,
        retry_backoff_max: float = 0.0,
    ):
        if not stages:
            raise ValueError(f"Pipeline '{name}' needs at least one stage")
        names = [stage.name for stage in stages]
        if any(not n for n in names):
            raise ValueError(f"Pipeline '{name}' has a stage without a name")
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate stage names in pipeline '{name}': {names}")

        self.name = name
        self.stages: tuple[Stage, ...] = tuple(stages)
        self.retry_backoff_multiplier = retry_backoff_multiplier
        self.retry_backoff_max = retry_backoff_max

    def get_stage_names(self) -> list[str]:
        """Stage names in execution order."""
        return [stage.name for stage in self.stages]

    def _wait_strategy(self):
        if self.retry_backoff_multiplier <= 0:
            return wait_none()
        return wait_exponential(
            multiplier=self.retry_backoff_multiplier, max=self.retry_backoff_max
        )

    @trace_span("pipeline.run")
    async def run(self, state: PipelineState) -> PipelineState:
        """Run every stage against ``state`` and return it in a terminal phase."""
        if state.status is not RunStatus.PENDING:
            raise RuntimeError(f"Pipeline state already used (status: {state.status.value})")

        token = run_id_ctx.set(uuid.uuid4().hex[:12])
        try:
            state.stamp_start()
            state.status = RunStatus.RUNNING
            logger.info(
                f"Starting pipeline '{self.name}' with {len(self.stages)} stages",
                subject=state.input.subject_id,
            )

            for index, stage in enumerate(self.stages):
                try:
                    await self._run_stage(stage, state, index)
                except Exception as e:
                    self._fail(state, stage, e)
                    break
            else:
                state.status = RunStatus.COMPLETED

            state.stamp_end()
            get_metrics_collector().record_run(state.outcome, state.elapsed or 0.0)
            logger.timed(
                f"Pipeline '{self.name}' finished",
                (state.elapsed or 0.0) * 1000,
                status=state.status.value,
                outcome=state.outcome,
                steps="->".join(state.step_history),
            )
            return state
        finally:
            run_id_ctx.reset(token)

    async def _run_stage(self, stage: Stage, state: PipelineState, index: int) -> None:
        logger.debug(f"Stage {index + 1}/{len(self.stages)}: {stage.name}")
        protected = state.populated_fields()

        retrying = AsyncRetrying(
            stop=stop_after_attempt(stage.retry_budget + 1),
            wait=self._wait_strategy(),
            retry=retry_if_exception_type(Exception),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                await self._attempt(stage, state, protected)

    @trace_span("pipeline.stage_attempt")
    async def _attempt(self, stage: Stage, state: PipelineState, protected: set[str]) -> None:
        record = state.stage_metrics.setdefault(stage.name, StageMetrics())
        record.attempts += 1
        add_span_attributes(stage=stage.name, attempt=record.attempts)

        collector = get_metrics_collector()
        if record.attempts > 1:
            state.status = RunStatus.RETRYING
            collector.record_stage_retry(stage.name)
            add_span_event("stage.retry", {"stage": stage.name, "attempt": record.attempts})
            logger.warning(
                f"Retrying stage '{stage.name}'",
                attempt=record.attempts,
                retries_left=stage.retry_budget - record.attempts + 1,
                last_error=record.last_error,
            )
        else:
            state.status = RunStatus.RUNNING

        start = time.perf_counter()
        success = False
        try:
            result = await stage.execute(state)
            if result is not state:
                raise StateInvariantError(
                    f"Stage '{stage.name}' returned a different state object", stage=stage.name
                )

            erased = protected - state.populated_fields()
            if erased:
                raise StateInvariantError(
                    f"Stage '{stage.name}' cleared fields set by earlier stages: "
                    f"{', '.join(sorted(erased))}",
                    stage=stage.name,
                )

            if stage.name not in state.step_history:
                state.step_history.append(stage.name)

            if not stage.validate(state):
                raise StageValidationError(stage.name)
            success = True
        except Exception as e:
            record.last_error = str(e)
            logger.warning(f"Stage '{stage.name}' attempt failed: {e}", attempt=record.attempts)
            raise
        finally:
            duration = time.perf_counter() - start
            record.duration += duration
            collector.record_stage_attempt(stage.name, duration, success)

        logger.timed(f"Stage '{stage.name}' completed", duration * 1000, attempts=record.attempts)

    def _fail(self, state: PipelineState, stage: Stage, error: Exception) -> None:
        state.error = str(error) or error.__class__.__name__
        state.error_code = getattr(error, "code", "unexpected")
        state.caller_may_retry = bool(getattr(error, "caller_may_retry", False))
        state.status = RunStatus.FAILED

        attempts = state.stage_metrics[stage.name].attempts
        if state.error_code == "unexpected":
            logger.exception(
                f"Stage '{stage.name}' raised unexpectedly, stopping pipeline", attempts=attempts
            )
        else:
            logger.error(
                f"Stage '{stage.name}' failed, stopping pipeline",
                attempts=attempts,
                error=state.error,
                code=state.error_code,
            )
