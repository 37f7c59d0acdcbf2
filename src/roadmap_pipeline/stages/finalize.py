"""Finalize: seal the plan and persist the assessment scores."""

import asyncio
from datetime import UTC, datetime

from ..core.errors import StageError
from ..core.scoring import DIMENSIONS
from ..core.stage import Stage
from ..core.state import PipelineState
from ..observability.logging import get_logger
from ..observability.metrics import get_metrics_collector
from ..storage.assessments import AssessmentRecord, AssessmentStore

logger = get_logger(__name__)


class Finalize(Stage):
    """Seals the plan, then upserts one ``AssessmentRecord`` per session.

    A failed write is logged, counted and left on ``state.persistence_error``;
    it never fails the stage.
    """

    name = "Finalize"

    def __init__(self, store: AssessmentStore | None = None, persist_fallback_scores: bool = True):
        self.store = store
        self.persist_fallback_scores = persist_fallback_scores

    async def execute(self, state: PipelineState) -> PipelineState:
        if state.roadmap is None:
            raise StageError("Roadmap not available for finalization", stage=self.name)

        state.roadmap = state.roadmap.model_copy(
            update={"success": True, "generated_at": datetime.now(UTC)}
        )

        if self._should_persist(state):
            await self._persist(state)

        logger.info(
            "Roadmap finalized",
            phases=len(state.roadmap.roadmap),
            fallback=state.roadmap.is_fallback,
            persisted=state.persisted,
        )
        return state

    def _should_persist(self, state: PipelineState) -> bool:
        if self.store is None:
            return False
        if state.roadmap.is_fallback and not self.persist_fallback_scores:
            return False
        return (
            state.readiness_zones is not None
            and state.matrix_scores is not None
            and state.total_score is not None
            and state.overall_stage is not None
            and bool(state.session_id)
        )

    def _build_record(self, state: PipelineState) -> AssessmentRecord:
        return AssessmentRecord(
            subject_id=state.input.subject_id,
            session_id=state.session_id,
            zones=dict(state.readiness_zones),
            matrix_scores=dict(state.matrix_scores),
            total_score=state.total_score,
            overall_stage=state.overall_stage,
            plan_status="fallback" if state.roadmap.is_fallback else "generated",
            input_snapshot=state.input.model_dump(mode="json"),
        )

    async def _persist(self, state: PipelineState) -> None:
        record = self._build_record(state)
        try:
            await asyncio.to_thread(self.store.upsert, record)
        except Exception as e:
            logger.exception(
                "Failed to persist assessment",
                backend=self.store.backend,
                subject=record.subject_id,
                session=record.session_id,
            )
            get_metrics_collector().record_persistence_failure(self.store.backend)
            state.persistence_error = str(e) or e.__class__.__name__
        else:
            state.persisted = True

    def validate(self, state: PipelineState) -> bool:
        plan = state.roadmap
        if plan is None or not plan.career_blurb.strip():
            return False
        summary = plan.scores_summary
        if not all(getattr(summary, dim) for dim in DIMENSIONS) or not summary.overall_stage:
            return False
        return isinstance(plan.roadmap, list)
