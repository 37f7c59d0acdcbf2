"""ScoreReadiness: zone labels to band anchors, total score, stage and session id."""

import secrets
import time

from ..core.errors import DomainError
from ..core.scoring import DIMENSIONS, LEGAL_ZONE_LABELS, OverallStage, score_zones
from ..core.stage import Stage
from ..core.state import PipelineState
from ..observability.logging import get_logger

logger = get_logger(__name__)

_LEGAL_STAGES = frozenset(stage.value for stage in OverallStage)


def new_session_id(subject_id: str) -> str:
    """``assessment_<epoch-ms>_<subject>_<8 hex>``."""
    return f"assessment_{int(time.time() * 1000)}_{subject_id}_{secrets.token_hex(4)}"


class ScoreReadiness(Stage):
    name = "ScoreReadiness"

    async def execute(self, state: PipelineState) -> PipelineState:
        try:
            scores = score_zones(state.input.zones)
        except ValueError as e:
            raise DomainError(str(e), stage=self.name) from e

        state.readiness_zones = scores.zones
        state.matrix_scores = scores.matrix_scores
        state.total_score = scores.total_score
        state.overall_stage = scores.overall_stage

        # Stable for the whole run once assigned
        if state.session_id is None:
            state.session_id = state.input.session_id or new_session_id(state.input.subject_id)

        logger.info(
            "Readiness scored",
            total=scores.total_score,
            stage=scores.overall_stage,
            session=state.session_id,
        )
        return state

    def validate(self, state: PipelineState) -> bool:
        zones = state.readiness_zones or {}
        return (
            all(zones.get(dim) in LEGAL_ZONE_LABELS for dim in DIMENSIONS)
            and state.matrix_scores is not None
            and state.total_score is not None
            and state.overall_stage in _LEGAL_STAGES
            and bool(state.session_id)
        )
