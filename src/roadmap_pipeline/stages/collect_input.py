"""CollectInput: assert the submission carries everything later stages need."""

from ..core.errors import InputError
from ..core.scoring import DIMENSIONS, normalize_answers
from ..core.stage import Stage
from ..core.state import PipelineState
from ..observability.logging import get_logger

logger = get_logger(__name__)


class CollectInput(Stage):
    name = "CollectInput"

    async def execute(self, state: PipelineState) -> PipelineState:
        data = state.input
        if not data.subject_id or not data.subject_id.strip():
            raise InputError("Subject id is required", stage=self.name)

        missing = [dim for dim in DIMENSIONS if not getattr(data, dim).strip()]
        if missing:
            raise InputError(f"Missing readiness zones: {', '.join(missing)}", stage=self.name)

        if data.answers:
            try:
                normalize_answers(data.answers)
            except ValueError as e:
                raise InputError(str(e), stage=self.name) from e

        logger.info(
            "Collected assessment input",
            subject=data.subject_id,
            answers=len(data.answers),
            interests=len(data.preferences.interests),
        )
        return state

    def validate(self, state: PipelineState) -> bool:
        data = state.input
        return bool(
            data.subject_id
            and data.subject_id.strip()
            and all(getattr(data, dim).strip() for dim in DIMENSIONS)
        )
