"""BuildPrompt: render the generation prompt from scores and preferences."""

from ..core.errors import FormattingError
from ..core.prompts import build_prompt
from ..core.stage import Stage
from ..core.state import PipelineState
from ..observability.logging import get_logger

logger = get_logger(__name__)


class BuildPrompt(Stage):
    name = "BuildPrompt"

    async def execute(self, state: PipelineState) -> PipelineState:
        if (
            state.readiness_zones is None
            or state.matrix_scores is None
            or state.total_score is None
            or state.overall_stage is None
        ):
            raise FormattingError("Scores not available for prompt building", stage=self.name)

        prompt = build_prompt(
            state.readiness_zones,
            state.matrix_scores,
            state.total_score,
            state.overall_stage,
            state.input.preferences,
        )
        if not prompt.strip():
            raise FormattingError("Prompt assembly produced an empty payload", stage=self.name)

        state.prompt = prompt
        logger.debug("Prompt built", length=len(prompt))
        return state

    def validate(self, state: PipelineState) -> bool:
        return bool(state.prompt and state.prompt.strip())
