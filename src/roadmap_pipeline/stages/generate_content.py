"""GenerateContent: the one stage that talks to the network, and the one that retries."""

from typing import Protocol

from ..core.errors import FormattingError
from ..core.stage import Stage
from ..core.state import GenerationResult, PipelineState
from ..observability.logging import get_logger

logger = get_logger(__name__)


class ContentGenerator(Protocol):
    async def generate(self, prompt: str) -> GenerationResult:
        ...


class GenerateContent(Stage):
    name = "GenerateContent"
    retryable = True

    def __init__(self, client: ContentGenerator, max_retries: int = 2):
        self.client = client
        self.max_retries = max_retries

    async def execute(self, state: PipelineState) -> PipelineState:
        if not state.prompt:
            raise FormattingError("Prompt not available for generation", stage=self.name)

        result = await self.client.generate(state.prompt)
        state.generation = result
        state.raw_response = result.raw_text
        return state

    def validate(self, state: PipelineState) -> bool:
        valid = bool(
            state.raw_response and state.generation is not None and state.generation.has_choices
        )
        if not valid:
            logger.warning("Generation returned no usable completion")
        return valid
