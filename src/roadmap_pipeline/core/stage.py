"""Stage contract for the generation pipeline."""

from abc import ABC, abstractmethod

from .state import PipelineState


class Stage(ABC):
    """A unit of work: transform the state, then check its own post-condition.

    ``execute`` raises on failure (normally a ``StageError``). ``validate``
    returns False when the stage's own fields are present but wrong; the
    pipeline treats that exactly like a raised error. Only stages whose
    failures can be transient should be retryable.
    """

    name: str = ""
    retryable: bool = False
    max_retries: int = 0

    @abstractmethod
    async def execute(self, state: PipelineState) -> PipelineState:
        ...

    @abstractmethod
    def validate(self, state: PipelineState) -> bool:
        ...

    @property
    def retry_budget(self) -> int:
        """Extra attempts a single run may spend on this stage."""
        return self.max_retries if self.retryable else 0

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, retryable={self.retryable})"
