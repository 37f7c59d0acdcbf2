"""
Stage error hierarchy.

Every error carries a ``code`` the caller can map to a response and a
``caller_may_retry`` hint telling it whether resubmitting the same request
could succeed. Neither attribute changes how the pipeline itself retries.
"""

from enum import Enum


class StageError(Exception):
    """Base class for errors raised by pipeline stages."""

    code = "stage"
    caller_may_retry = False

    def __init__(self, message: str, stage: str | None = None):
        super().__init__(message)
        self.message = message
        self.stage = stage


class InputError(StageError):
    """Required input missing or malformed."""

    code = "input"


class DomainError(StageError):
    """Input present but outside the legal value set."""

    code = "domain"


class FormattingError(StageError):
    """Prompt assembly produced nothing usable."""

    code = "formatting"


class StageValidationError(StageError):
    """A stage executed but its post-condition check returned False."""

    code = "validation"

    def __init__(self, stage: str):
        super().__init__(f"Validation failed for stage: {stage}", stage=stage)


class StateInvariantError(StageError):
    """A stage cleared a field written by an earlier stage."""

    code = "state"


class GenerationErrorKind(Enum):
    CONNECTIVITY = "connectivity"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    AUTHENTICATION = "authentication"
    PROVIDER = "provider"


_GENERATION_MESSAGES = {
    GenerationErrorKind.CONNECTIVITY: "Network error: Unable to connect to AI service",
    GenerationErrorKind.TIMEOUT: "Request timeout: AI service took too long to respond",
    GenerationErrorKind.RATE_LIMIT: "Rate limit exceeded: AI service usage limit reached",
    GenerationErrorKind.AUTHENTICATION: "Authentication error: Invalid API configuration",
}


class GenerationError(StageError):
    """Failure talking to the external generative service."""

    def __init__(
        self, kind: GenerationErrorKind, detail: str = "", status_code: int | None = None
    ):
        message = _GENERATION_MESSAGES.get(kind) or f"LLM API error: {detail}".rstrip(": ")
        super().__init__(message)
        self.kind = kind
        self.detail = detail
        self.status_code = status_code

    @property
    def code(self) -> str:
        return f"generation.{self.kind.value}"

    @property
    def caller_may_retry(self) -> bool:
        return self.kind is not GenerationErrorKind.AUTHENTICATION
