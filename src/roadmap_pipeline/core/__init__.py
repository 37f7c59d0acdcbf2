"""
Core of the roadmap generation pipeline.

- Stage contract and the sequential executor with per-stage retry
- Pipeline state threaded through every stage
- Readiness scoring and the typed error hierarchy
"""

from .errors import (
    DomainError,
    FormattingError,
    GenerationError,
    GenerationErrorKind,
    InputError,
    StageError,
    StageValidationError,
    StateInvariantError,
)
from .pipeline import Pipeline
from .stage import Stage
from .state import (
    AssessmentInput,
    GenerationResult,
    PipelineState,
    RoadmapPhase,
    RoadmapPlan,
    RunStatus,
    ScoresSummary,
    UserPreferences,
)

__all__ = [
    "Pipeline",
    "Stage",
    "PipelineState",
    "RunStatus",
    "AssessmentInput",
    "UserPreferences",
    "GenerationResult",
    "RoadmapPlan",
    "RoadmapPhase",
    "ScoresSummary",
    "StageError",
    "InputError",
    "DomainError",
    "FormattingError",
    "GenerationError",
    "GenerationErrorKind",
    "StageValidationError",
    "StateInvariantError",
]
