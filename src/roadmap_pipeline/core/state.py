"""
Pipeline state: the single record threaded through every stage of a run.

The input region is an immutable ``AssessmentInput`` embedded by value, so no
stage can change what the caller submitted. The working and output regions
are plain attributes that stages fill in as the run progresses.
"""

import time
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .scoring import DIMENSIONS, calculate_scores


class UserPreferences(BaseModel):
    """Preferences the student entered alongside the assessment."""

    model_config = ConfigDict(frozen=True)

    interests: tuple[str, ...] = ()
    target_role: str = ""
    target_date: date | None = None

    @field_validator("interests", mode="before")
    @classmethod
    def split_interests(cls, v: Any) -> Any:
        if isinstance(v, str):
            return tuple(part.strip() for part in v.split(",") if part.strip())
        return v


class AssessmentInput(BaseModel):
    """What the caller submits. Frozen once constructed."""

    model_config = ConfigDict(frozen=True)

    subject_id: str
    clarity: str = ""
    engagement: str = ""
    preparation: str = ""
    support: str = ""
    answers: tuple[str, ...] = ()
    session_id: str | None = None
    preferences: UserPreferences = Field(default_factory=UserPreferences)

    @classmethod
    def from_answers(
        cls,
        subject_id: str,
        answers: list[str] | tuple[str, ...],
        preferences: UserPreferences | None = None,
        session_id: str | None = None,
    ) -> "AssessmentInput":
        """Derive the four zone labels from raw answers."""
        scores = calculate_scores(answers)
        return cls(
            subject_id=subject_id,
            answers=tuple(answers),
            session_id=session_id,
            preferences=preferences or UserPreferences(),
            **scores.categories,
        )

    @property
    def zones(self) -> dict[str, str]:
        return {dim: getattr(self, dim) for dim in DIMENSIONS}


def _scalar_to_str(v: Any) -> Any:
    if isinstance(v, int | float):
        return str(v)
    return v


class ScoresSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    clarity: str = Field(alias="Clarity", min_length=1)
    engagement: str = Field(alias="Engagement", min_length=1)
    preparation: str = Field(alias="Preparation", min_length=1)
    support: str = Field(alias="Support", min_length=1)
    overall_stage: str = Field(min_length=1)

    @field_validator("*", mode="before")
    @classmethod
    def coerce_scalars(cls, v: Any) -> Any:
        return _scalar_to_str(v)


class RoadmapPhase(BaseModel):
    phase: str = Field(min_length=1)
    timeline: str = Field(min_length=1)
    tasks: list[str | dict[str, Any]] = Field(min_length=3, max_length=4)
    reflection: str = Field(min_length=1)

    @field_validator("phase", "timeline", "reflection", mode="before")
    @classmethod
    def coerce_scalars(cls, v: Any) -> Any:
        return _scalar_to_str(v)

    @field_validator("tasks", mode="before")
    @classmethod
    def coerce_tasks(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [_scalar_to_str(task) for task in v]
        return v

    @field_validator("tasks")
    @classmethod
    def tasks_not_blank(cls, v: list[str | dict[str, Any]]) -> list[str | dict[str, Any]]:
        for index, task in enumerate(v):
            if not task or (isinstance(task, str) and not task.strip()):
                raise ValueError(f"task {index} is empty")
        return v


class RoadmapPlan(BaseModel):
    """The structured plan: a narrative, a score summary and the phases."""

    model_config = ConfigDict(populate_by_name=True)

    career_blurb: str = Field(min_length=1)
    scores_summary: ScoresSummary
    roadmap: list[RoadmapPhase]
    error: str | None = None
    is_fallback: bool = False
    success: bool | None = None
    generated_at: datetime | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


@dataclass
class GenerationResult:
    """Raw exchange with the generative service."""

    raw_text: str
    payload: dict[str, Any]
    model: str | None = None
    usage: dict[str, Any] | None = None

    @property
    def has_choices(self) -> bool:
        choices = self.payload.get("choices")
        return isinstance(choices, list) and len(choices) > 0


class RunStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    RETRYING = "retrying"
    FAILED = "failed"
    COMPLETED = "completed"


@dataclass
class StageMetrics:
    attempts: int = 0
    duration: float = 0.0
    last_error: str | None = None


# Working and output fields whose presence the pipeline tracks between stages
TRACKED_FIELDS = (
    "readiness_zones",
    "matrix_scores",
    "total_score",
    "overall_stage",
    "session_id",
    "prompt",
    "generation",
    "raw_response",
    "roadmap",
)


@dataclass
class PipelineState:
    input: AssessmentInput

    # Working region
    readiness_zones: dict[str, str] | None = None
    matrix_scores: dict[str, int] | None = None
    total_score: int | None = None
    overall_stage: str | None = None
    session_id: str | None = None
    prompt: str | None = None
    generation: GenerationResult | None = None
    raw_response: str | None = None

    # Output region
    roadmap: RoadmapPlan | None = None
    error: str = ""
    error_code: str | None = None
    caller_may_retry: bool = False
    persisted: bool = False
    persistence_error: str | None = None

    # Metadata
    status: RunStatus = RunStatus.PENDING
    step_history: list[str] = field(default_factory=list)
    stage_metrics: dict[str, StageMetrics] = field(default_factory=dict)
    started_at: float | None = None
    ended_at: float | None = None

    def populated_fields(self) -> set[str]:
        return {name for name in TRACKED_FIELDS if getattr(self, name) is not None}

    def stamp_start(self) -> None:
        if self.started_at is None:
            self.started_at = time.time()

    def stamp_end(self) -> None:
        self.ended_at = time.time()

    @property
    def elapsed(self) -> float | None:
        if self.started_at is None or self.ended_at is None:
            return None
        return self.ended_at - self.started_at

    @property
    def succeeded(self) -> bool:
        return self.status is RunStatus.COMPLETED and not self.error

    @property
    def is_fallback(self) -> bool:
        return self.roadmap is not None and self.roadmap.is_fallback

    @property
    def outcome(self) -> str:
        """completed, degraded (fallback plan) or failed."""
        if not self.succeeded:
            return "failed"
        return "degraded" if self.is_fallback else "completed"

    def summary(self) -> dict[str, Any]:
        """JSON-friendly view of the terminal state."""
        return {
            "subject_id": self.input.subject_id,
            "session_id": self.session_id,
            "status": self.status.value,
            "outcome": self.outcome,
            "error": self.error,
            "error_code": self.error_code,
            "total_score": self.total_score,
            "overall_stage": self.overall_stage,
            "step_history": list(self.step_history),
            "stage_metrics": {
                name: {"attempts": m.attempts, "duration": m.duration, "last_error": m.last_error}
                for name, m in self.stage_metrics.items()
            },
            "elapsed": self.elapsed,
            "persisted": self.persisted,
            "persistence_error": self.persistence_error,
            "roadmap": self.roadmap.to_wire() if self.roadmap else None,
        }
