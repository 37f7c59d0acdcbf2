"""
The six roadmap stages and the factory that wires them into a pipeline.
"""

from ..config.settings import Settings
from ..core.pipeline import Pipeline
from ..storage.assessments import AssessmentStore
from .build_prompt import BuildPrompt
from .collect_input import CollectInput
from .finalize import Finalize
from .generate_content import ContentGenerator, GenerateContent
from .score_readiness import ScoreReadiness, new_session_id
from .validate_content import (
    FALLBACK_BLURB,
    FALLBACK_ERROR,
    ValidateContent,
    extract_json_object,
    fallback_plan,
    parse_plan,
)

PIPELINE_NAME = "roadmap"


def build_pipeline(
    settings: Settings, client: ContentGenerator, store: AssessmentStore | None
) -> Pipeline:
    """Build the fixed six-stage roadmap pipeline."""
    return Pipeline(
        PIPELINE_NAME,
        [
            CollectInput(),
            ScoreReadiness(),
            BuildPrompt(),
            GenerateContent(client, max_retries=settings.generation.max_retries),
            ValidateContent(),
            Finalize(store, persist_fallback_scores=settings.storage.persist_fallback_scores),
        ],
        retry_backoff_multiplier=settings.pipeline.retry_backoff_multiplier,
        retry_backoff_max=settings.pipeline.retry_backoff_max,
    )


__all__ = [
    "CollectInput",
    "ScoreReadiness",
    "BuildPrompt",
    "GenerateContent",
    "ValidateContent",
    "Finalize",
    "ContentGenerator",
    "build_pipeline",
    "new_session_id",
    "extract_json_object",
    "parse_plan",
    "fallback_plan",
    "FALLBACK_BLURB",
    "FALLBACK_ERROR",
]
