"""
ValidateContent: turn the raw completion into a ``RoadmapPlan``.

Unusable content never fails the run. It is replaced by a fixed fallback plan
that carries its own ``error`` marker and ``is_fallback=True``.
"""

import json
from typing import Any

from pydantic import ValidationError

from ..core.scoring import OverallStage, ReadinessZone
from ..core.stage import Stage
from ..core.state import PipelineState, RoadmapPlan, ScoresSummary
from ..observability.logging import get_logger
from ..observability.metrics import get_metrics_collector
from ..observability.tracing import add_span_event

logger = get_logger(__name__)

REQUIRED_PHASES = 4
FALLBACK_BLURB = "Unable to generate personalized roadmap. Please try again."
FALLBACK_ERROR = "Invalid JSON response from AI service"

# Fields a completion may supply
_PLAN_KEYS = ("career_blurb", "scores_summary", "roadmap")


class ContentRejected(ValueError):
    def __init__(self, reason: str, detail: str):
        super().__init__(f"{reason}: {detail}")
        self.reason = reason
        self.detail = detail


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Return the first well-formed JSON object embedded in ``text``."""
    decoder = json.JSONDecoder()
    index = text.find("{")
    while index != -1:
        try:
            obj, _ = decoder.raw_decode(text, index)
        except json.JSONDecodeError:
            pass
        else:
            if isinstance(obj, dict):
                return obj
        index = text.find("{", index + 1)
    return None


def parse_plan(raw_text: str) -> RoadmapPlan:
    """Parse and shape-check a completion, raising ``ContentRejected``."""
    obj = extract_json_object(raw_text)
    if obj is None:
        raise ContentRejected("no_json", "no JSON object in response")

    try:
        plan = RoadmapPlan.model_validate({key: obj[key] for key in _PLAN_KEYS if key in obj})
    except ValidationError as e:
        raise ContentRejected("invalid_shape", f"{e.error_count()} validation errors") from e

    if len(plan.roadmap) != REQUIRED_PHASES:
        raise ContentRejected(
            "phase_count", f"expected {REQUIRED_PHASES} phases, got {len(plan.roadmap)}"
        )
    return plan


def fallback_plan() -> RoadmapPlan:
    lowest = ReadinessZone.DEVELOPMENT.value
    return RoadmapPlan(
        career_blurb=FALLBACK_BLURB,
        scores_summary=ScoresSummary(
            clarity=lowest,
            engagement=lowest,
            preparation=lowest,
            support=lowest,
            overall_stage=OverallStage.EARLY.value,
        ),
        roadmap=[],
        error=FALLBACK_ERROR,
        is_fallback=True,
    )


class ValidateContent(Stage):
    name = "ValidateContent"

    async def execute(self, state: PipelineState) -> PipelineState:
        try:
            plan = parse_plan(state.raw_response or "")
        except ContentRejected as e:
            logger.warning(
                "Generated content unusable, using fallback plan",
                reason=e.reason,
                detail=e.detail,
            )
            get_metrics_collector().record_fallback(e.reason)
            add_span_event("content.fallback", {"reason": e.reason})
            plan = fallback_plan()
        else:
            logger.info("Generated content parsed", phases=len(plan.roadmap))

        state.roadmap = plan
        return state

    def validate(self, state: PipelineState) -> bool:
        return state.roadmap is not None
