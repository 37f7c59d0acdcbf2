"""
Global pytest configuration and fixtures for test isolation.

Cached settings, the cached container and the metrics collector are reset
around every test so no state leaks between tests.
"""

import json
from collections.abc import Iterable

import pytest

from roadmap_pipeline.config.container import get_container
from roadmap_pipeline.config.settings import (
    PipelineConfig,
    Settings,
    StorageConfig,
    get_settings,
)
from roadmap_pipeline.core.state import (
    AssessmentInput,
    GenerationResult,
    PipelineState,
    UserPreferences,
)
from roadmap_pipeline.observability.metrics import reset_metrics
from roadmap_pipeline.storage.assessments import LocalStore


def reset_all_global_state():
    get_settings.cache_clear()
    get_container.cache_clear()
    reset_metrics()


@pytest.fixture(autouse=True)
def test_isolation(monkeypatch, tmp_path):
    """Per-test isolation: fresh caches, no back-off sleeps, storage under tmp_path."""
    monkeypatch.setenv("ROADMAP_PIPELINE__RETRY_BACKOFF_MULTIPLIER", "0")
    monkeypatch.setenv("ROADMAP_STORAGE__ROOT", str(tmp_path / "env-store"))
    monkeypatch.delenv("ROADMAP_GENERATION__API_KEY", raising=False)
    reset_all_global_state()
    yield
    reset_all_global_state()


def completion(text: str, model: str = "test-model") -> GenerationResult:
    """A provider response carrying ``text`` as its only choice."""
    payload = {
        "id": "gen-1",
        "model": model,
        "choices": [{"index": 0, "message": {"role": "assistant", "content": text}}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 20},
    }
    return GenerationResult(raw_text=text, payload=payload, model=model, usage=payload["usage"])


class FakeGenerator:
    """Scripted stand-in for the generation client.

    Each call consumes the next outcome: an exception is raised, a string is
    returned as a completion, a ``GenerationResult`` is returned as is. The
    last outcome repeats once the script runs out.
    """

    def __init__(self, outcomes: Iterable):
        self.outcomes = list(outcomes)
        self.prompts: list[str] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def generate(self, prompt: str) -> GenerationResult:
        self.prompts.append(prompt)
        index = min(len(self.prompts) - 1, len(self.outcomes) - 1)
        outcome = self.outcomes[index]
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, GenerationResult):
            return outcome
        return completion(outcome)


def make_plan_dict(phases: int = 4, tasks: int = 3) -> dict:
    return {
        "career_blurb": "You are building a clear picture of where you want to go.",
        "scores_summary": {
            "Clarity": "Development",
            "Engagement": "Development",
            "Preparation": "Development",
            "Support": "Development",
            "overall_stage": "Early",
        },
        "roadmap": [
            {
                "phase": f"Phase {n}",
                "timeline": f"Month {2 * n - 1}-{2 * n}",
                "tasks": [f"Task {n}.{t}" for t in range(1, tasks + 1)],
                "reflection": f"What did phase {n} teach you?",
            }
            for n in range(1, phases + 1)
        ],
    }


@pytest.fixture
def plan_dict():
    return make_plan_dict()


@pytest.fixture
def valid_response_text(plan_dict):
    return json.dumps(plan_dict)


@pytest.fixture
def make_plan():
    return make_plan_dict


@pytest.fixture
def make_completion():
    return completion


@pytest.fixture
def make_generator():
    return FakeGenerator


@pytest.fixture
def preferences():
    return UserPreferences(
        interests="biology, design", target_role="Product designer", target_date="2027-06-01"
    )


@pytest.fixture
def assessment_input(preferences):
    """All four zones at the lowest band."""
    return AssessmentInput(
        subject_id="student-1",
        clarity="Development",
        engagement="Development",
        preparation="Development",
        support="Development",
        preferences=preferences,
    )


@pytest.fixture
def state(assessment_input):
    return PipelineState(input=assessment_input)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        pipeline=PipelineConfig(retry_backoff_multiplier=0),
        storage=StorageConfig(root=tmp_path / "assessments"),
    )


@pytest.fixture
def store(tmp_path):
    return LocalStore(tmp_path / "assessments")
