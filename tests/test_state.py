"""
Tests for the pipeline state model and the plan schema.
"""

from datetime import date

import pytest
from pydantic import ValidationError

from roadmap_pipeline.core.state import (
    AssessmentInput,
    GenerationResult,
    PipelineState,
    RoadmapPhase,
    RoadmapPlan,
    RunStatus,
    UserPreferences,
)


class TestAssessmentInput:
    def test_input_is_frozen(self, assessment_input):
        """No stage can overwrite what the caller submitted."""
        with pytest.raises(ValidationError):
            assessment_input.clarity = "Proficiency"
        assert assessment_input.clarity == "Development"

    def test_preferences_frozen(self, preferences):
        with pytest.raises(ValidationError):
            preferences.target_role = "Astronaut"

    def test_interests_split_from_string(self):
        prefs = UserPreferences(interests=" biology,  ,design ")
        assert prefs.interests == ("biology", "design")

    def test_target_date_parsed(self, preferences):
        assert preferences.target_date == date(2027, 6, 1)

    def test_from_answers_derives_zones(self):
        answers = ["A", "A", "A", "B", "C", "D", "D", "D", "D", "C", "C", "B"]
        data = AssessmentInput.from_answers("s-1", answers, session_id="sess-1")

        assert data.zones == {
            "clarity": "Development",
            "engagement": "Balanced",
            "preparation": "Proficiency",
            "support": "Balanced",
        }
        assert data.answers == tuple(answers)
        assert data.session_id == "sess-1"

    def test_from_answers_rejects_bad_answers(self):
        with pytest.raises(ValueError):
            AssessmentInput.from_answers("s-1", ["A"] * 3)


class TestRoadmapPlan:
    def test_wire_format_field_names(self, plan_dict):
        plan = RoadmapPlan.model_validate(plan_dict)
        wire = plan.to_wire()

        assert set(wire["scores_summary"]) == {
            "Clarity",
            "Engagement",
            "Preparation",
            "Support",
            "overall_stage",
        }
        assert wire["is_fallback"] is False
        assert "error" not in wire
        assert len(wire["roadmap"]) == 4

    @pytest.mark.parametrize("count", [2, 5])
    def test_task_count_bounds(self, count):
        with pytest.raises(ValidationError):
            RoadmapPhase(
                phase="Explore",
                timeline="Month 1",
                tasks=[f"t{i}" for i in range(count)],
                reflection="Why?",
            )

    def test_blank_task_rejected(self):
        with pytest.raises(ValidationError, match="task 1 is empty"):
            RoadmapPhase(phase="Explore", timeline="Month 1", tasks=["a", "  ", "c"], reflection="?")

    def test_structured_tasks_allowed(self):
        phase = RoadmapPhase(
            phase="Explore",
            timeline="Month 1",
            tasks=["Read", {"task": "Visit", "resource": "campus"}, "Write"],
            reflection="What surprised you?",
        )
        assert phase.tasks[1]["task"] == "Visit"


class TestPipelineState:
    def test_fresh_state(self, state):
        assert state.status is RunStatus.PENDING
        assert state.populated_fields() == set()
        assert state.error == ""
        assert state.elapsed is None

    def test_populated_fields_tracks_working_region(self, state):
        state.total_score = 600
        state.session_id = "abc"
        state.raw_response = ""
        assert state.populated_fields() == {"total_score", "session_id", "raw_response"}

    def test_stamp_start_only_once(self, state):
        state.stamp_start()
        first = state.started_at
        state.stamp_start()
        assert state.started_at == first

    def test_outcomes(self, state, plan_dict):
        assert state.outcome == "failed"

        state.status = RunStatus.COMPLETED
        state.roadmap = RoadmapPlan.model_validate(plan_dict)
        assert state.outcome == "completed"

        state.roadmap = state.roadmap.model_copy(update={"is_fallback": True})
        assert state.outcome == "degraded"

        state.error = "boom"
        assert state.outcome == "failed"

    def test_summary_is_json_friendly(self, state, plan_dict):
        state.roadmap = RoadmapPlan.model_validate(plan_dict)
        state.step_history.append("CollectInput")
        summary = state.summary()

        assert summary["subject_id"] == "student-1"
        assert summary["status"] == "pending"
        assert summary["step_history"] == ["CollectInput"]
        assert summary["roadmap"]["career_blurb"]

    def test_generation_result_choices(self):
        assert GenerationResult(raw_text="", payload={"choices": []}).has_choices is False
        assert GenerationResult(raw_text="x", payload={"choices": [{}]}).has_choices is True
        assert PipelineState(input=AssessmentInput(subject_id="s")).is_fallback is False
