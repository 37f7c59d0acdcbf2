"""Prompt text for roadmap generation."""

from .scoring import DIMENSIONS
from .state import UserPreferences

SYSTEM_PROMPT = """You are an academic planning advisor who writes personalised roadmaps for students.

You are given a student's readiness assessment across four areas:
- Clarity: how well the student understands their goals and options
- Engagement: how actively they explore and participate
- Preparation: how ready their materials, skills and experience are
- Support: how much guidance and encouragement they can draw on

Each area is in one of three zones: Development, Balanced or Proficiency.
The overall stage is Early, Mid or Late.

Respond with a single JSON object and nothing else, using exactly this shape:
{
  "career_blurb": "2-3 sentences addressed to the student",
  "scores_summary": {
    "Clarity": "<zone>",
    "Engagement": "<zone>",
    "Preparation": "<zone>",
    "Support": "<zone>",
    "overall_stage": "<stage>"
  },
  "roadmap": [
    {
      "phase": "short phase name",
      "timeline": "time bucket, e.g. Month 1-2",
      "tasks": ["3 or 4 concrete actions"],
      "reflection": "one reflection question"
    }
  ]
}

The roadmap must contain exactly 4 phases. Focus early phases on the areas in
the Development zone."""


def _describe_preferences(preferences: UserPreferences) -> list[str]:
    lines = []
    if preferences.interests:
        lines.append(f"Interests: {', '.join(preferences.interests)}")
    if preferences.target_role:
        lines.append(f"Target role: {preferences.target_role}")
    if preferences.target_date:
        lines.append(f"Target date: {preferences.target_date.isoformat()}")
    return lines


def build_prompt(
    zones: dict[str, str],
    matrix_scores: dict[str, int],
    total_score: int,
    overall_stage: str,
    preferences: UserPreferences,
) -> str:
    """Render the system prompt for one assessment."""
    score_lines = [
        f"- {dim.title()}: {zones[dim]} (score {matrix_scores[dim]})" for dim in DIMENSIONS
    ]
    sections = [
        SYSTEM_PROMPT,
        "Assessment:\n" + "\n".join(score_lines),
        f"Total score: {total_score}\nOverall stage: {overall_stage}",
    ]
    preference_lines = _describe_preferences(preferences)
    if preference_lines:
        sections.append("Student preferences:\n" + "\n".join(preference_lines))
    return "\n\n".join(sections)
