"""
Readiness scoring for the twelve-question assessment.

Questions 1-3 assess clarity, 4-6 engagement, 7-9 preparation, 10-12 support.
Raw answers map to area scores and zone labels (``calculate_scores``); zone
labels map to fixed band anchors that feed the overall stage (``score_zones``).
"""

from dataclasses import dataclass
from enum import Enum

DIMENSIONS = ("clarity", "engagement", "preparation", "support")


class ReadinessZone(str, Enum):
    DEVELOPMENT = "Development"
    BALANCED = "Balanced"
    PROFICIENCY = "Proficiency"


class OverallStage(str, Enum):
    EARLY = "Early"
    MID = "Mid"
    LATE = "Late"


INSUFFICIENT_DATA = "Insufficient Data"

ANSWER_POINTS = {"A": 25, "B": 50, "C": 75, "D": 100, "E": 0}
QUESTIONS_PER_AREA = 3
AREA_MAX_SCORE = 300
TOTAL_MAX_SCORE = 1200
INSUFFICIENT_DATA_THRESHOLD = 7

ZONE_ANCHORS = {
    ReadinessZone.DEVELOPMENT: 50,
    ReadinessZone.BALANCED: 75,
    ReadinessZone.PROFICIENCY: 100,
}
AREA_WEIGHT = QUESTIONS_PER_AREA

# Inclusive upper bounds on the 0-1200 total
STAGE_THRESHOLDS = ((600, OverallStage.EARLY), (900, OverallStage.MID))

LEGAL_ZONE_LABELS = frozenset(zone.value for zone in ReadinessZone)


@dataclass(frozen=True)
class ZoneScores:
    """Anchored scores derived from four zone labels."""

    zones: dict[str, str]
    matrix_scores: dict[str, int]
    total_score: int
    overall_stage: str


@dataclass(frozen=True)
class AnswerScores:
    """Scores derived from the raw twelve answers."""

    area_scores: dict[str, int]
    categories: dict[str, str]
    total_score: int
    stage: str
    insufficient_data: bool


def stage_for_total(total: int) -> OverallStage:
    bounded = max(0, min(TOTAL_MAX_SCORE, round(total)))
    for upper, stage in STAGE_THRESHOLDS:
        if bounded <= upper:
            return stage
    return OverallStage.LATE


def area_category(score: int) -> ReadinessZone:
    bounded = max(0, min(AREA_MAX_SCORE, round(score)))
    if bounded <= 150:
        return ReadinessZone.DEVELOPMENT
    if bounded <= 225:
        return ReadinessZone.BALANCED
    return ReadinessZone.PROFICIENCY


def normalize_answers(answers: list[str] | tuple[str, ...]) -> list[str]:
    """Uppercase and check twelve answers, raising ValueError on anything else."""
    if len(answers) != QUESTIONS_PER_AREA * len(DIMENSIONS):
        raise ValueError(
            f"Answers must contain exactly {QUESTIONS_PER_AREA * len(DIMENSIONS)} entries"
        )
    normalized = []
    for position, answer in enumerate(answers, start=1):
        letter = str(answer).strip().upper()
        if letter not in ANSWER_POINTS:
            raise ValueError(f"Invalid answer at position {position}: {answer}")
        normalized.append(letter)
    return normalized


def calculate_scores(answers: list[str] | tuple[str, ...]) -> AnswerScores:
    """Score raw answers into area scores, zone categories and a stage label."""
    normalized = normalize_answers(answers)

    area_scores: dict[str, int] = {}
    for index, dimension in enumerate(DIMENSIONS):
        block = normalized[index * QUESTIONS_PER_AREA : (index + 1) * QUESTIONS_PER_AREA]
        area_scores[dimension] = sum(ANSWER_POINTS[letter] for letter in block)
    total = sum(area_scores.values())

    insufficient = normalized.count("E") >= INSUFFICIENT_DATA_THRESHOLD
    if insufficient:
        categories = dict.fromkeys(DIMENSIONS, INSUFFICIENT_DATA)
        stage = INSUFFICIENT_DATA
    else:
        categories = {dim: area_category(score).value for dim, score in area_scores.items()}
        stage = stage_for_total(total).value

    return AnswerScores(
        area_scores=area_scores,
        categories=categories,
        total_score=total,
        stage=stage,
        insufficient_data=insufficient,
    )


def score_zones(zones: dict[str, str]) -> ZoneScores:
    """Map four zone labels to band anchors, a weighted total and a stage.

    Raises ValueError naming the first dimension whose label is missing or
    outside ``LEGAL_ZONE_LABELS``.
    """
    matrix_scores: dict[str, int] = {}
    for dimension in DIMENSIONS:
        label = zones.get(dimension)
        if label not in LEGAL_ZONE_LABELS:
            raise ValueError(f"Invalid readiness zone for {dimension}: {label}")
        matrix_scores[dimension] = ZONE_ANCHORS[ReadinessZone(label)]

    total = sum(matrix_scores.values()) * AREA_WEIGHT
    return ZoneScores(
        zones={dim: zones[dim] for dim in DIMENSIONS},
        matrix_scores=matrix_scores,
        total_score=total,
        overall_stage=stage_for_total(total).value,
    )
