# services/challenge_service/grading.py
"""
Scoring and grading for timed challenges.

Score formula:
    accuracy     = correct / total
    time_bonus   = max(0, (time_limit - time_spent) / time_limit)
    speed_bonus  = time_bonus * 0.5
    score        = round(((accuracy * 100) + (speed_bonus * 50)) * multiplier)

Grades (inclusive lower bounds):
- S >= 180
- A >= 150
- B >= 120
- C >= 90
- D otherwise
"""

from __future__ import annotations
from typing import NamedTuple
import math

from .errors import ValidationError

# ============================================================================
# Configuration
# ============================================================================

GRADE_THRESHOLDS = [
    ("S", 180),
    ("A", 150),
    ("B", 120),
    ("C", 90),
]
LOWEST_GRADE = "D"

GRADE_ORDER = {"S": 5, "A": 4, "B": 3, "C": 2, "D": 1}

SPEED_BONUS_WEIGHT = 0.5
SPEED_BONUS_POINTS = 50
ACCURACY_POINTS = 100


class GradeResult(NamedTuple):
    score: int
    grade: str


# ============================================================================
# Grade Classification
# ============================================================================

def classify(score: int) -> str:
    """Letter grade for a score. Used on its own to re-grade stored results."""
    for letter, threshold in GRADE_THRESHOLDS:
        if score >= threshold:
            return letter
    return LOWEST_GRADE


def grade_rank(grade: str) -> int:
    """S=5 ... D=1; anything unrecognised ranks below D."""
    return GRADE_ORDER.get(grade, 0)


def best_grade(grades) -> str:
    """Highest letter among `grades`, or D when there are none."""
    return max(grades, key=grade_rank, default=LOWEST_GRADE)


# ============================================================================
# Scoring
# ============================================================================

def validate_play(
    correct: int,
    total: int,
    time_spent: float,
    time_limit: float,
    multiplier: float,
) -> None:
    """Reject play data the scoring formula is not defined for."""
    if total <= 0:
        raise ValidationError("total questions must be positive")
    if correct < 0 or correct > total:
        raise ValidationError(f"correct answers must be within 0..{total}")
    if time_limit <= 0:
        raise ValidationError("time limit must be positive")
    if time_spent < 0:
        raise ValidationError("time spent cannot be negative")
    if multiplier <= 0:
        raise ValidationError("score multiplier must be positive")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_score(
    correct: int,
    total: int,
    time_spent: float,
    time_limit: float,
    multiplier: float,
) -> int:
    # A timer overrun is clamped to the limit (no negative bonus).
    time_spent = min(max(time_spent, 0), time_limit)

    accuracy = correct / total
    time_bonus = max(0.0, (time_limit - time_spent) / time_limit)
    speed_bonus = time_bonus * SPEED_BONUS_WEIGHT
    raw = ((accuracy * ACCURACY_POINTS) + (speed_bonus * SPEED_BONUS_POINTS)) * multiplier
    return max(0, _round_half_up(raw))


def grade(
    correct: int,
    total: int,
    time_spent: float,
    time_limit: float,
    multiplier: float,
) -> GradeResult:
    """
    Score and grade one play. Inputs must satisfy `validate_play`.

    Example (blitz-15, 180s, x2.0):
        grade(15, 15, 60, 180, 2.0) -> GradeResult(score=233, grade="S")
    """
    score = calculate_score(correct, total, time_spent, time_limit, multiplier)
    return GradeResult(score, classify(score))


def accuracy_percent(correct: int, total: int) -> int:
    return _round_half_up(correct / total * 100) if total > 0 else 0
