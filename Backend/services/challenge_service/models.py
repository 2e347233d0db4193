# services/challenge_service/models.py
"""
Value types shared by the grading, progression and sync modules.

Every type is immutable; state changes produce new instances. Each type knows
how to turn itself into a plain dict (the Firestore / JSON document shape)
and back.
"""

from __future__ import annotations
from dataclasses import dataclass, field, asdict, replace
from datetime import date, datetime
from typing import Any, Dict, Mapping, Optional, Tuple

from .utils import (
    is_early_morning,
    is_late_night,
    is_weekend,
    parse_day,
    parse_iso,
    to_iso,
    to_yyyy_mm_dd,
)

STREAK_HISTORY_LIMIT = 365


# ============================================================================
# Challenges and results
# ============================================================================

@dataclass(frozen=True)
class ChallengeDefinition:
    id: str
    name: str
    description: str
    time_limit: int  # seconds
    question_count: int
    score_multiplier: float
    difficulty: str  # easy | medium | hard
    topic: str = "Mixed"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ChallengeResult:
    challenge_id: str
    score: int
    grade: str
    correct_answers: int
    total_questions: int
    time_spent: int
    accuracy: int  # 0-100
    completed_at: str  # ISO-8601 UTC

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ChallengeResult":
        completed_at = data.get("completed_at") or ""
        if isinstance(completed_at, datetime):
            completed_at = to_iso(completed_at)
        return cls(
            challenge_id=str(data["challenge_id"]),
            score=int(data.get("score", 0)),
            grade=str(data.get("grade", "D")),
            correct_answers=int(data.get("correct_answers", 0)),
            total_questions=int(data.get("total_questions", 0)),
            time_spent=int(data.get("time_spent", 0)),
            accuracy=int(data.get("accuracy", 0)),
            completed_at=str(completed_at),
        )


# ============================================================================
# Achievements and counters
# ============================================================================

@dataclass(frozen=True)
class Achievement:
    id: str
    name: str
    description: str
    icon: str
    category: str
    requirement: int
    rarity: str
    is_unlocked: bool = False
    progress: int = 0
    unlocked_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Achievement":
        unlocked_at = data.get("unlocked_at")
        if isinstance(unlocked_at, datetime):
            unlocked_at = to_iso(unlocked_at)
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", data["id"])),
            description=str(data.get("description", "")),
            icon=str(data.get("icon", "")),
            category=str(data.get("category", "special")),
            requirement=int(data.get("requirement", 1)),
            rarity=str(data.get("rarity", "common")),
            is_unlocked=bool(data.get("is_unlocked", False)),
            progress=int(data.get("progress", 0) or 0),
            unlocked_at=unlocked_at,
        )


@dataclass(frozen=True)
class ProgressCounters:
    total_questions_answered: int = 0
    total_correct_answers: int = 0
    perfect_scores: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    topic_quizzes: Mapping[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["topic_quizzes"] = dict(self.topic_quizzes)
        return data

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ProgressCounters":
        data = data or {}
        return cls(
            total_questions_answered=int(data.get("total_questions_answered", 0)),
            total_correct_answers=int(data.get("total_correct_answers", 0)),
            perfect_scores=int(data.get("perfect_scores", 0)),
            current_streak=int(data.get("current_streak", 0)),
            longest_streak=int(data.get("longest_streak", 0)),
            topic_quizzes={str(k): int(v) for k, v in (data.get("topic_quizzes") or {}).items()},
        )


@dataclass(frozen=True)
class ProgressEvent:
    """One completed quiz or challenge, as seen by the progression tracker."""

    occurred_at: datetime
    event_id: Optional[str] = None
    questions_answered: int = 0
    correct_answers: int = 0
    is_perfect_score: bool = False
    quiz_topic: Optional[str] = None
    is_timed_quiz: bool = False
    is_timed_perfect: bool = False

    @property
    def is_early_morning(self) -> bool:
        return is_early_morning(self.occurred_at)

    @property
    def is_late_night(self) -> bool:
        return is_late_night(self.occurred_at)

    @property
    def is_weekend(self) -> bool:
        return is_weekend(self.occurred_at)


# ============================================================================
# Streaks
# ============================================================================

@dataclass(frozen=True)
class DailyStreakRecord:
    current_streak: int = 0
    longest_streak: int = 0
    last_active_date: Optional[date] = None
    streak_history: Tuple[date, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "last_active_date": to_yyyy_mm_dd(self.last_active_date) if self.last_active_date else None,
            "streak_history": [to_yyyy_mm_dd(d) for d in self.streak_history],
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "DailyStreakRecord":
        data = data or {}
        history = tuple(d for d in (parse_day(v) for v in data.get("streak_history") or []) if d)
        return cls(
            current_streak=int(data.get("current_streak", 0)),
            longest_streak=int(data.get("longest_streak", 0)),
            last_active_date=parse_day(data.get("last_active_date")),
            streak_history=history[-STREAK_HISTORY_LIMIT:],
        )


# ============================================================================
# Per-user progress document
# ============================================================================

PROCESSED_EVENT_LIMIT = 50


@dataclass(frozen=True)
class UserProgress:
    counters: ProgressCounters = field(default_factory=ProgressCounters)
    achievements: Tuple[Achievement, ...] = ()
    last_quiz_at: Optional[str] = None
    processed_event_ids: Tuple[str, ...] = ()

    @property
    def total_unlocked(self) -> int:
        return sum(1 for a in self.achievements if a.is_unlocked)

    def has_processed(self, event_id: Optional[str]) -> bool:
        return bool(event_id) and event_id in self.processed_event_ids

    def with_processed(self, event_id: Optional[str]) -> "UserProgress":
        if not event_id:
            return self
        ids = (self.processed_event_ids + (event_id,))[-PROCESSED_EVENT_LIMIT:]
        return replace(self, processed_event_ids=ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.counters.to_dict(),
            "achievements": [a.to_dict() for a in self.achievements],
            "total_unlocked": self.total_unlocked,
            "last_quiz_at": self.last_quiz_at,
            "processed_event_ids": list(self.processed_event_ids),
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "UserProgress":
        data = data or {}
        last_quiz_at = parse_iso(data.get("last_quiz_at"))
        return cls(
            counters=ProgressCounters.from_dict(data),
            achievements=tuple(Achievement.from_dict(a) for a in data.get("achievements") or []),
            last_quiz_at=to_iso(last_quiz_at) if last_quiz_at else None,
            processed_event_ids=tuple(str(i) for i in data.get("processed_event_ids") or []),
        )
