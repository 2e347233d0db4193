# services/challenge_service/achievements.py
"""
Achievement rule engine.

Each achievement is described by a rule in ACHIEVEMENT_RULES. A rule measures
progress from the user's cumulative counters and the triggering event:

- cumulative rules read a running counter (questions answered, perfect
  scores, streak length, quizzes per topic);
- event rules only move when the event itself qualifies (a perfect timed
  run, a quiz finished before 7 AM, ...), either jumping to 1 or counting
  qualifying events.

Unlocks are permanent. Locked progress never goes down, so a broken streak
does not erase progress toward a streak achievement.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Callable, Dict, Iterable, List, NamedTuple, Optional, Sequence
import logging

from .models import Achievement, ProgressCounters, ProgressEvent
from .utils import to_iso

logger = logging.getLogger(__name__)

Measure = Callable[[ProgressCounters, ProgressEvent, int], int]

CATEGORIES = ("questions", "streaks", "accuracy", "topics", "speed", "special")
RARITIES = ("common", "rare", "epic", "legendary")


@dataclass(frozen=True)
class AchievementRule:
    id: str
    name: str
    description: str
    icon: str
    category: str
    requirement: int
    rarity: str
    measure: Measure

    def blank(self) -> Achievement:
        return Achievement(
            id=self.id,
            name=self.name,
            description=self.description,
            icon=self.icon,
            category=self.category,
            requirement=self.requirement,
            rarity=self.rarity,
        )


class Evaluation(NamedTuple):
    achievements: List[Achievement]
    newly_unlocked: List[Achievement]


# ============================================================================
# Rule Builders
# ============================================================================

def cumulative(counter: Callable[[ProgressCounters], int]) -> Measure:
    """Progress is a running counter."""
    return lambda counters, event, previous: counter(counters)


def on_event(predicate: Callable[[ProgressEvent], bool], incremental: bool = False) -> Measure:
    """Progress moves only when `predicate(event)` holds."""
    def measure(counters: ProgressCounters, event: ProgressEvent, previous: int) -> int:
        if not predicate(event):
            return previous
        return previous + 1 if incremental else max(previous, 1)
    return measure


def topic_quizzes(keyword: str) -> Callable[[ProgressCounters], int]:
    """Completed quizzes across every topic whose name mentions `keyword`."""
    keyword = keyword.lower()
    return lambda c: sum(n for topic, n in c.topic_quizzes.items() if keyword in topic.lower())


def _questions(c: ProgressCounters) -> int:
    return c.total_questions_answered


def _perfects(c: ProgressCounters) -> int:
    return c.perfect_scores


def _streak(c: ProgressCounters) -> int:
    return c.current_streak


# ============================================================================
# Rule Table
# ============================================================================

ACHIEVEMENT_RULES: List[AchievementRule] = [
    # Questions answered
    AchievementRule("first-steps", "First Steps", "Answer your first question",
                    "🌱", "questions", 1, "common", cumulative(_questions)),
    AchievementRule("curious-mind", "Curious Mind", "Answer 25 questions",
                    "🤔", "questions", 25, "common", cumulative(_questions)),
    AchievementRule("knowledge-seeker", "Knowledge Seeker", "Answer 100 questions",
                    "📚", "questions", 100, "rare", cumulative(_questions)),
    AchievementRule("scholar", "Scholar", "Answer 500 questions",
                    "🎓", "questions", 500, "epic", cumulative(_questions)),
    AchievementRule("master-learner", "Master Learner", "Answer 1000 questions",
                    "👑", "questions", 1000, "legendary", cumulative(_questions)),

    # Daily streaks
    AchievementRule("daily-dedication", "Daily Dedication", "Maintain a 3-day study streak",
                    "🔥", "streaks", 3, "common", cumulative(_streak)),
    AchievementRule("weekly-warrior", "Weekly Warrior", "Maintain a 7-day study streak",
                    "⚡", "streaks", 7, "rare", cumulative(_streak)),
    AchievementRule("monthly-master", "Monthly Master", "Maintain a 30-day study streak",
                    "🌟", "streaks", 30, "epic", cumulative(_streak)),
    AchievementRule("consistency-champion", "Consistency Champion", "Maintain a 100-day study streak",
                    "💎", "streaks", 100, "legendary", cumulative(_streak)),

    # Accuracy
    AchievementRule("first-perfect", "Perfect Start", "Get your first perfect score",
                    "✨", "accuracy", 1, "common", cumulative(_perfects)),
    AchievementRule("accuracy-expert", "Accuracy Expert", "Achieve 5 perfect scores",
                    "🎯", "accuracy", 5, "rare", cumulative(_perfects)),
    AchievementRule("perfectionist", "Perfectionist", "Achieve 20 perfect scores",
                    "💫", "accuracy", 20, "epic", cumulative(_perfects)),

    # Topic mastery
    AchievementRule("quran-explorer", "Quran Explorer", "Complete 10 Quran-related quizzes",
                    "📖", "topics", 10, "rare", cumulative(topic_quizzes("quran"))),
    AchievementRule("hadith-student", "Hadith Student", "Complete 10 Hadith-related quizzes",
                    "📜", "topics", 10, "rare", cumulative(topic_quizzes("hadith"))),
    AchievementRule("prophet-follower", "Prophet Follower", "Complete 10 Prophet Muhammad (PBUH) quizzes",
                    "🕌", "topics", 10, "rare", cumulative(topic_quizzes("prophet"))),

    # Speed
    AchievementRule("quick-thinker", "Quick Thinker", "Complete a timed quiz with perfect score",
                    "⚡", "speed", 1, "rare", on_event(lambda e: e.is_timed_perfect)),
    AchievementRule("lightning-fast", "Lightning Fast", "Complete 5 timed quizzes with perfect scores",
                    "⚡", "speed", 5, "epic", on_event(lambda e: e.is_timed_perfect, incremental=True)),

    # Special
    AchievementRule("early-bird", "Early Bird", "Complete a quiz before 7 AM",
                    "🌅", "special", 1, "rare", on_event(lambda e: e.is_early_morning)),
    AchievementRule("night-owl", "Night Owl", "Complete a quiz after 10 PM",
                    "🦉", "special", 1, "rare", on_event(lambda e: e.is_late_night)),
    AchievementRule("weekend-learner", "Weekend Learner", "Study on the weekend",
                    "📅", "special", 1, "common", on_event(lambda e: e.is_weekend)),
]

RULES_BY_ID: Dict[str, AchievementRule] = {r.id: r for r in ACHIEVEMENT_RULES}


# ============================================================================
# Achievement Lists
# ============================================================================

def initial_achievements(rules: Sequence[AchievementRule] = ACHIEVEMENT_RULES) -> List[Achievement]:
    return [r.blank() for r in rules]


def ensure_achievements(
    existing: Iterable[Achievement],
    rules: Sequence[AchievementRule] = ACHIEVEMENT_RULES,
) -> List[Achievement]:
    """
    Add blank entries for rules the stored list does not know yet.
    Stored entries (unknown ids included) are kept as they are.
    """
    existing = list(existing)
    known = {a.id for a in existing}
    return existing + [r.blank() for r in rules if r.id not in known]


# ============================================================================
# Evaluation
# ============================================================================

def evaluate(
    counters: ProgressCounters,
    achievements: Iterable[Achievement],
    event: ProgressEvent,
    rules: Optional[Dict[str, AchievementRule]] = None,
) -> Evaluation:
    """
    Re-measure every locked achievement against `counters` (already updated
    with this event) and the event itself.

    Returns the full updated list and the achievements unlocked by this call.
    Never raises: a rule that fails is logged and its achievement left as is.
    """
    rules = RULES_BY_ID if rules is None else rules
    updated: List[Achievement] = []
    newly_unlocked: List[Achievement] = []

    for achievement in achievements:
        rule = rules.get(achievement.id)
        if achievement.is_unlocked or rule is None:
            updated.append(achievement)
            continue

        try:
            measured = int(rule.measure(counters, event, achievement.progress))
        except Exception:
            logger.exception("[achievements] rule %s failed; leaving it unchanged", achievement.id)
            updated.append(achievement)
            continue

        progress = max(achievement.progress, measured)
        if progress >= achievement.requirement:
            unlocked = replace(
                achievement,
                is_unlocked=True,
                progress=achievement.requirement,
                unlocked_at=to_iso(event.occurred_at),
            )
            newly_unlocked.append(unlocked)
            updated.append(unlocked)
        else:
            updated.append(replace(achievement, progress=progress))

    return Evaluation(updated, newly_unlocked)


# ============================================================================
# Dashboard Helpers
# ============================================================================

def achievements_by_category(achievements: Iterable[Achievement], category: str) -> List[Achievement]:
    return [a for a in achievements if a.category == category]


def overall_progress(achievements: Sequence[Achievement]) -> int:
    """Percentage of achievements unlocked (0-100)."""
    total = len(achievements)
    unlocked = sum(1 for a in achievements if a.is_unlocked)
    return round(unlocked / total * 100) if total > 0 else 0
