# services/challenge_service/progress.py
"""
Per-user progression: cumulative counters, daily streak and achievements.

A completed quiz or challenge is applied exactly once:
1. advance the daily streak (at most one change per calendar day)
2. add the event to the cumulative counters
3. re-evaluate locked achievements against the new counters
The event id is remembered so a retried completion is not counted twice.
"""

from __future__ import annotations
from dataclasses import replace
from typing import Any, Dict, List, NamedTuple
import logging

from .achievements import ensure_achievements, evaluate, overall_progress
from .models import Achievement, DailyStreakRecord, ProgressCounters, ProgressEvent, UserProgress
from .streaks import advance_streak
from .utils import to_iso

logger = logging.getLogger(__name__)


class ProgressUpdate(NamedTuple):
    progress: UserProgress
    streak: DailyStreakRecord
    newly_unlocked: List[Achievement]
    duplicate: bool = False


def apply_event(counters: ProgressCounters, event: ProgressEvent, streak: DailyStreakRecord) -> ProgressCounters:
    """Counters after one completed event."""
    topics = dict(counters.topic_quizzes)
    if event.quiz_topic:
        topics[event.quiz_topic] = topics.get(event.quiz_topic, 0) + 1
    return replace(
        counters,
        total_questions_answered=counters.total_questions_answered + max(0, event.questions_answered),
        total_correct_answers=counters.total_correct_answers + max(0, event.correct_answers),
        perfect_scores=counters.perfect_scores + (1 if event.is_perfect_score else 0),
        current_streak=streak.current_streak,
        longest_streak=max(counters.longest_streak, streak.longest_streak),
        topic_quizzes=topics,
    )


class ProgressTracker:
    def __init__(self, remote):
        self.remote = remote

    def load(self, uid: str) -> UserProgress:
        progress = UserProgress.from_dict(self.remote.fetch_progress(uid))
        return replace(progress, achievements=tuple(ensure_achievements(progress.achievements)))

    def load_streak(self, uid: str) -> DailyStreakRecord:
        return DailyStreakRecord.from_dict(self.remote.fetch_streak(uid))

    def record_completion(self, uid: str, event: ProgressEvent) -> ProgressUpdate:
        """
        Apply one completion event. Raises TransientNetworkError if the
        remote store cannot be reached; nothing is half-applied locally.
        """
        progress = self.load(uid)
        streak = self.load_streak(uid)

        if progress.has_processed(event.event_id):
            logger.info("[progress] Event %s already applied for %s", event.event_id, uid)
            return ProgressUpdate(progress, streak, [], duplicate=True)

        new_streak = advance_streak(streak, event.occurred_at)
        if new_streak != streak:
            self.remote.write_streak(uid, new_streak.to_dict())

        counters = apply_event(progress.counters, event, new_streak)
        evaluation = evaluate(counters, progress.achievements, event)
        updated = replace(
            progress,
            counters=counters,
            achievements=tuple(evaluation.achievements),
            last_quiz_at=to_iso(event.occurred_at),
        ).with_processed(event.event_id)
        self.remote.write_progress(uid, updated.to_dict())

        if evaluation.newly_unlocked:
            logger.info(
                "[progress] %s unlocked %s",
                uid, ", ".join(a.id for a in evaluation.newly_unlocked),
            )
        return ProgressUpdate(updated, new_streak, evaluation.newly_unlocked)

    def summary(self, uid: str) -> Dict[str, Any]:
        """Achievements plus counters, shaped for the dashboard."""
        progress = self.load(uid)
        achievements = list(progress.achievements)
        return {
            "ok": True,
            **progress.counters.to_dict(),
            "achievements": [a.to_dict() for a in achievements],
            "total_unlocked": progress.total_unlocked,
            "overall_progress": overall_progress(achievements),
            "last_quiz_at": progress.last_quiz_at,
        }
