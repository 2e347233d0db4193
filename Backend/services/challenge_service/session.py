# services/challenge_service/session.py
"""
Runtime of one timed challenge attempt.

    NOT_STARTED -> ACTIVE -> COMPLETED
                         \-> CANCELLED   (quit / navigate away)

While ACTIVE the session holds a countdown (one tick per second, never below
zero) and an append-only answer log. It completes when the last question is
answered or when the countdown reaches zero; both paths grade the answers
captured so far, counting unanswered questions as incorrect.
"""

from __future__ import annotations
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence
import logging
import time
import uuid

from . import grading
from .errors import SessionStateError, ValidationError
from .models import ChallengeDefinition, ChallengeResult
from .questions import Question
from .utils import to_iso, utc_now

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    NOT_STARTED = "not_started"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ChallengeAnswer:
    question_index: int
    selected_option: int
    is_correct: bool


class ChallengeSession:
    def __init__(
        self,
        challenge: ChallengeDefinition,
        questions: Sequence[Question],
        *,
        user_id: Optional[str] = None,
        guest_id: Optional[str] = None,
        practice: bool = False,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], Any] = utc_now,
        on_complete: Optional[Callable[["ChallengeSession"], None]] = None,
    ):
        if not questions:
            raise ValidationError(f"No questions available for '{challenge.id}'")

        self.id = uuid.uuid4().hex
        self.challenge = challenge
        self.questions = list(questions)
        self.user_id = user_id
        self.guest_id = guest_id
        self.practice = practice
        self.state = SessionState.NOT_STARTED
        self.time_remaining = challenge.time_limit
        self.answers: List[ChallengeAnswer] = []
        self.consecutive_correct = 0
        self.best_consecutive = 0
        self.result: Optional[ChallengeResult] = None

        self._clock = clock
        self._now = now
        self._anchor: Optional[float] = None
        self._on_complete = on_complete

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def is_guest(self) -> bool:
        return self.user_id is None

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    @property
    def current_index(self) -> int:
        return len(self.answers)

    @property
    def correct_answers(self) -> int:
        return sum(1 for a in self.answers if a.is_correct)

    @property
    def time_spent(self) -> int:
        return self.challenge.time_limit - self.time_remaining

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start(self) -> "ChallengeSession":
        if self.state is not SessionState.NOT_STARTED:
            raise SessionStateError(f"Session {self.id} already {self.state.value}")
        self.state = SessionState.ACTIVE
        self.time_remaining = self.challenge.time_limit
        self._anchor = self._clock()
        logger.info("[challenge] Started %s (%s, %d questions)", self.id, self.challenge.id, self.total_questions)
        return self

    def tick(self) -> None:
        """One second of countdown. Completes the session at zero."""
        if self.state is not SessionState.ACTIVE or self.time_remaining <= 0:
            return
        self.time_remaining -= 1
        if self.time_remaining == 0:
            logger.info("[challenge] Time up for %s", self.id)
            self._complete()

    def catch_up(self) -> None:
        """Apply every whole second elapsed on the clock since the last tick."""
        if self.state is not SessionState.ACTIVE or self._anchor is None:
            return
        elapsed = int(self._clock() - self._anchor)
        ticks = min(max(elapsed, 0), self.time_remaining)
        self._anchor += ticks
        for _ in range(ticks):
            self.tick()

    def answer(self, option_index: int) -> ChallengeAnswer:
        self.catch_up()
        if self.state is not SessionState.ACTIVE:
            raise SessionStateError(f"Session {self.id} is {self.state.value}")

        index = self.current_index
        answer = ChallengeAnswer(index, option_index, self.questions[index].is_correct(option_index))
        self.answers.append(answer)

        if answer.is_correct:
            self.consecutive_correct += 1
            self.best_consecutive = max(self.best_consecutive, self.consecutive_correct)
        else:
            self.consecutive_correct = 0

        if self.current_index >= self.total_questions:
            self._complete()
        return answer

    def cancel(self) -> None:
        """Quit: stop the timer and throw away the answers. Nothing is graded."""
        if self.state in (SessionState.COMPLETED, SessionState.CANCELLED):
            return
        self.state = SessionState.CANCELLED
        self.answers = []
        self.consecutive_correct = 0
        self._anchor = None
        logger.info("[challenge] Cancelled %s", self.id)

    def _complete(self) -> None:
        correct = self.correct_answers
        total = self.total_questions
        grading.validate_play(correct, total, self.time_spent, self.challenge.time_limit,
                              self.challenge.score_multiplier)
        score, letter = grading.grade(correct, total, self.time_spent, self.challenge.time_limit,
                                      self.challenge.score_multiplier)

        self.result = ChallengeResult(
            challenge_id=self.challenge.id,
            score=score,
            grade=letter,
            correct_answers=correct,
            total_questions=total,
            time_spent=self.time_spent,
            accuracy=grading.accuracy_percent(correct, total),
            completed_at=to_iso(self._now()),
        )
        self.state = SessionState.COMPLETED
        self._anchor = None
        logger.info("[challenge] Completed %s: score=%d grade=%s", self.id, score, letter)

        if self._on_complete is not None:
            self._on_complete(self)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "session_id": self.id,
            "challenge": self.challenge.to_dict(),
            "state": self.state.value,
            "practice": self.practice,
            "guest": self.is_guest,
            "time_remaining": self.time_remaining,
            "current_index": self.current_index,
            "total_questions": self.total_questions,
            "consecutive_correct": self.consecutive_correct,
            "answers": [asdict(a) for a in self.answers],
            "result": self.result.to_dict() if self.result else None,
        }
        if self.state is SessionState.ACTIVE:
            data["question"] = self.questions[self.current_index].public_dict()
        return data
