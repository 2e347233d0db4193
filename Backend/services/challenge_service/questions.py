# services/challenge_service/questions.py
"""
Question sources for challenge sessions.

Question content itself is managed elsewhere; sessions only need a shuffled
sample with options and the correct answer.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence
import random

from services.firebase import get_db
from .models import ChallengeDefinition

QUESTIONS_COLLECTION = "questions"


@dataclass(frozen=True)
class Question:
    question: str
    options: Sequence[str]
    answer: str
    topic: str = "Mixed"
    id: Optional[str] = None
    explanation: str = ""

    def is_correct(self, option_index: int) -> bool:
        return 0 <= option_index < len(self.options) and self.options[option_index] == self.answer

    def public_dict(self) -> Dict[str, Any]:
        """Question as shown to the player (no answer)."""
        return {"id": self.id, "question": self.question, "options": list(self.options), "topic": self.topic}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], doc_id: Optional[str] = None) -> "Question":
        return cls(
            id=doc_id or data.get("id"),
            question=str(data.get("question", "")),
            options=tuple(data.get("options") or ()),
            answer=str(data.get("answer", "")),
            topic=str(data.get("topic", "Mixed")),
            explanation=str(data.get("explanation", "")),
        )


def _sample(pool: List[Question], challenge: ChallengeDefinition, rng: random.Random) -> List[Question]:
    if challenge.topic and challenge.topic != "Mixed":
        pool = [q for q in pool if q.topic == challenge.topic]
    pool = list(pool)
    rng.shuffle(pool)
    return pool[:challenge.question_count]


class StaticQuestionBank:
    def __init__(self, questions: Sequence[Question], rng: Optional[random.Random] = None):
        self.questions = list(questions)
        self.rng = rng or random.Random()

    def draw(self, challenge: ChallengeDefinition) -> List[Question]:
        return _sample(self.questions, challenge, self.rng)


class FirestoreQuestionBank:
    """Samples from the `questions` collection."""

    def __init__(self, db=None, rng: Optional[random.Random] = None):
        self._db = db
        self.rng = rng or random.Random()

    def draw(self, challenge: ChallengeDefinition) -> List[Question]:
        db = self._db or get_db()
        pool = [Question.from_dict(d.to_dict() or {}, d.id) for d in db.collection(QUESTIONS_COLLECTION).stream()]
        return _sample(pool, challenge, self.rng)
