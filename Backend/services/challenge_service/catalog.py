# services/challenge_service/catalog.py
"""Timed challenge definitions. Loaded once; never mutated."""

from __future__ import annotations
from typing import Dict, List

from .errors import ChallengeNotFound
from .models import ChallengeDefinition

CHALLENGES: List[ChallengeDefinition] = [
    ChallengeDefinition(
        id="speed-5",
        name="Speed Run",
        description="Quick 5-question challenge to test your reflexes",
        time_limit=60,
        question_count=5,
        score_multiplier=1.2,
        difficulty="easy",
    ),
    ChallengeDefinition(
        id="lightning-10",
        name="Lightning Round",
        description="Fast-paced 10 questions in 2 minutes",
        time_limit=120,
        question_count=10,
        score_multiplier=1.5,
        difficulty="medium",
    ),
    ChallengeDefinition(
        id="blitz-15",
        name="Knowledge Blitz",
        description="Ultimate 15-question challenge in 3 minutes",
        time_limit=180,
        question_count=15,
        score_multiplier=2.0,
        difficulty="hard",
    ),
]

_BY_ID: Dict[str, ChallengeDefinition] = {c.id: c for c in CHALLENGES}


def get_challenge(challenge_id: str) -> ChallengeDefinition:
    try:
        return _BY_ID[challenge_id]
    except KeyError:
        raise ChallengeNotFound(f"Unknown challenge '{challenge_id}'") from None


def list_challenges() -> List[ChallengeDefinition]:
    return list(CHALLENGES)
