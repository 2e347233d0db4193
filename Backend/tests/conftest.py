from datetime import datetime, timezone
import random

import pytest

from services.challenge_service.errors import TransientNetworkError
from services.challenge_service.local_cache import MemoryCache
from services.challenge_service.models import ChallengeResult
from services.challenge_service.personal_bests import RemoteSnapshot, beats
from services.challenge_service.questions import Question, StaticQuestionBank
from services.challenge_service.service import ChallengeService

# A Wednesday at noon: no early-bird / night-owl / weekend unlocks by accident.
NOON = datetime(2024, 3, 6, 12, 0, tzinfo=timezone.utc)


def make_result(challenge_id="speed-5", score=100, grade=None, correct=5, total=5,
                time_spent=30, completed_at="2024-03-06T12:00:00+00:00"):
    from services.challenge_service.grading import classify
    return ChallengeResult(
        challenge_id=challenge_id,
        score=score,
        grade=grade or classify(score),
        correct_answers=correct,
        total_questions=total,
        time_spent=time_spent,
        accuracy=round(correct / total * 100),
        completed_at=completed_at,
    )


class FakeRemoteStore:
    """In-memory remote store. Missing users read back as an EMPTY snapshot."""

    def __init__(self):
        self.personal_bests = {}
        self.progress = {}
        self.streaks = {}
        self.results = {}
        self.stats = {}
        self.fail_fetch = False
        self.fail_writes = False
        self.fail_progress = False
        self.calls = []
        self.on_fetch = None
        self.on_write = None

    def fetch_personal_bests(self, uid):
        self.calls.append(("fetch_personal_bests", uid))
        if self.fail_fetch:
            raise TransientNetworkError("fetch failed")
        if self.on_fetch:
            self.on_fetch(uid)
        return RemoteSnapshot.from_data(dict(self.personal_bests.get(uid, {})))

    def write_best_result(self, uid, result):
        self.calls.append(("write_best_result", uid, result.challenge_id, result.score))
        if self.on_write:
            self.on_write(uid, result)
        if self.fail_writes:
            raise TransientNetworkError("write failed")
        bests = self.personal_bests.setdefault(uid, {})
        if not beats(result, bests.get(result.challenge_id)):
            return False
        bests[result.challenge_id] = result
        return True

    def log_result(self, uid, result, is_personal_best):
        self.calls.append(("log_result", uid, result.challenge_id, is_personal_best))
        if self.fail_writes:
            raise TransientNetworkError("write failed")
        self.results.setdefault(uid, []).append({**result.to_dict(), "is_personal_best": is_personal_best})
        stats = self.stats.setdefault(uid, {"total_timed_challenges": 0})
        stats["total_timed_challenges"] += 1
        stats["last_challenge_date"] = result.completed_at

    def fetch_results(self, uid, limit=20):
        rows = sorted(self.results.get(uid, []), key=lambda r: r["completed_at"], reverse=True)
        return rows[:limit]

    def fetch_profile_stats(self, uid):
        from services.challenge_service.grading import best_grade
        bests = self.personal_bests.get(uid, {})
        stats = self.stats.get(uid, {})
        return {
            "total_timed_challenges": stats.get("total_timed_challenges", 0),
            "best_overall_grade": best_grade([r.grade for r in bests.values()]) if bests else None,
            "last_challenge_date": stats.get("last_challenge_date"),
        }

    def fetch_progress(self, uid):
        self.calls.append(("fetch_progress", uid))
        if self.fail_progress:
            raise TransientNetworkError("progress unavailable")
        return self.progress.get(uid)

    def write_progress(self, uid, progress):
        self.calls.append(("write_progress", uid))
        self.progress[uid] = progress

    def fetch_streak(self, uid):
        self.calls.append(("fetch_streak", uid))
        return self.streaks.get(uid)

    def write_streak(self, uid, streak):
        self.calls.append(("write_streak", uid))
        self.streaks[uid] = streak

    def fetch_leaderboard(self, challenge_id, limit=10):
        rows = [(uid, b[challenge_id]) for uid, b in self.personal_bests.items() if challenge_id in b]
        rows.sort(key=lambda row: row[1].score, reverse=True)
        return [
            {"user_id": uid, "score": r.score, "grade": r.grade, "rank": i + 1}
            for i, (uid, r) in enumerate(rows[:limit])
        ]

    def wipe_user(self, uid):
        self.personal_bests.pop(uid, None)
        self.progress.pop(uid, None)
        self.streaks.pop(uid, None)
        self.results.pop(uid, None)
        self.stats.pop(uid, None)


class StaticIdentity:
    def __init__(self, uid=None):
        self.uid = uid

    def current_user_id(self):
        return self.uid


class FakeClock:
    def __init__(self):
        self.value = 1000.0

    def __call__(self):
        return self.value

    def advance(self, seconds):
        self.value += seconds


def make_questions(n=15, topic="Mixed"):
    """Questions whose correct option is always index 0."""
    return [
        Question(question=f"Q{i}", options=(f"right-{i}", f"wrong-{i}", "x", "y"), answer=f"right-{i}",
                 topic=topic, id=f"q{i}")
        for i in range(n)
    ]


@pytest.fixture
def remote():
    return FakeRemoteStore()


@pytest.fixture
def identity():
    return StaticIdentity("user-1")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def caches():
    return {}


@pytest.fixture
def service(remote, identity, clock, caches):
    def cache_factory(uid):
        return caches.setdefault(uid, MemoryCache())

    return ChallengeService(
        remote=remote,
        question_bank=StaticQuestionBank(make_questions(), rng=random.Random(7)),
        identity=identity,
        cache_factory=cache_factory,
        clock=clock,
        now=lambda: NOON,
    )
