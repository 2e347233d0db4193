# services/challenge_service/remote_store.py
"""
Firestore-backed remote store for personal bests, progress and streaks.

Document layout:
    users/{uid}/profile/timed_challenges   personal_bests map, best_overall_grade, counters
    users/{uid}/profile/achievements       counters + achievement list
    users/{uid}/profile/streak             daily streak record
    timed_challenge_results/{uid}_{cid}_{ms}  completed-result log (history, leaderboards)

All writes are a single document, batch or transaction, keyed by user.
Network failures surface as TransientNetworkError.
"""

from __future__ import annotations
from functools import wraps
from typing import Any, Dict, List, Optional
import logging
import time

from firebase_admin import firestore
from google.api_core import exceptions as gexc

from services.firebase import get_db
from .errors import TransientNetworkError
from .grading import best_grade
from .models import ChallengeResult
from .personal_bests import RemoteSnapshot, beats

logger = logging.getLogger(__name__)

RESULTS_COLLECTION = "timed_challenge_results"


def _network_call(fn):
    """Translate Google API failures into TransientNetworkError."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except (gexc.GoogleAPICallError, gexc.RetryError) as e:
            logger.warning("[remote] %s failed: %s", fn.__name__, e)
            raise TransientNetworkError(f"{fn.__name__} failed: {e}") from e
    return wrapper


class FirestoreRemoteStore:
    def __init__(self, db=None):
        self._db = db

    @property
    def db(self):
        if self._db is None:
            self._db = get_db()
        return self._db

    # ------------------------------------------------------------------
    # Firestore Helpers
    # ------------------------------------------------------------------

    def _profile_doc(self, uid: str, name: str):
        return self.db.collection("users").document(uid).collection("profile").document(name)

    def _personal_bests_ref(self, uid: str):
        return self._profile_doc(uid, "timed_challenges")

    def _progress_ref(self, uid: str):
        return self._profile_doc(uid, "achievements")

    def _streak_ref(self, uid: str):
        return self._profile_doc(uid, "streak")

    # ------------------------------------------------------------------
    # Personal Bests
    # ------------------------------------------------------------------

    @_network_call
    def fetch_personal_bests(self, uid: str) -> RemoteSnapshot:
        """
        A successful read always yields EMPTY or HAS_DATA: a missing profile
        document after a successful query means the user's data was wiped.
        """
        snap = self._personal_bests_ref(uid).get()
        data = (snap.to_dict() or {}) if snap.exists else {}
        bests = {
            cid: ChallengeResult.from_dict({**r, "challenge_id": cid})
            for cid, r in (data.get("personal_bests") or {}).items()
        }
        return RemoteSnapshot.from_data(bests)

    @_network_call
    def write_best_result(self, uid: str, result: ChallengeResult) -> bool:
        """
        Compare-and-set keyed by score: the remote entry is replaced only if
        `result` beats it. Returns True when the write happened.
        """
        @firestore.transactional
        def write_if_better(transaction):
            return self._compare_and_set(transaction, uid, result)

        return write_if_better(self.db.transaction())

    def _compare_and_set(self, transaction, uid: str, result: ChallengeResult) -> bool:
        ref = self._personal_bests_ref(uid)
        snap = ref.get(transaction=transaction)
        data = (snap.to_dict() or {}) if snap.exists else {}
        bests = data.get("personal_bests") or {}
        current = bests.get(result.challenge_id)
        if current and not beats(result, ChallengeResult.from_dict({**current, "challenge_id": result.challenge_id})):
            return False

        grades = [b.get("grade", "D") for cid, b in bests.items() if cid != result.challenge_id]
        transaction.set(ref, {
            "user_id": uid,
            "personal_bests": {result.challenge_id: result.to_dict()},
            "best_overall_grade": best_grade(grades + [result.grade]),
            "updatedAt": firestore.SERVER_TIMESTAMP,
        }, merge=True)
        return True

    # ------------------------------------------------------------------
    # Result Log & History
    # ------------------------------------------------------------------

    @_network_call
    def log_result(self, uid: str, result: ChallengeResult, is_personal_best: bool) -> None:
        """
        Append a completed result to the log and bump the profile counters.
        Leaderboards read the entries flagged as personal bests.
        """
        log_ref = self.db.collection(RESULTS_COLLECTION).document(
            f"{uid}_{result.challenge_id}_{int(time.time() * 1000)}"
        )
        batch = self.db.batch()
        batch.set(log_ref, {
            **result.to_dict(),
            "user_id": uid,
            "is_personal_best": bool(is_personal_best),
            "recordedAt": firestore.SERVER_TIMESTAMP,
        })
        batch.set(self._personal_bests_ref(uid), {
            "user_id": uid,
            "total_timed_challenges": firestore.Increment(1),
            "last_challenge_date": firestore.SERVER_TIMESTAMP,
            "updatedAt": firestore.SERVER_TIMESTAMP,
        }, merge=True)
        batch.commit()

    @_network_call
    def fetch_results(self, uid: str, limit: int = 20) -> List[Dict[str, Any]]:
        """Most recent completed results for one user, newest first."""
        query = (self.db.collection(RESULTS_COLLECTION)
                 .where("user_id", "==", uid)
                 .order_by("completed_at", direction=firestore.Query.DESCENDING)
                 .limit(limit))
        history = []
        for doc in query.stream():
            data = doc.to_dict() or {}
            history.append({
                "challenge_id": data.get("challenge_id"),
                "score": data.get("score", 0),
                "grade": data.get("grade", "D"),
                "accuracy": data.get("accuracy", 0),
                "time_spent": data.get("time_spent", 0),
                "completed_at": data.get("completed_at"),
                "is_personal_best": bool(data.get("is_personal_best", False)),
            })
        return history

    @_network_call
    def fetch_profile_stats(self, uid: str) -> Dict[str, Any]:
        snap = self._personal_bests_ref(uid).get()
        data = (snap.to_dict() or {}) if snap.exists else {}
        last = data.get("last_challenge_date")
        return {
            "total_timed_challenges": data.get("total_timed_challenges", 0),
            "best_overall_grade": data.get("best_overall_grade"),
            "last_challenge_date": last.isoformat() if hasattr(last, "isoformat") else last,
        }

    # ------------------------------------------------------------------
    # Progress & Streaks
    # ------------------------------------------------------------------

    @_network_call
    def fetch_progress(self, uid: str) -> Optional[Dict[str, Any]]:
        snap = self._progress_ref(uid).get()
        return (snap.to_dict() or {}) if snap.exists else None

    @_network_call
    def write_progress(self, uid: str, progress: Dict[str, Any]) -> None:
        self._progress_ref(uid).set({**progress, "updatedAt": firestore.SERVER_TIMESTAMP})

    @_network_call
    def fetch_streak(self, uid: str) -> Optional[Dict[str, Any]]:
        snap = self._streak_ref(uid).get()
        return (snap.to_dict() or {}) if snap.exists else None

    @_network_call
    def write_streak(self, uid: str, streak: Dict[str, Any]) -> None:
        self._streak_ref(uid).set({**streak, "updatedAt": firestore.SERVER_TIMESTAMP})

    # ------------------------------------------------------------------
    # Leaderboard
    # ------------------------------------------------------------------

    @_network_call
    def fetch_leaderboard(self, challenge_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Top personal bests for one challenge, one entry per user."""
        query = (self.db.collection(RESULTS_COLLECTION)
                 .where("challenge_id", "==", challenge_id)
                 .where("is_personal_best", "==", True)
                 .order_by("score", direction=firestore.Query.DESCENDING)
                 .limit(limit * 5))

        leaderboard: List[Dict[str, Any]] = []
        seen = set()
        for doc in query.stream():
            data = doc.to_dict() or {}
            user_id = data.get("user_id")
            if user_id in seen:
                continue
            seen.add(user_id)
            leaderboard.append({
                "user_id": user_id,
                "score": data.get("score", 0),
                "grade": data.get("grade", "D"),
                "accuracy": data.get("accuracy", 0),
                "time_spent": data.get("time_spent", 0),
                "rank": len(leaderboard) + 1,
            })
            if len(leaderboard) >= limit:
                break
        return leaderboard

    # ------------------------------------------------------------------
    # Administrative Reset
    # ------------------------------------------------------------------

    @_network_call
    def wipe_user(self, uid: str) -> int:
        """
        Delete every timed-challenge and progress document for `uid`.
        Devices that sync afterwards see an EMPTY snapshot and drop their
        local copies.
        """
        batch = self.db.batch()
        count = 0
        for ref in (self._personal_bests_ref(uid), self._progress_ref(uid), self._streak_ref(uid)):
            batch.delete(ref)
            count += 1
        for doc in self.db.collection(RESULTS_COLLECTION).where("user_id", "==", uid).stream():
            batch.delete(doc.reference)
            count += 1
        batch.commit()
        logger.info("[admin] Wiped %d document(s) for user %s", count, uid)
        return count
