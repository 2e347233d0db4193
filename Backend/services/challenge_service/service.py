# services/challenge_service/service.py
"""
Challenge service: the object the HTTP layer talks to.

Holds every per-process piece of state explicitly (no module globals):
- one PersonalBestStore per signed-in user (backed by the device cache)
- one in-memory PersonalBestStore per guest (gone when the guest ends)
- active ChallengeSessions and their completion outcomes; only the most
  recent `completed_session_limit` finished sessions are kept
- the SyncEngine and ProgressTracker wired to the remote store

Sessions belong to the user or guest that started them; anyone else gets
SessionNotFound.

Mode rules on completion:
- practice:      graded only; nothing stored, no achievements, no streak
- guest:         personal best kept in memory; the remote store is never used
- authenticated: personal best stored locally, streak + achievements updated,
                 result logged and any improvement pushed to the remote store
"""

from __future__ import annotations
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional
import logging
import threading
import time
import uuid

from .catalog import get_challenge, list_challenges
from .errors import SessionNotFound, TransientNetworkError, ValidationError
from .local_cache import JsonFileCache
from .models import ProgressEvent
from .personal_bests import PersonalBestStore
from .progress import ProgressTracker
from .session import ChallengeSession, SessionState
from .sync import SyncEngine, SyncReport
from .utils import utc_now

logger = logging.getLogger(__name__)


class ChallengeService:
    def __init__(
        self,
        remote,
        question_bank,
        identity,
        cache_dir: str = "tmp/challenge_cache",
        cache_factory: Optional[Callable[[str], Any]] = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], Any] = utc_now,
        sync_on_sign_in: bool = True,
        completed_session_limit: int = 200,
    ):
        self.remote = remote
        self.question_bank = question_bank
        self.identity = identity
        self.cache_factory = cache_factory or (lambda uid: JsonFileCache.for_user(cache_dir, uid))
        self.clock = clock
        self.now = now
        self.sync_on_sign_in = sync_on_sign_in
        self.completed_session_limit = max(1, completed_session_limit)

        self.sync = SyncEngine(remote, self.store_for)
        self.progress = ProgressTracker(remote)

        self._lock = threading.RLock()
        self._stores: Dict[str, PersonalBestStore] = {}
        self._guest_stores: Dict[str, PersonalBestStore] = {}
        self._sessions: Dict[str, ChallengeSession] = {}
        self._outcomes: Dict[str, Dict[str, Any]] = {}
        self._finished: "OrderedDict[str, None]" = OrderedDict()
        self._signed_in = set()

    # ============================================================================
    # Stores
    # ============================================================================

    def store_for(self, uid: str) -> PersonalBestStore:
        with self._lock:
            store = self._stores.get(uid)
            if store is None:
                store = self._stores[uid] = PersonalBestStore(self.cache_factory(uid))
            return store

    def guest_store(self, guest_id: str) -> PersonalBestStore:
        with self._lock:
            store = self._guest_stores.get(guest_id)
            if store is None:
                store = self._guest_stores[guest_id] = PersonalBestStore(cache=None)
            return store

    # ============================================================================
    # Identity Sessions
    # ============================================================================

    def sign_in(self, uid: Optional[str] = None) -> Optional[SyncReport]:
        """
        Start an authenticated session. The first call per session runs one
        sync cycle; later calls are no-ops until sign_out.
        """
        uid = uid or self.identity.current_user_id()
        if not uid:
            raise ValidationError("sign-in requires an authenticated user")
        with self._lock:
            if uid in self._signed_in:
                return None
            self._signed_in.add(uid)
        if not self.sync_on_sign_in:
            return None
        return self.sync.run_cycle(uid)

    def sign_out(self, uid: Optional[str] = None) -> None:
        uid = uid or self.identity.current_user_id()
        with self._lock:
            self._signed_in.discard(uid)
            self._stores.pop(uid, None)
            for sid in [sid for sid, s in self._sessions.items() if s.user_id == uid]:
                self._forget(sid).cancel()

    def sync_now(self) -> Optional[SyncReport]:
        uid = self.identity.current_user_id()
        if not uid:
            raise ValidationError("guests cannot sync")
        return self.sync.run_cycle(uid)

    def start_guest(self) -> str:
        guest_id = uuid.uuid4().hex
        self.guest_store(guest_id)
        return guest_id

    def end_guest(self, guest_id: str) -> None:
        """Discard everything the guest did."""
        with self._lock:
            self._guest_stores.pop(guest_id, None)
            for sid in [sid for sid, s in self._sessions.items() if s.guest_id == guest_id]:
                self._forget(sid).cancel()

    # ============================================================================
    # Challenge Sessions
    # ============================================================================

    def challenges(self) -> List[Dict[str, Any]]:
        return [c.to_dict() for c in list_challenges()]

    def start_challenge(self, challenge_id: str, practice: bool = False,
                        guest_id: Optional[str] = None) -> ChallengeSession:
        challenge = get_challenge(challenge_id)
        uid = self.identity.current_user_id()
        self._expire_abandoned()

        if uid:
            guest_id = None
            if uid not in self._signed_in:
                self.sign_in(uid)
        elif not guest_id:
            guest_id = self.start_guest()

        session = ChallengeSession(
            challenge,
            self.question_bank.draw(challenge),
            user_id=uid,
            guest_id=guest_id,
            practice=practice,
            clock=self.clock,
            now=self.now,
            on_complete=self._handle_completion,
        )
        with self._lock:
            self._sessions[session.id] = session
        return session.start()

    def get_session(self, session_id: str, guest_id: Optional[str] = None) -> ChallengeSession:
        """
        Look up a session owned by the caller: the signed-in user for user
        sessions, the matching guest id for guest sessions.
        """
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None or not self._owns(session, guest_id):
            raise SessionNotFound(f"Unknown session '{session_id}'")
        session.catch_up()
        return session

    def answer(self, session_id: str, option_index: int, guest_id: Optional[str] = None) -> ChallengeSession:
        session = self.get_session(session_id, guest_id)
        session.answer(option_index)
        return session

    def quit(self, session_id: str, guest_id: Optional[str] = None) -> None:
        session = self.get_session(session_id, guest_id)
        if session.state is SessionState.COMPLETED:
            return
        session.cancel()
        with self._lock:
            self._forget(session_id)

    def outcome(self, session_id: str) -> Optional[Dict[str, Any]]:
        return self._outcomes.get(session_id)

    def _expire_abandoned(self) -> None:
        # Sessions nobody polls still time out (and get retired) here.
        with self._lock:
            active = [s for s in self._sessions.values() if s.state is SessionState.ACTIVE]
        for session in active:
            session.catch_up()

    def _owns(self, session: ChallengeSession, guest_id: Optional[str]) -> bool:
        uid = self.identity.current_user_id()
        if session.is_guest:
            return not uid and session.guest_id == guest_id
        return session.user_id == uid

    def _forget(self, session_id: str) -> Optional[ChallengeSession]:
        self._finished.pop(session_id, None)
        self._outcomes.pop(session_id, None)
        return self._sessions.pop(session_id, None)

    def _retire(self, session_id: str) -> None:
        """Remember a finished session, dropping the oldest past the limit."""
        with self._lock:
            self._finished[session_id] = None
            while len(self._finished) > self.completed_session_limit:
                oldest, _ = self._finished.popitem(last=False)
                self._sessions.pop(oldest, None)
                self._outcomes.pop(oldest, None)

    def session_counts(self) -> Dict[str, int]:
        with self._lock:
            return {"sessions": len(self._sessions), "outcomes": len(self._outcomes)}

    def history(self, limit: int = 20) -> Dict[str, Any]:
        """Recent logged results plus profile counters for the signed-in user."""
        uid = self.identity.current_user_id()
        if not uid:
            raise ValidationError("history requires an authenticated user")
        return {
            "results": self.remote.fetch_results(uid, limit),
            "stats": self.remote.fetch_profile_stats(uid),
        }

    def personal_bests(self, guest_id: Optional[str] = None) -> Dict[str, Dict[str, Any]]:
        uid = self.identity.current_user_id()
        if uid:
            store = self.store_for(uid)
        elif guest_id:
            store = self.guest_store(guest_id)
        else:
            return {}
        return {cid: r.to_dict() for cid, r in sorted(store.snapshot().items())}

    # ============================================================================
    # Completion
    # ============================================================================

    def _handle_completion(self, session: ChallengeSession) -> None:
        result = session.result
        outcome: Dict[str, Any] = {
            "result": result.to_dict(),
            "is_new_best": False,
            "personal_best": None,
            "newly_unlocked": [],
            "streak": None,
            "synced": False,
        }
        self._outcomes[session.id] = outcome
        self._retire(session.id)

        if session.practice:
            return

        if session.is_guest:
            is_new_best, best = self.guest_store(session.guest_id).record(result)
            outcome.update(is_new_best=is_new_best, personal_best=best.to_dict())
            return

        uid = session.user_id
        is_new_best, best = self.store_for(uid).record(result)
        outcome.update(is_new_best=is_new_best, personal_best=best.to_dict())

        perfect = result.correct_answers == result.total_questions
        topic = session.challenge.topic
        event = ProgressEvent(
            occurred_at=self.now(),
            event_id=session.id,
            questions_answered=result.total_questions,
            correct_answers=result.correct_answers,
            is_perfect_score=perfect,
            quiz_topic=topic if topic and topic != "Mixed" else None,
            is_timed_quiz=True,
            is_timed_perfect=perfect,
        )
        try:
            update = self.progress.record_completion(uid, event)
            outcome["newly_unlocked"] = [a.to_dict() for a in update.newly_unlocked]
            outcome["streak"] = update.streak.to_dict()
        except TransientNetworkError as e:
            logger.warning("[challenge] Progress update failed for %s: %s", uid, e)

        try:
            self.remote.log_result(uid, result, is_new_best)
        except TransientNetworkError as e:
            logger.warning("[challenge] Result log failed for %s: %s", uid, e)

        if is_new_best:
            outcome["synced"] = self.sync.push_result(uid, result.challenge_id)
