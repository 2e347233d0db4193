# services/challenge_service/sync.py
"""
Personal-best sync between this device and the remote store.

One cycle:  IDLE -> FETCHING -> MERGING -> WRITING -> IDLE
On a network failure while fetching:  -> FAILED -> IDLE (local-only state)

Write-back safety:
- the merge result is installed with PersonalBestStore.apply_sync, which
  re-merges anything recorded locally while the fetch was in flight;
- each write re-reads the latest local best for its challenge right before
  sending it, and the remote write itself is a compare-and-set on score.
Every new local best stays pending in the store until the remote store holds
a result at least as good. A failed write is logged and dropped; the entry
stays pending, so the next cycle uploads it even when the remote read comes
back empty.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional
import logging
import threading

from .errors import TransientNetworkError
from .personal_bests import PersonalBestStore, RemoteSnapshot, SnapshotStatus, beats, reconcile

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    MERGING = "merging"
    WRITING = "writing"
    FAILED = "failed"


@dataclass
class SyncReport:
    uid: str
    ok: bool = True
    snapshot_status: SnapshotStatus = SnapshotStatus.NOT_FETCHED
    wiped: bool = False
    written: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    dropped: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "ok": self.ok,
            "snapshot": self.snapshot_status.value,
            "wiped": self.wiped,
            "written": self.written,
            "skipped": self.skipped,
            "dropped": self.dropped,
            "error": self.error,
        }


class SyncEngine:
    def __init__(self, remote, store_for: Callable[[str], PersonalBestStore]):
        self.remote = remote
        self.store_for = store_for
        self._lock = threading.Lock()
        self._in_flight = set()
        self._states: Dict[str, SyncState] = {}

    def state(self, uid: str) -> SyncState:
        return self._states.get(uid, SyncState.IDLE)

    def _set_state(self, uid: str, state: SyncState) -> None:
        self._states[uid] = state
        logger.debug("[sync] %s -> %s", uid, state.value)

    # ------------------------------------------------------------------
    # Full cycle
    # ------------------------------------------------------------------

    def run_cycle(self, uid: str) -> Optional[SyncReport]:
        """
        Fetch, merge and write back for one user.
        Returns None if a cycle for this user is already running.
        """
        if not uid:
            raise ValueError("sync requires an authenticated user id")

        with self._lock:
            if uid in self._in_flight:
                logger.info("[sync] Cycle already running for %s; skipping", uid)
                return None
            self._in_flight.add(uid)

        try:
            return self._cycle(uid)
        finally:
            with self._lock:
                self._in_flight.discard(uid)
            self._set_state(uid, SyncState.IDLE)

    def _cycle(self, uid: str) -> SyncReport:
        report = SyncReport(uid)
        store = self.store_for(uid)

        self._set_state(uid, SyncState.FETCHING)
        base = store.snapshot()
        try:
            snapshot: RemoteSnapshot = self.remote.fetch_personal_bests(uid)
        except TransientNetworkError as e:
            self._set_state(uid, SyncState.FAILED)
            logger.warning("[sync] Fetch failed for %s, staying local-only: %s", uid, e)
            report.ok = False
            report.error = str(e)
            return report
        report.snapshot_status = snapshot.status

        self._set_state(uid, SyncState.MERGING)
        outcome = reconcile(base, snapshot, store.pending())
        store.apply_sync(base, outcome.merged)
        report.wiped = outcome.wiped
        if outcome.wiped:
            logger.info(
                "[sync] Remote is empty for %s; discarded %d confirmed local result(s)",
                uid, len(base) - len(outcome.local_improvements),
            )
        if snapshot.exists:
            store.confirm(store.pending(), snapshot.data)

        self._set_state(uid, SyncState.WRITING)
        for improvement in outcome.local_improvements:
            cid = improvement.challenge_id
            status = self._write_current_best(uid, store, cid, snapshot)
            getattr(report, status).append(cid)

        logger.info(
            "[sync] %s: snapshot=%s written=%d skipped=%d dropped=%d",
            uid, snapshot.status.value, len(report.written), len(report.skipped), len(report.dropped),
        )
        return report

    # ------------------------------------------------------------------
    # Single writes
    # ------------------------------------------------------------------

    def push_result(self, uid: str, challenge_id: str) -> bool:
        """Write the current local best for one challenge (after a completion)."""
        status = self._write_current_best(uid, self.store_for(uid), challenge_id, None)
        return status == "written"

    def _write_current_best(
        self,
        uid: str,
        store: PersonalBestStore,
        challenge_id: str,
        snapshot: Optional[RemoteSnapshot],
    ) -> str:
        current = store.get(challenge_id)
        if current is None:
            return "skipped"
        if snapshot is not None and not beats(current, snapshot.data.get(challenge_id)):
            store.confirm([challenge_id], snapshot.data)
            return "skipped"
        try:
            written = self.remote.write_best_result(uid, current)
        except TransientNetworkError as e:
            # Still pending; the next cycle uploads it.
            logger.warning("[sync] Dropped write of %s for %s: %s", challenge_id, uid, e)
            return "dropped"
        # Either way the remote now holds a result at least as good as `current`.
        store.confirm([challenge_id], {challenge_id: current})
        return "written" if written else "skipped"
