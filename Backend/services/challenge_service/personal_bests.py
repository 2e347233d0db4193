# services/challenge_service/personal_bests.py
"""
Personal bests: the merge operator and the per-user store.

A personal-best map is `challenge_id -> ChallengeResult` and is never mutated
in place. Every change publishes a new read-only mapping, so a sync that took
a snapshot can tell whether local state moved while it was waiting on the
network.

Merge policy for a challenge present on both sides:
1. higher score wins
2. on equal score, higher grade wins (S > A > B > C > D)
3. on a full tie, the remote entry wins (last synced truth)
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import AbstractSet, Dict, FrozenSet, Iterable, List, Mapping, NamedTuple, Optional, Tuple
import logging
import threading

from .grading import classify, grade_rank
from .models import ChallengeResult

logger = logging.getLogger(__name__)

PersonalBestMap = Mapping[str, ChallengeResult]

EMPTY_BESTS: PersonalBestMap = MappingProxyType({})


def freeze(bests: Mapping[str, ChallengeResult]) -> PersonalBestMap:
    return MappingProxyType(dict(bests))


# ============================================================================
# Comparison & Merge
# ============================================================================

def beats(candidate: ChallengeResult, incumbent: Optional[ChallengeResult]) -> bool:
    """True when `candidate` should replace `incumbent` as the personal best."""
    if incumbent is None:
        return True
    if candidate.score != incumbent.score:
        return candidate.score > incumbent.score
    return grade_rank(candidate.grade) > grade_rank(incumbent.grade)


class MergeOutcome(NamedTuple):
    merged: PersonalBestMap
    local_improvements: List[ChallengeResult]
    wiped: bool = False


def merge(local: PersonalBestMap, remote: PersonalBestMap) -> MergeOutcome:
    """
    Combine two personal-best maps.

    `local_improvements` lists the local entries that won over (or were
    missing from) the remote side; those are what must be written back.
    """
    merged: Dict[str, ChallengeResult] = dict(remote)
    improvements: List[ChallengeResult] = []

    for challenge_id in sorted(local):
        local_result = local[challenge_id]
        if beats(local_result, remote.get(challenge_id)):
            merged[challenge_id] = local_result
            improvements.append(local_result)

    return MergeOutcome(freeze(merged), improvements)


# ============================================================================
# Remote Snapshots
# ============================================================================

class SnapshotStatus(str, Enum):
    NOT_FETCHED = "not_fetched"  # never queried, or the query failed
    EMPTY = "empty"              # queried; the user has no remote personal bests
    HAS_DATA = "has_data"


@dataclass(frozen=True)
class RemoteSnapshot:
    status: SnapshotStatus
    data: PersonalBestMap = field(default_factory=lambda: EMPTY_BESTS)

    @property
    def exists(self) -> bool:
        return self.status is SnapshotStatus.HAS_DATA

    @classmethod
    def not_fetched(cls) -> "RemoteSnapshot":
        return cls(SnapshotStatus.NOT_FETCHED)

    @classmethod
    def from_data(cls, data: Mapping[str, ChallengeResult]) -> "RemoteSnapshot":
        if not data:
            return cls(SnapshotStatus.EMPTY)
        return cls(SnapshotStatus.HAS_DATA, freeze(data))


def reconcile(
    local: PersonalBestMap,
    snapshot: RemoteSnapshot,
    pending: AbstractSet[str] = frozenset(),
) -> MergeOutcome:
    """
    Merge local state with a remote snapshot.

    A confirmed-empty remote means an administrative wipe: local entries the
    remote already acknowledged are discarded, never uploaded. Entries in
    `pending` were never confirmed by the remote, so the wipe cannot have
    covered them; they are kept and uploaded. A snapshot that was not
    fetched leaves local state alone.
    """
    if snapshot.status is SnapshotStatus.NOT_FETCHED:
        return MergeOutcome(freeze(local), [])
    if snapshot.status is SnapshotStatus.EMPTY:
        kept = {cid: r for cid, r in local.items() if cid in pending}
        return MergeOutcome(
            freeze(kept),
            [kept[cid] for cid in sorted(kept)],
            wiped=len(kept) < len(local),
        )
    return merge(local, snapshot.data)


def refresh_grades(bests: PersonalBestMap) -> PersonalBestMap:
    """Recompute each stored grade from its score (grades from older thresholds)."""
    return freeze({
        cid: r if classify(r.score) == r.grade else replace(r, grade=classify(r.score))
        for cid, r in bests.items()
    })


# ============================================================================
# Store
# ============================================================================

class PersonalBestStore:
    """
    One user's personal bests on this device.

    Backed by an optional local cache; a store without a cache (guest mode)
    lives only as long as the object does.

    `pending()` names the challenges whose local best has not been confirmed
    by the remote store yet. It survives restarts through the cache so an
    unconfirmed result is never mistaken for wiped data.
    """

    def __init__(self, cache=None):
        self._cache = cache
        self._lock = threading.Lock()
        loaded = cache.load() if cache is not None else {}
        self._bests: PersonalBestMap = refresh_grades(loaded)
        pending = cache.load_pending() if cache is not None else ()
        self._pending: FrozenSet[str] = frozenset(cid for cid in pending if cid in self._bests)

    def snapshot(self) -> PersonalBestMap:
        return self._bests

    def get(self, challenge_id: str) -> Optional[ChallengeResult]:
        return self._bests.get(challenge_id)

    def pending(self) -> FrozenSet[str]:
        return self._pending

    def record(self, result: ChallengeResult) -> Tuple[bool, ChallengeResult]:
        """Offer a finished result. Returns (is_new_best, current_best)."""
        with self._lock:
            current = self._bests.get(result.challenge_id)
            if not beats(result, current):
                return False, current
            self._publish({**self._bests, result.challenge_id: result},
                          self._pending | {result.challenge_id})
            return True, result

    def apply_sync(self, base: PersonalBestMap, merged: PersonalBestMap) -> PersonalBestMap:
        """
        Install a sync's merge output.

        `base` is the local map the merge was computed from. Results recorded
        after that snapshot are merged on top instead of being overwritten.
        """
        with self._lock:
            current = self._bests
            if current is base:
                self._publish(merged, self._pending)
            else:
                newer = {cid: r for cid, r in current.items() if base.get(cid) != r}
                logger.info("[sync] %d local result(s) changed during sync; re-merging", len(newer))
                self._publish(merge(newer, merged).merged, self._pending)
            return self._bests

    def confirm(self, challenge_ids: Iterable[str], remote: PersonalBestMap) -> None:
        """
        Clear the pending mark of each challenge the remote now holds at
        least as good a result for. A newer local best stays pending.
        """
        with self._lock:
            confirmed = {
                cid for cid in challenge_ids
                if cid in self._pending and not beats(self._bests[cid], remote.get(cid))
            }
            if confirmed:
                self._publish(self._bests, self._pending - confirmed)

    def clear(self) -> None:
        with self._lock:
            self._publish(EMPTY_BESTS, frozenset())

    def _publish(self, bests: Mapping[str, ChallengeResult], pending: AbstractSet[str]) -> None:
        self._bests = freeze(bests)
        self._pending = frozenset(cid for cid in pending if cid in self._bests)
        if self._cache is not None:
            self._cache.save(self._bests, self._pending)
