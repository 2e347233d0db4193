# services/challenge_service/local_cache.py
"""
Device-local persistence for personal bests.

One JSON file per user under Config.CHALLENGE_CACHE_DIR. The file survives
restarts but is never shared across devices. Besides the bests it keeps the
ids of challenges whose best has not been confirmed by the remote store.
"""

from __future__ import annotations
from pathlib import Path
from typing import AbstractSet, Dict, FrozenSet, Mapping
import json
import logging
import os
import re

from .models import ChallengeResult

logger = logging.getLogger(__name__)

_SAFE_NAME = re.compile(r"[^A-Za-z0-9_.-]")


class JsonFileCache:
    def __init__(self, path):
        self.path = Path(path)

    @classmethod
    def for_user(cls, cache_dir, uid: str) -> "JsonFileCache":
        return cls(Path(cache_dir) / f"personal_bests_{_SAFE_NAME.sub('_', uid)}.json")

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("[cache] Ignoring unreadable cache %s: %s", self.path, e)
            return {}
        return raw if isinstance(raw, dict) else {}

    def load(self) -> Dict[str, ChallengeResult]:
        try:
            return {cid: ChallengeResult.from_dict(r) for cid, r in (self._read().get("personal_bests") or {}).items()}
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("[cache] Ignoring malformed personal bests in %s: %s", self.path, e)
            return {}

    def load_pending(self) -> FrozenSet[str]:
        return frozenset(str(cid) for cid in self._read().get("pending") or [])

    def save(self, bests: Mapping[str, ChallengeResult], pending: AbstractSet[str] = frozenset()) -> None:
        payload = {
            "personal_bests": {cid: r.to_dict() for cid, r in bests.items()},
            "pending": sorted(pending),
        }
        tmp = self.path.with_suffix(".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            # The in-memory store stays authoritative for this process.
            logger.error("[cache] Failed to write %s: %s", self.path, e)

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


class MemoryCache:
    """Cache that lives only in this process (tests, ephemeral devices)."""

    def __init__(self, bests: Mapping[str, ChallengeResult] = None, pending: AbstractSet[str] = ()):
        self.saved: Dict[str, ChallengeResult] = dict(bests or {})
        self.pending = frozenset(pending)
        self.saves = 0

    def load(self) -> Dict[str, ChallengeResult]:
        return dict(self.saved)

    def load_pending(self) -> FrozenSet[str]:
        return self.pending

    def save(self, bests: Mapping[str, ChallengeResult], pending: AbstractSet[str] = frozenset()) -> None:
        self.saved = dict(bests)
        self.pending = frozenset(pending)
        self.saves += 1
