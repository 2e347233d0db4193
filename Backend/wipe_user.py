#!/usr/bin/env python3
"""
Wipe a User's Timed-Challenge Data

Deletes the user's personal bests, achievement progress, streak and
leaderboard entries from Firestore. The next time any of the user's devices
syncs it finds an empty remote record and drops its local personal bests.

Usage:
    python Backend/wipe_user.py <uid> [--yes]
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent))

from dotenv import load_dotenv
load_dotenv()

from services.challenge_service.errors import TransientNetworkError
from services.challenge_service.remote_store import FirestoreRemoteStore

# ============================================================================
# Wipe
# ============================================================================

def preview(store: FirestoreRemoteStore, uid: str) -> int:
    """Print what would be removed; returns the number of personal bests."""
    snapshot = store.fetch_personal_bests(uid)
    progress = store.fetch_progress(uid) or {}
    streak = store.fetch_streak(uid) or {}

    print(f"\n{'='*70}")
    print(f"🧹 WIPING TIMED-CHALLENGE DATA")
    print(f"{'='*70}")
    print(f"User ID: {uid}")
    print(f"Remote snapshot: {snapshot.status.value}")
    print(f"{'='*70}\n")

    for cid, result in sorted(snapshot.data.items()):
        print(f"  {cid:15s} score={result.score:4d} grade={result.grade}")
    print(f"  achievements unlocked: {progress.get('total_unlocked', 0)}")
    print(f"  current streak: {streak.get('current_streak', 0)}")
    return len(snapshot.data)


def wipe(uid: str, confirm: bool = True) -> None:
    store = FirestoreRemoteStore()
    preview(store, uid)

    if confirm:
        response = input(f"\n📝 Delete all of this for {uid}? (yes/no): ").strip().lower()
        if response != "yes":
            print("❌ Cancelled. No changes made.")
            return

    deleted = store.wipe_user(uid)
    print(f"\n✅ Deleted {deleted} documents.")
    print(f"{'='*70}\n")

# ============================================================================
# Main Script
# ============================================================================

def main(argv=None):
    args = list(sys.argv[1:] if argv is None else argv)
    confirm = "--yes" not in args
    args = [a for a in args if a != "--yes"]

    if len(args) != 1:
        print(__doc__)
        return 2

    try:
        wipe(args[0], confirm=confirm)
    except TransientNetworkError as e:
        print(f"\n❌ ERROR: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
