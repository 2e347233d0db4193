import pytest

from conftest import make_result
from services.challenge_service.local_cache import MemoryCache
from services.challenge_service.personal_bests import PersonalBestStore, SnapshotStatus
from services.challenge_service.sync import SyncEngine, SyncState

UID = "user-1"


@pytest.fixture
def stores():
    return {}


@pytest.fixture
def engine(remote, stores):
    return SyncEngine(remote, lambda uid: stores.setdefault(uid, PersonalBestStore()))


def test_local_only_bests_upload(engine, remote, stores):
    remote.personal_bests[UID] = {"lightning-10": make_result("lightning-10", 140)}
    engine.store_for(UID).record(make_result("speed-5", 95))

    report = engine.run_cycle(UID)

    assert report.ok
    assert report.snapshot_status is SnapshotStatus.HAS_DATA
    assert report.written == ["speed-5"]
    assert remote.personal_bests[UID]["speed-5"].score == 95
    assert set(stores[UID].snapshot()) == {"speed-5", "lightning-10"}
    assert engine.state(UID) is SyncState.IDLE


def test_remote_better_score_wins_without_writes(engine, remote, stores):
    remote.personal_bests[UID] = {"blitz-15": make_result("blitz-15", 150)}
    engine.store_for(UID).record(make_result("blitz-15", 120))

    report = engine.run_cycle(UID)

    assert report.written == []
    assert stores[UID].get("blitz-15").score == 150
    assert not any(call[0] == "write_best_result" for call in remote.calls)


def test_empty_remote_discards_confirmed_local_bests(engine, remote, stores):
    stores[UID] = PersonalBestStore(MemoryCache({"speed-5": make_result("speed-5", 95)}))

    report = engine.run_cycle(UID)

    assert report.wiped
    assert report.snapshot_status is SnapshotStatus.EMPTY
    assert stores[UID].snapshot() == {}
    assert UID not in remote.personal_bests


def test_empty_remote_uploads_bests_it_never_confirmed(engine, remote, stores):
    stores[UID] = PersonalBestStore(MemoryCache({"blitz-15": make_result("blitz-15", 200)}))
    stores[UID].record(make_result("speed-5", 95))

    report = engine.run_cycle(UID)

    assert report.wiped
    assert report.written == ["speed-5"]
    assert set(stores[UID].snapshot()) == {"speed-5"}
    assert stores[UID].pending() == frozenset()
    assert set(remote.personal_bests[UID]) == {"speed-5"}


def test_first_upload_failure_survives_the_next_sign_in(remote, caches):
    def make_engine():
        # Stores are rebuilt from the cache on every lookup, as after a restart.
        return SyncEngine(remote, lambda uid: PersonalBestStore(caches.setdefault(uid, MemoryCache())))

    engine = make_engine()
    engine.store_for(UID).record(make_result("speed-5", 95))
    remote.fail_writes = True
    assert engine.push_result(UID, "speed-5") is False

    remote.fail_writes = False
    report = make_engine().run_cycle(UID)

    assert report.snapshot_status is SnapshotStatus.EMPTY
    assert not report.wiped
    assert report.written == ["speed-5"]
    assert remote.personal_bests[UID]["speed-5"].score == 95
    assert caches[UID].pending == frozenset()


def test_remote_already_holding_a_pending_best_confirms_it(engine, remote, stores):
    remote.personal_bests[UID] = {"speed-5": make_result("speed-5", 95)}
    engine.store_for(UID).record(make_result("speed-5", 95))

    report = engine.run_cycle(UID)

    assert report.written == []
    assert stores[UID].pending() == frozenset()


def test_fetch_failure_keeps_local_state(engine, remote, stores):
    engine.store_for(UID).record(make_result("speed-5", 95))
    remote.fail_fetch = True

    report = engine.run_cycle(UID)

    assert not report.ok
    assert report.error == "fetch failed"
    assert report.snapshot_status is SnapshotStatus.NOT_FETCHED
    assert stores[UID].get("speed-5").score == 95
    assert engine.state(UID) is SyncState.IDLE


def test_failed_write_is_dropped_and_retried_next_cycle(engine, remote, stores):
    remote.personal_bests[UID] = {"blitz-15": make_result("blitz-15", 100)}
    engine.store_for(UID).record(make_result("speed-5", 95))
    remote.fail_writes = True

    report = engine.run_cycle(UID)
    assert report.ok
    assert report.dropped == ["speed-5"]
    assert "speed-5" not in remote.personal_bests[UID]

    remote.fail_writes = False
    assert engine.run_cycle(UID).written == ["speed-5"]


def test_overlapping_cycle_is_skipped(engine, remote):
    remote.personal_bests[UID] = {"speed-5": make_result("speed-5", 50)}
    nested = []

    def reenter(uid):
        remote.on_fetch = None
        nested.append(engine.run_cycle(uid))
        assert engine.state(uid) is SyncState.FETCHING

    remote.on_fetch = reenter
    report = engine.run_cycle(UID)

    assert nested == [None]
    assert report is not None
    assert sum(1 for call in remote.calls if call[0] == "fetch_personal_bests") == 1


def test_result_recorded_during_fetch_is_not_clobbered(engine, remote, stores):
    remote.personal_bests[UID] = {"speed-5": make_result("speed-5", 80)}
    store = engine.store_for(UID)
    store.record(make_result("speed-5", 90))

    def finish_a_run(uid):
        store.record(make_result("speed-5", 120))

    remote.on_fetch = finish_a_run
    report = engine.run_cycle(UID)

    assert store.get("speed-5").score == 120
    # The write sends the newest local best, not the one the merge saw.
    assert ("write_best_result", UID, "speed-5", 120) in remote.calls
    assert remote.personal_bests[UID]["speed-5"].score == 120
    assert report.written == ["speed-5"]


def test_remote_compare_and_set_rejects_stale_push(engine, remote):
    remote.personal_bests[UID] = {"speed-5": make_result("speed-5", 150)}
    engine.store_for(UID).record(make_result("speed-5", 100))

    assert engine.push_result(UID, "speed-5") is False
    assert remote.personal_bests[UID]["speed-5"].score == 150


def test_push_result_writes_new_best(engine, remote):
    engine.store_for(UID).record(make_result("blitz-15", 233))
    assert engine.push_result(UID, "blitz-15") is True
    assert engine.push_result(UID, "missing") is False


def test_cycle_requires_user():
    engine = SyncEngine(None, lambda uid: PersonalBestStore())
    with pytest.raises(ValueError):
        engine.run_cycle("")
