import random

import pytest

import auth_middleware
from app import create_app
from conftest import NOON, FakeClock, make_questions
from services.challenge_service.errors import TransientNetworkError
from services.challenge_service.local_cache import MemoryCache
from services.challenge_service.questions import StaticQuestionBank
from services.challenge_service.service import ChallengeService

AUTH = {"Authorization": "Bearer good-token"}


@pytest.fixture
def client(remote, monkeypatch):
    def verify(token):
        if token != "good-token":
            raise ValueError("bad token")
        return {"uid": "user-1", "email": "user@example.com", "name": "User"}

    monkeypatch.setattr(auth_middleware.fb_auth, "verify_id_token", verify)

    service = ChallengeService(
        remote=remote,
        question_bank=StaticQuestionBank(make_questions(), rng=random.Random(3)),
        identity=auth_middleware.RequestIdentity(),
        cache_factory=lambda uid: MemoryCache(),
        clock=FakeClock(),
        now=lambda: NOON,
    )
    app = create_app(service)
    app.config["TESTING"] = True
    return app.test_client()


def _play(client, headers, challenge_id="speed-5"):
    res = client.post(f"/api/challenges/{challenge_id}/start", headers=headers, json={})
    assert res.status_code == 200
    body = res.get_json()
    sid = body["session_id"]
    headers = dict(headers)
    if "guest_id" in body:
        headers["X-Guest-Id"] = body["guest_id"]
    for _ in range(body["total_questions"]):
        res = client.post(f"/api/challenges/sessions/{sid}/answer", headers=headers,
                          json={"selected_index": 0})
        assert res.status_code == 200
    return res.get_json(), headers


def test_health_and_catalog(client):
    assert client.get("/api/health").get_json()["ok"]
    body = client.get("/api/challenges/").get_json()
    assert [c["id"] for c in body["challenges"]] == ["speed-5", "lightning-10", "blitz-15"]


def test_guest_flow_stays_local(client, remote):
    final, headers = _play(client, {})

    assert final["state"] == "completed"
    assert final["guest"]
    assert final["outcome"]["is_new_best"]
    assert not final["outcome"]["synced"]

    bests = client.get("/api/challenges/personal-bests", headers=headers).get_json()["personal_bests"]
    assert bests["speed-5"]["score"] == 150
    assert remote.calls == []

    assert client.post("/api/challenges/guest/end", headers=headers).status_code == 200
    bests = client.get("/api/challenges/personal-bests", headers=headers).get_json()["personal_bests"]
    assert bests == {}


def test_signed_in_flow_syncs_and_tracks_progress(client, remote):
    body = client.post("/api/challenges/sign-in", headers=AUTH).get_json()
    assert body["sync"]["snapshot"] == "empty"

    final, _ = _play(client, AUTH, "blitz-15")
    assert final["outcome"]["synced"]
    assert remote.personal_bests["user-1"]["blitz-15"].score == 250

    achievements = client.get("/api/challenges/achievements", headers=AUTH).get_json()
    assert achievements["total_unlocked"] >= 1
    assert achievements["total_questions_answered"] == 15

    streak = client.get("/api/challenges/streak", headers=AUTH).get_json()
    assert streak["current_streak"] == 1

    board = client.get("/api/challenges/leaderboard/blitz-15").get_json()
    assert board["leaderboard"][0]["user_id"] == "user-1"


def test_practice_flag_is_honoured(client, remote):
    res = client.post("/api/challenges/speed-5/start", headers=AUTH, json={"practice": True})
    assert res.get_json()["practice"] is True


def test_auth_errors(client):
    assert client.post("/api/challenges/sign-in").status_code == 401
    bad = {"Authorization": "Bearer nope"}
    assert client.post("/api/challenges/sign-in", headers=bad).status_code == 401
    assert client.post("/api/challenges/speed-5/start", headers=bad).status_code == 401


def test_service_errors_map_to_status_codes(client, remote, monkeypatch):
    res = client.post("/api/challenges/marathon/start", json={})
    assert res.status_code == 404
    assert res.get_json()["ok"] is False

    assert client.get("/api/challenges/sessions/missing").status_code == 404

    start = client.post("/api/challenges/speed-5/start", json={}).get_json()
    res = client.post(f"/api/challenges/sessions/{start['session_id']}/answer", json={})
    assert res.status_code == 400

    assert client.post("/api/challenges/guest/end").status_code == 400

    def unavailable(challenge_id, limit=10):
        raise TransientNetworkError("firestore unavailable")

    monkeypatch.setattr(remote, "fetch_leaderboard", unavailable)
    assert client.get("/api/challenges/leaderboard/speed-5").status_code == 503


def test_quit_then_answer_is_not_found(client):
    start = client.post("/api/challenges/speed-5/start", json={}).get_json()
    headers = {"X-Guest-Id": start["guest_id"]}
    sid = start["session_id"]
    assert client.post(f"/api/challenges/sessions/{sid}/quit", headers=headers).status_code == 200
    res = client.post(f"/api/challenges/sessions/{sid}/answer", headers=headers, json={"selected_index": 0})
    assert res.status_code == 404


def test_session_belongs_to_whoever_started_it(client, remote):
    start = client.post("/api/challenges/speed-5/start", headers=AUTH, json={}).get_json()
    sid = start["session_id"]
    writes_before = [call for call in remote.calls if call[0] in ("write_best_result", "log_result")]

    res = client.post(f"/api/challenges/sessions/{sid}/answer", json={"selected_index": 0})
    assert res.status_code == 404
    assert client.get(f"/api/challenges/sessions/{sid}").status_code == 404
    res = client.post(f"/api/challenges/sessions/{sid}/quit", headers={"X-Guest-Id": "someone"})
    assert res.status_code == 404

    writes_after = [call for call in remote.calls if call[0] in ("write_best_result", "log_result")]
    assert writes_after == writes_before
    assert client.get(f"/api/challenges/sessions/{sid}", headers=AUTH).get_json()["state"] == "active"


def test_guest_session_needs_its_guest_id(client):
    start = client.post("/api/challenges/speed-5/start", json={}).get_json()
    sid = start["session_id"]

    res = client.post(f"/api/challenges/sessions/{sid}/answer",
                      headers={"X-Guest-Id": "other-guest"}, json={"selected_index": 0})
    assert res.status_code == 404
    res = client.post(f"/api/challenges/sessions/{sid}/answer",
                      headers={"X-Guest-Id": start["guest_id"]}, json={"selected_index": 0})
    assert res.status_code == 200


@pytest.mark.parametrize("selected_index", ["abc", "1", True, 1.5, [0]])
def test_selected_index_must_be_an_integer(client, selected_index):
    start = client.post("/api/challenges/speed-5/start", headers=AUTH, json={}).get_json()
    res = client.post(f"/api/challenges/sessions/{start['session_id']}/answer", headers=AUTH,
                      json={"selected_index": selected_index})
    assert res.status_code == 400
    assert res.get_json()["ok"] is False


@pytest.mark.parametrize("query, expected", [("", 10), ("?limit=5", 5), ("?limit=100000", 100),
                                             ("?limit=0", 1), ("?limit=-3", 1), ("?limit=abc", 10)])
def test_leaderboard_limit_is_clamped(client, remote, monkeypatch, query, expected):
    seen = []

    def fetch(challenge_id, limit=10):
        seen.append(limit)
        return []

    monkeypatch.setattr(remote, "fetch_leaderboard", fetch)
    assert client.get(f"/api/challenges/leaderboard/speed-5{query}").status_code == 200
    assert seen == [expected]


def test_history_lists_every_completed_run(client):
    assert client.get("/api/challenges/history").status_code == 401

    _play(client, AUTH)
    _play(client, AUTH, "lightning-10")

    body = client.get("/api/challenges/history?limit=500", headers=AUTH).get_json()
    assert body["ok"]
    assert {r["challenge_id"] for r in body["results"]} == {"speed-5", "lightning-10"}
    assert all(r["is_personal_best"] for r in body["results"])
    assert body["stats"]["total_timed_challenges"] == 2
