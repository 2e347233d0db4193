# services/challenge_service/routes.py
from flask import Blueprint, current_app, request, jsonify
from auth_middleware import optional_auth, require_auth

from .errors import ChallengeError, ValidationError
from .catalog import get_challenge

challenge_bp = Blueprint("challenge_bp", __name__)

GUEST_HEADER = "X-Guest-Id"
MAX_LIMIT = 100


def _service():
    return current_app.extensions["challenge_service"]


def _guest_id():
    return request.headers.get(GUEST_HEADER) or (request.get_json(silent=True) or {}).get("guest_id")


def _limit(default):
    """?limit=N clamped to 1..MAX_LIMIT."""
    limit = request.args.get("limit", default, type=int)
    return max(1, min(limit, MAX_LIMIT))


def _session_payload(session):
    payload = {"ok": True, **session.to_dict()}
    outcome = _service().outcome(session.id)
    if outcome is not None:
        payload["outcome"] = outcome
    if session.guest_id:
        payload["guest_id"] = session.guest_id
    return payload


@challenge_bp.errorhandler(ChallengeError)
def handle_challenge_error(err):
    return jsonify({"ok": False, "error": str(err)}), err.status_code


# -------------------- Catalog --------------------

@challenge_bp.get("/")
def list_all():
    return jsonify({"ok": True, "challenges": _service().challenges()}), 200


# -------------------- Sign-in / Sync --------------------

@challenge_bp.post("/sign-in")
@require_auth
def sign_in():
    """
    Start an authenticated session; runs the personal-best sync once.

    Response:
    {
        "ok": true,
        "sync": {"ok": true, "snapshot": "has_data", "wiped": false,
                 "written": ["speed-5"], "skipped": [], "dropped": [], "error": null}
    }
    """
    report = _service().sign_in(request.user["uid"])
    return jsonify({"ok": True, "sync": report.to_dict() if report else None}), 200


@challenge_bp.post("/sign-out")
@require_auth
def sign_out():
    _service().sign_out(request.user["uid"])
    return jsonify({"ok": True}), 200


@challenge_bp.post("/sync")
@require_auth
def sync_now():
    report = _service().sync_now()
    if report is None:
        return jsonify({"ok": True, "sync": None, "message": "Sync already in progress"}), 202
    return jsonify({"ok": True, "sync": report.to_dict()}), 200


# -------------------- Sessions --------------------

@challenge_bp.post("/<challenge_id>/start")
@optional_auth
def start(challenge_id):
    """
    Start a timed challenge. Works for guests (X-Guest-Id header, created if
    missing) and signed-in users.

    Request body (optional): {"practice": false}
    """
    data = request.get_json(silent=True) or {}
    session = _service().start_challenge(
        challenge_id,
        practice=bool(data.get("practice", False)),
        guest_id=_guest_id(),
    )
    return jsonify(_session_payload(session)), 200


@challenge_bp.get("/sessions/<session_id>")
@optional_auth
def session_state(session_id):
    return jsonify(_session_payload(_service().get_session(session_id, _guest_id()))), 200


@challenge_bp.post("/sessions/<session_id>/answer")
@optional_auth
def answer(session_id):
    """
    Request body: {"selected_index": 2}

    The response carries the session state; once the last question is
    answered (or time ran out) it includes "outcome" with the graded result,
    personal-best status and any achievements unlocked.
    """
    data = request.get_json(silent=True) or {}
    selected_index = data.get("selected_index")
    if selected_index is None:
        return jsonify({"ok": False, "error": "selected_index required"}), 400
    if isinstance(selected_index, bool) or not isinstance(selected_index, int):
        raise ValidationError("selected_index must be an integer")
    session = _service().answer(session_id, selected_index, _guest_id())
    return jsonify(_session_payload(session)), 200


@challenge_bp.post("/sessions/<session_id>/quit")
@optional_auth
def quit_session(session_id):
    _service().quit(session_id, _guest_id())
    return jsonify({"ok": True}), 200


@challenge_bp.post("/guest/end")
def end_guest():
    guest_id = _guest_id()
    if not guest_id:
        return jsonify({"ok": False, "error": f"{GUEST_HEADER} required"}), 400
    _service().end_guest(guest_id)
    return jsonify({"ok": True}), 200


# -------------------- Personal Bests / Progress --------------------

@challenge_bp.get("/personal-bests")
@optional_auth
def personal_bests():
    return jsonify({"ok": True, "personal_bests": _service().personal_bests(_guest_id())}), 200


@challenge_bp.get("/achievements")
@require_auth
def achievements():
    return jsonify(_service().progress.summary(request.user["uid"])), 200


@challenge_bp.get("/streak")
@require_auth
def streak():
    record = _service().progress.load_streak(request.user["uid"])
    return jsonify({"ok": True, **record.to_dict()}), 200


@challenge_bp.get("/leaderboard/<challenge_id>")
def leaderboard(challenge_id):
    get_challenge(challenge_id)
    limit = _limit(10)
    entries = _service().remote.fetch_leaderboard(challenge_id, limit)
    return jsonify({"ok": True, "challenge_id": challenge_id, "leaderboard": entries, "count": len(entries)}), 200


@challenge_bp.get("/history")
@require_auth
def history():
    """
    Recent completed results for the signed-in user, newest first.

    Response:
    {
        "ok": true,
        "results": [{"challenge_id": "speed-5", "score": 150, "grade": "A", ...,
                     "is_personal_best": true}],
        "stats": {"total_timed_challenges": 12, "best_overall_grade": "A",
                  "last_challenge_date": "2024-03-06T12:00:00+00:00"}
    }
    """
    return jsonify({"ok": True, **_service().history(_limit(20))}), 200
