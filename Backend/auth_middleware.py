# auth_middleware.py
from functools import wraps
from flask import has_request_context, request, jsonify
from firebase_admin import auth as fb_auth


def _decode_bearer(hdr: str):
    token = hdr.split(" ", 1)[1]
    decoded = fb_auth.verify_id_token(token)
    return {
        "uid": decoded["uid"],
        "email": decoded.get("email"),
        "name": decoded.get("name"),
    }


def require_auth(fn):
    """
    Verify Firebase ID token from 'Authorization: Bearer <token>'.
    Sets request.user = {"uid": ..., "email": ..., "name": ...}
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        hdr = request.headers.get("Authorization", "")
        if not hdr.startswith("Bearer "):
            return jsonify({"error": "Missing Firebase ID token"}), 401
        try:
            request.user = _decode_bearer(hdr)
        except Exception as e:
            return jsonify({"error": f"Invalid or expired token: {e}"}), 401
        return fn(*args, **kwargs)
    return wrapper


def optional_auth(fn):
    """
    Like require_auth, but a request without a token runs as a guest
    (request.user = None). A token that is present must still be valid.
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        hdr = request.headers.get("Authorization", "")
        request.user = None
        if hdr.startswith("Bearer "):
            try:
                request.user = _decode_bearer(hdr)
            except Exception as e:
                return jsonify({"error": f"Invalid or expired token: {e}"}), 401
        return fn(*args, **kwargs)
    return wrapper


class RequestIdentity:
    """Identity provider backed by the current Flask request."""

    def current_user_id(self):
        if not has_request_context():
            return None
        user = getattr(request, "user", None)
        return user["uid"] if user else None
