# app.py
"""
Main Flask application entrypoint.

- Loads env/config
- Configures logging
- Initializes Firebase Admin (token verification + Firestore)
- Enables CORS for /api/*
- Registers the timed-challenge blueprint at /api/challenges
"""

from __future__ import annotations
import logging
import os
from datetime import datetime, timezone
from dotenv import load_dotenv
from flask import Flask, jsonify

# ---- Load .env early ----
load_dotenv()

# ---- Config & blueprints ----
from config import Config
from flask_cors import CORS
from auth_middleware import RequestIdentity
from services import firebase
from services.challenge_service.questions import FirestoreQuestionBank
from services.challenge_service.remote_store import FirestoreRemoteStore
from services.challenge_service.routes import challenge_bp
from services.challenge_service.service import ChallengeService

logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("app")


def build_service() -> ChallengeService:
    return ChallengeService(
        remote=FirestoreRemoteStore(),
        question_bank=FirestoreQuestionBank(),
        identity=RequestIdentity(),
        cache_dir=Config.CHALLENGE_CACHE_DIR,
        sync_on_sign_in=Config.SYNC_ON_SIGN_IN,
        completed_session_limit=Config.COMPLETED_SESSION_LIMIT,
    )


# ---------------------------------------------------------------------
# App Factory
# ---------------------------------------------------------------------
def create_app(service: ChallengeService | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(Config)

    # CORS for mobile dev; lock down origins in production
    CORS(app, resources={r"/api/*": {"origins": "*"}})

    os.makedirs(Config.CHALLENGE_CACHE_DIR, exist_ok=True)

    if service is None:
        firebase.init_app()
        service = build_service()
    app.extensions["challenge_service"] = service

    app.register_blueprint(challenge_bp, url_prefix="/api/challenges")

    # --- Health (public) ---
    @app.get("/api/health")
    def health():
        return jsonify({"ok": True, "service": "flask", "version": "2.0.0"})

    @app.get("/api/test/ping")
    def test_ping():
        """Simple ping test"""
        return jsonify({
            "ok": True,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "message": "Pong! Backend is responding."
        }), 200

    # --- JSON error handlers ---
    @app.errorhandler(400)
    def handle_400(err):
        return jsonify({"error": str(err)}), 400

    @app.errorhandler(404)
    def handle_404(err):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    def handle_500(err):
        logger.error("Unhandled error: %s", err)
        return jsonify({"error": "Internal server error"}), 500

    return app


# ---------------------------------------------------------------------
# Dev Server Launcher
# ---------------------------------------------------------------------
if __name__ == "__main__":
    app = create_app()
    app.run(host="0.0.0.0", port=Config.PORT, debug=Config.DEBUG)
