# services/firebase.py
import json
import logging

import firebase_admin
from firebase_admin import credentials, firestore

from config import Config

logger = logging.getLogger(__name__)

_db = None


def _credential():
    """Certificate from the env JSON blob or a resolved key file; None = default credentials."""
    json_blob = Config.FIREBASE_SERVICE_ACCOUNT_JSON
    if json_blob:
        return credentials.Certificate(json.loads(json_blob))
    try:
        path = Config.resolve_firebase_cred_path()
    except FileNotFoundError as e:
        # On Cloud Run the attached service account is used instead.
        logger.info("No Firebase key file (%s); using default credentials", e)
        return None
    return credentials.Certificate(path) if path else None


def init_app():
    """Initialize the default Firebase app once per process."""
    if firebase_admin._apps:
        return firebase_admin.get_app()
    cred = _credential()
    app = firebase_admin.initialize_app(cred) if cred else firebase_admin.initialize_app()
    logger.info("Firebase default app initialized.")
    return app


def get_db():
    global _db
    if _db is None:
        _db = firestore.client(app=init_app())
    return _db
