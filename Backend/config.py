# config.py
import os, json
from pathlib import Path


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Read at import; app.py loads .env before importing this module.
    DEBUG = _env_bool("FLASK_DEBUG", False)
    PORT = int(os.getenv("PORT", "5001"))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    TEMP_FOLDER = os.getenv("TEMP_FOLDER", "tmp")
    CHALLENGE_CACHE_DIR = os.getenv("CHALLENGE_CACHE_DIR", os.path.join(TEMP_FOLDER, "challenge_cache"))
    SYNC_ON_SIGN_IN = _env_bool("SYNC_ON_SIGN_IN", True)
    COMPLETED_SESSION_LIMIT = int(os.getenv("COMPLETED_SESSION_LIMIT", "200"))

    FIREBASE_SERVICE_ACCOUNT_JSON = os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON")

    @staticmethod
    def resolve_firebase_cred_path() -> str | None:
        """
        Tries multiple ways to get a valid credential:
          1) FIREBASE_SERVICE_ACCOUNT_JSON (env contains the full JSON blob) -> None
          2) GOOGLE_APPLICATION_CREDENTIALS (absolute or relative file path)
             - If not found, try <repo>/firebase/credentials/<basename>
          3) First *.json found under <repo>/firebase/credentials
        Raises FileNotFoundError when nothing usable exists.
        """
        json_blob = os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON")
        if json_blob:
            try:
                json.loads(json_blob)
                return None
            except ValueError as e:
                raise RuntimeError(f"Invalid FIREBASE_SERVICE_ACCOUNT_JSON: {e}") from e

        repo_root = Path(__file__).resolve().parent
        cred_dir = repo_root / "firebase" / "credentials"

        p = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
        if p:
            p = os.path.expanduser(os.path.expandvars(p.strip().strip('"').strip("'")))
            candidates = [Path(p), cred_dir / Path(p).name, (repo_root / p).resolve()]
            for candidate in candidates:
                if candidate.exists():
                    return str(candidate)
            tried = "\n".join(f" - {c}" for c in candidates)
            raise FileNotFoundError(f"Firebase credential file not found. Tried:\n{tried}")

        if cred_dir.exists():
            matches = sorted(cred_dir.glob("*.json"))
            if matches:
                return str(matches[0])

        raise FileNotFoundError(
            "No Firebase credentials found. Provide FIREBASE_SERVICE_ACCOUNT_JSON, "
            "or set GOOGLE_APPLICATION_CREDENTIALS, or put a JSON in firebase/credentials/."
        )
