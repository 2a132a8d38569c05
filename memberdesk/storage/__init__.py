"""
Object storage for formation files.

    steps/<step_id>/<ms>_<name>                     reference documents
    submissions/<enrollment_id>/<step_id>/<ms>_<name>  learner submissions

Files are never served directly: callers obtain a signed, time-limited
URL (``signed_url``) that the storage blueprint redeems.
"""

import re
import time
import unicodedata

from flask import current_app, url_for

from .base import AbstractStorage
from .local import LocalStorage

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def get_storage(app=None) -> AbstractStorage:
    """Return the app-wide storage provider, created on first use."""
    app = app or current_app
    storage = app.extensions.get("storage")
    if storage is None:
        storage = LocalStorage(base_path=app.config["STORAGE_ROOT"])
        app.extensions["storage"] = storage
    return storage


def safe_file_name(name: str) -> str:
    """Strip accents and replace anything outside ``[a-zA-Z0-9._-]`` with ``_``."""
    decomposed = unicodedata.normalize("NFD", name or "")
    ascii_only = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    cleaned = _UNSAFE_CHARS.sub("_", ascii_only)
    # Never produce "." or ".." as a whole path segment
    return cleaned.strip(".") or "fichier"


def _now_ms() -> int:
    return int(time.time() * 1000)


def submission_key(enrollment_id: int, step_id: int, file_name: str, now_ms: int | None = None) -> str:
    return f"submissions/{enrollment_id}/{step_id}/{now_ms or _now_ms()}_{safe_file_name(file_name)}"


def document_key(step_id: int, file_name: str, now_ms: int | None = None) -> str:
    return f"steps/{step_id}/{now_ms or _now_ms()}_{safe_file_name(file_name)}"


def signed_url(key: str, file_name: str | None = None, expires_in: int | None = None) -> str:
    """Relative URL granting read access to ``key`` until the token expires."""
    from memberdesk.services.jwt_service import generate_download_token

    token = generate_download_token(key, file_name, expires_in=expires_in)
    return url_for("storage.download", token=token)
