"""
JWT Service — access tokens and signed download tokens.

Access token:    JWT_ACCESS_EXPIRES seconds (default 8 h; the inactivity
                 policy logs members out long before that)
Download token:  SIGNED_URL_EXPIRES seconds (default 60 s)
Algorithm:       HS256

Token payload (access):
{
    "sub": "<member_id>",
    "role": "responsable",
    "pole": "etude",
    "type": "access",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <session id, keyed by the inactivity policy>
}

Token payload (download):
{
    "path": "steps/12/1700000000000_guide.pdf",
    "name": "guide.pdf",
    "type": "download",
    "iat": ..., "exp": ...
}
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app


# ─── Defaults ────────────────────────────────────────────────
DEFAULT_ACCESS_EXPIRES = 28800     # 8 hours
DEFAULT_DOWNLOAD_EXPIRES = 60      # 1 minute
ALGORITHM = "HS256"


def _get_secret():
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_access_expires():
    return current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES)


def _get_download_expires():
    return current_app.config.get("SIGNED_URL_EXPIRES", DEFAULT_DOWNLOAD_EXPIRES)


# ═══════════════════════════════════════════════════════════════
# Token Generation
# ═══════════════════════════════════════════════════════════════
def generate_access_token(member_id: int, role: str, pole: str) -> tuple[str, str]:
    """Generate an access token. Returns (token, session_id)."""
    now = datetime.now(timezone.utc)
    session_id = str(uuid.uuid4())
    payload = {
        # PyJWT >= 2.10 requires a string subject
        "sub": str(member_id),
        "role": role,
        "pole": pole,
        "type": "access",
        "iat": now,
        "exp": now + timedelta(seconds=_get_access_expires()),
        "jti": session_id,
    }
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM), session_id


def generate_download_token(storage_path: str, file_name: str | None = None,
                            expires_in: int | None = None) -> str:
    """Generate a short-lived token granting read access to one stored file."""
    now = datetime.now(timezone.utc)
    payload = {
        "path": storage_path,
        "name": file_name,
        "type": "download",
        "iat": now,
        "exp": now + timedelta(seconds=expires_in or _get_download_expires()),
    }
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)


# ═══════════════════════════════════════════════════════════════
# Token Verification
# ═══════════════════════════════════════════════════════════════
def decode_token(token: str, expected_type: str = "access") -> dict:
    """
    Decode and verify a JWT token.

    Returns the payload dict on success.
    Raises jwt.exceptions on failure (ExpiredSignatureError, InvalidTokenError, etc.)
    """
    payload = jwt.decode(token, _get_secret(), algorithms=[ALGORITHM])

    if payload.get("type") != expected_type:
        raise jwt.InvalidTokenError(f"Expected {expected_type} token, got {payload.get('type')}")

    return payload


def decode_access_token(token: str) -> dict:
    return decode_token(token, expected_type="access")


def decode_download_token(token: str) -> dict:
    return decode_token(token, expected_type="download")
