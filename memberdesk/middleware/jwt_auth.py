"""
JWT Auth Middleware — parses the Bearer token and enforces inactivity.

Sets:
    g.member_id     int | None
    g.member_role   str | None
    g.session_id    str | None  (token jti)

Invalid or expired tokens leave ``g.member_id`` unset; endpoints decorated
with ``login_required`` then answer 401. A valid token whose session has
been idle longer than SESSION_INACTIVITY_TIMEOUT is rejected here with
401 "Session expirée".
"""

import logging

import jwt as pyjwt
from flask import current_app, g, request

from memberdesk.services.jwt_service import decode_access_token
from memberdesk.services.session_policy import InactivityPolicy
from memberdesk.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/auth/login",
    "/api/v1/auth/signup",
    "/api/v1/health",
    "/api/v1/contact",
    "/api/v1/storage/download",
)

SESSION_EXPIRED_MESSAGE = "Session expirée"


def get_inactivity_policy(app=None) -> InactivityPolicy:
    app = app or current_app
    return app.extensions["inactivity_policy"]


def init_jwt_middleware(app):
    """Register the inactivity policy and the JWT before_request hook."""
    app.extensions.setdefault(
        "inactivity_policy",
        InactivityPolicy(
            timeout_seconds=app.config.get("SESSION_INACTIVITY_TIMEOUT", 3600),
            retention_seconds=app.config.get("JWT_ACCESS_EXPIRES", 28800),
        ),
    )

    @app.before_request
    def _jwt_auth():
        g.member_id = None
        g.member_role = None
        g.session_id = None

        path = request.path
        if not path.startswith("/api/v1/") or request.method == "OPTIONS":
            return None
        for prefix in JWT_SKIP_PREFIXES:
            if path == prefix or path.startswith(prefix + "/"):
                return None

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return None

        token = auth_header[7:]
        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            return api_error(E.SESSION_EXPIRED, SESSION_EXPIRED_MESSAGE)
        except pyjwt.InvalidTokenError:
            logger.debug("Rejected invalid bearer token on %s", path)
            return None

        member_id = int(payload["sub"])
        session_id = payload.get("jti")
        if session_id and not get_inactivity_policy(app).check(session_id, member_id):
            return api_error(E.SESSION_EXPIRED, SESSION_EXPIRED_MESSAGE)

        g.member_id = member_id
        g.member_role = payload.get("role")
        g.session_id = session_id
        return None
