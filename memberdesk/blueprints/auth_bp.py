"""
Auth Blueprint — login, session and self-service profile.

Endpoints:
    POST /api/v1/auth/login      — {email, password} → access token
    POST /api/v1/auth/signup     — {email, password, confirm_password, full_name, pole}
    POST /api/v1/auth/logout     — End the current session
    GET  /api/v1/auth/me         — Current member
    PUT  /api/v1/auth/profile    — {full_name?, avatar_url?}
    POST /api/v1/auth/password   — {old_password, new_password, confirm_password}
"""

import logging

from flask import Blueprint, current_app, g, jsonify

from memberdesk.auth import current_member, login_required
from memberdesk.middleware.jwt_auth import get_inactivity_policy
from memberdesk.services import member_service
from memberdesk.services.jwt_service import generate_access_token
from memberdesk.utils.errors import E, api_error, register_error_handlers
from memberdesk.utils.helpers import json_body

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")
register_error_handlers(auth_bp, logger)


@auth_bp.route("/login", methods=["POST"])
def login():
    data = json_body()
    member = member_service.authenticate(data.get("email"), data.get("password"))
    if member is None:
        logger.info("Login refused for %s", data.get("email"))
        return api_error(E.UNAUTHORIZED, member_service.INVALID_CREDENTIALS_MESSAGE)

    logger.info("Member logged in", extra={"member_id": member.id})
    return _open_session(member), 200


@auth_bp.route("/signup", methods=["POST"])
def signup():
    member = member_service.signup(json_body())
    return _open_session(member), 201


def _open_session(member):
    token, session_id = generate_access_token(member.id, member.role, member.pole)
    get_inactivity_policy().start(session_id, member.id)
    return jsonify({
        "access_token": token,
        "token_type": "Bearer",
        "expires_in": current_app.config.get("JWT_ACCESS_EXPIRES"),
        "member": member.to_dict(),
    })


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    if g.session_id:
        get_inactivity_policy().end(g.session_id)
    return jsonify({"logged_out": True}), 200


@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify(current_member().to_dict()), 200


@auth_bp.route("/profile", methods=["PUT"])
@login_required
def update_profile():
    member = member_service.update_profile(current_member(), json_body())
    return jsonify(member.to_dict()), 200


@auth_bp.route("/password", methods=["POST"])
@login_required
def change_password():
    data = json_body()
    member_service.change_password(
        current_member(),
        data.get("old_password"),
        data.get("new_password"),
        data.get("confirm_password"),
    )
    return jsonify({"message": "Mot de passe mis à jour."}), 200
