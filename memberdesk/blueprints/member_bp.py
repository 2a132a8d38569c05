"""
Member Blueprint — membership administration and supervision.

Endpoints:
    GET /api/v1/members?pole=&q=             — Member directory
    PUT /api/v1/members/:id                  — {role?, pole?, is_active?} (presidence)
    GET /api/v1/supervision/poles/:pole      — Progress of a pole's members
    GET /api/v1/supervision/global           — Every visible member + per-pole aggregates
    GET /api/v1/supervision/members/:id      — Step-level detail for one member
"""

import logging

from flask import Blueprint, jsonify, request

from memberdesk.auth import current_member, login_required, presidence_required
from memberdesk.services import member_service, supervision_service
from memberdesk.utils.errors import register_error_handlers
from memberdesk.utils.helpers import json_body

logger = logging.getLogger(__name__)

member_bp = Blueprint("members", __name__, url_prefix="/api/v1")
register_error_handlers(member_bp, logger)


@member_bp.route("/members", methods=["GET"])
@login_required
def list_members():
    members = member_service.list_members(
        pole=request.args.get("pole") or None,
        search=request.args.get("q") or None,
    )
    return jsonify({"members": [m.to_dict() for m in members], "total": len(members)}), 200


@member_bp.route("/members/<int:member_id>", methods=["PUT"])
@login_required
@presidence_required
def update_member(member_id):
    member = member_service.update_member(member_id, json_body())
    return jsonify(member.to_dict()), 200


@member_bp.route("/supervision/poles/<pole>", methods=["GET"])
@login_required
def supervise_pole(pole):
    return jsonify(supervision_service.pole_view(current_member(), pole)), 200


@member_bp.route("/supervision/global", methods=["GET"])
@login_required
def supervise_global():
    return jsonify(supervision_service.global_view(current_member())), 200


@member_bp.route("/supervision/members/<int:member_id>", methods=["GET"])
@login_required
def supervise_member(member_id):
    return jsonify(supervision_service.member_detail(current_member(), member_id)), 200
