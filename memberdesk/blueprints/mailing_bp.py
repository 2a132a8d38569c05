"""
Mailing Blueprint — the CRUD screens behind the generator, and history.

Endpoints:
    GET    /api/v1/contacts                        — List contacts
    POST   /api/v1/contacts                        — Create contact
    PUT    /api/v1/contacts/:id                    — Update contact
    DELETE /api/v1/contacts/:id                    — Delete contact

    GET    /api/v1/mail/templates?content_type=    — List templates
    POST   /api/v1/mail/templates                  — Create template
    PUT    /api/v1/mail/templates/:id              — Update template
    DELETE /api/v1/mail/templates/:id              — Delete template

    GET    /api/v1/offers                          — List offers
    POST   /api/v1/offers                          — Create offer
    PUT    /api/v1/offers/:id                      — Update offer
    DELETE /api/v1/offers/:id                      — Delete offer

    GET    /api/v1/mail/generations?mine=1&limit=  — History, newest first
    POST   /api/v1/mail/generations                — Save a generated text
    POST   /api/v1/mail/generations/:id/template   — New template from a saved text
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from memberdesk.ai.conversation import ConversationManager
from memberdesk.ai.gateway import get_gateway
from memberdesk.auth import current_member, login_required
from memberdesk.services import mailing_service
from memberdesk.utils.errors import register_error_handlers
from memberdesk.utils.helpers import json_body

logger = logging.getLogger(__name__)

mailing_bp = Blueprint("mailing", __name__, url_prefix="/api/v1")
register_error_handlers(mailing_bp, logger)


# ═══════════════════════════════════════════════════════════════
# Contacts
# ═══════════════════════════════════════════════════════════════

@mailing_bp.route("/contacts", methods=["GET"])
@login_required
def list_contacts():
    return jsonify([c.to_dict() for c in mailing_service.list_contacts()]), 200


@mailing_bp.route("/contacts", methods=["POST"])
@login_required
def create_contact():
    contact = mailing_service.create_contact(json_body(), member_id=current_member().id)
    return jsonify(contact.to_dict()), 201


@mailing_bp.route("/contacts/<int:contact_id>", methods=["PUT"])
@login_required
def update_contact(contact_id):
    return jsonify(mailing_service.update_contact(contact_id, json_body()).to_dict()), 200


@mailing_bp.route("/contacts/<int:contact_id>", methods=["DELETE"])
@login_required
def delete_contact(contact_id):
    mailing_service.delete_contact(contact_id)
    return jsonify({"deleted": True}), 200


# ═══════════════════════════════════════════════════════════════
# Templates
# ═══════════════════════════════════════════════════════════════

@mailing_bp.route("/mail/templates", methods=["GET"])
@login_required
def list_templates():
    templates = mailing_service.list_templates(request.args.get("content_type") or None)
    return jsonify([t.to_dict() for t in templates]), 200


@mailing_bp.route("/mail/templates", methods=["POST"])
@login_required
def create_template():
    template = mailing_service.create_template(json_body(), member_id=current_member().id)
    return jsonify(template.to_dict()), 201


@mailing_bp.route("/mail/templates/<int:template_id>", methods=["PUT"])
@login_required
def update_template(template_id):
    return jsonify(mailing_service.update_template(template_id, json_body()).to_dict()), 200


@mailing_bp.route("/mail/templates/<int:template_id>", methods=["DELETE"])
@login_required
def delete_template(template_id):
    mailing_service.delete_template(template_id)
    return jsonify({"deleted": True}), 200


# ═══════════════════════════════════════════════════════════════
# Offers
# ═══════════════════════════════════════════════════════════════

@mailing_bp.route("/offers", methods=["GET"])
@login_required
def list_offers():
    return jsonify([o.to_dict() for o in mailing_service.list_offers()]), 200


@mailing_bp.route("/offers", methods=["POST"])
@login_required
def create_offer():
    return jsonify(mailing_service.create_offer(json_body()).to_dict()), 201


@mailing_bp.route("/offers/<int:offer_id>", methods=["PUT"])
@login_required
def update_offer(offer_id):
    return jsonify(mailing_service.update_offer(offer_id, json_body()).to_dict()), 200


@mailing_bp.route("/offers/<int:offer_id>", methods=["DELETE"])
@login_required
def delete_offer(offer_id):
    mailing_service.delete_offer(offer_id)
    return jsonify({"deleted": True}), 200


# ═══════════════════════════════════════════════════════════════
# Generation history
# ═══════════════════════════════════════════════════════════════

@mailing_bp.route("/mail/generations", methods=["GET"])
@login_required
def list_generations():
    mine = request.args.get("mine", "").lower() in ("1", "true", "yes")
    limit = request.args.get("limit", 100, type=int)
    rows = mailing_service.list_generations(
        member_id=current_member().id if mine else None,
        limit=max(1, min(limit, 500)),
    )
    return jsonify([g.to_dict() for g in rows]), 200


@mailing_bp.route("/mail/generations", methods=["POST"])
@login_required
def save_generation():
    """Save the final text of a session.

    Body: {result, template_id?, contact_id?, content_type?, contact_name?,
           template_title?, context?}
    """
    data = json_body()
    manager = ConversationManager(get_gateway(), model=current_app.config.get("LLM_MODEL"))
    generation = manager.persist(data.get("result") or data.get("mail"), data,
                                 member_id=current_member().id)
    return jsonify(generation.to_dict()), 201


@mailing_bp.route("/mail/generations/<int:generation_id>/template", methods=["POST"])
@login_required
def template_from_generation(generation_id):
    template = mailing_service.template_from_generation(
        generation_id, title=json_body().get("title"), member_id=current_member().id,
    )
    return jsonify(template.to_dict()), 201
