"""
Generation Blueprint — AI mail / LinkedIn content drafting.

Endpoints:
    POST /api/v1/generate-mail

Two body shapes:
    initial     {contact|contacts, contentType?, template, offres, context,
                 mentionedContacts?, sender?}
    refinement  {messages, refinement}

Both answer ``200 {"mail": <text>, "messages": <transcript>}``; the client
sends the returned transcript back with the next refinement.
"""

import logging

from flask import Blueprint, current_app, jsonify

from memberdesk.ai.conversation import ConversationManager
from memberdesk.ai.gateway import get_gateway
from memberdesk.ai.prompts import GenerationRequest, SenderIdentity
from memberdesk.auth import current_member, login_required
from memberdesk.models import db
from memberdesk.utils.errors import register_error_handlers
from memberdesk.utils.helpers import json_body

logger = logging.getLogger(__name__)

generation_bp = Blueprint("generation", __name__, url_prefix="/api/v1")
register_error_handlers(generation_bp, logger)


def _manager() -> ConversationManager:
    return ConversationManager(get_gateway(), model=current_app.config.get("LLM_MODEL"))


@generation_bp.route("/generate-mail", methods=["POST"])
@login_required
def generate_mail():
    """Initial generation, or one refinement turn when ``messages`` is present."""
    body = json_body()
    member = current_member()
    manager = _manager()

    try:
        if "messages" in body:
            text, transcript = manager.refine(body.get("messages"), body.get("refinement"),
                                              member_id=member.id)
        else:
            gen_request = GenerationRequest.from_payload(body)
            if gen_request.sender is None:
                gen_request.sender = SenderIdentity.from_member(member)
            text, transcript = manager.start_generation(gen_request, member_id=member.id)
    finally:
        # Usage rows are flushed by the gateway on success and failure alike
        db.session.commit()

    return jsonify({"mail": text, "messages": transcript}), 200
