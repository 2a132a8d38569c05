"""
Contact Blueprint — the public website's contact form (no authentication).

Endpoints:
    POST /api/v1/contact   — {name, email, company?, message}
"""

import logging

from flask import Blueprint, jsonify

from memberdesk.core.exceptions import ValidationError
from memberdesk.services import contact_service
from memberdesk.utils.errors import register_error_handlers
from memberdesk.utils.helpers import json_body

logger = logging.getLogger(__name__)

contact_bp = Blueprint("contact", __name__, url_prefix="/api/v1")
register_error_handlers(contact_bp, logger)


@contact_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return jsonify({"error": error.message}), 400


@contact_bp.route("/contact", methods=["POST"])
def submit():
    record = contact_service.submit_contact_message(json_body())
    if record.delivery_status == "failed":
        return jsonify({
            "error": "Erreur lors de l'envoi de l'email",
            "details": record.delivery_error,
        }), 500
    return jsonify({"success": True, "message": "Email envoyé avec succès", "id": record.id}), 200
