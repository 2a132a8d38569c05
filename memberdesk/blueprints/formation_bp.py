"""
Formation Blueprint — onboarding courses, learner progress and quizzes.

Endpoints:
    GET    /api/v1/poles/:pole/formations                 — Pole formations + my progress
    POST   /api/v1/poles/:pole/formations                 — Create (manager)
    GET    /api/v1/formations/:id                         — Detail
    PUT    /api/v1/formations/:id                         — Update + step reconciliation (manager)
    DELETE /api/v1/formations/:id                         — Delete (manager)

    POST   /api/v1/formations/:id/enroll                  — Enroll the caller
    GET    /api/v1/formations/:id/progress                — Step states + summary
    POST   /api/v1/formations/:id/steps/:sid/complete     — Complete a step
    POST   /api/v1/formations/:id/steps/:sid/submissions  — Upload a file (multipart "file")
    GET    /api/v1/formations/:id/documents/:did/url      — Signed URL of a reference document

    GET    /api/v1/formations/:id/quiz                    — Quiz (answers revealed to managers)
    PUT    /api/v1/formations/:id/quiz                    — Replace quiz (manager)
    DELETE /api/v1/formations/:id/quiz                    — Delete quiz (manager)
    POST   /api/v1/formations/:id/quiz/attempt            — Submit the single attempt
    GET    /api/v1/formations/:id/quiz/attempt            — Review my attempt

Create / update accept either a JSON body or a multipart form with a
``payload`` JSON field and reference files under ``step_<index>_documents``.
"""

import json
import logging
import re

from flask import Blueprint, jsonify, request

from memberdesk.auth import current_member, login_required
from memberdesk.core.exceptions import ValidationError
from memberdesk.services import formation_service, quiz_service
from memberdesk.utils.errors import register_error_handlers
from memberdesk.utils.helpers import INVALID_BODY_MESSAGE, json_body

logger = logging.getLogger(__name__)

formation_bp = Blueprint("formation", __name__, url_prefix="/api/v1")
register_error_handlers(formation_bp, logger)

_DOCUMENT_FIELD = re.compile(r"^step_(\d+)_documents$")


def _formation_payload() -> tuple[dict, dict]:
    """Return (data, documents) from a JSON or multipart request."""
    if request.mimetype == "multipart/form-data":
        try:
            data = json.loads(request.form.get("payload") or "{}")
        except ValueError as exc:
            raise ValidationError("Champ payload invalide.", details={"payload": "invalid_json"}) from exc
        documents = {}
        for field in request.files:
            match = _DOCUMENT_FIELD.match(field)
            if not match:
                continue
            files = [(f.filename, f.read()) for f in request.files.getlist(field) if f.filename]
            if files:
                documents[int(match.group(1))] = files
        if not isinstance(data, dict):
            raise ValidationError(INVALID_BODY_MESSAGE, code="invalid_body")
        return data, documents
    return json_body(), {}


# ═══════════════════════════════════════════════════════════════
# Formations
# ═══════════════════════════════════════════════════════════════

@formation_bp.route("/poles/<pole>/formations", methods=["GET"])
@login_required
def list_formations(pole):
    member = current_member()
    return jsonify({
        "formations": formation_service.list_formations(pole, member),
        "can_manage": formation_service.can_manage(member, pole),
    }), 200


@formation_bp.route("/poles/<pole>/formations", methods=["POST"])
@login_required
def create_formation(pole):
    data, documents = _formation_payload()
    member = current_member()
    formation = formation_service.create_formation(member, pole, data, documents)
    return jsonify(formation_service.formation_view(formation, member)), 201


@formation_bp.route("/formations/<int:formation_id>", methods=["GET"])
@login_required
def get_formation(formation_id):
    formation = formation_service.get_formation(formation_id)
    return jsonify(formation_service.formation_view(formation, current_member())), 200


@formation_bp.route("/formations/<int:formation_id>", methods=["PUT"])
@login_required
def update_formation(formation_id):
    formation = formation_service.get_formation(formation_id)
    data, documents = _formation_payload()
    member = current_member()
    formation = formation_service.update_formation(member, formation, data, documents)
    return jsonify(formation_service.formation_view(formation, member)), 200


@formation_bp.route("/formations/<int:formation_id>", methods=["DELETE"])
@login_required
def delete_formation(formation_id):
    formation = formation_service.get_formation(formation_id)
    formation_service.delete_formation(current_member(), formation)
    return jsonify({"deleted": True}), 200


# ═══════════════════════════════════════════════════════════════
# Learner progress
# ═══════════════════════════════════════════════════════════════

@formation_bp.route("/formations/<int:formation_id>/enroll", methods=["POST"])
@login_required
def enroll(formation_id):
    formation = formation_service.get_formation(formation_id)
    enrollment = formation_service.enroll(current_member(), formation)
    return jsonify(enrollment.to_dict()), 201


@formation_bp.route("/formations/<int:formation_id>/progress", methods=["GET"])
@login_required
def get_progress(formation_id):
    formation = formation_service.get_formation(formation_id)
    return jsonify(formation_service.progress_view(formation, current_member())), 200


@formation_bp.route("/formations/<int:formation_id>/steps/<int:step_id>/complete", methods=["POST"])
@login_required
def complete_step(formation_id, step_id):
    formation = formation_service.get_formation(formation_id)
    step = formation_service.get_step(formation, step_id)
    member = current_member()
    text_answer = json_body().get("text_answer")
    progress = formation_service.complete_step(member, formation, step, text_answer=text_answer)
    return jsonify({
        "progress": progress.to_dict(),
        **formation_service.progress_view(formation, member),
    }), 200


@formation_bp.route("/formations/<int:formation_id>/steps/<int:step_id>/submissions", methods=["POST"])
@login_required
def submit_file(formation_id, step_id):
    formation = formation_service.get_formation(formation_id)
    step = formation_service.get_step(formation, step_id)
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        raise ValidationError("Fichier manquant.", details={"file": "required"})
    submission = formation_service.submit_file(current_member(), formation, step,
                                               upload.filename, upload.read())
    return jsonify(submission.to_dict()), 201


@formation_bp.route("/formations/<int:formation_id>/documents/<int:document_id>/url", methods=["GET"])
@login_required
def document_url(formation_id, document_id):
    formation = formation_service.get_formation(formation_id)
    return jsonify(formation_service.document_download_url(current_member(), formation, document_id)), 200


# ═══════════════════════════════════════════════════════════════
# Quiz
# ═══════════════════════════════════════════════════════════════

@formation_bp.route("/formations/<int:formation_id>/quiz", methods=["GET"])
@login_required
def get_quiz(formation_id):
    formation = formation_service.get_formation(formation_id)
    return jsonify(quiz_service.quiz_view(current_member(), formation)), 200


@formation_bp.route("/formations/<int:formation_id>/quiz", methods=["PUT"])
@login_required
def save_quiz(formation_id):
    formation = formation_service.get_formation(formation_id)
    questions = json_body().get("questions")
    quiz = quiz_service.save_quiz(current_member(), formation, questions)
    return jsonify(quiz.to_dict(reveal_answers=True)), 200


@formation_bp.route("/formations/<int:formation_id>/quiz", methods=["DELETE"])
@login_required
def delete_quiz(formation_id):
    formation = formation_service.get_formation(formation_id)
    quiz_service.delete_quiz(current_member(), formation)
    return jsonify({"deleted": True}), 200


@formation_bp.route("/formations/<int:formation_id>/quiz/attempt", methods=["POST"])
@login_required
def submit_attempt(formation_id):
    formation = formation_service.get_formation(formation_id)
    answers = json_body().get("answers")
    attempt = quiz_service.submit_attempt(current_member(), formation, answers)
    return jsonify(attempt.to_dict(include_answers=True)), 201


@formation_bp.route("/formations/<int:formation_id>/quiz/attempt", methods=["GET"])
@login_required
def get_attempt(formation_id):
    formation = formation_service.get_formation(formation_id)
    return jsonify({"attempt": quiz_service.get_attempt_review(current_member(), formation)}), 200
