"""Standardised API error responses.

Usage
-----
    from memberdesk.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Formation not found")
    return api_error(E.VALIDATION_REQUIRED, "Contact et template sont requis.")
    return api_error(E.STEP_LOCKED, "Étape verrouillée", details={"step_id": 3})
"""

from __future__ import annotations

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from memberdesk.core.exceptions import (
    ConflictError,
    GenerationError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Convention:
     • ERR_  prefix for standard application errors
     • domain codes (STEP_*, QUIZ_*, GENERATION_*) for engine rejections
    """

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Auth – HTTP 401 / 403
    UNAUTHORIZED = "ERR_UNAUTHORIZED"
    SESSION_EXPIRED = "ERR_SESSION_EXPIRED"
    FORBIDDEN = "ERR_FORBIDDEN"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / duplicate – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"

    # Formation / quiz engine rejections – HTTP 400
    STEP_LOCKED = "STEP_LOCKED"
    STEP_NOT_READY = "STEP_NOT_READY"
    QUIZ_NOT_ELIGIBLE = "QUIZ_NOT_ELIGIBLE"

    # Completion Service – HTTP 500
    GENERATION_FAILED = "GENERATION_FAILED"

    # Server – HTTP 500
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.UNAUTHORIZED: 401,
    E.SESSION_EXPIRED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.STEP_LOCKED: 400,
    E.STEP_NOT_READY: 400,
    E.QUIZ_NOT_ELIGIBLE: 400,
    E.GENERATION_FAILED: 500,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}

# ValidationError.code (service layer) → E constant
_VALIDATION_CODES: dict[str, str] = {
    "step_locked": E.STEP_LOCKED,
    "step_not_ready": E.STEP_NOT_READY,
    "quiz_not_eligible": E.QUIZ_NOT_ELIGIBLE,
}


def code_for_validation(reason: str | None) -> str:
    """Map a service-layer ValidationError code to an API error code."""
    return _VALIDATION_CODES.get(reason or "", E.VALIDATION_INVALID)


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation shown by the dashboard.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (field errors, ids, ...).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def register_error_handlers(bp, logger) -> None:
    """Map the core exception hierarchy onto JSON responses for one blueprint."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(code_for_validation(error.code), error.message, details=error.details)

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, error.message)

    @bp.errorhandler(PermissionDeniedError)
    def _handle_forbidden(error: PermissionDeniedError):
        return api_error(E.FORBIDDEN, error.message)

    @bp.errorhandler(GenerationError)
    def _handle_generation(error: GenerationError):
        return api_error(E.GENERATION_FAILED, error.message)

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return error
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")
