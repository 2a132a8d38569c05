"""Shared blueprint/service helpers.

json_body:           request JSON object (``{}`` when absent)
get_or_raise:        lookup raising NotFoundError
commit_or_rollback:  commit that re-raises after rollback
"""

from flask import request

from memberdesk.core.exceptions import NotFoundError, ValidationError
from memberdesk.models import db

INVALID_BODY_MESSAGE = "Corps de requête invalide."


def json_body() -> dict:
    """Return the request's JSON object.

    A missing or unparsable body reads as ``{}``; valid JSON that is not an
    object (list, string, number) is rejected.

    Raises:
        ValidationError: the body is JSON but not an object.
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError(INVALID_BODY_MESSAGE, code="invalid_body")
    return data


def get_or_raise(model, pk, label=None):
    """Return the instance with primary key ``pk`` or raise NotFoundError."""
    obj = db.session.get(model, pk)
    if obj is None:
        raise NotFoundError(resource=label or model.__name__, resource_id=pk)
    return obj


def commit_or_rollback():
    """Commit the session; on any failure roll back and re-raise.

    Services call this once per logical save so a failed step leaves no
    partial write behind.
    """
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
