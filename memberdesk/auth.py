"""
MemberDesk
Authorization decorators.

    login_required       → 401 unless the JWT middleware identified a member;
                           loads the active Member into g.current_member
    presidence_required  → 403 unless that member holds the presidence role

Pole-level permissions (responsable of pole X) are checked in the service
layer through ``Member.can_manage_pole``.
"""

import functools
import logging

from flask import g

from memberdesk.models import db
from memberdesk.models.member import Member
from memberdesk.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def current_member() -> Member | None:
    return getattr(g, "current_member", None)


def login_required(f):
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        member_id = getattr(g, "member_id", None)
        if member_id is None:
            return api_error(E.UNAUTHORIZED, "Authentification requise.")
        member = db.session.get(Member, member_id)
        if member is None or not member.is_active:
            return api_error(E.UNAUTHORIZED, "Compte introuvable ou désactivé.")
        g.current_member = member
        return f(*args, **kwargs)

    return decorated


def presidence_required(f):
    """Use below ``login_required``."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        member = current_member()
        if member is None or member.role != "presidence":
            logger.warning("Presidence-only endpoint refused for member %s",
                           getattr(member, "id", None))
            return api_error(E.FORBIDDEN, "Réservé à la présidence.")
        return f(*args, **kwargs)

    return decorated
