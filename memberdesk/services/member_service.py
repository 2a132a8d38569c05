"""
Member Service — authentication, profile and membership administration.

Role/pole changes are reserved to the presidence (enforced by the
blueprint with ``presidence_required``); this layer validates values.
"""

import logging

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from memberdesk.core.exceptions import ConflictError, NotFoundError, ValidationError
from memberdesk.models import db
from memberdesk.models.member import MEMBER_ROLES, POLES, Member
from memberdesk.utils.crypto import hash_password, verify_password
from memberdesk.utils.helpers import commit_or_rollback

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8

INVALID_CREDENTIALS_MESSAGE = "Email ou mot de passe incorrect."
PASSWORD_TOO_SHORT_MESSAGE = "Le nouveau mot de passe doit faire au moins 8 caractères."
PASSWORD_MISMATCH_MESSAGE = "Les mots de passe ne correspondent pas."
WRONG_PASSWORD_MESSAGE = "Ancien mot de passe incorrect."
FULL_NAME_REQUIRED_MESSAGE = "Le nom complet est requis."
INVALID_EMAIL_MESSAGE = "Adresse email invalide."
EMAIL_TAKEN_MESSAGE = "Cette adresse e-mail est déjà utilisée."

SIGNUP_DOMAIN = "capisen.fr"
SIGNUP_DOMAIN_MESSAGE = f"Seules les adresses @{SIGNUP_DOMAIN} sont autorisées."
SIGNUP_PASSWORD_MESSAGE = "Le mot de passe doit contenir au moins 8 caractères."


def _normalise_email(email) -> str:
    return email.strip().lower() if isinstance(email, str) else ""


def find_by_email(email: str) -> Member | None:
    return db.session.execute(
        select(Member).where(func.lower(Member.email) == _normalise_email(email))
    ).scalar_one_or_none()


def authenticate(email, password) -> Member | None:
    """Return the active member matching the credentials, or None."""
    if not email or not password:
        return None
    member = find_by_email(email)
    if member is None or not member.is_active:
        return None
    if not verify_password(password, member.password_hash):
        return None
    return member


def update_profile(member: Member, data: dict) -> Member:
    """Self-service profile edit: full name and avatar."""
    if "full_name" in data:
        full_name = data["full_name"].strip() if isinstance(data["full_name"], str) else ""
        if not full_name:
            raise ValidationError(FULL_NAME_REQUIRED_MESSAGE, details={"full_name": "required"})
        member.full_name = full_name
    if "avatar_url" in data:
        member.avatar_url = (data["avatar_url"] or "").strip() or None
    commit_or_rollback()
    return member


def change_password(member: Member, old_password, new_password, confirm_password) -> None:
    """Checks run in order: length, confirmation, then the current password."""
    if not isinstance(new_password, str) or len(new_password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(PASSWORD_TOO_SHORT_MESSAGE, details={"new_password": "too_short"})
    if new_password != confirm_password:
        raise ValidationError(PASSWORD_MISMATCH_MESSAGE, details={"confirm_password": "mismatch"})
    if not old_password or not verify_password(old_password, member.password_hash):
        raise ValidationError(WRONG_PASSWORD_MESSAGE, details={"old_password": "invalid"})

    member.password_hash = hash_password(new_password)
    commit_or_rollback()
    logger.info("Password changed", extra={"member_id": member.id})


def list_members(*, pole: str | None = None, search: str | None = None) -> list[Member]:
    stmt = select(Member).order_by(Member.full_name, Member.id)
    if pole:
        stmt = stmt.where(Member.pole == pole)
    if search:
        stmt = stmt.where(Member.full_name.ilike(f"%{search.strip()}%"))
    return db.session.execute(stmt).scalars().all()


def _validate_role_pole(role, pole) -> None:
    if role is not None and role not in MEMBER_ROLES:
        raise ValidationError("Rôle inconnu.", details={"role": role})
    if pole is not None and pole not in POLES:
        raise ValidationError("Pôle inconnu.", details={"pole": pole})


def update_member(member_id: int, data: dict) -> Member:
    """Administrative edit of role, pole and activation."""
    member = db.session.get(Member, member_id)
    if member is None:
        raise NotFoundError(resource="Member", resource_id=member_id)
    _validate_role_pole(data.get("role"), data.get("pole"))

    if data.get("role") is not None:
        member.role = data["role"]
    if data.get("pole") is not None:
        member.pole = data["pole"]
    if "is_active" in data:
        member.is_active = bool(data["is_active"])
    commit_or_rollback()
    logger.info("Member %s updated: role=%s pole=%s", member.id, member.role, member.pole)
    return member


def _validated_email(email) -> str:
    """Syntax-check an address; members are stored lowercase."""
    if not isinstance(email, str) or not email.strip():
        raise ValidationError("L'email est requis.", details={"email": "required"})
    try:
        return validate_email(email.strip(), check_deliverability=False).normalized.lower()
    except EmailNotValidError as exc:
        raise ValidationError(INVALID_EMAIL_MESSAGE, details={"email": "invalid"}) from exc


def create_member(*, email: str, password: str, full_name: str,
                  role: str = "normal", pole: str = "secretariat") -> Member:
    email = _validated_email(email)
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(PASSWORD_TOO_SHORT_MESSAGE, details={"password": "too_short"})
    _validate_role_pole(role, pole)
    if find_by_email(email) is not None:
        raise ConflictError("Member", "email", email, message=EMAIL_TAKEN_MESSAGE)

    member = Member(
        email=email,
        password_hash=hash_password(password),
        full_name=(full_name or "").strip(),
        role=role,
        pole=pole,
    )
    db.session.add(member)
    try:
        commit_or_rollback()
    except IntegrityError as exc:
        raise ConflictError("Member", "email", email, message=EMAIL_TAKEN_MESSAGE) from exc
    return member


def signup(data: dict) -> Member:
    """Self-service account creation for ``@capisen.fr`` addresses.

    New accounts always get the ``normal`` role; the pole is picked by the
    member. Checks run in order: domain, password confirmation, length,
    full name and pole.

    Raises:
        ValidationError: a check above fails.
        ConflictError: the address is already registered.
    """
    email = _validated_email(data.get("email"))
    if email.rsplit("@", 1)[1] != SIGNUP_DOMAIN:
        raise ValidationError(SIGNUP_DOMAIN_MESSAGE, details={"email": "domain"})

    password = data.get("password")
    if password != data.get("confirm_password"):
        raise ValidationError(PASSWORD_MISMATCH_MESSAGE, details={"confirm_password": "mismatch"})
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(SIGNUP_PASSWORD_MESSAGE, details={"password": "too_short"})

    full_name = data.get("full_name").strip() if isinstance(data.get("full_name"), str) else ""
    if not full_name:
        raise ValidationError(FULL_NAME_REQUIRED_MESSAGE, details={"full_name": "required"})
    pole = data.get("pole")
    if not isinstance(pole, str) or pole not in POLES:
        raise ValidationError("Pôle inconnu.", details={"pole": pole})

    member = create_member(email=email, password=password, full_name=full_name,
                           role="normal", pole=pole)
    logger.info("Member signed up", extra={"member_id": member.id})
    return member
