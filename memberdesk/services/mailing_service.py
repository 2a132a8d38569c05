"""
Mailing Service — contacts, templates, offers and the generation history.

Business context:
    Everything the generator form reads (contacts, templates, offers) is
    managed here, plus the append-only history of saved generations.

    Templates carry a set of "mentioned" contacts: people who are not the
    recipients of a mail but whose profile is injected into the prompt
    whenever the template is used.

Transactions:
    Each public function that writes commits exactly once and rolls back
    on failure (``commit_or_rollback``).
"""

import logging

from sqlalchemy import select

from memberdesk.ai.prompts import ContentType
from memberdesk.core.exceptions import ValidationError
from memberdesk.models import db
from memberdesk.models.mailing import Contact, MailGeneration, MailTemplate, Offer
from memberdesk.utils.helpers import commit_or_rollback, get_or_raise

logger = logging.getLogger(__name__)

CONTENT_TYPES: frozenset[str] = frozenset(ct.value for ct in ContentType)

_CONTACT_FIELDS = ("full_name", "company", "job_title", "email", "notes")


def _clean(value):
    """Trim strings; blank strings become None."""
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


# ── Contacts ──────────────────────────────────────────────────────────────────


def list_contacts() -> list[Contact]:
    return list(db.session.execute(select(Contact).order_by(Contact.full_name)).scalars())


def create_contact(data: dict, *, member_id: int | None = None) -> Contact:
    full_name = _clean(data.get("full_name"))
    if not full_name:
        raise ValidationError("Le nom du contact est requis.", details={"full_name": "required"})
    contact = Contact(created_by=member_id, **{f: _clean(data.get(f)) for f in _CONTACT_FIELDS})
    db.session.add(contact)
    commit_or_rollback()
    logger.info("Contact created: %s", contact.id, extra={"member_id": member_id})
    return contact


def update_contact(contact_id: int, data: dict) -> Contact:
    contact = get_or_raise(Contact, contact_id)
    if "full_name" in data and not _clean(data.get("full_name")):
        raise ValidationError("Le nom du contact est requis.", details={"full_name": "required"})
    for f in _CONTACT_FIELDS:
        if f in data:
            setattr(contact, f, _clean(data[f]))
    commit_or_rollback()
    return contact


def delete_contact(contact_id: int) -> None:
    """Delete a contact. Saved generations keep their text; the link is nulled."""
    contact = get_or_raise(Contact, contact_id)
    for generation in db.session.execute(
        select(MailGeneration).where(MailGeneration.contact_id == contact.id)
    ).scalars():
        generation.contact_id = None
    db.session.delete(contact)
    commit_or_rollback()


# ── Templates ─────────────────────────────────────────────────────────────────


def list_templates(content_type: str | None = None) -> list[MailTemplate]:
    stmt = select(MailTemplate).order_by(MailTemplate.title)
    if content_type:
        stmt = stmt.where(MailTemplate.content_type == content_type)
    return list(db.session.execute(stmt).scalars())


def _resolve_contacts(contact_ids) -> list[Contact]:
    if not contact_ids:
        return []
    if not isinstance(contact_ids, list):
        raise ValidationError("mentioned_contact_ids doit être une liste.",
                              details={"mentioned_contact_ids": "invalid"})
    contacts = list(db.session.execute(select(Contact).where(Contact.id.in_(contact_ids))).scalars())
    missing = set(contact_ids) - {c.id for c in contacts}
    if missing:
        raise ValidationError("Contact mentionné introuvable.",
                              details={"mentioned_contact_ids": sorted(missing)})
    return contacts


def _validate_content_type(value):
    value = _clean(value)
    if value is not None and value not in CONTENT_TYPES:
        raise ValidationError("Type de contenu inconnu.", details={"content_type": value})
    return value


def create_template(data: dict, *, member_id: int | None = None) -> MailTemplate:
    title = _clean(data.get("title"))
    if not title:
        raise ValidationError("Le titre est requis.", details={"title": "required"})
    template = MailTemplate(
        title=title,
        content_type=_validate_content_type(data.get("content_type")),
        context=_clean(data.get("context")),
        created_by=member_id,
    )
    template.mentioned_contacts = _resolve_contacts(data.get("mentioned_contact_ids"))
    db.session.add(template)
    commit_or_rollback()
    logger.info("Template created: %s", template.id, extra={"member_id": member_id})
    return template


def update_template(template_id: int, data: dict) -> MailTemplate:
    template = get_or_raise(MailTemplate, template_id)
    if "title" in data:
        title = _clean(data.get("title"))
        if not title:
            raise ValidationError("Le titre est requis.", details={"title": "required"})
        template.title = title
    if "content_type" in data:
        template.content_type = _validate_content_type(data.get("content_type"))
    if "context" in data:
        template.context = _clean(data.get("context"))
    if "mentioned_contact_ids" in data:
        template.mentioned_contacts = _resolve_contacts(data.get("mentioned_contact_ids"))
    commit_or_rollback()
    return template


def delete_template(template_id: int) -> None:
    template = get_or_raise(MailTemplate, template_id)
    for generation in db.session.execute(
        select(MailGeneration).where(MailGeneration.template_id == template.id)
    ).scalars():
        generation.template_id = None
    db.session.delete(template)
    commit_or_rollback()


# ── Offers ────────────────────────────────────────────────────────────────────


def list_offers() -> list[Offer]:
    return list(db.session.execute(select(Offer).order_by(Offer.title)).scalars())


def create_offer(data: dict) -> Offer:
    title = _clean(data.get("title"))
    if not title:
        raise ValidationError("Le titre de l'offre est requis.", details={"title": "required"})
    offer = Offer(title=title, description=_clean(data.get("description")))
    db.session.add(offer)
    commit_or_rollback()
    return offer


def update_offer(offer_id: int, data: dict) -> Offer:
    offer = get_or_raise(Offer, offer_id)
    if "title" in data:
        title = _clean(data.get("title"))
        if not title:
            raise ValidationError("Le titre de l'offre est requis.", details={"title": "required"})
        offer.title = title
    if "description" in data:
        offer.description = _clean(data.get("description"))
    commit_or_rollback()
    return offer


def delete_offer(offer_id: int) -> None:
    db.session.delete(get_or_raise(Offer, offer_id))
    commit_or_rollback()


# ── Generation history ────────────────────────────────────────────────────────


def render_prompt_summary(contact_name, template_title, context) -> str:
    """Audit summary stored alongside a saved generation."""
    return f"Contact: {contact_name}\nTemplate: {template_title}\nContexte: {context or ''}"


def save_generation(
    *,
    result: str,
    template_id: int | None = None,
    contact_id: int | None = None,
    content_type: str | None = None,
    contact_name: str | None = None,
    template_title: str | None = None,
    context: str | None = None,
    member_id: int | None = None,
) -> MailGeneration:
    """Persist one generation. No duplicate guard: saving twice stores twice."""
    if not isinstance(result, str) or not result.strip():
        raise ValidationError("Le texte généré est vide.", details={"result": "required"})

    contact = db.session.get(Contact, contact_id) if contact_id else None
    template = db.session.get(MailTemplate, template_id) if template_id else None
    if contact_name is None and contact is not None:
        contact_name = contact.full_name
    if template_title is None and template is not None:
        template_title = template.title

    generation = MailGeneration(
        generated_by=member_id,
        template_id=template.id if template else None,
        contact_id=contact.id if contact else None,
        content_type=ContentType.parse(content_type).value if content_type else None,
        prompt_final=render_prompt_summary(contact_name, template_title, context),
        result=result,
    )
    db.session.add(generation)
    commit_or_rollback()
    logger.info("Generation saved: %s", generation.id, extra={"member_id": member_id})
    return generation


def list_generations(*, member_id: int | None = None, limit: int = 100) -> list[MailGeneration]:
    """History, newest first."""
    stmt = select(MailGeneration).order_by(MailGeneration.created_at.desc(), MailGeneration.id.desc())
    if member_id is not None:
        stmt = stmt.where(MailGeneration.generated_by == member_id)
    return list(db.session.execute(stmt.limit(limit)).scalars().unique())


def template_from_generation(generation_id: int, *, title: str | None = None,
                             member_id: int | None = None) -> MailTemplate:
    """Turn a saved generation into a new template whose instructions are its text."""
    generation = get_or_raise(MailGeneration, generation_id)
    if not title or not title.strip():
        base = generation.template.title if generation.template else "Génération"
        title = f"{base} (copie #{generation.id})"
    return create_template(
        {
            "title": title,
            "content_type": generation.content_type,
            "context": f"Reprends le style de ce texte :\n{generation.result}",
        },
        member_id=member_id,
    )
