"""
Prompt composer for the mail / LinkedIn content generator.

``build_initial_prompt`` turns the generation form state into the first
``user`` message of a transcript. It is pure: same request, same text.
The persona and tone rules travel separately as the ``system`` field of
every Completion Service call (``SYSTEM_PROMPT``).

Block order of the composed prompt:
    sender → recipients → template (+ instructions) → offers → context
    → mentioned people → content-type instructions
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from memberdesk.core.exceptions import ValidationError
from memberdesk.models.member import POLE_LABELS, ROLE_LABELS

SYSTEM_PROMPT = """Tu es l'assistant de rédaction de Capisen, la Junior-Entreprise de l'ISEN Brest.

RÈGLES IMPÉRATIVES — à respecter absolument :
- Sois direct, concis et naturel. Zéro phrase de remplissage.
- INTERDIT d'utiliser ces formules ou leurs variantes : "J'espère que ce message vous trouve en bonne santé", "Je me permets de vous contacter", "N'hésitez pas à revenir vers moi", "Dans l'espoir d'une suite favorable", "Restant à votre disposition", "En espérant une réponse favorable", "Je me tiens à votre disposition", "N'hésitez pas à me contacter".
- Copie le style et la structure du template fourni — c'est ta référence principale pour le ton et la formulation.
- Chaque texte a un seul objectif clair. Va droit au but dès les premières lignes.
- Si on te demande de modifier un texte existant, fournis directement le texte corrigé et complet, sans explication ni commentaire autour."""

NO_OFFER_TEXT = "Aucune offre sélectionnée."
NO_CONTEXT_TEXT = "Aucun contexte supplémentaire."
INVALID_RECIPIENTS_MESSAGE = "Destinataires invalides."


class ContentType(str, Enum):
    MAIL_CLIENT = "mail_client"
    MAIL_PARTENARIAT = "mail_partenariat"
    MAIL_RELANCE = "mail_relance"
    LINKEDIN_MESSAGE = "linkedin_message"
    LINKEDIN_POST = "linkedin_post"

    @classmethod
    def parse(cls, value) -> "ContentType":
        """Missing or unknown values fall back to ``mail_client``."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.MAIL_CLIENT

    @property
    def is_post(self) -> bool:
        return self is ContentType.LINKEDIN_POST


GENERATION_INSTRUCTIONS: dict[ContentType, str] = {
    ContentType.MAIL_CLIENT: """Rédige le mail avec :
1. L'objet du mail (préfixé par "Objet : ")
2. Une ouverture directe — pas de formule vide
3. Le corps : clair, concis, un seul objectif par mail
4. Une clôture courte et une signature "Capisen\"""",

    ContentType.MAIL_PARTENARIAT: """Rédige le mail avec :
1. L'objet du mail (préfixé par "Objet : ")
2. Une ouverture directe sur la raison du contact
3. Le corps : ce qu'on propose, pourquoi ça a du sens, quelle suite on suggère
4. Une clôture courte et une signature "Capisen\"""",

    ContentType.MAIL_RELANCE: """Rédige le mail de relance avec :
1. L'objet du mail (préfixé par "Objet : ")
2. Une phrase de contexte rapide (rappel du mail précédent, sans s'excuser)
3. La relance directe : qu'est-ce qu'on attend comme suite ?
4. Une clôture courte et une signature "Capisen\"""",

    ContentType.LINKEDIN_MESSAGE: """Rédige le message LinkedIn avec :
- Pas d'objet, pas de formule d'ouverture pompeuse
- 3 à 5 phrases maximum, ton direct et humain
- Un appel à l'action clair en fin de message""",

    ContentType.LINKEDIN_POST: """Rédige le post LinkedIn avec :
- Une accroche forte en première ligne (pas de question banale type "Vous êtes-vous déjà demandé ?")
- Corps aéré avec retours à la ligne, 150 à 250 mots max
- Un appel à l'action ou une question ouverte en conclusion
- Pas de formule d'ouverture, pas de signature formelle""",
}

_missing = [ct.value for ct in ContentType if ct not in GENERATION_INSTRUCTIONS]
if _missing:
    raise RuntimeError(f"No generation instructions for content type(s): {', '.join(_missing)}")


# ── Request types ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RecipientInfo:
    full_name: str
    company: str | None = None
    job_title: str | None = None
    email: str | None = None
    notes: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "RecipientInfo":
        return cls(
            full_name=data.get("full_name") or "",
            company=data.get("company"),
            job_title=data.get("job_title"),
            email=data.get("email"),
            notes=data.get("notes"),
        )


@dataclass(frozen=True)
class TemplateInfo:
    title: str
    context: str | None = None


@dataclass(frozen=True)
class OfferingInfo:
    title: str
    description: str | None = None


@dataclass(frozen=True)
class SenderIdentity:
    full_name: str
    role: str
    pole: str

    @classmethod
    def from_member(cls, member) -> "SenderIdentity":
        return cls(full_name=member.full_name, role=member.role, pole=member.pole)


@dataclass
class GenerationRequest:
    template: TemplateInfo | None
    recipients: list[RecipientInfo] = field(default_factory=list)
    content_type: ContentType = ContentType.MAIL_CLIENT
    offerings: list[OfferingInfo] = field(default_factory=list)
    context: str = ""
    mentioned: list[RecipientInfo] = field(default_factory=list)
    sender: SenderIdentity | None = None

    @classmethod
    def from_payload(cls, body: dict) -> "GenerationRequest":
        """Build a request from the JSON body of the generation endpoint."""
        template = body.get("template")
        sender = body.get("sender")
        return cls(
            template=TemplateInfo(title=template.get("title") or "", context=template.get("context"))
            if isinstance(template, dict) else None,
            recipients=normalize_recipients(body.get("contact"), body.get("contacts")),
            content_type=ContentType.parse(body.get("contentType")),
            offerings=[
                OfferingInfo(title=o.get("title") or "", description=o.get("description"))
                for o in body.get("offres") or [] if isinstance(o, dict)
            ],
            context=body.get("context") or "",
            mentioned=[
                RecipientInfo.from_dict(c)
                for c in body.get("mentionedContacts") or [] if isinstance(c, dict)
            ],
            sender=SenderIdentity(
                full_name=sender.get("full_name") or "",
                role=sender.get("role") or "",
                pole=sender.get("pole") or "",
            ) if isinstance(sender, dict) else None,
        )


def normalize_recipients(contact, contacts) -> list[RecipientInfo]:
    """``contacts`` wins when non-empty, else ``[contact]``, else nothing.

    Raises:
        ValidationError: ``contacts`` is not a list, or a recipient is not an object.
    """
    if contacts:
        if not isinstance(contacts, list):
            raise ValidationError(INVALID_RECIPIENTS_MESSAGE, code="invalid_recipients")
        items = contacts
    elif contact:
        items = [contact]
    else:
        return []

    recipients = []
    for item in items:
        if isinstance(item, RecipientInfo):
            recipients.append(item)
        elif isinstance(item, dict):
            recipients.append(RecipientInfo.from_dict(item))
        else:
            raise ValidationError(INVALID_RECIPIENTS_MESSAGE, code="invalid_recipients")
    return recipients


# ── Blocks ────────────────────────────────────────────────────────────────────

def _or_default(value, default):
    # An empty string is kept as-is; only a missing value gets the default
    return default if value is None else value


def _sender_block(sender: SenderIdentity | None) -> str:
    if sender is None:
        return ""
    return (
        "**Expéditeur (toi) :**\n"
        f"- Nom : {sender.full_name}\n"
        f"- Rôle au sein de Capisen : {ROLE_LABELS.get(sender.role, sender.role)}\n"
        f"- Pôle : {POLE_LABELS.get(sender.pole, sender.pole)}\n"
        "Signe le texte avec ton prénom ou ton nom complet selon le niveau de formalité.\n\n"
    )


def _recipient_block(recipients: list[RecipientInfo], content_type: ContentType) -> str:
    if content_type.is_post or not recipients:
        return ""
    if len(recipients) == 1:
        c = recipients[0]
        notes = f"\n- Notes : {c.notes}" if c.notes else ""
        return (
            "**Contact destinataire :**\n"
            f"- Nom : {c.full_name}\n"
            f"- Entreprise : {_or_default(c.company, 'Non renseignée')}\n"
            f"- Poste : {_or_default(c.job_title, 'Non renseigné')}\n"
            f"- Email : {_or_default(c.email, 'Non renseigné')}{notes}\n\n"
        )

    lines = []
    for c in recipients:
        details = ", ".join(part for part in (c.job_title, c.company) if part)
        lines.append(f"- {c.full_name} ({details})" if details else f"- {c.full_name}")
    return (
        f"**Contacts destinataires ({len(recipients)} personnes) :**\n"
        + "\n".join(lines)
        + "\nAdresse le texte à tous les destinataires de façon appropriée.\n\n"
    )


def _offers_text(offerings: list[OfferingInfo]) -> str:
    if not offerings:
        return NO_OFFER_TEXT
    return "\n".join(
        f"- {o.title} : {o.description}" if o.description else f"- {o.title}"
        for o in offerings
    )


def _mentioned_block(mentioned: list[RecipientInfo]) -> str:
    if not mentioned:
        return ""
    lines = []
    for c in mentioned:
        parts = [f"- {c.full_name}"]
        if c.job_title:
            parts.append(f"Poste : {c.job_title}")
        if c.company:
            parts.append(f"Entreprise : {c.company}")
        if c.email:
            parts.append(f"Email : {c.email}")
        lines.append(", ".join(parts))
    return (
        "\n**Profils des personnes mentionnées :**\n"
        + "\n".join(lines)
        + "\n(Utilise ces informations si pertinentes.)"
    )


def build_initial_prompt(request: GenerationRequest) -> str:
    """Compose message #1 of a generation transcript."""
    template = request.template or TemplateInfo(title="")
    template_instructions = (
        f"Instructions du template : {template.context}\n" if template.context else ""
    )
    return (
        _sender_block(request.sender)
        + _recipient_block(request.recipients, request.content_type)
        + f"**Template : {template.title}**\n"
        + template_instructions
        + "\n**Offres / Prestations à mettre en avant :**\n"
        + _offers_text(request.offerings)
        + "\n\n**Contexte supplémentaire :**\n"
        + (request.context or NO_CONTEXT_TEXT)
        + "\n"
        + _mentioned_block(request.mentioned)
        + "\n"
        + GENERATION_INSTRUCTIONS[request.content_type]
    )
