"""
Tests — Prompt composer.

Covers:
    - content-type parsing and fallback
    - sender / recipient / offers / context / mentioned blocks
    - block order and determinism
    - follow-up scenario (single recipient, no offers, empty context)
"""

import pytest

from memberdesk.ai.prompts import (
    GENERATION_INSTRUCTIONS,
    NO_CONTEXT_TEXT,
    NO_OFFER_TEXT,
    ContentType,
    GenerationRequest,
    OfferingInfo,
    RecipientInfo,
    SenderIdentity,
    TemplateInfo,
    build_initial_prompt,
    normalize_recipients,
)
from memberdesk.core.exceptions import ValidationError


def _request(**overrides):
    data = dict(
        template=TemplateInfo(title="Prise de contact"),
        recipients=[RecipientInfo(full_name="Jane Doe", company="Acme")],
        content_type=ContentType.MAIL_CLIENT,
    )
    data.update(overrides)
    return GenerationRequest(**data)


class TestContentType:
    def test_known_value(self):
        assert ContentType.parse("mail_relance") is ContentType.MAIL_RELANCE

    def test_unknown_and_missing_fall_back_to_client_mail(self):
        assert ContentType.parse("fax") is ContentType.MAIL_CLIENT
        assert ContentType.parse(None) is ContentType.MAIL_CLIENT

    def test_every_type_has_instructions(self):
        assert set(GENERATION_INSTRUCTIONS) == set(ContentType)


class TestFollowUpScenario:
    def test_follow_up_prompt(self):
        prompt = build_initial_prompt(_request(
            template=TemplateInfo(title="Follow-up"),
            content_type=ContentType.MAIL_RELANCE,
            offerings=[],
            context="",
        ))
        assert "**Contact destinataire :**\n- Nom : Jane Doe\n- Entreprise : Acme\n" in prompt
        assert "**Template : Follow-up**" in prompt
        assert NO_OFFER_TEXT in prompt
        assert NO_CONTEXT_TEXT in prompt
        assert prompt.endswith(GENERATION_INSTRUCTIONS[ContentType.MAIL_RELANCE])


class TestBlocks:
    def test_single_recipient_defaults_only_for_missing_values(self):
        prompt = build_initial_prompt(_request(
            recipients=[RecipientInfo(full_name="Jane Doe", company="", job_title=None)],
        ))
        assert "- Entreprise : \n" in prompt
        assert "- Poste : Non renseigné\n" in prompt
        assert "- Email : Non renseigné\n" in prompt

    def test_single_recipient_notes(self):
        prompt = build_initial_prompt(_request(
            recipients=[RecipientInfo(full_name="Jane Doe", notes="Rencontrée au salon")],
        ))
        assert "- Notes : Rencontrée au salon" in prompt

    def test_multiple_recipients(self):
        prompt = build_initial_prompt(_request(recipients=[
            RecipientInfo(full_name="Jane Doe", company="Acme", job_title="CTO"),
            RecipientInfo(full_name="John Roe"),
        ]))
        assert "**Contacts destinataires (2 personnes) :**" in prompt
        assert "- Jane Doe (CTO, Acme)\n" in prompt
        assert "- John Roe\n" in prompt
        assert "**Contact destinataire :**" not in prompt

    def test_post_has_no_recipient_block(self):
        prompt = build_initial_prompt(_request(content_type=ContentType.LINKEDIN_POST))
        assert "destinataire" not in prompt
        assert prompt.endswith(GENERATION_INSTRUCTIONS[ContentType.LINKEDIN_POST])

    def test_sender_labels_and_raw_fallback(self):
        prompt = build_initial_prompt(_request(
            sender=SenderIdentity(full_name="Léa Martin", role="responsable", pole="nouveau_pole"),
        ))
        assert prompt.startswith("**Expéditeur (toi) :**\n- Nom : Léa Martin\n")
        assert "- Rôle au sein de Capisen : Responsable\n" in prompt
        assert "- Pôle : nouveau_pole\n" in prompt

    def test_no_sender_block_without_sender(self):
        assert "Expéditeur" not in build_initial_prompt(_request())

    def test_offers_bullets(self):
        prompt = build_initial_prompt(_request(offerings=[
            OfferingInfo(title="Audit", description="Revue complète"),
            OfferingInfo(title="Site web"),
        ]))
        assert "- Audit : Revue complète\n- Site web" in prompt
        assert NO_OFFER_TEXT not in prompt

    def test_template_instructions(self):
        prompt = build_initial_prompt(_request(
            template=TemplateInfo(title="Relance", context="Ton très court"),
        ))
        assert "**Template : Relance**\nInstructions du template : Ton très court\n" in prompt

    def test_mentioned_block(self):
        prompt = build_initial_prompt(_request(mentioned=[
            RecipientInfo(full_name="Paul Durand", job_title="DG", company="Beta", email="p@beta.fr"),
        ]))
        assert "**Profils des personnes mentionnées :**" in prompt
        assert "- Paul Durand, Poste : DG, Entreprise : Beta, Email : p@beta.fr" in prompt

    def test_mentioned_block_omitted_when_empty(self):
        assert "mentionnées" not in build_initial_prompt(_request())

    def test_block_order(self):
        prompt = build_initial_prompt(_request(
            sender=SenderIdentity(full_name="Léa", role="normal", pole="etude"),
            offerings=[OfferingInfo(title="Audit")],
            context="Salon du 12 mars",
            mentioned=[RecipientInfo(full_name="Paul Durand")],
        ))
        markers = [
            "**Expéditeur",
            "**Contact destinataire",
            "**Template :",
            "**Offres / Prestations",
            "**Contexte supplémentaire",
            "Salon du 12 mars",
            "**Profils des personnes mentionnées",
            GENERATION_INSTRUCTIONS[ContentType.MAIL_CLIENT],
        ]
        positions = [prompt.index(m) for m in markers]
        assert positions == sorted(positions)

    def test_deterministic(self):
        req = _request(offerings=[OfferingInfo(title="Audit")], context="x")
        assert build_initial_prompt(req) == build_initial_prompt(req)


class TestPayload:
    def test_contacts_win_over_contact(self):
        recipients = normalize_recipients({"full_name": "A"}, [{"full_name": "B"}, {"full_name": "C"}])
        assert [r.full_name for r in recipients] == ["B", "C"]

    def test_single_contact(self):
        assert [r.full_name for r in normalize_recipients({"full_name": "A"}, [])] == ["A"]

    def test_no_recipient(self):
        assert normalize_recipients(None, None) == []

    @pytest.mark.parametrize("contact,contacts", [
        (None, ["Jane Doe"]),
        (None, [{"full_name": "B"}, 42]),
        (None, {"full_name": "B"}),
        ("Jane Doe", None),
    ])
    def test_recipients_must_be_objects(self, contact, contacts):
        with pytest.raises(ValidationError):
            normalize_recipients(contact, contacts)

    def test_from_payload(self):
        req = GenerationRequest.from_payload({
            "contact": {"full_name": "Jane Doe", "company": "Acme"},
            "contentType": "linkedin_message",
            "template": {"title": "Intro", "context": "court"},
            "offres": [{"title": "Audit", "description": None}],
            "context": "vu sur LinkedIn",
            "mentionedContacts": [{"full_name": "Paul"}],
            "sender": {"full_name": "Léa", "role": "normal", "pole": "etude"},
        })
        assert req.content_type is ContentType.LINKEDIN_MESSAGE
        assert req.template == TemplateInfo(title="Intro", context="court")
        assert req.recipients == [RecipientInfo(full_name="Jane Doe", company="Acme")]
        assert req.offerings == [OfferingInfo(title="Audit")]
        assert req.mentioned[0].full_name == "Paul"
        assert req.sender == SenderIdentity(full_name="Léa", role="normal", pole="etude")

    def test_from_payload_without_template(self):
        assert GenerationRequest.from_payload({"contact": {"full_name": "A"}}).template is None
