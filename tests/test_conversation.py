"""
Tests — Conversation manager and LLM gateway.

Covers:
    - start_generation validation (no network call on invalid input)
    - refine: copy semantics, alternation, empty instruction
    - failures leave the caller's transcript untouched
    - gateway: provider routing, error wrapping, usage logging
"""

import pytest

from memberdesk.ai.conversation import (
    MISSING_INPUT_MESSAGE,
    MISSING_REFINEMENT_MESSAGE,
    ConversationManager,
    validate_transcript,
)
from memberdesk.ai.gateway import (
    API_KEY_MISSING_MESSAGE,
    TRANSPORT_FALLBACK_MESSAGE,
    LLMGateway,
    LocalStubProvider,
    get_gateway,
)
from memberdesk.ai.prompts import (
    SYSTEM_PROMPT,
    ContentType,
    GenerationRequest,
    RecipientInfo,
    TemplateInfo,
)
from memberdesk.core.exceptions import GenerationError, ValidationError
from memberdesk.models import db
from memberdesk.models.ai import AIUsageLog


def _roles(transcript):
    return [m["role"] for m in transcript]


@pytest.fixture()
def manager(app, fake_llm):
    return ConversationManager(get_gateway(app))


def _request(**overrides):
    data = dict(
        template=TemplateInfo(title="Prise de contact"),
        recipients=[RecipientInfo(full_name="Jane Doe")],
    )
    data.update(overrides)
    return GenerationRequest(**data)


class TestStartGeneration:
    def test_returns_text_and_two_message_transcript(self, manager, fake_llm):
        fake_llm.replies = ["Objet : Bonjour"]
        text, transcript = manager.start_generation(_request())
        assert text == "Objet : Bonjour"
        assert _roles(transcript) == ["user", "assistant"]
        assert transcript[1]["content"] == "Objet : Bonjour"
        call = fake_llm.calls[0]
        assert call["system"] == SYSTEM_PROMPT
        assert call["messages"] == [transcript[0]]
        assert call["max_tokens"] == 1500

    @pytest.mark.parametrize("content_type", [
        ContentType.MAIL_CLIENT, ContentType.MAIL_PARTENARIAT, ContentType.MAIL_RELANCE,
        ContentType.LINKEDIN_MESSAGE,
    ])
    def test_requires_recipient_except_for_posts(self, manager, fake_llm, content_type):
        with pytest.raises(ValidationError) as exc:
            manager.start_generation(_request(recipients=[], content_type=content_type))
        assert exc.value.message == MISSING_INPUT_MESSAGE
        assert fake_llm.calls == []

    def test_post_without_recipient(self, manager, fake_llm):
        _, transcript = manager.start_generation(
            _request(recipients=[], content_type=ContentType.LINKEDIN_POST)
        )
        assert len(transcript) == 2

    def test_requires_template(self, manager, fake_llm):
        with pytest.raises(ValidationError):
            manager.start_generation(_request(template=None))
        assert fake_llm.calls == []

    def test_upstream_failure(self, manager, fake_llm, upstream_error):
        fake_llm.error = upstream_error
        with pytest.raises(GenerationError) as exc:
            manager.start_generation(_request())
        assert exc.value.message == "Overloaded"

    def test_empty_completion_yields_empty_text(self, manager, fake_llm):
        fake_llm.replies = [""]
        text, transcript = manager.start_generation(_request())
        assert text == ""
        assert transcript[-1] == {"role": "assistant", "content": ""}


class TestRefine:
    def test_shorten_it(self, manager, fake_llm):
        transcript = [
            {"role": "user", "content": "Rédige un mail"},
            {"role": "assistant", "content": "Objet : long mail"},
        ]
        fake_llm.replies = ["Objet : court"]
        text, updated = manager.refine(transcript, "shorten it")
        assert text == "Objet : court"
        assert len(updated) == 4
        assert _roles(updated) == ["user", "assistant", "user", "assistant"]
        assert updated[2] == {"role": "user", "content": "shorten it"}
        # Full history sent, original untouched
        assert fake_llm.calls[0]["messages"] == updated[:3]
        assert len(transcript) == 2

    @pytest.mark.parametrize("instruction", ["", "   ", "\n\t", None])
    def test_empty_instruction_makes_no_call(self, manager, fake_llm, instruction):
        transcript = [{"role": "user", "content": "a"}, {"role": "assistant", "content": "b"}]
        with pytest.raises(ValidationError) as exc:
            manager.refine(transcript, instruction)
        assert exc.value.message == MISSING_REFINEMENT_MESSAGE
        assert fake_llm.calls == []

    def test_failure_leaves_transcript_untouched(self, manager, fake_llm, upstream_error):
        transcript = [{"role": "user", "content": "a"}, {"role": "assistant", "content": "b"}]
        snapshot = [dict(m) for m in transcript]
        fake_llm.error = upstream_error
        with pytest.raises(GenerationError):
            manager.refine(transcript, "plus court")
        assert transcript == snapshot

    def test_chained_refinements_alternate(self, manager, fake_llm):
        _, transcript = manager.start_generation(_request())
        for instruction in ("plus court", "plus formel", "ajoute une date"):
            _, transcript = manager.refine(transcript, instruction)
        assert _roles(transcript) == ["user", "assistant"] * 4

    def test_rejects_malformed_transcript(self, manager, fake_llm):
        with pytest.raises(ValidationError):
            manager.refine([{"role": "assistant", "content": "x"}], "plus court")
        assert fake_llm.calls == []


class TestValidateTranscript:
    def test_returns_copy(self):
        transcript = [{"role": "user", "content": "a"}, {"role": "assistant", "content": "b"}]
        copy = validate_transcript(transcript)
        assert copy == transcript and copy is not transcript

    @pytest.mark.parametrize("transcript", [
        [],
        "not a list",
        [{"role": "user", "content": "a"}],
        [{"role": "user", "content": "a"}, {"role": "user", "content": "b"}],
        [{"role": "user", "content": 3}, {"role": "assistant", "content": "b"}],
    ])
    def test_invalid(self, transcript):
        with pytest.raises(ValidationError):
            validate_transcript(transcript)


class TestPersist:
    def test_persist_creates_generation(self, manager, member):
        generation = manager.persist("Objet : Bonjour", {"content_type": "mail_client",
                                                         "contact_name": "Jane Doe",
                                                         "template_title": "Intro",
                                                         "context": ""},
                                     member_id=member.id)
        assert generation.id is not None
        assert generation.result == "Objet : Bonjour"
        assert generation.prompt_final == "Contact: Jane Doe\nTemplate: Intro\nContexte: "


class TestGateway:
    def test_usage_logged_on_success(self, app, fake_llm):
        gateway = get_gateway(app)
        result = gateway.chat([{"role": "user", "content": "hi"}], purpose="test")
        db.session.commit()
        assert result["content"] == "Réponse 1"
        assert result["provider"] == "anthropic"
        log = db.session.query(AIUsageLog).one()
        assert log.success is True
        assert log.total_tokens == 20
        assert log.purpose == "test"

    def test_usage_logged_on_failure(self, app, fake_llm, upstream_error):
        fake_llm.error = upstream_error
        with pytest.raises(GenerationError):
            get_gateway(app).chat([{"role": "user", "content": "hi"}])
        db.session.commit()
        log = db.session.query(AIUsageLog).one()
        assert log.success is False
        assert log.error_message == "Overloaded"

    def test_unexpected_exception_becomes_fallback(self, app, fake_llm):
        fake_llm.error = ConnectionError("reset by peer")
        with pytest.raises(GenerationError) as exc:
            get_gateway(app).chat([{"role": "user", "content": "hi"}])
        assert exc.value.message == TRANSPORT_FALLBACK_MESSAGE

    def test_missing_api_key(self, app):
        gateway = LLMGateway(app=app)  # testing config: no key, no stub
        with pytest.raises(GenerationError) as exc:
            gateway.chat([{"role": "user", "content": "hi"}])
        assert exc.value.message == API_KEY_MISSING_MESSAGE

    def test_stub_used_when_enabled(self, app):
        gateway = LLMGateway(app=app, providers={"local": LocalStubProvider()})
        result = gateway.chat([{"role": "user", "content": "hi"}])
        assert result["provider"] == "local"
        assert result["content"].startswith("Objet :")
