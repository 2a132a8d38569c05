"""
MemberDesk
Conversation Manager — one generation session and its refinement turns.

The transcript is a plain list of ``{"role", "content"}`` dicts owned by
the caller (the dashboard keeps it between requests). It is append-only
and alternates ``user`` / ``assistant`` starting with ``user``:

    start_generation → [user#1, assistant#1]
    refine           → [..., user#n, assistant#n]

Every call works on a copy; a failed Completion call leaves the caller's
transcript exactly as it was. Nothing here retries.
"""

from __future__ import annotations

import logging

from memberdesk.ai.prompts import SYSTEM_PROMPT, GenerationRequest, build_initial_prompt
from memberdesk.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

MISSING_INPUT_MESSAGE = "Contact et template sont requis."
MISSING_REFINEMENT_MESSAGE = "Message de raffinement manquant."
INVALID_TRANSCRIPT_MESSAGE = "Historique de conversation invalide."

ROLES = ("user", "assistant")


def validate_transcript(transcript) -> list[dict]:
    """Check the alternation invariant and return a normalised copy.

    A transcript handed back for refinement must be non-empty, alternate
    roles starting with ``user`` and end with an ``assistant`` turn.
    """
    if not isinstance(transcript, list) or not transcript:
        raise ValidationError(INVALID_TRANSCRIPT_MESSAGE, code="invalid_transcript")

    copy = []
    for index, message in enumerate(transcript):
        if not isinstance(message, dict) or not isinstance(message.get("content"), str):
            raise ValidationError(INVALID_TRANSCRIPT_MESSAGE, code="invalid_transcript",
                                  details={"index": index})
        expected = ROLES[index % 2]
        if message.get("role") != expected:
            raise ValidationError(INVALID_TRANSCRIPT_MESSAGE, code="invalid_transcript",
                                  details={"index": index, "expected_role": expected})
        copy.append({"role": expected, "content": message["content"]})

    if copy[-1]["role"] != "assistant":
        raise ValidationError(INVALID_TRANSCRIPT_MESSAGE, code="invalid_transcript")
    return copy


class ConversationManager:
    """Owns the transcript lifecycle and mediates Completion Service calls."""

    def __init__(self, gateway, *, model: str | None = None):
        self.gateway = gateway
        self.model = model

    def start_generation(self, request: GenerationRequest, *, member_id: int | None = None
                         ) -> tuple[str, list[dict]]:
        """Compose message #1, send it, return ``(text, [user, assistant])``.

        Raises:
            ValidationError: no template, or no recipient for a non-post type.
            GenerationError: the Completion call failed.
        """
        if request.template is None or (not request.recipients and not request.content_type.is_post):
            raise ValidationError(MISSING_INPUT_MESSAGE, code="missing_input")

        messages = [{"role": "user", "content": build_initial_prompt(request)}]
        return self._complete(messages, purpose=f"generate:{request.content_type.value}",
                              member_id=member_id)

    def refine(self, transcript: list[dict], instruction: str, *, member_id: int | None = None
               ) -> tuple[str, list[dict]]:
        """Append ``instruction`` to a copy of ``transcript`` and resend it all.

        Raises:
            ValidationError: empty instruction or malformed transcript.
            GenerationError: the Completion call failed.
        """
        if not isinstance(instruction, str) or not instruction.strip():
            raise ValidationError(MISSING_REFINEMENT_MESSAGE, code="missing_refinement")

        messages = validate_transcript(transcript)
        messages.append({"role": "user", "content": instruction})
        return self._complete(messages, purpose="refine", member_id=member_id)

    def persist(self, result_text: str, metadata: dict, *, member_id: int | None):
        """Store the final text as a MailGeneration row."""
        from memberdesk.services import mailing_service

        return mailing_service.save_generation(
            result=result_text,
            template_id=metadata.get("template_id"),
            contact_id=metadata.get("contact_id"),
            content_type=metadata.get("content_type"),
            contact_name=metadata.get("contact_name"),
            template_title=metadata.get("template_title"),
            context=metadata.get("context"),
            member_id=member_id,
        )

    # ── Internal helpers ──────────────────────────────────────────────────

    def _complete(self, messages: list[dict], *, purpose: str, member_id: int | None
                  ) -> tuple[str, list[dict]]:
        result = self.gateway.chat(
            messages,
            system=SYSTEM_PROMPT,
            model=self.model,
            purpose=purpose,
            member_id=member_id,
        )
        text = result.get("content")
        if not isinstance(text, str):
            text = ""
        logger.debug("Completion appended to transcript (%d messages)", len(messages) + 1)
        return text, messages + [{"role": "assistant", "content": text}]
