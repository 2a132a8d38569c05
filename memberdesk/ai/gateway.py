"""
MemberDesk
LLM Gateway — single entry point to the Completion Service.

    - Anthropic Messages API through the official SDK
    - Local stub provider for development without an API key
      (only when LLM_ALLOW_STUB is enabled)
    - Token / cost / latency tracking persisted to ai_usage_logs
    - Exactly one call per request: no retries, no fallback chain

Usage:
    from memberdesk.ai.gateway import LLMGateway
    gw = LLMGateway(app=flask_app)
    result = gw.chat(
        [{"role": "user", "content": "..."}],
        system=SYSTEM_PROMPT,
        purpose="generate:mail_client",
    )
    result["content"]
"""

import logging
import time
from abc import ABC, abstractmethod

from memberdesk.core.exceptions import GenerationError
from memberdesk.models import db
from memberdesk.models.ai import AIUsageLog, calculate_cost

logger = logging.getLogger(__name__)

API_KEY_MISSING_MESSAGE = "Clé API Anthropic non configurée."
UPSTREAM_FALLBACK_MESSAGE = "Erreur API Anthropic."
TRANSPORT_FALLBACK_MESSAGE = "Erreur lors de la génération du mail."

DEFAULT_MODEL = "claude-3-5-sonnet-20241022"
DEFAULT_MAX_TOKENS = 1500


# ── Provider Abstract Base ────────────────────────────────────────────────────

class LLMProvider(ABC):
    """Abstract interface for LLM providers."""

    @abstractmethod
    def chat(self, messages: list, model: str, *, system: str | None = None,
             max_tokens: int = DEFAULT_MAX_TOKENS) -> dict:
        """
        Send one chat completion request.

        Args:
            messages: List of {"role": "user"|"assistant", "content": "..."} dicts.
            model: Model identifier string.
            system: Optional system instruction (sent out of band).
            max_tokens: Upper bound on the generated length.

        Returns:
            dict with keys: content, prompt_tokens, completion_tokens, model

        Raises:
            GenerationError: upstream non-2xx or transport failure.
        """
        ...


# ── Anthropic Provider ────────────────────────────────────────────────────────

def _upstream_message(exc) -> str:
    """Extract ``error.message`` from an Anthropic error body, if any."""
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
    return UPSTREAM_FALLBACK_MESSAGE


def _first_text(content) -> str:
    """Text of the first content block; empty string when absent."""
    for block in content or []:
        text = getattr(block, "text", None)
        if text is None and isinstance(block, dict):
            text = block.get("text")
        if isinstance(text, str):
            return text
    return ""


class AnthropicProvider(LLMProvider):
    """Claude API (Anthropic) provider."""

    def __init__(self, api_key: str, timeout: float | None = None):
        self.api_key = api_key
        self.timeout = timeout
        self._client = None

    def _get_client(self):
        if self._client is None:
            import anthropic
            kwargs = {"api_key": self.api_key}
            if self.timeout is not None:
                kwargs["timeout"] = self.timeout
            self._client = anthropic.Anthropic(**kwargs)
        return self._client

    def chat(self, messages, model=DEFAULT_MODEL, *, system=None, max_tokens=DEFAULT_MAX_TOKENS):
        import anthropic

        client = self._get_client()
        params = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": messages,
        }
        if system:
            params["system"] = system

        try:
            response = client.messages.create(**params)
        except anthropic.APIStatusError as exc:
            raise GenerationError(_upstream_message(exc), upstream_status=exc.status_code) from exc
        except anthropic.APIError as exc:
            # Connection errors and timeouts carry no usable upstream message
            raise GenerationError(TRANSPORT_FALLBACK_MESSAGE) from exc

        usage = getattr(response, "usage", None)
        return {
            "content": _first_text(getattr(response, "content", None)),
            "prompt_tokens": getattr(usage, "input_tokens", 0) or 0,
            "completion_tokens": getattr(usage, "output_tokens", 0) or 0,
            "model": getattr(response, "model", None) or model,
        }


# ── Local Stub Provider (for dev without API keys) ───────────────────────────

class LocalStubProvider(LLMProvider):
    """
    Deterministic provider for local development. No API key required.

    Returns a short French draft derived from the last user message so the
    dashboard flow (generate → refine → save) can be exercised offline.
    """

    def chat(self, messages, model="local-stub", *, system=None, max_tokens=DEFAULT_MAX_TOKENS):
        user_msg = ""
        for m in reversed(messages):
            if m["role"] == "user":
                user_msg = m["content"]
                break

        content = self._generate_stub_response(user_msg, turn=len(messages))
        return {
            "content": content,
            "prompt_tokens": len(user_msg.split()) * 2,  # rough estimate
            "completion_tokens": len(content.split()) * 2,
            "model": "local-stub",
        }

    @staticmethod
    def _generate_stub_response(user_msg: str, turn: int) -> str:
        lower = user_msg.lower()
        if "linkedin" in lower and "post" in lower:
            return ("Une mission, une équipe, un résultat.\n\n"
                    "Brouillon local généré sans appel à l'API.\n\n"
                    "Et vous, quel est votre prochain projet ?")
        if turn > 1:
            return f"Objet : Version révisée\n\nBonjour,\n\n{user_msg.strip()[:200]}\n\nCapisen"
        return "Objet : Brouillon local\n\nBonjour,\n\nBrouillon local généré sans appel à l'API.\n\nCapisen"


# ── Gateway ───────────────────────────────────────────────────────────────────

class LLMGateway:
    """
    Central gateway for all LLM calls.

    Providers are built from the app config (ANTHROPIC_API_KEY,
    LLM_ALLOW_STUB) or injected directly:

        gw = LLMGateway(providers={"anthropic": FakeProvider()})
    """

    # Model prefix → provider name
    PROVIDER_PREFIXES = (
        ("claude-", "anthropic"),
        ("local-", "local"),
    )

    def __init__(self, app=None, providers: dict | None = None):
        config = app.config if app is not None else {}
        self.default_model = config.get("LLM_MODEL") or DEFAULT_MODEL
        self.max_tokens = config.get("LLM_MAX_TOKENS") or DEFAULT_MAX_TOKENS
        if providers is not None:
            self._providers = dict(providers)
        else:
            self._providers = {}
            self._init_providers(config)

    def _init_providers(self, config):
        """Register providers based on configuration."""
        api_key = config.get("ANTHROPIC_API_KEY")
        if api_key:
            self._providers["anthropic"] = AnthropicProvider(api_key, timeout=config.get("LLM_TIMEOUT"))
        if config.get("LLM_ALLOW_STUB"):
            self._providers["local"] = LocalStubProvider()

    @property
    def available_providers(self) -> set[str]:
        return set(self._providers)

    def _provider_name_for(self, model: str) -> str:
        for prefix, name in self.PROVIDER_PREFIXES:
            if model.startswith(prefix):
                return name
        return "anthropic"

    def _get_provider(self, model: str) -> tuple[LLMProvider, str]:
        """
        Resolve model to provider. Falls back to the local stub only when it
        was explicitly enabled; otherwise a missing key is a configuration
        error surfaced to the member.
        """
        provider_name = self._provider_name_for(model)
        if provider_name in self._providers:
            return self._providers[provider_name], provider_name

        if "local" in self._providers:
            logger.warning(
                "Provider '%s' not available (no API key?). Using local stub for model '%s'.",
                provider_name, model,
            )
            return self._providers["local"], "local"

        raise GenerationError(API_KEY_MISSING_MESSAGE)

    def chat(
        self,
        messages: list,
        *,
        system: str | None = None,
        model: str | None = None,
        purpose: str = "",
        member_id: int | None = None,
        max_tokens: int | None = None,
    ) -> dict:
        """
        Send one chat completion request.

        Returns:
            dict: {content, prompt_tokens, completion_tokens, model, cost_usd,
                   latency_ms, provider}

        Raises:
            GenerationError: missing key, upstream error or transport failure.
        """
        model = model or self.default_model
        max_tokens = max_tokens or self.max_tokens
        provider, provider_name = self._get_provider(model)

        start_time = time.time()
        try:
            result = provider.chat(messages, model, system=system, max_tokens=max_tokens)
        except GenerationError as exc:
            latency_ms = int((time.time() - start_time) * 1000)
            logger.warning("LLM call failed (%s/%s): %s", provider_name, model, exc.message,
                           extra={"provider": provider_name, "model": model, "latency_ms": latency_ms})
            self._log_usage(provider=provider_name, model=model, prompt_tokens=0,
                            completion_tokens=0, cost_usd=0.0, latency_ms=latency_ms,
                            member_id=member_id, purpose=purpose, success=False,
                            error_message=exc.message)
            raise
        except Exception as exc:
            latency_ms = int((time.time() - start_time) * 1000)
            logger.exception("Unexpected LLM provider failure (%s/%s)", provider_name, model)
            self._log_usage(provider=provider_name, model=model, prompt_tokens=0,
                            completion_tokens=0, cost_usd=0.0, latency_ms=latency_ms,
                            member_id=member_id, purpose=purpose, success=False,
                            error_message=str(exc))
            raise GenerationError(TRANSPORT_FALLBACK_MESSAGE) from exc

        latency_ms = int((time.time() - start_time) * 1000)
        content = result.get("content")
        result["content"] = content if isinstance(content, str) else ""
        result.setdefault("prompt_tokens", 0)
        result.setdefault("completion_tokens", 0)
        result.setdefault("model", model)
        cost = calculate_cost(model, result["prompt_tokens"], result["completion_tokens"])
        result["cost_usd"] = cost
        result["latency_ms"] = latency_ms
        result["provider"] = provider_name

        logger.info(
            "LLM call ok: %s/%s %d+%d tokens (%dms)",
            provider_name, model, result["prompt_tokens"], result["completion_tokens"], latency_ms,
            extra={"provider": provider_name, "model": model, "latency_ms": latency_ms,
                   "prompt_tokens": result["prompt_tokens"],
                   "completion_tokens": result["completion_tokens"]},
        )
        self._log_usage(provider=provider_name, model=model,
                        prompt_tokens=result["prompt_tokens"],
                        completion_tokens=result["completion_tokens"],
                        cost_usd=cost, latency_ms=latency_ms,
                        member_id=member_id, purpose=purpose, success=True)
        return result

    # ── Internal Logging ──────────────────────────────────────────────────

    @staticmethod
    def _log_usage(*, provider, model, prompt_tokens, completion_tokens,
                   cost_usd, latency_ms, member_id, purpose,
                   success, error_message=None):
        """Add a usage row and flush; the caller owns the commit."""
        try:
            log = AIUsageLog(
                provider=provider, model=model,
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
                cost_usd=cost_usd, latency_ms=latency_ms,
                member_id=member_id, purpose=purpose,
                success=success, error_message=error_message,
            )
            db.session.add(log)
            db.session.flush()
        except Exception as e:
            logger.error("Failed to log AI usage: %s", e)
            db.session.rollback()


def get_gateway(app=None) -> LLMGateway:
    """Lazily build the app-wide gateway (tests replace it in app.extensions)."""
    from flask import current_app

    app = app or current_app
    gateway = app.extensions.get("llm_gateway")
    if gateway is None:
        gateway = LLMGateway(app=app)
        app.extensions["llm_gateway"] = gateway
    return gateway
