"""Narrative LLM client: JSON-contract calls with guardrails and error classification."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from diahelper.core.llm.provider import LLMProvider, ProviderResponse
from diahelper.core.llm.response import (
    LLMResponseError,
    check_guardrails,
    enforce_disclaimers,
    parse_json_payload,
    sanitize_content,
)
from diahelper.core.llm.system_prompt import build_full_system_prompt

logger = logging.getLogger(__name__)


class LLMCallError(RuntimeError):
    """A classified failure of the narrative LLM call.

    ``kind`` is one of ``rate_limited``, ``service_busy``,
    ``invalid_response`` or ``provider_error``.
    """

    def __init__(self, message: str, *, kind: str, retryable: bool = False) -> None:
        super().__init__(message)
        self.kind = kind
        self.retryable = retryable


@dataclass
class LLMResponse:
    """Validated narrative text plus call metadata."""

    content: str
    guardrail_flags: list[str] = field(default_factory=list)
    usage: dict[str, int] = field(default_factory=dict)
    model: str = ""


def classify_provider_error(exc: Exception) -> LLMCallError:
    """Map an SDK exception onto an ``LLMCallError``.

    Both SDKs expose ``status_code`` on their HTTP errors; overload
    conditions are also recognised from the message text.
    """
    status = getattr(exc, "status_code", None)
    message = str(exc)
    if status == 429:
        return LLMCallError(
            "The AI service is rate limited. Please try again shortly.",
            kind="rate_limited",
            retryable=True,
        )
    if status in (503, 529) or "overloaded" in message.lower():
        return LLMCallError(
            "The AI service is currently busy. Please try again in a moment.",
            kind="service_busy",
            retryable=True,
        )
    return LLMCallError(
        f"The AI service failed: {type(exc).__name__}",
        kind="provider_error",
    )


class NarrativeLLMClient:
    """Calls the configured provider and enforces the JSON output contract."""

    def __init__(
        self,
        provider: LLMProvider,
        provider_name: str = "",
        max_tokens: int = 1024,
        temperature: float = 0.4,
    ) -> None:
        self.provider = provider
        self._provider_name = provider_name
        self.max_tokens = max_tokens
        self.temperature = temperature

    @property
    def provider_name(self) -> str:
        return self._provider_name

    async def invoke_json(
        self,
        system_message: str,
        user_message: str,
        *,
        content_key: str = "report",
        disclaimers: list[str] | None = None,
    ) -> LLMResponse:
        """Generate narrative text that must arrive as ``{content_key: str}``.

        Raises:
            LLMCallError: The provider failed or returned an unusable payload.
        """
        full_system = build_full_system_prompt(system_message)

        try:
            provider_response: ProviderResponse = await self.provider.generate(
                system_message=full_system,
                user_message=user_message,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                json_mode=True,
            )
        except Exception as exc:
            classified = classify_provider_error(exc)
            logger.error("Narrative LLM call failed: kind=%s (%s)", classified.kind, type(exc).__name__)
            raise classified from exc

        logger.info(
            "Narrative LLM call: provider=%s, model=%s, tokens=%d+%d, latency=%.0fms",
            self._provider_name or "unknown",
            provider_response.model,
            provider_response.input_tokens,
            provider_response.output_tokens,
            provider_response.latency_ms,
        )

        try:
            payload = parse_json_payload(provider_response.content, required_keys=(content_key,))
        except LLMResponseError as exc:
            raise LLMCallError(str(exc), kind="invalid_response") from exc

        guardrail_check = check_guardrails(payload[content_key])
        content = sanitize_content(payload[content_key], guardrail_check)
        content, disclaimer_flags = enforce_disclaimers(content, disclaimers or [])

        return LLMResponse(
            content=content.strip(),
            guardrail_flags=guardrail_check.flags + disclaimer_flags,
            usage={
                "input_tokens": provider_response.input_tokens,
                "output_tokens": provider_response.output_tokens,
            },
            model=provider_response.model,
        )
