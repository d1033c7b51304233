"""Mock LLM provider for tests and key-less local runs."""

from __future__ import annotations

import json

from diahelper.core.llm.provider import ProviderResponse

DEFAULT_MOCK_REPORT = json.dumps({
    "report": (
        "Thank you for completing your health check. Your simulated risk score "
        "reflects the factors you entered. Small, steady changes to activity, diet "
        "and sleep can make a real difference. Please consult a healthcare "
        "professional for medical advice."
    )
})


class MockProvider:
    """Returns a canned response, or raises ``error`` if one is given."""

    def __init__(
        self,
        response_content: str = DEFAULT_MOCK_REPORT,
        error: Exception | None = None,
    ) -> None:
        self.response_content = response_content
        self.error = error
        self.last_system_message: str = ""
        self.last_user_message: str = ""
        self.last_json_mode: bool = False
        self.call_count: int = 0

    async def generate(
        self,
        system_message: str,
        user_message: str,
        max_tokens: int = 1024,
        temperature: float = 0.4,
        json_mode: bool = False,
    ) -> ProviderResponse:
        self.last_system_message = system_message
        self.last_user_message = user_message
        self.last_json_mode = json_mode
        self.call_count += 1
        if self.error is not None:
            raise self.error
        return ProviderResponse(
            content=self.response_content,
            input_tokens=len(system_message.split()) + len(user_message.split()),
            output_tokens=len(self.response_content.split()),
            model="mock",
            latency_ms=0.0,
        )
