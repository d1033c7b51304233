"""Narrative LLM provider implementations."""

from diahelper.core.llm.providers.anthropic import AnthropicProvider
from diahelper.core.llm.providers.mock import MockProvider
from diahelper.core.llm.providers.openai import OpenAIProvider

__all__ = ["AnthropicProvider", "MockProvider", "OpenAIProvider"]
