"""Application settings loaded from environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """DiaHelper risk server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Server
    # Loopback by default: there is no auth layer in front of the tools.
    diahelper_host: str = "127.0.0.1"
    diahelper_port: int = 8001
    diahelper_log_level: str = "info"
    diahelper_allow_insecure_bind: bool = False

    # Narrative LLM
    llm_provider: Literal["anthropic", "openai", "mock"] = "anthropic"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    llm_max_tokens: int = 1024
    llm_temperature: float = 0.4

    # Storage (prediction history); persistence is off without a key
    db_path: str = "~/.diahelper/predictions.db"
    encryption_key: str = ""

    # Privacy
    default_privacy_mode: Literal["strict", "standard", "explicit"] = "strict"

    # Single-user local server: predictions are filed under this identity
    # unless a tool call names another one.
    default_user_id: str = "local-user"

    # Batch dataset limits
    batch_max_rows: int = 5000
    batch_max_bytes: int = 5 * 1024 * 1024


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
