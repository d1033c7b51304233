"""DiaHelper Risk MCP Server: application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging

from fastmcp import FastMCP

from diahelper.core.audit.logger import AuditLogger
from diahelper.core.config.settings import get_settings
from diahelper.core.llm.client import NarrativeLLMClient
from diahelper.core.llm.provider import LLMProvider, create_provider
from diahelper.core.storage.database import DatabaseError, PredictionDatabase
from diahelper.core.storage.encryption import EncryptionError, FieldEncryptor
from diahelper.core.storage.repository import PredictionRepository
from diahelper.domains.diabetes.domain_logic.report_narrator import ReportNarrator
from diahelper.domains.diabetes.domain_logic.risk_models import MODEL_VERSION
from diahelper.domains.diabetes.prompts.risk_prompts import register_risk_prompts
from diahelper.domains.diabetes.tools.risk_assessment_tools import (
    register_risk_assessment_tools,
)

logger = logging.getLogger(__name__)

SERVER_NAME = "DiaHelper Risk"
SERVER_VERSION = "0.1.0"


def create_app(
    *,
    provider_override: LLMProvider | None = None,
    repository_override: PredictionRepository | None = None,
    audit_logger_override: AuditLogger | None = None,
) -> FastMCP:
    """Create and configure the DiaHelper risk MCP server.

    1. Creates the FastMCP server instance
    2. Creates the narrative LLM client
    3. Initializes the encrypted prediction store and audit log (if a key is set)
    4. Registers all tools and prompts
    """
    settings = get_settings()

    server = FastMCP(
        SERVER_NAME,
        instructions=(
            "DiaHelper diabetes risk server. Scores diabetes risk from health "
            "metrics with a deterministic, explainable model, writes plain-language "
            "reports, analyzes CSV cohorts and tracks risk over time. Results are "
            "educational estimates, not diagnoses."
        ),
    )

    # --- Narrative LLM ---
    if provider_override is not None:
        provider = provider_override
        provider_name = type(provider_override).__name__.removesuffix("Provider").lower()
    else:
        if settings.llm_provider == "mock":
            provider_name, api_key, model = "mock", "", ""
        elif settings.llm_provider == "anthropic":
            api_key = settings.anthropic_api_key
            model = settings.anthropic_model
            provider_name = "anthropic" if api_key else "mock"
        elif settings.llm_provider == "openai":
            api_key = settings.openai_api_key
            model = settings.openai_model
            provider_name = "openai" if api_key else "mock"
        else:  # pragma: no cover
            raise ValueError(f"Unknown LLM provider: {settings.llm_provider!r}")

        if provider_name == "mock" and settings.llm_provider != "mock":
            logger.warning(
                "No API key configured for provider '%s'; falling back to mock provider",
                settings.llm_provider,
            )
        provider = create_provider(provider_name=provider_name, api_key=api_key, model=model)

    llm_client = NarrativeLLMClient(
        provider=provider,
        provider_name=provider_name,
        max_tokens=settings.llm_max_tokens,
        temperature=settings.llm_temperature,
    )
    narrator = ReportNarrator(llm_client)

    # --- Encrypted prediction store ---
    repository: PredictionRepository | None = repository_override
    audit_logger: AuditLogger | None = audit_logger_override
    if repository is None and settings.encryption_key:
        try:
            encryptor = FieldEncryptor(settings.encryption_key)
            database = PredictionDatabase(settings.db_path)
            database.initialize()
            repository = PredictionRepository(database, encryptor)
            if audit_logger is None:
                audit_logger = AuditLogger(database)
            logger.info(
                "Prediction store initialized: %s (schema v%d)",
                settings.db_path,
                database.get_schema_version(),
            )
        except (EncryptionError, DatabaseError) as exc:
            logger.error("Failed to initialize storage: %s", exc)
            logger.warning("Continuing without persistence; predictions will not be stored")
    elif repository is None:
        logger.info(
            "No ENCRYPTION_KEY configured; running without persistence. "
            "Set ENCRYPTION_KEY to keep prediction history."
        )

    # --- Tools ---
    @server.tool
    async def health_check() -> dict:
        """Check server health and return basic status information."""
        status = {
            "status": "ok",
            "server": SERVER_NAME,
            "version": SERVER_VERSION,
            "model_version": MODEL_VERSION,
            "llm_provider": llm_client.provider_name,
            "storage_enabled": repository is not None,
            "audit_enabled": audit_logger is not None,
        }
        if repository is not None:
            status["predictions_stored"] = repository.count_predictions()
        return status

    register_risk_assessment_tools(server, settings, narrator, repository, audit_logger)
    logger.info("Risk assessment tools registered")

    if repository is not None:
        from diahelper.domains.diabetes.domain_logic.trend_analyzer import RiskTrendAnalyzer
        from diahelper.domains.diabetes.tools.data_management_tools import (
            register_data_management_tools,
        )
        from diahelper.domains.diabetes.tools.history_tools import register_history_tools

        register_history_tools(
            server, settings, repository, RiskTrendAnalyzer(repository), audit_logger
        )
        register_data_management_tools(server, settings, repository, audit_logger)
        logger.info("History and data management tools registered")

    # --- Prompts ---
    register_risk_prompts(server)

    return server


# Module-level instance for FastMCP discovery.
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
