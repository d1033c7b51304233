"""MCP tools for reviewing stored risk assessments over time."""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from diahelper.core.audit.logger import AuditLogger
    from diahelper.core.config.settings import Settings
    from diahelper.core.storage.repository import PredictionRepository
    from diahelper.domains.diabetes.domain_logic.trend_analyzer import RiskTrendAnalyzer

logger = logging.getLogger(__name__)


def register_history_tools(
    mcp: FastMCP,
    settings: Settings,
    repository: PredictionRepository,
    trend_analyzer: RiskTrendAnalyzer,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register prediction history tools on the MCP server."""

    @mcp.tool
    async def get_prediction_history(
        ctx: Context,
        days: int = 0,
        limit: int = 20,
        include_report: bool = False,
        user_id: str = "",
    ) -> str:
        """List stored risk assessments, newest first.

        Args:
            days: Only include assessments from the last N days (0 = all).
            limit: Maximum number of assessments (1-100, default 20).
            include_report: Include the decrypted narrative report and name.
            user_id: Whose history to list (defaults to the local user).
        """
        start_time = time.monotonic()
        owner = user_id or settings.default_user_id
        limit = max(1, min(limit, 100))
        since = (
            (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()
            if days > 0
            else None
        )

        records = repository.get_prediction_history(owner, since=since, limit=limit)
        predictions = []
        for record in records:
            item = record.as_dict(include_sensitive=include_report)
            item.pop("shap_values")
            item.pop("form_data", None)
            predictions.append(item)

        if audit_logger is not None:
            audit_logger.log_tool_call(
                tool_name="get_prediction_history",
                tool_input={"days": days, "limit": limit, "include_report": include_report},
                duration_ms=round((time.monotonic() - start_time) * 1000, 1),
                metadata={"records_returned": len(predictions)},
            )

        return json.dumps({
            "status": "ok",
            "count": len(predictions),
            "predictions": predictions,
        })

    @mcp.tool
    async def risk_trend_analysis(
        ctx: Context,
        limit: int = 90,
        user_id: str = "",
    ) -> str:
        """Analyze how your diabetes risk score has changed across stored assessments.

        Requires at least 2 stored assessments. Reports the direction
        (improving, stable, worsening), summary statistics and which factors
        keep recurring.

        Args:
            limit: Number of most recent assessments to analyze (default 90).
            user_id: Whose history to analyze (defaults to the local user).
        """
        start_time = time.monotonic()
        owner = user_id or settings.default_user_id
        summary = trend_analyzer.get_history_summary(owner, limit=limit)

        if audit_logger is not None:
            audit_logger.log_tool_call(
                tool_name="risk_trend_analysis",
                tool_input={"limit": limit},
                duration_ms=round((time.monotonic() - start_time) * 1000, 1),
            )

        if summary["total_predictions"] < 2:
            return json.dumps({
                "status": "insufficient_data",
                "predictions_available": summary["total_predictions"],
                "message": (
                    "At least 2 stored assessments are needed for trend analysis. "
                    "Run assess_diabetes_risk to create more."
                ),
            })

        return json.dumps({"status": "ok", **summary})
