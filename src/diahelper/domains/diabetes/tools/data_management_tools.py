"""MCP tools for prediction data management (deletion, purge, audit review).

Every deletion is audit-logged. The audit trail itself holds no health data.
"""

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

logger = logging.getLogger(__name__)

DELETE_ALL_CONFIRMATION = "DELETE_ALL"


def register_data_management_tools(
    mcp: FastMCP,
    settings: Settings,
    repository: PredictionRepository,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register data management tools on the MCP server."""

    @mcp.tool
    async def delete_prediction(
        ctx: Context,
        prediction_id: str,
        user_id: str = "",
    ) -> str:
        """Permanently delete one stored risk assessment.

        Only an assessment owned by the user is deleted.

        Args:
            prediction_id: The UUID of the prediction to delete.
            user_id: Owner of the prediction (defaults to the local user).
        """
        start_time = time.monotonic()
        owner = user_id or settings.default_user_id
        deleted = repository.delete_prediction(prediction_id, user_id=owner)
        elapsed_ms = (time.monotonic() - start_time) * 1000

        if not deleted:
            return json.dumps({
                "status": "not_found",
                "prediction_id": prediction_id,
                "message": "No prediction found with that ID.",
            })

        if audit_logger is not None:
            audit_logger.log_data_delete(
                tool_name="delete_prediction",
                prediction_id=prediction_id,
                count=1,
            )
        return json.dumps({
            "status": "deleted",
            "prediction_id": prediction_id,
            "duration_ms": round(elapsed_ms, 1),
        })

    @mcp.tool
    async def purge_old_predictions(
        ctx: Context,
        older_than_days: int = 365,
        user_id: str = "",
    ) -> str:
        """Delete stored assessments older than a number of days.

        Args:
            older_than_days: Delete assessments older than this (default 365).
            user_id: Limit the purge to one user (default: all users).
        """
        if older_than_days < 1:
            return json.dumps({
                "status": "error",
                "message": "older_than_days must be at least 1.",
            })

        start_time = time.monotonic()
        count = repository.purge_before_days(older_than_days, user_id=user_id or None)
        elapsed_ms = (time.monotonic() - start_time) * 1000

        if audit_logger is not None and count > 0:
            audit_logger.log_data_delete(
                tool_name="purge_old_predictions",
                count=count,
                metadata={"older_than_days": older_than_days},
            )

        return json.dumps({
            "status": "purged",
            "predictions_deleted": count,
            "older_than_days": older_than_days,
            "duration_ms": round(elapsed_ms, 1),
        })

    @mcp.tool
    async def delete_all_predictions(
        ctx: Context,
        confirm: str = "",
        user_id: str = "",
    ) -> str:
        """Permanently delete ALL stored assessments for a user.

        This cannot be undone.

        Args:
            confirm: Must be exactly 'DELETE_ALL' to proceed.
            user_id: Whose assessments to delete (defaults to the local user).
        """
        if confirm != DELETE_ALL_CONFIRMATION:
            return json.dumps({
                "status": "cancelled",
                "message": (
                    "To delete all stored assessments, call this tool with "
                    "confirm='DELETE_ALL'. This action cannot be undone."
                ),
            })

        owner = user_id or settings.default_user_id
        start_time = time.monotonic()
        count = repository.delete_all_predictions(owner)
        elapsed_ms = (time.monotonic() - start_time) * 1000

        if audit_logger is not None:
            audit_logger.log_data_delete(
                tool_name="delete_all_predictions",
                count=count,
                metadata={"confirmed": True},
            )

        return json.dumps({
            "status": "all_deleted",
            "predictions_deleted": count,
            "duration_ms": round(elapsed_ms, 1),
            "message": "All stored assessments have been permanently deleted.",
        })

    if audit_logger is None:
        return

    @mcp.tool
    async def get_audit_log(
        ctx: Context,
        days: int = 30,
        limit: int = 20,
    ) -> str:
        """View recent tool usage, deletions and LLM disclosure counts.

        The audit trail records which tools ran, when, and whether assessment
        data was sent to an external LLM. It never stores health data.

        Args:
            days: Number of days to look back (default 30).
            limit: Maximum events to list (default 20).
        """
        since = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()
        summary = audit_logger.summarize(since=since, limit=max(1, min(limit, 200)))
        return json.dumps({"status": "ok", "period_days": days, **summary}, indent=2)
