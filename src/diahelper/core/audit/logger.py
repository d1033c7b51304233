"""PHI-free audit record of tool calls, deletions and LLM disclosure.

Every assessment, dataset analysis and deletion leaves one row in the
``audit_log`` table of the prediction database. Rows never hold health data:

* ``tool_input_hash``: SHA-256 of canonical JSON, never the raw metrics.
* ``llm_disclosed``: whether any assessment data was sent to an external LLM.
* ``privacy_mode``: which prompt filter was active for that call.
* ``prediction_id``: the stored prediction the call created or removed.
"""

from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from diahelper.core.storage.database import PredictionDatabase

logger = logging.getLogger(__name__)

ACTION_TOOL_INVOCATION = "tool_invocation"
ACTION_DATA_DELETE = "data_delete"

_AUDIT_COLUMNS = (
    "id", "timestamp", "action", "tool_name", "tool_input_hash",
    "privacy_mode", "llm_provider", "llm_disclosed", "prediction_id",
    "duration_ms", "status", "error_type", "metadata_json",
)

_INSERT_SQL = (
    f"INSERT INTO audit_log ({', '.join(_AUDIT_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in _AUDIT_COLUMNS)})"
)

# Columns shown by the audit summary; the input hash and metadata stay internal.
_SUMMARY_FIELDS = (
    "timestamp", "action", "tool_name", "privacy_mode", "llm_provider",
    "status", "error_type", "duration_ms",
)


def _hash_input(data: Any) -> str:
    """Fingerprint a tool input without keeping it.

    Args:
        data: Tool arguments. Key order does not affect the digest.

    Returns:
        Hex SHA-256 of the canonical JSON form, or ``""`` when ``data`` is
        not JSON-serializable.
    """
    try:
        canonical = json.dumps(data, sort_keys=True, separators=(",", ":"))
    except (TypeError, ValueError):
        return ""
    return hashlib.sha256(canonical.encode()).hexdigest()


@dataclass
class AuditEvent:
    """A single audit log entry."""

    action: str                          # ACTION_TOOL_INVOCATION | ACTION_DATA_DELETE
    tool_name: str = ""
    tool_input_hash: str = ""
    privacy_mode: str | None = None      # 'strict' | 'standard' | 'explicit'
    llm_provider: str | None = None      # 'anthropic' | 'openai' | 'mock'
    llm_disclosed: bool = False
    prediction_id: str | None = None
    duration_ms: float | None = None
    status: str = "success"              # 'success' | 'failure'
    error_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_row(self, event_id: str, timestamp: str) -> tuple[Any, ...]:
        """Column values in ``_AUDIT_COLUMNS`` order."""
        return (
            event_id,
            timestamp,
            self.action,
            self.tool_name or None,
            self.tool_input_hash or None,
            self.privacy_mode,
            self.llm_provider,
            int(self.llm_disclosed),
            self.prediction_id,
            self.duration_ms,
            self.status,
            self.error_type,
            json.dumps(self.metadata, separators=(",", ":")) if self.metadata else None,
        )


def _where(**filters: Any) -> tuple[str, list[Any]]:
    """Build a WHERE clause from the non-empty filters.

    ``since`` compares against the ISO timestamp; every other key is an
    equality match on the column of the same name.
    """
    conditions: list[str] = []
    params: list[Any] = []
    for column, value in filters.items():
        if value is None or value == "":
            continue
        if column == "since":
            conditions.append("timestamp >= ?")
        else:
            conditions.append(f"{column} = ?")
        params.append(value)
    clause = (" WHERE " + " AND ".join(conditions)) if conditions else ""
    return clause, params


class AuditLogger:
    """Writes ``AuditEvent`` rows to the ``audit_log`` table.

    Each write is committed immediately. A failed write is logged and
    swallowed so auditing never breaks the tool call it describes.

    Usage::

        audit = AuditLogger(db)
        audit.log_tool_call(
            tool_name="assess_diabetes_risk",
            tool_input={"privacy_mode": "strict"},
            llm_provider="anthropic",
            llm_disclosed=True,
        )
    """

    def __init__(self, database: PredictionDatabase) -> None:
        self._db = database

    # ---------------------------------------------------------------
    # Write
    # ---------------------------------------------------------------

    def log_event(self, event: AuditEvent) -> str:
        """Persist one audit event.

        Args:
            event: The populated ``AuditEvent``.

        Returns:
            The new event ID (UUID4 string), or ``""`` if the write failed.
        """
        event_id = str(uuid.uuid4())
        row = event.to_row(event_id, datetime.now(timezone.utc).isoformat())
        try:
            conn = self._db.connection
            conn.execute(_INSERT_SQL, row)
            conn.commit()
        except sqlite3.Error:
            logger.exception("Failed to write audit event, event lost")
            return ""
        return event_id

    def log_tool_call(
        self,
        tool_name: str,
        tool_input: Any = None,
        *,
        privacy_mode: str | None = None,
        llm_provider: str | None = None,
        llm_disclosed: bool = False,
        prediction_id: str | None = None,
        duration_ms: float | None = None,
        status: str = "success",
        error_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Record one MCP tool invocation.

        Args:
            tool_name: The MCP tool that ran.
            tool_input: Non-PHI arguments to fingerprint. Only the hash is kept.
            privacy_mode: Report privacy mode in effect, if a report was requested.
            llm_provider: Narrative provider configured for the call.
            llm_disclosed: True when assessment data went to an external LLM.
            prediction_id: Prediction stored by the call, if any.
            duration_ms: Wall-clock time of the call.
            status: ``'success'`` or ``'failure'``.
            error_type: Error category or exception class on failure.
            metadata: Extra non-PHI counters such as ``rows_scored``.

        Returns:
            The new event ID, or ``""`` if the write failed.
        """
        return self.log_event(AuditEvent(
            action=ACTION_TOOL_INVOCATION,
            tool_name=tool_name,
            tool_input_hash=_hash_input(tool_input) if tool_input else "",
            privacy_mode=privacy_mode,
            llm_provider=llm_provider,
            llm_disclosed=llm_disclosed,
            prediction_id=prediction_id,
            duration_ms=duration_ms,
            status=status,
            error_type=error_type,
            metadata=metadata or {},
        ))

    def log_data_delete(
        self,
        *,
        tool_name: str = "",
        prediction_id: str | None = None,
        count: int = 0,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Record a deletion of stored predictions.

        Args:
            tool_name: Tool that performed the delete.
            prediction_id: The single prediction removed, when only one was.
            count: Number of predictions removed.
            metadata: Extra non-PHI context such as the purge cutoff.

        Returns:
            The new event ID, or ``""`` if the write failed.
        """
        return self.log_event(AuditEvent(
            action=ACTION_DATA_DELETE,
            tool_name=tool_name,
            prediction_id=prediction_id,
            metadata={**(metadata or {}), "records_deleted": count},
        ))

    # ---------------------------------------------------------------
    # Read
    # ---------------------------------------------------------------

    def get_events(
        self,
        *,
        action: str | None = None,
        tool_name: str | None = None,
        since: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Audit rows matching every given filter, newest first.

        Args:
            action: ``ACTION_TOOL_INVOCATION`` or ``ACTION_DATA_DELETE``.
            tool_name: Exact tool name.
            since: ISO 8601 lower bound on the event timestamp.
            limit: Maximum number of rows.
        """
        clause, params = _where(action=action, tool_name=tool_name, since=since)
        rows = self._db.connection.execute(
            f"SELECT * FROM audit_log{clause} ORDER BY timestamp DESC LIMIT ?",
            [*params, limit],
        ).fetchall()
        return [dict(row) for row in rows]

    def _count(self, **filters: Any) -> int:
        clause, params = _where(**filters)
        return self._db.connection.execute(
            f"SELECT COUNT(*) FROM audit_log{clause}", params
        ).fetchone()[0]

    def count_events(self, *, since: str | None = None) -> int:
        return self._count(since=since)

    def count_disclosures(self, *, since: str | None = None) -> int:
        """How many calls sent assessment data to an external LLM."""
        return self._count(llm_disclosed=1, since=since)

    def summarize(self, *, since: str | None = None, limit: int = 20) -> dict[str, Any]:
        """Totals and recent events for display, without hashes or metadata.

        Args:
            since: ISO 8601 lower bound; ``None`` covers the whole log.
            limit: Maximum number of recent events listed.

        Returns:
            ``total_events``, ``llm_disclosures``, ``failed_calls`` and
            ``recent_events`` (newest first).
        """
        recent = [
            {
                **{name: event.get(name) for name in _SUMMARY_FIELDS},
                "llm_disclosed": bool(event.get("llm_disclosed")),
            }
            for event in self.get_events(since=since, limit=limit)
        ]
        return {
            "total_events": self.count_events(since=since),
            "llm_disclosures": self.count_disclosures(since=since),
            "failed_calls": self._count(status="failure", since=since),
            "recent_events": recent,
        }
