"""CRUD for the encrypted prediction store.

Mediates between ``PredictionRecord`` objects and SQLite, encrypting the
sensitive columns with ``FieldEncryptor``.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from diahelper.core.storage.database import PredictionDatabase
from diahelper.core.storage.encryption import FieldEncryptor
from diahelper.core.storage.models import PredictionRecord

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Raised when repository operations fail."""


class PredictionRepository:
    """Append-only store of risk assessments, queried newest first.

    Usage::

        db = PredictionDatabase(":memory:")
        db.initialize()
        repo = PredictionRepository(db, FieldEncryptor(key))

        prediction_id = repo.save_prediction(record)
        history = repo.get_prediction_history("user-1")
    """

    def __init__(self, database: PredictionDatabase, encryptor: FieldEncryptor) -> None:
        self._db = database
        self._enc = encryptor

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def _now_iso() -> str:
        return datetime.now(timezone.utc).isoformat()

    @staticmethod
    def _dumps(value: Any) -> str:
        return json.dumps(value, separators=(",", ":"))

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def save_prediction(self, record: PredictionRecord) -> str:
        """Persist a prediction. Every call creates a new row.

        Args:
            record: The prediction. Empty ``id`` / ``created_at`` are filled in.

        Returns:
            The prediction ID.
        """
        if not record.user_id:
            raise RepositoryError("Prediction must belong to a user")

        pid = record.id or self._new_id()
        created_at = record.created_at or self._now_iso()

        conn = self._db.connection
        conn.execute(
            """INSERT INTO predictions (
                id, user_id, created_at,
                risk_score, confidence_score, risk_band, model_version,
                key_factors_json, shap_values_json, health_suggestions_json,
                patient_name_enc, report_enc, form_data_enc
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                pid,
                record.user_id,
                created_at,
                record.risk_score,
                record.confidence_score,
                record.risk_band,
                record.model_version,
                self._dumps(record.key_factors),
                self._dumps(record.shap_values),
                self._dumps(record.health_suggestions),
                self._enc.encrypt(record.patient_name or None),
                self._enc.encrypt(record.report or None),
                self._enc.encrypt(record.form_data or None),
            ),
        )
        conn.commit()

        record.id = pid
        record.created_at = created_at
        logger.info("Saved prediction %s (risk_score=%d)", pid, record.risk_score)
        return pid

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_prediction(self, prediction_id: str) -> PredictionRecord | None:
        row = self._db.connection.execute(
            "SELECT * FROM predictions WHERE id = ?", (prediction_id,)
        ).fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    def get_prediction_history(
        self,
        user_id: str,
        *,
        since: str | None = None,
        limit: int = 100,
    ) -> list[PredictionRecord]:
        """A user's predictions, newest first.

        Args:
            user_id: Owner of the predictions.
            since: Optional ISO 8601 lower bound on ``created_at`` (inclusive).
            limit: Maximum results.
        """
        conditions = ["user_id = ?"]
        params: list[Any] = [user_id]
        if since:
            conditions.append("created_at >= ?")
            params.append(since)
        params.append(limit)

        query = (
            "SELECT * FROM predictions WHERE "
            + " AND ".join(conditions)
            + " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        )
        rows = self._db.connection.execute(query, params).fetchall()
        return [self._row_to_record(row) for row in rows]

    def get_latest_prediction(self, user_id: str) -> PredictionRecord | None:
        results = self.get_prediction_history(user_id, limit=1)
        return results[0] if results else None

    def get_risk_score_history(
        self,
        user_id: str,
        *,
        limit: int = 90,
    ) -> list[tuple[str, int]]:
        """(created_at, risk_score) pairs, newest first. Never decrypts anything."""
        rows = self._db.connection.execute(
            """SELECT created_at, risk_score FROM predictions
               WHERE user_id = ?
               ORDER BY created_at DESC, rowid DESC LIMIT ?""",
            (user_id, limit),
        ).fetchall()
        return [(row[0], row[1]) for row in rows]

    def get_key_factor_history(
        self,
        user_id: str,
        *,
        limit: int = 90,
    ) -> list[list[dict[str, Any]]]:
        """Stored key factor lists, newest first."""
        rows = self._db.connection.execute(
            """SELECT key_factors_json FROM predictions
               WHERE user_id = ?
               ORDER BY created_at DESC, rowid DESC LIMIT ?""",
            (user_id, limit),
        ).fetchall()
        return [json.loads(row[0]) for row in rows]

    def count_predictions(self, user_id: str | None = None) -> int:
        if user_id is None:
            row = self._db.connection.execute("SELECT COUNT(*) FROM predictions").fetchone()
        else:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM predictions WHERE user_id = ?", (user_id,)
            ).fetchone()
        return row[0]

    # ------------------------------------------------------------------
    # Deletion / retention
    # ------------------------------------------------------------------

    def delete_prediction(self, prediction_id: str, *, user_id: str | None = None) -> bool:
        """Delete one prediction, optionally only if ``user_id`` owns it.

        Returns:
            True if a prediction was found and deleted.
        """
        query = "DELETE FROM predictions WHERE id = ?"
        params: list[Any] = [prediction_id]
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)

        conn = self._db.connection
        cursor = conn.execute(query, params)
        conn.commit()
        if cursor.rowcount:
            logger.info("Deleted prediction %s", prediction_id)
        return cursor.rowcount > 0

    def purge_before(self, before_timestamp: str, *, user_id: str | None = None) -> int:
        """Delete predictions with ``created_at < before_timestamp``.

        Returns:
            Number of predictions deleted.
        """
        query = "DELETE FROM predictions WHERE created_at < ?"
        params: list[Any] = [before_timestamp]
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)

        conn = self._db.connection
        cursor = conn.execute(query, params)
        conn.commit()
        logger.info("Purged %d predictions older than %s", cursor.rowcount, before_timestamp)
        return cursor.rowcount

    def purge_before_days(self, days: int, *, user_id: str | None = None) -> int:
        cutoff = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()
        return self.purge_before(cutoff, user_id=user_id)

    def delete_all_predictions(self, user_id: str) -> int:
        """Delete every prediction belonging to ``user_id``."""
        conn = self._db.connection
        cursor = conn.execute("DELETE FROM predictions WHERE user_id = ?", (user_id,))
        conn.commit()
        logger.warning("Deleted all predictions for a user: %d removed", cursor.rowcount)
        return cursor.rowcount

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _row_to_record(self, row: Any) -> PredictionRecord:
        return PredictionRecord(
            id=row["id"],
            user_id=row["user_id"],
            risk_score=row["risk_score"],
            confidence_score=row["confidence_score"],
            risk_band=row["risk_band"],
            model_version=row["model_version"],
            key_factors=json.loads(row["key_factors_json"]),
            shap_values=json.loads(row["shap_values_json"]),
            health_suggestions=json.loads(row["health_suggestions_json"]),
            patient_name=self._enc.decrypt(row["patient_name_enc"]) or "",
            report=self._enc.decrypt(row["report_enc"]) or "",
            form_data=self._enc.decrypt(row["form_data_enc"]) or {},
            created_at=row["created_at"],
        )
