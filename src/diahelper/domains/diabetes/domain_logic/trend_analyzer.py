"""Longitudinal analysis of a user's stored risk assessments.

Scores and key factors come from unencrypted columns.
"""

from __future__ import annotations

import logging
import statistics
from collections import Counter
from typing import Any

from diahelper.core.storage.repository import PredictionRepository

logger = logging.getLogger(__name__)

# Mean score change (points) below which a trend counts as stable
TREND_THRESHOLD = 3.0


def _direction(diff: float) -> str:
    # Lower risk is better
    if diff <= -TREND_THRESHOLD:
        return "improving"
    if diff >= TREND_THRESHOLD:
        return "worsening"
    return "stable"


class RiskTrendAnalyzer:
    """Computes risk trends and recurring factors from prediction history.

    Usage::

        analyzer = RiskTrendAnalyzer(repository)
        trend = analyzer.compute_risk_trend("local-user")
        factors = analyzer.key_factor_frequency("local-user")
    """

    def __init__(self, repository: PredictionRepository) -> None:
        self._repo = repository

    def compute_risk_trend(self, user_id: str, *, limit: int = 90) -> dict[str, Any]:
        """Trend statistics over the user's most recent risk scores.

        Args:
            user_id: Owner of the predictions.
            limit: Max data points, newest first.

        Returns:
            Dict with: current, first, change, mean, median, min, max,
            std_dev, direction, data_points. Only ``data_points`` and
            ``status`` when there is no history.
        """
        history = self._repo.get_risk_score_history(user_id, limit=limit)
        if not history:
            return {"data_points": 0, "status": "no_data"}

        values = [score for _, score in history]
        current = values[0]  # newest first
        first = values[-1]

        if len(values) >= 4:
            mid = len(values) // 2
            diff = statistics.mean(values[:mid]) - statistics.mean(values[mid:])
            direction = _direction(diff)
        elif len(values) >= 2:
            direction = _direction(current - first)
        else:
            direction = "insufficient_data"

        return {
            "current": current,
            "first": first,
            "change": current - first,
            "mean": round(statistics.mean(values), 2),
            "median": statistics.median(values),
            "min": min(values),
            "max": max(values),
            "std_dev": round(statistics.stdev(values), 2) if len(values) > 1 else 0.0,
            "direction": direction,
            "data_points": len(values),
            "latest_at": history[0][0],
            "earliest_at": history[-1][0],
        }

    def key_factor_frequency(self, user_id: str, *, limit: int = 90) -> list[dict[str, Any]]:
        """How often each factor appeared among the stored key factors.

        Returns:
            List of {"name", "count", "share"} sorted by count, most frequent first.
        """
        factor_lists = self._repo.get_key_factor_history(user_id, limit=limit)
        if not factor_lists:
            return []

        counts: Counter[str] = Counter()
        for factors in factor_lists:
            names = [kf.get("name", "") for kf in factors if kf.get("name")]
            counts.update(list(dict.fromkeys(names)))

        total = len(factor_lists)
        return [
            {"name": name, "count": count, "share": round(count / total, 2)}
            for name, count in counts.most_common()
        ]

    def get_history_summary(self, user_id: str, *, limit: int = 90) -> dict[str, Any]:
        """Trend, recurring factors and the band of the latest assessment."""
        trend = self.compute_risk_trend(user_id, limit=limit)
        latest = self._repo.get_latest_prediction(user_id)

        summary: dict[str, Any] = {
            "user_id": user_id,
            "total_predictions": self._repo.count_predictions(user_id),
            "trend": trend,
            "recurring_factors": self.key_factor_frequency(user_id, limit=limit),
            "latest_risk_band": latest.risk_band if latest else None,
        }
        logger.info("History summary computed: %d data points", trend.get("data_points", 0))
        return summary
