"""Batch risk scoring for uploaded CSV datasets.

Each row is scored with the same engine as single assessments, then the
results can be filtered by range and summarised (high-risk count, average
score, dominant factors across the cohort).
"""

from __future__ import annotations

import csv
import io
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from diahelper.domains.diabetes.domain_logic.risk_engine import (
    InvalidMetricsError,
    round_half_up,
    score,
    validate_metrics,
)
from diahelper.domains.diabetes.domain_logic.risk_models import (
    FIELD_ALIASES,
    HIGH_RISK_THRESHOLD,
    ContributionKind,
    FeatureContribution,
)

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("age", "glucose", "bmi", "bloodPressure")
DEFAULT_MAX_ROWS = 5000
TOP_FACTOR_LIMIT = 5

# Default filter ranges (inclusive)
DEFAULT_FILTERS: dict[str, tuple[float, float]] = {
    "risk_score": (0, 100),
    "age": (0, 120),
    "bmi": (0, 70),
    "glucose": (0, 300),
}


class DatasetError(ValueError):
    """Raised when a dataset cannot be parsed or scored."""


@dataclass
class BatchPrediction:
    """Score for one dataset row."""

    row: int  # 1-based data row number (header excluded)
    risk_score: int
    glucose: float
    bmi: float
    age: float
    shap_values: list[FeatureContribution] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "row": self.row,
            "risk_score": self.risk_score,
            "glucose": self.glucose,
            "bmi": self.bmi,
            "age": self.age,
        }


def _canonical_column(name: str) -> str:
    name = name.strip()
    return FIELD_ALIASES.get(name, name)


def parse_dataset(csv_text: str, *, max_rows: int = DEFAULT_MAX_ROWS) -> list[dict[str, str]]:
    """Parse CSV text into row dicts keyed by canonical (snake_case) field names.

    Raises:
        DatasetError: Missing header, missing required columns, or too many rows.
    """
    # Leading UTF-8 byte order mark from spreadsheet exports
    reader = csv.DictReader(io.StringIO(csv_text.removeprefix("\ufeff")))
    if not reader.fieldnames:
        raise DatasetError("CSV has no header row")

    columns = {_canonical_column(c) for c in reader.fieldnames if c}
    missing = [c for c in REQUIRED_COLUMNS if _canonical_column(c) not in columns]
    if missing:
        raise DatasetError(
            f"CSV must contain the following columns: {', '.join(REQUIRED_COLUMNS)} "
            f"(missing: {', '.join(missing)})"
        )

    rows: list[dict[str, str]] = []
    for raw in reader:
        # Skip blank lines (every cell empty)
        if not any((v or "").strip() for k, v in raw.items() if k is not None):
            continue
        if len(rows) >= max_rows:
            raise DatasetError(f"The dataset cannot exceed {max_rows} rows")
        rows.append({_canonical_column(k): v for k, v in raw.items() if k is not None})
    return rows


def score_rows(rows: Iterable[Mapping[str, Any]]) -> list[BatchPrediction]:
    """Validate and score every row.

    Raises:
        DatasetError: On the first row with invalid data, naming the row.
    """
    predictions: list[BatchPrediction] = []
    for index, row in enumerate(rows, start=1):
        try:
            values = validate_metrics(row)
        except InvalidMetricsError as exc:
            raise DatasetError(f"Error on row {index}: {exc}") from exc
        result = score(values)
        predictions.append(BatchPrediction(
            row=index,
            risk_score=result.risk_score,
            glucose=values["glucose"] or 0.0,
            bmi=values["bmi"] or 0.0,
            age=values["age"] or 0.0,
            shap_values=result.shap_values,
        ))
    return predictions


def filter_predictions(
    predictions: Iterable[BatchPrediction],
    filters: Mapping[str, tuple[float, float]] | None = None,
) -> list[BatchPrediction]:
    """Keep predictions inside every (inclusive) range; unspecified ranges use defaults."""
    ranges = {**DEFAULT_FILTERS, **(filters or {})}
    unknown = set(ranges) - set(DEFAULT_FILTERS)
    if unknown:
        raise DatasetError(f"Unknown filter(s): {', '.join(sorted(unknown))}")

    def _inside(p: BatchPrediction) -> bool:
        return all(lo <= getattr(p, attr) <= hi for attr, (lo, hi) in ranges.items())

    return [p for p in predictions if _inside(p)]


def summarize_predictions(predictions: list[BatchPrediction]) -> dict[str, Any]:
    total = len(predictions)
    high_risk = sum(1 for p in predictions if p.risk_score > HIGH_RISK_THRESHOLD)
    average = round_half_up(sum(p.risk_score for p in predictions) / total) if total else 0
    return {"total": total, "high_risk": high_risk, "average_score": average}


def top_factors(
    predictions: Iterable[BatchPrediction],
    *,
    limit: int = TOP_FACTOR_LIMIT,
) -> list[dict[str, Any]]:
    """Sum each primary factor's positive contribution across the cohort."""
    totals: dict[str, float] = {}
    for prediction in predictions:
        for contribution in prediction.shap_values:
            if contribution.kind is not ContributionKind.PRIMARY:
                continue
            totals[contribution.name] = totals.get(contribution.name, 0.0) + max(0.0, contribution.value)

    ranked = sorted(totals.items(), key=lambda kv: kv[1], reverse=True)
    return [{"name": name, "value": round(value, 4)} for name, value in ranked[:limit]]


def analyze_dataset(
    csv_text: str,
    *,
    filters: Mapping[str, tuple[float, float]] | None = None,
    max_rows: int = DEFAULT_MAX_ROWS,
) -> dict[str, Any]:
    """Parse, score, filter and summarise a CSV dataset in one call."""
    rows = parse_dataset(csv_text, max_rows=max_rows)
    predictions = score_rows(rows)
    filtered = filter_predictions(predictions, filters)
    logger.info(
        "Scored dataset: %d rows, %d after filtering", len(predictions), len(filtered)
    )
    return {
        "rows_scored": len(predictions),
        "summary": summarize_predictions(filtered),
        "top_factors": top_factors(filtered),
        "predictions": [p.as_dict() for p in filtered],
    }
