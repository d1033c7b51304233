"""Deterministic diabetes risk scoring: health metrics -> risk score + contributions.

The model is a hand-tuned logistic regression over z-scored features with
quadratic and pairwise-interaction terms. Every function here is pure: no I/O,
no LLM, no randomness, safe to call concurrently.

Typical flow::

    result = score(metrics)
    key_factors = select_key_factors(result.shap_values)
    suggestions = suggest_health_actions(key_factors)
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from typing import Any

from diahelper.domains.diabetes.domain_logic.risk_models import (
    BASELINE_NAME,
    EXERCISE_SUGGESTION,
    FACTOR_SUGGESTIONS,
    FALLBACK_SUGGESTION,
    FEATURE_NORMS,
    FIELD_ALIASES,
    HIGH_RISK_THRESHOLD,
    INTERACTION_FACTORS,
    MANDATORY_FIELDS,
    MAX_KEY_FACTORS,
    MEDIUM_RISK_THRESHOLD,
    METRIC_FIELDS,
    METRIC_RANGES,
    MODEL_WEIGHTS,
    OPTIONAL_DEFAULTS,
    SCORE_CEILING,
    SCORE_FLOOR,
    SLEEP_DEVIATION_SCALE,
    SLEEP_OPTIMUM_HOURS,
    ContributionKind,
    FeatureContribution,
    HealthMetrics,
    KeyFactor,
    RiskAssessment,
    RiskResult,
)


class InvalidMetricsError(ValueError):
    """Raised when health metrics are non-numeric, non-finite or out of range."""

    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = errors
        detail = "; ".join(f"{name}: {msg}" for name, msg in errors.items())
        super().__init__(f"Invalid health metrics ({detail})")


# ---------------------------------------------------------------------------
# Numeric helpers
# ---------------------------------------------------------------------------

def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def round_half_up(value: float) -> int:
    """Round .5 upward (Python's round() is banker's rounding)."""
    return int(math.floor(value + 0.5))


def _sigmoid(x: float) -> float:
    """Logistic function that does not overflow for large |x|."""
    if x >= 0:
        return 1.0 / (1.0 + math.exp(-x))
    e = math.exp(x)
    return e / (1.0 + e)


def _score_from_log_odds(log_odds: float) -> int:
    """Map log-odds onto the clamped 5-95 scale.

    Extreme finite inputs can push terms to +/-inf; opposing infinities give
    NaN, which saturates at the ceiling.
    """
    if math.isnan(log_odds):
        return SCORE_CEILING
    return round_half_up(_clamp(_sigmoid(log_odds) * 100, SCORE_FLOOR, SCORE_CEILING))


def _standardize(value: float, mean: float, std: float) -> float:
    return (value - mean) / std


# ---------------------------------------------------------------------------
# Input normalisation and validation
# ---------------------------------------------------------------------------

def _coerce(name: str, value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            return float(value)
        except ValueError:
            raise InvalidMetricsError({name: f"not a number: {value!r}"}) from None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidMetricsError({name: f"not a number: {value!r}"})
    try:
        return float(value)
    except OverflowError:
        raise InvalidMetricsError({name: "must be a finite number"}) from None


def normalize_metrics(metrics: HealthMetrics | Mapping[str, Any] | None) -> dict[str, float | None]:
    """Map a metrics record onto the canonical snake_case field set.

    camelCase keys from the web form / CSV exports are accepted. Unknown keys
    are ignored; absent fields come back as ``None``.
    """
    if metrics is None:
        raw: Mapping[str, Any] = {}
    elif isinstance(metrics, HealthMetrics):
        raw = metrics.as_dict(include_missing=True)
    elif isinstance(metrics, Mapping):
        raw = metrics
    else:
        raise TypeError(f"Unsupported metrics type: {type(metrics).__name__}")

    normalized: dict[str, float | None] = {name: None for name in METRIC_FIELDS}
    for key, value in raw.items():
        name = FIELD_ALIASES.get(key, key)
        if name in normalized:
            normalized[name] = _coerce(name, value)
    return normalized


def _ensure_finite(values: Mapping[str, float | None]) -> None:
    errors = {
        name: "must be a finite number"
        for name, value in values.items()
        if value is not None and not math.isfinite(value)
    }
    if errors:
        raise InvalidMetricsError(errors)


def validate_metrics(metrics: HealthMetrics | Mapping[str, Any] | None) -> dict[str, float | None]:
    """Normalise and range-check a metrics record.

    Missing mandatory fields are *not* an error here; ``score`` turns them into
    the insufficient-input sentinel.

    Raises:
        InvalidMetricsError: For non-numeric, non-finite or out-of-range values.
    """
    values = normalize_metrics(metrics)
    _ensure_finite(values)

    errors: dict[str, str] = {}
    for name, value in values.items():
        if value is None:
            continue
        lo, hi = METRIC_RANGES[name]
        if lo is not None and value < lo:
            errors[name] = f"must be >= {lo:g}"
        elif hi is not None and value > hi:
            errors[name] = f"must be <= {hi:g}"
    if errors:
        raise InvalidMetricsError(errors)
    return values


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

def score(metrics: HealthMetrics | Mapping[str, Any] | None) -> RiskResult:
    """Compute the diabetes risk score and per-feature contributions.

    Returns ``RiskResult(risk_score=0, shap_values=[])`` when any of age, bmi,
    glucose or blood pressure is missing or zero.

    Raises:
        InvalidMetricsError: If any supplied value is NaN or infinite.
    """
    values = normalize_metrics(metrics)
    _ensure_finite(values)

    if any(not values[name] for name in MANDATORY_FIELDS):
        return RiskResult(risk_score=0, shap_values=[])

    v: dict[str, float] = {
        name: (values[name] if values[name] is not None else OPTIONAL_DEFAULTS[name])
        for name in METRIC_FIELDS
    }
    w = MODEL_WEIGHTS

    z = {
        name: _standardize(v[name], mean, std)
        for name, (mean, std) in FEATURE_NORMS.items()
    }
    sleep_impact = abs(v["sleep_hours"] - SLEEP_OPTIMUM_HOURS) / SLEEP_DEVIATION_SCALE

    primary = ContributionKind.PRIMARY
    interaction = ContributionKind.INTERACTION
    terms = [
        FeatureContribution("Glucose", z["glucose"] * w["glucose"] + z["glucose"] * z["glucose"] * w["glucose_squared"], primary),
        FeatureContribution("BMI", z["bmi"] * w["bmi"], primary),
        FeatureContribution("Age", z["age"] * w["age"] + z["age"] * z["age"] * w["age_squared"], primary),
        FeatureContribution("Sleep Quality", sleep_impact * w["sleep_quality"], primary),
        FeatureContribution(
            "Family History",
            z["diabetes_pedigree_function"] * w["diabetes_pedigree_function"],
            primary,
        ),
        FeatureContribution("Blood Pressure", z["blood_pressure"] * w["blood_pressure"], primary),
        FeatureContribution("Pregnancies", z["pregnancies"] * w["pregnancies"], primary),
        FeatureContribution("Insulin", z["insulin"] * w["insulin"], primary),
        FeatureContribution("Skin Thickness", z["skin_thickness"] * w["skin_thickness"], primary),
        FeatureContribution("Glucose x BMI", z["glucose"] * z["bmi"] * w["glucose_bmi"], interaction),
        FeatureContribution("Age x Glucose", z["age"] * z["glucose"] * w["age_glucose"], interaction),
        FeatureContribution("BP x BMI", z["blood_pressure"] * z["bmi"] * w["bp_bmi"], interaction),
    ]

    log_odds = w["base"] + sum(t.value for t in terms)
    risk_score = _score_from_log_odds(log_odds)

    shap_values = [FeatureContribution(BASELINE_NAME, w["base"], ContributionKind.BASELINE), *terms]
    return RiskResult(risk_score=risk_score, shap_values=shap_values, log_odds=log_odds)


# ---------------------------------------------------------------------------
# Derived outputs
# ---------------------------------------------------------------------------

def _as_contribution(entry: FeatureContribution | Mapping[str, Any]) -> FeatureContribution:
    """Accept stored ``{name, value[, kind]}`` dicts as well as contributions."""
    if isinstance(entry, FeatureContribution):
        return entry
    name = str(entry["name"])
    value = float(entry["value"])
    raw_kind = entry.get("kind")
    if raw_kind:
        kind = ContributionKind(raw_kind)
    elif name == BASELINE_NAME:
        kind = ContributionKind.BASELINE
    elif name in INTERACTION_FACTORS:
        kind = ContributionKind.INTERACTION
    else:
        kind = ContributionKind.PRIMARY
    return FeatureContribution(name, value, kind)


def select_key_factors(
    shap_values: Iterable[FeatureContribution | Mapping[str, Any]],
) -> list[KeyFactor]:
    """Top positive primary contributors, largest first, at most three.

    Ties keep the engine's contribution order (stable sort).
    """
    candidates = [
        c for c in map(_as_contribution, shap_values)
        if c.kind is ContributionKind.PRIMARY and c.value > 0
    ]
    ranked = sorted(candidates, key=lambda c: c.value, reverse=True)
    return [KeyFactor(c.name, c.value) for c in ranked[:MAX_KEY_FACTORS]]


def _factor_name(factor: KeyFactor | Mapping[str, Any] | str) -> str:
    if isinstance(factor, KeyFactor):
        return factor.name
    if isinstance(factor, str):
        return factor
    return str(factor["name"])


def suggest_health_actions(
    key_factors: Iterable[KeyFactor | Mapping[str, Any] | str],
) -> list[str]:
    """Pick suggestions from the fixed catalog based on which factors are present."""
    names = {_factor_name(f) for f in key_factors}
    suggestions = [EXERCISE_SUGGESTION]
    for factor, text in FACTOR_SUGGESTIONS:
        if factor in names:
            suggestions.append(text)
    if len(suggestions) == 1:
        suggestions.append(FALLBACK_SUGGESTION)
    return suggestions


def confidence_score(risk_score: int) -> int:
    """Presentation confidence: 85 at a 50/50 score, rising to 100 at the extremes."""
    return round_half_up(85 + (abs(risk_score - 50) / 50) * 15)


def risk_band(risk_score: int) -> str:
    if risk_score > HIGH_RISK_THRESHOLD:
        return "high"
    if risk_score > MEDIUM_RISK_THRESHOLD:
        return "medium"
    return "low"


def assess(
    metrics: HealthMetrics | Mapping[str, Any] | None,
    *,
    validate: bool = True,
) -> RiskAssessment:
    """Run the full deterministic pipeline for one metrics record.

    With ``validate=True`` (default) out-of-range values are rejected before
    scoring. Insufficient input yields a zero score, no key factors,
    confidence 0 and the ``insufficient_data`` band.
    """
    values = validate_metrics(metrics) if validate else normalize_metrics(metrics)
    result = score(values)

    if result.is_insufficient:
        return RiskAssessment(
            result=result,
            key_factors=[],
            health_suggestions=suggest_health_actions([]),
            confidence_score=0,
            risk_band="insufficient_data",
            metrics=values,
        )

    key_factors = select_key_factors(result.shap_values)
    return RiskAssessment(
        result=result,
        key_factors=key_factors,
        health_suggestions=suggest_health_actions(key_factors),
        confidence_score=confidence_score(result.risk_score),
        risk_band=risk_band(result.risk_score),
        metrics=values,
    )
