"""Diabetes risk model data types and the versioned coefficient table."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Model configuration (hand-tuned, not learned)
# ---------------------------------------------------------------------------

MODEL_VERSION = "heuristic-logit-1.0"

# Population constants used for z-scoring: feature -> (mean, std)
FEATURE_NORMS: dict[str, tuple[float, float]] = {
    "glucose": (105.0, 30.0),
    "bmi": (28.0, 6.0),
    "age": (45.0, 18.0),
    "diabetes_pedigree_function": (0.5, 0.4),
    "blood_pressure": (85.0, 20.0),
    "pregnancies": (3.0, 3.0),
    "skin_thickness": (25.0, 12.0),
    "insulin": (100.0, 60.0),
}

# Sleep is scored by absolute deviation from the optimum, not a signed z-score
SLEEP_OPTIMUM_HOURS = 7.0
SLEEP_DEVIATION_SCALE = 1.5

MODEL_WEIGHTS: dict[str, float] = {
    "base": -5.5,
    "glucose": 3.5,
    "bmi": 3.2,
    "age": 2.5,
    "diabetes_pedigree_function": 2.0,
    "sleep_quality": 1.5,
    "blood_pressure": 1.2,
    "pregnancies": 0.7,
    "insulin": 0.5,
    "skin_thickness": 0.3,
    "glucose_bmi": 2.8,
    "age_glucose": 1.8,
    "bp_bmi": 1.0,
    "age_squared": 0.8,
    "glucose_squared": 1.0,
}

# The model never asserts near-certainty in either direction
SCORE_FLOOR = 5
SCORE_CEILING = 95

# ---------------------------------------------------------------------------
# Input fields
# ---------------------------------------------------------------------------

MANDATORY_FIELDS = ("age", "bmi", "glucose", "blood_pressure")

OPTIONAL_DEFAULTS: dict[str, float] = {
    "pregnancies": 0.0,
    "skin_thickness": 20.0,
    "insulin": 80.0,
    "diabetes_pedigree_function": 0.4,
    "sleep_hours": 7.0,
}

METRIC_FIELDS = MANDATORY_FIELDS + tuple(OPTIONAL_DEFAULTS)

# Keys used by the web form and CSV exports
FIELD_ALIASES: dict[str, str] = {
    "bloodPressure": "blood_pressure",
    "skinThickness": "skin_thickness",
    "diabetesPedigreeFunction": "diabetes_pedigree_function",
    "sleepHours": "sleep_hours",
}

# Plausible input ranges (inclusive); None = unbounded
METRIC_RANGES: dict[str, tuple[float | None, float | None]] = {
    "age": (1, 120),
    "bmi": (10, 70),
    "glucose": (0, None),
    "blood_pressure": (0, None),
    "pregnancies": (0, 20),
    "skin_thickness": (0, 99),
    "insulin": (0, 900),
    "diabetes_pedigree_function": (0, 3),
    "sleep_hours": (0, 24),
}

# ---------------------------------------------------------------------------
# Contribution labels
# ---------------------------------------------------------------------------

BASELINE_NAME = "Baseline"

PRIMARY_FACTORS = (
    "Glucose",
    "BMI",
    "Age",
    "Sleep Quality",
    "Family History",
    "Blood Pressure",
    "Pregnancies",
    "Insulin",
    "Skin Thickness",
)

INTERACTION_FACTORS = (
    "Glucose x BMI",
    "Age x Glucose",
    "BP x BMI",
)

# ---------------------------------------------------------------------------
# Suggestion catalog
# ---------------------------------------------------------------------------

EXERCISE_SUGGESTION = (
    "Engage in at least 30 minutes of moderate exercise most days of the week."
)

# Checked in this order, regardless of key factor ranking
FACTOR_SUGGESTIONS: tuple[tuple[str, str], ...] = (
    ("Glucose", "Monitor carbohydrate intake and choose whole grains over refined carbs."),
    ("BMI", "Focus on a balanced diet with plenty of fruits, vegetables, and lean protein to manage weight."),
    ("Blood Pressure", "Reduce sodium intake and manage stress through techniques like meditation or yoga."),
    ("Sleep Quality", "Aim for 7-8 hours of consistent, quality sleep per night and establish a relaxing bedtime routine."),
)

FALLBACK_SUGGESTION = "Maintain a balanced diet and regular check-ups with your doctor."

MAX_KEY_FACTORS = 3

# Risk bands used by history views: score > threshold -> band
HIGH_RISK_THRESHOLD = 70
MEDIUM_RISK_THRESHOLD = 40


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

class ContributionKind(str, Enum):
    """What a contribution term represents."""

    BASELINE = "baseline"
    PRIMARY = "primary"
    INTERACTION = "interaction"


@dataclass(frozen=True)
class FeatureContribution:
    """One term's signed contribution to the pre-sigmoid log-odds."""

    name: str
    value: float
    kind: ContributionKind = ContributionKind.PRIMARY

    def as_dict(self) -> dict[str, Any]:
        return {"name": self.name, "value": self.value, "kind": self.kind.value}


@dataclass(frozen=True)
class KeyFactor:
    """A dominant positive, non-interaction contributor shown to the user."""

    name: str
    value: float

    def as_dict(self) -> dict[str, Any]:
        return {"name": self.name, "value": self.value}


@dataclass(frozen=True)
class RiskResult:
    """Output of the scoring engine.

    ``shap_values`` is empty only for the insufficient-input sentinel
    (``risk_score == 0``). Otherwise its first entry is the baseline and the
    values sum to ``log_odds``.
    """

    risk_score: int
    shap_values: list[FeatureContribution] = field(default_factory=list)
    log_odds: float | None = None

    @property
    def is_insufficient(self) -> bool:
        return not self.shap_values


@dataclass
class HealthMetrics:
    """Health metrics record as entered by the user."""

    age: float | None = None
    bmi: float | None = None
    glucose: float | None = None
    blood_pressure: float | None = None
    pregnancies: float | None = None
    skin_thickness: float | None = None
    insulin: float | None = None
    diabetes_pedigree_function: float | None = None
    sleep_hours: float | None = None

    def as_dict(self, *, include_missing: bool = False) -> dict[str, float | None]:
        data = asdict(self)
        if include_missing:
            return data
        return {k: v for k, v in data.items() if v is not None}


@dataclass
class RiskAssessment:
    """Everything one scoring invocation produces for downstream consumers."""

    result: RiskResult
    key_factors: list[KeyFactor]
    health_suggestions: list[str]
    confidence_score: int
    risk_band: str
    metrics: dict[str, float | None]

    @property
    def risk_score(self) -> int:
        return self.result.risk_score

    def as_dict(self) -> dict[str, Any]:
        return {
            "risk_score": self.result.risk_score,
            "confidence_score": self.confidence_score,
            "risk_band": self.risk_band,
            "key_factors": [kf.as_dict() for kf in self.key_factors],
            "shap_values": [c.as_dict() for c in self.result.shap_values],
            "health_suggestions": list(self.health_suggestions),
            "model_version": MODEL_VERSION,
        }
