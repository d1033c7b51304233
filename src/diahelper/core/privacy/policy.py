"""Privacy policy for what an assessment exposes to the narrative LLM.

By default the LLM only sees the derived outputs (score, confidence, factor
names, suggestions) under a generic patient name. The raw metrics and the
user's real name are included only when the caller opts in.
"""

from __future__ import annotations

from typing import Any, Literal

PrivacyMode = Literal["strict", "standard", "explicit"]

PRIVACY_MODES: tuple[str, ...] = ("strict", "standard", "explicit")
GENERIC_PATIENT_NAME = "Patient"


def validate_privacy_mode(value: str | None, default: PrivacyMode = "strict") -> PrivacyMode:
    """Return ``value`` as a privacy mode, or ``default`` when empty."""
    if value in (None, ""):
        return default
    if value not in PRIVACY_MODES:
        raise ValueError("privacy_mode must be one of: strict | standard | explicit")
    return value  # type: ignore[return-value]


def _round_floats(obj: Any, ndigits: int = 2) -> Any:
    if isinstance(obj, float):
        return round(obj, ndigits)
    if isinstance(obj, dict):
        return {k: _round_floats(v, ndigits=ndigits) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_round_floats(v, ndigits=ndigits) for v in obj]
    return obj


def build_report_context(
    *,
    risk_score: int,
    confidence_score: int,
    key_factors: list[str],
    health_suggestions: list[str],
    patient_name: str,
    risk_band: str,
    metrics: dict[str, Any],
    privacy_mode: PrivacyMode,
) -> dict[str, Any]:
    """Build the minimised context rendered into the report prompt."""
    base: dict[str, Any] = {
        "patient_name": GENERIC_PATIENT_NAME,
        "risk_score": risk_score,
        "confidence_score": confidence_score,
        "key_factors": list(key_factors),
        "health_suggestions": list(health_suggestions),
    }

    if privacy_mode == "strict":
        return base

    base["patient_name"] = patient_name or GENERIC_PATIENT_NAME
    base["risk_band"] = risk_band
    if privacy_mode == "standard":
        return base

    # explicit: the entered metrics too, coarsened
    base["metrics"] = _round_floats(
        {k: v for k, v in metrics.items() if v is not None}, ndigits=1
    )
    return base
