"""Data models for the prediction persistence layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class PredictionRecord:
    """A stored risk assessment.

    Scores and contributions are kept unencrypted for history queries;
    ``patient_name``, ``report`` and ``form_data`` are encrypted at rest.
    """

    id: str
    user_id: str
    risk_score: int
    confidence_score: int
    risk_band: str
    model_version: str
    key_factors: list[dict[str, Any]] = field(default_factory=list)
    shap_values: list[dict[str, Any]] = field(default_factory=list)
    health_suggestions: list[str] = field(default_factory=list)

    # Encrypted at rest
    patient_name: str = ""
    report: str = ""
    form_data: dict[str, Any] = field(default_factory=dict)

    created_at: str = ""  # ISO 8601, assigned on save when empty

    def key_factor_names(self) -> list[str]:
        return [kf.get("name", "") for kf in self.key_factors]

    def as_dict(self, *, include_sensitive: bool = True) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "user_id": self.user_id,
            "created_at": self.created_at,
            "risk_score": self.risk_score,
            "confidence_score": self.confidence_score,
            "risk_band": self.risk_band,
            "model_version": self.model_version,
            "key_factors": self.key_factors,
            "shap_values": self.shap_values,
            "health_suggestions": self.health_suggestions,
        }
        if include_sensitive:
            data.update({
                "patient_name": self.patient_name,
                "report": self.report,
                "form_data": self.form_data,
            })
        return data
