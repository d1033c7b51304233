"""Turns a risk assessment into a short narrative report via the LLM."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from diahelper.core.llm.client import LLMCallError, NarrativeLLMClient
from diahelper.core.privacy.policy import PrivacyMode, build_report_context
from diahelper.domains.diabetes.domain_logic.risk_models import RiskAssessment
from diahelper.domains.diabetes.prompts.report_prompt import (
    REPORT_TASK_INSTRUCTIONS,
    build_report_prompt,
)

logger = logging.getLogger(__name__)

EDUCATIONAL_DISCLAIMER = (
    "This is a simulated prediction for educational purposes and not a real "
    "medical diagnosis."
)
PROFESSIONAL_ADVICE_DISCLAIMER = (
    "Please consult a healthcare professional for medical advice."
)


class NarrativeError(RuntimeError):
    """Report generation failed; ``kind`` and ``retryable`` come from the LLM client."""

    def __init__(self, message: str, *, kind: str, retryable: bool = False) -> None:
        super().__init__(message)
        self.kind = kind
        self.retryable = retryable

    def as_dict(self) -> dict[str, Any]:
        return {"error_type": self.kind, "message": str(self), "retryable": self.retryable}


@dataclass
class NarrativeReport:
    report: str
    guardrail_flags: list[str] = field(default_factory=list)
    context_sent: dict[str, Any] = field(default_factory=dict)
    model: str = ""


class ReportNarrator:
    """Builds the privacy-filtered prompt and validates the narrative reply."""

    def __init__(self, llm_client: NarrativeLLMClient) -> None:
        self.llm_client = llm_client

    async def narrate(
        self,
        assessment: RiskAssessment,
        *,
        patient_name: str = "",
        privacy_mode: PrivacyMode = "strict",
    ) -> NarrativeReport:
        """Generate the report text for ``assessment``.

        Raises:
            NarrativeError: The LLM failed or did not honour the JSON contract.
        """
        context = build_report_context(
            risk_score=assessment.risk_score,
            confidence_score=assessment.confidence_score,
            key_factors=[kf.name for kf in assessment.key_factors],
            health_suggestions=assessment.health_suggestions,
            patient_name=patient_name,
            risk_band=assessment.risk_band,
            metrics=assessment.metrics,
            privacy_mode=privacy_mode,
        )

        try:
            response = await self.llm_client.invoke_json(
                REPORT_TASK_INSTRUCTIONS,
                build_report_prompt(context),
                content_key="report",
                disclaimers=[EDUCATIONAL_DISCLAIMER, PROFESSIONAL_ADVICE_DISCLAIMER],
            )
        except LLMCallError as exc:
            raise NarrativeError(str(exc), kind=exc.kind, retryable=exc.retryable) from exc

        if response.guardrail_flags:
            logger.info("Report narrative adjusted: %d guardrail flags", len(response.guardrail_flags))

        return NarrativeReport(
            report=response.content,
            guardrail_flags=response.guardrail_flags,
            context_sent=context,
            model=response.model,
        )
