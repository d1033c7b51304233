"""MCP tools for diabetes risk assessment (single record and CSV datasets).

The scoring itself is deterministic and local. Only ``assess_diabetes_risk``
with ``include_report=True`` sends anything to the narrative LLM, and then
only what the privacy mode allows.
"""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from diahelper.core.audit.logger import AuditLogger
    from diahelper.core.config.settings import Settings
    from diahelper.core.storage.repository import PredictionRepository
    from diahelper.domains.diabetes.domain_logic.report_narrator import ReportNarrator

from diahelper.core.privacy.policy import validate_privacy_mode
from diahelper.core.storage.models import PredictionRecord
from diahelper.domains.diabetes.domain_logic import risk_engine
from diahelper.domains.diabetes.domain_logic.batch_analyzer import DatasetError, analyze_dataset
from diahelper.domains.diabetes.domain_logic.report_narrator import NarrativeError
from diahelper.domains.diabetes.domain_logic.risk_models import MODEL_VERSION, RiskAssessment

logger = logging.getLogger(__name__)

STORE_MODES = ("auto", "always", "never")


def _metrics_from_args(**kwargs: float | None) -> dict[str, float | None]:
    return {k: v for k, v in kwargs.items() if v is not None}


def _parse_filters(filters: str) -> dict[str, tuple[float, float]] | None:
    """Parse a JSON object of ``{"name": [lo, hi]}`` ranges."""
    if not filters:
        return None
    try:
        raw = json.loads(filters)
    except json.JSONDecodeError as exc:
        raise DatasetError(f"filters must be a JSON object: {exc.msg}") from exc
    if not isinstance(raw, dict):
        raise DatasetError("filters must be a JSON object")

    parsed: dict[str, tuple[float, float]] = {}
    for name, bounds in raw.items():
        if not isinstance(bounds, list) or len(bounds) != 2:
            raise DatasetError(f"filter {name!r} must be a [min, max] pair")
        try:
            parsed[name] = (float(bounds[0]), float(bounds[1]))
        except (TypeError, ValueError) as exc:
            raise DatasetError(f"filter {name!r} bounds must be numbers") from exc
    return parsed


def _build_record(
    assessment: RiskAssessment,
    *,
    user_id: str,
    patient_name: str,
    report: str,
) -> PredictionRecord:
    payload = assessment.as_dict()
    return PredictionRecord(
        id="",
        user_id=user_id,
        risk_score=assessment.risk_score,
        confidence_score=assessment.confidence_score,
        risk_band=assessment.risk_band,
        model_version=MODEL_VERSION,
        key_factors=payload["key_factors"],
        shap_values=payload["shap_values"],
        health_suggestions=payload["health_suggestions"],
        patient_name=patient_name,
        report=report,
        form_data={k: v for k, v in assessment.metrics.items() if v is not None},
    )


def register_risk_assessment_tools(
    mcp: FastMCP,
    settings: Settings,
    narrator: ReportNarrator,
    repository: PredictionRepository | None = None,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register risk assessment tools on the MCP server."""

    @mcp.tool
    async def score_health_metrics(
        ctx: Context,
        age: float | None = None,
        bmi: float | None = None,
        glucose: float | None = None,
        blood_pressure: float | None = None,
        pregnancies: float | None = None,
        skin_thickness: float | None = None,
        insulin: float | None = None,
        diabetes_pedigree_function: float | None = None,
        sleep_hours: float | None = None,
    ) -> str:
        """Score diabetes risk from health metrics without storing anything.

        Returns the 5-95 risk score, per-factor log-odds contributions, the top
        contributing factors and general suggestions. A score of 0 means the
        mandatory metrics (age, BMI, glucose, blood pressure) were incomplete.

        Args:
            age: Age in years.
            bmi: Body mass index (kg/m^2).
            glucose: Plasma glucose (mg/dL).
            blood_pressure: Diastolic blood pressure (mm Hg).
            pregnancies: Number of pregnancies (default 0).
            skin_thickness: Triceps skin fold thickness in mm (default 20).
            insulin: 2-hour serum insulin in mu U/ml (default 80).
            diabetes_pedigree_function: Family history score (default 0.4).
            sleep_hours: Average sleep per night (default 7).
        """
        metrics = _metrics_from_args(
            age=age, bmi=bmi, glucose=glucose, blood_pressure=blood_pressure,
            pregnancies=pregnancies, skin_thickness=skin_thickness, insulin=insulin,
            diabetes_pedigree_function=diabetes_pedigree_function, sleep_hours=sleep_hours,
        )
        try:
            assessment = risk_engine.assess(metrics)
        except risk_engine.InvalidMetricsError as exc:
            return json.dumps({
                "status": "error",
                "error_type": "invalid_metrics",
                "message": str(exc),
                "fields": exc.errors,
            })

        result: dict[str, Any] = {"status": "ok", **assessment.as_dict()}
        if assessment.result.is_insufficient:
            result["status"] = "insufficient_data"
            result["message"] = "Age, BMI, glucose and blood pressure are required for a score."
        return json.dumps(result)

    @mcp.tool
    async def assess_diabetes_risk(
        ctx: Context,
        age: float | None = None,
        bmi: float | None = None,
        glucose: float | None = None,
        blood_pressure: float | None = None,
        pregnancies: float | None = None,
        skin_thickness: float | None = None,
        insulin: float | None = None,
        diabetes_pedigree_function: float | None = None,
        sleep_hours: float | None = None,
        patient_name: str = "",
        include_report: bool = True,
        privacy_mode: str | None = None,
        store_mode: str = "auto",
        user_id: str = "",
    ) -> str:
        """Full diabetes risk assessment with a personalised narrative report.

        The score is computed locally. The narrative is written by the
        configured LLM from a privacy-filtered summary of the result.

        Args:
            age: Age in years.
            bmi: Body mass index (kg/m^2).
            glucose: Plasma glucose (mg/dL).
            blood_pressure: Diastolic blood pressure (mm Hg).
            pregnancies: Number of pregnancies.
            skin_thickness: Triceps skin fold thickness in mm.
            insulin: 2-hour serum insulin in mu U/ml.
            diabetes_pedigree_function: Family history score.
            sleep_hours: Average sleep per night.
            patient_name: Name used in the report and stored encrypted.
            include_report: Generate the narrative report (default true).
            privacy_mode: What the LLM may see: 'strict' (default; score,
                factor names and suggestions only), 'standard' (adds name and
                risk band) or 'explicit' (adds the entered metrics).
            store_mode: 'auto' (store when storage is enabled), 'always'
                (error if storage is disabled) or 'never'.
            user_id: Owner of the stored prediction (defaults to the local user).
        """
        start_time = time.monotonic()
        effective_privacy_mode = validate_privacy_mode(
            privacy_mode, default=settings.default_privacy_mode
        )
        if store_mode not in STORE_MODES:
            raise ValueError("store_mode must be one of: auto | always | never")
        if store_mode == "always" and repository is None:
            return json.dumps({
                "status": "error",
                "error_type": "storage_disabled",
                "message": "Storage is not configured. Set ENCRYPTION_KEY to store predictions.",
            })

        owner = user_id or settings.default_user_id
        tool_input = {
            "privacy_mode": effective_privacy_mode,
            "include_report": include_report,
            "store_mode": store_mode,
        }
        metrics = _metrics_from_args(
            age=age, bmi=bmi, glucose=glucose, blood_pressure=blood_pressure,
            pregnancies=pregnancies, skin_thickness=skin_thickness, insulin=insulin,
            diabetes_pedigree_function=diabetes_pedigree_function, sleep_hours=sleep_hours,
        )

        def _audit(**kwargs: Any) -> None:
            if audit_logger is None:
                return
            audit_logger.log_tool_call(
                tool_name="assess_diabetes_risk",
                tool_input=tool_input,
                privacy_mode=effective_privacy_mode,
                llm_provider=narrator.llm_client.provider_name,
                duration_ms=round((time.monotonic() - start_time) * 1000, 1),
                **kwargs,
            )

        try:
            try:
                assessment = risk_engine.assess(metrics)
            except risk_engine.InvalidMetricsError as exc:
                _audit(status="failure", error_type="invalid_metrics")
                return json.dumps({
                    "status": "error",
                    "error_type": "invalid_metrics",
                    "message": str(exc),
                    "fields": exc.errors,
                })

            if assessment.result.is_insufficient:
                _audit(status="failure", error_type="insufficient_data")
                return json.dumps({
                    "status": "insufficient_data",
                    **assessment.as_dict(),
                    "message": "Age, BMI, glucose and blood pressure are required for a score.",
                })

            report = ""
            report_error: dict[str, Any] | None = None
            guardrail_flags: list[str] = []
            llm_disclosed = False
            if include_report:
                await ctx.info("Writing your personalised report...")
                llm_disclosed = narrator.llm_client.provider_name != "mock"
                try:
                    narrative = await narrator.narrate(
                        assessment,
                        patient_name=patient_name,
                        privacy_mode=effective_privacy_mode,
                    )
                    report = narrative.report
                    guardrail_flags = narrative.guardrail_flags
                except NarrativeError as exc:
                    logger.warning("Report generation failed: %s", exc.kind)
                    report_error = exc.as_dict()

            prediction_id: str | None = None
            if repository is not None and store_mode != "never":
                prediction_id = repository.save_prediction(_build_record(
                    assessment,
                    user_id=owner,
                    patient_name=patient_name,
                    report=report,
                ))

            _audit(
                llm_disclosed=llm_disclosed,
                prediction_id=prediction_id,
                metadata={"report_generated": bool(report)},
            )

            result: dict[str, Any] = {
                "status": "ok",
                **assessment.as_dict(),
                "report": report or None,
                "privacy_mode": effective_privacy_mode,
                "prediction_id": prediction_id,
                "stored": prediction_id is not None,
            }
            if guardrail_flags:
                result["guardrail_flags"] = guardrail_flags
            if report_error is not None:
                result["report_error"] = report_error
            return json.dumps(result)

        except Exception as exc:
            _audit(status="failure", error_type=type(exc).__name__)
            raise

    @mcp.tool
    async def analyze_risk_dataset(
        ctx: Context,
        csv_text: str,
        filters: str = "",
        include_predictions: bool = True,
    ) -> str:
        """Score every row of a CSV dataset and summarise the cohort.

        The CSV needs a header with at least age, glucose, bmi and
        bloodPressure (or blood_pressure). Optional columns use the same
        names as the single assessment.

        Args:
            csv_text: The CSV file contents.
            filters: Optional JSON object of inclusive ranges, e.g.
                '{"risk_score": [70, 100], "age": [40, 120]}'. Keys:
                risk_score, age, bmi, glucose.
            include_predictions: Include per-row scores in the result.
        """
        start_time = time.monotonic()
        size = len(csv_text.encode("utf-8"))
        if size > settings.batch_max_bytes:
            return json.dumps({
                "status": "error",
                "error_type": "dataset_too_large",
                "message": f"File size cannot exceed {settings.batch_max_bytes} bytes.",
            })

        try:
            analysis = analyze_dataset(
                csv_text,
                filters=_parse_filters(filters),
                max_rows=settings.batch_max_rows,
            )
        except DatasetError as exc:
            if audit_logger is not None:
                audit_logger.log_tool_call(
                    tool_name="analyze_risk_dataset",
                    tool_input={"filters": filters, "bytes": size},
                    duration_ms=round((time.monotonic() - start_time) * 1000, 1),
                    status="failure",
                    error_type="invalid_dataset",
                )
            return json.dumps({
                "status": "error",
                "error_type": "invalid_dataset",
                "message": str(exc),
            })

        if audit_logger is not None:
            audit_logger.log_tool_call(
                tool_name="analyze_risk_dataset",
                tool_input={"filters": filters, "bytes": size},
                duration_ms=round((time.monotonic() - start_time) * 1000, 1),
                metadata={"rows_scored": analysis["rows_scored"]},
            )

        if not include_predictions:
            analysis.pop("predictions")
        return json.dumps({"status": "ok", "model_version": MODEL_VERSION, **analysis})
