"""Integration tests for the DiaHelper risk MCP server."""

from __future__ import annotations

import asyncio
import json

import pytest
from fastmcp import Client
from fastmcp.exceptions import ToolError

from diahelper.core.llm.providers.mock import MockProvider
from diahelper.core.server.app import create_app


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _call(client: Client, tool: str, args: dict | None = None) -> dict:
    """Call a tool on an open client and decode its JSON payload."""
    result = await client.call_tool(tool, args or {})
    return json.loads(result.content[0].text)


STATELESS_TOOLS = [
    "health_check",
    "score_health_metrics",
    "assess_diabetes_risk",
    "analyze_risk_dataset",
]

STORAGE_TOOLS = [
    "get_prediction_history",
    "risk_trend_analysis",
    "delete_prediction",
    "purge_old_predictions",
    "delete_all_predictions",
    "get_audit_log",
]

HIGH_RISK = {"age": 70, "bmi": 40, "glucose": 200, "blood_pressure": 100}

CSV_TEXT = "age,glucose,bmi,bloodPressure\n70,200,40,100\n45,105,28,85\n"


@pytest.fixture
def mock_provider():
    return MockProvider()


@pytest.fixture
def client(mock_provider):
    """Server without persistence (no ENCRYPTION_KEY)."""
    return Client(create_app(provider_override=mock_provider))


@pytest.fixture
def stored_client(mock_provider, prediction_repository, audit_logger):
    """Server backed by the in-memory prediction store and audit log."""
    return Client(create_app(
        provider_override=mock_provider,
        repository_override=prediction_repository,
        audit_logger_override=audit_logger,
    ))


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

def test_stateless_server_lists_core_tools(client):
    async def _check():
        async with client:
            names = [t.name for t in await client.list_tools()]
        for expected in STATELESS_TOOLS:
            assert expected in names, f"Missing tool: {expected}"
        for absent in STORAGE_TOOLS:
            assert absent not in names
    _run(_check())


def test_storage_tools_registered_with_repository(stored_client):
    async def _check():
        async with stored_client:
            names = [t.name for t in await stored_client.list_tools()]
        for expected in STATELESS_TOOLS + STORAGE_TOOLS:
            assert expected in names, f"Missing tool: {expected}"
    _run(_check())


def test_prompts_registered(client):
    async def _check():
        async with client:
            names = [p.name for p in await client.list_prompts()]
        assert "diabetes_risk_check_prompt" in names
        assert "risk_progress_review_prompt" in names
    _run(_check())


def test_health_check(stored_client):
    async def _check():
        async with stored_client:
            status = await _call(stored_client, "health_check")
        assert status["status"] == "ok"
        assert status["storage_enabled"] is True
        assert status["llm_provider"] == "mock"
        assert status["predictions_stored"] == 0
    _run(_check())


def test_health_check_counts_stored_predictions(stored_client):
    async def _check():
        async with stored_client:
            await _call(stored_client, "assess_diabetes_risk", HIGH_RISK)
            await _call(stored_client, "assess_diabetes_risk", HIGH_RISK)
            return await _call(stored_client, "health_check")
    status = _run(_check())
    assert status["predictions_stored"] == 2
    assert status["audit_enabled"] is True


# ---------------------------------------------------------------------------
# score_health_metrics
# ---------------------------------------------------------------------------

def test_score_health_metrics(client):
    async def _check():
        async with client:
            result = await _call(client, "score_health_metrics", HIGH_RISK)
        assert result["status"] == "ok"
        assert result["risk_score"] == 95
        assert result["risk_band"] == "high"
        assert [kf["name"] for kf in result["key_factors"]][:2] == ["Glucose", "BMI"]
        assert result["shap_values"][0]["name"] == "Baseline"
    _run(_check())


def test_score_health_metrics_insufficient_and_invalid(client):
    async def _check():
        async with client:
            partial = await _call(client, "score_health_metrics", {"age": 40, "bmi": 25})
            invalid = await _call(client, "score_health_metrics", {**HIGH_RISK, "age": 200})
        assert partial["status"] == "insufficient_data"
        assert partial["risk_score"] == 0
        assert partial["shap_values"] == []
        assert invalid["status"] == "error"
        assert invalid["error_type"] == "invalid_metrics"
        assert "age" in invalid["fields"]
    _run(_check())


# ---------------------------------------------------------------------------
# assess_diabetes_risk
# ---------------------------------------------------------------------------

def test_assess_without_storage(client, mock_provider):
    async def _check():
        async with client:
            result = await _call(
                client, "assess_diabetes_risk", {**HIGH_RISK, "patient_name": "Ada"}
            )
        assert result["status"] == "ok"
        assert result["stored"] is False
        assert "simulated prediction for educational purposes" in result["report"]
        assert mock_provider.call_count == 1
        assert "Ada" not in mock_provider.last_user_message
    _run(_check())


def test_assess_stores_and_audits(stored_client, prediction_repository, audit_logger):
    async def _check():
        async with stored_client:
            return await _call(
                stored_client, "assess_diabetes_risk", {**HIGH_RISK, "patient_name": "Ada"}
            )
    result = _run(_check())
    assert result["stored"] is True

    record = prediction_repository.get_prediction(result["prediction_id"])
    assert record.user_id == "local-user"
    assert record.patient_name == "Ada"
    assert record.risk_score == 95
    assert record.report == result["report"]
    assert record.form_data["glucose"] == 200.0

    events = audit_logger.get_events(tool_name="assess_diabetes_risk")
    assert events[0]["prediction_id"] == result["prediction_id"]
    assert events[0]["privacy_mode"] == "strict"
    assert events[0]["llm_disclosed"] == 0  # mock provider


def test_assess_store_modes(stored_client, client, prediction_repository):
    async def _check():
        async with stored_client:
            never = await _call(
                stored_client, "assess_diabetes_risk", {**HIGH_RISK, "store_mode": "never"}
            )
        async with client:
            always = await _call(
                client, "assess_diabetes_risk", {**HIGH_RISK, "store_mode": "always"}
            )
        assert never["stored"] is False
        assert prediction_repository.count_predictions() == 0
        assert always["error_type"] == "storage_disabled"
    _run(_check())


def test_assess_without_report(client, mock_provider):
    async def _check():
        async with client:
            result = await _call(
                client, "assess_diabetes_risk", {**HIGH_RISK, "include_report": False}
            )
        assert result["report"] is None
        assert mock_provider.call_count == 0
    _run(_check())


def test_assess_report_failure_still_returns_score(
    stored_client, mock_provider, prediction_repository
):
    mock_provider.response_content = "not json"

    async def _check():
        async with stored_client:
            return await _call(stored_client, "assess_diabetes_risk", HIGH_RISK)
    result = _run(_check())
    assert result["status"] == "ok"
    assert result["risk_score"] == 95
    assert result["report"] is None
    assert result["report_error"]["error_type"] == "invalid_response"
    assert prediction_repository.count_predictions() == 1


def test_assess_insufficient_is_not_stored(stored_client, prediction_repository, mock_provider):
    async def _check():
        async with stored_client:
            return await _call(stored_client, "assess_diabetes_risk", {"age": 40})
    result = _run(_check())
    assert result["status"] == "insufficient_data"
    assert prediction_repository.count_predictions() == 0
    assert mock_provider.call_count == 0


def test_assess_invalid_privacy_mode(client):
    async def _check():
        async with client:
            with pytest.raises(ToolError):
                await client.call_tool(
                    "assess_diabetes_risk", {**HIGH_RISK, "privacy_mode": "everything"}
                )
    _run(_check())


# ---------------------------------------------------------------------------
# analyze_risk_dataset
# ---------------------------------------------------------------------------

def test_analyze_dataset(client):
    async def _check():
        async with client:
            full = await _call(client, "analyze_risk_dataset", {"csv_text": CSV_TEXT})
            filtered = await _call(client, "analyze_risk_dataset", {
                "csv_text": CSV_TEXT,
                "filters": json.dumps({"risk_score": [70, 100]}),
                "include_predictions": False,
            })
        assert full["status"] == "ok"
        assert full["rows_scored"] == 2
        assert full["summary"]["high_risk"] == 1
        assert len(full["predictions"]) == 2
        assert filtered["summary"]["total"] == 1
        assert "predictions" not in filtered
    _run(_check())


def test_analyze_dataset_errors(client):
    async def _check():
        async with client:
            missing = await _call(
                client, "analyze_risk_dataset", {"csv_text": "age,glucose\n50,100\n"}
            )
            bad_filter = await _call(
                client, "analyze_risk_dataset", {"csv_text": CSV_TEXT, "filters": "[1, 2]"}
            )
        assert missing["error_type"] == "invalid_dataset"
        assert bad_filter["error_type"] == "invalid_dataset"
    _run(_check())


def test_analyze_dataset_too_large(monkeypatch):
    monkeypatch.setenv("BATCH_MAX_BYTES", "10")
    small_limit_client = Client(create_app(provider_override=MockProvider()))

    async def _check():
        async with small_limit_client:
            return await _call(small_limit_client, "analyze_risk_dataset", {"csv_text": CSV_TEXT})
    assert _run(_check())["error_type"] == "dataset_too_large"


# ---------------------------------------------------------------------------
# History, trends and deletion
# ---------------------------------------------------------------------------

def test_history_and_trend(stored_client):
    async def _check():
        async with stored_client:
            for glucose in (200, 160, 110):
                await _call(
                    stored_client,
                    "assess_diabetes_risk",
                    {**HIGH_RISK, "glucose": glucose, "bmi": 30},
                )
            history = await _call(stored_client, "get_prediction_history", {})
            with_reports = await _call(
                stored_client, "get_prediction_history", {"include_report": True}
            )
            trend = await _call(stored_client, "risk_trend_analysis", {})

        assert history["count"] == 3
        assert "report" not in history["predictions"][0]
        assert with_reports["predictions"][0]["report"]
        assert trend["status"] == "ok"
        assert trend["trend"]["data_points"] == 3
        assert trend["total_predictions"] == 3
    _run(_check())


def test_trend_needs_two_predictions(stored_client):
    async def _check():
        async with stored_client:
            await _call(stored_client, "assess_diabetes_risk", HIGH_RISK)
            return await _call(stored_client, "risk_trend_analysis", {})
    assert _run(_check())["status"] == "insufficient_data"


def test_delete_prediction(stored_client, audit_logger):
    async def _check():
        async with stored_client:
            created = await _call(stored_client, "assess_diabetes_risk", HIGH_RISK)
            pid = created["prediction_id"]
            first = await _call(stored_client, "delete_prediction", {"prediction_id": pid})
            second = await _call(stored_client, "delete_prediction", {"prediction_id": pid})
        assert first["status"] == "deleted"
        assert second["status"] == "not_found"
    _run(_check())
    assert len(audit_logger.get_events(action="data_delete")) == 1


def test_delete_prediction_requires_owner(stored_client, prediction_repository):
    async def _check():
        async with stored_client:
            created = await _call(
                stored_client, "assess_diabetes_risk", {**HIGH_RISK, "user_id": "alice"}
            )
            pid = created["prediction_id"]
            other = await _call(
                stored_client, "delete_prediction", {"prediction_id": pid, "user_id": "bob"}
            )
            default_user = await _call(stored_client, "delete_prediction", {"prediction_id": pid})
            owner = await _call(
                stored_client, "delete_prediction", {"prediction_id": pid, "user_id": "alice"}
            )
        assert other["status"] == "not_found"
        assert default_user["status"] == "not_found"
        assert owner["status"] == "deleted"
    _run(_check())
    assert prediction_repository.count_predictions() == 0


def test_purge_validation(stored_client):
    async def _check():
        async with stored_client:
            return await _call(stored_client, "purge_old_predictions", {"older_than_days": 0})
    assert _run(_check())["status"] == "error"


def test_delete_all_requires_confirmation(stored_client, prediction_repository):
    async def _check():
        async with stored_client:
            await _call(stored_client, "assess_diabetes_risk", HIGH_RISK)
            cancelled = await _call(stored_client, "delete_all_predictions", {})
            assert cancelled["status"] == "cancelled"
            assert prediction_repository.count_predictions() == 1
            return await _call(stored_client, "delete_all_predictions", {"confirm": "DELETE_ALL"})
    result = _run(_check())
    assert result["status"] == "all_deleted"
    assert result["predictions_deleted"] == 1
    assert prediction_repository.count_predictions() == 0


def test_audit_log_tool(stored_client):
    async def _check():
        async with stored_client:
            await _call(stored_client, "score_health_metrics", HIGH_RISK)
            await _call(stored_client, "assess_diabetes_risk", HIGH_RISK)
            return await _call(stored_client, "get_audit_log", {})
    audit = _run(_check())
    assert audit["status"] == "ok"
    assert audit["total_events"] == 1
    assert audit["llm_disclosures"] == 0
    assert audit["recent_events"][0]["tool_name"] == "assess_diabetes_risk"
