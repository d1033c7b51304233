"""Tests for the AuditLogger and related utilities."""

from __future__ import annotations

import json
import time

from diahelper.core.audit.logger import AuditEvent, _hash_input


# ---------------------------------------------------------------------------
# _hash_input tests
# ---------------------------------------------------------------------------

class TestHashInput:
    def test_hashes_dict(self):
        assert len(_hash_input({"privacy_mode": "strict"})) == 64  # SHA-256 hex

    def test_order_independent(self):
        assert _hash_input({"z": 1, "a": 2}) == _hash_input({"a": 2, "z": 1})

    def test_different_inputs_differ(self):
        assert _hash_input({"a": 1}) != _hash_input({"a": 2})

    def test_non_serializable_returns_empty(self):
        assert _hash_input(object()) == ""


# ---------------------------------------------------------------------------
# AuditLogger.log_event / log_tool_call
# ---------------------------------------------------------------------------

class TestLogToolCall:
    def test_log_event_returns_uuid(self, audit_logger):
        eid = audit_logger.log_event(AuditEvent(action="tool_invocation", tool_name="t"))
        assert len(eid) == 36

    def test_logged_event_retrievable(self, audit_logger):
        audit_logger.log_tool_call(
            tool_name="assess_diabetes_risk",
            tool_input={"privacy_mode": "strict"},
            privacy_mode="strict",
            llm_provider="anthropic",
            llm_disclosed=True,
            prediction_id="pred-1",
            duration_ms=12.5,
        )
        events = audit_logger.get_events()
        assert len(events) == 1
        event = events[0]
        assert event["action"] == "tool_invocation"
        assert event["tool_name"] == "assess_diabetes_risk"
        assert event["llm_disclosed"] == 1
        assert event["prediction_id"] == "pred-1"
        assert len(event["tool_input_hash"]) == 64
        assert event["status"] == "success"

    def test_raw_input_never_stored(self, audit_logger, prediction_db):
        audit_logger.log_tool_call("score_health_metrics", tool_input={"patient_name": "Ada"})
        dump = "\n".join(prediction_db.connection.iterdump())
        assert "Ada" not in dump

    def test_failure_recorded(self, audit_logger):
        audit_logger.log_tool_call("analyze_risk_dataset", status="failure", error_type="invalid_dataset")
        event = audit_logger.get_events()[0]
        assert event["status"] == "failure"
        assert event["error_type"] == "invalid_dataset"

    def test_metadata_json_stored(self, audit_logger):
        audit_logger.log_tool_call("t", metadata={"rows_scored": 3})
        meta = json.loads(audit_logger.get_events()[0]["metadata_json"])
        assert meta == {"rows_scored": 3}

    def test_write_failure_is_swallowed(self, audit_logger, prediction_db):
        prediction_db.connection.execute("DROP TABLE audit_log")
        assert audit_logger.log_tool_call("t") == ""


class TestLogDataDelete:
    def test_log_delete_event(self, audit_logger):
        audit_logger.log_data_delete(tool_name="delete_prediction", prediction_id="pred-9", count=1)
        events = audit_logger.get_events(action="data_delete")
        assert len(events) == 1
        assert events[0]["prediction_id"] == "pred-9"
        assert json.loads(events[0]["metadata_json"])["records_deleted"] == 1


# ---------------------------------------------------------------------------
# AuditLogger.get_events / counts
# ---------------------------------------------------------------------------

class TestQueries:
    def test_filter_by_action_and_tool(self, audit_logger):
        audit_logger.log_tool_call("alpha")
        audit_logger.log_data_delete(tool_name="beta", count=5)
        audit_logger.log_tool_call("alpha")
        assert len(audit_logger.get_events(action="tool_invocation")) == 2
        assert len(audit_logger.get_events(tool_name="beta")) == 1

    def test_limit_respected(self, audit_logger):
        for i in range(10):
            audit_logger.log_tool_call(f"tool_{i}")
        assert len(audit_logger.get_events(limit=3)) == 3

    def test_newest_first(self, audit_logger):
        audit_logger.log_tool_call("first")
        time.sleep(0.01)
        audit_logger.log_tool_call("second")
        assert [e["tool_name"] for e in audit_logger.get_events()] == ["second", "first"]

    def test_counts(self, audit_logger):
        assert audit_logger.count_events() == 0
        audit_logger.log_tool_call("t1", llm_disclosed=True, llm_provider="anthropic")
        audit_logger.log_tool_call("t2", llm_disclosed=False)
        audit_logger.log_tool_call("t3", llm_disclosed=True, llm_provider="openai")
        assert audit_logger.count_events() == 3
        assert audit_logger.count_disclosures() == 2
        assert audit_logger.count_disclosures(since="2020-01-01T00:00:00Z") == 2
        assert audit_logger.count_events(since="2999-01-01T00:00:00Z") == 0


class TestSummarize:
    def test_summary_counts_and_hides_internal_fields(self, audit_logger):
        audit_logger.log_tool_call(
            "assess_diabetes_risk",
            tool_input={"privacy_mode": "standard"},
            llm_disclosed=True,
            llm_provider="openai",
            metadata={"report_generated": True},
        )
        audit_logger.log_tool_call("analyze_risk_dataset", status="failure", error_type="invalid_dataset")
        summary = audit_logger.summarize()
        assert summary["total_events"] == 2
        assert summary["llm_disclosures"] == 1
        assert summary["failed_calls"] == 1
        assert len(summary["recent_events"]) == 2
        for event in summary["recent_events"]:
            assert "tool_input_hash" not in event
            assert "metadata_json" not in event
            assert isinstance(event["llm_disclosed"], bool)

    def test_summary_respects_since_and_limit(self, audit_logger):
        for _ in range(4):
            audit_logger.log_tool_call("t")
        assert len(audit_logger.summarize(limit=2)["recent_events"]) == 2
        assert audit_logger.summarize(since="2999-01-01T00:00:00Z")["total_events"] == 0
