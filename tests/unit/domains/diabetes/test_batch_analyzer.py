"""Tests for CSV dataset scoring and cohort summaries."""

from __future__ import annotations

import pytest

from diahelper.domains.diabetes.domain_logic.batch_analyzer import (
    DatasetError,
    analyze_dataset,
    filter_predictions,
    parse_dataset,
    score_rows,
    summarize_predictions,
    top_factors,
)


CSV_HEADER = "age,glucose,bmi,bloodPressure,insulin\n"

CSV_TEXT = (
    CSV_HEADER
    + "70,200,40,100,\n"   # high risk
    + "45,105,28,85,100\n"  # all means -> 5
    + "30,90,22,70,60\n"
)


class TestParseDataset:
    def test_parses_rows_with_canonical_names(self):
        rows = parse_dataset(CSV_TEXT)
        assert len(rows) == 3
        assert rows[0]["blood_pressure"] == "100"
        assert rows[0]["insulin"] == ""

    def test_accepts_snake_case_header(self):
        rows = parse_dataset("age,glucose,bmi,blood_pressure\n50,120,30,80\n")
        assert rows == [{"age": "50", "glucose": "120", "bmi": "30", "blood_pressure": "80"}]

    def test_leading_byte_order_mark_ignored(self):
        rows = parse_dataset("\ufeffage,glucose,bmi,bloodPressure\n50,120,30,80\n")
        assert rows == [{"age": "50", "glucose": "120", "bmi": "30", "blood_pressure": "80"}]

    def test_missing_required_column(self):
        with pytest.raises(DatasetError, match="bloodPressure"):
            parse_dataset("age,glucose,bmi\n50,120,30\n")

    def test_empty_text(self):
        with pytest.raises(DatasetError, match="header"):
            parse_dataset("")

    def test_blank_lines_skipped(self):
        rows = parse_dataset(CSV_HEADER + "50,120,30,80,\n,,,,\n\n")
        assert len(rows) == 1

    def test_row_limit(self):
        text = CSV_HEADER + "50,120,30,80,\n" * 4
        with pytest.raises(DatasetError, match="cannot exceed 3 rows"):
            parse_dataset(text, max_rows=3)

    def test_row_limit_exact(self):
        text = CSV_HEADER + "50,120,30,80,\n" * 3
        assert len(parse_dataset(text, max_rows=3)) == 3


class TestScoreRows:
    def test_scores_every_row(self):
        predictions = score_rows(parse_dataset(CSV_TEXT))
        assert [p.row for p in predictions] == [1, 2, 3]
        assert predictions[0].risk_score == 95
        assert predictions[1].risk_score == 5
        assert predictions[0].shap_values[0].name == "Baseline"

    def test_invalid_row_names_row_number(self):
        rows = parse_dataset(CSV_HEADER + "50,120,30,80,\n50,abc,30,80,\n")
        with pytest.raises(DatasetError, match="row 2"):
            score_rows(rows)

    def test_out_of_range_row(self):
        rows = parse_dataset(CSV_HEADER + "150,120,30,80,\n")
        with pytest.raises(DatasetError, match="row 1"):
            score_rows(rows)

    def test_incomplete_row_scores_zero(self):
        predictions = score_rows(parse_dataset(CSV_HEADER + "50,,30,80,\n"))
        assert predictions[0].risk_score == 0
        assert predictions[0].shap_values == []


class TestFilterAndSummary:
    @pytest.fixture
    def predictions(self):
        return score_rows(parse_dataset(CSV_TEXT))

    def test_default_filters_keep_everything(self, predictions):
        assert len(filter_predictions(predictions)) == 3

    def test_risk_filter(self, predictions):
        kept = filter_predictions(predictions, {"risk_score": (70, 100)})
        assert [p.row for p in kept] == [1]

    def test_glucose_filter_inclusive(self, predictions):
        kept = filter_predictions(predictions, {"glucose": (90, 105)})
        assert [p.row for p in kept] == [2, 3]

    def test_unknown_filter(self, predictions):
        with pytest.raises(DatasetError, match="Unknown filter"):
            filter_predictions(predictions, {"insulin": (0, 10)})

    def test_summary(self, predictions):
        summary = summarize_predictions(predictions)
        assert summary["total"] == 3
        assert summary["high_risk"] == 1
        expected_avg = int(sum(p.risk_score for p in predictions) / 3 + 0.5)
        assert summary["average_score"] == expected_avg

    def test_summary_empty(self):
        assert summarize_predictions([]) == {"total": 0, "high_risk": 0, "average_score": 0}

    def test_top_factors_exclude_baseline_and_interactions(self, predictions):
        factors = top_factors(predictions)
        names = [f["name"] for f in factors]
        assert len(factors) <= 5
        assert names[0] == "Glucose"
        assert "Baseline" not in names
        assert not any(" x " in n for n in names)
        values = [f["value"] for f in factors]
        assert values == sorted(values, reverse=True)


def test_analyze_dataset_end_to_end():
    analysis = analyze_dataset(CSV_TEXT, filters={"risk_score": (50, 100)})
    assert analysis["rows_scored"] == 3
    assert analysis["summary"]["total"] == 1
    assert analysis["summary"]["high_risk"] == 1
    assert analysis["predictions"] == [
        {"row": 1, "risk_score": 95, "glucose": 200.0, "bmi": 40.0, "age": 70.0}
    ]
    assert analysis["top_factors"][0]["name"] == "Glucose"
