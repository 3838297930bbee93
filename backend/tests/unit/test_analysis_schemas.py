import math

import pytest
from pydantic import ValidationError

from stocklens.schemas.analysis import (
    AnalysisResult,
    ReportPayload,
    StrategyMetrics,
    clamp_confidence,
    coerce_risk_level,
)


class TestConfidenceClamp:

    @pytest.mark.parametrize(
        "raw, expected",
        [(1.7, 1.0), (-0.3, 0.0), (0.42, 0.42), ("0.9", 0.9), ("high", 0.8), (None, 0.8), (math.nan, 0.8)],
    )
    def test_clamp_confidence(self, raw, expected):
        assert clamp_confidence(raw) == pytest.approx(expected)

    def test_result_confidence_is_always_in_unit_interval(self):
        for raw in (5, -5, "abc", float("inf"), float("-inf")):
            result = AnalysisResult(analysis_type="risk_assessment", confidence=raw)
            assert 0.0 <= result.confidence <= 1.0


class TestRiskLevel:

    @pytest.mark.parametrize("raw", ["extreme", "", None, 3, "critical"])
    def test_invalid_risk_becomes_medium(self, raw):
        assert coerce_risk_level(raw) == "medium"
        assert AnalysisResult(analysis_type="x", risk_level=raw).risk_level == "medium"

    def test_risk_is_case_insensitive(self):
        assert coerce_risk_level(" HIGH ") == "high"


class TestFromPayload:

    def test_camel_case_payload(self):
        result = AnalysisResult.from_payload(
            {
                "riskLevel": "low",
                "confidence": 0.75,
                "recommendations": ["Reorder bolts", {"action": "Audit tape"}],
                "analysis": "All good",
                "timeline": {"depletionDate": "2024-02-01"},
            },
            "stock_prediction",
            generated_by="ollama:phi3",
        )
        assert result.risk_level == "low"
        assert result.confidence == 0.75
        assert result.recommendations == ["Reorder bolts", "Audit tape"]
        assert result.details == {"timeline": {"depletionDate": "2024-02-01"}}
        assert result.generated_by == "ollama:phi3"
        assert result.is_fallback is False

    def test_missing_fields_get_defaults(self):
        result = AnalysisResult.from_payload({}, "anomaly_detection")
        assert result.risk_level == "medium"
        assert result.confidence == 0.8
        assert result.recommendations == []
        assert result.analysis == "Analysis completed"

    def test_report_payload_accepts_key_findings_alias(self):
        payload = ReportPayload.from_payload(
            {"keyFindings": "Stock is low", "recommendations": ["Reorder"], "summary": {"totalItems": 3}},
            "summary",
        )
        assert payload.key_findings == ["Stock is low"]
        assert payload.summary == {"totalItems": 3}
        assert payload.report_type == "summary"


class TestStrategyMetrics:

    def test_empty_metrics(self):
        m = StrategyMetrics()
        assert m.average_latency_ms == 0.0
        assert m.success_rate == 0.0

    def test_rates(self):
        m = StrategyMetrics(calls=4, failures=1, total_latency_ms=100.0)
        assert m.average_latency_ms == 25.0
        assert m.success_rate == 0.75
        assert m.to_dict()["calls"] == 4


class TestTextLists:

    @pytest.mark.parametrize("raw", [5, True, 2.5])
    def test_scalar_text_list_is_a_validation_error(self, raw):
        with pytest.raises(ValidationError):
            AnalysisResult(analysis_type="risk_assessment", recommendations=raw)
        with pytest.raises(ValidationError):
            ReportPayload(report_type="summary", key_findings=raw)

    def test_string_and_mapping_entries_are_accepted(self):
        result = AnalysisResult(analysis_type="x", recommendations=["a", {"action": "b"}, None])
        assert result.recommendations == ["a", "b"]
        assert ReportPayload(report_type="s", key_findings="one").key_findings == ["one"]
