from typing import List, Optional

import pytest

from stocklens.core.exceptions import InvalidInputException, RemoteUnavailableException
from stocklens.ml.strategies import AdvancedAnalysisStrategy, BaseAnalysisStrategy
from stocklens.schemas.analysis import AnalysisResult, ReportPayload
from stocklens.services.ai_service import AIService

ITEMS = [{"name": "Bolt", "quantity": 3, "min_stock_level": 10, "price": 0.5}]


class StubStrategy(BaseAnalysisStrategy):

    def __init__(self, sid: str, available: bool = True, error: Optional[Exception] = None):
        self._sid = sid
        self._available = available
        self._error = error
        self.calls: List[str] = []

    @property
    def strategy_id(self) -> str:
        return self._sid

    @property
    def display_name(self) -> str:
        return self._sid.title()

    def is_available(self) -> bool:
        return self._available

    def analyze(self, data, analysis_type="stock_prediction"):
        self._build_request(data, analysis_type)
        self.calls.append(analysis_type)
        if self._error:
            raise self._error
        return AnalysisResult(analysis_type=analysis_type, risk_level="low", generated_by=self._sid)

    def generate(self, data, report_type="summary"):
        self.calls.append(report_type)
        if self._error:
            raise self._error
        return ReportPayload(report_type=report_type, generated_by=self._sid)


class TestRegistry:

    def test_first_registered_strategy_is_active_by_default(self):
        service = AIService(strategies=[StubStrategy("a"), StubStrategy("b")], active_strategy="", enabled=True)
        assert service.active_strategy.strategy_id == "a"
        assert service.available_strategies() == ["a", "b"]

    def test_set_strategy_switches_and_rejects_unknown(self):
        service = AIService(strategies=[StubStrategy("a"), StubStrategy("b")], active_strategy="a", enabled=True)
        assert service.set_strategy("b") is True
        assert service.active_strategy.strategy_id == "b"
        assert service.set_strategy("nope") is False
        assert service.active_strategy.strategy_id == "b"

    def test_fallback_must_differ_from_active(self):
        service = AIService(
            strategies=[StubStrategy("a"), StubStrategy("b")],
            active_strategy="a",
            fallback_strategy="a",
            enabled=True,
        )
        assert service.fallback_strategy is None

    def test_switching_to_fallback_clears_it(self):
        service = AIService(
            strategies=[StubStrategy("a"), StubStrategy("b")],
            active_strategy="a",
            fallback_strategy="b",
            enabled=True,
        )
        service.set_strategy("b")
        assert service.fallback_strategy is None

    def test_availability(self):
        service = AIService(strategies=[StubStrategy("a", available=False)], active_strategy="a", enabled=True)
        assert service.is_available() is False
        assert service.strategy_availability() == {"a": False}

    def test_disabled_service_is_unavailable_and_refuses_calls(self):
        service = AIService(strategies=[StubStrategy("a")], active_strategy="a", enabled=False)
        assert service.is_available() is False
        with pytest.raises(RemoteUnavailableException):
            service.analyze_inventory(ITEMS, "risk_assessment")


class TestDispatch:

    def test_routes_to_active_strategy(self):
        a, b = StubStrategy("a"), StubStrategy("b")
        service = AIService(strategies=[a, b], active_strategy="b", enabled=True)
        result = service.analyze_inventory(ITEMS, "risk_assessment")
        assert result.generated_by == "b"
        assert a.calls == []
        assert b.calls == ["risk_assessment"]

    def test_error_without_fallback_propagates(self):
        service = AIService(
            strategies=[StubStrategy("a", error=RemoteUnavailableException("down"))],
            active_strategy="a",
            fallback_strategy="",
            enabled=True,
        )
        with pytest.raises(RemoteUnavailableException):
            service.detect_anomalies(ITEMS)
        assert service.metrics()["a"]["failures"] == 1

    def test_configured_fallback_answers_and_is_flagged(self):
        primary = StubStrategy("primary", error=RemoteUnavailableException("down"))
        secondary = StubStrategy("secondary")
        service = AIService(
            strategies=[primary, secondary],
            active_strategy="primary",
            fallback_strategy="secondary",
            enabled=True,
        )
        result = service.predict_stock_needs(ITEMS, days=7)
        assert result.is_fallback is True
        assert result.generated_by == "secondary"
        metrics = service.metrics()
        assert metrics["primary"]["failures"] == 1
        assert metrics["secondary"]["fallbacks"] == 1

    def test_unavailable_fallback_is_not_used(self):
        primary = StubStrategy("primary", error=RuntimeError("boom"))
        secondary = StubStrategy("secondary", available=False)
        service = AIService(
            strategies=[primary, secondary],
            active_strategy="primary",
            fallback_strategy="secondary",
            enabled=True,
        )
        with pytest.raises(RuntimeError):
            service.optimize_stock_levels(ITEMS)
        assert secondary.calls == []

    def test_invalid_input_is_never_retried_on_fallback(self):
        secondary = StubStrategy("secondary")
        service = AIService(
            strategies=[StubStrategy("primary"), secondary],
            active_strategy="primary",
            fallback_strategy="secondary",
            enabled=True,
        )
        with pytest.raises(InvalidInputException):
            service.analyze_inventory([], "risk_assessment")
        assert secondary.calls == []

    def test_sales_trends_sends_sales_rows(self):
        service = AIService(strategies=[AdvancedAnalysisStrategy()], active_strategy="advanced_analysis", enabled=True)
        sales = [{"date": f"2024-01-{d:02d}", "quantity": 10 - d, "revenue": 5.0} for d in range(1, 8)]
        result = service.analyze_sales_trends(sales, period_days=7)
        assert result.details["trend_direction"] == "decreasing"

    def test_metrics_count_successful_calls(self):
        service = AIService(strategies=[StubStrategy("a")], active_strategy="a", enabled=True)
        service.predict_inventory_turnover(ITEMS)
        service.generate_report(ITEMS, "summary")
        stats = service.metrics()["a"]
        assert stats["calls"] == 2
        assert stats["failures"] == 0
        assert stats["success_rate"] == 1.0


SUPPLIERS = [
    {"name": "Acme", "lead_time_days": 6, "reliability_score": 0.9, "cost_score": 0.8},
    {"name": "Slowco", "lead_time_days": 45, "reliability_score": 0.6},
]
HISTORY = [{"date": f"2024-01-0{d}", "demand": q, "lead_time": 4} for d, q in enumerate([10, 12, 8, 14, 6], 1)]


class TestPurchasingAndSafetyStock:

    def test_purchase_recommendations_from_active_strategy(self):
        service = AIService(strategies=[AdvancedAnalysisStrategy()], enabled=True)
        result = service.generate_purchase_recommendations(SUPPLIERS)
        assert result.is_fallback is False
        assert result.generated_by == "advanced_analysis"
        assert result.details["suppliers"][0]["supplier_name"] == "Acme"

    def test_failing_strategy_degrades_to_local_ranking(self):
        stub = StubStrategy("remote", error=RemoteUnavailableException("down"))
        service = AIService(strategies=[stub], enabled=True)
        result = service.generate_purchase_recommendations(SUPPLIERS)
        assert stub.calls == ["purchase_recommendations"]
        assert result.is_fallback is True
        assert result.generated_by == "rule_based"
        assert result.confidence == 0.7
        assert [r["recommendation"] for r in result.details["suppliers"]] == ["highly_recommended", "not_recommended"]

    def test_unavailable_service_calculates_safety_stock_locally(self):
        stub = StubStrategy("remote", available=False)
        service = AIService(strategies=[stub], enabled=True)
        result = service.calculate_safety_stock(HISTORY)
        assert stub.calls == []
        assert result.is_fallback is True
        assert result.details["safety_stock"] == pytest.approx(10.44, abs=0.01)
        assert result.details["formula_used"] == "z_score * std_dev_demand * sqrt(avg_lead_time)"

    def test_empty_history_has_zero_confidence(self):
        service = AIService(strategies=[AdvancedAnalysisStrategy()], enabled=True)
        result = service.calculate_safety_stock([])
        assert result.is_fallback is True
        assert result.confidence == 0.0
        assert result.details["safety_stock"] == 0.0

    def test_rows_that_are_not_mappings_are_rejected(self):
        service = AIService(strategies=[AdvancedAnalysisStrategy()], enabled=True)
        with pytest.raises(InvalidInputException):
            service.generate_purchase_recommendations(["Acme"])
