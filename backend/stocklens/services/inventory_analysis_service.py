"""
Inventory Analysis Service — Service Layer (SRP / DIP)

Orchestrates data source reads, local aggregates and the AI layer. Local
aggregates are always computed first; the AI contribution is optional and any
failure there degrades the response to rule-based output with
``is_fallback=True``. Operations never raise: a failing data source yields a
response with ``status="error"`` and the usual field set.
"""
import logging
import time
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, TypeVar

from stocklens.config import settings
from stocklens.core.exceptions import DataSourceException
from stocklens.ml import algorithms
from stocklens.repositories.inventory_data_source import InventoryDataSource
from stocklens.schemas.ai_analysis import (
    ActionItem,
    AIStatusResponse,
    ComprehensiveAnalysisResponse,
    CriticalAlert,
    CriticalItems,
    CriticalMonitoringResponse,
    ExecutiveSummary,
    InventorySummary,
    ItemForecast,
    ItemOptimization,
    MonitoringSummary,
    OptimizationResponse,
    PredictionResponse,
    ReportPeriod,
    SalesTrendResponse,
    SavingsAnalysis,
    StockOptimizationSummary,
    WeeklyMetrics,
    WeeklyReportResponse,
)
from stocklens.schemas.inventory import InventoryRecord, SalesRecord
from stocklens.services.ai_service import AIService
from stocklens.services.inventory_metrics import classify, forecast_item, summarize_inventory, urgency

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_LEAD_TIME_DAYS = 7
UNIT_COST_RATIO = 0.6
MAX_STOCK_MULTIPLIER = 5

IMPLEMENTATION_PLAN = [
    "Phase 1: apply high-priority optimizations within the first 30 days",
    "Phase 2: apply medium-priority optimizations over the next 30 days",
    "Phase 3: review long-term stocking strategy and supplier lead times",
    "Success criteria: 20% reduction in carrying costs within 90 days",
]

AI_CAPABILITIES = [
    "comprehensive_analysis",
    "weekly_report",
    "critical_monitoring",
    "inventory_prediction",
    "inventory_optimization",
    "sales_trends",
    "purchase_recommendations",
    "safety_stock",
]

_PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}


def optimization_row(item: InventoryRecord) -> Dict[str, Any]:
    return {
        "name": item.name,
        "current_stock": item.quantity,
        "min_stock": item.min_stock_level,
        "max_stock": item.min_stock_level * MAX_STOCK_MULTIPLIER,
        "lead_time_days": DEFAULT_LEAD_TIME_DAYS,
        "unit_cost": round(item.price * UNIT_COST_RATIO, 4),
        "daily_usage": algorithms.estimate_daily_usage(item.quantity, item.min_stock_level),
        "category": item.category_id or "general",
    }


def rule_based_optimization(row: Dict[str, Any]) -> ItemOptimization:
    current = float(row["current_stock"])
    usage = float(row["daily_usage"])
    lead = float(row["lead_time_days"])
    unit_cost = float(row["unit_cost"])
    safety = max(0.0, usage * lead * 1.5)
    reorder_point = max(0.0, usage * lead + safety)
    optimal = min(float(row["max_stock"]), max(float(row["min_stock"]), reorder_point * 1.2))
    savings = max(0.0, round((current - optimal) * unit_cost, 2))
    return ItemOptimization(
        name=row["name"],
        current_stock=current,
        optimal_stock=round(optimal, 2),
        safety_stock=round(safety, 2),
        reorder_point=round(reorder_point, 2),
        potential_savings=savings,
        priority=algorithms.optimization_priority(savings, current, reorder_point),
    )


def _entry_number(entry: Mapping[str, Any], *keys: str, default: Optional[float] = None) -> Optional[float]:
    for key in keys:
        if entry.get(key) is not None:
            value = entry[key]
            if isinstance(value, bool):
                raise ValueError(f"{key} must be a number")
            return float(value)
    return default


def optimizations_by_name(raw: Any) -> Dict[str, Mapping[str, Any]]:
    """Accept the local dict-by-name shape and the remote list-of-rows shape."""
    if not raw:
        return {}
    if isinstance(raw, Mapping):
        return {str(name): entry for name, entry in raw.items()}
    if isinstance(raw, (list, tuple)):
        out = {}
        for entry in raw:
            if not isinstance(entry, Mapping) or not entry.get("name"):
                raise ValueError("optimization rows must be objects with a name")
            out[str(entry["name"])] = entry
        return out
    raise ValueError(f"unexpected optimizations payload: {type(raw).__name__}")


def parse_ai_optimization(row: Dict[str, Any], entry: Any) -> ItemOptimization:
    if entry is None:
        return rule_based_optimization(row)
    if not isinstance(entry, Mapping):
        raise ValueError(f"optimization for {row['name']} is not an object")
    current = float(row["current_stock"])
    optimal = _entry_number(entry, "optimal_stock", "optimalStock", default=current)
    reorder_point = _entry_number(entry, "reorder_point", "reorderPoint", default=0.0)
    savings = _entry_number(
        entry,
        "potential_savings",
        "potentialSavings",
        default=round(max(0.0, current - optimal) * float(row["unit_cost"]), 2),
    )
    priority = entry.get("priority")
    if priority not in _PRIORITY_ORDER:
        priority = algorithms.optimization_priority(savings, current, reorder_point)
    return ItemOptimization(
        name=row["name"],
        current_stock=current,
        optimal_stock=optimal,
        safety_stock=_entry_number(entry, "safety_stock", "safetyStock", default=0.0),
        reorder_point=reorder_point,
        potential_savings=savings,
        priority=priority,
    )


def predicted_depletion(details: Mapping[str, Any]) -> Optional[str]:
    """Depletion date from either the per-item predictions or a timeline block."""
    predictions = details.get("predictions")
    if isinstance(predictions, (list, tuple)) and predictions and isinstance(predictions[0], Mapping):
        value = predictions[0].get("depletion_date")
        if value:
            return str(value)
    timeline = details.get("timeline")
    if isinstance(timeline, Mapping) and timeline.get("depletionDate"):
        return str(timeline["depletionDate"])
    return None


def restock_recommendations(items: Sequence[InventoryRecord]) -> List[str]:
    out = []
    for item in items:
        if item.quantity < item.min_stock_level:
            needed = max(item.min_stock_level * 2 - item.quantity, 10)
            out.append(f"Restock {item.name}: {needed} units needed (current: {item.quantity})")
    return out or ["Stock levels are adequate for all items"]


def risk_from_health(health_status: str) -> str:
    if health_status in ("critical", "poor"):
        return "high"
    if health_status == "fair":
        return "medium"
    return "low"


class InventoryAnalysisService:

    def __init__(
        self,
        data_source: InventoryDataSource,
        ai_service: AIService,
        max_records: Optional[int] = None,
    ):
        self._data_source = data_source
        self._ai = ai_service
        self._max_records = max_records or settings.ANALYSIS_MAX_RECORDS

    # ── Helpers ──────────────────────────────────────────────────────────────

    def _load_items(self) -> List[InventoryRecord]:
        return self._data_source.list_items(limit=self._max_records)

    def _try_ai(self, operation: str, call: Callable[[], T]) -> Optional[T]:
        try:
            return call()
        except Exception as exc:  # noqa: BLE001
            logger.warning("ai_degraded operation=%s error=%s", operation, exc)
            return None

    def _optimize(self, items: Sequence[InventoryRecord], ai_ready: bool):
        """Returns (optimizations, degraded, method)."""
        rows = [optimization_row(i) for i in items]
        if not rows:
            return [], False, "rule_based"

        parsed = self._try_ai("optimize_stock_levels", lambda: self._ai_optimizations(rows)) if ai_ready else None
        if parsed is not None:
            return parsed, False, f"ai:{self._ai.active_strategy.strategy_id}"

        return [rule_based_optimization(r) for r in rows], True, "rule_based"

    def _ai_optimizations(self, rows: List[Dict[str, Any]]) -> Optional[List[ItemOptimization]]:
        result = self._ai.optimize_stock_levels(rows)
        if result.is_fallback:
            return None
        by_name = optimizations_by_name(result.details.get("optimizations"))
        if not by_name:
            return None
        return [parse_ai_optimization(row, by_name.get(row["name"])) for row in rows]

    def _ai_depletion(self, item: InventoryRecord) -> Optional[Tuple[Optional[str], str]]:
        prediction = self._ai.predict_stock_needs([item], 7)
        if prediction.is_fallback:
            return None
        action = prediction.recommendations[0] if prediction.recommendations else "Review stock levels"
        return predicted_depletion(prediction.details), action

    @staticmethod
    def _forecast(item: InventoryRecord, days: int) -> ItemForecast:
        return ItemForecast(**forecast_item(item, days))

    # ── Operations ───────────────────────────────────────────────────────────

    def get_comprehensive_analysis(self) -> ComprehensiveAnalysisResponse:
        start = time.perf_counter()
        logger.info("comprehensive_analysis_started")
        try:
            items = self._load_items()
            low = self._data_source.find_low_stock()
            out = self._data_source.find_out_of_stock()
        except DataSourceException as exc:
            logger.error("comprehensive_analysis_failed error=%s", exc.message)
            return ComprehensiveAnalysisResponse(status="error", is_fallback=True, error_message=exc.message)

        summary = InventorySummary(**summarize_inventory(items))
        ai_ready = bool(items) and self._ai.is_available()

        analysis = None
        if ai_ready:
            analysis = self._try_ai(
                "comprehensive_analysis",
                lambda: self._ai.analyze_inventory(items, "comprehensive_analysis"),
            )
        optimizations, optimization_degraded, _ = self._optimize(items, ai_ready)

        if analysis is not None and not analysis.is_fallback:
            risk = analysis.risk_level
            insights = analysis.recommendations[:10]
        else:
            risk = risk_from_health(summary.health_status) if items else "unknown"
            insights = ["AI analysis unavailable, using basic metrics"] + restock_recommendations(items)[:9]

        response = ComprehensiveAnalysisResponse(
            is_fallback=analysis is None or analysis.is_fallback or optimization_degraded,
            summary=summary,
            risk_assessment=risk,
            ai_insights=insights,
            critical_items=CriticalItems(low_stock=low, out_of_stock=out),
            stock_optimization=StockOptimizationSummary(
                optimizations=optimizations,
                total_potential_savings=round(sum(o.potential_savings for o in optimizations), 2),
            ),
            items_analyzed=len(items),
            execution_time_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        logger.info(
            "comprehensive_analysis_completed items=%s fallback=%s duration_ms=%.2f",
            response.items_analyzed,
            response.is_fallback,
            response.execution_time_ms,
        )
        return response

    def generate_weekly_report(self) -> WeeklyReportResponse:
        end = date.today()
        period = ReportPeriod(start=end - timedelta(days=7), end=end)
        try:
            items = self._load_items()
        except DataSourceException as exc:
            logger.error("weekly_report_failed error=%s", exc.message)
            return WeeklyReportResponse(status="error", is_fallback=True, error_message=exc.message, period=period)

        summary = summarize_inventory(items)
        groups = classify(items)
        payload = None
        if items and self._ai.is_available():
            payload = self._try_ai("weekly_summary", lambda: self._ai.generate_report(items, "weekly_summary"))

        if payload is not None and not payload.is_fallback:
            findings, recommendations = payload.key_findings, payload.recommendations
        else:
            findings = [
                f"{summary['out_of_stock_count']} items are out of stock",
                f"{summary['low_stock_count']} items are low on stock",
                f"Inventory health is {summary['health_status']} ({summary['health_score']})",
            ]
            recommendations = restock_recommendations(items)

        actions = [
            ActionItem(priority="high", action=f"Restock {i.name}", reason="Out of stock")
            for i in groups["out_of_stock"]
        ]
        for item in groups["low_stock"]:
            level = urgency(item)
            actions.append(
                ActionItem(
                    priority="high" if level in ("critical", "high") else level,
                    action=f"Reorder {item.name}",
                    reason=f"{item.quantity} units left, minimum {item.min_stock_level}",
                )
            )
        actions.sort(key=lambda a: _PRIORITY_ORDER.get(a.priority, 3))

        total = summary["record_count"]
        return WeeklyReportResponse(
            is_fallback=payload is None or payload.is_fallback,
            period=period,
            executive_summary=ExecutiveSummary(
                overview=f"Weekly inventory report covering {period.start.isoformat()} to {period.end.isoformat()}",
                key_findings=findings,
                recommendations=recommendations,
            ),
            key_metrics=WeeklyMetrics(
                total_inventory_value=summary["total_value"],
                average_price=summary["average_price"],
                low_stock_count=summary["low_stock_count"],
                out_of_stock_count=summary["out_of_stock_count"],
                health_score=summary["health_score"],
                out_of_stock_percentage=round(summary["out_of_stock_count"] / total * 100, 2) if total else 0.0,
            ),
            action_items=actions[:20],
        )

    def monitor_critical_items(self) -> CriticalMonitoringResponse:
        logger.info("critical_monitoring_started")
        try:
            low = self._data_source.find_low_stock()
            out = self._data_source.find_out_of_stock()
        except DataSourceException as exc:
            logger.error("critical_monitoring_failed error=%s", exc.message)
            return CriticalMonitoringResponse(status="error", is_fallback=True, error_message=exc.message)

        ai_ready = bool(low or out) and self._ai.is_available()
        degraded = False
        alerts: List[CriticalAlert] = []
        today = date.today()

        for item in low:
            prediction = None
            if ai_ready:
                prediction = self._try_ai("predict_stock_needs", lambda: self._ai_depletion(item))
            if prediction is not None:
                predicted, action = prediction
            else:
                degraded = True
                days_left = self._forecast(item, 7).days_until_depletion
                predicted = (today + timedelta(days=int(days_left))).isoformat() if days_left is not None else None
                action = "Review stock levels"
            alerts.append(
                CriticalAlert(
                    type="low_stock",
                    item_id=item.id,
                    item_name=item.name,
                    current_stock=item.quantity,
                    min_stock=item.min_stock_level,
                    urgency=urgency(item),
                    predicted_out_of_stock=predicted,
                    recommended_action=action,
                )
            )

        for item in out:
            alerts.append(
                CriticalAlert(
                    type="out_of_stock",
                    item_id=item.id,
                    item_name=item.name,
                    current_stock=0,
                    min_stock=item.min_stock_level,
                    urgency="critical",
                    recommended_action="Immediate restock required",
                )
            )

        risk = None
        if ai_ready:
            assessment = self._try_ai("risk_assessment", lambda: self._ai.analyze_inventory(low + out, "risk_assessment"))
            if assessment is not None and not assessment.is_fallback:
                risk = assessment.risk_level
        if risk is None:
            degraded = degraded or bool(low or out)
            risk = "high" if out else ("medium" if low else "low")

        logger.info("critical_monitoring_completed alerts=%s risk_level=%s", len(alerts), risk)
        return CriticalMonitoringResponse(
            is_fallback=degraded,
            alerts=alerts,
            risk_level=risk,
            total_critical_items=len(alerts),
            summary=MonitoringSummary(
                low_stock_count=len(low),
                out_of_stock_count=len(out),
                urgent_alerts=sum(1 for a in alerts if a.urgency in ("critical", "high")),
            ),
        )

    def predict_inventory_needs(self, forecast_days: int = 30) -> PredictionResponse:
        logger.info("inventory_prediction_started forecast_days=%s", forecast_days)
        try:
            items = self._load_items()
        except DataSourceException as exc:
            logger.error("inventory_prediction_failed error=%s", exc.message)
            return PredictionResponse(
                status="error", is_fallback=True, error_message=exc.message, forecast_period=forecast_days
            )

        forecasts = [self._forecast(i, forecast_days) for i in items]
        prediction = None
        if items and self._ai.is_available():
            prediction = self._try_ai(
                "predict_stock_needs", lambda: self._ai.predict_stock_needs(items, forecast_days)
            )

        if prediction is not None and not prediction.is_fallback:
            risk, actions, confidence = prediction.risk_level, prediction.recommendations, prediction.confidence
        else:
            at_risk = [f for f in forecasts if f.recommended_order_quantity > 0]
            share = len(at_risk) / len(forecasts) if forecasts else 0.0
            risk = "high" if share > 0.5 else ("medium" if at_risk else "low")
            actions = [f"Order {f.recommended_order_quantity} units of {f.name}" for f in at_risk] or [
                "No restocking needed within the forecast period"
            ]
            confidence = 0.5

        return PredictionResponse(
            is_fallback=prediction is None or prediction.is_fallback,
            forecast_period=forecast_days,
            risk_level=risk,
            predictions=forecasts,
            recommended_actions=actions,
            confidence_score=confidence,
        )

    def optimize_inventory(self) -> OptimizationResponse:
        logger.info("inventory_optimization_started")
        try:
            items = self._load_items()
        except DataSourceException as exc:
            logger.error("inventory_optimization_failed error=%s", exc.message)
            return OptimizationResponse(status="error", is_fallback=True, error_message=exc.message)

        ai_ready = bool(items) and self._ai.is_available()
        optimizations, degraded, method = self._optimize(items, ai_ready)

        item_savings = {o.name: o.potential_savings for o in optimizations if o.potential_savings > 0}
        total_savings = round(sum(item_savings.values()), 2)
        total_value = sum(i.stock_value for i in items)

        logger.info("inventory_optimization_completed items=%s savings=%.2f", len(items), total_savings)
        return OptimizationResponse(
            is_fallback=degraded or not ai_ready,
            optimizations=optimizations,
            savings_analysis=SavingsAnalysis(
                total_potential_savings=total_savings,
                savings_percentage=round(total_savings / total_value * 100, 2) if total_value else 0.0,
                item_savings=item_savings,
            ),
            implementation_plan=list(IMPLEMENTATION_PLAN),
            total_items_optimized=len(optimizations),
            optimization_method=method,
        )

    def analyze_sales_trends(self, sales: Sequence[SalesRecord], period_days: int = 30) -> SalesTrendResponse:
        total_quantity = round(sum(s.quantity for s in sales), 2)
        total_revenue = round(sum(s.revenue for s in sales), 2)
        growth = 0.0
        if len(sales) >= 2 and sales[0].quantity:
            growth = round((sales[-1].quantity - sales[0].quantity) / sales[0].quantity, 4)

        result = None
        if sales and self._ai.is_available():
            result = self._try_ai(
                "sales_trends",
                lambda: self._ai.analyze_sales_trends([s.model_dump() for s in sales], period_days),
            )

        if result is not None and not result.is_fallback:
            trend = str(result.details.get("trend_direction") or result.details.get("trendDirection") or "stable")
            confidence, recommendations = result.confidence, result.recommendations
        else:
            trend = "increasing" if growth > 0 else ("decreasing" if growth < 0 else "stable")
            confidence = 0.6
            recommendations = [
                "Consider manual analysis for more accurate trends",
                "Monitor sales data for pattern changes",
            ]

        return SalesTrendResponse(
            is_fallback=result is None or result.is_fallback,
            period_analyzed=period_days,
            trend=trend,
            growth_rate=growth,
            average_daily_sales=round(total_quantity / max(1, period_days), 2),
            total_quantity=total_quantity,
            total_revenue=total_revenue,
            confidence=confidence,
            recommendations=recommendations,
        )

    def get_ai_status(self) -> AIStatusResponse:
        active = self._ai.active_strategy
        fallback = self._ai.fallback_strategy
        return AIStatusResponse(
            ai_enabled=self._ai.enabled,
            ai_service_available=self._ai.is_available(),
            active_strategy=active.strategy_id if active else None,
            fallback_strategy=fallback.strategy_id if fallback else None,
            available_strategies=self._ai.available_strategies(),
            strategy_availability=self._ai.strategy_availability(),
            capabilities=list(AI_CAPABILITIES),
            metrics=self._ai.metrics(),
        )
