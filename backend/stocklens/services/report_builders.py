"""
Report Builders — Builder Pattern (GoF)

One builder per report type. Builders are stateless: every call reads from
the injected data source and returns a fresh ``ReportResult``. Exceptions are
left to the ReportingService, which turns them into error results.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from stocklens.config import settings
from stocklens.core.exceptions import InvalidInputException
from stocklens.repositories.inventory_data_source import InventoryDataSource
from stocklens.repositories.inventory_repository import FIELD_ALIASES, SortSpec
from stocklens.schemas.inventory import InventoryRecord
from stocklens.schemas.report import Insight, Recommendation, ReportDefinition, ReportResult, ReportTypeInfo
from stocklens.services.ai_service import AIService
from stocklens.services.inventory_metrics import forecast_item, summarize_inventory

logger = logging.getLogger(__name__)

DEFAULT_MAX_RECORDS = 1000
PREDICTIVE_MAX_RECORDS = 500
RECENT_ITEMS_LIMIT = 50

_RISK_PRIORITY = {"high": "high", "medium": "medium", "low": "low"}


def summary_trends(current: Mapping[str, Any], previous: Mapping[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Per-metric deltas for every numeric key present in both summaries."""
    trends = {}
    for key, now in current.items():
        before = previous.get(key)
        if isinstance(now, bool) or isinstance(before, bool):
            continue
        if not isinstance(now, (int, float)) or not isinstance(before, (int, float)):
            continue
        change = now - before
        trends[key] = {
            "current": now,
            "previous": before,
            "change": round(change, 2),
            "change_pct": round(change / before * 100, 2) if before else None,
            "direction": "up" if change > 0 else ("down" if change < 0 else "flat"),
        }
    return trends


def _naive_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


# ── Abstract Builder ─────────────────────────────────────────────────────────

class BaseReportBuilder(ABC):
    report_type: str = ""
    display_name: str = ""
    description: str = ""
    requires_date_range: bool = False
    default_columns: List[str] = []
    # False for reports over live metrics
    cacheable: bool = True

    def type_info(self) -> ReportTypeInfo:
        return ReportTypeInfo(
            type=self.report_type,
            name=self.display_name,
            description=self.description,
            requires_date_range=self.requires_date_range,
            default_columns=list(self.default_columns),
        )

    @abstractmethod
    def build_report(self, definition: ReportDefinition) -> ReportResult:
        ...

    def build_comparative_report(self, definition: ReportDefinition, previous_summary: Mapping[str, Any]) -> ReportResult:
        result = self.build_report(definition)
        if not result.is_success:
            return result

        trends = summary_trends(result.summary, previous_summary)
        insights = []
        for key, trend in trends.items():
            if trend["direction"] == "flat":
                continue
            worsening = key in ("lowStockCount", "outOfStockCount") and trend["direction"] == "up"
            pct = f" ({trend['change_pct']:+.1f}%)" if trend["change_pct"] is not None else ""
            insights.append(
                Insight(
                    type="trend",
                    message=f"{key} changed from {trend['previous']} to {trend['current']}{pct}",
                    priority="high" if worsening else "low",
                )
            )
        if not insights:
            insights.append(Insight(type="trend", message="No change against the previous period", priority="low"))
        result.add_insights(insights)
        return result

    def build_predictive_report(self, definition: ReportDefinition, forecast_days: int) -> ReportResult:
        raise InvalidInputException(f"Predictive reports are not available for '{self.report_type}'")

    def build_real_time_report(self, definition: ReportDefinition) -> ReportResult:
        raise InvalidInputException(f"Real-time reports are not available for '{self.report_type}'")


# ── Inventory ────────────────────────────────────────────────────────────────

class InventoryReportBuilder(BaseReportBuilder):
    report_type = "inventory"
    display_name = "Inventory Report"
    description = "Stock levels, inventory value and health score"
    requires_date_range = False
    default_columns = [
        "id",
        "sku",
        "name",
        "quantity",
        "min_stock_level",
        "price",
        "category_id",
        "supplier_id",
        "updated_at",
    ]

    def __init__(
        self,
        data_source: InventoryDataSource,
        ai_service: Optional[AIService] = None,
        low_stock_threshold: Optional[int] = None,
    ):
        self._data_source = data_source
        self._ai = ai_service
        self._low_stock_threshold = low_stock_threshold or settings.LOW_STOCK_THRESHOLD

    # ── Filters / projection ─────────────────────────────────────────────────

    def translate_filters(self, definition: ReportDefinition) -> Dict[str, Any]:
        filters = dict(definition.filters)
        stock_level = filters.pop("stockLevel", filters.pop("stock_level", None))
        category = filters.pop("category", None)
        if category is not None:
            filters["category_id"] = category

        if stock_level == "low":
            filters["quantity"] = {"$gt": 0, "$lt": "$min_stock_level"}
        elif stock_level == "out":
            filters["quantity"] = 0
        elif stock_level == "healthy":
            filters["quantity"] = {"$gte": "$min_stock_level"}
        elif stock_level is not None:
            raise InvalidInputException(
                f"Unknown stockLevel filter: {stock_level}", details={"allowed": ["low", "out", "healthy"]}
            )

        if definition.date_range is not None:
            filters["updated_at"] = {
                "$gte": _naive_utc(definition.date_range.start),
                "$lte": _naive_utc(definition.date_range.end),
            }
        return {k: v for k, v in filters.items() if v is not None}

    def sorting(self, definition: ReportDefinition) -> SortSpec:
        return definition.sorting or None

    @staticmethod
    def project(records: Sequence[InventoryRecord], columns: Sequence[str]) -> List[Dict[str, Any]]:
        rows = [r.model_dump(mode="json") for r in records]
        if not columns:
            return rows
        wanted = [FIELD_ALIASES.get(c, c) for c in columns]
        return [{c: row[c] for c in wanted if c in row} for row in rows]

    # ── Summary / insights ───────────────────────────────────────────────────

    @staticmethod
    def summarize(records: Sequence[InventoryRecord]) -> Dict[str, Any]:
        s = summarize_inventory(records)
        return {
            "recordCount": s["record_count"],
            "totalValue": s["total_value"],
            "averagePrice": s["average_price"],
            "lowStockCount": s["low_stock_count"],
            "outOfStockCount": s["out_of_stock_count"],
            "healthScore": s["health_score"],
            "healthStatus": s["health_status"],
        }

    @staticmethod
    def basic_insights(summary: Mapping[str, Any]) -> List[Insight]:
        if not summary["recordCount"]:
            return [Insight(type="info", message="No inventory data available for analysis", priority="low")]
        insights = []
        if summary["outOfStockCount"] > 0:
            insights.append(
                Insight(type="critical", message=f"{summary['outOfStockCount']} items are out of stock", priority="high")
            )
        if summary["lowStockCount"] > 0:
            insights.append(
                Insight(type="warning", message=f"{summary['lowStockCount']} items are low on stock", priority="medium")
            )
        if summary["healthScore"] >= 80:
            insights.append(Insight(type="positive", message="Inventory health is excellent", priority="low"))
        return insights

    def generate_insights(self, records: Sequence[InventoryRecord], summary: Mapping[str, Any]):
        """Returns (insights, ai_assisted)."""
        if not records or self._ai is None or not self._ai.is_available():
            return self.basic_insights(summary), False
        try:
            analysis = self._ai.analyze_inventory(records, "risk_assessment")
        except Exception as exc:  # noqa: BLE001
            logger.warning("report_ai_insights_failed error=%s", exc)
            return self.basic_insights(summary), False
        if analysis.is_fallback:
            return self.basic_insights(summary), False

        priority = _RISK_PRIORITY[analysis.risk_level]
        insights = [Insight(type="ai_analysis", message=analysis.analysis, priority=priority)]
        insights += [Insight(type="ai_recommendation", message=r, priority=priority) for r in analysis.recommendations[:5]]
        return insights, True

    @staticmethod
    def generate_recommendations(summary: Mapping[str, Any]) -> List[Recommendation]:
        recs = []
        if summary["outOfStockCount"] > 0:
            recs.append(
                Recommendation(
                    type="restock",
                    priority="high",
                    action="Immediate restock required for out-of-stock items",
                    impact="Prevent lost sales",
                )
            )
        if summary["lowStockCount"] > 0:
            recs.append(
                Recommendation(
                    type="monitor",
                    priority="medium",
                    action="Monitor low-stock items and plan restocking",
                    impact="Maintain optimal inventory levels",
                )
            )
        if summary["recordCount"] and summary["healthScore"] < 60:
            recs.append(
                Recommendation(
                    type="optimize",
                    priority="medium",
                    action="Review inventory management practices",
                    impact="Improve overall inventory health",
                )
            )
        return recs

    @staticmethod
    def report_info(definition: ReportDefinition, filters: Mapping[str, Any], ai_assisted: bool) -> Dict[str, Any]:
        info: Dict[str, Any] = {"applied_filters": sorted(filters), "ai_assisted": ai_assisted}
        if definition.date_range is not None:
            info["period_days"] = definition.date_range.day_count
        return info

    # ── Builds ───────────────────────────────────────────────────────────────

    def build_report(self, definition: ReportDefinition) -> ReportResult:
        filters = self.translate_filters(definition)
        logger.info("inventory_report_build report_id=%s filters=%s", definition.id, sorted(filters))

        records = self._data_source.list_items(
            filters,
            sort=self.sorting(definition),
            limit=definition.max_records or DEFAULT_MAX_RECORDS,
        )
        summary = self.summarize(records)
        insights, ai_assisted = self.generate_insights(records, summary)
        return ReportResult.success(
            definition,
            summary,
            details=self.project(records, definition.columns),
            insights=insights,
            recommendations=self.generate_recommendations(summary),
            additional_info=self.report_info(definition, filters, ai_assisted),
        )

    def build_real_time_report(self, definition: ReportDefinition) -> ReportResult:
        threshold = self._low_stock_threshold
        if definition.filters:
            scoped = self._data_source.list_items(self.translate_filters(definition), limit=DEFAULT_MAX_RECORDS)
            low = [r for r in scoped if 0 < r.quantity < threshold]
            out = [r for r in scoped if r.quantity == 0]
        else:
            low = self._data_source.find_low_stock(threshold)
            out = self._data_source.find_out_of_stock()
        recent = self._data_source.list_items(sort={"updated_at": -1}, limit=RECENT_ITEMS_LIMIT)

        if not low and not out:
            alert_level = "normal"
        elif out:
            alert_level = "high"
        elif len(low) > 5:
            alert_level = "medium"
        else:
            alert_level = "low"

        summary = {
            "recordCount": len(low) + len(out),
            "lowStockCount": len(low),
            "outOfStockCount": len(out),
            "lastUpdated": datetime.now(timezone.utc).isoformat(),
            "alertLevel": alert_level,
        }
        details = [{**r.model_dump(mode="json"), "alert": "out_of_stock"} for r in out]
        details += [{**r.model_dump(mode="json"), "alert": "low_stock"} for r in low]

        insights = []
        recs = []
        if out:
            insights.append(
                Insight(type="critical", message="Immediate attention required for out-of-stock items", priority="high")
            )
            recs.append(
                Recommendation(
                    type="restock",
                    priority="high",
                    action="Restock out-of-stock items immediately",
                    timeline="within 24 hours",
                )
            )
        if low:
            insights.append(Insight(type="warning", message="Low stock items need monitoring", priority="medium"))
            recs.append(
                Recommendation(
                    type="review",
                    priority="medium",
                    action="Review low-stock items and plan restocking",
                    timeline="within 7 days",
                )
            )
        if not low and not out:
            insights.append(Insight(type="positive", message="All inventory levels are healthy", priority="low"))

        return ReportResult.success(
            definition,
            summary,
            details=details,
            insights=insights,
            recommendations=recs,
            additional_info={
                "low_stock_threshold": threshold,
                "recently_updated": [
                    {"id": r.id, "name": r.name, "quantity": r.quantity, "updated_at": r.updated_at}
                    for r in recent
                ],
            },
        )

    def build_predictive_report(self, definition: ReportDefinition, forecast_days: int) -> ReportResult:
        records = self._data_source.list_items(limit=definition.max_records or PREDICTIVE_MAX_RECORDS)
        forecasts = [forecast_item(r, forecast_days) for r in records]

        prediction = None
        if records and self._ai is not None and self._ai.is_available():
            try:
                prediction = self._ai.predict_stock_needs(records, forecast_days)
            except Exception as exc:  # noqa: BLE001
                logger.warning("predictive_report_ai_failed error=%s", exc)
        ai_assisted = prediction is not None and not prediction.is_fallback
        confidence = prediction.confidence if ai_assisted else 0.5

        restock = [f for f in forecasts if f["recommended_order_quantity"] > 0]
        depleting = [
            f for f in forecasts
            if f["days_until_depletion"] is not None and f["days_until_depletion"] <= forecast_days
        ]
        summary = {
            "recordCount": len(forecasts),
            "forecastPeriod": forecast_days,
            "itemsRequiringRestock": len(restock),
            "itemsDepleting": len(depleting),
            "totalRecommendedUnits": sum(f["recommended_order_quantity"] for f in restock),
            "confidenceLevel": "high" if confidence >= 0.8 else ("medium" if confidence >= 0.6 else "low"),
            "aiAssisted": ai_assisted,
        }

        insights = []
        if depleting:
            insights.append(
                Insight(
                    type="critical",
                    message=f"{len(depleting)} items will run out within {forecast_days} days",
                    priority="high",
                )
            )
        if restock:
            insights.append(
                Insight(
                    type="warning",
                    message=f"{len(restock)} items will fall below minimum stock within {forecast_days} days",
                    priority="medium",
                )
            )
        if not insights:
            insights.append(
                Insight(type="positive", message=f"No stock-outs expected within {forecast_days} days", priority="low")
            )

        ranked = sorted(restock, key=lambda f: f["days_until_depletion"] if f["days_until_depletion"] is not None else 0)
        recs = [
            Recommendation(
                type="restock",
                priority="high" if f in depleting else "medium",
                action=f"Order {f['recommended_order_quantity']} units of {f['name']}",
                impact="Avoid stock-outs during the forecast period",
            )
            for f in ranked[:10]
        ]
        if ai_assisted:
            recs += [
                Recommendation(type="ai", priority="medium", action=r, impact="AI suggested action")
                for r in prediction.recommendations[:3]
            ]

        return ReportResult.success(
            definition,
            summary,
            details=forecasts,
            insights=insights,
            recommendations=recs,
            additional_info={"forecast_days": forecast_days},
        )


class InventoryActivityReportBuilder(InventoryReportBuilder):
    report_type = "inventory_activity"
    display_name = "Inventory Activity Report"
    description = "Items updated within a date range, most recent first"
    requires_date_range = True

    def sorting(self, definition: ReportDefinition) -> SortSpec:
        return definition.sorting or {"updated_at": -1}


# ── AI performance ───────────────────────────────────────────────────────────

class AIPerformanceReportBuilder(BaseReportBuilder):
    report_type = "ai_performance"
    display_name = "AI Performance Report"
    description = "Call volume, failure rate and latency per analysis strategy"
    requires_date_range = False
    default_columns = ["strategy", "calls", "failures", "fallbacks", "average_latency_ms", "success_rate"]
    cacheable = False

    def __init__(self, ai_service: AIService):
        self._ai = ai_service

    def build_report(self, definition: ReportDefinition) -> ReportResult:
        metrics = self._ai.metrics()
        active = self._ai.active_strategy
        rows = [{"strategy": sid, "active": bool(active and active.strategy_id == sid), **m} for sid, m in metrics.items()]

        calls = sum(m["calls"] for m in metrics.values())
        failures = sum(m["failures"] for m in metrics.values())
        fallbacks = sum(m["fallbacks"] for m in metrics.values())
        weighted_latency = sum(m["average_latency_ms"] * m["calls"] for m in metrics.values())
        summary = {
            "recordCount": len(rows),
            "totalCalls": calls,
            "totalFailures": failures,
            "totalFallbacks": fallbacks,
            "successRate": round((calls - failures) / calls, 4) if calls else 0.0,
            "averageLatencyMs": round(weighted_latency / calls, 2) if calls else 0.0,
            "activeStrategy": active.strategy_id if active else None,
        }

        insights = []
        recs = []
        if not calls:
            insights.append(Insight(type="info", message="No AI calls recorded yet", priority="low"))
        elif failures / calls > 0.2:
            insights.append(
                Insight(type="warning", message=f"{failures} of {calls} AI calls failed", priority="high")
            )
            recs.append(
                Recommendation(
                    type="investigate",
                    priority="high",
                    action="Check the availability of the active AI strategy",
                    impact="Restore AI-assisted analysis",
                )
            )
        else:
            insights.append(Insight(type="positive", message="AI strategies are responding normally", priority="low"))
        if fallbacks:
            insights.append(
                Insight(type="info", message=f"{fallbacks} calls were answered by the fallback strategy", priority="medium")
            )

        columns = definition.columns
        details = [{c: r[c] for c in columns if c in r} for r in rows] if columns else rows
        return ReportResult.success(definition, summary, details=details, insights=insights, recommendations=recs)

    def build_real_time_report(self, definition: ReportDefinition) -> ReportResult:
        return self.build_report(definition)
