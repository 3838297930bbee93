"""
Analysis Strategy Pattern — GoF Strategy Pattern

Principles applied:
- Strategy Pattern (GoF): each analysis backend (local ML, remote LLM) is an interchangeable strategy.
- Open/Closed Principle (OCP): add a backend by creating a new strategy class.
- Liskov Substitution Principle (LSP): every strategy honours the same analyze/generate contract.
- Dependency Inversion Principle (DIP): AIService depends on BaseAnalysisStrategy, not concrete backends.
"""
import logging
import math
from abc import ABC, abstractmethod
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Mapping, Union

from pydantic import BaseModel

from stocklens.core.exceptions import InvalidInputException
from stocklens.ml import algorithms
from stocklens.schemas.analysis import AnalysisRequest, AnalysisResult, ReportPayload

logger = logging.getLogger(__name__)

AnalysisInput = Union[AnalysisRequest, Mapping[str, Any]]

ANOMALY_QUANTITY_CEILING = 10000
SAFETY_STOCK_SERVICE_LEVEL = 0.9


# ── Row accessors ────────────────────────────────────────────────────────────

def _num(row: Mapping[str, Any], *keys: str, default: float = 0.0) -> float:
    for key in keys:
        value = row.get(key)
        if value is not None:
            try:
                return float(value)
            except (TypeError, ValueError):
                continue
    return default


def _name(row: Mapping[str, Any], position: int) -> str:
    return str(row.get("name") or row.get("sku") or f"item-{position + 1}")


def _quantity(row: Mapping[str, Any]) -> float:
    return _num(row, "quantity", "current_stock", "currentStock")


def _min_stock(row: Mapping[str, Any]) -> float:
    return _num(row, "min_stock_level", "min_stock", "minStockLevel", default=5.0)


def _as_row(entry: Any) -> Dict[str, Any]:
    if isinstance(entry, BaseModel):
        return entry.model_dump(mode="json")
    if isinstance(entry, Mapping):
        return dict(entry)
    raise InvalidInputException("Analysis items must be mappings", details={"item": repr(entry)[:100]})


def stock_counts(rows) -> Dict[str, int]:
    low = out = 0
    for row in rows:
        qty = _quantity(row)
        if qty <= 0:
            out += 1
        elif qty < _min_stock(row):
            low += 1
    return {"low_stock": low, "out_of_stock": out}


# ── Supplier and safety-stock fields ─────────────────────────────────────────

def purchase_recommendation_fields(rows) -> Dict[str, Any]:
    """Rank suppliers by weighted reliability, lead time and cost."""
    ranked = []
    for i, row in enumerate(_as_row(r) for r in rows):
        lead = _num(row, "lead_time_days", "leadTimeDays", default=30.0)
        reliability = _num(row, "reliability_score", "reliabilityScore", default=0.5)
        score = algorithms.supplier_score(lead, reliability, _num(row, "cost_score", "costScore", default=0.5))
        ranked.append(
            {
                "supplier_name": _name(row, i),
                "score": score,
                "recommendation": algorithms.supplier_rating(score),
                "lead_time_days": lead,
                "reliability": reliability,
            }
        )
    ranked.sort(key=lambda r: r["score"], reverse=True)

    ratings = {r["recommendation"] for r in ranked}
    if "highly_recommended" in ratings:
        risk = "low"
    elif "recommended" in ratings:
        risk = "medium"
    else:
        risk = "high"
    recommendations = [f"Prefer {r['supplier_name']} (score {r['score']:.2f})" for r in ranked[:3]]
    recommendations += [f"Avoid {r['supplier_name']}" for r in ranked if r["recommendation"] == "not_recommended"]

    return {
        "risk_level": risk,
        "recommendations": recommendations or ["No suppliers to evaluate"],
        "analysis": f"Ranked {len(ranked)} suppliers",
        "details": {
            "suppliers": ranked,
            "average_score": round(sum(r["score"] for r in ranked) / len(ranked), 4) if ranked else 0.0,
            "evaluation_criteria": {"reliability": 0.5, "lead_time": 0.3, "cost": 0.2},
        },
    }


def safety_stock_fields(rows) -> Dict[str, Any]:
    """Safety stock from demand history at the configured service level."""
    history = [_as_row(r) for r in rows]
    if not history:
        return {
            "risk_level": "medium",
            "confidence": 0.0,
            "recommendations": ["Collect demand history before sizing safety stock"],
            "analysis": "Insufficient data for calculation",
            "details": {"safety_stock": 0.0, "error": "Insufficient data for calculation"},
        }
    stats = algorithms.demand_statistics(
        [_num(r, "demand") for r in history],
        [_num(r, "lead_time", "leadTime", "lead_time_days") for r in history],
    )
    variation = stats["demand_std_dev"] / stats["average_demand"] if stats["average_demand"] else 0.0
    risk = "high" if variation > 0.5 else ("medium" if variation > 0.2 else "low")
    stats.update(
        {
            "service_level": SAFETY_STOCK_SERVICE_LEVEL,
            "coefficient_of_variation": round(variation, 4),
            "formula_used": "z_score * std_dev_demand * sqrt(avg_lead_time)",
        }
    )
    return {
        "risk_level": risk,
        "recommendations": [f"Hold at least {stats['safety_stock']:g} units of safety stock"],
        "analysis": f"Safety stock computed from {len(history)} demand observations",
        "details": stats,
    }


# ── Abstract Strategy ────────────────────────────────────────────────────────

class BaseAnalysisStrategy(ABC):
    """
    Abstract base class for all analysis strategies.

    ``analyze`` and ``generate`` never let internal algorithm errors escape;
    they return a result flagged ``is_fallback`` instead. Transport errors of
    remote strategies (``RemoteUnavailableException``) do propagate.
    """

    @property
    @abstractmethod
    def strategy_id(self) -> str:
        """Unique identifier (e.g., 'advanced_analysis')."""
        ...

    @property
    @abstractmethod
    def display_name(self) -> str:
        ...

    @abstractmethod
    def analyze(self, data: AnalysisInput, analysis_type: str = "stock_prediction") -> AnalysisResult:
        ...

    @abstractmethod
    def generate(self, data: AnalysisInput, report_type: str = "summary") -> ReportPayload:
        ...

    @abstractmethod
    def is_available(self) -> bool:
        ...

    @staticmethod
    def _period_days(data: Mapping[str, Any]) -> int:
        raw = data.get("period_days")
        if raw is None:
            return 30
        try:
            period_days = int(raw)
        except (TypeError, ValueError) as exc:
            raise InvalidInputException("period_days must be an integer", details={"period_days": raw}) from exc
        if period_days < 0:
            raise InvalidInputException("period_days must not be negative", details={"period_days": raw})
        return period_days

    def _build_request(self, data: AnalysisInput, analysis_type: str) -> AnalysisRequest:
        """Normalise input and reject requests without rows."""
        if isinstance(data, AnalysisRequest):
            if not data.items:
                raise InvalidInputException("Analysis data must contain a non-empty 'items' collection")
            if data.analysis_type == analysis_type:
                return data
            return data.model_copy(update={"analysis_type": analysis_type})

        if not isinstance(data, Mapping):
            raise InvalidInputException("Analysis data must be a mapping")

        rows = data.get("items") or data.get("sales_data")
        if not rows:
            raise InvalidInputException("Analysis data must contain a non-empty 'items' collection")

        context = {k: v for k, v in data.items() if k not in ("items", "sales_data", "period_days")}
        return AnalysisRequest(
            items=tuple(_as_row(r) for r in rows),
            analysis_type=analysis_type,
            period_days=self._period_days(data),
            context=context,
        )


# ── Concrete Strategy: local analysis ────────────────────────────────────────

class AdvancedAnalysisStrategy(BaseAnalysisStrategy):
    """Deterministic numpy/pandas analysis with no I/O."""

    def __init__(self, ml_enabled: bool = True):
        self._ml_enabled = ml_enabled
        self._analyzers: Dict[str, Callable[[AnalysisRequest], AnalysisResult]] = {
            "sales_trends": self._sales_trends,
            "inventory_turnover": self._inventory_turnover,
            "stock_optimization": self._stock_optimization,
            "stock_prediction": self._stock_prediction,
            "anomaly_detection": self._anomaly_detection,
            "risk_assessment": self._risk_assessment,
            "comprehensive_analysis": self._comprehensive_analysis,
            "purchase_recommendations": self._purchase_recommendations,
            "safety_stock": self._safety_stock,
        }
        self._reporters: Dict[str, Callable[[AnalysisRequest], ReportPayload]] = {
            "summary": self._summary_report,
            "weekly_summary": self._weekly_report,
            "comprehensive": self._comprehensive_report,
            "executive": self._executive_report,
        }

    @property
    def strategy_id(self) -> str:
        return "advanced_analysis"

    @property
    def display_name(self) -> str:
        return "Advanced Analysis (local ML)"

    def is_available(self) -> bool:
        return self._ml_enabled

    def analyze(self, data: AnalysisInput, analysis_type: str = "stock_prediction") -> AnalysisResult:
        request = self._build_request(data, analysis_type)
        logger.info(
            "advanced_analysis_started analysis_type=%s data_points=%s", analysis_type, len(request.items)
        )
        handler = self._analyzers.get(analysis_type)
        if handler is None or not self._ml_enabled:
            return self._fallback_analysis(analysis_type)
        try:
            return handler(request)
        except Exception as exc:  # noqa: BLE001
            logger.error("advanced_analysis_failed analysis_type=%s error=%s", analysis_type, exc)
            return self._fallback_analysis(analysis_type, reason=str(exc))

    def generate(self, data: AnalysisInput, report_type: str = "summary") -> ReportPayload:
        request = self._build_request(data, report_type)
        logger.info("advanced_report_started report_type=%s", report_type)
        handler = self._reporters.get(report_type)
        if handler is None or not self._ml_enabled:
            return self._fallback_report(report_type)
        try:
            return handler(request)
        except Exception as exc:  # noqa: BLE001
            logger.error("advanced_report_failed report_type=%s error=%s", report_type, exc)
            return self._fallback_report(report_type)

    # ── Analyzers ────────────────────────────────────────────────────────────

    def _result(self, analysis_type: str, **fields: Any) -> AnalysisResult:
        return AnalysisResult(analysis_type=analysis_type, generated_by=self.strategy_id, **fields)

    def _sales_trends(self, request: AnalysisRequest) -> AnalysisResult:
        daily = algorithms.daily_sales_frame(request.items)
        if daily.empty:
            return self._fallback_analysis("sales_trends", confidence=0.6, reason="no dated sales rows")

        quantities = daily["quantity"].tolist()
        trend = algorithms.least_squares_trend(quantities)
        seasonality = algorithms.weekday_seasonality(daily)
        predictions = algorithms.project_linear(trend["slope"], trend["intercept"], len(quantities), 7)

        first, last = quantities[0], quantities[-1]
        growth_pct = round((last - first) / first * 100, 2) if first > 0 else 0.0
        direction = trend["direction"]

        recommendations = {
            "increasing": ["Sales are trending up; raise reorder quantities for fast movers"],
            "decreasing": ["Sales are declining; reduce purchase orders and review pricing"],
            "stable": ["Sales are stable; keep the current replenishment plan"],
        }[direction]
        if seasonality.get("peak_day"):
            recommendations.append(f"Demand peaks on {seasonality['peak_day']}; schedule deliveries before it")

        return self._result(
            "sales_trends",
            risk_level={"increasing": "low", "stable": "medium", "decreasing": "high"}[direction],
            confidence=algorithms.confidence_for_volume(len(quantities)),
            recommendations=recommendations,
            analysis=f"Sales are {direction} over {len(quantities)} days",
            details={
                "trend_direction": direction,
                "growth_rate": trend["slope"],
                "growth_pct": growth_pct,
                "r_squared": trend["r_squared"],
                "seasonality_patterns": seasonality,
                "predictions": predictions,
                "average_daily_sales": round(float(daily["quantity"].mean()), 2),
                "total_quantity": round(float(daily["quantity"].sum()), 2),
                "total_revenue": round(float(daily["revenue"].sum()), 2),
                "data_points": len(quantities),
                "ml_algorithm": "linear_regression_seasonal",
            },
        )

    def _inventory_turnover(self, request: AnalysisRequest) -> AnalysisResult:
        predictions: Dict[str, Dict[str, Any]] = {}
        for i, row in enumerate(request.items):
            rate = algorithms.estimate_turnover(
                _quantity(row),
                _min_stock(row),
                _num(row, "price"),
                daily_usage=_num(row, "daily_usage", default=0.0) or None,
            )
            predictions[_name(row, i)] = {
                "turnover_rate": rate,
                "days_in_inventory": algorithms.days_in_inventory(rate),
                "risk_level": algorithms.turnover_risk(rate),
            }

        rates = [p["turnover_rate"] for p in predictions.values()]
        slow = [name for name, p in predictions.items() if p["risk_level"] == "high"]
        fast = [name for name, p in predictions.items() if p["risk_level"] == "low"]
        slow_share = len(slow) / len(predictions)

        if slow_share > 0.5:
            risk = "high"
        elif slow_share > 0.2:
            risk = "medium"
        else:
            risk = "low"

        recommendations = [f"Reduce replenishment for slow-moving item {name}" for name in slow[:5]]
        if not recommendations:
            recommendations = ["Turnover is healthy across the analysed items"]

        return self._result(
            "inventory_turnover",
            risk_level=risk,
            confidence=0.85,
            recommendations=recommendations,
            analysis=f"Average turnover {sum(rates) / len(rates):.2f} per year",
            details={
                "turnover_analysis": predictions,
                "overall_metrics": {
                    "average_turnover": round(sum(rates) / len(rates), 3),
                    "slow_moving_items": len(slow),
                    "fast_moving_items": len(fast),
                },
                "efficiency_score": round((1 - slow_share) * 100, 1),
                "ml_algorithm": "multi_estimator_average",
            },
        )

    def _stock_optimization(self, request: AnalysisRequest) -> AnalysisResult:
        optimizations: Dict[str, Dict[str, Any]] = {}
        total_savings = 0.0
        for i, row in enumerate(request.items):
            current = _quantity(row)
            min_stock = _min_stock(row)
            unit_cost = _num(row, "unit_cost", default=_num(row, "price") * 0.6)
            usage = _num(row, "daily_usage", default=0.0) or algorithms.estimate_daily_usage(current, min_stock)
            max_stock = _num(row, "max_stock", default=max(min_stock * 5, current))

            best = algorithms.optimize_order_level(
                usage, _num(row, "lead_time_days", default=7.0), unit_cost, min_stock, max_stock
            )
            savings = round(max(0.0, current - best["optimal_stock"]) * unit_cost, 2)
            best.update(
                {
                    "current_stock": current,
                    "potential_savings": savings,
                    "priority": algorithms.optimization_priority(savings, current, best["reorder_point"]),
                }
            )
            optimizations[_name(row, i)] = best
            total_savings += savings

        high = sum(1 for o in optimizations.values() if o["priority"] == "high")
        share = high / len(optimizations)
        risk = "high" if share > 0.5 else ("medium" if high else "low")

        ranked = sorted(optimizations.items(), key=lambda kv: kv[1]["potential_savings"], reverse=True)
        recommendations = [
            f"Adjust {name} to {o['optimal_stock']} units (current: {o['current_stock']:g})"
            for name, o in ranked
            if o["optimal_stock"] != o["current_stock"]
        ][:5] or ["Stock levels are already close to optimal"]

        return self._result(
            "stock_optimization",
            risk_level=risk,
            confidence=0.88,
            recommendations=recommendations,
            analysis=f"Optimised {len(optimizations)} items",
            details={
                "optimizations": optimizations,
                "total_potential_savings": round(total_savings, 2),
                "ml_algorithm": "bounded_neighbourhood_search",
            },
        )

    def _stock_prediction(self, request: AnalysisRequest) -> AnalysisResult:
        horizon = int(request.context.get("forecast_days") or request.period_days or 30)
        today = date.today()
        predictions: List[Dict[str, Any]] = []
        recommendations: List[str] = []

        for i, row in enumerate(request.items):
            qty = _quantity(row)
            min_stock = _min_stock(row)
            usage = _num(row, "daily_usage", default=0.0) or algorithms.estimate_daily_usage(qty, min_stock)
            depletion = algorithms.days_until_depletion(qty, usage)
            projected = max(0.0, qty - usage * horizon)
            restock_qty = max(0, int(math.ceil(usage * horizon + min_stock - qty)))
            depletion_date = (
                (today + timedelta(days=int(depletion))).isoformat() if depletion is not None else None
            )
            needs_restock = projected < min_stock
            predictions.append(
                {
                    "name": _name(row, i),
                    "current_stock": qty,
                    "daily_usage": round(usage, 2),
                    "days_until_depletion": depletion,
                    "depletion_date": depletion_date,
                    "projected_stock": round(projected, 2),
                    "needs_restock": needs_restock,
                    "recommended_order_quantity": restock_qty if needs_restock else 0,
                }
            )
            if needs_restock:
                recommendations.append(
                    f"Restock {_name(row, i)}: order {restock_qty} units before {depletion_date or 'next cycle'}"
                )

        at_risk = sum(1 for p in predictions if p["needs_restock"])
        share = at_risk / len(predictions)
        risk = "high" if share > 0.5 else ("medium" if at_risk else "low")

        return self._result(
            "stock_prediction",
            risk_level=risk,
            confidence=algorithms.confidence_for_volume(len(predictions)),
            recommendations=recommendations or ["No restocking needed within the forecast period"],
            analysis=f"{at_risk} of {len(predictions)} items need restocking within {horizon} days",
            details={
                "forecast_days": horizon,
                "predictions": predictions,
                "items_requiring_restock": at_risk,
            },
        )

    def _anomaly_detection(self, request: AnalysisRequest) -> AnalysisResult:
        anomalies: List[Dict[str, Any]] = []
        for i, row in enumerate(request.items):
            name = _name(row, i)
            qty = _quantity(row)
            price = _num(row, "price")
            if qty < 0:
                anomalies.append({"item": name, "type": "negative_quantity", "value": qty})
            if price < 0:
                anomalies.append({"item": name, "type": "negative_price", "value": price})
            if qty > ANOMALY_QUANTITY_CEILING:
                anomalies.append({"item": name, "type": "unusually_high_quantity", "value": qty})

        if any(a["type"].startswith("negative") for a in anomalies):
            risk = "high"
        elif anomalies:
            risk = "medium"
        else:
            risk = "low"

        recommendations = [f"Investigate {a['type'].replace('_', ' ')} for {a['item']}" for a in anomalies]
        return self._result(
            "anomaly_detection",
            risk_level=risk,
            confidence=algorithms.confidence_for_volume(len(request.items)),
            recommendations=recommendations or ["No anomalies detected"],
            analysis=f"{len(anomalies)} anomalies detected",
            details={"anomalies": anomalies, "anomaly_count": len(anomalies)},
        )

    def _assess(self, request: AnalysisRequest) -> Dict[str, Any]:
        counts = stock_counts(request.items)
        total = len(request.items)
        out_share = counts["out_of_stock"] / total
        share = (counts["low_stock"] + counts["out_of_stock"]) / total
        if out_share >= 0.2 or share > 0.5:
            risk = "high"
        elif share > 0.2:
            risk = "medium"
        else:
            risk = "low"

        recommendations = []
        for i, row in enumerate(request.items):
            qty = _quantity(row)
            min_stock = _min_stock(row)
            if qty < min_stock:
                needed = int(max(min_stock * 2 - qty, 10))
                recommendations.append(f"Restock {_name(row, i)}: {needed} units needed (current: {qty:g})")
        return {
            "risk_level": risk,
            "recommendations": recommendations or ["Stock levels are adequate for all items"],
            "counts": counts,
            "total": total,
        }

    def _risk_assessment(self, request: AnalysisRequest) -> AnalysisResult:
        assessed = self._assess(request)
        counts = assessed["counts"]
        return self._result(
            "risk_assessment",
            risk_level=assessed["risk_level"],
            confidence=algorithms.confidence_for_volume(assessed["total"]),
            recommendations=assessed["recommendations"],
            analysis=(
                f"{counts['low_stock']} low-stock and {counts['out_of_stock']} out-of-stock items "
                f"out of {assessed['total']}"
            ),
            details={**counts, "total_items": assessed["total"]},
        )

    def _comprehensive_analysis(self, request: AnalysisRequest) -> AnalysisResult:
        risk = self._risk_assessment(request)
        turnover = self._inventory_turnover(request)
        anomalies = self._anomaly_detection(request)
        return self._result(
            "comprehensive_analysis",
            risk_level=risk.risk_level,
            confidence=min(risk.confidence, turnover.confidence),
            recommendations=risk.recommendations + turnover.recommendations[:2],
            analysis=risk.analysis,
            details={
                "stock_risk": risk.details,
                "turnover": turnover.details["overall_metrics"],
                "anomaly_count": anomalies.details["anomaly_count"],
            },
        )

    def _purchase_recommendations(self, request: AnalysisRequest) -> AnalysisResult:
        fields = {"confidence": algorithms.confidence_for_volume(len(request.items))}
        fields.update(purchase_recommendation_fields(request.items))
        return self._result("purchase_recommendations", **fields)

    def _safety_stock(self, request: AnalysisRequest) -> AnalysisResult:
        fields = {"confidence": algorithms.confidence_for_volume(len(request.items))}
        fields.update(safety_stock_fields(request.items))
        return self._result("safety_stock", **fields)

    # ── Reports ──────────────────────────────────────────────────────────────

    def _totals(self, request: AnalysisRequest) -> Dict[str, Any]:
        counts = stock_counts(request.items)
        total_value = sum(_quantity(r) * _num(r, "price") for r in request.items)
        return {
            "totalItems": len(request.items),
            "totalValue": round(total_value, 2),
            "criticalItems": counts["low_stock"] + counts["out_of_stock"],
            "lowStockItems": counts["low_stock"],
            "outOfStockItems": counts["out_of_stock"],
        }

    def _payload(self, report_type: str, summary: Dict[str, Any], findings: List[str], recs: List[str]) -> ReportPayload:
        return ReportPayload(
            report_type=report_type,
            summary=summary,
            key_findings=findings,
            recommendations=recs,
            generated_by=self.strategy_id,
        )

    def _summary_report(self, request: AnalysisRequest) -> ReportPayload:
        totals = self._totals(request)
        findings = [f"{totals['totalItems']} items worth {totals['totalValue']:.2f} in stock"]
        if totals["criticalItems"]:
            findings.append(f"{totals['criticalItems']} items are at or below minimum stock")
        return self._payload("summary", totals, findings, self._assess(request)["recommendations"])

    def _weekly_report(self, request: AnalysisRequest) -> ReportPayload:
        totals = self._totals(request)
        findings = [
            f"{totals['outOfStockItems']} items are out of stock",
            f"{totals['lowStockItems']} items are low on stock",
        ]
        return self._payload("weekly_summary", totals, findings, self._assess(request)["recommendations"])

    def _comprehensive_report(self, request: AnalysisRequest) -> ReportPayload:
        totals = self._totals(request)
        turnover = self._inventory_turnover(request).details["overall_metrics"]
        findings = [
            f"Average turnover is {turnover['average_turnover']:.2f} per year",
            f"{turnover['slow_moving_items']} slow-moving items",
        ]
        recs = self._assess(request)["recommendations"] + self._stock_optimization(request).recommendations[:3]
        return self._payload("comprehensive", {**totals, **turnover}, findings, recs)

    def _executive_report(self, request: AnalysisRequest) -> ReportPayload:
        totals = self._totals(request)
        assessed = self._assess(request)
        findings = [f"Overall stock risk is {assessed['risk_level']}"]
        return self._payload(
            "executive",
            {"totalItems": totals["totalItems"], "totalValue": totals["totalValue"], "criticalItems": totals["criticalItems"]},
            findings,
            assessed["recommendations"][:3],
        )

    # ── Fallbacks ────────────────────────────────────────────────────────────

    def _fallback_analysis(self, analysis_type: str, confidence: float = 0.5, reason: str = "") -> AnalysisResult:
        details: Dict[str, Any] = {"result": "fallback_analysis"}
        if reason:
            details["reason"] = reason
        return AnalysisResult(
            analysis_type=analysis_type,
            risk_level="medium",
            confidence=confidence,
            recommendations=["Review inventory levels manually"],
            is_fallback=True,
            analysis="Fallback analysis",
            generated_by=self.strategy_id,
            details=details,
        )

    def _fallback_report(self, report_type: str) -> ReportPayload:
        return ReportPayload(
            report_type=report_type,
            key_findings=["Report generated with limited analysis"],
            recommendations=["Review inventory levels manually"],
            is_fallback=True,
            generated_by=self.strategy_id,
        )
