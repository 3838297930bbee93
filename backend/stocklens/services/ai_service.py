"""
AI Service — Strategy Context (GoF Strategy / DIP)

Holds an ordered registry of analysis strategies and routes every call to the
single active one. When a secondary strategy is configured and the active one
raises, the secondary answers instead and its result is flagged
``is_fallback``. Without a secondary the exception reaches the caller.
"""
import logging
import threading
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, TypeVar

from stocklens.config import settings
from stocklens.core.exceptions import InvalidInputException, RemoteUnavailableException
from stocklens.ml.ollama_strategy import OllamaStrategy
from stocklens.ml.strategies import (
    AdvancedAnalysisStrategy,
    BaseAnalysisStrategy,
    purchase_recommendation_fields,
    safety_stock_fields,
)
from stocklens.schemas.analysis import AnalysisResult, ReportPayload, StrategyMetrics

logger = logging.getLogger(__name__)

T = TypeVar("T", AnalysisResult, ReportPayload)

RULE_BASED_CONFIDENCE = 0.7


def build_default_strategies() -> List[BaseAnalysisStrategy]:
    strategies: List[BaseAnalysisStrategy] = [AdvancedAnalysisStrategy(ml_enabled=settings.ML_ENABLED)]
    if settings.OLLAMA_ENABLED:
        strategies.append(OllamaStrategy())
    return strategies


class AIService:

    def __init__(
        self,
        strategies: Optional[Sequence[BaseAnalysisStrategy]] = None,
        active_strategy: Optional[str] = None,
        fallback_strategy: Optional[str] = None,
        enabled: Optional[bool] = None,
    ):
        self._strategies: Dict[str, BaseAnalysisStrategy] = {}
        self._metrics: Dict[str, StrategyMetrics] = {}
        self._metrics_lock = threading.Lock()
        self._active_id: Optional[str] = None
        self._enabled = settings.AI_ENABLED if enabled is None else enabled

        for strategy in strategies if strategies is not None else build_default_strategies():
            self.register_strategy(strategy)

        preferred = settings.AI_ACTIVE_STRATEGY if active_strategy is None else active_strategy
        if preferred in self._strategies:
            self._active_id = preferred

        secondary = settings.AI_FALLBACK_STRATEGY if fallback_strategy is None else fallback_strategy
        self._fallback_id = secondary if secondary in self._strategies and secondary != self._active_id else None

    # ── Registry ─────────────────────────────────────────────────────────────

    def register_strategy(self, strategy: BaseAnalysisStrategy) -> None:
        self._strategies[strategy.strategy_id] = strategy
        self._metrics.setdefault(strategy.strategy_id, StrategyMetrics())
        if self._active_id is None:
            self._active_id = strategy.strategy_id

    def set_strategy(self, strategy_id: str) -> bool:
        """Switch the active strategy at runtime. Unknown ids are rejected."""
        if strategy_id not in self._strategies:
            return False
        self._active_id = strategy_id
        if self._fallback_id == strategy_id:
            self._fallback_id = None
        logger.info("ai_strategy_switched strategy=%s", strategy_id)
        return True

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def active_strategy(self) -> Optional[BaseAnalysisStrategy]:
        return self._strategies.get(self._active_id) if self._active_id else None

    @property
    def fallback_strategy(self) -> Optional[BaseAnalysisStrategy]:
        return self._strategies.get(self._fallback_id) if self._fallback_id else None

    def available_strategies(self) -> List[str]:
        return list(self._strategies)

    def strategy_availability(self) -> Dict[str, bool]:
        return {sid: s.is_available() for sid, s in self._strategies.items()}

    def is_available(self) -> bool:
        strategy = self.active_strategy
        return bool(self._enabled and strategy is not None and strategy.is_available())

    # ── Metrics ──────────────────────────────────────────────────────────────

    def _record(self, strategy_id: str, duration_ms: float, error: Optional[Exception] = None, fallback: bool = False):
        with self._metrics_lock:
            m = self._metrics.setdefault(strategy_id, StrategyMetrics())
            m.calls += 1
            m.total_latency_ms += duration_ms
            if error is not None:
                m.failures += 1
                m.last_error = str(error)
            if fallback:
                m.fallbacks += 1

    def metrics(self) -> Dict[str, Dict[str, Any]]:
        with self._metrics_lock:
            return {sid: m.to_dict() for sid, m in self._metrics.items()}

    # ── Dispatch ─────────────────────────────────────────────────────────────

    def _timed(self, strategy: BaseAnalysisStrategy, call: Callable[[BaseAnalysisStrategy], T], fallback: bool = False) -> T:
        start = time.perf_counter()
        try:
            result = call(strategy)
        except Exception as exc:
            self._record(strategy.strategy_id, (time.perf_counter() - start) * 1000, error=exc, fallback=fallback)
            raise
        self._record(strategy.strategy_id, (time.perf_counter() - start) * 1000, fallback=fallback)
        return result

    def _dispatch(self, operation: str, call: Callable[[BaseAnalysisStrategy], T]) -> T:
        if not self._enabled:
            raise RemoteUnavailableException("AI service is disabled")
        strategy = self.active_strategy
        if strategy is None:
            raise RemoteUnavailableException("No AI strategy registered")

        try:
            return self._timed(strategy, call)
        except InvalidInputException:
            raise
        except Exception as exc:
            secondary = self.fallback_strategy
            if secondary is None or not secondary.is_available():
                logger.error(
                    "ai_call_failed operation=%s strategy=%s error=%s", operation, strategy.strategy_id, exc
                )
                raise
            logger.warning(
                "ai_call_failed_using_fallback operation=%s strategy=%s fallback=%s error=%s",
                operation,
                strategy.strategy_id,
                secondary.strategy_id,
                exc,
            )
            result = self._timed(secondary, call, fallback=True)
            return result.model_copy(update={"is_fallback": True})

    def analyze(self, data: Dict[str, Any], analysis_type: str = "stock_prediction") -> AnalysisResult:
        return self._dispatch(analysis_type, lambda s: s.analyze(data, analysis_type))

    def generate(self, data: Dict[str, Any], report_type: str = "summary") -> ReportPayload:
        return self._dispatch(report_type, lambda s: s.generate(data, report_type))

    # ── Convenience operations ───────────────────────────────────────────────

    def analyze_inventory(self, items: Iterable[Any], analysis_type: str = "stock_prediction", **context) -> AnalysisResult:
        return self.analyze({"items": list(items), **context}, analysis_type)

    def generate_report(self, items: Iterable[Any], report_type: str = "summary") -> ReportPayload:
        return self.generate({"items": list(items)}, report_type)

    def predict_stock_needs(self, items: Iterable[Any], days: int = 30) -> AnalysisResult:
        return self.analyze_inventory(items, "stock_prediction", period_days=days, forecast_days=days)

    def detect_anomalies(self, items: Iterable[Any]) -> AnalysisResult:
        return self.analyze_inventory(items, "anomaly_detection")

    def analyze_sales_trends(self, sales: Iterable[Any], period_days: int = 30) -> AnalysisResult:
        return self.analyze({"sales_data": list(sales), "period_days": period_days}, "sales_trends")

    def optimize_stock_levels(self, rows: Iterable[Any]) -> AnalysisResult:
        return self.analyze_inventory(rows, "stock_optimization")

    def predict_inventory_turnover(self, items: Iterable[Any]) -> AnalysisResult:
        return self.analyze_inventory(items, "inventory_turnover")

    # ── Operations with local degradation ────────────────────────────────────

    def _analyze_or_degrade(
        self,
        analysis_type: str,
        rows: List[Any],
        degrade: Callable[[List[Any]], Dict[str, Any]],
    ) -> AnalysisResult:
        if rows and self.is_available():
            try:
                result = self.analyze({"items": rows}, analysis_type)
            except InvalidInputException:
                raise
            except Exception as exc:  # noqa: BLE001
                logger.error("ai_call_degraded operation=%s error=%s", analysis_type, exc)
            else:
                if not result.is_fallback:
                    return result
        logger.warning("ai_rule_based operation=%s rows=%s", analysis_type, len(rows))
        fields = {"confidence": RULE_BASED_CONFIDENCE}
        fields.update(degrade(rows))
        return AnalysisResult(analysis_type=analysis_type, is_fallback=True, generated_by="rule_based", **fields)

    def generate_purchase_recommendations(self, suppliers: Iterable[Any]) -> AnalysisResult:
        """Supplier ranking; scored locally when no strategy can answer."""
        rows = list(suppliers)
        logger.info("purchase_recommendations_started suppliers=%s", len(rows))
        return self._analyze_or_degrade("purchase_recommendations", rows, purchase_recommendation_fields)

    def calculate_safety_stock(self, history: Iterable[Any]) -> AnalysisResult:
        """Safety stock from demand history; z * sigma * sqrt(lead time) when no strategy can answer."""
        rows = list(history)
        logger.info("safety_stock_started history_entries=%s", len(rows))
        return self._analyze_or_degrade("safety_stock", rows, safety_stock_fields)
