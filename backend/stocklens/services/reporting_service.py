"""
Reporting Service — Service Layer (SRP / DIP)

Validates report definitions, routes them to the builder for their type and
caches successful results. Unsupported types and invalid definitions are
rejected with typed exceptions before any data is read; anything a builder
raises is turned into an error ``ReportResult``.
"""
import logging
import time
from typing import Any, Callable, Dict, List, Mapping, Optional

from stocklens.config import settings
from stocklens.core.exceptions import InvalidInputException, UnsupportedReportTypeException, ValidationFailedException
from stocklens.repositories.inventory_data_source import InventoryDataSource
from stocklens.schemas.report import (
    DateRange,
    ReportDefinition,
    ReportResult,
    ReportTypeInfo,
    ValidationOutcome,
)
from stocklens.services.ai_service import AIService
from stocklens.services.report_builders import (
    AIPerformanceReportBuilder,
    BaseReportBuilder,
    InventoryActivityReportBuilder,
    InventoryReportBuilder,
    summary_trends,
)
from stocklens.services.report_cache import ReportCache, build_cache_key

logger = logging.getLogger(__name__)

TEST_MODE_MAX_RECORDS = 10
MAX_FORECAST_DAYS = 365


class ReportingService:

    def __init__(
        self,
        data_source: InventoryDataSource,
        ai_service: AIService,
        cache: Optional[ReportCache] = None,
    ):
        self._cache = cache or ReportCache(
            ttl_seconds=settings.REPORT_CACHE_TTL_SECONDS,
            max_entries=settings.REPORT_CACHE_MAX_ENTRIES,
        )
        builders: List[BaseReportBuilder] = [
            InventoryReportBuilder(data_source, ai_service),
            InventoryActivityReportBuilder(data_source, ai_service),
            AIPerformanceReportBuilder(ai_service),
        ]
        self._builders: Dict[str, BaseReportBuilder] = {b.report_type: b for b in builders}

    # ── Registry ─────────────────────────────────────────────────────────────

    def get_available_report_types(self) -> List[ReportTypeInfo]:
        return [b.type_info() for b in self._builders.values()]

    def _builder_for(self, report_type: str) -> BaseReportBuilder:
        builder = self._builders.get(report_type)
        if builder is None:
            raise UnsupportedReportTypeException(report_type, supported=sorted(self._builders))
        return builder

    # ── Validation ───────────────────────────────────────────────────────────

    def validate_report_definition(self, definition: ReportDefinition) -> ValidationOutcome:
        """Pure check; calling it any number of times gives the same outcome."""
        errors = definition.validation_errors()
        builder = self._builders.get(definition.type)
        if builder is None:
            errors.append(f"Unsupported report type: {definition.type}")
        elif builder.requires_date_range and definition.date_range is None:
            errors.append(f"Date range is required for {definition.type} reports")
        return ValidationOutcome(valid=not errors, errors=errors)

    def _check(self, definition: ReportDefinition) -> BaseReportBuilder:
        builder = self._builder_for(definition.type)
        outcome = self.validate_report_definition(definition)
        if not outcome.valid:
            raise ValidationFailedException(outcome.errors)
        return builder

    # ── Generation ───────────────────────────────────────────────────────────

    def _run(self, definition: ReportDefinition, label: str, build: Callable[[], ReportResult]) -> ReportResult:
        start = time.perf_counter()
        logger.info("report_generation_started kind=%s type=%s report_id=%s", label, definition.type, definition.id)
        try:
            result = build()
        except Exception as exc:  # noqa: BLE001
            elapsed = (time.perf_counter() - start) * 1000
            logger.error(
                "report_generation_failed kind=%s type=%s report_id=%s error=%s",
                label,
                definition.type,
                definition.id,
                exc,
            )
            return ReportResult.error(definition, str(exc), execution_time_ms=round(elapsed, 2))

        elapsed = (time.perf_counter() - start) * 1000
        result.set_execution_time(elapsed)
        logger.info(
            "report_generation_completed kind=%s type=%s records=%s duration_ms=%.2f",
            label,
            definition.type,
            result.record_count,
            elapsed,
        )
        return result

    def generate_report(self, definition: ReportDefinition) -> ReportResult:
        builder = self._check(definition)

        use_cache = builder.cacheable and not definition.is_test_mode
        key = build_cache_key(definition)
        if use_cache:
            cached = self._cache.get(key)
            if cached is not None:
                logger.info("report_cache_hit type=%s key=%s", definition.type, key[:12])
                return cached

        result = self._run(definition, "standard", lambda: builder.build_report(definition))
        if use_cache and result.is_success:
            self._cache.put(key, result)
        return result

    def test_report_generation(self, definition: ReportDefinition) -> ReportResult:
        """Dry run on at most ten records; never read from or written to the cache."""
        return self.generate_report(definition.derive(test_mode=True, max_records=TEST_MODE_MAX_RECORDS))

    def generate_real_time_report(self, report_type: str, filters: Optional[Mapping[str, Any]] = None) -> ReportResult:
        builder = self._builder_for(report_type)
        definition = ReportDefinition.create_simple(report_type, f"Real-time {report_type} report", filters=dict(filters or {}))
        return self._run(definition, "real_time", lambda: builder.build_real_time_report(definition))

    def generate_predictive_report(self, report_type: str, forecast_days: int = 30) -> ReportResult:
        if forecast_days < 1 or forecast_days > MAX_FORECAST_DAYS:
            raise InvalidInputException(
                f"forecast_days must be between 1 and {MAX_FORECAST_DAYS}", details={"forecast_days": forecast_days}
            )
        builder = self._builder_for(report_type)
        definition = ReportDefinition.create_simple(
            report_type,
            f"Predictive {report_type} report ({forecast_days} days)",
            date_range=DateRange.last_days(forecast_days),
        )
        definition.metadata["forecast_days"] = forecast_days
        return self._run(definition, "predictive", lambda: builder.build_predictive_report(definition, forecast_days))

    def generate_comparative_report(
        self, definition: ReportDefinition, previous_summary: Mapping[str, Any]
    ) -> ReportResult:
        builder = self._check(definition)
        return self._run(
            definition, "comparative", lambda: builder.build_comparative_report(definition, previous_summary)
        )

    @staticmethod
    def analyze_report_trends(current: ReportResult, previous: ReportResult) -> Dict[str, Any]:
        if current.definition.type != previous.definition.type:
            raise InvalidInputException(
                "Cannot compare reports of different types",
                details={"current": current.definition.type, "previous": previous.definition.type},
            )
        trends = summary_trends(current.summary, previous.summary)
        return {
            "report_type": current.definition.type,
            "current_generated_at": current.generated_at.isoformat(),
            "previous_generated_at": previous.generated_at.isoformat(),
            "trends": trends,
            "improving": [k for k, t in trends.items() if _improving(k, t["direction"])],
            "worsening": [k for k, t in trends.items() if _worsening(k, t["direction"])],
        }

    # ── Cache management ─────────────────────────────────────────────────────

    def get_cache_stats(self) -> Dict[str, Any]:
        return self._cache.stats()

    def clear_cache(self) -> int:
        removed = self._cache.clear()
        logger.info("report_cache_cleared entries=%s", removed)
        return removed

    def set_cache_ttl(self, seconds: int) -> int:
        ttl = self._cache.set_ttl(seconds)
        logger.info("report_cache_ttl_set ttl_seconds=%s", ttl)
        return ttl


_LOWER_IS_BETTER = {"lowStockCount", "outOfStockCount", "totalFailures", "totalFallbacks", "averageLatencyMs"}


def _improving(key: str, direction: str) -> bool:
    if direction == "flat":
        return False
    return (direction == "down") == (key in _LOWER_IS_BETTER)


def _worsening(key: str, direction: str) -> bool:
    return direction != "flat" and not _improving(key, direction)
