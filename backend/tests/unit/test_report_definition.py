from datetime import datetime

import pytest
from pydantic import ValidationError

from stocklens.schemas.report import DateRange, ReportDefinition, ReportRequest, ReportResult


class TestDateRange:

    def test_naive_datetimes_get_the_range_timezone(self):
        dr = DateRange(start=datetime(2024, 1, 1), end=datetime(2024, 1, 31), timezone="Europe/Berlin")
        assert dr.start.tzinfo is not None
        assert dr.start.utcoffset().total_seconds() == 3600

    def test_start_after_end_rejected(self):
        with pytest.raises(ValidationError):
            DateRange(start=datetime(2024, 2, 1), end=datetime(2024, 1, 1))

    def test_unknown_timezone_rejected(self):
        with pytest.raises(ValidationError):
            DateRange(start=datetime(2024, 1, 1), end=datetime(2024, 1, 2), timezone="Mars/Olympus")

    def test_from_dict_accepts_camel_case_keys(self):
        dr = DateRange.from_dict({"startDate": "2024-01-01T00:00:00Z", "endDate": "2024-01-08T00:00:00Z"})
        assert dr.day_count == 7

    def test_from_dict_rejects_garbage(self):
        with pytest.raises(ValueError):
            DateRange.from_dict({"start": "yesterday", "end": "today"})

    def test_last_days(self):
        assert DateRange.last_days(30).day_count == 30


class TestDefinition:

    def test_create_simple(self):
        definition = ReportDefinition.create_simple("inventory", "Stock")
        assert definition.description == "Automatically generated inventory report"
        assert definition.created_by == "system"
        assert len(definition.id) == 32

    def test_validation_errors(self):
        definition = ReportDefinition(type="inventory", name="   ", columns=["name", 3])
        errors = definition.validation_errors()
        assert "Report name cannot be empty" in errors
        assert "Column names must be strings" in errors

    def test_long_name_rejected(self):
        assert "Report name cannot exceed 255 characters" in ReportDefinition(
            type="inventory", name="x" * 256
        ).validation_errors()

    def test_derive_is_a_deep_copy(self):
        original = ReportDefinition(type="inventory", name="A", filters={"category": {"$in": ["a"]}})
        clone = original.derive(test_mode=True, max_records=10)
        clone.filters["category"]["$in"].append("b")
        assert original.metadata == {}
        assert original.filters == {"category": {"$in": ["a"]}}
        assert clone.is_test_mode is True
        assert clone.max_records == 10
        assert original.max_records is None


class TestRequest:

    def test_to_definition_parses_date_range(self):
        request = ReportRequest(
            type="inventory_activity",
            name="Activity",
            date_range={"start": "2024-01-01", "end": "2024-01-31"},
        )
        definition = request.to_definition()
        assert definition.date_range.start.year == 2024
        assert definition.date_range.timezone == "UTC"


class TestResult:

    def test_error_result(self):
        definition = ReportDefinition(type="inventory", name="A")
        result = ReportResult.error(definition, "boom", execution_time_ms=3.0)
        assert result.is_success is False
        assert result.metadata.status == "error"
        assert result.record_count == 0

    def test_mutators(self):
        definition = ReportDefinition(type="inventory", name="A")
        result = ReportResult.success(definition, {"recordCount": 1})
        result.set_execution_time(12.3456)
        assert result.metadata.execution_time_ms == 12.35
        assert result.metadata.record_count == 1
        assert result.to_dict()["definition"]["name"] == "A"
