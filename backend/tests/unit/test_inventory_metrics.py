import itertools

import pytest

from stocklens.services.inventory_metrics import (
    calculate_health_score,
    classify,
    forecast_item,
    health_status,
    summarize_inventory,
    urgency,
)


class TestHealthScore:

    def test_empty_inventory_scores_zero(self):
        assert calculate_health_score(0, 0, 0) == 0.0

    def test_all_healthy_scores_hundred(self):
        assert calculate_health_score(10, 0, 0) == 100.0

    def test_weighting(self):
        # 1 low of 3 items: 100 - 10 / 90 * 100
        assert calculate_health_score(3, 1, 0) == 88.9
        # every item out of stock
        assert calculate_health_score(4, 0, 4) == 0.0

    def test_monotone_non_increasing_in_problem_counts(self):
        total = 8
        for low, out in itertools.product(range(total + 1), repeat=2):
            if low + out > total:
                continue
            score = calculate_health_score(total, low, out)
            if low + out + 1 <= total:
                assert calculate_health_score(total, low + 1, out) <= score
                assert calculate_health_score(total, low, out + 1) <= score

    @pytest.mark.parametrize(
        "score, label",
        [(100, "excellent"), (80, "excellent"), (79.9, "good"), (60, "good"), (45, "fair"), (20, "poor"), (19.9, "critical")],
    )
    def test_buckets(self, score, label):
        assert health_status(score) == label


class TestClassification:

    def test_classify(self, mixed_records):
        groups = classify(mixed_records)
        assert [r.id for r in groups["low_stock"]] == [1, 2, 3]
        assert [r.id for r in groups["out_of_stock"]] == [6]

    def test_summary(self, mixed_records):
        summary = summarize_inventory(mixed_records)
        assert summary["record_count"] == 6
        assert summary["low_stock_count"] == 3
        assert summary["out_of_stock_count"] == 1
        assert summary["total_value"] == pytest.approx((2 + 4 + 6 + 50 + 80) * 10.0)
        assert summary["average_price"] == 10.0
        assert summary["health_status"] == health_status(summary["health_score"])

    def test_empty_summary(self):
        summary = summarize_inventory([])
        assert summary["health_score"] == 0.0
        assert summary["health_status"] == "critical"


class TestUrgency:

    @pytest.mark.parametrize(
        "quantity, minimum, expected",
        [(1, 10, "critical"), (3, 10, "high"), (6, 10, "medium"), (9, 10, "low"), (0, 0, "critical")],
    )
    def test_urgency(self, record, quantity, minimum, expected):
        assert urgency(record(1, quantity, min_stock_level=minimum)) == expected


class TestForecast:

    def test_low_item_needs_order(self, record):
        forecast = forecast_item(record(1, 7, min_stock_level=14), days=7)
        # usage 2/day: 7 days drains 14, shortfall against minimum 14
        assert forecast["daily_usage"] == 2.0
        assert forecast["days_until_depletion"] == 3.5
        assert forecast["projected_stock"] == 0.0
        assert forecast["recommended_order_quantity"] == 21

    def test_healthy_item_needs_nothing(self, record):
        forecast = forecast_item(record(1, 300, min_stock_level=10), days=7)
        assert forecast["recommended_order_quantity"] == 0
        assert forecast["projected_stock"] == 230.0
