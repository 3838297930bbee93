"""
Inventory Metrics — deterministic aggregates shared by the orchestrator and
the report builders.
"""
import math
from typing import Dict, Iterable, List, Sequence

from stocklens.ml import algorithms
from stocklens.schemas.inventory import InventoryRecord

HEALTH_BUCKETS = (
    (80.0, "excellent"),
    (60.0, "good"),
    (40.0, "fair"),
    (20.0, "poor"),
)


def calculate_health_score(total: int, low_stock: int, out_of_stock: int) -> float:
    """
    100 minus the weighted share of problem items.

    Out-of-stock items weigh three times as much as low-stock ones. An empty
    inventory scores 0.
    """
    if total <= 0:
        return 0.0
    penalty = (low_stock * 10 + out_of_stock * 30) / (total * 30) * 100
    return round(max(0.0, 100.0 - penalty), 1)


def health_status(score: float) -> str:
    for floor, label in HEALTH_BUCKETS:
        if score >= floor:
            return label
    return "critical"


def classify(items: Iterable[InventoryRecord]) -> Dict[str, List[InventoryRecord]]:
    low: List[InventoryRecord] = []
    out: List[InventoryRecord] = []
    for item in items:
        if item.is_out_of_stock:
            out.append(item)
        elif item.is_low_stock:
            low.append(item)
    return {"low_stock": low, "out_of_stock": out}


def summarize_inventory(items: Sequence[InventoryRecord]) -> Dict[str, object]:
    if not items:
        return {
            "record_count": 0,
            "total_value": 0.0,
            "average_price": 0.0,
            "low_stock_count": 0,
            "out_of_stock_count": 0,
            "health_score": 0.0,
            "health_status": health_status(0.0),
        }

    groups = classify(items)
    total = len(items)
    score = calculate_health_score(total, len(groups["low_stock"]), len(groups["out_of_stock"]))
    return {
        "record_count": total,
        "total_value": round(sum(i.stock_value for i in items), 2),
        "average_price": round(sum(i.price for i in items) / total, 2),
        "low_stock_count": len(groups["low_stock"]),
        "out_of_stock_count": len(groups["out_of_stock"]),
        "health_score": score,
        "health_status": health_status(score),
    }


def forecast_item(item: InventoryRecord, days: int) -> Dict[str, object]:
    """Linear depletion forecast from the estimated daily usage."""
    usage = algorithms.estimate_daily_usage(item.quantity, item.min_stock_level)
    projected = max(0.0, item.quantity - usage * days)
    order_qty = 0
    if projected < item.min_stock_level:
        order_qty = max(0, int(math.ceil(usage * days + item.min_stock_level - item.quantity)))
    return {
        "name": item.name,
        "current_stock": item.quantity,
        "daily_usage": round(usage, 2),
        "days_until_depletion": algorithms.days_until_depletion(item.quantity, usage),
        "projected_stock": round(projected, 2),
        "recommended_order_quantity": order_qty,
    }


def urgency(item: InventoryRecord) -> str:
    ratio = item.quantity / max(1, item.min_stock_level)
    if ratio <= 0.1:
        return "critical"
    if ratio <= 0.3:
        return "high"
    if ratio <= 0.6:
        return "medium"
    return "low"
