"""
Numerical building blocks for the local analysis strategy.

Everything here is deterministic and side-effect free so the results can be
asserted exactly in tests.
"""
import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

SLOPE_EPSILON = 1e-9
SERVICE_LEVEL_Z = 1.65


def confidence_for_volume(data_points: int) -> float:
    if data_points < 5:
        return 0.6
    if data_points < 10:
        return 0.7
    if data_points < 20:
        return 0.8
    return 0.9


def estimate_daily_usage(quantity: float, min_stock_level: float) -> float:
    """Usage proxy when no sales history is available."""
    if 0 < quantity < min_stock_level or quantity == 0:
        return max(1.0, min_stock_level / 7.0)
    return max(0.1, quantity / 30.0)


# ── Sales trends ─────────────────────────────────────────────────────────────

def daily_sales_frame(rows: Iterable[Mapping[str, Any]]) -> pd.DataFrame:
    """Aggregate raw sales rows into one row per calendar day, oldest first."""
    df = pd.DataFrame(list(rows))
    if df.empty or "date" not in df.columns:
        return pd.DataFrame(columns=["date", "quantity", "revenue"])
    if "quantity" not in df.columns:
        df["quantity"] = 0.0
    if "revenue" not in df.columns:
        df["revenue"] = 0.0
    df["date"] = pd.to_datetime(df["date"], errors="coerce")
    df = df.dropna(subset=["date"])
    df["quantity"] = pd.to_numeric(df["quantity"], errors="coerce").fillna(0.0)
    df["revenue"] = pd.to_numeric(df["revenue"], errors="coerce").fillna(0.0)
    daily = df.groupby(df["date"].dt.normalize())[["quantity", "revenue"]].sum().reset_index()
    return daily.sort_values("date").reset_index(drop=True)


def least_squares_trend(values: Sequence[float]) -> Dict[str, Any]:
    y = np.asarray(list(values), dtype=float)
    n = len(y)
    if n < 2:
        return {
            "direction": "stable",
            "slope": 0.0,
            "intercept": float(y[0]) if n else 0.0,
            "r_squared": 0.0,
        }

    x = np.arange(1, n + 1, dtype=float)
    slope, intercept = np.polyfit(x, y, 1)
    fitted = slope * x + intercept
    ss_res = float(np.sum((y - fitted) ** 2))
    ss_tot = float(np.sum((y - y.mean()) ** 2))
    r_squared = 1.0 - ss_res / ss_tot if ss_tot > 0 else 0.0

    if slope > SLOPE_EPSILON:
        direction = "increasing"
    elif slope < -SLOPE_EPSILON:
        direction = "decreasing"
    else:
        direction = "stable"
    return {
        "direction": direction,
        "slope": round(float(slope), 4),
        "intercept": round(float(intercept), 4),
        "r_squared": round(max(0.0, r_squared), 4),
    }


def project_linear(slope: float, intercept: float, observed: int, horizon: int = 7) -> List[float]:
    return [round(max(0.0, slope * (observed + i) + intercept), 2) for i in range(1, horizon + 1)]


def weekday_seasonality(daily: pd.DataFrame) -> Dict[str, Any]:
    """Average quantity per weekday relative to the overall daily mean."""
    if len(daily) < 7:
        return {}
    overall = float(daily["quantity"].mean())
    if overall <= 0:
        return {}
    by_day = daily.groupby(daily["date"].dt.day_name())["quantity"].mean()
    index = {day: round(float(v) / overall, 3) for day, v in by_day.items()}
    peak_day = max(index, key=index.get)
    return {
        "weekday_index": index,
        "peak_day": peak_day if index[peak_day] > 1.2 else None,
    }


# ── Turnover ─────────────────────────────────────────────────────────────────

def estimate_turnover(
    quantity: float,
    min_stock_level: float,
    price: float,
    daily_usage: Optional[float] = None,
) -> float:
    """Annual turnover as the mean of three independent estimators."""
    usage = daily_usage if daily_usage and daily_usage > 0 else estimate_daily_usage(quantity, min_stock_level)
    annual_demand = usage * 365.0

    stock_cover = annual_demand / max(1.0, (quantity + min_stock_level) / 2.0)
    velocity = 365.0 / max(1.0, quantity / usage)
    price_adjusted = stock_cover / (1.0 + math.log1p(max(price, 0.0)) / 10.0)

    return round(float(np.mean([stock_cover, velocity, price_adjusted])), 3)


def turnover_risk(turnover_rate: float) -> str:
    if turnover_rate < 2.0:
        return "high"
    if turnover_rate < 6.0:
        return "medium"
    return "low"


def days_in_inventory(turnover_rate: float) -> float:
    return round(365.0 / turnover_rate, 1) if turnover_rate > 0 else 365.0


# ── Stock optimisation ───────────────────────────────────────────────────────

def safety_stock(daily_usage: float, lead_time_days: float, usage_std: Optional[float] = None) -> float:
    std = usage_std if usage_std is not None else daily_usage * 0.5
    return round(SERVICE_LEVEL_Z * std * math.sqrt(max(lead_time_days, 0.0)), 2)


def demand_statistics(demands: Sequence[float], lead_times: Sequence[float]) -> Dict[str, float]:
    """Mean demand, mean lead time, sample standard deviation of demand and the resulting safety stock."""
    demand = np.asarray(demands, dtype=float)
    lead = np.asarray(lead_times, dtype=float)
    mean_demand = float(demand.mean()) if demand.size else 0.0
    mean_lead = float(lead.mean()) if lead.size else 0.0
    std = float(demand.std(ddof=1)) if demand.size > 1 else 0.0
    return {
        "average_demand": round(mean_demand, 2),
        "average_lead_time": round(mean_lead, 2),
        "demand_std_dev": round(std, 2),
        "safety_stock": max(0.0, safety_stock(mean_demand, mean_lead, usage_std=std)),
    }


def optimize_order_level(
    daily_usage: float,
    lead_time_days: float,
    unit_cost: float,
    min_stock: float,
    max_stock: float,
    holding_rate: float = 0.25,
    shortage_multiplier: float = 4.0,
    generations: int = 10,
) -> Dict[str, Any]:
    """
    Bounded neighbourhood search for the order-up-to level.

    Cost = monthly holding cost of the level + shortage penalty for every unit
    below lead-time demand plus safety stock. The search starts at the middle
    of [min_stock, max_stock] and halves its step whenever no neighbour
    improves the cost.
    """
    lo = max(0.0, float(min_stock))
    hi = max(lo, float(max_stock))
    buffer = safety_stock(daily_usage, lead_time_days)
    reorder_point = daily_usage * lead_time_days + buffer
    unit_cost = max(unit_cost, 0.0)

    def cost(level: float) -> float:
        holding = unit_cost * holding_rate * level / 12.0
        shortage = (unit_cost or 1.0) * shortage_multiplier * max(0.0, reorder_point - level)
        return holding + shortage

    level = (lo + hi) / 2.0
    step = max((hi - lo) / 4.0, 1.0)
    best = cost(level)
    for _ in range(generations):
        candidates = [min(hi, max(lo, level + delta)) for delta in (-step, step)]
        scored = sorted((cost(c), c) for c in candidates)
        if scored[0][0] < best:
            best, level = scored[0]
        else:
            step /= 2.0

    return {
        "optimal_stock": int(math.ceil(level)),
        "safety_stock": buffer,
        "reorder_point": round(reorder_point, 2),
        "cost": round(best, 2),
        "generations": generations,
    }


def optimization_priority(savings: float, current_stock: float, reorder_point: float) -> str:
    if current_stock < reorder_point or savings > 1000:
        return "high"
    if savings > 100:
        return "medium"
    return "low"


# ── Depletion ────────────────────────────────────────────────────────────────

def days_until_depletion(quantity: float, daily_usage: float) -> Optional[float]:
    if daily_usage <= 0:
        return None
    return round(max(quantity, 0.0) / daily_usage, 1)


# ── Suppliers ────────────────────────────────────────────────────────────────

MAX_SUPPLIER_LEAD_TIME_DAYS = 60.0


def supplier_score(lead_time_days: float, reliability: float, cost_score: float = 0.5) -> float:
    """Weighted score: reliability 50%, lead time 30%, cost 20%."""
    lead_score = max(0.0, 1.0 - lead_time_days / MAX_SUPPLIER_LEAD_TIME_DAYS)
    return round(0.5 * reliability + 0.3 * lead_score + 0.2 * cost_score, 4)


def supplier_rating(score: float) -> str:
    if score >= 0.7:
        return "highly_recommended"
    if score >= 0.5:
        return "recommended"
    return "not_recommended"
