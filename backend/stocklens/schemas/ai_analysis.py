"""
Response contracts of the analysis orchestrator.

Every response carries ``status`` and ``is_fallback``; the remaining fields
are always present whether or not the AI layer contributed.
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from stocklens.schemas.analysis import utcnow
from stocklens.schemas.inventory import InventoryRecord, SalesRecord


class OrchestratorResponse(BaseModel):
    status: str = "success"
    is_fallback: bool = False
    error_message: Optional[str] = None


# ── Shared pieces ────────────────────────────────────────────────────────────

class InventorySummary(BaseModel):
    record_count: int = 0
    total_value: float = 0.0
    average_price: float = 0.0
    low_stock_count: int = 0
    out_of_stock_count: int = 0
    health_score: float = 0.0
    health_status: str = "critical"


class CriticalItems(BaseModel):
    low_stock: List[InventoryRecord] = Field(default_factory=list)
    out_of_stock: List[InventoryRecord] = Field(default_factory=list)


class ItemOptimization(BaseModel):
    name: str
    current_stock: float = 0.0
    optimal_stock: float = 0.0
    safety_stock: float = 0.0
    reorder_point: float = 0.0
    potential_savings: float = 0.0
    priority: str = "low"


class StockOptimizationSummary(BaseModel):
    optimizations: List[ItemOptimization] = Field(default_factory=list)
    total_potential_savings: float = 0.0


# ── Comprehensive analysis ───────────────────────────────────────────────────

class ComprehensiveAnalysisResponse(OrchestratorResponse):
    summary: InventorySummary = Field(default_factory=InventorySummary)
    risk_assessment: str = "unknown"
    ai_insights: List[str] = Field(default_factory=list)
    critical_items: CriticalItems = Field(default_factory=CriticalItems)
    stock_optimization: StockOptimizationSummary = Field(default_factory=StockOptimizationSummary)
    items_analyzed: int = 0
    analysis_timestamp: datetime = Field(default_factory=utcnow)
    execution_time_ms: float = 0.0


# ── Weekly report ────────────────────────────────────────────────────────────

class ReportPeriod(BaseModel):
    start: date
    end: date
    type: str = "weekly"


class ExecutiveSummary(BaseModel):
    overview: str = ""
    key_findings: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class WeeklyMetrics(BaseModel):
    total_inventory_value: float = 0.0
    average_price: float = 0.0
    low_stock_count: int = 0
    out_of_stock_count: int = 0
    health_score: float = 0.0
    out_of_stock_percentage: float = 0.0


class ActionItem(BaseModel):
    priority: str
    action: str
    reason: str


class WeeklyReportResponse(OrchestratorResponse):
    period: ReportPeriod
    executive_summary: ExecutiveSummary = Field(default_factory=ExecutiveSummary)
    key_metrics: WeeklyMetrics = Field(default_factory=WeeklyMetrics)
    action_items: List[ActionItem] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=utcnow)


# ── Critical item monitoring ─────────────────────────────────────────────────

class CriticalAlert(BaseModel):
    type: str
    item_id: Optional[int] = None
    item_name: str
    current_stock: int = 0
    min_stock: int = 0
    urgency: str
    predicted_out_of_stock: Optional[str] = None
    recommended_action: str


class MonitoringSummary(BaseModel):
    low_stock_count: int = 0
    out_of_stock_count: int = 0
    urgent_alerts: int = 0


class CriticalMonitoringResponse(OrchestratorResponse):
    alerts: List[CriticalAlert] = Field(default_factory=list)
    risk_level: str = "medium"
    total_critical_items: int = 0
    summary: MonitoringSummary = Field(default_factory=MonitoringSummary)
    monitoring_timestamp: datetime = Field(default_factory=utcnow)


# ── Prediction ───────────────────────────────────────────────────────────────

class ItemForecast(BaseModel):
    name: str
    current_stock: int = 0
    daily_usage: float = 0.0
    days_until_depletion: Optional[float] = None
    projected_stock: float = 0.0
    recommended_order_quantity: int = 0


class PredictionResponse(OrchestratorResponse):
    forecast_period: int = 30
    risk_level: str = "medium"
    predictions: List[ItemForecast] = Field(default_factory=list)
    recommended_actions: List[str] = Field(default_factory=list)
    confidence_score: float = 0.0
    forecast_timestamp: datetime = Field(default_factory=utcnow)


# ── Optimisation ─────────────────────────────────────────────────────────────

class SavingsAnalysis(BaseModel):
    total_potential_savings: float = 0.0
    savings_percentage: float = 0.0
    item_savings: Dict[str, float] = Field(default_factory=dict)


class OptimizationResponse(OrchestratorResponse):
    optimizations: List[ItemOptimization] = Field(default_factory=list)
    savings_analysis: SavingsAnalysis = Field(default_factory=SavingsAnalysis)
    implementation_plan: List[str] = Field(default_factory=list)
    total_items_optimized: int = 0
    optimization_method: str = "rule_based"
    optimization_timestamp: datetime = Field(default_factory=utcnow)


# ── Sales trends ─────────────────────────────────────────────────────────────

class SalesTrendRequest(BaseModel):
    sales: List[SalesRecord] = Field(default_factory=list)
    period_days: int = Field(30, ge=1, le=365)


class SalesTrendResponse(OrchestratorResponse):
    period_analyzed: int = 30
    trend: str = "stable"
    growth_rate: float = 0.0
    average_daily_sales: float = 0.0
    total_quantity: float = 0.0
    total_revenue: float = 0.0
    confidence: float = 0.0
    recommendations: List[str] = Field(default_factory=list)
    analysis_timestamp: datetime = Field(default_factory=utcnow)


# ── Status ───────────────────────────────────────────────────────────────────

class AIStatusResponse(OrchestratorResponse):
    ai_enabled: bool = False
    ai_service_available: bool = False
    active_strategy: Optional[str] = None
    fallback_strategy: Optional[str] = None
    available_strategies: List[str] = Field(default_factory=list)
    strategy_availability: Dict[str, bool] = Field(default_factory=dict)
    capabilities: List[str] = Field(default_factory=list)
    metrics: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)


# ── Purchasing and safety stock ──────────────────────────────────────────────

class SupplierRecord(BaseModel):
    name: str = Field(..., min_length=1)
    lead_time_days: float = Field(..., ge=0)
    reliability_score: float = Field(..., ge=0, le=1)
    cost_score: float = Field(0.5, ge=0, le=1)


class PurchaseRecommendationRequest(BaseModel):
    suppliers: List[SupplierRecord] = Field(..., min_length=1)


class DemandRecord(BaseModel):
    date: str = Field(..., min_length=1)
    demand: float = Field(..., ge=0)
    lead_time: float = Field(..., ge=0)


class SafetyStockRequest(BaseModel):
    history: List[DemandRecord] = Field(..., min_length=1)
