"""
AI Analysis Router — Thin Controller (SRP / DIP)
"""
from fastapi import APIRouter, Depends, Query

from stocklens.core.exceptions import InvalidInputException
from stocklens.dependencies import get_ai_service, get_analysis_service
from stocklens.schemas.ai_analysis import (
    AIStatusResponse,
    ComprehensiveAnalysisResponse,
    CriticalMonitoringResponse,
    OptimizationResponse,
    PredictionResponse,
    PurchaseRecommendationRequest,
    SafetyStockRequest,
    SalesTrendRequest,
    SalesTrendResponse,
    WeeklyReportResponse,
)
from stocklens.schemas.analysis import AnalysisResult
from stocklens.services.ai_service import AIService
from stocklens.services.inventory_analysis_service import InventoryAnalysisService

router = APIRouter(prefix="/ai", tags=["AI Analysis"])


@router.get("/analysis/comprehensive", response_model=ComprehensiveAnalysisResponse)
def comprehensive_analysis(service: InventoryAnalysisService = Depends(get_analysis_service)):
    return service.get_comprehensive_analysis()


@router.get("/reports/weekly", response_model=WeeklyReportResponse)
def weekly_report(service: InventoryAnalysisService = Depends(get_analysis_service)):
    return service.generate_weekly_report()


@router.get("/monitor/critical", response_model=CriticalMonitoringResponse)
def monitor_critical(service: InventoryAnalysisService = Depends(get_analysis_service)):
    return service.monitor_critical_items()


@router.get("/predict", response_model=PredictionResponse)
def predict_inventory(
    days: int = Query(30, ge=1, le=365),
    service: InventoryAnalysisService = Depends(get_analysis_service),
):
    return service.predict_inventory_needs(forecast_days=days)


@router.get("/optimize", response_model=OptimizationResponse)
def optimize_inventory(service: InventoryAnalysisService = Depends(get_analysis_service)):
    return service.optimize_inventory()


@router.post("/sales-trends", response_model=SalesTrendResponse)
def sales_trends(
    payload: SalesTrendRequest,
    service: InventoryAnalysisService = Depends(get_analysis_service),
):
    return service.analyze_sales_trends(payload.sales, period_days=payload.period_days)


@router.post("/purchase-recommendations", response_model=AnalysisResult)
def purchase_recommendations(payload: PurchaseRecommendationRequest, ai: AIService = Depends(get_ai_service)):
    return ai.generate_purchase_recommendations(payload.suppliers)


@router.post("/safety-stock", response_model=AnalysisResult)
def safety_stock(payload: SafetyStockRequest, ai: AIService = Depends(get_ai_service)):
    return ai.calculate_safety_stock(payload.history)


@router.get("/status", response_model=AIStatusResponse)
def ai_status(service: InventoryAnalysisService = Depends(get_analysis_service)):
    return service.get_ai_status()


@router.put("/strategy/{strategy_id}", response_model=AIStatusResponse)
def switch_strategy(
    strategy_id: str,
    ai: AIService = Depends(get_ai_service),
    service: InventoryAnalysisService = Depends(get_analysis_service),
):
    if not ai.set_strategy(strategy_id):
        raise InvalidInputException(
            f"Unknown AI strategy: {strategy_id}", details={"available": ai.available_strategies()}
        )
    return service.get_ai_status()
