from fastapi import Request

from stocklens.services.ai_service import AIService
from stocklens.services.inventory_analysis_service import InventoryAnalysisService
from stocklens.services.reporting_service import ReportingService


def get_ai_service(request: Request) -> AIService:
    return request.app.state.ai_service


def get_analysis_service(request: Request) -> InventoryAnalysisService:
    return request.app.state.analysis_service


def get_reporting_service(request: Request) -> ReportingService:
    return request.app.state.reporting_service
