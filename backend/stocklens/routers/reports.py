"""
Reports Router — Thin Controller (SRP / DIP)
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query

from stocklens.dependencies import get_reporting_service
from stocklens.schemas.report import (
    CacheTTLRequest,
    ComparativeReportRequest,
    ReportRequest,
    ReportResult,
    ReportTypeInfo,
    ValidationOutcome,
)
from stocklens.services.reporting_service import ReportingService

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/types", response_model=List[ReportTypeInfo])
def report_types(service: ReportingService = Depends(get_reporting_service)):
    return service.get_available_report_types()


@router.post("/generate", response_model=ReportResult)
def generate_report(payload: ReportRequest, service: ReportingService = Depends(get_reporting_service)):
    return service.generate_report(payload.to_definition())


@router.post("/validate", response_model=ValidationOutcome)
def validate_report(payload: ReportRequest, service: ReportingService = Depends(get_reporting_service)):
    return service.validate_report_definition(payload.to_definition())


@router.post("/test", response_model=ReportResult)
def test_report(payload: ReportRequest, service: ReportingService = Depends(get_reporting_service)):
    return service.test_report_generation(payload.to_definition())


@router.post("/comparative", response_model=ReportResult)
def comparative_report(
    payload: ComparativeReportRequest,
    service: ReportingService = Depends(get_reporting_service),
):
    return service.generate_comparative_report(payload.definition.to_definition(), payload.previous_summary)


@router.post("/realtime/{report_type}", response_model=ReportResult)
def real_time_report(
    report_type: str,
    filters: Optional[Dict[str, Any]] = Body(None),
    service: ReportingService = Depends(get_reporting_service),
):
    return service.generate_real_time_report(report_type, filters)


@router.get("/predictive/{report_type}", response_model=ReportResult)
def predictive_report(
    report_type: str,
    forecast_days: int = Query(30, ge=1, le=365),
    service: ReportingService = Depends(get_reporting_service),
):
    return service.generate_predictive_report(report_type, forecast_days)


@router.get("/cache/stats")
def cache_stats(service: ReportingService = Depends(get_reporting_service)):
    return service.get_cache_stats()


@router.delete("/cache")
def clear_cache(service: ReportingService = Depends(get_reporting_service)):
    return {"cleared": service.clear_cache()}


@router.put("/cache/ttl")
def set_cache_ttl(payload: CacheTTLRequest, service: ReportingService = Depends(get_reporting_service)):
    return {"ttl_seconds": service.set_cache_ttl(payload.ttl_seconds)}
