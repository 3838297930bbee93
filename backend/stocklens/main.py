"""
StockLens FastAPI Application Entry Point

- Application factory: the session factory and services are built here and
  hung on ``app.state``; routers resolve them through ``stocklens.dependencies``
- Global exception handlers convert domain exceptions into HTTP responses
"""
import logging
import time
import uuid
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import sessionmaker

from stocklens.config import Settings, settings as default_settings
from stocklens.core.exceptions import StockLensException, to_http_exception
from stocklens.database import build_engine, build_session_factory, create_tables
from stocklens.repositories.inventory_data_source import SqlInventoryDataSource
from stocklens.routers import ai_analysis, reports
from stocklens.services.ai_service import AIService
from stocklens.services.inventory_analysis_service import InventoryAnalysisService
from stocklens.services.reporting_service import ReportingService
from stocklens.utils.logging import configure_logging, request_id_var

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[sessionmaker] = None,
    ai_service: Optional[AIService] = None,
) -> FastAPI:
    settings = settings or default_settings
    configure_logging(log_level=settings.LOG_LEVEL, log_format=settings.LOG_FORMAT)

    if session_factory is None:
        engine = build_engine(settings.DATABASE_URL)
        if settings.AUTO_CREATE_TABLES:
            create_tables(engine)
        session_factory = build_session_factory(engine)

    data_source = SqlInventoryDataSource(session_factory)
    ai_service = ai_service or AIService()

    app = FastAPI(
        title=settings.APP_NAME,
        debug=settings.DEBUG,
        version=settings.APP_VERSION,
        description="Inventory analysis and reporting with pluggable AI strategies",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.ai_service = ai_service
    app.state.analysis_service = InventoryAnalysisService(data_source, ai_service)
    app.state.reporting_service = ReportingService(data_source, ai_service)

    # ── CORS Middleware ──────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):
        """
        Reads X-Request-ID (or generates one) and exposes it to log records
        through ``request_id_var`` for the duration of the request.
        """
        start = time.perf_counter()
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        duration_ms = (time.perf_counter() - start) * 1000
        if settings.ENABLE_REQUEST_ID:
            response.headers["X-Request-ID"] = request_id
            response.headers["X-Response-Time-Ms"] = f"{duration_ms:.2f}"

        if settings.ENABLE_REQUEST_LOGGING:
            logger.info(
                "request_completed method=%s path=%s status=%s duration_ms=%.2f request_id=%s",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                request_id,
            )
        return response

    # ── Global Exception Handlers ────────────────────────────────────────────

    @app.exception_handler(StockLensException)
    async def stocklens_exception_handler(request: Request, exc: StockLensException) -> JSONResponse:
        http_exc = to_http_exception(exc)
        return JSONResponse(
            status_code=http_exc.status_code,
            content={"success": False, "error": http_exc.detail},
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": {"code": "VALIDATION_ERROR", "message": str(exc)}},
        )

    # ── API Routers ──────────────────────────────────────────────────────────
    app.include_router(ai_analysis.router, prefix=API_PREFIX)
    app.include_router(reports.router, prefix=API_PREFIX)

    # ── Health Endpoints ─────────────────────────────────────────────────────

    @app.get("/health", tags=["Health"])
    def health_check():
        return {
            "status": "healthy",
            "app": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "ai_enabled": ai_service.enabled,
        }

    logger.info("Starting %s v%s", settings.APP_NAME, settings.APP_VERSION)
    return app


app = create_app()
