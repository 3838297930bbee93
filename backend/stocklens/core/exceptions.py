"""
Domain Exceptions

Services raise these; the API layer converts them with ``to_http_exception``.
Strategy-internal parse problems (``ParseFailureException``) never leave the
strategy that raised them.
"""
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status


class StockLensException(Exception):
    """Base class for all domain errors."""

    code = "STOCKLENS_ERROR"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidInputException(StockLensException):
    code = "INVALID_INPUT"
    http_status = status.HTTP_400_BAD_REQUEST


class UnsupportedReportTypeException(StockLensException):
    code = "UNSUPPORTED_REPORT_TYPE"
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, report_type: str, supported: Optional[List[str]] = None):
        super().__init__(
            f"No builder available for report type: {report_type}",
            details={"report_type": report_type, "supported_types": supported or []},
        )
        self.report_type = report_type


class ValidationFailedException(StockLensException):
    code = "VALIDATION_FAILED"
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, errors: List[str]):
        super().__init__(
            "Report definition validation failed: " + ", ".join(errors),
            details={"errors": list(errors)},
        )
        self.errors = list(errors)


class RemoteUnavailableException(StockLensException):
    code = "AI_REMOTE_UNAVAILABLE"
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE


class ParseFailureException(StockLensException):
    code = "AI_PARSE_FAILURE"
    http_status = status.HTTP_502_BAD_GATEWAY


class DataSourceException(StockLensException):
    code = "DATA_SOURCE_ERROR"
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE


def to_http_exception(exc: StockLensException) -> HTTPException:
    return HTTPException(status_code=exc.http_status, detail=exc.to_dict())
