import math
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as date_parser
from pydantic import BaseModel, Field, model_validator

from stocklens.schemas.analysis import utcnow


def _new_id() -> str:
    return uuid.uuid4().hex


# ── Date range ───────────────────────────────────────────────────────────────

class DateRange(BaseModel):
    start: datetime
    end: datetime
    timezone: str = "UTC"

    @model_validator(mode="after")
    def check_range(self):
        try:
            tz = ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Invalid timezone: {self.timezone}")
        if self.start.tzinfo is None:
            self.start = self.start.replace(tzinfo=tz)
        if self.end.tzinfo is None:
            self.end = self.end.replace(tzinfo=tz)
        if self.start > self.end:
            raise ValueError("Start date cannot be after end date")
        return self

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DateRange":
        """Accepts ``start``/``end`` or ``startDate``/``endDate`` as ISO-8601 strings."""
        raw_start = data.get("start", data.get("startDate"))
        raw_end = data.get("end", data.get("endDate"))
        try:
            start = raw_start if isinstance(raw_start, datetime) else date_parser.isoparse(str(raw_start))
            end = raw_end if isinstance(raw_end, datetime) else date_parser.isoparse(str(raw_end))
        except ValueError as exc:
            raise ValueError("Invalid date format in date range") from exc
        return cls(start=start, end=end, timezone=data.get("timezone") or "UTC")

    @classmethod
    def last_days(cls, days: int, timezone: str = "UTC") -> "DateRange":
        end = datetime.now(ZoneInfo(timezone))
        return cls(start=end - timedelta(days=days), end=end, timezone=timezone)

    @property
    def day_count(self) -> int:
        return max(1, math.ceil((self.end - self.start).total_seconds() / 86400))

    def to_dict(self) -> Dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat(), "timezone": self.timezone}


# ── Definition ───────────────────────────────────────────────────────────────

class ReportDefinition(BaseModel):
    id: str = Field(default_factory=_new_id)
    type: str
    name: str
    description: str = ""
    filters: Dict[str, Any] = Field(default_factory=dict)
    sorting: Dict[str, Any] = Field(default_factory=dict)
    date_range: Optional[DateRange] = None
    columns: List[Any] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def create_simple(
        cls,
        type: str,
        name: str,
        date_range: Optional[DateRange] = None,
        filters: Optional[Dict[str, Any]] = None,
    ) -> "ReportDefinition":
        return cls(
            type=type,
            name=name,
            description=f"Automatically generated {type} report",
            filters=dict(filters or {}),
            date_range=date_range,
            created_by="system",
        )

    def validation_errors(self) -> List[str]:
        """Structural checks that do not depend on the report type registry."""
        errors = []
        if not self.name or not self.name.strip():
            errors.append("Report name cannot be empty")
        if len(self.name) > 255:
            errors.append("Report name cannot exceed 255 characters")
        if any(not isinstance(c, str) for c in self.columns):
            errors.append("Column names must be strings")
        if self.date_range is not None and self.date_range.start > self.date_range.end:
            errors.append("Invalid date range: Start date cannot be after end date")
        return errors

    def derive(self, **metadata: Any) -> "ReportDefinition":
        """Deep copy with extra metadata; the original is left untouched."""
        clone = self.model_copy(deep=True)
        clone.metadata.update(metadata)
        return clone

    @property
    def max_records(self) -> Optional[int]:
        value = self.metadata.get("max_records")
        return int(value) if value else None

    @property
    def is_test_mode(self) -> bool:
        return bool(self.metadata.get("test_mode"))


class ReportTypeInfo(BaseModel):
    type: str
    name: str
    description: str
    requires_date_range: bool = False
    default_columns: List[str] = Field(default_factory=list)


class ValidationOutcome(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)


# ── Result ───────────────────────────────────────────────────────────────────

class Insight(BaseModel):
    type: str
    message: str
    priority: str = "low"


class Recommendation(BaseModel):
    type: str
    priority: str
    action: str
    impact: str = ""
    timeline: Optional[str] = None


class ReportMetadata(BaseModel):
    execution_time_ms: float = 0.0
    record_count: int = 0
    status: str = "success"
    additional_info: Dict[str, Any] = Field(default_factory=dict)


class ReportResult(BaseModel):
    """
    Outcome of one report generation.

    Build through ``success`` or ``error``. Post-processing may only touch the
    result through the ``set_*`` / ``add_*`` methods.
    """

    id: str = Field(default_factory=_new_id)
    definition: ReportDefinition
    status: str = "success"
    summary: Dict[str, Any] = Field(default_factory=dict)
    details: List[Dict[str, Any]] = Field(default_factory=list)
    insights: List[Insight] = Field(default_factory=list)
    recommendations: List[Recommendation] = Field(default_factory=list)
    metadata: ReportMetadata = Field(default_factory=ReportMetadata)
    generated_at: datetime = Field(default_factory=utcnow)
    error_message: Optional[str] = None

    @classmethod
    def success(
        cls,
        definition: ReportDefinition,
        summary: Dict[str, Any],
        details: Optional[List[Dict[str, Any]]] = None,
        insights: Optional[List[Insight]] = None,
        recommendations: Optional[List[Recommendation]] = None,
        additional_info: Optional[Dict[str, Any]] = None,
    ) -> "ReportResult":
        return cls(
            definition=definition,
            status="success",
            summary=summary,
            details=details or [],
            insights=insights or [],
            recommendations=recommendations or [],
            metadata=ReportMetadata(
                record_count=int(summary.get("recordCount", 0)),
                status="success",
                additional_info=additional_info or {},
            ),
        )

    @classmethod
    def error(cls, definition: ReportDefinition, message: str, execution_time_ms: float = 0.0) -> "ReportResult":
        return cls(
            definition=definition,
            status="error",
            summary={"recordCount": 0},
            metadata=ReportMetadata(execution_time_ms=execution_time_ms, status="error"),
            error_message=message,
        )

    @property
    def is_success(self) -> bool:
        return self.status == "success" and self.error_message is None

    @property
    def record_count(self) -> int:
        return int(self.summary.get("recordCount", 0))

    def set_insights(self, insights: List[Insight]) -> None:
        self.insights = list(insights)

    def add_insights(self, insights: List[Insight]) -> None:
        self.insights = self.insights + list(insights)

    def set_execution_time(self, execution_time_ms: float) -> None:
        self.metadata.execution_time_ms = round(execution_time_ms, 2)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


# ── API bodies ───────────────────────────────────────────────────────────────

class ReportRequest(BaseModel):
    type: str
    name: str
    description: str = ""
    filters: Dict[str, Any] = Field(default_factory=dict)
    sorting: Dict[str, Any] = Field(default_factory=dict)
    date_range: Optional[Dict[str, Any]] = None
    columns: List[Any] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_by: Optional[str] = None

    def to_definition(self) -> ReportDefinition:
        return ReportDefinition(
            type=self.type,
            name=self.name,
            description=self.description,
            filters=self.filters,
            sorting=self.sorting,
            date_range=DateRange.from_dict(self.date_range) if self.date_range else None,
            columns=self.columns,
            metadata=self.metadata,
            created_by=self.created_by,
        )


class ComparativeReportRequest(BaseModel):
    definition: ReportRequest
    previous_summary: Dict[str, Any] = Field(default_factory=dict)


class CacheTTLRequest(BaseModel):
    ttl_seconds: int = Field(..., ge=1)
