"""
Strategy-level data contracts.

``AnalysisResult`` and ``ReportPayload`` normalise whatever a strategy (local
or remote) produced: confidence is clamped into [0, 1] and the risk level is
always one of ``RISK_LEVELS``.
"""
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

RISK_LEVELS = ("low", "medium", "high")
DEFAULT_CONFIDENCE = 0.8


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def clamp_confidence(value: Any, default: float = DEFAULT_CONFIDENCE) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = default
    if math.isnan(number):
        number = default
    return max(0.0, min(1.0, number))


def coerce_risk_level(value: Any) -> str:
    if isinstance(value, str) and value.strip().lower() in RISK_LEVELS:
        return value.strip().lower()
    return "medium"


def _as_text_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, Mapping):
        value = [value]
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"expected a list of strings, got {type(value).__name__}")
    out = []
    for entry in value:
        if isinstance(entry, Mapping):
            text = entry.get("action") or entry.get("message") or entry.get("recommendation")
            out.append(str(text) if text else str(dict(entry)))
        elif entry is not None:
            out.append(str(entry))
    return out


class AnalysisRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    items: Tuple[Dict[str, Any], ...]
    analysis_type: str = "stock_prediction"
    period_days: int = Field(30, ge=0)
    context: Dict[str, Any] = Field(default_factory=dict)


class AnalysisResult(BaseModel):
    analysis_type: str
    risk_level: str = "medium"
    confidence: float = DEFAULT_CONFIDENCE
    recommendations: List[str] = Field(default_factory=list)
    is_fallback: bool = False
    timestamp: datetime = Field(default_factory=utcnow)
    analysis: str = "Analysis completed"
    generated_by: str = "strategy"
    details: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("risk_level", mode="before")
    @classmethod
    def _coerce_risk(cls, v: Any) -> str:
        return coerce_risk_level(v)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v: Any) -> float:
        return clamp_confidence(v)

    @field_validator("recommendations", mode="before")
    @classmethod
    def _normalise_recommendations(cls, v: Any) -> List[str]:
        return _as_text_list(v)

    @classmethod
    def from_payload(
        cls,
        payload: Mapping[str, Any],
        analysis_type: str,
        generated_by: str = "strategy",
    ) -> "AnalysisResult":
        """Build a result from a loosely-shaped mapping (camelCase or snake_case keys)."""
        known = {"riskLevel", "risk_level", "confidence", "recommendations", "analysis", "timestamp"}
        details = {k: v for k, v in payload.items() if k not in known}
        analysis = payload.get("analysis")
        return cls(
            analysis_type=analysis_type,
            risk_level=payload.get("riskLevel", payload.get("risk_level")),
            confidence=payload.get("confidence", DEFAULT_CONFIDENCE),
            recommendations=payload.get("recommendations"),
            analysis=str(analysis) if analysis else "Analysis completed",
            generated_by=generated_by,
            details=details,
        )


class ReportPayload(BaseModel):
    report_type: str
    summary: Dict[str, Any] = Field(
        default_factory=lambda: {"totalItems": 0, "totalValue": 0, "criticalItems": 0}
    )
    key_findings: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    is_fallback: bool = False
    generated_by: str = "strategy"
    timestamp: datetime = Field(default_factory=utcnow)

    @field_validator("key_findings", "recommendations", mode="before")
    @classmethod
    def _normalise_text(cls, v: Any) -> List[str]:
        return _as_text_list(v)

    @field_validator("summary", mode="before")
    @classmethod
    def _summary_mapping(cls, v: Any) -> Dict[str, Any]:
        if isinstance(v, Mapping):
            return dict(v)
        return {"text": str(v)} if v else {}

    @classmethod
    def from_payload(
        cls,
        payload: Mapping[str, Any],
        report_type: str,
        generated_by: str = "strategy",
    ) -> "ReportPayload":
        data: Dict[str, Any] = {
            "report_type": str(payload.get("reportType") or payload.get("report_type") or report_type),
            "key_findings": payload.get("keyFindings", payload.get("key_findings")),
            "recommendations": payload.get("recommendations"),
            "generated_by": generated_by,
        }
        if payload.get("summary") is not None:
            data["summary"] = payload["summary"]
        return cls(**data)


class StrategyMetrics(BaseModel):
    calls: int = 0
    failures: int = 0
    fallbacks: int = 0
    total_latency_ms: float = 0.0
    last_error: Optional[str] = None

    @property
    def average_latency_ms(self) -> float:
        return round(self.total_latency_ms / self.calls, 2) if self.calls else 0.0

    @property
    def success_rate(self) -> float:
        return round((self.calls - self.failures) / self.calls, 4) if self.calls else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "calls": self.calls,
            "failures": self.failures,
            "fallbacks": self.fallbacks,
            "average_latency_ms": self.average_latency_ms,
            "success_rate": self.success_rate,
            "last_error": self.last_error,
        }
