"""
Ollama Strategy — remote LLM analysis over the Ollama HTTP API.

Transport failures raise ``RemoteUnavailableException`` so the dispatcher or
orchestrator can degrade. Unparseable model output never raises; it is turned
into a fallback result built from the raw text.
"""
import json
import logging
import time
from typing import Any, Dict, Optional

import requests
from pydantic import ValidationError

from stocklens.config import settings
from stocklens.core.exceptions import ParseFailureException, RemoteUnavailableException
from stocklens.ml.json_extraction import extract_json_object
from stocklens.ml.strategies import AnalysisInput, BaseAnalysisStrategy
from stocklens.schemas.analysis import AnalysisRequest, AnalysisResult, ReportPayload

logger = logging.getLogger(__name__)

_ANALYSIS_SHAPE = (
    "{\n"
    '  "analysis": "string",\n'
    '  "riskLevel": "low|medium|high",\n'
    '  "confidence": 0.0-1.0,\n'
    '  "recommendations": ["string"]\n'
    "}"
)

_ANALYSIS_PROMPTS = {
    "stock_prediction": (
        "As an inventory analyst, analyse the inventory data below and predict stock needs.",
        '  "timeline": {"depletionDate": "YYYY-MM-DD", "optimalRestockDate": "YYYY-MM-DD"}',
    ),
    "anomaly_detection": (
        "Detect anomalies in the inventory data below.",
        '  "anomalies": ["string"]',
    ),
    "sales_trends": (
        "Analyse the sales history below and describe the trend.",
        '  "trendDirection": "increasing|decreasing|stable",\n  "growthRate": number',
    ),
    "inventory_turnover": (
        "Estimate inventory turnover for the items below and flag slow movers.",
        '  "slowMovingItems": ["string"]',
    ),
    "stock_optimization": (
        "Suggest optimal stock levels for the items below.",
        '  "optimizations": [{"name": "string", "optimalStock": number}]',
    ),
    "purchase_recommendations": (
        "Rank the suppliers below by reliability, lead time and cost.",
        '  "suppliers": [{"supplier_name": "string", "score": number, "recommendation": "string"}]',
    ),
    "safety_stock": (
        "Size the safety stock for the demand history below at a 90% service level.",
        '  "safety_stock": number',
    ),
    "risk_assessment": (
        "Assess stock-out risk for the inventory data below.",
        "",
    ),
    "comprehensive_analysis": (
        "Give a comprehensive health analysis of the inventory data below.",
        "",
    ),
}

_REPORT_SHAPE = (
    "{\n"
    '  "reportType": "%s",\n'
    '  "summary": {"totalItems": number, "totalValue": number, "criticalItems": number},\n'
    '  "keyFindings": ["string"],\n'
    '  "recommendations": ["string"]\n'
    "}"
)


class OllamaStrategy(BaseAnalysisStrategy):

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        probe_timeout: Optional[float] = None,
        temperature: Optional[float] = None,
        top_p: Optional[float] = None,
        num_predict: Optional[int] = None,
    ):
        self._base_url = (base_url or settings.OLLAMA_BASE_URL).rstrip("/")
        self._model = model or settings.OLLAMA_MODEL
        self._timeout = timeout if timeout is not None else settings.OLLAMA_TIMEOUT_SECONDS
        self._probe_timeout = probe_timeout if probe_timeout is not None else settings.OLLAMA_PROBE_TIMEOUT_SECONDS
        self._options = {
            "temperature": temperature if temperature is not None else settings.OLLAMA_TEMPERATURE,
            "top_p": top_p if top_p is not None else settings.OLLAMA_TOP_P,
            "num_predict": num_predict if num_predict is not None else settings.OLLAMA_NUM_PREDICT,
        }
        logger.info("ollama_strategy_initialized base_url=%s model=%s", self._base_url, self._model)

    @property
    def strategy_id(self) -> str:
        return "ollama"

    @property
    def display_name(self) -> str:
        return f"Ollama ({self._model})"

    @property
    def generated_by(self) -> str:
        return f"ollama:{self._model}"

    # ── Public contract ──────────────────────────────────────────────────────

    def analyze(self, data: AnalysisInput, analysis_type: str = "stock_prediction") -> AnalysisResult:
        request = self._build_request(data, analysis_type)
        body = self.call_api(self.build_analysis_prompt(request))
        return self.parse_analysis(body["response"], analysis_type)

    def generate(self, data: AnalysisInput, report_type: str = "summary") -> ReportPayload:
        request = self._build_request(data, report_type)
        body = self.call_api(self.build_report_prompt(request, report_type))
        return self.parse_report(body["response"], report_type)

    def is_available(self) -> bool:
        url = f"{self._base_url}/api/tags"
        try:
            response = requests.get(url, timeout=self._probe_timeout)
        except requests.RequestException as exc:
            logger.warning("ollama_probe_failed url=%s error=%s", url, exc)
            return False
        return response.status_code == 200

    # ── Prompts ──────────────────────────────────────────────────────────────

    @staticmethod
    def _items_json(request: AnalysisRequest) -> str:
        return json.dumps(list(request.items), indent=2, default=str)

    def build_analysis_prompt(self, request: AnalysisRequest) -> str:
        instruction, extra = _ANALYSIS_PROMPTS.get(
            request.analysis_type,
            ("Analyse the inventory data below and give useful insights.", ""),
        )
        shape = _ANALYSIS_SHAPE if not extra else _ANALYSIS_SHAPE[:-2] + ",\n" + extra + "\n}"
        return (
            f"{instruction}\n\n"
            f"Data:\n{self._items_json(request)}\n\n"
            f"Respond with JSON only, in this format:\n{shape}"
        )

    def build_report_prompt(self, request: AnalysisRequest, report_type: str) -> str:
        return (
            f"Write a {report_type.replace('_', ' ')} report for the inventory data below.\n\n"
            f"Data:\n{self._items_json(request)}\n\n"
            f"Respond with JSON only, in this format:\n{_REPORT_SHAPE % report_type}"
        )

    # ── Transport ────────────────────────────────────────────────────────────

    def call_api(self, prompt: str) -> Dict[str, Any]:
        url = f"{self._base_url}/api/generate"
        payload = {
            "model": self._model,
            "prompt": prompt,
            "stream": False,
            "options": dict(self._options),
        }
        logger.debug("ollama_call model=%s prompt_length=%s", self._model, len(prompt))

        start = time.perf_counter()
        try:
            response = requests.post(
                url,
                json=payload,
                headers={"Content-Type": "application/json", "Accept": "application/json"},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            duration_ms = (time.perf_counter() - start) * 1000
            raise RemoteUnavailableException(
                f"POST {url} failed after {duration_ms:.0f}ms: {exc}",
                details={"url": url, "method": "POST", "duration_ms": round(duration_ms, 2)},
            ) from exc

        if response.status_code != 200:
            raise RemoteUnavailableException(
                f"Ollama API returned status: {response.status_code}",
                details={"url": url, "status_code": response.status_code},
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise RemoteUnavailableException("Invalid response format from Ollama API") from exc
        if not isinstance(body, dict) or "response" not in body:
            raise RemoteUnavailableException("Invalid response format from Ollama API")
        return body

    # ── Parsing ──────────────────────────────────────────────────────────────

    def parse_analysis(self, text: str, analysis_type: str) -> AnalysisResult:
        try:
            return AnalysisResult.from_payload(
                extract_json_object(text), analysis_type, generated_by=self.generated_by
            )
        except (ParseFailureException, ValidationError) as exc:
            logger.warning("ollama_analysis_unparsed analysis_type=%s error=%s", analysis_type, exc)
            return AnalysisResult(
                analysis_type=analysis_type,
                analysis=(text or "")[:200] or "Analysis completed",
                risk_level="medium",
                confidence=0.6,
                recommendations=["Review inventory levels manually"],
                is_fallback=True,
                generated_by="fallback_parser",
            )

    def parse_report(self, text: str, report_type: str) -> ReportPayload:
        try:
            return ReportPayload.from_payload(
                extract_json_object(text), report_type, generated_by=self.generated_by
            )
        except (ParseFailureException, ValidationError) as exc:
            logger.warning("ollama_report_unparsed report_type=%s error=%s", report_type, exc)
            preview = (text or "")[:100]
            return ReportPayload(
                report_type=report_type,
                key_findings=[preview] if preview else [],
                recommendations=["Review inventory levels manually"],
                is_fallback=True,
                generated_by="fallback_parser",
            )
