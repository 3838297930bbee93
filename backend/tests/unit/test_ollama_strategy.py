"""
Unit Tests — OllamaStrategy

``requests`` is patched at the module under test; no network access.
"""
from unittest.mock import MagicMock, patch

import pytest
import requests

from stocklens.core.exceptions import InvalidInputException, RemoteUnavailableException
from stocklens.ml.ollama_strategy import OllamaStrategy

ITEMS = [{"name": "Bolt", "quantity": 3, "min_stock_level": 10, "price": 0.5}]


def _response(status_code=200, body=None, json_error=False):
    resp = MagicMock()
    resp.status_code = status_code
    if json_error:
        resp.json.side_effect = ValueError("not json")
    else:
        resp.json.return_value = body if body is not None else {}
    return resp


@pytest.fixture
def strategy():
    return OllamaStrategy(base_url="http://ollama.test:11434/", model="phi3", timeout=2.0, probe_timeout=0.5)


class TestAnalyze:

    def test_noise_wrapped_json_is_parsed_and_clamped(self, strategy):
        body = {"response": 'noise {"riskLevel":"high","confidence":1.7} noise'}
        with patch("stocklens.ml.ollama_strategy.requests.post", return_value=_response(body=body)):
            result = strategy.analyze({"items": ITEMS}, "risk_assessment")
        assert result.confidence == 1.0
        assert result.risk_level == "high"
        assert result.is_fallback is False
        assert result.generated_by == "ollama:phi3"

    def test_request_shape(self, strategy):
        body = {"response": '{"riskLevel":"low"}'}
        with patch("stocklens.ml.ollama_strategy.requests.post", return_value=_response(body=body)) as post:
            strategy.analyze({"items": ITEMS}, "stock_prediction")
        url = post.call_args.args[0]
        kwargs = post.call_args.kwargs
        assert url == "http://ollama.test:11434/api/generate"
        assert kwargs["timeout"] == 2.0
        assert kwargs["json"]["model"] == "phi3"
        assert kwargs["json"]["stream"] is False
        assert "Bolt" in kwargs["json"]["prompt"]

    def test_http_500_raises_remote_unavailable(self, strategy):
        with patch("stocklens.ml.ollama_strategy.requests.post", return_value=_response(status_code=500)):
            with pytest.raises(RemoteUnavailableException):
                strategy.analyze({"items": ITEMS}, "risk_assessment")

    def test_connection_error_raises_remote_unavailable_with_context(self, strategy):
        with patch(
            "stocklens.ml.ollama_strategy.requests.post",
            side_effect=requests.ConnectionError("refused"),
        ):
            with pytest.raises(RemoteUnavailableException) as exc_info:
                strategy.analyze({"items": ITEMS}, "risk_assessment")
        assert exc_info.value.details["method"] == "POST"
        assert "refused" in exc_info.value.message

    @pytest.mark.parametrize("resp", [_response(json_error=True), _response(body={"text": "no response key"})])
    def test_malformed_body_raises_remote_unavailable(self, strategy, resp):
        with patch("stocklens.ml.ollama_strategy.requests.post", return_value=resp):
            with pytest.raises(RemoteUnavailableException):
                strategy.analyze({"items": ITEMS}, "risk_assessment")

    def test_prose_without_json_falls_back_to_text(self, strategy):
        body = {"response": "Stock looks fine to me."}
        with patch("stocklens.ml.ollama_strategy.requests.post", return_value=_response(body=body)):
            result = strategy.analyze({"items": ITEMS}, "risk_assessment")
        assert result.is_fallback is True
        assert result.analysis == "Stock looks fine to me."
        assert result.confidence == 0.6
        assert result.generated_by == "fallback_parser"

    @pytest.mark.parametrize("field", ["5", "true", "2.5"])
    def test_scalar_recommendations_fall_back_to_text(self, strategy, field):
        body = {"response": '{"riskLevel":"high","confidence":0.5,"recommendations":%s}' % field}
        with patch("stocklens.ml.ollama_strategy.requests.post", return_value=_response(body=body)):
            result = strategy.analyze({"items": ITEMS}, "risk_assessment")
        assert result.is_fallback is True
        assert result.generated_by == "fallback_parser"
        assert result.recommendations == ["Review inventory levels manually"]

    def test_empty_items_rejected_before_any_call(self, strategy):
        with patch("stocklens.ml.ollama_strategy.requests.post") as post:
            with pytest.raises(InvalidInputException):
                strategy.analyze({"items": []}, "risk_assessment")
        post.assert_not_called()


class TestGenerate:

    def test_report_parsed(self, strategy):
        body = {"response": 'Report: {"keyFindings": ["Bolt is low"], "recommendations": ["Reorder"]}'}
        with patch("stocklens.ml.ollama_strategy.requests.post", return_value=_response(body=body)):
            payload = strategy.generate({"items": ITEMS}, "summary")
        assert payload.key_findings == ["Bolt is low"]
        assert payload.report_type == "summary"

    def test_scalar_key_findings_fall_back_to_preview(self, strategy):
        body = {"response": '{"reportType":"summary","keyFindings":true,"recommendations":[]}'}
        with patch("stocklens.ml.ollama_strategy.requests.post", return_value=_response(body=body)):
            payload = strategy.generate({"items": ITEMS}, "summary")
        assert payload.is_fallback is True
        assert payload.generated_by == "fallback_parser"
        assert payload.key_findings[0].startswith('{"reportType"')

    def test_unparseable_report_keeps_preview(self, strategy):
        body = {"response": "x" * 300}
        with patch("stocklens.ml.ollama_strategy.requests.post", return_value=_response(body=body)):
            payload = strategy.generate({"items": ITEMS}, "summary")
        assert payload.is_fallback is True
        assert payload.key_findings == ["x" * 100]


class TestAvailability:

    def test_available_when_tags_endpoint_answers(self, strategy):
        with patch("stocklens.ml.ollama_strategy.requests.get", return_value=_response()) as get:
            assert strategy.is_available() is True
        get.assert_called_once_with("http://ollama.test:11434/api/tags", timeout=0.5)

    def test_unavailable_on_error_status(self, strategy):
        with patch("stocklens.ml.ollama_strategy.requests.get", return_value=_response(status_code=404)):
            assert strategy.is_available() is False

    def test_unavailable_on_timeout(self, strategy):
        with patch("stocklens.ml.ollama_strategy.requests.get", side_effect=requests.Timeout("slow")):
            assert strategy.is_available() is False
