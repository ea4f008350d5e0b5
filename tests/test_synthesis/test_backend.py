"""
Tests for stock_signals/synthesis/backend.py.

What we test
------------
GeminiBackend.generate() against an ``httpx.MockTransport``:
  - Request shape: endpoint, API key header, generationConfig values.
  - Reply text joined from all parts.
  - HTTP status → BackendUnavailableError.reason mapping.
  - Timeout / transport errors / empty replies / missing key.
health_check(): never raises.
Model registry: unknown ids fall back to the default.
"""

from __future__ import annotations

import json

import httpx
import pytest

from stock_signals.config import BackendConfig
from stock_signals.errors import BackendUnavailableError
from stock_signals.synthesis.backend import (
    DEFAULT_MODEL,
    GeminiBackend,
    reason_for_status,
    validated_model,
)


def _reply(*texts: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": t} for t in texts]}}]}


def _backend(handler, **config_overrides) -> GeminiBackend:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return GeminiBackend(BackendConfig(**config_overrides), api_key="test-key", http=client)


class TestGenerate:
    def test_request_shape(self):
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["key"] = request.headers.get("x-goog-api-key")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_reply("ok"))

        backend = _backend(handler, model="gemini-2.5-flash")
        backend.generate("phân tích FPT", temperature=0.2, max_tokens=512)

        assert seen["url"].endswith("/models/gemini-2.5-flash:generateContent")
        assert seen["key"] == "test-key"
        assert seen["body"]["contents"][0]["parts"][0]["text"] == "phân tích FPT"
        gen = seen["body"]["generationConfig"]
        assert gen["temperature"] == 0.2
        assert gen["maxOutputTokens"] == 512
        assert gen["topK"] == 40

    def test_defaults_from_config(self):
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_reply("ok"))

        _backend(handler, temperature=0.7, max_output_tokens=1000).generate("x")
        assert seen["body"]["generationConfig"]["temperature"] == 0.7
        assert seen["body"]["generationConfig"]["maxOutputTokens"] == 1000

    def test_parts_joined(self):
        backend = _backend(lambda r: httpx.Response(200, json=_reply('{"signal":', ' "BUY"}')))
        assert backend.generate("x") == '{"signal": "BUY"}'

    @pytest.mark.parametrize(
        "status, reason",
        [
            (400, "invalid_request"),
            (403, "invalid_key"),
            (404, "model_not_found"),
            (429, "rate_limited"),
            (500, "server_error"),
            (503, "server_error"),
        ],
    )
    def test_status_mapping(self, status, reason):
        backend = _backend(lambda r: httpx.Response(status, json={"error": {"code": status}}))
        with pytest.raises(BackendUnavailableError) as exc_info:
            backend.generate("x")
        assert exc_info.value.reason == reason
        assert exc_info.value.status_code == status

    def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(BackendUnavailableError) as exc_info:
            _backend(handler).generate("x")
        assert exc_info.value.reason == "timeout"

    def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(BackendUnavailableError) as exc_info:
            _backend(handler).generate("x")
        assert exc_info.value.reason == "transport"

    @pytest.mark.parametrize(
        "payload",
        [{}, {"candidates": []}, _reply(""), {"candidates": [{"content": {}}]}],
    )
    def test_empty_reply(self, payload):
        backend = _backend(lambda r: httpx.Response(200, json=payload))
        with pytest.raises(BackendUnavailableError) as exc_info:
            backend.generate("x")
        assert exc_info.value.reason == "empty_response"

    def test_non_json_body(self):
        backend = _backend(lambda r: httpx.Response(200, text="<html>"))
        with pytest.raises(BackendUnavailableError) as exc_info:
            backend.generate("x")
        assert exc_info.value.reason == "empty_response"

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        backend = GeminiBackend(BackendConfig())
        with pytest.raises(BackendUnavailableError) as exc_info:
            backend.generate("x")
        assert exc_info.value.reason == "not_configured"

    def test_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "env-key")
        assert GeminiBackend(BackendConfig()).api_key == "env-key"


class TestHealthCheck:
    def test_ok(self):
        ok, message = _backend(lambda r: httpx.Response(200, json=_reply("pong"))).health_check()
        assert ok
        assert message == "backend reachable"

    def test_failure_does_not_raise(self):
        ok, message = _backend(lambda r: httpx.Response(429)).health_check()
        assert not ok
        assert "rate_limited" in message


class TestModelRegistry:
    def test_known_model_kept(self):
        assert validated_model("gemini-2.5-flash") == "gemini-2.5-flash"

    def test_unknown_model_falls_back(self):
        assert validated_model("gpt-legacy") == DEFAULT_MODEL

    def test_none_falls_back(self):
        assert validated_model(None) == DEFAULT_MODEL

    def test_unlisted_4xx_is_invalid_request(self):
        assert reason_for_status(418) == "invalid_request"
