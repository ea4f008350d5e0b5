"""
Generative backend contract and the Gemini REST implementation.

API:   https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent
Auth:  ``x-goog-api-key`` header, key from the ``GEMINI_API_KEY`` env var.

Every failure mode surfaces as ``BackendUnavailableError`` with a ``reason``:

  HTTP 400 → invalid_request     HTTP 429 → rate_limited
  HTTP 403 → invalid_key         HTTP ≥500 → server_error
  HTTP 404 → model_not_found     timeout → timeout
  transport error → transport    no text in reply → empty_response
  no API key → not_configured

No retries happen here; retry policy belongs to whoever runs the batch.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Optional

import httpx

from stock_signals.config import BackendConfig
from stock_signals.errors import BackendUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelInfo:
    model_id: str
    name: str
    description: str
    status: str = "active"


MODEL_REGISTRY: tuple[ModelInfo, ...] = (
    ModelInfo("gemini-2.5-flash", "Gemini 2.5 Flash", "Balanced speed and quality"),
    ModelInfo("gemini-2.5-flash-lite", "Gemini 2.5 Flash Lite", "Fastest, lowest cost"),
)
DEFAULT_MODEL = "gemini-2.5-flash-lite"

_STATUS_REASONS: dict[int, str] = {
    400: "invalid_request",
    403: "invalid_key",
    404: "model_not_found",
    429: "rate_limited",
}


def active_models() -> list[ModelInfo]:
    return [m for m in MODEL_REGISTRY if m.status in ("active", "experimental")]


def validated_model(model_id: Optional[str]) -> str:
    """Return ``model_id`` if it is a known active model, else the default."""
    if model_id and any(m.model_id == model_id for m in active_models()):
        return model_id
    if model_id:
        logger.warning("Unknown model '%s'; falling back to %s.", model_id, DEFAULT_MODEL)
    return DEFAULT_MODEL


def reason_for_status(status_code: int) -> str:
    if status_code in _STATUS_REASONS:
        return _STATUS_REASONS[status_code]
    if status_code >= 500:
        return "server_error"
    return "invalid_request"


class GenerativeBackend(ABC):
    """Text-in, text-out generative model."""

    @abstractmethod
    def generate(
        self,
        prompt: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Return the model's reply text.

        Raises:
            BackendUnavailableError: On any failure to obtain a reply.
        """

    def health_check(self) -> tuple[bool, str]:
        """Send a trivial prompt; return ``(ok, message)`` without raising."""
        try:
            self.generate("ping", temperature=0.0, max_tokens=8)
        except BackendUnavailableError as exc:
            return False, str(exc)
        return True, "backend reachable"


class GeminiBackend(GenerativeBackend):
    """Gemini ``generateContent`` over httpx.

    Attributes:
        config:  Backend section of ``AppConfig``.
        api_key: Explicit key; defaults to ``os.environ[config.api_key_env]``.
        model:   Validated model id.
        http:    Optional ``httpx.Client`` (tests inject a MockTransport).
    """

    ENDPOINT_TEMPLATE: ClassVar[str] = "{base}/models/{model}:generateContent"

    def __init__(
        self,
        config: BackendConfig,
        api_key: Optional[str] = None,
        http: Optional[httpx.Client] = None,
    ) -> None:
        self.config = config
        self.api_key = api_key if api_key is not None else os.environ.get(config.api_key_env)
        self.model = validated_model(config.model)
        self.http = http

    def generate(
        self,
        prompt: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        if not self.api_key:
            raise BackendUnavailableError(
                "not_configured", detail=f"{self.config.api_key_env} is not set"
            )

        url = self.ENDPOINT_TEMPLATE.format(base=self.config.base_url, model=self.model)
        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.config.temperature if temperature is None else temperature,
                "topK": self.config.top_k,
                "topP": self.config.top_p,
                "maxOutputTokens": (
                    self.config.max_output_tokens if max_tokens is None else max_tokens
                ),
            },
        }
        headers = {"Content-Type": "application/json", "x-goog-api-key": self.api_key}

        try:
            if self.http is not None:
                resp = self.http.post(
                    url, json=body, headers=headers, timeout=self.config.timeout_seconds
                )
            else:
                resp = httpx.post(
                    url, json=body, headers=headers, timeout=self.config.timeout_seconds
                )
        except httpx.TimeoutException as exc:
            raise BackendUnavailableError("timeout", detail=str(exc)) from exc
        except httpx.HTTPError as exc:
            raise BackendUnavailableError("transport", detail=str(exc)) from exc

        if resp.is_error:
            logger.warning("Gemini error %d: %s", resp.status_code, resp.text[:200])
            raise BackendUnavailableError(
                reason_for_status(resp.status_code), status_code=resp.status_code
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            raise BackendUnavailableError(
                "empty_response", status_code=resp.status_code, detail="non-JSON body"
            ) from exc

        text = _extract_text(payload)
        if not text:
            raise BackendUnavailableError("empty_response", status_code=resp.status_code)
        return text


def _extract_text(payload: Any) -> Optional[str]:
    """Pull ``candidates[0].content.parts[*].text`` out of a reply body."""
    try:
        parts = payload["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError):
        return None
    texts = [p.get("text", "") for p in parts if isinstance(p, dict)]
    joined = "".join(t for t in texts if isinstance(t, str))
    return joined or None
