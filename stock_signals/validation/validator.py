"""
Response validator: turn any generative reply into a well-formed ``Signal``.

Contract
--------
``ResponseValidator.validate_signal(text)`` never raises. It returns one of

    Parsed(signal)            strict JSON parse succeeded
    Repaired(signal, repairs) JSON parsed after one or more repair steps
    Fallback(signal, reason)  no usable object; keyword classification

All three expose ``.signal`` with the same shape, so callers branch on the
signal, not on how it was obtained. ``.method`` names the path for logging.

Field salvage rules for a parsed object:
  - signal:     ``signal`` / ``signalType`` / ``signal_type`` / ``action``;
                case-insensitive, Vietnamese MUA / BÁN / THEO DÕI accepted.
  - confidence: number or numeric string (``"85"``, ``"85%"``), rounded and
                clamped to [0, 100].
  - summary:    ``summary`` / ``reason`` / ``analysis``; non-empty string.
Any field that cannot be salvaged sends the whole reply to the fallback.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Literal, Optional, Union

from stock_signals.models.signal import (
    DEFAULT_OPPORTUNITIES,
    DEFAULT_RISKS,
    DeepAnalysis,
    HorizonJudgment,
    Signal,
    clamp_confidence,
)
from stock_signals.validation.extraction import ParseOutcome, extract_and_parse, strip_code_fences
from stock_signals.validation.keywords import KEYWORD_TABLE_VERSION, score_text

logger = logging.getLogger(__name__)

MAX_SUMMARY_CHARS = 300
DEFAULT_FALLBACK_CONFIDENCE = 50
EMPTY_REPLY_SUMMARY = "Không có nội dung phân tích từ mô hình."

_SIGNAL_KEYS = ("signal", "signalType", "signal_type", "action", "recommendation")
_CONFIDENCE_KEYS = ("confidence", "confidenceScore", "confidence_score")
_SUMMARY_KEYS = ("summary", "reason", "analysis", "explanation")

_SIGNAL_ALIASES: dict[str, str] = {
    "BUY": "BUY",
    "MUA": "BUY",
    "STRONG BUY": "BUY",
    "SELL": "SELL",
    "BÁN": "SELL",
    "STRONG SELL": "SELL",
    "HOLD": "HOLD",
    "GIỮ": "HOLD",
    "NẮM GIỮ": "HOLD",
    "THEO DÕI": "HOLD",
    "NEUTRAL": "HOLD",
}
_PERCENT_RE = re.compile(r"(?<![\d.,])(\d+(?:[.,]\d+)?)\s*%")
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")
_WHITESPACE_RE = re.compile(r"\s+")


# ── Result types ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Parsed:
    signal: Signal
    method: Literal["parsed"] = "parsed"


@dataclass(frozen=True)
class Repaired:
    signal: Signal
    repairs: tuple[str, ...] = ()
    method: Literal["repaired"] = "repaired"


@dataclass(frozen=True)
class Fallback:
    signal: Signal
    reason: str = ""
    keyword_table_version: str = KEYWORD_TABLE_VERSION
    method: Literal["fallback"] = "fallback"


ValidationResult = Union[Parsed, Repaired, Fallback]


@dataclass(frozen=True)
class DeepAnalysisResult:
    """Validated two-horizon analysis and how it was recovered."""

    analysis: DeepAnalysis
    method: Literal["parsed", "repaired", "fallback"]
    repairs: tuple[str, ...] = ()


# ── Field salvage ──────────────────────────────────────────────────────────────

def normalize_signal_type(value: Any) -> Optional[str]:
    """Map a free-form signal label to BUY / SELL / HOLD, or ``None``.

    Exact aliases win; otherwise a label containing exactly one category's
    marker (e.g. ``"Khuyến nghị MUA"``) is accepted.
    """
    if not isinstance(value, str):
        return None
    label = _WHITESPACE_RE.sub(" ", value.strip().upper())
    if not label:
        return None
    if label in _SIGNAL_ALIASES:
        return _SIGNAL_ALIASES[label]
    found = {canonical for alias, canonical in _SIGNAL_ALIASES.items() if alias in label}
    if len(found) == 1:
        return found.pop()
    return None


def coerce_confidence(value: Any) -> Optional[int]:
    """Coerce a number or numeric string into an int in [0, 100], or ``None``."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().rstrip("%").strip().replace(",", ".")
    elif not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except (ValueError, OverflowError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return clamp_confidence(number)


def _first_present(data: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def signal_from_mapping(data: dict[str, Any]) -> Optional[Signal]:
    """Build a ``Signal`` from a decoded object, or ``None`` if unsalvageable."""
    signal_type = normalize_signal_type(_first_present(data, _SIGNAL_KEYS))
    confidence = coerce_confidence(_first_present(data, _CONFIDENCE_KEYS))
    summary = _first_present(data, _SUMMARY_KEYS)
    if signal_type is None or confidence is None:
        return None
    if not isinstance(summary, str) or not summary.strip():
        return None
    return Signal(signal_type=signal_type, confidence=confidence, summary=summary.strip())


# ── Fallback classifier ────────────────────────────────────────────────────────

def extract_percentage(text: str) -> Optional[int]:
    match = _PERCENT_RE.search(text)
    if match is None:
        return None
    return clamp_confidence(float(match.group(1).replace(",", ".")))


def summarize_text(text: str, max_chars: int = MAX_SUMMARY_CHARS) -> str:
    """Leading complete sentence(s) of ``text`` within ``max_chars``.

    Ends on a sentence boundary when at least one whole sentence fits;
    otherwise cuts at the last word boundary and appends an ellipsis.
    """
    flat = _WHITESPACE_RE.sub(" ", strip_code_fences(text)).strip()
    if not flat:
        return EMPTY_REPLY_SUMMARY
    if len(flat) <= max_chars:
        return flat

    summary = ""
    for sentence in _SENTENCE_SPLIT_RE.split(flat):
        candidate = f"{summary} {sentence}".strip()
        if len(candidate) > max_chars:
            break
        summary = candidate
    if summary:
        return summary

    cut = flat[: max_chars - 1]
    if " " in cut:
        cut = cut[: cut.rfind(" ")]
    return cut.rstrip(" ,;:") + "…"


def classify_text(text: str) -> Signal:
    """Keyword-score ``text`` into a ``Signal``."""
    scores = score_text(text)
    percentage = extract_percentage(text)
    return Signal(
        signal_type=scores.winner(),
        confidence=percentage if percentage is not None else DEFAULT_FALLBACK_CONFIDENCE,
        summary=summarize_text(text),
    )


# ── Deep analysis normalization ────────────────────────────────────────────────

def normalize_price(value: Any) -> Optional[float]:
    """Parse a price; values under 1000 are read as thousands of VND."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        value = value.strip().replace(",", "")
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if math.isnan(number) or math.isinf(number) or number <= 0:
        return None
    return number * 1000 if number < 1000 else number


def normalize_items(value: Any, defaults: tuple[str, ...]) -> tuple[str, ...]:
    """Exactly three non-trivial strings, padded from ``defaults``."""
    items: list[str] = []
    if isinstance(value, list):
        for item in value:
            if isinstance(item, str) and len(item.strip()) > 3:
                items.append(item.strip())
            if len(items) == 3:
                break
    for default in defaults:
        if len(items) == 3:
            break
        items.append(default)
    return tuple(items)


def _horizon_from_mapping(data: Any) -> Optional[HorizonJudgment]:
    if not isinstance(data, dict):
        return None
    signal = signal_from_mapping(data)
    if signal is None:
        return None
    reasons = data.get("reasons") or data.get("keyPoints") or []
    return HorizonJudgment(
        signal=signal,
        reasons=tuple(r.strip() for r in reasons if isinstance(r, str) and r.strip())
        if isinstance(reasons, list) else (),
    )


def deep_analysis_from_mapping(data: dict[str, Any]) -> Optional[DeepAnalysis]:
    short = _horizon_from_mapping(data.get("shortTerm") or data.get("short_term"))
    long = _horizon_from_mapping(data.get("longTerm") or data.get("long_term"))
    if short is None and long is None:
        single = _horizon_from_mapping(data)
        if single is None:
            return None
        short = long = single
    elif short is None:
        short = long
    elif long is None:
        long = short
    assert short is not None and long is not None

    has_buy = "BUY" in (short.signal.signal_type, long.signal.signal_type)
    return DeepAnalysis(
        short_term=short,
        long_term=long,
        buy_price=normalize_price(data.get("buyPrice")) if has_buy else None,
        target_price=normalize_price(data.get("targetPrice")) if has_buy else None,
        stop_loss=normalize_price(data.get("stopLoss")) if has_buy else None,
        risks=normalize_items(data.get("risks"), DEFAULT_RISKS),
        opportunities=normalize_items(data.get("opportunities"), DEFAULT_OPPORTUNITIES),
    )


# ── Validator ──────────────────────────────────────────────────────────────────

class ResponseValidator:
    """Total function from reply text to a validated result.

    Stateless; one instance can be shared across threads.
    """

    def validate_signal(self, text: Any) -> ValidationResult:
        if not isinstance(text, str):
            text = "" if text is None else str(text)

        outcome = self._safe_parse(text)
        if outcome is not None:
            signal = signal_from_mapping(outcome.data)
            if signal is not None:
                if outcome.repairs:
                    return Repaired(signal=signal, repairs=outcome.repairs)
                return Parsed(signal=signal)
            reason = "object failed signal contract"
        else:
            reason = "no recoverable JSON object"

        signal = classify_text(text)
        logger.info(
            "Fallback classification (%s, table %s): %s @ %d",
            reason, KEYWORD_TABLE_VERSION, signal.signal_type, signal.confidence,
        )
        return Fallback(signal=signal, reason=reason)

    def validate_deep_analysis(self, text: Any) -> DeepAnalysisResult:
        if not isinstance(text, str):
            text = "" if text is None else str(text)

        outcome = self._safe_parse(text)
        if outcome is not None:
            analysis = deep_analysis_from_mapping(outcome.data)
            if analysis is not None:
                method = "repaired" if outcome.repairs else "parsed"
                return DeepAnalysisResult(
                    analysis=analysis, method=method, repairs=outcome.repairs
                )

        signal = classify_text(text)
        logger.info(
            "Deep analysis fallback (table %s): %s @ %d",
            KEYWORD_TABLE_VERSION, signal.signal_type, signal.confidence,
        )
        judgment = HorizonJudgment(signal=signal)
        return DeepAnalysisResult(
            analysis=DeepAnalysis(short_term=judgment, long_term=judgment),
            method="fallback",
        )

    @staticmethod
    def _safe_parse(text: str) -> Optional[ParseOutcome]:
        try:
            return extract_and_parse(text)
        except (ValueError, TypeError, RecursionError) as exc:
            logger.debug("Extraction failed: %s", exc)
            return None
