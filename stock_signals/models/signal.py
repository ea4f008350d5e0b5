"""
Trading signal models.

``Signal`` is the single normalized output of synthesis: a direction, a 0–100
confidence and a short human-readable summary. It is not persisted.

``DeepAnalysis`` is the structured two-horizon reply the generative backend
is asked for. The validator turns whatever the backend returned into one of
these, padding missing pieces with defaults.
"""

from __future__ import annotations

import math
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator

SignalType = Literal["BUY", "SELL", "HOLD"]
VALID_SIGNAL_TYPES: frozenset[str] = frozenset({"BUY", "SELL", "HOLD"})

DEFAULT_RISKS: tuple[str, ...] = (
    "Biến động thị trường có thể ảnh hưởng đến giá",
    "Rủi ro thanh khoản khi giao dịch",
    "Cần theo dõi thêm các chỉ số tài chính",
)
DEFAULT_OPPORTUNITIES: tuple[str, ...] = (
    "Tiềm năng tăng trưởng từ ngành",
    "Định giá có thể hấp dẫn so với các chỉ số cơ bản",
    "Cơ hội từ xu hướng kỹ thuật",
)


def clamp_confidence(value: float) -> int:
    """Round and clamp a confidence figure into [0, 100]. NaN maps to 50."""
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return 50
    if isinstance(value, float) and math.isinf(value):
        return 100 if value > 0 else 0
    return max(0, min(100, int(round(value))))


class Signal(BaseModel):
    """Normalized trading signal.

    Attributes:
        signal_type: ``BUY``, ``SELL`` or ``HOLD``.
        confidence: Integer certainty in [0, 100]; not a probability.
        summary: Non-empty explanation, already trimmed.
    """

    model_config = ConfigDict(frozen=True)

    signal_type: SignalType
    confidence: int
    summary: str

    @field_validator("confidence")
    @classmethod
    def validate_confidence(cls, v: int) -> int:
        if not 0 <= v <= 100:
            raise ValueError(f"confidence must be in [0, 100], got {v}.")
        return v

    @field_validator("summary")
    @classmethod
    def validate_summary(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("summary must be non-empty.")
        return v


class HorizonJudgment(BaseModel):
    """Signal for one investment horizon plus its supporting reasons."""

    model_config = ConfigDict(frozen=True)

    signal: Signal
    reasons: tuple[str, ...] = ()


class DeepAnalysis(BaseModel):
    """Two-horizon analysis with optional price levels.

    Price levels are only meaningful for a BUY call in at least one horizon;
    the validator drops them otherwise.
    """

    model_config = ConfigDict(frozen=True)

    short_term: HorizonJudgment
    long_term: HorizonJudgment
    buy_price: Optional[float] = None
    target_price: Optional[float] = None
    stop_loss: Optional[float] = None
    risks: tuple[str, ...] = DEFAULT_RISKS
    opportunities: tuple[str, ...] = DEFAULT_OPPORTUNITIES

    @field_validator("risks", "opportunities")
    @classmethod
    def validate_three(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if len(v) != 3:
            raise ValueError(f"expected exactly 3 items, got {len(v)}.")
        return v

    @property
    def has_buy(self) -> bool:
        return "BUY" in (self.short_term.signal.signal_type, self.long_term.signal.signal_type)
