"""
Recommendation lifecycle models.

``RecommendationDraft`` is what callers submit; ``Recommendation`` is what
the store returns after persisting it. Status moves one way only::

    active ──► completed   (current price reached target)
       └─────► stopped     (current price fell to stop-loss)

``completed`` and ``stopped`` are terminal.

``PerformanceMetrics`` is derived on demand from the stored records and is
never persisted.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator

RecommendationStatus = Literal["active", "completed", "stopped"]
VALID_STATUSES: frozenset[str] = frozenset({"active", "completed", "stopped"})
TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "stopped"})


class RecommendationDraft(BaseModel):
    """Caller-supplied fields for a new recommendation.

    Required fields are typed ``Optional`` here so the store can report every
    missing field at once instead of failing on the first.
    """

    model_config = ConfigDict(frozen=True)

    symbol: Optional[str] = None
    recommended_price: Optional[float] = None
    current_price: Optional[float] = None
    target_price: Optional[float] = None
    stop_loss: Optional[float] = None
    confidence: Optional[int] = None
    ai_signal: Optional[str] = None
    technical_analysis: list[str] = []
    fundamental_analysis: list[str] = []
    risks: list[str] = []
    opportunities: list[str] = []


class Recommendation(BaseModel):
    """A persisted BUY call tracked until it resolves.

    Attributes:
        id: DB primary key.
        symbol: Upper-case ticker.
        recommended_price: Entry price at creation time.
        current_price: Most recent observed price.
        target_price: Take-profit level, if any.
        stop_loss: Cut-loss level, if any.
        confidence: 0–100 confidence at creation.
        ai_signal: Signal text that produced the call, e.g. ``"BUY"``.
        status: ``active``, ``completed`` or ``stopped``.
        gain_loss: ``current_price - recommended_price``.
        gain_loss_pct: ``gain_loss / recommended_price * 100``.
        closed_at: When the record entered a terminal status.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    symbol: str
    recommended_price: float
    current_price: float
    target_price: Optional[float] = None
    stop_loss: Optional[float] = None
    confidence: int
    ai_signal: str
    technical_analysis: list[str] = []
    fundamental_analysis: list[str] = []
    risks: list[str] = []
    opportunities: list[str] = []
    status: RecommendationStatus = "active"
    gain_loss: Optional[float] = None
    gain_loss_pct: Optional[float] = None
    created_at: datetime
    updated_at: datetime
    closed_at: Optional[datetime] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        if v not in VALID_STATUSES:
            raise ValueError(f"Unknown status '{v}'. Must be one of {sorted(VALID_STATUSES)}.")
        return v

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def return_pct(self) -> float:
        """Percent move from entry to the current price."""
        return (self.current_price - self.recommended_price) / self.recommended_price * 100.0


class Performer(BaseModel):
    """Best or worst single recommendation by return."""

    model_config = ConfigDict(frozen=True)

    recommendation_id: int
    symbol: str
    gain_loss_pct: float


class PerformanceMetrics(BaseModel):
    """Aggregate outcome of all tracked recommendations.

    ``win_rate`` is ``completed / (completed + stopped) * 100`` and
    ``average_realized_gain`` is the mean return over terminal records; both
    are ``0.0`` when nothing has closed yet.
    """

    model_config = ConfigDict(frozen=True)

    total: int = 0
    active: int = 0
    completed: int = 0
    stopped: int = 0
    win_rate: float = 0.0
    average_realized_gain: float = 0.0
    average_gain: float = 0.0
    average_loss: float = 0.0
    total_gain_loss: float = 0.0
    best_performer: Optional[Performer] = None
    worst_performer: Optional[Performer] = None
