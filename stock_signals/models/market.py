"""
Market data models: daily price bars, fundamental ratios, analyst targets.

``PriceBar`` is a single trading session. ``PriceSeries`` owns an ordered run
of bars for one symbol and rejects out-of-order or duplicate dates, so every
indicator downstream can assume ascending, unique dates.

All prices are in VND. The upstream provider quotes in thousands of VND; the
client converts before these models are built.
"""

from __future__ import annotations

from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

AnalystCall = Literal["BUY", "HOLD", "SELL"]

_ANALYST_CALL_ALIASES: dict[str, str] = {
    "BUY": "BUY",
    "MUA": "BUY",
    "OUTPERFORM": "BUY",
    "ADD": "BUY",
    "HOLD": "HOLD",
    "GIỮ": "HOLD",
    "NEUTRAL": "HOLD",
    "SELL": "SELL",
    "BÁN": "SELL",
    "UNDERPERFORM": "SELL",
    "REDUCE": "SELL",
}


class PriceBar(BaseModel):
    """One daily OHLCV session.

    Attributes:
        date: Trading date (exchange local time).
        open: Opening price.
        high: Session high.
        low: Session low.
        close: Closing price (adjusted when the provider supplies it).
        volume: Matched volume in shares.
    """

    model_config = ConfigDict(frozen=True)

    date: date
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @model_validator(mode="after")
    def validate_range(self) -> "PriceBar":
        if self.low > self.high:
            raise ValueError(f"low ({self.low}) must be <= high ({self.high}).")
        if self.volume < 0:
            raise ValueError("volume must be non-negative.")
        return self


class PriceSeries(BaseModel):
    """Ascending, duplicate-free bar history for one symbol."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    bars: tuple[PriceBar, ...]

    @field_validator("symbol")
    @classmethod
    def normalize_symbol(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("symbol must be non-empty.")
        return v

    @field_validator("bars")
    @classmethod
    def validate_order(cls, v: tuple[PriceBar, ...]) -> tuple[PriceBar, ...]:
        for prev, cur in zip(v, v[1:]):
            if cur.date <= prev.date:
                raise ValueError(
                    f"bars must be strictly ascending by date; {cur.date} follows {prev.date}."
                )
        return v

    @property
    def closes(self) -> list[float]:
        return [b.close for b in self.bars]

    @property
    def volumes(self) -> list[float]:
        return [b.volume for b in self.bars]

    @property
    def latest(self) -> Optional[PriceBar]:
        return self.bars[-1] if self.bars else None

    def __len__(self) -> int:
        return len(self.bars)


class FundamentalRatios(BaseModel):
    """Latest fundamental ratios keyed by provider ratio code.

    ROE, ROA and dividend yield are fractions (``0.18`` means 18%).
    """

    model_config = ConfigDict(frozen=True)

    symbol: str
    values: dict[str, float] = {}
    roe_history: tuple[float, ...] = ()

    def _get(self, code: str) -> Optional[float]:
        return self.values.get(code)

    @property
    def roe_improving(self) -> bool:
        """Latest ROE reading strictly above the one before it."""
        return len(self.roe_history) >= 2 and self.roe_history[-1] > self.roe_history[-2]

    @property
    def pe(self) -> Optional[float]:
        return self._get("PRICE_TO_EARNINGS")

    @property
    def pb(self) -> Optional[float]:
        return self._get("PRICE_TO_BOOK")

    @property
    def roe(self) -> Optional[float]:
        return self._get("ROAE_TR_AVG5Q")

    @property
    def roa(self) -> Optional[float]:
        return self._get("ROAA_TR_AVG5Q")

    @property
    def dividend_yield(self) -> Optional[float]:
        return self._get("DIVIDEND_YIELD")

    @property
    def market_cap(self) -> Optional[float]:
        return self._get("MARKETCAP")

    @property
    def eps(self) -> Optional[float]:
        return self._get("EPS_TR")

    @property
    def is_empty(self) -> bool:
        return not self.values


class AnalystTarget(BaseModel):
    """A single broker recommendation for a symbol."""

    model_config = ConfigDict(frozen=True)

    firm: str = ""
    call: AnalystCall
    target_price: Optional[float] = None
    report_date: Optional[date] = None

    @field_validator("call", mode="before")
    @classmethod
    def normalize_call(cls, v: object) -> str:
        key = str(v).strip().upper()
        if key not in _ANALYST_CALL_ALIASES:
            raise ValueError(f"Unknown analyst call '{v}'.")
        return _ANALYST_CALL_ALIASES[key]
