"""
Pure technical-indicator functions.

Conventions
-----------
- Input sequences are ordered by date ascending; callers sort.
- Inputs are never mutated.
- "Undefined" is ``None``. A moving average with too little history is
  ``None``, never ``0.0`` or NaN, so callers can tell "no reading" from a
  real zero.
- Standard deviation is the population form (divide by ``period``).

The series-returning functions (``moving_average``, ``bollinger_bands``) give
one entry per input index so results line up with the bars they came from.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence


class ZeroPriceError(ValueError):
    """Raised when momentum would divide by a historical price of zero."""

    def __init__(self, index: int) -> None:
        self.index = index
        super().__init__(f"Historical price at index {index} is zero; momentum undefined.")


@dataclass(frozen=True)
class BollingerSeries:
    """Per-index Bollinger bands; all three lists share the input's length."""

    upper: list[Optional[float]]
    middle: list[Optional[float]]
    lower: list[Optional[float]]

    def latest(self) -> tuple[Optional[float], Optional[float], Optional[float]]:
        if not self.middle:
            return None, None, None
        return self.upper[-1], self.middle[-1], self.lower[-1]


@dataclass(frozen=True)
class PivotPoints:
    """Woodie pivot levels for the next session."""

    pivot: float
    r1: float
    r2: float
    r3: float
    s1: float
    s2: float
    s3: float


def _check_period(period: int) -> None:
    if period < 1:
        raise ValueError(f"period must be >= 1, got {period}.")


def moving_average(prices: Sequence[float], period: int) -> list[Optional[float]]:
    """Simple moving average at every index.

    Args:
        prices: Closing prices, ascending by date.
        period: Window length.

    Returns:
        List the same length as ``prices``; ``None`` at indices with fewer
        than ``period`` values up to and including that index.
    """
    _check_period(period)
    result: list[Optional[float]] = []
    for i in range(len(prices)):
        if i < period - 1:
            result.append(None)
        else:
            # fsum keeps a flat series exactly flat (no drift from a running sum)
            result.append(math.fsum(prices[i - period + 1: i + 1]) / period)
    return result


def standard_deviation(
    prices: Sequence[float], period: int, index: Optional[int] = None
) -> Optional[float]:
    """Population standard deviation over the window ending at ``index``.

    Args:
        prices: Closing prices, ascending by date.
        period: Window length.
        index: Last index of the window; defaults to the final element.

    Returns:
        Standard deviation, or ``None`` if fewer than ``period`` samples end
        at ``index``.
    """
    _check_period(period)
    if index is None:
        index = len(prices) - 1
    if index < period - 1 or index >= len(prices):
        return None
    window = prices[index - period + 1: index + 1]
    mean = math.fsum(window) / period
    variance = math.fsum((p - mean) ** 2 for p in window) / period
    return math.sqrt(max(0.0, variance))


def bollinger_bands(
    prices: Sequence[float], period: int = 20, multiplier: float = 2.0
) -> BollingerSeries:
    """Bollinger bands: middle = SMA, upper/lower = middle ± multiplier·σ.

    Raises:
        ValueError: If ``multiplier`` is negative (the band ordering
            ``upper >= middle >= lower`` would no longer hold).
    """
    if multiplier < 0:
        raise ValueError(f"multiplier must be >= 0, got {multiplier}.")
    middle = moving_average(prices, period)
    upper: list[Optional[float]] = []
    lower: list[Optional[float]] = []
    for i, mid in enumerate(middle):
        if mid is None:
            upper.append(None)
            lower.append(None)
            continue
        sd = standard_deviation(prices, period, i)
        assert sd is not None
        width = multiplier * sd
        upper.append(mid + width)
        lower.append(mid - width)
    return BollingerSeries(upper=upper, middle=middle, lower=lower)


def momentum(prices: Sequence[float], lookback: int) -> Optional[float]:
    """Percent change of the latest price versus ``lookback`` bars earlier.

    ``(current - prices[-lookback-1]) / prices[-lookback-1] * 100``

    Returns:
        Percent change, or ``None`` if fewer than ``lookback + 1`` prices.

    Raises:
        ZeroPriceError: If the reference price is zero.
    """
    _check_period(lookback)
    if len(prices) < lookback + 1:
        return None
    ref_index = len(prices) - lookback - 1
    reference = prices[ref_index]
    if reference == 0:
        raise ZeroPriceError(ref_index)
    return (prices[-1] - reference) / reference * 100.0


def volume_ratio(volumes: Sequence[float], avg_period: int) -> Optional[float]:
    """Latest volume divided by the average over the last ``avg_period`` bars.

    The averaging window includes the latest bar.

    Returns:
        Ratio, or ``None`` if history is too short or the average is zero.
    """
    average = average_volume(volumes, avg_period)
    if average is None or average == 0:
        return None
    return volumes[-1] / average


def average_volume(volumes: Sequence[float], avg_period: int) -> Optional[float]:
    _check_period(avg_period)
    if len(volumes) < avg_period:
        return None
    return math.fsum(volumes[-avg_period:]) / avg_period


def woodie_pivot_points(high: float, low: float, close: float) -> PivotPoints:
    """Woodie pivot levels from one session's high, low and close.

    Pivot weights the close twice: ``(H + L + 2C) / 4``.
    """
    pivot = (high + low + 2 * close) / 4
    span = high - low
    return PivotPoints(
        pivot=round(pivot, 2),
        r1=round(2 * pivot - low, 2),
        r2=round(pivot + span, 2),
        r3=round(high + 2 * (pivot - low), 2),
        s1=round(2 * pivot - high, 2),
        s2=round(pivot - span, 2),
        s3=round(low - 2 * (high - pivot), 2),
    )


def golden_cross(prices: Sequence[float], short: int, long: int) -> bool:
    """``True`` when the latest short SMA is strictly above the latest long SMA.

    Either average being undefined yields ``False``.
    """
    if not prices:
        return False
    ma_short = moving_average(prices, short)[-1]
    ma_long = moving_average(prices, long)[-1]
    if ma_short is None or ma_long is None:
        return False
    return ma_short > ma_long
