"""
Pre-filter applied before any generative backend call.

A symbol must show a golden cross (short SMA above long SMA) and clear the
fundamental bar:

  P/E   present: must be in (0, pe_max]; 0 < P/E < pe_max scores +1,
                 P/E < 0 or P/E > pe_max rejects.
  P/B   0 < P/B < pb_max scores +1 (never rejects).
  ROE   present: ROE% > roe_min_pct scores +1, otherwise rejects.
  ROE improving over the previous reading scores +1.

The total must reach ``min_fundamental_score``. Rejection is a normal
outcome, not an error.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from stock_signals.config import IndicatorConfig, ScreeningConfig
from stock_signals.indicators.core import golden_cross
from stock_signals.models.market import FundamentalRatios, PriceSeries


@dataclass(frozen=True)
class ScreenResult:
    """Outcome of ``screen_symbol``.

    Attributes:
        passed:    Whether the symbol may proceed to synthesis.
        score:     Fundamental score accumulated before any rejection.
        reasons:   Human-readable notes for each criterion met.
        rejection: Why the symbol was rejected, if it was.
    """

    passed: bool
    score: int = 0
    reasons: tuple[str, ...] = field(default=())
    rejection: Optional[str] = None


def screen_symbol(
    series: PriceSeries,
    ratios: Optional[FundamentalRatios],
    screening: ScreeningConfig,
    indicators: IndicatorConfig,
) -> ScreenResult:
    """Apply the technical and fundamental screen to one symbol."""
    if len(series) < screening.min_sessions:
        return ScreenResult(
            passed=False,
            rejection=f"only {len(series)} sessions (< {screening.min_sessions})",
        )

    reasons: list[str] = []
    if screening.require_golden_cross:
        if not golden_cross(series.closes, indicators.ma_short, indicators.ma_long):
            return ScreenResult(
                passed=False,
                rejection=f"no golden cross (MA{indicators.ma_short} <= MA{indicators.ma_long})",
            )
        reasons.append(f"MA{indicators.ma_short} > MA{indicators.ma_long}")

    score = 0
    ratios = ratios or FundamentalRatios(symbol=series.symbol)

    pe = ratios.pe
    if pe is not None:
        if 0 < pe < screening.pe_max:
            score += 1
            reasons.append(f"P/E: {pe:.2f}")
        elif pe < 0 or pe > screening.pe_max:
            return ScreenResult(
                passed=False, score=score, reasons=tuple(reasons),
                rejection=f"P/E {pe:.2f} outside (0, {screening.pe_max:g})",
            )

    pb = ratios.pb
    if pb is not None and 0 < pb < screening.pb_max:
        score += 1
        reasons.append(f"P/B: {pb:.2f}")

    roe = ratios.roe
    if roe is not None:
        roe_pct = roe * 100
        if roe_pct > screening.roe_min_pct:
            score += 1
            reasons.append(f"ROE: {roe_pct:.2f}%")
        else:
            return ScreenResult(
                passed=False, score=score, reasons=tuple(reasons),
                rejection=f"ROE {roe_pct:.2f}% <= {screening.roe_min_pct:g}%",
            )

    if ratios.roe_improving:
        score += 1
        reasons.append(f"ROE cải thiện: {ratios.roe_history[-1] * 100:.2f}%")

    if score < screening.min_fundamental_score:
        return ScreenResult(
            passed=False, score=score, reasons=tuple(reasons),
            rejection=f"fundamental score {score} < {screening.min_fundamental_score}",
        )
    return ScreenResult(passed=True, score=score, reasons=tuple(reasons))
