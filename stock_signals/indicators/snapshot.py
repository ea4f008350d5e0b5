"""
Latest-reading indicator snapshot for one symbol.

``build_snapshot()`` turns a ``PriceSeries`` into an ``IndicatorSnapshot``
holding the most recent value of every indicator the prompt and the screen
need. Short histories produce a partial snapshot: any indicator without
enough bars is ``None`` and ``missing`` lists its name.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from stock_signals.config import IndicatorConfig
from stock_signals.errors import DataUnavailableError
from stock_signals.indicators.core import (
    PivotPoints,
    ZeroPriceError,
    average_volume,
    bollinger_bands,
    momentum,
    moving_average,
    volume_ratio,
    woodie_pivot_points,
)
from stock_signals.models.market import PriceSeries

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BollingerReading:
    upper: Optional[float]
    middle: Optional[float]
    lower: Optional[float]

    @property
    def is_defined(self) -> bool:
        return None not in (self.upper, self.middle, self.lower)

    def position_pct(self, price: float) -> Optional[float]:
        """Where ``price`` sits inside the band, 0 = lower, 100 = upper."""
        if not self.is_defined or self.upper == self.lower:
            return None
        return (price - self.lower) / (self.upper - self.lower) * 100.0


@dataclass(frozen=True)
class VolumeReading:
    current: float
    average: Optional[float]
    ratio: Optional[float]


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Most recent indicator values for one symbol.

    Attributes:
        symbol:        Ticker.
        current_price: Latest close.
        ma_short:      Short SMA (default 10 sessions), or ``None``.
        ma_long:       Long SMA (default 30 sessions), or ``None``.
        bollinger:     Latest band reading.
        momentum:      Lookback (sessions) → percent change, ``None`` if short.
        volume:        Latest volume, its trailing average and their ratio.
        week52_high:   Highest high over the 52-week window available.
        week52_low:    Lowest low over the same window.
        pivots:        Woodie pivots from the latest session.
        bar_count:     Number of bars the snapshot was built from.
        missing:       Names of indicators left undefined.
    """

    symbol: str
    current_price: float
    ma_short: Optional[float]
    ma_long: Optional[float]
    bollinger: BollingerReading
    momentum: dict[int, Optional[float]]
    volume: VolumeReading
    week52_high: float
    week52_low: float
    pivots: Optional[PivotPoints]
    bar_count: int
    missing: tuple[str, ...] = field(default=())

    @property
    def is_partial(self) -> bool:
        return bool(self.missing)

    @property
    def ma_diff_pct(self) -> Optional[float]:
        if self.ma_short is None or self.ma_long is None or self.ma_long == 0:
            return None
        return (self.ma_short - self.ma_long) / self.ma_long * 100.0

    @property
    def week52_position_pct(self) -> Optional[float]:
        if self.week52_high == self.week52_low:
            return None
        return (
            (self.current_price - self.week52_low)
            / (self.week52_high - self.week52_low)
            * 100.0
        )


def build_snapshot(series: PriceSeries, config: IndicatorConfig) -> IndicatorSnapshot:
    """Compute the latest indicator readings for ``series``.

    Args:
        series: Ascending price history.
        config: Indicator periods.

    Returns:
        An ``IndicatorSnapshot``; undefined readings are ``None``.

    Raises:
        DataUnavailableError: If the series has no bars at all.
    """
    if not series.bars:
        raise DataUnavailableError(series.symbol, "empty price series")

    closes = series.closes
    volumes = series.volumes
    missing: list[str] = []

    ma_short = moving_average(closes, config.ma_short)[-1]
    ma_long = moving_average(closes, config.ma_long)[-1]
    if ma_short is None:
        missing.append(f"ma{config.ma_short}")
    if ma_long is None:
        missing.append(f"ma{config.ma_long}")

    upper, middle, lower = bollinger_bands(
        closes, config.bollinger_period, config.bollinger_multiplier
    ).latest()
    bands = BollingerReading(upper=upper, middle=middle, lower=lower)
    if not bands.is_defined:
        missing.append("bollinger")

    mom: dict[int, Optional[float]] = {}
    for lookback in config.momentum_lookbacks:
        try:
            mom[lookback] = momentum(closes, lookback)
        except ZeroPriceError as exc:
            logger.warning("%s: %s", series.symbol, exc)
            mom[lookback] = None
        if mom[lookback] is None:
            missing.append(f"momentum{lookback}")

    vol = VolumeReading(
        current=volumes[-1],
        average=average_volume(volumes, config.volume_avg_period),
        ratio=volume_ratio(volumes, config.volume_avg_period),
    )
    if vol.ratio is None:
        missing.append("volume_ratio")

    year = series.bars[-config.week52_bars:]
    latest = series.bars[-1]

    if missing:
        logger.debug(
            "%s: partial snapshot from %d bars, undefined=%s",
            series.symbol, len(series), missing,
        )

    return IndicatorSnapshot(
        symbol=series.symbol,
        current_price=latest.close,
        ma_short=ma_short,
        ma_long=ma_long,
        bollinger=bands,
        momentum=mom,
        volume=vol,
        week52_high=max(b.high for b in year),
        week52_low=min(b.low for b in year),
        pivots=woodie_pivot_points(latest.high, latest.low, latest.close),
        bar_count=len(series),
        missing=tuple(missing),
    )
