"""
Tests for stock_signals/indicators/snapshot.py.

What we test
------------
build_snapshot():
  - Full history: every reading defined, ``missing`` empty.
  - Short history: partial snapshot naming each undefined indicator.
  - Zero reference price: momentum left undefined instead of raising.
  - Empty series: DataUnavailableError.
  - 52-week range and Bollinger position helpers.
"""

from __future__ import annotations

import pytest

from stock_signals.config import IndicatorConfig
from stock_signals.errors import DataUnavailableError
from stock_signals.indicators.snapshot import BollingerReading, build_snapshot
from stock_signals.models.market import PriceSeries


class TestBuildSnapshot:
    def test_full_history_is_complete(self, make_series, rising_closes):
        snap = build_snapshot(make_series(rising_closes), IndicatorConfig())
        assert not snap.is_partial
        assert snap.missing == ()
        assert snap.current_price == rising_closes[-1]
        assert snap.ma_short > snap.ma_long
        assert snap.ma_diff_pct > 0
        assert snap.bollinger.is_defined
        assert set(snap.momentum) == {5, 10}
        assert snap.bar_count == 60
        assert snap.pivots is not None

    def test_short_history_is_partial(self, make_series):
        snap = build_snapshot(make_series([50_000.0 + i for i in range(12)]), IndicatorConfig())
        assert snap.is_partial
        assert snap.ma_short is not None
        assert snap.ma_long is None
        assert "ma30" in snap.missing
        assert "bollinger" in snap.missing
        assert "ma10" not in snap.missing

    def test_single_bar(self, make_series):
        snap = build_snapshot(make_series([42_000.0]), IndicatorConfig())
        assert snap.ma_short is None
        assert snap.momentum == {5: None, 10: None}
        assert snap.volume.ratio is None
        assert snap.week52_position_pct is not None

    def test_zero_reference_price_does_not_raise(self, make_series):
        closes = [0.0] + [10_000.0] * 10
        snap = build_snapshot(make_series(closes), IndicatorConfig(momentum_lookbacks=[10]))
        assert snap.momentum[10] is None
        assert "momentum10" in snap.missing

    def test_empty_series_raises(self):
        with pytest.raises(DataUnavailableError) as exc_info:
            build_snapshot(PriceSeries(symbol="fpt", bars=()), IndicatorConfig())
        assert exc_info.value.symbol == "FPT"

    def test_week52_window_respects_config(self, make_series):
        closes = [90_000.0] + [50_000.0] * 9
        snap = build_snapshot(make_series(closes), IndicatorConfig(week52_bars=5))
        assert snap.week52_high == pytest.approx(50_000.0 * 1.01)

    def test_custom_periods(self, make_series, rising_closes):
        config = IndicatorConfig(ma_short=5, ma_long=20)
        snap = build_snapshot(make_series(rising_closes), config)
        assert snap.ma_short == pytest.approx(sum(rising_closes[-5:]) / 5)
        assert snap.ma_long == pytest.approx(sum(rising_closes[-20:]) / 20)


class TestBollingerReading:
    def test_position_pct(self):
        bands = BollingerReading(upper=120.0, middle=100.0, lower=80.0)
        assert bands.position_pct(100.0) == pytest.approx(50.0)
        assert bands.position_pct(80.0) == pytest.approx(0.0)

    def test_collapsed_band_has_no_position(self):
        assert BollingerReading(10.0, 10.0, 10.0).position_pct(10.0) is None

    def test_undefined(self):
        bands = BollingerReading(None, None, None)
        assert not bands.is_defined
        assert bands.position_pct(10.0) is None
