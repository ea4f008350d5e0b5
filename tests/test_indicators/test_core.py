"""
Tests for stock_signals/indicators/core.py.

What we test
------------
moving_average():
  - None (never 0.0 or NaN) for indices before the window fills.
  - Correct values once defined; input not mutated.
bollinger_bands():
  - Flat series: upper == middle == lower (zero volatility).
  - upper >= middle >= lower wherever defined, across varied series.
  - Negative multiplier rejected.
momentum():
  - None with too little history; ZeroPriceError on a zero reference.
volume_ratio() / average_volume(): window includes the latest bar.
woodie_pivot_points(): weights the close twice.
golden_cross(): strict comparison, False when undefined.
"""

from __future__ import annotations

import math
import random

import pytest

from stock_signals.indicators.core import (
    ZeroPriceError,
    average_volume,
    bollinger_bands,
    golden_cross,
    momentum,
    moving_average,
    standard_deviation,
    volume_ratio,
    woodie_pivot_points,
)


class TestMovingAverage:
    def test_undefined_before_window_fills(self):
        ma = moving_average([1.0, 2.0, 3.0, 4.0], 3)
        assert ma[0] is None
        assert ma[1] is None
        assert ma[2] == pytest.approx(2.0)
        assert ma[3] == pytest.approx(3.0)

    @pytest.mark.parametrize("length", [0, 1, 5, 9])
    def test_series_shorter_than_period_is_all_undefined(self, length):
        ma = moving_average([100.0] * length, 10)
        assert len(ma) == length
        assert all(v is None for v in ma)

    def test_output_aligned_with_input(self):
        prices = [float(i) for i in range(25)]
        assert len(moving_average(prices, 7)) == 25

    def test_input_not_mutated(self):
        prices = [3.0, 1.0, 2.0]
        moving_average(prices, 2)
        assert prices == [3.0, 1.0, 2.0]

    def test_period_below_one_rejected(self):
        with pytest.raises(ValueError):
            moving_average([1.0, 2.0], 0)


class TestBollingerBands:
    def test_flat_series_collapses_bands(self):
        bands = bollinger_bands([10.0] * 20, period=20, multiplier=2.0)
        upper, middle, lower = bands.latest()
        assert upper == 10.0
        assert middle == 10.0
        assert lower == 10.0

    def test_undefined_indices_match_moving_average(self):
        bands = bollinger_bands([10.0] * 25, period=20)
        assert bands.upper[:19] == [None] * 19
        assert bands.lower[:19] == [None] * 19
        assert all(v is not None for v in bands.middle[19:])

    @pytest.mark.parametrize("seed", range(10))
    def test_band_ordering_holds(self, seed):
        rng = random.Random(seed)
        length = rng.randint(20, 120)
        prices = [rng.uniform(1_000, 200_000) for _ in range(length)]
        bands = bollinger_bands(prices, period=20, multiplier=rng.choice([0.0, 1.0, 2.0, 3.5]))
        for up, mid, low in zip(bands.upper, bands.middle, bands.lower):
            if mid is None:
                assert up is None and low is None
                continue
            assert up >= mid >= low

    def test_width_is_multiplier_times_population_sd(self):
        prices = [2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0]
        bands = bollinger_bands(prices, period=8, multiplier=2.0)
        upper, middle, lower = bands.latest()
        assert middle == pytest.approx(5.0)
        assert upper == pytest.approx(9.0)
        assert lower == pytest.approx(1.0)

    def test_negative_multiplier_rejected(self):
        with pytest.raises(ValueError, match="multiplier"):
            bollinger_bands([1.0] * 30, multiplier=-1.0)


class TestStandardDeviation:
    def test_none_when_window_incomplete(self):
        assert standard_deviation([1.0, 2.0], 3) is None

    def test_population_form(self):
        assert standard_deviation([2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0], 8) == pytest.approx(2.0)

    def test_flat_window_is_zero_not_nan(self):
        sd = standard_deviation([100.0] * 20, 20)
        assert sd == 0.0
        assert not math.isnan(sd)


class TestMomentum:
    def test_percent_change(self):
        assert momentum([100.0, 105.0, 110.0], 2) == pytest.approx(10.0)

    def test_none_with_too_little_history(self):
        assert momentum([100.0, 101.0], 2) is None

    def test_zero_reference_raises(self):
        with pytest.raises(ZeroPriceError) as exc_info:
            momentum([0.0, 5.0, 10.0], 2)
        assert exc_info.value.index == 0

    def test_zero_elsewhere_is_fine(self):
        assert momentum([10.0, 0.0, 20.0], 2) == pytest.approx(100.0)


class TestVolume:
    def test_ratio_includes_latest_bar(self):
        volumes = [100.0] * 9 + [200.0]
        assert average_volume(volumes, 10) == pytest.approx(110.0)
        assert volume_ratio(volumes, 10) == pytest.approx(200.0 / 110.0)

    def test_short_history_is_undefined(self):
        assert volume_ratio([100.0] * 5, 10) is None

    def test_zero_average_is_undefined(self):
        assert volume_ratio([0.0] * 10, 10) is None


class TestWoodiePivots:
    def test_levels(self):
        p = woodie_pivot_points(high=110.0, low=90.0, close=105.0)
        assert p.pivot == pytest.approx(102.5)
        assert p.r1 == pytest.approx(115.0)
        assert p.r2 == pytest.approx(122.5)
        assert p.s1 == pytest.approx(95.0)
        assert p.s2 == pytest.approx(82.5)
        assert p.s3 == pytest.approx(75.0)
        assert p.r3 == pytest.approx(135.0)

    def test_support_below_resistance(self):
        p = woodie_pivot_points(high=52_000.0, low=49_500.0, close=51_000.0)
        assert p.s3 < p.s2 < p.s1 < p.pivot < p.r1 < p.r2


class TestGoldenCross:
    def test_uptrend_crosses(self, rising_closes):
        assert golden_cross(rising_closes, 10, 30) is True

    def test_downtrend_does_not(self, rising_closes):
        assert golden_cross(list(reversed(rising_closes)), 10, 30) is False

    def test_flat_series_is_not_a_cross(self):
        assert golden_cross([100.0] * 40, 10, 30) is False

    def test_undefined_long_average(self):
        assert golden_cross([1.0, 2.0, 3.0] * 5, 10, 30) is False

    def test_empty(self):
        assert golden_cross([], 10, 30) is False
