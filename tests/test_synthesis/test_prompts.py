"""
Tests for stock_signals/synthesis/prompts.py.

What we test
------------
  - Prices are shown in thousands of VND.
  - Undefined indicators are omitted, not printed as zero.
  - Fundamental / analyst sections appear only when data exists.
  - The response template and confidence threshold are always present.
"""

from __future__ import annotations

from stock_signals.config import IndicatorConfig
from stock_signals.indicators.snapshot import build_snapshot
from stock_signals.models.market import AnalystTarget, FundamentalRatios
from stock_signals.synthesis.prompts import (
    analyst_section,
    build_analysis_prompt,
    fundamental_section,
    technical_section,
)


class TestTechnicalSection:
    def test_prices_in_thousands(self, make_series, rising_closes):
        snap = build_snapshot(make_series(rising_closes), IndicatorConfig())
        text = "\n".join(technical_section(snap))
        assert f"Giá hiện tại: {rising_closes[-1] / 1000:.2f} (x1000 VNĐ)" in text
        assert "Xu hướng: TĂNG" in text
        assert "Bollinger:" in text
        assert "Pivot (Woodie)" in text

    def test_partial_snapshot_omits_undefined(self, make_series):
        snap = build_snapshot(make_series([30_000.0, 30_500.0, 31_000.0]), IndicatorConfig())
        text = "\n".join(technical_section(snap))
        assert "MA ngắn" not in text
        assert "Bollinger:" not in text
        assert "Momentum" not in text
        assert "chỉ có 3 phiên" in text


class TestOptionalSections:
    def test_empty_ratios_give_no_section(self):
        assert fundamental_section(FundamentalRatios(symbol="FPT")) == []

    def test_ratio_lines(self, healthy_ratios):
        text = "\n".join(fundamental_section(healthy_ratios))
        assert "P/E: 14.00" in text
        assert "ROE: 22.00%" in text
        assert "(tăng)" in text

    def test_analyst_counts_and_mean_target(self):
        targets = [
            AnalystTarget(firm="SSI", call="MUA", target_price=120_000.0),
            AnalystTarget(firm="VCSC", call="outperform", target_price=130_000.0),
            AnalystTarget(firm="HSC", call="neutral"),
        ]
        text = "\n".join(analyst_section(targets))
        assert "Tổng: 3 (MUA: 2, GIỮ: 1, BÁN: 0)" in text
        assert "Giá mục tiêu TB: 125.00" in text

    def test_no_analyst_calls(self):
        assert analyst_section([]) == []


class TestBuildAnalysisPrompt:
    def test_full_prompt(self, make_series, rising_closes, healthy_ratios):
        snap = build_snapshot(make_series(rising_closes), IndicatorConfig())
        prompt = build_analysis_prompt(
            "FPT", snap, ratios=healthy_ratios, analyst_targets=[], min_confidence=70
        )
        assert "cổ phiếu FPT" in prompt
        assert "DỮ LIỆU CƠ BẢN" in prompt
        assert "KHUYẾN NGHỊ CTCK" not in prompt
        assert "confidence >= 70" in prompt
        assert '"shortTerm"' in prompt and '"longTerm"' in prompt

    def test_without_fundamentals(self, make_series, rising_closes):
        snap = build_snapshot(make_series(rising_closes), IndicatorConfig())
        prompt = build_analysis_prompt("FPT", snap)
        assert "DỮ LIỆU CƠ BẢN" not in prompt
        assert "DỮ LIỆU KỸ THUẬT" in prompt
