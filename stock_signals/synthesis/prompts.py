"""
Analysis prompt construction.

The prompt is Vietnamese, matching the market and the keyword table used by
the fallback classifier. Sections appear only when their data exists, and an
undefined indicator is left out rather than printed as zero.

Prices are shown in thousands of VND (``x1000 VNĐ``), the unit local traders
and the model both expect; the validator scales replies back to VND.
"""

from __future__ import annotations

from typing import Iterable, Optional

from stock_signals.indicators.snapshot import IndicatorSnapshot
from stock_signals.models.market import AnalystTarget, FundamentalRatios

PRICE_DISPLAY_UNIT = 1000.0

_RESPONSE_TEMPLATE = """{
  "shortTerm": {
    "signal": "MUA | BÁN | THEO DÕI",
    "confidence": 0-100,
    "summary": "Nhận định cụ thể dựa trên MA, Bollinger, momentum, khối lượng"
  },
  "longTerm": {
    "signal": "MUA | BÁN | THEO DÕI",
    "confidence": 0-100,
    "summary": "Nhận định cụ thể dựa trên P/E, P/B, ROE, tăng trưởng"
  },
  "buyPrice": 0.0,
  "targetPrice": 0.0,
  "stopLoss": 0.0,
  "risks": ["rủi ro 1", "rủi ro 2", "rủi ro 3"],
  "opportunities": ["cơ hội 1", "cơ hội 2", "cơ hội 3"]
}"""


def _px(value: float) -> str:
    return f"{value / PRICE_DISPLAY_UNIT:.2f}"


def technical_section(snapshot: IndicatorSnapshot) -> list[str]:
    lines = ["DỮ LIỆU KỸ THUẬT:", f"Giá hiện tại: {_px(snapshot.current_price)} (x1000 VNĐ)"]

    if snapshot.ma_short is not None and snapshot.ma_long is not None:
        trend = "TĂNG" if snapshot.ma_short > snapshot.ma_long else "GIẢM"
        diff = snapshot.ma_diff_pct
        diff_txt = f" | Chênh lệch: {diff:.2f}%" if diff is not None else ""
        lines.append(
            f"MA ngắn: {_px(snapshot.ma_short)} | MA dài: {_px(snapshot.ma_long)}"
            f"{diff_txt} | Xu hướng: {trend}"
        )

    bands = snapshot.bollinger
    if bands.is_defined:
        lines.append(
            f"Bollinger: Upper={_px(bands.upper)}, Middle={_px(bands.middle)}, "
            f"Lower={_px(bands.lower)}"
        )
        position = bands.position_pct(snapshot.current_price)
        if position is not None:
            lines.append(f"Vị trí trong Bollinger: {position:.1f}%")

    momentum_parts = [
        f"{lookback} phiên: {value:+.2f}%"
        for lookback, value in sorted(snapshot.momentum.items())
        if value is not None
    ]
    if momentum_parts:
        lines.append("Momentum " + " | ".join(momentum_parts))

    vol = snapshot.volume
    if vol.average is not None and vol.ratio is not None:
        lines.append(
            f"Khối lượng: {vol.current:,.0f} | TB: {vol.average:,.0f} | "
            f"Tỷ lệ: {vol.ratio * 100:.0f}%"
        )

    week52 = snapshot.week52_position_pct
    range_txt = f"52 tuần: {_px(snapshot.week52_low)} - {_px(snapshot.week52_high)}"
    lines.append(range_txt + (f" | Vị trí: {week52:.0f}%" if week52 is not None else ""))

    if snapshot.pivots is not None:
        p = snapshot.pivots
        lines.append(
            f"Pivot (Woodie): P={_px(p.pivot)} | R1={_px(p.r1)} R2={_px(p.r2)} | "
            f"S1={_px(p.s1)} S2={_px(p.s2)} S3={_px(p.s3)}"
        )
        lines.append(f"Hỗ trợ kỹ thuật (S2): {_px(p.s2)}")

    if snapshot.is_partial:
        lines.append(
            f"Lưu ý: chỉ có {snapshot.bar_count} phiên dữ liệu, thiếu: "
            + ", ".join(snapshot.missing)
        )
    return lines


def fundamental_section(ratios: FundamentalRatios) -> list[str]:
    lines = ["DỮ LIỆU CƠ BẢN:"]
    if ratios.pe is not None:
        lines.append(f"P/E: {ratios.pe:.2f}")
    if ratios.pb is not None:
        lines.append(f"P/B: {ratios.pb:.2f}")
    if ratios.roe is not None:
        lines.append(f"ROE: {ratios.roe * 100:.2f}%")
    if ratios.roa is not None:
        lines.append(f"ROA: {ratios.roa * 100:.2f}%")
    if ratios.dividend_yield is not None:
        lines.append(f"Cổ tức: {ratios.dividend_yield * 100:.2f}%")
    if ratios.market_cap is not None:
        lines.append(f"Vốn hóa: {ratios.market_cap / 1e12:.2f} nghìn tỷ")
    if ratios.eps is not None:
        lines.append(f"EPS: {ratios.eps:.2f}")
    if len(ratios.roe_history) >= 2:
        trend = ratios.roe_history[-1] - ratios.roe_history[0]
        direction = "tăng" if trend > 0 else "giảm" if trend < 0 else "ổn định"
        lines.append(
            "ROE các kỳ gần nhất: "
            + ", ".join(f"{v * 100:.2f}%" for v in ratios.roe_history)
            + f" ({direction})"
        )
    return lines if len(lines) > 1 else []


def analyst_section(targets: Iterable[AnalystTarget]) -> list[str]:
    targets = list(targets)
    if not targets:
        return []
    counts = {call: sum(1 for t in targets if t.call == call) for call in ("BUY", "HOLD", "SELL")}
    lines = [
        "KHUYẾN NGHỊ CTCK:",
        f"Tổng: {len(targets)} (MUA: {counts['BUY']}, GIỮ: {counts['HOLD']}, BÁN: {counts['SELL']})",
    ]
    with_target = [t.target_price for t in targets if t.target_price]
    if with_target:
        lines.append(f"Giá mục tiêu TB: {_px(sum(with_target) / len(with_target))}")
    return lines


def instruction_section(symbol: str, min_confidence: int) -> list[str]:
    return [
        "YÊU CẦU PHÂN TÍCH:",
        "Phân tích DỰA TRÊN DỮ LIỆU THỰC TẾ ở trên. Đưa ra nhận định CỤ THỂ, không chung chung.",
        "1. NGẮN HẠN (1-4 tuần): 70% KỸ THUẬT + 30% CƠ BẢN",
        "   - MA ngắn > MA dài và momentum > 0: thiên về MUA",
        "   - MA ngắn < MA dài và momentum < 0: thiên về BÁN",
        "2. DÀI HẠN (3-12 tháng): 70% CƠ BẢN + 30% KỸ THUẬT",
        "   - P/E < 15 và ROE > 15%: thiên về MUA",
        "   - P/E > 25 và ROE < 10%: thiên về BÁN",
        f"3. Khuyến nghị: MUA (confidence >= {min_confidence}), "
        f"BÁN (confidence >= {min_confidence}), hoặc THEO DÕI",
        "4. LUÔN cung cấp mức giá (x1000 VNĐ):",
        "   - buyPrice: hỗ trợ S2 hoặc Bollinger Lower",
        "   - targetPrice: kháng cự R2 hoặc giá mục tiêu CTCK",
        "   - stopLoss: 5-7% dưới giá mua hoặc dưới hỗ trợ S3",
        f"5. Đưa ra ĐÚNG 3 rủi ro và ĐÚNG 3 cơ hội CỤ THỂ cho {symbol}",
    ]


def build_analysis_prompt(
    symbol: str,
    snapshot: IndicatorSnapshot,
    ratios: Optional[FundamentalRatios] = None,
    analyst_targets: Optional[Iterable[AnalystTarget]] = None,
    min_confidence: int = 65,
) -> str:
    """Assemble the full two-horizon analysis request for ``symbol``."""
    blocks: list[list[str]] = [
        [
            "Bạn là chuyên gia phân tích chứng khoán Việt Nam. "
            f"Hãy phân tích chuyên sâu cổ phiếu {symbol} dựa trên dữ liệu sau:"
        ],
        technical_section(snapshot),
    ]
    if ratios is not None:
        blocks.append(fundamental_section(ratios))
    if analyst_targets is not None:
        blocks.append(analyst_section(analyst_targets))
    blocks.append(instruction_section(symbol, min_confidence))
    blocks.append(
        [
            "FORMAT JSON (BẮT BUỘC - chỉ trả về JSON, không có text khác):",
            _RESPONSE_TEMPLATE,
        ]
    )
    return "\n\n".join("\n".join(block) for block in blocks if block)
