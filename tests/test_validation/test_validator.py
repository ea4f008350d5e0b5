"""
Tests for stock_signals/validation/validator.py.

What we test
------------
validate_signal():
  - Lowercase signal and string confidence are salvaged (strict parse).
  - Repaired JSON is tagged ``Repaired`` with the steps taken.
  - No JSON: keyword fallback (Vietnamese majority wins, percent picked up).
  - Total: arbitrary malformed input never raises and confidence stays in [0, 100].
  - Idempotent: same text, same Signal.
validate_deep_analysis():
  - Two horizons, price levels scaled from thousands of VND, items padded to 3.
  - Prices dropped when neither horizon is BUY.
  - Single flat object used for both horizons.
Helpers: normalize_signal_type, coerce_confidence, summarize_text, normalize_price.
"""

from __future__ import annotations

import json
import random
import string

import pytest

from stock_signals.models.signal import DEFAULT_OPPORTUNITIES, DEFAULT_RISKS
from stock_signals.validation.keywords import KEYWORD_TABLE_VERSION
from stock_signals.validation.validator import (
    DEFAULT_FALLBACK_CONFIDENCE,
    EMPTY_REPLY_SUMMARY,
    MAX_SUMMARY_CHARS,
    Fallback,
    Parsed,
    Repaired,
    ResponseValidator,
    coerce_confidence,
    normalize_price,
    normalize_signal_type,
    summarize_text,
)


@pytest.fixture
def validator() -> ResponseValidator:
    return ResponseValidator()


class TestValidateSignal:
    def test_lowercase_signal_string_confidence(self, validator):
        result = validator.validate_signal(
            '{"signal":"buy","confidence":"85","summary":"Strong uptrend"}'
        )
        assert isinstance(result, Parsed)
        assert result.signal.signal_type == "BUY"
        assert result.signal.confidence == 85
        assert result.signal.summary == "Strong uptrend"

    def test_vietnamese_label_and_percent_string(self, validator):
        result = validator.validate_signal(
            '{"signal": "Bán", "confidence": "72%", "summary": "Gãy hỗ trợ"}'
        )
        assert result.signal.signal_type == "SELL"
        assert result.signal.confidence == 72

    def test_confidence_clamped(self, validator):
        result = validator.validate_signal('{"signal":"HOLD","confidence":140,"summary":"x y"}')
        assert result.signal.confidence == 100

    def test_repaired_reply(self, validator):
        result = validator.validate_signal(
            "Phân tích: {'signal': 'MUA', 'confidence': 78, 'summary': 'Vượt MA30',}"
        )
        assert isinstance(result, Repaired)
        assert result.method == "repaired"
        assert "single_to_double_quotes" in result.repairs
        assert result.signal.signal_type == "BUY"

    def test_keyword_fallback_majority(self, validator):
        text = (
            "Nên mua cổ phiếu này. Có thể mua thêm khi điều chỉnh, "
            "mua tích cực. Chỉ bán khi gãy hỗ trợ."
        )
        result = validator.validate_signal(text)
        assert isinstance(result, Fallback)
        assert result.signal.signal_type == "BUY"
        assert result.signal.confidence == DEFAULT_FALLBACK_CONFIDENCE
        assert result.keyword_table_version == KEYWORD_TABLE_VERSION

    def test_fallback_picks_up_percentage(self, validator):
        result = validator.validate_signal("Khuyến nghị bán ra, độ tin cậy 70%.")
        assert result.signal.signal_type == "SELL"
        assert result.signal.confidence == 70

    def test_fallback_tie_is_hold(self, validator):
        result = validator.validate_signal("mua hay bán?")
        assert result.signal.signal_type == "HOLD"

    def test_object_missing_confidence_falls_back(self, validator):
        result = validator.validate_signal('{"signal": "BUY", "summary": "mua mạnh"}')
        assert isinstance(result, Fallback)
        assert result.reason == "object failed signal contract"
        assert result.signal.signal_type == "BUY"

    def test_empty_reply(self, validator):
        result = validator.validate_signal("")
        assert isinstance(result, Fallback)
        assert result.signal.signal_type == "HOLD"
        assert result.signal.summary == EMPTY_REPLY_SUMMARY

    def test_none_reply(self, validator):
        assert validator.validate_signal(None).signal.signal_type == "HOLD"

    def test_idempotent(self, validator):
        text = 'Kết quả ```json\n{"signal": "sell", "confidence": 61.6, "summary": "Yếu"}\n```'
        assert validator.validate_signal(text).signal == validator.validate_signal(text).signal

    @pytest.mark.parametrize("seed", range(25))
    def test_total_over_malformed_input(self, validator, seed):
        rng = random.Random(seed)
        alphabet = string.printable + "{}[]\":,'%mua bán giữ ạếộ\\"
        text = "".join(rng.choice(alphabet) for _ in range(rng.randint(0, 400)))
        result = validator.validate_signal(text)
        assert 0 <= result.signal.confidence <= 100
        assert result.signal.signal_type in ("BUY", "SELL", "HOLD")
        assert result.signal.summary

    @pytest.mark.parametrize(
        "text",
        [
            "{",
            "}}}{{{",
            '{"signal": "BUY", "confidence": NaN, "summary": "x"}',
            '{"signal": "BUY", "confidence": "Infinity", "summary": "x"}',
            '{"signal": ["BUY"], "confidence": {}, "summary": 3}',
            "[" * 5000,
            "{" * 5000,
            '{"confidence": 999999999999999999999999}',
            '{"signal": "buy", "confidence": ' + "9" * 400 + ', "summary": "x"}',
            "độ tin cậy 250%",
        ],
    )
    def test_pathological_inputs(self, validator, text):
        result = validator.validate_signal(text)
        assert 0 <= result.signal.confidence <= 100


class TestValidateDeepAnalysis:
    def test_two_horizons_with_prices(self, validator):
        reply = json.dumps(
            {
                "shortTerm": {"signal": "MUA", "confidence": 80, "summary": "MA10 cắt lên MA30"},
                "longTerm": {"signal": "THEO DÕI", "confidence": 60, "summary": "Định giá hợp lý"},
                "buyPrice": 95.5,
                "targetPrice": "112.0",
                "stopLoss": 90,
                "risks": ["Tỷ giá biến động mạnh", "ok"],
                "opportunities": ["Mảng chuyển đổi số", "Xuất khẩu phần mềm", "Cổ tức đều", "Thừa"],
            },
            ensure_ascii=False,
        )
        result = validator.validate_deep_analysis(reply)
        analysis = result.analysis
        assert result.method == "parsed"
        assert analysis.short_term.signal.signal_type == "BUY"
        assert analysis.long_term.signal.signal_type == "HOLD"
        assert analysis.buy_price == pytest.approx(95_500.0)
        assert analysis.target_price == pytest.approx(112_000.0)
        assert analysis.stop_loss == pytest.approx(90_000.0)
        assert analysis.risks == ("Tỷ giá biến động mạnh", DEFAULT_RISKS[0], DEFAULT_RISKS[1])
        assert analysis.opportunities == (
            "Mảng chuyển đổi số", "Xuất khẩu phần mềm", "Cổ tức đều",
        )

    def test_prices_dropped_without_buy(self, validator):
        reply = json.dumps(
            {
                "shortTerm": {"signal": "SELL", "confidence": 70, "summary": "Giảm"},
                "longTerm": {"signal": "HOLD", "confidence": 55, "summary": "Đi ngang"},
                "targetPrice": 120,
            }
        )
        analysis = validator.validate_deep_analysis(reply).analysis
        assert analysis.target_price is None
        assert analysis.buy_price is None

    def test_oversized_price_is_dropped(self, validator):
        reply = (
            '{"signal": "BUY", "confidence": 72, "summary": "ok", "targetPrice": '
            + "9" * 400
            + ', "stopLoss": 61}'
        )
        result = validator.validate_deep_analysis(reply)
        assert result.method == "parsed"
        assert result.analysis.target_price is None
        assert result.analysis.stop_loss == pytest.approx(61_000.0)

    def test_missing_horizon_copies_other(self, validator):
        reply = '{"longTerm": {"signal": "BUY", "confidence": 77, "summary": "ROE tăng"}}'
        analysis = validator.validate_deep_analysis(reply).analysis
        assert analysis.short_term == analysis.long_term

    def test_flat_object_used_for_both(self, validator):
        reply = '{"signal": "BUY", "confidence": 66, "summary": "ok", "targetPrice": 30000}'
        analysis = validator.validate_deep_analysis(reply).analysis
        assert analysis.short_term.signal.confidence == 66
        assert analysis.target_price == 30_000.0

    def test_fallback_pads_defaults(self, validator):
        result = validator.validate_deep_analysis("Nên nắm giữ và theo dõi thêm.")
        assert result.method == "fallback"
        assert result.analysis.short_term.signal.signal_type == "HOLD"
        assert result.analysis.risks == DEFAULT_RISKS
        assert result.analysis.opportunities == DEFAULT_OPPORTUNITIES
        assert result.analysis.target_price is None


class TestHelpers:
    @pytest.mark.parametrize(
        "label, expected",
        [
            ("buy", "BUY"),
            (" Strong  Buy ", "BUY"),
            ("mua", "BUY"),
            ("BÁN", "SELL"),
            ("theo dõi", "HOLD"),
            ("Khuyến nghị MUA", "BUY"),
            ("MUA hoặc BÁN", None),
            ("", None),
            (42, None),
        ],
    )
    def test_normalize_signal_type(self, label, expected):
        assert normalize_signal_type(label) == expected

    @pytest.mark.parametrize(
        "value, expected",
        [
            (85, 85),
            ("85", 85),
            ("85%", 85),
            ("72,6", 73),
            (-3, 0),
            (101.2, 100),
            (True, None),
            ("cao", None),
            (float("nan"), None),
            (None, None),
        ],
    )
    def test_coerce_confidence(self, value, expected):
        assert coerce_confidence(value) == expected

    def test_summarize_ends_on_sentence(self):
        text = ("Câu thứ nhất khá dài. " * 30).strip()
        summary = summarize_text(text)
        assert len(summary) <= MAX_SUMMARY_CHARS
        assert summary.endswith(".")

    def test_summarize_cuts_on_word(self):
        text = "chữ " * 200
        summary = summarize_text(text)
        assert len(summary) <= MAX_SUMMARY_CHARS
        assert summary.endswith("…")
        assert not summary.endswith(" …")

    @pytest.mark.parametrize(
        "value, expected",
        [
            (95.5, 95_500.0),
            ("1,250", 1_250.0),
            (45_000, 45_000.0),
            (0, None),
            (-10, None),
            ("n/a", None),
            (None, None),
            (True, None),
        ],
    )
    def test_normalize_price(self, value, expected):
        assert normalize_price(value) == expected
