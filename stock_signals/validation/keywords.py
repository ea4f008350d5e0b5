"""
Keyword table for the fallback signal classifier.

The table is plain data: three disjoint term sets, Vietnamese first, then
English. Bump ``KEYWORD_TABLE_VERSION`` whenever a term is added or removed
so logged fallback classifications can be traced to the table that made them.

Terms are matched case-insensitively on word boundaries, longest term first,
without overlap, so ``"nắm giữ"`` counts once rather than also as ``"giữ"``.
No term may appear in, or be a substring of a term in, another set; this is
checked at import.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Mapping

KEYWORD_TABLE_VERSION = "2024.2"

KEYWORD_TABLE: Mapping[str, tuple[str, ...]] = {
    "BUY": (
        "mua",
        "mua vào",
        "tích lũy",
        "khả quan",
        "buy",
        "bullish",
        "accumulate",
        "outperform",
    ),
    "SELL": (
        "bán",
        "bán ra",
        "chốt lời",
        "cắt lỗ",
        "tiêu cực",
        "sell",
        "bearish",
        "underperform",
    ),
    "HOLD": (
        "giữ",
        "nắm giữ",
        "theo dõi",
        "trung lập",
        "quan sát",
        "hold",
        "neutral",
        "wait",
    ),
}


@dataclass(frozen=True)
class KeywordScores:
    buy: int
    sell: int
    hold: int

    def winner(self) -> str:
        """Category with the strictly highest count; ties and all-zero → HOLD."""
        ranked = sorted(
            (("BUY", self.buy), ("SELL", self.sell), ("HOLD", self.hold)),
            key=lambda kv: kv[1],
            reverse=True,
        )
        (top, top_count), (_, runner_up) = ranked[0], ranked[1]
        if top_count == 0 or top_count == runner_up:
            return "HOLD"
        return top


def check_disjoint(table: Mapping[str, tuple[str, ...]]) -> None:
    """Raise ``ValueError`` if any term is shared with, or contained in, another set."""
    categories = list(table)
    for i, cat_a in enumerate(categories):
        for cat_b in categories[i + 1:]:
            for a in table[cat_a]:
                for b in table[cat_b]:
                    if a.casefold() in b.casefold() or b.casefold() in a.casefold():
                        raise ValueError(
                            f"Keyword sets overlap: {cat_a}:{a!r} vs {cat_b}:{b!r}"
                        )


def _compile(terms: tuple[str, ...]) -> re.Pattern[str]:
    ordered = sorted(terms, key=len, reverse=True)
    alternation = "|".join(re.escape(t) for t in ordered)
    return re.compile(rf"(?<!\w)(?:{alternation})(?!\w)", re.IGNORECASE)


check_disjoint(KEYWORD_TABLE)
_PATTERNS: dict[str, re.Pattern[str]] = {
    category: _compile(terms) for category, terms in KEYWORD_TABLE.items()
}


def score_text(text: str) -> KeywordScores:
    """Count keyword hits per category in ``text`` (NFC-normalized first)."""
    text = unicodedata.normalize("NFC", text)
    counts = {cat: len(pattern.findall(text)) for cat, pattern in _PATTERNS.items()}
    return KeywordScores(buy=counts["BUY"], sell=counts["SELL"], hold=counts["HOLD"])
