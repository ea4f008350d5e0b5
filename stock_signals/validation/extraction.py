"""
JSON extraction and repair for free-form generative replies.

How it works
------------
1.  ``strip_code_fences`` removes Markdown ```json fences.
2.  ``extract_json_object`` finds the first ``{`` and its matching ``}`` by
    counting depth, ignoring braces inside quoted strings (single or double
    quoted, backslash escapes honoured). Summaries often contain braces, so
    a naive ``rfind("}")`` is not enough.
3.  ``parse_with_repairs`` tries a strict ``json.loads`` first, then applies
    ``REPAIR_STEPS`` in order. Repairs are cumulative: step N runs on the
    output of step N-1, and parsing is re-attempted after every step.

Parsed values must be JSON objects; arrays and scalars count as failures.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?")
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")
_BARE_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)(\s*:)")
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_NULLISH_RE = re.compile(r'"(?:null|undefined|None)"|\bundefined\b|\bNone\b')


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text)


def extract_json_object(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` substring of ``text``, or ``None``.

    ``None`` means there is no ``{`` or the first one is never closed.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    quote: Optional[str] = None
    escaped = False
    for i in range(start, len(text)):
        char = text[i]
        if quote is not None:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
            continue
        if char in ('"', "'"):
            quote = char
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start: i + 1]
    return None


# ── Repairs ────────────────────────────────────────────────────────────────────

def strip_control_characters(text: str) -> str:
    return _CONTROL_RE.sub(" ", text)


def quote_bare_keys(text: str) -> str:
    return _BARE_KEY_RE.sub(r'\1"\2"\3', text)


def single_to_double_quotes(text: str) -> str:
    """Rewrite single-quoted strings as double-quoted ones.

    Apostrophes inside existing double-quoted strings are left alone and
    double quotes inside a single-quoted string are escaped.
    """
    out: list[str] = []
    quote: Optional[str] = None
    escaped = False
    for char in text:
        if quote is None:
            if char == "'":
                quote = "'"
                out.append('"')
                continue
            if char == '"':
                quote = '"'
            out.append(char)
            continue

        if escaped:
            escaped = False
            if quote == "'" and char == "'":
                # \' is not a valid JSON escape; drop the backslash
                out[-1] = "'"
                continue
            out.append(char)
            continue
        if char == "\\":
            escaped = True
            out.append(char)
            continue
        if char == quote:
            out.append('"')
            quote = None
            continue
        if quote == "'" and char == '"':
            out.append('\\"')
            continue
        out.append(char)
    return "".join(out)


def remove_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA_RE.sub(r"\1", text)


def normalize_null_literals(text: str) -> str:
    return _NULLISH_RE.sub("null", text)


RepairStep = Callable[[str], str]

REPAIR_STEPS: tuple[tuple[str, RepairStep], ...] = (
    ("strip_control_characters", strip_control_characters),
    ("quote_bare_keys", quote_bare_keys),
    ("single_to_double_quotes", single_to_double_quotes),
    ("remove_trailing_commas", remove_trailing_commas),
    ("normalize_null_literals", normalize_null_literals),
)


@dataclass(frozen=True)
class ParseOutcome:
    """A decoded JSON object and the repairs it took to get there.

    ``repairs`` is empty when the strict parse succeeded.
    """

    data: dict[str, Any]
    repairs: tuple[str, ...]


def _loads_object(text: str) -> Optional[dict[str, Any]]:
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, RecursionError):
        return None
    return value if isinstance(value, dict) else None


def parse_with_repairs(candidate: str) -> Optional[ParseOutcome]:
    """Parse ``candidate`` strictly, then with cumulative repairs.

    Returns:
        ``ParseOutcome`` on the first success, ``None`` if every step fails.
    """
    data = _loads_object(candidate)
    if data is not None:
        return ParseOutcome(data=data, repairs=())

    applied: list[str] = []
    text = candidate
    for name, step in REPAIR_STEPS:
        repaired = step(text)
        if repaired == text:
            continue
        text = repaired
        applied.append(name)
        data = _loads_object(text)
        if data is not None:
            logger.debug("JSON recovered after repairs: %s", applied)
            return ParseOutcome(data=data, repairs=tuple(applied))
    return None


def extract_and_parse(text: str) -> Optional[ParseOutcome]:
    """Strip fences, extract the first object and parse it (with repairs)."""
    candidate = extract_json_object(strip_code_fences(text))
    if candidate is None:
        return None
    return parse_with_repairs(candidate)
