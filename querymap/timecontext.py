"""
Time expressions attached to locations ("in 1453", "100 BCE", "3rd century")
and their conversion to a signed year for timeline ordering.
"""

from __future__ import annotations

import re

_ORDINALS = {
    "first": 1, "second": 2, "third": 3, "fourth": 4, "fifth": 5,
    "sixth": 6, "seventh": 7, "eighth": 8, "ninth": 9, "tenth": 10,
    "eleventh": 11, "twelfth": 12, "thirteenth": 13, "fourteenth": 14,
    "fifteenth": 15, "sixteenth": 16, "seventeenth": 17, "eighteenth": 18,
    "nineteenth": 19, "twentieth": 20, "twenty-first": 21,
}
_ORDINAL_ALT = "|".join(sorted(_ORDINALS, key=len, reverse=True))

_CENTURY_RE = re.compile(
    r"\b(\d{1,2}|" + _ORDINAL_ALT + r")(?:st|nd|rd|th)?[\s-]+century\b(?:\s+(bce|bc|ce|ad)\b)?",
    re.IGNORECASE,
)
_YEAR_RE = re.compile(r"\b(\d+)\s*(bce|bc|ce|ad)?\b", re.IGNORECASE)

# Expressions worth attaching to a location when scraping prose
_TIME_EXPR_RE = re.compile(
    r"\b(?:\d{1,2}(?:st|nd|rd|th)|" + _ORDINAL_ALT + r")[\s-]+century(?:\s+(?:bce|bc|ce|ad)\b)?"
    r"|\b\d{1,4}\s*(?:bce|bc|ce|ad)\b"
    r"|(?<!\d[.,])\b\d{3,4}s?\b(?!%|[.,]\d)(?!\s*(?:km|kilomet|miles?|meters?|people|years|feet)\b)",
    re.IGNORECASE,
)

_SENTENCE_RE = re.compile(r"[^.!?]+[.!?]*")


def parse_time_context(text: str) -> int:
    """
    Signed year for a time-context string. Century phrasing maps to the
    century's midpoint (3rd century -> 250); BC/BCE are negative.
    Anything unparsable is year 0.
    """
    if not text:
        return 0
    s = text.strip().lower()

    m = _CENTURY_RE.search(s)
    if m:
        raw = m.group(1)
        century = int(raw) if raw.isdigit() else _ORDINALS[raw]
        year = (century - 1) * 100 + 50
        return -year if m.group(2) in ("bce", "bc") else year

    m = _YEAR_RE.search(s)
    if m:
        year = int(m.group(1))
        return -year if (m.group(2) or "").lower() in ("bce", "bc") else year

    return 0


def find_time_context(text: str, offset: int) -> str:
    """
    Time expression closest to ``offset`` within the sentence that contains it,
    or "" when that sentence mentions no date.
    """
    for sentence in _SENTENCE_RE.finditer(text):
        if sentence.start() <= offset < sentence.end():
            best = ""
            best_dist = None
            for m in _TIME_EXPR_RE.finditer(sentence.group(0)):
                start = sentence.start() + m.start()
                dist = abs(start - offset)
                if best_dist is None or dist < best_dist:
                    best, best_dist = m.group(0).strip(), dist
            return best
    return ""
