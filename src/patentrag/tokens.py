"""Shared token estimation.

Every component that budgets tokens (chunker, context builder, prompt
assembler) calls :func:`estimate_tokens`, so budgets computed in one place
hold in the others.
"""

from __future__ import annotations

import math

CJK_TOKENS_PER_CHAR = 0.67
OTHER_TOKENS_PER_CHAR = 0.25

# Inclusive code point ranges counted as CJK.
_CJK_RANGES: tuple[tuple[int, int], ...] = (
    (0x3000, 0x303F),    # CJK symbols and punctuation
    (0x3040, 0x309F),    # Hiragana
    (0x30A0, 0x30FF),    # Katakana
    (0x3400, 0x4DBF),    # Extension A
    (0x4E00, 0x9FFF),    # Unified ideographs
    (0xAC00, 0xD7AF),    # Hangul syllables
    (0xF900, 0xFAFF),    # Compatibility ideographs
    (0xFE30, 0xFE4F),    # Compatibility forms
    (0xFF00, 0xFFEF),    # Halfwidth and fullwidth forms
    (0x20000, 0x2A6DF),  # Extension B
    (0x2A700, 0x2EBEF),  # Extensions C-F
    (0x2F800, 0x2FA1F),  # Compatibility supplement
)

_SENTENCE_BOUNDARIES = ".。!?！？\n"


def is_cjk(char: str) -> bool:
    """Return True when a single character falls in a CJK block."""
    cp = ord(char)
    if cp < 0x3000:
        return False
    for lo, hi in _CJK_RANGES:
        if lo <= cp <= hi:
            return True
    return False


def estimate_tokens(text: str) -> int:
    """Estimate the model token count of ``text``.

    CJK characters weigh 0.67 tokens each, everything else 0.25. Empty
    text is 0 tokens; any non-empty text is at least 1.
    """
    if not text:
        return 0

    cjk = sum(1 for ch in text if is_cjk(ch))
    other = len(text) - cjk
    tokens = math.ceil(cjk * CJK_TOKENS_PER_CHAR + other * OTHER_TOKENS_PER_CHAR)
    return max(tokens, 1)


def cut_at_boundary(text: str) -> str:
    """Trim ``text`` back to its last sentence or newline boundary.

    The cut only happens when the boundary lies past the halfway point;
    otherwise the text is returned unchanged.
    """
    for i in range(len(text) - 1, len(text) // 2, -1):
        if text[i] in _SENTENCE_BOUNDARIES:
            return text[: i + 1]
    return text


def tail_tokens(text: str, max_tokens: int) -> str:
    """Return the longest suffix of ``text`` within ``max_tokens``, starting on a word."""
    if max_tokens <= 0 or not text:
        return ""

    # Smallest start offset whose suffix still fits.
    lo, hi = 0, len(text)
    while lo < hi:
        mid = (lo + hi) // 2
        if estimate_tokens(text[mid:]) <= max_tokens:
            hi = mid
        else:
            lo = mid + 1

    tail = text[lo:]
    if lo > 0:
        space = tail.find(" ")
        if 0 <= space < len(tail) // 2:
            tail = tail[space + 1 :]
    return tail.strip()


def truncate_to_tokens(text: str, max_tokens: int) -> str:
    """Return the longest boundary-trimmed prefix of ``text`` within ``max_tokens``."""
    if max_tokens <= 0:
        return ""
    if estimate_tokens(text) <= max_tokens:
        return text

    # Binary search over character count for the longest fitting prefix.
    lo, hi = 0, len(text)
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if estimate_tokens(text[:mid]) <= max_tokens:
            lo = mid
        else:
            hi = mid - 1

    return cut_at_boundary(text[:lo])
