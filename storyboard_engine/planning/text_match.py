"""Text normalization, CJK-aware tokenization and the signature text hash.

All functions are pure.
"""
from __future__ import annotations

import re
from typing import List

_NON_WORD_RE = re.compile(r"[\W_]+")
_WHITESPACE_RE = re.compile(r"\s+")
_CJK_RUN_RE = re.compile(r"^[\u4e00-\u9fff]+$")


def normalize_match_text(value: object) -> str:
    """Lowercase, collapse punctuation/whitespace runs to one space, trim."""
    text = str(value or "").lower()
    text = _NON_WORD_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def tokenize_for_match(value: object) -> List[str]:
    """Return the distinct match tokens of *value*, in first-seen order.

    Tokens are the whitespace-split segments of the normalized text plus, for
    every pure-CJK segment longer than one character, all of its character
    bigrams (CJK text has no spaces to split on).
    """
    normalized = normalize_match_text(value)
    if not normalized:
        return []
    segments = normalized.split(" ")
    tokens = dict.fromkeys(segments)
    for segment in segments:
        if len(segment) > 1 and _CJK_RUN_RE.match(segment):
            for i in range(len(segment) - 1):
                tokens.setdefault(segment[i:i + 2])
    return list(tokens)


def hash_text(value: object) -> str:
    """Deterministic 32-bit djb2-xor hash, rendered as "<hex>-<length>".

    Operates on UTF-16 code units so hashes match signatures produced by the
    storyboard app for the same text.
    """
    raw = str(value or "")
    units = raw.encode("utf-16-le")
    h = 5381
    for i in range(0, len(units), 2):
        unit = units[i] | (units[i + 1] << 8)
        h = (((h << 5) + h) & 0xFFFFFFFF) ^ unit
    return f"{h:x}-{len(units) // 2}"
