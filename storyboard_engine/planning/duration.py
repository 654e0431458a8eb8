"""Free-form duration parsing.

Accepted forms::

    90            90s / 90sec / 90seconds / 90秒
    3m / 3min / 3minutes / 3分钟
    1m30s / 1min30sec / 1小时
    02:30         (mm:ss)
"""
from __future__ import annotations

import math
import re
from typing import Optional, Union

_MMSS_RE = re.compile(r"^(\d{1,3}):(\d{1,2})$")
_NUMBER_RE = re.compile(r"^\d+(?:\.\d+)?$")
_SEGMENT_RE = re.compile(
    r"(\d+(?:\.\d+)?)"
    r"(hours|hour|hrs|hr|h|minutes|minute|mins|min|m|seconds|second|secs|sec|s)"
)

_UNIT_SECONDS = {
    "h": 3600, "hr": 3600, "hrs": 3600, "hour": 3600, "hours": 3600,
    "m": 60, "min": 60, "mins": 60, "minute": 60, "minutes": 60,
    "s": 1, "sec": 1, "secs": 1, "second": 1, "seconds": 1,
}

_CN_UNITS = (
    ("小时", "h"), ("小時", "h"),
    ("分钟", "m"), ("分鐘", "m"),
    ("秒钟", "s"), ("秒", "s"),
)


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (Python's round() is banker's)."""
    return int(math.floor(value + 0.5))


def parse_duration_to_seconds(value: Union[str, int, float, None]) -> Optional[int]:
    """Parse *value* into whole seconds (≥ 1).

    Returns None for empty, non-positive or unrecognised input.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value) or value <= 0:
            return None
        return max(1, round_half_up(value))

    normalized = re.sub(r"\s+", "", str(value or "").strip().lower())
    if not normalized:
        return None
    normalized = normalized.replace("：", ":")
    for word, unit in _CN_UNITS:
        normalized = normalized.replace(word, unit)

    mmss = _MMSS_RE.match(normalized)
    if mmss:
        minutes, seconds = int(mmss.group(1)), int(mmss.group(2))
        if seconds >= 60:
            return None
        return max(1, minutes * 60 + seconds)

    if _NUMBER_RE.match(normalized):
        return max(1, round_half_up(float(normalized)))

    total = 0.0
    consumed = 0
    for match in _SEGMENT_RE.finditer(normalized):
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        consumed += len(match.group(0))

    if consumed and consumed == len(normalized):
        return max(1, round_half_up(total))
    return None
