# src/taskmate/tasks/due_time.py

"""
Due-time parsing.

The model is instructed to send "YYYY-MM-DD HH:MM:SS", but it does not always
comply. This module accepts the standard formats plus a few relative forms
("tomorrow 18:00", "明天下午4点", "后天") as a fallback.

A relative day without a clock time means the end of that day (23:59:59).
"""

from __future__ import annotations

import re
from datetime import datetime, time, timedelta

from ..errors import ValidationError

_ABSOLUTE_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%Y/%m/%d",
)

# Longer words first: "day after tomorrow" contains "tomorrow".
_RELATIVE_DAYS: tuple[tuple[str, int], ...] = (
    ("day after tomorrow", 2),
    ("后天", 2),
    ("tomorrow", 1),
    ("明天", 1),
    ("today", 0),
    ("tonight", 0),
    ("今天", 0),
    ("今晚", 0),
)

# Clock hours before noon are read as evening after these words.
_EVENING_WORDS = frozenset({"tonight", "今晚"})

_RE_CLOCK = re.compile(r"(\d{1,2}):(\d{2})(?::(\d{2}))?")
_RE_EN_AMPM = re.compile(r"\b(\d{1,2})(?::(\d{2}))?\s*(am|pm)\b")
_RE_CN_PM = re.compile(r"(?:下午|晚上)(\d{1,2})(?:点|时)(?:(\d{1,2})分?)?")
_RE_CN_AM = re.compile(r"(?:上午|早上)(\d{1,2})(?:点|时)(?:(\d{1,2})分?)?")
_RE_CN_HOUR = re.compile(r"(\d{1,2})(?:点|时)(?:(\d{1,2})分?)?")


def _mk_time(hour: int, minute: int = 0, second: int = 0) -> time:
    if not (0 <= hour <= 23 and 0 <= minute <= 59 and 0 <= second <= 59):
        raise ValidationError(f"invalid clock time: {hour:02d}:{minute:02d}:{second:02d}")
    return time(hour, minute, second)


def _extract_clock(text: str) -> time | None:
    m = _RE_EN_AMPM.search(text)
    if m:
        hour = int(m.group(1)) % 12
        if m.group(3) == "pm":
            hour += 12
        return _mk_time(hour, int(m.group(2) or 0))

    m = _RE_CLOCK.search(text)
    if m:
        return _mk_time(int(m.group(1)), int(m.group(2)), int(m.group(3) or 0))

    m = _RE_CN_PM.search(text)
    if m:
        hour = int(m.group(1))
        if hour < 12:
            hour += 12
        return _mk_time(hour, int(m.group(2) or 0))

    m = _RE_CN_AM.search(text)
    if m:
        return _mk_time(int(m.group(1)), int(m.group(2) or 0))

    m = _RE_CN_HOUR.search(text)
    if m:
        return _mk_time(int(m.group(1)), int(m.group(2) or 0))

    return None


def parse_due_time(text: str, now: datetime | None = None) -> datetime:
    """
    Parse a due time.

    Naive results are local time. ISO-8601 strings with an offset stay aware.
    Raises ValidationError when nothing matches.
    """
    raw = (text or "").strip()
    if not raw:
        raise ValidationError("empty due time")

    lowered = raw.lower()
    base = now or datetime.now()

    for word, offset in _RELATIVE_DAYS:
        if word in lowered:
            day = (base + timedelta(days=offset)).date()
            clock = _extract_clock(lowered.replace(word, " "))
            if clock is None:
                clock = time(23, 59, 59)
            elif word in _EVENING_WORDS and clock.hour < 12:
                clock = clock.replace(hour=clock.hour + 12)
            return datetime.combine(day, clock)

    for fmt in _ABSOLUTE_FORMATS:
        try:
            return datetime.strptime(raw, fmt)
        except ValueError:
            continue

    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        pass

    raise ValidationError(f"cannot parse due time: {raw!r}")
