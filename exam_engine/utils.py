"""Utility functions for timestamps, sanitization, normalization and formatting."""

import math
import re
from datetime import datetime, timezone
from typing import Optional

import bleach

_WHITESPACE_RE = re.compile(r"\s+")


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp, the form every datetime column holds."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to a naive value, or convert an aware one to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def seconds_between(start: datetime, end: datetime) -> int:
    """Whole seconds elapsed from start to end, never negative."""
    return max(0, math.floor((as_utc(end) - as_utc(start)).total_seconds()))


def sanitize_text(text: str) -> str:
    """Strip all HTML/script content from client-supplied text."""
    sanitized = bleach.clean(text or "", tags=[], strip=True)
    return sanitized.strip()


def normalize_answer(answer: str) -> str:
    """Lowercase, trim and collapse internal whitespace."""
    return _WHITESPACE_RE.sub(" ", (answer or "").strip().lower())


def round_half_up(value: float) -> int:
    """Round to the nearest whole number, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


def format_duration(total_seconds: int) -> str:
    """Format seconds as HH:MM:SS."""
    hours, remainder = divmod(int(total_seconds or 0), 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
