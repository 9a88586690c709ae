"""Parsing and formatting of durations and countdowns."""

from __future__ import annotations

import math
import re

from sleeptimer.core.timer import InvalidDurationError, validate_duration

_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600}
_NUMBER = re.compile(r"^\d+(?:\.\d+)?$")
_PART = re.compile(r"(\d+(?:\.\d+)?)\s*([smh])")


def parse_duration(text: str) -> int:
    """Parse ``"90"``, ``"30s"``, ``"5m"`` or ``"1h 30m 45s"`` into seconds.

    Bare numbers are seconds.  Raises :class:`InvalidDurationError` when the
    text is not a duration or falls outside 1 second to 24 hours.
    """
    cleaned = (text or "").strip().lower()
    if not cleaned:
        raise InvalidDurationError("duration is empty")

    if _NUMBER.match(cleaned):
        return validate_duration(round(float(cleaned)))

    if _PART.sub("", cleaned).strip():
        raise InvalidDurationError(f"cannot parse duration {text!r}")
    total = sum(float(value) * _UNIT_SECONDS[unit] for value, unit in _PART.findall(cleaned))
    return validate_duration(round(total))


def format_countdown(remaining: int) -> str:
    """Format *remaining* seconds as ``MM:SS`` or ``H:MM:SS``."""
    hours, rest = divmod(max(int(remaining), 0), 3600)
    minutes, seconds = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes:02d}:{seconds:02d}"


def format_duration(total_seconds: int) -> str:
    """Human-readable duration: ``30s``, ``5m``, ``1h 30m``."""
    if total_seconds < 60:
        return f"{total_seconds}s"
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if seconds and not hours:
        parts.append(f"{seconds}s")
    return " ".join(parts) or "0s"


def minutes_remaining(remaining: int) -> int:
    return math.ceil(remaining / 60)


def badge_text(remaining: int | None) -> str:
    """Short status-bar text: whole minutes, ``99+`` or ``<1``."""
    if remaining is None:
        return ""
    minutes = minutes_remaining(remaining)
    if minutes > 99:
        return "99+"
    if minutes > 0:
        return str(minutes)
    return "<1"
