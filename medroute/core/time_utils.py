"""Helpers for the "HH:MM" wall-clock strings used across trips."""
import re
from typing import Optional

TIME_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")

DEFAULT_TIME = "09:00"
MINUTES_PER_DAY = 24 * 60


def time_to_minutes(value: Optional[str], default: int = 540) -> int:
    """Convert "HH:MM" into minutes since midnight, ``default`` (09:00) when empty."""
    if not value:
        return default
    hours, _, minutes = value.partition(":")
    return int(hours) * 60 + int(minutes or 0)


def minutes_to_time(minutes: int) -> str:
    """Format minutes since midnight, clamped to the same day."""
    minutes = max(0, min(int(minutes), MINUTES_PER_DAY - 1))
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def wrap_minutes(minutes: int) -> str:
    """Format minutes as a time of day, wrapping past midnight."""
    minutes = int(minutes) % MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def is_valid_time(value: str) -> bool:
    return bool(TIME_PATTERN.match(value or ""))


def normalize_time(value: str) -> str:
    """Zero-pad a valid "H:MM" string, raise ValueError otherwise."""
    match = TIME_PATTERN.match((value or "").strip())
    if not match:
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    return f"{int(match.group(1)):02d}:{match.group(2)}"
