from __future__ import annotations

import time
from datetime import datetime, timezone

# Time conversion constants
SECONDS_PER_MINUTE = 60
MINUTE_PER_HOUR = 60
HOUR_PER_DAY = 24
DAY_PER_WEEK = 7
SECONDS_PER_HOUR = SECONDS_PER_MINUTE * MINUTE_PER_HOUR
SECONDS_PER_DAY = SECONDS_PER_HOUR * HOUR_PER_DAY
SECONDS_PER_WEEK = SECONDS_PER_DAY * DAY_PER_WEEK


def format_time_ago(seconds: int) -> str:
    """Convert seconds to a human-readable time-ago string.

    Args:
        seconds: Number of seconds ago.

    Returns:
        Human-readable time string (e.g., "5m ago").
    """
    if seconds < SECONDS_PER_MINUTE:
        return f"{seconds}s ago"
    if seconds < SECONDS_PER_HOUR:
        minutes = seconds // SECONDS_PER_MINUTE
        return f"{minutes}m ago"
    hours = seconds // SECONDS_PER_HOUR
    return f"{hours}h ago"


def format_last_refresh(timestamp: float | None, now: float | None = None) -> str:
    """Describe when the PR list was last refreshed.

    Args:
        timestamp: Unix epoch seconds of the last successful refresh, if any.
        now: Current epoch seconds; defaults to `time.time()`.

    Returns:
        "never", "just now" for sub-second ages, otherwise `format_time_ago`.
    """
    if timestamp is None:
        return "never"
    current = time.time() if now is None else now
    age = current - timestamp
    if age < 1:
        return "just now"
    return format_time_ago(int(age))


def compact_relative_time(value: datetime, now: datetime | None = None) -> str:
    """Short age used in the PR list: "<1m", "3m", "2h", "2d 4h", "2w".

    Args:
        value: Timezone-aware timestamp.
        now: Reference time; defaults to the current UTC time.

    Returns:
        The compact age without an "ago" suffix.
    """
    current = now or datetime.now(timezone.utc)
    seconds = int((current - value).total_seconds())
    if seconds < SECONDS_PER_MINUTE:
        return "<1m"
    if seconds < SECONDS_PER_HOUR:
        return f"{seconds // SECONDS_PER_MINUTE}m"
    hours = seconds // SECONDS_PER_HOUR
    if hours < HOUR_PER_DAY:
        return f"{hours}h"
    days = hours // HOUR_PER_DAY
    if days < DAY_PER_WEEK:
        remaining = hours % HOUR_PER_DAY
        return f"{days}d {remaining}h" if remaining else f"{days}d"
    return f"{days // DAY_PER_WEEK}w"
