"""
Date parsing utilities for due dates supplied by users and the AI assistant
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional, Union
from taskflow.utils.error_handler import ValidationError


_RELATIVE_DAYS = {
    "today": 0,
    "tomorrow": 1,
    "day after tomorrow": 2,
    "yesterday": -1,
}

_WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_IN_PERIOD = re.compile(r"^in (\d+) (day|days|week|weeks)$")

_CLEAR_WORDS = {"", "none", "null", "clear", "remove"}


def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC and convert aware ones to UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _days_ahead(lowered: str, weekday: int) -> Optional[int]:
    """Offset from today for relative phrases, None if not relative"""
    if lowered in _RELATIVE_DAYS:
        return _RELATIVE_DAYS[lowered]

    name = lowered[5:] if lowered.startswith("next ") else lowered
    if name in _WEEKDAYS:
        # Always a future day, a week ahead when it names today
        return (_WEEKDAYS.index(name) - weekday - 1) % 7 + 1

    match = _IN_PERIOD.match(lowered)
    if match:
        amount = int(match.group(1))
        return amount * 7 if match.group(2).startswith("week") else amount

    return None


def parse_due_date(value: Union[str, datetime, None], now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Parse a due date into a timezone-aware UTC datetime

    Args:
        value: datetime, ISO 8601 string, "DD.MM.YYYY", a relative phrase
            ("today", "tomorrow", "friday", "next monday", "in 3 days",
            "in 2 weeks"), or an empty/"none" value to clear the date
        now: Reference time for relative phrases (defaults to the current UTC time)

    Returns:
        UTC datetime, or None when the due date should be cleared

    Raises:
        ValidationError: If the value cannot be parsed
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return to_utc(value)

    text = value.strip()
    lowered = " ".join(text.lower().split())
    if lowered in _CLEAR_WORDS:
        return None

    today = to_utc(now or datetime.now(timezone.utc)).replace(hour=0, minute=0, second=0, microsecond=0)
    offset = _days_ahead(lowered, today.weekday())
    if offset is not None:
        return today + timedelta(days=offset)

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        parsed = None

    if parsed is None:
        for fmt in ("%d.%m.%Y %H:%M", "%d.%m.%Y"):
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        raise ValidationError(f"Invalid due date: {value}")

    return to_utc(parsed)
