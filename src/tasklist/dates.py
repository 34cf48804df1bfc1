"""Parsing of user-supplied due dates and reminder times.

Accepted forms:
    2025-03-01 14:30        date and time (local time)
    2025-03-01              date only, end of that day
    2025-03-01T14:30:00Z    ISO-8601
    today / tomorrow / next week / next month   end of that day
    tomorrow 23:59          relative day with an explicit time
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta

from tasklist.errors import ValidationError

_RELATIVE_DAYS = {
    "today": 0,
    "tomorrow": 1,
    "next week": 7,
}

_TIME_SUFFIX = re.compile(r"^(?P<base>.+?)\s+(?P<hour>\d{1,2}):(?P<minute>\d{2})$")

# Zero-value timestamp older task files use for "no date"
_ZERO_TIME_PREFIX = "0001-01-01T00:00:00"

_FRACTION = re.compile(r"\.(\d+)")


def now_local() -> datetime:
    """Current time as a timezone-aware local datetime."""
    return datetime.now().astimezone()


def ensure_aware(value: datetime) -> datetime:
    """Attach the local timezone to naive datetimes."""
    if value.tzinfo is None:
        return value.astimezone()
    return value


def _end_of_day(value: datetime) -> datetime:
    return value.replace(hour=23, minute=59, second=59, microsecond=0)


def _add_month(value: datetime) -> datetime:
    year = value.year + value.month // 12
    month = value.month % 12 + 1
    day = value.day
    while True:
        try:
            return value.replace(year=year, month=month, day=day)
        except ValueError:
            day -= 1


def _parse_relative(text: str, now: datetime) -> datetime | None:
    today = _end_of_day(now)
    if text in _RELATIVE_DAYS:
        return today + timedelta(days=_RELATIVE_DAYS[text])
    if text == "next month":
        return _add_month(today)
    return None


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a stored ISO-8601 timestamp.

    Empty values and the zero time (0001-01-01T00:00:00) map to None.
    """
    if value is None:
        return None
    value = value.strip()
    if not value or value.startswith(_ZERO_TIME_PREFIX):
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    # Older task files carry up to nanoseconds with trailing zeros trimmed;
    # fromisoformat on Python 3.10 wants exactly six digits
    value = _FRACTION.sub(lambda m: "." + (m.group(1) + "000000")[:6], value, count=1)
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as e:
        raise ValidationError(f"invalid timestamp: {value!r}") from e
    return ensure_aware(parsed)


def format_timestamp(value: datetime | None) -> str | None:
    """Serialize a timestamp for disk and wire (ISO-8601 with offset)."""
    if value is None:
        return None
    return ensure_aware(value).isoformat()


def parse_datetime(text: str, now: datetime | None = None) -> datetime:
    """Parse a date or date-time expression into an aware datetime.

    Args:
        text: User input (see module docstring for accepted forms).
        now: Reference time for relative expressions. Defaults to now.

    Returns:
        Timezone-aware datetime.

    Raises:
        ValidationError: If the input matches no accepted form.
    """
    raw = (text or "").strip()
    if not raw:
        raise ValidationError("empty date string")

    now = ensure_aware(now) if now is not None else now_local()
    lowered = raw.lower()

    for fmt in ("%Y-%m-%d %H:%M", "%Y-%m-%d"):
        try:
            parsed = datetime.strptime(raw, fmt)
        except ValueError:
            continue
        if fmt == "%Y-%m-%d":
            parsed = _end_of_day(parsed)
        return parsed.replace(tzinfo=now.tzinfo)

    relative = _parse_relative(lowered, now)
    if relative is not None:
        return relative

    match = _TIME_SUFFIX.match(lowered)
    if match:
        base = _parse_relative(match.group("base"), now)
        hour, minute = int(match.group("hour")), int(match.group("minute"))
        if base is not None and hour < 24 and minute < 60:
            return base.replace(hour=hour, minute=minute, second=0)

    try:
        parsed_iso = parse_timestamp(raw)
    except ValidationError:
        parsed_iso = None
    if parsed_iso is not None:
        return parsed_iso

    raise ValidationError(
        f"unknown date format: {raw} "
        "(use YYYY-MM-DD, YYYY-MM-DD HH:MM or 'today', 'tomorrow', 'next week')"
    )
