"""Recurring notification time arithmetic — pure functions.

Computes the next instant at which a daily ("HH:MM") or weekly
("DOW HH:MM") notification fires in the configured civil timezone.

All arithmetic is done on the civil calendar date and the zone is applied
afterwards, so a day across a DST transition is 23 or 25 hours long.
Comparisons and differences always go through UTC: aware datetimes that
share a tzinfo compare by wall-clock reading in Python, which is wrong
inside the repeated autumn hour.

No I/O: this module only transforms data.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo

WEEKDAYS = ("MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN")

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{1,2})$")


class InvalidFormatError(ValueError):
    """Raised when a time-of-day or weekday token does not parse."""


# ---------------------------------------------------------------------------
# Timezone / epoch helpers
# ---------------------------------------------------------------------------


@lru_cache(maxsize=None)
def _zone_for(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def get_zone() -> ZoneInfo:
    """Return the civil timezone notifications are expressed in."""
    from src.config import settings

    return _zone_for(settings.TIMEZONE)


def to_local(dt: datetime) -> datetime:
    """Convert an instant to the civil zone. Naive values are taken as local."""
    zone = get_zone()
    if dt.tzinfo is None:
        return _normalize(dt.replace(tzinfo=zone))
    return dt.astimezone(zone)


def now_local() -> datetime:
    return datetime.now(timezone.utc).astimezone(get_zone())


def to_epoch(dt: datetime) -> int:
    return int(to_local(dt).timestamp())


def from_epoch(epoch: int) -> datetime:
    return datetime.fromtimestamp(epoch, tz=get_zone())


def until(target: datetime, now: datetime) -> timedelta:
    """Elapsed time from ``now`` to ``target`` (negative if in the past)."""
    return target.astimezone(timezone.utc) - now.astimezone(timezone.utc)


def is_after(a: datetime, b: datetime) -> bool:
    return until(a, b) > timedelta(0)


def _normalize(dt: datetime) -> datetime:
    """Resolve gap/overlap wall times to a real instant in the same zone."""
    return dt.astimezone(timezone.utc).astimezone(dt.tzinfo)


def _at(day: date, hour: int, minute: int) -> datetime:
    # fold=0: a skipped wall time is shifted forward by the gap,
    # a repeated one resolves to its first occurrence.
    return _normalize(datetime.combine(day, time(hour, minute), tzinfo=get_zone()))


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_time_of_day(value: str) -> tuple[int, int]:
    """Parse "HH:MM" (padding optional) into (hour, minute).

    Raises InvalidFormatError on malformed or out-of-range input.
    """
    match = _TIME_RE.match(value.strip()) if value else None
    if match is None:
        raise InvalidFormatError(f"Invalid time format: {value!r} (expected HH:MM)")

    hour, minute = int(match.group(1)), int(match.group(2))
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise InvalidFormatError(f"Hour/minute out of range: {value!r}")
    return hour, minute


def parse_weekday(token: str) -> int:
    """Map a three-letter day code (any case) to Monday=0 .. Sunday=6."""
    try:
        return WEEKDAYS.index(token.strip().upper())
    except ValueError:
        raise InvalidFormatError(
            f"Invalid weekday: {token!r} (expected one of {', '.join(WEEKDAYS)})"
        ) from None


def parse_weekly(value: str) -> tuple[int, int, int]:
    """Parse "DOW HH:MM" into (weekday, hour, minute)."""
    parts = value.split() if value else []
    if len(parts) != 2:
        raise InvalidFormatError(f"Invalid weekly format: {value!r} (expected DAY HH:MM)")

    weekday = parse_weekday(parts[0])
    hour, minute = parse_time_of_day(parts[1])
    return weekday, hour, minute


def is_valid_daily(value: str) -> bool:
    try:
        parse_time_of_day(value)
    except InvalidFormatError:
        return False
    return True


def is_valid_weekly(value: str) -> bool:
    try:
        parse_weekly(value)
    except InvalidFormatError:
        return False
    return True


def normalize_weekly(value: str) -> str:
    """Canonical "DOW HH:MM" form of a valid weekly string."""
    weekday, hour, minute = parse_weekly(value)
    return f"{WEEKDAYS[weekday]} {hour:02d}:{minute:02d}"


def normalize_daily(value: str) -> str:
    hour, minute = parse_time_of_day(value)
    return f"{hour:02d}:{minute:02d}"


# ---------------------------------------------------------------------------
# Next occurrence
# ---------------------------------------------------------------------------


def next_daily(now: datetime, daily_time: str) -> datetime:
    """Next instant strictly after ``now`` at ``daily_time`` local time."""
    hour, minute = parse_time_of_day(daily_time)
    local_now = to_local(now)

    candidate = _at(local_now.date(), hour, minute)
    if not is_after(candidate, local_now):
        candidate = _at(local_now.date() + timedelta(days=1), hour, minute)
    return candidate


def next_weekly(now: datetime, weekly_time: str) -> datetime:
    """Next instant strictly after ``now`` on the given weekday and time."""
    weekday, hour, minute = parse_weekly(weekly_time)
    local_now = to_local(now)

    target = local_now.date() + timedelta(days=(weekday - local_now.weekday()) % 7)
    candidate = _at(target, hour, minute)
    if not is_after(candidate, local_now):
        candidate = _at(target + timedelta(days=7), hour, minute)
    return candidate


# ---------------------------------------------------------------------------
# Summary windows
# ---------------------------------------------------------------------------


def day_window(now: datetime) -> tuple[datetime, datetime]:
    """[local midnight, next local midnight) for the day containing ``now``."""
    today = to_local(now).date()
    return _at(today, 0, 0), _at(today + timedelta(days=1), 0, 0)


def week_window(now: datetime) -> tuple[datetime, datetime]:
    """Monday 00:00 to Saturday 00:00 of the teaching week.

    On Saturday and Sunday the window is the upcoming week.
    """
    today = to_local(now).date()
    if today.weekday() >= 5:
        monday = today + timedelta(days=7 - today.weekday())
    else:
        monday = today - timedelta(days=today.weekday())
    return _at(monday, 0, 0), _at(monday + timedelta(days=5), 0, 0)
