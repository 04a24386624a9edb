"""
Timetable Notifier — Data Models.

Subscribers persist in SQLite across restarts; events are fetched fresh
from the subscriber's calendar feed every time a summary is sent and are
never stored.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class SummaryPeriod(str, Enum):
    """Which window a summary covers."""

    DAY = "day"
    WEEK = "week"


@dataclass
class Subscriber:
    """A chat subscribed to notifications about its calendar feed.

    last_daily_sent / last_weekly_sent are None until the first summary
    of that cadence has been delivered.
    """

    chat_id: int
    webcal_url: str = ""
    daily_time: str = "07:00"              # HH:MM
    weekly_time: str = "SUN 18:00"         # DOW HH:MM
    reminder_offset: int = 15              # minutes before event start
    last_daily_sent: datetime | None = None
    last_weekly_sent: datetime | None = None


@dataclass(frozen=True)
class Event:
    """A single calendar event from a subscriber's feed."""

    uid: str
    title: str
    start: datetime
    end: datetime
    location: str = ""
