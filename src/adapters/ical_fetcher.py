"""iCalendar feed adapter — implements CalendarFetcher.

Downloads a subscriber's webcal/https feed with httpx and parses it with
the icalendar library into timezone-aware Event objects in the civil
zone. All-day entries are skipped: they have no start instant to remind
about. Recurring rules are not expanded; timetable feeds publish one
VEVENT per occurrence.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import httpx
from icalendar import Calendar as iCalendar

from src.core.time_arithmetic import to_local
from src.data.models import Event
from src.ports.calendar_port import CalendarError

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT_SECONDS = 10.0


def to_http_url(url: str) -> str:
    """Rewrite webcal:// to https://; other schemes pass through."""
    if url.lower().startswith("webcal://"):
        return "https://" + url[len("webcal://"):]
    return url


def parse_events(raw: bytes | str) -> list[Event]:
    """Parse iCalendar text into timed events sorted by start.

    Raises CalendarError if the payload is not a calendar.
    """
    try:
        cal = iCalendar.from_ical(raw)
    except ValueError as exc:
        raise CalendarError(f"Invalid calendar data: {exc}") from exc

    events: list[Event] = []
    for component in cal.walk("VEVENT"):
        dtstart = component.get("DTSTART")
        if dtstart is None:
            continue
        start = dtstart.dt
        if not isinstance(start, datetime):
            continue  # all-day

        start = to_local(start)
        dtend = component.get("DTEND")
        if dtend is not None and isinstance(dtend.dt, datetime):
            end = to_local(dtend.dt)
        elif component.get("DURATION") is not None:
            end = to_local(start.astimezone(timezone.utc) + component.get("DURATION").dt)
        else:
            end = start

        uid = str(component.get("UID", "")) or f"{start.isoformat()}-{len(events)}"
        events.append(
            Event(
                uid=uid,
                title=str(component.get("SUMMARY", "")).strip() or "(no title)",
                start=start,
                end=end,
                location=str(component.get("LOCATION", "")).strip(),
            )
        )

    events.sort(key=lambda ev: ev.start)
    return events


class ICalFetcher:
    """httpx + icalendar implementation of CalendarFetcher."""

    def __init__(self, timeout: float | None = None) -> None:
        if timeout is None:
            from src.config import settings
            timeout = settings.FETCH_TIMEOUT_SECONDS
        self._timeout = timeout or _DEFAULT_TIMEOUT_SECONDS

    async def fetch(self, url: str) -> list[Event]:
        if not url:
            raise CalendarError("No calendar URL configured")

        http_url = to_http_url(url)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=True) as client:
                resp = await client.get(http_url)
                resp.raise_for_status()
                body = resp.content
        except httpx.HTTPError as exc:
            raise CalendarError(f"Error fetching calendar: {exc}") from exc

        events = parse_events(body)
        logger.debug("Fetched %d events from %s", len(events), http_url)
        return events
