"""Summary sending — the collaborator every daily/weekly fire calls.

Fetches the subscriber's feed, narrows it to the day or teaching week
containing "now", pushes the summary, and arms reminders for the events
it just announced.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable

from src.core.time_arithmetic import day_window, now_local, week_window
from src.data.models import SummaryPeriod
from src.ports.notification_port import SendFailure
from src.ports.store_port import StoreError

if TYPE_CHECKING:
    from src.core.reminders import ReminderScheduler
    from src.data.models import Event, Subscriber
    from src.ports.calendar_port import CalendarFetcher
    from src.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)


def events_in_window(
    events: list[Event], start: datetime, end: datetime,
) -> list[Event]:
    """Events starting in [start, end), ordered by start."""
    lo = start.astimezone(timezone.utc)
    hi = end.astimezone(timezone.utc)
    selected = [ev for ev in events if lo <= ev.start.astimezone(timezone.utc) < hi]
    selected.sort(key=lambda ev: ev.start.astimezone(timezone.utc))
    return selected


class SummaryService:
    def __init__(
        self,
        fetcher: CalendarFetcher,
        notifier: NotificationPort,
        reminders: ReminderScheduler,
        clock: Callable[[], datetime] = now_local,
    ) -> None:
        self._fetcher = fetcher
        self._notifier = notifier
        self._reminders = reminders
        self._clock = clock

    async def send_summary(
        self, subscriber: Subscriber, period: SummaryPeriod,
    ) -> list[Event]:
        """Send one summary and arm reminders for its events.

        Raises SendFailure (or CalendarError) when the feed is missing,
        unreachable, or the message cannot be delivered.
        """
        if not subscriber.webcal_url:
            raise SendFailure(f"Chat {subscriber.chat_id} has no calendar feed")

        all_events = await self._fetcher.fetch(subscriber.webcal_url)

        now = self._clock()
        start, end = day_window(now) if period is SummaryPeriod.DAY else week_window(now)
        events = events_in_window(all_events, start, end)

        await self._notifier.send_summary(subscriber.chat_id, events, period)
        logger.info(
            "Sent %s summary to chat %d (%d events)",
            period.value, subscriber.chat_id, len(events),
        )

        try:
            self._reminders.schedule_reminders(subscriber.chat_id, events)
        except StoreError as exc:
            logger.error(
                "Could not schedule reminders for chat %d: %s", subscriber.chat_id, exc,
            )
        return events
