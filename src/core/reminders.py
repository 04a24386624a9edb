"""Per-event reminders.

Arms one one-shot timer per upcoming event, firing ``reminder_offset``
minutes before the event starts. At most one reminder is pending per
(subscriber, event): arming again for the same event replaces the
earlier timer, so a weekly summary followed by the daily one (or an
on-demand /today) never duplicates a reminder.

Reminders are session-scoped and not persisted, so a restart drops them
and events whose reminder instant has already passed are skipped.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable

from src.core.time_arithmetic import now_local, until

if TYPE_CHECKING:
    from src.data.models import Event
    from src.ports.notification_port import NotificationPort
    from src.ports.store_port import SubscriberStore
    from src.ports.timer_port import TimerHandle, TimerPort

logger = logging.getLogger(__name__)


class ReminderScheduler:
    def __init__(
        self,
        store: SubscriberStore,
        notifier: NotificationPort,
        timers: TimerPort,
        clock: Callable[[], datetime] = now_local,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._timers = timers
        self._clock = clock
        self._lock = threading.Lock()
        self._pending: dict[tuple[int, str], TimerHandle] = {}

    def schedule_reminders(self, chat_id: int, events: list[Event]) -> list[TimerHandle]:
        """Arm a reminder for every event whose reminder instant is still ahead.

        Returns the armed handles (mostly useful to tests).
        """
        subscriber = self._store.get_subscriber(chat_id)
        if subscriber is None:
            logger.warning("Not scheduling reminders: chat %d is not subscribed", chat_id)
            return []

        offset = timedelta(minutes=subscriber.reminder_offset)
        now = self._clock()
        armed: list[TimerHandle] = []

        for event in events:
            delay = until(event.start, now) - offset
            if delay <= timedelta(0):
                continue
            armed.append(self._arm(chat_id, event, delay))

        logger.info(
            "Scheduled %d of %d reminders for chat %d (offset %d min)",
            len(armed), len(events), chat_id, subscriber.reminder_offset,
        )
        return armed

    def pending(self, chat_id: int, uid: str) -> TimerHandle | None:
        with self._lock:
            return self._pending.get((chat_id, uid))

    def cancel_all(self, chat_id: int) -> None:
        """Cancel every pending reminder of one subscriber."""
        with self._lock:
            keys = [key for key in self._pending if key[0] == chat_id]
            handles = [self._pending.pop(key) for key in keys]
        for handle in handles:
            handle.cancel()
        if handles:
            logger.info("Cancelled %d reminders for chat %d", len(handles), chat_id)

    def _arm(self, chat_id: int, event: Event, delay: timedelta) -> TimerHandle:
        key = (chat_id, event.uid)
        handle: TimerHandle | None = None

        async def _send() -> None:
            with self._lock:
                if self._pending.get(key) is handle:
                    del self._pending[key]
            try:
                await self._notifier.send_reminder(chat_id, event)
                logger.info("Reminder sent to chat %d for '%s'", chat_id, event.title)
            except Exception as exc:
                logger.error(
                    "Failed to send reminder to chat %d for '%s': %s",
                    chat_id, event.title, exc,
                )

        with self._lock:
            previous = self._pending.get(key)
            if previous is not None:
                previous.cancel()
            handle = self._timers.call_later(delay, _send, f"reminder:{chat_id}:{event.uid}")
            self._pending[key] = handle
        return handle
