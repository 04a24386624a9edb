"""
Timetable Notifier — Recurring summary scheduler.

Daily and weekly summaries are driven by self-perpetuating one-shot
timers: each timer's callback sends the summary, stamps the last-sent
marker, then arms the next cycle from the subscriber's *current*
preferences. There is no central clock loop.

Failure policy inside a fired callback: store and send errors are logged
and swallowed, and the next cycle is always armed. A failed send is
retried by the next cycle (or caught up at the next startup), never
in a tight loop.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable

from src.core.time_arithmetic import (
    InvalidFormatError,
    next_daily,
    next_weekly,
    now_local,
    until,
)
from src.core.timer_registry import Cadence, TimerRegistry
from src.data.models import SummaryPeriod
from src.ports.notification_port import SendFailure
from src.ports.store_port import StoreError

if TYPE_CHECKING:
    from src.core.summary import SummaryService
    from src.data.models import Subscriber
    from src.ports.store_port import SubscriberStore
    from src.ports.timer_port import TimerCallback, TimerPort

logger = logging.getLogger(__name__)

_DEFAULT_RETRY = timedelta(minutes=5)


def next_fire_time(subscriber: Subscriber, cadence: Cadence, now: datetime) -> datetime:
    """Next instant after ``now`` at which the subscriber's cadence fires."""
    if cadence is Cadence.DAILY:
        return next_daily(now, subscriber.daily_time)
    return next_weekly(now, subscriber.weekly_time)


def last_sent(subscriber: Subscriber, cadence: Cadence) -> datetime | None:
    if cadence is Cadence.DAILY:
        return subscriber.last_daily_sent
    return subscriber.last_weekly_sent


def _period(cadence: Cadence) -> SummaryPeriod:
    return SummaryPeriod.DAY if cadence is Cadence.DAILY else SummaryPeriod.WEEK


class RecurringScheduler:
    """Arms, fires and re-arms every subscriber's daily and weekly timers."""

    def __init__(
        self,
        store: SubscriberStore,
        summaries: SummaryService,
        timers: TimerPort,
        clock: Callable[[], datetime] = now_local,
        retry_delay: timedelta = _DEFAULT_RETRY,
    ) -> None:
        self._store = store
        self._summaries = summaries
        self._clock = clock
        self._retry_delay = retry_delay
        self.registry = TimerRegistry(timers)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def schedule_daily(self, chat_id: int) -> datetime | None:
        """Arm the daily timer. Returns the fire time, or None if nothing was armed.

        Raises InvalidFormatError for a malformed stored time and
        LookupFailure if the store cannot be read.
        """
        return self._schedule(chat_id, Cadence.DAILY)

    def schedule_weekly(self, chat_id: int) -> datetime | None:
        return self._schedule(chat_id, Cadence.WEEKLY)

    def stop_and_reschedule(self, chat_id: int) -> None:
        """Cancel both pending timers and re-arm them from current preferences.

        Called after every preference change. A callback that has already
        started is not interrupted; its own re-arm replaces whatever this
        call installs, so exactly one timer per cadence stays pending.
        """
        logger.info("Stopping and rescheduling notifications for chat %d", chat_id)
        self.registry.cancel(chat_id, Cadence.DAILY)
        self.registry.cancel(chat_id, Cadence.WEEKLY)
        self.schedule_daily(chat_id)
        self.schedule_weekly(chat_id)

    def cancel_all(self, chat_id: int) -> None:
        self.registry.cancel_all(chat_id)

    def cancel_all_subscribers(self) -> None:
        self.registry.cancel_all_subscribers()

    async def send_and_mark(self, subscriber: Subscriber, cadence: Cadence) -> bool:
        """Send one summary and, on success, stamp last-sent = now.

        Never raises; returns whether the summary was delivered.
        """
        chat_id = subscriber.chat_id
        try:
            await self._summaries.send_summary(subscriber, _period(cadence))
        except SendFailure as exc:
            logger.error("Failed to send %s summary to chat %d: %s", cadence.value, chat_id, exc)
            return False
        except Exception:
            logger.exception("Unexpected error sending %s summary to chat %d", cadence.value, chat_id)
            return False

        sent_at = self._clock()
        try:
            if cadence is Cadence.DAILY:
                self._store.update_last_daily_sent(chat_id, sent_at)
            else:
                self._store.update_last_weekly_sent(chat_id, sent_at)
        except StoreError as exc:
            logger.error("Error updating last %s sent for chat %d: %s", cadence.value, chat_id, exc)
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _schedule(self, chat_id: int, cadence: Cadence) -> datetime | None:
        subscriber = self._store.get_subscriber(chat_id)
        if subscriber is None:
            logger.warning("Not scheduling %s summary: chat %d is not subscribed", cadence.value, chat_id)
            self.registry.cancel(chat_id, cadence)
            return None
        if not subscriber.webcal_url:
            logger.debug("Chat %d has no calendar feed; %s timer left unarmed", chat_id, cadence.value)
            self.registry.cancel(chat_id, cadence)
            return None

        now = self._clock()
        fire_at = next_fire_time(subscriber, cadence, now)
        delay = until(fire_at, now)

        self.registry.arm(chat_id, cadence, delay, self._fire_callback(chat_id, cadence))
        logger.info(
            "Scheduling %s summary for chat %d at %s (in %s)",
            cadence.value, chat_id, fire_at.isoformat(), delay,
        )
        return fire_at

    def _fire_callback(self, chat_id: int, cadence: Cadence) -> TimerCallback:
        async def _fire() -> None:
            await self._fire(chat_id, cadence)

        return _fire

    async def _fire(self, chat_id: int, cadence: Cadence) -> None:
        logger.info("Sending %s summary for chat %d", cadence.value, chat_id)
        try:
            subscriber = self._store.get_subscriber(chat_id)
        except StoreError as exc:
            logger.error("Error loading chat %d for %s summary: %s", chat_id, cadence.value, exc)
            subscriber = None

        if subscriber is not None and subscriber.webcal_url:
            await self.send_and_mark(subscriber, cadence)

        self._rearm(chat_id, cadence)

    def _rearm(self, chat_id: int, cadence: Cadence) -> None:
        try:
            self._schedule(chat_id, cadence)
        except InvalidFormatError as exc:
            logger.error("Stored %s time for chat %d is invalid: %s", cadence.value, chat_id, exc)
            self.registry.cancel(chat_id, cadence)
        except StoreError as exc:
            logger.error(
                "Error rescheduling %s summary for chat %d, retrying in %s: %s",
                cadence.value, chat_id, self._retry_delay, exc,
            )
            self.registry.arm(chat_id, cadence, self._retry_delay, self._retry_callback(chat_id, cadence))

    def _retry_callback(self, chat_id: int, cadence: Cadence) -> TimerCallback:
        async def _retry() -> None:
            self._rearm(chat_id, cadence)

        return _retry
