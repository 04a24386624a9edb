"""Startup reconciliation.

Runs once before the bot starts polling: for every persisted subscriber,
send a single catch-up summary for each cadence whose next fire time
(computed from the last-sent marker) already passed while the process
was down, then arm the ongoing timers.

Any number of missed cycles collapse into one catch-up, and the marker
is stamped with the catch-up time rather than the missed instant.
Subscribers that were never sent a summary get no catch-up.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable

from src.core.scheduler import last_sent, next_fire_time
from src.core.time_arithmetic import InvalidFormatError, now_local, until
from src.core.timer_registry import Cadence
from src.ports.store_port import StoreError

if TYPE_CHECKING:
    from src.core.scheduler import RecurringScheduler
    from src.data.models import Subscriber
    from src.ports.store_port import SubscriberStore

logger = logging.getLogger(__name__)


class StartupReconciler:
    def __init__(
        self,
        store: SubscriberStore,
        scheduler: RecurringScheduler,
        clock: Callable[[], datetime] = now_local,
    ) -> None:
        self._store = store
        self._scheduler = scheduler
        self._clock = clock

    async def reconcile_all(self) -> int:
        """Catch up and arm every subscriber. Returns the number of catch-up sends.

        Raises LookupFailure if the subscriber list cannot be loaded.
        """
        subscribers = self._store.get_all_subscribers()
        now = self._clock()
        sent = 0

        for subscriber in subscribers:
            try:
                sent += await self._reconcile(subscriber, now)
            except (InvalidFormatError, StoreError) as exc:
                logger.error("Error rescheduling notifications for chat %d: %s", subscriber.chat_id, exc)

        logger.info(
            "Startup reconciliation: %d subscribers, %d catch-up summaries",
            len(subscribers), sent,
        )
        return sent

    async def _reconcile(self, subscriber: Subscriber, now: datetime) -> int:
        sent = 0
        for cadence in (Cadence.WEEKLY, Cadence.DAILY):
            if self._missed(subscriber, cadence, now):
                logger.info("Sending missed %s summary to chat %d", cadence.value, subscriber.chat_id)
                if await self._scheduler.send_and_mark(subscriber, cadence):
                    sent += 1

        self._scheduler.stop_and_reschedule(subscriber.chat_id)
        return sent

    @staticmethod
    def _missed(subscriber: Subscriber, cadence: Cadence, now: datetime) -> bool:
        previous = last_sent(subscriber, cadence)
        if previous is None or not subscriber.webcal_url:
            return False
        due = next_fire_time(subscriber, cadence, previous)
        return until(due, now) < timedelta(0)
