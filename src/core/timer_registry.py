"""Per-subscriber timer registry.

Holds at most one pending daily and one pending weekly timer per
subscriber. Every read-modify-write of the map happens under a single
lock, so timer callbacks and foreground preference updates can arm and
cancel concurrently without leaving two timers in the same slot.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.ports.timer_port import TimerCallback, TimerHandle, TimerPort

logger = logging.getLogger(__name__)


class Cadence(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"


@dataclass
class _SubscriberTimers:
    daily: TimerHandle | None = None
    weekly: TimerHandle | None = None

    def get(self, cadence: Cadence) -> TimerHandle | None:
        return self.daily if cadence is Cadence.DAILY else self.weekly

    def set(self, cadence: Cadence, handle: TimerHandle | None) -> None:
        if cadence is Cadence.DAILY:
            self.daily = handle
        else:
            self.weekly = handle


class TimerRegistry:
    """Maps subscriber → {daily timer, weekly timer}."""

    def __init__(self, timers: TimerPort) -> None:
        self._timers = timers
        self._lock = threading.Lock()
        self._entries: dict[int, _SubscriberTimers] = {}

    def arm(
        self,
        chat_id: int,
        cadence: Cadence,
        delay: timedelta,
        callback: TimerCallback,
    ) -> TimerHandle:
        """Cancel the slot's current timer (if any) and install a new one."""
        name = f"{cadence.value}:{chat_id}"
        with self._lock:
            entry = self._entries.setdefault(chat_id, _SubscriberTimers())
            previous = entry.get(cadence)
            if previous is not None:
                previous.cancel()
            handle = self._timers.call_later(delay, callback, name)
            entry.set(cadence, handle)
        logger.debug("Armed %s timer in %s", name, delay)
        return handle

    def cancel(self, chat_id: int, cadence: Cadence) -> None:
        """Cancel one slot, keeping the subscriber's entry."""
        with self._lock:
            entry = self._entries.get(chat_id)
            if entry is None:
                return
            handle = entry.get(cadence)
            if handle is not None:
                handle.cancel()
                entry.set(cadence, None)

    def cancel_all(self, chat_id: int) -> None:
        """Cancel both slots and forget the subscriber."""
        with self._lock:
            entry = self._entries.pop(chat_id, None)
        if entry is None:
            return
        for handle in (entry.daily, entry.weekly):
            if handle is not None:
                handle.cancel()
        logger.info("Cancelled timers for chat %d", chat_id)

    def cancel_all_subscribers(self) -> None:
        """Cancel every timer. Used at shutdown."""
        with self._lock:
            entries, self._entries = self._entries, {}
        for entry in entries.values():
            for handle in (entry.daily, entry.weekly):
                if handle is not None:
                    handle.cancel()
        logger.info("Cancelled timers for %d subscribers", len(entries))

    def pending(self, chat_id: int, cadence: Cadence) -> TimerHandle | None:
        with self._lock:
            entry = self._entries.get(chat_id)
            return entry.get(cadence) if entry is not None else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
