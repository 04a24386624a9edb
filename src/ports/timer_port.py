"""Timer port — abstract one-shot delayed callbacks.

The scheduling core arms every daily, weekly and reminder timer through
this protocol, so tests can substitute a recording fake and production
can run on the bot's job queue.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Awaitable, Callable, Protocol

TimerCallback = Callable[[], Awaitable[None]]


class TimerHandle(Protocol):
    """A pending delayed callback."""

    def cancel(self) -> None:
        """Cancel if still pending. Idempotent; no-op once the callback started."""
        ...


class TimerPort(Protocol):
    """Arms one-shot timers."""

    def call_later(
        self, delay: timedelta, callback: TimerCallback, name: str
    ) -> TimerHandle: ...
