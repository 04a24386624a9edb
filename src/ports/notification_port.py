"""Notification port — abstract interface for sending messages to subscribers.

Core modules depend on this protocol, never on a specific messaging provider.
"""

from __future__ import annotations

from typing import Protocol

from src.data.models import Event, SummaryPeriod


class SendFailure(Exception):
    """Raised when a message could not be delivered or its data fetched."""


class NotificationPort(Protocol):
    """Abstract notification interface used by core modules."""

    async def send_message(self, chat_id: int, text: str) -> None: ...

    async def send_summary(
        self, chat_id: int, events: list[Event], period: SummaryPeriod
    ) -> None: ...

    async def send_reminder(self, chat_id: int, event: Event) -> None: ...
