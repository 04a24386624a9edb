"""Calendar port — abstract interface for reading a subscriber's feed.

Core modules depend on this protocol, never on a specific feed format.
"""

from __future__ import annotations

from typing import Protocol

from src.data.models import Event
from src.ports.notification_port import SendFailure


class CalendarError(SendFailure):
    """Raised when a calendar feed cannot be fetched or parsed."""


class CalendarFetcher(Protocol):
    """Abstract calendar feed client used by core modules."""

    async def fetch(self, url: str) -> list[Event]: ...
