"""Store port — abstract interface for subscriber persistence.

The store is the only source of truth for preferences and last-sent
markers; the scheduling core reads a fresh snapshot for every call.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from src.data.models import Subscriber


class StoreError(Exception):
    """Base class for subscriber store failures."""


class LookupFailure(StoreError):
    """Raised when reading subscribers from the store fails."""


class PersistFailure(StoreError):
    """Raised when writing to the store fails."""


class SubscriberStore(Protocol):
    """Abstract subscriber store used by core modules."""

    def get_subscriber(self, chat_id: int) -> Subscriber | None: ...

    def save_subscriber(self, subscriber: Subscriber) -> None: ...

    def get_all_subscribers(self) -> list[Subscriber]: ...

    def update_last_daily_sent(self, chat_id: int, sent_at: datetime) -> None: ...

    def update_last_weekly_sent(self, chat_id: int, sent_at: datetime) -> None: ...

    def delete_subscriber(self, chat_id: int) -> bool: ...
