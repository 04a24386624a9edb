"""Shared test fixtures and configuration.

Sets up fake environment variables so src.config doesn't sys.exit(),
and provides the fakes the scheduling tests share: an in-memory store,
a recording timer backend, and a settable clock.
"""

import os

# Patch env vars BEFORE any src imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TIMEZONE", "Europe/London")
os.environ.setdefault("BACKUP_DIRECTORY", "")

import dataclasses
from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from src.data.models import Subscriber
from src.ports.store_port import LookupFailure, PersistFailure

LONDON = ZoneInfo("Europe/London")


class FakeTimer:
    """A recorded call_later; fire() runs the callback like the job queue would."""

    def __init__(self, delay, callback, name):
        self.delay = delay
        self.callback = callback
        self.name = name
        self.cancelled = False
        self.fired = False

    def cancel(self):
        if not self.fired:
            self.cancelled = True

    @property
    def pending(self):
        return not self.cancelled and not self.fired

    async def fire(self):
        assert self.pending, f"timer {self.name} is not pending"
        self.fired = True
        await self.callback()


class FakeTimers:
    """Recording TimerPort."""

    def __init__(self):
        self.armed = []

    def call_later(self, delay, callback, name):
        timer = FakeTimer(delay, callback, name)
        self.armed.append(timer)
        return timer

    def pending(self, prefix=""):
        return [t for t in self.armed if t.pending and t.name.startswith(prefix)]


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


class FakeStore:
    """In-memory SubscriberStore. Returns copies, like a real DB read."""

    def __init__(self):
        self.subscribers = {}
        self.fail_lookup = False
        self.fail_persist = False

    def add(self, chat_id=1, **fields):
        fields.setdefault("webcal_url", "webcal://example.com/timetable.ics")
        subscriber = Subscriber(chat_id=chat_id, **fields)
        self.subscribers[chat_id] = subscriber
        return subscriber

    def get_subscriber(self, chat_id):
        if self.fail_lookup:
            raise LookupFailure("database is locked")
        subscriber = self.subscribers.get(chat_id)
        return dataclasses.replace(subscriber) if subscriber else None

    def get_all_subscribers(self):
        if self.fail_lookup:
            raise LookupFailure("database is locked")
        return [dataclasses.replace(s) for s in self.subscribers.values()]

    def save_subscriber(self, subscriber):
        if self.fail_persist:
            raise PersistFailure("disk full")
        self.subscribers[subscriber.chat_id] = dataclasses.replace(subscriber)

    def update_last_daily_sent(self, chat_id, sent_at):
        if self.fail_persist:
            raise PersistFailure("disk full")
        self.subscribers[chat_id].last_daily_sent = sent_at

    def update_last_weekly_sent(self, chat_id, sent_at):
        if self.fail_persist:
            raise PersistFailure("disk full")
        self.subscribers[chat_id].last_weekly_sent = sent_at

    def delete_subscriber(self, chat_id):
        return self.subscribers.pop(chat_id, None) is not None


@pytest.fixture
def london():
    return LONDON


@pytest.fixture
def clock():
    """Monday 2023-05-15 12:00 Europe/London."""
    return FakeClock(datetime(2023, 5, 15, 12, 0, tzinfo=LONDON))


@pytest.fixture
def fake_timers():
    return FakeTimers()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def subscriber_db(tmp_path):
    """Return a SubscriberDB instance backed by a temp file."""
    from src.data.db import SubscriberDB
    return SubscriberDB(db_path=str(tmp_path / "test_timetable.db"))
