"""
Timetable Notifier — Subscriber Database.

Subscribers persist in SQLite across restarts: preferences plus the
last-sent markers that startup reconciliation relies on. Markers are
stored as epoch seconds; NULL or 0 means "never sent".
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from src.core.time_arithmetic import from_epoch, to_epoch
from src.data.models import Subscriber
from src.ports.store_port import LookupFailure, PersistFailure

logger = logging.getLogger(__name__)


class SubscriberDB:
    """SQLite-backed subscriber store."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from src.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @property
    def path(self) -> str:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create the subscribers table if it doesn't exist, and migrate schema."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS subscribers (
                    chat_id          INTEGER PRIMARY KEY,
                    webcal_url       TEXT    NOT NULL DEFAULT '',
                    daily_time       TEXT    NOT NULL DEFAULT '07:00',
                    weekly_time      TEXT    NOT NULL DEFAULT 'SUN 18:00',
                    last_daily_sent  INTEGER,
                    last_weekly_sent INTEGER
                )
            """)
            # Migrate existing DBs: add new columns if missing
            existing_cols = {
                row[1] for row in conn.execute("PRAGMA table_info(subscribers)").fetchall()
            }
            if "reminder_offset" not in existing_cols:
                conn.execute(
                    "ALTER TABLE subscribers ADD COLUMN reminder_offset INTEGER NOT NULL DEFAULT 15"
                )
        logger.debug("Subscribers table initialized at %s", self._db_path)

    @staticmethod
    def _epoch_to_time(value: int | None) -> datetime | None:
        if not value:
            return None
        return from_epoch(value)

    @classmethod
    def _row_to_subscriber(cls, row: sqlite3.Row) -> Subscriber:
        return Subscriber(
            chat_id=row["chat_id"],
            webcal_url=row["webcal_url"],
            daily_time=row["daily_time"],
            weekly_time=row["weekly_time"],
            reminder_offset=row["reminder_offset"],
            last_daily_sent=cls._epoch_to_time(row["last_daily_sent"]),
            last_weekly_sent=cls._epoch_to_time(row["last_weekly_sent"]),
        )

    def get_subscriber(self, chat_id: int) -> Subscriber | None:
        """Fetch a single subscriber by chat ID."""
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT * FROM subscribers WHERE chat_id = ?", (chat_id,)
                ).fetchone()
        except sqlite3.Error as exc:
            raise LookupFailure(f"Failed to query subscriber {chat_id}: {exc}") from exc
        if row is None:
            return None
        return self._row_to_subscriber(row)

    def get_all_subscribers(self) -> list[Subscriber]:
        try:
            with self._connect() as conn:
                rows = conn.execute("SELECT * FROM subscribers ORDER BY chat_id").fetchall()
        except sqlite3.Error as exc:
            raise LookupFailure(f"Failed to query subscribers: {exc}") from exc
        return [self._row_to_subscriber(r) for r in rows]

    def save_subscriber(self, subscriber: Subscriber) -> None:
        """Insert or replace a subscriber's full record."""
        last_daily = to_epoch(subscriber.last_daily_sent) if subscriber.last_daily_sent else None
        last_weekly = to_epoch(subscriber.last_weekly_sent) if subscriber.last_weekly_sent else None
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO subscribers
                        (chat_id, webcal_url, daily_time, weekly_time,
                         reminder_offset, last_daily_sent, last_weekly_sent)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        subscriber.chat_id, subscriber.webcal_url,
                        subscriber.daily_time, subscriber.weekly_time,
                        subscriber.reminder_offset, last_daily, last_weekly,
                    ),
                )
        except sqlite3.Error as exc:
            raise PersistFailure(f"Failed to save subscriber {subscriber.chat_id}: {exc}") from exc
        logger.info("Subscriber saved: %d", subscriber.chat_id)

    def _update_marker(self, column: str, chat_id: int, sent_at: datetime) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    f"UPDATE subscribers SET {column} = ? WHERE chat_id = ?",
                    (to_epoch(sent_at), chat_id),
                )
        except sqlite3.Error as exc:
            raise PersistFailure(f"Failed to update {column} for {chat_id}: {exc}") from exc

    def update_last_daily_sent(self, chat_id: int, sent_at: datetime) -> None:
        self._update_marker("last_daily_sent", chat_id, sent_at)

    def update_last_weekly_sent(self, chat_id: int, sent_at: datetime) -> None:
        self._update_marker("last_weekly_sent", chat_id, sent_at)

    def delete_subscriber(self, chat_id: int) -> bool:
        """Remove a subscriber. Returns True if a row was deleted."""
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    "DELETE FROM subscribers WHERE chat_id = ?", (chat_id,)
                )
        except sqlite3.Error as exc:
            raise PersistFailure(f"Failed to delete subscriber {chat_id}: {exc}") from exc
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Subscriber deleted: %d", chat_id)
        return deleted
