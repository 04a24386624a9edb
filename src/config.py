"""
Timetable Notifier — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str

    # SQLite
    DATABASE_PATH: str = "data/timetable.db"

    # Civil timezone every notification time is expressed in
    TIMEZONE: str = "Europe/London"

    # Preferences given to a subscriber on first contact
    DEFAULT_DAILY_TIME: str = "07:00"
    DEFAULT_WEEKLY_TIME: str = "SUN 18:00"
    DEFAULT_REMINDER_OFFSET: int = 15

    # Calendar feed HTTP timeout
    FETCH_TIMEOUT_SECONDS: float = 10.0

    # Delay before retrying a reschedule whose store lookup failed
    RESCHEDULE_RETRY_MINUTES: int = 5

    # Backups (empty directory disables them)
    BACKUP_DIRECTORY: str = ""
    BACKUP_INTERVAL_HOURS: int = 24

    @field_validator("TIMEZONE")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {v!r}") from exc
        return v

    @field_validator("DEFAULT_DAILY_TIME")
    @classmethod
    def check_daily(cls, v: str) -> str:
        from src.core.time_arithmetic import parse_time_of_day

        parse_time_of_day(v)
        return v

    @field_validator("DEFAULT_WEEKLY_TIME")
    @classmethod
    def check_weekly(cls, v: str) -> str:
        from src.core.time_arithmetic import parse_weekly

        parse_weekly(v)
        return v.upper()

    @field_validator(
        "DEFAULT_REMINDER_OFFSET",
        "RESCHEDULE_RETRY_MINUTES",
        "BACKUP_INTERVAL_HOURS",
        mode="before",
    )
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        return int(v)


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/timetable.db"),
        TIMEZONE=os.getenv("TIMEZONE", "Europe/London"),
        DEFAULT_DAILY_TIME=os.getenv("DEFAULT_DAILY_TIME", "07:00"),
        DEFAULT_WEEKLY_TIME=os.getenv("DEFAULT_WEEKLY_TIME", "SUN 18:00"),
        DEFAULT_REMINDER_OFFSET=os.getenv("DEFAULT_REMINDER_OFFSET", "15"),
        FETCH_TIMEOUT_SECONDS=os.getenv("FETCH_TIMEOUT_SECONDS", "10"),
        RESCHEDULE_RETRY_MINUTES=os.getenv("RESCHEDULE_RETRY_MINUTES", "5"),
        BACKUP_DIRECTORY=os.getenv("BACKUP_DIRECTORY", ""),
        BACKUP_INTERVAL_HOURS=os.getenv("BACKUP_INTERVAL_HOURS", "24"),
    )


# Singleton — imported by all other modules as:
#   from src.config import settings
settings = _load_settings()
