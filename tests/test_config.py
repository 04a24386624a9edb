"""Tests for src.config — Settings validation."""

import pytest
from pydantic import ValidationError

from src.config import Settings


def test_defaults():
    s = Settings(TELEGRAM_BOT_TOKEN="t")
    assert s.TIMEZONE == "Europe/London"
    assert s.DEFAULT_DAILY_TIME == "07:00"
    assert s.DEFAULT_WEEKLY_TIME == "SUN 18:00"
    assert s.DEFAULT_REMINDER_OFFSET == 15


def test_env_strings_parsed():
    s = Settings(
        TELEGRAM_BOT_TOKEN="t",
        DEFAULT_REMINDER_OFFSET="30",
        FETCH_TIMEOUT_SECONDS="2.5",
        DEFAULT_WEEKLY_TIME="fri 17:00",
    )
    assert s.DEFAULT_REMINDER_OFFSET == 30
    assert s.FETCH_TIMEOUT_SECONDS == 2.5
    assert s.DEFAULT_WEEKLY_TIME == "FRI 17:00"


def test_unknown_timezone_rejected():
    with pytest.raises(ValidationError):
        Settings(TELEGRAM_BOT_TOKEN="t", TIMEZONE="Mars/Olympus_Mons")


@pytest.mark.parametrize("field,value", [
    ("DEFAULT_DAILY_TIME", "7am"),
    ("DEFAULT_WEEKLY_TIME", "SUNDAY 18:00"),
])
def test_invalid_default_times_rejected(field, value):
    with pytest.raises(ValidationError):
        Settings(TELEGRAM_BOT_TOKEN="t", **{field: value})
