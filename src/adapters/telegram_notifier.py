"""Telegram notification adapter — implements NotificationPort.

Wraps a telegram.Bot instance to satisfy the NotificationPort protocol
and owns the Markdown layout of summaries and reminders.
"""

from __future__ import annotations

import logging
import re

from telegram import Bot
from telegram.constants import ParseMode
from telegram.error import TelegramError

from src.core.time_arithmetic import to_local
from src.data.models import Event, SummaryPeriod
from src.ports.notification_port import SendFailure

logger = logging.getLogger(__name__)

_BRACKETS_RE = re.compile(r"\s*\[.*?\]")
_LEVEL_RE = re.compile(r"\s*Level\s*\d+$")
_MARKDOWN_SPECIAL_RE = re.compile(r"([_*`\[])")


def clean_title(title: str) -> str:
    """Strip module tags like "[LEC1]" and a trailing "Level 5"."""
    title = _BRACKETS_RE.sub("", title)
    title = _LEVEL_RE.sub("", title)
    return title.strip()


def _escape(text: str) -> str:
    return _MARKDOWN_SPECIAL_RE.sub(r"\\\1", text)


def format_event(event: Event) -> str:
    start = to_local(event.start).strftime("%H:%M")
    end = to_local(event.end).strftime("%H:%M")
    lines = [f"📚 *{_escape(clean_title(event.title))}*", f"⏰ {start} - {end}"]
    if event.location:
        lines.append(f"📍 {_escape(event.location)}")
    return "\n".join(lines)


def format_summary(events: list[Event], period: SummaryPeriod) -> str:
    """Render a day or week summary. Weekly summaries are grouped by day."""
    if not events:
        return "No lectures today." if period is SummaryPeriod.DAY else "No lectures this week."

    if period is SummaryPeriod.DAY:
        header = to_local(events[0].start).strftime("%a, %d %b")
        body = "\n\n".join(format_event(ev) for ev in events)
        return f"*{header}:*\n\n{body}"

    first = to_local(events[0].start).strftime("%a, %d %b")
    last = to_local(events[-1].start).strftime("%a, %d %b")
    parts = [f"*{first} - {last}:*"]
    current_day = None
    for ev in events:
        day = to_local(ev.start).strftime("%A")
        if day != current_day:
            parts.append(f"\n*{day}*")
            current_day = day
        parts.append(format_event(ev) + "\n")
    return "\n".join(parts).rstrip()


def format_reminder(event: Event) -> str:
    return "⏰ Reminder: your lecture is starting soon!\n\n" + format_event(event)


class TelegramNotifier:
    """Telegram implementation of NotificationPort."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send_message(self, chat_id: int, text: str) -> None:
        try:
            await self._bot.send_message(
                chat_id=chat_id, text=text, parse_mode=ParseMode.MARKDOWN,
            )
        except TelegramError as exc:
            raise SendFailure(f"Telegram send to {chat_id} failed: {exc}") from exc

    async def send_summary(
        self, chat_id: int, events: list[Event], period: SummaryPeriod
    ) -> None:
        await self.send_message(chat_id, format_summary(events, period))

    async def send_reminder(self, chat_id: int, event: Event) -> None:
        await self.send_message(chat_id, format_reminder(event))
