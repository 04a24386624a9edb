"""Tests for src.bot.telegram_bot — Telegram command handlers.

Handlers run against the in-memory store and recording timers from
conftest; the summary service is mocked.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.bot.telegram_bot import (
    Services,
    cmd_help,
    cmd_set_calendar,
    cmd_set_daily_time,
    cmd_set_reminder_offset,
    cmd_set_weekly_time,
    cmd_settings,
    cmd_start,
    cmd_stop,
    cmd_today,
    cmd_week,
    handle_unknown,
)
from src.core.reminders import ReminderScheduler
from src.core.scheduler import RecurringScheduler
from src.data.models import Event, SummaryPeriod
from src.ports.calendar_port import CalendarError


def _make_update(chat_id=12345):
    update = MagicMock()
    update.effective_chat.id = chat_id
    update.message.reply_text = AsyncMock()
    return update


def _make_context(services, args=None):
    context = MagicMock()
    context.args = args or []
    context.bot_data = {"services": services}
    return context


def _reply(update):
    return update.message.reply_text.call_args.args[0]


def _lecture(start):
    return Event(uid="lec-1", title="Algorithms", start=start, end=start + timedelta(hours=1))


@pytest.fixture
def services(store, fake_timers, clock):
    summaries = MagicMock()
    summaries.send_summary = AsyncMock(return_value=[])
    scheduler = RecurringScheduler(store, summaries, fake_timers, clock=clock)
    return Services(
        store=store,
        scheduler=scheduler,
        summaries=summaries,
        reconciler=MagicMock(),
        reminders=ReminderScheduler(store, AsyncMock(), fake_timers, clock=clock),
    )


class TestStart:
    @pytest.mark.asyncio
    async def test_registers_with_defaults(self, services, store):
        update = _make_update()

        await cmd_start(update, _make_context(services))

        subscriber = store.subscribers[12345]
        assert subscriber.daily_time == "07:00"
        assert subscriber.weekly_time == "SUN 18:00"
        assert subscriber.reminder_offset == 15
        assert "set\\_calendar" in _reply(update)

    @pytest.mark.asyncio
    async def test_existing_subscriber_untouched(self, services, store):
        store.add(12345, daily_time="09:00")

        await cmd_start(_make_update(), _make_context(services))

        assert store.subscribers[12345].daily_time == "09:00"

    @pytest.mark.asyncio
    async def test_store_failure_reported(self, services, store):
        store.fail_lookup = True
        update = _make_update()

        await cmd_start(update, _make_context(services))

        assert "went wrong" in _reply(update)


class TestHelpAndSettings:
    @pytest.mark.asyncio
    async def test_help_lists_commands(self, services):
        update = _make_update()
        await cmd_help(update, _make_context(services))
        text = _reply(update)
        assert "/set_weekly_time" in text
        assert "Europe/London" in text

    @pytest.mark.asyncio
    async def test_settings_without_calendar(self, services):
        update = _make_update()
        await cmd_settings(update, _make_context(services))
        text = _reply(update)
        assert "Daily notification time: 07:00" in text
        assert "/set_calendar" in text


class TestSetCalendar:
    @pytest.mark.asyncio
    async def test_saves_and_arms_timers(self, services, store, fake_timers):
        update = _make_update()

        await cmd_set_calendar(update, _make_context(services, ["webcal://uni.example/t.ics"]))

        assert store.subscribers[12345].webcal_url == "webcal://uni.example/t.ics"
        assert {t.name for t in fake_timers.pending()} == {"daily:12345", "weekly:12345"}
        assert _reply(update) == "Calendar link saved."

    @pytest.mark.asyncio
    async def test_rejects_non_webcal(self, services, store, fake_timers):
        update = _make_update()

        await cmd_set_calendar(update, _make_context(services, ["https://uni.example/t.ics"]))

        assert "webcal://" in _reply(update)
        assert fake_timers.pending() == []


class TestSetTimes:
    @pytest.mark.asyncio
    async def test_daily_time_normalized_and_rescheduled(self, services, store, fake_timers):
        store.add(12345)
        update = _make_update()

        await cmd_set_daily_time(update, _make_context(services, ["8:05"]))

        assert store.subscribers[12345].daily_time == "08:05"
        assert len(fake_timers.pending("daily:")) == 1
        assert "08:05" in _reply(update)

    @pytest.mark.asyncio
    async def test_daily_time_invalid(self, services, store):
        store.add(12345)
        update = _make_update()

        await cmd_set_daily_time(update, _make_context(services, ["25:00"]))

        assert store.subscribers[12345].daily_time == "07:00"
        assert "Invalid format" in _reply(update)

    @pytest.mark.asyncio
    async def test_weekly_time(self, services, store, fake_timers):
        store.add(12345)
        update = _make_update()

        await cmd_set_weekly_time(update, _make_context(services, ["fri", "17:30"]))

        assert store.subscribers[12345].weekly_time == "FRI 17:30"
        assert len(fake_timers.pending("weekly:")) == 1

    @pytest.mark.asyncio
    async def test_weekly_time_invalid(self, services, store):
        store.add(12345)
        update = _make_update()

        await cmd_set_weekly_time(update, _make_context(services, ["FUNDAY", "17:30"]))

        assert store.subscribers[12345].weekly_time == "SUN 18:00"
        assert "Invalid format" in _reply(update)

    @pytest.mark.asyncio
    async def test_reminder_offset(self, services, store):
        store.add(12345)
        update = _make_update()

        await cmd_set_reminder_offset(update, _make_context(services, ["30"]))

        assert store.subscribers[12345].reminder_offset == 30

    @pytest.mark.asyncio
    async def test_reminder_offset_invalid(self, services, store):
        store.add(12345)
        update = _make_update()

        await cmd_set_reminder_offset(update, _make_context(services, ["-5"]))

        assert store.subscribers[12345].reminder_offset == 15
        assert "Invalid format" in _reply(update)

    @pytest.mark.asyncio
    async def test_save_failure_reported(self, services, store):
        store.add(12345)
        store.fail_persist = True
        update = _make_update()

        await cmd_set_daily_time(update, _make_context(services, ["08:00"]))

        assert "went wrong" in _reply(update)


class TestOnDemandSummaries:
    @pytest.mark.asyncio
    async def test_today(self, services, store):
        store.add(12345)

        await cmd_today(_make_update(), _make_context(services))

        subscriber, period = services.summaries.send_summary.call_args.args
        assert subscriber.chat_id == 12345
        assert period is SummaryPeriod.DAY

    @pytest.mark.asyncio
    async def test_week(self, services, store):
        store.add(12345)

        await cmd_week(_make_update(), _make_context(services))

        assert services.summaries.send_summary.call_args.args[1] is SummaryPeriod.WEEK

    @pytest.mark.asyncio
    async def test_on_demand_does_not_stamp_marker(self, services, store):
        store.add(12345)

        await cmd_today(_make_update(), _make_context(services))

        assert store.subscribers[12345].last_daily_sent is None

    @pytest.mark.asyncio
    async def test_requires_calendar(self, services):
        update = _make_update()

        await cmd_today(update, _make_context(services))

        services.summaries.send_summary.assert_not_awaited()
        assert "/set_calendar" in _reply(update)

    @pytest.mark.asyncio
    async def test_fetch_failure_reported(self, services, store):
        store.add(12345)
        services.summaries.send_summary.side_effect = CalendarError("timeout")
        update = _make_update()

        await cmd_today(update, _make_context(services))

        assert "Error fetching calendar" in _reply(update)


class TestStop:
    @pytest.mark.asyncio
    async def test_cancels_and_deletes(self, services, store, fake_timers):
        store.add(12345)
        services.scheduler.stop_and_reschedule(12345)
        assert len(fake_timers.pending()) == 2
        update = _make_update()

        await cmd_stop(update, _make_context(services))

        assert fake_timers.pending() == []
        assert 12345 not in store.subscribers
        assert "unsubscribed" in _reply(update)

    @pytest.mark.asyncio
    async def test_cancels_pending_reminders(self, services, store, fake_timers, clock):
        store.add(12345)
        services.reminders.schedule_reminders(12345, [_lecture(clock.now + timedelta(hours=3))])

        await cmd_stop(_make_update(), _make_context(services))

        assert fake_timers.pending("reminder:") == []


class TestStoreFailures:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("handler,args", [
        (cmd_settings, []),
        (cmd_set_calendar, ["webcal://uni.example/t.ics"]),
        (cmd_set_daily_time, ["08:00"]),
        (cmd_set_weekly_time, ["MON", "08:00"]),
        (cmd_set_reminder_offset, ["10"]),
        (cmd_today, []),
        (cmd_week, []),
    ])
    async def test_lookup_failure_gets_a_reply(self, services, store, handler, args):
        store.fail_lookup = True
        update = _make_update()

        await handler(update, _make_context(services, args))

        assert "went wrong" in _reply(update)
        services.summaries.send_summary.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_registration_failure_gets_a_reply(self, services, store):
        store.fail_persist = True
        update = _make_update()

        await cmd_settings(update, _make_context(services))

        assert "went wrong" in _reply(update)


class TestUnknownInput:
    @pytest.mark.asyncio
    async def test_replies_with_command_list(self, services):
        update = _make_update()

        await handle_unknown(update, _make_context(services))

        text = _reply(update)
        assert "didn't understand" in text
        assert "/today" in text
