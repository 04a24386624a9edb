"""
Timetable Notifier — Telegram Bot.

Telegram is the only user interface. Commands here are thin: they
validate input, persist preferences, and hand off to the scheduling core
(RecurringScheduler / SummaryService). Startup reconciliation runs in
post_init, before polling begins, so every stored subscriber has armed
timers by the time the bot accepts updates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from telegram import Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from src.config import settings
from src.core.time_arithmetic import (
    InvalidFormatError,
    is_valid_daily,
    is_valid_weekly,
    normalize_daily,
    normalize_weekly,
)
from src.data.models import Subscriber, SummaryPeriod
from src.ports.notification_port import SendFailure
from src.ports.store_port import StoreError

if TYPE_CHECKING:
    from src.core.reconciler import StartupReconciler
    from src.core.reminders import ReminderScheduler
    from src.core.scheduler import RecurringScheduler
    from src.core.summary import SummaryService
    from src.data.backup import BackupManager
    from src.ports.calendar_port import CalendarFetcher
    from src.ports.notification_port import NotificationPort
    from src.ports.store_port import SubscriberStore

logger = logging.getLogger(__name__)

_MAX_REMINDER_OFFSET = 24 * 60
_STORE_ERROR_REPLY = "Something went wrong. Please try again later."


@dataclass
class Services:
    """Everything handlers need, stored in bot_data["services"]."""

    store: SubscriberStore
    scheduler: RecurringScheduler
    summaries: SummaryService
    reconciler: StartupReconciler
    reminders: ReminderScheduler | None = None
    backups: BackupManager | None = None


def _services(context: ContextTypes.DEFAULT_TYPE) -> Services:
    return context.bot_data["services"]


def _get_or_register(store: SubscriberStore, chat_id: int) -> Subscriber:
    """Return the subscriber, creating it with default preferences on first contact."""
    subscriber = store.get_subscriber(chat_id)
    if subscriber is None:
        subscriber = Subscriber(
            chat_id=chat_id,
            daily_time=settings.DEFAULT_DAILY_TIME,
            weekly_time=settings.DEFAULT_WEEKLY_TIME,
            reminder_offset=settings.DEFAULT_REMINDER_OFFSET,
        )
        store.save_subscriber(subscriber)
        logger.info("Registered new subscriber %d", chat_id)
    return subscriber


async def _load_subscriber(
    update: Update, context: ContextTypes.DEFAULT_TYPE,
) -> Subscriber | None:
    """_get_or_register for handlers: on a store error, reply and return None."""
    chat_id = update.effective_chat.id
    try:
        return _get_or_register(_services(context).store, chat_id)
    except StoreError as exc:
        logger.error("Failed to load chat %d: %s", chat_id, exc)
        await update.message.reply_text(_STORE_ERROR_REPLY)
        return None


async def _save_and_reschedule(
    update: Update,
    context: ContextTypes.DEFAULT_TYPE,
    subscriber: Subscriber,
    confirmation: str,
) -> None:
    services = _services(context)
    try:
        services.store.save_subscriber(subscriber)
        services.scheduler.stop_and_reschedule(subscriber.chat_id)
    except (StoreError, InvalidFormatError) as exc:
        logger.error("Failed to update preferences for chat %d: %s", subscriber.chat_id, exc)
        await update.message.reply_text("Something went wrong saving your settings. Please try again.")
        return
    await update.message.reply_text(confirmation)


def _help_text() -> str:
    return (
        "Available commands:\n"
        "/today — Today's lectures\n"
        "/week — This week's lectures\n"
        "/settings — Show your notification settings\n"
        "/set_calendar <webcal://...> — Set your calendar link\n"
        "/set_daily_time HH:MM — Daily summary time\n"
        "/set_weekly_time DAY HH:MM — Weekly summary day and time (e.g. SUN 18:00)\n"
        "/set_reminder_offset MM — Minutes before a lecture to remind you\n"
        "/stop — Unsubscribe and delete your data\n\n"
        f"All times are in {settings.TIMEZONE} time."
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start — register the chat with default preferences."""
    subscriber = await _load_subscriber(update, context)
    if subscriber is None:
        return

    text = (
        "Welcome! I send you a daily and weekly summary of your timetable "
        "and remind you before each lecture.\n\n"
    )
    if not subscriber.webcal_url:
        text += "Start by sending /set\\_calendar followed by your webcal:// link.\n"
    text += "Type /help for the full command list."
    await update.message.reply_text(text, parse_mode="Markdown")


async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help — list available commands."""
    await update.message.reply_text(_help_text())


async def handle_unknown(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Fallback for unknown commands and plain text."""
    await update.message.reply_text("Sorry, I didn't understand that.\n\n" + _help_text())


async def cmd_settings(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    subscriber = await _load_subscriber(update, context)
    if subscriber is None:
        return
    text = (
        "Your settings:\n"
        f"Daily notification time: {subscriber.daily_time}\n"
        f"Weekly notification day and time: {subscriber.weekly_time}\n"
        f"Reminder offset: {subscriber.reminder_offset} minutes"
    )
    if not subscriber.webcal_url:
        text += "\n\nYour calendar link is not set. Use /set_calendar to set it."
    await update.message.reply_text(text)


async def cmd_set_calendar(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    url = " ".join(context.args or []).strip()
    if not url.lower().startswith("webcal://"):
        await update.message.reply_text("Calendar link must start with webcal://")
        return
    subscriber = await _load_subscriber(update, context)
    if subscriber is None:
        return
    subscriber.webcal_url = url
    await _save_and_reschedule(update, context, subscriber, "Calendar link saved.")


async def cmd_set_daily_time(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    raw = " ".join(context.args or [])
    if not is_valid_daily(raw):
        await update.message.reply_text("Invalid format. Use HH:MM format.")
        return
    subscriber = await _load_subscriber(update, context)
    if subscriber is None:
        return
    subscriber.daily_time = normalize_daily(raw)
    await _save_and_reschedule(
        update, context, subscriber,
        f"Daily notification time updated to {subscriber.daily_time}.",
    )


async def cmd_set_weekly_time(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    raw = " ".join(context.args or [])
    if not is_valid_weekly(raw):
        await update.message.reply_text("Invalid format. Use DAY HH:MM (e.g. SUN 18:00).")
        return
    subscriber = await _load_subscriber(update, context)
    if subscriber is None:
        return
    subscriber.weekly_time = normalize_weekly(raw)
    await _save_and_reschedule(
        update, context, subscriber,
        f"Weekly notification time updated to {subscriber.weekly_time}.",
    )


async def cmd_set_reminder_offset(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    raw = " ".join(context.args or []).strip()
    if not raw.isdigit() or int(raw) > _MAX_REMINDER_OFFSET:
        await update.message.reply_text("Invalid format. Use MM format (minutes, 0-1440).")
        return
    subscriber = await _load_subscriber(update, context)
    if subscriber is None:
        return
    subscriber.reminder_offset = int(raw)
    await _save_and_reschedule(
        update, context, subscriber,
        f"Reminder offset updated to {subscriber.reminder_offset} minutes.",
    )


async def _send_on_demand(
    update: Update, context: ContextTypes.DEFAULT_TYPE, period: SummaryPeriod,
) -> None:
    subscriber = await _load_subscriber(update, context)
    if subscriber is None:
        return
    if not subscriber.webcal_url:
        await update.message.reply_text("Please set your calendar link using /set_calendar")
        return
    try:
        await _services(context).summaries.send_summary(subscriber, period)
    except SendFailure as exc:
        logger.error("/%s failed for chat %d: %s", period.value, subscriber.chat_id, exc)
        await update.message.reply_text("Error fetching calendar. Please try again later.")


async def cmd_today(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /today — send today's summary now."""
    await _send_on_demand(update, context, SummaryPeriod.DAY)


async def cmd_week(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /week — send this week's summary now."""
    await _send_on_demand(update, context, SummaryPeriod.WEEK)


async def cmd_stop(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /stop — cancel timers and reminders, then delete the subscriber."""
    services = _services(context)
    chat_id = update.effective_chat.id
    services.scheduler.cancel_all(chat_id)
    if services.reminders is not None:
        services.reminders.cancel_all(chat_id)
    try:
        services.store.delete_subscriber(chat_id)
    except StoreError as exc:
        logger.error("/stop failed for chat %d: %s", chat_id, exc)
        await update.message.reply_text(_STORE_ERROR_REPLY)
        return
    await update.message.reply_text("You have been unsubscribed. Send /start to subscribe again.")


# ---------------------------------------------------------------------------
# Application wiring
# ---------------------------------------------------------------------------


async def _post_init(app: Application) -> None:
    """Catch up missed summaries and arm every subscriber before polling."""
    services: Services = app.bot_data["services"]
    await services.reconciler.reconcile_all()


async def _post_shutdown(app: Application) -> None:
    services: Services = app.bot_data["services"]
    services.scheduler.cancel_all_subscribers()
    if services.backups is not None:
        try:
            services.backups.perform_backup()
            logger.info("Final backup completed successfully")
        except Exception as exc:
            logger.error("Error performing final backup: %s", exc)


def _setup_backups(app: Application, backups: BackupManager) -> None:
    """Register the periodic backup job."""

    async def _backup_job_callback(context: ContextTypes.DEFAULT_TYPE) -> None:
        try:
            backups.perform_backup()
        except Exception as exc:
            logger.error("Error performing backup: %s", exc)

    app.job_queue.run_repeating(
        _backup_job_callback,
        interval=timedelta(hours=settings.BACKUP_INTERVAL_HOURS),
        first=0,
        name="database_backup",
    )
    logger.info("Database backups scheduled every %d hours", settings.BACKUP_INTERVAL_HOURS)


def build_app(
    store: SubscriberStore | None = None,
    fetcher: CalendarFetcher | None = None,
    notifier: NotificationPort | None = None,
) -> Application:
    """Build and configure the Telegram Application with all handlers.

    Args:
        store: Subscriber store. Defaults to SubscriberDB at DATABASE_PATH.
        fetcher: Calendar feed client. Defaults to ICalFetcher.
        notifier: Notification port implementation. Defaults to TelegramNotifier
                  (created from the bot instance after app is built).
    """
    from src.adapters.job_queue_timers import JobQueueTimers
    from src.core.reconciler import StartupReconciler
    from src.core.reminders import ReminderScheduler
    from src.core.scheduler import RecurringScheduler
    from src.core.summary import SummaryService

    app = (
        ApplicationBuilder()
        .token(settings.TELEGRAM_BOT_TOKEN)
        .post_init(_post_init)
        .post_shutdown(_post_shutdown)
        .build()
    )

    # Wire default adapters if not provided
    if store is None:
        from src.data.db import SubscriberDB
        store = SubscriberDB()

    if fetcher is None:
        from src.adapters.ical_fetcher import ICalFetcher
        fetcher = ICalFetcher()

    if notifier is None:
        from src.adapters.telegram_notifier import TelegramNotifier
        notifier = TelegramNotifier(app.bot)

    timers = JobQueueTimers(app.job_queue)
    reminders = ReminderScheduler(store, notifier, timers)
    summaries = SummaryService(fetcher, notifier, reminders)
    scheduler = RecurringScheduler(
        store, summaries, timers,
        retry_delay=timedelta(minutes=settings.RESCHEDULE_RETRY_MINUTES),
    )

    backups = None
    if settings.BACKUP_DIRECTORY:
        from src.data.backup import BackupManager
        backups = BackupManager(settings.DATABASE_PATH, settings.BACKUP_DIRECTORY)
        _setup_backups(app, backups)

    app.bot_data["services"] = Services(
        store=store,
        scheduler=scheduler,
        summaries=summaries,
        reconciler=StartupReconciler(store, scheduler),
        reminders=reminders,
        backups=backups,
    )

    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("settings", cmd_settings))
    app.add_handler(CommandHandler("today", cmd_today))
    app.add_handler(CommandHandler("week", cmd_week))
    app.add_handler(CommandHandler("set_calendar", cmd_set_calendar))
    app.add_handler(CommandHandler("set_daily_time", cmd_set_daily_time))
    app.add_handler(CommandHandler("set_weekly_time", cmd_set_weekly_time))
    app.add_handler(CommandHandler("set_reminder_offset", cmd_set_reminder_offset))
    app.add_handler(CommandHandler("stop", cmd_stop))
    # Registered last: anything no command matched
    app.add_handler(MessageHandler(filters.TEXT | filters.COMMAND, handle_unknown))

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def main() -> None:
    """Entry point: build the app and start polling."""
    logger.info("Starting Timetable Notifier bot...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    main()
