"""
Timetable Notifier — Entry Point.

`python main.py` starts the bot: reconciles stored subscribers, arms their
summary timers, then polls Telegram until interrupted.
"""

import logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
# getUpdates long-polling logs every request at INFO
logging.getLogger("httpx").setLevel(logging.WARNING)

from src.bot.telegram_bot import main

if __name__ == "__main__":
    main()
