"""Job-queue timer adapter — implements TimerPort.

Arms one-shot jobs on python-telegram-bot's JobQueue (APScheduler under
the hood), so summary, retry and reminder callbacks run as tasks on the
bot's event loop alongside update handlers.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from apscheduler.jobstores.base import JobLookupError

if TYPE_CHECKING:
    from telegram.ext import CallbackContext, Job, JobQueue

    from src.ports.timer_port import TimerCallback

logger = logging.getLogger(__name__)


class JobTimer:
    """Handle for one run_once job.

    cancel() is a no-op once the callback has started. A cancel that
    races with APScheduler dispatching the job still wins: the callback
    checks the flag before doing any work.
    """

    def __init__(self, name: str, callback: TimerCallback) -> None:
        self.name = name
        self._callback = callback
        self.job: Job | None = None
        self.started = False
        self.cancelled = False

    async def run(self, context: CallbackContext) -> None:
        if self.cancelled:
            logger.debug("Timer %s cancelled before it ran", self.name)
            return
        self.started = True
        await self._callback()

    def cancel(self) -> None:
        if self.started or self.cancelled:
            return
        self.cancelled = True
        if self.job is None or self.job.removed:
            return
        try:
            self.job.schedule_removal()
        except JobLookupError:
            logger.debug("Timer %s already dispatched; it will skip itself", self.name)


class JobQueueTimers:
    """TimerPort backed by telegram.ext.JobQueue.run_once."""

    def __init__(self, job_queue: JobQueue) -> None:
        self._job_queue = job_queue

    def call_later(
        self, delay: timedelta, callback: TimerCallback, name: str
    ) -> JobTimer:
        timer = JobTimer(name, callback)
        timer.job = self._job_queue.run_once(
            timer.run, when=max(delay, timedelta(0)), name=name,
        )
        return timer
