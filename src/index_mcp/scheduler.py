"""Daily refresh scheduler.

Fires a full refresh at a fixed wall-clock time (15:00 by default) through
an APScheduler cron job on the server's event loop. Independent of any
presentation component: start/stop are explicit.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, time, timedelta, timezone

import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)

DEFAULT_RUN_AT = time(15, 0)
JOB_ID = "daily_refresh"


def next_run_after(now: datetime, run_at: time = DEFAULT_RUN_AT) -> datetime:
    """
    Next occurrence of ``run_at`` strictly after ``now``.

    If today's run time has already been reached, target tomorrow.
    Timezone-aware ``now`` values are localized with pytz so the
    target stays at the wall-clock time across DST changes.
    """
    target_date = now.date()
    if now.time() >= run_at:
        target_date = target_date + timedelta(days=1)

    naive_target = datetime.combine(target_date, run_at)
    if now.tzinfo is None:
        return naive_target

    tz = now.tzinfo
    if hasattr(tz, "localize"):
        return tz.localize(naive_target)
    return naive_target.replace(tzinfo=tz)


def seconds_until_next_run(now: datetime, run_at: time = DEFAULT_RUN_AT) -> float:
    """
    Elapsed seconds from ``now`` until the next run.

    Both ends are compared in UTC. Naive values are read as system local
    time, so a DST change between now and the target shortens or
    lengthens the delay.
    """
    target = next_run_after(now, run_at)
    return (target.astimezone(timezone.utc) - now.astimezone(timezone.utc)).total_seconds()


def make_clock(tz_name: str | None = None) -> Callable[[], datetime]:
    """
    Build a clock for the given timezone.

    Args:
        tz_name: pytz zone name; None means naive system local time
    """
    if tz_name is None:
        return datetime.now
    tz = pytz.timezone(tz_name)
    return lambda: datetime.now(tz)


class RefreshScheduler:
    """
    Runs ``callback`` once a day at ``run_at``.

    The cron trigger is zone-aware (``tz``, or the system zone when None),
    so the job stays at the wall-clock time across DST changes. Callback
    exceptions are logged and do not stop the schedule. After ``stop()``
    no further firings happen.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[object]],
        *,
        run_at: time = DEFAULT_RUN_AT,
        tz: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._callback = callback
        self._run_at = run_at
        self._tz = tz
        self._clock = clock or make_clock(tz)
        self._scheduler: AsyncIOScheduler | None = None
        self.runs = 0

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    @property
    def next_run_at(self) -> datetime | None:
        if not self.is_running:
            return None
        job = self._scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None

    def build_trigger(self) -> CronTrigger:
        return CronTrigger(hour=self._run_at.hour, minute=self._run_at.minute, timezone=self._tz)

    def start(self) -> None:
        """Schedule the daily job on the running event loop. Idempotent."""
        if self.is_running:
            return

        self._scheduler = AsyncIOScheduler(event_loop=asyncio.get_running_loop(), timezone=self._tz)
        self._scheduler.add_job(
            self._run,
            self.build_trigger(),
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()

        delay = seconds_until_next_run(self._clock(), self._run_at)
        logger.info(f"Next auto-refresh at {self.next_run_at} (in {delay / 60:.1f} minutes)")

    async def stop(self) -> None:
        """Shut the scheduler down; pending firings are dropped."""
        scheduler = self._scheduler
        self._scheduler = None
        if scheduler is None or not scheduler.running:
            return
        # AsyncIOScheduler defers shutdown to the loop
        scheduler.shutdown(wait=False)
        await asyncio.sleep(0)
        logger.info("Refresh scheduler stopped")

    async def _run(self) -> None:
        self.runs += 1
        try:
            await self._callback()
        except Exception as e:
            logger.error(f"Scheduled refresh failed: {type(e).__name__}: {e}")
