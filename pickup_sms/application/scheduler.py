"""
Job Scheduler
=============

APScheduler BackgroundScheduler in Europe/London:
    - daily review request at 10:00
    - locker pickup reminder at minute 2 of every hour
    - optional one-off daily run at start (RUN_JOB=true)

Scheduled runs never raise into the scheduler thread; failures are
logged and the next trigger fires as usual.
"""

import logging
from datetime import datetime
from typing import Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from ..infrastructure.config import SchedulerSettings
from ..infrastructure.persistence import JobAlreadyRunningError
from .jobs import DAILY_REVIEW_REQUEST, LOCKER_PICKUP_REMINDER, JobRunner

logger = logging.getLogger(__name__)


class JobScheduler:
    """
    Usage:
        scheduler = JobScheduler(runner, settings.scheduler)
        scheduler.start()
        ...
        scheduler.shutdown()
    """

    def __init__(
        self,
        runner: JobRunner,
        settings: SchedulerSettings,
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        self._runner = runner
        self._settings = settings
        self._scheduler = scheduler or BackgroundScheduler(timezone=settings.timezone)

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def register(self) -> None:
        s = self._settings
        self._scheduler.add_job(
            self.run_safely,
            CronTrigger(hour=s.daily_hour, minute=s.daily_minute, timezone=s.timezone),
            args=[DAILY_REVIEW_REQUEST],
            id=DAILY_REVIEW_REQUEST,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.add_job(
            self.run_safely,
            CronTrigger(minute=s.hourly_minute, timezone=s.timezone),
            args=[LOCKER_PICKUP_REMINDER],
            id=LOCKER_PICKUP_REMINDER,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        if s.run_on_start:
            self._scheduler.add_job(
                self.run_safely,
                DateTrigger(timezone=s.timezone),
                args=[DAILY_REVIEW_REQUEST],
                id=f"{DAILY_REVIEW_REQUEST}_on_start",
                replace_existing=True,
            )
            logger.info("RUN_JOB set: daily review request queued to run now")

    def start(self) -> None:
        self.register()
        self._scheduler.start()
        for name, when in self.next_runs().items():
            logger.info(f"Scheduled {name}: next run {when.isoformat() if when else 'n/a'}")

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")

    def next_runs(self) -> Dict[str, Optional[datetime]]:
        return {
            job.id: getattr(job, "next_run_time", None)
            for job in self._scheduler.get_jobs()
        }

    def run_safely(self, name: str) -> None:
        """Trigger target: run one job and report, never raise."""
        try:
            outcome = self._runner.run(name)
            logger.info(f"Scheduled {name} complete: {outcome.stats.to_dict()}")
        except JobAlreadyRunningError:
            logger.warning(f"Scheduled {name} skipped: previous run still in progress")
        except Exception:
            logger.exception(f"Scheduled {name} failed")
