import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, time as dt_time, timedelta, timezone
from typing import Callable

from sqlalchemy.orm import sessionmaker

from workdesk import config
from workdesk.core import statistics
from workdesk.db import analytics

logger = logging.getLogger(__name__)

DAY = 86400.0


def next_daily_run(now: float, at: dt_time) -> float:
    """Epoch seconds of the next occurrence of ``at`` (UTC) strictly after ``now``."""
    current = datetime.fromtimestamp(now, timezone.utc)
    candidate = current.replace(
        hour=at.hour, minute=at.minute, second=at.second, microsecond=0
    )
    if candidate.timestamp() <= now:
        candidate += timedelta(days=1)
    return candidate.timestamp()


@dataclass
class Job:
    """A named job run every ``interval`` seconds, or daily at ``at`` (UTC)."""

    name: str
    interval: float
    func: Callable[[], None]
    at: dt_time | None = None
    next_run: float = 0.0

    def schedule_next(self, now: float):
        if self.at is not None:
            self.next_run = next_daily_run(now, self.at)
        else:
            self.next_run = now + self.interval


class JobScheduler:
    """Runs registered jobs on fixed intervals or at a daily UTC time.

    A job that is still running when it comes due again (or is triggered by
    hand) is skipped, so runs of the same job never overlap.
    """

    def __init__(self, jobs: list[Job] | None = None, tick: float | None = None):
        self.tick = tick if tick is not None else config.SCHEDULER_TICK
        self._jobs: dict[str, Job] = {}
        self._running: set[str] = set()
        self._lock = threading.Lock()
        self._tasks: set[asyncio.Task] = set()
        for job in jobs or []:
            self.register(job)

    def register(self, job: Job):
        if job.interval <= 0:
            raise ValueError(f"Job '{job.name}' needs a positive interval")
        if job.name in self._jobs:
            logger.info("Replacing scheduled job %s", job.name)
        job.schedule_next(time.time())
        self._jobs[job.name] = job
        if job.at is not None:
            logger.info("Scheduled job %s daily at %s UTC", job.name, job.at)
        else:
            logger.info("Scheduled job %s every %ss", job.name, job.interval)

    def unregister(self, name: str) -> bool:
        if self._jobs.pop(name, None) is None:
            logger.warning("Tried to stop non-existent job: %s", name)
            return False
        logger.info("Stopped job: %s", name)
        return True

    def job_names(self) -> list[str]:
        return sorted(self._jobs)

    def jobs(self) -> list[Job]:
        return [self._jobs[name] for name in self.job_names()]

    def is_running(self, name: str) -> bool:
        with self._lock:
            return name in self._running

    def run_job(self, name: str) -> bool:
        """Run a job in the calling thread.

        Returns False if the job is unknown or already running.
        """
        job = self._jobs.get(name)
        if job is None:
            logger.warning("Unknown job name: %s", name)
            return False

        with self._lock:
            if name in self._running:
                logger.warning("Job %s is still running, skipping this run", name)
                return False
            self._running.add(name)

        started = time.monotonic()
        try:
            logger.info("Running scheduled job: %s", name)
            job.func()
            logger.info(
                "Completed scheduled job %s in %.2fs", name, time.monotonic() - started
            )
            return True
        except Exception as e:
            logger.error("Error in scheduled job %s: %s", name, e)
            return False
        finally:
            with self._lock:
                self._running.discard(name)

    async def start(self):
        logger.info(
            "Job scheduler started (tick: %ss, jobs: %s)", self.tick, self.job_names()
        )
        while True:
            try:
                self._launch_due_jobs()
            except Exception as e:
                logger.error("Scheduler tick error: %s", e)
            await asyncio.sleep(self.tick)

    def _launch_due_jobs(self):
        current = time.time()
        for job in list(self._jobs.values()):
            if job.next_run > current:
                continue
            job.schedule_next(current)
            task = asyncio.create_task(asyncio.to_thread(self.run_job, job.name))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)


def build_scheduler(session_factory: sessionmaker, tick: float | None = None) -> JobScheduler:
    def daily_statistics():
        db = session_factory()
        try:
            statistics.run_all(db)
        finally:
            db.close()

    def activity_log_cleanup():
        db = session_factory()
        try:
            deleted = analytics.delete_old_activity_logs(
                db, config.ACTIVITY_LOG_RETENTION_DAYS
            )
            logger.info("Deleted %s activity logs past retention", deleted)
        finally:
            db.close()

    return JobScheduler(
        jobs=[
            Job("dailyStatistics", DAY, daily_statistics, at=config.STATISTICS_TIME),
            Job("activityLogCleanup", config.CLEANUP_INTERVAL, activity_log_cleanup),
        ],
        tick=tick,
    )
