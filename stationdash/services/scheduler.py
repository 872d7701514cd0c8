"""
Background job scheduler.

A single Scheduler owns the periodic jobs of the process. ``start`` is
idempotent, so a re-entered lifespan or a second caller never registers a
job twice. Every job body is guarded: exceptions are logged and the job
keeps its schedule.
"""

import asyncio
from dataclasses import dataclass
from datetime import timedelta
from typing import Awaitable, Callable, Dict, List, Optional

from stationdash.config import settings
from stationdash.utils.logging_config import get_logger

logger = get_logger(__name__)

JobFunc = Callable[[], Awaitable[object]]


@dataclass
class PeriodicJob:
    """
    A coroutine function run at a fixed interval.

    Attributes:
        name: Job name used in logs
        interval_seconds: Pause between runs
        func: Coroutine function run on every tick
        initial_func: Coroutine function for the first tick instead of func
        run_on_start: Run immediately instead of after one interval
    """

    name: str
    interval_seconds: float
    func: JobFunc
    initial_func: Optional[JobFunc] = None
    run_on_start: bool = True


class Scheduler:
    """Owns the lifecycle of the periodic background jobs."""

    def __init__(self):
        self._jobs: List[PeriodicJob] = []
        self._tasks: Dict[str, asyncio.Task] = {}

    @property
    def jobs(self) -> List[PeriodicJob]:
        return list(self._jobs)

    def add_job(self, job: PeriodicJob):
        """Register a job; takes effect on the next start()."""
        if any(existing.name == job.name for existing in self._jobs):
            raise ValueError(f"Job '{job.name}' already registered")
        self._jobs.append(job)

    def is_running(self) -> bool:
        """True while at least one job task is alive."""
        return any(not task.done() for task in self._tasks.values())

    def start(self) -> bool:
        """
        Start all registered jobs on the running event loop.

        Returns:
            False when the scheduler was already running
        """
        if self.is_running():
            logger.info("Scheduler already running, start() ignored")
            return False
        loop = asyncio.get_running_loop()
        self._tasks = {
            job.name: loop.create_task(self._run(job), name=f"job:{job.name}")
            for job in self._jobs
        }
        logger.info(f"Scheduler started with jobs: {', '.join(self._tasks) or 'none'}")
        return True

    async def stop(self):
        """Cancel all job tasks and wait for them to finish."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks = {}
        logger.info("Scheduler stopped")

    async def _run(self, job: PeriodicJob):
        first = True
        if not job.run_on_start:
            await asyncio.sleep(job.interval_seconds)
        while True:
            func = job.initial_func if first and job.initial_func else job.func
            first = False
            await run_guarded(job.name, func)
            await asyncio.sleep(job.interval_seconds)


async def run_guarded(name: str, func: JobFunc) -> bool:
    """
    Run one job body, logging instead of raising.

    Returns:
        True when the body completed without an exception
    """
    try:
        await func()
        return True
    except asyncio.CancelledError:
        raise
    except Exception:
        logger.exception(f"Background job '{name}' failed")
        return False


def build_default_jobs() -> List[PeriodicJob]:
    """
    The dashboard's standard jobs.

    - realtime: device poll, only when Ecowitt credentials are configured
    - statistics: refresh if stale at start, then forced recompute
    - forecast: daily store + analysis window check
    """
    from stationdash.services import forecast, realtime, statistics

    jobs = []
    if settings.ecowitt_configured:
        jobs.append(PeriodicJob(
            name="realtime",
            interval_seconds=settings.RT_REFRESH_SECONDS,
            func=realtime.fetch_and_archive,
        ))
    else:
        logger.warning("Ecowitt credentials not configured, realtime polling disabled")

    async def refresh_if_needed():
        await statistics.update_statistics_if_needed(
            timedelta(seconds=settings.STATISTICS_MAX_AGE_SECONDS)
        )

    jobs.append(PeriodicJob(
        name="statistics",
        interval_seconds=settings.STATISTICS_REFRESH_SECONDS,
        func=statistics.update_statistics,
        initial_func=refresh_if_needed,
    ))
    jobs.append(PeriodicJob(
        name="forecast",
        interval_seconds=settings.FORECAST_CHECK_INTERVAL_SECONDS,
        func=forecast.forecast_window_tick,
    ))
    return jobs


# Process-wide scheduler
scheduler = Scheduler()
