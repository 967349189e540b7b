"""Typed wrapper around APScheduler.

Keeps APScheduler's untyped API in one module so the rest of the code base
deals only with CronExpression and plain callbacks.
"""

from collections.abc import Callable
from datetime import datetime
import logging
from typing import Any

from apscheduler.events import (  # type: ignore
    EVENT_JOB_ERROR,  # type: ignore
    EVENT_JOB_EXECUTED,  # type: ignore
    EVENT_JOB_MISSED,  # type: ignore
    JobExecutionEvent,  # type: ignore
)
from apscheduler.executors.asyncio import AsyncIOExecutor  # type: ignore
from apscheduler.jobstores.memory import MemoryJobStore  # type: ignore
from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore
from apscheduler.triggers.cron import CronTrigger  # type: ignore

from ..config.types import CronExpression

logger = logging.getLogger(__name__)

MISFIRE_GRACE_SECONDS = 60


class APSchedulerCore:
    """In-memory AsyncIOScheduler running cron-triggered jobs in UTC.

    Jobs never overlap with themselves and missed runs are coalesced into one.
    """

    def __init__(self):
        self._scheduler = AsyncIOScheduler(  # type: ignore
            jobstores={"default": MemoryJobStore()},
            executors={"default": AsyncIOExecutor()},
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": MISFIRE_GRACE_SECONDS,
            },
            timezone="UTC",
        )

    @staticmethod
    def _trigger_from_cron_expression(expr: CronExpression) -> CronTrigger:  # type: ignore
        return CronTrigger(  # type: ignore
            minute=expr.minute,
            hour=expr.hour,
            day=expr.day,
            month=expr.month,
            day_of_week=expr.day_of_week,
            second=expr.second if expr.second is not None else 0,
            timezone="UTC",
        )

    def add_job_completed_listener(
        self, callback: Callable[[str, datetime, Any], None]
    ) -> None:
        """Call ``callback(job_id, scheduled_run_time, retval)`` after each successful run."""

        def callback_wrapper(event: JobExecutionEvent) -> None:  # type: ignore
            callback(
                event.job_id,  # type: ignore
                event.scheduled_run_time,  # type: ignore
                event.retval,  # type: ignore
            )

        self._scheduler.add_listener(callback_wrapper, EVENT_JOB_EXECUTED)  # type: ignore

    def add_job_failed_listener(
        self, callback: Callable[[str, datetime, BaseException], None]
    ) -> None:
        """Call ``callback(job_id, scheduled_run_time, exception)`` when a run raises."""

        def callback_wrapper(event: JobExecutionEvent) -> None:  # type: ignore
            callback(
                event.job_id,  # type: ignore
                event.scheduled_run_time,  # type: ignore
                event.exception,  # type: ignore
            )

        self._scheduler.add_listener(callback_wrapper, EVENT_JOB_ERROR)  # type: ignore

    def add_job_missed_listener(self, callback: Callable[[str, datetime], None]) -> None:
        """Call ``callback(job_id, scheduled_run_time)`` when a run is skipped."""

        def callback_wrapper(event: JobExecutionEvent) -> None:  # type: ignore
            callback(
                event.job_id,  # type: ignore
                event.scheduled_run_time,  # type: ignore
            )

        self._scheduler.add_listener(callback_wrapper, EVENT_JOB_MISSED)  # type: ignore

    def schedule_job[**P, R](
        self,
        job_id: str,
        cron_expression: CronExpression,
        callback: Callable[P, R],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> None:
        """Schedule ``callback`` on a cron expression, replacing any job with the same id.

        Args:
            job_id: The job identifier.
            cron_expression: When to run.
            callback: Function or coroutine function to run.
            args: Positional arguments for the callback.
            kwargs: Keyword arguments for the callback.
        """
        self._scheduler.add_job(  # type: ignore
            callback,
            args=args,
            kwargs=kwargs,
            trigger=self._trigger_from_cron_expression(cron_expression),  # type: ignore
            id=job_id,
            replace_existing=True,
        )
        logger.debug(
            "Job scheduled.",
            extra={"job_id": job_id, "cron_expression": str(cron_expression)},
        )

    def start(self) -> None:
        """Start the scheduler."""
        self._scheduler.start()  # type: ignore

    def get_job_ids(self) -> list[str]:
        """Return the ids of all scheduled jobs."""
        return [job.id for job in self._scheduler.get_jobs()]  # type: ignore

    @property
    def running(self) -> bool:
        """Whether the scheduler is running."""
        return self._scheduler.running  # type: ignore

    def shutdown(self, wait: bool = True) -> None:
        """Shut the scheduler down.

        Args:
            wait: Whether to wait for running jobs to finish.
        """
        self._scheduler.shutdown(wait=wait)  # type: ignore
