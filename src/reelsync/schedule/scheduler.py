"""Scheduler for the periodic reconciliation sweep."""

from datetime import datetime
import logging

from ..config.types import CronExpression
from ..reconciler import SweepReconciler, SweepReport
from .apscheduler_core import APSchedulerCore

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "sweep_all"


class SweepScheduler:
    """Run the full sweep on a cron schedule.

    Attributes:
        _scheduler: APSchedulerCore instance.
    """

    def __init__(self, schedule: CronExpression, sweep_reconciler: SweepReconciler):
        self._scheduler = APSchedulerCore()
        self._scheduler.schedule_job(
            SWEEP_JOB_ID,
            schedule,
            SweepScheduler._run_sweep,
            sweep_reconciler,
        )
        self._scheduler.add_job_completed_listener(self._job_completed_callback)
        self._scheduler.add_job_failed_listener(self._job_failed_callback)
        self._scheduler.add_job_missed_listener(self._job_missed_callback)
        logger.debug(
            "SweepScheduler initialized.", extra={"cron_expression": str(schedule)}
        )

    async def start(self) -> None:
        """Start the scheduler."""
        self._scheduler.start()
        logger.info("Sweep scheduler started.")

    async def stop(self, wait_for_jobs: bool = True) -> None:
        """Stop the scheduler.

        Args:
            wait_for_jobs: Whether to wait for a running sweep to finish.
        """
        if not self._scheduler.running:
            logger.debug("Scheduler is not running, nothing to stop.")
            return
        logger.info("Stopping sweep scheduler.", extra={"wait_for_jobs": wait_for_jobs})
        self._scheduler.shutdown(wait=wait_for_jobs)
        logger.info("Sweep scheduler stopped.")

    @property
    def running(self) -> bool:
        """Whether the scheduler is running."""
        return self._scheduler.running

    def get_job_ids(self) -> list[str]:
        """Return the ids of scheduled jobs."""
        return self._scheduler.get_job_ids()

    @staticmethod
    async def _run_sweep(sweep_reconciler: SweepReconciler) -> SweepReport:
        logger.debug("Starting scheduled sweep.")
        return await sweep_reconciler.sweep()

    @staticmethod
    def _job_completed_callback(
        job_id: str, scheduled_run_time: datetime, retval: SweepReport
    ) -> None:
        log_params = {
            "job_id": job_id,
            "scheduled_run_time": scheduled_run_time.isoformat(),
            "fixed": retval.fixed,
            "orphaned": retval.orphaned,
            "errored": retval.errored,
            "duration_seconds": retval.duration_seconds,
        }
        if retval.overall_success:
            logger.debug("Scheduled sweep finished.", extra=log_params)
        else:
            logger.warning("Scheduled sweep finished with errors.", extra=log_params)

    @staticmethod
    def _job_failed_callback(
        job_id: str, scheduled_run_time: datetime, exception: BaseException
    ) -> None:
        logger.error(
            "Scheduled sweep failed.",
            extra={
                "job_id": job_id,
                "scheduled_run_time": scheduled_run_time.isoformat(),
                "exception_type": type(exception).__name__,
            },
            exc_info=exception,
        )

    @staticmethod
    def _job_missed_callback(job_id: str, scheduled_run_time: datetime) -> None:
        logger.warning(
            "Scheduled sweep missed its execution window.",
            extra={
                "job_id": job_id,
                "scheduled_run_time": scheduled_run_time.isoformat(),
            },
        )
