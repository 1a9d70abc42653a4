from typing import Any, Optional
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from newscrawl.exceptions import AlreadyRunningError, InvalidRunRequest

logger = logging.getLogger(__name__)

SCHEDULED_JOB_ID = "schedule:incremental"


def _parse_schedule(schedule: Any):
    """Return an APScheduler CronTrigger from a cron schedule string.

    Accepts cron strings like '0 */6 * * *' (crontab format).
    Returns None if schedule is unset or cannot be parsed.
    """
    if not schedule:
        return None
    if isinstance(schedule, str):
        try:
            return CronTrigger.from_crontab(schedule)
        except ValueError:
            logger.exception("Error parsing cron schedule: %s", schedule)
            return None
    logger.warning("Unsupported schedule format: %s (only cron strings supported)", type(schedule))
    return None


class SchedulerService:
    """Periodically admits an incremental run for one source."""

    def __init__(self, coordinator, schedule: Optional[str] = None, source: str = "aibase"):
        self.coordinator = coordinator
        self.schedule = schedule
        self.source = source
        self._sched: Optional[BackgroundScheduler] = None

    def start(self) -> bool:
        """Start the background scheduler; returns False when no schedule is configured."""
        if self._sched is not None:
            return True
        trig = _parse_schedule(self.schedule)
        if trig is None:
            logger.info("No scrape schedule configured")
            return False
        self._sched = BackgroundScheduler()
        self._sched.add_job(
            self.run_scheduled_scrape,
            trigger=trig,
            id=SCHEDULED_JOB_ID,
            replace_existing=True,
            max_instances=1,
        )
        self._sched.start()
        logger.info("Scheduler started: %s scrape of %s", self.schedule, self.source)
        return True

    def shutdown(self, wait: bool = True):
        if not self._sched:
            return
        try:
            self._sched.shutdown(wait=wait)
            logger.info("Scheduler shut down")
        finally:
            self._sched = None

    def run_scheduled_scrape(self) -> Optional[str]:
        """Admit an incremental run; a run already in progress is not an error here."""
        try:
            run_id = self.coordinator.admit_run(None, {"source": self.source, "mode": "incremental"})
        except AlreadyRunningError as e:
            logger.info("Skipping scheduled scrape: %s", e)
            return None
        except InvalidRunRequest as e:
            logger.error("Scheduled scrape rejected: %s", e)
            return None
        logger.info("Scheduled scrape started: %s", run_id)
        return run_id
