from datetime import datetime, timedelta

import structlog
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.schedulers.blocking import BlockingScheduler

from .exceptions import ConfigurationError, DgCalError
from .sync import SyncReport, TournamentService
from .utils.date_and_time import TIMEZONE

logger = structlog.get_logger(__name__)


def next_run_time(due: datetime, interval: timedelta, now: datetime) -> datetime:
    """Next cycle start: one interval after the previous due time, or now if overdue."""
    return max(now, due + interval)


class SyncScheduler:
    """Runs a sync cycle right away and then every `interval_minutes`.

    Each run is a one-shot job that schedules its successor when it has
    returned, so cycles never overlap. A cycle that outlasts the interval
    delays the next one until it is done; no tick is skipped or queued.
    """

    def __init__(
        self,
        service: TournamentService,
        interval_minutes: float,
        scheduler: BaseScheduler | None = None,
    ):
        if interval_minutes <= 0:
            raise ConfigurationError(
                f"Sync interval must be positive, got {interval_minutes}",
                parameter="SYNC_INTERVAL",
                expected_format="positive integer (minutes)",
                example="30",
            )
        self.service = service
        self.interval_minutes = interval_minutes
        self.interval = timedelta(minutes=interval_minutes)
        self.scheduler = scheduler or BlockingScheduler(timezone=TIMEZONE)
        self._due: datetime | None = None

    def run_once(self) -> SyncReport | None:
        """Runs one cycle; a failed cycle is logged and yields None."""
        try:
            return self.service.sync()
        except DgCalError as e:
            logger.error("sync_failed", **e.to_dict())
            return None

    def _schedule_next(self) -> None:
        self._due = next_run_time(self._due, self.interval, datetime.now(TIMEZONE))
        self.scheduler.add_job(
            self._cycle, "date", run_date=self._due, misfire_grace_time=None
        )
        logger.debug("sync_scheduled", run_date=self._due.isoformat())

    def _cycle(self) -> None:
        try:
            self.run_once()
        finally:
            self._schedule_next()

    def run_forever(self) -> None:
        """Syncs once, then runs the following cycles until `stop()`.

        Blocks with the default BlockingScheduler.
        """
        self._due = datetime.now(TIMEZONE)
        self.run_once()
        self._schedule_next()
        logger.info("scheduler_started", interval_minutes=self.interval_minutes)
        self.scheduler.start()

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("scheduler_stopped")
