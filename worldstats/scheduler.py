"""Background jobs: the periodic full sync and the realtime heartbeat."""
from __future__ import annotations

import logging
from typing import Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from .config import Settings, get_settings
from .realtime import Broadcaster
from .services import SyncService

logger = logging.getLogger(__name__)


def _on_job_error(event):
    exc = event.exception
    logger.error(
        "Scheduled job FAILED: job_id=%s error=%s",
        event.job_id, exc,
        exc_info=(type(exc), exc, None) if exc else None,
    )
    if event.traceback:
        logger.error("Traceback for job %s:\n%s", event.job_id, event.traceback)


def _on_job_missed(event):
    logger.warning(
        "Scheduled job MISSED: job_id=%s scheduled_run_time=%s",
        event.job_id,
        event.scheduled_run_time,
    )


class SyncScheduler:
    """Owns the APScheduler instance driving sync and heartbeat jobs."""

    def __init__(
        self,
        sync: SyncService,
        broadcaster: Broadcaster,
        settings: Optional[Settings] = None,
    ) -> None:
        self.sync = sync
        self.broadcaster = broadcaster
        self.settings = settings or get_settings()
        self.scheduler: Optional[BackgroundScheduler] = None

    @property
    def running(self) -> bool:
        return self.scheduler is not None and self.scheduler.running

    def run_sync(self) -> None:
        logger.info("Running scheduled data sync...")
        report = self.sync.sync_all()
        ok = [r for r in report.results if r.success]
        logger.info(
            "Scheduled sync finished: success=%s providers=%d/%d records=%d",
            report.success, len(ok), len(report.results), sum(r.count for r in ok),
        )

    def start(self) -> BackgroundScheduler:
        if self.scheduler is not None:
            logger.warning("Scheduler already initialized")
            return self.scheduler

        scheduler = BackgroundScheduler(
            timezone="UTC",
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": 60,
            },
        )
        scheduler.add_job(
            func=self.run_sync,
            trigger=CronTrigger.from_crontab(self.settings.cron_sync_schedule, timezone="UTC"),
            id="sync_all_providers",
            name="Sync All Providers",
            replace_existing=True,
        )
        logger.info("Scheduled job: sync_all_providers (%s UTC)", self.settings.cron_sync_schedule)

        scheduler.add_job(
            func=self.broadcaster.heartbeat,
            trigger=IntervalTrigger(seconds=self.settings.ws_heartbeat_interval),
            id="realtime_heartbeat",
            name="Realtime Client Heartbeat",
            replace_existing=True,
        )
        logger.info("Scheduled job: realtime_heartbeat (every %ds)", self.settings.ws_heartbeat_interval)

        scheduler.add_listener(_on_job_error, EVENT_JOB_ERROR)
        scheduler.add_listener(_on_job_missed, EVENT_JOB_MISSED)
        scheduler.start()
        self.scheduler = scheduler
        logger.info("Background scheduler started")
        return scheduler

    def shutdown(self) -> None:
        if self.scheduler is not None:
            self.scheduler.shutdown(wait=False)
            self.scheduler = None
            logger.info("Background scheduler stopped")
