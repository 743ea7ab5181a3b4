"""APScheduler-based scheduler for periodic maintenance jobs.

Uses APScheduler 3.x with AsyncIOScheduler. All jobs are registered on
startup:

- backup and version cleanup (nightly)
- event retention purge (nightly)
- wizard session expiry (hourly)
- due retirement sweep (every few minutes)
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from src.settings import get_settings

logger = logging.getLogger(__name__)

RETIREMENT_SWEEP_MINUTES = 5


class SchedulerService:
    """Runs TappHA maintenance jobs via APScheduler.

    Lifecycle:
        scheduler = SchedulerService()
        await scheduler.start()    # Called in lifespan startup
        ...
        await scheduler.stop()     # Called in lifespan shutdown
    """

    _instance: SchedulerService | None = None

    def __init__(self) -> None:
        settings = get_settings()
        self._scheduler = AsyncIOScheduler(timezone=settings.scheduler_timezone)
        self._running = False

    @classmethod
    def get_instance(cls) -> SchedulerService | None:
        """Get the singleton scheduler instance (None if not started)."""
        return cls._instance

    @property
    def running(self) -> bool:
        return self._running

    def job_ids(self) -> list[str]:
        return [job.id for job in self._scheduler.get_jobs()]

    async def start(self) -> None:
        """Register all jobs and start the scheduler."""
        settings = get_settings()
        if not settings.scheduler_enabled:
            logger.info("Scheduler disabled via settings")
            return

        self._register_jobs()
        self._scheduler.start()
        self._running = True
        SchedulerService._instance = self
        logger.info("Scheduler started with %d jobs", len(self._scheduler.get_jobs()))

    async def stop(self) -> None:
        """Gracefully shut down the scheduler."""
        if self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
            SchedulerService._instance = None
            logger.info("Scheduler stopped")

    def _register_jobs(self) -> None:
        self._scheduler.add_job(
            run_lifecycle_cleanup,
            trigger=CronTrigger(hour=3, minute=0),
            id="lifecycle:nightly_cleanup",
            replace_existing=True,
            name="lifecycle:backup_and_version_cleanup",
            misfire_grace_time=600,
        )
        self._scheduler.add_job(
            run_event_retention,
            trigger=CronTrigger(hour=3, minute=30),
            id="retention:nightly_event_purge",
            replace_existing=True,
            name="retention:event_purge",
            misfire_grace_time=600,
        )
        self._scheduler.add_job(
            run_wizard_expiry,
            trigger=IntervalTrigger(hours=1),
            id="wizard:session_expiry",
            replace_existing=True,
            name="wizard:expire_idle_sessions",
            misfire_grace_time=300,
        )
        self._scheduler.add_job(
            run_due_retirements,
            trigger=IntervalTrigger(minutes=RETIREMENT_SWEEP_MINUTES),
            id="retirement:due_sweep",
            replace_existing=True,
            name="retirement:execute_due",
            misfire_grace_time=120,
        )
        logger.info("Maintenance jobs scheduled")


async def run_lifecycle_cleanup() -> dict[str, int]:
    """Trim backups and versions beyond the configured per-automation limits."""
    from src.lifecycle import BackupService, VersionService
    from src.storage import get_committing_session

    settings = get_settings()
    logger.info("Starting nightly lifecycle cleanup")
    try:
        async with get_committing_session() as session:
            backups = await BackupService(session).cleanup_old_backups(settings.max_backups_per_automation)
            versions = await VersionService(session).cleanup_old_versions(
                settings.max_versions_per_automation
            )
    except Exception:
        logger.exception("Lifecycle cleanup failed")
        return {"backups": 0, "versions": 0}

    logger.info("Lifecycle cleanup removed %d backups and %d versions", backups, versions)
    return {"backups": backups, "versions": versions}


async def run_event_retention() -> int:
    """Delete stored events older than ``event_retention_days``."""
    from src.dal import EventRepository
    from src.storage import get_committing_session

    settings = get_settings()
    cutoff = datetime.now(UTC) - timedelta(days=settings.event_retention_days)
    try:
        async with get_committing_session() as session:
            deleted = await EventRepository(session).purge_older_than(cutoff)
    except Exception:
        logger.exception("Event retention purge failed")
        return 0

    logger.info("Purged %d events older than %s", deleted, cutoff.date().isoformat())
    return deleted


async def run_wizard_expiry() -> int:
    """Drop wizard sessions idle for longer than their TTL."""
    from src.lifecycle import get_wizard

    return get_wizard().cleanup_expired()


async def run_due_retirements() -> dict[str, int]:
    """Finish scheduled and gradual retirements whose time has come."""
    from src.lifecycle import RetirementService
    from src.storage import get_committing_session

    try:
        async with get_committing_session() as session:
            result = await RetirementService(session).execute_due_retirements()
    except Exception:
        logger.exception("Due retirement sweep failed")
        return {"completed": 0, "failed": 0}

    if result["completed"] or result["failed"]:
        logger.info(
            "Retirement sweep: %d completed, %d failed", result["completed"], result["failed"]
        )
    return result
