"""Daily background scheduling of audit retention cleanup."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.cron import CronTrigger

from auditlog.config import Config, get_config
from auditlog.db.session import session_scope
from auditlog.models.repositories import AuditRecordRepository
from auditlog.services.retention import CleanupResult, RetentionCleaner

logger = logging.getLogger(__name__)

CLEANUP_JOB_ID = "auditlog_cleanup"


def run_scheduled_cleanup(config: Config | None = None) -> Optional[CleanupResult]:
    """Purge records past the configured retention window.

    Scheduled runs are pre-authorised, so no confirmation is requested.
    """

    config = config or get_config()
    logger.info("cleanup.scheduled_start days=%s", config.retention_days)
    try:
        with session_scope(name="scheduled_cleanup") as session:
            cleaner = RetentionCleaner(
                AuditRecordRepository(session),
                default_days=config.retention_days,
            )
            result = cleaner.run()
    except Exception:
        logger.exception("cleanup.scheduled_failed")
        return None
    logger.info(
        "cleanup.scheduled_done status=%s deleted=%s",
        result.status.value,
        result.deleted,
    )
    return result


def build_scheduler(
    config: Config | None = None,
    *,
    job: Callable[..., object] = run_scheduled_cleanup,
    scheduler_factory: Callable[[], BaseScheduler] = BackgroundScheduler,
) -> Optional[BaseScheduler]:
    """Return a scheduler with the daily cleanup job, or ``None`` if disabled.

    The scheduler is returned unstarted.
    """

    config = config or get_config()
    if not config.scheduled_cleanup_enabled:
        logger.info("cleanup.schedule_disabled")
        return None

    hour, minute = config.schedule_hour_minute
    scheduler = scheduler_factory()
    scheduler.add_job(
        job,
        trigger=CronTrigger(hour=hour, minute=minute),
        kwargs={"config": config},
        id=CLEANUP_JOB_ID,
        name="Audit log retention cleanup",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    logger.info(
        "cleanup.scheduled time=%02d:%02d days=%s",
        hour,
        minute,
        config.retention_days,
    )
    return scheduler


__all__ = ["CLEANUP_JOB_ID", "build_scheduler", "run_scheduled_cleanup"]
