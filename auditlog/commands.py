"""``flask audit`` command group."""

from __future__ import annotations

import logging
import time

import click
from flask import current_app
from flask.cli import AppGroup

from auditlog.db.session import session_scope
from auditlog.models.repositories import AuditRecordRepository, RepositoryError
from auditlog.services.retention import (
    CleanupStatus,
    RetentionCleaner,
    RetentionValidationError,
    validate_days,
)
from auditlog.services.scheduler import build_scheduler

logger = logging.getLogger(__name__)

audit_cli = AppGroup("audit", help="Audit log maintenance commands.")


@audit_cli.command("cleanup")
@click.option(
    "--days",
    type=int,
    default=None,
    help="Number of days to keep audit logs (defaults to the configured value).",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Show what would be deleted without actually deleting.",
)
@click.option(
    "--yes",
    "assume_yes",
    is_flag=True,
    help="Delete without asking for confirmation.",
)
def cleanup_command(days, dry_run, assume_yes):
    """Clean up audit logs older than the retention window."""

    config = current_app.config["APP_CONFIG"]

    def confirm(count: int, window: int) -> bool:
        return click.confirm(
            f"Are you sure you want to delete {count} audit log(s) older "
            f"than {window} days?",
            default=False,
        )

    try:
        validate_days(config.retention_days if days is None else days)
        with session_scope(name="audit.cleanup") as session:
            cleaner = RetentionCleaner(
                AuditRecordRepository(session),
                default_days=config.retention_days,
            )
            result = cleaner.run(
                days,
                dry_run=dry_run,
                confirm=None if assume_yes else confirm,
            )
    except RetentionValidationError as exc:
        click.echo(str(exc), err=True)
        raise SystemExit(1) from exc
    except RepositoryError as exc:
        click.echo(f"Cleanup failed: {exc.message}", err=True)
        raise SystemExit(1) from exc

    click.echo(result.message)
    if result.status is CleanupStatus.DELETED:
        logger.info(
            "cleanup.completed deleted=%s days=%s", result.deleted, result.days
        )


@audit_cli.command("scheduler")
def scheduler_command():
    """Run the daily cleanup scheduler in the foreground."""

    config = current_app.config["APP_CONFIG"]
    scheduler = build_scheduler(config)
    if scheduler is None:
        click.echo("Scheduled cleanup is disabled.")
        return
    scheduler.start()
    click.echo(
        f"Cleanup scheduled daily at {config.cleanup_schedule_time}; "
        "press Ctrl+C to stop."
    )
    try:
        while True:
            time.sleep(1)
    except (KeyboardInterrupt, SystemExit):
        scheduler.shutdown(wait=True)
        click.echo("Scheduler stopped.")


def init_commands(app) -> None:
    """Register the ``audit`` command group on ``app``."""

    app.cli.add_command(audit_cli)
