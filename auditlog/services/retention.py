"""Time-based retention cleanup of audit records."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional, Protocol

from prometheus_client import Counter

logger = logging.getLogger(__name__)

_RECORDS_PURGED = Counter(
    "auditlog_records_purged_total",
    "Audit records deleted by retention cleanup.",
)

ConfirmCallback = Callable[[int, int], bool]


class RetentionValidationError(ValueError):
    """Raised for retention windows that are not a positive day count."""


class RetentionStore(Protocol):
    def count_older_than(self, cutoff: datetime) -> int: ...

    def delete_older_than(self, cutoff: datetime) -> int: ...


class CleanupStatus(str, Enum):
    NOTHING_TO_DO = "nothing_to_do"
    DRY_RUN = "dry_run"
    CANCELLED = "cancelled"
    DELETED = "deleted"


@dataclass(frozen=True)
class CleanupResult:
    """Outcome of a retention run."""

    status: CleanupStatus
    days: int
    cutoff: datetime
    matched: int
    deleted: int = 0

    @property
    def message(self) -> str:
        if self.status is CleanupStatus.NOTHING_TO_DO:
            return f"No audit logs found older than {self.days} days."
        if self.status is CleanupStatus.DRY_RUN:
            return (
                f"Would delete {self.matched} audit log(s) older than "
                f"{self.days} days (before "
                f"{self.cutoff:%Y-%m-%d %H:%M:%S})."
            )
        if self.status is CleanupStatus.CANCELLED:
            return "Cleanup cancelled."
        return f"Successfully deleted {self.deleted} audit log(s)."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_days(days: object) -> int:
    if isinstance(days, bool) or not isinstance(days, int) or days < 1:
        raise RetentionValidationError("Days must be a positive integer.")
    return days


class RetentionCleaner:
    """Delete audit records older than a retention window.

    Records strictly older than ``now - days`` are eligible; a record
    created exactly at the cutoff is kept.
    """

    def __init__(
        self,
        store: RetentionStore,
        *,
        default_days: int = 90,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.default_days = default_days
        self._clock = clock

    def cutoff_for(self, days: int) -> datetime:
        return self._clock() - timedelta(days=days)

    def run(
        self,
        days: Optional[int] = None,
        *,
        dry_run: bool = False,
        confirm: Optional[ConfirmCallback] = None,
    ) -> CleanupResult:
        """Purge old records.

        ``confirm`` receives ``(count, days)`` and must return true before
        anything is deleted; ``None`` means the run is pre-authorised.
        """

        days = validate_days(self.default_days if days is None else days)
        cutoff = self.cutoff_for(days)
        matched = self.store.count_older_than(cutoff)

        if matched == 0:
            logger.info("cleanup.nothing_to_do days=%s", days)
            return CleanupResult(
                CleanupStatus.NOTHING_TO_DO, days, cutoff, matched
            )
        if dry_run:
            logger.info(
                "cleanup.dry_run days=%s cutoff=%s matched=%s",
                days,
                cutoff.isoformat(),
                matched,
            )
            return CleanupResult(CleanupStatus.DRY_RUN, days, cutoff, matched)
        if confirm is not None and not confirm(matched, days):
            logger.info("cleanup.cancelled days=%s matched=%s", days, matched)
            return CleanupResult(
                CleanupStatus.CANCELLED, days, cutoff, matched
            )

        deleted = self.store.delete_older_than(cutoff)
        _RECORDS_PURGED.inc(deleted)
        logger.info(
            "cleanup.deleted days=%s cutoff=%s deleted=%s",
            days,
            cutoff.isoformat(),
            deleted,
        )
        return CleanupResult(
            CleanupStatus.DELETED, days, cutoff, matched, deleted
        )


__all__ = [
    "CleanupResult",
    "CleanupStatus",
    "RetentionCleaner",
    "RetentionValidationError",
    "validate_days",
]
