"""CSV export of filtered audit records, streamed chunk by chunk."""

from __future__ import annotations

import csv
import io
import json
import logging
import math
from datetime import datetime, timezone
from typing import Any, Iterator, Optional, Protocol, Sequence

from auditlog.services.subjects import short_type_name
from auditlog.validators.query import AuditQuery

logger = logging.getLogger(__name__)

EXPORT_HEADER = (
    "ID",
    "User",
    "Event",
    "Model Type",
    "Model ID",
    "Old Values",
    "New Values",
    "URL",
    "IP Address",
    "User Agent",
    "Created At",
)
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class ExportValidationError(ValueError):
    """Raised for unusable export settings."""


class ExportStore(Protocol):
    def count_records(self, query: AuditQuery) -> int: ...

    def fetch_chunk(
        self,
        query: AuditQuery,
        *,
        limit: int,
        after: Optional[tuple[datetime, str]] = None,
    ) -> Sequence[Any]: ...


def validate_chunk_size(chunk_size: object) -> int:
    if (
        isinstance(chunk_size, bool)
        or not isinstance(chunk_size, int)
        or chunk_size < 1
    ):
        raise ExportValidationError("export chunk size must be at least 1")
    return chunk_size


def export_filename(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"audit-logs-{now:%Y-%m-%d-%H%M%S}.csv"


def export_row(record: Any) -> list[str]:
    """Flatten one audit record into CSV column values."""

    actor = getattr(record, "actor", None)
    created_at = record.created_at
    return [
        str(record.id),
        actor.name if actor is not None else "System",
        record.event,
        short_type_name(record.subject_type),
        record.subject_id or "",
        json.dumps(record.before, default=str),
        json.dumps(record.after, default=str),
        record.url or "",
        record.ip_address or "",
        record.user_agent or "",
        created_at.strftime(TIMESTAMP_FORMAT) if created_at else "",
    ]


class AuditExporter:
    """Stream matching records as CSV without holding the full result set.

    Records are read newest first in keyset-paginated chunks; only the
    current chunk is kept in memory.
    """

    def __init__(self, store: ExportStore, *, chunk_size: int = 500) -> None:
        self.chunk_size = validate_chunk_size(chunk_size)
        self.store = store

    def iter_records(self, query: AuditQuery) -> Iterator[Any]:
        total = self.store.count_records(query)
        fetches = math.ceil(total / self.chunk_size)
        cursor = None
        exported = 0
        for _ in range(fetches):
            chunk = self.store.fetch_chunk(
                query, limit=self.chunk_size, after=cursor
            )
            if not chunk:
                break
            for record in chunk:
                yield record
            exported += len(chunk)
            last = chunk[-1]
            cursor = (last.created_at, last.id)
        logger.info(
            "export.completed total=%s exported=%s chunk_size=%s",
            total,
            exported,
            self.chunk_size,
        )

    def iter_rows(self, query: AuditQuery) -> Iterator[list[str]]:
        yield list(EXPORT_HEADER)
        for record in self.iter_records(query):
            yield export_row(record)

    def iter_csv(self, query: AuditQuery) -> Iterator[str]:
        """Yield encoded CSV lines, header first."""

        buffer = io.StringIO()
        writer = csv.writer(buffer)
        for row in self.iter_rows(query):
            writer.writerow(row)
            yield buffer.getvalue()
            buffer.seek(0)
            buffer.truncate(0)


__all__ = [
    "AuditExporter",
    "EXPORT_HEADER",
    "ExportValidationError",
    "export_filename",
    "export_row",
    "validate_chunk_size",
]
