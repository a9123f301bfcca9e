"""Dashboard statistics over recent audit activity."""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from typing import Any, Callable

from auditlog.models.repositories import AuditRecordRepository
from auditlog.services.events import AuditEvent
from auditlog.services.subjects import short_type_name

CHART_DAYS = 7
RECENT_LIMIT = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def time_ago(value: datetime, now: datetime) -> str:
    """Render the distance between ``value`` and ``now`` in words."""

    seconds = int((_as_utc(now) - _as_utc(value)).total_seconds())
    if seconds < 60:
        return "just now"
    for unit, size in (
        ("year", 365 * 86400),
        ("month", 30 * 86400),
        ("week", 7 * 86400),
        ("day", 86400),
        ("hour", 3600),
        ("minute", 60),
    ):
        if seconds >= size:
            count = seconds // size
            suffix = "" if count == 1 else "s"
            return f"{count} {unit}{suffix} ago"
    return "just now"  # pragma: no cover - loop always returns


class DashboardService:
    """Totals, a seven day per-event chart and the latest records."""

    def __init__(
        self,
        repository: AuditRecordRepository,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.repository = repository
        self._clock = clock

    def total(self) -> int:
        return self.repository.count_all()

    def event_chart(self) -> list[dict[str, Any]]:
        now = self._clock()
        events = AuditEvent.all_events()
        first_day = (now - timedelta(days=CHART_DAYS - 1)).date()
        start = datetime.combine(first_day, time.min, tzinfo=now.tzinfo)
        end = datetime.combine(now.date(), time.max, tzinfo=now.tzinfo)

        counts: dict[str, dict[str, int]] = {}
        for day, event, count in self.repository.daily_event_counts(
            start, end, events
        ):
            counts.setdefault(day, {})[event] = count

        rows = []
        for offset in range(CHART_DAYS):
            day = first_day + timedelta(days=offset)
            day_counts = counts.get(day.isoformat(), {})
            row: dict[str, Any] = {"date": day.strftime("%b %d")}
            for event in events:
                row[event] = day_counts.get(event, 0)
            rows.append(row)
        return rows

    def chart_config(self) -> dict[str, dict[str, str]]:
        return {
            event: {
                "label": AuditEvent.label(event),
                "color": f"hsl(var(--chart-{index % 12 + 1}))",
            }
            for index, event in enumerate(AuditEvent.all_events())
        }

    def recent_activity(self) -> list[dict[str, Any]]:
        now = self._clock()
        return [
            {
                "id": record.id,
                "title": (
                    f"{AuditEvent.label(record.event)} "
                    f"{short_type_name(record.subject_type) or 'Unknown'}"
                ),
                "timestamp": time_ago(record.created_at, now),
                "icon": AuditEvent.icon(record.event),
                "color": AuditEvent.color(record.event),
            }
            for record in self.repository.recent(RECENT_LIMIT)
        ]

    def summary(self) -> dict[str, Any]:
        return {
            "total": self.total(),
            "events": self.event_chart(),
            "chart_config": self.chart_config(),
            "recent": self.recent_activity(),
        }


__all__ = ["DashboardService", "time_ago"]
