"""Persistence helpers for audit records."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Iterable, Optional, Sequence, Tuple

from sqlalchemy import and_, delete, exists, func, or_, select
from sqlalchemy.sql import Select

from auditlog.models.audit import AuditRecord
from auditlog.models.user import User
from auditlog.validators.query import AuditQuery

from .base import SQLAlchemyRepository, repository_method


SORT_FIELDS = {
    "created_at": AuditRecord.created_at,
    "event": AuditRecord.event,
    "subject_type": AuditRecord.subject_type,
}

Cursor = Tuple[datetime, str]

LIKE_ESCAPE = "\\"


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def _escape_like(value: str) -> str:
    return (
        value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


class AuditRecordRepository(SQLAlchemyRepository):
    """Append, query and purge ``AuditRecord`` rows."""

    @repository_method
    def record_event(
        self,
        *,
        event: str,
        subject_type: Optional[str] = None,
        subject_id: Optional[str] = None,
        before: Optional[dict[str, Any]] = None,
        after: Optional[dict[str, Any]] = None,
        actor_id: Optional[str] = None,
        url: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        tags: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> AuditRecord:
        entry = AuditRecord(
            event=event,
            subject_type=subject_type,
            subject_id=subject_id,
            before=before,
            after=after,
            actor_id=actor_id,
            url=url,
            ip_address=ip_address,
            user_agent=user_agent,
            tags=tags,
        )
        if created_at is not None:
            entry.created_at = created_at
        self.session.add(entry)
        self._flush()
        return entry

    @repository_method
    def get(self, record_id: str) -> Optional[AuditRecord]:
        return self.session.get(AuditRecord, record_id)

    @repository_method
    def actor_exists(self, actor_id: str) -> bool:
        stmt = select(exists().where(User.id == actor_id))
        return bool(self.session.execute(stmt).scalar())

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------
    @repository_method
    def list_records(
        self, query: AuditQuery
    ) -> tuple[list[AuditRecord], int]:
        stmt = self._apply_filters(select(AuditRecord), query)
        total = self.session.execute(
            select(func.count()).select_from(stmt.order_by(None).subquery())
        ).scalar_one()

        column = SORT_FIELDS.get(query.sort_field, AuditRecord.created_at)
        if query.sort_order == "asc":
            stmt = stmt.order_by(column.asc(), AuditRecord.id.asc())
        else:
            stmt = stmt.order_by(column.desc(), AuditRecord.id.desc())
        stmt = stmt.offset((query.page - 1) * query.per_page).limit(
            query.per_page
        )
        items = list(self.session.scalars(stmt))
        return items, int(total)

    @repository_method
    def count_records(self, query: AuditQuery) -> int:
        stmt = self._apply_filters(
            select(func.count()).select_from(AuditRecord), query
        )
        return int(self.session.execute(stmt).scalar_one())

    @repository_method
    def fetch_chunk(
        self,
        query: AuditQuery,
        *,
        limit: int,
        after: Optional[Cursor] = None,
    ) -> list[AuditRecord]:
        """Return up to ``limit`` records newest first, following ``after``."""

        stmt = self._apply_filters(select(AuditRecord), query)
        if after is not None:
            created_at, record_id = after
            stmt = stmt.where(
                or_(
                    AuditRecord.created_at < created_at,
                    and_(
                        AuditRecord.created_at == created_at,
                        AuditRecord.id < record_id,
                    ),
                )
            )
        stmt = stmt.order_by(
            AuditRecord.created_at.desc(), AuditRecord.id.desc()
        ).limit(limit)
        return list(self.session.scalars(stmt))

    def _apply_filters(self, stmt: Select, query: AuditQuery) -> Select:
        if query.actor_id and self.actor_exists(query.actor_id):
            stmt = stmt.where(AuditRecord.actor_id == query.actor_id)
        elif not query.actor_id and query.origin == "system":
            stmt = stmt.where(AuditRecord.actor_id.is_(None))
        elif not query.actor_id and query.origin == "user":
            stmt = stmt.where(AuditRecord.actor_id.is_not(None))

        if query.event:
            stmt = stmt.where(AuditRecord.event == query.event)
        if query.subject_type:
            stmt = stmt.where(AuditRecord.subject_type == query.subject_type)
        if query.tag:
            tag = _escape_like(query.tag)
            stmt = stmt.where(
                or_(
                    AuditRecord.tags == query.tag,
                    AuditRecord.tags.like(f"{tag},%", escape=LIKE_ESCAPE),
                    AuditRecord.tags.like(f"%,{tag}", escape=LIKE_ESCAPE),
                    AuditRecord.tags.like(f"%,{tag},%", escape=LIKE_ESCAPE),
                )
            )
        if query.search:
            pattern = f"%{_escape_like(query.search)}%"
            stmt = stmt.where(
                or_(
                    AuditRecord.subject_type.ilike(pattern, escape=LIKE_ESCAPE),
                    AuditRecord.url.ilike(pattern, escape=LIKE_ESCAPE),
                    AuditRecord.ip_address.ilike(pattern, escape=LIKE_ESCAPE),
                )
            )

        if query.start_date is not None:
            stmt = stmt.where(
                AuditRecord.created_at >= _day_start(query.start_date)
            )
        # An inverted range degrades to a lower bound on start_date.
        if query.end_date is not None and not query.has_inverted_range:
            stmt = stmt.where(
                AuditRecord.created_at
                < _day_start(query.end_date + timedelta(days=1))
            )
        return stmt

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------
    @repository_method
    def count_older_than(self, cutoff: datetime) -> int:
        stmt = (
            select(func.count())
            .select_from(AuditRecord)
            .where(AuditRecord.created_at < cutoff)
        )
        return int(self.session.execute(stmt).scalar_one())

    @repository_method
    def delete_older_than(self, cutoff: datetime) -> int:
        stmt = delete(AuditRecord).where(AuditRecord.created_at < cutoff)
        result = self.session.execute(
            stmt, execution_options={"synchronize_session": False}
        )
        return int(result.rowcount or 0)

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------
    @repository_method
    def distinct_subject_types(self) -> list[str]:
        stmt = (
            select(AuditRecord.subject_type)
            .where(AuditRecord.subject_type.is_not(None))
            .distinct()
            .order_by(AuditRecord.subject_type)
        )
        return list(self.session.scalars(stmt))

    @repository_method
    def distinct_events(self) -> list[str]:
        stmt = (
            select(AuditRecord.event)
            .distinct()
            .order_by(AuditRecord.event)
        )
        return list(self.session.scalars(stmt))

    @repository_method
    def count_all(self) -> int:
        stmt = select(func.count()).select_from(AuditRecord)
        return int(self.session.execute(stmt).scalar_one())

    @repository_method
    def daily_event_counts(
        self,
        start: datetime,
        end: datetime,
        events: Iterable[str],
    ) -> list[tuple[str, str, int]]:
        day = func.date(AuditRecord.created_at).label("day")
        stmt = (
            select(day, AuditRecord.event, func.count())
            .where(AuditRecord.created_at >= start)
            .where(AuditRecord.created_at <= end)
            .where(AuditRecord.event.in_(list(events)))
            .group_by(day, AuditRecord.event)
            .order_by(day)
        )
        return [
            (str(row_day), row_event, int(count))
            for row_day, row_event, count in self.session.execute(stmt)
        ]

    @repository_method
    def recent(self, limit: int = 5) -> Sequence[AuditRecord]:
        stmt = (
            select(AuditRecord)
            .order_by(AuditRecord.created_at.desc(), AuditRecord.id.desc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt))


__all__ = ["AuditRecordRepository"]
