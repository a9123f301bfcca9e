"""Database models for audit records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    JSON,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from auditlog.db.session import Base
from auditlog.utils.lists import decode_tags

SYSTEM_SUBJECT_TYPE = "system"


def _new_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class SubjectRef:
    """Reference to the entity an audit record is about.

    ``kind`` is a type tag registered in the subject registry. The
    ``system`` kind is a sentinel for entity-less events and never
    carries an id.
    """

    kind: str
    id: Optional[str] = None

    @classmethod
    def system(cls) -> "SubjectRef":
        return cls(SYSTEM_SUBJECT_TYPE, None)

    @classmethod
    def of(cls, kind: Optional[str], id: Any = None) -> "SubjectRef":
        if not kind:
            return cls.system()
        return cls(kind, None if id is None else str(id))

    @property
    def is_system(self) -> bool:
        return self.kind == SYSTEM_SUBJECT_TYPE


class AuditRecord(Base):
    """Immutable record of a tracked state change."""

    __tablename__ = "audit_records"
    __table_args__ = (
        Index("ix_audit_records_subject_type", "subject_type"),
        Index("ix_audit_records_actor_id", "actor_id"),
        Index("ix_audit_records_created_at", "created_at"),
        Index("ix_audit_records_event_created_at", "event", "created_at"),
        Index("ix_audit_records_tags", "tags"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=_new_id
    )
    actor_id: Mapped[str | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )
    event: Mapped[str] = mapped_column(String(50), nullable=False)
    subject_type: Mapped[str | None] = mapped_column(String(255))
    subject_id: Mapped[str | None] = mapped_column(String(36))
    before: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    after: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    url: Mapped[str | None] = mapped_column(String(2048))
    ip_address: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text())
    tags: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )

    actor = relationship("User", lazy="selectin")

    # Populated by the batch subject resolver; never persisted.
    subject = None

    @property
    def subject_ref(self) -> SubjectRef:
        return SubjectRef.of(self.subject_type, self.subject_id)

    @property
    def is_system_action(self) -> bool:
        return self.actor_id is None

    @property
    def tag_list(self) -> list[str]:
        return decode_tags(self.tags)

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return (
            f"<AuditRecord id={self.id} event={self.event} "
            f"subject={self.subject_type}:{self.subject_id}>"
        )


__all__ = ["AuditRecord", "SubjectRef", "SYSTEM_SUBJECT_TYPE"]
