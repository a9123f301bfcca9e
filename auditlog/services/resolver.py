"""Batch resolution of the entities audit records refer to."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Sequence, TypeVar

from prometheus_client import Counter
from sqlalchemy.orm import Session

from auditlog.models.audit import SYSTEM_SUBJECT_TYPE, AuditRecord
from auditlog.services.subjects import SubjectRegistry

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=AuditRecord)

_RESOLVER_LOOKUPS = Counter(
    "auditlog_subject_lookups_total",
    "Bulk subject lookups issued by the batch resolver.",
    labelnames=("outcome",),
)


class BatchSubjectResolver:
    """Attach live subjects to a page of audit records.

    Records are grouped by subject type and each valid type is fetched
    with a single bulk lookup, so a page costs one query per distinct
    type instead of one per record. Each lookup runs in its own savepoint
    so a failing type leaves the session usable for the rest.
    """

    def __init__(self, registry: SubjectRegistry, session: Session) -> None:
        self.registry = registry
        self.session = session

    def resolve(self, records: Sequence[R]) -> Sequence[R]:
        if not records:
            return records

        validity: dict[str, bool] = {}
        grouped: dict[str, dict[str, list[R]]] = defaultdict(
            lambda: defaultdict(list)
        )

        for record in records:
            record.subject = None
            subject_type = record.subject_type
            if not subject_type or subject_type == SYSTEM_SUBJECT_TYPE:
                continue
            if subject_type not in validity:
                validity[subject_type] = self.registry.is_resolvable(
                    subject_type
                )
            if not validity[subject_type] or record.subject_id is None:
                continue
            grouped[subject_type][str(record.subject_id)].append(record)

        for subject_type, by_id in grouped.items():
            self._resolve_group(subject_type, by_id)
        return records

    def _resolve_group(
        self, subject_type: str, by_id: dict[str, list[R]]
    ) -> None:
        registered = self.registry.get(subject_type)
        try:
            with self.session.begin_nested():
                entities = registered.load(self.session, list(by_id))
        except Exception:
            _RESOLVER_LOOKUPS.labels("error").inc()
            logger.exception(
                "resolver.lookup_failed subject_type=%s ids=%s",
                subject_type,
                len(by_id),
            )
            return
        _RESOLVER_LOOKUPS.labels("ok").inc()
        for subject_id, group in by_id.items():
            entity = entities.get(subject_id)
            for record in group:
                record.subject = entity


def resolve_subjects(
    records: Sequence[R], registry: SubjectRegistry, session: Session
) -> Sequence[R]:
    """Shortcut for ``BatchSubjectResolver(registry, session).resolve``."""

    return BatchSubjectResolver(registry, session).resolve(records)


__all__ = ["BatchSubjectResolver", "resolve_subjects"]
