"""Build before/after snapshots for tracked entity changes."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Optional
from uuid import UUID

from sqlalchemy import inspect

from auditlog.services.events import AuditEvent

if TYPE_CHECKING:  # pragma: no cover - typing only
    from auditlog.services.recording import AuditRecorder

SENSITIVE_FIELDS = frozenset(
    {
        "password",
        "password_confirmation",
        "remember_token",
        "api_token",
        "secret",
        "token",
    }
)

Snapshot = dict[str, Any]


def _json_safe(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(item) for item in value]
    return value


def filter_sensitive_fields(
    attributes: Mapping[str, Any], extra: Iterable[str] = ()
) -> Snapshot:
    """Drop credentials and other secrets from an attribute mapping."""

    hidden = SENSITIVE_FIELDS | set(extra)
    return {
        key: _json_safe(value)
        for key, value in attributes.items()
        if key not in hidden
    }


def entity_attributes(entity: Any) -> Snapshot:
    """Column values of a mapped SQLAlchemy instance."""

    mapper = inspect(entity).mapper
    return {
        attr.key: getattr(entity, attr.key) for attr in mapper.column_attrs
    }


def model_change_values(
    event: str,
    *,
    original: Optional[Mapping[str, Any]] = None,
    current: Optional[Mapping[str, Any]] = None,
    sensitive: Iterable[str] = (),
) -> Optional[tuple[Optional[Snapshot], Optional[Snapshot]]]:
    """Return ``(before, after)`` for a created/updated/deleted change.

    Updates only keep attributes whose value changed; ``None`` is returned
    when nothing worth recording remains.
    """

    sensitive = tuple(sensitive)
    if event == AuditEvent.CREATED:
        after = filter_sensitive_fields(current or {}, sensitive)
        return (None, after) if after else None
    if event == AuditEvent.DELETED:
        before = filter_sensitive_fields(original or {}, sensitive)
        return (before, None) if before else None
    if event != AuditEvent.UPDATED:
        raise ValueError(f"unsupported change event {event!r}")

    original = original or {}
    current = current or {}
    dirty = {
        key: value
        for key, value in current.items()
        if key not in original or original[key] != value
    }
    after = filter_sensitive_fields(dirty, sensitive)
    if not after:
        return None
    before = {key: _json_safe(original.get(key)) for key in after}
    return before, after


def relationship_sync_values(
    relation: str,
    old: Mapping[Any, str],
    new: Mapping[Any, str],
) -> Optional[tuple[Snapshot, Snapshot]]:
    """Snapshots for a many-to-many sync, or ``None`` when ids are unchanged.

    ``old`` and ``new`` map related ids to display names.
    """

    old_ids = sorted(str(item) for item in old)
    new_ids = sorted(str(item) for item in new if item not in (None, ""))
    if old_ids == new_ids:
        return None
    before = {
        relation: {str(key): name for key, name in old.items()},
        f"{relation}_ids": old_ids,
    }
    after = {
        relation: {
            str(key): name
            for key, name in new.items()
            if key not in (None, "")
        },
        f"{relation}_ids": new_ids,
    }
    return before, after


def record_model_change(
    recorder: "AuditRecorder",
    event: str,
    subject_type: str,
    entity: Any,
    *,
    original: Optional[Mapping[str, Any]] = None,
    actor_id: Optional[str] = None,
    tags: str | Iterable[str] | None = None,
    sensitive: Iterable[str] = (),
) -> Optional[str]:
    """Dispatch a created/updated/deleted record for a mapped entity.

    ``original`` holds the attribute values before an update or delete;
    the entity's current column values are used for the rest.
    """

    attributes = entity_attributes(entity)
    if event == AuditEvent.DELETED:
        original = original if original is not None else attributes
    values = model_change_values(
        event, original=original, current=attributes, sensitive=sensitive
    )
    if values is None:
        return None
    before, after = values
    mapper = inspect(entity).mapper
    subject_id = mapper.primary_key_from_instance(entity)[0]
    return recorder.dispatch(
        event,
        subject_type=subject_type,
        subject_id=subject_id,
        before=before,
        after=after,
        actor_id=actor_id,
        tags=tags,
    )


def record_relationship_sync(
    recorder: "AuditRecorder",
    subject_type: str,
    subject_id: Any,
    relation: str,
    old: Mapping[Any, str],
    new: Mapping[Any, str],
    *,
    actor_id: Optional[str] = None,
) -> Optional[str]:
    """Dispatch a ``relationship_synced`` record when the id set changed."""

    values = relationship_sync_values(relation, old, new)
    if values is None:
        return None
    before, after = values
    return recorder.dispatch(
        AuditEvent.RELATIONSHIP_SYNCED,
        subject_type=subject_type,
        subject_id=subject_id,
        before=before,
        after=after,
        actor_id=actor_id,
        tags=["relationship", "sync", relation],
    )


__all__ = [
    "SENSITIVE_FIELDS",
    "entity_attributes",
    "filter_sensitive_fields",
    "model_change_values",
    "record_model_change",
    "record_relationship_sync",
    "relationship_sync_values",
]
