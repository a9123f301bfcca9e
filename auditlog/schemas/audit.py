"""Audit record Marshmallow schemas."""
from __future__ import annotations

from typing import Any

from marshmallow import Schema, fields

from auditlog.services.events import AuditEvent
from auditlog.services.subjects import short_type_name
from auditlog.services.tracking import entity_attributes, filter_sensitive_fields


class ActorSchema(Schema):
    """Schema for the user who triggered an audit record."""

    id = fields.String(required=True)
    name = fields.String(allow_none=True)
    email = fields.Email(required=True)


class AuditRecordSchema(Schema):
    """Schema for serializing audit records with their resolved subject."""

    id = fields.String(required=True)
    event = fields.String(required=True)
    event_label = fields.Method("get_event_label")
    subject_type = fields.String(allow_none=True)
    subject_label = fields.Method("get_subject_label")
    subject_id = fields.String(allow_none=True)
    subject = fields.Method("get_subject")
    before = fields.Dict(keys=fields.String(), values=fields.Raw(), allow_none=True)
    after = fields.Dict(keys=fields.String(), values=fields.Raw(), allow_none=True)
    actor = fields.Nested(ActorSchema, allow_none=True)
    is_system_action = fields.Boolean()
    url = fields.String(allow_none=True)
    ip_address = fields.String(allow_none=True)
    user_agent = fields.String(allow_none=True)
    tags = fields.Method("get_tags")
    created_at = fields.DateTime(required=True)

    def get_event_label(self, record) -> str:
        return AuditEvent.label(record.event)

    def get_subject_label(self, record) -> str:
        return short_type_name(record.subject_type)

    def get_subject(self, record) -> dict[str, Any] | None:
        subject = getattr(record, "subject", None)
        if subject is None:
            return None
        return filter_sensitive_fields(entity_attributes(subject))

    def get_tags(self, record) -> list[str]:
        return record.tag_list


class RecentActivitySchema(Schema):
    """Row of the dashboard's recent activity list."""

    id = fields.String(required=True)
    title = fields.String(required=True)
    timestamp = fields.String(required=True)
    icon = fields.String(required=True)
    color = fields.String(required=True)


class DashboardSchema(Schema):
    """Dashboard summary payload."""

    total = fields.Integer(required=True)
    events = fields.List(fields.Dict(keys=fields.String(), values=fields.Raw()))
    chart_config = fields.Dict(
        keys=fields.String(),
        values=fields.Dict(keys=fields.String(), values=fields.String()),
    )
    recent = fields.List(fields.Nested(RecentActivitySchema))


__all__ = [
    "ActorSchema",
    "AuditRecordSchema",
    "DashboardSchema",
    "RecentActivitySchema",
]
