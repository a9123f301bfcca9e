"""Audit event kinds and their display metadata."""

from __future__ import annotations


class AuditEvent:
    """Well-known event kinds.

    Event kinds are open-ended strings; these constants only cover the
    kinds this service formats and charts.
    """

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"

    LOGIN = "login"
    LOGOUT = "logout"
    REGISTERED = "registered"
    PASSWORD_RESET = "password_reset"
    PASSWORD_RESET_REQUESTED = "password_reset_requested"
    PASSWORD_CHANGED = "password_changed"

    EMAIL_VERIFIED = "email_verified"
    EMAIL_CHANGED = "email_changed"

    ACCOUNT_DELETED = "account_deleted"

    FILE_UPLOADED = "file_uploaded"
    FILE_DELETED = "file_deleted"

    RELATIONSHIP_SYNCED = "relationship_synced"

    EXPORT = "export"

    @classmethod
    def all_events(cls) -> list[str]:
        return [
            cls.CREATED,
            cls.UPDATED,
            cls.DELETED,
            cls.LOGIN,
            cls.LOGOUT,
            cls.REGISTERED,
            cls.PASSWORD_RESET,
            cls.PASSWORD_RESET_REQUESTED,
            cls.PASSWORD_CHANGED,
            cls.EMAIL_VERIFIED,
            cls.EMAIL_CHANGED,
            cls.ACCOUNT_DELETED,
            cls.FILE_UPLOADED,
            cls.FILE_DELETED,
            cls.RELATIONSHIP_SYNCED,
            cls.EXPORT,
        ]

    @classmethod
    def icon(cls, event: str) -> str:
        return _ICONS.get(event, "Activity")

    @classmethod
    def color(cls, event: str) -> str:
        return _COLORS.get(event, "bg-gray-800")

    @staticmethod
    def label(event: str) -> str:
        return event.replace("_", " ").capitalize()


_ICONS = {
    AuditEvent.CREATED: "Plus",
    AuditEvent.REGISTERED: "Plus",
    AuditEvent.UPDATED: "Edit",
    AuditEvent.DELETED: "Trash",
    AuditEvent.ACCOUNT_DELETED: "Trash",
    AuditEvent.LOGIN: "LogIn",
    AuditEvent.LOGOUT: "LogOut",
    AuditEvent.PASSWORD_RESET: "Key",
    AuditEvent.PASSWORD_RESET_REQUESTED: "Key",
    AuditEvent.PASSWORD_CHANGED: "Key",
    AuditEvent.EMAIL_VERIFIED: "Mail",
    AuditEvent.EMAIL_CHANGED: "Mail",
    AuditEvent.FILE_UPLOADED: "Upload",
    AuditEvent.FILE_DELETED: "FileX",
    AuditEvent.RELATIONSHIP_SYNCED: "Link",
    AuditEvent.EXPORT: "Download",
}

_COLORS = {
    AuditEvent.CREATED: "bg-green-500",
    AuditEvent.REGISTERED: "bg-green-500",
    AuditEvent.UPDATED: "bg-blue-500",
    AuditEvent.DELETED: "bg-red-500",
    AuditEvent.ACCOUNT_DELETED: "bg-red-500",
    AuditEvent.LOGIN: "bg-indigo-500",
    AuditEvent.LOGOUT: "bg-amber-500",
    AuditEvent.PASSWORD_RESET: "bg-purple-500",
    AuditEvent.PASSWORD_RESET_REQUESTED: "bg-purple-500",
    AuditEvent.PASSWORD_CHANGED: "bg-purple-500",
    AuditEvent.EMAIL_VERIFIED: "bg-cyan-500",
    AuditEvent.EMAIL_CHANGED: "bg-cyan-500",
    AuditEvent.FILE_UPLOADED: "bg-emerald-500",
    AuditEvent.FILE_DELETED: "bg-orange-500",
    AuditEvent.RELATIONSHIP_SYNCED: "bg-pink-500",
    AuditEvent.EXPORT: "bg-teal-500",
}


__all__ = ["AuditEvent"]
