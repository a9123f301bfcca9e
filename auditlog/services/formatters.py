"""Human-readable descriptions of audit record changes.

Each formatter turns a ``(before, after, event)`` triple into an ordered
list of display strings. Formatters are pure: they perform no I/O and only
render timestamps that are already present in their input.
"""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from datetime import datetime
from math import floor, log
from typing import Any, Callable, Mapping, Optional

from dateutil import parser as date_parser

from auditlog.services.events import AuditEvent

Values = Mapping[str, Any]

MAX_VALUE_LENGTH = 100
_FILE_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")
_YEAR_PATTERN = re.compile(r"\d{4}")


# ----------------------------------------------------------------------
# Value helpers
# ----------------------------------------------------------------------
def format_datetime(value: datetime) -> str:
    """Render ``value`` as ``January 5, 2025 at 3:04 PM``."""

    hour = value.hour % 12 or 12
    meridiem = "AM" if value.hour < 12 else "PM"
    return (
        f"{value:%B} {value.day}, {value.year} "
        f"at {hour}:{value:%M} {meridiem}"
    )


def parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return date_parser.parse(value)
    except (ValueError, OverflowError):
        return None


def format_timestamp_line(label: str, value: Any) -> Optional[str]:
    parsed = parse_datetime(value) if value else None
    if parsed is None:
        return None
    return f"{label}: {format_datetime(parsed)}"


def format_file_size(size: Any) -> str:
    """Render a byte count with binary units, e.g. ``1.5 KB``."""

    try:
        size_bytes = max(int(size), 0)
    except (TypeError, ValueError):
        size_bytes = 0
    power = floor(log(size_bytes) / log(1024)) if size_bytes else 0
    power = min(power, len(_FILE_SIZE_UNITS) - 1)
    scaled = round(size_bytes / (1 << (10 * power)), 2)
    return f"{scaled:g} {_FILE_SIZE_UNITS[power]}"


def format_field_name(key: str) -> str:
    """``first_name`` and ``first-name`` both become ``First Name``."""

    words = str(key).replace("_", " ").replace("-", " ").split(" ")
    return " ".join(word[:1].upper() + word[1:] for word in words)


def is_date_string(value: str) -> bool:
    if not 8 <= len(value) <= 50:
        return False
    if not _YEAR_PATTERN.search(value):
        return False
    parsed = parse_datetime(value)
    return parsed is not None and 1000 <= parsed.year <= 9999


def format_value(value: Any) -> Optional[str]:
    """Render an attribute value for display, or ``None`` for no value."""

    if value is None:
        return None
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, (list, tuple, dict)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    if isinstance(value, datetime):
        return format_datetime(value)
    text = str(value)
    if isinstance(value, str) and is_date_string(text):
        return format_datetime(parse_datetime(text))
    if not text:
        return None
    if len(text) > MAX_VALUE_LENGTH:
        return text[:MAX_VALUE_LENGTH] + "..."
    return text


def ensure_mapping(value: Any) -> dict[str, Any]:
    """Coerce stored snapshots (mapping, JSON text or ``None``) to a dict."""

    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, str):
        try:
            decoded = json.loads(value)
        except json.JSONDecodeError:
            return {}
        if isinstance(decoded, dict):
            return decoded
    return {}


def _identity_line(
    email: Any, name: Any, *, both: str, email_only: str, name_only: str,
    neither: str,
) -> str:
    if email and name:
        return both.format(email=email, name=name)
    if email:
        return email_only.format(email=email)
    if name:
        return name_only.format(name=name)
    return neither


# ----------------------------------------------------------------------
# Formatters
# ----------------------------------------------------------------------
class AuditLogFormatter(ABC):
    """Common interface of all event category formatters."""

    @abstractmethod
    def format(
        self, before: Values, after: Values, event: Optional[str] = None
    ) -> list[str]:
        raise NotImplementedError


class _DispatchingFormatter(AuditLogFormatter):
    """Formatter recognising a fixed set of event kinds."""

    handlers: Mapping[str, str] = {}

    def format(
        self, before: Values, after: Values, event: Optional[str] = None
    ) -> list[str]:
        handler_name = self.handlers.get(event or "")
        if handler_name is None:
            return []
        handler: Callable[[Values, Values], list[str]] = getattr(
            self, handler_name
        )
        return handler(before, after)


class GenericEventFormatter(AuditLogFormatter):
    """Generic CRUD diffs plus the ``export`` event."""

    def format(
        self, before: Values, after: Values, event: Optional[str] = None
    ) -> list[str]:
        if event == AuditEvent.EXPORT:
            return self._export(after)
        if not before and after:
            return self._snapshot("Added", after)
        if before and not after:
            return self._snapshot("Removed", before)
        if before and after:
            return self._diff(before, after)
        return []

    @staticmethod
    def _snapshot(verb: str, values: Values) -> list[str]:
        changes = []
        for key, value in values.items():
            field = format_field_name(key)
            rendered = format_value(value)
            if rendered is not None:
                changes.append(f"{verb} {field}: {rendered}")
            else:
                changes.append(f"{verb} {field}")
        return changes

    @staticmethod
    def _diff(before: Values, after: Values) -> list[str]:
        changes = []
        keys = list(dict.fromkeys([*before.keys(), *after.keys()]))
        for key in keys:
            old = before.get(key)
            new = after.get(key)
            if old == new and type(old) is type(new):
                continue
            field = format_field_name(key)
            old_text = format_value(old)
            new_text = format_value(new)
            if old_text is None and new_text is None:
                continue
            if old_text is None and new_text is not None:
                changes.append(f"Set {field} to {new_text}")
            elif old_text is not None and new_text is None:
                changes.append(f"Removed {field} (was {old_text})")
            else:
                changes.append(f"Changed {field} from {old_text} to {new_text}")
        return changes

    @staticmethod
    def _export(after: Values) -> list[str]:
        changes = [f"Exported audit logs as {after.get('format') or 'CSV'}"]
        count = after.get("record_count")
        if count is not None:
            suffix = "" if count == 1 else "s"
            changes.append(f"Exported {count} record{suffix}")
        line = format_timestamp_line("Export time", after.get("exported_at"))
        if line:
            changes.append(line)
        return changes


class AuthenticationEventFormatter(_DispatchingFormatter):
    """Registration, login/logout and password lifecycle events."""

    handlers = {
        AuditEvent.REGISTERED: "_registered",
        AuditEvent.LOGIN: "_login",
        AuditEvent.LOGOUT: "_logout",
        AuditEvent.PASSWORD_RESET: "_password_reset",
        AuditEvent.PASSWORD_CHANGED: "_password_changed",
        AuditEvent.PASSWORD_RESET_REQUESTED: "_password_reset_requested",
    }

    def _registered(self, before: Values, after: Values) -> list[str]:
        return [
            _identity_line(
                after.get("email"),
                after.get("name"),
                both="User {name} ({email}) registered",
                email_only="User {email} registered",
                name_only="User {name} registered",
                neither="New user registered",
            )
        ]

    def _login(self, before: Values, after: Values) -> list[str]:
        email = after.get("email")
        changes = [f"User {email} logged in" if email else "User logged in"]
        return self._with_time(changes, "Login time", after.get("logged_in_at"))

    def _logout(self, before: Values, after: Values) -> list[str]:
        email = before.get("email")
        changes = [f"User {email} logged out" if email else "User logged out"]
        return self._with_time(
            changes, "Logout time", before.get("logged_out_at")
        )

    def _password_reset(self, before: Values, after: Values) -> list[str]:
        email = after.get("email")
        changes = [
            f"Password reset for user {email}" if email else "Password reset"
        ]
        return self._with_time(changes, "Reset time", after.get("reset_at"))

    def _password_changed(self, before: Values, after: Values) -> list[str]:
        email = after.get("email")
        changes = [
            f"Password changed for user {email}"
            if email
            else "Password changed"
        ]
        return self._with_time(changes, "Change time", after.get("changed_at"))

    def _password_reset_requested(
        self, before: Values, after: Values
    ) -> list[str]:
        email = after.get("email")
        changes = [
            f"Password reset requested for {email}"
            if email
            else "Password reset requested"
        ]
        return self._with_time(
            changes, "Request time", after.get("requested_at")
        )

    @staticmethod
    def _with_time(changes: list[str], label: str, value: Any) -> list[str]:
        line = format_timestamp_line(label, value)
        if line:
            changes.append(line)
        return changes


class UserEventFormatter(_DispatchingFormatter):
    """Email verification, email changes and account deletion."""

    handlers = {
        AuditEvent.EMAIL_VERIFIED: "_email_verified",
        AuditEvent.EMAIL_CHANGED: "_email_changed",
        AuditEvent.ACCOUNT_DELETED: "_account_deleted",
    }

    def _email_verified(self, before: Values, after: Values) -> list[str]:
        email = after.get("email")
        changes = [f"Email {email} verified" if email else "Email verified"]
        line = format_timestamp_line(
            "Verification time", after.get("verified_at")
        )
        return changes + ([line] if line else [])

    def _email_changed(self, before: Values, after: Values) -> list[str]:
        old_email = before.get("email")
        new_email = after.get("email")
        if old_email and new_email:
            changes = [f"Email changed from {old_email} to {new_email}"]
        elif new_email:
            changes = [f"Email set to {new_email}"]
        elif old_email:
            changes = [f"Email {old_email} removed"]
        else:
            changes = ["Email changed"]
        line = format_timestamp_line("Change time", after.get("changed_at"))
        return changes + ([line] if line else [])

    def _account_deleted(self, before: Values, after: Values) -> list[str]:
        changes = [
            _identity_line(
                before.get("email"),
                before.get("name"),
                both="Account deleted for user {name} ({email})",
                email_only="Account deleted for user {email}",
                name_only="Account deleted for user {name}",
                neither="Account deleted",
            )
        ]
        line = format_timestamp_line("Deletion time", before.get("deleted_at"))
        return changes + ([line] if line else [])


class FileEventFormatter(_DispatchingFormatter):
    """Uploads and deletions of stored files."""

    handlers = {
        AuditEvent.FILE_UPLOADED: "_uploaded",
        AuditEvent.FILE_DELETED: "_deleted",
    }

    def _uploaded(self, before: Values, after: Values) -> list[str]:
        filename = after.get("filename")
        if filename:
            kind = "temporary" if after.get("is_temporary") else "permanent"
            changes = [f"File '{filename}' uploaded ({kind})"]
        else:
            changes = ["File uploaded"]
        changes.extend(self._details(after))
        line = format_timestamp_line("Uploaded at", after.get("created_at"))
        return changes + ([line] if line else [])

    def _deleted(self, before: Values, after: Values) -> list[str]:
        filename = before.get("filename")
        changes = [
            f"File '{filename}' deleted" if filename else "File deleted"
        ]
        changes.extend(self._details(before))
        line = format_timestamp_line("Deleted at", before.get("deleted_at"))
        return changes + ([line] if line else [])

    @staticmethod
    def _details(values: Values) -> list[str]:
        details = []
        if values.get("mime_type"):
            details.append(f"MIME type: {values['mime_type']}")
        if values.get("size") is not None:
            details.append(f"Size: {format_file_size(values['size'])}")
        return details


class RelationshipEventFormatter(AuditLogFormatter):
    """Many-to-many synchronisation (``relationship_synced``).

    Snapshots carry ``<relation>`` (names keyed by id) and
    ``<relation>_ids`` (sorted id list) for each synced relation.
    """

    def format(
        self, before: Values, after: Values, event: Optional[str] = None
    ) -> list[str]:
        changes: list[str] = []
        relations = [key for key in after if not str(key).endswith("_ids")]
        for relation in relations:
            old_ids = self._ids(before.get(f"{relation}_ids"))
            new_ids = self._ids(after.get(f"{relation}_ids"))
            if old_ids == new_ids:
                continue
            display = format_field_name(relation)
            added = [item for item in new_ids if item not in old_ids]
            removed = [item for item in old_ids if item not in new_ids]
            if added:
                changes.append(
                    self._line("Added", display, added, after.get(relation))
                )
            if removed:
                changes.append(
                    self._line(
                        "Removed", display, removed, before.get(relation)
                    )
                )
        return changes or ["Relationship synchronized"]

    @staticmethod
    def _ids(value: Any) -> list[str]:
        if not isinstance(value, (list, tuple)):
            return []
        return [str(item) for item in value]

    @staticmethod
    def _line(verb: str, display: str, ids: list[str], names: Any) -> str:
        labels: list[str] = []
        if isinstance(names, Mapping):
            labels = [str(names[item]) for item in ids if item in names]
        if labels:
            return f"{verb} {display}: {', '.join(labels)}"
        return f"{verb} {display}: {len(ids)} item(s)"


_AUTHENTICATION_EVENTS = frozenset(AuthenticationEventFormatter.handlers)
_USER_EVENTS = frozenset(UserEventFormatter.handlers)
_FILE_EVENTS = frozenset(FileEventFormatter.handlers)


def formatter_for(event: Optional[str]) -> AuditLogFormatter:
    """Return the formatter responsible for ``event``."""

    if event in _AUTHENTICATION_EVENTS:
        return AuthenticationEventFormatter()
    if event in _USER_EVENTS:
        return UserEventFormatter()
    if event in _FILE_EVENTS:
        return FileEventFormatter()
    if event == AuditEvent.RELATIONSHIP_SYNCED:
        return RelationshipEventFormatter()
    return GenericEventFormatter()


def format_changes(before: Any, after: Any, event: Optional[str]) -> list[str]:
    """Describe a stored change, tolerating ``None`` and JSON snapshots."""

    return formatter_for(event).format(
        ensure_mapping(before), ensure_mapping(after), event
    )


__all__ = [
    "AuditLogFormatter",
    "AuthenticationEventFormatter",
    "FileEventFormatter",
    "GenericEventFormatter",
    "RelationshipEventFormatter",
    "UserEventFormatter",
    "ensure_mapping",
    "format_changes",
    "format_datetime",
    "format_field_name",
    "format_file_size",
    "format_value",
    "formatter_for",
    "is_date_string",
]
