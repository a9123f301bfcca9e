"""Parsing of audit log listing and export query arguments."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Mapping, Optional

ALLOWED_SORT_FIELDS = {"created_at", "event", "subject_type"}
ALLOWED_PER_PAGE = (10, 20, 30, 50)
DEFAULT_PER_PAGE = 20
ORIGINS = {"user", "system"}


class QueryValidationError(ValueError):
    """Raised when listing arguments cannot be interpreted."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


@dataclass(frozen=True)
class AuditQuery:
    """Filters, ordering and paging applied to audit record queries."""

    actor_id: Optional[str] = None
    origin: Optional[str] = None
    event: Optional[str] = None
    subject_type: Optional[str] = None
    tag: Optional[str] = None
    search: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    page: int = 1
    per_page: int = DEFAULT_PER_PAGE
    sort_field: str = "created_at"
    sort_order: str = "desc"

    @property
    def has_inverted_range(self) -> bool:
        return (
            self.start_date is not None
            and self.end_date is not None
            and self.start_date > self.end_date
        )

    def filters(self) -> dict[str, object]:
        """Echo of the active filters, as rendered back to clients."""

        return {
            "user_id": self.actor_id,
            "system": self.origin,
            "event": self.event,
            "subject_type": self.subject_type,
            "tag": self.tag,
            "search": self.search,
            "start_date": (
                self.start_date.isoformat() if self.start_date else None
            ),
            "end_date": self.end_date.isoformat() if self.end_date else None,
        }


def _clean(args: Mapping[str, Any], name: str) -> Optional[str]:
    value = args.get(name)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _parse_date(args: Mapping[str, Any], name: str) -> Optional[date]:
    raw = _clean(args, name)
    if raw is None:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        raise QueryValidationError(
            "invalid date", {name: "expected YYYY-MM-DD"}
        ) from None


def parse_audit_query(args: Mapping[str, Any]) -> AuditQuery:
    """Build an ``AuditQuery`` from request arguments.

    Unknown sort fields and page sizes fall back to defaults; malformed
    dates raise ``QueryValidationError``.
    """

    def get_int(name: str, default: int) -> int:
        try:
            return int(args.get(name, default))
        except (TypeError, ValueError):
            return default

    page = max(get_int("page", 1), 1)
    per_page = get_int("per_page", DEFAULT_PER_PAGE)
    if per_page not in ALLOWED_PER_PAGE:
        per_page = DEFAULT_PER_PAGE

    sort = _clean(args, "sort") or "created_at"
    direction = _clean(args, "direction")
    if ":" in sort:
        sort, direction = sort.split(":", 1)
    if sort not in ALLOWED_SORT_FIELDS:
        sort = "created_at"
    order = "asc" if direction == "asc" else "desc"

    actor_id = _clean(args, "user_id")
    origin = _clean(args, "system")
    if actor_id is not None or origin not in ORIGINS:
        origin = None

    return AuditQuery(
        actor_id=actor_id,
        origin=origin,
        event=_clean(args, "event"),
        subject_type=_clean(args, "subject_type"),
        tag=(_clean(args, "tag") or "").lower() or None,
        search=_clean(args, "search"),
        start_date=_parse_date(args, "start_date"),
        end_date=_parse_date(args, "end_date"),
        page=page,
        per_page=per_page,
        sort_field=sort,
        sort_order=order,
    )


__all__ = [
    "ALLOWED_PER_PAGE",
    "ALLOWED_SORT_FIELDS",
    "AuditQuery",
    "QueryValidationError",
    "parse_audit_query",
]
