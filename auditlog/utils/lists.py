"""Helpers for the comma-separated tag lists stored on audit records."""

from __future__ import annotations

from typing import Iterable


def normalize_string_list(values: Iterable[str] | None) -> list[str]:
    """Normalize a collection of strings into a unique, ordered list."""

    normalized: list[str] = []
    seen: set[str] = set()
    if not values:
        return normalized
    for value in values:
        if value is None:
            continue
        cleaned = str(value).strip()
        if not cleaned:
            continue
        lowered = cleaned.lower()
        if lowered in seen:
            continue
        normalized.append(lowered)
        seen.add(lowered)
    return normalized


def encode_tags(tags: str | Iterable[str] | None) -> str | None:
    """Serialize tags as the comma-separated form persisted in ``tags``.

    Accepts either an already comma-separated string (``"role,permission"``)
    or an iterable of labels.
    """

    if tags is None:
        return None
    if isinstance(tags, str):
        tags = tags.split(",")
    normalized = normalize_string_list(tags)
    if not normalized:
        return None
    return ",".join(normalized)


def decode_tags(raw: str | None) -> list[str]:
    """Split a persisted tag string back into its labels."""

    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]
