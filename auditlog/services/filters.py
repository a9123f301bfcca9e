"""Filter dropdown options derived from stored audit records."""

from __future__ import annotations

from typing import Protocol

from auditlog.services.cache import CacheService
from auditlog.services.subjects import short_type_name


class OptionsStore(Protocol):
    def distinct_subject_types(self) -> list[str]: ...

    def distinct_events(self) -> list[str]: ...


def _capitalize(value: str) -> str:
    return value[:1].upper() + value[1:]


class FilterOptions:
    """Distinct subject types and event kinds, cached between calls."""

    def __init__(self, store: OptionsStore, cache: CacheService) -> None:
        self.store = store
        self.cache = cache

    def model_types(self) -> list[dict[str, str]]:
        return self.cache.remember(
            self.cache.model_types_key,
            lambda: [
                {"value": tag, "label": short_type_name(tag)}
                for tag in self.store.distinct_subject_types()
            ],
        )

    def event_types(self) -> list[dict[str, str]]:
        return self.cache.remember(
            self.cache.event_types_key,
            lambda: [
                {"value": event, "label": _capitalize(event)}
                for event in self.store.distinct_events()
            ],
        )

    def as_dict(self) -> dict[str, list[dict[str, str]]]:
        return {
            "model_types": self.model_types(),
            "event_types": self.event_types(),
        }


__all__ = ["FilterOptions"]
