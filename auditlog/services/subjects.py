"""Registry of entity types that audit records may point at."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from sqlalchemy import inspect, select
from sqlalchemy.orm import Session

from auditlog.models.audit import SYSTEM_SUBJECT_TYPE

logger = logging.getLogger(__name__)

SubjectLoader = Callable[[Session, list[str]], Mapping[str, Any]]


def short_type_name(type_tag: Optional[str]) -> str:
    """Return the last segment of a namespaced type tag.

    ``"Modules\\Blog\\Models\\Post"`` and ``"blog.post"`` both shorten to
    their final component.
    """

    if not type_tag:
        return ""
    return re.split(r"[\\./:]", type_tag)[-1]


def model_loader(model: type) -> SubjectLoader:
    """Build a loader fetching ``model`` rows by primary key in one query."""

    primary_key = inspect(model).primary_key[0]

    def load(session: Session, ids: list[str]) -> Mapping[str, Any]:
        stmt = select(model).where(primary_key.in_(ids))
        return {
            str(getattr(entity, primary_key.key)): entity
            for entity in session.scalars(stmt)
        }

    return load


@dataclass(frozen=True)
class SubjectType:
    """A resolvable subject kind and how to bulk-load its entities."""

    tag: str
    loader: SubjectLoader
    label: str

    def load(self, session: Session, ids: list[str]) -> Mapping[str, Any]:
        return self.loader(session, ids)


class SubjectRegistry:
    """Explicit mapping of type tags to resolvable subject types.

    Modules register the entity kinds they own at startup. A tag absent
    from the registry is treated as no longer resolvable.
    """

    def __init__(self) -> None:
        self._types: dict[str, SubjectType] = {}

    def register(
        self,
        tag: str,
        model: type | None = None,
        *,
        loader: SubjectLoader | None = None,
        label: str | None = None,
    ) -> SubjectType:
        if tag == SYSTEM_SUBJECT_TYPE:
            raise ValueError("'system' is reserved for entity-less events")
        if loader is None:
            if model is None:
                raise ValueError("register() needs a model or a loader")
            loader = model_loader(model)
        subject_type = SubjectType(
            tag=tag,
            loader=loader,
            label=label or short_type_name(tag),
        )
        if tag in self._types:
            logger.debug("subjects.replace tag=%s", tag)
        self._types[tag] = subject_type
        return subject_type

    def get(self, tag: str | None) -> SubjectType | None:
        if not tag:
            return None
        return self._types.get(tag)

    def is_resolvable(self, tag: str | None) -> bool:
        return self.get(tag) is not None

    def label_for(self, tag: str | None) -> str:
        subject_type = self.get(tag)
        if subject_type is not None:
            return subject_type.label
        return short_type_name(tag)

    def __contains__(self, tag: object) -> bool:
        return tag in self._types

    def __len__(self) -> int:
        return len(self._types)


def default_registry() -> SubjectRegistry:
    """Registry with the subject types owned by this service."""

    from auditlog.models.user import User

    registry = SubjectRegistry()
    registry.register("user", User, label="User")
    return registry


__all__ = [
    "SubjectLoader",
    "SubjectRegistry",
    "SubjectType",
    "default_registry",
    "model_loader",
    "short_type_name",
]
