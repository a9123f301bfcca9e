"""Repositories for audit records and their actors."""

from __future__ import annotations

from .audit import AuditRecordRepository
from .base import RepositoryError, SQLAlchemyRepository, repository_method
from .users import UserRepository

__all__ = [
    "AuditRecordRepository",
    "RepositoryError",
    "SQLAlchemyRepository",
    "UserRepository",
    "repository_method",
]
