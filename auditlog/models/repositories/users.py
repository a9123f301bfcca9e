"""Repository for the actors referenced by audit records."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select

from auditlog.models.user import User

from .base import SQLAlchemyRepository, repository_method


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserRepository(SQLAlchemyRepository):
    """Create and look up ``User`` rows."""

    @repository_method
    def get_by_email(self, email: str) -> Optional[User]:
        stmt = select(User).where(User.email == normalize_email(email))
        return self.session.execute(stmt).scalar_one_or_none()

    @repository_method
    def list_actors(self) -> list[User]:
        stmt = select(User).order_by(User.name, User.email)
        return list(self.session.scalars(stmt))

    @repository_method
    def create_user(self, *, email: str, name: Optional[str] = None) -> User:
        user = User(email=normalize_email(email), name=name)
        self.session.add(user)
        self._flush()
        return user


__all__ = ["UserRepository", "normalize_email"]
