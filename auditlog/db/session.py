"""SQLAlchemy engine and session management."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import (
    DeclarativeBase,
    Session,
    close_all_sessions,
    sessionmaker,
)
from sqlalchemy.pool import StaticPool
from sqlalchemy.exc import SQLAlchemyError

from auditlog.config import get_config


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""


_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None

logger = logging.getLogger(__name__)


def _engine_options(database_url: str) -> tuple[Any, dict[str, object]]:
    config = get_config()
    url = make_url(database_url)
    options: dict[str, object] = {
        "echo": config.sqlalchemy_echo,
        "pool_pre_ping": True,
    }
    backend = url.get_backend_name()
    if backend == "sqlite":
        options["connect_args"] = {"check_same_thread": False}
        if url.database in (None, "", ":memory:"):
            options["poolclass"] = StaticPool
        return url, options
    if backend == "postgresql":
        options.update(
            {
                "pool_size": config.pool_size,
                "max_overflow": config.max_overflow,
                "pool_timeout": config.pool_timeout,
                "pool_recycle": config.pool_recycle,
            }
        )
        if config.database_ssl_mode:
            options["connect_args"] = {"sslmode": config.database_ssl_mode}
    return url, options


def get_engine() -> Engine:
    """Return the process-wide engine, creating it on first use."""

    global _engine
    if _engine is None:
        url, options = _engine_options(get_config().database_url)
        safe_url = url.render_as_string(hide_password=True)
        try:
            _engine = create_engine(url, **options)
            with _engine.connect() as connection:
                # Surface bad credentials at startup rather than mid-request.
                if url.get_backend_name() == "postgresql":
                    connection.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.exception(
                "Failed to initialize database engine for %s", safe_url
            )
            raise
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Return the configured session factory."""

    global _SessionFactory
    if _SessionFactory is None:
        _SessionFactory = sessionmaker(
            bind=get_engine(),
            autoflush=False,
            expire_on_commit=False,
        )
    return _SessionFactory


def get_session() -> Session:
    """Create a new SQLAlchemy session."""

    return get_session_factory()()


@contextmanager
def session_scope(*, name: str = "session") -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""

    from auditlog.services.transactions import transactional_session

    with transactional_session(name=name) as session:
        yield session


def reset_engine() -> None:
    """Dispose of the engine and reset the session factory (used in tests)."""

    global _engine, _SessionFactory
    if _SessionFactory is not None:
        close_all_sessions()
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None
    get_config.cache_clear()
