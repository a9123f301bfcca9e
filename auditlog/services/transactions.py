"""Transactional unit of work helpers built on top of SQLAlchemy sessions."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Callable, Iterator

from sqlalchemy.exc import ResourceClosedError
from sqlalchemy.orm import Session

from auditlog.db.session import get_session

logger = logging.getLogger(__name__)

_active_session: ContextVar[Session | None] = ContextVar(
    "transaction_session", default=None
)
_transaction_depth: ContextVar[int] = ContextVar(
    "transaction_depth", default=0
)


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class TransactionManager:
    """Coordinate transactional scopes with support for nesting.

    The outermost scope owns a fresh session and commits it on exit;
    nested scopes reuse that session inside a SAVEPOINT.
    """

    def __init__(
        self, session_factory: Callable[[], Session] = get_session
    ) -> None:
        self._session_factory = session_factory

    @contextmanager
    def transaction(self, *, name: str = "transaction") -> Iterator[Session]:
        if _active_session.get() is None:
            with self._root(name) as session:
                yield session
        else:
            with self._nested(name) as session:
                yield session

    @contextmanager
    def _root(self, name: str) -> Iterator[Session]:
        session = self._session_factory()
        token = _active_session.set(session)
        depth_token = _transaction_depth.set(1)
        start = time.perf_counter()
        logger.debug("transaction.start name=%s depth=1", name)
        try:
            yield session
            session.commit()
            logger.debug(
                "transaction.commit name=%s depth=1 duration_ms=%.2f",
                name,
                _elapsed_ms(start),
            )
        except Exception:
            logger.exception(
                "transaction.rollback name=%s depth=1 duration_ms=%.2f",
                name,
                _elapsed_ms(start),
            )
            session.rollback()
            raise
        finally:
            session.close()
            _active_session.reset(token)
            _transaction_depth.reset(depth_token)

    @contextmanager
    def _nested(self, name: str) -> Iterator[Session]:
        parent = _active_session.get()
        depth = _transaction_depth.get() + 1
        savepoint = parent.begin_nested()
        depth_token = _transaction_depth.set(depth)
        start = time.perf_counter()
        logger.debug(
            "transaction.start name=%s depth=%s nested=True", name, depth
        )
        try:
            yield parent
            savepoint.commit()
            logger.debug(
                "transaction.commit name=%s depth=%s duration_ms=%.2f "
                "nested=True",
                name,
                depth,
                _elapsed_ms(start),
            )
        except Exception:
            logger.exception(
                "transaction.rollback name=%s depth=%s duration_ms=%.2f "
                "nested=True",
                name,
                depth,
                _elapsed_ms(start),
            )
            try:
                if savepoint.is_active:
                    savepoint.rollback()
            except ResourceClosedError:  # pragma: no cover
                pass
            raise
        finally:
            _transaction_depth.reset(depth_token)


transaction_manager = TransactionManager()


@contextmanager
def transactional_session(*, name: str = "transaction") -> Iterator[Session]:
    """Shortcut to open a transactional scope with instrumentation."""

    with transaction_manager.transaction(name=name) as session:
        yield session


def in_transaction() -> bool:
    """Return whether a transactional scope is active in this context."""

    return _active_session.get() is not None


__all__ = [
    "in_transaction",
    "transaction_manager",
    "transactional_session",
    "TransactionManager",
]
