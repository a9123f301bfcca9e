"""Pytest fixtures for the audit log service tests."""

import os
from datetime import datetime, timezone

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("SQLALCHEMY_ECHO", "false")
os.environ.setdefault("JWT_SECRET", "testsecret")
os.environ.pop("REDIS_URL", None)

from auditlog.auth.jwt_handler import VIEW_PERMISSION, encode_jwt  # noqa: E402
from auditlog.db.session import get_engine, get_session, reset_engine  # noqa: E402
from auditlog.main import create_app  # noqa: E402
from auditlog.models import Base  # noqa: E402
from auditlog.models.repositories import (  # noqa: E402
    AuditRecordRepository,
    UserRepository,
)


@pytest.fixture(scope="session")
def app():
    reset_engine()
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    application = create_app()
    application.config.update({"TESTING": True})
    yield application
    Base.metadata.drop_all(bind=engine)
    reset_engine()


@pytest.fixture()
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture(autouse=True)
def _db_cleanup():
    engine = get_engine()
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def session():
    db = get_session()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def auth_headers(app):
    with app.app_context():
        token = encode_jwt("admin", permissions=[VIEW_PERMISSION])
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def make_user(session):
    def factory(email="alice@example.com", name="Alice"):
        user = UserRepository(session).create_user(email=email, name=name)
        session.commit()
        return user

    return factory


@pytest.fixture()
def make_record(session):
    def factory(event="created", created_at=None, **fields):
        fields.setdefault("subject_type", "system")
        if created_at is None:
            created_at = datetime.now(timezone.utc)
        record = AuditRecordRepository(session).record_event(
            event=event, created_at=created_at, **fields
        )
        session.commit()
        return record

    return factory
