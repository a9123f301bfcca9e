import json
from dataclasses import replace
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from flask import Flask
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from auditlog.config import get_config
from auditlog.db.session import get_session
from auditlog.models import AuditRecord
from auditlog.services import recording
from auditlog.services.recording import (
    AuditRecorder,
    AuditRecordingError,
    AuditValidationError,
    record_audit_event_job,
    request_context,
)

FIXED = datetime(2025, 2, 3, 4, 5, 6, tzinfo=timezone.utc)


@pytest.fixture()
def config(tmp_path):
    return replace(
        get_config(),
        record_max_attempts=3,
        record_backoff=(1.0, 5.0, 10.0),
        fallback_log_path=str(tmp_path / "logs" / "audit-fallback.log"),
    )


def _broken_session_factory(calls):
    def factory():
        calls.append(1)
        session = MagicMock()
        session.flush.side_effect = OperationalError("INSERT", {}, Exception("down"))
        return session

    return factory


def test_build_payload_normalises_system_subject(config):
    recorder = AuditRecorder(config, clock=lambda: FIXED)
    payload = recorder.build_payload(
        "login", after={"email": "a@b.io"}, tags=" Auth, login ,AUTH"
    )
    assert payload["subject_type"] == "system"
    assert payload["subject_id"] is None
    assert payload["tags"] == "auth,login"
    assert payload["created_at"] == FIXED


@pytest.mark.parametrize(
    "kwargs",
    [
        {"subject_type": "system", "subject_id": 5, "after": {"a": 1}},
        {"subject_type": "user", "after": {"a": 1}},
        {"subject_type": "user", "subject_id": "1"},
    ],
)
def test_build_payload_rejects_invariant_violations(config, kwargs):
    with pytest.raises(AuditValidationError):
        AuditRecorder(config).build_payload("updated", **kwargs)


def test_build_payload_rejects_blank_event(config):
    with pytest.raises(AuditValidationError):
        AuditRecorder(config).build_payload("  ")


def test_snapshot_exempt_events_need_no_values(config):
    payload = AuditRecorder(config).build_payload(
        "login", subject_type="user", subject_id="7"
    )
    assert payload["subject_id"] == "7"


def test_request_context_reads_flask_request():
    app = Flask(__name__)
    with app.test_request_context(
        "/things?x=1",
        base_url="https://admin.test",
        headers={
            "X-Forwarded-For": "203.0.113.9, 10.0.0.1",
            "User-Agent": "pytest-agent",
        },
    ):
        context = request_context()
    assert context == {
        "url": "https://admin.test/things",
        "ip_address": "203.0.113.9",
        "user_agent": "pytest-agent",
    }
    assert request_context()["url"] is None


def test_record_persists_in_own_session(app, config):
    recorder = AuditRecorder(config, clock=lambda: FIXED)

    entry = recorder.record(
        "updated",
        subject_type="user",
        subject_id="42",
        before={"name": "a"},
        after={"name": "b"},
    )

    session = get_session()
    try:
        stored = session.scalars(select(AuditRecord)).one()
    finally:
        session.close()
    assert stored.id == entry.id
    assert stored.after == {"name": "b"}


def test_retries_then_writes_fallback_line(config):
    calls = []
    sleeps = []
    recorder = AuditRecorder(
        config,
        session_factory=_broken_session_factory(calls),
        sleep=sleeps.append,
        clock=lambda: FIXED,
    )

    with pytest.raises(AuditRecordingError) as excinfo:
        recorder.record(
            "updated",
            subject_type="user",
            subject_id="1",
            after={"name": "x"},
        )

    assert len(calls) == 3
    assert sleeps == [1.0, 5.0]
    lines = (
        open(config.fallback_log_path, encoding="utf-8").read().splitlines()
    )
    assert len(lines) == 1
    logged = json.loads(lines[0])
    assert logged["event"] == "updated"
    assert logged["subject_id"] == "1"
    assert logged["created_at"] == FIXED.isoformat()
    assert "error" in logged
    assert excinfo.value.payload["event"] == "updated"


def test_recovers_when_a_later_attempt_succeeds(app, config):
    attempts = []

    def flaky_factory():
        attempts.append(1)
        if len(attempts) == 1:
            session = MagicMock()
            session.flush.side_effect = OperationalError(
                "INSERT", {}, Exception("busy")
            )
            return session
        return get_session()

    recorder = AuditRecorder(
        config, session_factory=flaky_factory, sleep=lambda seconds: None
    )
    entry = recorder.record("login", after={"email": "a@b.io"})

    assert len(attempts) == 2
    assert entry.event == "login"


def test_dispatch_enqueues_serialised_payload(config):
    queue = MagicMock()
    queue.enqueue.return_value.id = "job-1"
    recorder = AuditRecorder(config, queue=queue, clock=lambda: FIXED)

    job_id = recorder.dispatch("logout", before={"email": "a@b.io"})

    assert job_id == "job-1"
    target, payload = queue.enqueue.call_args.args
    assert target == "auditlog.services.recording.record_audit_event_job"
    assert payload["created_at"] == FIXED.isoformat()
    assert payload["event"] == "logout"


def test_dispatch_without_queue_records_synchronously(config):
    recorder = AuditRecorder(config)
    recorder.record_payload = MagicMock()

    assert recorder.dispatch("login", after={"email": "a@b.io"}) is None
    recorder.record_payload.assert_called_once()


def test_job_restores_timestamp(app, monkeypatch):
    captured = {}

    def fake_record_payload(self, payload):
        captured.update(payload)
        return MagicMock(id="rec-1")

    monkeypatch.setattr(AuditRecorder, "record_payload", fake_record_payload)

    result = record_audit_event_job(
        {"event": "login", "created_at": FIXED.isoformat()}
    )

    assert result == "rec-1"
    assert captured["created_at"] == FIXED


def test_build_queue_requires_redis(config):
    assert recording.build_queue(replace(config, redis_url=None)) is None
