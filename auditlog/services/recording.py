"""Ingestion path for audit records.

Records are validated, then written in their own session with bounded
retry. When every attempt fails the payload is appended to a local
fallback file so the event is not lost, and ``AuditRecordingError`` is
raised for that record.
"""

from __future__ import annotations

import fcntl
import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from flask import has_request_context, request
from prometheus_client import Counter
from rq import Queue
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_chain,
    wait_fixed,
)

from auditlog.config import Config, get_config
from auditlog.db.session import get_session
from auditlog.models.audit import SYSTEM_SUBJECT_TYPE, AuditRecord
from auditlog.models.repositories import AuditRecordRepository, RepositoryError
from auditlog.utils.lists import encode_tags

logger = logging.getLogger(__name__)

_RECORDS_WRITTEN = Counter(
    "auditlog_records_written_total",
    "Audit records persisted.",
    labelnames=("event",),
)
_RECORD_FAILURES = Counter(
    "auditlog_record_failures_total",
    "Audit records that could not be persisted after all attempts.",
)
_FALLBACK_WRITES = Counter(
    "auditlog_fallback_writes_total",
    "Audit payloads appended to the local fallback log.",
)

_TRANSIENT_ERRORS = (RepositoryError, SQLAlchemyError)


class AuditValidationError(ValueError):
    """Raised when an audit payload violates record invariants."""


class AuditRecordingError(RuntimeError):
    """Raised when an audit record could not be persisted."""

    def __init__(self, message: str, payload: dict[str, Any]):
        super().__init__(message)
        self.payload = payload


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def request_context() -> dict[str, Optional[str]]:
    """Return URL, client IP and user agent of the active Flask request."""

    if not has_request_context():
        return {"url": None, "ip_address": None, "user_agent": None}
    forwarded = request.headers.get("X-Forwarded-For")
    ip_address = (forwarded or request.remote_addr or "").split(",")[0]
    return {
        "url": request.base_url,
        "ip_address": ip_address.strip() or None,
        "user_agent": request.headers.get("User-Agent") or None,
    }


def _serialize_payload(payload: dict[str, Any]) -> dict[str, Any]:
    serialized = dict(payload)
    created_at = serialized.get("created_at")
    if isinstance(created_at, datetime):
        serialized["created_at"] = created_at.isoformat()
    return serialized


def _deserialize_payload(payload: dict[str, Any]) -> dict[str, Any]:
    restored = dict(payload)
    created_at = restored.get("created_at")
    if isinstance(created_at, str):
        restored["created_at"] = datetime.fromisoformat(created_at)
    return restored


class AuditRecorder:
    """Validate and persist audit records."""

    def __init__(
        self,
        config: Config | None = None,
        *,
        session_factory: Callable[[], Session] = get_session,
        queue: Queue | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.config = config or get_config()
        self._session_factory = session_factory
        self._queue = queue
        self._sleep = sleep
        self._clock = clock

    # ------------------------------------------------------------------
    # Payload construction
    # ------------------------------------------------------------------
    def build_payload(
        self,
        event: str,
        *,
        subject_type: Optional[str] = None,
        subject_id: Any = None,
        before: Optional[dict[str, Any]] = None,
        after: Optional[dict[str, Any]] = None,
        actor_id: Optional[str] = None,
        url: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        tags: str | Iterable[str] | None = None,
    ) -> dict[str, Any]:
        if not event or not str(event).strip():
            raise AuditValidationError("event is required")
        event = str(event).strip()

        is_system = subject_type in (None, "", SYSTEM_SUBJECT_TYPE)
        if is_system and subject_id is not None:
            raise AuditValidationError(
                "system events cannot reference a subject id"
            )
        if not is_system and subject_id is None:
            raise AuditValidationError(
                f"subject id is required for subject type {subject_type!r}"
            )
        if (
            not is_system
            and before is None
            and after is None
            and event not in self.config.snapshot_exempt_events
        ):
            raise AuditValidationError(
                f"event {event!r} needs a before or after snapshot"
            )

        if url is None and ip_address is None and user_agent is None:
            context = request_context()
            url = context["url"]
            ip_address = context["ip_address"]
            user_agent = context["user_agent"]

        return {
            "event": event,
            "subject_type": SYSTEM_SUBJECT_TYPE if is_system else subject_type,
            "subject_id": None if is_system else str(subject_id),
            "before": before,
            "after": after,
            "actor_id": actor_id,
            "url": url,
            "ip_address": ip_address,
            "user_agent": user_agent,
            "tags": encode_tags(tags),
            "created_at": self._clock(),
        }

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------
    def record(
        self,
        event: str,
        *,
        session: Session | None = None,
        **fields: Any,
    ) -> AuditRecord:
        """Persist an audit record synchronously.

        With an explicit ``session`` the record joins the caller's
        transaction and errors propagate unchanged. Otherwise the record
        is written in its own session with retry and fallback.
        """

        payload = self.build_payload(event, **fields)
        if session is not None:
            entry = AuditRecordRepository(session).record_event(**payload)
            _RECORDS_WRITTEN.labels(payload["event"]).inc()
            return entry
        return self.record_payload(payload)

    def dispatch(self, event: str, **fields: Any) -> Optional[str]:
        """Queue an audit record for background persistence.

        Returns the queued job id, or ``None`` when no queue is configured
        and the record was written synchronously instead.
        """

        payload = self.build_payload(event, **fields)
        if self._queue is None:
            self.record_payload(payload)
            return None
        job = self._queue.enqueue(
            "auditlog.services.recording.record_audit_event_job",
            _serialize_payload(payload),
        )
        logger.debug(
            "audit.queued event=%s job_id=%s", payload["event"], job.id
        )
        return job.id

    def record_payload(self, payload: dict[str, Any]) -> AuditRecord:
        retrying = Retrying(
            stop=stop_after_attempt(self.config.record_max_attempts),
            wait=wait_chain(
                *[wait_fixed(delay) for delay in self.config.record_backoff]
            ),
            retry=retry_if_exception_type(_TRANSIENT_ERRORS),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        try:
            entry = retrying(self._write, payload)
        except _TRANSIENT_ERRORS as exc:
            _RECORD_FAILURES.inc()
            logger.error(
                "audit.record_failed event=%s subject_type=%s "
                "subject_id=%s attempts=%s error=%s",
                payload["event"],
                payload["subject_type"],
                payload["subject_id"],
                self.config.record_max_attempts,
                exc,
            )
            self._append_fallback(payload, exc)
            raise AuditRecordingError(
                "failed to persist audit record", payload
            ) from exc
        _RECORDS_WRITTEN.labels(payload["event"]).inc()
        return entry

    def _write(self, payload: dict[str, Any]) -> AuditRecord:
        session = self._session_factory()
        try:
            entry = AuditRecordRepository(session).record_event(**payload)
            session.commit()
            return entry
        finally:
            session.close()

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        wait = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            "audit.record_retry attempt=%s wait_seconds=%.2f error=%s",
            retry_state.attempt_number,
            wait,
            exc,
        )

    def _append_fallback(
        self, payload: dict[str, Any], error: BaseException
    ) -> None:
        path = Path(self.config.fallback_log_path)
        line = json.dumps(
            {
                **_serialize_payload(payload),
                "error": str(error),
                "failed_at": self._clock().isoformat(),
            },
            default=str,
            sort_keys=True,
        )
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as handle:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
                try:
                    handle.write(line + "\n")
                    handle.flush()
                finally:
                    fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        except OSError:
            logger.exception("audit.fallback_failed path=%s", path)
            return
        _FALLBACK_WRITES.inc()
        logger.warning("audit.fallback_written path=%s", path)


def build_queue(config: Config) -> Queue | None:
    """Return the RQ queue for deferred recording, if Redis is configured."""

    if not config.redis_url:
        return None
    from redis import Redis

    return Queue(config.queue_name, connection=Redis.from_url(config.redis_url))


def record_audit_event_job(payload: dict[str, Any]) -> str:
    """RQ entry point persisting a queued audit payload."""

    recorder = AuditRecorder(get_config())
    entry = recorder.record_payload(_deserialize_payload(payload))
    return entry.id


__all__ = [
    "AuditRecorder",
    "AuditRecordingError",
    "AuditValidationError",
    "build_queue",
    "record_audit_event_job",
    "request_context",
]
