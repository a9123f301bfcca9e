"""Audit log listing, detail, export and dashboard endpoints."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, TypeVar

from flask import (
    Blueprint,
    Response,
    current_app,
    jsonify,
    request,
    stream_with_context,
)

from auditlog.auth.jwt_handler import (
    VIEW_PERMISSION,
    current_actor_id,
    require_permission,
)
from auditlog.db.session import get_session
from auditlog.models.repositories import (
    AuditRecordRepository,
    RepositoryError,
    UserRepository,
)
from auditlog.routes.helpers import (
    error_response,
    extension,
    repository_error_response,
)
from auditlog.schemas.audit import (
    ActorSchema,
    AuditRecordSchema,
    DashboardSchema,
)
from auditlog.services.dashboard import DashboardService
from auditlog.services.events import AuditEvent
from auditlog.services.export import (
    AuditExporter,
    ExportValidationError,
    export_filename,
    validate_chunk_size,
)
from auditlog.services.filters import FilterOptions
from auditlog.services.formatters import format_changes
from auditlog.services.resolver import BatchSubjectResolver
from auditlog.services.transactions import transactional_session
from auditlog.validators.query import QueryValidationError, parse_audit_query

audit_bp = Blueprint("audit_logs", __name__, url_prefix="/audit-logs")

record_schema = AuditRecordSchema()
records_schema = AuditRecordSchema(many=True)
actors_schema = ActorSchema(many=True)
dashboard_schema = DashboardSchema()

T = TypeVar("T")


def _execute_audit_repo(
    transaction_name: str, handler: Callable[[AuditRecordRepository], T]
) -> tuple[T | None, Response | tuple | None]:
    try:
        with transactional_session(name=transaction_name) as session:
            repository = AuditRecordRepository(session)
            return handler(repository), None
    except RepositoryError as exc:
        return None, repository_error_response(exc)


def _resolver(repository: AuditRecordRepository) -> BatchSubjectResolver:
    return BatchSubjectResolver(
        extension("subject_registry"), repository.session
    )


def _filter_options(repository: AuditRecordRepository) -> FilterOptions:
    return FilterOptions(repository, extension("cache_service"))


@audit_bp.get("")
@require_permission(VIEW_PERMISSION)
def list_audit_logs():
    """Return paginated audit records with resolved subjects."""

    try:
        query = parse_audit_query(request.args)
    except QueryValidationError as exc:
        return error_response(400, exc.message, exc.details)

    def handler(repository: AuditRecordRepository) -> dict:
        items, total = repository.list_records(query)
        _resolver(repository).resolve(items)
        options = _filter_options(repository)
        return {
            "items": records_schema.dump(items),
            "page": query.page,
            "per_page": query.per_page,
            "total": total,
            "sort": query.sort_field,
            "direction": query.sort_order,
            "filters": query.filters(),
            "users": actors_schema.dump(
                UserRepository(repository.session).list_actors()
            ),
            "model_types": options.model_types(),
            "event_types": options.event_types(),
        }

    payload, error = _execute_audit_repo("audit.list", handler)
    if error:
        return error
    return jsonify(payload)


@audit_bp.get("/<string:record_id>")
@require_permission(VIEW_PERMISSION)
def get_audit_log(record_id: str):
    """Return one audit record with its subject and formatted changes."""

    def handler(repository: AuditRecordRepository) -> dict | None:
        record = repository.get(record_id)
        if record is None:
            return None
        _resolver(repository).resolve([record])
        serialized = record_schema.dump(record)
        serialized["changes"] = format_changes(
            record.before, record.after, record.event
        )
        return serialized

    payload, error = _execute_audit_repo("audit.get", handler)
    if error:
        return error
    if payload is None:
        return error_response(404, "audit log not found")
    return jsonify({"audit_log": payload})


@audit_bp.get("/export")
@require_permission(VIEW_PERMISSION)
def export_audit_logs():
    """Stream filtered audit records as a CSV attachment."""

    try:
        query = parse_audit_query(request.args)
    except QueryValidationError as exc:
        return error_response(400, exc.message, exc.details)
    config = current_app.config["APP_CONFIG"]
    now = datetime.now(timezone.utc)

    def handler(repository: AuditRecordRepository) -> int:
        total = repository.count_records(query)
        actor_id = current_actor_id()
        if actor_id and not repository.actor_exists(actor_id):
            actor_id = None
        extension("audit_recorder").record(
            AuditEvent.EXPORT,
            session=repository.session,
            actor_id=actor_id,
            after={
                "format": "CSV",
                "record_count": total,
                "exported_at": now.isoformat(),
                "filters": {
                    key: value
                    for key, value in query.filters().items()
                    if value is not None
                },
            },
            tags=["export"],
        )
        return total

    try:
        chunk_size = validate_chunk_size(config.export_chunk_size)
    except ExportValidationError as exc:
        return error_response(400, str(exc))

    total, error = _execute_audit_repo("audit.export", handler)
    if error:
        return error

    def generate():
        session = get_session()
        try:
            exporter = AuditExporter(
                AuditRecordRepository(session),
                chunk_size=chunk_size,
            )
            yield from exporter.iter_csv(query)
        finally:
            session.close()

    filename = export_filename(now)
    current_app.logger.info(
        "audit.export filename=%s total=%s", filename, total
    )
    return Response(
        stream_with_context(generate()),
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@audit_bp.get("/filters")
@require_permission(VIEW_PERMISSION)
def filter_options():
    """Return the dropdown values for the listing filters."""

    def handler(repository: AuditRecordRepository) -> dict:
        payload = _filter_options(repository).as_dict()
        payload["users"] = actors_schema.dump(
            UserRepository(repository.session).list_actors()
        )
        return payload

    payload, error = _execute_audit_repo("audit.filters", handler)
    if error:
        return error
    return jsonify(payload)


@audit_bp.get("/dashboard")
@require_permission(VIEW_PERMISSION)
def dashboard():
    """Return totals, the seven day event chart and recent activity."""

    summary, error = _execute_audit_repo(
        "audit.dashboard",
        lambda repository: DashboardService(repository).summary(),
    )
    if error:
        return error
    return jsonify(dashboard_schema.dump(summary))
