from unittest.mock import MagicMock

import pytest
from sqlalchemy import func, select, text

from auditlog.models import AuditRecord
from auditlog.services.resolver import BatchSubjectResolver, resolve_subjects
from auditlog.services.subjects import SubjectRegistry, default_registry


class CountingLoader:
    def __init__(self, entities):
        self.entities = entities
        self.calls = []

    def __call__(self, session, ids):
        self.calls.append(sorted(ids))
        return {key: self.entities[key] for key in ids if key in self.entities}


def _record(subject_type, subject_id=None):
    return AuditRecord(
        event="updated", subject_type=subject_type, subject_id=subject_id
    )


def test_one_lookup_per_distinct_type():
    posts = CountingLoader({"1": "post-1", "2": "post-2"})
    groups = CountingLoader({"9": "group-9"})
    registry = SubjectRegistry()
    registry.register("blog.post", loader=posts)
    registry.register("groups.group", loader=groups)

    records = [
        _record("blog.post", "1"),
        _record("groups.group", "9"),
        _record("blog.post", "2"),
        _record("blog.post", "1"),
        _record("blog.post", "404"),
    ]

    resolver = BatchSubjectResolver(registry, session=MagicMock())
    resolved = resolver.resolve(records)

    assert resolved is records
    assert posts.calls == [["1", "2", "404"]]
    assert groups.calls == [["9"]]
    assert [record.subject for record in records] == [
        "post-1",
        "group-9",
        "post-2",
        "post-1",
        None,
    ]


def test_system_and_untyped_records_skip_lookup():
    loader = CountingLoader({})
    registry = SubjectRegistry()
    registry.register("blog.post", loader=loader)
    records = [_record("system"), _record(None), _record("")]
    for record in records:
        record.subject = "stale"

    resolve_subjects(records, registry, session=MagicMock())

    assert loader.calls == []
    assert all(record.subject is None for record in records)


def test_unregistered_type_resolves_to_none_without_lookup():
    registry = SubjectRegistry()
    records = [_record("legacy.Widget", "1"), _record("legacy.Widget", "2")]

    BatchSubjectResolver(registry, session=MagicMock()).resolve(records)

    assert [record.subject for record in records] == [None, None]


def test_validity_checked_once_per_type():
    registry = SubjectRegistry()
    registry.register("blog.post", loader=CountingLoader({"1": "p"}))
    checks = []
    original = registry.is_resolvable

    def counting_is_resolvable(tag):
        checks.append(tag)
        return original(tag)

    registry.is_resolvable = counting_is_resolvable
    records = [_record("blog.post", "1") for _ in range(5)]
    records += [_record("gone.Type", "1") for _ in range(3)]

    BatchSubjectResolver(registry, session=MagicMock()).resolve(records)

    assert sorted(checks) == ["blog.post", "gone.Type"]


def test_failing_group_does_not_affect_others():
    def broken(session, ids):
        raise RuntimeError("storage unavailable")

    registry = SubjectRegistry()
    registry.register("broken.Type", loader=broken)
    registry.register("blog.post", loader=CountingLoader({"1": "post"}))
    records = [_record("broken.Type", "1"), _record("blog.post", "1")]
    session = MagicMock()

    BatchSubjectResolver(registry, session=session).resolve(records)

    assert records[0].subject is None
    assert records[1].subject == "post"
    assert session.begin_nested.call_count == 2


def test_failed_lookup_leaves_session_usable(
    app, session, make_user, make_record
):
    def missing_table(session, ids):
        session.execute(text("SELECT id FROM missing_widgets"))
        return {}

    user = make_user()
    make_record("updated", subject_type="legacy.Widget", subject_id="1",
                after={"a": 1})
    make_record("updated", subject_type="user", subject_id=user.id,
                after={"name": "Alice"})
    registry = default_registry()
    registry.register("legacy.Widget", loader=missing_table)

    records = list(
        session.scalars(select(AuditRecord).order_by(AuditRecord.subject_type))
    )
    BatchSubjectResolver(registry, session).resolve(records)

    by_type = {record.subject_type: record for record in records}
    assert by_type["legacy.Widget"].subject is None
    assert by_type["user"].subject.email == "alice@example.com"
    total = session.execute(
        select(func.count()).select_from(AuditRecord)
    ).scalar_one()
    assert total == 2


def test_empty_input_returns_empty():
    assert BatchSubjectResolver(SubjectRegistry(), None).resolve([]) == []


def test_default_registry_resolves_users(app, session, make_user, make_record):
    user = make_user()
    make_record("updated", subject_type="user", subject_id=user.id,
                after={"name": "Alice"})
    make_record("login", subject_type="system")

    records = list(
        session.scalars(select(AuditRecord).order_by(AuditRecord.event))
    )
    BatchSubjectResolver(default_registry(), session).resolve(records)

    by_event = {record.event: record for record in records}
    assert by_event["updated"].subject.email == "alice@example.com"
    assert by_event["login"].subject is None


def test_registry_rejects_system_tag():
    registry = SubjectRegistry()
    with pytest.raises(ValueError):
        registry.register("system", loader=lambda session, ids: {})
    assert "system" not in registry
    assert len(registry) == 0
    assert registry.label_for("Modules\\Blog\\Models\\Post") == "Post"
