import csv
import io
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from auditlog.services.export import (
    EXPORT_HEADER,
    AuditExporter,
    ExportValidationError,
    export_filename,
    export_row,
)
from auditlog.validators.query import AuditQuery

BASE = datetime(2025, 1, 1, tzinfo=timezone.utc)


class FakeStore:
    """In-memory store ordered newest first, tracking chunk sizes."""

    def __init__(self, count):
        self.rows = [
            SimpleNamespace(
                id=f"{index:06d}",
                actor=None,
                event="updated",
                subject_type="Modules\\Blog\\Models\\Post",
                subject_id=str(index),
                before={"title": "old"},
                after={"title": "new"},
                url=None,
                ip_address="10.0.0.1",
                user_agent=None,
                created_at=BASE + timedelta(minutes=index),
            )
            for index in range(count)
        ]
        self.rows.sort(key=lambda row: (row.created_at, row.id), reverse=True)
        self.fetches = []

    def count_records(self, query):
        return len(self.rows)

    def fetch_chunk(self, query, *, limit, after=None):
        rows = self.rows
        if after is not None:
            rows = [row for row in rows if (row.created_at, row.id) < after]
        chunk = rows[:limit]
        self.fetches.append(len(chunk))
        return chunk


def test_ten_thousand_rows_fetched_in_twenty_chunks():
    store = FakeStore(10_000)
    exporter = AuditExporter(store, chunk_size=500)

    max_live = 0
    seen = 0
    for _ in exporter.iter_records(AuditQuery()):
        seen += 1
        max_live = max(max_live, store.fetches[-1])

    assert seen == 10_000
    assert len(store.fetches) == 20
    assert max_live <= 500


def test_partial_last_chunk():
    store = FakeStore(1001)
    list(AuditExporter(store, chunk_size=500).iter_records(AuditQuery()))
    assert store.fetches == [500, 500, 1]


def test_empty_result_fetches_nothing():
    store = FakeStore(0)
    rows = list(AuditExporter(store, chunk_size=50).iter_rows(AuditQuery()))
    assert rows == [list(EXPORT_HEADER)]
    assert store.fetches == []


@pytest.mark.parametrize("size", [0, -1, "abc", 2.5, True])
def test_invalid_chunk_size(size):
    with pytest.raises(ExportValidationError):
        AuditExporter(FakeStore(1), chunk_size=size)


def test_csv_output_is_newest_first():
    store = FakeStore(3)
    text = "".join(AuditExporter(store, chunk_size=2).iter_csv(AuditQuery()))

    rows = list(csv.reader(io.StringIO(text)))

    assert rows[0] == list(EXPORT_HEADER)
    assert [row[0] for row in rows[1:]] == ["000002", "000001", "000000"]
    assert rows[1][1] == "System"
    assert rows[1][3] == "Post"
    assert rows[1][5] == '{"title": "old"}'
    assert rows[1][7] == ""
    assert rows[1][10] == "2025-01-01 00:02:00"


def test_export_row_uses_actor_name():
    record = SimpleNamespace(
        id="abc",
        actor=SimpleNamespace(name="Alice"),
        event="login",
        subject_type="system",
        subject_id=None,
        before=None,
        after={"email": "a@b.io"},
        url="https://app.test/login",
        ip_address="127.0.0.1",
        user_agent="pytest",
        created_at=datetime(2025, 3, 4, 5, 6, 7),
    )
    assert export_row(record) == [
        "abc",
        "Alice",
        "login",
        "system",
        "",
        "null",
        '{"email": "a@b.io"}',
        "https://app.test/login",
        "127.0.0.1",
        "pytest",
        "2025-03-04 05:06:07",
    ]


def test_export_filename():
    stamp = datetime(2025, 3, 4, 5, 6, 7, tzinfo=timezone.utc)
    assert export_filename(stamp) == "audit-logs-2025-03-04-050607.csv"
