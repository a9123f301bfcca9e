from datetime import datetime

import pytest

from auditlog.services.formatters import (
    AuthenticationEventFormatter,
    FileEventFormatter,
    GenericEventFormatter,
    RelationshipEventFormatter,
    UserEventFormatter,
    format_changes,
    format_field_name,
    format_file_size,
    format_value,
    formatter_for,
)


def test_generic_creation_lists_each_attribute():
    lines = GenericEventFormatter().format(
        {}, {"name": "Alice", "is_active": True, "notes": None}, "created"
    )
    assert lines == ["Added Name: Alice", "Added Is Active: Yes", "Added Notes"]


def test_generic_deletion_mirrors_creation():
    lines = GenericEventFormatter().format({"title": "Post"}, {}, "deleted")
    assert lines == ["Removed Title: Post"]


def test_generic_update_diff_phrasings():
    before = {"name": "Old", "email": "a@example.com", "bio": None, "age": 3}
    after = {"name": "New", "email": None, "bio": "Hello", "age": 3}

    lines = GenericEventFormatter().format(before, after, "updated")

    assert lines == [
        "Changed Name from Old to New",
        "Removed Email (was a@example.com)",
        "Set Bio to Hello",
    ]


def test_generic_update_includes_keys_only_in_after():
    lines = GenericEventFormatter().format({"a": 1}, {"a": 1, "b": 2}, "updated")
    assert lines == ["Set B to 2"]


@pytest.mark.parametrize("old, new", [(None, ""), ("", None)])
def test_generic_update_skips_blank_to_null_changes(old, new):
    lines = GenericEventFormatter().format(
        {"nickname": old, "x": 1}, {"nickname": new, "x": 1}, "updated"
    )
    assert lines == []


def test_generic_empty_snapshots_yield_nothing():
    assert GenericEventFormatter().format({}, {}, "updated") == []


def test_generic_export_event():
    lines = GenericEventFormatter().format(
        {},
        {
            "format": "CSV",
            "record_count": 1,
            "exported_at": "2025-01-05T15:04:00",
        },
        "export",
    )
    assert lines == [
        "Exported audit logs as CSV",
        "Exported 1 record",
        "Export time: January 5, 2025 at 3:04 PM",
    ]


def test_authentication_formatter_phrasings():
    formatter = AuthenticationEventFormatter()
    assert formatter.format({}, {"email": "a@b.io"}, "login") == [
        "User a@b.io logged in"
    ]
    assert formatter.format({}, {}, "login") == ["User logged in"]
    assert formatter.format({"email": "a@b.io"}, {}, "logout") == [
        "User a@b.io logged out"
    ]
    assert formatter.format(
        {}, {"email": "a@b.io", "name": "Ann"}, "registered"
    ) == ["User Ann (a@b.io) registered"]
    assert formatter.format({}, {}, "password_reset_requested") == [
        "Password reset requested"
    ]


def test_category_formatters_ignore_unknown_events():
    assert AuthenticationEventFormatter().format({}, {"a": 1}, "created") == []
    assert UserEventFormatter().format({}, {"a": 1}, "login") == []
    assert FileEventFormatter().format({}, {"a": 1}, "updated") == []


def test_user_event_formatter():
    formatter = UserEventFormatter()
    assert formatter.format(
        {"email": "a@b.io", "name": "Ann"}, {}, "account_deleted"
    ) == ["Account deleted for user Ann (a@b.io)"]
    assert formatter.format(
        {"email": "old@b.io"}, {"email": "new@b.io"}, "email_changed"
    ) == ["Email changed from old@b.io to new@b.io"]
    assert formatter.format({}, {"email": "a@b.io"}, "email_verified") == [
        "Email a@b.io verified"
    ]


def test_file_event_formatter():
    lines = FileEventFormatter().format(
        {},
        {
            "filename": "report.pdf",
            "is_temporary": False,
            "mime_type": "application/pdf",
            "size": 1536,
        },
        "file_uploaded",
    )
    assert lines == [
        "File 'report.pdf' uploaded (permanent)",
        "MIME type: application/pdf",
        "Size: 1.5 KB",
    ]
    assert FileEventFormatter().format({}, {}, "file_deleted") == [
        "File deleted"
    ]


def test_relationship_formatter_uses_names_and_counts():
    before = {"roles": {"1": "Admin"}, "roles_ids": ["1"]}
    after = {"roles": {"2": "Editor"}, "roles_ids": ["2"]}

    assert RelationshipEventFormatter().format(
        before, after, "relationship_synced"
    ) == ["Added Roles: Editor", "Removed Roles: Admin"]

    unnamed = RelationshipEventFormatter().format(
        {"tags_ids": []}, {"tags": {}, "tags_ids": ["7", "8"]}
    )
    assert unnamed == ["Added Tags: 2 item(s)"]


def test_relationship_formatter_without_change():
    values = {"roles": {"1": "Admin"}, "roles_ids": ["1"]}
    assert RelationshipEventFormatter().format(values, values) == [
        "Relationship synchronized"
    ]


@pytest.mark.parametrize(
    "event, expected",
    [
        ("login", AuthenticationEventFormatter),
        ("email_verified", UserEventFormatter),
        ("file_uploaded", FileEventFormatter),
        ("relationship_synced", RelationshipEventFormatter),
        ("updated", GenericEventFormatter),
        ("something_custom", GenericEventFormatter),
    ],
)
def test_formatter_for_dispatches_by_event(event, expected):
    assert isinstance(formatter_for(event), expected)


def test_format_changes_accepts_json_text_and_none():
    assert format_changes(None, '{"name": "Bob"}', "created") == [
        "Added Name: Bob"
    ]
    assert format_changes(None, None, "updated") == []


def test_value_helpers():
    assert format_field_name("first_name") == "First Name"
    assert format_field_name("last-login") == "Last Login"
    assert format_value(False) == "No"
    assert format_value([1, 2]) == "[1,2]"
    assert format_value({"a": 1}) == '{"a":1}'
    assert format_value("") is None
    assert format_value(datetime(2025, 1, 5, 0, 30)) == (
        "January 5, 2025 at 12:30 AM"
    )
    assert format_value("x" * 120) == "x" * 100 + "..."
    assert format_value("2025-01-05 15:04:00") == (
        "January 5, 2025 at 3:04 PM"
    )
    assert format_value(42) == "42"


def test_format_file_size():
    assert format_file_size(0) == "0 B"
    assert format_file_size(512) == "512 B"
    assert format_file_size(1024 * 1024 * 3) == "3 MB"
    assert format_file_size("garbage") == "0 B"
