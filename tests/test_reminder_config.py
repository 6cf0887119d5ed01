"""Tests for stored reminder settings."""

import json

import pytest

from src import database
from src.exceptions import InvalidDocumentUrlError, ReminderConfigError
from src.models import Audience, Horizon, ReminderKey, StaffMember
from src.reminder_config import (
    DESIGNATED_STAFF_KEY,
    ENABLED_REMINDERS_KEY,
    GENERAL_DOC_URLS_KEY,
    STAFF_BASED_DATA_KEY,
    delete_setting,
    disable_reminder,
    enable_reminder,
    load_enabled_keys,
    load_reminder_config,
    store_broadcast_recipients,
    store_designated_staff,
    store_document_urls,
    store_staff,
)

DOC = "application/vnd.google-apps.document"
ALICE = StaffMember("Alice", "alice@example.com")
BOB = StaffMember("Bob", "bob@example.com")


def _url(doc_id: str) -> str:
    return f"https://docs.google.com/document/d/{doc_id}/edit"


def _all_docs(doc_id: str) -> str:
    return DOC


def test_empty_config(tmp_path):
    config = load_reminder_config(tmp_path / "test.db")
    assert config.staff == ()
    assert config.broadcast_recipients == ()
    assert config.individuals == ()
    assert config.broadcast_today_doc_url is None


def test_store_and_load_roster_and_recipients(tmp_path):
    db_path = tmp_path / "test.db"
    store_staff([ALICE, BOB], db_path=db_path)
    store_broadcast_recipients(["alice@example.com", " alice@example.com ", "", "carol@example.com"],
                               db_path=db_path)

    config = load_reminder_config(db_path)
    assert config.staff == (ALICE, BOB)
    assert [r.email for r in config.broadcast_recipients] == ["alice@example.com", "carol@example.com"]
    assert config.broadcast_recipients[0].name == "Alice"
    assert config.broadcast_recipients[1].name == ""


def test_store_staff_rejects_duplicate_and_blank_names(tmp_path):
    db_path = tmp_path / "test.db"
    with pytest.raises(ReminderConfigError, match="already in use"):
        store_staff([ALICE, StaffMember("alice", "other@example.com")], db_path=db_path)
    with pytest.raises(ReminderConfigError, match="Missing name"):
        store_staff([StaffMember(" ", "x@example.com")], db_path=db_path)
    assert load_reminder_config(db_path).staff == ()


def test_designated_staff_without_documents(tmp_path):
    db_path = tmp_path / "test.db"
    store_designated_staff([ALICE, BOB], db_path=db_path)

    individuals = load_reminder_config(db_path).individuals
    assert [(i.name, i.email, i.today_doc_url) for i in individuals] == [
        ("Alice", "alice@example.com", None),
        ("Bob", "bob@example.com", None),
    ]


def test_store_document_urls(tmp_path):
    db_path = tmp_path / "test.db"
    store_designated_staff([ALICE, BOB], db_path=db_path)

    store_document_urls(
        _url("general-today"), _url("general-week"),
        {"Alice": (_url("alice-today"), _url("alice-week")), "Bob": (_url("bob-today"), None)},
        mime_type_of=_all_docs, db_path=db_path,
    )

    config = load_reminder_config(db_path)
    assert config.broadcast_today_doc_url == _url("general-today")
    assert config.broadcast_week_doc_url == _url("general-week")
    alice, bob = config.individuals
    assert alice.email == "alice@example.com"
    assert alice.week_doc_url == _url("alice-week")
    assert bob.today_doc_url == _url("bob-today")
    assert bob.week_doc_url is None

    stored = json.loads(database.get_property(STAFF_BASED_DATA_KEY, db_path=db_path))
    assert stored[0] == {"Alice": {
        "email": "alice@example.com",
        "todayReminderUrl": _url("alice-today"),
        "nextWeekReminderUrl": _url("alice-week"),
    }}


def test_invalid_and_duplicate_urls_store_nothing(tmp_path):
    db_path = tmp_path / "test.db"

    def mime_type_of(doc_id):
        return "application/pdf" if doc_id == "a-pdf" else DOC

    with pytest.raises(InvalidDocumentUrlError) as excinfo:
        store_document_urls(
            _url("shared"), _url("shared"),
            {"Alice": (_url("a-pdf"), "https://example.com/not-a-doc")},
            mime_type_of=mime_type_of, db_path=db_path,
        )

    assert excinfo.value.problems == [
        "Duplicate URL found for Next Week's General Reminder",
        "URL for Today's Reminder for Alice is not for Google Doc",
        "URL for Next Week's Reminder for Alice is not for Google Doc",
    ]
    assert database.get_property(GENERAL_DOC_URLS_KEY, db_path=db_path) is None
    assert database.get_property(STAFF_BASED_DATA_KEY, db_path=db_path) is None


def test_general_urls_only_keep_staff_data(tmp_path):
    db_path = tmp_path / "test.db"
    store_designated_staff([ALICE], db_path=db_path)
    store_document_urls(None, None, {"Alice": (_url("alice-today"), None)},
                        mime_type_of=_all_docs, db_path=db_path)

    store_document_urls(_url("general-today"), None, None, mime_type_of=_all_docs, db_path=db_path)

    config = load_reminder_config(db_path)
    assert config.broadcast_today_doc_url == _url("general-today")
    assert config.individuals[0].today_doc_url == _url("alice-today")


def test_malformed_settings_are_skipped(tmp_path):
    db_path = tmp_path / "test.db"
    database.set_property(DESIGNATED_STAFF_KEY, "not json", db_path=db_path)
    database.set_property(GENERAL_DOC_URLS_KEY, "[1, 2]", db_path=db_path)
    database.set_property(STAFF_BASED_DATA_KEY, json.dumps([{"Alice": {"email": ""}}, "junk"]),
                          db_path=db_path)

    config = load_reminder_config(db_path)
    assert config.individuals == ()
    assert config.broadcast_today_doc_url is None


def test_delete_setting(tmp_path):
    db_path = tmp_path / "test.db"
    store_staff([ALICE], db_path=db_path)

    assert delete_setting("staff", db_path=db_path) is True
    assert delete_setting("staff", db_path=db_path) is False
    with pytest.raises(ReminderConfigError):
        delete_setting("nope", db_path=db_path)


def test_no_reminder_is_enabled_by_default(tmp_path):
    assert load_enabled_keys(tmp_path / "test.db") == []


def test_enable_and_disable_reminders(tmp_path):
    db_path = tmp_path / "test.db"
    broadcast_today = ReminderKey(Audience.BROADCAST, Horizon.TODAY)
    individual_week = ReminderKey(Audience.PER_INDIVIDUAL, Horizon.WEEK)

    assert enable_reminder(individual_week, db_path) is True
    assert enable_reminder(broadcast_today, db_path) is True
    assert enable_reminder(broadcast_today, db_path) is False
    assert load_enabled_keys(db_path) == [broadcast_today, individual_week]

    assert disable_reminder(individual_week, db_path) is True
    assert disable_reminder(individual_week, db_path) is False
    assert load_enabled_keys(db_path) == [broadcast_today]


def test_enabled_reminders_skip_unknown_entries(tmp_path):
    db_path = tmp_path / "test.db"
    database.set_property(ENABLED_REMINDERS_KEY, json.dumps(["broadcast_week", "everyone_today", 3]),
                          db_path=db_path)

    assert load_enabled_keys(db_path) == [ReminderKey(Audience.BROADCAST, Horizon.WEEK)]


def test_enabled_reminders_can_be_deleted(tmp_path):
    db_path = tmp_path / "test.db"
    enable_reminder(ReminderKey(Audience.BROADCAST, Horizon.TODAY), db_path)

    assert delete_setting("enabled_reminders", db_path=db_path) is True
    assert load_enabled_keys(db_path) == []
