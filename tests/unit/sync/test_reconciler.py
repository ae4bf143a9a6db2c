"""Tests for the Reconciler and its identity / freshness policies."""

from __future__ import annotations

import sqlite3
import threading
from datetime import date, datetime, timedelta, timezone

import pytest

from butler.db.models import Record, SourceKind, daily_note_record
from butler.errors import OperationCancelled
from butler.sync.reconciler import (
    FreshnessGatedPolicy,
    IdentityKeyedPolicy,
    Reconciler,
)

T0 = datetime(2024, 5, 3, 22, 0, tzinfo=timezone.utc)


def _event(key, title="Standup", **kwargs):
    return Record(source_kind=SourceKind.GOOGLE_CALENDAR, external_key=key, title=title, **kwargs)


def _batch(n=3):
    return [_event(f"evt-{i}", title=f"Event {i}", relevant_at=T0 + timedelta(hours=i)) for i in range(n)]


def _day(body, modified, day=date(2024, 5, 3)):
    return daily_note_record(day, body, modified)


# ------------------------------------------------------------------
# Identity-keyed policy
# ------------------------------------------------------------------


def test_identity_first_call_adds(repo):
    result = Reconciler(repo).reconcile(_batch(3))
    assert (result.added, result.updated, result.unchanged, result.failed) == (3, 0, 0, 0)
    assert result.scanned == 3


def test_identity_second_call_unchanged(repo):
    reconciler = Reconciler(repo)
    reconciler.reconcile(_batch(3))
    result = reconciler.reconcile(_batch(3))
    assert (result.added, result.updated, result.unchanged) == (0, 0, 3)
    assert repo.count_records_by_source(SourceKind.GOOGLE_CALENDAR) == 3


def test_identity_unchanged_does_not_bump_updated_at(repo):
    reconciler = Reconciler(repo)
    reconciler.reconcile([_event("evt-1")])
    before = repo.find_record(SourceKind.GOOGLE_CALENDAR, "evt-1").updated_at
    reconciler.reconcile([_event("evt-1")])
    assert repo.find_record(SourceKind.GOOGLE_CALENDAR, "evt-1").updated_at == before


def test_identity_changed_record_updates(repo):
    reconciler = Reconciler(repo)
    reconciler.reconcile([_event("evt-1")])
    original = repo.find_record(SourceKind.GOOGLE_CALENDAR, "evt-1")

    result = reconciler.reconcile([_event("evt-1", title="Standup (moved)")])

    stored = repo.find_record(SourceKind.GOOGLE_CALENDAR, "evt-1")
    assert result.updated == 1
    assert stored.title == "Standup (moved)"
    assert stored.id == original.id
    assert stored.created_at == original.created_at


def test_identity_same_key_other_source_is_distinct(repo):
    records = [
        Record(source_kind=SourceKind.GMAIL, external_key="x", body="mail"),
        Record(source_kind=SourceKind.GOOGLE_CALENDAR, external_key="x", body="event"),
    ]
    result = Reconciler(repo).reconcile(records)
    assert result.added == 2


def test_identity_keyless_always_inserts(repo):
    reconciler = Reconciler(repo)
    reconciler.reconcile([Record(source_kind=SourceKind.PERSONAL, body="buy milk")])
    result = reconciler.reconcile([Record(source_kind=SourceKind.PERSONAL, body="buy milk")])
    assert result.added == 1
    assert repo.count_records_by_source(SourceKind.PERSONAL) == 2


def test_blank_key_treated_as_keyless(repo):
    result = Reconciler(repo).reconcile([Record(source_kind=SourceKind.PERSONAL, external_key="  ", body="x")])
    assert result.added == 1
    assert repo.recent_records()[0].external_key is None


def test_duplicate_identity_within_batch(repo):
    result = Reconciler(repo).reconcile([_event("evt-1", title="a"), _event("evt-1", title="b")])
    assert (result.added, result.updated) == (1, 1)
    assert repo.find_record(SourceKind.GOOGLE_CALENDAR, "evt-1").title == "b"


# ------------------------------------------------------------------
# Per-record failures
# ------------------------------------------------------------------


def test_invalid_records_isolated(repo):
    candidates = [
        _event("evt-1"),
        Record(source_kind=SourceKind.PERSONAL),  # neither key nor body
        Record(source_kind="fax", external_key="f-1"),
        "not a record",
        _event("evt-2"),
    ]
    result = Reconciler(repo).reconcile(candidates)
    assert result.added == 2
    assert result.failed == 3
    assert [e.position for e in result.errors] == [1, 2, 3]
    assert repo.count_records_by_source(SourceKind.GOOGLE_CALENDAR) == 2


def test_constraint_violation_rolls_back_only_that_record(repo):
    result = Reconciler(repo).reconcile([_event("evt-1", title=None), _event("evt-2")])
    assert result.failed == 1
    assert result.errors[0].identity == ("google_calendar", "evt-1")
    assert result.added == 1
    assert repo.find_record(SourceKind.GOOGLE_CALENDAR, "evt-1") is None


@pytest.mark.parametrize(
    "malformed",
    [
        {"title": ["not", "text"]},
        {"relevant_at": "2024-01-01"},
        {"source_modified_at": 1714730400},
        {"category": 7},
    ],
)
def test_malformed_field_isolated_mid_batch(repo, malformed):
    candidates = [
        Record(source_kind=SourceKind.GMAIL, external_key="k1", title="first"),
        Record(source_kind=SourceKind.GMAIL, external_key="k2", **malformed),
        Record(source_kind=SourceKind.GMAIL, external_key="k3", title="third"),
    ]
    result = Reconciler(repo).reconcile(candidates)

    assert result.added == 2
    assert result.failed == 1
    assert result.errors[0].position == 1
    assert result.errors[0].identity == ("gmail", "k2")
    assert repo.find_record(SourceKind.GMAIL, "k1") is not None
    assert repo.find_record(SourceKind.GMAIL, "k2") is None
    assert repo.find_record(SourceKind.GMAIL, "k3") is not None


def test_database_error_isolated_mid_batch(repo, monkeypatch):
    real_insert = repo.insert_record

    def flaky_insert(record):
        if record.external_key == "evt-1":
            raise sqlite3.OperationalError("disk I/O error")
        return real_insert(record)

    monkeypatch.setattr(repo, "insert_record", flaky_insert)
    result = Reconciler(repo).reconcile(_batch(3))

    assert result.added == 2
    assert result.failed == 1
    assert "disk I/O error" in result.errors[0].message
    assert repo.find_record(SourceKind.GOOGLE_CALENDAR, "evt-0") is not None
    assert repo.find_record(SourceKind.GOOGLE_CALENDAR, "evt-2") is not None


def test_string_source_kind_is_coerced(repo):
    result = Reconciler(repo).reconcile([Record(source_kind="gmail", external_key="m-1", body="hi")])
    assert result.added == 1
    assert repo.find_record(SourceKind.GMAIL, "m-1") is not None


# ------------------------------------------------------------------
# Cancellation
# ------------------------------------------------------------------


def test_cancel_before_start_writes_nothing(repo):
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(OperationCancelled):
        Reconciler(repo).reconcile(_batch(3), cancel=cancel)
    assert repo.count_records_by_source(SourceKind.GOOGLE_CALENDAR) == 0


def test_cancel_mid_batch_rolls_back_everything(repo):
    cancel = threading.Event()

    def candidates():
        yield _event("evt-1")
        yield _event("evt-2")
        cancel.set()
        yield _event("evt-3")

    with pytest.raises(OperationCancelled):
        Reconciler(repo).reconcile(candidates(), cancel=cancel)
    assert repo.count_records_by_source(SourceKind.GOOGLE_CALENDAR) == 0
    assert not repo.conn.in_transaction


# ------------------------------------------------------------------
# Freshness-gated policy
# ------------------------------------------------------------------


def test_freshness_inserts_new(repo):
    result = Reconciler(repo, FreshnessGatedPolicy()).reconcile([_day("v1", T0)])
    assert result.added == 1


def test_freshness_newer_overwrites(repo):
    reconciler = Reconciler(repo, FreshnessGatedPolicy())
    reconciler.reconcile([_day("v1", T0)])
    before = repo.find_record(SourceKind.OBSIDIAN, "2024-05-03")

    result = reconciler.reconcile([_day("v2", T0 + timedelta(minutes=5))])

    after = repo.find_record(SourceKind.OBSIDIAN, "2024-05-03")
    assert result.updated == 1
    assert after.body == "v2"
    assert after.source_modified_at == T0 + timedelta(minutes=5)
    assert after.updated_at > before.updated_at


def test_freshness_older_never_overwrites(repo):
    reconciler = Reconciler(repo, FreshnessGatedPolicy())
    reconciler.reconcile([_day("v2", T0)])
    result = reconciler.reconcile([_day("stale", T0 - timedelta(hours=1))])
    assert result.unchanged == 1
    assert repo.find_record(SourceKind.OBSIDIAN, "2024-05-03").body == "v2"


def test_freshness_equal_timestamp_is_unchanged(repo):
    reconciler = Reconciler(repo, FreshnessGatedPolicy())
    reconciler.reconcile([_day("v1", T0)])
    result = reconciler.reconcile([_day("different body", T0)])
    assert result.unchanged == 1
    assert repo.find_record(SourceKind.OBSIDIAN, "2024-05-03").body == "v1"


def test_freshness_sub_resolution_jitter_ignored(repo):
    reconciler = Reconciler(repo, FreshnessGatedPolicy(timedelta(seconds=1)))
    reconciler.reconcile([_day("v1", T0)])
    result = reconciler.reconcile([_day("v1 again", T0 + timedelta(milliseconds=400))])
    assert result.unchanged == 1


def test_freshness_finer_resolution_sees_jitter(repo):
    reconciler = Reconciler(repo, FreshnessGatedPolicy(timedelta(milliseconds=1)))
    reconciler.reconcile([_day("v1", T0)])
    result = reconciler.reconcile([_day("v1 again", T0 + timedelta(milliseconds=400))])
    assert result.updated == 1


def test_freshness_requires_modified_time(repo):
    record = Record(source_kind=SourceKind.OBSIDIAN, external_key="2024-05-03", body="x")
    result = Reconciler(repo, FreshnessGatedPolicy()).reconcile([record])
    assert result.failed == 1
    assert "source_modified_at" in result.errors[0].message


def test_freshness_requires_natural_key(repo):
    record = Record(source_kind=SourceKind.OBSIDIAN, body="x", source_modified_at=T0)
    result = Reconciler(repo, FreshnessGatedPolicy()).reconcile([record])
    assert result.failed == 1


def test_freshness_resolution_must_be_positive():
    with pytest.raises(ValueError):
        FreshnessGatedPolicy(timedelta(0))


def test_policy_names():
    assert IdentityKeyedPolicy.name == "identity"
    assert FreshnessGatedPolicy.name == "freshness"
