"""Tests for model helpers: timestamps, identities, daily notes."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from butler.db.models import (
    Record,
    SourceKind,
    daily_note_record,
    format_ts,
    parse_ts,
    truncate_ts,
)


def test_format_ts_fixed_width_utc():
    cest = timezone(timedelta(hours=2))
    value = datetime(2024, 5, 3, 11, 30, 0, 5, tzinfo=cest)
    assert format_ts(value) == "2024-05-03T09:30:00.000005Z"


def test_format_ts_naive_is_utc():
    assert format_ts(datetime(2024, 1, 1)) == "2024-01-01T00:00:00.000000Z"


def test_formatted_timestamps_sort_as_text():
    a = datetime(2024, 1, 1, 9, 59, 59, 999999, tzinfo=timezone.utc)
    b = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
    assert format_ts(a) < format_ts(b)


def test_parse_inverts_format():
    value = datetime(2024, 5, 3, 9, 30, 1, 250000, tzinfo=timezone.utc)
    assert parse_ts(format_ts(value)) == value
    assert parse_ts(None) is None


@pytest.mark.parametrize(
    "resolution,expected",
    [
        (timedelta(seconds=1), datetime(2024, 5, 3, 9, 30, 1, tzinfo=timezone.utc)),
        (timedelta(milliseconds=1), datetime(2024, 5, 3, 9, 30, 1, 250000, tzinfo=timezone.utc)),
        (timedelta(microseconds=1), datetime(2024, 5, 3, 9, 30, 1, 250400, tzinfo=timezone.utc)),
    ],
)
def test_truncate_ts(resolution, expected):
    value = datetime(2024, 5, 3, 9, 30, 1, 250400, tzinfo=timezone.utc)
    assert truncate_ts(value, resolution) == expected


def test_record_identity():
    r = Record(source_kind=SourceKind.GMAIL, external_key="m-1")
    assert r.identity == ("gmail", "m-1")
    assert Record(source_kind="personal").identity is None
    assert Record(source_kind=SourceKind.OTHER).is_timeless


def test_daily_note_record():
    modified = datetime(2024, 5, 3, 22, 15, tzinfo=timezone.utc)
    r = daily_note_record(date(2024, 5, 3), "went hiking", modified)
    assert r.source_kind is SourceKind.OBSIDIAN
    assert r.external_key == "2024-05-03"
    assert r.title == "2024-05-03"
    assert r.relevant_at == datetime(2024, 5, 3, tzinfo=timezone.utc)
    assert r.source_modified_at == modified
    assert r.category == "journal"
