"""Tests for butler import."""

from __future__ import annotations

import json

from typer.testing import CliRunner

from butler.cli.main import app
from butler.db.connection import Database
from butler.db.models import SourceKind
from butler.db.repository import Repository

runner = CliRunner()


def _write(path, items) -> str:
    path.write_text(json.dumps(items), encoding="utf-8")
    return str(path)


def _repo(project):
    return Repository(Database(project / ".butler.db").connect())


def test_import_adds_records(project):
    file = _write(
        project / "cal.json",
        [
            {"external_key": "evt-1", "title": "Standup", "relevant_at": "2024-05-03T09:00:00Z"},
            {"external_key": "evt-2", "title": "Dentist"},
        ],
    )
    result = runner.invoke(app, ["import", file, "--source", "google_calendar"])

    assert result.exit_code == 0, result.output
    assert "Added: 2" in result.output
    repo = _repo(project)
    assert repo.count_records_by_source(SourceKind.GOOGLE_CALENDAR) == 2
    stored = repo.find_record(SourceKind.GOOGLE_CALENDAR, "evt-1")
    assert stored.relevant_at.hour == 9
    repo.conn.close()


def test_import_twice_does_not_duplicate(project):
    file = _write(project / "cal.json", [{"external_key": "evt-1", "title": "Standup"}])
    runner.invoke(app, ["import", file, "--source", "google_calendar"])

    result = runner.invoke(app, ["import", file, "--source", "google_calendar"])

    assert result.exit_code == 0
    assert "Unchanged: 1" in result.output
    repo = _repo(project)
    assert repo.count_records_by_source(SourceKind.GOOGLE_CALENDAR) == 1
    repo.conn.close()


def test_import_freshness_policy_keeps_newer(project):
    newer = _write(
        project / "new.json",
        [{"external_key": "2024-05-03", "body": "v2", "source_modified_at": "2024-05-03T12:00:00Z"}],
    )
    older = _write(
        project / "old.json",
        [{"external_key": "2024-05-03", "body": "v1", "source_modified_at": "2024-05-03T08:00:00Z"}],
    )
    runner.invoke(app, ["import", newer, "--source", "obsidian", "--policy", "freshness"])
    result = runner.invoke(app, ["import", older, "--source", "obsidian", "--policy", "freshness"])

    assert result.exit_code == 0
    repo = _repo(project)
    assert repo.find_record(SourceKind.OBSIDIAN, "2024-05-03").body == "v2"
    repo.conn.close()


def test_import_reports_invalid_records(project):
    file = _write(project / "j.json", [{"external_key": "2024-05-03", "body": "no timestamp"}])
    result = runner.invoke(app, ["import", file, "--source", "obsidian", "--policy", "freshness"])

    assert result.exit_code == 1
    assert "Failed: 1" in result.output


def test_import_logs_the_run(project):
    file = _write(project / "mail.json", [{"external_key": "m-1", "title": "Invoice"}])
    runner.invoke(app, ["import", file, "--source", "gmail"])

    repo = _repo(project)
    entries = repo.recent_sync_logs(source="gmail")
    assert len(entries) == 1
    assert entries[0].items_added == 1
    repo.conn.close()


def test_import_rejects_non_array(project):
    file = project / "bad.json"
    file.write_text('{"title": "x"}', encoding="utf-8")
    result = runner.invoke(app, ["import", str(file)])
    assert result.exit_code == 1
    assert "Cannot import" in result.output


def test_import_rejects_bad_timestamp(project):
    file = _write(project / "bad.json", [{"external_key": "a", "relevant_at": "yesterday"}])
    result = runner.invoke(app, ["import", file])
    assert result.exit_code == 1
    assert "ISO timestamp" in result.output


def test_import_rejects_unknown_policy(project):
    file = _write(project / "a.json", [])
    result = runner.invoke(app, ["import", file, "--policy", "newest"])
    assert result.exit_code == 1
    assert "Unknown policy" in result.output
