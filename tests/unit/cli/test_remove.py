"""Tests for butler remove."""

from __future__ import annotations

import pytest
from typer.testing import CliRunner

from butler.cli.main import app
from butler.db.connection import Database
from butler.db.repository import Repository
from butler.db.vectors import VectorIndex

runner = CliRunner()


@pytest.fixture
def indexed(project, embed_calls):
    result = runner.invoke(app, ["index"])
    assert result.exit_code == 0, result.output
    return project


def test_remove_with_yes(indexed):
    result = runner.invoke(app, ["remove", "inbox.md", "--yes"])

    assert result.exit_code == 0, result.output
    assert "Removed: inbox.md (1 chunks)" in result.output
    conn = Database(indexed / ".butler.db").connect()
    repo = Repository(conn)
    assert repo.get_document_by_path("inbox.md") is None
    assert repo.count_chunks() == 1
    assert VectorIndex(conn, 4).count() == 1
    conn.close()


def test_remove_cancelled(indexed):
    result = runner.invoke(app, ["remove", "inbox.md"], input="n\n")

    assert result.exit_code == 0
    assert "Cancelled" in result.output
    conn = Database(indexed / ".butler.db").connect()
    assert Repository(conn).get_document_by_path("inbox.md") is not None
    conn.close()


def test_remove_confirmed(indexed):
    result = runner.invoke(app, ["remove", "inbox.md"], input="y\n")
    assert result.exit_code == 0
    assert "Removed" in result.output


def test_remove_unknown_path(indexed):
    result = runner.invoke(app, ["remove", "missing.md", "--yes"])
    assert result.exit_code == 0
    assert "not indexed" in result.output
