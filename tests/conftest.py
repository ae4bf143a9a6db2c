"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from butler.db.connection import Database
from butler.db.repository import Repository
from butler.db.schema import initialize
from butler.db.vectors import VectorIndex

DIMS = 4


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep tests away from ~/.butler and any BUTLER_* variables in the environment."""
    monkeypatch.setattr("butler.config._GLOBAL_CONFIG_PATH", tmp_path / "global" / "config.yaml")
    for var in ("BUTLER_DB", "BUTLER_EMBEDDING_MODEL", "BUTLER_VAULT_PATH"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".butler.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)


@pytest.fixture
def vec_index(tmp_db):
    """4-dimensional vector index on tmp_db."""
    return VectorIndex(tmp_db, DIMS)
