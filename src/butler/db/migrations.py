"""Forward-only, additive-only migration runner for the butler schema.

Each version only adds tables, indexes or nullable/defaulted columns, so rows
written by older versions stay valid. The vector table (vec_chunks) is NOT
migration-managed — it depends on the loaded extension and the configured
dimensionality; see butler.db.vectors.VectorIndex.
"""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS items (
    id                  TEXT PRIMARY KEY,
    source_kind         TEXT NOT NULL,
    external_key        TEXT,
    title               TEXT NOT NULL DEFAULT '',
    body                TEXT NOT NULL DEFAULT '',
    relevant_at         TEXT,
    category            TEXT,
    source_modified_at  TEXT,
    created_at          TEXT NOT NULL,
    updated_at          TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS ix_items_identity
    ON items (source_kind, external_key) WHERE external_key IS NOT NULL;
CREATE INDEX IF NOT EXISTS ix_items_relevant_at ON items (relevant_at);
CREATE INDEX IF NOT EXISTS ix_items_updated_at ON items (updated_at);

CREATE TABLE IF NOT EXISTS documents (
    id                  TEXT PRIMARY KEY,
    path                TEXT NOT NULL UNIQUE,
    title               TEXT,
    content_hash        TEXT NOT NULL,
    source_modified_at  TEXT,
    created_at          TEXT NOT NULL,
    updated_at          TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS chunks (
    id              TEXT PRIMARY KEY,
    document_id     TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    chunk_index     INTEGER NOT NULL,
    text            TEXT NOT NULL,
    start_line      INTEGER,
    end_line        INTEGER,
    created_at      TEXT NOT NULL,
    UNIQUE (document_id, chunk_index)
);

CREATE INDEX IF NOT EXISTS ix_chunks_document_id ON chunks (document_id);

CREATE TABLE IF NOT EXISTS sync_log (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp       TEXT NOT NULL,
    source          TEXT NOT NULL,
    status          TEXT NOT NULL,
    items_scanned   INTEGER NOT NULL DEFAULT 0,
    items_added     INTEGER NOT NULL DEFAULT 0,
    items_updated   INTEGER NOT NULL DEFAULT 0,
    items_unchanged INTEGER NOT NULL DEFAULT 0,
    items_failed    INTEGER NOT NULL DEFAULT 0,
    duration_ms     INTEGER NOT NULL DEFAULT 0,
    message         TEXT
);

CREATE INDEX IF NOT EXISTS ix_sync_log_timestamp ON sync_log (timestamp DESC);
CREATE INDEX IF NOT EXISTS ix_sync_log_source ON sync_log (source);
"""

# v2: optional record fields. Old rows read back as NULL.
_V2_SQL = """
ALTER TABLE items ADD COLUMN summary TEXT;
ALTER TABLE items ADD COLUMN media_type TEXT;
ALTER TABLE items ADD COLUMN media_metadata TEXT;
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
    (2, _V2_SQL),
]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row[0] is not None else 0

    for version, sql in MIGRATIONS:
        if version > current:
            try:
                conn.executescript(
                    f"BEGIN;\n{sql}\nINSERT INTO schema_version (version) VALUES ({int(version)});\nCOMMIT;"
                )
            except sqlite3.Error:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise


def current_version(conn: sqlite3.Connection) -> int:
    """Return the highest applied schema version (0 for a fresh database)."""
    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    return row[0] if row and row[0] is not None else 0
