"""Content Store: repository for records, documents, chunks and the sync log.

Single interface for every table except the vector index (butler.db.vectors).
Methods never commit: the connection is in autocommit mode, so a lone call
commits by itself and a call made inside butler.db.connection.transaction()
joins that unit.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta

from butler.db.models import (
    Chunk,
    Document,
    Record,
    SearchResult,
    SourceKind,
    SyncLogEntry,
    format_ts,
    new_id,
    parse_ts,
    utcnow,
)
from butler.db.vectors import VectorHit, normalize_chunk_id
from butler.errors import NotFound

_ITEM_COLUMNS = (
    "id, source_kind, external_key, title, body, relevant_at, category, "
    "source_modified_at, summary, media_type, media_metadata, created_at, updated_at"
)
_DOCUMENT_COLUMNS = "id, path, title, content_hash, source_modified_at, created_at, updated_at"
_CHUNK_COLUMNS = "id, document_id, chunk_index, text, start_line, end_line, created_at"
_SYNC_LOG_COLUMNS = (
    "id, timestamp, source, status, items_scanned, items_added, items_updated, "
    "items_unchanged, items_failed, duration_ms, message"
)


class Repository:
    """Data access layer for all butler content tables.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with the schema initialised
                (see butler.db.schema.initialize).
        """
        self._conn = conn

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def insert_record(self, record: Record) -> Record:
        """Insert *record* as a new row, assigning id and audit timestamps.

        Returns:
            The same Record with ``id``, ``created_at`` and ``updated_at`` set.
        """
        now = utcnow()
        record.id = record.id or new_id()
        record.created_at = record.created_at or now
        record.updated_at = now
        self._conn.execute(
            f"INSERT INTO items ({_ITEM_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                record.id,
                SourceKind(record.source_kind).value,
                record.external_key,
                record.title,
                record.body,
                format_ts(record.relevant_at),
                record.category,
                format_ts(record.source_modified_at),
                record.summary,
                record.media_type,
                record.media_metadata,
                format_ts(record.created_at),
                format_ts(record.updated_at),
            ),
        )
        return record

    def update_record_by_identity(self, record: Record, *, only_if_changed: bool = False) -> int:
        """Overwrite mutable fields on the row(s) matching the record identity.

        Identity and ``created_at`` are never touched. With *only_if_changed*
        the write is skipped (0 rows) when every mutable field already matches.

        Returns:
            Number of rows written.
        """
        sql = """
            UPDATE items
            SET title = ?, body = ?, relevant_at = ?, category = ?,
                source_modified_at = ?, summary = ?, media_type = ?,
                media_metadata = ?, updated_at = ?
            WHERE source_kind = ? AND external_key = ?
        """
        fields = (
            record.title,
            record.body,
            format_ts(record.relevant_at),
            record.category,
            format_ts(record.source_modified_at),
            record.summary,
            record.media_type,
            record.media_metadata,
        )
        params: list[object] = [
            *fields,
            format_ts(utcnow()),
            SourceKind(record.source_kind).value,
            record.external_key,
        ]
        if only_if_changed:
            sql += """
              AND (title IS NOT ? OR body IS NOT ? OR relevant_at IS NOT ?
                   OR category IS NOT ? OR source_modified_at IS NOT ?
                   OR summary IS NOT ? OR media_type IS NOT ?
                   OR media_metadata IS NOT ?)
            """
            params.extend(fields)
        return self._conn.execute(sql, params).rowcount

    def get_record(self, record_id: str) -> Record:
        """Return a record by id.

        Raises:
            NotFound: If no row has *record_id*.
        """
        row = self._conn.execute(
            f"SELECT {_ITEM_COLUMNS} FROM items WHERE id = ?", (record_id,)
        ).fetchone()
        if row is None:
            raise NotFound(f"record '{record_id}' not found")
        return _row_to_record(row)

    def find_record(self, source_kind: SourceKind | str, external_key: str) -> Record | None:
        """Return the record with identity ``(source_kind, external_key)``, or None."""
        row = self._conn.execute(
            f"SELECT {_ITEM_COLUMNS} FROM items WHERE source_kind = ? AND external_key = ?",
            (SourceKind(source_kind).value, external_key),
        ).fetchone()
        return _row_to_record(row) if row else None

    def get_record_by_identity(self, source_kind: SourceKind | str, external_key: str) -> Record:
        """Like find_record() but raises NotFound on a miss."""
        record = self.find_record(source_kind, external_key)
        if record is None:
            raise NotFound(f"record ({SourceKind(source_kind).value}, {external_key!r}) not found")
        return record

    def recent_records(self, limit: int = 200) -> list[Record]:
        """Most recently updated records first."""
        rows = self._conn.execute(
            f"SELECT {_ITEM_COLUMNS} FROM items ORDER BY updated_at DESC LIMIT ?", (limit,)
        ).fetchall()
        return [_row_to_record(r) for r in rows]

    def relevant_records(self, days_back: int = 7, limit: int = 200) -> list[Record]:
        """Timeless records plus records relevant within the last *days_back* days."""
        cutoff = format_ts(utcnow() - timedelta(days=days_back))
        rows = self._conn.execute(
            f"""
            SELECT {_ITEM_COLUMNS} FROM items
            WHERE relevant_at IS NULL OR relevant_at >= ?
            ORDER BY updated_at DESC
            LIMIT ?
            """,
            (cutoff, limit),
        ).fetchall()
        return [_row_to_record(r) for r in rows]

    def records_in_window(
        self,
        start: datetime,
        end: datetime,
        *,
        include_timeless: bool = True,
        limit: int = 200,
    ) -> list[Record]:
        """Records relevant in ``[start, end)``, optionally plus timeless ones.

        Ordering: timed records first by relevance ascending, then timeless;
        ties by most recently updated.
        """
        timeless_clause = "relevant_at IS NULL OR " if include_timeless else ""
        rows = self._conn.execute(
            f"""
            SELECT {_ITEM_COLUMNS} FROM items
            WHERE {timeless_clause}(relevant_at IS NOT NULL AND relevant_at >= ? AND relevant_at < ?)
            ORDER BY
                CASE WHEN relevant_at IS NULL THEN 1 ELSE 0 END,
                relevant_at ASC,
                updated_at DESC
            LIMIT ?
            """,
            (format_ts(start), format_ts(end), limit),
        ).fetchall()
        return [_row_to_record(r) for r in rows]

    def delete_record(self, record_id: str) -> int:
        return self._conn.execute("DELETE FROM items WHERE id = ?", (record_id,)).rowcount

    def delete_records_by_source(self, source_kind: SourceKind | str) -> int:
        return self._conn.execute(
            "DELETE FROM items WHERE source_kind = ?", (SourceKind(source_kind).value,)
        ).rowcount

    def delete_records_by_category(self, category: str | None) -> int:
        """Delete by category; None or blank matches uncategorised records."""
        if category is None or not category.strip():
            return self._conn.execute(
                "DELETE FROM items WHERE category IS NULL OR trim(category) = ''"
            ).rowcount
        return self._conn.execute("DELETE FROM items WHERE category = ?", (category,)).rowcount

    def count_records_by_source(self, source_kind: SourceKind | str) -> int:
        return self._conn.execute(
            "SELECT COUNT(*) FROM items WHERE source_kind = ?", (SourceKind(source_kind).value,)
        ).fetchone()[0]

    def count_records_by_category(self, category: str | None) -> int:
        if category is None or not category.strip():
            return self._conn.execute(
                "SELECT COUNT(*) FROM items WHERE category IS NULL OR trim(category) = ''"
            ).fetchone()[0]
        return self._conn.execute(
            "SELECT COUNT(*) FROM items WHERE category = ?", (category,)
        ).fetchone()[0]

    def distinct_categories(self) -> list[str | None]:
        rows = self._conn.execute(
            "SELECT DISTINCT category FROM items ORDER BY category"
        ).fetchall()
        return [r[0] for r in rows]

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def upsert_document(self, document: Document) -> str:
        """Insert or update the document row for ``document.path``.

        ``id`` and ``created_at`` of an existing row are preserved.

        Returns:
            The id of the stored row.
        """
        now = utcnow()
        row = self._conn.execute(
            f"""
            INSERT INTO documents ({_DOCUMENT_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(path) DO UPDATE SET
                title = excluded.title,
                content_hash = excluded.content_hash,
                source_modified_at = excluded.source_modified_at,
                updated_at = excluded.updated_at
            RETURNING id
            """,
            (
                document.id or new_id(),
                document.path,
                document.title,
                document.content_hash,
                format_ts(document.source_modified_at),
                format_ts(document.created_at or now),
                format_ts(now),
            ),
        ).fetchone()
        return row[0]

    def get_document(self, document_id: str) -> Document | None:
        row = self._conn.execute(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = ?", (document_id,)
        ).fetchone()
        return _row_to_document(row) if row else None

    def get_document_by_path(self, path: str) -> Document | None:
        row = self._conn.execute(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE path = ?", (path,)
        ).fetchone()
        return _row_to_document(row) if row else None

    def list_documents(self) -> list[Document]:
        rows = self._conn.execute(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents ORDER BY path"
        ).fetchall()
        return [_row_to_document(r) for r in rows]

    def document_hashes(self) -> dict[str, tuple[str, str]]:
        """Return ``{path: (document_id, content_hash)}`` for every document."""
        rows = self._conn.execute("SELECT id, path, content_hash FROM documents").fetchall()
        return {r["path"]: (r["id"], r["content_hash"]) for r in rows}

    def delete_document(self, document_id: str) -> int:
        """Delete the document row; chunks cascade. Vectors are the caller's job."""
        return self._conn.execute(
            "DELETE FROM documents WHERE id = ?", (document_id,)
        ).rowcount

    def count_documents(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def insert_chunks(self, document_id: str, chunks: Sequence[Chunk]) -> list[str]:
        """Insert *chunks* for *document_id*, assigning ids. Returns the ids in order."""
        now = format_ts(utcnow())
        ids: list[str] = []
        for chunk in chunks:
            chunk.id = normalize_chunk_id(chunk.id or new_id())
            chunk.document_id = document_id
            self._conn.execute(
                f"INSERT INTO chunks ({_CHUNK_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    chunk.id,
                    document_id,
                    chunk.chunk_index,
                    chunk.text,
                    chunk.start_line,
                    chunk.end_line,
                    now,
                ),
            )
            ids.append(chunk.id)
        return ids

    def get_chunks(self, document_id: str) -> list[Chunk]:
        """Chunks of *document_id* in index order (empty if none)."""
        rows = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE document_id = ? ORDER BY chunk_index",
            (document_id,),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def chunk_ids_for_document(self, document_id: str) -> list[str]:
        rows = self._conn.execute(
            "SELECT id FROM chunks WHERE document_id = ?", (document_id,)
        ).fetchall()
        return [r[0] for r in rows]

    def delete_chunks(self, document_id: str) -> int:
        return self._conn.execute(
            "DELETE FROM chunks WHERE document_id = ?", (document_id,)
        ).rowcount

    def count_chunks(self, document_id: str | None = None) -> int:
        if document_id is None:
            return self._conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]
        return self._conn.execute(
            "SELECT COUNT(*) FROM chunks WHERE document_id = ?", (document_id,)
        ).fetchone()[0]

    def resolve_hits(self, hits: Iterable[VectorHit]) -> list[SearchResult]:
        """Join vector hits back to chunk + document rows, keeping hit order.

        Hits whose chunk no longer exists are dropped.
        """
        results: list[SearchResult] = []
        for hit in hits:
            row = self._conn.execute(
                """
                SELECT c.id, c.chunk_index, c.text, c.start_line, c.end_line,
                       d.id AS document_id, d.path, d.title
                FROM chunks c
                JOIN documents d ON d.id = c.document_id
                WHERE c.id = ?
                """,
                (normalize_chunk_id(hit.chunk_id),),
            ).fetchone()
            if row is None:
                continue
            results.append(
                SearchResult(
                    chunk_id=row["id"],
                    score=hit.score,
                    distance=hit.distance,
                    document_id=row["document_id"],
                    path=row["path"],
                    title=row["title"],
                    text=row["text"],
                    chunk_index=row["chunk_index"],
                    start_line=row["start_line"],
                    end_line=row["end_line"],
                )
            )
        return results

    # ------------------------------------------------------------------
    # Sync log
    # ------------------------------------------------------------------

    def add_sync_log(self, entry: SyncLogEntry) -> int:
        """Persist *entry*; returns its new id."""
        entry.timestamp = entry.timestamp or utcnow()
        cur = self._conn.execute(
            """
            INSERT INTO sync_log (
                timestamp, source, status, items_scanned, items_added, items_updated,
                items_unchanged, items_failed, duration_ms, message
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                format_ts(entry.timestamp),
                entry.source,
                entry.status,
                entry.items_scanned,
                entry.items_added,
                entry.items_updated,
                entry.items_unchanged,
                entry.items_failed,
                entry.duration_ms,
                entry.message,
            ),
        )
        entry.id = cur.lastrowid
        return entry.id

    def recent_sync_logs(self, limit: int = 100, source: str | None = None) -> list[SyncLogEntry]:
        """Newest first, optionally for one source."""
        if source is None:
            rows = self._conn.execute(
                f"SELECT {_SYNC_LOG_COLUMNS} FROM sync_log ORDER BY timestamp DESC, id DESC LIMIT ?",
                (limit,),
            ).fetchall()
        else:
            rows = self._conn.execute(
                f"""
                SELECT {_SYNC_LOG_COLUMNS} FROM sync_log WHERE source = ?
                ORDER BY timestamp DESC, id DESC LIMIT ?
                """,
                (source, limit),
            ).fetchall()
        return [_row_to_sync_log(r) for r in rows]

    def prune_sync_logs(self, older_than: datetime) -> int:
        return self._conn.execute(
            "DELETE FROM sync_log WHERE timestamp < ?", (format_ts(older_than),)
        ).rowcount


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_record(row: sqlite3.Row) -> Record:
    return Record(
        id=row["id"],
        source_kind=SourceKind(row["source_kind"]),
        external_key=row["external_key"],
        title=row["title"],
        body=row["body"],
        relevant_at=parse_ts(row["relevant_at"]),
        category=row["category"],
        source_modified_at=parse_ts(row["source_modified_at"]),
        summary=row["summary"],
        media_type=row["media_type"],
        media_metadata=row["media_metadata"],
        created_at=parse_ts(row["created_at"]),
        updated_at=parse_ts(row["updated_at"]),
    )


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        id=row["id"],
        path=row["path"],
        title=row["title"],
        content_hash=row["content_hash"],
        source_modified_at=parse_ts(row["source_modified_at"]),
        created_at=parse_ts(row["created_at"]),
        updated_at=parse_ts(row["updated_at"]),
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        id=row["id"],
        document_id=row["document_id"],
        chunk_index=row["chunk_index"],
        text=row["text"],
        start_line=row["start_line"],
        end_line=row["end_line"],
        created_at=parse_ts(row["created_at"]),
    )


def _row_to_sync_log(row: sqlite3.Row) -> SyncLogEntry:
    return SyncLogEntry(
        id=row["id"],
        timestamp=parse_ts(row["timestamp"]),
        source=row["source"],
        status=row["status"],
        items_scanned=row["items_scanned"],
        items_added=row["items_added"],
        items_updated=row["items_updated"],
        items_unchanged=row["items_unchanged"],
        items_failed=row["items_failed"],
        duration_ms=row["duration_ms"],
        message=row["message"],
    )
