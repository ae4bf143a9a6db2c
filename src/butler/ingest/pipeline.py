"""Document ingestion: replace a note's chunks and vectors when its text changes.

The unit of work is one document. ``sync_document`` hashes the text first and
returns immediately when the stored hash matches, so the cost of a vault
re-index is proportional to the number of changed files.

When the text changed, chunking and embedding run first (no write lock held
during the embedding request), then one ``BEGIN IMMEDIATE`` transaction:

  1. upsert the documents row (hash, title, modified time)
  2. delete the old vectors, then the old chunk rows
  3. insert the new chunks
  4. insert a vector for every chunk that has an embedding

Any failure rolls the whole unit back and surfaces as TransactionFailed;
the document stays at its previous hash with its previous chunks.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from dataclasses import dataclass
from datetime import datetime

from butler.db.connection import transaction
from butler.db.models import Chunk, Document
from butler.db.repository import Repository
from butler.db.vectors import VectorIndex
from butler.errors import OperationCancelled, TransactionFailed, check_cancelled
from butler.ingest.base import BaseChunker
from butler.ingest.embeddings import Embedder
from butler.ingest.markdown import NoteChunker, extract_title

logger = logging.getLogger(__name__)

CREATED = "created"
UPDATED = "updated"
UNCHANGED = "unchanged"


@dataclass
class SyncResult:
    """Outcome of one sync_document() call."""

    status: str
    document_id: str
    chunk_count: int = 0
    embedded_count: int = 0


@dataclass
class IndexStats:
    """Document store totals. ``vectors`` is None when search is unavailable."""

    documents: int
    chunks: int
    vectors: int | None
    search_available: bool


def content_hash(text: str) -> str:
    """SHA-256 hex digest of *text* encoded as UTF-8."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class DocumentIndexer:
    """Keep documents, chunks and chunk vectors in step with source text.

    Args:
        repo: Repository bound to the connection to write through.
        index: Vector index on the same connection. When it is unavailable
            chunks are still stored, just without vectors.
        chunker: Splits text into chunks (NoteChunker by default).
        embed: Optional embedder; called once per changed document with every
            chunk text. Without it chunks are stored unsearchable.
    """

    def __init__(
        self,
        repo: Repository,
        index: VectorIndex,
        chunker: BaseChunker | None = None,
        embed: Embedder | None = None,
    ) -> None:
        self._repo = repo
        self._index = index
        self.chunker = chunker or NoteChunker()
        self._embed = embed

    @property
    def repo(self) -> Repository:
        return self._repo

    def sync_document(
        self,
        path: str,
        text: str,
        source_modified_at: datetime | None = None,
        *,
        title: str | None = None,
        cancel: threading.Event | None = None,
    ) -> SyncResult:
        """Bring the stored copy of *path* up to date with *text*.

        Returns:
            SyncResult with status ``created``, ``updated`` or ``unchanged``.

        Raises:
            TransactionFailed: Chunking, embedding or a write failed; nothing
                was changed. The original error is ``__cause__``.
            OperationCancelled: *cancel* was set; nothing was changed.
        """
        check_cancelled(cancel)
        digest = content_hash(text)
        existing = self._repo.get_document_by_path(path)
        if existing is not None and existing.content_hash == digest:
            logger.debug("Unchanged: %s", path)
            return SyncResult(
                status=UNCHANGED,
                document_id=existing.id,
                chunk_count=self._repo.count_chunks(existing.id),
            )

        title = title or extract_title(text, path)
        try:
            chunks = self.chunker.chunk(text, path=path, title=title)
            embedded = self._attach_embeddings(chunks)
        except OperationCancelled:
            raise
        except Exception as exc:
            # Embedding providers raise their own exception types.
            raise TransactionFailed(path, f"could not prepare chunks: {exc}") from exc
        check_cancelled(cancel)

        document = Document(
            path=path,
            content_hash=digest,
            title=title,
            source_modified_at=source_modified_at,
        )
        conn = self._repo.conn
        try:
            with transaction(conn, cancel):
                document_id = self._repo.upsert_document(document)
                self._index.delete(self._repo.chunk_ids_for_document(document_id))
                self._repo.delete_chunks(document_id)
                self._repo.insert_chunks(document_id, chunks)
                for chunk in chunks:
                    if chunk.embedding is not None and self._index.available:
                        self._index.add(chunk.id, chunk.embedding)
        except OperationCancelled:
            raise
        except Exception as exc:
            logger.warning("Sync of %s rolled back: %s", path, exc)
            raise TransactionFailed(path, str(exc)) from exc

        status = UPDATED if existing is not None else CREATED
        logger.info("%s %s: %d chunks, %d embedded", status.capitalize(), path, len(chunks), embedded)
        return SyncResult(
            status=status,
            document_id=document_id,
            chunk_count=len(chunks),
            embedded_count=embedded,
        )

    def remove_document(self, path: str, cancel: threading.Event | None = None) -> bool:
        """Delete *path*'s vectors, chunks and document row. False if not stored."""
        document = self._repo.get_document_by_path(path)
        if document is None:
            return False
        conn = self._repo.conn
        try:
            with transaction(conn, cancel):
                self._index.delete(self._repo.chunk_ids_for_document(document.id))
                self._repo.delete_chunks(document.id)
                self._repo.delete_document(document.id)
        except OperationCancelled:
            raise
        except Exception as exc:
            raise TransactionFailed(path, str(exc)) from exc
        logger.info("Removed %s", path)
        return True

    def stats(self) -> IndexStats:
        available = self._index.available
        return IndexStats(
            documents=self._repo.count_documents(),
            chunks=self._repo.count_chunks(),
            vectors=self._index.count() if available else None,
            search_available=available,
        )

    def _attach_embeddings(self, chunks: list[Chunk]) -> int:
        """Fill ``chunk.embedding`` from the embedder; returns how many got one."""
        if not self._index.available:
            return 0
        if self._embed is None or not chunks:
            return sum(1 for c in chunks if c.embedding is not None)

        vectors = self._embed([c.text for c in chunks])
        if len(vectors) != len(chunks):
            raise ValueError(f"embedder returned {len(vectors)} vectors for {len(chunks)} chunks")
        for chunk, vector in zip(chunks, vectors):
            chunk.embedding = vector
        return sum(1 for c in chunks if c.embedding is not None)
