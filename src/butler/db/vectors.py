"""sqlite-vec chunk embedding index.

Storage contract:
  - one row per chunk in ``vec_chunks`` keyed by the chunk id (TEXT)
  - embeddings are raw little-endian float32 blobs, ``dimensions * 4`` bytes
  - cosine distance in [0, 2]; callers see ``score = 1 - distance / 2``

Chunk ids are normalized to lowercase text on every write and every read,
so joins against ``chunks.id`` are plain equality.

The table is NOT migration-managed: whether it exists depends on the loaded
extension. Availability is decided once, when the index is opened.
"""

from __future__ import annotations

import logging
import re
import sqlite3
import struct
import threading
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from butler.errors import DimensionMismatch, IndexUnavailable, check_cancelled

logger = logging.getLogger(__name__)

VEC_TABLE = "vec_chunks"

_FLOAT_SIZE = 4
_DIM_RE = re.compile(r"float\[(\d+)\]", re.IGNORECASE)
# sqlite-vec reports float noise (~2e-16) as the distance between identical vectors.
_DISTANCE_EPSILON = 1e-6


@dataclass
class VectorHit:
    """A raw nearest-neighbour hit: chunk id plus distance and derived score."""

    chunk_id: str
    distance: float
    score: float


# ------------------------------------------------------------------
# Codec + id normalization
# ------------------------------------------------------------------


def normalize_chunk_id(value: object) -> str:
    """Canonical textual chunk id: stripped and lowercased."""
    return str(value).strip().lower()


def encode_vector(values: Sequence[float] | bytes, dimensions: int) -> bytes:
    """Return *values* as a little-endian float32 blob of exactly *dimensions*.

    Bytes input is validated and passed through unchanged.

    Raises:
        DimensionMismatch: Wrong element count, or a blob whose length is not
            a multiple of 4.
    """
    if isinstance(values, (bytes, bytearray, memoryview)):
        blob = bytes(values)
        if len(blob) % _FLOAT_SIZE:
            raise DimensionMismatch(
                f"embedding blob of {len(blob)} bytes is not a whole number of float32 values",
                expected=dimensions * _FLOAT_SIZE,
                actual=len(blob),
            )
        count = len(blob) // _FLOAT_SIZE
        if count != dimensions:
            raise DimensionMismatch(
                f"embedding has {count} dimensions, index expects {dimensions}",
                expected=dimensions,
                actual=count,
            )
        return blob

    if len(values) != dimensions:
        raise DimensionMismatch(
            f"embedding has {len(values)} dimensions, index expects {dimensions}",
            expected=dimensions,
            actual=len(values),
        )
    return struct.pack(f"<{dimensions}f", *values)


def decode_vector(blob: bytes, dimensions: int | None = None) -> list[float]:
    """Inverse of encode_vector(); validates length the same way."""
    if len(blob) % _FLOAT_SIZE:
        raise DimensionMismatch(
            f"embedding blob of {len(blob)} bytes is not a whole number of float32 values",
            actual=len(blob),
        )
    count = len(blob) // _FLOAT_SIZE
    if dimensions is not None and count != dimensions:
        raise DimensionMismatch(
            f"embedding has {count} dimensions, index expects {dimensions}",
            expected=dimensions,
            actual=count,
        )
    return list(struct.unpack(f"<{count}f", blob))


def distance_to_score(distance: float) -> float:
    """Map cosine distance [0, 2] to similarity [0, 1]."""
    return 1.0 - distance / 2.0


def score_to_max_distance(min_score: float) -> float:
    """Largest cosine distance still satisfying *min_score*."""
    return 2.0 * (1.0 - min_score)


# ------------------------------------------------------------------
# Index
# ------------------------------------------------------------------


class VectorIndex:
    """Chunk-id → embedding index over a sqlite-vec ``vec0`` table.

    Args:
        conn: Open connection. sqlite-vec must be loaded for the index to be
            available (see butler.db.connection.Database).
        dimensions: Fixed embedding dimensionality for this deployment.
        enabled: Set False to disable search by configuration.

    Raises:
        ValueError: If *dimensions* < 1.
        DimensionMismatch: If ``vec_chunks`` already exists with a different
            dimensionality.
    """

    def __init__(self, conn: sqlite3.Connection, dimensions: int, *, enabled: bool = True) -> None:
        if dimensions < 1:
            raise ValueError(f"dimensions must be >= 1, got {dimensions}")
        self._conn = conn
        self.dimensions = dimensions
        self.available = enabled and _extension_loaded(conn)
        if self.available:
            self._ensure_table()
        elif enabled:
            logger.info("Vector index unavailable: sqlite-vec is not loaded on this connection")

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def _ensure_table(self) -> None:
        row = self._conn.execute(
            "SELECT sql FROM sqlite_master WHERE type='table' AND name=?", (VEC_TABLE,)
        ).fetchone()
        if row is None:
            self._conn.execute(
                f"CREATE VIRTUAL TABLE {VEC_TABLE} USING vec0("
                f"chunk_id TEXT PRIMARY KEY, "
                f"embedding float[{self.dimensions}] distance_metric=cosine)"
            )
            return

        match = _DIM_RE.search(row["sql"] or "")
        existing = int(match.group(1)) if match else None
        if existing is not None and existing != self.dimensions:
            raise DimensionMismatch(
                f"{VEC_TABLE} stores {existing}-dimensional vectors, "
                f"configuration expects {self.dimensions}",
                expected=self.dimensions,
                actual=existing,
            )

    def require(self) -> None:
        """Raise IndexUnavailable unless the index can be queried."""
        if not self.available:
            raise IndexUnavailable(
                "Vector search is unavailable: sqlite-vec is not loaded or search is disabled."
            )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add(self, chunk_id: str, embedding: Sequence[float] | bytes) -> None:
        """Insert the embedding for *chunk_id*.

        Raises:
            IndexUnavailable: If the index is not available.
            DimensionMismatch: If *embedding* has the wrong shape.
        """
        self.require()
        blob = encode_vector(embedding, self.dimensions)
        self._conn.execute(
            f"INSERT INTO {VEC_TABLE}(chunk_id, embedding) VALUES (?, ?)",
            (normalize_chunk_id(chunk_id), blob),
        )

    def delete(self, chunk_ids: Iterable[str]) -> int:
        """Delete embeddings for *chunk_ids*; returns rows removed.

        A no-op returning 0 when the index is unavailable: there is nothing
        stored to delete.
        """
        if not self.available:
            return 0
        ids = [normalize_chunk_id(c) for c in chunk_ids]
        if not ids:
            return 0
        deleted = 0
        for chunk_id in ids:
            cur = self._conn.execute(
                f"DELETE FROM {VEC_TABLE} WHERE chunk_id = ?", (chunk_id,)
            )
            deleted += max(cur.rowcount, 0)
        return deleted

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def count(self) -> int:
        self.require()
        return self._conn.execute(f"SELECT COUNT(*) FROM {VEC_TABLE}").fetchone()[0]

    def get(self, chunk_id: str) -> list[float] | None:
        """Return the stored vector for *chunk_id*, or None."""
        self.require()
        row = self._conn.execute(
            f"SELECT embedding FROM {VEC_TABLE} WHERE chunk_id = ?",
            (normalize_chunk_id(chunk_id),),
        ).fetchone()
        return decode_vector(row[0], self.dimensions) if row else None

    def search(
        self,
        query: Sequence[float] | bytes,
        top_k: int,
        min_score: float,
        cancel: threading.Event | None = None,
    ) -> list[VectorHit]:
        """Nearest neighbours of *query*, best first, at most *top_k*.

        ``min_score`` is converted to a maximum cosine distance. The index is
        asked for ``2 * top_k`` candidates so hits lost to the distance filter
        can be backfilled before truncating to *top_k*.

        Raises:
            IndexUnavailable: If the index is not available.
            DimensionMismatch: If *query* has the wrong shape.
        """
        self.require()
        if top_k < 1:
            raise ValueError(f"top_k must be >= 1, got {top_k}")
        check_cancelled(cancel)

        blob = encode_vector(query, self.dimensions)
        max_distance = score_to_max_distance(min_score)
        rows = self._conn.execute(
            f"""
            SELECT chunk_id, distance
            FROM {VEC_TABLE}
            WHERE embedding MATCH ? AND k = ?
            ORDER BY distance
            """,
            (blob, top_k * 2),
        ).fetchall()

        hits: list[VectorHit] = []
        for row in rows:
            distance = _snap_distance(float(row["distance"]))
            if distance > max_distance:
                continue
            hits.append(
                VectorHit(
                    chunk_id=normalize_chunk_id(row["chunk_id"]),
                    distance=distance,
                    score=distance_to_score(distance),
                )
            )
        return hits[:top_k]


def _snap_distance(distance: float) -> float:
    """Clamp to [0, 2], snapping values within epsilon of either end."""
    if distance < _DISTANCE_EPSILON:
        return 0.0
    if distance > 2.0 - _DISTANCE_EPSILON:
        return 2.0
    return distance


def _extension_loaded(conn: sqlite3.Connection) -> bool:
    """Capability probe: does this connection expose sqlite-vec?"""
    try:
        conn.execute("SELECT vec_version()").fetchone()
    except sqlite3.OperationalError:
        return False
    return True
