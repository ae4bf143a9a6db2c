"""SQLite connection layer with optional sqlite-vec extension."""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import sqlite_vec

from butler.errors import check_cancelled

logger = logging.getLogger(__name__)

_BUSY_TIMEOUT_MS = 5_000


class Database:
    """Per-deployment SQLite database with sqlite-vec vector search support.

    Connections are opened in autocommit mode (``isolation_level=None``):
    single statements commit on their own, multi-statement units go through
    :func:`transaction`. Open one connection per thread / task.
    """

    def __init__(self, db_path: Path | str, *, load_vec: bool = True) -> None:
        """Store the database path. Call connect() to open the connection.

        Args:
            db_path: Path to the SQLite database file (created if missing).
            load_vec: Try to load sqlite-vec. When False (or when loading
                fails) the vector index reports itself unavailable.
        """
        self.db_path = Path(db_path)
        self.load_vec = load_vec
        self.vec_loaded = False
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        """Open a connection, load sqlite-vec if possible, and return it."""
        conn = sqlite3.connect(self.db_path, isolation_level=None)
        conn.row_factory = sqlite3.Row
        if self.load_vec:
            self.vec_loaded = _load_vec(conn)
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute(f"PRAGMA busy_timeout = {_BUSY_TIMEOUT_MS}")
        return conn

    def __enter__(self) -> sqlite3.Connection:
        """Open the database and return the connection (context manager support)."""
        self._conn = self.connect()
        return self._conn

    def __exit__(self, *args: object) -> None:
        """Close the connection when leaving the context manager."""
        if self._conn:
            self._conn.close()
            self._conn = None


def _load_vec(conn: sqlite3.Connection) -> bool:
    """Load sqlite-vec into *conn*; False when this SQLite build cannot."""
    try:
        conn.enable_load_extension(True)
        sqlite_vec.load(conn)
        conn.enable_load_extension(False)
    except (AttributeError, sqlite3.OperationalError) as exc:
        # AttributeError: Python built without extension loading support.
        logger.info("sqlite-vec not loaded, vector search disabled: %s", exc)
        return False
    return True


@contextmanager
def transaction(
    conn: sqlite3.Connection, cancel: threading.Event | None = None
) -> Iterator[sqlite3.Connection]:
    """Run the block inside ``BEGIN IMMEDIATE`` … ``COMMIT``.

    Any exception (including OperationCancelled raised when *cancel* is set
    at commit time) rolls the whole unit back and propagates.
    """
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
        check_cancelled(cancel)
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


@contextmanager
def savepoint(conn: sqlite3.Connection, name: str) -> Iterator[sqlite3.Connection]:
    """Nested unit inside an open transaction; failure undoes only this block."""
    conn.execute(f"SAVEPOINT {name}")
    try:
        yield conn
    except BaseException:
        conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
        conn.execute(f"RELEASE SAVEPOINT {name}")
        raise
    conn.execute(f"RELEASE SAVEPOINT {name}")
