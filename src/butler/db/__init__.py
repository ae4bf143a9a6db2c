"""Butler database layer."""

from butler.db.connection import Database, savepoint, transaction
from butler.db.migrations import MIGRATIONS, run_migrations
from butler.db.repository import Repository
from butler.db.schema import initialize
from butler.db.vectors import VectorIndex, decode_vector, encode_vector, normalize_chunk_id

__all__ = [
    "Database",
    "Repository",
    "VectorIndex",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "transaction",
    "savepoint",
    "encode_vector",
    "decode_vector",
    "normalize_chunk_id",
]
