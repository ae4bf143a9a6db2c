"""Butler — incremental context sync and semantic note retrieval."""

from butler.errors import (
    ButlerError,
    DimensionMismatch,
    IndexUnavailable,
    InvalidRecord,
    NotFound,
    OperationCancelled,
    TransactionFailed,
)

__all__ = [
    "ButlerError",
    "DimensionMismatch",
    "IndexUnavailable",
    "InvalidRecord",
    "NotFound",
    "OperationCancelled",
    "TransactionFailed",
]
