"""Error taxonomy for the butler core.

Callers distinguish failure classes by type:

  InvalidRecord       malformed reconcile candidate
  DimensionMismatch   embedding blob or vector has the wrong shape
  IndexUnavailable    vector search cannot run (extension missing / disabled)
  TransactionFailed   a document sync rolled back; stored state is unchanged
  NotFound            lookup miss on an explicit read
  OperationCancelled  caller set the cancel event; any open transaction rolled back
"""

from __future__ import annotations

import threading


class ButlerError(Exception):
    """Base class for all errors raised by the butler core."""


class InvalidRecord(ButlerError):
    """A reconcile candidate is missing the fields needed to store it."""


class DimensionMismatch(ButlerError):
    """An embedding does not match the index's configured dimensionality."""

    def __init__(self, message: str, *, expected: int | None = None, actual: int | None = None) -> None:
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class IndexUnavailable(ButlerError):
    """Vector search is not usable on this connection."""


class TransactionFailed(ButlerError):
    """A document sync was rolled back; the prior state is intact.

    The underlying exception is available as ``__cause__``.
    """

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path


class NotFound(ButlerError):
    """An explicit lookup found no row."""


class OperationCancelled(ButlerError):
    """The caller's cancel event was set before the operation finished."""


def check_cancelled(cancel: threading.Event | None) -> None:
    """Raise OperationCancelled if *cancel* is set."""
    if cancel is not None and cancel.is_set():
        raise OperationCancelled("operation cancelled")
