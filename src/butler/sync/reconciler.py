"""Reconciler: merge freshly fetched records into the store.

Two identity/freshness policies:

  IdentityKeyedPolicy   (externally sourced records — calendar, mail)
      update rows matching (source_kind, external_key); insert when none match.
      Re-submitting an unchanged record writes nothing and counts as unchanged.

  FreshnessGatedPolicy  (file-backed records — journal days)
      identity is a natural key carried in external_key; a stored row is only
      overwritten when the candidate's source_modified_at is strictly newer,
      compared at the configured timestamp resolution.

A batch runs in one transaction with a savepoint per record: a failing record
is rolled back, counted and reported while the rest of the batch proceeds.
Cancellation rolls back the whole batch.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from butler.db.connection import savepoint, transaction
from butler.db.models import Record, SourceKind, truncate_ts
from butler.db.repository import Repository
from butler.errors import InvalidRecord, check_cancelled

logger = logging.getLogger(__name__)

ADDED = "added"
UPDATED = "updated"
UNCHANGED = "unchanged"

_TEXT_FIELDS = ("title", "body", "external_key", "category", "summary", "media_type", "media_metadata")
_TIME_FIELDS = ("relevant_at", "source_modified_at")


@dataclass
class RecordError:
    """A candidate that could not be applied."""

    position: int
    identity: tuple[str, str] | None
    message: str


@dataclass
class ReconcileResult:
    """Aggregate outcome of one reconcile() call."""

    added: int = 0
    updated: int = 0
    unchanged: int = 0
    errors: list[RecordError] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.errors)

    @property
    def scanned(self) -> int:
        return self.added + self.updated + self.unchanged + self.failed

    def count(self, outcome: str) -> None:
        setattr(self, outcome, getattr(self, outcome) + 1)


# ------------------------------------------------------------------
# Policies
# ------------------------------------------------------------------


class ReconcilePolicy(ABC):
    """Decides insert / update / skip for one candidate."""

    name: str = ""

    def validate(self, record: Record) -> None:
        """Raise InvalidRecord if *record* cannot be handled by this policy."""

    @abstractmethod
    def apply(self, repo: Repository, record: Record) -> str:
        """Write *record* as needed; return ADDED, UPDATED or UNCHANGED."""


class IdentityKeyedPolicy(ReconcilePolicy):
    """Upsert by ``(source_kind, external_key)``; keyless records always insert."""

    name = "identity"

    def apply(self, repo: Repository, record: Record) -> str:
        if record.external_key is None:
            repo.insert_record(record)
            return ADDED

        if repo.update_record_by_identity(record, only_if_changed=True) > 0:
            return UPDATED
        if repo.find_record(record.source_kind, record.external_key) is not None:
            return UNCHANGED
        repo.insert_record(record)
        return ADDED


class FreshnessGatedPolicy(ReconcilePolicy):
    """Overwrite only when the source artifact is strictly newer than what is stored.

    Args:
        resolution: Timestamps are truncated to this granularity before the
            comparison, so sub-resolution jitter between reads of the same
            file never counts as an edit.
    """

    name = "freshness"

    def __init__(self, resolution: timedelta = timedelta(seconds=1)) -> None:
        if resolution <= timedelta(0):
            raise ValueError("resolution must be positive")
        self.resolution = resolution

    def validate(self, record: Record) -> None:
        if record.external_key is None:
            raise InvalidRecord("freshness-gated records need a natural key (external_key)")
        if record.source_modified_at is None:
            raise InvalidRecord(
                f"record '{record.external_key}' has no source_modified_at to compare"
            )

    def apply(self, repo: Repository, record: Record) -> str:
        stored = repo.find_record(record.source_kind, record.external_key)
        if stored is None:
            repo.insert_record(record)
            return ADDED

        candidate_ts = truncate_ts(record.source_modified_at, self.resolution)
        if stored.source_modified_at is not None:
            stored_ts = truncate_ts(stored.source_modified_at, self.resolution)
            if candidate_ts <= stored_ts:
                return UNCHANGED

        repo.update_record_by_identity(record)
        return UPDATED


# ------------------------------------------------------------------
# Reconciler
# ------------------------------------------------------------------


class Reconciler:
    """Apply a batch of candidate records to the store under one policy.

    Args:
        repo: Repository bound to the connection to write through.
        policy: Identity/freshness policy; defaults to IdentityKeyedPolicy.
    """

    def __init__(self, repo: Repository, policy: ReconcilePolicy | None = None) -> None:
        self._repo = repo
        self.policy = policy or IdentityKeyedPolicy()

    def reconcile(
        self,
        candidates: Iterable[Record],
        cancel: threading.Event | None = None,
    ) -> ReconcileResult:
        """Insert, update or skip each candidate; never duplicate an identity.

        Per-record failures (invalid candidates, database errors) are
        collected in ``result.errors`` and do not stop the batch.

        Raises:
            OperationCancelled: If *cancel* is set; nothing from the batch is kept.
        """
        result = ReconcileResult()
        conn = self._repo.conn

        with transaction(conn, cancel):
            for position, record in enumerate(candidates):
                check_cancelled(cancel)
                try:
                    _validate_candidate(record)
                    self.policy.validate(record)
                    with savepoint(conn, "reconcile_record"):
                        outcome = self.policy.apply(self._repo, record)
                except (InvalidRecord, sqlite3.Error) as exc:
                    identity = _safe_identity(record)
                    logger.warning("Record %s at position %d rejected: %s", identity, position, exc)
                    result.errors.append(RecordError(position, identity, str(exc)))
                    continue
                result.count(outcome)

        logger.info(
            "Reconciled %d records (%s): %d added, %d updated, %d unchanged, %d failed",
            result.scanned,
            self.policy.name,
            result.added,
            result.updated,
            result.unchanged,
            result.failed,
        )
        return result


def _validate_candidate(record: Record) -> None:
    if not isinstance(record, Record):
        raise InvalidRecord(f"expected Record, got {type(record).__name__}")
    try:
        record.source_kind = SourceKind(record.source_kind)
    except ValueError as exc:
        raise InvalidRecord(f"unknown source kind {record.source_kind!r}") from exc
    for name in _TEXT_FIELDS:
        value = getattr(record, name)
        if value is not None and not isinstance(value, str):
            raise InvalidRecord(f"{name} must be text, got {type(value).__name__}")
    for name in _TIME_FIELDS:
        value = getattr(record, name)
        if value is not None and not isinstance(value, datetime):
            raise InvalidRecord(f"{name} must be a datetime, got {type(value).__name__}")
    if record.external_key is not None and not record.external_key.strip():
        record.external_key = None
    if record.external_key is None and not (record.body or "").strip():
        raise InvalidRecord("record has neither an external key nor a body")


def _safe_identity(record: object) -> tuple[str, str] | None:
    if not isinstance(record, Record) or record.external_key is None:
        return None
    kind = record.source_kind.value if isinstance(record.source_kind, SourceKind) else str(record.source_kind)
    return (kind, record.external_key)
