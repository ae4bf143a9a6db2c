"""ContextUpdater: one source's fetch → stamp → reconcile → sync-log cycle.

The fetch callable is the external producer (calendar/mail client, journal
parser). The updater does not serialize runs: callers that need "one sync
at a time" hold their own lock or queue around update().
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable

from butler.db.models import Record, SourceKind, SyncLogEntry
from butler.db.repository import Repository
from butler.sync.reconciler import ReconcilePolicy, ReconcileResult, Reconciler

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Iterable[Record]]

STATUS_OK = "ok"
STATUS_PARTIAL = "partial"
STATUS_FAILED = "failed"

_MAX_ERRORS_IN_MESSAGE = 5


class ContextUpdater:
    """Pull records from one source and reconcile them into the store.

    Args:
        source: Source kind every fetched record is attributed to.
        fetch: Zero-argument callable returning candidate records.
        repo: Repository to write through.
        policy: Reconcile policy (identity-keyed by default).
    """

    def __init__(
        self,
        source: SourceKind,
        fetch: Fetcher,
        repo: Repository,
        policy: ReconcilePolicy | None = None,
    ) -> None:
        self.source = SourceKind(source)
        self._fetch = fetch
        self._repo = repo
        self._reconciler = Reconciler(repo, policy)

    def update(self, cancel: threading.Event | None = None) -> ReconcileResult:
        """Run one sync cycle and record it in the sync log.

        Fetch errors are logged as a failed run and re-raised.
        """
        started = time.perf_counter()
        try:
            items = list(self._fetch())
        except Exception as exc:
            self._log_run(STATUS_FAILED, ReconcileResult(), started, f"fetch failed: {exc}")
            raise
        logger.info("Fetched %d items from %s", len(items), self.source.value)

        for item in items:
            if isinstance(item, Record):
                item.source_kind = self.source

        result = self._reconciler.reconcile(items, cancel=cancel)
        status = STATUS_OK if not result.errors else STATUS_PARTIAL
        message = None
        if result.errors:
            shown = "; ".join(e.message for e in result.errors[:_MAX_ERRORS_IN_MESSAGE])
            more = len(result.errors) - _MAX_ERRORS_IN_MESSAGE
            message = shown + (f"; +{more} more" if more > 0 else "")
        self._log_run(status, result, started, message)
        return result

    def _log_run(
        self, status: str, result: ReconcileResult, started: float, message: str | None
    ) -> None:
        self._repo.add_sync_log(
            SyncLogEntry(
                source=self.source.value,
                status=status,
                items_scanned=result.scanned,
                items_added=result.added,
                items_updated=result.updated,
                items_unchanged=result.unchanged,
                items_failed=result.failed,
                duration_ms=int((time.perf_counter() - started) * 1000),
                message=message,
            )
        )
