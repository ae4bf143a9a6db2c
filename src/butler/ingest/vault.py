"""Vault indexer — sync a directory of notes into the document store."""

from __future__ import annotations

import fnmatch
import logging
import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from butler.errors import TransactionFailed, check_cancelled
from butler.ingest.pipeline import CREATED, UNCHANGED, UPDATED, DocumentIndexer

logger = logging.getLogger(__name__)


@dataclass
class VaultIndexingResult:
    """Counts for one index_vault() run."""

    scanned: int = 0
    added: int = 0
    updated: int = 0
    unchanged: int = 0
    removed: int = 0
    chunks_created: int = 0
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def failed(self) -> int:
        return len(self.errors)


class VaultIndexer:
    """Index every matching note under *root*; remove documents whose file is gone.

    Document paths are relative POSIX paths from *root*, so the same vault
    indexes identically wherever it is mounted. Every document in the store
    is treated as belonging to this vault.

    Args:
        root: Vault directory.
        indexer: DocumentIndexer used for each file.
        include: Glob patterns (relative path) a file must match.
        exclude: Glob patterns that drop a file even if included.
    """

    def __init__(
        self,
        root: Path | str,
        indexer: DocumentIndexer,
        include: Sequence[str] = ("*.md",),
        exclude: Sequence[str] = (),
    ) -> None:
        self.root = Path(root)
        self._indexer = indexer
        self.include = list(include)
        self.exclude = list(exclude)

    def scan(self) -> list[str]:
        """Sorted relative paths of the notes that would be indexed."""
        if not self.root.is_dir():
            raise FileNotFoundError(f"Vault directory not found: {self.root}")
        paths = []
        for file in self.root.rglob("*"):
            if not file.is_file():
                continue
            rel = file.relative_to(self.root).as_posix()
            if self._matches(rel):
                paths.append(rel)
        return sorted(paths)

    def index_vault(self, cancel: threading.Event | None = None) -> VaultIndexingResult:
        """Sync new and changed notes, then drop documents for deleted files.

        A file that cannot be read or synced is recorded in ``errors`` and the
        run continues. Cancellation stops the run between files; documents
        already synced stay synced.
        """
        started = time.perf_counter()
        result = VaultIndexingResult()
        paths = self.scan()
        repo = self._indexer.repo

        for rel in paths:
            check_cancelled(cancel)
            result.scanned += 1
            file = self.root / rel
            try:
                text = file.read_text(encoding="utf-8")
                mtime = datetime.fromtimestamp(file.stat().st_mtime, tz=timezone.utc)
                outcome = self._indexer.sync_document(rel, text, mtime, cancel=cancel)
            except (OSError, UnicodeDecodeError, TransactionFailed) as exc:
                logger.warning("Failed to index %s: %s", rel, exc)
                result.errors.append(f"{rel}: {exc}")
                continue

            if outcome.status == CREATED:
                result.added += 1
            elif outcome.status == UPDATED:
                result.updated += 1
            elif outcome.status == UNCHANGED:
                result.unchanged += 1
            if outcome.status != UNCHANGED:
                result.chunks_created += outcome.chunk_count

        present = set(paths)
        for path in sorted(set(repo.document_hashes()) - present):
            check_cancelled(cancel)
            try:
                if self._indexer.remove_document(path, cancel=cancel):
                    result.removed += 1
            except TransactionFailed as exc:
                logger.warning("Failed to remove %s: %s", path, exc)
                result.errors.append(f"{path}: {exc}")

        result.duration_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            "Vault %s: %d scanned, %d added, %d updated, %d unchanged, %d removed, %d errors",
            self.root,
            result.scanned,
            result.added,
            result.updated,
            result.unchanged,
            result.removed,
            result.failed,
        )
        return result

    def _matches(self, rel: str) -> bool:
        if not any(fnmatch.fnmatch(rel, p) for p in self.include):
            return False
        return not any(fnmatch.fnmatch(rel, p) for p in self.exclude)
