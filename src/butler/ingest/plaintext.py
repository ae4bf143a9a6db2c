"""Plain text chunker — fixed window with overlap, no line tracking."""

from __future__ import annotations

from butler.db.models import Chunk
from butler.ingest.base import BaseChunker


class PlainTextChunker(BaseChunker):
    """Split plain text into fixed-size windows with overlap.

    Windows cut across lines, so chunks carry no line range.
    """

    def chunk(self, content: str, path: str = "", title: str | None = None) -> list[Chunk]:
        if not content.strip():
            return []
        segments = self._split_fixed_window(content)
        return self._make_chunks([(s, None, None) for s in segments])
