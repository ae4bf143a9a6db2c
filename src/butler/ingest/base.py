"""Base chunker interface for butler documents."""

from __future__ import annotations

from abc import ABC, abstractmethod

from butler.db.models import Chunk

CHARS_PER_TOKEN = 4


class BaseChunker(ABC):
    """Abstract base for all chunkers.

    Subclasses implement ``chunk()``. Output must be deterministic: the same
    text always yields the same boundaries, indices and line ranges.

    Token counting uses a 4-chars-per-token approximation; no external
    tokenizer dependency is required.
    """

    def __init__(self, chunk_size: int = 500, overlap_tokens: int = 50) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if not 0 <= overlap_tokens < chunk_size:
            raise ValueError("overlap_tokens must be in [0, chunk_size)")
        self.chunk_size = chunk_size
        self.overlap_tokens = overlap_tokens

    @property
    def target_chars(self) -> int:
        return self.chunk_size * CHARS_PER_TOKEN

    @property
    def overlap_chars(self) -> int:
        return self.overlap_tokens * CHARS_PER_TOKEN

    @abstractmethod
    def chunk(self, content: str, path: str = "", title: str | None = None) -> list[Chunk]:
        """Split *content* into Chunk objects.

        Args:
            content: Full decoded text of the document.
            path: Document path (used for the context prefix / messages).
            title: Display title, if known.

        Returns:
            Ordered list of Chunks with ``chunk_index`` 0..N-1. Empty for a
            blank document.
        """

    @staticmethod
    def count_tokens(text: str) -> int:
        """Approximate token count: 4 characters ≈ 1 token (minimum 1)."""
        return max(1, len(text) // CHARS_PER_TOKEN)

    def _split_fixed_window(self, text: str) -> list[str]:
        """Windows of ``target_chars`` every ``target_chars - overlap_chars`` characters.

        The last window ends at the end of *text*. Windows are stripped and
        whitespace-only windows are dropped.
        """
        width = self.target_chars
        step = max(1, width - self.overlap_chars)
        windows: list[str] = []
        for offset in range(0, len(text), step):
            window = text[offset : offset + width].strip()
            if window:
                windows.append(window)
            if offset + width >= len(text):
                break
        return windows

    @staticmethod
    def _make_chunks(pieces: list[tuple[str, int | None, int | None]]) -> list[Chunk]:
        """Convert ``(text, start_line, end_line)`` tuples into indexed Chunks."""
        return [
            Chunk(chunk_index=i, text=text, start_line=start, end_line=end)
            for i, (text, start, end) in enumerate(pieces)
        ]
