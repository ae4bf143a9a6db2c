"""Document ingestion: chunkers, embeddings, per-document sync and vault indexing."""

from butler.ingest.base import BaseChunker
from butler.ingest.embeddings import LiteLLMEmbedder
from butler.ingest.markdown import NoteChunker, extract_title
from butler.ingest.pipeline import DocumentIndexer, IndexStats, SyncResult, content_hash
from butler.ingest.plaintext import PlainTextChunker
from butler.ingest.vault import VaultIndexer, VaultIndexingResult

__all__ = [
    "BaseChunker",
    "DocumentIndexer",
    "IndexStats",
    "LiteLLMEmbedder",
    "NoteChunker",
    "PlainTextChunker",
    "SyncResult",
    "VaultIndexer",
    "VaultIndexingResult",
    "content_hash",
    "extract_title",
]
