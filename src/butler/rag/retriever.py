"""Dense retriever over note chunks (sqlite-vec cosine search).

Scores are cosine similarities in [0, 1]: ``score = 1 - distance / 2``.
``retrieve()`` keeps only the best chunk of each note so one long note cannot
crowd every other note out of the results.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from butler.db.models import SearchResult
from butler.db.repository import Repository
from butler.db.vectors import VectorIndex


@dataclass
class RetrieverConfig:
    """Configuration for the retriever.

    Attributes:
        top_k: Maximum number of notes to return.
        min_score: Similarity floor in [0, 1]; weaker hits are dropped.
    """

    top_k: int = 5
    min_score: float = 0.3


def search(
    repo: Repository,
    index: VectorIndex,
    query_vector: Sequence[float] | bytes,
    top_k: int,
    min_score: float,
    cancel: threading.Event | None = None,
) -> list[SearchResult]:
    """Chunk-level nearest neighbours joined to their documents, best first.

    Raises:
        IndexUnavailable: Vector search cannot run on this connection.
        DimensionMismatch: *query_vector* has the wrong dimensionality.
    """
    hits = index.search(query_vector, top_k, min_score, cancel=cancel)
    return repo.resolve_hits(hits)


def retrieve(
    query: str,
    repo: Repository,
    index: VectorIndex,
    embed_query: Callable[[str], Sequence[float]],
    config: RetrieverConfig | None = None,
    cancel: threading.Event | None = None,
) -> list[SearchResult]:
    """Embed *query*, search, and return the best chunk per note.

    Twice ``top_k`` chunks are fetched so deduplication still leaves up to
    ``top_k`` distinct notes.

    Raises:
        IndexUnavailable: Checked before the query is embedded.
    """
    config = config or RetrieverConfig()
    index.require()
    vector = embed_query(query)
    results = search(repo, index, vector, config.top_k * 2, config.min_score, cancel)
    return dedupe_by_document(results)[: config.top_k]


def dedupe_by_document(results: list[SearchResult]) -> list[SearchResult]:
    """Keep the highest-scoring result per document, ordered by score."""
    best: dict[str, SearchResult] = {}
    for result in results:
        current = best.get(result.document_id)
        if current is None or result.score > current.score:
            best[result.document_id] = result
    return sorted(best.values(), key=lambda r: r.score, reverse=True)
