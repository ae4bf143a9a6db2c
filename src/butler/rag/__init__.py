"""Retrieval over indexed notes."""

from butler.rag.retriever import RetrieverConfig, dedupe_by_document, retrieve, search

__all__ = ["RetrieverConfig", "dedupe_by_document", "retrieve", "search"]
