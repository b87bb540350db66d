"""Retrieval-augmented generation over the knowledge base."""

from juris.services.rag.cache import RetrievalCache, get_retrieval_cache
from juris.services.rag.retriever import (
    CitationCandidate,
    ComprehensiveContext,
    RAGRetriever,
    RetrievalResult,
    RetrievedSource,
    build_context,
)

__all__ = [
    "CitationCandidate",
    "ComprehensiveContext",
    "RAGRetriever",
    "RetrievalCache",
    "RetrievalResult",
    "RetrievedSource",
    "build_context",
    "get_retrieval_cache",
]
