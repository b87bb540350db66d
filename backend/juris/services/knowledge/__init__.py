"""Knowledge base persistence, search and ingestion."""

from juris.services.knowledge.backfill import (
    BackfillResult,
    EmbeddingBackfillJob,
    EmbeddingBackfillScheduler,
)
from juris.services.knowledge.ingestion import KnowledgeIngestionService, chunk_text
from juris.services.knowledge.store import KnowledgeSearchHit, KnowledgeStore

__all__ = [
    "BackfillResult",
    "EmbeddingBackfillJob",
    "EmbeddingBackfillScheduler",
    "KnowledgeIngestionService",
    "KnowledgeSearchHit",
    "KnowledgeStore",
    "chunk_text",
]
