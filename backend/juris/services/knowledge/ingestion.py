"""Knowledge ingestion: chunk, embed and store documents."""

from __future__ import annotations

import logging
import re

from juris.core.config import settings
from juris.schemas.knowledge import KnowledgeEntryCreate, KnowledgeIngest
from juris.services.knowledge.store import KnowledgeStore
from juris.services.providers.base import EmbeddingProvider
from juris.services.providers.retry import RetryPolicy, call_with_retry
from juris.services.rag.cache import RetrievalCache

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def chunk_text(text: str, chunk_size: int, overlap: int) -> list[str]:
    """Split text into word windows of ``chunk_size`` words.

    Consecutive windows share ``overlap`` words. The last window always
    ends at the last word; no window is a suffix of the previous one.

    Raises:
        ValueError: If overlap is not smaller than chunk_size.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if not 0 <= overlap < chunk_size:
        raise ValueError("overlap must be in [0, chunk_size)")

    words = [w for w in _WHITESPACE.split(text) if w]
    if not words:
        return []

    step = chunk_size - overlap
    chunks: list[str] = []
    start = 0
    while True:
        chunks.append(" ".join(words[start : start + chunk_size]))
        if start + chunk_size >= len(words):
            break
        start += step
    return chunks


class KnowledgeIngestionService:
    """Turns source documents into embedded knowledge entries."""

    def __init__(
        self,
        store: KnowledgeStore,
        embedder: EmbeddingProvider,
        chunk_size: int | None = None,
        chunk_overlap: int | None = None,
        retry_policy: RetryPolicy | None = None,
        cache: RetrievalCache | None = None,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.cache = cache
        self.chunk_size = chunk_size or settings.RAG_CHUNK_SIZE
        self.chunk_overlap = (
            settings.RAG_CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap
        )
        self.retry_policy = retry_policy or RetryPolicy.from_settings()

    def _build_entries(
        self,
        payload: KnowledgeIngest,
        chunks: list[str],
        embeddings: list[list[float]] | None,
    ) -> list[KnowledgeEntryCreate]:
        return [
            KnowledgeEntryCreate(
                content=chunk,
                embedding=embeddings[index] if embeddings is not None else None,
                source_type=payload.source_type,
                source_id=payload.source_id,
                source_url=payload.source_url,
                title=payload.title,
                tags=payload.tags,
                metadata={
                    **payload.metadata,
                    "chunk_index": index,
                    "total_chunks": len(chunks),
                },
            )
            for index, chunk in enumerate(chunks)
        ]

    async def ingest(self, payload: KnowledgeIngest) -> int:
        """Chunk, embed and insert a document.

        Returns:
            Number of entries created.
        """
        chunks = chunk_text(payload.content, self.chunk_size, self.chunk_overlap)
        if not chunks:
            return 0

        embeddings = await call_with_retry(
            lambda: self.embedder.embed_batch(chunks),
            self.retry_policy,
            operation_name="embedding batch",
        )
        rows = await self.store.insert(self._build_entries(payload, chunks, embeddings))
        if self.cache is not None:
            await self.cache.clear()

        logger.info(
            "Content ingested into knowledge base",
            extra={
                "context": {
                    "source_type": str(payload.source_type),
                    "source_id": payload.source_id,
                    "chunks": len(rows),
                }
            },
        )
        return len(rows)

    async def ingest_unembedded(self, payload: KnowledgeIngest) -> int:
        """Insert chunks without embeddings; the backfill job embeds them later."""
        chunks = chunk_text(payload.content, self.chunk_size, self.chunk_overlap)
        if not chunks:
            return 0
        rows = await self.store.insert(self._build_entries(payload, chunks, None))
        logger.info(
            "Content queued for background embedding",
            extra={"context": {"source_id": payload.source_id, "chunks": len(rows)}},
        )
        return len(rows)


__all__ = ["KnowledgeIngestionService", "chunk_text"]
