"""Retrieval-augmented generation: query to ranked, cited context.

A retrieval embeds the query, asks the knowledge store for the nearest
entries, converts cosine distance into a 0-100 confidence, drops
entries under the minimum confidence and formats the survivors into a
context block that fits a token budget.
"""

from __future__ import annotations

import asyncio
import logging
import math
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any

from juris.core.config import settings
from juris.models.enums import SourceType
from juris.services.knowledge.store import KnowledgeStore
from juris.services.providers.base import EmbeddingProvider
from juris.services.providers.retry import RetryPolicy, call_with_retry
from juris.services.rag.cache import RetrievalCache

logger = logging.getLogger(__name__)

CONTEXT_HEADER = "CONTEXTO RELEVANTE DA BASE DE CONHECIMENTO:\n\n"
CONTEXT_SEPARATOR = "\n\n---\n\n"
SECTION_SEPARATOR = "\n\n=== SEPARADOR DE CONTEXTO ===\n\n"
EXCERPT_LENGTH = 200

LEGISLATION_TAGS = ["CF", "CPC", "CLT", "CCB", "Lei"]
JURISPRUDENCE_TAGS = ["STF", "STJ", "TST", "Jurisprudência"]


def estimate_tokens(text: str) -> int:
    """Rough token estimate (4 characters per token)."""
    return math.ceil(len(text) / 4)


def distance_to_confidence(distance: float) -> float:
    """Cosine distance to a confidence percentage clamped to [0, 100]."""
    return max(0.0, min(100.0, (1.0 - distance) * 100.0))


@dataclass
class CitationCandidate:
    """Citation ready to be attached to a message."""

    knowledge_entry_id: uuid.UUID
    source_type: str
    source_url: str | None
    source_title: str | None
    excerpt: str
    confidence_score: float

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["knowledge_entry_id"] = str(self.knowledge_entry_id)
        return data


@dataclass
class RetrievedSource:
    """Knowledge entry selected by a retrieval.

    Attributes:
        entry_id: Knowledge base entry id
        content: Entry text
        source_type: Entry source type
        title: Entry title (nullable)
        source_url: Entry link (nullable)
        tags: Entry tags
        distance: Cosine distance to the query
        confidence: Confidence percentage in [0, 100]
        metadata: Entry metadata
    """

    entry_id: uuid.UUID
    content: str
    source_type: str
    title: str | None
    source_url: str | None
    tags: list[str]
    distance: float
    confidence: float
    metadata: dict[str, Any] = field(default_factory=dict)

    def label(self, position: int) -> str:
        return self.title or self.source_url or f"Fonte {position}"

    def to_citation(self) -> CitationCandidate:
        return CitationCandidate(
            knowledge_entry_id=self.entry_id,
            source_type=self.source_type,
            source_url=self.source_url,
            source_title=self.title,
            excerpt=self.content[:EXCERPT_LENGTH],
            confidence_score=round(self.confidence / 100.0, 4),
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["entry_id"] = str(self.entry_id)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RetrievedSource:
        return cls(**{**data, "entry_id": uuid.UUID(data["entry_id"])})


@dataclass
class RetrievalResult:
    """Ranked sources and the formatted context built from them."""

    sources: list[RetrievedSource] = field(default_factory=list)
    context_summary: str = ""

    @property
    def has_context(self) -> bool:
        return bool(self.sources)

    def citations(self) -> list[CitationCandidate]:
        return [source.to_citation() for source in self.sources]

    def to_dict(self) -> dict[str, Any]:
        return {
            "sources": [s.to_dict() for s in self.sources],
            "context_summary": self.context_summary,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RetrievalResult:
        return cls(
            sources=[RetrievedSource.from_dict(s) for s in data.get("sources", [])],
            context_summary=data.get("context_summary", ""),
        )


@dataclass
class ComprehensiveContext:
    """Context assembled from legislation, jurisprudence and case documents."""

    context: str
    legislation: list[RetrievedSource]
    jurisprudence: list[RetrievedSource]
    documents: list[RetrievedSource]

    @property
    def sources(self) -> list[RetrievedSource]:
        return [*self.legislation, *self.jurisprudence, *self.documents]


def build_context(sources: list[RetrievedSource], token_budget: int) -> str:
    """Format sources into a context block within ``token_budget`` tokens.

    Sources are added in rank order until the next one would exceed the
    budget. If even the first one does not fit, its content is truncated.
    """
    if not sources or token_budget <= 0:
        return ""

    parts: list[str] = []
    used = estimate_tokens(CONTEXT_HEADER)
    for position, source in enumerate(sources, start=1):
        heading = f"[{position}] {source.label(position)} ({source.confidence:.1f}% relevância)\n"
        block = heading + source.content
        cost = estimate_tokens(block) + (
            estimate_tokens(CONTEXT_SEPARATOR) if parts else 0
        )
        if used + cost <= token_budget:
            parts.append(block)
            used += cost
            continue
        if not parts:
            room_chars = (token_budget - used - estimate_tokens(heading)) * 4
            if room_chars > 0:
                parts.append(heading + source.content[:room_chars])
        break

    if not parts:
        return ""
    return CONTEXT_HEADER + CONTEXT_SEPARATOR.join(parts)


class RAGRetriever:
    """Vector retrieval over the knowledge store with citation output."""

    def __init__(
        self,
        store: KnowledgeStore,
        embedder: EmbeddingProvider,
        cache: RetrievalCache | None = None,
        top_k: int | None = None,
        min_confidence: float | None = None,
        context_token_budget: int | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.cache = cache
        self.top_k = top_k or settings.RAG_TOP_K
        self.min_confidence = (
            settings.RAG_MIN_CONFIDENCE if min_confidence is None else min_confidence
        )
        self.context_token_budget = (
            context_token_budget or settings.RAG_CONTEXT_TOKEN_BUDGET
        )
        self.retry_policy = retry_policy or RetryPolicy.from_settings()

    async def retrieve(
        self,
        query: str,
        source_type: str | None = None,
        top_k: int | None = None,
        tags: list[str] | None = None,
        min_confidence: float | None = None,
        owner_id: uuid.UUID | str | None = None,
    ) -> RetrievalResult:
        """Retrieve the most relevant knowledge for ``query``.

        Args:
            query: Natural language query
            source_type: Restrict to one source type
            top_k: Maximum number of sources (defaults to RAG_TOP_K)
            tags: Restrict to entries carrying any of these tags
            min_confidence: Minimum confidence fraction in [0, 1]
            owner_id: Restrict to entries owned by this user

        Returns:
            RetrievalResult with sources ordered by ascending distance.

        Raises:
            ProviderError: If the query could not be embedded.
        """
        limit = max(1, top_k or self.top_k)
        threshold = self.min_confidence if min_confidence is None else min_confidence
        source_type = str(source_type) if source_type is not None else None

        cache_key = None
        if self.cache is not None:
            cache_key = RetrievalCache.make_key(
                query=query,
                source_type=source_type,
                tags=sorted(tags) if tags else None,
                top_k=limit,
                min_confidence=threshold,
                owner_id=str(owner_id) if owner_id is not None else None,
            )
            cached = await self.cache.get(cache_key)
            if cached is not None:
                return RetrievalResult.from_dict(cached)

        embedding = await call_with_retry(
            lambda: self.embedder.embed(query),
            self.retry_policy,
            operation_name="query embedding",
        )
        hits = await self.store.similarity_search(
            embedding, limit, source_type=source_type, tags=tags, owner_id=owner_id
        )

        sources: list[RetrievedSource] = []
        for hit in hits:
            confidence = distance_to_confidence(hit.distance)
            if confidence < threshold * 100.0:
                continue
            entry = hit.entry
            sources.append(
                RetrievedSource(
                    entry_id=entry.id,
                    content=entry.content,
                    source_type=entry.source_type,
                    title=entry.title,
                    source_url=entry.source_url,
                    tags=list(entry.tags or []),
                    distance=hit.distance,
                    confidence=round(confidence, 2),
                    metadata=dict(entry.metadata_ or {}),
                )
            )

        result = RetrievalResult(
            sources=sources,
            context_summary=build_context(sources, self.context_token_budget),
        )

        if self.cache is not None and cache_key is not None:
            await self.cache.set(cache_key, result.to_dict())

        logger.info(
            "RAG search completed",
            extra={
                "context": {
                    "query": query[:50],
                    "source_type": source_type,
                    "candidates": len(hits),
                    "results": len(sources),
                }
            },
        )
        return result

    async def retrieve_legislation(
        self, query: str, top_k: int = 3
    ) -> RetrievalResult:
        """Brazilian legislation (constitution and codes)."""
        return await self.retrieve(
            query,
            source_type=SourceType.LEGISLATION.value,
            top_k=top_k,
            tags=LEGISLATION_TAGS,
        )

    async def retrieve_jurisprudence(
        self, query: str, top_k: int = 3
    ) -> RetrievalResult:
        """Court decisions from the superior courts."""
        return await self.retrieve(
            query,
            source_type=SourceType.JURISPRUDENCE.value,
            top_k=top_k,
            tags=JURISPRUDENCE_TAGS,
        )

    async def retrieve_documents(
        self,
        query: str,
        owner_id: uuid.UUID | str,
        folder_id: uuid.UUID | str | None = None,
        top_k: int = 5,
    ) -> RetrievalResult:
        """Case documents owned by ``owner_id``, scoped to a folder when one is given."""
        tags = [f"folder:{folder_id}"] if folder_id else None
        return await self.retrieve(
            query,
            source_type=SourceType.DOCUMENT.value,
            top_k=top_k,
            tags=tags,
            owner_id=owner_id,
        )

    async def retrieve_comprehensive(
        self,
        query: str,
        folder_id: uuid.UUID | str | None = None,
        include_jurisprudence: bool = False,
        owner_id: uuid.UUID | str | None = None,
    ) -> ComprehensiveContext:
        """Legislation plus optional jurisprudence and folder documents.

        Folder documents are only searched when both ``folder_id`` and
        ``owner_id`` are given. The three retrievals run concurrently.
        """
        empty = RetrievalResult()

        async def _empty() -> RetrievalResult:
            return empty

        legislation, jurisprudence, documents = await asyncio.gather(
            self.retrieve_legislation(query, top_k=2),
            self.retrieve_jurisprudence(query, top_k=2)
            if include_jurisprudence
            else _empty(),
            self.retrieve_documents(query, owner_id, folder_id=folder_id, top_k=3)
            if folder_id and owner_id is not None
            else _empty(),
        )
        contexts = [
            r.context_summary
            for r in (legislation, jurisprudence, documents)
            if r.context_summary
        ]
        return ComprehensiveContext(
            context=SECTION_SEPARATOR.join(contexts),
            legislation=legislation.sources,
            jurisprudence=jurisprudence.sources,
            documents=documents.sources,
        )


__all__ = [
    "CONTEXT_HEADER",
    "CitationCandidate",
    "ComprehensiveContext",
    "RAGRetriever",
    "RetrievalResult",
    "RetrievedSource",
    "build_context",
    "distance_to_confidence",
    "estimate_tokens",
]
