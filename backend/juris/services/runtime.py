"""Wiring of the AI services used by the HTTP layer.

One AIServices instance is built at startup and shared by every
request; per-request state (the database session, the caller) is passed
into each call instead of being held here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from juris.core.config import settings
from juris.services.agents.executor import AgentExecutor
from juris.services.knowledge.backfill import (
    EmbeddingBackfillJob,
    EmbeddingBackfillScheduler,
)
from juris.services.knowledge.ingestion import KnowledgeIngestionService
from juris.services.knowledge.store import KnowledgeStore
from juris.services.orchestrator import ChatOrchestrator, ConversationLockRegistry
from juris.services.providers.openai_compat import (
    OpenAICompatibleEmbeddingProvider,
    OpenAICompatibleLLMProvider,
)
from juris.services.rag.cache import RetrievalCache, get_retrieval_cache
from juris.services.rag.retriever import RAGRetriever
from juris.services.tools.client import HttpClientDirectory
from juris.services.tools.registry import ToolRegistry, build_default_registry
from juris.services.workflow.engine import WorkflowEngine

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from juris.services.providers.base import EmbeddingProvider, LLMProvider
    from juris.services.tools.client import ClientDirectory

logger = logging.getLogger(__name__)


@dataclass
class AIServices:
    """Long-lived collaborators shared across requests."""

    llm: LLMProvider
    embedder: EmbeddingProvider
    store: KnowledgeStore
    cache: RetrievalCache | None
    retriever: RAGRetriever
    registry: ToolRegistry
    executor: AgentExecutor
    engine: WorkflowEngine
    orchestrator: ChatOrchestrator
    ingestion: KnowledgeIngestionService
    backfill: EmbeddingBackfillScheduler
    client_directory: ClientDirectory | None = None

    async def close(self) -> None:
        await self.backfill.shutdown()
        if isinstance(self.client_directory, HttpClientDirectory):
            await self.client_directory.close()
        if self.cache is not None:
            await self.cache.close()


def build_ai_services(
    session_factory: async_sessionmaker[AsyncSession],
    llm: LLMProvider | None = None,
    embedder: EmbeddingProvider | None = None,
    cache: RetrievalCache | None = None,
    client_directory: ClientDirectory | None = None,
    locks: ConversationLockRegistry | None = None,
) -> AIServices:
    """Build the service graph.

    Providers default to the OpenAI-compatible adapters configured from
    settings; tests pass fakes instead.

    Raises:
        ValueError: If a default provider is needed and no API key is set.
    """
    if llm is None:
        llm = OpenAICompatibleLLMProvider()
    if embedder is None:
        embedder = OpenAICompatibleEmbeddingProvider()
    if client_directory is None and settings.CLIENT_DIRECTORY_URL:
        client_directory = HttpClientDirectory(settings.CLIENT_DIRECTORY_URL)

    store = KnowledgeStore(session_factory, dimension=embedder.dimension)
    retriever = RAGRetriever(store, embedder, cache=cache)
    registry = build_default_registry(retriever, client_directory=client_directory)
    executor = AgentExecutor(llm, registry, retriever=retriever)
    engine = WorkflowEngine(executor)
    orchestrator = ChatOrchestrator(
        executor,
        engine,
        locks=locks
        or ConversationLockRegistry(
            reject_concurrent=settings.CONVERSATION_REJECT_CONCURRENT
        ),
    )
    backfill = EmbeddingBackfillScheduler(EmbeddingBackfillJob(store, embedder, cache=cache))

    logger.info(
        "AI services initialized",
        extra={
            "context": {
                "tools": registry.list_registered(),
                "embedding_dimension": embedder.dimension,
            }
        },
    )
    return AIServices(
        llm=llm,
        embedder=embedder,
        store=store,
        cache=cache,
        retriever=retriever,
        registry=registry,
        executor=executor,
        engine=engine,
        orchestrator=orchestrator,
        ingestion=KnowledgeIngestionService(store, embedder, cache=cache),
        backfill=backfill,
        client_directory=client_directory,
    )


def build_default_ai_services(
    session_factory: async_sessionmaker[AsyncSession],
) -> AIServices:
    """Services with the configured providers and the global retrieval cache."""
    return build_ai_services(session_factory, cache=get_retrieval_cache())


__all__ = ["AIServices", "build_ai_services", "build_default_ai_services"]
