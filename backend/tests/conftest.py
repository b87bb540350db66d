"""pytest configuration and fixtures.

Every test gets its own file-backed SQLite database. A file (rather than
``:memory:``) is used because the knowledge store opens its own sessions
and must see rows committed by the test session.

Providers are replaced by scripted fakes: FakeLLMProvider answers from a
queue of responses, FakeEmbeddingProvider hashes words into a small
vector space.
"""

import asyncio
import hashlib
import re
import uuid
from collections.abc import AsyncGenerator, AsyncIterator
from datetime import date
from typing import Any, cast

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from starlette.types import ASGIApp

from juris.api.deps import get_orchestrator, get_session_factory
from juris.core.identity import CallerIdentity
from juris.core.jwt import create_access_token
from juris.db.session import get_db
from juris.defaults.seed import SeedResult, seed_ai_defaults
from juris.main import app
from juris.models import Base
from juris.services.agents.executor import AgentExecutor
from juris.services.knowledge.store import KnowledgeStore
from juris.services.orchestrator import ChatOrchestrator, ConversationLockRegistry
from juris.services.providers.base import LLMResponse, StreamChunk, ToolCall
from juris.services.providers.retry import RetryPolicy
from juris.services.rag.retriever import RAGRetriever
from juris.services.tools.registry import ToolRegistry, build_default_registry
from juris.services.workflow.engine import WorkflowEngine

TODAY = date(2025, 3, 10)
EMBEDDING_DIMENSION = 8

# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "slow: marks tests as slow (deselect with '-m \"not slow\"')",
    )
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests",
    )


# =============================================================================
# PROVIDER FAKES
# =============================================================================


_HANG = object()


class FakeLLMProvider:
    """Chat provider answering from a script.

    Each ``complete`` call pops the next scripted item: an LLMResponse is
    returned, an exception is raised, ``hang()`` never returns. Once the
    script is exhausted ``default`` is returned.
    """

    def __init__(self) -> None:
        self.script: list[Any] = []
        self.calls: list[dict[str, Any]] = []
        self.default = LLMResponse(
            content="Resposta padrão.", tokens_used=10, finish_reason="stop"
        )
        self.stream_chunks = [
            StreamChunk(content="Conforme o art. 7º da CF, "),
            StreamChunk(content="o prazo prescricional é de cinco anos."),
            StreamChunk(tokens_used=42, finish_reason="stop"),
        ]

    def reply(self, content: str, tokens: int = 10) -> "FakeLLMProvider":
        self.script.append(
            LLMResponse(content=content, tokens_used=tokens, finish_reason="stop")
        )
        return self

    def call_tool(
        self,
        name: str,
        arguments: dict[str, Any],
        tokens: int = 5,
    ) -> "FakeLLMProvider":
        return self.call_tools([(name, arguments)], tokens=tokens)

    def call_tools(
        self,
        calls: list[tuple[str, dict[str, Any]]],
        tokens: int = 5,
    ) -> "FakeLLMProvider":
        """Script one response requesting every call in ``calls``."""
        round_number = len(self.script)
        tool_calls = [
            ToolCall(id=f"call_{round_number}_{i}", name=name, arguments=arguments)
            for i, (name, arguments) in enumerate(calls)
        ]
        self.script.append(
            LLMResponse(
                content="", tool_calls=tool_calls, tokens_used=tokens, finish_reason="tool_calls"
            )
        )
        return self

    def fail(self, error: Exception) -> "FakeLLMProvider":
        self.script.append(error)
        return self

    def hang(self) -> "FakeLLMProvider":
        self.script.append(_HANG)
        return self

    @property
    def models_called(self) -> list[str | None]:
        return [call["model"] for call in self.calls]

    async def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        self.calls.append({"model": model, "messages": list(messages), "tools": tools})
        item = self.script.pop(0) if self.script else self.default
        if item is _HANG:
            await asyncio.sleep(3600)
        if isinstance(item, Exception):
            raise item
        return item

    async def stream(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[StreamChunk]:
        self.calls.append({"model": model, "messages": list(messages), "tools": None})
        for chunk in self.stream_chunks:
            yield chunk


_WORD = re.compile(r"\w+")


class FakeEmbeddingProvider:
    """Deterministic bag-of-words embeddings.

    Texts listed in ``fixed`` get that exact vector.
    """

    def __init__(self, dimension: int = EMBEDDING_DIMENSION) -> None:
        self.dimension = dimension
        self.fixed: dict[str, list[float]] = {}
        self.calls: list[str] = []

    def _vector(self, text: str) -> list[float]:
        if text in self.fixed:
            return list(self.fixed[text])
        vector = [0.0] * self.dimension
        for word in _WORD.findall(text.lower()):
            digest = hashlib.sha256(word.encode("utf-8")).hexdigest()
            vector[int(digest[:8], 16) % self.dimension] += 1.0
        return vector

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        return self._vector(text)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.calls.extend(texts)
        return [self._vector(text) for text in texts]


class InMemoryClientDirectory:
    """Client records keyed by id."""

    def __init__(self) -> None:
        self.clients: dict[str, dict[str, Any]] = {}

    def add(self, client_id: str, owner_id: uuid.UUID, **fields: Any) -> None:
        self.clients[client_id] = {"id": client_id, "owner_id": str(owner_id), **fields}

    async def get_client(self, client_id: str) -> dict[str, Any] | None:
        return self.clients.get(client_id)


# =============================================================================
# DATABASE FIXTURES
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def async_engine(tmp_path) -> AsyncGenerator[AsyncEngine]:
    """SQLite engine with foreign keys enforced and all tables created."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(
    async_engine: AsyncEngine,
) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Plain session; agent runs commit through it at their checkpoints."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def seeded(db_session: AsyncSession) -> SeedResult:
    """Default agents, tools and workflows, committed."""
    result = await seed_ai_defaults(db_session)
    await db_session.commit()
    return result


# =============================================================================
# SERVICE FIXTURES
# =============================================================================


@pytest.fixture
def llm() -> FakeLLMProvider:
    return FakeLLMProvider()


@pytest.fixture
def embedder() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def clients() -> InMemoryClientDirectory:
    return InMemoryClientDirectory()


@pytest.fixture
def fast_retry() -> RetryPolicy:
    """No retries and a short per-call timeout."""
    return RetryPolicy(
        max_retries=0,
        initial_delay_seconds=0.01,
        max_delay_seconds=0.01,
        timeout_seconds=0.5,
    )


@pytest.fixture
def knowledge_store(
    session_factory: async_sessionmaker[AsyncSession],
    embedder: FakeEmbeddingProvider,
) -> KnowledgeStore:
    return KnowledgeStore(session_factory, dimension=embedder.dimension)


@pytest.fixture
def retriever(
    knowledge_store: KnowledgeStore,
    embedder: FakeEmbeddingProvider,
    fast_retry: RetryPolicy,
) -> RAGRetriever:
    return RAGRetriever(
        knowledge_store, embedder, min_confidence=0.0, retry_policy=fast_retry
    )


@pytest.fixture
def registry(
    retriever: RAGRetriever,
    clients: InMemoryClientDirectory,
) -> ToolRegistry:
    return build_default_registry(retriever, client_directory=clients, today=lambda: TODAY)


@pytest.fixture
def executor(
    llm: FakeLLMProvider,
    registry: ToolRegistry,
    retriever: RAGRetriever,
    fast_retry: RetryPolicy,
) -> AgentExecutor:
    return AgentExecutor(
        llm,
        registry,
        retriever=retriever,
        retry_policy=fast_retry,
        tool_budget=3,
        time_budget_seconds=5,
    )


@pytest.fixture
def orchestrator(executor: AgentExecutor) -> ChatOrchestrator:
    return ChatOrchestrator(
        executor, WorkflowEngine(executor), locks=ConversationLockRegistry()
    )


@pytest.fixture
def caller() -> CallerIdentity:
    return CallerIdentity(user_id=uuid.uuid4())


@pytest.fixture
def auth_headers(caller: CallerIdentity) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(caller.user_id)}"}


# =============================================================================
# HTTP CLIENT FIXTURE
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def async_client(
    session_factory: async_sessionmaker[AsyncSession],
    orchestrator: ChatOrchestrator,
) -> AsyncGenerator[AsyncClient]:
    """Async HTTP client for testing API endpoints.

    Uses ASGI transport to test the FastAPI app without running a server.
    Database and AI service dependencies point at the test database and
    the fake providers.
    """

    async def override_get_db() -> AsyncGenerator[AsyncSession]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator

    try:
        transport = ASGITransport(app=cast("ASGIApp", app))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()
