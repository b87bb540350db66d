"""Chat orchestrator: the caller-facing operations.

Routes a user message to an agent, keeps one turn at a time per
conversation and maps workflow runs onto multi-agent conversations.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import aclosing, asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import select

from juris.core.exceptions import ConversationBusyError, ResourceNotFoundError
from juris.core.logging import log_context
from juris.models.agent import Agent
from juris.models.enums import ConversationMode, MessageRole
from juris.models.workflow import Workflow
from juris.services.agents.context import TurnContext, history_from_messages
from juris.services.conversation_service import ConversationStore, make_title
from juris.services.workflow.engine import WorkflowRunResult, summarize

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from juris.core.identity import CallerIdentity
    from juris.models.conversation import Conversation
    from juris.services.agents.executor import AgentExecutor, AgentRunResult
    from juris.services.workflow.engine import WorkflowEngine

logger = logging.getLogger(__name__)

DEFAULT_AGENT_SLUG = "legal-research"
HISTORY_LIMIT = 20

# First matching rule wins
AGENT_KEYWORDS: list[tuple[str, list[str]]] = [
    (
        "legal-research",
        [
            "pesquisar",
            "jurisprudência",
            "precedente",
            "stf",
            "stj",
            "tst",
            "legislação",
            "lei",
            "código",
            "súmula",
            "doutrina",
        ],
    ),
    (
        "document-analyzer",
        [
            "analisar contrato",
            "revisar contrato",
            "cláusula",
            "analisar documento",
            "analisar petição",
            "analisar decisão",
            "documento",
            "pdf",
        ],
    ),
    (
        "case-strategy",
        [
            "estratégia",
            "chance de êxito",
            "avaliar risco",
            "plano",
            "tática",
            "como proceder",
            "melhor caminho",
        ],
    ),
    (
        "deadline-manager",
        [
            "prazo",
            "vencimento",
            "calcular prazo",
            "urgência",
            "deadline",
            "feriado",
            "quando vence",
        ],
    ),
    (
        "legal-writer",
        [
            "redigir",
            "escrever",
            "elaborar petição",
            "elaborar contrato",
            "parecer",
            "minuta",
            "draft",
        ],
    ),
    (
        "client-communicator",
        [
            "explicar para cliente",
            "relatório executivo",
            "resumo",
            "comunicar",
            "traduzir",
            "simplificar",
        ],
    ),
]


def select_agent_slug(text: str) -> str:
    """Agent slug for a message, by keyword (default ``legal-research``)."""
    lowered = text.lower()
    for slug, keywords in AGENT_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return slug
    return DEFAULT_AGENT_SLUG


class ConversationLockRegistry:
    """One running turn per conversation within this process.

    Turns on the same conversation are serialized in arrival order; with
    ``reject_concurrent`` a second turn fails fast instead.
    """

    def __init__(self, reject_concurrent: bool = False) -> None:
        self.reject_concurrent = reject_concurrent
        self._locks: dict[uuid.UUID, asyncio.Lock] = {}
        self._holders: dict[uuid.UUID, int] = {}

    def is_busy(self, conversation_id: uuid.UUID) -> bool:
        lock = self._locks.get(conversation_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, conversation_id: uuid.UUID) -> AsyncIterator[None]:
        """Hold the conversation for the duration of a turn.

        Raises:
            ConversationBusyError: If busy and ``reject_concurrent`` is set.
        """
        if self.reject_concurrent and self.is_busy(conversation_id):
            raise ConversationBusyError(conversation_id)

        lock = self._locks.setdefault(conversation_id, asyncio.Lock())
        self._holders[conversation_id] = self._holders.get(conversation_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[conversation_id] -= 1
            if self._holders[conversation_id] == 0:
                del self._holders[conversation_id]
                del self._locks[conversation_id]

    def __len__(self) -> int:
        return len(self._locks)


@dataclass
class ChatTurn:
    """Conversation and result of a chat turn."""

    conversation: Conversation
    agent: Agent
    result: AgentRunResult


@dataclass
class WorkflowTurn:
    """Conversation and result of a workflow run."""

    conversation: Conversation
    workflow: Workflow
    result: WorkflowRunResult
    summary: str


class ChatOrchestrator:
    """Caller-facing chat and workflow operations.

    Args:
        executor: Agent executor
        engine: Workflow engine
        locks: Per-conversation turn locks (shared across requests)
    """

    def __init__(
        self,
        executor: AgentExecutor,
        engine: WorkflowEngine,
        locks: ConversationLockRegistry | None = None,
    ) -> None:
        self.executor = executor
        self.engine = engine
        self.locks = locks or ConversationLockRegistry()

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    @staticmethod
    async def get_agent(db: AsyncSession, slug: str) -> Agent:
        """Active agent by slug.

        Raises:
            ResourceNotFoundError: If missing or inactive.
        """
        result = await db.execute(
            select(Agent).where(Agent.slug == slug, Agent.is_active.is_(True))
        )
        agent = result.scalar_one_or_none()
        if agent is None:
            raise ResourceNotFoundError("Agent", slug)
        return agent

    @staticmethod
    async def get_workflow(db: AsyncSession, slug: str) -> Workflow:
        result = await db.execute(
            select(Workflow).where(Workflow.slug == slug, Workflow.is_active.is_(True))
        )
        workflow = result.scalar_one_or_none()
        if workflow is None:
            raise ResourceNotFoundError("Workflow", slug)
        return workflow

    async def select_agent(
        self,
        db: AsyncSession,
        text: str,
        agent_slug: str | None = None,
    ) -> Agent:
        """Explicit agent, else keyword routing with fallback to the default."""
        if agent_slug:
            return await self.get_agent(db, agent_slug)
        try:
            return await self.get_agent(db, select_agent_slug(text))
        except ResourceNotFoundError:
            return await self.get_agent(db, DEFAULT_AGENT_SLUG)

    @staticmethod
    async def list_agents(db: AsyncSession) -> list[Agent]:
        result = await db.execute(
            select(Agent).where(Agent.is_active.is_(True)).order_by(Agent.slug)
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_workflows(db: AsyncSession) -> list[Workflow]:
        result = await db.execute(
            select(Workflow).where(Workflow.is_active.is_(True)).order_by(Workflow.slug)
        )
        return list(result.scalars().all())

    # -------------------------------------------------------------------------
    # Chat
    # -------------------------------------------------------------------------

    async def _prepare_turn(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        message: str,
        conversation_id: uuid.UUID | None,
        folder_id: uuid.UUID | None,
        agent_slug: str | None,
    ) -> tuple[Conversation, Agent]:
        agent = await self.select_agent(db, message, agent_slug)
        if conversation_id is not None:
            conversation = await ConversationStore.get_or_raise(
                db, conversation_id, caller.user_id
            )
        else:
            conversation = await ConversationStore.create(
                db,
                user_id=caller.user_id,
                mode=ConversationMode.SINGLE,
                agent_id=agent.id,
                folder_id=folder_id,
                title=make_title(message),
            )
        return conversation, agent

    async def _begin_turn(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        conversation: Conversation,
        message: str,
        folder_id: uuid.UUID | None,
    ) -> TurnContext:
        history = history_from_messages(
            await ConversationStore.get_history(db, conversation.id, HISTORY_LIMIT)
        )
        await ConversationStore.append_message(
            db,
            conversation_id=conversation.id,
            role=MessageRole.USER,
            content=message,
        )
        return TurnContext(
            conversation_id=conversation.id,
            input=message,
            history=history,
            caller=caller,
            folder_id=conversation.folder_id or folder_id,
        )

    async def send_message(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        message: str,
        conversation_id: uuid.UUID | None = None,
        folder_id: uuid.UUID | None = None,
        agent_slug: str | None = None,
    ) -> ChatTurn:
        """Run one chat turn.

        Raises:
            ResourceNotFoundError: Unknown agent, or conversation not owned
                by the caller.
            AgentExecutionError: The agent turn failed.
        """
        conversation, agent = await self._prepare_turn(
            db, caller, message, conversation_id, folder_id, agent_slug
        )
        with log_context(conversation_id=str(conversation.id), agent=agent.slug):
            async with self.locks.hold(conversation.id):
                context = await self._begin_turn(
                    db, caller, conversation, message, folder_id
                )
                result = await self.executor.run(db, agent, context)
        await db.refresh(conversation)
        return ChatTurn(conversation=conversation, agent=agent, result=result)

    async def stream_message(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        message: str,
        conversation_id: uuid.UUID | None = None,
        folder_id: uuid.UUID | None = None,
        agent_slug: str | None = None,
    ) -> AsyncGenerator[str, None]:
        """Prepare a streamed chat turn.

        Lookups run (and may raise) before this returns; the returned
        iterator yields JSON events: ``start``, ``content``..., then
        ``done`` or ``error``.
        """
        conversation, agent = await self._prepare_turn(
            db, caller, message, conversation_id, folder_id, agent_slug
        )

        async def events() -> AsyncGenerator[str, None]:
            async with self.locks.hold(conversation.id):
                context = await self._begin_turn(
                    db, caller, conversation, message, folder_id
                )
                yield _event(
                    {
                        "type": "start",
                        "conversation": {
                            "id": str(conversation.id),
                            "title": conversation.title,
                        },
                        "agent": agent.slug,
                    }
                )
                async with aclosing(self.executor.stream(db, agent, context)) as stream:
                    async for event in stream:
                        yield _event(event)

        return events()

    # -------------------------------------------------------------------------
    # Workflows
    # -------------------------------------------------------------------------

    async def execute_workflow(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        workflow_slug: str,
        input_text: str,
        folder_id: uuid.UUID | None = None,
    ) -> WorkflowTurn:
        """Run a workflow in a new multi-agent conversation.

        A failed step does not raise; the partial result carries the
        failure descriptor.

        Raises:
            ResourceNotFoundError: Unknown or inactive workflow.
            InvalidRequestError: Workflow references unusable agents.
        """
        workflow = await self.get_workflow(db, workflow_slug)
        await self.engine.resolve_agents(db, workflow)

        conversation = await ConversationStore.create(
            db,
            user_id=caller.user_id,
            mode=ConversationMode.MULTI,
            folder_id=folder_id,
            title=f"Workflow: {workflow.name}",
            metadata={"workflow": workflow.slug},
        )
        with log_context(conversation_id=str(conversation.id), workflow=workflow.slug):
            async with self.locks.hold(conversation.id):
                await ConversationStore.append_message(
                    db,
                    conversation_id=conversation.id,
                    role=MessageRole.USER,
                    content=input_text,
                )
                result = await self.engine.run(
                    db, workflow, input_text, conversation, caller=caller
                )
        await db.refresh(conversation)
        return WorkflowTurn(
            conversation=conversation,
            workflow=workflow,
            result=result,
            summary=summarize(result),
        )

    # -------------------------------------------------------------------------
    # Conversations
    # -------------------------------------------------------------------------

    @staticmethod
    async def list_conversations(
        db: AsyncSession,
        caller: CallerIdentity,
        folder_id: uuid.UUID | None = None,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[list[Conversation], int]:
        items = await ConversationStore.list(db, caller.user_id, folder_id, skip, limit)
        total = await ConversationStore.count(db, caller.user_id, folder_id)
        return items, total

    @staticmethod
    async def get_conversation(
        db: AsyncSession,
        caller: CallerIdentity,
        conversation_id: uuid.UUID,
    ) -> Conversation:
        conversation = await ConversationStore.get_with_messages(
            db, conversation_id, caller.user_id
        )
        if conversation is None:
            raise ResourceNotFoundError("Conversation", conversation_id)
        return conversation

    async def delete_conversation(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        conversation_id: uuid.UUID,
    ) -> None:
        if self.locks.is_busy(conversation_id):
            raise ConversationBusyError(conversation_id)
        await ConversationStore.delete(db, conversation_id, caller.user_id)


def _event(payload: dict) -> str:
    return json.dumps(payload, ensure_ascii=False, default=str)


__all__ = [
    "AGENT_KEYWORDS",
    "DEFAULT_AGENT_SLUG",
    "ChatOrchestrator",
    "ChatTurn",
    "ConversationLockRegistry",
    "WorkflowTurn",
    "select_agent_slug",
]
