"""Agent executor: one bounded tool-calling turn of one agent.

Ledger checkpoints:
    1. The execution row is committed as ``running`` before the first
       provider call.
    2. The final assistant message and the ``completed`` row are
       committed together.
    3. On any failure the row is moved to ``failed`` and a system note
       carrying the consumed tokens is appended, then committed.

Between checkpoints the turn lives in local state only (the provider
message list and the tool call log).
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from juris.core.config import settings
from juris.core.exceptions import (
    AgentExecutionError,
    AppError,
    BudgetExceededError,
    ExecutionCancelledError,
    TimeBudgetExceededError,
    ToolBudgetExceededError,
)
from juris.models.enums import AgentCapability, MessageRole
from juris.models.execution import AgentExecution
from juris.models.tool import Tool
from juris.services.agents.context import TurnContext, build_messages
from juris.services.conversation_service import ConversationStore
from juris.services.execution_service import ExecutionLedger
from juris.services.providers.base import ChatMessage, LLMProvider, ToolCall
from juris.services.providers.retry import Deadline, RetryPolicy, call_with_retry
from juris.services.rag.retriever import CitationCandidate, RAGRetriever
from juris.services.tools.base import ToolResult, ToolSpec
from juris.services.tools.invoker import ToolInvoker
from juris.services.tools.registry import ToolRegistry

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from juris.models.agent import Agent

logger = logging.getLogger(__name__)


@dataclass
class AgentRunResult:
    """Successful agent turn.

    Attributes:
        execution_id: Ledger row of the turn
        message_id: Assistant message holding the output
        agent_slug: Agent that ran
        output: Final assistant text
        tokens_used: Provider tokens consumed by the turn
        tool_calls: Tool call log, in call order
        citations: Knowledge sources attached to the message
        finish_reason: Provider finish reason of the last response
        duration_ms: Wall-clock duration of the turn
    """

    execution_id: uuid.UUID
    message_id: uuid.UUID
    agent_slug: str
    output: str
    tokens_used: int
    tool_calls: list[dict[str, Any]] = field(default_factory=list)
    citations: list[CitationCandidate] = field(default_factory=list)
    finish_reason: str | None = None
    duration_ms: int = 0


@dataclass
class _TurnState:
    """Mutable bookkeeping of a turn in progress."""

    execution: AgentExecution
    agent_id: uuid.UUID
    agent_slug: str
    workflow_slug: str | None
    started: float
    tokens_used: int = 0
    tool_calls: list[dict[str, Any]] = field(default_factory=list)

    @property
    def duration_ms(self) -> int:
        return int((time.perf_counter() - self.started) * 1000)


def failure_note(agent_slug: str, error: Exception) -> str:
    """System message recorded in the transcript when a turn fails."""
    return f"Falha na execução do agente '{agent_slug}': {error}"


class AgentExecutor:
    """Runs agent turns against an LLM provider with tools and RAG.

    Args:
        llm: Chat completion provider
        registry: Tool capabilities
        retriever: RAG retriever used for agents with the ``rag`` capability
        retry_policy: Retry policy for provider calls
        tool_budget: Default maximum number of tool-calling rounds
        time_budget_seconds: Default wall-clock budget of a turn
    """

    def __init__(
        self,
        llm: LLMProvider,
        registry: ToolRegistry,
        retriever: RAGRetriever | None = None,
        retry_policy: RetryPolicy | None = None,
        tool_budget: int | None = None,
        time_budget_seconds: float | None = None,
    ) -> None:
        self.llm = llm
        self.registry = registry
        self.retriever = retriever
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self.tool_budget = (
            settings.AGENT_TOOL_CALL_BUDGET if tool_budget is None else tool_budget
        )
        self.time_budget_seconds = time_budget_seconds or settings.AGENT_TIME_BUDGET_SECONDS

    # -------------------------------------------------------------------------
    # Tool-calling turn
    # -------------------------------------------------------------------------

    async def run(
        self,
        db: AsyncSession,
        agent: Agent,
        context: TurnContext,
        tool_budget: int | None = None,
        time_budget_seconds: float | None = None,
    ) -> AgentRunResult:
        """Run one turn of ``agent``.

        Args:
            db: Database session (committed at ledger checkpoints).
            agent: Agent to run.
            context: Conversation id, input, history and caller.
            tool_budget: Maximum tool-calling rounds for this turn.
            time_budget_seconds: Wall-clock budget for this turn.

        Returns:
            AgentRunResult of the completed turn.

        Raises:
            AgentExecutionError: If the turn failed; the ledger row is
                already ``failed`` when this is raised.
            asyncio.CancelledError: If the task was cancelled; the ledger
                row is marked ``failed`` (cancelled) first.
        """
        budget = self.tool_budget if tool_budget is None else tool_budget
        deadline = Deadline(time_budget_seconds or self.time_budget_seconds)
        state = await self._start(db, agent, context)

        try:
            specs = await self._load_tool_specs(db, agent)
            invoker = ToolInvoker(self.registry, specs)
            tool_definitions = invoker.definitions_for(agent.slug, agent.tools or [])

            rag_context, citations = await self._retrieve_context(agent, context, deadline)
            messages = build_messages(agent.system_prompt, context, rag_context)

            rounds = 0
            while True:
                deadline.check()
                response = await call_with_retry(
                    lambda: self.llm.complete(
                        messages,
                        tools=tool_definitions or None,
                        model=agent.model,
                        temperature=agent.temperature,
                        max_tokens=agent.max_tokens,
                    ),
                    self.retry_policy,
                    deadline=deadline,
                    operation_name=f"completion for agent '{state.agent_slug}'",
                )
                state.tokens_used += response.tokens_used

                if not response.tool_calls:
                    break

                if rounds >= budget:
                    raise ToolBudgetExceededError(budget)
                rounds += 1

                messages.append(
                    {
                        "role": "assistant",
                        "content": response.content or None,
                        "tool_calls": [tc.to_message_format() for tc in response.tool_calls],
                    }
                )
                results = await self._invoke_tools(
                    invoker, response.tool_calls, state, context, deadline, rounds
                )
                for tool_call, result in zip(response.tool_calls, results, strict=True):
                    messages.append(
                        {
                            "role": "tool",
                            "tool_call_id": tool_call.id,
                            "content": result.to_message_content(),
                        }
                    )

            return await self._complete(
                db, state, context, response.content, response.finish_reason, citations
            )
        except asyncio.CancelledError:
            await self._record_failure(
                db, state, context, ExecutionCancelledError("execution cancelled")
            )
            raise
        except Exception as e:
            raise await self._record_failure(db, state, context, e) from e

    # -------------------------------------------------------------------------
    # Streaming turn (no tools)
    # -------------------------------------------------------------------------

    async def stream(
        self,
        db: AsyncSession,
        agent: Agent,
        context: TurnContext,
        time_budget_seconds: float | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Run one turn of ``agent`` streaming the answer.

        Yields ``{"type": "content", "content": ...}`` events followed by a
        single ``done`` event, or an ``error`` event carrying the failure
        descriptor. Tools are not offered to the model in streaming turns.
        """
        budget_seconds = time_budget_seconds or self.time_budget_seconds
        deadline = Deadline(budget_seconds)
        state = await self._start(db, agent, context)

        try:
            rag_context, citations = await self._retrieve_context(agent, context, deadline)
            messages = build_messages(agent.system_prompt, context, rag_context)

            parts: list[str] = []
            finish_reason: str | None = None
            try:
                async with asyncio.timeout(deadline.remaining()):
                    async for chunk in self.llm.stream(
                        messages,
                        model=agent.model,
                        temperature=agent.temperature,
                        max_tokens=agent.max_tokens,
                    ):
                        state.tokens_used += chunk.tokens_used
                        finish_reason = chunk.finish_reason or finish_reason
                        if chunk.content:
                            parts.append(chunk.content)
                            yield {"type": "content", "content": chunk.content}
            except TimeoutError:
                raise TimeBudgetExceededError(budget_seconds) from None

            result = await self._complete(
                db, state, context, "".join(parts), finish_reason, citations
            )
        except (asyncio.CancelledError, GeneratorExit):
            await self._record_failure(
                db, state, context, ExecutionCancelledError("execution cancelled")
            )
            raise
        except Exception as e:
            failure = await self._record_failure(db, state, context, e)
            yield {"type": "error", "error": failure.to_dict()}
            return

        yield {
            "type": "done",
            "conversation_id": str(context.conversation_id),
            "execution_id": str(result.execution_id),
            "message_id": str(result.message_id),
            "agent": result.agent_slug,
            "tokens_used": result.tokens_used,
            "citations": [c.to_dict() for c in result.citations],
        }

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    async def _start(
        self,
        db: AsyncSession,
        agent: Agent,
        context: TurnContext,
    ) -> _TurnState:
        execution = await ExecutionLedger.start(
            db,
            conversation_id=context.conversation_id,
            agent=agent,
            input_data=context.ledger_input(),
            workflow=context.workflow,
            step_index=context.step_index,
        )
        # Checkpoint: the running row exists before any provider call
        await db.commit()
        logger.info(
            f"Agent '{agent.slug}' started",
            extra={
                "context": {
                    "execution_id": str(execution.id),
                    "agent": agent.slug,
                    "conversation_id": str(context.conversation_id),
                    "step_index": context.step_index,
                }
            },
        )
        return _TurnState(
            execution=execution,
            agent_id=agent.id,
            agent_slug=agent.slug,
            workflow_slug=context.workflow.slug if context.workflow else None,
            started=time.perf_counter(),
        )

    @staticmethod
    async def _load_tool_specs(db: AsyncSession, agent: Agent) -> list[ToolSpec]:
        if not agent.tools:
            return []
        result = await db.execute(select(Tool).where(Tool.slug.in_(agent.tools)))
        return [ToolSpec.from_model(tool) for tool in result.scalars().all()]

    async def _retrieve_context(
        self,
        agent: Agent,
        context: TurnContext,
        deadline: Deadline,
    ) -> tuple[str | None, list[CitationCandidate]]:
        """Knowledge context for agents with the ``rag`` capability.

        A failed retrieval degrades to an answer without context; running
        out of time does not.
        """
        if self.retriever is None or AgentCapability.RAG.value not in (
            agent.capabilities or []
        ):
            return None, []

        deadline.check()
        try:
            async with asyncio.timeout(deadline.remaining()):
                retrieved = await self.retriever.retrieve_comprehensive(
                    context.input,
                    folder_id=context.folder_id,
                    include_jurisprudence=True,
                    owner_id=context.caller.user_id if context.caller else None,
                )
        except TimeoutError:
            raise TimeBudgetExceededError(deadline.budget_seconds) from None
        except BudgetExceededError:
            raise
        except AppError as e:
            logger.warning(
                f"Knowledge retrieval failed, continuing without context: {e}",
                extra={"context": {"agent": agent.slug, "error_type": e.error_type}},
            )
            return None, []

        return retrieved.context or None, [s.to_citation() for s in retrieved.sources]

    async def _invoke_tools(
        self,
        invoker: ToolInvoker,
        tool_calls: list[ToolCall],
        state: _TurnState,
        context: TurnContext,
        deadline: Deadline,
        round_number: int,
    ) -> list[ToolResult]:
        """Invoke the tool calls of one response concurrently."""

        async def invoke(tool_call: ToolCall) -> ToolResult:
            if tool_call.arguments_error:
                return ToolResult.failure(tool_call.arguments_error, "validation_error")
            return await invoker.invoke(
                tool_call.name,
                tool_call.arguments,
                agent_slug=state.agent_slug,
                caller=context.caller,
            )

        deadline.check()
        try:
            async with asyncio.timeout(deadline.remaining()):
                results = await asyncio.gather(*(invoke(tc) for tc in tool_calls))
        except TimeoutError:
            raise TimeBudgetExceededError(deadline.budget_seconds) from None

        for tool_call, result in zip(tool_calls, results, strict=True):
            state.tool_calls.append(
                {
                    **tool_call.to_dict(),
                    "round": round_number,
                    "success": result.success,
                    "error": result.error,
                    "error_type": result.error_type,
                    "execution_time_ms": round(result.execution_time_ms, 2),
                }
            )
        return list(results)

    async def _complete(
        self,
        db: AsyncSession,
        state: _TurnState,
        context: TurnContext,
        output: str,
        finish_reason: str | None,
        citations: list[CitationCandidate],
    ) -> AgentRunResult:
        message = await ConversationStore.append_message(
            db,
            conversation_id=context.conversation_id,
            role=MessageRole.ASSISTANT,
            content=output,
            tokens=state.tokens_used,
            agent_id=state.agent_id,
            tool_calls=state.tool_calls,
            finish_reason=finish_reason,
            citations=citations,
        )
        duration_ms = state.duration_ms
        state.execution.complete(
            output=output,
            tokens_used=state.tokens_used,
            duration_ms=duration_ms,
            tool_calls=state.tool_calls,
        )
        await db.flush()
        # Checkpoint: message, token total and completed row together
        await db.commit()

        logger.info(
            f"Agent '{state.agent_slug}' completed",
            extra={
                "context": {
                    "execution_id": str(state.execution.id),
                    "agent": state.agent_slug,
                    "tokens": state.tokens_used,
                    "tool_calls": len(state.tool_calls),
                    "duration_ms": duration_ms,
                }
            },
        )
        return AgentRunResult(
            execution_id=state.execution.id,
            message_id=message.id,
            agent_slug=state.agent_slug,
            output=output,
            tokens_used=state.tokens_used,
            tool_calls=list(state.tool_calls),
            citations=citations,
            finish_reason=finish_reason,
            duration_ms=duration_ms,
        )

    async def _record_failure(
        self,
        db: AsyncSession,
        state: _TurnState,
        context: TurnContext,
        error: Exception,
    ) -> AgentExecutionError:
        """Move the row to ``failed`` and build the failure descriptor."""
        error_type = error.error_type if isinstance(error, AppError) else "internal_error"
        message = str(error) or type(error).__name__
        execution_id = state.execution.id
        duration_ms = state.duration_ms

        try:
            if isinstance(error, SQLAlchemyError):
                await db.rollback()
            execution = await db.get(AgentExecution, execution_id, populate_existing=True)
            if execution is not None and not execution.is_terminal:
                execution.fail(
                    error_message=message,
                    error_type=error_type,
                    tokens_used=state.tokens_used,
                    duration_ms=duration_ms,
                    tool_calls=state.tool_calls,
                )
                await ConversationStore.append_message(
                    db,
                    conversation_id=context.conversation_id,
                    role=MessageRole.SYSTEM,
                    content=failure_note(state.agent_slug, error),
                    tokens=state.tokens_used,
                    agent_id=state.agent_id,
                    tool_calls=state.tool_calls,
                )
                await db.flush()
            # Checkpoint: failed row survives a rollback of the caller's work
            await db.commit()
        except SQLAlchemyError:
            logger.exception(
                "Could not record agent failure",
                extra={"context": {"execution_id": str(execution_id)}},
            )

        logger.error(
            f"Agent '{state.agent_slug}' failed: {message}",
            extra={
                "context": {
                    "execution_id": str(execution_id),
                    "agent": state.agent_slug,
                    "error_type": error_type,
                    "tokens": state.tokens_used,
                    "duration_ms": duration_ms,
                }
            },
        )
        return AgentExecutionError(
            execution_id=execution_id,
            agent_slug=state.agent_slug,
            message=message,
            error_type=error_type,
            step_index=context.step_index,
            workflow_slug=state.workflow_slug,
            tokens_used=state.tokens_used,
        )


__all__ = ["AgentExecutor", "AgentRunResult", "failure_note"]
