"""Execution ledger.

AgentExecution rows form an audit trail: they are created ``running``,
moved once to ``completed`` or ``failed`` and never deleted on their
own. Statistics are aggregated from the rows at query time.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import case, func, select

from juris.core.exceptions import ResourceNotFoundError
from juris.models.base import utcnow
from juris.models.conversation import Conversation
from juris.models.enums import ExecutionStatus
from juris.models.execution import AgentExecution
from juris.schemas.execution import ExecutionStatistics

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.sql import Select

    from juris.models.agent import Agent
    from juris.models.workflow import Workflow

logger = logging.getLogger(__name__)

INTERRUPTED_ERROR_TYPE = "interrupted"


class ExecutionLedger:
    """Service for AgentExecution records.

    Handles creation, state transitions and aggregate queries.
    """

    @staticmethod
    async def start(
        db: AsyncSession,
        conversation_id: uuid.UUID,
        agent: Agent,
        input_data: dict[str, Any],
        workflow: Workflow | None = None,
        step_index: int | None = None,
    ) -> AgentExecution:
        """Create an execution and move it to RUNNING.

        Args:
            db: Database session.
            conversation_id: Owning conversation.
            agent: Agent being run.
            input_data: Input payload recorded on the row.
            workflow: Workflow the run is a step of.
            step_index: Position in the workflow.

        Returns:
            The running AgentExecution.
        """
        execution = AgentExecution(
            conversation_id=conversation_id,
            agent_id=agent.id,
            agent_slug=agent.slug,
            workflow_id=workflow.id if workflow else None,
            workflow_slug=workflow.slug if workflow else None,
            step_index=step_index,
            status=ExecutionStatus.PENDING,
            input=input_data,
            tool_calls=[],
            tokens_used=0,
        )
        execution.start()
        db.add(execution)
        await db.flush()
        return execution

    @staticmethod
    async def get(
        db: AsyncSession,
        execution_id: uuid.UUID,
    ) -> AgentExecution | None:
        result = await db.execute(
            select(AgentExecution).where(AgentExecution.id == execution_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_or_raise(
        db: AsyncSession,
        execution_id: uuid.UUID,
    ) -> AgentExecution:
        execution = await ExecutionLedger.get(db, execution_id)
        if execution is None:
            raise ResourceNotFoundError("AgentExecution", execution_id)
        return execution

    @staticmethod
    async def list_by_conversation(
        db: AsyncSession,
        conversation_id: uuid.UUID,
        skip: int = 0,
        limit: int = 50,
    ) -> list[AgentExecution]:
        """Executions of a conversation, most recent first."""
        query = select(AgentExecution).where(
            AgentExecution.conversation_id == conversation_id
        )
        query = _newest_first(query).offset(skip).limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def list_by_agent(
        db: AsyncSession,
        agent_slug: str,
        skip: int = 0,
        limit: int = 50,
        status: ExecutionStatus | None = None,
    ) -> list[AgentExecution]:
        """Executions of an agent, most recent first.

        Uses the slug snapshot, so runs of deleted agents are still listed.
        """
        query = select(AgentExecution).where(AgentExecution.agent_slug == agent_slug)
        if status is not None:
            query = query.where(AgentExecution.status == status)
        query = _newest_first(query).offset(skip).limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def get_statistics(
        db: AsyncSession,
        agent_slug: str | None = None,
        user_id: uuid.UUID | None = None,
    ) -> ExecutionStatistics:
        """Aggregate statistics over the ledger.

        Args:
            db: Database session.
            agent_slug: Restrict to one agent.
            user_id: Restrict to conversations owned by this user.

        Returns:
            ExecutionStatistics with counts, average duration and tokens.
        """
        terminal = AgentExecution.status.in_(
            [ExecutionStatus.COMPLETED.value, ExecutionStatus.FAILED.value]
        )
        query = select(
            func.count(AgentExecution.id),
            func.coalesce(
                func.sum(
                    case(
                        (AgentExecution.status == ExecutionStatus.COMPLETED.value, 1),
                        else_=0,
                    )
                ),
                0,
            ),
            func.coalesce(
                func.sum(
                    case(
                        (AgentExecution.status == ExecutionStatus.FAILED.value, 1),
                        else_=0,
                    )
                ),
                0,
            ),
            func.avg(case((terminal, AgentExecution.duration_ms), else_=None)),
            func.coalesce(func.sum(AgentExecution.tokens_used), 0),
        )
        query = _filtered(query.select_from(AgentExecution), agent_slug, user_id)

        result = await db.execute(query)
        total, successful, failed, avg_duration, total_tokens = result.one()

        return ExecutionStatistics(
            total=total,
            successful=int(successful),
            failed=int(failed),
            avg_duration_ms=float(avg_duration) if avg_duration is not None else None,
            total_tokens=int(total_tokens),
        )

    @staticmethod
    async def find_failed_executions(
        db: AsyncSession,
        limit: int = 10,
        agent_slug: str | None = None,
        user_id: uuid.UUID | None = None,
    ) -> list[AgentExecution]:
        """Most recent failed executions, for operator-driven retry.

        Read-only; calling it twice without writes in between returns the
        same rows in the same order.
        """
        query = select(AgentExecution).where(
            AgentExecution.status == ExecutionStatus.FAILED.value
        )
        query = _newest_first(_filtered(query, agent_slug, user_id)).limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def fail_interrupted(
        db: AsyncSession,
        older_than_seconds: float,
    ) -> int:
        """Fail executions left ``running`` by a process that died.

        Returns:
            Number of executions moved to FAILED.
        """
        cutoff = utcnow() - timedelta(seconds=older_than_seconds)
        result = await db.execute(
            select(AgentExecution).where(
                AgentExecution.status == ExecutionStatus.RUNNING.value,
                AgentExecution.started_at < cutoff,
            )
        )
        stale = list(result.scalars().all())
        for execution in stale:
            execution.fail(
                "execution interrupted before completion",
                INTERRUPTED_ERROR_TYPE,
                tokens_used=execution.tokens_used,
                duration_ms=execution.duration_ms or 0,
            )
        await db.flush()
        if stale:
            logger.warning(
                f"Marked {len(stale)} interrupted executions as failed",
                extra={"context": {"count": len(stale)}},
            )
        return len(stale)


def _newest_first(query: Select) -> Select:
    return query.order_by(AgentExecution.started_at.desc(), AgentExecution.id.desc())


def _filtered(
    query: Select,
    agent_slug: str | None,
    user_id: uuid.UUID | None,
) -> Select:
    if agent_slug is not None:
        query = query.where(AgentExecution.agent_slug == agent_slug)
    if user_id is not None:
        query = query.join(
            Conversation, Conversation.id == AgentExecution.conversation_id
        ).where(Conversation.user_id == user_id)
    return query


__all__ = ["INTERRUPTED_ERROR_TYPE", "ExecutionLedger"]
