"""Agent execution ledger model.

Every agent run (standalone or as a workflow step) appends one row. Rows
are written as ``running`` when the run starts and moved exactly once to
a terminal state; they are never deleted independently of their
conversation. Agents and workflows are referenced weakly (SET NULL) and
their slug is snapshotted so history survives their deletion.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from juris.models.base import GUID, Base, JSONType, TimestampMixin, UUIDMixin, utcnow
from juris.models.enums import ExecutionStatus

if TYPE_CHECKING:
    from juris.models.conversation import Conversation


class AgentExecution(UUIDMixin, TimestampMixin, Base):
    """Ledger row for a single agent run.

    Attributes:
        conversation_id: Owning conversation
        agent_id: Agent that ran (nullable once the agent is deleted)
        agent_slug: Agent slug at execution time
        workflow_id: Workflow the run belongs to (nullable)
        workflow_slug: Workflow slug at execution time (nullable)
        step_index: Position in the workflow, 0-based (nullable)
        status: pending, running, completed or failed
        input: Input payload of the run
        output: Final output text (nullable)
        tool_calls: Tool calls made during the run, in call order
        tokens_used: Provider tokens consumed by the run
        duration_ms: Wall-clock duration of the run
        error_type: Machine readable failure category (nullable)
        error_message: Failure description (nullable)
        started_at: When the run started
        completed_at: When the run reached a terminal state
    """

    __tablename__ = "ai_agent_executions"
    __table_args__ = (
        Index("ix_ai_agent_executions_status_started", "status", "started_at"),
    )

    conversation_id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        ForeignKey("ai_conversations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    agent_id: Mapped[uuid.UUID | None] = mapped_column(
        GUID(),
        ForeignKey("ai_agents.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    agent_slug: Mapped[str] = mapped_column(String(100), nullable=False)

    workflow_id: Mapped[uuid.UUID | None] = mapped_column(
        GUID(),
        ForeignKey("ai_workflows.id", ondelete="SET NULL"),
        nullable=True,
    )

    workflow_slug: Mapped[str | None] = mapped_column(String(100), nullable=True)

    step_index: Mapped[int | None] = mapped_column(Integer, nullable=True)

    status: Mapped[ExecutionStatus] = mapped_column(
        String(20),
        nullable=False,
        default=ExecutionStatus.PENDING,
        server_default="pending",
    )

    input: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
        server_default="{}",
    )

    output: Mapped[str | None] = mapped_column(Text, nullable=True)

    tool_calls: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        server_default="[]",
    )

    tokens_used: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )

    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    error_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
    )

    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    conversation: Mapped[Conversation] = relationship(
        "Conversation",
        back_populates="executions",
    )

    @property
    def is_terminal(self) -> bool:
        return ExecutionStatus(self.status).is_terminal

    def _transition(self, target: ExecutionStatus, *allowed: ExecutionStatus) -> None:
        if self.status not in allowed:
            raise ValueError(
                f"Execution {self.id} cannot move from {self.status} to {target}"
            )
        self.status = target

    def start(self) -> None:
        self._transition(ExecutionStatus.RUNNING, ExecutionStatus.PENDING)
        self.started_at = utcnow()

    def complete(
        self,
        output: str,
        tokens_used: int,
        duration_ms: int,
        tool_calls: list[dict[str, Any]] | None = None,
    ) -> None:
        """Record a successful run; only a running execution may complete."""
        self._transition(ExecutionStatus.COMPLETED, ExecutionStatus.RUNNING)
        self.output = output
        self._finish(tokens_used, duration_ms, tool_calls)

    def fail(
        self,
        error_message: str,
        error_type: str,
        tokens_used: int,
        duration_ms: int,
        tool_calls: list[dict[str, Any]] | None = None,
    ) -> None:
        """Record a failed run with its error category (e.g. ``provider_timeout``)."""
        self._transition(ExecutionStatus.FAILED, ExecutionStatus.RUNNING)
        self.error_message = error_message
        self.error_type = error_type
        self._finish(tokens_used, duration_ms, tool_calls)

    def _finish(
        self,
        tokens_used: int,
        duration_ms: int,
        tool_calls: list[dict[str, Any]] | None,
    ) -> None:
        completed_at = utcnow()
        started_at = self.started_at
        # SQLite hands back naive datetimes; never let completed_at precede started_at
        if started_at is not None and started_at.tzinfo is None:
            started_at = started_at.replace(tzinfo=completed_at.tzinfo)
        if started_at is not None and completed_at < started_at:
            completed_at = started_at
        self.completed_at = completed_at
        self.tokens_used = tokens_used
        self.duration_ms = duration_ms
        if tool_calls is not None:
            self.tool_calls = tool_calls

    def __repr__(self) -> str:
        return f"<AgentExecution {self.agent_slug} {self.status} id={self.id}>"


__all__ = ["AgentExecution"]
