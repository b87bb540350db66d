"""Execution ledger schemas."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - Required at runtime for Pydantic
from typing import Any
from uuid import UUID  # noqa: TC003 - Required at runtime for Pydantic

from pydantic import Field

from juris.schemas.base import BaseResponse, BaseSchema


class AgentExecutionResponse(BaseResponse):
    """Ledger row of a single agent run."""

    conversation_id: UUID
    agent_id: UUID | None = None
    agent_slug: str
    workflow_slug: str | None = None
    step_index: int | None = None
    status: str
    output: str | None = None
    tool_calls: list[dict[str, Any]] = Field(default_factory=list)
    tokens_used: int = Field(..., ge=0)
    duration_ms: int | None = None
    error_type: str | None = None
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


class ExecutionStatistics(BaseSchema):
    """Aggregate ledger statistics, computed at query time."""

    total: int = Field(..., ge=0, description="Total number of executions")
    successful: int = Field(..., ge=0, description="Executions that completed")
    failed: int = Field(..., ge=0, description="Executions that failed")
    avg_duration_ms: float | None = Field(
        default=None,
        ge=0,
        description="Average duration of terminal executions",
    )
    total_tokens: int = Field(..., ge=0, description="Tokens across all executions")

    @property
    def success_rate(self) -> float:
        terminal = self.successful + self.failed
        return self.successful / terminal if terminal else 0.0


__all__ = ["AgentExecutionResponse", "ExecutionStatistics"]
