"""Chat and workflow request/response schemas."""

from __future__ import annotations

from typing import Any
from uuid import UUID  # noqa: TC003 - Required at runtime for Pydantic

from pydantic import Field

from juris.schemas.base import BaseSchema
from juris.schemas.conversation import CitationResponse


class ChatRequest(BaseSchema):
    """User message for a single-agent conversation."""

    message: str = Field(..., min_length=1, max_length=20000)
    conversation_id: UUID | None = None
    folder_id: UUID | None = None
    agent_slug: str | None = Field(
        default=None,
        description="Agent to use; selected from the message when omitted",
    )


class ChatResponse(BaseSchema):
    conversation_id: UUID
    message_id: UUID
    execution_id: UUID
    agent: str
    content: str
    tokens_used: int = Field(..., ge=0)
    tool_calls: list[dict[str, Any]] = Field(default_factory=list)
    citations: list[CitationResponse] = Field(default_factory=list)


class WorkflowExecuteRequest(BaseSchema):
    input: str = Field(..., min_length=1, max_length=50000)
    folder_id: UUID | None = None


class WorkflowStepResult(BaseSchema):
    step_index: int
    agent: str
    execution_id: UUID
    status: str
    output: str | None = None
    tokens_used: int = 0
    error: str | None = None


class WorkflowExecuteResponse(BaseSchema):
    """Outcome of a workflow run, partial when a step failed."""

    conversation_id: UUID
    workflow: str
    output: str | None = None
    summary: str
    steps_completed: int = Field(..., ge=0)
    total_steps: int = Field(..., ge=0)
    total_tokens: int = Field(..., ge=0)
    execution_ids: list[UUID] = Field(default_factory=list)
    steps: list[WorkflowStepResult] = Field(default_factory=list)
    failed_step: int | None = None
    error: dict[str, Any] | None = None


__all__ = [
    "ChatRequest",
    "ChatResponse",
    "WorkflowExecuteRequest",
    "WorkflowExecuteResponse",
    "WorkflowStepResult",
]
