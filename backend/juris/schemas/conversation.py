"""Conversation, message and citation schemas."""

from __future__ import annotations

from typing import Any
from uuid import UUID  # noqa: TC003 - Required at runtime for Pydantic

from pydantic import Field

from juris.schemas.base import BaseResponse, BaseSchema


class CitationResponse(BaseSchema):
    id: UUID
    knowledge_entry_id: UUID | None = None
    source_type: str
    source_url: str | None = None
    source_title: str | None = None
    excerpt: str
    confidence_score: float = Field(..., ge=0.0, le=1.0)


class MessageResponse(BaseResponse):
    """Transcript message with its citations."""

    conversation_id: UUID
    sequence: int = Field(..., ge=1)
    role: str
    content: str
    agent_id: UUID | None = None
    tool_calls: list[dict[str, Any]] | None = None
    tokens: int = Field(..., ge=0)
    finish_reason: str | None = None
    citations: list[CitationResponse] = Field(default_factory=list)


class ConversationResponse(BaseResponse):
    """Conversation summary used in listings."""

    user_id: UUID
    agent_id: UUID | None = None
    folder_id: UUID | None = None
    title: str | None = None
    mode: str
    total_tokens: int = Field(..., ge=0)
    is_active: bool
    metadata_: dict[str, Any] = Field(
        default_factory=dict,
        serialization_alias="metadata",
    )


class ConversationDetailResponse(ConversationResponse):
    messages: list[MessageResponse] = Field(default_factory=list)


__all__ = [
    "CitationResponse",
    "ConversationDetailResponse",
    "ConversationResponse",
    "MessageResponse",
]
