"""Conversation, message and citation models.

A conversation owns its messages and a message owns its citations;
deleting a conversation removes both. Messages are append-only and
totally ordered by ``sequence`` within their conversation.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from juris.models.base import GUID, Base, JSONType, TimestampMixin, UUIDMixin
from juris.models.enums import ConversationMode, MessageRole

if TYPE_CHECKING:
    from juris.models.agent import Agent
    from juris.models.execution import AgentExecution


class Conversation(UUIDMixin, TimestampMixin, Base):
    """Conversation between a user and one or more agents.

    Attributes:
        user_id: Owner of the conversation (external user id)
        agent_id: Agent of a single-agent conversation (nullable)
        folder_id: Case folder the conversation is attached to (nullable)
        title: Short title derived from the first message
        mode: single or multi (workflow) conversation
        total_tokens: Sum of the tokens of all messages
        is_active: Whether the conversation accepts new turns
        metadata_: Free-form metadata (workflow slug, ...)
    """

    __tablename__ = "ai_conversations"

    user_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False, index=True)

    agent_id: Mapped[uuid.UUID | None] = mapped_column(
        GUID(),
        ForeignKey("ai_agents.id", ondelete="SET NULL"),
        nullable=True,
    )

    folder_id: Mapped[uuid.UUID | None] = mapped_column(
        GUID(), nullable=True, index=True
    )

    title: Mapped[str | None] = mapped_column(String(255), nullable=True)

    mode: Mapped[ConversationMode] = mapped_column(
        String(20),
        nullable=False,
        default=ConversationMode.SINGLE,
        server_default="single",
    )

    total_tokens: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default="true",
    )

    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSONType,
        nullable=False,
        default=dict,
        server_default="{}",
    )

    agent: Mapped[Agent | None] = relationship("Agent", lazy="selectin")

    messages: Mapped[list[Message]] = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Message.sequence",
    )

    executions: Mapped[list[AgentExecution]] = relationship(
        "AgentExecution",
        back_populates="conversation",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Conversation(id={self.id}, mode={self.mode}, tokens={self.total_tokens})>"


class Message(UUIDMixin, TimestampMixin, Base):
    """Single message of a conversation transcript.

    Attributes:
        conversation_id: Owning conversation
        sequence: Position in the transcript, starting at 1
        role: user, assistant or system
        content: Message text
        agent_id: Agent that produced an assistant message (nullable)
        tool_calls: Tool calls made while producing the message
        tool_results: Results returned by those tool calls
        tokens: Tokens attributed to this message
        finish_reason: Provider finish reason
        citations: Knowledge sources backing the message
    """

    __tablename__ = "ai_messages"
    __table_args__ = (
        UniqueConstraint("conversation_id", "sequence", name="uq_ai_messages_sequence"),
    )

    conversation_id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        ForeignKey("ai_conversations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    role: Mapped[MessageRole] = mapped_column(String(20), nullable=False)

    content: Mapped[str] = mapped_column(Text, nullable=False)

    agent_id: Mapped[uuid.UUID | None] = mapped_column(
        GUID(),
        ForeignKey("ai_agents.id", ondelete="SET NULL"),
        nullable=True,
    )

    tool_calls: Mapped[list[dict[str, Any]] | None] = mapped_column(
        JSONType, nullable=True
    )

    tool_results: Mapped[list[dict[str, Any]] | None] = mapped_column(
        JSONType, nullable=True
    )

    tokens: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )

    finish_reason: Mapped[str | None] = mapped_column(String(50), nullable=True)

    conversation: Mapped[Conversation] = relationship(
        "Conversation",
        back_populates="messages",
    )

    citations: Mapped[list[Citation]] = relationship(
        "Citation",
        back_populates="message",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        order_by="Citation.confidence_score.desc()",
    )

    def __repr__(self) -> str:
        return f"<Message(seq={self.sequence}, role={self.role}, tokens={self.tokens})>"


class Citation(UUIDMixin, TimestampMixin, Base):
    """Knowledge source cited by a message.

    Attributes:
        message_id: Owning message
        knowledge_entry_id: Knowledge base entry the excerpt came from
        source_type: Source type of the entry
        source_url: Link to the source (nullable)
        source_title: Human readable title (nullable)
        excerpt: Short excerpt of the cited content
        confidence_score: Similarity confidence in [0, 1]
    """

    __tablename__ = "ai_citations"
    __table_args__ = (
        CheckConstraint(
            "confidence_score >= 0 AND confidence_score <= 1",
            name="ck_ai_citations_confidence_range",
        ),
    )

    message_id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        ForeignKey("ai_messages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    knowledge_entry_id: Mapped[uuid.UUID | None] = mapped_column(
        GUID(), nullable=True
    )

    source_type: Mapped[str] = mapped_column(String(50), nullable=False)

    source_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    source_title: Mapped[str | None] = mapped_column(String(500), nullable=True)

    excerpt: Mapped[str] = mapped_column(Text, nullable=False, default="")

    confidence_score: Mapped[float] = mapped_column(Float, nullable=False)

    message: Mapped[Message] = relationship("Message", back_populates="citations")


__all__ = ["Citation", "Conversation", "Message"]
