"""Conversation store.

Messages are appended with the next ``sequence`` of their conversation
and their tokens are added to ``Conversation.total_tokens`` with an
atomic UPDATE in the same transaction, so the total always equals the
sum of message tokens.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import selectinload

from juris.core.exceptions import ResourceNotFoundError
from juris.models.base import utcnow
from juris.models.conversation import Citation, Conversation, Message
from juris.models.enums import ConversationMode, MessageRole

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from juris.services.rag.retriever import CitationCandidate

logger = logging.getLogger(__name__)

TITLE_LENGTH = 50


def make_title(text: str) -> str:
    """Conversation title from the first user message."""
    text = " ".join(text.split())
    if len(text) <= TITLE_LENGTH:
        return text
    return text[:TITLE_LENGTH] + "..."


class ConversationStore:
    """Service for conversations, messages and citations."""

    @staticmethod
    async def create(
        db: AsyncSession,
        user_id: uuid.UUID,
        mode: ConversationMode = ConversationMode.SINGLE,
        agent_id: uuid.UUID | None = None,
        folder_id: uuid.UUID | None = None,
        title: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Conversation:
        """Create a new conversation.

        Args:
            db: Database session.
            user_id: Owner of the conversation.
            mode: single (one agent) or multi (workflow).
            agent_id: Agent of a single-agent conversation.
            folder_id: Case folder the conversation belongs to.
            title: Conversation title.
            metadata: Free-form metadata.

        Returns:
            The created Conversation.
        """
        conversation = Conversation(
            user_id=user_id,
            mode=mode,
            agent_id=agent_id,
            folder_id=folder_id,
            title=title,
            total_tokens=0,
            metadata_=metadata or {},
        )
        db.add(conversation)
        await db.flush()
        await db.refresh(conversation)
        return conversation

    @staticmethod
    async def get(
        db: AsyncSession,
        conversation_id: uuid.UUID,
        user_id: uuid.UUID | None = None,
    ) -> Conversation | None:
        """Get a conversation, optionally only if owned by ``user_id``."""
        query = select(Conversation).where(Conversation.id == conversation_id)
        if user_id is not None:
            query = query.where(Conversation.user_id == user_id)
        result = await db.execute(query)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_or_raise(
        db: AsyncSession,
        conversation_id: uuid.UUID,
        user_id: uuid.UUID | None = None,
    ) -> Conversation:
        """Get a conversation or raise.

        Raises:
            ResourceNotFoundError: If missing or owned by someone else.
        """
        conversation = await ConversationStore.get(db, conversation_id, user_id)
        if conversation is None:
            raise ResourceNotFoundError("Conversation", conversation_id)
        return conversation

    @staticmethod
    async def get_with_messages(
        db: AsyncSession,
        conversation_id: uuid.UUID,
        user_id: uuid.UUID | None = None,
    ) -> Conversation | None:
        """Get a conversation with messages and citations eagerly loaded."""
        query = (
            select(Conversation)
            .where(Conversation.id == conversation_id)
            .options(
                selectinload(Conversation.messages).selectinload(Message.citations)
            )
        )
        if user_id is not None:
            query = query.where(Conversation.user_id == user_id)
        result = await db.execute(query)
        return result.scalar_one_or_none()

    @staticmethod
    async def list(
        db: AsyncSession,
        user_id: uuid.UUID,
        folder_id: uuid.UUID | None = None,
        skip: int = 0,
        limit: int = 20,
    ) -> list[Conversation]:
        """List a user's conversations, most recently updated first."""
        query = select(Conversation).where(Conversation.user_id == user_id)
        if folder_id is not None:
            query = query.where(Conversation.folder_id == folder_id)
        query = query.order_by(Conversation.updated_at.desc(), Conversation.id)
        query = query.offset(skip).limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def count(
        db: AsyncSession,
        user_id: uuid.UUID,
        folder_id: uuid.UUID | None = None,
    ) -> int:
        query = (
            select(func.count())
            .select_from(Conversation)
            .where(Conversation.user_id == user_id)
        )
        if folder_id is not None:
            query = query.where(Conversation.folder_id == folder_id)
        result = await db.execute(query)
        return result.scalar_one()

    @staticmethod
    async def delete(
        db: AsyncSession,
        conversation_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> None:
        """Delete a conversation with its messages, citations and executions.

        Raises:
            ResourceNotFoundError: If missing or owned by someone else.
        """
        conversation = await ConversationStore.get_or_raise(db, conversation_id, user_id)
        await db.delete(conversation)
        await db.flush()
        logger.info(
            "Conversation deleted",
            extra={"context": {"conversation_id": str(conversation_id)}},
        )

    # -------------------------------------------------------------------------
    # Messages
    # -------------------------------------------------------------------------

    @staticmethod
    async def next_sequence(db: AsyncSession, conversation_id: uuid.UUID) -> int:
        result = await db.execute(
            select(func.coalesce(func.max(Message.sequence), 0)).where(
                Message.conversation_id == conversation_id
            )
        )
        return result.scalar_one() + 1

    @staticmethod
    async def append_message(
        db: AsyncSession,
        conversation_id: uuid.UUID,
        role: MessageRole,
        content: str,
        tokens: int = 0,
        agent_id: uuid.UUID | None = None,
        tool_calls: list[dict[str, Any]] | None = None,
        tool_results: list[dict[str, Any]] | None = None,
        finish_reason: str | None = None,
        citations: list[CitationCandidate] | None = None,
    ) -> Message:
        """Append a message (and its citations) to a conversation.

        Args:
            db: Database session.
            conversation_id: Conversation to append to.
            role: Message author.
            content: Message text.
            tokens: Provider tokens attributed to the message.
            agent_id: Agent that produced the message.
            tool_calls: Tool calls made while producing it.
            tool_results: Results of those tool calls.
            finish_reason: Provider finish reason.
            citations: Knowledge sources backing the message.

        Returns:
            The created Message with citations loaded.
        """
        if tokens < 0:
            raise ValueError("tokens must be non-negative")

        message = Message(
            conversation_id=conversation_id,
            sequence=await ConversationStore.next_sequence(db, conversation_id),
            role=role,
            content=content,
            tokens=tokens,
            agent_id=agent_id,
            tool_calls=tool_calls or None,
            tool_results=tool_results or None,
            finish_reason=finish_reason,
            citations=[
                Citation(
                    knowledge_entry_id=candidate.knowledge_entry_id,
                    source_type=candidate.source_type,
                    source_url=candidate.source_url,
                    source_title=candidate.source_title,
                    excerpt=candidate.excerpt,
                    confidence_score=candidate.confidence_score,
                )
                for candidate in citations or []
            ],
        )
        db.add(message)

        # Atomic increment, never read-modify-write
        await db.execute(
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(
                total_tokens=Conversation.total_tokens + tokens,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        await db.flush()
        await db.refresh(message, attribute_names=["citations"])
        return message

    @staticmethod
    async def get_message(db: AsyncSession, message_id: uuid.UUID) -> Message:
        """Message with its citations.

        Raises:
            ResourceNotFoundError: If the message does not exist.
        """
        message = await db.get(Message, message_id)
        if message is None:
            raise ResourceNotFoundError("Message", message_id)
        return message

    @staticmethod
    async def get_history(
        db: AsyncSession,
        conversation_id: uuid.UUID,
        limit: int = 20,
    ) -> list[Message]:
        """Last ``limit`` messages in transcript order."""
        result = await db.execute(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.sequence.desc())
            .limit(limit)
        )
        return list(reversed(result.scalars().all()))

    @staticmethod
    async def compute_total_tokens(
        db: AsyncSession,
        conversation_id: uuid.UUID,
    ) -> int:
        """Sum of message tokens, computed from the transcript."""
        result = await db.execute(
            select(func.coalesce(func.sum(Message.tokens), 0)).where(
                Message.conversation_id == conversation_id
            )
        )
        return int(result.scalar_one())

    @staticmethod
    async def get_total_tokens(db: AsyncSession, conversation_id: uuid.UUID) -> int:
        """Stored running total, read fresh from the database."""
        result = await db.execute(
            select(Conversation.total_tokens).where(Conversation.id == conversation_id)
        )
        total = result.scalar_one_or_none()
        if total is None:
            raise ResourceNotFoundError("Conversation", conversation_id)
        return total


__all__ = ["ConversationStore", "make_title"]
