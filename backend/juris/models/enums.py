"""Domain enum definitions.

String enums are stored as plain strings so PostgreSQL and SQLite
schemas stay identical.
"""

from enum import Enum


class ExecutionStatus(str, Enum):
    """Agent execution state.

    Transitions only move forward: pending -> running -> completed | failed.
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    def __str__(self) -> str:
        """Return the string value for serialization."""
        return self.value

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED)


class MessageRole(str, Enum):
    """Author of a conversation message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"

    def __str__(self) -> str:
        """Return the string value for serialization."""
        return self.value


class ConversationMode(str, Enum):
    """Conversation driven by one agent or by a multi-agent workflow."""

    SINGLE = "single"
    MULTI = "multi"

    def __str__(self) -> str:
        """Return the string value for serialization."""
        return self.value


class SourceType(str, Enum):
    """Origin of a knowledge base entry or citation."""

    LEGISLATION = "legislation"
    JURISPRUDENCE = "jurisprudence"
    DOCTRINE = "doctrine"
    DOCUMENT = "document"
    TEMPLATE = "template"
    OTHER = "other"

    def __str__(self) -> str:
        """Return the string value for serialization."""
        return self.value


class AgentCapability(str, Enum):
    """Capabilities an agent advertises."""

    RAG = "rag"
    TOOLS = "tools"
    STREAMING = "streaming"
    DOCUMENT_ANALYSIS = "document_analysis"
    WRITING = "writing"

    def __str__(self) -> str:
        """Return the string value for serialization."""
        return self.value


__all__ = [
    "AgentCapability",
    "ConversationMode",
    "ExecutionStatus",
    "MessageRole",
    "SourceType",
]
