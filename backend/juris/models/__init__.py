"""SQLAlchemy models.

This package contains all database models of the AI engine.
"""

from juris.models.agent import Agent
from juris.models.base import Base, TimestampMixin, UUIDMixin
from juris.models.conversation import Citation, Conversation, Message
from juris.models.enums import (
    AgentCapability,
    ConversationMode,
    ExecutionStatus,
    MessageRole,
    SourceType,
)
from juris.models.execution import AgentExecution
from juris.models.knowledge import KnowledgeBaseEntry
from juris.models.tool import Tool
from juris.models.workflow import Workflow

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    # Enums
    "AgentCapability",
    "ConversationMode",
    "ExecutionStatus",
    "MessageRole",
    "SourceType",
    # Models
    "Agent",
    "AgentExecution",
    "Citation",
    "Conversation",
    "KnowledgeBaseEntry",
    "Message",
    "Tool",
    "Workflow",
]
