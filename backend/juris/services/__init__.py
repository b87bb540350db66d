"""Business logic services."""

from juris.services.conversation_service import ConversationStore
from juris.services.execution_service import ExecutionLedger

__all__ = ["ConversationStore", "ExecutionLedger"]
