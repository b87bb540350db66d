"""Turn context and prompt assembly for agent runs."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from juris.models.enums import MessageRole
from juris.services.providers.base import ChatMessage

if TYPE_CHECKING:
    from juris.core.identity import CallerIdentity
    from juris.models.conversation import Message
    from juris.models.workflow import Workflow

RAG_INSTRUCTION = (
    "Use o contexto acima para fundamentar sua resposta, citando as fontes "
    "quando relevante. Se o contexto não for suficiente, diga isso claramente."
)

# Roles replayed to the model; system notes (failures) stay out of the prompt
_HISTORY_ROLES = {MessageRole.USER.value, MessageRole.ASSISTANT.value}


@dataclass
class TurnContext:
    """Explicit state of one agent turn.

    Attributes:
        conversation_id: Conversation the turn belongs to
        input: Text the agent must respond to
        history: Earlier transcript, already in provider message format
        caller: Authenticated user, injected into auth-requiring tools
        folder_id: Case folder scoping document retrieval
        workflow: Workflow the turn is a step of
        step_index: Position in the workflow
    """

    conversation_id: uuid.UUID
    input: str
    history: list[ChatMessage] = field(default_factory=list)
    caller: CallerIdentity | None = None
    folder_id: uuid.UUID | None = None
    workflow: Workflow | None = None
    step_index: int | None = None

    def ledger_input(self) -> dict:
        data: dict = {"input": self.input}
        if self.folder_id is not None:
            data["folder_id"] = str(self.folder_id)
        if self.step_index is not None:
            data["step_index"] = self.step_index
        return data


def history_from_messages(messages: list[Message]) -> list[ChatMessage]:
    """Provider messages for a stored transcript."""
    return [
        {"role": str(message.role), "content": message.content}
        for message in messages
        if str(message.role) in _HISTORY_ROLES
    ]


def build_system_prompt(system_prompt: str, rag_context: str | None) -> str:
    if not rag_context:
        return system_prompt
    return f"{system_prompt}\n\n{rag_context}\n\n{RAG_INSTRUCTION}"


def build_messages(
    system_prompt: str,
    context: TurnContext,
    rag_context: str | None = None,
) -> list[ChatMessage]:
    """System prompt, transcript and the current input, in that order."""
    return [
        {"role": "system", "content": build_system_prompt(system_prompt, rag_context)},
        *context.history,
        {"role": "user", "content": context.input},
    ]


__all__ = [
    "RAG_INSTRUCTION",
    "TurnContext",
    "build_messages",
    "build_system_prompt",
    "history_from_messages",
]
