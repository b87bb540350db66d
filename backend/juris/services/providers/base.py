"""Provider interfaces and normalised response types.

The engine talks to language and embedding models only through the
protocols below, so any OpenAI-compatible endpoint (or a test fake)
can be plugged in.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeAlias

ChatMessage: TypeAlias = dict[str, Any]


@dataclass
class ToolCall:
    """Tool call requested by the model.

    Attributes:
        id: Provider-assigned call id, echoed back in the tool result message
        name: Tool slug
        arguments: Parsed JSON arguments
        arguments_error: Parse error when the model sent malformed JSON
    """

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    arguments_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": self.arguments}

    def to_message_format(self) -> dict[str, Any]:
        """OpenAI ``tool_calls`` entry for an assistant message."""
        return {
            "id": self.id,
            "type": "function",
            "function": {
                "name": self.name,
                "arguments": json.dumps(self.arguments, ensure_ascii=False),
            },
        }


@dataclass
class LLMResponse:
    """Normalised completion result.

    Attributes:
        content: Generated text (may be empty when only tools are called)
        tool_calls: Tool calls requested by the model
        tokens_used: Total tokens billed for the call (prompt + completion)
        finish_reason: Provider finish reason ("stop", "tool_calls", ...)
        model: Model that served the request
    """

    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    tokens_used: int = 0
    finish_reason: str | None = None
    model: str | None = None


@dataclass
class StreamChunk:
    """Incremental piece of a streamed completion."""

    content: str = ""
    tokens_used: int = 0
    finish_reason: str | None = None


class LLMProvider(Protocol):
    """Chat completion provider with function calling."""

    async def complete(
        self,
        messages: list[ChatMessage],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse: ...

    def stream(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[StreamChunk]: ...


class EmbeddingProvider(Protocol):
    """Text embedding provider with a fixed output dimension."""

    dimension: int

    async def embed(self, text: str) -> list[float]: ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]: ...


__all__ = [
    "ChatMessage",
    "EmbeddingProvider",
    "LLMProvider",
    "LLMResponse",
    "StreamChunk",
    "ToolCall",
]
