"""LLM and embedding provider adapters."""

from juris.services.providers.base import (
    ChatMessage,
    EmbeddingProvider,
    LLMProvider,
    LLMResponse,
    StreamChunk,
    ToolCall,
)
from juris.services.providers.openai_compat import (
    OpenAICompatibleEmbeddingProvider,
    OpenAICompatibleLLMProvider,
)
from juris.services.providers.retry import Deadline, RetryPolicy, call_with_retry

__all__ = [
    "ChatMessage",
    "Deadline",
    "EmbeddingProvider",
    "LLMProvider",
    "LLMResponse",
    "OpenAICompatibleEmbeddingProvider",
    "OpenAICompatibleLLMProvider",
    "RetryPolicy",
    "StreamChunk",
    "ToolCall",
    "call_with_retry",
]
