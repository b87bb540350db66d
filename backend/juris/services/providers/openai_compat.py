"""OpenAI-compatible provider adapters.

NVIDIA NIM (and most hosted open-weight model endpoints) expose the
OpenAI chat completions and embeddings API, so a single AsyncOpenAI
client with a custom ``base_url`` covers them. SDK exceptions are
translated into ProviderError so the retry policy can classify them.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    OpenAIError,
    RateLimitError,
)

from juris.core.config import settings
from juris.core.exceptions import (
    EmbeddingDimensionError,
    ProviderError,
    ProviderTimeoutError,
)
from juris.services.providers.base import ChatMessage, LLMResponse, StreamChunk, ToolCall

logger = logging.getLogger(__name__)

# HTTP statuses worth retrying
_RETRIABLE_STATUS = {408, 409, 429, 500, 502, 503, 504}


def translate_openai_error(error: OpenAIError) -> ProviderError:
    """Map an OpenAI SDK exception onto the provider error taxonomy."""
    if isinstance(error, APITimeoutError):
        return ProviderTimeoutError(settings.LLM_REQUEST_TIMEOUT_SECONDS)
    if isinstance(error, (APIConnectionError, RateLimitError)):
        return ProviderError(str(error), retriable=True)
    if isinstance(error, APIStatusError):
        return ProviderError(
            f"Provider returned {error.status_code}: {error.message}",
            retriable=error.status_code in _RETRIABLE_STATUS,
        )
    return ProviderError(str(error), retriable=False)


def _build_client(api_key: str | None, base_url: str | None) -> AsyncOpenAI:
    resolved_key = api_key or settings.LLM_API_KEY
    if not resolved_key:
        raise ValueError(
            "No API key configured for the LLM provider. Set LLM_API_KEY in .env"
        )
    return AsyncOpenAI(
        api_key=resolved_key,
        base_url=base_url or settings.LLM_BASE_URL,
        # Retries are handled by call_with_retry
        max_retries=0,
        timeout=settings.LLM_REQUEST_TIMEOUT_SECONDS,
    )


def _parse_tool_calls(raw_calls: list[Any] | None) -> list[ToolCall]:
    calls: list[ToolCall] = []
    for raw in raw_calls or []:
        arguments: dict[str, Any] = {}
        arguments_error: str | None = None
        raw_arguments = raw.function.arguments or "{}"
        try:
            parsed = json.loads(raw_arguments)
            if isinstance(parsed, dict):
                arguments = parsed
            else:
                arguments_error = "tool arguments must be a JSON object"
        except json.JSONDecodeError as e:
            arguments_error = f"invalid JSON arguments: {e.msg}"
        calls.append(
            ToolCall(
                id=raw.id,
                name=raw.function.name,
                arguments=arguments,
                arguments_error=arguments_error,
            )
        )
    return calls


class OpenAICompatibleLLMProvider:
    """Chat completion provider backed by an OpenAI-compatible endpoint.

    Switching endpoints is a config change (``LLM_BASE_URL``,
    ``LLM_API_KEY``, ``LLM_DEFAULT_MODEL``).
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        default_model: str | None = None,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._client = client or _build_client(api_key, base_url)
        self._default_model = default_model or settings.LLM_DEFAULT_MODEL
        logger.info(
            f"Initialized OpenAI-compatible LLM provider (model={self._default_model})"
        )

    async def complete(
        self,
        messages: list[ChatMessage],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        kwargs: dict[str, Any] = {
            "model": model or self._default_model,
            "messages": messages,
            "temperature": settings.LLM_TEMPERATURE if temperature is None else temperature,
            "max_tokens": max_tokens or settings.LLM_MAX_TOKENS,
        }
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"

        try:
            response = await self._client.chat.completions.create(**kwargs)
        except OpenAIError as e:
            raise translate_openai_error(e) from e

        if not response.choices:
            raise ProviderError("Provider returned no choices", retriable=True)

        choice = response.choices[0]
        return LLMResponse(
            content=choice.message.content or "",
            tool_calls=_parse_tool_calls(choice.message.tool_calls),
            tokens_used=response.usage.total_tokens if response.usage else 0,
            finish_reason=choice.finish_reason,
            model=response.model or kwargs["model"],
        )

    async def stream(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[StreamChunk]:
        try:
            stream = await self._client.chat.completions.create(
                model=model or self._default_model,
                messages=messages,
                temperature=settings.LLM_TEMPERATURE if temperature is None else temperature,
                max_tokens=max_tokens or settings.LLM_MAX_TOKENS,
                stream=True,
                stream_options={"include_usage": True},
            )
            async for chunk in stream:
                tokens = chunk.usage.total_tokens if chunk.usage else 0
                if not chunk.choices:
                    if tokens:
                        yield StreamChunk(tokens_used=tokens)
                    continue
                choice = chunk.choices[0]
                content = choice.delta.content if choice.delta else None
                if content or tokens or choice.finish_reason:
                    yield StreamChunk(
                        content=content or "",
                        tokens_used=tokens,
                        finish_reason=choice.finish_reason,
                    )
        except OpenAIError as e:
            raise translate_openai_error(e) from e


class OpenAICompatibleEmbeddingProvider:
    """Embedding provider backed by an OpenAI-compatible endpoint.

    Every returned vector is checked against the configured dimension;
    a mismatch would silently corrupt similarity search.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        dimension: int | None = None,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._client = client or _build_client(api_key, base_url)
        self._model = model or settings.EMBEDDING_MODEL
        self.dimension = dimension or settings.EMBEDDING_DIMENSION

    async def embed(self, text: str) -> list[float]:
        embeddings = await self.embed_batch([text])
        return embeddings[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        try:
            response = await self._client.embeddings.create(
                model=self._model,
                input=texts,
            )
        except OpenAIError as e:
            raise translate_openai_error(e) from e

        embeddings: list[list[float]] = [[] for _ in texts]
        for item in sorted(response.data, key=lambda x: x.index):
            if len(item.embedding) != self.dimension:
                raise EmbeddingDimensionError(self.dimension, len(item.embedding))
            embeddings[item.index] = list(item.embedding)

        logger.debug(
            f"Generated {len(texts)} embeddings",
            extra={"context": {"model": self._model, "count": len(texts)}},
        )
        return embeddings


__all__ = [
    "OpenAICompatibleEmbeddingProvider",
    "OpenAICompatibleLLMProvider",
    "translate_openai_error",
]
