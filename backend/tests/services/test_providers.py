"""Tests for provider adapters, retry policy and the client directory.

HTTP is served by httpx.MockTransport; no network access is needed.
"""

import asyncio
import json

import httpx
import pytest
from openai import AsyncOpenAI

from juris.core.exceptions import (
    EmbeddingDimensionError,
    ProviderError,
    ProviderTimeoutError,
    TimeBudgetExceededError,
)
from juris.services.providers.openai_compat import (
    OpenAICompatibleEmbeddingProvider,
    OpenAICompatibleLLMProvider,
)
from juris.services.providers.retry import Deadline, RetryPolicy, call_with_retry
from juris.services.tools.client import HttpClientDirectory


def openai_client(handler) -> AsyncOpenAI:
    return AsyncOpenAI(
        api_key="test-key",
        base_url="http://llm.test/v1",
        max_retries=0,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def completion(message: dict, finish_reason: str = "stop", total_tokens: int = 15) -> dict:
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 0,
        "model": "meta/llama-3.1-70b-instruct",
        "choices": [{"index": 0, "message": message, "finish_reason": finish_reason}],
        "usage": {
            "prompt_tokens": 10,
            "completion_tokens": total_tokens - 10,
            "total_tokens": total_tokens,
        },
    }


class TestOpenAICompatibleLLMProvider:
    async def test_complete_parses_content_and_usage(self) -> None:
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(json.loads(request.content))
            return httpx.Response(
                200, json=completion({"role": "assistant", "content": "Olá"})
            )

        provider = OpenAICompatibleLLMProvider(client=openai_client(handler))

        response = await provider.complete(
            [{"role": "user", "content": "oi"}], model="qwen/qwen3-coder-480b"
        )

        assert response.content == "Olá"
        assert response.tokens_used == 15
        assert response.finish_reason == "stop"
        assert response.tool_calls == []
        assert requests[0]["model"] == "qwen/qwen3-coder-480b"
        assert "tools" not in requests[0]

    async def test_complete_parses_tool_calls(self) -> None:
        message = {
            "role": "assistant",
            "content": None,
            "tool_calls": [
                {
                    "id": "call_a",
                    "type": "function",
                    "function": {
                        "name": "calculate_deadline",
                        "arguments": '{"start_date": "2025-03-10", "days": 5}',
                    },
                },
                {
                    "id": "call_b",
                    "type": "function",
                    "function": {"name": "search_legislation", "arguments": "{not json"},
                },
            ],
        }

        def handler(request: httpx.Request) -> httpx.Response:
            assert json.loads(request.content)["tool_choice"] == "auto"
            return httpx.Response(200, json=completion(message, "tool_calls"))

        provider = OpenAICompatibleLLMProvider(client=openai_client(handler))
        tools = [{"type": "function", "function": {"name": "calculate_deadline"}}]

        response = await provider.complete([{"role": "user", "content": "x"}], tools=tools)

        first, second = response.tool_calls
        assert first.name == "calculate_deadline"
        assert first.arguments == {"start_date": "2025-03-10", "days": 5}
        assert first.arguments_error is None
        assert second.arguments == {}
        assert second.arguments_error.startswith("invalid JSON arguments")

    @pytest.mark.parametrize(("status", "retriable"), [(503, True), (400, False)])
    async def test_status_errors_are_translated(self, status, retriable) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, json={"error": {"message": "nope"}})

        provider = OpenAICompatibleLLMProvider(client=openai_client(handler))

        with pytest.raises(ProviderError) as exc_info:
            await provider.complete([{"role": "user", "content": "x"}])

        assert exc_info.value.retriable is retriable
        assert str(status) in str(exc_info.value)


class TestOpenAICompatibleEmbeddingProvider:
    @staticmethod
    def embeddings(vectors: list[list[float]]) -> dict:
        return {
            "object": "list",
            "model": "nvidia/nv-embedqa-e5-v5",
            "data": [
                {"object": "embedding", "index": i, "embedding": v}
                for i, v in reversed(list(enumerate(vectors)))
            ],
            "usage": {"prompt_tokens": 2, "total_tokens": 2},
        }

    async def test_embed_batch_keeps_input_order(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=self.embeddings([[1.0, 0.0], [0.0, 1.0]]))

        provider = OpenAICompatibleEmbeddingProvider(
            client=openai_client(handler), dimension=2
        )

        assert await provider.embed_batch(["a", "b"]) == [[1.0, 0.0], [0.0, 1.0]]
        assert await provider.embed_batch([]) == []

    async def test_dimension_mismatch(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=self.embeddings([[1.0, 0.0, 0.0]]))

        provider = OpenAICompatibleEmbeddingProvider(
            client=openai_client(handler), dimension=2
        )

        with pytest.raises(EmbeddingDimensionError):
            await provider.embed("a")


class TestCallWithRetry:
    @pytest.fixture
    def policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=2,
            initial_delay_seconds=0.01,
            max_delay_seconds=0.01,
            timeout_seconds=0.2,
        )

    async def test_retries_retriable_errors(self, policy) -> None:
        attempts = []

        async def flaky() -> str:
            attempts.append(1)
            if len(attempts) < 3:
                raise ProviderError("503", retriable=True)
            return "ok"

        assert await call_with_retry(flaky, policy) == "ok"
        assert len(attempts) == 3

    async def test_non_retriable_error_propagates_at_once(self, policy) -> None:
        attempts = []

        async def broken() -> str:
            attempts.append(1)
            raise ProviderError("400", retriable=False)

        with pytest.raises(ProviderError):
            await call_with_retry(broken, policy)
        assert len(attempts) == 1

    async def test_timeouts_become_provider_timeouts(self, policy) -> None:
        async def slow() -> str:
            await asyncio.sleep(10)
            return "late"

        with pytest.raises(ProviderTimeoutError):
            await call_with_retry(slow, policy)

    async def test_connection_errors_are_wrapped(self, policy) -> None:
        async def offline() -> str:
            raise ConnectionError("connection refused")

        with pytest.raises(ProviderError) as exc_info:
            await call_with_retry(offline, policy)
        assert "connection refused" in str(exc_info.value)

    async def test_deadline_bounds_the_timeout(self, policy) -> None:
        policy.timeout_seconds = 5

        async def slow() -> str:
            await asyncio.sleep(10)
            return "late"

        with pytest.raises(TimeBudgetExceededError):
            await call_with_retry(slow, policy, deadline=Deadline(0.1))

    def test_backoff_is_capped(self) -> None:
        policy = RetryPolicy(initial_delay_seconds=1, max_delay_seconds=3)
        assert [policy.delay_for(i) for i in range(4)] == [1, 2, 3, 3]


class TestHttpClientDirectory:
    @staticmethod
    def directory(handler) -> HttpClientDirectory:
        directory = HttpClientDirectory("http://clients.test/api")
        directory._client = httpx.AsyncClient(
            base_url=directory.base_url, transport=httpx.MockTransport(handler)
        )
        return directory

    async def test_found_and_missing(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/clients/c-1":
                return httpx.Response(200, json={"id": "c-1", "owner_id": "u-1"})
            return httpx.Response(404)

        directory = self.directory(handler)
        try:
            assert await directory.get_client("c-1") == {"id": "c-1", "owner_id": "u-1"}
            assert await directory.get_client("c-2") is None
        finally:
            await directory.close()

    async def test_server_error_is_retriable_provider_error(self) -> None:
        directory = self.directory(lambda request: httpx.Response(502))

        with pytest.raises(ProviderError) as exc_info:
            await directory.get_client("c-1")

        assert exc_info.value.retriable is True
        await directory.close()
