"""Tests for the AI HTTP endpoints."""

import json
import uuid

import pytest
from httpx import AsyncClient

from juris.core.jwt import create_access_token

AI = "/api/v1/ai"


@pytest.fixture
def stranger_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(uuid.uuid4())}"}


class TestAuthentication:
    async def test_missing_token(self, async_client: AsyncClient, seeded) -> None:
        response = await async_client.get(f"{AI}/agents")

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    async def test_invalid_token(self, async_client: AsyncClient, seeded) -> None:
        response = await async_client.get(
            f"{AI}/agents", headers={"Authorization": "Bearer garbage"}
        )
        assert response.status_code == 401

    async def test_subject_must_be_a_uuid(self, async_client: AsyncClient, seeded) -> None:
        token = create_access_token("admin")
        response = await async_client.get(
            f"{AI}/agents", headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 401


class TestCatalog:
    async def test_list_agents(self, async_client, seeded, auth_headers) -> None:
        response = await async_client.get(f"{AI}/agents", headers=auth_headers)

        assert response.status_code == 200
        slugs = [agent["slug"] for agent in response.json()]
        assert slugs == [
            "case-strategy",
            "client-communicator",
            "deadline-manager",
            "document-analyzer",
            "legal-research",
            "legal-writer",
        ]

    async def test_list_workflows(self, async_client, seeded, auth_headers) -> None:
        response = await async_client.get(f"{AI}/workflows", headers=auth_headers)

        assert response.status_code == 200
        workflows = {w["slug"]: w for w in response.json()}
        assert set(workflows) == {
            "contract-review",
            "full-case-analysis",
            "litigation-strategy",
        }
        assert workflows["full-case-analysis"]["agent_sequence"] == [
            "legal-research",
            "document-analyzer",
            "case-strategy",
        ]


class TestChat:
    async def test_chat(self, async_client, seeded, auth_headers, llm) -> None:
        llm.reply("O prazo é de 15 dias úteis.", tokens=64)

        response = await async_client.post(
            f"{AI}/chat",
            json={"message": "Qual o prazo para contestação?"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["agent"] == "deadline-manager"
        assert data["content"] == "O prazo é de 15 dias úteis."
        assert data["tokens_used"] == 64
        assert data["citations"] == []

        conversation = await async_client.get(
            f"{AI}/conversations/{data['conversation_id']}", headers=auth_headers
        )
        assert conversation.status_code == 200
        body = conversation.json()
        assert body["total_tokens"] == 64
        assert [m["role"] for m in body["messages"]] == ["user", "assistant"]

    async def test_empty_message_is_rejected(self, async_client, seeded, auth_headers) -> None:
        response = await async_client.post(
            f"{AI}/chat", json={"message": ""}, headers=auth_headers
        )
        assert response.status_code == 422

    async def test_unknown_agent(self, async_client, seeded, auth_headers) -> None:
        response = await async_client.post(
            f"{AI}/chat",
            json={"message": "oi", "agent_slug": "ghost"},
            headers=auth_headers,
        )
        assert response.status_code == 404

    async def test_failed_turn_returns_descriptor(
        self, async_client, seeded, auth_headers, llm
    ) -> None:
        llm.hang()

        response = await async_client.post(
            f"{AI}/chat", json={"message": "Qual o prazo?"}, headers=auth_headers
        )

        assert response.status_code == 502
        detail = response.json()["detail"]
        assert detail["error_type"] == "provider_timeout"
        assert detail["agent"] == "deadline-manager"
        uuid.UUID(detail["execution_id"])

        failed = await async_client.get(f"{AI}/executions/failed", headers=auth_headers)
        assert [e["id"] for e in failed.json()] == [detail["execution_id"]]

    async def test_stream(self, async_client, seeded, auth_headers) -> None:
        async with async_client.stream(
            "POST",
            f"{AI}/chat/stream",
            json={"message": "Pesquisar prescrição"},
            headers=auth_headers,
        ) as response:
            assert response.status_code == 200
            assert response.headers["content-type"].startswith("text/event-stream")
            lines = [line async for line in response.aiter_lines() if line]

        events = [json.loads(line.removeprefix("data: ")) for line in lines]
        assert all(line.startswith("data: ") for line in lines)
        assert [e["type"] for e in events] == ["start", "content", "content", "done"]


class TestWorkflows:
    async def test_execute(self, async_client, seeded, auth_headers, llm) -> None:
        llm.reply("a", 1).reply("b", 2).reply("c", 3)

        response = await async_client.post(
            f"{AI}/workflows/full-case-analysis/execute",
            json={"input": "Rescisão indireta"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["output"] == "c"
        assert data["steps_completed"] == 3
        assert data["total_tokens"] == 6
        assert data["error"] is None
        assert [s["agent"] for s in data["steps"]] == [
            "legal-research",
            "document-analyzer",
            "case-strategy",
        ]

    async def test_partial_failure(self, async_client, seeded, auth_headers, llm) -> None:
        llm.reply("pesquisa", 10).hang()

        response = await async_client.post(
            f"{AI}/workflows/full-case-analysis/execute",
            json={"input": "Rescisão indireta"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["steps_completed"] == 1
        assert data["failed_step"] == 1
        assert data["error"]["error_type"] == "provider_timeout"
        assert len(data["execution_ids"]) == 2

        executions = await async_client.get(
            f"{AI}/conversations/{data['conversation_id']}/executions",
            headers=auth_headers,
        )
        assert sorted(e["status"] for e in executions.json()) == ["completed", "failed"]

    async def test_unknown_workflow(self, async_client, seeded, auth_headers) -> None:
        response = await async_client.post(
            f"{AI}/workflows/ghost/execute", json={"input": "x"}, headers=auth_headers
        )
        assert response.status_code == 404


class TestConversations:
    async def start(self, async_client, auth_headers) -> str:
        response = await async_client.post(
            f"{AI}/chat", json={"message": "Bom dia"}, headers=auth_headers
        )
        return response.json()["conversation_id"]

    async def test_list(self, async_client, seeded, auth_headers, stranger_headers) -> None:
        await self.start(async_client, auth_headers)
        await self.start(async_client, auth_headers)

        mine = await async_client.get(
            f"{AI}/conversations", params={"size": 1}, headers=auth_headers
        )
        theirs = await async_client.get(f"{AI}/conversations", headers=stranger_headers)

        assert mine.json()["total"] == 2
        assert len(mine.json()["items"]) == 1
        assert mine.json()["pages"] == 2
        assert theirs.json()["total"] == 0

    async def test_foreign_conversation_is_hidden(
        self, async_client, seeded, auth_headers, stranger_headers
    ) -> None:
        conversation_id = await self.start(async_client, auth_headers)

        get = await async_client.get(
            f"{AI}/conversations/{conversation_id}", headers=stranger_headers
        )
        delete = await async_client.delete(
            f"{AI}/conversations/{conversation_id}", headers=stranger_headers
        )
        executions = await async_client.get(
            f"{AI}/conversations/{conversation_id}/executions", headers=stranger_headers
        )

        assert get.status_code == 404
        assert delete.status_code == 404
        assert executions.status_code == 404

    async def test_delete(self, async_client, seeded, auth_headers) -> None:
        conversation_id = await self.start(async_client, auth_headers)

        response = await async_client.delete(
            f"{AI}/conversations/{conversation_id}", headers=auth_headers
        )
        again = await async_client.get(
            f"{AI}/conversations/{conversation_id}", headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert again.status_code == 404

    async def test_invalid_conversation_id(self, async_client, seeded, auth_headers) -> None:
        response = await async_client.get(
            f"{AI}/conversations/not-a-uuid", headers=auth_headers
        )
        assert response.status_code == 422


class TestExecutionStatistics:
    async def test_statistics_are_scoped_to_caller(
        self, async_client, seeded, auth_headers, stranger_headers, llm
    ) -> None:
        llm.reply("ok", 20)
        await async_client.post(f"{AI}/chat", json={"message": "Bom dia"}, headers=auth_headers)

        mine = await async_client.get(f"{AI}/executions/statistics", headers=auth_headers)
        theirs = await async_client.get(
            f"{AI}/executions/statistics", headers=stranger_headers
        )

        assert mine.status_code == 200
        assert mine.json()["total"] == 1
        assert mine.json()["successful"] == 1
        assert mine.json()["total_tokens"] == 20
        assert theirs.json()["total"] == 0


class TestHealth:
    async def test_health(self, async_client: AsyncClient) -> None:
        response = await async_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
