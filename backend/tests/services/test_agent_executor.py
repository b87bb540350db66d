"""Tests for AgentExecutor: tool-calling turns, budgets, ledger and streaming."""

import asyncio
import json
import uuid

import pytest
import pytest_asyncio
from sqlalchemy import select

from juris.core.exceptions import AgentExecutionError, ProviderError
from juris.core.identity import CallerIdentity
from juris.models.conversation import Message
from juris.models.enums import ExecutionStatus, MessageRole, SourceType
from juris.models.execution import AgentExecution
from juris.schemas.knowledge import KnowledgeEntryCreate
from juris.services.agents.context import TurnContext
from juris.services.agents.executor import failure_note
from juris.services.conversation_service import ConversationStore
from juris.services.orchestrator import ChatOrchestrator


@pytest_asyncio.fixture
async def conversation(db_session, seeded, caller):
    conversation = await ConversationStore.create(db_session, user_id=caller.user_id)
    await db_session.commit()
    return conversation


def turn(conversation, caller, text: str) -> TurnContext:
    return TurnContext(conversation_id=conversation.id, input=text, caller=caller)


async def executions(db_session, conversation) -> list[AgentExecution]:
    result = await db_session.execute(
        select(AgentExecution)
        .where(AgentExecution.conversation_id == conversation.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def transcript(db_session, conversation) -> list[Message]:
    result = await db_session.execute(
        select(Message)
        .where(Message.conversation_id == conversation.id)
        .order_by(Message.sequence)
    )
    return list(result.scalars().all())


class TestRun:
    async def test_plain_answer_completes_one_execution(
        self, db_session, executor, llm, conversation, caller
    ) -> None:
        llm.reply("O prazo prescricional trabalhista é de cinco anos.", tokens=120)
        agent = await ChatOrchestrator.get_agent(db_session, "legal-research")

        result = await executor.run(
            db_session, agent, turn(conversation, caller, "prescrição trabalhista")
        )

        assert result.output == "O prazo prescricional trabalhista é de cinco anos."
        assert result.tokens_used == 120
        assert result.finish_reason == "stop"

        [execution] = await executions(db_session, conversation)
        assert execution.id == result.execution_id
        assert execution.status == ExecutionStatus.COMPLETED
        assert execution.agent_slug == "legal-research"
        assert execution.tokens_used == 120
        assert execution.input == {"input": "prescrição trabalhista"}

        [message] = await transcript(db_session, conversation)
        assert message.id == result.message_id
        assert message.role == MessageRole.ASSISTANT
        assert message.tokens == 120

    async def test_agent_model_and_tools_are_sent(
        self, db_session, executor, llm, conversation, caller
    ) -> None:
        agent = await ChatOrchestrator.get_agent(db_session, "legal-research")

        await executor.run(db_session, agent, turn(conversation, caller, "Art. 7º CF"))

        [call] = llm.calls
        assert call["model"] == "meta/llama-3.1-70b-instruct"
        assert [t["function"]["name"] for t in call["tools"]] == [
            "search_legislation",
            "search_jurisprudence",
        ]
        assert call["messages"][0]["role"] == "system"
        assert call["messages"][-1] == {"role": "user", "content": "Art. 7º CF"}

    async def test_tool_round_trip(
        self, db_session, executor, llm, conversation, caller
    ) -> None:
        llm.call_tool(
            "calculate_deadline",
            {"start_date": "2025-03-10", "days": 5, "count_type": "úteis"},
        ).reply("O prazo vence em 17/03/2025.")
        agent = await ChatOrchestrator.get_agent(db_session, "deadline-manager")

        result = await executor.run(
            db_session, agent, turn(conversation, caller, "Prazo de 5 dias úteis")
        )

        assert result.output == "O prazo vence em 17/03/2025."
        assert result.tokens_used == 15

        second = llm.calls[1]["messages"]
        assert second[-2]["role"] == "assistant"
        assert second[-2]["tool_calls"][0]["function"]["name"] == "calculate_deadline"
        tool_message = second[-1]
        assert tool_message["role"] == "tool"
        assert tool_message["tool_call_id"] == "call_0_0"
        payload = json.loads(tool_message["content"])
        assert payload["success"] is True
        assert payload["result"]["deadline_date"] == "2025-03-17"

        [execution] = await executions(db_session, conversation)
        [logged] = execution.tool_calls
        assert logged["name"] == "calculate_deadline"
        assert logged["round"] == 1
        assert logged["success"] is True

    async def test_tool_outside_agent_toolset_is_fed_back(
        self, db_session, executor, llm, conversation, caller
    ) -> None:
        llm.call_tool("query_documents", {"folder_id": "1", "query": "x"}).reply("Ok.")
        agent = await ChatOrchestrator.get_agent(db_session, "legal-research")

        result = await executor.run(db_session, agent, turn(conversation, caller, "x"))

        assert result.output == "Ok."
        [logged] = result.tool_calls
        assert logged["success"] is False
        assert logged["error_type"] == "not_found"
        feedback = json.loads(llm.calls[1]["messages"][-1]["content"])
        assert feedback["error_type"] == "not_found"

    async def test_tool_budget_exceeded_fails_the_turn(
        self, db_session, executor, llm, conversation, caller
    ) -> None:
        arguments = {"start_date": "2025-03-10", "days": 5, "count_type": "úteis"}
        llm.call_tool("calculate_deadline", arguments).call_tool(
            "calculate_deadline", arguments
        )
        agent = await ChatOrchestrator.get_agent(db_session, "deadline-manager")

        with pytest.raises(AgentExecutionError) as exc_info:
            await executor.run(
                db_session, agent, turn(conversation, caller, "prazo"), tool_budget=1
            )

        error = exc_info.value
        assert error.error_type == "tool_budget_exceeded"
        assert error.message == "tool call budget exceeded"
        assert error.tokens_used == 10

        [execution] = await executions(db_session, conversation)
        assert execution.status == ExecutionStatus.FAILED
        assert execution.error_type == "tool_budget_exceeded"
        assert execution.tokens_used == 10
        assert len(execution.tool_calls) == 1

    async def test_provider_timeout(
        self, db_session, executor, llm, conversation, caller
    ) -> None:
        llm.hang()
        agent = await ChatOrchestrator.get_agent(db_session, "deadline-manager")

        with pytest.raises(AgentExecutionError) as exc_info:
            await executor.run(db_session, agent, turn(conversation, caller, "prazo"))

        assert exc_info.value.error_type == "provider_timeout"
        [execution] = await executions(db_session, conversation)
        assert execution.status == ExecutionStatus.FAILED
        assert execution.error_type == "provider_timeout"

    async def test_time_budget_bounds_the_provider_call(
        self, db_session, executor, llm, conversation, caller, fast_retry
    ) -> None:
        fast_retry.timeout_seconds = 5
        llm.hang()
        agent = await ChatOrchestrator.get_agent(db_session, "deadline-manager")

        with pytest.raises(AgentExecutionError) as exc_info:
            await executor.run(
                db_session,
                agent,
                turn(conversation, caller, "prazo"),
                time_budget_seconds=0.2,
            )

        assert exc_info.value.error_type == "timeout"
        [execution] = await executions(db_session, conversation)
        assert execution.error_type == "timeout"

    async def test_failure_appends_system_note(
        self, db_session, executor, llm, conversation, caller
    ) -> None:
        llm.fail(ProviderError("upstream returned 400", retriable=False))
        agent = await ChatOrchestrator.get_agent(db_session, "deadline-manager")

        with pytest.raises(AgentExecutionError) as exc_info:
            await executor.run(db_session, agent, turn(conversation, caller, "prazo"))

        assert exc_info.value.error_type == "provider_error"
        [note] = await transcript(db_session, conversation)
        assert note.role == MessageRole.SYSTEM
        assert note.content == (
            "Falha na execução do agente 'deadline-manager': upstream returned 400"
        )

    async def test_total_tokens_equal_message_tokens(
        self, db_session, executor, llm, conversation, caller
    ) -> None:
        arguments = {"start_date": "2025-03-10", "days": 5, "count_type": "corridos"}
        llm.call_tool("calculate_deadline", arguments, tokens=7).reply("ok", tokens=30)
        llm.fail(ProviderError("boom", retriable=False))
        agent = await ChatOrchestrator.get_agent(db_session, "deadline-manager")

        await executor.run(db_session, agent, turn(conversation, caller, "a"))
        with pytest.raises(AgentExecutionError):
            await executor.run(db_session, agent, turn(conversation, caller, "b"))

        stored = await ConversationStore.get_total_tokens(db_session, conversation.id)
        computed = await ConversationStore.compute_total_tokens(db_session, conversation.id)
        assert stored == computed == 37

    async def test_completed_at_not_before_started_at(
        self, db_session, executor, conversation, caller
    ) -> None:
        agent = await ChatOrchestrator.get_agent(db_session, "legal-writer")

        await executor.run(db_session, agent, turn(conversation, caller, "minuta"))

        [execution] = await executions(db_session, conversation)
        assert execution.started_at is not None
        assert execution.completed_at >= execution.started_at
        assert execution.duration_ms >= 0

    async def test_tool_calls_of_one_response_run_concurrently(
        self, db_session, executor, registry, llm, conversation, caller, monkeypatch
    ) -> None:
        started: list[int] = []
        both_started = asyncio.Event()

        async def gated(parameters):
            started.append(parameters["days"])
            if len(started) == 2:
                both_started.set()
            await asyncio.wait_for(both_started.wait(), timeout=1)
            if parameters["days"] == 5:
                await asyncio.sleep(0.05)
            return {"days": parameters["days"]}

        monkeypatch.setattr(registry.get("calculate_deadline"), "execute", gated)
        arguments = {"start_date": "2025-03-10", "count_type": "corridos"}
        llm.call_tools(
            [
                ("calculate_deadline", {**arguments, "days": 5}),
                ("calculate_deadline", {**arguments, "days": 10}),
            ]
        ).reply("Prazos calculados.")
        agent = await ChatOrchestrator.get_agent(db_session, "deadline-manager")

        result = await executor.run(db_session, agent, turn(conversation, caller, "prazos"))

        assert result.output == "Prazos calculados."
        assert sorted(started) == [5, 10]
        tool_messages = [m for m in llm.calls[1]["messages"] if m["role"] == "tool"]
        assert [m["tool_call_id"] for m in tool_messages] == ["call_0_0", "call_0_1"]
        assert [json.loads(m["content"])["result"] for m in tool_messages] == [
            {"days": 5},
            {"days": 10},
        ]
        assert [(c["round"], c["success"]) for c in result.tool_calls] == [
            (1, True),
            (1, True),
        ]

    async def test_cancelled_run_leaves_failed_execution(
        self, db_session, executor, llm, conversation, caller
    ) -> None:
        llm.hang()
        agent = await ChatOrchestrator.get_agent(db_session, "deadline-manager")

        task = asyncio.create_task(
            executor.run(db_session, agent, turn(conversation, caller, "prazo"))
        )
        while not llm.calls:
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        [execution] = await executions(db_session, conversation)
        assert execution.status == ExecutionStatus.FAILED
        assert execution.error_type == "cancelled"
        assert execution.completed_at is not None

    def test_failure_note(self) -> None:
        assert failure_note("legal-writer", ValueError("x")) == (
            "Falha na execução do agente 'legal-writer': x"
        )


class TestStream:
    async def test_stream_yields_content_then_done(
        self, db_session, executor, conversation, caller
    ) -> None:
        agent = await ChatOrchestrator.get_agent(db_session, "legal-research")

        events = [
            event
            async for event in executor.stream(
                db_session, agent, turn(conversation, caller, "prescrição")
            )
        ]

        assert [e["type"] for e in events] == ["content", "content", "done"]
        done = events[-1]
        assert done["tokens_used"] == 42
        assert done["agent"] == "legal-research"

        [message] = await transcript(db_session, conversation)
        assert message.content == (
            "Conforme o art. 7º da CF, o prazo prescricional é de cinco anos."
        )
        [execution] = await executions(db_session, conversation)
        assert execution.status == ExecutionStatus.COMPLETED

    async def test_closing_the_stream_marks_execution_cancelled(
        self, db_session, executor, conversation, caller
    ) -> None:
        agent = await ChatOrchestrator.get_agent(db_session, "legal-research")
        stream = executor.stream(db_session, agent, turn(conversation, caller, "x"))

        first = await stream.__anext__()
        await stream.aclose()

        assert first["type"] == "content"
        [execution] = await executions(db_session, conversation)
        assert execution.status == ExecutionStatus.FAILED
        assert execution.error_type == "cancelled"

    async def test_stream_error_event(
        self, db_session, executor, llm, conversation, caller
    ) -> None:
        async def broken(*args, **kwargs):
            raise ProviderError("stream dropped", retriable=False)
            yield  # pragma: no cover

        llm.stream = broken
        agent = await ChatOrchestrator.get_agent(db_session, "legal-research")

        events = [
            event
            async for event in executor.stream(
                db_session, agent, turn(conversation, caller, "x")
            )
        ]

        [error] = events
        assert error["type"] == "error"
        assert error["error"]["error_type"] == "provider_error"
        assert error["error"]["agent"] == "legal-research"


class TestKnowledgeContext:
    async def test_folder_documents_are_scoped_to_the_caller(
        self, db_session, executor, knowledge_store, llm, conversation, caller
    ) -> None:
        folder_id = uuid.uuid4()
        other_user = CallerIdentity(user_id=uuid.uuid4())
        await knowledge_store.insert(
            [
                KnowledgeEntryCreate(
                    content="Contrato de prestação de serviços do cliente",
                    embedding=[1.0] + [0.0] * 7,
                    source_type=SourceType.DOCUMENT,
                    tags=[f"folder:{folder_id}"],
                    metadata={"user_id": str(caller.user_id)},
                ),
                KnowledgeEntryCreate(
                    content="SEGREDO do cliente de outro escritório",
                    embedding=[1.0] + [0.0] * 7,
                    source_type=SourceType.DOCUMENT,
                    tags=[f"folder:{folder_id}"],
                    metadata={"user_id": str(other_user.user_id)},
                ),
            ]
        )
        agent = await ChatOrchestrator.get_agent(db_session, "legal-research")
        context = TurnContext(
            conversation_id=conversation.id,
            input="cláusulas do contrato",
            caller=caller,
            folder_id=folder_id,
        )

        result = await executor.run(db_session, agent, context)

        system_prompt = llm.calls[0]["messages"][0]["content"]
        assert "Contrato de prestação de serviços do cliente" in system_prompt
        assert "SEGREDO" not in system_prompt
        assert [c.excerpt for c in result.citations] == [
            "Contrato de prestação de serviços do cliente"
        ]

    async def test_no_caller_means_no_folder_documents(
        self, db_session, executor, knowledge_store, llm, conversation
    ) -> None:
        folder_id = uuid.uuid4()
        await knowledge_store.insert(
            [
                KnowledgeEntryCreate(
                    content="Petição inicial do processo",
                    embedding=[1.0] + [0.0] * 7,
                    source_type=SourceType.DOCUMENT,
                    tags=[f"folder:{folder_id}"],
                    metadata={"user_id": str(uuid.uuid4())},
                )
            ]
        )
        agent = await ChatOrchestrator.get_agent(db_session, "legal-research")
        context = TurnContext(
            conversation_id=conversation.id, input="petição", folder_id=folder_id
        )

        result = await executor.run(db_session, agent, context)

        assert "Petição inicial" not in llm.calls[0]["messages"][0]["content"]
        assert result.citations == []
