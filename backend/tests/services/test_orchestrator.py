"""Tests for agent routing, conversation locks and the chat orchestrator."""

import asyncio
import json
import uuid

import pytest

from juris.core.exceptions import (
    AgentExecutionError,
    ConversationBusyError,
    ResourceNotFoundError,
)
from juris.core.identity import CallerIdentity
from juris.services.conversation_service import ConversationStore
from juris.services.orchestrator import ConversationLockRegistry, select_agent_slug


class TestSelectAgentSlug:
    @pytest.mark.parametrize(
        ("message", "slug"),
        [
            ("Pesquisar jurisprudência do STJ sobre dano moral", "legal-research"),
            ("Analisar contrato de locação", "document-analyzer"),
            ("Qual a melhor estratégia para o caso?", "case-strategy"),
            ("Quando vence o prazo de apelação?", "deadline-manager"),
            ("Redigir uma minuta de notificação", "legal-writer"),
            ("Explicar para cliente o andamento", "client-communicator"),
            ("Bom dia", "legal-research"),
        ],
    )
    def test_keyword_routing(self, message, slug) -> None:
        assert select_agent_slug(message) == slug

    def test_first_matching_rule_wins(self) -> None:
        assert select_agent_slug("Pesquisar o prazo da súmula") == "legal-research"


class TestConversationLockRegistry:
    async def test_turns_on_one_conversation_are_serialized(self) -> None:
        locks = ConversationLockRegistry()
        conversation_id = uuid.uuid4()
        order: list[str] = []

        async def turn(name: str, pause: float) -> None:
            async with locks.hold(conversation_id):
                order.append(f"{name}:start")
                await asyncio.sleep(pause)
                order.append(f"{name}:end")

        await asyncio.gather(turn("a", 0.05), turn("b", 0))

        assert order == ["a:start", "a:end", "b:start", "b:end"]
        assert len(locks) == 0

    async def test_reject_concurrent(self) -> None:
        locks = ConversationLockRegistry(reject_concurrent=True)
        conversation_id = uuid.uuid4()

        async with locks.hold(conversation_id):
            assert locks.is_busy(conversation_id)
            with pytest.raises(ConversationBusyError):
                async with locks.hold(conversation_id):
                    pass

        assert not locks.is_busy(conversation_id)

    async def test_different_conversations_do_not_block(self) -> None:
        locks = ConversationLockRegistry(reject_concurrent=True)

        async with locks.hold(uuid.uuid4()):
            async with locks.hold(uuid.uuid4()):
                assert len(locks) == 2


class TestSendMessage:
    async def test_new_conversation(self, db_session, seeded, orchestrator, llm, caller) -> None:
        llm.reply("O prazo de contestação é de 15 dias úteis.", tokens=80)

        turn = await orchestrator.send_message(
            db_session, caller, "Quando vence o prazo de contestação?"
        )

        assert turn.agent.slug == "deadline-manager"
        assert turn.result.output == "O prazo de contestação é de 15 dias úteis."
        assert turn.conversation.user_id == caller.user_id
        assert turn.conversation.title == "Quando vence o prazo de contestação?"
        assert turn.conversation.total_tokens == 80

        history = await ConversationStore.get_history(db_session, turn.conversation.id)
        assert [(m.role, m.sequence) for m in history] == [("user", 1), ("assistant", 2)]

    async def test_follow_up_replays_history(
        self, db_session, seeded, orchestrator, llm, caller
    ) -> None:
        llm.reply("Primeira resposta").reply("Segunda resposta")
        first = await orchestrator.send_message(
            db_session, caller, "Bom dia", agent_slug="legal-writer"
        )

        await orchestrator.send_message(
            db_session,
            caller,
            "E o recurso?",
            conversation_id=first.conversation.id,
            agent_slug="legal-writer",
        )

        messages = llm.calls[1]["messages"]
        assert messages[1:] == [
            {"role": "user", "content": "Bom dia"},
            {"role": "assistant", "content": "Primeira resposta"},
            {"role": "user", "content": "E o recurso?"},
        ]

    async def test_explicit_unknown_agent(self, db_session, seeded, orchestrator, caller) -> None:
        with pytest.raises(ResourceNotFoundError):
            await orchestrator.send_message(db_session, caller, "x", agent_slug="ghost")

    async def test_foreign_conversation_is_not_found(
        self, db_session, seeded, orchestrator, caller
    ) -> None:
        first = await orchestrator.send_message(db_session, caller, "Bom dia")
        intruder = CallerIdentity(user_id=uuid.uuid4())

        with pytest.raises(ResourceNotFoundError):
            await orchestrator.send_message(
                db_session, intruder, "oi", conversation_id=first.conversation.id
            )

    async def test_failed_turn_raises_descriptor(
        self, db_session, seeded, orchestrator, llm, caller
    ) -> None:
        llm.hang()

        with pytest.raises(AgentExecutionError) as exc_info:
            await orchestrator.send_message(db_session, caller, "prazo de recurso")

        assert exc_info.value.agent_slug == "deadline-manager"
        assert exc_info.value.error_type == "provider_timeout"
        assert exc_info.value.workflow_slug is None


class TestStreamMessage:
    async def test_events(self, db_session, seeded, orchestrator, caller) -> None:
        events = await orchestrator.stream_message(
            db_session, caller, "Pesquisar prescrição trabalhista"
        )
        payloads = [json.loads(event) async for event in events]

        assert [p["type"] for p in payloads] == ["start", "content", "content", "done"]
        assert payloads[0]["agent"] == "legal-research"
        assert payloads[0]["conversation"]["title"] == "Pesquisar prescrição trabalhista"
        assert payloads[-1]["tokens_used"] == 42

    async def test_lookup_errors_raise_before_streaming(
        self, db_session, seeded, orchestrator, caller
    ) -> None:
        with pytest.raises(ResourceNotFoundError):
            await orchestrator.stream_message(db_session, caller, "x", agent_slug="ghost")


class TestConversations:
    async def test_list_and_get(self, db_session, seeded, orchestrator, caller) -> None:
        turn = await orchestrator.send_message(db_session, caller, "Bom dia")

        items, total = await orchestrator.list_conversations(db_session, caller)
        conversation = await orchestrator.get_conversation(
            db_session, caller, turn.conversation.id
        )

        assert total == 1
        assert [c.id for c in items] == [turn.conversation.id]
        assert len(conversation.messages) == 2

    async def test_get_foreign_conversation(
        self, db_session, seeded, orchestrator, caller
    ) -> None:
        turn = await orchestrator.send_message(db_session, caller, "Bom dia")

        with pytest.raises(ResourceNotFoundError):
            await orchestrator.get_conversation(
                db_session, CallerIdentity(user_id=uuid.uuid4()), turn.conversation.id
            )

    async def test_delete_while_busy_is_rejected(
        self, db_session, seeded, orchestrator, caller
    ) -> None:
        turn = await orchestrator.send_message(db_session, caller, "Bom dia")

        async with orchestrator.locks.hold(turn.conversation.id):
            with pytest.raises(ConversationBusyError):
                await orchestrator.delete_conversation(
                    db_session, caller, turn.conversation.id
                )

        await orchestrator.delete_conversation(db_session, caller, turn.conversation.id)
        assert await ConversationStore.get(db_session, turn.conversation.id) is None
