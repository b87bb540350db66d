"""Tests for the error taxonomy."""

import uuid

from juris.core.exceptions import (
    AgentExecutionError,
    ConversationBusyError,
    EmbeddingDimensionError,
    ResourceNotFoundError,
    ToolBudgetExceededError,
)


class TestExceptions:
    def test_not_found_message(self) -> None:
        error = ResourceNotFoundError("Agent", "missing")
        assert str(error) == "Agent 'missing' not found"
        assert error.error_type == "not_found"

    def test_tool_budget_message(self) -> None:
        error = ToolBudgetExceededError(3)
        assert str(error) == "tool call budget exceeded"
        assert error.error_type == "tool_budget_exceeded"

    def test_dimension_error_is_not_retriable(self) -> None:
        error = EmbeddingDimensionError(expected=1536, actual=768)
        assert error.retriable is False

    def test_conversation_busy_keeps_id(self) -> None:
        conversation_id = uuid.uuid4()
        error = ConversationBusyError(conversation_id)
        assert error.conversation_id == conversation_id

    def test_agent_execution_error_descriptor(self) -> None:
        execution_id = uuid.uuid4()
        error = AgentExecutionError(
            execution_id=execution_id,
            agent_slug="document-analyzer",
            message="Provider call timed out after 0.5s",
            error_type="provider_timeout",
            step_index=1,
            workflow_slug="full-case-analysis",
        )

        assert str(error) == (
            "step 1 (agent 'document-analyzer') failed: "
            "Provider call timed out after 0.5s"
        )
        data = error.to_dict()
        assert data["execution_id"] == str(execution_id)
        assert data["workflow"] == "full-case-analysis"
        assert data["error_type"] == "provider_timeout"
