"""Application error taxonomy.

Every error raised by the engine derives from AppError. Tool-level
failures (not found, permission, validation) are normally converted into
``{"success": False, ...}`` results by the tool invoker and fed back to the
model; the classes below are what the invoker converts from and what the
HTTP layer maps to status codes.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any

# =============================================================================
# Base
# =============================================================================


class AppError(Exception):
    """Base application error."""

    error_type: str = "app_error"


class ResourceNotFoundError(AppError):
    """Requested resource does not exist (or is not visible to the caller)."""

    error_type = "not_found"

    def __init__(self, resource_type: str, identifier: Any) -> None:
        self.resource_type = resource_type
        self.identifier = identifier
        super().__init__(f"{resource_type} '{identifier}' not found")


class InvalidRequestError(AppError):
    """Input failed validation.

    Attributes:
        errors: List of individual validation messages.
    """

    error_type = "validation_error"

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        self.errors = errors or []
        super().__init__(message)


class PermissionDeniedError(AppError):
    """Caller or agent is not allowed to perform the operation."""

    error_type = "permission_denied"


class ConversationBusyError(AppError):
    """Another turn is already running on the conversation."""

    error_type = "conversation_busy"

    def __init__(self, conversation_id: uuid.UUID) -> None:
        self.conversation_id = conversation_id
        super().__init__(f"Conversation '{conversation_id}' already has a running turn")


# =============================================================================
# Provider errors
# =============================================================================


class ProviderError(AppError):
    """LLM or embedding provider call failed.

    Attributes:
        retriable: Whether the call may succeed if repeated.
    """

    error_type = "provider_error"

    def __init__(self, message: str, retriable: bool = True) -> None:
        self.retriable = retriable
        super().__init__(message)


class ProviderTimeoutError(ProviderError):
    """Provider call exceeded its per-call timeout."""

    error_type = "provider_timeout"

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Provider call timed out after {timeout_seconds}s")


class EmbeddingDimensionError(ProviderError):
    """Embedding length does not match the configured dimension."""

    error_type = "embedding_dimension"

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, got {actual}",
            retriable=False,
        )


# =============================================================================
# Budget errors (fatal to the execution, never retried)
# =============================================================================


class BudgetExceededError(AppError):
    """An execution budget was exhausted."""

    error_type = "budget_exceeded"


class ToolBudgetExceededError(BudgetExceededError):
    """Tool-calling loop exceeded its iteration budget."""

    error_type = "tool_budget_exceeded"

    def __init__(self, budget: int) -> None:
        self.budget = budget
        super().__init__("tool call budget exceeded")


class TimeBudgetExceededError(BudgetExceededError):
    """Turn exceeded its wall-clock budget."""

    error_type = "timeout"

    def __init__(self, budget_seconds: float) -> None:
        self.budget_seconds = budget_seconds
        super().__init__(f"time budget of {budget_seconds}s exceeded")


class ExecutionCancelledError(AppError):
    """Execution was cancelled before reaching a terminal result."""

    error_type = "cancelled"


# =============================================================================
# Structured failure descriptor
# =============================================================================


@dataclass
class AgentExecutionError(AppError):
    """Structured failure of an agent execution.

    Carries enough to locate the failure in the ledger: the execution row,
    the agent, the workflow step (if any) and the underlying error.
    """

    execution_id: uuid.UUID | None
    agent_slug: str
    message: str
    error_type: str = "agent_execution_failed"
    step_index: int | None = None
    workflow_slug: str | None = None
    tokens_used: int = 0
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        where = f"agent '{self.agent_slug}'"
        if self.step_index is not None:
            where = f"step {self.step_index} ({where})"
        return f"{where} failed: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "execution_id": str(self.execution_id) if self.execution_id else None,
            "agent": self.agent_slug,
            "workflow": self.workflow_slug,
            "step_index": self.step_index,
            "error_type": self.error_type,
            "message": self.message,
            "tokens_used": self.tokens_used,
        }


__all__ = [
    "AgentExecutionError",
    "AppError",
    "BudgetExceededError",
    "ConversationBusyError",
    "EmbeddingDimensionError",
    "ExecutionCancelledError",
    "InvalidRequestError",
    "PermissionDeniedError",
    "ProviderError",
    "ProviderTimeoutError",
    "ResourceNotFoundError",
    "TimeBudgetExceededError",
    "ToolBudgetExceededError",
]
