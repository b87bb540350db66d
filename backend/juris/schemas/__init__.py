"""Pydantic schemas for request/response validation."""

from juris.schemas.agent import AgentResponse, WorkflowResponse
from juris.schemas.base import (
    BaseResponse,
    BaseSchema,
    PaginatedResponse,
    PaginationParams,
    SuccessResponse,
)
from juris.schemas.chat import (
    ChatRequest,
    ChatResponse,
    WorkflowExecuteRequest,
    WorkflowExecuteResponse,
    WorkflowStepResult,
)
from juris.schemas.conversation import (
    CitationResponse,
    ConversationDetailResponse,
    ConversationResponse,
    MessageResponse,
)
from juris.schemas.execution import AgentExecutionResponse, ExecutionStatistics
from juris.schemas.knowledge import (
    KnowledgeEntryCreate,
    KnowledgeIngest,
    KnowledgeStatistics,
)

__all__ = [
    "AgentExecutionResponse",
    "AgentResponse",
    "BaseResponse",
    "BaseSchema",
    "ChatRequest",
    "ChatResponse",
    "CitationResponse",
    "ConversationDetailResponse",
    "ConversationResponse",
    "ExecutionStatistics",
    "KnowledgeEntryCreate",
    "KnowledgeIngest",
    "KnowledgeStatistics",
    "MessageResponse",
    "PaginatedResponse",
    "PaginationParams",
    "SuccessResponse",
    "WorkflowExecuteRequest",
    "WorkflowExecuteResponse",
    "WorkflowResponse",
    "WorkflowStepResult",
]
