"""AI chat, workflow and ledger endpoints.

Service errors are mapped onto HTTP statuses here:
not found → 404, validation → 422, permission → 403,
conversation busy → 409, agent failure → 502 with its descriptor.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, HTTPException, Path, Query, status
from fastapi.responses import StreamingResponse

from juris.api.deps import (  # noqa: TC001 - Required at runtime for FastAPI
    CurrentCaller,
    DBSession,
    Orchestrator,
    Pagination,
    SessionFactory,
)
from juris.core.exceptions import (
    AgentExecutionError,
    AppError,
    ConversationBusyError,
    InvalidRequestError,
    PermissionDeniedError,
    ResourceNotFoundError,
)
from juris.schemas.agent import AgentResponse, WorkflowResponse
from juris.schemas.base import PaginatedResponse, SuccessResponse
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
)
from juris.schemas.execution import AgentExecutionResponse, ExecutionStatistics
from juris.services.conversation_service import ConversationStore
from juris.services.execution_service import ExecutionLedger

router = APIRouter()

ConversationId = Annotated[UUID, Path(description="Conversation UUID")]
WorkflowSlug = Annotated[str, Path(description="Workflow slug")]


# =============================================================================
# Exception to HTTP Status Mapping
# =============================================================================


def to_http_exception(error: AppError) -> HTTPException:
    """HTTPException for a service error."""
    if isinstance(error, AgentExecutionError):
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=error.to_dict(),
        )
    if isinstance(error, ResourceNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, InvalidRequestError):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(error), "errors": error.errors},
        )
    if isinstance(error, PermissionDeniedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(error))
    if isinstance(error, ConversationBusyError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"{error.error_type}: {error}",
    )


# =============================================================================
# Chat Endpoints
# =============================================================================


@router.post(
    "/chat",
    response_model=ChatResponse,
    summary="Send a chat message",
    description="Run one agent turn. The agent is chosen from the message "
    "when none is given.",
)
async def send_message(
    payload: ChatRequest,
    db: DBSession,
    caller: CurrentCaller,
    orchestrator: Orchestrator,
) -> ChatResponse:
    try:
        turn = await orchestrator.send_message(
            db,
            caller,
            payload.message,
            conversation_id=payload.conversation_id,
            folder_id=payload.folder_id,
            agent_slug=payload.agent_slug,
        )
        message = await ConversationStore.get_message(db, turn.result.message_id)
    except AppError as e:
        raise to_http_exception(e) from e

    return ChatResponse(
        conversation_id=turn.conversation.id,
        message_id=message.id,
        execution_id=turn.result.execution_id,
        agent=turn.result.agent_slug,
        content=turn.result.output,
        tokens_used=turn.result.tokens_used,
        tool_calls=turn.result.tool_calls,
        citations=[CitationResponse.model_validate(c) for c in message.citations],
    )


@router.post(
    "/chat/stream",
    summary="Send a chat message (streamed)",
    description="Server-sent events: start, content deltas, then done or error.",
)
async def stream_message(
    payload: ChatRequest,
    session_factory: SessionFactory,
    caller: CurrentCaller,
    orchestrator: Orchestrator,
) -> StreamingResponse:
    # The response body outlives this handler, so it owns its session
    db = session_factory()
    try:
        events = await orchestrator.stream_message(
            db,
            caller,
            payload.message,
            conversation_id=payload.conversation_id,
            folder_id=payload.folder_id,
            agent_slug=payload.agent_slug,
        )
    except AppError as e:
        await db.close()
        raise to_http_exception(e) from e
    except Exception:
        await db.close()
        raise

    async def body() -> AsyncGenerator[str, None]:
        try:
            async for event in events:
                yield f"data: {event}\n\n"
        finally:
            await events.aclose()
            await db.close()

    return StreamingResponse(
        body(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


# =============================================================================
# Workflow Endpoints
# =============================================================================


@router.post(
    "/workflows/{slug}/execute",
    response_model=WorkflowExecuteResponse,
    summary="Execute a workflow",
    description="Run every step of a workflow in a new multi-agent conversation. "
    "A failed step returns the partial result with the failure descriptor.",
)
async def execute_workflow(
    slug: WorkflowSlug,
    payload: WorkflowExecuteRequest,
    db: DBSession,
    caller: CurrentCaller,
    orchestrator: Orchestrator,
) -> WorkflowExecuteResponse:
    try:
        turn = await orchestrator.execute_workflow(
            db, caller, slug, payload.input, folder_id=payload.folder_id
        )
    except AppError as e:
        raise to_http_exception(e) from e

    result = turn.result
    return WorkflowExecuteResponse(
        conversation_id=turn.conversation.id,
        workflow=result.workflow_slug,
        output=result.output,
        summary=turn.summary,
        steps_completed=result.steps_completed,
        total_steps=result.total_steps,
        total_tokens=result.total_tokens,
        execution_ids=result.execution_ids,
        steps=[
            WorkflowStepResult(**step.to_dict())
            for step in result.steps
            if step.execution_id is not None
        ],
        failed_step=result.failed_step,
        error=result.error.to_dict() if result.error else None,
    )


@router.get(
    "/workflows",
    response_model=list[WorkflowResponse],
    summary="List workflows",
)
async def list_workflows(
    db: DBSession,
    caller: CurrentCaller,  # noqa: ARG001 - Authentication only
    orchestrator: Orchestrator,
) -> list[WorkflowResponse]:
    workflows = await orchestrator.list_workflows(db)
    return [WorkflowResponse.model_validate(w) for w in workflows]


# =============================================================================
# Agent Endpoints
# =============================================================================


@router.get(
    "/agents",
    response_model=list[AgentResponse],
    summary="List agents",
    description="Active agents available for chat and workflows.",
)
async def list_agents(
    db: DBSession,
    caller: CurrentCaller,  # noqa: ARG001 - Authentication only
    orchestrator: Orchestrator,
) -> list[AgentResponse]:
    agents = await orchestrator.list_agents(db)
    return [AgentResponse.model_validate(agent) for agent in agents]


# =============================================================================
# Conversation Endpoints
# =============================================================================


@router.get(
    "/conversations",
    response_model=PaginatedResponse[ConversationResponse],
    summary="List conversations",
    description="The caller's conversations, most recently updated first.",
)
async def list_conversations(
    db: DBSession,
    caller: CurrentCaller,
    orchestrator: Orchestrator,
    pagination: Pagination,
    folder_id: Annotated[
        UUID | None,
        Query(description="Only conversations attached to this folder"),
    ] = None,
) -> PaginatedResponse[ConversationResponse]:
    conversations, total = await orchestrator.list_conversations(
        db,
        caller,
        folder_id=folder_id,
        skip=pagination.offset,
        limit=pagination.size,
    )
    return PaginatedResponse.create(
        items=[ConversationResponse.model_validate(c) for c in conversations],
        total=total,
        page=pagination.page,
        size=pagination.size,
    )


@router.get(
    "/conversations/{conversation_id}",
    response_model=ConversationDetailResponse,
    summary="Get conversation",
    description="Conversation with its messages and citations.",
)
async def get_conversation(
    conversation_id: ConversationId,
    db: DBSession,
    caller: CurrentCaller,
    orchestrator: Orchestrator,
) -> ConversationDetailResponse:
    try:
        conversation = await orchestrator.get_conversation(db, caller, conversation_id)
    except AppError as e:
        raise to_http_exception(e) from e
    return ConversationDetailResponse.model_validate(conversation)


@router.get(
    "/conversations/{conversation_id}/executions",
    response_model=list[AgentExecutionResponse],
    summary="List conversation executions",
)
async def list_conversation_executions(
    conversation_id: ConversationId,
    db: DBSession,
    caller: CurrentCaller,
) -> list[AgentExecutionResponse]:
    try:
        await ConversationStore.get_or_raise(db, conversation_id, caller.user_id)
    except AppError as e:
        raise to_http_exception(e) from e
    executions = await ExecutionLedger.list_by_conversation(db, conversation_id)
    return [AgentExecutionResponse.model_validate(e) for e in executions]


@router.delete(
    "/conversations/{conversation_id}",
    response_model=SuccessResponse,
    summary="Delete conversation",
    description="Deletes the conversation with its messages, citations and "
    "executions.",
)
async def delete_conversation(
    conversation_id: ConversationId,
    db: DBSession,
    caller: CurrentCaller,
    orchestrator: Orchestrator,
) -> SuccessResponse:
    try:
        await orchestrator.delete_conversation(db, caller, conversation_id)
    except AppError as e:
        raise to_http_exception(e) from e
    return SuccessResponse(message="Conversation deleted successfully")


# =============================================================================
# Execution Ledger Endpoints
# =============================================================================


@router.get(
    "/executions/statistics",
    response_model=ExecutionStatistics,
    summary="Execution statistics",
    description="Counts, average duration and tokens of the caller's executions.",
)
async def get_execution_statistics(
    db: DBSession,
    caller: CurrentCaller,
    agent_slug: Annotated[str | None, Query(description="Filter by agent")] = None,
) -> ExecutionStatistics:
    return await ExecutionLedger.get_statistics(
        db, agent_slug=agent_slug, user_id=caller.user_id
    )


@router.get(
    "/executions/failed",
    response_model=list[AgentExecutionResponse],
    summary="Recent failed executions",
)
async def list_failed_executions(
    db: DBSession,
    caller: CurrentCaller,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    agent_slug: Annotated[str | None, Query(description="Filter by agent")] = None,
) -> list[AgentExecutionResponse]:
    executions = await ExecutionLedger.find_failed_executions(
        db, limit=limit, agent_slug=agent_slug, user_id=caller.user_id
    )
    return [AgentExecutionResponse.model_validate(e) for e in executions]
