"""API dependencies.

Common dependencies for API routes: database sessions, the shared AI
services, caller authentication and pagination.
"""

import uuid
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from juris.core.identity import CallerIdentity
from juris.core.jwt import verify_token
from juris.db.session import async_session, get_db
from juris.schemas.base import PaginationParams
from juris.services.orchestrator import ChatOrchestrator
from juris.services.runtime import AIServices

# =============================================================================
# Database Session Dependencies
# =============================================================================

DBSession = Annotated[AsyncSession, Depends(get_db)]
"""Type alias for database session dependency injection.

Usage:
    @router.get("/items")
    async def get_items(db: DBSession):
        result = await db.execute(select(Item))
        return result.scalars().all()
"""


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for work that outlives the request handler.

    Streaming responses keep running after the handler returns, so they
    open their own session instead of using ``get_db``.
    """
    return async_session


SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]


# =============================================================================
# AI Services
# =============================================================================


def get_ai_services(request: Request) -> AIServices:
    """Services built at startup.

    Raises:
        HTTPException: 503 if the providers could not be configured.
    """
    services: AIServices | None = getattr(request.app.state, "ai_services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AI services are not configured",
        )
    return services


def get_orchestrator(
    services: Annotated[AIServices, Depends(get_ai_services)],
) -> ChatOrchestrator:
    return services.orchestrator


Orchestrator = Annotated[ChatOrchestrator, Depends(get_orchestrator)]


# =============================================================================
# Pagination Dependencies
# =============================================================================


def get_pagination_params(
    page: Annotated[int, Query(ge=1, description="Page number (1-indexed)")] = 1,
    size: Annotated[
        int, Query(ge=1, le=100, description="Number of items per page (max 100)")
    ] = 20,
) -> PaginationParams:
    """Get pagination parameters from query string.

    Args:
        page: Page number (default: 1).
        size: Items per page (default: 20, max: 100).

    Returns:
        PaginationParams: Pagination configuration.
    """
    return PaginationParams(page=page, size=size)


Pagination = Annotated[PaginationParams, Depends(get_pagination_params)]


# =============================================================================
# Authentication Dependencies
# =============================================================================


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_caller(
    authorization: Annotated[str | None, Header()] = None,
) -> CallerIdentity:
    """Caller identity from a bearer token (required).

    The token's ``sub`` claim must be the caller's UUID.

    Raises:
        HTTPException: 401 if the token is missing or invalid.
    """
    if authorization is None:
        raise _unauthorized("Not authenticated")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise _unauthorized("Invalid authentication credentials")

    subject = verify_token(token)
    try:
        return CallerIdentity(user_id=uuid.UUID(subject or ""))
    except ValueError:
        raise _unauthorized("Could not validate credentials") from None


CurrentCaller = Annotated[CallerIdentity, Depends(get_current_caller)]


__all__ = [
    "CurrentCaller",
    "DBSession",
    "Orchestrator",
    "Pagination",
    "SessionFactory",
    "get_ai_services",
    "get_current_caller",
    "get_orchestrator",
    "get_pagination_params",
    "get_session_factory",
]
