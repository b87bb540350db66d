"""ASGI entry point for the Juris AI engine.

``uvicorn juris.main:app`` serves the agent, workflow and conversation
endpoints under ``/api/v1/ai``. Startup seeds the default catalog, fails
executions a previous process left running and wires the shared
:class:`~juris.services.runtime.AIServices` onto ``app.state``. Missing
provider credentials leave the API up with the AI routes answering 503.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from juris.api import router as api_router
from juris.core.config import settings
from juris.core.logging import get_logger, log_context, setup_logging
from juris.db.session import async_session, engine
from juris.defaults.seed import seed_ai_defaults
from juris.services.execution_service import ExecutionLedger
from juris.services.runtime import AIServices, build_default_ai_services

setup_logging(service_name=settings.PROJECT_NAME)
logger = get_logger(__name__)

VERSION = "0.1.0"


async def prepare_database() -> None:
    async with async_session() as db:
        if settings.SEED_DEFAULTS_ON_STARTUP:
            seeded = await seed_ai_defaults(db)
            logger.info(
                "Default AI catalog seeded",
                extra={
                    "context": {
                        "agents": seeded.agents,
                        "tools": seeded.tools,
                        "workflows": seeded.workflows,
                    }
                },
            )
        interrupted = await ExecutionLedger.fail_interrupted(
            db, older_than_seconds=settings.INTERRUPTED_EXECUTION_AFTER_SECONDS
        )
        await db.commit()
    if interrupted:
        logger.warning(
            "Marked interrupted executions as failed",
            extra={"context": {"count": interrupted}},
        )


async def start_ai_services() -> AIServices | None:
    try:
        services = build_default_ai_services(async_session)
    except ValueError as e:
        logger.error(f"AI services unavailable: {e}")
        return None
    if settings.EMBEDDING_BACKFILL_ENABLED:
        await services.backfill.start()
    return services


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    with log_context(phase="startup"):
        logger.info(
            f"Starting {settings.PROJECT_NAME} {VERSION}",
            extra={"context": {"debug": settings.DEBUG}},
        )
        try:
            await prepare_database()
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Database preparation failed: {e}")
        app.state.ai_services = await start_ai_services()

    yield

    with log_context(phase="shutdown"):
        services: AIServices | None = app.state.ai_services
        if services is not None:
            await services.close()
        await engine.dispose()
        logger.info(f"{settings.PROJECT_NAME} stopped")


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.PROJECT_NAME,
        description="Agent and workflow orchestration with retrieval-augmented "
        "generation for legal practice",
        version=VERSION,
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        lifespan=lifespan,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.include_router(api_router, prefix=settings.API_V1_PREFIX)

    @application.get("/health", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {"status": "healthy"}

    return application


app = create_app()
