"""API v1 routing configuration."""

from fastapi import APIRouter

from juris.api.v1 import ai

router = APIRouter()

router.include_router(ai.router, prefix="/ai", tags=["AI"])


@router.get("/status", tags=["Status"])
async def api_status() -> dict[str, str]:
    """API v1 status check."""
    return {"status": "ok", "version": "v1"}
