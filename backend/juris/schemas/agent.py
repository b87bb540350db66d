"""Agent and workflow schemas for API responses."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from juris.schemas.base import BaseResponse


class AgentResponse(BaseResponse):
    """Agent as exposed to callers (system prompt not included)."""

    slug: str = Field(..., examples=["legal-research"])
    name: str
    description: str | None = None
    model: str = Field(..., examples=["meta/llama-3.1-70b-instruct"])
    capabilities: list[str] = Field(default_factory=list)
    tools: list[str] = Field(default_factory=list)
    config: dict[str, Any] = Field(default_factory=dict)
    is_active: bool


class WorkflowResponse(BaseResponse):
    slug: str = Field(..., examples=["full-case-analysis"])
    name: str
    description: str | None = None
    agent_sequence: list[str] = Field(default_factory=list)
    is_active: bool


__all__ = ["AgentResponse", "WorkflowResponse"]
