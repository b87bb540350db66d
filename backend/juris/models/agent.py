"""Agent model.

An agent is a named LLM persona: model id, system prompt and the set of
tools it may call. Agents are read-only for the duration of a turn.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from juris.models.base import Base, JSONType, TimestampMixin, UUIDMixin


class Agent(UUIDMixin, TimestampMixin, Base):
    """LLM agent definition.

    Attributes:
        slug: Unique identifier used by workflows and tool allow-lists
        name: Display name
        description: What the agent is for
        model: Provider model id (e.g. "meta/llama-3.1-70b-instruct")
        system_prompt: System prompt sent at the start of every turn
        capabilities: List of AgentCapability values
        tools: Slugs of the tools this agent may call
        config: Model parameters (temperature, max_tokens, ...)
        is_active: Inactive agents cannot be selected or run
    """

    __tablename__ = "ai_agents"

    slug: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    model: Mapped[str] = mapped_column(String(255), nullable=False)

    system_prompt: Mapped[str] = mapped_column(Text, nullable=False)

    capabilities: Mapped[list[str]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        server_default="[]",
    )

    tools: Mapped[list[str]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        server_default="[]",
    )

    config: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
        server_default="{}",
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default="true",
    )

    @property
    def temperature(self) -> float | None:
        return self.config.get("temperature")

    @property
    def max_tokens(self) -> int | None:
        return self.config.get("max_tokens")

    def __repr__(self) -> str:
        return f"<Agent(slug='{self.slug}', model='{self.model}')>"


__all__ = ["Agent"]
