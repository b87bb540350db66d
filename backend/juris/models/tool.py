"""Tool model.

A tool row describes a capability the LLM may call: its JSON Schema,
whether it needs an authenticated caller, and which agents may use it.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from juris.models.base import Base, JSONType, TimestampMixin, UUIDMixin


class Tool(UUIDMixin, TimestampMixin, Base):
    """Callable tool definition.

    Attributes:
        slug: Unique identifier, also the function name shown to the model
        name: Display name
        description: Description sent to the model
        function_name: Registry key of the implementation
        parameters_schema: JSON Schema of the call parameters
        requires_auth: Caller identity must be present and is injected
        allowed_agents: Agent slugs allowed to call it; None means all
        is_active: Inactive tools are reported as not found
    """

    __tablename__ = "ai_tools"

    slug: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    function_name: Mapped[str] = mapped_column(String(100), nullable=False)

    parameters_schema: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
        server_default="{}",
    )

    requires_auth: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default="false",
    )

    allowed_agents: Mapped[list[str] | None] = mapped_column(
        JSONType,
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default="true",
    )

    def is_allowed_for(self, agent_slug: str) -> bool:
        """Check whether an agent may call this tool."""
        return self.allowed_agents is None or agent_slug in self.allowed_agents

    def to_definition(self) -> dict[str, Any]:
        """Function-calling definition sent to the model."""
        return {
            "type": "function",
            "function": {
                "name": self.slug,
                "description": self.description,
                "parameters": self.parameters_schema
                or {"type": "object", "properties": {}},
            },
        }

    def __repr__(self) -> str:
        return f"<Tool(slug='{self.slug}', function='{self.function_name}')>"


__all__ = ["Tool"]
