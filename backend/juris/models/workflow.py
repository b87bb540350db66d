"""Workflow model.

A workflow is a fixed, ordered chain of agents. The order given at
creation is the order steps run in.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from juris.models.base import Base, JSONType, TimestampMixin, UUIDMixin


class Workflow(UUIDMixin, TimestampMixin, Base):
    """Sequential multi-agent workflow.

    Attributes:
        slug: Unique identifier
        name: Display name
        description: What the workflow produces
        agent_sequence: Ordered agent slugs, one per step
        steps: Per-step config aligned with agent_sequence; each item may
            carry an ``input_template`` and a ``label``
        is_active: Inactive workflows cannot be executed
    """

    __tablename__ = "ai_workflows"

    slug: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    agent_sequence: Mapped[list[str]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        server_default="[]",
    )

    steps: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        server_default="[]",
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default="true",
    )

    def step_config(self, index: int) -> dict[str, Any]:
        """Config for step ``index`` (empty when not configured)."""
        if index < len(self.steps):
            return self.steps[index] or {}
        return {}

    def __repr__(self) -> str:
        return f"<Workflow(slug='{self.slug}', steps={len(self.agent_sequence)})>"


__all__ = ["Workflow"]
