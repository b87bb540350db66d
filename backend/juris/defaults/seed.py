"""Idempotent seeding of default agents, tools and workflows."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from juris.defaults.agents import DEFAULT_AGENTS
from juris.defaults.tools import DEFAULT_TOOLS
from juris.defaults.workflows import DEFAULT_WORKFLOWS
from juris.models.agent import Agent
from juris.models.tool import Tool
from juris.models.workflow import Workflow

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from juris.models.base import Base

logger = logging.getLogger(__name__)


@dataclass
class SeedResult:
    agents: int = 0
    tools: int = 0
    workflows: int = 0

    @property
    def total(self) -> int:
        return self.agents + self.tools + self.workflows


async def _insert_missing(
    db: AsyncSession,
    model: type[Base],
    rows: list[dict[str, Any]],
) -> int:
    """Insert rows whose slug does not exist yet; existing rows are untouched."""
    result = await db.execute(select(model.slug))
    existing = set(result.scalars().all())
    missing = [row for row in rows if row["slug"] not in existing]
    db.add_all(model(**copy.deepcopy(row)) for row in missing)
    return len(missing)


async def seed_ai_defaults(db: AsyncSession) -> SeedResult:
    """Create the default tools, agents and workflows.

    Safe to run on every startup: only missing slugs are inserted, so
    edits made to existing rows are kept.
    """
    result = SeedResult(
        tools=await _insert_missing(db, Tool, DEFAULT_TOOLS),
        agents=await _insert_missing(db, Agent, DEFAULT_AGENTS),
        workflows=await _insert_missing(db, Workflow, DEFAULT_WORKFLOWS),
    )
    await db.flush()
    if result.total:
        logger.info(
            f"Seeded {result.total} AI defaults",
            extra={
                "context": {
                    "agents": result.agents,
                    "tools": result.tools,
                    "workflows": result.workflows,
                }
            },
        )
    return result


__all__ = ["SeedResult", "seed_ai_defaults"]
