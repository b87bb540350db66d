"""Default agents, tools and workflows."""

from juris.defaults.agents import DEFAULT_AGENTS
from juris.defaults.seed import SeedResult, seed_ai_defaults
from juris.defaults.tools import DEFAULT_TOOLS
from juris.defaults.workflows import DEFAULT_WORKFLOWS

__all__ = [
    "DEFAULT_AGENTS",
    "DEFAULT_TOOLS",
    "DEFAULT_WORKFLOWS",
    "SeedResult",
    "seed_ai_defaults",
]
