"""Agent execution."""

from juris.services.agents.context import TurnContext, history_from_messages
from juris.services.agents.executor import AgentExecutor, AgentRunResult

__all__ = ["AgentExecutor", "AgentRunResult", "TurnContext", "history_from_messages"]
