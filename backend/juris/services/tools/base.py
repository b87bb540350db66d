"""Tool capability interface and invocation result."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from juris.models.tool import Tool

# Parameter injected by the invoker for tools that require auth
CALLER_PARAMETER = "user_id"


class ToolResult:
    """Result of a tool invocation.

    Failed invocations are values, not exceptions: the invoker returns them
    and the executor feeds them back to the model as tool-result messages.
    """

    def __init__(
        self,
        success: bool,
        result: Any = None,
        error: str | None = None,
        error_type: str | None = None,
        execution_time_ms: float = 0.0,
    ) -> None:
        """Initialize invocation result."""
        self.success = success
        self.result = result
        self.error = error
        self.error_type = error_type
        self.execution_time_ms = execution_time_ms

    @classmethod
    def ok(cls, result: Any, execution_time_ms: float = 0.0) -> ToolResult:
        return cls(success=True, result=result, execution_time_ms=execution_time_ms)

    @classmethod
    def failure(
        cls,
        error: str,
        error_type: str,
        execution_time_ms: float = 0.0,
    ) -> ToolResult:
        return cls(
            success=False,
            error=error,
            error_type=error_type,
            execution_time_ms=execution_time_ms,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary format."""
        if self.success:
            return {"success": True, "result": self.result}
        return {
            "success": False,
            "error": self.error,
            "error_type": self.error_type,
        }

    def to_message_content(self) -> str:
        """Serialized form sent back to the model."""
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)

    def __repr__(self) -> str:
        if self.success:
            return f"<ToolResult(success=True, {self.execution_time_ms:.1f}ms)>"
        return f"<ToolResult(success=False, error_type='{self.error_type}')>"


class ToolCapability(ABC):
    """Implementation behind a tool slug.

    Subclasses declare the function-calling metadata used to seed the
    tool row and implement ``execute``. Raising an AppError from
    ``execute`` reports a typed failure to the model.
    """

    function_name: str
    description: str = ""
    parameters_schema: dict[str, Any] = {"type": "object", "properties": {}}
    requires_auth: bool = False

    @abstractmethod
    async def execute(self, parameters: dict[str, Any]) -> Any:
        """Run the tool with validated parameters."""
        ...

    def definition(self) -> dict[str, Any]:
        """Function-calling definition sent to the model."""
        return {
            "type": "function",
            "function": {
                "name": self.function_name,
                "description": self.description,
                "parameters": self.parameters_schema,
            },
        }


@dataclass(frozen=True)
class ToolSpec:
    """Immutable snapshot of a tool row taken at the start of a turn."""

    slug: str
    function_name: str
    description: str
    parameters_schema: dict[str, Any]
    requires_auth: bool
    allowed_agents: tuple[str, ...] | None
    is_active: bool
    definition: dict[str, Any] = field(compare=False)

    @classmethod
    def from_model(cls, tool: Tool) -> ToolSpec:
        return cls(
            slug=tool.slug,
            function_name=tool.function_name,
            description=tool.description,
            parameters_schema=dict(tool.parameters_schema or {}),
            requires_auth=tool.requires_auth,
            allowed_agents=(
                tuple(tool.allowed_agents) if tool.allowed_agents is not None else None
            ),
            is_active=tool.is_active,
            definition=tool.to_definition(),
        )

    def is_allowed_for(self, agent_slug: str) -> bool:
        return self.allowed_agents is None or agent_slug in self.allowed_agents


__all__ = ["CALLER_PARAMETER", "ToolCapability", "ToolResult", "ToolSpec"]
