"""Tool invoker.

Every check that can reject a call (unknown or inactive tool, agent not
allowed, schema violation, missing caller) is turned into a failed
ToolResult instead of an exception. The model sees the error as a tool
result and can correct itself; the agent turn goes on.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable
from typing import Any

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError

from juris.core.exceptions import (
    AppError,
    InvalidRequestError,
    PermissionDeniedError,
    ResourceNotFoundError,
)
from juris.core.identity import CallerIdentity
from juris.services.tools.base import CALLER_PARAMETER, ToolResult, ToolSpec
from juris.services.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


def schema_errors(schema: dict[str, Any], parameters: dict[str, Any]) -> list[str]:
    """Validation messages for ``parameters`` against a JSON Schema."""
    validator = Draft7Validator(schema)
    errors = sorted(validator.iter_errors(parameters), key=lambda item: list(item.path))
    messages = []
    for error in errors:
        path = ".".join(str(part) for part in error.path) or "$"
        messages.append(f"{path}: {error.message}")
    return messages


class ToolInvoker:
    """Validates and dispatches tool calls for one agent turn.

    Args:
        registry: Capabilities keyed by function name
        specs: Tool snapshots visible to the turn
    """

    def __init__(self, registry: ToolRegistry, specs: Iterable[ToolSpec]) -> None:
        self.registry = registry
        self.specs = {spec.slug: spec for spec in specs}

    def definitions_for(self, agent_slug: str, tool_slugs: Iterable[str]) -> list[dict[str, Any]]:
        """Definitions of the tools an agent may call, in the agent's order."""
        definitions = []
        for slug in tool_slugs:
            spec = self.specs.get(slug)
            if (
                spec is None
                or not spec.is_active
                or not spec.is_allowed_for(agent_slug)
                or not self.registry.has(spec.function_name)
            ):
                continue
            definitions.append(spec.definition)
        return definitions

    async def invoke(
        self,
        tool_slug: str,
        parameters: dict[str, Any],
        agent_slug: str,
        caller: CallerIdentity | None = None,
    ) -> ToolResult:
        """Invoke a tool on behalf of an agent.

        Never raises except for task cancellation.
        """
        start = time.perf_counter()
        try:
            result = await self._invoke(tool_slug, parameters, agent_slug, caller)
        except asyncio.CancelledError:
            raise
        except AppError as e:
            result = ToolResult.failure(str(e), e.error_type)
        except Exception as e:
            logger.exception(
                f"Tool '{tool_slug}' raised an unexpected error",
                extra={"context": {"tool": tool_slug, "agent": agent_slug}},
            )
            result = ToolResult.failure(str(e) or type(e).__name__, "tool_error")

        result.execution_time_ms = (time.perf_counter() - start) * 1000
        log = logger.info if result.success else logger.warning
        log(
            f"Tool '{tool_slug}' invoked",
            extra={
                "context": {
                    "tool": tool_slug,
                    "agent": agent_slug,
                    "success": result.success,
                    "error_type": result.error_type,
                    "duration_ms": round(result.execution_time_ms, 2),
                }
            },
        )
        return result

    async def _invoke(
        self,
        tool_slug: str,
        parameters: dict[str, Any],
        agent_slug: str,
        caller: CallerIdentity | None,
    ) -> ToolResult:
        spec = self.specs.get(tool_slug)
        if spec is None or not spec.is_active:
            raise ResourceNotFoundError("Tool", tool_slug)
        if not self.registry.has(spec.function_name):
            raise ResourceNotFoundError("Tool", tool_slug)

        if not spec.is_allowed_for(agent_slug):
            raise PermissionDeniedError(
                f"Agent '{agent_slug}' is not allowed to use tool '{tool_slug}'"
            )

        # The caller id always comes from the authenticated identity
        params = {k: v for k, v in (parameters or {}).items() if k != CALLER_PARAMETER}

        try:
            errors = schema_errors(spec.parameters_schema or {}, params)
        except SchemaError as e:
            raise InvalidRequestError(
                f"Tool '{tool_slug}' has an invalid parameters schema: {e.message}"
            ) from e
        if errors:
            raise InvalidRequestError(
                f"Invalid parameters for tool '{tool_slug}': " + "; ".join(errors),
                errors=errors,
            )

        if spec.requires_auth:
            if caller is None:
                raise PermissionDeniedError(
                    f"Tool '{tool_slug}' requires an authenticated caller"
                )
            params[CALLER_PARAMETER] = caller.user_id

        capability = self.registry.get(spec.function_name)
        output = await capability.execute(params)
        return ToolResult.ok(output)


__all__ = ["ToolInvoker", "schema_errors"]
