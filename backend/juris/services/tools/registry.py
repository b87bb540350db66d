"""Tool registry.

Maps a stable function name to the capability that implements it. Tool
rows in the database point at an entry here through ``function_name``.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date
from typing import TYPE_CHECKING, Any

from juris.core.exceptions import ResourceNotFoundError
from juris.services.tools.base import ToolCapability

if TYPE_CHECKING:
    from juris.services.rag.retriever import RAGRetriever
    from juris.services.tools.client import ClientDirectory


class ToolRegistry:
    """Registry of tool capabilities keyed by function name.

    Example:
        registry = ToolRegistry()
        registry.register(CalculateDeadlineTool())
        capability = registry.get("calculate_deadline")
        result = await capability.execute({"start_date": "2025-03-10", "days": 15})
    """

    def __init__(self) -> None:
        self._capabilities: dict[str, ToolCapability] = {}

    def register(self, capability: ToolCapability) -> None:
        """Register a capability under its ``function_name``.

        Note:
            Registering the same function name twice replaces the
            previous capability.
        """
        self._capabilities[capability.function_name] = capability

    def get(self, function_name: str) -> ToolCapability:
        """Look up a capability.

        Raises:
            ResourceNotFoundError: If nothing is registered under the name.
        """
        capability = self._capabilities.get(function_name)
        if capability is None:
            raise ResourceNotFoundError("Tool", function_name)
        return capability

    def has(self, function_name: str) -> bool:
        return function_name in self._capabilities

    def list_registered(self) -> list[str]:
        return sorted(self._capabilities)

    def definitions(self) -> list[dict[str, Any]]:
        return [
            self._capabilities[name].definition() for name in self.list_registered()
        ]

    def __len__(self) -> int:
        return len(self._capabilities)


def build_default_registry(
    retriever: RAGRetriever,
    client_directory: ClientDirectory | None = None,
    today: Callable[[], date] | None = None,
) -> ToolRegistry:
    """Registry with the built-in legal tools.

    ``get_client_details`` is only registered when a client directory is
    available; tool rows pointing at it then resolve to not found.
    """
    # Import here to avoid circular dependencies
    from juris.services.tools.client import GetClientDetailsTool
    from juris.services.tools.deadline import CalculateDeadlineTool
    from juris.services.tools.legal_search import (
        QueryDocumentsTool,
        SearchJurisprudenceTool,
        SearchLegislationTool,
    )

    registry = ToolRegistry()
    registry.register(SearchLegislationTool(retriever))
    registry.register(SearchJurisprudenceTool(retriever))
    registry.register(QueryDocumentsTool(retriever))
    registry.register(CalculateDeadlineTool(today=today))
    if client_directory is not None:
        registry.register(GetClientDetailsTool(client_directory))
    return registry


__all__ = ["ToolRegistry", "build_default_registry"]
