"""Tool registry, invoker and built-in legal tools."""

from juris.services.tools.base import CALLER_PARAMETER, ToolCapability, ToolResult, ToolSpec
from juris.services.tools.client import (
    ClientDirectory,
    GetClientDetailsTool,
    HttpClientDirectory,
)
from juris.services.tools.deadline import CalculateDeadlineTool
from juris.services.tools.invoker import ToolInvoker
from juris.services.tools.legal_search import (
    QueryDocumentsTool,
    SearchJurisprudenceTool,
    SearchLegislationTool,
)
from juris.services.tools.registry import ToolRegistry, build_default_registry

__all__ = [
    "CALLER_PARAMETER",
    "CalculateDeadlineTool",
    "ClientDirectory",
    "GetClientDetailsTool",
    "HttpClientDirectory",
    "QueryDocumentsTool",
    "SearchJurisprudenceTool",
    "SearchLegislationTool",
    "ToolCapability",
    "ToolInvoker",
    "ToolRegistry",
    "ToolResult",
    "ToolSpec",
    "build_default_registry",
]
