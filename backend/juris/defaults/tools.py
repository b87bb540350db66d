"""Default tool rows, derived from the built-in capabilities."""

from __future__ import annotations

from typing import Any

from juris.services.tools.base import ToolCapability
from juris.services.tools.client import GetClientDetailsTool
from juris.services.tools.deadline import CalculateDeadlineTool
from juris.services.tools.legal_search import (
    QueryDocumentsTool,
    SearchJurisprudenceTool,
    SearchLegislationTool,
)

# Agents allowed to call each tool; tools not listed are open to every agent
TOOL_ALLOWED_AGENTS: dict[str, list[str]] = {
    "query_documents": ["document-analyzer", "case-strategy", "legal-writer"],
    "get_client_details": ["case-strategy", "legal-writer", "client-communicator"],
}

_TOOL_NAMES = {
    "search_legislation": "Busca de Legislação",
    "search_jurisprudence": "Busca de Jurisprudência",
    "query_documents": "Consulta de Documentos do Processo",
    "calculate_deadline": "Cálculo de Prazos Processuais",
    "get_client_details": "Detalhes do Cliente",
}

_CAPABILITIES: list[type[ToolCapability]] = [
    SearchLegislationTool,
    SearchJurisprudenceTool,
    QueryDocumentsTool,
    CalculateDeadlineTool,
    GetClientDetailsTool,
]


def _tool_row(capability: type[ToolCapability]) -> dict[str, Any]:
    slug = capability.function_name
    return {
        "slug": slug,
        "name": _TOOL_NAMES.get(slug, slug),
        "description": capability.description,
        "function_name": capability.function_name,
        "parameters_schema": capability.parameters_schema,
        "requires_auth": capability.requires_auth,
        "allowed_agents": TOOL_ALLOWED_AGENTS.get(slug),
    }


DEFAULT_TOOLS: list[dict[str, Any]] = [_tool_row(c) for c in _CAPABILITIES]

__all__ = ["DEFAULT_TOOLS", "TOOL_ALLOWED_AGENTS"]
