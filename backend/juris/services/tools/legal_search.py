"""Knowledge base search tools.

All three delegate to RAGRetriever; none of them touches the knowledge
store directly.
"""

from __future__ import annotations

import re
from typing import Any

from juris.core.config import settings
from juris.services.rag.retriever import RAGRetriever, RetrievedSource
from juris.services.tools.base import CALLER_PARAMETER, ToolCapability

COURT_LEVELS = ["STF", "STJ", "TST", "TRF", "TJ", "TRT"]
UNKNOWN_TRIBUNAL = "Não identificado"

# CNJ unified process number: NNNNNNN-DD.AAAA.J.TR.OOOO
CNJ_PROCESS_NUMBER = re.compile(r"\d{7}-\d{2}\.\d{4}\.\d\.\d{2}\.\d{4}")
_TRIBUNAL = re.compile(r"\b(STF|STJ|TST|TRF|TRT|TJ)")


def _top_k(parameters: dict[str, Any], default: int = 5) -> int:
    return max(1, min(int(parameters.get("top_k") or default), settings.RAG_MAX_TOP_K))


def extract_tribunal(title: str | None) -> str:
    """Court acronym mentioned in a decision title."""
    match = _TRIBUNAL.search(title or "")
    return match.group(1) if match else UNKNOWN_TRIBUNAL


def extract_process_number(content: str | None) -> str | None:
    match = CNJ_PROCESS_NUMBER.search(content or "")
    return match.group(0) if match else None


class SearchLegislationTool(ToolCapability):
    function_name = "search_legislation"
    description = (
        "Busca legislação brasileira (Constituição Federal, CPC, CLT, CCB, leis "
        "específicas). Use para encontrar artigos de lei relevantes."
    )
    parameters_schema = {
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "minLength": 1,
                "description": (
                    'Consulta sobre legislação (ex: "prescrição trabalhista", '
                    '"prazo para recurso CPC")'
                ),
            },
            "top_k": {
                "type": "integer",
                "minimum": 1,
                "description": "Quantidade de resultados (padrão: 5, máximo: 10)",
                "default": 5,
            },
        },
        "required": ["query"],
    }

    def __init__(self, retriever: RAGRetriever) -> None:
        self.retriever = retriever

    async def execute(self, parameters: dict[str, Any]) -> dict[str, Any]:
        query = parameters["query"]
        result = await self.retriever.retrieve_legislation(query, top_k=_top_k(parameters))
        return {
            "query": query,
            "total_results": len(result.sources),
            "legislation": [
                {
                    "source": source.source_type,
                    "title": source.title,
                    "content": source.content,
                    "confidence": source.confidence,
                    "url": source.source_url,
                }
                for source in result.sources
            ],
            "context_summary": result.context_summary,
        }


class SearchJurisprudenceTool(ToolCapability):
    function_name = "search_jurisprudence"
    description = (
        "Busca jurisprudência dos tribunais superiores (STF, STJ, TST, TRFs, TJs). "
        "Use para encontrar precedentes e decisões relevantes."
    )
    parameters_schema = {
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "minLength": 1,
                "description": (
                    'Consulta sobre jurisprudência (ex: "dano moral acidente trabalho", '
                    '"rescisão indireta")'
                ),
            },
            "court_level": {
                "type": "string",
                "enum": [*COURT_LEVELS, "all"],
                "description": "Nível do tribunal para busca (padrão: all)",
                "default": "all",
            },
            "top_k": {
                "type": "integer",
                "minimum": 1,
                "description": "Quantidade de resultados (padrão: 5, máximo: 10)",
                "default": 5,
            },
        },
        "required": ["query"],
    }

    def __init__(self, retriever: RAGRetriever) -> None:
        self.retriever = retriever

    async def execute(self, parameters: dict[str, Any]) -> dict[str, Any]:
        query = parameters["query"]
        court_level = parameters.get("court_level") or "all"
        result = await self.retriever.retrieve_jurisprudence(
            query, top_k=_top_k(parameters)
        )

        sources: list[RetrievedSource] = result.sources
        if court_level != "all":
            sources = [s for s in sources if extract_tribunal(s.title) == court_level]

        return {
            "query": query,
            "court_level": court_level,
            "total_results": len(sources),
            "jurisprudence": [
                {
                    "tribunal": extract_tribunal(source.title),
                    "title": source.title,
                    "ementa": source.content,
                    "confidence": source.confidence,
                    "url": source.source_url,
                    "process_number": extract_process_number(source.content),
                }
                for source in sources
            ],
            "context_summary": result.context_summary,
        }


class QueryDocumentsTool(ToolCapability):
    """Search the documents attached to a case folder.

    Only chunks whose ``metadata.user_id`` matches the caller are returned.
    """

    function_name = "query_documents"
    description = (
        "Busca trechos de documentos anexados a um processo/pasta específico "
        "(petições, contratos, provas, decisões)."
    )
    parameters_schema = {
        "type": "object",
        "properties": {
            "folder_id": {
                "type": "string",
                "minLength": 1,
                "description": "ID do processo/pasta",
            },
            "query": {
                "type": "string",
                "minLength": 1,
                "description": "O que procurar nos documentos",
            },
            "document_type": {
                "type": "string",
                "description": (
                    "Tipo do documento (ex: petition, contract, evidence, judgment, "
                    "power_of_attorney)"
                ),
            },
            "top_k": {
                "type": "integer",
                "minimum": 1,
                "description": "Quantidade de resultados (padrão: 5, máximo: 10)",
                "default": 5,
            },
        },
        "required": ["folder_id", "query"],
    }
    requires_auth = True

    def __init__(self, retriever: RAGRetriever) -> None:
        self.retriever = retriever

    async def execute(self, parameters: dict[str, Any]) -> dict[str, Any]:
        folder_id = parameters["folder_id"]
        owner = str(parameters[CALLER_PARAMETER])
        document_type = parameters.get("document_type")

        result = await self.retriever.retrieve_documents(
            parameters["query"], owner, folder_id=folder_id, top_k=_top_k(parameters)
        )
        documents = [
            source
            for source in result.sources
            if document_type is None or source.metadata.get("document_type") == document_type
        ]

        return {
            "folder_id": folder_id,
            "query": parameters["query"],
            "total_results": len(documents),
            "documents": [
                {
                    "title": source.title,
                    "document_type": source.metadata.get("document_type"),
                    "content": source.content,
                    "confidence": source.confidence,
                    "url": source.source_url,
                }
                for source in documents
            ],
        }


__all__ = [
    "QueryDocumentsTool",
    "SearchJurisprudenceTool",
    "SearchLegislationTool",
    "extract_process_number",
    "extract_tribunal",
]
