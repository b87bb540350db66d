"""Default multi-agent workflows."""

from __future__ import annotations

from typing import Any

DEFAULT_WORKFLOWS: list[dict[str, Any]] = [
    {
        "slug": "full-case-analysis",
        "name": "Análise Completa do Caso",
        "description": (
            "Pesquisa jurídica, análise documental e estratégia processual em sequência"
        ),
        "agent_sequence": ["legal-research", "document-analyzer", "case-strategy"],
        "steps": [
            {
                "label": "Pesquisa Jurídica",
                "input_template": (
                    "Pesquise legislação, jurisprudência e precedentes relevantes para: "
                    "{input}"
                ),
            },
            {
                "label": "Análise Documental",
                "input_template": (
                    "Analise os documentos do caso e identifique riscos, prazos e "
                    "inconsistências. Caso: {input}"
                ),
            },
            {
                "label": "Estratégia Processual",
                "input_template": (
                    "Com base na pesquisa jurídica e na análise documental, desenvolva "
                    "a estratégia processual e avalie as chances de êxito. Caso: {input}"
                ),
            },
        ],
    },
    {
        "slug": "contract-review",
        "name": "Revisão de Contrato",
        "description": "Análise de cláusulas, conformidade legal e redação alternativa",
        "agent_sequence": ["document-analyzer", "legal-research", "legal-writer"],
        "steps": [
            {
                "label": "Análise do Contrato",
                "input_template": (
                    "Analise o contrato identificando cláusulas críticas, riscos e "
                    "inconsistências. {input}"
                ),
            },
            {
                "label": "Conformidade Legal",
                "input_template": (
                    "Verifique a conformidade legal das cláusulas com a legislação "
                    "brasileira. {input}"
                ),
            },
            {
                "label": "Redação Sugerida",
                "input_template": (
                    "Sugira melhorias e redação alternativa para as cláusulas "
                    "problemáticas. {input}"
                ),
            },
        ],
    },
    {
        "slug": "litigation-strategy",
        "name": "Estratégia de Litígio",
        "description": "Pesquisa de precedentes, estratégia e controle de prazos",
        "agent_sequence": ["legal-research", "case-strategy", "deadline-manager"],
        "steps": [
            {
                "label": "Pesquisa de Precedentes",
                "input_template": "Pesquise jurisprudência e precedentes sobre: {input}",
            },
            {
                "label": "Estratégia",
                "input_template": (
                    "Desenvolva a estratégia processual baseada na pesquisa "
                    "jurisprudencial. Caso: {input}"
                ),
            },
            {
                "label": "Prazos",
                "input_template": (
                    "Calcule os prazos processuais e identifique urgências. Caso: {input}"
                ),
            },
        ],
    },
]

__all__ = ["DEFAULT_WORKFLOWS"]
