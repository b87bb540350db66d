"""Schemas for knowledge base ingestion and statistics."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from juris.models.enums import SourceType
from juris.schemas.base import BaseSchema


class KnowledgeEntryCreate(BaseSchema):
    """Single knowledge chunk to insert."""

    content: str = Field(..., min_length=1)
    embedding: list[float] | None = Field(
        default=None,
        description="Precomputed embedding; None leaves the entry pending",
    )
    source_type: SourceType = Field(default=SourceType.OTHER)
    source_id: str | None = Field(default=None, max_length=255)
    source_url: str | None = None
    title: str | None = Field(default=None, max_length=500)
    tags: list[str] = Field(default_factory=list)
    language: str = Field(default="pt-BR", max_length=10)
    metadata: dict[str, Any] = Field(default_factory=dict)


class KnowledgeIngest(BaseSchema):
    """Document to chunk, embed and insert."""

    content: str = Field(..., min_length=1)
    source_type: SourceType = Field(default=SourceType.DOCUMENT)
    source_id: str | None = Field(default=None, max_length=255)
    source_url: str | None = None
    title: str | None = Field(default=None, max_length=500)
    tags: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class KnowledgeStatistics(BaseSchema):
    """Knowledge base counters."""

    total: int = Field(..., ge=0)
    by_source_type: dict[str, int] = Field(default_factory=dict)
    with_embeddings: int = Field(..., ge=0)

    @property
    def pending_embeddings(self) -> int:
        return self.total - self.with_embeddings


__all__ = ["KnowledgeEntryCreate", "KnowledgeIngest", "KnowledgeStatistics"]
