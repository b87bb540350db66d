"""Knowledge base entry model.

Entries are chunks of legislation, jurisprudence, doctrine or case
documents. ``embedding`` is a pgvector column on PostgreSQL and a JSON
list elsewhere; it is NULL until the embedding job has processed the
entry.
"""

from __future__ import annotations

from typing import Any

from pgvector.sqlalchemy import Vector
from sqlalchemy import JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from juris.core.config import settings
from juris.models.base import Base, JSONType, TimestampMixin, UUIDMixin

EMBEDDING_DIMENSION = settings.EMBEDDING_DIMENSION

# Pending embeddings must be SQL NULL (not JSON null) for IS NULL filters
EmbeddingType = Vector(EMBEDDING_DIMENSION).with_variant(
    JSON(none_as_null=True), "sqlite"
)


class KnowledgeBaseEntry(UUIDMixin, TimestampMixin, Base):
    """Retrievable knowledge chunk.

    Attributes:
        content: Chunk text
        embedding: Fixed-dimension embedding, None while pending
        source_type: legislation, jurisprudence, doctrine, document, ...
        source_id: Identifier of the source document (nullable)
        source_url: Link to the source (nullable)
        title: Source title (nullable)
        tags: Free tags used for filtering ("CLT", "STF", "folder:<id>", ...)
        language: Content language
        metadata_: Chunk metadata (chunk_index, total_chunks, ...)
    """

    __tablename__ = "ai_knowledge_base"

    content: Mapped[str] = mapped_column(Text, nullable=False)

    embedding: Mapped[list[float] | None] = mapped_column(
        EmbeddingType,
        nullable=True,
    )

    source_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    source_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True
    )

    source_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    title: Mapped[str | None] = mapped_column(String(500), nullable=True)

    tags: Mapped[list[str]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        server_default="[]",
    )

    language: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default="pt-BR",
        server_default="pt-BR",
    )

    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSONType,
        nullable=False,
        default=dict,
        server_default="{}",
    )

    @property
    def has_embedding(self) -> bool:
        return self.embedding is not None

    @property
    def display_source(self) -> str | None:
        """Best human readable label for the entry."""
        return self.title or self.source_url or self.source_id

    def __repr__(self) -> str:
        return f"<KnowledgeBaseEntry(id={self.id}, source_type='{self.source_type}')>"


__all__ = ["EMBEDDING_DIMENSION", "KnowledgeBaseEntry"]
