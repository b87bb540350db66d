"""Knowledge store: persistence and vector similarity search.

Each operation runs in its own short-lived session, so searches never
share a session with an in-flight turn and every search is a single
SELECT over a consistent snapshot.

On PostgreSQL the search is delegated to pgvector (``<=>`` cosine
distance, ordered by distance then id). Other dialects load the
candidate embeddings and rank them with numpy; this is what the test
suite runs against.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from sqlalchemy import func, select, type_coerce
from sqlalchemy.dialects.postgresql import JSONB, array

from juris.core.config import settings
from juris.core.exceptions import EmbeddingDimensionError, ResourceNotFoundError
from juris.models.knowledge import KnowledgeBaseEntry
from juris.schemas.knowledge import KnowledgeEntryCreate, KnowledgeStatistics

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
    from sqlalchemy.sql import Select

logger = logging.getLogger(__name__)


@dataclass
class KnowledgeSearchHit:
    """Entry returned by a similarity search with its cosine distance."""

    entry: KnowledgeBaseEntry
    distance: float


def cosine_distances(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
    """Cosine distance (1 - cosine similarity) of each row to ``query``.

    Zero vectors get distance 1.0.
    """
    row_norms = np.linalg.norm(matrix, axis=1)
    query_norm = np.linalg.norm(query)
    denom = row_norms * query_norm
    dots = matrix @ query
    similarity = np.divide(dots, denom, out=np.zeros_like(dots), where=denom > 0)
    return 1.0 - similarity


class KnowledgeStore:
    """Persistence and similarity search for knowledge base entries."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dimension: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.dimension = dimension or settings.EMBEDDING_DIMENSION

    def _check_dimension(self, embedding: list[float]) -> None:
        if len(embedding) != self.dimension:
            raise EmbeddingDimensionError(self.dimension, len(embedding))

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def insert(
        self, entries: list[KnowledgeEntryCreate]
    ) -> list[KnowledgeBaseEntry]:
        """Insert entries in a single transaction."""
        for data in entries:
            if data.embedding is not None:
                self._check_dimension(data.embedding)

        async with self._session_factory() as session:
            rows = [
                KnowledgeBaseEntry(
                    content=data.content,
                    embedding=data.embedding,
                    source_type=str(data.source_type),
                    source_id=data.source_id,
                    source_url=data.source_url,
                    title=data.title,
                    tags=list(data.tags),
                    language=data.language,
                    metadata_=dict(data.metadata),
                )
                for data in entries
            ]
            session.add_all(rows)
            await session.commit()

        logger.info(
            f"Inserted {len(rows)} knowledge entries",
            extra={"context": {"count": len(rows)}},
        )
        return rows

    async def update_embedding(
        self, entry_id: uuid.UUID, embedding: list[float]
    ) -> KnowledgeBaseEntry:
        """Set the embedding of an existing entry.

        Raises:
            ResourceNotFoundError: If the entry does not exist.
        """
        self._check_dimension(embedding)
        async with self._session_factory() as session:
            entry = await session.get(KnowledgeBaseEntry, entry_id)
            if entry is None:
                raise ResourceNotFoundError("KnowledgeBaseEntry", entry_id)
            entry.embedding = embedding
            await session.commit()
            return entry

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get(self, entry_id: uuid.UUID) -> KnowledgeBaseEntry | None:
        async with self._session_factory() as session:
            return await session.get(KnowledgeBaseEntry, entry_id)

    async def find_by_source(
        self,
        source_type: str,
        source_id: str | None = None,
        limit: int = 50,
    ) -> list[KnowledgeBaseEntry]:
        """Entries of a source type (optionally one source document)."""
        stmt = select(KnowledgeBaseEntry).where(
            KnowledgeBaseEntry.source_type == source_type
        )
        if source_id is not None:
            stmt = stmt.where(KnowledgeBaseEntry.source_id == source_id)
        stmt = stmt.order_by(KnowledgeBaseEntry.created_at.desc()).limit(limit)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def find_unembedded(self, limit: int = 100) -> list[KnowledgeBaseEntry]:
        """Entries still waiting for an embedding, oldest first."""
        stmt = (
            select(KnowledgeBaseEntry)
            .where(KnowledgeBaseEntry.embedding.is_(None))
            .order_by(KnowledgeBaseEntry.created_at, KnowledgeBaseEntry.id)
            .limit(limit)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def get_statistics(self) -> KnowledgeStatistics:
        async with self._session_factory() as session:
            total = await session.scalar(
                select(func.count()).select_from(KnowledgeBaseEntry)
            )
            with_embeddings = await session.scalar(
                select(func.count())
                .select_from(KnowledgeBaseEntry)
                .where(KnowledgeBaseEntry.embedding.is_not(None))
            )
            by_type = await session.execute(
                select(KnowledgeBaseEntry.source_type, func.count()).group_by(
                    KnowledgeBaseEntry.source_type
                )
            )
            return KnowledgeStatistics(
                total=total or 0,
                by_source_type={row[0]: row[1] for row in by_type.all()},
                with_embeddings=with_embeddings or 0,
            )

    # -------------------------------------------------------------------------
    # Similarity search
    # -------------------------------------------------------------------------

    async def similarity_search(
        self,
        embedding: list[float],
        limit: int,
        source_type: str | None = None,
        tags: list[str] | None = None,
        owner_id: uuid.UUID | str | None = None,
    ) -> list[KnowledgeSearchHit]:
        """Nearest entries by cosine distance.

        Results are ordered by ascending distance, ties broken by entry id.
        Entries without an embedding are never returned.

        Args:
            embedding: Query embedding
            limit: Maximum number of hits
            source_type: Restrict to one source type
            tags: Restrict to entries carrying any of these tags
            owner_id: Restrict to entries whose ``user_id`` metadata matches
        """
        self._check_dimension(embedding)
        if limit <= 0:
            return []

        stmt = select(KnowledgeBaseEntry).where(KnowledgeBaseEntry.embedding.is_not(None))
        if source_type is not None:
            stmt = stmt.where(KnowledgeBaseEntry.source_type == source_type)
        if owner_id is not None:
            stmt = stmt.where(
                KnowledgeBaseEntry.metadata_["user_id"].as_string() == str(owner_id)
            )

        async with self._session_factory() as session:
            if session.bind.dialect.name == "postgresql":
                hits = await self._pgvector_search(session, stmt, embedding, limit, tags)
            else:
                hits = await self._scan_search(session, stmt, embedding, limit, tags)

        logger.debug(
            f"Similarity search returned {len(hits)} hits",
            extra={
                "context": {
                    "limit": limit,
                    "source_type": source_type,
                    "tags": tags,
                    "owner_scoped": owner_id is not None,
                }
            },
        )
        return hits

    @staticmethod
    def _with_tags(stmt: Select, tags: list[str] | None) -> Select:
        if not tags:
            return stmt
        return stmt.where(
            type_coerce(KnowledgeBaseEntry.tags, JSONB).has_any(array(tags))
        )

    async def _pgvector_search(
        self,
        session: AsyncSession,
        stmt: Select,
        embedding: list[float],
        limit: int,
        tags: list[str] | None,
    ) -> list[KnowledgeSearchHit]:
        distance = KnowledgeBaseEntry.embedding.cosine_distance(embedding)
        stmt = (
            self._with_tags(stmt, tags)
            .add_columns(distance.label("distance"))
            .order_by(distance, KnowledgeBaseEntry.id)
            .limit(limit)
        )
        result = await session.execute(stmt)
        return [
            KnowledgeSearchHit(entry=entry, distance=float(dist))
            for entry, dist in result.all()
        ]

    async def _scan_search(
        self,
        session: AsyncSession,
        stmt: Select,
        embedding: list[float],
        limit: int,
        tags: list[str] | None,
    ) -> list[KnowledgeSearchHit]:
        result = await session.execute(stmt)
        candidates = [
            e
            for e in result.scalars().all()
            if len(e.embedding) == self.dimension and (not tags or _has_any_tag(e, tags))
        ]
        if not candidates:
            return []

        matrix = np.asarray([e.embedding for e in candidates], dtype=np.float64)
        query = np.asarray(embedding, dtype=np.float64)
        distances = cosine_distances(matrix, query)

        ranked = sorted(
            zip(candidates, distances.tolist(), strict=True),
            key=lambda pair: (pair[1], str(pair[0].id)),
        )
        return [
            KnowledgeSearchHit(entry=entry, distance=dist)
            for entry, dist in ranked[:limit]
        ]


def _has_any_tag(entry: KnowledgeBaseEntry, tags: list[str]) -> bool:
    return bool(set(entry.tags or []) & set(tags))


__all__ = ["KnowledgeSearchHit", "KnowledgeStore", "cosine_distances"]
