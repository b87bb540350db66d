"""Tests for the knowledge store, chunking, ingestion and embedding backfill."""

import uuid

import numpy as np
import pytest

from juris.core.exceptions import EmbeddingDimensionError, ResourceNotFoundError
from juris.models.enums import SourceType
from juris.schemas.knowledge import KnowledgeEntryCreate, KnowledgeIngest
from juris.services.knowledge.backfill import (
    BACKFILL_JOB_ID,
    EmbeddingBackfillJob,
    EmbeddingBackfillScheduler,
)
from juris.services.knowledge.ingestion import KnowledgeIngestionService, chunk_text
from juris.services.knowledge.store import cosine_distances
from juris.services.providers.retry import RetryPolicy
from juris.services.rag.cache import RetrievalCache


def unit(index: int, dimension: int = 8) -> list[float]:
    vector = [0.0] * dimension
    vector[index] = 1.0
    return vector


def entry(content: str, embedding: list[float] | None, **fields) -> KnowledgeEntryCreate:
    return KnowledgeEntryCreate(content=content, embedding=embedding, **fields)


class TestCosineDistances:
    def test_identical_orthogonal_and_opposite(self) -> None:
        matrix = np.array([[1.0, 0.0], [0.0, 1.0], [-1.0, 0.0]])
        distances = cosine_distances(matrix, np.array([1.0, 0.0]))

        assert distances.tolist() == pytest.approx([0.0, 1.0, 2.0])

    def test_zero_vector_has_distance_one(self) -> None:
        distances = cosine_distances(np.array([[0.0, 0.0]]), np.array([1.0, 0.0]))
        assert distances.tolist() == [1.0]


class TestKnowledgeStore:
    async def test_similarity_search_orders_by_distance(self, knowledge_store) -> None:
        await knowledge_store.insert(
            [
                entry("far", unit(1), source_type=SourceType.LEGISLATION),
                entry("near", [0.8, 0.6, 0, 0, 0, 0, 0, 0], source_type=SourceType.LEGISLATION),
                entry("exact", unit(0), source_type=SourceType.LEGISLATION),
            ]
        )

        hits = await knowledge_store.similarity_search(unit(0), limit=5)

        assert [h.entry.content for h in hits] == ["exact", "near", "far"]
        distances = [h.distance for h in hits]
        assert distances == sorted(distances)
        assert distances[0] == pytest.approx(0.0)
        assert distances[1] == pytest.approx(0.2)

    async def test_similarity_search_respects_limit(self, knowledge_store) -> None:
        await knowledge_store.insert(
            [entry(f"chunk {i}", unit(i % 8)) for i in range(6)]
        )

        hits = await knowledge_store.similarity_search(unit(0), limit=2)

        assert len(hits) == 2

    async def test_pending_entries_are_never_returned(self, knowledge_store) -> None:
        await knowledge_store.insert(
            [entry("embedded", unit(0)), entry("pending", None)]
        )

        hits = await knowledge_store.similarity_search(unit(0), limit=10)

        assert [h.entry.content for h in hits] == ["embedded"]

    async def test_filters_by_source_type_and_tags(self, knowledge_store) -> None:
        await knowledge_store.insert(
            [
                entry("CLT art. 7", unit(0), source_type=SourceType.LEGISLATION, tags=["CLT"]),
                entry("CPC art. 219", unit(0), source_type=SourceType.LEGISLATION, tags=["CPC"]),
                entry("REsp 123", unit(0), source_type=SourceType.JURISPRUDENCE, tags=["STJ"]),
            ]
        )

        legislation = await knowledge_store.similarity_search(
            unit(0), limit=10, source_type="legislation"
        )
        clt_only = await knowledge_store.similarity_search(
            unit(0), limit=10, source_type="legislation", tags=["CLT"]
        )

        assert {h.entry.content for h in legislation} == {"CLT art. 7", "CPC art. 219"}
        assert [h.entry.content for h in clt_only] == ["CLT art. 7"]

    async def test_owner_filter_applies_before_the_limit(self, knowledge_store) -> None:
        owner = uuid.uuid4()
        await knowledge_store.insert(
            [
                entry(
                    "alheio",
                    unit(0),
                    source_type=SourceType.DOCUMENT,
                    metadata={"user_id": str(uuid.uuid4())},
                ),
                entry(
                    "próprio",
                    [0.6, 0.8, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0],
                    source_type=SourceType.DOCUMENT,
                    metadata={"user_id": str(owner)},
                ),
                entry("sem dono", unit(0), source_type=SourceType.DOCUMENT),
            ]
        )

        hits = await knowledge_store.similarity_search(unit(0), limit=1, owner_id=owner)

        assert [h.entry.content for h in hits] == ["próprio"]

    async def test_equal_distances_break_ties_by_id(self, knowledge_store) -> None:
        rows = await knowledge_store.insert(
            [entry(f"twin {i}", unit(0)) for i in range(4)]
        )

        hits = await knowledge_store.similarity_search(unit(0), limit=4)

        assert [str(h.entry.id) for h in hits] == sorted(str(r.id) for r in rows)

    async def test_rejects_wrong_dimension(self, knowledge_store) -> None:
        with pytest.raises(EmbeddingDimensionError):
            await knowledge_store.insert([entry("short", [1.0, 0.0, 0.0])])
        with pytest.raises(EmbeddingDimensionError):
            await knowledge_store.similarity_search([1.0, 0.0], limit=3)

    async def test_zero_limit_returns_nothing(self, knowledge_store) -> None:
        await knowledge_store.insert([entry("x", unit(0))])
        assert await knowledge_store.similarity_search(unit(0), limit=0) == []

    async def test_update_embedding(self, knowledge_store) -> None:
        [row] = await knowledge_store.insert([entry("pending", None)])

        await knowledge_store.update_embedding(row.id, unit(3))

        stored = await knowledge_store.get(row.id)
        assert stored.embedding == unit(3)

    async def test_update_embedding_of_missing_entry(self, knowledge_store) -> None:
        with pytest.raises(ResourceNotFoundError):
            await knowledge_store.update_embedding(uuid.uuid4(), unit(0))

    async def test_find_by_source(self, knowledge_store) -> None:
        await knowledge_store.insert(
            [
                entry("a", unit(0), source_type=SourceType.DOCUMENT, source_id="doc-1"),
                entry("b", unit(0), source_type=SourceType.DOCUMENT, source_id="doc-2"),
            ]
        )

        rows = await knowledge_store.find_by_source("document", source_id="doc-1")

        assert [r.content for r in rows] == ["a"]

    async def test_statistics(self, knowledge_store) -> None:
        await knowledge_store.insert(
            [
                entry("a", unit(0), source_type=SourceType.LEGISLATION),
                entry("b", None, source_type=SourceType.LEGISLATION),
                entry("c", unit(1), source_type=SourceType.DOCTRINE),
            ]
        )

        stats = await knowledge_store.get_statistics()

        assert stats.total == 3
        assert stats.with_embeddings == 2
        assert stats.pending_embeddings == 1
        assert stats.by_source_type == {"legislation": 2, "doctrine": 1}


class TestChunking:
    def test_windows_overlap(self) -> None:
        chunks = chunk_text("a b c d e f g", chunk_size=3, overlap=1)
        assert chunks == ["a b c", "c d e", "e f g"]

    def test_last_window_ends_at_last_word(self) -> None:
        chunks = chunk_text("a b c d e f", chunk_size=4, overlap=1)
        assert chunks == ["a b c d", "d e f"]

    def test_short_text_is_one_chunk(self) -> None:
        assert chunk_text("  prazo   de  contestação ", 10, 2) == ["prazo de contestação"]

    def test_empty_text(self) -> None:
        assert chunk_text("   ", 10, 2) == []

    def test_overlap_must_be_smaller_than_size(self) -> None:
        with pytest.raises(ValueError):
            chunk_text("a b c", chunk_size=2, overlap=2)


class TestIngestion:
    async def test_ingest_chunks_and_embeds(self, knowledge_store, embedder) -> None:
        service = KnowledgeIngestionService(
            knowledge_store,
            embedder,
            chunk_size=3,
            chunk_overlap=1,
            retry_policy=RetryPolicy(max_retries=0, timeout_seconds=1),
        )
        owner = str(uuid.uuid4())

        created = await service.ingest(
            KnowledgeIngest(
                content="a b c d e f g",
                source_type=SourceType.DOCUMENT,
                source_id="contrato-1",
                title="Contrato de Locação",
                tags=["folder:42"],
                metadata={"user_id": owner},
            )
        )

        assert created == 3
        rows = await knowledge_store.find_by_source("document", source_id="contrato-1")
        assert len(rows) == 3
        assert all(r.has_embedding for r in rows)
        assert sorted(r.metadata_["chunk_index"] for r in rows) == [0, 1, 2]
        assert all(r.metadata_["total_chunks"] == 3 for r in rows)
        assert all(r.metadata_["user_id"] == owner for r in rows)
        assert embedder.calls == ["a b c", "c d e", "e f g"]

    async def test_ingest_unembedded_skips_the_provider(
        self, knowledge_store, embedder
    ) -> None:
        service = KnowledgeIngestionService(knowledge_store, embedder, chunk_size=3, chunk_overlap=1)

        assert await service.ingest_unembedded(KnowledgeIngest(content="súmula 331 TST")) == 1

        assert embedder.calls == []
        assert len(await knowledge_store.find_unembedded()) == 1

    async def test_ingest_invalidates_cached_retrievals(self, knowledge_store, embedder) -> None:
        cache = RetrievalCache()
        key = RetrievalCache.make_key(query="prescrição", top_k=5)
        await cache.set(key, {"sources": []})
        service = KnowledgeIngestionService(
            knowledge_store, embedder, chunk_size=3, chunk_overlap=1, cache=cache
        )

        await service.ingest(KnowledgeIngest(content="prescrição quinquenal trabalhista"))

        assert await cache.get(key) is None


class TestEmbeddingBackfill:
    async def test_run_once_embeds_pending_entries(self, knowledge_store, embedder) -> None:
        service = KnowledgeIngestionService(knowledge_store, embedder, chunk_size=3, chunk_overlap=0)
        queued = await service.ingest_unembedded(
            KnowledgeIngest(content="um dois três quatro cinco seis sete")
        )
        assert queued == 3
        assert len(await knowledge_store.find_unembedded()) == 3

        job = EmbeddingBackfillJob(
            knowledge_store,
            embedder,
            batch_size=2,
            retry_policy=RetryPolicy(max_retries=0, timeout_seconds=1),
        )
        first = await job.run_once()
        second = await job.run_once()
        third = await job.run_once()

        assert (first.embedded, second.embedded, third.embedded) == (2, 1, 0)
        assert await knowledge_store.find_unembedded() == []
        stats = await knowledge_store.get_statistics()
        assert stats.with_embeddings == 3

    async def test_provider_failure_leaves_entries_pending(
        self, knowledge_store, embedder
    ) -> None:
        await knowledge_store.insert([entry("pending", None)])

        async def broken(texts):
            raise ConnectionError("embedding endpoint unreachable")

        embedder.embed_batch = broken
        job = EmbeddingBackfillJob(
            knowledge_store,
            embedder,
            retry_policy=RetryPolicy(max_retries=0, timeout_seconds=1),
        )

        result = await job.run_once()

        assert result.embedded == 0
        assert result.failed == 1
        assert len(await knowledge_store.find_unembedded()) == 1

    async def test_scheduler_registers_interval_job(self, knowledge_store, embedder) -> None:
        scheduler = EmbeddingBackfillScheduler(
            EmbeddingBackfillJob(knowledge_store, embedder),
            interval_seconds=60,
            timezone="UTC",
        )

        await scheduler.start()
        try:
            assert scheduler.is_running
            assert scheduler.scheduler.get_job(BACKFILL_JOB_ID) is not None
        finally:
            await scheduler.shutdown()

        assert not scheduler.is_running
