"""Background embedding of pending knowledge entries.

Entries inserted without an embedding are picked up by an interval job
running on APScheduler's AsyncIOScheduler, embedded in batches and
written back one by one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from juris.core.config import settings
from juris.core.exceptions import AppError
from juris.services.knowledge.store import KnowledgeStore
from juris.services.providers.base import EmbeddingProvider
from juris.services.providers.retry import RetryPolicy, call_with_retry
from juris.services.rag.cache import RetrievalCache

logger = logging.getLogger(__name__)

BACKFILL_JOB_ID = "knowledge-embedding-backfill"


@dataclass
class BackfillResult:
    """Outcome of one backfill pass."""

    embedded: int = 0
    failed: int = 0


class EmbeddingBackfillJob:
    """Embeds knowledge entries that are still missing an embedding."""

    def __init__(
        self,
        store: KnowledgeStore,
        embedder: EmbeddingProvider,
        batch_size: int | None = None,
        retry_policy: RetryPolicy | None = None,
        cache: RetrievalCache | None = None,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.cache = cache
        self.batch_size = batch_size or settings.EMBEDDING_BACKFILL_BATCH_SIZE
        self.retry_policy = retry_policy or RetryPolicy.from_settings()

    async def run_once(self) -> BackfillResult:
        """Embed one batch of pending entries."""
        result = BackfillResult()
        pending = await self.store.find_unembedded(limit=self.batch_size)
        if not pending:
            return result

        texts = [entry.content for entry in pending]
        try:
            embeddings = await call_with_retry(
                lambda: self.embedder.embed_batch(texts),
                self.retry_policy,
                operation_name="embedding backfill",
            )
        except AppError as e:
            logger.error(
                f"Embedding backfill batch failed: {e}",
                extra={"context": {"pending": len(pending)}},
            )
            result.failed = len(pending)
            return result

        for entry, embedding in zip(pending, embeddings, strict=True):
            try:
                await self.store.update_embedding(entry.id, embedding)
                result.embedded += 1
            except AppError as e:
                logger.warning(f"Could not store embedding for {entry.id}: {e}")
                result.failed += 1

        if result.embedded and self.cache is not None:
            await self.cache.clear()

        logger.info(
            f"Embedding backfill embedded {result.embedded} entries",
            extra={"context": {"embedded": result.embedded, "failed": result.failed}},
        )
        return result


class EmbeddingBackfillScheduler:
    """AsyncIOScheduler wrapper that runs the backfill job on an interval."""

    def __init__(
        self,
        job: EmbeddingBackfillJob,
        interval_seconds: int | None = None,
        timezone: str | None = None,
    ) -> None:
        self.job = job
        self.interval_seconds = (
            interval_seconds or settings.EMBEDDING_BACKFILL_INTERVAL_SECONDS
        )
        self.scheduler = AsyncIOScheduler(
            timezone=timezone or settings.SCHEDULER_TIMEZONE,
            job_defaults={"coalesce": True, "max_instances": 1},
        )
        self.is_running = False

    async def start(self) -> None:
        """Register the interval job and start the scheduler."""
        if self.is_running:
            return
        self.scheduler.add_job(
            self.job.run_once,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=BACKFILL_JOB_ID,
            name="Knowledge embedding backfill",
            replace_existing=True,
        )
        self.scheduler.start()
        self.is_running = True
        logger.info(
            f"Embedding backfill scheduled every {self.interval_seconds}s",
        )

    async def shutdown(self, wait: bool = False) -> None:
        if self.is_running:
            self.scheduler.shutdown(wait=wait)
            self.is_running = False
            logger.info("Embedding backfill scheduler shutdown")


__all__ = [
    "BACKFILL_JOB_ID",
    "BackfillResult",
    "EmbeddingBackfillJob",
    "EmbeddingBackfillScheduler",
]
