"""Retrieval result cache.

Entries live under ``rag:search:<sha256>`` where the digest covers every
retrieval parameter (query, filters, top_k, threshold). Redis is used when
REDIS_URL is configured; otherwise results are kept in this process. Redis
errors are logged and treated as misses so retrieval never fails because
of the cache.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from juris.core.config import settings

logger = logging.getLogger(__name__)

RETRIEVAL_CACHE_PREFIX = "rag:search"


class RetrievalCache:
    """Serialized retrieval results with a TTL (seconds)."""

    def __init__(self, redis_url: str | None = None, ttl: int | None = None) -> None:
        self.ttl = settings.RAG_CACHE_TTL_SECONDS if ttl is None else ttl
        self._redis: Redis | None = None
        self._local: dict[str, tuple[float, dict[str, Any]]] = {}

        if redis_url:
            try:
                self._redis = Redis.from_url(redis_url, decode_responses=True)
            except ValueError as e:
                logger.warning(f"Invalid REDIS_URL, caching in process: {e}")

        logger.info(
            "Retrieval cache ready",
            extra={"context": {"backend": self.backend, "ttl": self.ttl}},
        )

    @property
    def backend(self) -> str:
        return "redis" if self._redis is not None else "memory"

    @staticmethod
    def make_key(**params: Any) -> str:
        canonical = json.dumps(params, sort_keys=True, default=str, ensure_ascii=False)
        return f"{RETRIEVAL_CACHE_PREFIX}:{hashlib.sha256(canonical.encode()).hexdigest()}"

    async def get(self, key: str) -> dict[str, Any] | None:
        if self._redis is None:
            expires_at, value = self._local.get(key, (0.0, None))
            if value is not None and time.monotonic() < expires_at:
                return value
            self._local.pop(key, None)
            return None

        try:
            raw = await self._redis.get(key)
        except RedisError as e:
            logger.warning(f"Retrieval cache read failed: {e}")
            return None
        return json.loads(raw) if raw else None

    async def set(self, key: str, value: dict[str, Any]) -> bool:
        if self._redis is None:
            self._local[key] = (time.monotonic() + self.ttl, value)
            return True

        payload = json.dumps(value, default=str, ensure_ascii=False)
        try:
            await self._redis.set(key, payload, ex=max(self.ttl, 1))
        except RedisError as e:
            logger.warning(f"Retrieval cache write failed: {e}")
            return False
        return True

    async def clear(self) -> int:
        """Forget every cached result; called when the knowledge base changes."""
        if self._redis is None:
            dropped = len(self._local)
            self._local.clear()
            return dropped

        try:
            keys = [key async for key in self._redis.scan_iter(f"{RETRIEVAL_CACHE_PREFIX}:*")]
            if keys:
                await self._redis.delete(*keys)
        except RedisError as e:
            logger.warning(f"Retrieval cache clear failed: {e}")
            return 0
        return len(keys)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()


_shared_cache: RetrievalCache | None = None


def get_retrieval_cache() -> RetrievalCache:
    """Process-wide cache configured from REDIS_URL."""
    global _shared_cache
    if _shared_cache is None:
        _shared_cache = RetrievalCache(
            redis_url=str(settings.REDIS_URL) if settings.REDIS_URL else None
        )
    return _shared_cache


__all__ = ["RETRIEVAL_CACHE_PREFIX", "RetrievalCache", "get_retrieval_cache"]
