"""
Cached, filtered, paginated list queries.
"""

import asyncio
import copy
from typing import Any, Dict, Mapping, Optional, Set, Union

from shared.errors import QueryFailedError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..cache.redis_cache import CacheService
from ..store.base import DocumentStore
from .entities import EntityDefinition, get_entity
from .keys import CacheKeyDeriver
from .models import ListRequest, PageEnvelope

EntityRef = Union[EntityDefinition, str]


class CachedFinder:
    """Answer list requests cache-aside.

    Reads derive a key, try the cache, and on a miss query the store for the
    page slice and the total concurrently. The resulting envelope is written
    back by a background task so the response never waits on Redis. Writers
    call ``invalidate`` after their store mutation commits.

    Concurrent misses for the same key each hit the store (no request
    coalescing), and a read that started before a write may repopulate the
    cache after that write's invalidation; ``ttl_seconds`` bounds how long
    such a stale page can live.
    """

    def __init__(
        self,
        cache: CacheService,
        store: DocumentStore,
        *,
        ttl_seconds: int = 300,
        keys: Optional[CacheKeyDeriver] = None,
        metrics: Optional[MetricsCollector] = None
    ):
        self.cache = cache
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.keys = keys or CacheKeyDeriver()
        self.metrics = metrics or MetricsCollector("listings")
        self.logger = get_logger("listings.finder")
        self._pending_writes: Set[asyncio.Task] = set()

    @property
    def pending_writes(self) -> int:
        return len(self._pending_writes)

    async def execute(self, entity: EntityRef, params: Mapping[str, Any]) -> PageEnvelope:
        """Return one page of ``entity`` records for a raw parameter bag."""
        entity = self._resolve(entity)
        request = entity.parse(params)
        key = self.keys.derive(entity, request)

        cached = await self.cache.get(key)
        if cached is not None:
            try:
                envelope = PageEnvelope.from_dict(cached)
            except ValueError as e:
                self.logger.warning("Ignoring malformed cached page", key=key, error=str(e))
            else:
                self._count("cache_hits_total", entity)
                self.logger.debug("List cache hit", entity=entity.name, key=key)
                return envelope

        self._count("cache_misses_total", entity)
        envelope = await self._query_store(entity, request)
        self._schedule_cache_write(key, envelope)
        return envelope

    async def invalidate(self, entity: EntityRef) -> int:
        """Drop every cached page for ``entity``; return the number of keys removed."""
        entity = self._resolve(entity)
        removed = await self.cache.delete_by_prefix(self.keys.prefix(entity))
        self._count("cache_invalidations_total", entity)
        self.logger.info("List cache invalidated", entity=entity.name, removed=removed)
        return removed

    async def drain(self):
        """Wait for background cache writes still in flight."""
        if self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    async def _query_store(self, entity: EntityDefinition, request: ListRequest) -> PageEnvelope:
        predicate = entity.build_predicate(request.filters)
        sort = entity.sorts.resolve(request.sort_token, request.order)

        # Slice and count are independent reads; under concurrent writes the
        # total may disagree with the rows returned
        with self.metrics.time_operation("store_query_duration_seconds", entity=entity.name):
            data, total = await asyncio.gather(
                self.store.find(entity.collection, predicate, sort, skip=request.skip, limit=request.limit),
                self.store.count(entity.collection, predicate),
                return_exceptions=True,
            )

        # A cancelled child comes back as CancelledError, which is not an Exception
        for result in (data, total):
            if isinstance(result, BaseException):
                self.logger.error(
                    "Store query failed",
                    entity=entity.name,
                    page=request.page,
                    limit=request.limit,
                    error=str(result)
                )
                raise QueryFailedError(entity.name, {"error_type": type(result).__name__}) from result

        self.logger.debug(
            "List served from store",
            entity=entity.name,
            page=request.page,
            total=total
        )
        return PageEnvelope.build(list(data)[:request.limit], request.page, request.limit, total)

    def _schedule_cache_write(self, key: str, envelope: PageEnvelope):
        # Snapshot now: the caller owns the returned envelope and may mutate it
        payload = copy.deepcopy(envelope.to_dict())
        task = asyncio.create_task(self._write_cache(key, payload))
        self._pending_writes.add(task)
        task.add_done_callback(self._on_write_done)

    async def _write_cache(self, key: str, payload: Dict[str, Any]):
        if not await self.cache.set(key, payload, self.ttl_seconds):
            self.logger.debug("List page not cached", key=key)

    def _on_write_done(self, task: asyncio.Task):
        self._pending_writes.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.logger.error("Background cache write failed", error=str(error))

    def _resolve(self, entity: EntityRef) -> EntityDefinition:
        return get_entity(entity) if isinstance(entity, str) else entity

    def _count(self, metric: str, entity: EntityDefinition):
        self.metrics.increment_counter(metric, entity=entity.name)
