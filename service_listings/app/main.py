"""
Listings service for the Eventboard Listings Layer.
"""

from typing import Any, Dict, Optional

from fastapi import Body, Request

from shared.base_service import BaseService
from shared.circuit_breaker import CircuitBreaker
from shared.config import ServiceConfig

from .cache.redis_cache import CacheService
from .finder.entities import BLOGS, FEEDBACK, JOBS, EntityDefinition, get_entity
from .finder.finder import CachedFinder
from .finder.keys import CacheKeyDeriver
from .store.base import DocumentStore
from .store.memory import MemoryDocumentStore
from .writers import ListingWriter


def query_params_to_dict(request: Request) -> Dict[str, Any]:
    """Flatten query parameters; repeated keys become lists."""
    params: Dict[str, Any] = {}
    for name, value in request.query_params.multi_items():
        if name in params:
            existing = params[name]
            params[name] = (existing if isinstance(existing, list) else [existing]) + [value]
        else:
            params[name] = value
    return params


class ListingsService(BaseService):
    """Listings service implementation."""

    # Redis is fail-open; only the store decides health
    required_dependencies = ("store",)

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        cache: Optional[CacheService] = None,
        store: Optional[DocumentStore] = None
    ):
        super().__init__("listings", 8020, config=config)

        self.cache = cache or CacheService(
            self.config.redis_url,
            enabled=self.config.cache_enabled,
            default_ttl=self.config.cache_ttl_seconds,
            breaker=CircuitBreaker(
                failure_threshold=self.config.cache_breaker_failure_threshold,
                recovery_timeout=self.config.cache_breaker_recovery_seconds,
                name="redis"
            )
        )
        self.store = store or MemoryDocumentStore()
        self.finder = CachedFinder(
            self.cache,
            self.store,
            ttl_seconds=self.config.cache_ttl_seconds,
            keys=CacheKeyDeriver(self.config.cache_namespace),
            metrics=self.metrics
        )
        self.writer = ListingWriter(self.store, self.finder)

        self._setup_listings_routes()

    def _setup_listings_routes(self):
        """Set up listings-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "listings",
                "message": "Eventboard Listings Layer - Listings Service",
                "version": "1.0.0",
                "capabilities": ["finder", "caching", "invalidation"]
            }

        for path, entity in (("/jobs", JOBS), ("/blogs", BLOGS), ("/feedback", FEEDBACK)):
            self._setup_entity_routes(path, entity)

        @self.app.post("/cache/invalidate/{entity_name}")
        async def invalidate_cache(entity_name: str):
            """Drop every cached page of one entity."""
            entity = get_entity(entity_name)
            removed = await self.finder.invalidate(entity)
            return {"entity": entity.name, "removed": removed}

        @self.app.get("/cache/stats")
        async def cache_stats():
            """Get cache statistics."""
            stats = await self.cache.get_stats()
            stats["pending_writes"] = self.finder.pending_writes
            return stats

    def _setup_entity_routes(self, path: str, entity: EntityDefinition):
        """Register list, read and write routes for one entity."""

        @self.app.get(path, name=f"list_{entity.name}")
        async def list_records(request: Request):
            envelope = await self.finder.execute(entity, query_params_to_dict(request))
            return envelope.to_dict()

        @self.app.get(f"{path}/{{document_id}}", name=f"get_{entity.name}")
        async def get_record(document_id: str):
            return await self.writer.get(entity, document_id)

        @self.app.post(path, status_code=201, name=f"create_{entity.name}")
        async def create_record(payload: Dict[str, Any] = Body(...)):
            return await self.writer.create(entity, payload)

        @self.app.patch(f"{path}/{{document_id}}", name=f"update_{entity.name}")
        async def update_record(document_id: str, changes: Dict[str, Any] = Body(...)):
            return await self.writer.update(entity, document_id, changes)

        @self.app.delete(f"{path}/{{document_id}}", name=f"delete_{entity.name}")
        async def delete_record(document_id: str):
            await self.writer.delete(entity, document_id)
            return {"success": True, "id": document_id}

    async def _check_dependencies(self):
        """Check listings service dependencies."""
        dependencies = {}

        if not self.cache.enabled:
            dependencies["redis"] = "disabled"
        elif await self.cache.health_check():
            dependencies["redis"] = "ok"
        else:
            dependencies["redis"] = "error"

        try:
            dependencies["store"] = "ok" if await self.store.health_check() else "error"
        except Exception:
            dependencies["store"] = "error"

        return dependencies

    async def start(self):
        """Start listings service components."""
        await self.cache.start()
        self.logger.info("Listings service started", cache_enabled=self.cache.enabled)

    async def stop(self):
        """Stop listings service components."""
        await self.finder.drain()
        await self.cache.stop()
        self.logger.info("Listings service stopped")


def create_app(**kwargs):
    """Create listings service application."""
    service = ListingsService(**kwargs)
    return service.app


if __name__ == "__main__":
    service = ListingsService()
    service.run()
