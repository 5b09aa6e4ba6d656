"""
Write path for listings.

Every mutation commits to the store first and only then invalidates the
entity's cached pages, so a concurrent reader cannot refill the cache with
the pre-write state after the invalidation.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Tuple

from shared.errors import NotFoundError, ValidationError
from shared.logging import get_logger
from .finder.entities import EntityDefinition, get_entity
from .finder.finder import CachedFinder, EntityRef
from .store.base import DocumentStore

# Fields the writer manages itself
_PROTECTED_FIELDS = ("_id", "createdAt", "updatedAt")

_REQUIRED_FIELDS: Dict[str, Tuple[str, ...]] = {
    "job": ("title", "company"),
    "blog": ("title", "content"),
    "feedback": ("type", "subject", "message"),
}

_CREATE_DEFAULTS: Dict[str, Dict[str, Any]] = {
    "job": {"status": "draft", "isRemote": False, "tags": []},
    "blog": {"status": "draft", "tags": [], "views": 0},
    "feedback": {"status": "pending", "priority": "medium"},
}

# New jobs always wait for moderation
_FORCED_ON_CREATE: Dict[str, Dict[str, Any]] = {
    "job": {"approvalStatus": "pending"},
}


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class ListingWriter:
    """Create, update and delete listing documents."""

    def __init__(self, store: DocumentStore, finder: CachedFinder):
        self.store = store
        self.finder = finder
        self.logger = get_logger("listings.writer")

    async def get(self, entity: EntityRef, document_id: str) -> Dict[str, Any]:
        entity = self._resolve(entity)
        document = await self.store.get(entity.collection, document_id)
        if document is None:
            raise NotFoundError(entity.name, document_id)
        return document

    async def create(self, entity: EntityRef, payload: Mapping[str, Any]) -> Dict[str, Any]:
        entity = self._resolve(entity)
        missing = [name for name in _REQUIRED_FIELDS.get(entity.name, ()) if not payload.get(name)]
        if missing:
            raise ValidationError(f"Missing required fields for {entity.name}", {"missing": missing})

        now = _utcnow()
        document = dict(_CREATE_DEFAULTS.get(entity.name, {}))
        document.update(self._writable(payload))
        document.update(_FORCED_ON_CREATE.get(entity.name, {}))
        document["createdAt"] = now
        document["updatedAt"] = now
        if entity.name == "blog" and document.get("status") == "published":
            document.setdefault("publishedAt", now)

        stored = await self.store.insert(entity.collection, document)
        await self.finder.invalidate(entity)

        self.logger.info("Listing created", entity=entity.name, document_id=stored["_id"])
        return stored

    async def update(self, entity: EntityRef, document_id: str, changes: Mapping[str, Any]) -> Dict[str, Any]:
        entity = self._resolve(entity)
        existing = await self.get(entity, document_id)

        update = self._writable(changes)
        update["updatedAt"] = _utcnow()
        if entity.name == "blog" and update.get("status") == "published" and not existing.get("publishedAt"):
            update["publishedAt"] = update["updatedAt"]

        updated = await self.store.update(entity.collection, document_id, update)
        if updated is None:
            raise NotFoundError(entity.name, document_id)
        await self.finder.invalidate(entity)

        self.logger.info("Listing updated", entity=entity.name, document_id=document_id, fields=sorted(update))
        return updated

    async def delete(self, entity: EntityRef, document_id: str) -> Dict[str, Any]:
        entity = self._resolve(entity)
        removed = await self.store.delete(entity.collection, document_id)
        if removed is None:
            raise NotFoundError(entity.name, document_id)
        await self.finder.invalidate(entity)

        self.logger.info("Listing deleted", entity=entity.name, document_id=document_id)
        return removed

    @staticmethod
    def _writable(payload: Mapping[str, Any]) -> Dict[str, Any]:
        return {key: value for key, value in payload.items() if key not in _PROTECTED_FIELDS}

    @staticmethod
    def _resolve(entity: EntityRef) -> EntityDefinition:
        return get_entity(entity) if isinstance(entity, str) else entity
