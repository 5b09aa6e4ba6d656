"""Document store contract consumed by the listings finder and writers."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

# Mongo-style filter document, e.g. {"status": "published", "tags": {"$all": ["a"]}}
Predicate = Dict[str, Any]

# Ordered (field, direction) pairs; direction is 1 (ascending) or -1 (descending)
SortSpec = Tuple[Tuple[str, int], ...]


class DocumentStore(ABC):
    """Abstract base class for document stores.

    Implementations answer predicate-filtered, sorted, paginated queries and
    exact counts. Errors are raised as ``shared.errors.StoreError``.
    """

    @abstractmethod
    async def find(
        self,
        collection: str,
        predicate: Predicate,
        sort: SortSpec,
        skip: int = 0,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Return the documents matching ``predicate`` in ``sort`` order.

        Args:
            collection: Collection name.
            predicate: Filter document.
            sort: Fully specified ordering.
            skip: Number of matching documents to skip.
            limit: Maximum number of documents to return.
        """
        ...

    @abstractmethod
    async def count(self, collection: str, predicate: Predicate) -> int:
        """Return the exact number of documents matching ``predicate``."""
        ...

    @abstractmethod
    async def get(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        """Return a single document by ``_id``, or None."""
        ...

    @abstractmethod
    async def insert(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a document and return it as stored."""
        ...

    @abstractmethod
    async def update(
        self,
        collection: str,
        document_id: str,
        changes: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """Apply ``changes`` to a document; return the updated document or None."""
        ...

    @abstractmethod
    async def delete(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        """Delete a document; return the removed document or None."""
        ...

    async def health_check(self) -> bool:
        """Check store health."""
        return True
