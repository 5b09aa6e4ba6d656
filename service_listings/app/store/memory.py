"""
In-process document store.

Evaluates the Mongo-style predicates produced by the listings filter
builders. Used for local development and tests.
"""

import copy
import re
import uuid
from numbers import Number
from typing import Any, Dict, List, Optional

from shared.errors import StoreError
from shared.logging import get_logger
from .base import DocumentStore, Predicate, SortSpec

_MISSING = object()


def _resolve(document: Dict[str, Any], path: str) -> Any:
    """Resolve a dotted field path, returning _MISSING when absent."""
    value: Any = document
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _equals(value: Any, expected: Any) -> bool:
    if value is _MISSING:
        return expected is None
    if isinstance(value, list) and not isinstance(expected, list):
        return expected in value
    return value == expected


def _match_operator(value: Any, operator: str, argument: Any, options: str) -> bool:
    if operator == "$eq":
        return _equals(value, argument)
    if operator == "$ne":
        return not _equals(value, argument)
    if operator == "$in":
        if isinstance(value, list):
            return any(item in argument for item in value)
        return (None if value is _MISSING else value) in argument
    if operator == "$nin":
        return not _match_operator(value, "$in", argument, options)
    if operator == "$all":
        return isinstance(value, list) and all(item in value for item in argument)
    if operator == "$exists":
        return (value is not _MISSING) == bool(argument)
    if operator == "$regex":
        if not isinstance(value, str):
            return False
        flags = re.IGNORECASE if "i" in options else 0
        try:
            return re.search(argument, value, flags) is not None
        except re.error as e:
            raise StoreError("Malformed pattern in predicate", {"pattern": argument, "error": str(e)})
    if operator in ("$gt", "$gte", "$lt", "$lte"):
        if value is _MISSING or value is None:
            return False
        try:
            if operator == "$gt":
                return value > argument
            if operator == "$gte":
                return value >= argument
            if operator == "$lt":
                return value < argument
            return value <= argument
        except TypeError:
            return False
    raise StoreError("Unsupported predicate operator", {"operator": operator})


def _match_condition(value: Any, condition: Any) -> bool:
    if isinstance(condition, dict) and condition and all(key.startswith("$") for key in condition):
        options = condition.get("$options", "")
        return all(
            _match_operator(value, operator, argument, options)
            for operator, argument in condition.items()
            if operator != "$options"
        )
    return _equals(value, condition)


def matches(document: Dict[str, Any], predicate: Predicate) -> bool:
    """Check whether ``document`` satisfies ``predicate``."""
    for key, condition in predicate.items():
        if key == "$and":
            if not all(matches(document, sub) for sub in condition):
                return False
        elif key == "$or":
            if not any(matches(document, sub) for sub in condition):
                return False
        elif key.startswith("$"):
            raise StoreError("Unsupported predicate operator", {"operator": key})
        elif not _match_condition(_resolve(document, key), condition):
            return False
    return True


def _sort_value(value: Any):
    # Missing and null sort lowest, then numbers, then strings
    if value is _MISSING or value is None:
        return (0, 0)
    if isinstance(value, Number):
        return (1, value)
    if isinstance(value, str):
        return (2, value)
    return (3, str(value))


class MemoryDocumentStore(DocumentStore):
    """Dictionary-backed document store."""

    def __init__(self, collections: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.logger = get_logger("listings.store.memory")
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        for name, documents in (collections or {}).items():
            for document in documents:
                self._insert(name, document)

    def _collection(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(name, {})

    def _insert(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        stored = copy.deepcopy(document)
        stored.setdefault("_id", uuid.uuid4().hex)
        documents = self._collection(collection)
        if stored["_id"] in documents:
            raise StoreError("Duplicate document id", {"collection": collection, "id": stored["_id"]})
        documents[stored["_id"]] = stored
        return stored

    async def find(
        self,
        collection: str,
        predicate: Predicate,
        sort: SortSpec,
        skip: int = 0,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        matched = [
            document for document in self._collection(collection).values()
            if matches(document, predicate)
        ]

        # Stable multi-key sort: apply the least significant key first
        for field, direction in reversed(sort):
            matched.sort(key=lambda document: _sort_value(_resolve(document, field)), reverse=direction < 0)

        end = None if limit is None else skip + limit
        return [copy.deepcopy(document) for document in matched[skip:end]]

    async def count(self, collection: str, predicate: Predicate) -> int:
        return sum(1 for document in self._collection(collection).values() if matches(document, predicate))

    async def get(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        document = self._collection(collection).get(document_id)
        return copy.deepcopy(document) if document is not None else None

    async def insert(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        stored = self._insert(collection, document)
        self.logger.debug("Document inserted", collection=collection, document_id=stored["_id"])
        return copy.deepcopy(stored)

    async def update(
        self,
        collection: str,
        document_id: str,
        changes: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        document = self._collection(collection).get(document_id)
        if document is None:
            return None
        document.update(copy.deepcopy({k: v for k, v in changes.items() if k != "_id"}))
        return copy.deepcopy(document)

    async def delete(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        return self._collection(collection).pop(document_id, None)

    def document_count(self, collection: str) -> int:
        """Number of stored documents (testing utility)."""
        return len(self._collection(collection))
