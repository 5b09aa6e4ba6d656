"""
Finder package for the Listings service.

Turns list requests for jobs, blogs and feedback into cached, filtered,
paginated store queries:

- entities: per-entity filter record, predicate builder, sorts and key fields
- filters / sorting: pure predicate and sort-spec builders
- keys: deterministic cache key derivation
- finder: the cache-aside orchestrator and invalidation entry point
"""

from .entities import BLOGS, ENTITIES, FEEDBACK, JOBS, EntityDefinition, get_entity
from .finder import CachedFinder
from .keys import CacheKeyDeriver
from .models import ListRequest, PageEnvelope, SortOrder

__all__ = [
    "BLOGS",
    "ENTITIES",
    "FEEDBACK",
    "JOBS",
    "CacheKeyDeriver",
    "CachedFinder",
    "EntityDefinition",
    "ListRequest",
    "PageEnvelope",
    "SortOrder",
    "get_entity",
]
