"""
Listing entity definitions.

An entity bundles everything the finder needs to answer a list request for
one collection: its filter record, predicate builder, sort tokens, paging
limits and the versioned list of fields that make up its cache keys.
"""

import dataclasses
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Tuple, Type

from shared.errors import ValidationError
from ..store.base import Predicate
from .filters import (
    BlogFilters,
    FeedbackFilters,
    JobFilters,
    build_blog_predicate,
    build_feedback_predicate,
    build_job_predicate,
)
from .models import ListRequest, SortOrder
from .params import coerce_enum, coerce_int, coerce_str, first_present
from .sorting import BLOG_SORTS, FEEDBACK_SORTS, JOB_SORTS, SortResolver


@dataclass(frozen=True)
class EntityDefinition:
    name: str
    collection: str
    filters_type: Type[Any]
    build_predicate: Callable[[Any], Predicate]
    sorts: SortResolver
    # Bump key_version whenever key_fields change
    key_fields: Tuple[str, ...]
    key_version: str = "v1"
    default_limit: int = 20
    max_limit: int = 100

    def __post_init__(self):
        declared = {f.name for f in dataclasses.fields(self.filters_type)}
        if len(set(self.key_fields)) != len(self.key_fields) or set(self.key_fields) != declared:
            raise ValueError(
                f"Cache key fields for '{self.name}' must list every filter field exactly once: "
                f"expected {sorted(declared)}, got {list(self.key_fields)}"
            )
        if not 1 <= self.default_limit <= self.max_limit:
            raise ValueError(f"Default limit for '{self.name}' must be within 1..{self.max_limit}")

    def parse(self, params: Mapping[str, Any]) -> ListRequest:
        """Normalise a raw parameter bag into a ListRequest."""
        page = coerce_int(params.get("page"))
        if page is None or page < 1:
            page = 1

        limit = coerce_int(params.get("limit"))
        if limit is None or limit < 1:
            limit = self.default_limit
        limit = min(limit, self.max_limit)

        sort_token = self.sorts.canonical_token(coerce_str(first_present(params, "sort", "sortBy")))
        order = coerce_enum(params.get("order"), SortOrder) or self.sorts.natural_order(sort_token)

        return ListRequest(
            page=page,
            limit=limit,
            sort_token=sort_token,
            order=order,
            filters=self.filters_type.from_params(params),
        )


JOBS = EntityDefinition(
    name="job",
    collection="jobs",
    filters_type=JobFilters,
    build_predicate=build_job_predicate,
    sorts=JOB_SORTS,
    key_fields=("keyword", "location", "tags", "employment_type", "is_remote", "status", "approval_status"),
)

BLOGS = EntityDefinition(
    name="blog",
    collection="blogs",
    filters_type=BlogFilters,
    build_predicate=build_blog_predicate,
    sorts=BLOG_SORTS,
    key_fields=("keyword", "tags", "author_id", "status"),
)

FEEDBACK = EntityDefinition(
    name="feedback",
    collection="feedback",
    filters_type=FeedbackFilters,
    build_predicate=build_feedback_predicate,
    sorts=FEEDBACK_SORTS,
    key_fields=("keyword", "type", "status", "priority", "user_id"),
)

ENTITIES: Dict[str, EntityDefinition] = {
    entity.name: entity for entity in (JOBS, BLOGS, FEEDBACK)
}

# Route segments are plural for jobs and blogs
_ALIASES = {"jobs": "job", "blogs": "blog"}


def get_entity(name: str) -> EntityDefinition:
    """Look up an entity by name or route alias."""
    entity = ENTITIES.get(_ALIASES.get(name, name))
    if entity is None:
        raise ValidationError(f"Unknown listing entity '{name}'", {"entity": name, "known": sorted(ENTITIES)})
    return entity
