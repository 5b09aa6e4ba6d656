"""
Sort resolution for listing entities.
"""

from typing import Dict, Mapping, Optional, Tuple

from ..store.base import SortSpec
from .models import SortOrder

DEFAULT_SORT_TOKEN = "newest_first"
TIE_BREAK_FIELD = "_id"


class SortResolver:
    """Map a closed set of sort tokens to store sort specifications.

    Unknown or absent tokens resolve to ``newest_first`` instead of failing.
    Every resolved spec ends with ``_id`` in the primary field's direction so
    rows sharing a primary value keep a stable order across pages.
    """

    def __init__(self, tokens: Mapping[str, Tuple[str, int]], default_token: str = DEFAULT_SORT_TOKEN):
        if default_token not in tokens:
            raise ValueError(f"Default sort token '{default_token}' is not in the token set")
        self._tokens: Dict[str, Tuple[str, int]] = dict(tokens)
        self.default_token = default_token

    @property
    def tokens(self) -> Tuple[str, ...]:
        return tuple(self._tokens)

    def canonical_token(self, token: Optional[str]) -> str:
        """Return ``token`` if it is recognised, otherwise the default."""
        if token and token in self._tokens:
            return token
        return self.default_token

    def natural_order(self, token: Optional[str]) -> SortOrder:
        """Direction a token sorts in when no explicit order is given."""
        _, direction = self._tokens[self.canonical_token(token)]
        return SortOrder.ASC if direction > 0 else SortOrder.DESC

    def resolve(self, token: Optional[str], order: Optional[SortOrder] = None) -> SortSpec:
        """Resolve a token (and optional direction override) to a sort spec."""
        field_name, direction = self._tokens[self.canonical_token(token)]
        if order is not None:
            direction = order.direction
        if field_name == TIE_BREAK_FIELD:
            return ((field_name, direction),)
        return ((field_name, direction), (TIE_BREAK_FIELD, direction))


JOB_SORTS = SortResolver({
    "newest_first": ("createdAt", -1),
    "oldest_first": ("createdAt", 1),
    "salary_high_to_low": ("salaryRange.max", -1),
    "salary_low_to_high": ("salaryRange.max", 1),
    "company_a_to_z": ("company", 1),
    "company_z_to_a": ("company", -1),
    "title_a_to_z": ("title", 1),
    "title_z_to_a": ("title", -1),
})

BLOG_SORTS = SortResolver({
    "newest_first": ("createdAt", -1),
    "oldest_first": ("createdAt", 1),
    "recently_published": ("publishedAt", -1),
    "most_viewed": ("views", -1),
    "title_a_to_z": ("title", 1),
    "title_z_to_a": ("title", -1),
})

FEEDBACK_SORTS = SortResolver({
    "newest_first": ("createdAt", -1),
    "oldest_first": ("createdAt", 1),
    "subject_a_to_z": ("subject", 1),
    "subject_z_to_a": ("subject", -1),
})
