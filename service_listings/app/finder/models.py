"""
Request and response models for the listings finder.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List


class SortOrder(str, Enum):
    """Sort direction requested by the caller."""
    ASC = "asc"
    DESC = "desc"

    @property
    def direction(self) -> int:
        return 1 if self is SortOrder.ASC else -1


@dataclass(frozen=True)
class ListRequest:
    """Normalised list request. Built once per incoming list call."""
    page: int
    limit: int
    sort_token: str
    order: SortOrder
    filters: Any

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class PageEnvelope:
    """One page of results plus pagination metadata."""
    data: List[Dict[str, Any]]
    page: int
    limit: int
    total: int
    has_next_page: bool = field(default=False)
    has_prev_page: bool = field(default=False)

    @classmethod
    def build(cls, data: List[Dict[str, Any]], page: int, limit: int, total: int) -> "PageEnvelope":
        """Assemble an envelope, deriving the navigation flags."""
        return cls(
            data=data,
            page=page,
            limit=limit,
            total=total,
            has_next_page=page * limit < total,
            has_prev_page=page > 1
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialise to the public camelCase shape."""
        return {
            "data": self.data,
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "hasNextPage": self.has_next_page,
            "hasPrevPage": self.has_prev_page,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "PageEnvelope":
        """Rebuild an envelope from its serialised form.

        Raises:
            ValueError: If ``payload`` is not a serialised envelope.
        """
        try:
            data = payload["data"]
            if not isinstance(data, list):
                raise ValueError("data must be a list")
            return cls(
                data=data,
                page=int(payload["page"]),
                limit=int(payload["limit"]),
                total=int(payload["total"]),
                has_next_page=bool(payload["hasNextPage"]),
                has_prev_page=bool(payload["hasPrevPage"]),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed page envelope: {e}") from e
