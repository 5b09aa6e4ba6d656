"""
Cache key derivation for list requests.

Key format:

    {namespace}:{entity}:list:{version}:page=1|limit=20|sort=newest_first|order=desc|keyword=...|...

Field order comes from the entity's ``key_fields`` constant, never from the
order of a parameter map. Values are percent-encoded so no value can forge a
separator, and absent values render as the empty string.
"""

from enum import Enum
from typing import Any
from urllib.parse import quote

from .entities import EntityDefinition
from .models import ListRequest


def _render(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return quote(str(value.value), safe="")
    if isinstance(value, (tuple, list)):
        return ",".join(quote(str(item), safe="") for item in value)
    return quote(str(value), safe="")


class CacheKeyDeriver:
    """Build deterministic, collision-free cache keys per entity."""

    def __init__(self, namespace: str = "listings"):
        if not namespace or ":" in namespace:
            raise ValueError("Cache namespace must be a non-empty string without ':'")
        self.namespace = namespace

    def prefix(self, entity: EntityDefinition) -> str:
        """Namespace covering every cached list for ``entity``."""
        return f"{self.namespace}:{entity.name}:"

    def derive(self, entity: EntityDefinition, request: ListRequest) -> str:
        parts = [
            f"page={request.page}",
            f"limit={request.limit}",
            f"sort={_render(request.sort_token)}",
            f"order={_render(request.order)}",
        ]
        parts.extend(
            f"{name}={_render(getattr(request.filters, name))}"
            for name in entity.key_fields
        )
        return f"{self.prefix(entity)}list:{entity.key_version}:{'|'.join(parts)}"
