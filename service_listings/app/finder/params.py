"""
Coercion of raw query-parameter bags.

Every helper is total: malformed input falls back to a default (usually
None) instead of raising, so a cosmetic mistake in a query string still
yields a reasonable page.
"""

from enum import Enum
from typing import Any, Mapping, Optional, Tuple, Type, TypeVar

E = TypeVar("E", bound=Enum)

_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off"}


def first_present(params: Mapping[str, Any], *names: str) -> Any:
    """Return the first non-None value among ``names`` (snake or camel case)."""
    for name in names:
        value = params.get(name)
        if value is not None:
            return value
    return None


def coerce_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def coerce_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        # Repeated query keys: last one wins
        value = value[-1] if value else None
        if value is None:
            return None
    text = str(value).strip()
    return text or None


def coerce_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    return None


def coerce_enum(value: Any, enum_type: Type[E]) -> Optional[E]:
    text = coerce_str(value)
    if text is None:
        return None
    try:
        return enum_type(text)
    except ValueError:
        return None


def coerce_tags(value: Any) -> Optional[Tuple[str, ...]]:
    """Accept a comma-separated string or a sequence; return sorted unique tags."""
    if value is None:
        return None
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple, set, frozenset)):
        items = []
        for item in value:
            # ["a,b", "c"] comes from repeated query keys carrying CSV
            items.extend(str(item).split(",") if isinstance(item, str) else [item])
    else:
        return None

    tags = sorted({str(item).strip() for item in items if item is not None and str(item).strip()})
    return tuple(tags) or None
