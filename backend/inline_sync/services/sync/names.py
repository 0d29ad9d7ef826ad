"""
Display-name resolution for sync items.
"""

from collections.abc import Mapping
from typing import Any, Optional

from .types import NameExtractor

# Fallback priority, checked in this order
NAME_FIELDS = ("name", "title", "label", "product_name", "email", "id")


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def _is_blank_field(value: Any) -> bool:
    """Mapping values: also skip False and empty containers. Zero is a real id."""
    if _is_empty(value) or value is False:
        return True
    return isinstance(value, (Mapping, list, tuple, set, frozenset)) and not value


def resolve_item_name(item: Any, extractor: Optional[NameExtractor] = None) -> str:
    """
    Extract a human-readable label from an item.

    With an extractor its result is coerced to text; exceptions propagate
    to the caller. Without one, the first non-empty field in NAME_FIELDS
    wins, looked up by key on mappings and by attribute on anything else.
    Returns "" when nothing matches.
    """
    if extractor is not None:
        value = extractor(item)
        return "" if value is None else str(value)

    if isinstance(item, Mapping):
        for field in NAME_FIELDS:
            value = item.get(field)
            if not _is_blank_field(value):
                return str(value)
        return ""

    for field in NAME_FIELDS:
        value = getattr(item, field, None)
        # str.title and friends are methods, not data
        if callable(value):
            continue
        if not _is_empty(value):
            return str(value)
    return ""
