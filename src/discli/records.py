"""Helpers for picking records out of JSON response bodies."""

from __future__ import annotations

from typing import Any, Optional

ITEM_ID_KEYS = ("id", "uuid", "key", "slug")
LIST_KEYS = ("data", "items", "results", "records", "entries")


def extract_items(body: Any, resource: Optional[str] = None) -> list[Any]:
    """Return the list of records in a collection response, or ``[]``.

    A bare list is returned as is; an envelope object is searched for the
    conventional container keys and then the resource name itself.
    """
    if isinstance(body, list):
        return body
    if isinstance(body, dict):
        keys = LIST_KEYS + ((resource,) if resource else ())
        for key in keys:
            value = body.get(key)
            if isinstance(value, list):
                return value
    return []


def item_id(item: Any) -> Optional[str]:
    if not isinstance(item, dict):
        return None
    for key in ITEM_ID_KEYS:
        value = item.get(key)
        if isinstance(value, (str, int)) and not isinstance(value, bool) and str(value):
            return str(value)
    return None


def lookup(body: Any, dotted: str) -> Any:
    """Value at a dotted field path (``meta.next_cursor``), or ``None``."""
    value = body
    for part in dotted.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value
