"""Traverse every page of a list command (``--all``).

Each style advances differently:

* ``cursor`` -- the next value is read from ``response_cursor_field`` and
  sent as ``request_param_name``. For ``has_more`` style APIs the id of
  the last record on the page is the next cursor.
* ``offset`` -- the offset grows by the number of records returned.
* ``page`` -- the page number grows by one.
* ``link-header`` -- the ``Link: <...>; rel="next"`` URL is followed as is.

Traversal stops on an empty page, a missing or repeated cursor, or after
``max_pages``.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Optional

from discli.client.sync_client import ApiResponse
from discli.models import PaginationSpec, PaginationStyle
from discli.records import extract_items, item_id, lookup

logger = logging.getLogger(__name__)

_LINK_NEXT_RE = re.compile(r'<([^>]+)>\s*;\s*rel="?next"?', re.IGNORECASE)

DEFAULT_MAX_PAGES = 100

Fetch = Callable[[str, dict[str, Any]], ApiResponse]
"""``fetch(path_or_url, params)`` returning one decoded page."""


def next_link(headers: dict[str, str]) -> Optional[str]:
    match = _LINK_NEXT_RE.search(headers.get("link", ""))
    return match.group(1) if match else None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


def collect_all(
    fetch: Fetch,
    path: str,
    params: dict[str, Any],
    pagination: PaginationSpec,
    resource: Optional[str] = None,
    max_pages: int = DEFAULT_MAX_PAGES,
) -> list[Any]:
    """Fetch pages until the end of the collection and return every record."""
    params = dict(params)
    records: list[Any] = []
    target = path
    seen_cursors: set[str] = set()
    param_name = pagination.request_param_name

    for page_number in range(max_pages):
        page = fetch(target, params)
        items = extract_items(page.data, resource)
        records.extend(items)
        logger.debug("page %d: %d records", page_number + 1, len(items))
        if not items:
            break

        if pagination.style == PaginationStyle.LINK_HEADER:
            link = next_link(page.headers)
            if not link:
                break
            target, params = link, {}
            continue

        if pagination.style == PaginationStyle.CURSOR:
            field_name = pagination.response_cursor_field or ""
            if field_name == "has_more":
                if not (isinstance(page.data, dict) and page.data.get("has_more")):
                    break
                cursor = item_id(items[-1])
            else:
                value = lookup(page.data, field_name) if field_name else None
                cursor = str(value) if value not in (None, "", False) else None
            if cursor is None or cursor in seen_cursors:
                break
            seen_cursors.add(cursor)
            params[param_name or "cursor"] = cursor
            continue

        if pagination.style == PaginationStyle.OFFSET:
            name = param_name or "offset"
            offset = (_as_int(params.get(name)) or 0) + len(items)
            total = _as_int(lookup(page.data, pagination.response_cursor_field)) if pagination.response_cursor_field else None
            if total is not None and offset >= total:
                break
            params[name] = offset
            continue

        name = param_name or "page"
        current = _as_int(params.get(name)) or 1
        last = _as_int(lookup(page.data, pagination.response_cursor_field)) if pagination.response_cursor_field else None
        if last is not None and current >= last:
            break
        params[name] = current + 1
    else:
        logger.warning("stopped after %d pages; more results may exist", max_pages)

    return records
