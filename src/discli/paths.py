"""URL path helpers shared by discovery, normalization, catalog building and generation.

A *template* is a path whose variable parts are ``{name}`` placeholders
(``/users/{user_id}/orders/{id}``). A placeholder usually fills a whole
segment but may also sit inside one (``/files/{id}.json``); extraction and
substitution treat both alike. A *shape* is a template with the
placeholder names erased (``/users/{}/orders/{}``); two observations of the
same operation always share a shape even when their sources named the
placeholders differently.

Placeholder naming follows one rule everywhere: the last placeholder of a
path is ``{id}`` and an enclosing one is named after the resource noun in
front of it, singularized (``{user_id}``).
"""

from __future__ import annotations

import re
from typing import Optional

_PLACEHOLDER_RE = re.compile(r"^\{[^{}/]+\}$")
_EMBEDDED_PLACEHOLDER_RE = re.compile(r"\{([^{}/]+)\}")
_API_PREFIX_RE = re.compile(r"^(api|rest|v\d+(\.\d+)*[a-z0-9]*)$", re.IGNORECASE)

_NUMERIC_RE = re.compile(r"^\d+$")
_UUID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)
_HEX_RE = re.compile(r"^[0-9a-fA-F]{12,}$")
_PREFIXED_ID_RE = re.compile(r"^[a-zA-Z]{2,8}_[A-Za-z0-9]{6,}$")
_SLUG_WITH_DIGITS_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*-\d+$")

RESERVED_SEGMENTS = frozenset(
    {
        "search", "me", "self", "current", "bulk", "batch", "export", "import",
        "count", "archive", "stats", "new", "latest", "default",
    }
)
"""Action words that look like values but are never templatized."""


def split_segments(path: str) -> list[str]:
    """``"/api/v1/users"`` -> ``["api", "v1", "users"]``; ``"/"`` -> ``[]``."""
    return [s for s in path.split("/") if s]


def join_segments(segments: list[str]) -> str:
    return "/" + "/".join(segments) if segments else "/"


def is_placeholder(segment: str) -> bool:
    """True when the whole segment is one placeholder."""
    return bool(_PLACEHOLDER_RE.match(segment))


def has_placeholder(segment: str) -> bool:
    """True when the segment contains a placeholder anywhere (``{id}.json``)."""
    return bool(_EMBEDDED_PLACEHOLDER_RE.search(segment))


def is_api_prefix(segment: str) -> bool:
    """True for version and API-root segments (``api``, ``rest``, ``v1``, ``v2.1``)."""
    return bool(_API_PREFIX_RE.match(segment))


def is_id_like(segment: str) -> bool:
    """Return True if *segment* looks like an identifier rather than a resource name.

    Recognised: integers, UUIDs, long hex strings, prefixed ids
    (``cus_8aZk2M``) and slugs ending in a number (``blue-widget-42``).
    Reserved action words are never ids.
    """
    if not segment or segment.lower() in RESERVED_SEGMENTS or has_placeholder(segment):
        return False
    if _NUMERIC_RE.match(segment) or _UUID_RE.match(segment):
        return True
    if _HEX_RE.match(segment) and any(c.isdigit() for c in segment):
        return True
    if _PREFIXED_ID_RE.match(segment):
        return any(c.isdigit() for c in segment.split("_", 1)[1])
    return bool(_SLUG_WITH_DIGITS_RE.match(segment))


def singularize(noun: str) -> str:
    """Naive English singular: ``categories`` -> ``category``, ``boxes`` -> ``box``."""
    lower = noun.lower()
    if lower.endswith("ies") and len(noun) > 3:
        return noun[:-3] + "y"
    if lower.endswith(("ses", "xes", "zes", "ches", "shes")):
        return noun[:-2]
    if lower.endswith(("ss", "us", "is")):
        return noun
    if lower.endswith("s") and len(noun) > 1:
        return noun[:-1]
    return noun


def _snake(word: str) -> str:
    word = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", word)
    return re.sub(r"[^a-zA-Z0-9]+", "_", word).strip("_").lower()


def name_placeholders(segments: list[str], positions: list[int]) -> list[str]:
    """Replace ``segments[i]`` for every ``i`` in *positions* with a named placeholder.

    Existing ``{name}`` segments outside *positions* are renamed too, so
    the result follows the naming rule as a whole. Names are unique within
    the returned path.
    """
    variable = sorted(set(positions) | {i for i, s in enumerate(segments) if is_placeholder(s)})
    result = list(segments)
    used: set[str] = set()
    for order, index in enumerate(variable):
        if order == len(variable) - 1:
            name = "id"
        else:
            noun = _static_before(segments, index, variable)
            name = f"{_snake(singularize(noun))}_id" if noun else f"param{order + 1}_id"
        base, counter = name, 2
        while name in used:
            name = f"{base}{counter}"
            counter += 1
        used.add(name)
        result[index] = "{" + name + "}"
    return result


def _static_before(segments: list[str], index: int, variable: list[int]) -> Optional[str]:
    for i in range(index - 1, -1, -1):
        if i not in variable and not is_api_prefix(segments[i]):
            return segments[i]
    return None


def templatize_ids(path: str) -> str:
    """Replace ID-like segments of a concrete path with named placeholders.

    Example::

        >>> templatize_ids("/v1/customers/cus_8aZk2M/invoices/42")
        '/v1/customers/{customer_id}/invoices/{id}'
    """
    segments = split_segments(path.split("?", 1)[0])
    positions = [i for i, s in enumerate(segments) if is_id_like(s)]
    if not positions:
        return join_segments(segments)
    return join_segments(name_placeholders(segments, positions))


def path_shape(path: str) -> str:
    """Template with placeholder names erased: ``/users/{id}`` -> ``/users/{}``."""
    return join_segments([_EMBEDDED_PLACEHOLDER_RE.sub("{}", s) for s in split_segments(path)])


def placeholders(path: str) -> list[str]:
    """Placeholder names of *path* in order, including ones inside a segment."""
    return _EMBEDDED_PLACEHOLDER_RE.findall(path)


def group_key(path: str) -> str:
    """First segment that is neither a placeholder nor an API prefix, else ``root``."""
    for segment in split_segments(path):
        if not has_placeholder(segment) and not is_api_prefix(segment):
            return segment
    return "root"


def last_static_segment(path: str) -> Optional[str]:
    for segment in reversed(split_segments(path)):
        if not has_placeholder(segment):
            return segment
    return None


def ends_with_placeholder(path: str) -> bool:
    segments = split_segments(path)
    return bool(segments) and has_placeholder(segments[-1])


def fill_template(path: str, values: dict[str, str]) -> str:
    """Substitute ``{name}`` placeholders with the given values, within segments too.

    Example::

        >>> fill_template("/files/{id}.json", {"id": "42"})
        '/files/42.json'
    """
    def value(match: re.Match[str]) -> str:
        return str(values[match.group(1)])

    return join_segments([_EMBEDDED_PLACEHOLDER_RE.sub(value, s) for s in split_segments(path)])
