"""Naming rules for generated commands, arguments and flags.

* **Verbs** follow REST conventions: ``GET`` on a collection is ``list``,
  ``GET`` on an item is ``get``, ``POST`` on a collection is ``create``,
  ``PUT``/``PATCH`` on an item is ``update``, ``DELETE`` on an item is
  ``delete``. Anything else (actions, nested resources, a method on the
  other shape such as ``POST /users/{id}``) is named after the last static
  path segment (``archive``, ``search``, ``users``). GraphQL endpoints use
  the kebab-cased field name.
* **Collisions** inside one resource get the HTTP method appended to every
  colliding verb (``update-put``, ``update-patch``).
* **Identifiers** are sanitized to valid Python names (``petId`` ->
  ``pet_id``) and flags are their kebab-case form (``--pet-id``).
"""

from __future__ import annotations

import keyword
import re
from collections import Counter
from typing import Optional

from discli import paths
from discli.models import Endpoint, HTTPMethod

_INVALID_IDENT_RE = re.compile(r"[^a-zA-Z0-9_]")


def sanitize_param_name(name: str) -> str:
    """Convert a parameter or placeholder name to a valid Python identifier.

    Example::

        >>> sanitize_param_name("petId")
        'pet_id'
        >>> sanitize_param_name("X-Request-ID")
        'x_request_id'
        >>> sanitize_param_name("class")
        'class_'
    """
    result = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", name)
    result = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", result)
    result = result.lower().replace("-", "_").replace(".", "_")
    result = _INVALID_IDENT_RE.sub("_", result)
    result = re.sub(r"_+", "_", result).strip("_")
    if not result:
        result = "param"
    if result[0].isdigit():
        result = f"_{result}"
    if keyword.iskeyword(result):
        result = f"{result}_"
    return result


def kebab(name: str) -> str:
    """``starting_after`` -> ``starting-after``; ``createdAt`` -> ``created-at``."""
    return sanitize_param_name(name).strip("_").replace("_", "-")


def flag_name(name: str) -> str:
    return f"--{kebab(name)}"


def _resource_segments(path: str) -> list[str]:
    return [
        s for s in paths.split_segments(path)
        if not paths.has_placeholder(s) and not paths.is_api_prefix(s)
    ]


def is_core_path(path: str) -> bool:
    """True for ``/things`` and ``/things/{id}``: one resource segment, nothing nested."""
    return len(_resource_segments(path)) <= 1


def base_verb(endpoint: Endpoint) -> str:
    """Verb for *endpoint* before collision resolution."""
    if endpoint.graphql is not None:
        return kebab(endpoint.graphql.field)

    item = paths.ends_with_placeholder(endpoint.path)
    method = endpoint.method
    if is_core_path(endpoint.path):
        if method == HTTPMethod.GET:
            return "get" if item else "list"
        if method == HTTPMethod.POST and not item:
            return "create"
        if method in (HTTPMethod.PUT, HTTPMethod.PATCH) and item:
            return "update"
        if method == HTTPMethod.DELETE and item:
            return "delete"

    last: Optional[str] = paths.last_static_segment(endpoint.path)
    return kebab(last) if last else method.value.lower()


def assign_verbs(endpoints: list[Endpoint]) -> list[str]:
    """Collision-free verbs for the endpoints of one resource, in order."""
    bases = [base_verb(e) for e in endpoints]
    counts = Counter(bases)
    verbs = [
        f"{verb}-{e.method.value.lower()}" if counts[verb] > 1 else verb
        for verb, e in zip(bases, endpoints)
    ]
    seen: Counter[str] = Counter()
    unique: list[str] = []
    for verb in verbs:
        seen[verb] += 1
        unique.append(verb if seen[verb] == 1 else f"{verb}-{seen[verb]}")
    return unique
