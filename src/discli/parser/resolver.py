"""Resolve ``$ref`` JSON Reference pointers in specification documents.

OpenAPI and Swagger documents use ``$ref`` pointers (e.g.
``{"$ref": "#/components/schemas/Pet"}``) to avoid repetition. This module
performs a recursive deep-copy traversal, replacing every ``$ref`` with the
object it points to.

Only **internal** references (``#/...``) are followed. External references
and pointers to missing keys are left in place and reported through the
``unresolved`` list, so that a single bad pointer never discards the rest
of a document.

Circular references are detected via a ``seen`` set and left unresolved at
the cycle point to prevent infinite recursion.
"""

from __future__ import annotations

import copy
from typing import Any, Optional


class _Unresolvable(Exception):
    pass


def resolve_refs(
    spec: dict[str, Any], unresolved: Optional[list[str]] = None
) -> dict[str, Any]:
    """Resolve all ``$ref`` pointers in *spec*.

    Args:
        spec: The raw document.
        unresolved: If given, every reference that could not be followed
            (external or dangling) is appended to it as
            ``"<ref>: <reason>"``.

    Returns:
        A **new** dictionary with resolvable pointers replaced by their targets.

    Example::

        problems: list[str] = []
        resolved = resolve_refs(load_document("petstore.yaml"), problems)
    """
    root = copy.deepcopy(spec)
    problems = unresolved if unresolved is not None else []
    return _deep_resolve(root, root, frozenset(), problems)


def _resolve_ref(ref: str, root: dict[str, Any]) -> Any:
    """Follow a single internal JSON Pointer (RFC 6901 escaping honoured)."""
    if not ref.startswith("#/"):
        raise _Unresolvable("external references are not followed")

    current: Any = root
    for segment in ref[2:].split("/"):
        segment = segment.replace("~1", "/").replace("~0", "~")
        if isinstance(current, dict):
            if segment not in current:
                raise _Unresolvable(f"key '{segment}' not found")
            current = current[segment]
        elif isinstance(current, list):
            try:
                current = current[int(segment)]
            except (ValueError, IndexError) as exc:
                raise _Unresolvable(f"invalid array index '{segment}'") from exc
        else:
            raise _Unresolvable(f"cannot navigate into {type(current).__name__}")
    return current


def _deep_resolve(
    obj: Any, root: dict[str, Any], seen: frozenset[str], problems: list[str]
) -> Any:
    if isinstance(obj, dict):
        ref = obj.get("$ref")
        if isinstance(ref, str):
            if ref in seen:
                return obj
            try:
                target = _resolve_ref(ref, root)
            except _Unresolvable as exc:
                problems.append(f"{ref}: {exc}")
                return obj
            return _deep_resolve(target, root, seen | {ref}, problems)
        return {key: _deep_resolve(value, root, seen, problems) for key, value in obj.items()}

    if isinstance(obj, list):
        return [_deep_resolve(item, root, seen, problems) for item in obj]

    return obj
