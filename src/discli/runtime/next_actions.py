"""Suggested follow-up invocations attached to every envelope."""

from __future__ import annotations

from typing import Any, Optional

from discli.exceptions import DiscliError
from discli.models import CommandSpec, CommandSurface
from discli.records import extract_items, item_id

_FOLLOW_UPS = {
    "list": ("get",),
    "get": ("update", "delete"),
    "create": ("get",),
    "update": ("get",),
    "delete": ("list",),
}
_MAX_ROOT_SUGGESTIONS = 3


def _action(surface: CommandSurface, command: CommandSpec, ids: list[str], description: str) -> dict[str, str]:
    parts = [surface.program, command.group, command.verb]
    parts += ids[: len(command.arguments)]
    parts += [f"<{a.dest}>" for a in command.arguments[len(ids):]]
    parts += [f"{f.flag} <value>" for f in command.flags if f.required]
    return {"command": " ".join(parts), "description": description}


def _sibling(surface: CommandSurface, command: CommandSpec, verb: str) -> Optional[CommandSpec]:
    return next((c for c in surface.commands_in(command.group) if c.verb == verb), None)


def for_root(surface: CommandSurface) -> list[dict[str, str]]:
    """Entry points worth trying first: the list commands."""
    lists = [c for c in surface.commands if c.verb == "list"][:_MAX_ROOT_SUGGESTIONS]
    return [_action(surface, c, [], c.description) for c in lists]


def for_success(
    surface: CommandSurface,
    command: CommandSpec,
    arguments: dict[str, Any],
    result: Any,
) -> list[dict[str, str]]:
    actions: list[dict[str, str]] = []
    ids = [str(arguments[a.dest]) for a in command.arguments if arguments.get(a.dest) is not None]
    for verb in _FOLLOW_UPS.get(command.verb, ()):
        sibling = _sibling(surface, command, verb)
        if sibling is None:
            continue
        sibling_ids = list(ids)
        if command.verb == "list":
            items = extract_items(result, command.group)
            first = item_id(items[0]) if items else None
            if first is None:
                continue
            sibling_ids.append(first)
        elif command.verb == "create":
            created = item_id(result)
            if created is None:
                continue
            sibling_ids.append(created)
        sibling_ids = sibling_ids[: len(sibling.arguments)]
        actions.append(_action(surface, sibling, sibling_ids, sibling.description))
    return actions


def for_failure(surface: CommandSurface, command: CommandSpec, error: DiscliError) -> list[dict[str, str]]:
    if error.code == "VALIDATION_FAILED":
        return [_action(surface, command, [], "Retry with every required value supplied")]
    if error.code == "NOT_FOUND":
        lister = _sibling(surface, command, "list")
        if lister is not None:
            return [_action(surface, lister, [], "List valid ids")]
    return []
