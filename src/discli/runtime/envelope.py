"""Compute once, render twice.

A generated command produces exactly one :class:`CommandOutcome`. The
outcome is then rendered for its audience:

**Agent** (JSON on stdout)::

    {"ok": true, "command": "...", "result": ..., "next_actions": [...]}
    {"ok": false, "command": "...", "error": {"message": "...", "code": "..."},
     "fix": "...", "next_actions": [...]}

``next_actions`` is always present, as an explicit empty list when
nothing follows, and ``fix`` is never empty on failure.

**Human**: a rich table, list or scalar of the same result on stdout; on
failure one error line and one fix line on stderr.

Collections larger than the truncation threshold are cut before
rendering. The envelope then carries a ``truncation`` record and the full
data is written atomically to the cache directory.
"""

from __future__ import annotations

import json
import re
import sys
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from discli.config import atomic_write
from discli.exceptions import DiscliError
from discli.exit_codes import EXIT_SUCCESS
from discli.records import LIST_KEYS


@dataclass
class Truncation:
    total: int
    shown: int
    full_result_path: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "shown": self.shown,
            "truncated": True,
            "full_result_path": self.full_result_path,
        }


@dataclass
class CommandOutcome:
    """Everything a rendered response needs, computed without knowing the audience."""

    command: str
    ok: bool
    result: Any = None
    error: Optional[DiscliError] = None
    next_actions: list[dict[str, str]] = field(default_factory=list)
    truncation: Optional[Truncation] = None

    @classmethod
    def success(
        cls,
        command: str,
        result: Any,
        next_actions: Optional[list[dict[str, str]]] = None,
        truncation: Optional[Truncation] = None,
    ) -> CommandOutcome:
        return cls(command=command, ok=True, result=result, next_actions=list(next_actions or []), truncation=truncation)

    @classmethod
    def failure(
        cls,
        command: str,
        error: DiscliError,
        next_actions: Optional[list[dict[str, str]]] = None,
    ) -> CommandOutcome:
        return cls(command=command, ok=False, error=error, next_actions=list(next_actions or []))

    @property
    def exit_code(self) -> int:
        if self.ok or self.error is None:
            return EXIT_SUCCESS
        return self.error.exit_code


# ---------------------------------------------------------------------------
# Truncation
# ---------------------------------------------------------------------------


def _collection(result: Any, resource: Optional[str] = None) -> tuple[Optional[str], Optional[list[Any]]]:
    """(container key, records) of a result; key is ``None`` for a bare list.

    An object is searched for the conventional container keys, then the
    resource name, then its only list-valued field.
    """
    if isinstance(result, list):
        return None, result
    if isinstance(result, dict):
        for key in LIST_KEYS + ((resource,) if resource else ()):
            if isinstance(result.get(key), list):
                return key, result[key]
        lists = [key for key, value in result.items() if isinstance(value, list)]
        if len(lists) == 1:
            return lists[0], result[lists[0]]
    return None, None


def _spill_name(command: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", command.lower()).strip("-") or "result"
    return f"{slug}-{time.strftime('%Y%m%d-%H%M%S')}-{uuid.uuid4().hex[:8]}.json"


def truncate_result(
    result: Any,
    threshold: int,
    spill_dir: Path,
    command: str,
    resource: Optional[str] = None,
) -> tuple[Any, Optional[Truncation]]:
    """Cut an oversized collection and spill the full result to *spill_dir*.

    Args:
        resource: Resource group of the command; responses that wrap their
            records under the resource name (``{"customers": [...]}``) are
            cut there.

    Returns:
        The result to render and, when cut, the truncation record.
    """
    key, records = _collection(result, resource)
    if records is None or len(records) <= threshold:
        return result, None

    full_path = spill_dir / _spill_name(command)
    atomic_write(full_path, json.dumps(result, indent=2, ensure_ascii=False, default=str))

    shown = records[:threshold]
    if key is None:
        cut: Any = shown
    else:
        cut = {**result, key: shown}
    return cut, Truncation(total=len(records), shown=len(shown), full_result_path=str(full_path))


# ---------------------------------------------------------------------------
# Agent rendering
# ---------------------------------------------------------------------------


def render_agent(outcome: CommandOutcome) -> dict[str, Any]:
    """The JSON envelope for *outcome*."""
    if outcome.ok:
        envelope: dict[str, Any] = {
            "ok": True,
            "command": outcome.command,
            "result": outcome.result,
            "next_actions": outcome.next_actions,
        }
        if outcome.truncation is not None:
            envelope["truncation"] = outcome.truncation.to_dict()
        return envelope

    assert outcome.error is not None
    return {
        "ok": False,
        "command": outcome.command,
        "error": {"message": outcome.error.message, "code": outcome.error.code},
        "fix": outcome.error.fix or DiscliError.fix,
        "next_actions": outcome.next_actions,
    }


# ---------------------------------------------------------------------------
# Human rendering
# ---------------------------------------------------------------------------


def cell_text(value: Any) -> str:
    """The text a human sees for one field value.

    Values are never shortened; long cells wrap instead. Scalars use their
    JSON spelling (``true``, ``3.5``) so both renderings show the same value.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, list) and all(not isinstance(v, (dict, list)) for v in value):
        return ", ".join(cell_text(v) for v in value)
    return json.dumps(value, ensure_ascii=False, default=str)


def _cell(value: Any) -> Text:
    return Text(cell_text(value), overflow="fold")


def _records_table(records: list[Any], title: Optional[str] = None) -> Table:
    table = Table(title=title, show_header=True, header_style="bold cyan")
    if records and all(isinstance(r, dict) for r in records):
        columns: list[str] = []
        for record in records:
            for key in record:
                if key not in columns:
                    columns.append(key)
        for column in columns:
            table.add_column(column, overflow="fold")
        for record in records:
            table.add_row(*(_cell(record.get(c)) for c in columns))
    else:
        table.add_column("value", overflow="fold")
        for record in records:
            table.add_row(_cell(record))
    return table


def render_human(
    outcome: CommandOutcome,
    stdout: Optional[Console] = None,
    stderr: Optional[Console] = None,
) -> None:
    """Print *outcome* for a person at a terminal."""
    stdout = stdout or Console(file=sys.stdout)
    stderr = stderr or Console(file=sys.stderr, stderr=True)

    if not outcome.ok:
        assert outcome.error is not None
        stderr.print(f"[bold red]Error:[/bold red] {escape(outcome.error.message)}", markup=True, highlight=False)
        stderr.print(f"[cyan]Fix:[/cyan] {escape(outcome.error.fix)}", markup=True, highlight=False)
        return

    result = outcome.result
    if isinstance(result, list):
        if result:
            stdout.print(_records_table(result))
        else:
            stdout.print("No results.")
    elif isinstance(result, dict):
        scalars = {k: v for k, v in result.items() if not (isinstance(v, list) and v and isinstance(v[0], dict))}
        nested = {k: v for k, v in result.items() if k not in scalars}
        if scalars:
            table = Table(show_header=False)
            table.add_column("field", style="bold")
            table.add_column("value", overflow="fold")
            for key, value in scalars.items():
                table.add_row(str(key), _cell(value))
            stdout.print(table)
        for key, records in nested.items():
            stdout.print(_records_table(records, title=str(key)))
    elif result is None:
        stdout.print("Done.")
    else:
        stdout.print(cell_text(result), markup=False, highlight=False)

    if outcome.truncation is not None:
        t = outcome.truncation
        stderr.print(f"Showing {t.shown} of {t.total} results; full result saved to {t.full_result_path}",
                     markup=False, highlight=False)
    for action in outcome.next_actions:
        stderr.print(f"[dim]-> {escape(action['command'])}[/dim]", markup=True, highlight=False)


def emit(outcome: CommandOutcome, audience: str) -> int:
    """Render *outcome* for *audience* and return its exit code."""
    if audience == "human":
        render_human(outcome)
    else:
        print(json.dumps(render_agent(outcome), ensure_ascii=False, default=str), file=sys.stdout, flush=True)
    return outcome.exit_code
