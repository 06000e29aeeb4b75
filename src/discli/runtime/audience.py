"""Audience detection for generated commands.

The audience is decided exactly once per process, in the root callback of
the generated CLI, and then passed explicitly to whatever renders output.
An interactive terminal means a human; anything else (a pipe, a file, a
subprocess capturing output) means an agent. ``--json`` and ``--human``
override the detection.
"""

from __future__ import annotations

import enum
import sys
from typing import Optional, TextIO


class Audience(str, enum.Enum):
    AGENT = "agent"
    HUMAN = "human"


def audience_override(json_output: bool, human_output: bool) -> Optional[Audience]:
    """Map the ``--json`` / ``--human`` flags to an override; ``--json`` wins."""
    if json_output:
        return Audience.AGENT
    if human_output:
        return Audience.HUMAN
    return None


def detect_audience(stream: Optional[TextIO] = None, override: Optional[Audience] = None) -> Audience:
    if override is not None:
        return Audience(override)
    stream = stream if stream is not None else sys.stdout
    try:
        interactive = hasattr(stream, "isatty") and stream.isatty()
    except ValueError:
        interactive = False
    return Audience.HUMAN if interactive else Audience.AGENT
