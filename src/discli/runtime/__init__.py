"""Runtime of generated commands: audience detection, execution and rendering.

Every invocation computes one :class:`~discli.runtime.envelope.CommandOutcome`
and renders it for the detected :class:`~discli.runtime.audience.Audience`.
"""

from discli.runtime.audience import Audience, detect_audience
from discli.runtime.envelope import CommandOutcome, render_agent, render_human
from discli.runtime.executor import CommandRuntime

__all__ = [
    "Audience",
    "CommandOutcome",
    "CommandRuntime",
    "detect_audience",
    "render_agent",
    "render_human",
]
