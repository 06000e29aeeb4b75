"""Command-surface generation.

:func:`generate_surface` derives the pure, deterministic
:class:`~discli.models.CommandSurface` from a confirmed catalog, and
:func:`build_command_tree` realizes that surface as a Typer application.
"""

from discli.generator.command_tree import build_command_tree
from discli.generator.surface import generate_surface, validate_catalog

__all__ = ["build_command_tree", "generate_surface", "validate_catalog"]
