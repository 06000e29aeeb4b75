"""Built-in CLI sub-commands for discli.

This package groups the Typer sub-command modules of the ``discli``
meta-CLI:

* :mod:`~discli.commands.discover` -- run the discovery pipeline and save a
  confirmed catalog.
* :mod:`~discli.commands.catalogs` -- list and delete saved catalogs.
* :mod:`~discli.commands.inspect` -- print the review summary of a catalog.
* :mod:`~discli.commands.surface` -- print the generated command surface.
* :mod:`~discli.commands.run` -- invoke the generated CLI of a catalog.
* :mod:`~discli.commands.config` -- view and modify global settings.

Each module either exports a :class:`typer.Typer` sub-application (for
multi-command groups like ``catalogs`` and ``config``) or a plain callback
function registered directly on the root app (for single commands like
``discover``).
"""

from __future__ import annotations

import typer

from discli.exceptions import DiscliError
from discli.output import error, fix


def report(exc: DiscliError) -> typer.Exit:
    """Print *exc* as an error line plus its fix and return the matching exit.

    Example::

        try:
            catalog = load_catalog(name)
        except DiscliError as exc:
            raise report(exc) from None
    """
    error(exc.message)
    fix(exc.fix)
    return typer.Exit(code=exc.exit_code)
