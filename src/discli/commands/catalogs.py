"""Catalog commands -- list and delete saved catalogs.

Provides the ``discli catalogs`` sub-command group. Invoked without a
sub-command it lists every catalog saved under the data directory.
"""

from __future__ import annotations

import typer

from discli.output import error, info, print_table, success, suggest


catalogs_app = typer.Typer(invoke_without_command=True)


@catalogs_app.callback()
def catalogs_callback(ctx: typer.Context) -> None:
    """List saved catalogs (same as ``discli catalogs list``)."""
    if ctx.invoked_subcommand is None:
        catalogs_list()


@catalogs_app.command("list")
def catalogs_list() -> None:
    """List saved catalogs.

    Shows one row per catalog with its base URL, endpoint count and auth
    type. Catalogs that fail to load are listed as ``invalid``.

    Example::

        discli catalogs
        discli --json catalogs list
    """
    from discli.config import list_catalogs, load_catalog
    from discli.exceptions import ConfigError

    names = list_catalogs()
    if not names:
        info("No catalogs saved yet.")
        suggest("Create one: discli discover --spec <url>")
        return

    rows: list[list[str]] = []
    for name in names:
        try:
            catalog = load_catalog(name)
        except ConfigError:
            rows.append([name, "-", "-", "invalid"])
            continue
        rows.append([
            name,
            catalog.base_url,
            str(catalog.endpoint_count),
            catalog.auth.type.value,
        ])
    print_table(["Name", "Base URL", "Endpoints", "Auth"], rows, title=f"Catalogs ({len(rows)})")


@catalogs_app.command("delete")
def catalogs_delete(
    name: str = typer.Argument(help="Catalog to delete."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Delete without prompting."),
) -> None:
    """Delete a saved catalog.

    Example::

        discli catalogs delete petstore --yes
    """
    from discli.commands import report
    from discli.config import catalog_exists, delete_catalog
    from discli.exceptions import DiscliError

    if not catalog_exists(name):
        error(f'Catalog "{name}" not found.')
        suggest("List catalogs: discli catalogs")
        raise typer.Exit(code=1)

    if not yes and not typer.confirm(f'Delete catalog "{name}"?', err=True):
        info("Cancelled.")
        raise typer.Exit()

    try:
        delete_catalog(name)
    except DiscliError as exc:
        raise report(exc) from None
    success(f'Catalog "{name}" deleted.')
