"""Inspect command -- review a saved catalog.

Prints the same summary ``discli discover`` shows before confirmation:
service name, base URL, auth scheme, resources with sample endpoints and
anything that still needs human review.
"""

from __future__ import annotations

import typer

from discli.output import format_response, get_output, print_data


def inspect_command(
    name: str = typer.Argument(help="Catalog name."),
) -> None:
    """Show the review summary of a saved catalog.

    Example::

        discli inspect petstore
        discli --json inspect petstore
    """
    from discli.catalog import CatalogDraft
    from discli.commands import report
    from discli.config import load_catalog
    from discli.exceptions import DiscliError
    from discli.output import OutputFormat

    try:
        catalog = load_catalog(name)
    except DiscliError as exc:
        raise report(exc) from None

    draft = CatalogDraft(catalog=catalog)
    if get_output().format == OutputFormat.JSON:
        data = draft.summary_data()
        data["confirmed"] = catalog.confirmed
        format_response(data)
    else:
        print_data(draft.summary())
