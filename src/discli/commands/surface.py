"""Surface command -- print the generated command surface of a catalog."""

from __future__ import annotations

import json

import typer

from discli.output import print_data


def surface_command(
    name: str = typer.Argument(help="Catalog name."),
) -> None:
    """Print the command surface and client configuration as JSON.

    The output is what ``discli run NAME`` executes: every command with
    its positionals and flags, plus the base URL, auth injection, retry,
    pagination and cache policy of the generated client.

    Example::

        discli surface petstore | jq '.commands[].name'
    """
    from discli.commands import report
    from discli.config import load_catalog, resolve_config
    from discli.exceptions import DiscliError
    from discli.generator import generate_surface
    from discli.models import RetryPolicy

    try:
        config, _ = resolve_config()
        catalog = load_catalog(name)
        surface = generate_surface(
            catalog,
            retry=RetryPolicy(max_attempts=config.request.max_retries),
            cache_enabled=config.cache.enabled,
            cache_ttl=config.cache.ttl_seconds,
        )
    except DiscliError as exc:
        raise report(exc) from None

    print_data(json.dumps(surface.model_dump(mode="json"), indent=2, ensure_ascii=False))
