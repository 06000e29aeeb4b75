"""Run command -- invoke the generated CLI of a saved catalog.

``discli run NAME [ARGS...]`` loads the catalog, generates its command
surface, builds the Typer tree for it and hands the remaining arguments
to that tree unchanged::

    discli run petstore                      # root listing
    discli run petstore pets list --limit 5
    discli run petstore pets get 42 --human

Exit codes of the generated command pass straight through.
"""

from __future__ import annotations

import typer

from discli.output import debug, error


def run_command(
    ctx: typer.Context,
    name: str = typer.Argument(help="Catalog name."),
) -> None:
    """Run a command of the generated CLI for catalog NAME.

    Everything after NAME is passed to the generated CLI, including
    ``--help``, ``--json`` and ``--human``.
    """
    import click

    from discli.cache import ResponseCache
    from discli.commands import report
    from discli.config import get_cache_dir, load_catalog, resolve_config
    from discli.exceptions import DiscliError
    from discli.generator import build_command_tree, generate_surface
    from discli.models import RetryPolicy
    from discli.output import OutputFormat, get_output
    from discli.runtime import CommandRuntime

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

    args = list(ctx.args)
    if get_output().format == OutputFormat.JSON and "--human" not in args:
        args.insert(0, "--json")
    debug(f"{surface.program}: {len(surface.commands)} commands, args={args}")

    cache = ResponseCache(
        get_cache_dir() / surface.program,
        ttl_seconds=config.cache.ttl_seconds,
        enabled=surface.client.cache.enabled,
    )
    runtime = CommandRuntime(
        surface,
        cache=cache,
        timeout=config.request.timeout,
        verify=config.request.verify_ssl,
        truncate_threshold=config.output.truncate_threshold,
    )
    command = typer.main.get_command(build_command_tree(surface, runtime))

    try:
        rv = command.main(args=args, prog_name=surface.program, standalone_mode=False)
        code = rv if isinstance(rv, int) else 0
    except click.ClickException as exc:
        exc.show()
        code = exc.exit_code
    except click.exceptions.Abort:
        error("Aborted.")
        code = 1
    finally:
        cache.close()

    if code:
        raise typer.Exit(code=code)
