"""Config commands -- view and modify global configuration.

Provides the ``discli config`` sub-command group for reading and updating
the user's global configuration file (:class:`~discli.models.GlobalConfig`).
Settings are persisted in the discli config directory and control output
format, truncation, caching, request and probe defaults.
"""

from __future__ import annotations

import typer

from discli.output import format_response, info, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show() -> None:
    """Show the effective configuration.

    Prints the config directory followed by the configuration after
    environment variables and ``./discli.json`` have been applied.

    Example::

        discli config show
        discli --json config show
    """
    from discli.commands import report
    from discli.config import get_config_dir, resolve_config
    from discli.exceptions import DiscliError

    try:
        config, catalog = resolve_config()
    except DiscliError as exc:
        raise report(exc) from None
    info(f"Config directory: {get_config_dir()}")
    data = config.model_dump(mode="json")
    data["default_catalog"] = catalog
    format_response(data)


@config_app.command("set")
def config_set(
    key: str = typer.Argument(
        help="Config key (dot notation, e.g., 'output.truncate_threshold')."
    ),
    value: str = typer.Argument(help="Value to set (parsed as JSON when possible)."),
) -> None:
    """Set a configuration value.

    Uses dot notation for nested keys. The value keeps its JSON type
    (``true``, ``25``, ``["v1"]``) and the updated config is validated
    before it is saved.

    Example::

        discli config set default_catalog petstore
        discli config set output.truncate_threshold 25
        discli config set probe.allow_mutating true
    """
    from discli.commands import report
    from discli.config import load_global_config, save_global_config, set_config_value
    from discli.exceptions import DiscliError
    from discli.exit_codes import EXIT_INVALID_USAGE

    try:
        updated = set_config_value(load_global_config(), key, value)
    except DiscliError as exc:
        exc.exit_code = EXIT_INVALID_USAGE
        raise report(exc) from None

    save_global_config(updated)
    success(f"Set {key} = {value}")
