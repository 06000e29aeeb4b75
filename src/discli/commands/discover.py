"""Discover command -- build and save an endpoint catalog.

Implements the ``discli discover`` top-level command. It runs every
requested source adapter (spec document, capture directory, live probe),
merges their observations with :func:`~discli.normalizer.normalize`,
builds a draft catalog, prints its review summary and saves the catalog
only after confirmation (an interactive prompt, or ``--yes``).
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import typer

from discli.exit_codes import EXIT_INVALID_USAGE
from discli.output import debug, error, fix, format_response, get_output, info, print_data, success, suggest, warning


def discover_command(
    spec: Optional[str] = typer.Option(
        None, "--spec", "-s", help="OpenAPI, Swagger or GraphQL introspection document (URL, file or '-')."
    ),
    capture: Optional[Path] = typer.Option(
        None, "--capture", "-c", help="Directory of captured traffic (endpoints.json or *.har, plus auth.json)."
    ),
    probe_api: bool = typer.Option(
        False, "--probe", help="Actively probe the live API at --base-url."
    ),
    base_url: Optional[str] = typer.Option(
        None, "--base-url", help="API root; overrides any base URL found by the sources."
    ),
    name: Optional[str] = typer.Option(
        None, "--name", "-n", help="Service name (derived from the title or host if omitted)."
    ),
    auth_type: Optional[str] = typer.Option(
        None, "--auth-type", help="Override the inferred auth: api-key, bearer, cookie, oauth or none."
    ),
    auth_header: Optional[str] = typer.Option(
        None, "--auth-header", help="Header carrying the credential (api-key, bearer)."
    ),
    auth_cookie: Optional[str] = typer.Option(
        None, "--auth-cookie", help="Cookie carrying the credential (cookie auth)."
    ),
    cache: list[str] = typer.Option(
        [], "--cache", help="Resource whose GET endpoints may be cached ('*' for all). Repeatable."
    ),
    header: list[str] = typer.Option(
        [], "--header", "-H", help="Extra 'Name: value' header sent while probing. Repeatable."
    ),
    allow_mutating: bool = typer.Option(
        False, "--allow-mutating", help="Let the probe send empty POST/PUT/PATCH/DELETE requests."
    ),
    yes: bool = typer.Option(
        False, "--yes", "-y", help="Confirm the catalog without prompting."
    ),
) -> None:
    """Discover an API and save its endpoint catalog.

    At least one source is required. With several sources, spec
    declarations win over captured traffic, which wins over probing.

    Example::

        discli discover --spec https://api.example.com/openapi.json --yes
        discli discover --probe --base-url https://api.example.com
        discli discover --capture ./traffic --base-url https://api.example.com --cache users
    """
    from discli.catalog import build_catalog
    from discli.commands import report
    from discli.config import catalog_exists, resolve_config, save_catalog
    from discli.discovery import adapt_capture_directory, adapt_spec_source, probe
    from discli.exceptions import DiscliError
    from discli.models import AdapterResult
    from discli.normalizer import normalize
    from discli.output import OutputFormat

    if not (spec or capture or probe_api):
        error("No discovery source given.")
        fix("Pass --spec, --capture or --probe (with --base-url).")
        raise typer.Exit(code=EXIT_INVALID_USAGE)
    if probe_api and not base_url:
        error("--probe needs --base-url.")
        fix("Pass the API root, e.g. --base-url https://api.example.com")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    try:
        probe_headers = _parse_headers(header)
        auth_override = _auth_override(auth_type, auth_header, auth_cookie)
        config, _ = resolve_config()

        results: list[AdapterResult] = []
        if spec:
            info(f"Reading spec: {spec}")
            results.append(adapt_spec_source(spec, timeout=config.request.timeout))
        if capture:
            info(f"Reading captured traffic: {capture}")
            results.append(adapt_capture_directory(capture, base_url))
        if probe_api:
            probe_config = config.probe.model_copy(update={"allow_mutating": allow_mutating or config.probe.allow_mutating})
            info(f"Probing {base_url} (up to {probe_config.max_requests} requests)")
            results.append(probe(base_url, probe_config, headers=probe_headers))

        for result in results:
            debug(f"{result.source.value}: {len(result.observations)} observations, {len(result.skipped)} skipped")
            for fragment in result.skipped:
                debug(f"skipped {fragment.fragment}: {fragment.reason}")

        draft = build_catalog(normalize(results), base_url=base_url, service_name=name)
    except DiscliError as exc:
        raise report(exc) from None

    if draft.catalog.endpoint_count == 0:
        warning("No endpoints were discovered.")

    if get_output().format == OutputFormat.JSON:
        format_response(draft.summary_data())
    else:
        print_data(draft.summary())

    if not yes:
        if not sys.stdin.isatty():
            error("Confirmation required but stdin is not interactive.")
            fix("Re-run with --yes to accept the catalog as summarised.")
            raise typer.Exit(code=EXIT_INVALID_USAGE)
        if not typer.confirm("Save this catalog?", default=True, err=True):
            info("Cancelled.")
            raise typer.Exit()

    try:
        confirmed = draft.confirm(auth=auth_override, cacheable_resources=cache)
    except DiscliError as exc:
        raise report(exc) from None

    if catalog_exists(confirmed.service_name):
        info(f'Catalog "{confirmed.service_name}" already exists and will be overwritten.')
    path = save_catalog(confirmed)

    success(f'Catalog "{confirmed.service_name}" saved ({confirmed.endpoint_count} endpoints).')
    debug(f"Written to {path}")
    suggest(f"Try it: discli run {confirmed.service_name}")
    if confirmed.auth.carries_credential:
        suggest(f"Set the credential: export {confirmed.auth.env_var_name}=...")


def _parse_headers(values: list[str]) -> dict[str, str]:
    """Parse repeated ``Name: value`` options."""
    from discli.exceptions import ConfigError

    headers: dict[str, str] = {}
    for raw in values:
        key, sep, value = raw.partition(":")
        if not sep or not key.strip():
            raise ConfigError(
                f"Invalid header {raw!r}",
                exit_code=EXIT_INVALID_USAGE,
                fix="Use the form --header 'Name: value'.",
            )
        headers[key.strip()] = value.strip()
    return headers


def _auth_override(auth_type: Optional[str], header_name: Optional[str], cookie_name: Optional[str]):  # noqa: ANN202
    """Build the :class:`~discli.models.AuthSpec` given on the command line, if any."""
    from discli.exceptions import ConfigError
    from discli.models import AuthSpec, AuthType

    if auth_type is None:
        if header_name or cookie_name:
            raise ConfigError(
                "--auth-header and --auth-cookie need --auth-type",
                exit_code=EXIT_INVALID_USAGE,
                fix="Add --auth-type api-key, bearer or cookie.",
            )
        return None
    try:
        kind = AuthType(auth_type.lower())
    except ValueError:
        choices = ", ".join(t.value for t in AuthType if t != AuthType.UNKNOWN)
        raise ConfigError(
            f"Unknown auth type: {auth_type}",
            exit_code=EXIT_INVALID_USAGE,
            fix=f"Use one of: {choices}.",
        ) from None

    if kind in (AuthType.BEARER, AuthType.OAUTH):
        header_name = header_name or "Authorization"
    if kind == AuthType.API_KEY and not header_name:
        raise ConfigError(
            "api-key auth needs --auth-header",
            exit_code=EXIT_INVALID_USAGE,
            fix="Name the header, e.g. --auth-header X-API-Key",
        )
    if kind == AuthType.COOKIE and not cookie_name:
        raise ConfigError(
            "cookie auth needs --auth-cookie",
            exit_code=EXIT_INVALID_USAGE,
            fix="Name the session cookie, e.g. --auth-cookie session",
        )
    return AuthSpec(type=kind, header_name=header_name, cookie_name=cookie_name)
