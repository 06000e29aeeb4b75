"""Derive a :class:`~discli.models.CommandSurface` from a confirmed catalog.

:func:`generate_surface` is pure: it performs no I/O, and the same catalog
always yields the same surface. It validates the catalog first and raises
:class:`~discli.exceptions.GenerationInvariantViolation` naming the
offending record, so nothing is ever emitted from a broken catalog.
"""

from __future__ import annotations

from collections import Counter
from typing import Optional

from discli.exceptions import GenerationInvariantViolation
from discli.generator.verbs import assign_verbs, flag_name, kebab, sanitize_param_name
from discli.models import (
    BASE_URL_RE,
    SERVICE_NAME_RE,
    ArgumentSpec,
    AuthInjection,
    AuthType,
    CachePolicy,
    ClientConfig,
    CommandSpec,
    CommandSurface,
    Endpoint,
    EndpointCatalog,
    FlagSpec,
    HTTPMethod,
    PaginationSpec,
    PaginationStyle,
    ParameterLocation,
    ResourceGroup,
    RetryPolicy,
)

_LIMIT_PARAM_NAMES = ("limit", "per_page", "perPage", "page_size", "pageSize", "count")
_RESERVED_DESTS = {"ctx", "limit", "page", "all_pages", "json_output", "human_output"}
_RESERVED_FLAGS = {"--json", "--human", "--all", "--help"}

GLOBAL_FLAGS: tuple[FlagSpec, ...] = (
    FlagSpec(flag="--json", dest="json_output", kind="global", type="boolean",
             description="Force the machine-readable JSON envelope"),
    FlagSpec(flag="--human", dest="human_output", kind="global", type="boolean",
             description="Force human-readable output"),
)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_catalog(catalog: EndpointCatalog) -> None:
    """Raise :class:`GenerationInvariantViolation` on the first broken invariant."""
    if not catalog.confirmed:
        raise GenerationInvariantViolation(
            f"Catalog '{catalog.service_name}' has not been confirmed",
            code="CATALOG_UNCONFIRMED",
            fix="Review the catalog summary and confirm it (`discli discover ... --yes`).",
            details={"service_name": catalog.service_name},
        )
    if not SERVICE_NAME_RE.match(catalog.service_name):
        raise GenerationInvariantViolation(
            f"Service name '{catalog.service_name}' is not a lowercase, hyphen-free program name",
            details={"service_name": catalog.service_name},
        )
    if catalog.base_url.endswith("/") or not BASE_URL_RE.match(catalog.base_url):
        raise GenerationInvariantViolation(
            f"Base URL '{catalog.base_url}' must be an http(s) URL without a trailing slash",
            details={"base_url": catalog.base_url},
        )

    seen: set[tuple[str, str]] = set()
    for group, endpoint in catalog.iter_endpoints():
        record = {"resource": group.name, "method": endpoint.method.value, "path": endpoint.path}
        if endpoint.key in seen:
            raise GenerationInvariantViolation(
                f"Duplicate endpoint {endpoint.method.value} {endpoint.path}",
                details=record,
            )
        seen.add(endpoint.key)

        placeholders = endpoint.placeholders
        declared = [p.name for p in endpoint.parameters_in(ParameterLocation.PATH)]
        duplicates = sorted(n for n, c in Counter(declared + placeholders).items() if c > 2)
        if sorted(placeholders) != sorted(declared) or duplicates:
            raise GenerationInvariantViolation(
                f"{endpoint.method.value} {endpoint.path}: path placeholders {placeholders} "
                f"do not match path parameters {declared}",
                details=record,
            )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _flag_dest(name: str, location: ParameterLocation, taken: set[str]) -> tuple[str, str]:
    dest = sanitize_param_name(name)
    flag = flag_name(name)
    if dest in taken or dest in _RESERVED_DESTS or flag in _RESERVED_FLAGS:
        dest = sanitize_param_name(f"{location.value}_{name}")
        flag = flag_name(f"{location.value}_{name}")
    taken.add(dest)
    return flag, dest


def _argument_dest(name: str) -> str:
    dest = sanitize_param_name(name)
    return f"{dest}_arg" if dest in _RESERVED_DESTS else dest


def _pagination_flag(pagination: PaginationSpec) -> tuple[str, str]:
    """(param name, flag) for the page-advancing flag of a pagination style."""
    if pagination.style == PaginationStyle.LINK_HEADER:
        return "", "--page-url"
    default = {
        PaginationStyle.CURSOR: "cursor",
        PaginationStyle.OFFSET: "offset",
        PaginationStyle.PAGE: "page",
    }[pagination.style]
    name = pagination.request_param_name or default
    return name, flag_name(name)


def _command_flags(
    endpoint: Endpoint,
    is_list: bool,
    pagination: Optional[PaginationSpec],
    taken: set[str],
) -> tuple[FlagSpec, ...]:
    page_param = _pagination_flag(pagination)[0] if (is_list and pagination) else None
    limit_param = None
    if is_list:
        query_names = {p.name for p in endpoint.parameters_in(ParameterLocation.QUERY)}
        limit_param = next((n for n in _LIMIT_PARAM_NAMES if n in query_names), "limit")

    flags: list[FlagSpec] = []
    for param in endpoint.parameters:
        if param.location == ParameterLocation.PATH:
            continue
        kind = "param"
        if param.location == ParameterLocation.QUERY and param.name == limit_param:
            kind = "limit"
        elif param.location == ParameterLocation.QUERY and param.name == page_param:
            kind = "page"
        if kind == "param":
            flag, dest = _flag_dest(param.name, param.location, taken)
        else:
            flag, dest = flag_name(param.name), kind
        flags.append(FlagSpec(
            flag=flag,
            dest=dest,
            kind=kind,
            param_name=param.name,
            location=param.location,
            required=param.required and kind == "param",
            type=param.type,
            description=param.description,
        ))

    if not is_list:
        return tuple(flags)

    if not any(f.kind == "limit" for f in flags):
        flags.append(FlagSpec(
            flag=flag_name(limit_param or "limit"),
            dest="limit",
            kind="limit",
            param_name=limit_param,
            location=ParameterLocation.QUERY,
            type="integer",
            description="Maximum number of items per page",
            synthesized=True,
        ))
    if pagination is not None:
        param_name, flag = _pagination_flag(pagination)
        if not any(f.kind == "page" for f in flags):
            flags.append(FlagSpec(
                flag=flag,
                dest="page",
                kind="page",
                param_name=param_name or None,
                location=ParameterLocation.QUERY if param_name else None,
                type="integer" if pagination.style != PaginationStyle.CURSOR and param_name else "string",
                description=f"Start from this {pagination.style.value} position",
                synthesized=True,
            ))
        flags.append(FlagSpec(
            flag="--all",
            dest="all_pages",
            kind="all",
            type="boolean",
            description="Follow pagination and return every page",
            synthesized=True,
        ))
    return tuple(flags)


def _build_command(group: ResourceGroup, endpoint: Endpoint, verb: str, cache_allowed: bool) -> CommandSpec:
    arguments = tuple(
        ArgumentSpec(
            name=p.name,
            dest=_argument_dest(p.name),
            type=p.type,
            description=p.description,
        )
        for p in endpoint.parameters_in(ParameterLocation.PATH)
    )
    taken = {a.dest for a in arguments}
    is_list = verb == "list"
    pagination = group.pagination if is_list else None
    read_only = endpoint.method == HTTPMethod.GET
    return CommandSpec(
        name=f"{group.name} {verb}",
        group=group.name,
        verb=verb,
        method=endpoint.method,
        path=endpoint.path,
        description=endpoint.description or f"{endpoint.method.value} {endpoint.path}",
        arguments=arguments,
        flags=_command_flags(endpoint, is_list, pagination, taken),
        read_only=read_only,
        cacheable=cache_allowed and read_only and endpoint.cacheable,
        pagination=pagination,
        auth_required=endpoint.auth_required,
        graphql=endpoint.graphql,
    )


def auth_injection(catalog: EndpointCatalog) -> AuthInjection:
    auth = catalog.auth
    manual = auth.type == AuthType.UNKNOWN or (
        auth.type != AuthType.NONE and not auth.carries_credential
    )
    return AuthInjection(
        type=auth.type,
        env_var_name=auth.env_var_name,
        header_name=auth.header_name,
        cookie_name=auth.cookie_name,
        scheme_prefix="Bearer" if auth.type in (AuthType.BEARER, AuthType.OAUTH) else None,
        manual_input_required=manual,
    )


def generate_surface(
    catalog: EndpointCatalog,
    retry: Optional[RetryPolicy] = None,
    cache_enabled: bool = True,
    cache_ttl: int = 300,
) -> CommandSurface:
    """Generate the command surface for a confirmed catalog.

    Args:
        catalog: A catalog returned by :meth:`CatalogDraft.confirm`.
        retry: Retry policy for the generated client (3 attempts by default).
        cache_enabled: Allow caching at all; individual commands still
            need a cacheable, read-only endpoint.
        cache_ttl: Cache TTL in seconds.

    Raises:
        GenerationInvariantViolation: The catalog is unconfirmed or broken.
    """
    validate_catalog(catalog)

    commands: list[CommandSpec] = []
    for group in catalog.resources:
        endpoints = list(group.endpoints)
        for endpoint, verb in zip(endpoints, assign_verbs(endpoints)):
            commands.append(_build_command(group, endpoint, verb, cache_enabled))

    cacheable = tuple(c.name for c in commands if c.cacheable)
    client = ClientConfig(
        base_url=catalog.base_url,
        auth=auth_injection(catalog),
        pagination=catalog.pagination.style if catalog.pagination else None,
        retry=retry or RetryPolicy(),
        rate_limit=catalog.rate_limit,
        cache=CachePolicy(enabled=bool(cacheable), ttl_seconds=cache_ttl, cacheable_commands=cacheable),
    )
    return CommandSurface(
        program=catalog.service_name,
        description=catalog.title or f"Command line client for {catalog.base_url}",
        commands=tuple(commands),
        global_flags=GLOBAL_FLAGS,
        client=client,
    )


def example_invocation(surface: CommandSurface, command: CommandSpec) -> str:
    """Shell form of *command* with its positionals and required flags filled in."""
    parts = [surface.program, command.group, command.verb]
    parts += [f"<{a.dest}>" for a in command.arguments]
    parts += [f"{f.flag} <{kebab(f.dest)}>" for f in command.flags if f.required]
    return " ".join(parts)


def group_description(group: ResourceGroup) -> str:
    return group.description or f"Operations on {group.name}."
