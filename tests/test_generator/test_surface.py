"""Tests for discli.generator.surface."""

from __future__ import annotations

from typing import Any

import pytest

from discli.catalog import build_catalog
from discli.discovery import adapt_spec_document
from discli.exceptions import GenerationInvariantViolation
from discli.generator import generate_surface, validate_catalog
from discli.generator.surface import auth_injection, example_invocation, group_description
from discli.models import (
    AuthSpec,
    AuthType,
    CommandSurface,
    Endpoint,
    EndpointCatalog,
    HTTPMethod,
    Parameter,
    ParameterLocation,
    ResourceGroup,
    RetryPolicy,
)
from discli.normalizer import normalize


def _flags(surface: CommandSurface, name: str) -> list[tuple[str, str, str]]:
    return [(f.flag, f.dest, f.kind) for f in surface.command(name).flags]


def _catalog(*endpoints: Endpoint, **fields: Any) -> EndpointCatalog:
    values: dict[str, Any] = {
        "service_name": "acme",
        "base_url": "https://api.acme.test",
        "resources": (ResourceGroup(name="things", endpoints=endpoints),),
        "confirmed": True,
    }
    values.update(fields)
    return EndpointCatalog(**values)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class TestShopSurface:
    def test_command_names_in_catalog_order(self, shop_surface: CommandSurface) -> None:
        assert [c.name for c in shop_surface.commands] == [
            "items list",
            "items create",
            "items get",
            "items update",
            "items delete",
            "users list",
            "users get",
            "health list",
        ]
        assert shop_surface.program == "shop"
        assert shop_surface.description == "Shop API"

    def test_cursor_list_flags(self, shop_surface: CommandSurface) -> None:
        assert _flags(shop_surface, "items list") == [
            ("--limit", "limit", "limit"),
            ("--cursor", "page", "page"),
            ("--all", "all_pages", "all"),
        ]
        command = shop_surface.command("items list")
        assert command.pagination.request_param_name == "cursor"
        assert command.read_only is True

    def test_page_list_flags(self, shop_surface: CommandSurface) -> None:
        assert _flags(shop_surface, "users list") == [
            ("--page", "page", "page"),
            ("--limit", "limit", "limit"),
            ("--all", "all_pages", "all"),
        ]
        limit = shop_surface.command("users list").flag_for("limit")
        assert limit.synthesized is True
        assert limit.param_name == "limit"

    def test_unpaginated_list_has_only_limit(self, shop_surface: CommandSurface) -> None:
        assert _flags(shop_surface, "health list") == [("--limit", "limit", "limit")]
        assert shop_surface.command("health list").auth_required is False

    def test_body_flags(self, shop_surface: CommandSurface) -> None:
        create = shop_surface.command("items create")
        assert [(f.flag, f.required, f.location, f.type) for f in create.flags] == [
            ("--name", True, ParameterLocation.BODY, "string"),
            ("--price", False, ParameterLocation.BODY, "number"),
        ]
        assert create.read_only is False
        assert create.description == "Create an item"

    def test_arguments(self, shop_surface: CommandSurface) -> None:
        get = shop_surface.command("items get")
        assert [(a.name, a.dest) for a in get.arguments] == [("itemId", "item_id")]
        user = shop_surface.command("users get")
        assert [(a.name, a.dest, a.type) for a in user.arguments] == [("id", "id", "integer")]

    def test_client_config(self, shop_surface: CommandSurface) -> None:
        client = shop_surface.client
        assert client.base_url == "https://api.shop.test/v1"
        assert client.auth.type == AuthType.BEARER
        assert client.auth.header_name == "Authorization"
        assert client.auth.scheme_prefix == "Bearer"
        assert client.auth.env_var_name == "SHOP_API_KEY"
        assert client.auth.manual_input_required is False
        assert client.pagination is None
        assert client.retry == RetryPolicy()
        assert client.cache.enabled is False

    def test_global_flags(self, shop_surface: CommandSurface) -> None:
        assert [f.flag for f in shop_surface.global_flags] == ["--json", "--human"]

    def test_generation_is_deterministic(self, shop_catalog: EndpointCatalog) -> None:
        assert generate_surface(shop_catalog) == generate_surface(shop_catalog)

    def test_describe(self, shop_surface: CommandSurface) -> None:
        listing = shop_surface.describe()
        assert listing["program"] == "shop"
        assert listing["auth"] == {"type": "bearer", "env_var": "SHOP_API_KEY"}
        assert len(listing["commands"]) == 8
        assert listing["commands"][2]["arguments"] == ["itemId"]


class TestCaching:
    def test_cacheable_commands(self, shop_spec_raw: dict[str, Any]) -> None:
        catalog = build_catalog(normalize([adapt_spec_document(shop_spec_raw)])).confirm(cacheable_resources=["items"])
        surface = generate_surface(catalog, cache_ttl=60)
        assert surface.client.cache.enabled is True
        assert surface.client.cache.ttl_seconds == 60
        assert surface.client.cache.cacheable_commands == ("items list", "items get")
        assert surface.command("items list").cacheable is True
        assert surface.command("items create").cacheable is False

    def test_cache_can_be_disabled(self, shop_spec_raw: dict[str, Any]) -> None:
        catalog = build_catalog(normalize([adapt_spec_document(shop_spec_raw)])).confirm(cacheable_resources=["*"])
        surface = generate_surface(catalog, cache_enabled=False)
        assert surface.client.cache.enabled is False
        assert not any(c.cacheable for c in surface.commands)

    def test_custom_retry(self, shop_catalog: EndpointCatalog) -> None:
        surface = generate_surface(shop_catalog, retry=RetryPolicy(max_attempts=5))
        assert surface.client.retry.max_attempts == 5


class TestFlagNaming:
    def test_reserved_names_are_prefixed_with_location(self) -> None:
        endpoint = Endpoint(
            method=HTTPMethod.POST,
            path="/things",
            parameters=(
                Parameter(name="all", location=ParameterLocation.BODY),
                Parameter(name="json", location=ParameterLocation.QUERY),
                Parameter(name="limit", location=ParameterLocation.BODY),
            ),
        )
        surface = generate_surface(_catalog(endpoint))
        assert _flags(surface, "things create") == [
            ("--body-all", "body_all", "param"),
            ("--query-json", "query_json", "param"),
            ("--body-limit", "body_limit", "param"),
        ]

    def test_argument_and_flag_sharing_a_name(self) -> None:
        endpoint = Endpoint(
            method=HTTPMethod.PATCH,
            path="/things/{id}",
            parameters=(
                Parameter(name="id", location=ParameterLocation.PATH),
                Parameter(name="id", location=ParameterLocation.BODY),
            ),
        )
        command = generate_surface(_catalog(endpoint)).command("things update")
        assert [a.dest for a in command.arguments] == ["id"]
        assert [(f.flag, f.dest) for f in command.flags] == [("--body-id", "body_id")]

    def test_non_core_paths_use_last_segment(self) -> None:
        endpoints = (
            Endpoint(method=HTTPMethod.GET, path="/things"),
            Endpoint(
                method=HTTPMethod.POST,
                path="/things/{id}/archive",
                parameters=(Parameter(name="id", location=ParameterLocation.PATH),),
            ),
        )
        surface = generate_surface(_catalog(*endpoints))
        assert [c.name for c in surface.commands] == ["things list", "things archive"]


class TestAuthInjection:
    def test_unknown_requires_manual_input(self) -> None:
        injection = auth_injection(_catalog(auth=AuthSpec(type=AuthType.UNKNOWN, note="?")))
        assert injection.manual_input_required is True

    def test_api_key_without_header_requires_manual_input(self) -> None:
        injection = auth_injection(_catalog(auth=AuthSpec(type=AuthType.API_KEY)))
        assert injection.manual_input_required is True

    def test_none_needs_nothing(self) -> None:
        injection = auth_injection(_catalog(auth=AuthSpec(type=AuthType.NONE)))
        assert injection.manual_input_required is False
        assert injection.scheme_prefix is None

    def test_cookie(self) -> None:
        injection = auth_injection(_catalog(auth=AuthSpec(type=AuthType.COOKIE, cookie_name="session")))
        assert (injection.cookie_name, injection.manual_input_required) == ("session", False)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    def test_unconfirmed(self, shop_spec_raw: dict[str, Any]) -> None:
        draft = build_catalog(normalize([adapt_spec_document(shop_spec_raw)]))
        with pytest.raises(GenerationInvariantViolation) as exc_info:
            generate_surface(draft.catalog)
        assert exc_info.value.code == "CATALOG_UNCONFIRMED"
        assert exc_info.value.exit_code == 9

    def test_bad_service_name(self) -> None:
        with pytest.raises(GenerationInvariantViolation, match="program name"):
            validate_catalog(_catalog().model_copy(update={"service_name": "my-shop"}))

    def test_trailing_slash(self) -> None:
        with pytest.raises(GenerationInvariantViolation, match="trailing slash"):
            validate_catalog(_catalog().model_copy(update={"base_url": "https://api.acme.test/"}))

    def test_not_a_url(self) -> None:
        with pytest.raises(GenerationInvariantViolation):
            validate_catalog(_catalog().model_copy(update={"base_url": "ftp://acme"}))

    def test_duplicate_endpoint(self) -> None:
        endpoint = Endpoint(method=HTTPMethod.GET, path="/things")
        with pytest.raises(GenerationInvariantViolation) as exc_info:
            validate_catalog(_catalog(endpoint, endpoint))
        assert exc_info.value.details == {"resource": "things", "method": "GET", "path": "/things"}

    def test_placeholder_without_parameter(self) -> None:
        with pytest.raises(GenerationInvariantViolation, match="do not match"):
            validate_catalog(_catalog(Endpoint(method=HTTPMethod.GET, path="/things/{id}")))

    def test_parameter_without_placeholder(self) -> None:
        endpoint = Endpoint(
            method=HTTPMethod.GET,
            path="/things",
            parameters=(Parameter(name="id", location=ParameterLocation.PATH),),
        )
        with pytest.raises(GenerationInvariantViolation):
            validate_catalog(_catalog(endpoint))

    def test_valid_catalog_passes(self, shop_catalog: EndpointCatalog) -> None:
        validate_catalog(shop_catalog)


class TestHelpers:
    def test_example_invocation(self, shop_surface: CommandSurface) -> None:
        assert example_invocation(shop_surface, shop_surface.command("items create")) == "shop items create --name <name>"
        assert example_invocation(shop_surface, shop_surface.command("items get")) == "shop items get <item_id>"

    def test_group_description(self) -> None:
        assert group_description(ResourceGroup(name="things")) == "Operations on things."
        assert group_description(ResourceGroup(name="things", description="Stuff")) == "Stuff"
