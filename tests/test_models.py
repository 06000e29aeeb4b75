"""Tests for discli.models and discli.exceptions."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from discli.exceptions import (
    DiscliError,
    GenerationInvariantViolation,
    RuntimeApiFailure,
    RuntimeCredentialMissing,
    RuntimeValidationFailure,
    api_failure_for_status,
)
from discli.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_GENERATION_FAILURE,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NOT_FOUND,
    EXIT_SERVER_ERROR,
    EXIT_TRANSIENT_FAILURE,
)
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


# ---------------------------------------------------------------------------
# Catalog models
# ---------------------------------------------------------------------------


class TestParameter:
    def test_path_parameters_are_always_required(self) -> None:
        param = Parameter(name="id", location=ParameterLocation.PATH, required=False)
        assert param.required is True

    def test_path_location_as_string(self) -> None:
        param = Parameter.model_validate({"name": "id", "location": "path"})
        assert param.required is True

    def test_query_parameters_default_optional(self) -> None:
        assert Parameter(name="q", location=ParameterLocation.QUERY).required is False

    def test_frozen(self) -> None:
        param = Parameter(name="q", location=ParameterLocation.QUERY)
        with pytest.raises(ValidationError):
            param.name = "other"


class TestEndpoint:
    def test_key_and_placeholders(self) -> None:
        endpoint = Endpoint(method=HTTPMethod.GET, path="/users/{user_id}/orders/{id}")
        assert endpoint.key == ("GET", "/users/{user_id}/orders/{id}")
        assert endpoint.placeholders == ["user_id", "id"]

    def test_parameters_in(self) -> None:
        endpoint = Endpoint(
            method=HTTPMethod.GET,
            path="/users/{id}",
            parameters=(
                Parameter(name="id", location=ParameterLocation.PATH),
                Parameter(name="expand", location=ParameterLocation.QUERY),
            ),
        )
        assert [p.name for p in endpoint.parameters_in(ParameterLocation.QUERY)] == ["expand"]

    def test_placeholders_inside_a_segment(self) -> None:
        endpoint = Endpoint(method=HTTPMethod.GET, path="/files/{id}.json")
        assert endpoint.placeholders == ["id"]


class TestEndpointCatalog:
    def test_counts_and_lookup(self) -> None:
        users = ResourceGroup(
            name="users",
            endpoints=(
                Endpoint(method=HTTPMethod.GET, path="/users"),
                Endpoint(method=HTTPMethod.POST, path="/users"),
            ),
        )
        catalog = EndpointCatalog(service_name="acme", base_url="https://acme.test", resources=(users,))

        assert catalog.endpoint_count == 2
        assert catalog.resource("users") is users
        assert catalog.resource("orders") is None
        assert [e.method for _, e in catalog.iter_endpoints()] == [HTTPMethod.GET, HTTPMethod.POST]

    def test_unconfirmed_by_default(self) -> None:
        assert EndpointCatalog(service_name="acme", base_url="https://acme.test").confirmed is False

    @pytest.mark.parametrize("name", ["My-Api", "my-api", "my_api", "1api", ""])
    def test_service_name_must_be_a_program_name(self, name: str) -> None:
        with pytest.raises(ValidationError, match="service_name"):
            EndpointCatalog(service_name=name, base_url="https://acme.test")

    @pytest.mark.parametrize("url", ["https://acme.test/", "ftp://acme.test", "/v1", "acme.test"])
    def test_base_url_must_be_absolute_without_trailing_slash(self, url: str) -> None:
        with pytest.raises(ValidationError, match="base_url"):
            EndpointCatalog(service_name="acme", base_url=url)

    def test_base_url_may_carry_a_path(self) -> None:
        assert EndpointCatalog(service_name="acme", base_url="https://acme.test/v1").base_url == "https://acme.test/v1"


class TestAuthSpec:
    @pytest.mark.parametrize(
        "spec, expected",
        [
            (AuthSpec(type=AuthType.API_KEY, header_name="X-API-Key"), True),
            (AuthSpec(type=AuthType.API_KEY), False),
            (AuthSpec(type=AuthType.COOKIE, cookie_name="session"), True),
            (AuthSpec(type=AuthType.COOKIE, header_name="Cookie"), False),
            (AuthSpec(type=AuthType.UNKNOWN), False),
        ],
    )
    def test_carries_credential(self, spec: AuthSpec, expected: bool) -> None:
        assert spec.carries_credential is expected


# ---------------------------------------------------------------------------
# Surface models
# ---------------------------------------------------------------------------


class TestRetryPolicy:
    def test_retries_429_and_5xx_only(self) -> None:
        policy = RetryPolicy()
        assert policy.should_retry(429)
        assert policy.should_retry(503)
        assert not policy.should_retry(404)
        assert not policy.should_retry(400)

    def test_exponential_delay_is_capped(self) -> None:
        policy = RetryPolicy(base_delay=1, max_delay=5)
        assert [policy.delay_for(n) for n in range(4)] == [1, 2, 4, 5]

    def test_retry_after_wins_but_is_capped(self) -> None:
        policy = RetryPolicy(max_delay=10)
        assert policy.delay_for(0, retry_after=3) == 3
        assert policy.delay_for(0, retry_after=60) == 10


class TestCommandSurface:
    def test_describe_lists_every_command(self, shop_surface: CommandSurface) -> None:
        listing = shop_surface.describe()

        assert listing["program"] == "shop"
        assert listing["base_url"] == "https://api.shop.test/v1"
        assert listing["auth"] == {"type": "bearer", "env_var": "SHOP_API_KEY"}
        assert [f["flag"] for f in listing["global_flags"]] == ["--json", "--human"]
        assert len(listing["commands"]) == len(shop_surface.commands)
        create = next(c for c in listing["commands"] if c["name"] == "items create")
        assert create["method"] == "POST"
        assert {"flag": "--name", "type": "string", "required": True, "description": "Display name"} in create["flags"]

    def test_command_lookup(self, shop_surface: CommandSurface) -> None:
        assert shop_surface.command("users get").verb == "get"
        assert shop_surface.command("users explode") is None
        assert [c.verb for c in shop_surface.commands_in("users")] == ["list", "get"]


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class TestExceptions:
    def test_class_defaults(self) -> None:
        exc = RuntimeValidationFailure("missing <id>")
        assert exc.exit_code == EXIT_INVALID_USAGE
        assert exc.code == "VALIDATION_FAILED"
        assert exc.fix

    def test_per_instance_overrides(self) -> None:
        exc = GenerationInvariantViolation("nope", code="CATALOG_UNCONFIRMED", fix="confirm it", details={"a": 1})
        assert exc.exit_code == EXIT_GENERATION_FAILURE
        assert exc.code == "CATALOG_UNCONFIRMED"
        assert exc.fix == "confirm it"
        assert exc.details == {"a": 1}

    def test_empty_fix_keeps_default(self) -> None:
        assert DiscliError("x", fix="").fix == DiscliError.fix

    def test_credential_missing_is_auth_failure(self) -> None:
        assert RuntimeCredentialMissing("unset").exit_code == EXIT_AUTH_FAILURE

    @pytest.mark.parametrize(
        "status, code, exit_code, retryable",
        [
            (401, "AUTH_FAILED", EXIT_AUTH_FAILURE, False),
            (403, "AUTH_FAILED", EXIT_AUTH_FAILURE, False),
            (404, "NOT_FOUND", EXIT_NOT_FOUND, False),
            (429, "RATE_LIMITED", EXIT_TRANSIENT_FAILURE, True),
            (502, "SERVER_ERROR", EXIT_SERVER_ERROR, True),
            (422, "API_ERROR", EXIT_GENERIC_FAILURE, False),
        ],
    )
    def test_api_failure_for_status(self, status: int, code: str, exit_code: int, retryable: bool) -> None:
        exc = api_failure_for_status(status, f"HTTP {status}")
        assert isinstance(exc, RuntimeApiFailure)
        assert exc.code == code
        assert exc.exit_code == exit_code
        assert exc.retryable is retryable
        assert exc.status_code == status
        assert exc.fix
