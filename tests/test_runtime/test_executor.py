"""Tests for discli.runtime.executor -- from collected values to one outcome."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

from discli.cache import ResponseCache
from discli.catalog import build_catalog
from discli.discovery import adapt_spec_document
from discli.exceptions import RuntimeValidationFailure
from discli.generator import generate_surface
from discli.models import (
    ArgumentSpec,
    AuthInjection,
    AuthType,
    ClientConfig,
    CommandSpec,
    CommandSurface,
    FlagSpec,
    GraphQLOperation,
    HTTPMethod,
    ParameterLocation,
)
from discli.normalizer import normalize
from discli.runtime.audience import Audience
from discli.runtime.executor import CommandRuntime, coerce, graphql_document

Handler = Callable[[httpx.Request], httpx.Response]


class Api:
    """A MockTransport that records requests and answers from a handler."""

    def __init__(self, handler: Handler | None = None) -> None:
        self.requests: list[httpx.Request] = []
        self._handler = handler or (lambda request: httpx.Response(200, json={}))

    def transport(self) -> httpx.MockTransport:
        def handle(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return self._handler(request)

        return httpx.MockTransport(handle)


def _runtime(surface: CommandSurface, api: Api, tmp_path: Path, **kwargs: Any) -> CommandRuntime:
    values: dict[str, Any] = {
        "environ": {"SHOP_API_KEY": "tok"},
        "transport": api.transport(),
        "spill_dir": tmp_path / "results",
        "sleep": lambda seconds: None,
    }
    values.update(kwargs)
    return CommandRuntime(surface, **values)


def _books_surface() -> CommandSurface:
    book = CommandSpec(
        name="query book",
        group="query",
        verb="book",
        method=HTTPMethod.POST,
        path="/query/book",
        flags=(FlagSpec(flag="--id", dest="id", param_name="id", location=ParameterLocation.BODY, required=True),),
        read_only=False,
        graphql=GraphQLOperation(kind="query", field="book", selection=("id", "title")),
    )
    search = CommandSpec(
        name="things search",
        group="things",
        verb="search",
        method=HTTPMethod.GET,
        path="/things/search",
        flags=(
            FlagSpec(flag="--trace", dest="trace", param_name="X-Trace", location=ParameterLocation.HEADER),
            FlagSpec(flag="--tags", dest="tags", param_name="tags", location=ParameterLocation.QUERY, type="array"),
            FlagSpec(flag="--page", dest="page", kind="page"),
        ),
    )
    return CommandSurface(
        program="books",
        commands=(book, search),
        client=ClientConfig(
            base_url="https://books.test",
            auth=AuthInjection(type=AuthType.NONE, env_var_name="BOOKS_API_KEY"),
        ),
    )


# ---------------------------------------------------------------------------
# Value handling
# ---------------------------------------------------------------------------


class TestCoerce:
    @pytest.mark.parametrize(
        "value, type_name, expected",
        [
            ("5", "integer", 5),
            ("2.5", "number", 2.5),
            ("yes", "boolean", True),
            ("off", "boolean", False),
            ('["a", "b"]', "array", ["a", "b"]),
            ('{"k": 1}', "object", {"k": 1}),
            ("plain", "string", "plain"),
            (None, "integer", None),
            (True, "boolean", True),
        ],
    )
    def test_valid(self, value: Any, type_name: str, expected: Any) -> None:
        assert coerce(value, type_name, "--x") == expected

    def test_bad_integer(self) -> None:
        with pytest.raises(RuntimeValidationFailure, match="--limit expects an integer, got 'abc'") as exc_info:
            coerce("abc", "integer", "--limit")
        assert exc_info.value.details == {"flag": "--limit", "type": "integer"}

    def test_bad_boolean(self) -> None:
        with pytest.raises(RuntimeValidationFailure, match="expects a boolean"):
            coerce("maybe", "boolean", "--x")

    def test_json_of_the_wrong_shape(self) -> None:
        with pytest.raises(RuntimeValidationFailure) as exc_info:
            coerce("{}", "array", "--tags")
        assert exc_info.value.fix == "Pass a valid array value for --tags as JSON."


class TestGraphqlDocument:
    def test_inline_literals(self) -> None:
        operation = GraphQLOperation(kind="query", field="book", selection=("id", "title"))
        assert graphql_document(operation, {"id": "1"}) == 'query { book(id: "1") { id title } }'

    def test_no_arguments_no_selection(self) -> None:
        operation = GraphQLOperation(kind="mutation", field="reset")
        assert graphql_document(operation, {}) == "mutation { reset }"

    def test_nested_values(self) -> None:
        operation = GraphQLOperation(kind="mutation", field="addBook")
        document = graphql_document(operation, {"input": {"title": "Dune", "tags": ["sf"]}})
        assert document == 'mutation { addBook(input: {title: "Dune", tags: ["sf"]}) }'


# ---------------------------------------------------------------------------
# Request preparation
# ---------------------------------------------------------------------------


class TestPrepare:
    def test_missing_values(self, shop_surface: CommandSurface, tmp_path: Path) -> None:
        runtime = _runtime(shop_surface, Api(), tmp_path)
        with pytest.raises(RuntimeValidationFailure) as exc_info:
            runtime.prepare(shop_surface.command("items create"), {}, {})
        assert exc_info.value.details == {"missing": ["--name"]}
        assert exc_info.value.fix == "Supply every required value, e.g. `shop items create --name <name>`."

    def test_missing_positional(self, shop_surface: CommandSurface, tmp_path: Path) -> None:
        runtime = _runtime(shop_surface, Api(), tmp_path)
        with pytest.raises(RuntimeValidationFailure, match="<item_id>"):
            runtime.prepare(shop_surface.command("items get"), {"item_id": ""}, {})

    def test_path_values_are_quoted(self, shop_surface: CommandSurface, tmp_path: Path) -> None:
        runtime = _runtime(shop_surface, Api(), tmp_path)
        request = runtime.prepare(shop_surface.command("items get"), {"item_id": "a/b c"}, {})
        assert request.path == "/items/a%2Fb%20c"
        assert request.method == "GET"

    def test_typed_positional(self, shop_surface: CommandSurface, tmp_path: Path) -> None:
        runtime = _runtime(shop_surface, Api(), tmp_path)
        with pytest.raises(RuntimeValidationFailure, match="<id> expects an integer"):
            runtime.prepare(shop_surface.command("users get"), {"id": "abc"}, {})

    def test_query_flags(self, shop_surface: CommandSurface, tmp_path: Path) -> None:
        runtime = _runtime(shop_surface, Api(), tmp_path)
        request = runtime.prepare(
            shop_surface.command("items list"), {}, {"limit": "5", "page": "c2", "all_pages": False},
        )
        assert request.query == {"limit": 5, "cursor": "c2"}
        assert request.body == {}

    def test_body_flags(self, shop_surface: CommandSurface, tmp_path: Path) -> None:
        runtime = _runtime(shop_surface, Api(), tmp_path)
        request = runtime.prepare(shop_surface.command("items create"), {}, {"name": "Widget", "price": "9.5"})
        assert request.body == {"name": "Widget", "price": 9.5}
        assert request.query == {}

    def test_header_and_array_flags(self, tmp_path: Path) -> None:
        surface = _books_surface()
        runtime = _runtime(surface, Api(), tmp_path)
        request = runtime.prepare(surface.command("things search"), {}, {"trace": "abc", "tags": '["x"]'})
        assert request.headers == {"X-Trace": "abc"}
        assert request.query == {"tags": ["x"]}

    def test_link_page_flag_replaces_path(self, tmp_path: Path) -> None:
        surface = _books_surface()
        runtime = _runtime(surface, Api(), tmp_path)
        request = runtime.prepare(surface.command("things search"), {}, {"page": "https://books.test/things/search?p=2"})
        assert request.path == "https://books.test/things/search?p=2"


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class TestExecute:
    def test_success(self, shop_surface: CommandSurface, tmp_path: Path) -> None:
        api = Api(lambda r: httpx.Response(200, json={"data": [{"id": "itm_1"}], "next_cursor": None}))
        runtime = _runtime(shop_surface, api, tmp_path)

        outcome = runtime.execute(shop_surface.command("items list"), {}, {"limit": "1"})

        assert outcome.ok is True
        assert outcome.command == "shop items list"
        assert outcome.result == {"data": [{"id": "itm_1"}], "next_cursor": None}
        assert outcome.next_actions[0]["command"] == "shop items get itm_1"
        sent = api.requests[0]
        assert str(sent.url) == "https://api.shop.test/v1/items?limit=1"
        assert sent.headers["Authorization"] == "Bearer tok"

    def test_validation_failure_sends_nothing(self, shop_surface: CommandSurface, tmp_path: Path) -> None:
        api = Api()
        outcome = _runtime(shop_surface, api, tmp_path).execute(shop_surface.command("items create"), {}, {})

        assert outcome.ok is False
        assert outcome.error.code == "VALIDATION_FAILED"
        assert outcome.exit_code == 2
        assert outcome.next_actions[0]["command"] == "shop items create --name <value>"
        assert api.requests == []

    def test_missing_credential(self, shop_surface: CommandSurface, tmp_path: Path) -> None:
        api = Api()
        runtime = _runtime(shop_surface, api, tmp_path, environ={})
        outcome = runtime.execute(shop_surface.command("items list"), {}, {})

        assert outcome.error.code == "MISSING_CREDENTIAL"
        assert outcome.exit_code == 3
        assert "SHOP_API_KEY" in outcome.error.message
        assert api.requests == []

    def test_anonymous_endpoint_needs_no_credential(self, shop_surface: CommandSurface, tmp_path: Path) -> None:
        api = Api(lambda r: httpx.Response(200, json={"status": "ok"}))
        outcome = _runtime(shop_surface, api, tmp_path, environ={}).execute(
            shop_surface.command("health list"), {}, {},
        )
        assert outcome.ok is True
        assert outcome.result == {"status": "ok"}
        assert "Authorization" not in api.requests[0].headers

    def test_not_found(self, shop_surface: CommandSurface, tmp_path: Path) -> None:
        api = Api(lambda r: httpx.Response(404, json={"message": "no such item"}))
        outcome = _runtime(shop_surface, api, tmp_path).execute(
            shop_surface.command("items get"), {"item_id": "nope"}, {},
        )
        assert outcome.error.code == "NOT_FOUND"
        assert outcome.error.message == "HTTP 404: no such item"
        assert outcome.exit_code == 4
        assert outcome.next_actions == [{"command": "shop items list", "description": "List valid ids"}]

    def test_redirect_loop_is_a_failure_outcome(self, shop_surface: CommandSurface, tmp_path: Path) -> None:
        def loop(request: httpx.Request) -> httpx.Response:
            raise httpx.TooManyRedirects("Exceeded maximum allowed redirects.", request=request)

        outcome = _runtime(shop_surface, Api(loop), tmp_path).execute(
            shop_surface.command("items list"), {}, {},
        )
        assert outcome.ok is False
        assert outcome.error.code == "REQUEST_FAILED"
        assert outcome.error.fix
        assert outcome.exit_code != 0

    def test_protocol_error_is_a_network_failure(self, shop_surface: CommandSurface, tmp_path: Path) -> None:
        def drop(request: httpx.Request) -> httpx.Response:
            raise httpx.RemoteProtocolError("Server disconnected without sending a response.", request=request)

        api = Api(drop)
        outcome = _runtime(shop_surface, api, tmp_path).execute(
            shop_surface.command("items list"), {}, {},
        )
        assert outcome.error.code == "NETWORK_ERROR"
        assert outcome.exit_code == 6
        assert len(api.requests) == shop_surface.client.retry.max_attempts

    def test_create_sends_json_body(self, shop_surface: CommandSurface, tmp_path: Path) -> None:
        api = Api(lambda r: httpx.Response(201, json={"id": "itm_2", "name": "Gadget"}))
        outcome = _runtime(shop_surface, api, tmp_path).execute(
            shop_surface.command("items create"), {}, {"name": "Gadget"},
        )
        assert json.loads(api.requests[0].content) == {"name": "Gadget"}
        assert api.requests[0].method == "POST"
        assert outcome.next_actions[0]["command"] == "shop items get itm_2"

    def test_all_pages(self, shop_surface: CommandSurface, tmp_path: Path) -> None:
        def pages(request: httpx.Request) -> httpx.Response:
            if request.url.params.get("cursor") == "c2":
                return httpx.Response(200, json={"data": [{"id": "b"}], "next_cursor": None})
            return httpx.Response(200, json={"data": [{"id": "a"}], "next_cursor": "c2"})

        api = Api(pages)
        outcome = _runtime(shop_surface, api, tmp_path).execute(
            shop_surface.command("items list"), {}, {"all_pages": True},
        )
        assert outcome.result == [{"id": "a"}, {"id": "b"}]
        assert len(api.requests) == 2

    def test_large_results_are_truncated(self, shop_surface: CommandSurface, tmp_path: Path) -> None:
        records = [{"id": f"itm_{i}"} for i in range(5)]
        api = Api(lambda r: httpx.Response(200, json={"data": records}))
        runtime = _runtime(shop_surface, api, tmp_path, truncate_threshold=2)

        outcome = runtime.execute(shop_surface.command("items list"), {}, {})

        assert outcome.result == {"data": records[:2]}
        assert (outcome.truncation.total, outcome.truncation.shown) == (5, 2)
        assert json.loads(Path(outcome.truncation.full_result_path).read_text()) == {"data": records}
        assert outcome.next_actions[0]["command"] == "shop items get itm_0"

    def test_cacheable_command_uses_cache(self, shop_spec_raw: dict[str, Any], tmp_path: Path) -> None:
        catalog = build_catalog(normalize([adapt_spec_document(shop_spec_raw)])).confirm(cacheable_resources=["items"])
        surface = generate_surface(catalog)
        cache = ResponseCache(tmp_path / "cache")
        api = Api(lambda r: httpx.Response(200, json={"id": "itm_1"}))
        runtime = _runtime(surface, api, tmp_path, cache=cache)
        try:
            for _ in range(2):
                assert runtime.execute(surface.command("items get"), {"item_id": "itm_1"}, {}).ok
        finally:
            cache.close()
        assert len(api.requests) == 1


class TestGraphql:
    def test_query(self, tmp_path: Path) -> None:
        api = Api(lambda r: httpx.Response(200, json={"data": {"book": {"id": "1", "title": "Dune"}}}))
        surface = _books_surface()
        outcome = _runtime(surface, api, tmp_path).execute(surface.command("query book"), {}, {"id": "1"})

        assert outcome.result == {"id": "1", "title": "Dune"}
        sent = api.requests[0]
        assert str(sent.url) == "https://books.test/graphql"
        assert json.loads(sent.content) == {"query": 'query { book(id: "1") { id title } }'}

    def test_errors_without_data(self, tmp_path: Path) -> None:
        api = Api(lambda r: httpx.Response(200, json={"data": {"book": None}, "errors": [{"message": "no book"}]}))
        surface = _books_surface()
        outcome = _runtime(surface, api, tmp_path).execute(surface.command("query book"), {}, {"id": "9"})

        assert outcome.ok is False
        assert outcome.error.code == "GRAPHQL_ERROR"
        assert outcome.error.message == "GraphQL error: no book"
        assert outcome.error.details == {"errors": [{"message": "no book"}]}


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


class TestEntryPoints:
    def test_root_outcome(self, shop_surface: CommandSurface, tmp_path: Path) -> None:
        outcome = _runtime(shop_surface, Api(), tmp_path).root_outcome()
        assert outcome.ok is True
        assert outcome.command == "shop"
        assert len(outcome.result["commands"]) == 8
        assert outcome.truncation is None
        assert outcome.next_actions[0]["command"] == "shop items list"

    def test_root_listing_is_never_truncated(self, shop_surface: CommandSurface, tmp_path: Path) -> None:
        outcome = _runtime(shop_surface, Api(), tmp_path, truncate_threshold=1).root_outcome()
        assert len(outcome.result["commands"]) == 8

    def test_dispatch_emits_and_returns_exit_code(
        self, shop_surface: CommandSurface, tmp_path: Path, capsys: pytest.CaptureFixture[str],
    ) -> None:
        runtime = _runtime(shop_surface, Api(), tmp_path)
        code = runtime.dispatch("items create", {}, {}, Audience.AGENT)

        envelope = json.loads(capsys.readouterr().out)
        assert code == 2
        assert envelope["ok"] is False
        assert envelope["error"]["code"] == "VALIDATION_FAILED"
        assert envelope["fix"].startswith("Supply every required value")

    def test_dispatch_unknown_command(self, shop_surface: CommandSurface, tmp_path: Path) -> None:
        with pytest.raises(KeyError):
            _runtime(shop_surface, Api(), tmp_path).dispatch("items explode", {}, {}, Audience.AGENT)

    def test_credential_is_read_once(self, shop_surface: CommandSurface, tmp_path: Path) -> None:
        environ = {"SHOP_API_KEY": "first"}
        runtime = _runtime(shop_surface, Api(), tmp_path, environ=environ)
        environ["SHOP_API_KEY"] = "second"
        assert runtime.credential == "first"
