"""Tests for discli.parser.loader."""

from __future__ import annotations

import io
import json
from pathlib import Path

import httpx
import pytest

from discli.exceptions import SpecParseError
from discli.parser.loader import (
    KIND_GRAPHQL,
    KIND_OPENAPI3,
    KIND_SWAGGER2,
    detect_document_kind,
    load_document,
    parse_document,
)


# ---------------------------------------------------------------------------
# parse_document
# ---------------------------------------------------------------------------


class TestParseDocument:
    def test_json(self) -> None:
        assert parse_document('{"openapi": "3.0.0"}') == {"openapi": "3.0.0"}

    def test_yaml(self) -> None:
        assert parse_document("openapi: 3.0.0\ninfo:\n  title: Shop\n") == {
            "openapi": "3.0.0",
            "info": {"title": "Shop"},
        }

    def test_yaml_hint_skips_json(self) -> None:
        assert parse_document("a: 1", hint="yaml") == {"a": 1}

    def test_invalid_json_with_json_hint(self) -> None:
        with pytest.raises(SpecParseError, match="Invalid JSON"):
            parse_document("{broken", hint="json")

    def test_non_mapping_rejected(self) -> None:
        with pytest.raises(SpecParseError, match="object"):
            parse_document("[1, 2]")

    def test_empty_yaml_rejected(self) -> None:
        with pytest.raises(SpecParseError, match="empty document"):
            parse_document("", hint="yaml")

    def test_unparseable(self) -> None:
        with pytest.raises(SpecParseError, match="JSON or YAML"):
            parse_document("key: [unclosed")


# ---------------------------------------------------------------------------
# load_document
# ---------------------------------------------------------------------------


class TestLoadDocument:
    def test_from_json_file(self, tmp_path: Path) -> None:
        path = tmp_path / "spec.json"
        path.write_text(json.dumps({"openapi": "3.0.3"}))
        assert load_document(str(path)) == {"openapi": "3.0.3"}

    def test_from_yaml_file(self, tmp_path: Path) -> None:
        path = tmp_path / "spec.yaml"
        path.write_text("swagger: '2.0'\n")
        assert load_document(str(path)) == {"swagger": "2.0"}

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(SpecParseError, match="not found"):
            load_document(str(tmp_path / "nope.json"))

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "spec.json"
        path.write_text("   ")
        with pytest.raises(SpecParseError, match="empty"):
            load_document(str(path))

    def test_from_stdin(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("sys.stdin", io.StringIO('{"openapi": "3.1.0"}'))
        assert load_document("-") == {"openapi": "3.1.0"}

    def test_empty_stdin(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("sys.stdin", io.StringIO(""))
        with pytest.raises(SpecParseError, match="stdin"):
            load_document("-")

    def test_from_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def fake_get(url: str, **kwargs: object) -> httpx.Response:
            return httpx.Response(
                200,
                text="openapi: 3.0.0\n",
                headers={"content-type": "application/yaml"},
                request=httpx.Request("GET", url),
            )

        monkeypatch.setattr("discli.parser.loader.httpx.get", fake_get)
        assert load_document("https://api.shop.test/openapi.yaml") == {"openapi": "3.0.0"}

    def test_url_http_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def fake_get(url: str, **kwargs: object) -> httpx.Response:
            return httpx.Response(404, request=httpx.Request("GET", url))

        monkeypatch.setattr("discli.parser.loader.httpx.get", fake_get)
        with pytest.raises(SpecParseError, match="HTTP 404"):
            load_document("https://api.shop.test/openapi.json")

    def test_url_network_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def fake_get(url: str, **kwargs: object) -> httpx.Response:
            raise httpx.ConnectError("refused", request=httpx.Request("GET", url))

        monkeypatch.setattr("discli.parser.loader.httpx.get", fake_get)
        with pytest.raises(SpecParseError, match="Failed to fetch"):
            load_document("https://api.shop.test/openapi.json")


# ---------------------------------------------------------------------------
# detect_document_kind
# ---------------------------------------------------------------------------


class TestDetectDocumentKind:
    def test_openapi3(self) -> None:
        assert detect_document_kind({"openapi": "3.1.0"}) == KIND_OPENAPI3

    def test_swagger2(self) -> None:
        assert detect_document_kind({"swagger": "2.0"}) == KIND_SWAGGER2

    def test_graphql_wrapped_in_data(self) -> None:
        assert detect_document_kind({"data": {"__schema": {}}}) == KIND_GRAPHQL

    def test_graphql_bare(self) -> None:
        assert detect_document_kind({"__schema": {}}) == KIND_GRAPHQL

    def test_unknown(self) -> None:
        assert detect_document_kind({"openapi": "4.0"}) is None
        assert detect_document_kind({"title": "not a spec"}) is None
