"""Load specification documents from a URL, local file, or stdin.

This module handles all I/O for fetching raw specification documents and
converting them into Python dictionaries. It supports JSON and YAML with
automatic format detection and recognises three document kinds:
OpenAPI 3.x, Swagger 2.0, and GraphQL introspection results.

The public functions are:

* :func:`load_document` -- Load and parse a document from any source.
* :func:`parse_document` -- Parse already-fetched text (used by the probe
  adapter for well-known spec paths).
* :func:`detect_document_kind` -- Classify a parsed document.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Optional

import httpx
import yaml

from discli.exceptions import SpecParseError

KIND_OPENAPI3 = "openapi3"
KIND_SWAGGER2 = "swagger2"
KIND_GRAPHQL = "graphql"


def load_document(source: str, timeout: float = 30.0) -> dict[str, Any]:
    """Load a specification from URL, file path, or stdin (``-``).

    Args:
        source: A URL (http/https), file path, or ``-`` for stdin.
        timeout: Request timeout for URL sources.

    Returns:
        The parsed document as a dictionary.

    Raises:
        SpecParseError: If the source cannot be loaded or parsed at all.
    """
    if source == "-":
        return _load_from_stdin()
    if source.startswith(("http://", "https://")):
        return _load_from_url(source, timeout)
    return _load_from_file(source)


def _load_from_stdin() -> dict[str, Any]:
    content = sys.stdin.read()
    if not content.strip():
        raise SpecParseError("No input received from stdin")
    return parse_document(content, hint="stdin")


def _load_from_url(url: str, timeout: float) -> dict[str, Any]:
    try:
        response = httpx.get(url, timeout=timeout, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise SpecParseError(
            f"HTTP {exc.response.status_code} fetching spec from {url}"
        ) from exc
    except httpx.RequestError as exc:
        raise SpecParseError(f"Failed to fetch spec from {url}: {exc}") from exc

    return parse_document(response.text, hint=_hint_from_content_type(
        response.headers.get("content-type", "")
    ))


def _load_from_file(path: str) -> dict[str, Any]:
    file_path = Path(path)
    if not file_path.is_file():
        raise SpecParseError(f"Spec file not found: {path}")

    try:
        content = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SpecParseError(f"Failed to read spec file {path}: {exc}") from exc

    if not content.strip():
        raise SpecParseError(f"Spec file is empty: {path}")

    suffix = file_path.suffix.lower()
    hint = ""
    if suffix == ".json":
        hint = "json"
    elif suffix in (".yaml", ".yml"):
        hint = "yaml"
    return parse_document(content, hint=hint)


def _hint_from_content_type(content_type: str) -> str:
    if "json" in content_type:
        return "json"
    if "yaml" in content_type or "yml" in content_type:
        return "yaml"
    return ""


def parse_document(content: str, hint: str = "") -> dict[str, Any]:
    """Parse content as JSON or YAML.

    Tries JSON first (unless *hint* is ``yaml``), then falls back to YAML.
    Valid JSON is also valid YAML, but JSON parsing is stricter and faster.

    Raises:
        SpecParseError: If the content is neither format, or is not a mapping.
    """
    json_error: Exception | None = None

    if hint != "yaml":
        try:
            result = json.loads(content)
        except json.JSONDecodeError as exc:
            json_error = exc
            if hint == "json":
                raise SpecParseError(f"Invalid JSON: {exc}") from exc
        else:
            if not isinstance(result, dict):
                raise SpecParseError(
                    f"Spec must be a JSON/YAML object (got {type(result).__name__})"
                )
            return result

    try:
        result = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        msg = "Failed to parse spec as JSON or YAML"
        if json_error:
            msg += f"\n  JSON error: {json_error}"
        msg += f"\n  YAML error: {exc}"
        raise SpecParseError(msg) from exc

    if not isinstance(result, dict):
        raise SpecParseError(
            "Spec must be a JSON/YAML object (got "
            f"{type(result).__name__ if result is not None else 'empty document'})"
        )
    return result


def detect_document_kind(document: dict[str, Any]) -> Optional[str]:
    """Classify a parsed document.

    Returns:
        :data:`KIND_OPENAPI3`, :data:`KIND_SWAGGER2`, :data:`KIND_GRAPHQL`,
        or ``None`` when the document is none of them.
    """
    if str(document.get("swagger", "")).startswith("2."):
        return KIND_SWAGGER2
    if str(document.get("openapi", "")).startswith("3."):
        return KIND_OPENAPI3
    data = document.get("data") if isinstance(document.get("data"), dict) else document
    if isinstance(data, dict) and isinstance(data.get("__schema"), dict):
        return KIND_GRAPHQL
    return None
