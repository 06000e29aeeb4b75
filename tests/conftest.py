"""Shared test fixtures for discli.

Provides reusable fixtures for loading the shop spec fixture, building
catalogs and command surfaces from it, creating isolated config
environments, managing output state, and running CLI commands. These
fixtures are automatically discovered by pytest and available to all
test modules without explicit imports.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from discli.models import CommandSurface, EndpointCatalog
from discli.output import OutputFormat, OutputManager, reset_output, set_output


FIXTURES_DIR = Path(__file__).parent / "fixtures"


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale
    ("I/O operation on closed file").  Resetting forces a fresh manager
    to be created on next use.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Raw document fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def shop_spec_raw() -> dict[str, Any]:
    """Load the raw shop OpenAPI 3.0 document."""
    with open(FIXTURES_DIR / "shop_openapi.json") as f:
        return json.load(f)


@pytest.fixture
def graphql_introspection_raw() -> dict[str, Any]:
    """Load the raw GraphQL introspection result of a small book API."""
    with open(FIXTURES_DIR / "graphql_introspection.json") as f:
        return json.load(f)


@pytest.fixture
def capture_dir() -> Path:
    """Directory with a captured-traffic listing and auth material."""
    return FIXTURES_DIR / "capture"


# ---------------------------------------------------------------------------
# Catalog and surface fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def shop_catalog(shop_spec_raw: dict[str, Any]) -> EndpointCatalog:
    """Confirmed catalog built from the shop spec through the whole pipeline."""
    from discli.catalog import build_catalog
    from discli.discovery import adapt_spec_document
    from discli.normalizer import normalize

    draft = build_catalog(normalize([adapt_spec_document(shop_spec_raw)]))
    return draft.confirm()


@pytest.fixture
def shop_surface(shop_catalog: EndpointCatalog) -> CommandSurface:
    """Command surface generated from :func:`shop_catalog`."""
    from discli.generator import generate_surface

    return generate_surface(shop_catalog)


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME, XDG_CACHE_HOME, and XDG_DATA_HOME to
    subdirectories of tmp_path so that tests never touch real user
    config. Forces XDG path resolution regardless of the host platform,
    clears all DISCLI_* environment variables and changes the working
    directory to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setattr("discli.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in [
        "DISCLI_FORMAT",
        "DISCLI_CATALOG",
        "DISCLI_NO_CACHE",
        "DISCLI_TRUNCATE_THRESHOLD",
        "SHOP_API_KEY",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager for tests that don't care about output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def json_output() -> OutputManager:
    """Install a JSON-format OutputManager for tests that check JSON output."""
    output = OutputManager(format=OutputFormat.JSON)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner.

    Returns a CliRunner instance that captures stdout/stderr and
    provides a consistent interface for invoking Typer apps in tests.
    """
    from typer.testing import CliRunner

    return CliRunner()
