"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent state for discli:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.discli/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_cache_dir`, :func:`get_data_dir`, :func:`get_catalogs_dir`.
* **Global config** -- A single :class:`~discli.models.GlobalConfig`
  JSON file storing defaults (output format, cache, request and probe
  settings).
* **Catalogs** -- One JSON file per confirmed
  :class:`~discli.models.EndpointCatalog`, named after its service.
  Managed via :func:`save_catalog`, :func:`load_catalog`,
  :func:`list_catalogs` and :func:`delete_catalog`.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, project-local config, and global config into the
  final effective configuration.

All file writes use an atomic temp-file-then-rename strategy
(:func:`atomic_write`) so a crash never leaves a half-written file.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from discli.exceptions import ConfigError
from discli.models import EndpointCatalog, GlobalConfig

_APP_NAME = "discli"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "discli.json"

_ENV_FORMAT = "DISCLI_FORMAT"
_ENV_CATALOG = "DISCLI_CATALOG"
_ENV_CACHE = "DISCLI_NO_CACHE"
_ENV_TRUNCATE = "DISCLI_TRUNCATE_THRESHOLD"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/discli/`` (default ``~/.config/discli/``).
    On macOS/Windows: ``~/.discli/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the cache directory, creating it if necessary.

    Holds the HTTP response cache and the spill files written when a
    result is truncated. Everything in it can be deleted at any time.

    On Linux/BSD: ``$XDG_CACHE_HOME/discli/`` (default ``~/.cache/discli/``).
    On macOS/Windows: ``~/.discli/cache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (catalogs, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/discli/`` (default ``~/.local/share/discli/``).
    On macOS/Windows: ``~/.discli/data/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_catalogs_dir() -> Path:
    """Return ``<data_dir>/catalogs/``, creating it if necessary."""
    path = get_data_dir() / "catalogs"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. On any failure the
    temp file is removed and the previous content of *path* is untouched.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Global config ---


def _global_config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration from the XDG config directory.

    Returns:
        The deserialised :class:`~discli.models.GlobalConfig`, or a default
        instance if the file does not exist.

    Raises:
        ConfigError: If the file exists but is invalid JSON or fails validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the global configuration atomically to disk."""
    data = config.model_dump(mode="json")
    atomic_write(_global_config_path(), json.dumps(data, indent=2) + "\n")


def set_config_value(config: GlobalConfig, key: str, value: str) -> GlobalConfig:
    """Return a copy of *config* with the dotted *key* set to *value*.

    ``value`` is parsed as JSON when possible (so ``true``, ``8`` and
    ``["v1"]`` keep their types) and used as a plain string otherwise.

    Raises:
        ConfigError: If *key* does not name a config field or the value
            fails validation.
    """
    try:
        parsed: Any = json.loads(value)
    except json.JSONDecodeError:
        parsed = value

    data = config.model_dump(mode="json")
    parts = key.split(".")
    cursor = data
    for part in parts[:-1]:
        if not isinstance(cursor.get(part), dict):
            raise ConfigError(f"Unknown config key: {key}")
        cursor = cursor[part]
    if parts[-1] not in cursor:
        raise ConfigError(f"Unknown config key: {key}")
    cursor[parts[-1]] = parsed
    try:
        return GlobalConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid value for {key}: {exc}") from exc


# --- Catalogs ---


def _catalog_path(name: str) -> Path:
    return get_catalogs_dir() / f"{name}.json"


def list_catalogs() -> list[str]:
    """Return the names of all saved catalogs, sorted alphabetically."""
    return sorted(p.stem for p in get_catalogs_dir().glob("*.json") if p.is_file())


def catalog_exists(name: str) -> bool:
    return _catalog_path(name).is_file()


def save_catalog(catalog: EndpointCatalog) -> Path:
    """Persist a catalog atomically under its service name.

    The JSON is written with sorted keys so that two saves of the same
    catalog are byte-identical.

    Returns:
        The path the catalog was written to.
    """
    path = _catalog_path(catalog.service_name)
    data = catalog.model_dump(mode="json")
    atomic_write(path, json.dumps(data, indent=2, sort_keys=True) + "\n")
    return path


def load_catalog(name: str) -> EndpointCatalog:
    """Load and validate a saved catalog.

    Raises:
        ConfigError: If the catalog does not exist or is invalid.
    """
    path = _catalog_path(name)
    if not path.is_file():
        raise ConfigError(
            f"Catalog '{name}' not found at {path}",
            fix="Run `discli catalogs` to list saved catalogs, or `discli discover` to create one.",
        )
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return EndpointCatalog.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid catalog '{name}' at {path}: {exc}") from exc


def delete_catalog(name: str) -> None:
    """Delete a saved catalog.

    Raises:
        ConfigError: If the catalog does not exist.
    """
    path = _catalog_path(name)
    if not path.is_file():
        raise ConfigError(f"Catalog '{name}' not found at {path}")
    path.unlink()


# --- Project-local config ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Load project-local configuration from ``./discli.json``.

    Project config typically pins ``default_catalog`` and probe bounds for
    a repository.

    Returns:
        The parsed JSON as a dict, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file exists but contains invalid JSON.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid project config at {path}: {exc}") from exc


# --- Precedence resolution ---


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def resolve_config(
    cli_catalog: Optional[str] = None,
    cli_format: Optional[str] = None,
    cli_no_cache: bool = False,
) -> tuple[GlobalConfig, Optional[str]]:
    """Resolve config with full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_catalog``, ``cli_format``, ``cli_no_cache``)
        2. Environment variables (``DISCLI_CATALOG``, ``DISCLI_FORMAT``,
           ``DISCLI_NO_CACHE``, ``DISCLI_TRUNCATE_THRESHOLD``)
        3. Project config (``./discli.json``)
        4. User config (``~/.config/discli/config.json``)
        5. Defaults

    Returns:
        A tuple of ``(global_config, catalog_name_or_None)``.
    """
    global_cfg = load_global_config()

    project = load_project_config()
    if project is not None:
        try:
            global_cfg = GlobalConfig.model_validate(
                _deep_merge(global_cfg.model_dump(mode="json"), project)
            )
        except ValidationError as exc:
            raise ConfigError(f"Invalid project config: {exc}") from exc

    catalog_name = global_cfg.default_catalog
    env_catalog = os.environ.get(_ENV_CATALOG)
    if env_catalog:
        catalog_name = env_catalog
    if cli_catalog is not None:
        catalog_name = cli_catalog

    env_format = os.environ.get(_ENV_FORMAT)
    if env_format:
        global_cfg.output.format = env_format
    if cli_format is not None:
        global_cfg.output.format = cli_format

    env_threshold = os.environ.get(_ENV_TRUNCATE)
    if env_threshold:
        try:
            global_cfg.output.truncate_threshold = max(1, int(env_threshold))
        except ValueError as exc:
            raise ConfigError(
                f"{_ENV_TRUNCATE} must be an integer, got {env_threshold!r}"
            ) from exc

    if os.environ.get(_ENV_CACHE) or cli_no_cache:
        global_cfg.cache.enabled = False

    return global_cfg, catalog_name
