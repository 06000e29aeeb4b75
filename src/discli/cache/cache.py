"""Disk-based response caching for GET requests.

Uses :mod:`diskcache` to persist GET responses of cacheable endpoints with
a time-to-live. Only 2xx GET responses are cached; everything else passes
through untouched.

Cache keys are SHA-256 hashes of ``METHOD|base_url+path|sorted query``, so
identical requests resolve to the same entry regardless of parameter
order.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any, Optional

import diskcache


class ResponseCache:
    """Disk-backed cache for HTTP GET responses.

    Stores ``{"status_code", "headers", "body"}`` dicts in a
    :class:`diskcache.Cache` under ``<cache_dir>/responses``.

    Args:
        cache_dir: Root directory for the cache.
        ttl_seconds: Expiry of every entry.
        enabled: When ``False`` the cache is a no-op and never touches disk.

    Example::

        cache = ResponseCache("/tmp/api-cache", ttl_seconds=300)
        cache.set("GET", "https://api.example.com/users", None, {
            "status_code": 200, "headers": {}, "body": [{"id": 1}]
        })
        hit = cache.get("GET", "https://api.example.com/users")
    """

    def __init__(self, cache_dir: str | Path, ttl_seconds: int = 300, enabled: bool = True) -> None:
        self._ttl = ttl_seconds
        self._cache_dir = Path(cache_dir)
        self._cache: Optional[diskcache.Cache] = None
        if enabled:
            self._cache = diskcache.Cache(str(self._cache_dir / "responses"))

    @property
    def enabled(self) -> bool:
        return self._cache is not None

    def get(self, method: str, url: str, params: Optional[dict] = None) -> Optional[dict]:
        """Return the cached response dict, or ``None`` on a miss or for non-GET methods."""
        if self._cache is None or method.upper() != "GET":
            return None
        return self._cache.get(self._make_key(method, url, params))

    def set(self, method: str, url: str, params: Optional[dict], response_data: dict) -> None:
        """Store *response_data* if the request was a GET with a 2xx status."""
        if self._cache is None or method.upper() != "GET":
            return
        status = response_data.get("status_code", 0)
        if not (200 <= status < 300):
            return
        self._cache.set(self._make_key(method, url, params), response_data, expire=self._ttl)

    def clear(self) -> None:
        if self._cache is not None:
            self._cache.clear()

    def stats(self) -> dict[str, Any]:
        if self._cache is None:
            return {"enabled": False}
        return {
            "enabled": True,
            "size": len(self._cache),
            "directory": str(self._cache_dir / "responses"),
            "ttl_seconds": self._ttl,
        }

    def close(self) -> None:
        if self._cache is not None:
            self._cache.close()

    def _make_key(self, method: str, url: str, params: Optional[dict]) -> str:
        parts = [method.upper(), url]
        if params:
            parts.append(json.dumps(params, sort_keys=True, default=str))
        return hashlib.sha256("|".join(parts).encode()).hexdigest()
