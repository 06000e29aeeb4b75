"""Disk-based response caching for generated commands.

This package provides :class:`ResponseCache`, which stores successful GET
responses of cacheable endpoints on disk using :mod:`diskcache`. Entries are
keyed by method, path and query parameters with a TTL taken from the
surface's :class:`~discli.models.CachePolicy`.
"""

from discli.cache.cache import ResponseCache

__all__ = ["ResponseCache"]
