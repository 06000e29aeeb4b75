"""Catalog construction and confirmation."""

from discli.catalog.builder import CatalogDraft, build_catalog, derive_service_name

__all__ = ["CatalogDraft", "build_catalog", "derive_service_name"]
