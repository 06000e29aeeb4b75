"""Specification document loading and ``$ref`` resolution.

Typical usage::

    from discli.parser import load_document, resolve_refs

    raw = load_document("https://api.example.com/openapi.json")
    resolved = resolve_refs(raw)

Sub-modules:

* :mod:`~discli.parser.loader` -- I/O layer (URL, file, stdin), JSON/YAML
  detection and document-kind classification.
* :mod:`~discli.parser.resolver` -- Recursive ``$ref`` resolution with
  circular-reference detection.

Turning a resolved document into observations is the job of
:mod:`discli.discovery.spec_adapter`.
"""

from discli.parser.loader import detect_document_kind, load_document, parse_document
from discli.parser.resolver import resolve_refs

__all__ = ["load_document", "parse_document", "detect_document_kind", "resolve_refs"]
