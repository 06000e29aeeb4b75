"""Source adapters: every discovery source produces an :class:`~discli.models.AdapterResult`.

* :mod:`~discli.discovery.spec_adapter` -- OpenAPI 3.x, Swagger 2.0 and
  GraphQL introspection documents.
* :mod:`~discli.discovery.capture_adapter` -- directories of pre-captured
  traffic (endpoint listing or HAR, plus auth material).
* :mod:`~discli.discovery.probe_adapter` -- bounded active probing of a
  live base URL.

No adapter raises on a partially usable source; unusable fragments are
reported as :class:`~discli.models.SkippedFragment` records.
"""

from discli.discovery.capture_adapter import adapt_capture_directory
from discli.discovery.probe_adapter import ProbeAdapter, probe
from discli.discovery.spec_adapter import adapt_spec_document, adapt_spec_source

__all__ = [
    "ProbeAdapter",
    "adapt_capture_directory",
    "adapt_spec_document",
    "adapt_spec_source",
    "probe",
]
