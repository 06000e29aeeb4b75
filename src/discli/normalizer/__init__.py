"""Normalization of raw adapter observations into canonical endpoints.

Sub-modules:

* :mod:`~discli.normalizer.normalize` -- templatization, precedence-based
  merging and per-endpoint auth overrides.
* :mod:`~discli.normalizer.inference` -- pure fingerprint classifiers for
  auth, pagination, rate limits and parameter types.
"""

from discli.normalizer.inference import (
    AuthVerdict,
    PaginationVerdict,
    classify_auth,
    classify_pagination,
    infer_rate_limit,
)
from discli.normalizer.normalize import SOURCE_PRECEDENCE, NormalizedResult, normalize

__all__ = [
    "AuthVerdict",
    "NormalizedResult",
    "PaginationVerdict",
    "SOURCE_PRECEDENCE",
    "classify_auth",
    "classify_pagination",
    "infer_rate_limit",
    "normalize",
]
