"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~discli.exceptions.DiscliError` subclass. Generated
commands use the same codes so that a caller can branch on the failure
class (validation vs. auth vs. transient) without parsing any output.

Example::

    $ discli run stripe customers get
    $ echo $?
    2   # EXIT_INVALID_USAGE -- the positional id was missing
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred (including non-retryable API failures)."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_AUTH_FAILURE = 3
"""Authentication failed or the credential is missing."""

EXIT_NOT_FOUND = 4
"""The requested resource was not found (HTTP 404)."""

EXIT_SERVER_ERROR = 5
"""The remote API returned an HTTP 5xx server error."""

EXIT_TRANSIENT_FAILURE = 6
"""A transient failure persisted after retries (timeout, network error, 429)."""

EXIT_SPEC_PARSE_ERROR = 7
"""A specification document could not be parsed."""

EXIT_DISCOVERY_FAILURE = 8
"""Discovery produced nothing usable."""

EXIT_GENERATION_FAILURE = 9
"""The catalog violates an invariant and no command surface was generated."""
