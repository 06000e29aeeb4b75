"""Exception hierarchy for discli.

All exceptions inherit from :class:`DiscliError`, which carries three
pieces of machine-readable context besides the message:

* ``exit_code`` -- a constant from :mod:`discli.exit_codes`.
* ``code`` -- a stable, upper-case error code for programmatic branching
  (``MISSING_CREDENTIAL``, ``VALIDATION_FAILED``, ...).
* ``fix`` -- a short, actionable remediation sentence. Generated commands
  copy it into the error envelope, where it may never be empty.

The top-level handler in :func:`discli.app.main` catches ``DiscliError``
and exits with the appropriate code; generated commands convert it into
an error envelope instead (see :mod:`discli.runtime.executor`).

Subclass hierarchy::

    DiscliError                       (exit 1)
    +-- ConfigError                   (exit 1)
    +-- SpecParseError                (exit 7)
    +-- DiscoveryError                (exit 8)
    |   +-- DiscoveryTransient        (exit 6)
    |   +-- DiscoveryDefinitive       (exit 8)
    +-- NormalizationAmbiguous        (exit 8)
    +-- GenerationInvariantViolation  (exit 9)
    +-- RuntimeCredentialMissing      (exit 3)
    +-- RuntimeApiFailure             (exit 1, or by status)
    +-- RuntimeValidationFailure      (exit 2)
"""

from __future__ import annotations

from typing import Any, Optional

from discli.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_DISCOVERY_FAILURE,
    EXIT_GENERATION_FAILURE,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NOT_FOUND,
    EXIT_SERVER_ERROR,
    EXIT_SPEC_PARSE_ERROR,
    EXIT_TRANSIENT_FAILURE,
)


class DiscliError(Exception):
    """Base exception for all discli errors.

    Every subclass sets class-level ``exit_code``, ``code`` and ``fix``
    defaults; any of them can be overridden per instance.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
        code: Optional override for the machine-readable error code.
        fix: Optional override for the remediation text.
        details: Extra structured context (offending record, status, ...).
    """

    exit_code: int = EXIT_GENERIC_FAILURE
    code: str = "ERROR"
    fix: str = "Re-run with --verbose to see more detail."

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        *,
        code: Optional[str] = None,
        fix: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if exit_code is not None:
            self.exit_code = exit_code
        if code is not None:
            self.code = code
        if fix:
            self.fix = fix
        self.details: dict[str, Any] = details or {}


class ConfigError(DiscliError):
    """Raised for configuration problems (missing catalogs, invalid JSON)."""

    exit_code = EXIT_GENERIC_FAILURE
    code = "CONFIG_ERROR"
    fix = "Check the configuration file or run `discli config show`."


class SpecParseError(DiscliError):
    """Raised when a specification document cannot be loaded or parsed at all."""

    exit_code = EXIT_SPEC_PARSE_ERROR
    code = "SPEC_PARSE_ERROR"
    fix = "Point --spec at a valid OpenAPI, Swagger or GraphQL introspection document."


class DiscoveryError(DiscliError):
    """Base class for failures while talking to a discovery source."""

    exit_code = EXIT_DISCOVERY_FAILURE
    code = "DISCOVERY_FAILED"
    fix = "Provide a spec document or a capture directory instead of probing."


class DiscoveryTransient(DiscoveryError):
    """A retryable discovery failure: timeout, network error, 5xx or 429."""

    exit_code = EXIT_TRANSIENT_FAILURE
    code = "DISCOVERY_TRANSIENT"
    fix = "Retry later or lower the probe concurrency."


class DiscoveryDefinitive(DiscoveryError):
    """A non-retryable negative answer during probing (404 or other 4xx)."""

    code = "DISCOVERY_NEGATIVE"


class NormalizationAmbiguous(DiscliError):
    """Conflicting signals that the precedence rules cannot resolve."""

    exit_code = EXIT_DISCOVERY_FAILURE
    code = "NORMALIZATION_AMBIGUOUS"
    fix = "Review the catalog summary and confirm the value explicitly."


class GenerationInvariantViolation(DiscliError):
    """The catalog fails a required invariant; generation refuses to proceed."""

    exit_code = EXIT_GENERATION_FAILURE
    code = "CATALOG_INVALID"
    fix = "Rebuild the catalog with `discli discover` and confirm it before generating."


class RuntimeCredentialMissing(DiscliError):
    """The credential environment variable of a generated command is unset."""

    exit_code = EXIT_AUTH_FAILURE
    code = "MISSING_CREDENTIAL"


class RuntimeApiFailure(DiscliError):
    """The underlying API call of a generated command failed.

    Args:
        message: Error description (usually includes the HTTP status).
        status_code: The HTTP status, or ``None`` for network failures.
        retryable: Whether the failure was transient.
    """

    code = "API_ERROR"
    fix = "Check the request parameters against the endpoint and try again."

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        *,
        status_code: Optional[int] = None,
        retryable: bool = False,
        code: Optional[str] = None,
        fix: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, exit_code, code=code, fix=fix, details=details)
        self.status_code = status_code
        self.retryable = retryable


class RuntimeValidationFailure(DiscliError):
    """A flag or positional value was missing or malformed; no request was sent."""

    exit_code = EXIT_INVALID_USAGE
    code = "VALIDATION_FAILED"


def api_failure_for_status(status: int, message: str) -> RuntimeApiFailure:
    """Build a :class:`RuntimeApiFailure` with code, exit code and fix for *status*.

    Args:
        status: HTTP status code of the failed response.
        message: Error description extracted from the response.

    Returns:
        The classified exception (not raised).
    """
    if status in (401, 403):
        return RuntimeApiFailure(
            message,
            EXIT_AUTH_FAILURE,
            status_code=status,
            code="AUTH_FAILED",
            fix="The API rejected the credential; check that it is valid and has access.",
        )
    if status == 404:
        return RuntimeApiFailure(
            message,
            EXIT_NOT_FOUND,
            status_code=status,
            code="NOT_FOUND",
            fix="Check the id you passed; list the resource to see valid ids.",
        )
    if status == 429:
        return RuntimeApiFailure(
            message,
            EXIT_TRANSIENT_FAILURE,
            status_code=status,
            retryable=True,
            code="RATE_LIMITED",
            fix="The API is rate limiting requests; wait and retry.",
        )
    if status >= 500:
        return RuntimeApiFailure(
            message,
            EXIT_SERVER_ERROR,
            status_code=status,
            retryable=True,
            code="SERVER_ERROR",
            fix="The API failed server-side; retry later.",
        )
    return RuntimeApiFailure(
        message,
        EXIT_GENERIC_FAILURE,
        status_code=status,
        code="API_ERROR",
        fix="The API rejected the request; check flag values against the command's flags.",
    )
