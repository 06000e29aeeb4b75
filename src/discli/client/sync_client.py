"""Synchronous HTTP client used by generated commands.

:class:`SyncClient` wraps :class:`httpx.Client` and layers on:

- **Auth injection** -- the credential is turned into headers once, per
  the catalog's :class:`~discli.models.AuthInjection`.
- **Response caching** -- cacheable GET requests go through
  :class:`~discli.cache.ResponseCache`.
- **Retry with backoff** -- 429, 5xx, network and protocol errors are
  retried per :class:`~discli.models.RetryPolicy`; ``Retry-After`` is
  honoured.
- **Rate-limit pacing** -- when the catalog recorded a limit, request
  starts are spaced so the window is not exceeded.
- **Error mapping** -- final non-2xx responses become
  :class:`~discli.exceptions.RuntimeApiFailure` with a status-specific
  code and fix; so does every httpx failure, so callers only ever see
  discli errors.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Optional

import httpx

from discli.client.async_client import TRANSIENT_ERRORS, parse_retry_after
from discli.client.auth import auth_headers
from discli.exceptions import RuntimeApiFailure, api_failure_for_status
from discli.exit_codes import EXIT_TRANSIENT_FAILURE
from discli.models import ClientConfig

if TYPE_CHECKING:
    from discli.cache import ResponseCache

logger = logging.getLogger(__name__)


@dataclass
class ApiResponse:
    """The decoded outcome of one successful API call."""

    status_code: int
    data: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    from_cache: bool = False


def extract_response_data(response: httpx.Response) -> Any:
    """JSON body if it parses, raw text otherwise, ``None`` when empty."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _error_message(response: httpx.Response) -> str:
    detail = extract_response_data(response)
    if isinstance(detail, dict):
        msg = detail.get("message") or detail.get("error") or detail.get("detail") or ""
        if isinstance(msg, dict):
            msg = msg.get("message") or ""
    elif detail is None:
        msg = ""
    else:
        msg = str(detail)[:200]
    prefix = f"HTTP {response.status_code}"
    return f"{prefix}: {msg}" if msg else prefix


class SyncClient:
    """Blocking API client for one generated-command invocation.

    Must be used as a context manager.

    Args:
        config: Client settings from the command surface.
        credential: The credential read from the environment, if any.
        timeout: Per-request timeout in seconds.
        verify: Verify TLS certificates.
        transport: Optional httpx transport (``httpx.MockTransport`` in tests).
        cache: Response cache for cacheable GETs.
        sleep: Blocking sleep; injectable so tests run instantly.
    """

    def __init__(
        self,
        config: ClientConfig,
        credential: Optional[str] = None,
        *,
        timeout: float = 30.0,
        verify: bool = True,
        transport: Optional[httpx.BaseTransport] = None,
        cache: Optional[ResponseCache] = None,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> None:
        self._config = config
        self._auth_headers = auth_headers(config.auth, credential) if credential else {}
        self._timeout = timeout
        self._verify = verify
        self._transport = transport
        self._cache = cache
        self._sleep = sleep
        self._client: Optional[httpx.Client] = None
        self._last_start: Optional[float] = None
        self.requests_sent = 0

        limit = config.rate_limit
        if limit and limit.requests_per_window and limit.window_seconds:
            self._min_interval = limit.window_seconds / limit.requests_per_window
        else:
            self._min_interval = 0.0

    def __enter__(self) -> SyncClient:
        kwargs: dict[str, Any] = {
            "base_url": self._config.base_url,
            "timeout": self._timeout,
            "follow_redirects": True,
        }
        if self._transport is not None:
            kwargs["transport"] = self._transport
        else:
            kwargs["verify"] = self._verify
        self._client = httpx.Client(**kwargs)
        return self

    def __exit__(self, *args: object) -> None:
        if self._client:
            self._client.close()
            self._client = None

    def request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        json_body: Optional[Any] = None,
        headers: Optional[dict[str, str]] = None,
        *,
        authenticate: bool = True,
        cacheable: bool = False,
    ) -> ApiResponse:
        """Send a request and return the decoded 2xx response.

        Args:
            path: Path appended to the base URL, or an absolute URL (used
                when following ``Link: rel="next"``).
            authenticate: Attach the credential headers.
            cacheable: Serve from / store into the response cache.

        Raises:
            RuntimeApiFailure: Non-2xx final status, or a network failure
                that persisted after every retry.
        """
        merged_headers = {"Accept": "application/json"}
        if authenticate:
            merged_headers.update(self._auth_headers)
        merged_headers.update(headers or {})
        clean_params = {k: v for k, v in (params or {}).items() if v is not None}
        url = path if path.startswith(("http://", "https://")) else f"{self._config.base_url}{path}"

        use_cache = cacheable and self._cache is not None and method.upper() == "GET"
        if use_cache:
            cached = self._cache.get(method, url, clean_params)
            if cached is not None:
                logger.debug("cache hit: %s %s", method, url)
                return ApiResponse(
                    status_code=cached["status_code"],
                    data=cached.get("body"),
                    headers=cached.get("headers", {}),
                    from_cache=True,
                )

        response = self._execute_with_retry(method, path, clean_params, json_body, merged_headers)
        if response.status_code >= 400:
            raise api_failure_for_status(response.status_code, _error_message(response))

        result = ApiResponse(
            status_code=response.status_code,
            data=extract_response_data(response),
            headers={k.lower(): v for k, v in response.headers.items()},
        )
        if use_cache:
            self._cache.set(method, url, clean_params, {
                "status_code": result.status_code,
                "headers": result.headers,
                "body": result.data,
            })
        return result

    def _pace(self) -> None:
        if self._min_interval and self._last_start is not None:
            wait = self._last_start + self._min_interval - time.monotonic()
            if wait > 0:
                self._sleep(wait)
        self._last_start = time.monotonic()

    def _execute_with_retry(
        self,
        method: str,
        path: str,
        params: dict[str, Any],
        json_body: Any,
        headers: dict[str, str],
    ) -> httpx.Response:
        assert self._client is not None, "Client not initialised -- use as context manager"

        policy = self._config.retry
        for attempt in range(policy.max_attempts):
            last_attempt = attempt == policy.max_attempts - 1
            kwargs: dict[str, Any] = {"params": params, "headers": headers}
            if json_body is not None:
                kwargs["json"] = json_body
            self._pace()
            self.requests_sent += 1
            try:
                response = self._client.request(method, path, **kwargs)
            except TRANSIENT_ERRORS as exc:
                if last_attempt:
                    raise RuntimeApiFailure(
                        f"Network error after {policy.max_attempts} attempts: {exc}",
                        EXIT_TRANSIENT_FAILURE,
                        retryable=True,
                        code="NETWORK_ERROR",
                        fix="Check connectivity to the API and retry.",
                    ) from exc
                delay = policy.delay_for(attempt)
                logger.debug("%s %s: %s, retrying in %.2fs", method, path, exc, delay)
                self._sleep(delay)
                continue
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                raise RuntimeApiFailure(
                    f"Request to {path} failed: {type(exc).__name__}: {exc}",
                    code="REQUEST_FAILED",
                    fix="Check the base URL and any URL-valued flag such as --page-url, then retry.",
                    details={"method": method, "path": path},
                ) from exc

            if not policy.should_retry(response.status_code) or last_attempt:
                return response
            delay = policy.delay_for(attempt, parse_retry_after(response.headers.get("retry-after")))
            logger.debug("%s %s: HTTP %d, retrying in %.2fs", method, path, response.status_code, delay)
            self._sleep(delay)

        raise AssertionError("unreachable: retry loop always returns or raises")
