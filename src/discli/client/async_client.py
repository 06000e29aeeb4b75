"""Bounded asynchronous HTTP client used for active probing.

:class:`AsyncClient` wraps :class:`httpx.AsyncClient` and enforces the
resource limits of a probe run:

- **Bounded parallelism** -- an :class:`asyncio.Semaphore` caps in-flight
  requests.
- **Pacing** -- a shared lock spaces request starts at least
  ``min_delay`` seconds apart.
- **Budget** -- at most ``max_requests`` requests are sent, retries included.
- **Cancellation** -- once :meth:`cancel` is called no new request is
  issued; in-flight ones are allowed to finish.
- **Retry with backoff** -- timeouts, connection and protocol errors,
  5xx and 429 are retried with exponential delay (``Retry-After``
  honoured). Other statuses are returned to the caller unchanged; other
  transport failures raise :class:`~discli.exceptions.DiscoveryDefinitive`.

See Also:
    :class:`~discli.client.sync_client.SyncClient` for the blocking client
    generated commands use.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

import httpx

from discli.exceptions import DiscoveryDefinitive, DiscoveryError, DiscoveryTransient
from discli.models import RetryPolicy

logger = logging.getLogger(__name__)

# Transport failures worth another attempt; any other httpx error is final.
TRANSIENT_ERRORS = (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Seconds from a ``Retry-After`` header (delta-seconds form only)."""
    if not value:
        return None
    try:
        return max(0.0, float(value.strip()))
    except ValueError:
        return None


class AsyncClient:
    """Asynchronous, rate-bounded HTTP client for discovery.

    Must be used as an async context manager.

    Args:
        base_url: Target API root; request paths are appended to it.
        concurrency: Maximum in-flight requests.
        min_delay: Minimum seconds between the starts of two requests.
        max_requests: Total request budget, retries included.
        timeout: Per-request timeout in seconds.
        retry: Backoff policy for transient failures.
        headers: Headers sent with every request (e.g. a credential).
        transport: Optional httpx transport (``httpx.MockTransport`` in tests).
        sleep: Coroutine used for waiting; injectable so tests run instantly.

    Example::

        async with AsyncClient("https://api.example.com", concurrency=2) as client:
            response = await client.request("GET", "/v1/users")
    """

    def __init__(
        self,
        base_url: str,
        *,
        concurrency: int = 4,
        min_delay: float = 0.0,
        max_requests: int = 200,
        timeout: float = 10.0,
        retry: Optional[RetryPolicy] = None,
        headers: Optional[dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        verify: bool = True,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._concurrency = concurrency
        self._min_delay = min_delay
        self._max_requests = max_requests
        self._timeout = timeout
        self._retry = retry or RetryPolicy()
        self._headers = dict(headers or {})
        self._transport = transport
        self._verify = verify
        self._sleep = sleep

        self._client: Optional[httpx.AsyncClient] = None
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._pace_lock: Optional[asyncio.Lock] = None
        self._cancelled: Optional[asyncio.Event] = None
        self._last_start = 0.0
        self._sent = 0

    async def __aenter__(self) -> AsyncClient:
        kwargs: dict[str, Any] = {
            "base_url": self._base_url,
            "timeout": self._timeout,
            "headers": self._headers,
            "follow_redirects": True,
        }
        if self._transport is not None:
            kwargs["transport"] = self._transport
        else:
            kwargs["verify"] = self._verify
        self._client = httpx.AsyncClient(**kwargs)
        self._semaphore = asyncio.Semaphore(self._concurrency)
        self._pace_lock = asyncio.Lock()
        self._cancelled = asyncio.Event()
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def requests_sent(self) -> int:
        return self._sent

    @property
    def cancelled(self) -> bool:
        return self._cancelled is not None and self._cancelled.is_set()

    def cancel(self) -> None:
        """Stop issuing new requests; in-flight requests complete normally."""
        if self._cancelled is not None:
            self._cancelled.set()

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        json_body: Optional[Any] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> httpx.Response:
        """Send a request, retrying transient failures.

        Returns:
            The final response for any status that is not retried.

        Raises:
            DiscoveryTransient: Network errors, 5xx or 429 persisted after
                every attempt.
            DiscoveryDefinitive: A transport failure that retrying cannot
                fix (unsupported protocol, too many redirects, ...).
            DiscoveryError: The run was cancelled or the budget is spent.
        """
        assert self._client is not None, "Client not initialised -- use as async context manager"

        last_reason = ""
        for attempt in range(self._retry.max_attempts):
            self._check_can_send(method, path)
            try:
                response = await self._send(method, path, params, json_body, headers)
            except TRANSIENT_ERRORS as exc:
                last_reason = f"{type(exc).__name__}: {exc}"
                retry_after = None
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                raise DiscoveryDefinitive(
                    f"{method} {path} failed: {type(exc).__name__}: {exc}",
                    details={"method": method, "path": path},
                ) from exc
            else:
                if not self._retry.should_retry(response.status_code):
                    return response
                last_reason = f"HTTP {response.status_code}"
                retry_after = parse_retry_after(response.headers.get("retry-after"))

            if attempt < self._retry.max_attempts - 1:
                delay = self._retry.delay_for(attempt, retry_after)
                logger.debug("%s %s: %s, retrying in %.2fs", method, path, last_reason, delay)
                await self._sleep(delay)

        raise DiscoveryTransient(
            f"{method} {path} failed after {self._retry.max_attempts} attempts ({last_reason})",
            details={"method": method, "path": path},
        )

    def _check_can_send(self, method: str, path: str) -> None:
        if self.cancelled:
            raise DiscoveryError(f"{method} {path} not sent: probing was cancelled", code="PROBE_CANCELLED")
        if self._sent >= self._max_requests:
            raise DiscoveryError(
                f"{method} {path} not sent: request budget of {self._max_requests} exhausted",
                code="PROBE_BUDGET_EXHAUSTED",
                fix="Raise probe.max_requests or narrow probe.prefixes / probe.resources.",
            )

    async def _send(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]],
        json_body: Optional[Any],
        headers: Optional[dict[str, str]],
    ) -> httpx.Response:
        assert self._client is not None and self._semaphore is not None and self._pace_lock is not None
        async with self._semaphore:
            async with self._pace_lock:
                self._check_can_send(method, path)
                wait = self._last_start + self._min_delay - time.monotonic()
                if wait > 0:
                    await self._sleep(wait)
                self._last_start = time.monotonic()
                self._sent += 1
            kwargs: dict[str, Any] = {"params": params, "headers": headers}
            if json_body is not None:
                kwargs["json"] = json_body
            return await self._client.request(method, path, **kwargs)
