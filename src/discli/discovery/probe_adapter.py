"""Active, bounded reconnaissance of a live API.

A probe run has three phases:

1. **Well-known spec paths.** Each path in :data:`DEFAULT_SPEC_PATHS` is
   fetched in order, followed by a GraphQL introspection query. The first
   parseable document is handed to the spec adapter and probing stops.
2. **Candidate matrix.** Every prefix in :data:`DEFAULT_PREFIXES` is
   combined with every resource in :data:`DEFAULT_RESOURCES`; each
   response is classified by :func:`classify_response`.
3. **Deep probe.** For every resource that exists, one item is fetched by
   an observed id, and string fields that look like links to other API
   paths are followed once. Mutating verbs are attempted only when
   ``allow_mutating`` is set, and then only with empty bodies against a
   placeholder id, so that validation-error shapes can be observed.

All traffic goes through :class:`~discli.client.async_client.AsyncClient`,
which enforces concurrency, pacing, the request budget and cancellation.
Probe observations carry raw status, headers and bodies; auth, pagination
and rate-limit conclusions are drawn later by :mod:`discli.normalizer`.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import urlsplit

import httpx

from discli import paths
from discli.client.async_client import AsyncClient
from discli.discovery.spec_adapter import adapt_spec_document
from discli.exceptions import DiscoveryDefinitive, DiscoveryError, DiscoveryTransient, SpecParseError
from discli.models import (
    AdapterResult,
    Confidence,
    HTTPMethod,
    ObservationSource,
    ProbeConfig,
    RawObservation,
    RetryPolicy,
    SkippedFragment,
)
from discli.parser.loader import detect_document_kind, parse_document
from discli.records import extract_items, item_id

logger = logging.getLogger(__name__)

DEFAULT_SPEC_PATHS = (
    "/openapi.json",
    "/openapi.yaml",
    "/swagger.json",
    "/swagger.yaml",
    "/api-docs",
    "/v3/api-docs",
    "/v2/api-docs",
    "/api/openapi.json",
    "/api/swagger.json",
    "/docs/openapi.json",
    "/.well-known/openapi.json",
)

DEFAULT_PREFIXES = ("", "/api", "/v1", "/api/v1", "/v2", "/api/v2", "/rest")

DEFAULT_RESOURCES = (
    "users", "accounts", "customers", "orders", "products", "items",
    "projects", "teams", "organizations", "posts", "comments", "invoices",
    "payments", "events", "files", "tasks", "messages", "tags",
)

GRAPHQL_INTROSPECTION_QUERY = """
query IntrospectionQuery {
  __schema {
    queryType { name }
    mutationType { name }
    types {
      kind name description
      fields(includeDeprecated: false) {
        name description
        args { name description type { kind name ofType { kind name ofType { kind name } } } }
        type { kind name ofType { kind name ofType { kind name } } }
      }
    }
  }
}
""".strip()

_MAX_LINKS_PER_RESOURCE = 5
_PLACEHOLDER_ID = "0"


class Verdict(str, enum.Enum):
    """Classification of one probe response."""

    EXISTS = "exists"
    GATED = "gated"
    FRAMEWORK_MISS = "framework-miss"
    NOT_AN_API = "not-an-api"
    NEGATIVE = "negative"
    INCONCLUSIVE = "inconclusive"


def _is_json(content_type: str) -> bool:
    return "json" in content_type.lower()


def classify_response(status: int, content_type: str) -> Verdict:
    """Pure classification of a probe response.

    =============  =========  ================
    Status         Body       Verdict
    =============  =========  ================
    2xx            JSON       exists
    401 / 403      any        gated
    404            JSON       framework-miss
    404            HTML       not-an-api
    other 4xx      any        negative
    anything else             inconclusive
    =============  =========  ================
    """
    if 200 <= status < 300 and _is_json(content_type):
        return Verdict.EXISTS
    if status in (401, 403):
        return Verdict.GATED
    if status == 404:
        if _is_json(content_type):
            return Verdict.FRAMEWORK_MISS
        if "html" in content_type.lower():
            return Verdict.NOT_AN_API
        return Verdict.NEGATIVE
    if 400 <= status < 500:
        return Verdict.NEGATIVE
    return Verdict.INCONCLUSIVE


def _response_body(response: httpx.Response) -> Any:
    if not _is_json(response.headers.get("content-type", "")):
        return None
    try:
        return response.json()
    except ValueError:
        return None


class ProbeAdapter:
    """Probe a live API within the bounds of a :class:`~discli.models.ProbeConfig`.

    Args:
        base_url: API root, e.g. ``https://api.example.com``.
        config: Probe bounds and candidate lists.
        headers: Headers sent with every probe (e.g. a credential);
            observations are marked ``authenticated`` when present.
        transport: Optional httpx transport for tests.
        sleep: Injectable sleep coroutine for tests.
        graphql_path: Path the introspection query is posted to.
    """

    def __init__(
        self,
        base_url: str,
        config: Optional[ProbeConfig] = None,
        *,
        headers: Optional[dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        graphql_path: str = "/graphql",
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.config = config or ProbeConfig()
        self._headers = dict(headers or {})
        self._transport = transport
        self._sleep = sleep
        self._graphql_path = graphql_path
        self._client: Optional[AsyncClient] = None
        self._result = AdapterResult(source=ObservationSource.PROBE, base_url=self.base_url)
        self._seen: set[tuple[str, str]] = set()

    def cancel(self) -> None:
        """Request cancellation: no new requests are issued after this call."""
        if self._client is not None:
            self._client.cancel()

    async def run(self) -> AdapterResult:
        cfg = self.config
        async with AsyncClient(
            self.base_url,
            concurrency=cfg.concurrency,
            min_delay=cfg.min_delay,
            max_requests=cfg.max_requests,
            timeout=cfg.timeout,
            retry=RetryPolicy(max_attempts=cfg.max_attempts),
            headers=self._headers,
            transport=self._transport,
            sleep=self._sleep,
        ) as client:
            self._client = client
            spec_result = await self._try_spec_documents()
            if spec_result is not None:
                spec_result.base_url = spec_result.base_url or self.base_url
                return spec_result

            confirmed = await self._probe_matrix()
            await asyncio.gather(*(self._deep_probe(path, body) for path, body in confirmed))
            logger.debug(
                "probe: %d requests, %d observations, %d skipped",
                client.requests_sent, len(self._result.observations), len(self._result.skipped),
            )
        return self._result

    # ------------------------------------------------------------------ #
    # Phase 1: spec documents
    # ------------------------------------------------------------------ #

    async def _try_spec_documents(self) -> Optional[AdapterResult]:
        for spec_path in self.config.spec_paths or DEFAULT_SPEC_PATHS:
            response = await self._fetch("GET", spec_path)
            if response is None or response.status_code != 200:
                continue
            try:
                document = parse_document(response.text)
            except SpecParseError:
                continue
            if detect_document_kind(document) is not None:
                logger.info("found spec document at %s", spec_path)
                return adapt_spec_document(document, graphql_path=self._graphql_path)

        response = await self._fetch(
            "POST", self._graphql_path, json_body={"query": GRAPHQL_INTROSPECTION_QUERY}
        )
        if response is not None and response.status_code == 200:
            body = _response_body(response)
            if isinstance(body, dict) and detect_document_kind(body) is not None:
                logger.info("GraphQL introspection succeeded at %s", self._graphql_path)
                return adapt_spec_document(body, graphql_path=self._graphql_path)
        return None

    # ------------------------------------------------------------------ #
    # Phase 2: candidate matrix
    # ------------------------------------------------------------------ #

    async def _probe_matrix(self) -> list[tuple[str, Any]]:
        candidates = [
            f"{prefix.rstrip('/')}/{resource.strip('/')}"
            for prefix in (self.config.prefixes if self.config.prefixes is not None else DEFAULT_PREFIXES)
            for resource in (self.config.resources if self.config.resources is not None else DEFAULT_RESOURCES)
        ]
        outcomes = await asyncio.gather(*(self._probe_candidate(path) for path in candidates))
        return [outcome for outcome in outcomes if outcome is not None]

    async def _probe_candidate(self, path: str) -> Optional[tuple[str, Any]]:
        response = await self._fetch("GET", path)
        if response is None:
            return None
        verdict = self._record(HTTPMethod.GET, path, path, response)
        if verdict == Verdict.EXISTS:
            return path, _response_body(response)
        return None

    # ------------------------------------------------------------------ #
    # Phase 3: deep probe
    # ------------------------------------------------------------------ #

    async def _deep_probe(self, collection_path: str, body: Any) -> None:
        resource = paths.last_static_segment(collection_path)
        items = extract_items(body, resource)
        first_id = item_id(items[0]) if items else None
        tasks = []
        if first_id is not None:
            tasks.append(self._probe_item(collection_path, first_id, items[0]))
        if self.config.allow_mutating:
            tasks.append(self._probe_mutations(collection_path))
        await asyncio.gather(*tasks)

    async def _probe_item(self, collection_path: str, record_id: str, sample: Any) -> None:
        concrete = f"{collection_path}/{record_id}"
        template = f"{collection_path}/{{id}}"
        response = await self._fetch("GET", concrete)
        item_body = sample
        if response is not None:
            if self._record(HTTPMethod.GET, template, concrete, response) == Verdict.EXISTS:
                item_body = _response_body(response) or sample
        links = self._mine_links(item_body)[:_MAX_LINKS_PER_RESOURCE]
        await asyncio.gather(*(self._probe_link(link) for link in links))

    def _mine_links(self, body: Any) -> list[str]:
        """Collect API paths referenced by string fields of *body* (one level of nesting)."""
        found: list[str] = []
        base_path = urlsplit(self.base_url).path.rstrip("/")
        values: list[Any] = []
        if isinstance(body, dict):
            for value in body.values():
                if isinstance(value, dict):
                    values.extend(value.values())
                else:
                    values.append(value)
        for value in values:
            if not isinstance(value, str) or not value:
                continue
            if value.startswith(self.base_url + "/"):
                path = value[len(self.base_url):]
            elif value.startswith("/") and not value.startswith("//"):
                path = value
                if base_path and path.startswith(base_path + "/"):
                    path = path[len(base_path):]
            else:
                continue
            path = path.split("?", 1)[0].rstrip("/")
            if path and path not in found:
                found.append(path)
        return found

    async def _probe_link(self, path: str) -> None:
        template = paths.templatize_ids(path)
        if ("GET", paths.path_shape(template)) in self._seen:
            return
        response = await self._fetch("GET", path)
        if response is not None:
            self._record(HTTPMethod.GET, template, path, response)

    async def _probe_mutations(self, collection_path: str) -> None:
        item_concrete = f"{collection_path}/{_PLACEHOLDER_ID}"
        item_template = f"{collection_path}/{{id}}"
        attempts = [
            (HTTPMethod.POST, collection_path, collection_path),
            (HTTPMethod.PATCH, item_template, item_concrete),
            (HTTPMethod.PUT, item_template, item_concrete),
            (HTTPMethod.DELETE, item_template, item_concrete),
        ]
        for method, template, concrete in attempts:
            body = {} if method != HTTPMethod.DELETE else None
            response = await self._fetch(method.value, concrete, json_body=body)
            if response is None:
                continue
            status = response.status_code
            if 200 <= status < 300:
                self._observe(method, template, concrete, response, Verdict.EXISTS)
            elif status in (401, 403):
                self._observe(method, template, concrete, response, Verdict.GATED)
            elif status in (400, 422):
                # validation error: the route exists, the empty body was rejected
                self._observe(method, template, concrete, response, Verdict.INCONCLUSIVE)
            else:
                self._skip(f"{method.value} {concrete}", f"HTTP {status}", negative=True)

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    async def _fetch(
        self, method: str, path: str, json_body: Optional[Any] = None
    ) -> Optional[httpx.Response]:
        assert self._client is not None
        try:
            return await self._client.request(method, path, json_body=json_body)
        except DiscoveryTransient as exc:
            self._skip(f"{method} {path}", f"transient failure: {exc.message}")
        except DiscoveryDefinitive as exc:
            self._skip(f"{method} {path}", exc.message, negative=True)
        except DiscoveryError as exc:
            self._skip(f"{method} {path}", exc.message)
        return None

    def _record(self, method: HTTPMethod, template: str, concrete: str, response: httpx.Response) -> Verdict:
        verdict = classify_response(response.status_code, response.headers.get("content-type", ""))
        label = f"{method.value} {concrete}"
        if verdict in (Verdict.EXISTS, Verdict.GATED, Verdict.INCONCLUSIVE):
            self._observe(method, template, concrete, response, verdict)
        elif verdict == Verdict.FRAMEWORK_MISS:
            self._skip(label, "404 with a JSON body: the API answered but the resource is absent", negative=True)
        elif verdict == Verdict.NOT_AN_API:
            self._skip(label, "404 with an HTML body: not served by an API", negative=True)
        else:
            self._skip(label, f"HTTP {response.status_code}", negative=True)
        return verdict

    def _observe(
        self, method: HTTPMethod, template: str, concrete: str, response: httpx.Response, verdict: Verdict
    ) -> None:
        key = (method.value, paths.path_shape(template))
        if key in self._seen:
            return
        self._seen.add(key)
        body = _response_body(response)
        if body is None and response.text:
            body = response.text[:500]
        self._result.observations.append(RawObservation(
            source=ObservationSource.PROBE,
            method=method,
            path=template,
            confidence=Confidence.MEDIUM if verdict == Verdict.EXISTS else Confidence.LOW,
            concrete_paths=[concrete],
            query_samples=[{}],
            status_code=response.status_code,
            response_headers={k.lower(): v for k, v in response.headers.items()},
            response_body=body,
            response_example=body if verdict == Verdict.EXISTS else None,
            authenticated=bool(self._headers),
            verdict=verdict.value,
        ))

    def _skip(self, fragment: str, reason: str, negative: bool = False) -> None:
        self._result.skipped.append(
            SkippedFragment(source=ObservationSource.PROBE, fragment=fragment, reason=reason, negative=negative)
        )


def probe(
    base_url: str,
    config: Optional[ProbeConfig] = None,
    *,
    headers: Optional[dict[str, str]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> AdapterResult:
    """Run a complete probe synchronously (``asyncio.run`` around :meth:`ProbeAdapter.run`)."""
    adapter = ProbeAdapter(base_url, config, headers=headers, transport=transport, sleep=sleep)
    return asyncio.run(adapter.run())
