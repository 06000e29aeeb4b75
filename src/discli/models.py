"""Canonical Pydantic models shared across all discli modules.

This is the single source of truth for data shapes in the project. Every
other module imports from here rather than defining its own models. The
models fall into four groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`RequestConfig`, :class:`ProbeConfig`, :class:`CacheConfig`,
    :class:`OutputConfig` and :class:`GlobalConfig`.

**Observation models** -- produced by the source adapters and consumed by
the normalizer:
    :class:`ObservationSource`, :class:`Confidence`, :class:`RawObservation`,
    :class:`SkippedFragment`, :class:`AuthHint` and :class:`AdapterResult`.

**Catalog models** -- the normalized, immutable endpoint catalog:
    :class:`HTTPMethod`, :class:`ParameterLocation`, :class:`Parameter`,
    :class:`Endpoint`, :class:`ResourceGroup`, :class:`AuthSpec`,
    :class:`PaginationSpec`, :class:`RateLimitSpec` and
    :class:`EndpointCatalog`.

**Command surface models** -- the pure output of the generator:
    :class:`ArgumentSpec`, :class:`FlagSpec`, :class:`CommandSpec`,
    :class:`AuthInjection`, :class:`RetryPolicy`, :class:`CachePolicy`,
    :class:`ClientConfig` and :class:`CommandSurface`.

Catalog and surface models are frozen and hold their sequences as tuples,
so a catalog handed to the generator cannot be patched in place.
"""

from __future__ import annotations

import enum
import re
from typing import Any, Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from discli import paths

SERVICE_NAME_RE = re.compile(r"^[a-z][a-z0-9]*$")
"""A program name: lowercase letters and digits, starting with a letter."""

BASE_URL_RE = re.compile(r"^https?://[^\s/]+(/\S*)?$")


# --- Configuration ---


class RequestConfig(BaseModel):
    """Default HTTP request settings for generated commands."""

    timeout: float = Field(default=30, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    max_retries: int = Field(default=3, description="Max attempts for transient failures")


class ProbeConfig(BaseModel):
    """Bounds for active probing.

    List fields left as ``None`` fall back to the built-in candidate lists
    in :mod:`discli.discovery.probe_adapter`.
    """

    concurrency: int = Field(default=4, ge=1, description="Max in-flight requests")
    min_delay: float = Field(
        default=0.1, ge=0, description="Minimum seconds between request starts"
    )
    max_requests: int = Field(default=200, ge=1, description="Hard request budget")
    timeout: float = Field(default=10, description="Per-request timeout in seconds")
    max_attempts: int = Field(default=3, ge=1, description="Attempts for transient errors")
    allow_mutating: bool = Field(
        default=False,
        description=(
            "Send POST/PUT/PATCH/DELETE with empty bodies to observe validation errors; "
            "the write-method matrix is only probed when this is set, otherwise only GETs are sent"
        ),
    )
    spec_paths: Optional[list[str]] = None
    prefixes: Optional[list[str]] = None
    resources: Optional[list[str]] = None


class CacheConfig(BaseModel):
    """HTTP response cache settings stored in :class:`GlobalConfig`."""

    enabled: bool = Field(default=True, description="Allow caching for cacheable endpoints")
    ttl_seconds: int = Field(default=300, description="Cache TTL in seconds")


class OutputConfig(BaseModel):
    """Output preferences stored in :class:`GlobalConfig`."""

    format: str = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )
    truncate_threshold: int = Field(
        default=50, ge=1, description="Max items of a result collection shown inline"
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/discli/config.json``.

    Loaded and saved by :func:`~discli.config.load_global_config` and
    :func:`~discli.config.save_global_config`. See
    :func:`~discli.config.resolve_config` for the precedence chain.
    """

    default_catalog: Optional[str] = None
    output: OutputConfig = Field(default_factory=OutputConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    request: RequestConfig = Field(default_factory=RequestConfig)
    probe: ProbeConfig = Field(default_factory=ProbeConfig)


# --- Shared enums ---


class HTTPMethod(str, enum.Enum):
    """HTTP methods a catalog endpoint may use."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


class ParameterLocation(str, enum.Enum):
    """Where a parameter travels in the HTTP request."""

    PATH = "path"
    QUERY = "query"
    HEADER = "header"
    BODY = "body"


class ObservationSource(str, enum.Enum):
    """Which adapter produced an observation."""

    SPEC = "spec"
    CAPTURE = "capture"
    PROBE = "probe"


class Confidence(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AuthType(str, enum.Enum):
    """Authentication scheme of the target API.

    ``UNKNOWN`` is a first-class value: it means the scheme could not be
    inferred and requires manual input.
    """

    API_KEY = "api-key"
    BEARER = "bearer"
    COOKIE = "cookie"
    OAUTH = "oauth"
    NONE = "none"
    UNKNOWN = "unknown"


class PaginationStyle(str, enum.Enum):
    CURSOR = "cursor"
    OFFSET = "offset"
    PAGE = "page"
    LINK_HEADER = "link-header"


# --- Catalog ---


class Parameter(BaseModel):
    """One input to an endpoint.

    A ``path`` parameter is always required; the validator forces it so
    that no source can produce an optional path parameter.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    location: ParameterLocation
    required: bool = False
    type: str = Field(default="string", description="JSON type of the value")
    description: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _path_parameters_are_required(cls, data: Any) -> Any:
        if isinstance(data, dict):
            location = data.get("location")
            if location in (ParameterLocation.PATH, ParameterLocation.PATH.value):
                data = {**data, "required": True}
        return data


class GraphQLOperation(BaseModel):
    """How a catalog endpoint maps onto a GraphQL root field."""

    model_config = ConfigDict(frozen=True)

    kind: str = Field(description="query or mutation")
    field: str
    endpoint_path: str = "/graphql"
    selection: tuple[str, ...] = ()


class Endpoint(BaseModel):
    """One HTTP operation in the catalog.

    ``(method, path)`` is unique within a catalog, and every ``{name}``
    placeholder in ``path`` has exactly one ``path`` parameter.
    """

    model_config = ConfigDict(frozen=True)

    method: HTTPMethod
    path: str
    description: Optional[str] = None
    parameters: tuple[Parameter, ...] = ()
    request_body_schema: Optional[Any] = None
    response_example: Optional[Any] = None
    sources: tuple[ObservationSource, ...] = ()
    confidence: Confidence = Confidence.HIGH
    auth_required: Optional[bool] = Field(
        default=None,
        description="Per-endpoint override: False when observed succeeding without credentials",
    )
    cacheable: bool = False
    graphql: Optional[GraphQLOperation] = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.method.value, self.path)

    @property
    def placeholders(self) -> list[str]:
        return paths.placeholders(self.path)

    def parameters_in(self, location: ParameterLocation) -> list[Parameter]:
        return [p for p in self.parameters if p.location == location]


class PaginationSpec(BaseModel):
    """How a resource's list endpoints page through results."""

    model_config = ConfigDict(frozen=True)

    style: PaginationStyle
    request_param_name: Optional[str] = None
    response_cursor_field: Optional[str] = Field(
        default=None, description="Dotted path of the cursor/total field in the response body"
    )


class ResourceGroup(BaseModel):
    """Endpoints sharing a root path segment (e.g. every ``/customers`` path)."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    endpoints: tuple[Endpoint, ...] = ()
    pagination: Optional[PaginationSpec] = None


class AuthSpec(BaseModel):
    """How the target API authenticates.

    ``env_var_name`` is derived from the service name
    (``<SERVICE>_API_KEY``). ``note`` explains an ``unknown`` verdict.
    """

    model_config = ConfigDict(frozen=True)

    type: AuthType = AuthType.UNKNOWN
    header_name: Optional[str] = None
    cookie_name: Optional[str] = None
    env_var_name: str = "API_KEY"
    note: Optional[str] = None

    @property
    def carries_credential(self) -> bool:
        """True when the spec names a concrete place to put a credential."""
        if self.type == AuthType.COOKIE:
            return bool(self.cookie_name)
        return bool(self.header_name)


class RateLimitSpec(BaseModel):
    """Observed rate limit; absent from the catalog unless headers showed one."""

    model_config = ConfigDict(frozen=True)

    requests_per_window: Optional[int] = None
    window_seconds: Optional[float] = None
    retry_after_seconds: Optional[float] = None


class Ambiguity(BaseModel):
    """A signal the normalizer could not resolve; shown for human review."""

    model_config = ConfigDict(frozen=True)

    subject: str
    message: str
    candidates: tuple[str, ...] = ()


class EndpointCatalog(BaseModel):
    """The root aggregate handed from the catalog builder to the generator.

    ``base_url`` carries no trailing slash and ``service_name`` is a
    lowercase, hyphen-free program name. ``confirmed`` is only set by
    :meth:`~discli.catalog.builder.CatalogDraft.confirm`.
    """

    model_config = ConfigDict(frozen=True)

    service_name: str
    base_url: str
    title: Optional[str] = None
    auth: AuthSpec = Field(default_factory=AuthSpec)
    pagination: Optional[PaginationSpec] = None
    rate_limit: Optional[RateLimitSpec] = None
    resources: tuple[ResourceGroup, ...] = ()
    ambiguities: tuple[Ambiguity, ...] = ()
    confirmed: bool = False

    @model_validator(mode="after")
    def _check_identity(self) -> EndpointCatalog:
        if not SERVICE_NAME_RE.match(self.service_name):
            raise ValueError(
                f"service_name '{self.service_name}' must be lowercase letters and digits, starting with a letter"
            )
        if self.base_url.endswith("/") or not BASE_URL_RE.match(self.base_url):
            raise ValueError(f"base_url '{self.base_url}' must be an http(s) URL without a trailing slash")
        return self

    def iter_endpoints(self) -> Iterator[tuple[ResourceGroup, Endpoint]]:
        for group in self.resources:
            for endpoint in group.endpoints:
                yield group, endpoint

    @property
    def endpoint_count(self) -> int:
        return sum(len(g.endpoints) for g in self.resources)

    def resource(self, name: str) -> Optional[ResourceGroup]:
        for group in self.resources:
            if group.name == name:
                return group
        return None


# --- Observations ---


class RawObservation(BaseModel):
    """One unnormalized endpoint observation reported by an adapter.

    ``path`` is a template for spec observations, an id-normalized template
    for capture observations, and a concrete path for probe observations.
    Every sample that was folded into the observation contributes one entry
    to ``query_samples`` (and ``body_samples`` when a body was sent), which
    is what required-ness inference counts over.
    """

    source: ObservationSource
    method: HTTPMethod
    path: str
    confidence: Confidence = Confidence.MEDIUM
    description: Optional[str] = None
    declared_parameters: list[Parameter] = Field(default_factory=list)
    concrete_paths: list[str] = Field(default_factory=list)
    query_samples: list[dict[str, Any]] = Field(default_factory=list)
    body_samples: list[Any] = Field(default_factory=list)
    request_body_schema: Optional[Any] = None
    response_example: Optional[Any] = None
    status_code: Optional[int] = None
    response_headers: dict[str, str] = Field(default_factory=dict)
    response_body: Optional[Any] = None
    authenticated: Optional[bool] = Field(
        default=None, description="Whether credentials were sent; None when unknown"
    )
    security: Optional[list[str]] = Field(
        default=None, description="Declared security scheme names; [] means anonymous"
    )
    verdict: Optional[str] = None
    graphql: Optional[GraphQLOperation] = None


class SkippedFragment(BaseModel):
    """A part of a source an adapter could not use, with the reason."""

    source: ObservationSource
    fragment: str
    reason: str
    negative: bool = Field(
        default=False, description="True for definitive negatives (404/4xx while probing)"
    )


class AuthHint(BaseModel):
    """An auth signal reported by an adapter for the normalizer's classifier."""

    source: ObservationSource
    type: AuthType
    header_name: Optional[str] = None
    cookie_name: Optional[str] = None
    evidence: str = ""


class AdapterResult(BaseModel):
    """Everything one adapter run produced, including partial failures."""

    source: ObservationSource
    observations: list[RawObservation] = Field(default_factory=list)
    skipped: list[SkippedFragment] = Field(default_factory=list)
    auth_hints: list[AuthHint] = Field(default_factory=list)
    title: Optional[str] = None
    base_url: Optional[str] = None


# --- Command surface ---


class ArgumentSpec(BaseModel):
    """A positional argument of a generated command (one path placeholder)."""

    model_config = ConfigDict(frozen=True)

    name: str
    dest: str
    type: str = "string"
    description: Optional[str] = None


class FlagSpec(BaseModel):
    """A ``--flag`` of a generated command.

    ``kind`` is ``param`` for flags backed by an endpoint parameter, and
    ``limit``, ``page`` or ``all`` for flags synthesized on list commands.
    """

    model_config = ConfigDict(frozen=True)

    flag: str
    dest: str
    kind: str = "param"
    param_name: Optional[str] = None
    location: Optional[ParameterLocation] = None
    required: bool = False
    type: str = "string"
    description: Optional[str] = None
    synthesized: bool = False


class CommandSpec(BaseModel):
    """One generated command, mapped 1:1 onto a catalog endpoint."""

    model_config = ConfigDict(frozen=True)

    name: str
    group: str
    verb: str
    method: HTTPMethod
    path: str
    description: str = ""
    arguments: tuple[ArgumentSpec, ...] = ()
    flags: tuple[FlagSpec, ...] = ()
    read_only: bool = True
    cacheable: bool = False
    pagination: Optional[PaginationSpec] = None
    auth_required: Optional[bool] = None
    graphql: Optional[GraphQLOperation] = None

    def flag_for(self, kind: str) -> Optional[FlagSpec]:
        for flag in self.flags:
            if flag.kind == kind:
                return flag
        return None


class AuthInjection(BaseModel):
    """How the generated client injects the credential."""

    model_config = ConfigDict(frozen=True)

    type: AuthType
    env_var_name: str
    header_name: Optional[str] = None
    cookie_name: Optional[str] = None
    scheme_prefix: Optional[str] = None
    manual_input_required: bool = False


class RetryPolicy(BaseModel):
    """Exponential backoff with bounded attempts; 4xx other than 429 is final."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0

    def should_retry(self, status_code: int) -> bool:
        return status_code == 429 or status_code >= 500

    def delay_for(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Seconds to wait before retry number *attempt* (0-based)."""
        if retry_after is not None:
            return min(retry_after, self.max_delay)
        return min(self.base_delay * (2 ** attempt), self.max_delay)


class CachePolicy(BaseModel):
    """Response caching: keyed on method + path + query, off unless cacheable."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    ttl_seconds: int = 300
    cacheable_commands: tuple[str, ...] = ()


class ClientConfig(BaseModel):
    """Everything the generic HTTP client needs to call the catalog's API."""

    model_config = ConfigDict(frozen=True)

    base_url: str
    auth: AuthInjection
    pagination: Optional[PaginationStyle] = None
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    rate_limit: Optional[RateLimitSpec] = None
    cache: CachePolicy = Field(default_factory=CachePolicy)


class CommandSurface(BaseModel):
    """The complete, deterministic description of a generated CLI."""

    model_config = ConfigDict(frozen=True)

    program: str
    description: str = ""
    commands: tuple[CommandSpec, ...] = ()
    global_flags: tuple[FlagSpec, ...] = ()
    client: ClientConfig

    def command(self, name: str) -> Optional[CommandSpec]:
        for cmd in self.commands:
            if cmd.name == name:
                return cmd
        return None

    def commands_in(self, group: str) -> list[CommandSpec]:
        return [c for c in self.commands if c.group == group]

    def describe(self) -> dict[str, Any]:
        """Return the root listing: every command with its arguments and flags."""
        return {
            "program": self.program,
            "description": self.description,
            "base_url": self.client.base_url,
            "auth": {
                "type": self.client.auth.type.value,
                "env_var": self.client.auth.env_var_name,
            },
            "global_flags": [
                {"flag": f.flag, "description": f.description} for f in self.global_flags
            ],
            "commands": [
                {
                    "name": cmd.name,
                    "method": cmd.method.value,
                    "path": cmd.path,
                    "description": cmd.description,
                    "arguments": [a.name for a in cmd.arguments],
                    "flags": [
                        {
                            "flag": f.flag,
                            "type": f.type,
                            "required": f.required,
                            "description": f.description,
                        }
                        for f in cmd.flags
                    ],
                }
                for cmd in self.commands
            ],
        }
