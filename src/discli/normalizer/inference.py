"""Pure fingerprint classifiers for auth, pagination, rate limits and parameter types.

Each classifier maps a fixed set of response-shape fingerprints to an
enumerated verdict and has an explicit *unknown* outcome; none of them
raises or guesses when nothing matches.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from discli.models import (
    AuthHint,
    AuthType,
    ObservationSource,
    PaginationSpec,
    PaginationStyle,
    Parameter,
    ParameterLocation,
    RateLimitSpec,
    RawObservation,
)

# ---------------------------------------------------------------------------
# Types and parameters
# ---------------------------------------------------------------------------

_INT_RE = re.compile(r"^-?\d+$")
_FLOAT_RE = re.compile(r"^-?\d+\.\d+$")


def infer_type(value: Any) -> str:
    """JSON type of a sample value; numeric-looking query strings count as numbers."""
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, dict):
        return "object"
    if isinstance(value, list):
        return "array"
    if isinstance(value, str):
        if value.lower() in ("true", "false"):
            return "boolean"
        if _INT_RE.match(value):
            return "integer"
        if _FLOAT_RE.match(value):
            return "number"
    return "string"


def _merge_types(types: Iterable[str]) -> str:
    distinct = set(types)
    if len(distinct) == 1:
        return distinct.pop()
    if distinct <= {"integer", "number"}:
        return "number"
    return "string"


def infer_parameters(samples: list[dict[str, Any]], location: ParameterLocation) -> list[Parameter]:
    """Parameters from key samples; ``required`` only when a key is in every sample.

    Keys are returned in first-seen order.
    """
    order: list[str] = []
    seen_in: dict[str, int] = {}
    types: dict[str, list[str]] = {}
    for sample in samples:
        for key, value in sample.items():
            if key not in seen_in:
                order.append(key)
                seen_in[key] = 0
                types[key] = []
            seen_in[key] += 1
            if value is not None:
                types[key].append(infer_type(value))
    total = len(samples)
    return [
        Parameter(
            name=key,
            location=location,
            required=total > 0 and seen_in[key] == total,
            type=_merge_types(types[key]) if types[key] else "string",
        )
        for key in order
    ]


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

_HEADER_NAME_IN_TEXT_RE = re.compile(r"\b(X-[A-Za-z0-9-]*(?:Key|Token|Auth)[A-Za-z0-9-]*)\b", re.IGNORECASE)


@dataclass
class AuthVerdict:
    """Outcome of :func:`classify_auth`."""

    type: AuthType
    header_name: Optional[str] = None
    cookie_name: Optional[str] = None
    note: Optional[str] = None
    evidence: list[str] = field(default_factory=list)


def parse_www_authenticate(value: str) -> Optional[AuthHint]:
    """Classify a ``WWW-Authenticate`` challenge."""
    scheme = value.strip().split(" ", 1)[0].lower().rstrip(",")
    if scheme == "bearer":
        return AuthHint(source=ObservationSource.PROBE, type=AuthType.BEARER,
                        header_name="Authorization", evidence=f"WWW-Authenticate: {value}")
    if scheme in ("apikey", "api-key", "key"):
        match = _HEADER_NAME_IN_TEXT_RE.search(value)
        return AuthHint(source=ObservationSource.PROBE, type=AuthType.API_KEY,
                        header_name=match.group(1) if match else None,
                        evidence=f"WWW-Authenticate: {value}")
    if scheme:
        return AuthHint(source=ObservationSource.PROBE, type=AuthType.UNKNOWN,
                        evidence=f"WWW-Authenticate: {value}")
    return None


def _hint_from_error_body(body: Any) -> Optional[AuthHint]:
    text = body if isinstance(body, str) else repr(body) if body is not None else ""
    match = _HEADER_NAME_IN_TEXT_RE.search(text)
    if match:
        return AuthHint(source=ObservationSource.PROBE, type=AuthType.API_KEY,
                        header_name=match.group(1), evidence=f"error body names header {match.group(1)}")
    if re.search(r"\bbearer\b", text, re.IGNORECASE):
        return AuthHint(source=ObservationSource.PROBE, type=AuthType.BEARER,
                        header_name="Authorization", evidence="error body mentions a bearer token")
    return None


def is_anonymous_success(observation: RawObservation) -> bool:
    """True for a non-trivial 2xx JSON response obtained without credentials."""
    status = observation.status_code or 0
    body = observation.response_body
    return (
        observation.authenticated is False
        and 200 <= status < 300
        and isinstance(body, (dict, list))
        and bool(body)
    )


def _is_gated(observation: RawObservation) -> bool:
    return observation.status_code in (401, 403)


_HINT_PRIORITY = {
    AuthType.OAUTH: 0,
    AuthType.BEARER: 1,
    AuthType.API_KEY: 2,
    AuthType.COOKIE: 3,
    AuthType.UNKNOWN: 9,
}


def classify_auth(hints: list[AuthHint], observations: list[RawObservation]) -> AuthVerdict:
    """Infer the auth scheme of a service.

    Signals, strongest first: spec security schemes, capture auth material,
    ``WWW-Authenticate`` challenges and error bodies of gated responses.
    ``none`` is returned only when nothing was gated, no scheme was
    declared, and at least one non-trivial response succeeded without
    credentials; otherwise the verdict is ``unknown``.
    """
    gated = [o for o in observations if _is_gated(o)]
    all_hints = list(hints)
    for observation in gated:
        challenge = observation.response_headers.get("www-authenticate")
        hint = parse_www_authenticate(challenge) if challenge else None
        if hint is None or hint.type == AuthType.UNKNOWN:
            body_hint = _hint_from_error_body(observation.response_body)
            hint = body_hint or hint
        if hint is not None:
            all_hints.append(hint)

    anonymous_successes = [o for o in observations if is_anonymous_success(o)]

    concrete = [h for h in all_hints if h.type != AuthType.UNKNOWN]
    if concrete:
        by_source = sorted(
            concrete,
            key=lambda h: (_source_rank(h.source), _HINT_PRIORITY[h.type], 0 if (h.header_name or h.cookie_name) else 1),
        )
        best = by_source[0]
        verdict = AuthVerdict(
            type=best.type,
            header_name=best.header_name,
            cookie_name=best.cookie_name,
            evidence=[h.evidence for h in all_hints],
        )
        if not (best.header_name if best.type != AuthType.COOKIE else best.cookie_name):
            verdict.note = f"{best.type.value} detected ({best.evidence}) but no header or cookie name was observed"
        return verdict

    if gated:
        return AuthVerdict(
            type=AuthType.UNKNOWN,
            note="some endpoints require credentials but the scheme could not be identified",
            evidence=[h.evidence for h in all_hints],
        )

    declares_security = any(
        o.source == ObservationSource.SPEC and o.security for o in observations
    )
    if anonymous_successes and not declares_security:
        return AuthVerdict(type=AuthType.NONE, evidence=["endpoints succeeded without credentials"])

    return AuthVerdict(
        type=AuthType.UNKNOWN,
        note="no request was gated and no endpoint was observed succeeding without credentials",
        evidence=[h.evidence for h in all_hints],
    )


def _source_rank(source: ObservationSource) -> int:
    return {ObservationSource.SPEC: 0, ObservationSource.CAPTURE: 1, ObservationSource.PROBE: 2}[source]


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------

_CURSOR_FIELDS = {
    "next_cursor": "cursor",
    "nextCursor": "cursor",
    "next_page_token": "page_token",
    "nextPageToken": "pageToken",
    "cursor": "cursor",
    "endCursor": "after",
    "end_cursor": "after",
}
_NESTED_CONTAINERS = ("meta", "pagination", "page_info", "pageInfo", "paging", "links")
_OFFSET_SIBLINGS = ("limit", "total", "count", "total_count", "totalCount")
_PAGE_FIELDS = ("page", "current_page", "currentPage", "page_number", "pageNumber")
_PAGE_SIBLINGS = ("total_pages", "totalPages", "per_page", "perPage", "page_size", "pageSize", "last_page", "lastPage")
_LINK_NEXT_RE = re.compile(r'<[^>]+>\s*;\s*rel="?next"?', re.IGNORECASE)


@dataclass(frozen=True)
class PaginationVerdict:
    """Outcome of :func:`classify_pagination`.

    ``spec`` is ``None`` when the response is not a list response at all
    (``applicable`` False) or when it is a list matching no fingerprint
    (``applicable`` True: the explicit *unknown* verdict).
    """

    applicable: bool
    spec: Optional[PaginationSpec] = None

    @property
    def unknown(self) -> bool:
        return self.applicable and self.spec is None


def _field_locations(body: dict[str, Any]) -> list[tuple[str, dict[str, Any]]]:
    locations: list[tuple[str, dict[str, Any]]] = [("", body)]
    for container in _NESTED_CONTAINERS:
        value = body.get(container)
        if isinstance(value, dict):
            locations.append((f"{container}.", value))
    return locations


def _is_list_response(body: Any) -> bool:
    if isinstance(body, list):
        return True
    if isinstance(body, dict):
        return any(isinstance(v, list) for v in body.values())
    return False


def classify_pagination(body: Any, headers: Optional[dict[str, str]] = None) -> PaginationVerdict:
    """Match a list response against the cursor, offset, page and link-header fingerprints.

    Precedence is cursor > offset > page > link-header; a cursor field wins
    even when offset or page fields are also present.
    """
    headers = {k.lower(): v for k, v in (headers or {}).items()}
    link_next = bool(_LINK_NEXT_RE.search(headers.get("link", "")))
    if not _is_list_response(body) and not link_next:
        return PaginationVerdict(applicable=False)

    if isinstance(body, dict):
        locations = _field_locations(body)
        for prefix, container in locations:
            for name, request_param in _CURSOR_FIELDS.items():
                if name in container:
                    return PaginationVerdict(True, PaginationSpec(
                        style=PaginationStyle.CURSOR,
                        request_param_name=request_param,
                        response_cursor_field=f"{prefix}{name}",
                    ))
        if "has_more" in body and isinstance(body.get("data"), list):
            return PaginationVerdict(True, PaginationSpec(
                style=PaginationStyle.CURSOR,
                request_param_name="starting_after",
                response_cursor_field="has_more",
            ))
        for prefix, container in locations:
            if "offset" in container and any(s in container for s in _OFFSET_SIBLINGS):
                total = next((s for s in ("total", "total_count", "totalCount", "count") if s in container), None)
                return PaginationVerdict(True, PaginationSpec(
                    style=PaginationStyle.OFFSET,
                    request_param_name="offset",
                    response_cursor_field=f"{prefix}{total}" if total else None,
                ))
        for prefix, container in locations:
            page_field = next((p for p in _PAGE_FIELDS if p in container), None)
            if page_field and any(s in container for s in _PAGE_SIBLINGS):
                total = next((s for s in ("total_pages", "totalPages", "last_page", "lastPage") if s in container), None)
                return PaginationVerdict(True, PaginationSpec(
                    style=PaginationStyle.PAGE,
                    request_param_name="page",
                    response_cursor_field=f"{prefix}{total}" if total else None,
                ))

    if link_next:
        return PaginationVerdict(True, PaginationSpec(style=PaginationStyle.LINK_HEADER))
    return PaginationVerdict(applicable=True)


# ---------------------------------------------------------------------------
# Rate limits
# ---------------------------------------------------------------------------

_POLICY_WINDOW_RE = re.compile(r"^\s*(\d+)\s*;\s*w=(\d+)", re.IGNORECASE)


def _as_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value.split(",")[0].strip())
    except ValueError:
        return None


def infer_rate_limit(headers: dict[str, str]) -> Optional[RateLimitSpec]:
    """Rate limit from ``X-RateLimit-*``, ``RateLimit-*`` and ``Retry-After`` headers.

    Returns ``None`` when none of them is present.
    """
    h = {k.lower(): v for k, v in headers.items()}
    limit = _as_int(h.get("x-ratelimit-limit") or h.get("ratelimit-limit"))
    window: Optional[float] = None
    window_raw = h.get("x-ratelimit-window") or h.get("x-ratelimit-interval")
    if window_raw is not None and _as_int(window_raw) is not None:
        window = float(_as_int(window_raw))  # type: ignore[arg-type]
    policy = h.get("ratelimit-policy") or h.get("x-ratelimit-policy")
    if policy:
        match = _POLICY_WINDOW_RE.match(policy)
        if match:
            limit = limit if limit is not None else int(match.group(1))
            window = float(match.group(2))
    retry_after = _as_int(h.get("retry-after"))

    if limit is None and window is None and retry_after is None:
        return None
    return RateLimitSpec(
        requests_per_window=limit,
        window_seconds=window,
        retry_after_seconds=float(retry_after) if retry_after is not None else None,
    )


def merge_rate_limits(specs: Iterable[Optional[RateLimitSpec]]) -> Optional[RateLimitSpec]:
    """Combine observed limits field by field, keeping the first value seen."""
    merged: dict[str, Any] = {}
    for spec in specs:
        if spec is None:
            continue
        for key, value in spec.model_dump().items():
            if value is not None and key not in merged:
                merged[key] = value
    return RateLimitSpec(**merged) if merged else None
