"""Merge source-tagged observations into canonical endpoints.

:func:`normalize` runs these steps:

1. **Ordering.** Adapter results are processed spec, then capture, then probe,
   keeping each adapter's own order, which fixes discovery order.
2. **Templatization.** Concrete probe/capture paths that share segment
   count and every sibling segment but differ in one position collapse
   into one template (``/users/alice`` + ``/users/bob`` -> ``/users/{id}``).
   Spec templates are authoritative and never renamed.
3. **Merging.** Observations are matched on ``(method, path shape)``. The
   source highest in :data:`SOURCE_PRECEDENCE` supplies the structural
   fields (path, parameters and their required-ness); lower sources only
   fill in what is missing.
4. **Inference.** Auth, pagination and rate limits come from the pure
   classifiers in :mod:`discli.normalizer.inference`. Anything those cannot
   settle is returned as an :class:`~discli.models.Ambiguity`.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Optional

from discli import paths
from discli.models import (
    AdapterResult,
    Ambiguity,
    AuthHint,
    AuthType,
    Confidence,
    Endpoint,
    HTTPMethod,
    ObservationSource,
    PaginationSpec,
    PaginationStyle,
    Parameter,
    ParameterLocation,
    RateLimitSpec,
    RawObservation,
    SkippedFragment,
)
from discli.normalizer.inference import (
    AuthVerdict,
    PaginationVerdict,
    classify_auth,
    classify_pagination,
    infer_parameters,
    infer_rate_limit,
    is_anonymous_success,
    merge_rate_limits,
)

logger = logging.getLogger(__name__)

SOURCE_PRECEDENCE: dict[ObservationSource, int] = {
    ObservationSource.SPEC: 3,
    ObservationSource.CAPTURE: 2,
    ObservationSource.PROBE: 1,
}
"""Higher wins on structural fields."""

_CURSOR_PARAMS = ("cursor", "after", "starting_after", "page_token", "pageToken", "next_token")


@dataclass
class NormalizedResult:
    """Output of :func:`normalize`, consumed by the catalog builder."""

    endpoints: list[Endpoint] = field(default_factory=list)
    pagination: dict[tuple[str, str], PaginationVerdict] = field(default_factory=dict)
    auth: AuthVerdict = field(default_factory=lambda: AuthVerdict(type=AuthType.UNKNOWN))
    rate_limit: Optional[RateLimitSpec] = None
    ambiguities: list[Ambiguity] = field(default_factory=list)
    skipped: list[SkippedFragment] = field(default_factory=list)
    title: Optional[str] = None
    base_url: Optional[str] = None


def normalize(results: list[AdapterResult]) -> NormalizedResult:
    """Normalize the output of any number of adapter runs into one result."""
    ordered = sorted(results, key=lambda r: -SOURCE_PRECEDENCE[r.source])
    observations = [o for r in ordered for o in r.observations]
    hints: list[AuthHint] = [h for r in ordered for h in r.auth_hints]

    normalized = NormalizedResult(
        skipped=[s for r in ordered for s in r.skipped],
        title=next((r.title for r in ordered if r.title), None),
        base_url=next((r.base_url for r in ordered if r.base_url), None),
    )

    templated = templatize_observations(observations)
    groups: dict[tuple[str, str], list[RawObservation]] = {}
    for observation in templated:
        key = (observation.method.value, paths.path_shape(observation.path))
        groups.setdefault(key, []).append(observation)

    auth = classify_auth(hints, observations)
    normalized.auth = auth
    if auth.type == AuthType.UNKNOWN:
        normalized.ambiguities.append(Ambiguity(
            subject="auth",
            message=auth.note or "auth scheme could not be determined; requires manual input",
            candidates=tuple(auth.evidence),
        ))
    _record_conflicting_schemes(hints, normalized)

    for group in groups.values():
        endpoint = _merge_group(group, auth)
        normalized.endpoints.append(endpoint)
        verdict = _endpoint_pagination(endpoint, group)
        if verdict is not None:
            normalized.pagination[endpoint.key] = verdict

    normalized.rate_limit = merge_rate_limits(
        infer_rate_limit(o.response_headers) for o in observations if o.response_headers
    )
    logger.debug(
        "normalized %d observations into %d endpoints (%d ambiguities)",
        len(observations), len(normalized.endpoints), len(normalized.ambiguities),
    )
    return normalized


# ---------------------------------------------------------------------------
# Templatization
# ---------------------------------------------------------------------------


def _varying_positions(segment_lists: list[list[str]]) -> list[set[int]]:
    """Positions of each path that vary against a sibling path."""
    positions: list[set[int]] = [set() for _ in segment_lists]
    by_length: dict[int, list[int]] = defaultdict(list)
    for index, segments in enumerate(segment_lists):
        by_length[len(segments)].append(index)

    for length, indexes in by_length.items():
        for pos in range(1, length):
            buckets: dict[tuple[str, ...], list[int]] = defaultdict(list)
            for index in indexes:
                segments = segment_lists[index]
                buckets[tuple(segments[:pos] + segments[pos + 1:])].append(index)
            for members in buckets.values():
                values = {segment_lists[i][pos] for i in members}
                if len(values) < 2:
                    continue
                if any(paths.is_placeholder(v) or v.lower() in paths.RESERVED_SEGMENTS for v in values):
                    continue
                before = segment_lists[members[0]][pos - 1]
                if paths.is_placeholder(before) or paths.is_api_prefix(before):
                    continue
                for i in members:
                    positions[i].add(pos)
    return positions


def templatize_observations(observations: list[RawObservation]) -> list[RawObservation]:
    """Return copies of *observations* with probe/capture paths templatized.

    Spec observations are returned unchanged.
    """
    observed = [o for o in observations if o.source != ObservationSource.SPEC]
    segment_lists = [paths.split_segments(o.path) for o in observed]
    varying = _varying_positions(segment_lists)
    rewritten = {
        id(o): paths.join_segments(paths.name_placeholders(segs, sorted(pos)))
        for o, segs, pos in zip(observed, segment_lists, varying)
    }
    return [
        o if o.source == ObservationSource.SPEC else o.model_copy(update={"path": rewritten[id(o)]})
        for o in observations
    ]


# ---------------------------------------------------------------------------
# Merging
# ---------------------------------------------------------------------------


def _merge_group(group: list[RawObservation], auth: AuthVerdict) -> Endpoint:
    ranked = sorted(group, key=lambda o: -SOURCE_PRECEDENCE[o.source])
    primary = ranked[0]
    path = primary.path

    if primary.source == ObservationSource.SPEC:
        parameters = list(primary.declared_parameters)
        observed = [o for o in ranked if o.source != ObservationSource.SPEC]
        if observed:
            parameters = _add_missing(parameters, _observed_parameters(observed, all_optional=True))
    else:
        parameters = _observed_parameters(ranked, all_optional=False)
    parameters = _align_path_parameters(path, parameters)

    sources = tuple(dict.fromkeys(o.source for o in ranked))
    if primary.source == ObservationSource.SPEC or len(sources) > 1:
        confidence = Confidence.HIGH
    else:
        confidence = max((o.confidence for o in ranked), key=_confidence_rank)

    auth_required: Optional[bool] = None
    if auth.type != AuthType.NONE:
        declared_anonymous = primary.source == ObservationSource.SPEC and primary.security == []
        if declared_anonymous or any(is_anonymous_success(o) for o in ranked):
            auth_required = False

    return Endpoint(
        method=primary.method,
        path=path,
        description=_first(o.description for o in ranked),
        parameters=tuple(parameters),
        request_body_schema=_first(
            [o.request_body_schema for o in ranked]
            + [b for o in ranked for b in o.body_samples if isinstance(b, dict)]
        ),
        response_example=_first(o.response_example for o in ranked),
        sources=sources,
        confidence=confidence,
        auth_required=auth_required,
        graphql=primary.graphql,
    )


def _first(values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def _confidence_rank(confidence: Confidence) -> int:
    return {Confidence.LOW: 0, Confidence.MEDIUM: 1, Confidence.HIGH: 2}[confidence]


def _observed_parameters(observations: list[RawObservation], all_optional: bool) -> list[Parameter]:
    query_samples = [s for o in observations for s in o.query_samples]
    body_samples = [b for o in observations for b in o.body_samples if isinstance(b, dict)]
    inferred = infer_parameters(query_samples, ParameterLocation.QUERY)
    inferred += infer_parameters(body_samples, ParameterLocation.BODY)
    if all_optional:
        inferred = [p.model_copy(update={"required": False}) for p in inferred]
    return inferred


def _add_missing(parameters: list[Parameter], extra: list[Parameter]) -> list[Parameter]:
    known = {(p.name, p.location) for p in parameters}
    return parameters + [p for p in extra if (p.name, p.location) not in known]


def _align_path_parameters(path: str, parameters: list[Parameter]) -> list[Parameter]:
    """Exactly one required path parameter per placeholder, in path order, first."""
    names = paths.placeholders(path)
    declared = {p.name: p for p in parameters if p.location == ParameterLocation.PATH}
    path_params = [
        declared.get(name) or Parameter(name=name, location=ParameterLocation.PATH)
        for name in names
    ]
    others: list[Parameter] = []
    seen: set[tuple[str, ParameterLocation]] = set()
    for p in parameters:
        if p.location == ParameterLocation.PATH or (p.name, p.location) in seen:
            continue
        seen.add((p.name, p.location))
        others.append(p)
    return path_params + others


# ---------------------------------------------------------------------------
# Pagination and auth bookkeeping
# ---------------------------------------------------------------------------


def _endpoint_pagination(endpoint: Endpoint, group: list[RawObservation]) -> Optional[PaginationVerdict]:
    if endpoint.method != HTTPMethod.GET or paths.ends_with_placeholder(endpoint.path):
        return None
    unknown: Optional[PaginationVerdict] = None
    for observation in group:
        body = observation.response_body if observation.response_body is not None else observation.response_example
        if body is None and not observation.response_headers:
            continue
        verdict = classify_pagination(body, observation.response_headers)
        if verdict.spec is not None:
            return verdict
        if verdict.unknown:
            unknown = verdict
    return _pagination_from_parameters(endpoint) or unknown


def _pagination_from_parameters(endpoint: Endpoint) -> Optional[PaginationVerdict]:
    """Pagination declared only through query parameters (spec-only endpoints)."""
    names = [p.name for p in endpoint.parameters_in(ParameterLocation.QUERY)]
    for name in names:
        if name in _CURSOR_PARAMS:
            return PaginationVerdict(True, PaginationSpec(style=PaginationStyle.CURSOR, request_param_name=name))
    if "offset" in names:
        return PaginationVerdict(True, PaginationSpec(style=PaginationStyle.OFFSET, request_param_name="offset"))
    if "page" in names:
        return PaginationVerdict(True, PaginationSpec(style=PaginationStyle.PAGE, request_param_name="page"))
    return None


def _record_conflicting_schemes(hints: list[AuthHint], normalized: NormalizedResult) -> None:
    distinct = sorted({h.type.value for h in hints if h.type not in (AuthType.UNKNOWN, AuthType.NONE)})
    if len(distinct) > 1 and normalized.auth.type != AuthType.UNKNOWN:
        normalized.ambiguities.append(Ambiguity(
            subject="auth",
            message=f"several auth schemes were observed; {normalized.auth.type.value} was selected",
            candidates=tuple(distinct),
        ))
