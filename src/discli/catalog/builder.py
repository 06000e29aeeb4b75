"""Build an :class:`~discli.models.EndpointCatalog` from normalized endpoints.

The builder returns a :class:`CatalogDraft` and never a confirmed
catalog directly. A human (or ``--yes``) reviews :meth:`CatalogDraft.summary`
and then calls :meth:`CatalogDraft.confirm`, which is the only place
``confirmed=True`` is set. The generator refuses anything else.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional
from urllib.parse import urlparse

from discli import paths
from discli.exceptions import DiscliError, NormalizationAmbiguous
from discli.exit_codes import EXIT_INVALID_USAGE
from discli.models import (
    BASE_URL_RE,
    SERVICE_NAME_RE,
    Ambiguity,
    AuthSpec,
    AuthType,
    Confidence,
    Endpoint,
    EndpointCatalog,
    HTTPMethod,
    PaginationSpec,
    ResourceGroup,
    SkippedFragment,
)
from discli.normalizer.inference import AuthVerdict
from discli.normalizer.normalize import NormalizedResult

logger = logging.getLogger(__name__)

_TITLE_NOISE = {"api", "apis", "rest", "service", "server", "the", "v1", "v2", "v3"}
_HOST_NOISE = {"api", "apis", "www", "rest", "gateway"}
_SAMPLE_ENDPOINTS = 3


def derive_service_name(title: Optional[str], base_url: str) -> str:
    """Lowercase, hyphen-free program name from a spec title or the URL host.

    ``"Stripe API"`` -> ``stripe``; ``https://api.example.com`` -> ``example``.
    """
    words: list[str] = []
    if title:
        words = [w for w in re.split(r"[^a-z0-9]+", title.lower()) if w and w not in _TITLE_NOISE]
    if not words:
        host = urlparse(base_url).hostname or ""
        labels = [l for l in host.lower().split(".") if l]
        if len(labels) > 1:
            labels = labels[:-1]
        words = [l for l in labels if l not in _HOST_NOISE][:1]
    name = re.sub(r"[^a-z0-9]", "", "".join(words))
    if not name:
        return "api"
    if not name[0].isalpha():
        name = f"api{name}"
    return name


def env_var_for(service_name: str) -> str:
    return f"{service_name.upper()}_API_KEY"


def _auth_spec(verdict: AuthVerdict, env_var_name: str) -> AuthSpec:
    """Translate the classifier verdict, failing closed on incomplete schemes."""
    auth_type = verdict.type
    header_name = verdict.header_name
    note = verdict.note
    if auth_type in (AuthType.BEARER, AuthType.OAUTH):
        header_name = header_name or "Authorization"
    elif auth_type == AuthType.API_KEY and not header_name:
        auth_type = AuthType.UNKNOWN
        note = note or "an API key is required but the header carrying it was not observed"
    elif auth_type == AuthType.COOKIE and not verdict.cookie_name:
        auth_type = AuthType.UNKNOWN
        note = note or "a session cookie is required but its name was not observed"
    if auth_type == AuthType.UNKNOWN and not note:
        note = "auth scheme could not be determined; confirm it manually"
    return AuthSpec(
        type=auth_type,
        header_name=header_name,
        cookie_name=verdict.cookie_name if auth_type == AuthType.COOKIE else None,
        env_var_name=env_var_name,
        note=note,
    )


@dataclass
class CatalogDraft:
    """An unconfirmed catalog plus what discovery could not use."""

    catalog: EndpointCatalog
    skipped: list[SkippedFragment] = field(default_factory=list)

    @property
    def ambiguities(self) -> tuple[Ambiguity, ...]:
        return self.catalog.ambiguities

    def summary_data(self) -> dict[str, Any]:
        """Structured form of :meth:`summary` for JSON output."""
        catalog = self.catalog
        return {
            "service_name": catalog.service_name,
            "base_url": catalog.base_url,
            "auth": {
                "type": catalog.auth.type.value,
                "header_name": catalog.auth.header_name,
                "cookie_name": catalog.auth.cookie_name,
                "env_var": catalog.auth.env_var_name,
            },
            "rate_limit": catalog.rate_limit.model_dump() if catalog.rate_limit else None,
            "endpoint_count": catalog.endpoint_count,
            "resources": [
                {
                    "name": group.name,
                    "endpoints": len(group.endpoints),
                    "pagination": group.pagination.style.value if group.pagination else None,
                    "samples": [f"{e.method.value} {e.path}" for e in group.endpoints[:_SAMPLE_ENDPOINTS]],
                }
                for group in catalog.resources
            ],
            "ambiguities": [a.model_dump() for a in catalog.ambiguities],
            "skipped": len(self.skipped),
        }

    def summary(self) -> str:
        """Plain-text review summary shown before confirmation."""
        catalog = self.catalog
        lines = [
            f"Service: {catalog.service_name} ({catalog.base_url})",
            f"Auth: {catalog.auth.type.value}"
            + (f" via {catalog.auth.header_name}" if catalog.auth.header_name else "")
            + (f" via cookie {catalog.auth.cookie_name}" if catalog.auth.cookie_name else "")
            + f", credential from ${catalog.auth.env_var_name}",
            f"Endpoints: {catalog.endpoint_count} in {len(catalog.resources)} resources",
        ]
        for group in catalog.resources:
            style = f" [{group.pagination.style.value} pagination]" if group.pagination else ""
            lines.append(f"  {group.name}: {len(group.endpoints)} endpoints{style}")
            for endpoint in group.endpoints[:_SAMPLE_ENDPOINTS]:
                marker = " (low confidence)" if endpoint.confidence == Confidence.LOW else ""
                lines.append(f"    {endpoint.method.value:6} {endpoint.path}{marker}")
            if len(group.endpoints) > _SAMPLE_ENDPOINTS:
                lines.append(f"    ... {len(group.endpoints) - _SAMPLE_ENDPOINTS} more")
        if catalog.ambiguities:
            lines.append("Needs review:")
            for ambiguity in catalog.ambiguities:
                lines.append(f"  - {ambiguity.subject}: {ambiguity.message}")
        if self.skipped:
            lines.append(f"Skipped fragments: {len(self.skipped)}")
        return "\n".join(lines)

    def confirm(
        self,
        auth: Optional[AuthSpec] = None,
        cacheable_resources: Iterable[str] = (),
    ) -> EndpointCatalog:
        """Return the confirmed, immutable catalog.

        Args:
            auth: Replaces the inferred auth scheme. Its ``env_var_name`` is
                kept from the draft unless set explicitly.
            cacheable_resources: Resource names whose GET endpoints may be
                served from the response cache. ``"*"`` marks every resource.
        """
        catalog = self.catalog
        update: dict[str, Any] = {"confirmed": True}
        if auth is not None:
            if "env_var_name" not in auth.model_fields_set:
                auth = auth.model_copy(update={"env_var_name": catalog.auth.env_var_name})
            update["auth"] = auth
            update["ambiguities"] = tuple(a for a in catalog.ambiguities if a.subject != "auth")

        cacheable = set(cacheable_resources)
        if cacheable:
            unknown = cacheable - {g.name for g in catalog.resources} - {"*"}
            if unknown:
                raise NormalizationAmbiguous(
                    f"Unknown resource(s) marked cacheable: {', '.join(sorted(unknown))}",
                    fix="Use resource names from the catalog summary.",
                )
            update["resources"] = tuple(
                _mark_cacheable(group) if "*" in cacheable or group.name in cacheable else group
                for group in catalog.resources
            )
        confirmed = catalog.model_copy(update=update)
        logger.info("catalog %s confirmed with %d endpoints", confirmed.service_name, confirmed.endpoint_count)
        return confirmed


def _mark_cacheable(group: ResourceGroup) -> ResourceGroup:
    endpoints = tuple(
        e.model_copy(update={"cacheable": True}) if e.method == HTTPMethod.GET else e
        for e in group.endpoints
    )
    return group.model_copy(update={"endpoints": endpoints})


def _group_pagination(
    name: str,
    endpoints: list[Endpoint],
    normalized: NormalizedResult,
    ambiguities: list[Ambiguity],
) -> Optional[PaginationSpec]:
    specs: list[PaginationSpec] = []
    unknown: list[str] = []
    for endpoint in endpoints:
        verdict = normalized.pagination.get(endpoint.key)
        if verdict is None:
            continue
        if verdict.spec is None:
            unknown.append(endpoint.path)
        elif verdict.spec not in specs:
            specs.append(verdict.spec)

    if len(specs) > 1:
        ambiguities.append(Ambiguity(
            subject=f"pagination:{name}",
            message=f"list endpoints of '{name}' disagree on pagination; using {specs[0].style.value}",
            candidates=tuple(s.style.value for s in specs),
        ))
    elif not specs and unknown:
        ambiguities.append(Ambiguity(
            subject=f"pagination:{name}",
            message=f"list responses of '{name}' match no known pagination style",
            candidates=tuple(unknown),
        ))
    return specs[0] if specs else None


def build_catalog(
    normalized: NormalizedResult,
    base_url: Optional[str] = None,
    service_name: Optional[str] = None,
) -> CatalogDraft:
    """Group normalized endpoints into resources and derive catalog metadata.

    Args:
        normalized: Output of :func:`~discli.normalizer.normalize`.
        base_url: Overrides the base URL reported by the adapters.
        service_name: Overrides the derived service name.

    Raises:
        NormalizationAmbiguous: No base URL was given or discovered.
        DiscliError: The service name or base URL cannot name a program
            or address an API (exit code 2).
    """
    resolved_url = (base_url or normalized.base_url or "").rstrip("/")
    if not resolved_url:
        raise NormalizationAmbiguous(
            "No base URL could be determined for the catalog",
            fix="Pass --base-url explicitly.",
        )
    if not BASE_URL_RE.match(resolved_url):
        raise DiscliError(
            f"Base URL '{resolved_url}' is not an http(s) URL",
            EXIT_INVALID_USAGE,
            code="INVALID_BASE_URL",
            fix="Pass an absolute URL such as --base-url https://api.example.com.",
        )
    name = service_name or derive_service_name(normalized.title, resolved_url)
    if not SERVICE_NAME_RE.match(name):
        raise DiscliError(
            f"Service name '{name}' is not a valid program name",
            EXIT_INVALID_USAGE,
            code="INVALID_SERVICE_NAME",
            fix="Use lowercase letters and digits only, starting with a letter (e.g. --name myapi).",
            details={"service_name": name},
        )
    ambiguities = list(normalized.ambiguities)

    grouped: dict[str, list[Endpoint]] = {}
    for endpoint in normalized.endpoints:
        grouped.setdefault(paths.group_key(endpoint.path), []).append(endpoint)

    resources: list[ResourceGroup] = []
    for group_name, endpoints in grouped.items():
        resources.append(ResourceGroup(
            name=group_name,
            endpoints=tuple(endpoints),
            pagination=_group_pagination(group_name, endpoints, normalized, ambiguities),
        ))

    styles = {g.pagination for g in resources if g.pagination is not None}
    catalog = EndpointCatalog(
        service_name=name,
        base_url=resolved_url,
        title=normalized.title,
        auth=_auth_spec(normalized.auth, env_var_for(name)),
        pagination=styles.pop() if len(styles) == 1 else None,
        rate_limit=normalized.rate_limit,
        resources=tuple(resources),
        ambiguities=tuple(ambiguities),
    )
    logger.debug("built draft catalog %s: %d resources", name, len(resources))
    return CatalogDraft(catalog=catalog, skipped=list(normalized.skipped))
