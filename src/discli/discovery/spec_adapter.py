"""Turn OpenAPI 3.x, Swagger 2.0 and GraphQL introspection documents into observations.

Every operation of the document maps to exactly one
:class:`~discli.models.RawObservation` tagged ``source=spec`` and
``confidence=high``. Nothing in here raises on a partially usable
document: unsupported methods, malformed operations, unsupported
parameter locations and dangling ``$ref`` pointers each become a
:class:`~discli.models.SkippedFragment`.

Parameter merging follows OpenAPI: path-level parameters provide defaults,
and operation-level parameters override them when they share ``name``
and ``in``.

GraphQL root fields map to synthetic ``POST /query/<field>`` and
``POST /mutation/<field>`` observations carrying
:class:`~discli.models.GraphQLOperation` metadata; the generated client
posts them to the real GraphQL endpoint.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from discli import paths
from discli.models import (
    AdapterResult,
    AuthHint,
    AuthType,
    Confidence,
    GraphQLOperation,
    HTTPMethod,
    ObservationSource,
    Parameter,
    ParameterLocation,
    RawObservation,
    SkippedFragment,
)
from discli.parser.loader import (
    KIND_GRAPHQL,
    KIND_OPENAPI3,
    KIND_SWAGGER2,
    detect_document_kind,
    load_document,
)
from discli.parser.resolver import resolve_refs

logger = logging.getLogger(__name__)

_SUPPORTED_METHODS = {m.value.lower(): m for m in HTTPMethod}
_UNSUPPORTED_METHODS = frozenset({"head", "options", "trace"})
_PARAM_LOCATIONS = {
    "path": ParameterLocation.PATH,
    "query": ParameterLocation.QUERY,
    "header": ParameterLocation.HEADER,
}
_MAX_EXAMPLE_DEPTH = 4


def adapt_spec_source(source: str, timeout: float = 30.0, graphql_path: str = "/graphql") -> AdapterResult:
    """Load *source* (URL, file or ``-``) and adapt it.

    Raises:
        SpecParseError: If the source cannot be loaded or parsed at all.
    """
    document = load_document(source, timeout=timeout)
    return adapt_spec_document(document, graphql_path=graphql_path)


def adapt_spec_document(document: dict[str, Any], graphql_path: str = "/graphql") -> AdapterResult:
    """Convert an already-parsed document into an :class:`AdapterResult`.

    Args:
        document: Parsed JSON/YAML mapping.
        graphql_path: Endpoint path GraphQL operations are posted to.
    """
    result = AdapterResult(source=ObservationSource.SPEC)
    kind = detect_document_kind(document)
    if kind is None:
        result.skipped.append(
            _skip("document", "not an OpenAPI 3.x, Swagger 2.0 or GraphQL introspection document")
        )
        return result

    problems: list[str] = []
    resolved = resolve_refs(document, problems)
    for problem in problems:
        result.skipped.append(_skip("$ref", f"unresolved reference {problem}"))

    if kind == KIND_GRAPHQL:
        _adapt_graphql(resolved, result, graphql_path)
    else:
        _adapt_rest(resolved, kind, result)

    logger.debug(
        "spec adapter (%s): %d observations, %d skipped",
        kind, len(result.observations), len(result.skipped),
    )
    return result


def _skip(fragment: str, reason: str) -> SkippedFragment:
    return SkippedFragment(source=ObservationSource.SPEC, fragment=fragment, reason=reason)


# ---------------------------------------------------------------------------
# OpenAPI / Swagger
# ---------------------------------------------------------------------------


def _adapt_rest(spec: dict[str, Any], kind: str, result: AdapterResult) -> None:
    info = spec.get("info") if isinstance(spec.get("info"), dict) else {}
    result.title = info.get("title")
    result.base_url = _extract_base_url(spec, kind)
    result.auth_hints.extend(_extract_security_hints(spec, kind))

    declared_global = spec.get("security")
    global_security = _security_names(declared_global) if isinstance(declared_global, list) else None

    path_items = spec.get("paths")
    if not isinstance(path_items, dict):
        result.skipped.append(_skip("paths", "document declares no paths object"))
        return

    for path, path_item in path_items.items():
        if not isinstance(path_item, dict) or not isinstance(path, str) or not path.startswith("/"):
            result.skipped.append(_skip(str(path), "malformed path item"))
            continue
        path_params = path_item.get("parameters") if isinstance(path_item.get("parameters"), list) else []

        for key, operation in path_item.items():
            method_key = str(key).lower()
            if method_key in _UNSUPPORTED_METHODS:
                result.skipped.append(_skip(f"{method_key.upper()} {path}", "unsupported HTTP method"))
                continue
            if method_key not in _SUPPORTED_METHODS:
                continue
            if not isinstance(operation, dict):
                result.skipped.append(_skip(f"{method_key.upper()} {path}", "malformed operation"))
                continue
            observation = _operation_to_observation(
                path, _SUPPORTED_METHODS[method_key], operation, path_params, kind, global_security, result
            )
            result.observations.append(observation)


def _extract_base_url(spec: dict[str, Any], kind: str) -> Optional[str]:
    if kind == KIND_SWAGGER2:
        host = spec.get("host")
        if not host:
            return None
        schemes = spec.get("schemes") or ["https"]
        return f"{schemes[0]}://{host}{spec.get('basePath', '')}".rstrip("/")
    servers = spec.get("servers")
    if isinstance(servers, list) and servers and isinstance(servers[0], dict):
        url = str(servers[0].get("url", ""))
        if url.startswith(("http://", "https://")):
            return url.rstrip("/")
    return None


def _extract_security_hints(spec: dict[str, Any], kind: str) -> list[AuthHint]:
    if kind == KIND_SWAGGER2:
        schemes = spec.get("securityDefinitions") or {}
    else:
        components = spec.get("components") if isinstance(spec.get("components"), dict) else {}
        schemes = components.get("securitySchemes") or {}

    hints: list[AuthHint] = []
    for name, scheme in schemes.items():
        if not isinstance(scheme, dict):
            continue
        hints.append(_scheme_to_hint(str(name), scheme))
    return hints


def _scheme_to_hint(name: str, scheme: dict[str, Any]) -> AuthHint:
    scheme_type = str(scheme.get("type", "")).lower()
    evidence = f"security scheme '{name}' ({scheme_type})"

    if scheme_type == "apikey":
        location = str(scheme.get("in", "")).lower()
        if location == "header":
            return AuthHint(source=ObservationSource.SPEC, type=AuthType.API_KEY,
                            header_name=scheme.get("name"), evidence=evidence)
        if location == "cookie":
            return AuthHint(source=ObservationSource.SPEC, type=AuthType.COOKIE,
                            cookie_name=scheme.get("name"), evidence=evidence)
        return AuthHint(source=ObservationSource.SPEC, type=AuthType.API_KEY,
                        evidence=f"{evidence}: key passed in {location or 'an unknown location'}")
    if scheme_type == "http" and str(scheme.get("scheme", "")).lower() == "bearer":
        return AuthHint(source=ObservationSource.SPEC, type=AuthType.BEARER,
                        header_name="Authorization", evidence=evidence)
    if scheme_type in ("oauth2", "openidconnect"):
        return AuthHint(source=ObservationSource.SPEC, type=AuthType.OAUTH,
                        header_name="Authorization", evidence=evidence)
    return AuthHint(source=ObservationSource.SPEC, type=AuthType.UNKNOWN, evidence=evidence)


def _security_names(requirements: list[Any]) -> list[str]:
    names: list[str] = []
    for requirement in requirements:
        if isinstance(requirement, dict):
            names.extend(str(n) for n in requirement)
    return names


def _merge_parameters(
    path_params: list[Any], op_params: list[Any]
) -> list[dict[str, Any]]:
    """Operation-level parameters override path-level ones with the same name and ``in``."""
    op_dicts = [p for p in op_params if isinstance(p, dict)]
    overridden = {(p.get("name", ""), p.get("in", "")) for p in op_dicts}
    merged = [
        p for p in path_params
        if isinstance(p, dict) and (p.get("name", ""), p.get("in", "")) not in overridden
    ]
    merged.extend(op_dicts)
    return merged


def _operation_to_observation(
    path: str,
    method: HTTPMethod,
    operation: dict[str, Any],
    path_params: list[Any],
    kind: str,
    global_security: Optional[list[str]],
    result: AdapterResult,
) -> RawObservation:
    label = f"{method.value} {path}"
    op_params = operation.get("parameters") if isinstance(operation.get("parameters"), list) else []
    template_names = paths.placeholders(path)

    parameters: list[Parameter] = []
    body_schema: Optional[dict[str, Any]] = None
    for raw in _merge_parameters(path_params, op_params):
        name = raw.get("name")
        location = str(raw.get("in", "")).lower()
        if not name:
            result.skipped.append(_skip(label, "parameter without a name"))
            continue
        if location == "body":
            body_schema = raw.get("schema") if isinstance(raw.get("schema"), dict) else {}
            continue
        if location == "formdata":
            parameters.append(Parameter(
                name=name, location=ParameterLocation.BODY, required=bool(raw.get("required")),
                type=_schema_type(raw), description=raw.get("description"),
            ))
            continue
        if location not in _PARAM_LOCATIONS:
            result.skipped.append(_skip(f"{label} parameter {name}", f"unsupported location '{location}'"))
            continue
        if location == "path" and name not in template_names:
            result.skipped.append(_skip(f"{label} parameter {name}", "path parameter not in the path template"))
            continue
        schema = raw.get("schema") if kind == KIND_OPENAPI3 else raw
        parameters.append(Parameter(
            name=name,
            location=_PARAM_LOCATIONS[location],
            required=bool(raw.get("required")),
            type=_schema_type(schema),
            description=raw.get("description"),
        ))

    declared_path = {p.name for p in parameters if p.location == ParameterLocation.PATH}
    for name in template_names:
        if name not in declared_path:
            parameters.append(Parameter(name=name, location=ParameterLocation.PATH))

    if kind == KIND_OPENAPI3:
        body_schema = _request_body_schema(operation.get("requestBody"))
    request_example = None
    if body_schema is not None:
        parameters.extend(_body_parameters(body_schema))
        request_example = example_from_schema(body_schema)

    security = operation.get("security")
    names = _security_names(security) if isinstance(security, list) else global_security

    return RawObservation(
        source=ObservationSource.SPEC,
        method=method,
        path=path,
        confidence=Confidence.HIGH,
        description=operation.get("summary") or operation.get("description"),
        declared_parameters=parameters,
        request_body_schema=request_example,
        response_example=_response_example(operation.get("responses"), kind),
        security=names,
    )


def _schema_type(schema: Any) -> str:
    """Type string of a schema; OpenAPI 3.1 type arrays yield the first non-null type."""
    if not isinstance(schema, dict):
        return "string"
    type_value = schema.get("type", "string")
    if isinstance(type_value, list):
        non_null = [t for t in type_value if t != "null"]
        return str(non_null[0]) if non_null else "string"
    if type_value == "file":
        return "string"
    return str(type_value)


def _request_body_schema(body: Any) -> Optional[dict[str, Any]]:
    if not isinstance(body, dict):
        return None
    content = body.get("content") if isinstance(body.get("content"), dict) else {}
    preferred = content.get("application/json")
    candidates = [preferred] if isinstance(preferred, dict) else []
    candidates.extend(v for v in content.values() if isinstance(v, dict))
    for media in candidates:
        if isinstance(media.get("schema"), dict):
            return media["schema"]
    return None


def _body_parameters(schema: dict[str, Any]) -> list[Parameter]:
    properties = schema.get("properties")
    if not isinstance(properties, dict):
        return []
    required = set(schema.get("required") or [])
    return [
        Parameter(
            name=str(name),
            location=ParameterLocation.BODY,
            required=name in required,
            type=_schema_type(prop),
            description=prop.get("description") if isinstance(prop, dict) else None,
        )
        for name, prop in properties.items()
    ]


def _response_example(responses: Any, kind: str) -> Any:
    if not isinstance(responses, dict):
        return None
    for status in sorted(str(s) for s in responses):
        if not status.startswith("2"):
            continue
        response = responses.get(status, responses.get(int(status)) if status.isdigit() else None)
        if not isinstance(response, dict):
            continue
        if kind == KIND_SWAGGER2:
            examples = response.get("examples")
            if isinstance(examples, dict) and "application/json" in examples:
                return examples["application/json"]
            if isinstance(response.get("schema"), dict):
                return example_from_schema(response["schema"])
            continue
        content = response.get("content") if isinstance(response.get("content"), dict) else {}
        for media in content.values():
            if not isinstance(media, dict):
                continue
            if "example" in media:
                return media["example"]
            if isinstance(media.get("schema"), dict):
                return example_from_schema(media["schema"])
    return None


def example_from_schema(schema: Any, depth: int = 0) -> Any:
    """Synthesize a structural example value from a JSON schema.

    Explicit ``example`` / ``default`` / first ``enum`` values win;
    recursion stops after a few levels and at unresolved references.
    """
    if not isinstance(schema, dict) or "$ref" in schema or depth > _MAX_EXAMPLE_DEPTH:
        return None
    for key in ("example", "default"):
        if key in schema:
            return schema[key]
    if isinstance(schema.get("enum"), list) and schema["enum"]:
        return schema["enum"][0]
    for combinator in ("allOf", "oneOf", "anyOf"):
        options = schema.get(combinator)
        if isinstance(options, list) and options:
            if combinator == "allOf":
                merged: dict[str, Any] = {}
                for option in options:
                    value = example_from_schema(option, depth + 1)
                    if isinstance(value, dict):
                        merged.update(value)
                return merged
            return example_from_schema(options[0], depth + 1)

    schema_type = _schema_type(schema)
    if schema_type == "object" or isinstance(schema.get("properties"), dict):
        return {
            str(name): example_from_schema(prop, depth + 1)
            for name, prop in (schema.get("properties") or {}).items()
        }
    if schema_type == "array":
        item = example_from_schema(schema.get("items"), depth + 1)
        return [item] if item is not None else []
    if schema_type == "integer":
        return 0
    if schema_type == "number":
        return 0.0
    if schema_type == "boolean":
        return False
    return "string"


# ---------------------------------------------------------------------------
# GraphQL introspection
# ---------------------------------------------------------------------------

_GRAPHQL_SCALARS = {"Int": "integer", "Float": "number", "Boolean": "boolean"}


def _adapt_graphql(document: dict[str, Any], result: AdapterResult, graphql_path: str) -> None:
    data = document.get("data") if isinstance(document.get("data"), dict) else document
    schema = data["__schema"]
    types = {t.get("name"): t for t in schema.get("types") or [] if isinstance(t, dict)}

    for kind, root_key in (("query", "queryType"), ("mutation", "mutationType")):
        root_ref = schema.get(root_key)
        if not isinstance(root_ref, dict):
            continue
        root = types.get(root_ref.get("name"))
        if not isinstance(root, dict):
            result.skipped.append(_skip(f"{kind} root", f"type '{root_ref.get('name')}' not in schema"))
            continue
        for field in root.get("fields") or []:
            if not isinstance(field, dict) or not field.get("name"):
                result.skipped.append(_skip(f"{kind} field", "malformed field"))
                continue
            result.observations.append(_graphql_observation(kind, field, types, graphql_path))


def _unwrap(type_ref: Any) -> tuple[Optional[dict[str, Any]], bool]:
    """Return the named type under NON_NULL/LIST wrappers and whether the outer type is NON_NULL."""
    non_null = isinstance(type_ref, dict) and type_ref.get("kind") == "NON_NULL"
    current = type_ref
    while isinstance(current, dict) and current.get("kind") in ("NON_NULL", "LIST"):
        current = current.get("ofType")
    return (current if isinstance(current, dict) else None), non_null


def _graphql_observation(
    kind: str, field: dict[str, Any], types: dict[Any, Any], graphql_path: str
) -> RawObservation:
    parameters: list[Parameter] = []
    for arg in field.get("args") or []:
        if not isinstance(arg, dict) or not arg.get("name"):
            continue
        named, non_null = _unwrap(arg.get("type"))
        type_name = (named or {}).get("name", "")
        parameters.append(Parameter(
            name=arg["name"],
            location=ParameterLocation.BODY,
            required=non_null,
            type=_GRAPHQL_SCALARS.get(type_name, "string"),
            description=arg.get("description"),
        ))

    returned, _ = _unwrap(field.get("type"))
    selection: tuple[str, ...] = ()
    if returned is not None and returned.get("kind") == "OBJECT":
        target = types.get(returned.get("name")) or {}
        selection = tuple(
            f["name"] for f in target.get("fields") or []
            if isinstance(f, dict) and _unwrap(f.get("type"))[0] is not None
            and _unwrap(f.get("type"))[0].get("kind") in ("SCALAR", "ENUM")
        )

    return RawObservation(
        source=ObservationSource.SPEC,
        method=HTTPMethod.POST,
        path=f"/{kind}/{field['name']}",
        confidence=Confidence.HIGH,
        description=field.get("description"),
        declared_parameters=parameters,
        graphql=GraphQLOperation(
            kind=kind, field=field["name"], endpoint_path=graphql_path, selection=selection
        ),
    )
