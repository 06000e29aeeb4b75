"""Read pre-captured network traffic from a directory.

Expected layout::

    capture/
        endpoints.json | endpoints.yaml | *.har
        auth.json | auth.yaml            (optional)

The endpoints listing is either a list of exchanges or a mapping with an
``exchanges`` list. Each exchange is a mapping::

    {"method": "GET", "url": "https://api.example.com/v1/customers?limit=10",
     "request_headers": {...}, "request_body": {...},
     "status": 200, "response_headers": {...}, "response_body": {...}}

``path`` + ``query`` may stand in for ``url``. An optional ``confidence``
(``high``, ``medium`` or ``low``) rates the exchange and defaults to
``medium``. HAR files (``log.entries``) are read as well. The auth listing
is ``{"headers": {...}, "cookies": {...}}``.

ID-like segments of every URL are replaced with named placeholders, and
exchanges sharing ``(method, normalized path)`` are folded into a single
observation that keeps every sample's query keys and body keys and the
highest confidence among them. Malformed entries become skipped fragments;
the adapter never raises on them.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Optional
from urllib.parse import parse_qsl, urlsplit

import yaml

from discli import paths
from discli.models import (
    AdapterResult,
    AuthHint,
    AuthType,
    Confidence,
    HTTPMethod,
    ObservationSource,
    RawObservation,
    SkippedFragment,
)

logger = logging.getLogger(__name__)

_ENDPOINT_FILES = ("endpoints.json", "endpoints.yaml", "endpoints.yml")
_AUTH_FILES = ("auth.json", "auth.yaml", "auth.yml")
_KEY_HEADER_HINTS = ("key", "token", "auth")
_CONFIDENCE_RANK = {Confidence.LOW: 0, Confidence.MEDIUM: 1, Confidence.HIGH: 2}


def adapt_capture_directory(directory: str | Path, base_url: Optional[str] = None) -> AdapterResult:
    """Adapt every exchange found in *directory*.

    Args:
        directory: Capture directory.
        base_url: When given, exchanges whose URL is outside it are skipped
            and its path prefix is stripped from the ones inside.
    """
    root = Path(directory)
    result = AdapterResult(source=ObservationSource.CAPTURE)
    if not root.is_dir():
        result.skipped.append(_skip(str(root), "capture directory does not exist"))
        return result

    exchanges: list[tuple[str, Any]] = []
    found_listing = False
    for name in _ENDPOINT_FILES:
        path = root / name
        if path.is_file():
            found_listing = True
            exchanges.extend((f"{name}[{i}]", e) for i, e in enumerate(_read_listing(path, result)))
    for har in sorted(root.glob("*.har")):
        found_listing = True
        exchanges.extend((f"{har.name}[{i}]", e) for i, e in enumerate(_read_har(har, result)))
    if not found_listing:
        result.skipped.append(_skip(str(root), "no endpoints listing or HAR file found"))

    auth_material = _read_auth(root, result)
    if auth_material is not None:
        result.auth_hints.extend(_hints_from_auth_material(auth_material))

    base_prefix = ""
    if base_url:
        result.base_url = base_url.rstrip("/")
        base_prefix = urlsplit(result.base_url).path.rstrip("/")

    by_key: dict[tuple[HTTPMethod, str], RawObservation] = {}
    for label, exchange in exchanges:
        _fold_exchange(label, exchange, by_key, result, base_prefix, auth_material is not None)

    result.observations.extend(by_key.values())
    logger.debug(
        "capture adapter: %d exchanges -> %d observations, %d skipped",
        len(exchanges), len(result.observations), len(result.skipped),
    )
    return result


def _skip(fragment: str, reason: str) -> SkippedFragment:
    return SkippedFragment(source=ObservationSource.CAPTURE, fragment=fragment, reason=reason)


def _load_structured(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if path.suffix == ".json" or path.suffix == ".har":
        return json.loads(text)
    return yaml.safe_load(text)


def _read_listing(path: Path, result: AdapterResult) -> list[Any]:
    try:
        data = _load_structured(path)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        result.skipped.append(_skip(path.name, f"unreadable listing: {exc}"))
        return []
    if isinstance(data, dict) and isinstance(data.get("exchanges"), list):
        return data["exchanges"]
    if isinstance(data, list):
        return data
    result.skipped.append(_skip(path.name, "listing is neither a list nor {'exchanges': [...]}"))
    return []


def _read_har(path: Path, result: AdapterResult) -> list[Any]:
    try:
        data = _load_structured(path)
        entries = data["log"]["entries"]
    except (OSError, ValueError, KeyError, TypeError) as exc:
        result.skipped.append(_skip(path.name, f"unreadable HAR file: {exc}"))
        return []
    return [_har_entry_to_exchange(e) if isinstance(e, dict) else e for e in entries]


def _har_headers(items: Any) -> dict[str, str]:
    if not isinstance(items, list):
        return {}
    return {
        str(h["name"]): str(h.get("value", ""))
        for h in items if isinstance(h, dict) and "name" in h
    }


def _har_entry_to_exchange(entry: dict[str, Any]) -> dict[str, Any]:
    request = entry.get("request") or {}
    response = entry.get("response") or {}
    body: Any = None
    post_text = (request.get("postData") or {}).get("text")
    if post_text:
        body = _maybe_json(post_text)
    content_text = (response.get("content") or {}).get("text")
    return {
        "method": request.get("method"),
        "url": request.get("url"),
        "request_headers": _har_headers(request.get("headers")),
        "request_body": body,
        "status": response.get("status"),
        "response_headers": _har_headers(response.get("headers")),
        "response_body": _maybe_json(content_text) if content_text else None,
    }


def _maybe_json(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        return text


def _read_auth(root: Path, result: AdapterResult) -> Optional[dict[str, Any]]:
    for name in _AUTH_FILES:
        path = root / name
        if not path.is_file():
            continue
        try:
            data = _load_structured(path)
        except (OSError, ValueError, yaml.YAMLError) as exc:
            result.skipped.append(_skip(name, f"unreadable auth listing: {exc}"))
            return None
        if not isinstance(data, dict):
            result.skipped.append(_skip(name, "auth listing must be a mapping"))
            return None
        return data
    return None


def _hints_from_auth_material(material: dict[str, Any]) -> list[AuthHint]:
    headers = material.get("headers") if isinstance(material.get("headers"), dict) else {}
    cookies = material.get("cookies") if isinstance(material.get("cookies"), dict) else {}
    hints = list(auth_hints_from_headers(headers, "auth listing"))
    if cookies:
        hints.append(AuthHint(
            source=ObservationSource.CAPTURE,
            type=AuthType.COOKIE,
            cookie_name=_pick_session_cookie(list(cookies)),
            evidence="auth listing cookies",
        ))
    return hints


def _pick_session_cookie(names: list[str]) -> str:
    for name in names:
        if any(word in name.lower() for word in ("session", "token", "auth", "sid")):
            return name
    return names[0]


def auth_hints_from_headers(headers: dict[str, Any], evidence: str) -> Iterable[AuthHint]:
    """Classify credential-carrying request headers."""
    for name, value in headers.items():
        lower = str(name).lower()
        if lower == "authorization":
            scheme = str(value).split(" ", 1)[0].lower()
            if scheme == "bearer":
                yield AuthHint(source=ObservationSource.CAPTURE, type=AuthType.BEARER,
                               header_name="Authorization", evidence=f"{evidence}: Authorization Bearer")
            else:
                yield AuthHint(source=ObservationSource.CAPTURE, type=AuthType.UNKNOWN,
                               evidence=f"{evidence}: Authorization {scheme or 'value'}")
        elif lower == "cookie":
            cookie_names = [p.split("=", 1)[0].strip() for p in str(value).split(";") if "=" in p]
            if cookie_names:
                yield AuthHint(source=ObservationSource.CAPTURE, type=AuthType.COOKIE,
                               cookie_name=_pick_session_cookie(cookie_names),
                               evidence=f"{evidence}: Cookie header")
        elif any(word in lower for word in _KEY_HEADER_HINTS):
            yield AuthHint(source=ObservationSource.CAPTURE, type=AuthType.API_KEY,
                           header_name=str(name), evidence=f"{evidence}: {name} header")


def _fold_exchange(
    label: str,
    exchange: Any,
    by_key: dict[tuple[HTTPMethod, str], RawObservation],
    result: AdapterResult,
    base_prefix: str,
    has_auth_material: bool,
) -> None:
    if not isinstance(exchange, dict):
        result.skipped.append(_skip(label, "exchange is not a mapping"))
        return
    try:
        method = HTTPMethod(str(exchange.get("method", "")).upper())
    except ValueError:
        result.skipped.append(_skip(label, f"unsupported method {exchange.get('method')!r}"))
        return

    raw_path, query = _split_target(exchange)
    if raw_path is None:
        result.skipped.append(_skip(label, "exchange has neither url nor path"))
        return
    if base_prefix:
        if raw_path != base_prefix and not raw_path.startswith(base_prefix + "/"):
            result.skipped.append(_skip(label, f"{raw_path} is outside the base URL"))
            return
        raw_path = raw_path[len(base_prefix):] or "/"

    template = paths.templatize_ids(raw_path)
    confidence = _exchange_confidence(label, exchange, result)
    request_headers = exchange.get("request_headers") if isinstance(exchange.get("request_headers"), dict) else {}
    response_headers = exchange.get("response_headers") if isinstance(exchange.get("response_headers"), dict) else {}
    status = exchange.get("status")
    status = status if isinstance(status, int) else None
    body = exchange.get("request_body")

    known = {(h.type, h.header_name, h.cookie_name) for h in result.auth_hints}
    for hint in auth_hints_from_headers(request_headers, label):
        if (hint.type, hint.header_name, hint.cookie_name) not in known:
            known.add((hint.type, hint.header_name, hint.cookie_name))
            result.auth_hints.append(hint)
    sent_credentials = has_auth_material or any(
        str(n).lower() in ("authorization", "cookie") or any(w in str(n).lower() for w in _KEY_HEADER_HINTS)
        for n in request_headers
    )

    key = (method, template)
    observation = by_key.get(key)
    if observation is None:
        observation = RawObservation(
            source=ObservationSource.CAPTURE,
            method=method,
            path=template,
            confidence=confidence,
            authenticated=sent_credentials,
        )
        by_key[key] = observation
    elif _CONFIDENCE_RANK[confidence] > _CONFIDENCE_RANK[observation.confidence]:
        observation.confidence = confidence

    observation.concrete_paths.append(raw_path)
    observation.query_samples.append(query)
    if body is not None:
        observation.body_samples.append(body)
    if status is not None and 200 <= status < 300 and observation.response_body is None:
        observation.status_code = status
        observation.response_headers = {str(k).lower(): str(v) for k, v in response_headers.items()}
        observation.response_body = exchange.get("response_body")
        observation.response_example = exchange.get("response_body")
    elif observation.status_code is None and status is not None:
        observation.status_code = status
        observation.response_headers = {str(k).lower(): str(v) for k, v in response_headers.items()}


def _exchange_confidence(label: str, exchange: dict[str, Any], result: AdapterResult) -> Confidence:
    raw = exchange.get("confidence")
    if raw is None:
        return Confidence.MEDIUM
    try:
        return Confidence(str(raw).lower())
    except ValueError:
        result.skipped.append(_skip(f"{label} confidence", f"unknown confidence {raw!r}, using medium"))
        return Confidence.MEDIUM


def _split_target(exchange: dict[str, Any]) -> tuple[Optional[str], dict[str, Any]]:
    url = exchange.get("url")
    if isinstance(url, str) and url:
        parts = urlsplit(url)
        query: dict[str, Any] = dict(parse_qsl(parts.query, keep_blank_values=True))
        return (parts.path or "/"), query
    path = exchange.get("path")
    if isinstance(path, str) and path:
        parts = urlsplit(path)
        query = dict(parse_qsl(parts.query, keep_blank_values=True))
        if isinstance(exchange.get("query"), dict):
            query.update(exchange["query"])
        return (parts.path or "/"), query
    return None, {}
