"""Execute generated commands.

:class:`CommandRuntime` turns the values collected by a generated Typer
command into one HTTP call (or one paginated traversal) and returns a
:class:`~discli.runtime.envelope.CommandOutcome`. It never looks at the
audience; rendering happens afterwards in :func:`~discli.runtime.envelope.emit`.

Validation happens before anything touches the network: a missing
positional, a missing required flag or a malformed value produces a
``VALIDATION_FAILED`` outcome and no request is sent.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping, Optional
from urllib.parse import quote

import httpx

from discli import paths
from discli.cache import ResponseCache
from discli.client.auth import needs_credential, read_credential, require_credential
from discli.client.pagination import collect_all
from discli.client.sync_client import SyncClient
from discli.config import get_cache_dir
from discli.exceptions import DiscliError, RuntimeApiFailure, RuntimeValidationFailure
from discli.generator.surface import example_invocation
from discli.models import CommandSpec, CommandSurface, GraphQLOperation, ParameterLocation
from discli.runtime import next_actions
from discli.runtime.audience import Audience
from discli.runtime.envelope import CommandOutcome, emit, truncate_result

logger = logging.getLogger(__name__)

_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off"}


@dataclass
class PreparedRequest:
    method: str
    path: str
    query: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    body: dict[str, Any] = field(default_factory=dict)


def coerce(value: Any, type_name: str, label: str) -> Any:
    """Convert a command-line string to the flag's JSON type.

    Raises:
        RuntimeValidationFailure: The value does not parse as *type_name*.
    """
    if value is None or not isinstance(value, str):
        return value
    try:
        if type_name == "integer":
            return int(value)
        if type_name == "number":
            return float(value)
        if type_name == "boolean":
            lowered = value.lower()
            if lowered in _TRUE:
                return True
            if lowered in _FALSE:
                return False
            raise ValueError(value)
        if type_name in ("array", "object"):
            parsed = json.loads(value)
            if not isinstance(parsed, list if type_name == "array" else dict):
                raise ValueError(value)
            return parsed
    except ValueError:
        raise RuntimeValidationFailure(
            f"{label} expects {'an' if type_name[0] in 'aeiou' else 'a'} {type_name}, got {value!r}",
            fix=f"Pass a valid {type_name} value for {label}"
            + (" as JSON." if type_name in ("array", "object") else "."),
            details={"flag": label, "type": type_name},
        ) from None
    return value


def _graphql_literal(value: Any) -> str:
    if isinstance(value, dict):
        inner = ", ".join(f"{k}: {_graphql_literal(v)}" for k, v in value.items())
        return f"{{{inner}}}"
    if isinstance(value, list):
        return f"[{', '.join(_graphql_literal(v) for v in value)}]"
    return json.dumps(value)


def graphql_document(operation: GraphQLOperation, arguments: dict[str, Any]) -> str:
    """Render a one-field query or mutation with inline argument literals."""
    args = ", ".join(f"{name}: {_graphql_literal(value)}" for name, value in arguments.items())
    call = f"{operation.field}({args})" if args else operation.field
    selection = f" {{ {' '.join(operation.selection)} }}" if operation.selection else ""
    return f"{operation.kind} {{ {call}{selection} }}"


class CommandRuntime:
    """Runs the commands of one command surface.

    The credential is read once, when the runtime is created.

    Args:
        surface: The generated command surface.
        environ: Environment to read the credential from (``os.environ``).
        transport: Optional httpx transport (``httpx.MockTransport`` in tests).
        cache: Response cache; consulted only for cacheable commands.
        timeout: Per-request timeout in seconds.
        verify: Verify TLS certificates.
        truncate_threshold: Maximum collection size rendered inline.
        spill_dir: Where full results of truncated responses are written.
        sleep: Blocking sleep used for retries and pacing.
    """

    def __init__(
        self,
        surface: CommandSurface,
        *,
        environ: Optional[Mapping[str, str]] = None,
        transport: Optional[httpx.BaseTransport] = None,
        cache: Optional[ResponseCache] = None,
        timeout: float = 30.0,
        verify: bool = True,
        truncate_threshold: int = 50,
        spill_dir: Optional[Path] = None,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> None:
        self.surface = surface
        self.credential = read_credential(surface.client.auth, environ)
        self._transport = transport
        self._cache = cache
        self._timeout = timeout
        self._verify = verify
        self._threshold = truncate_threshold
        self._spill_dir = spill_dir
        self._sleep = sleep

    @property
    def spill_dir(self) -> Path:
        return self._spill_dir or (get_cache_dir() / "results")

    # ------------------------------------------------------------------ #
    # Entry points
    # ------------------------------------------------------------------ #

    def root_outcome(self) -> CommandOutcome:
        """The root listing. It is never truncated."""
        return CommandOutcome.success(
            self.surface.program,
            self.surface.describe(),
            next_actions.for_root(self.surface),
        )

    def usage_outcome(self, message: str, name: str = "") -> CommandOutcome:
        """Outcome for a command line the parser rejected.

        Args:
            message: The parser's description of the problem.
            name: Command (``"items list"``) or group (``"items"``) the
                tokens were addressed to; empty for the root.
        """
        label = f"{self.surface.program} {name}".strip()
        error = RuntimeValidationFailure(
            message,
            fix=f"Run `{label} --help` to see the accepted arguments and flags.",
        )
        command = self.surface.command(name) if name else None
        if command is not None:
            actions = next_actions.for_failure(self.surface, command, error)
        else:
            actions = [{"command": self.surface.program, "description": "List every command"}]
        return CommandOutcome.failure(label, error, actions)

    def dispatch(
        self,
        command_name: str,
        arguments: dict[str, Any],
        flags: dict[str, Any],
        audience: Audience,
    ) -> int:
        """Execute, render for *audience*, and return the exit code."""
        command = self.surface.command(command_name)
        if command is None:
            raise KeyError(command_name)
        return emit(self.execute(command, arguments, flags), audience)

    def execute(
        self,
        command: CommandSpec,
        arguments: dict[str, Any],
        flags: dict[str, Any],
    ) -> CommandOutcome:
        label = f"{self.surface.program} {command.name}"
        try:
            request = self.prepare(command, arguments, flags)
            auth = self.surface.client.auth
            if needs_credential(auth, command.auth_required):
                require_credential(auth, self.credential)
            result = self._send(command, request, bool(flags.get("all_pages")))
        except DiscliError as exc:
            logger.debug("%s failed: %s (%s)", label, exc.message, exc.code)
            return CommandOutcome.failure(label, exc, next_actions.for_failure(self.surface, command, exc))

        shown, truncation = truncate_result(result, self._threshold, self.spill_dir, label, resource=command.group)
        return CommandOutcome.success(
            label,
            shown,
            next_actions.for_success(self.surface, command, arguments, result),
            truncation,
        )

    # ------------------------------------------------------------------ #
    # Request preparation
    # ------------------------------------------------------------------ #

    def prepare(self, command: CommandSpec, arguments: dict[str, Any], flags: dict[str, Any]) -> PreparedRequest:
        """Validate the collected values and lay them out as an HTTP request.

        Raises:
            RuntimeValidationFailure: A required value is missing or malformed.
        """
        missing = [f"<{a.dest}>" for a in command.arguments if arguments.get(a.dest) in (None, "")]
        missing += [f.flag for f in command.flags if f.required and flags.get(f.dest) is None]
        if missing:
            raise RuntimeValidationFailure(
                f"Missing required value(s) for {command.name}: {', '.join(missing)}",
                fix=f"Supply every required value, e.g. `{example_invocation(self.surface, command)}`.",
                details={"missing": missing},
            )

        values = {
            a.name: quote(str(coerce(arguments[a.dest], a.type, f"<{a.dest}>")), safe="")
            for a in command.arguments
        }
        request = PreparedRequest(method=command.method.value, path=paths.fill_template(command.path, values))

        for flag in command.flags:
            raw = flags.get(flag.dest)
            if raw is None or flag.kind == "all":
                continue
            if flag.kind == "page" and flag.location is None:
                request.path = str(raw)
                continue
            value = coerce(raw, flag.type, flag.flag)
            name = flag.param_name or flag.dest
            if flag.location == ParameterLocation.HEADER:
                request.headers[name] = str(value)
            elif flag.location == ParameterLocation.BODY:
                request.body[name] = value
            else:
                request.query[name] = value
        return request

    # ------------------------------------------------------------------ #
    # Sending
    # ------------------------------------------------------------------ #

    def _client(self, command: CommandSpec) -> SyncClient:
        use_cache = self.surface.client.cache.enabled and command.name in self.surface.client.cache.cacheable_commands
        return SyncClient(
            self.surface.client,
            self.credential,
            timeout=self._timeout,
            verify=self._verify,
            transport=self._transport,
            cache=self._cache if use_cache else None,
            sleep=self._sleep,
        )

    def _send(self, command: CommandSpec, request: PreparedRequest, all_pages: bool) -> Any:
        with self._client(command) as client:
            if command.graphql is not None:
                return self._send_graphql(client, command.graphql, request)

            if all_pages and command.pagination is not None:
                return collect_all(
                    lambda target, params: client.request(
                        "GET", target, params, headers=request.headers, cacheable=command.cacheable,
                    ),
                    request.path,
                    request.query,
                    command.pagination,
                    resource=command.group,
                )

            response = client.request(
                request.method,
                request.path,
                request.query,
                json_body=request.body or None,
                headers=request.headers,
                cacheable=command.cacheable,
            )
            return response.data

    def _send_graphql(self, client: SyncClient, operation: GraphQLOperation, request: PreparedRequest) -> Any:
        document = graphql_document(operation, request.body)
        response = client.request("POST", operation.endpoint_path, json_body={"query": document}, headers=request.headers)
        payload = response.data if isinstance(response.data, dict) else {}
        data = payload.get("data")
        errors = payload.get("errors") or []
        if errors and not (isinstance(data, dict) and data.get(operation.field) is not None):
            first = errors[0] if isinstance(errors[0], dict) else {"message": str(errors[0])}
            raise RuntimeApiFailure(
                f"GraphQL error: {first.get('message', 'unknown error')}",
                code="GRAPHQL_ERROR",
                fix="Check the argument values against the field's arguments.",
                details={"errors": errors},
            )
        return data.get(operation.field) if isinstance(data, dict) else None
