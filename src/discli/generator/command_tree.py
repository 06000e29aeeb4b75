"""Realize a :class:`~discli.models.CommandSurface` as a Typer application.

**Layout**

* The root app is named after the program. Invoked with no arguments it
  emits the root listing (every command and its flags) instead of help.
* One sub-app per resource group; one leaf command per
  :class:`~discli.models.CommandSpec`, named by its verb.

**Signatures**

Typer reads a command's parameters from its function signature, so each
leaf command is a generated function: its source is built as a string,
compiled and executed into a namespace holding the ``typer.Argument`` /
``typer.Option`` defaults, and the resulting function is registered.

Every positional and value flag defaults to ``None`` and is typed as a
string. Required-ness and types are checked by the runtime, so a missing
or malformed value still produces a complete envelope rather than a
click usage error.

**Usage errors**

Tokens click itself rejects (an unknown flag, an extra positional, an
unknown command) never reach the runtime. The command and group classes
built by :func:`_command_classes` catch the :class:`click.UsageError` and
emit a ``VALIDATION_FAILED`` outcome instead, so stdout still carries an
envelope for agents.
"""

from __future__ import annotations

import functools
import sys
from typing import Any, Callable, NoReturn, Optional

import click
import typer
from typer.core import TyperCommand, TyperGroup

from discli.generator.surface import group_description
from discli.generator.verbs import sanitize_param_name
from discli.models import CommandSpec, CommandSurface, FlagSpec, ResourceGroup
from discli.runtime.audience import Audience, audience_override, detect_audience
from discli.runtime.envelope import emit
from discli.runtime.executor import CommandRuntime


def build_command_tree(surface: CommandSurface, runtime: CommandRuntime) -> typer.Typer:
    """Build the Typer app for *surface*, dispatching every command to *runtime*.

    Example::

        surface = generate_surface(catalog)
        app = build_command_tree(surface, CommandRuntime(surface))
        app()
    """
    leaf_cls, group_cls = _command_classes(runtime)
    app = typer.Typer(
        name=surface.program,
        cls=group_cls,
        help=surface.description,
        invoke_without_command=True,
        no_args_is_help=False,
        add_completion=False,
    )

    @app.callback(invoke_without_command=True)
    def _root(
        ctx: typer.Context,
        json_output: bool = typer.Option(False, "--json", help="Force the machine-readable JSON envelope"),
        human_output: bool = typer.Option(False, "--human", help="Force human-readable output"),
    ) -> None:
        audience = detect_audience(sys.stdout, audience_override(json_output, human_output))
        ctx.obj = {"audience": audience}
        if ctx.invoked_subcommand is None:
            raise typer.Exit(emit(runtime.root_outcome(), audience))

    sub_apps: dict[str, typer.Typer] = {}
    dispatch = functools.partial(_dispatch, runtime)
    for command in surface.commands:
        sub = sub_apps.get(command.group)
        if sub is None:
            sub = typer.Typer(
                name=command.group,
                cls=group_cls,
                help=group_description(ResourceGroup(name=command.group)),
                no_args_is_help=True,
            )
            app.add_typer(sub)
            sub_apps[command.group] = sub
        sub.command(name=command.verb, help=command.description, cls=leaf_cls)(
            _build_command_function(command, dispatch)
        )

    return app


def _usage_failure(runtime: CommandRuntime, ctx: click.Context, tokens: list[str], message: str, name: str) -> NoReturn:
    # The root callback may not have run yet, so its parsed flags are read directly.
    root = ctx.find_root()
    override = audience_override(
        "--json" in tokens or bool(root.params.get("json_output")),
        "--human" in tokens or bool(root.params.get("human_output")),
    )
    audience: Audience = override or (root.obj or {}).get("audience") or detect_audience(sys.stdout)
    ctx.exit(emit(runtime.usage_outcome(message, name), audience))


def _command_classes(runtime: CommandRuntime) -> tuple[type[TyperCommand], type[TyperGroup]]:
    """Leaf command and group classes that report usage errors as envelopes."""

    class EnvelopeCommand(TyperCommand):
        def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
            tokens = list(args)
            try:
                return super().parse_args(ctx, args)
            except click.UsageError as exc:
                group = ctx.parent.info_name if ctx.parent is not None else None
                name = f"{group} {ctx.info_name}" if group else str(ctx.info_name)
                _usage_failure(runtime, ctx, tokens, exc.format_message(), name)

    class EnvelopeGroup(TyperGroup):
        def _name(self, ctx: click.Context) -> str:
            return str(ctx.info_name) if ctx.parent is not None else ""

        def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
            # An empty group invocation is left to no_args_is_help.
            if not args:
                return super().parse_args(ctx, args)
            tokens = list(args)
            try:
                return super().parse_args(ctx, args)
            except click.UsageError as exc:
                _usage_failure(runtime, ctx, tokens, exc.format_message(), self._name(ctx))

        def resolve_command(
            self, ctx: click.Context, args: list[str],
        ) -> tuple[Optional[str], Optional[click.Command], list[str]]:
            tokens = list(args)
            try:
                return super().resolve_command(ctx, args)
            except click.UsageError as exc:
                _usage_failure(runtime, ctx, tokens, exc.format_message(), self._name(ctx))

    return EnvelopeCommand, EnvelopeGroup


def _dispatch(
    runtime: CommandRuntime,
    ctx: typer.Context,
    command_name: str,
    arguments: dict[str, Any],
    flags: dict[str, Any],
    json_output: bool,
    human_output: bool,
) -> None:
    root = ctx.find_root().obj or {}
    override = audience_override(json_output, human_output)
    audience: Audience = override or root.get("audience") or detect_audience(sys.stdout)
    code = runtime.dispatch(command_name, arguments, flags, audience)
    if code:
        raise typer.Exit(code)


def _flag_option(flag: FlagSpec) -> tuple[Any, Any]:
    """(annotation, default) for one flag."""
    if flag.kind == "all":
        return bool, typer.Option(False, flag.flag, help=flag.description)
    if flag.type == "boolean":
        negative = f"--no-{flag.flag[2:]}"
        return Optional[bool], typer.Option(None, f"{flag.flag}/{negative}", help=flag.description)
    help_text = flag.description or ""
    if flag.required:
        help_text = f"{help_text}  [REQUIRED]" if help_text else "[REQUIRED]"
    return Optional[str], typer.Option(None, flag.flag, help=help_text or None, show_default=False)


def _build_command_function(command: CommandSpec, dispatch: Callable[..., Any]) -> Callable[..., Any]:
    func_name = f"_cmd_{sanitize_param_name(command.group)}_{sanitize_param_name(command.verb)}"
    namespace: dict[str, Any] = {"_Context": typer.Context, "_dispatch": dispatch}
    sig_parts = ["ctx: _Context"]

    for idx, argument in enumerate(command.arguments):
        namespace[f"_ann_arg_{idx}"] = Optional[str]
        namespace[f"_default_arg_{idx}"] = typer.Argument(
            None, metavar=argument.dest.upper(), help=argument.description, show_default=False,
        )
        sig_parts.append(f"{argument.dest}: _ann_arg_{idx} = _default_arg_{idx}")

    for idx, flag in enumerate(command.flags):
        annotation, default = _flag_option(flag)
        namespace[f"_ann_opt_{idx}"] = annotation
        namespace[f"_default_opt_{idx}"] = default
        sig_parts.append(f"{flag.dest}: _ann_opt_{idx} = _default_opt_{idx}")

    namespace["_json_default"] = typer.Option(False, "--json", help="Force the machine-readable JSON envelope")
    namespace["_human_default"] = typer.Option(False, "--human", help="Force human-readable output")
    sig_parts.append("json_output: bool = _json_default")
    sig_parts.append("human_output: bool = _human_default")

    arguments = ", ".join(f"{a.dest!r}: {a.dest}" for a in command.arguments)
    flags = ", ".join(f"{f.dest!r}: {f.dest}" for f in command.flags)
    source = (
        f"def {func_name}({', '.join(sig_parts)}):\n"
        f"    _dispatch(ctx, {command.name!r}, {{{arguments}}}, {{{flags}}}, json_output, human_output)\n"
    )
    code = compile(source, f"<discli:{command.name}>", "exec")
    exec(code, namespace)  # noqa: S102 -- controlled code generation
    fn = namespace[func_name]
    fn.__doc__ = command.description
    return fn
