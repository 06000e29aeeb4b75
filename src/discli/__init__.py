"""discli -- Discover an HTTP API and generate a dual-audience CLI for it.

This package turns heterogeneous discovery sources into a single endpoint
catalog and then into a command surface that serves both humans at a
terminal and agents reading structured output.

Typical workflow::

    discli discover --spec https://api.example.com/openapi.json --yes
    discli discover --base-url https://api.example.com --probe
    discli discover --capture ./traffic --base-url https://api.example.com
    discli run example customers list --limit 10

Pipeline (data flows strictly forward):

    Source adapters -> Normalizer -> Catalog builder
        -> Command surface generator -> (run time) dual-mode envelope

Modules:
    app: Typer application and console entry point.
    models: Pydantic models shared across the entire package.
    config: XDG-aware configuration and catalog persistence.
    exceptions: Exception hierarchy with exit-code, error-code and fix text.
    exit_codes: Numeric exit codes.
    output: stdout/stderr formatting system with Rich support.
    paths: URL path helpers shared by discovery, catalog and generator.
"""

__version__ = "0.3.0"
