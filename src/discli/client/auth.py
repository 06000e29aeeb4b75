"""Credential lookup and injection for generated commands.

The credential is read once per process from the environment variable
named by :attr:`~discli.models.AuthInjection.env_var_name` and injected into
every request according to the catalog's auth scheme:

* ``api-key`` -- sent verbatim in the named header.
* ``bearer`` / ``oauth`` -- sent as ``Authorization: Bearer <credential>``.
* ``cookie`` -- sent as ``Cookie: <name>=<credential>``.
* ``none`` -- nothing is read or sent.

An ``unknown`` scheme with no header name cannot be injected; commands
then fail with a missing-credential envelope that tells the user to
confirm the scheme manually.
"""

from __future__ import annotations

import os
from typing import Mapping, Optional

from discli.exceptions import RuntimeCredentialMissing
from discli.models import AuthInjection, AuthType


def needs_credential(auth: AuthInjection, auth_required: Optional[bool] = None) -> bool:
    """True when a command must carry a credential.

    ``auth_required=False`` marks an endpoint observed succeeding anonymously.
    """
    if auth_required is False:
        return False
    return auth.type != AuthType.NONE


def read_credential(auth: AuthInjection, environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """Return the credential from the environment, or ``None`` if unset or empty."""
    env = os.environ if environ is None else environ
    value = env.get(auth.env_var_name, "")
    return value or None


def require_credential(auth: AuthInjection, credential: Optional[str]) -> str:
    """Return *credential* or raise the error a generated command renders.

    Raises:
        RuntimeCredentialMissing: If the credential is absent, or the
            scheme is unknown and cannot be injected.
    """
    if auth.manual_input_required:
        raise RuntimeCredentialMissing(
            "The authentication scheme of this API could not be determined",
            fix=(
                "Re-run `discli discover` and confirm the auth scheme explicitly "
                f"(e.g. --auth-type api-key --auth-header X-API-Key), then set {auth.env_var_name}."
            ),
        )
    if not credential:
        raise RuntimeCredentialMissing(
            f"Missing credential: {auth.env_var_name} is not set",
            fix=f"Set the {auth.env_var_name} environment variable, e.g. `export {auth.env_var_name}=...`.",
        )
    return credential


def auth_headers(auth: AuthInjection, credential: str) -> dict[str, str]:
    """Headers carrying *credential* for the given scheme."""
    if auth.type == AuthType.COOKIE and auth.cookie_name:
        return {"Cookie": f"{auth.cookie_name}={credential}"}
    if auth.type in (AuthType.BEARER, AuthType.OAUTH):
        return {auth.header_name or "Authorization": f"{auth.scheme_prefix or 'Bearer'} {credential}"}
    if auth.header_name:
        prefix = f"{auth.scheme_prefix} " if auth.scheme_prefix else ""
        return {auth.header_name: f"{prefix}{credential}"}
    return {}
