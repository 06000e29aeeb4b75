"""Tests for credential lookup and injection in discli.client.auth."""

from __future__ import annotations

from typing import Any

import pytest

from discli.client.auth import auth_headers, needs_credential, read_credential, require_credential
from discli.exceptions import RuntimeCredentialMissing
from discli.models import AuthInjection, AuthType


def _auth(type: AuthType, **fields: Any) -> AuthInjection:
    return AuthInjection(type=type, env_var_name="SHOP_API_KEY", **fields)


class TestNeedsCredential:
    def test_none_scheme(self) -> None:
        assert needs_credential(_auth(AuthType.NONE)) is False

    def test_anonymous_endpoint_override(self) -> None:
        assert needs_credential(_auth(AuthType.BEARER), auth_required=False) is False

    @pytest.mark.parametrize("auth_required", [None, True])
    def test_authenticated_scheme(self, auth_required: bool | None) -> None:
        assert needs_credential(_auth(AuthType.BEARER), auth_required) is True

    def test_unknown_scheme_still_needs_one(self) -> None:
        assert needs_credential(_auth(AuthType.UNKNOWN, manual_input_required=True)) is True


class TestReadCredential:
    def test_from_environ(self) -> None:
        assert read_credential(_auth(AuthType.BEARER), {"SHOP_API_KEY": "tok"}) == "tok"

    def test_unset_and_empty(self) -> None:
        assert read_credential(_auth(AuthType.BEARER), {}) is None
        assert read_credential(_auth(AuthType.BEARER), {"SHOP_API_KEY": ""}) is None

    def test_defaults_to_process_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SHOP_API_KEY", "from-env")
        assert read_credential(_auth(AuthType.BEARER)) == "from-env"


class TestRequireCredential:
    def test_present(self) -> None:
        assert require_credential(_auth(AuthType.BEARER), "tok") == "tok"

    def test_missing(self) -> None:
        with pytest.raises(RuntimeCredentialMissing) as exc_info:
            require_credential(_auth(AuthType.BEARER), None)

        error = exc_info.value
        assert error.message == "Missing credential: SHOP_API_KEY is not set"
        assert error.code == "MISSING_CREDENTIAL"
        assert error.exit_code == 3
        assert "export SHOP_API_KEY=" in error.fix

    def test_undetermined_scheme(self) -> None:
        auth = _auth(AuthType.UNKNOWN, manual_input_required=True)
        with pytest.raises(RuntimeCredentialMissing, match="could not be determined") as exc_info:
            require_credential(auth, "tok")
        assert "--auth-type" in exc_info.value.fix


class TestAuthHeaders:
    def test_bearer(self) -> None:
        auth = _auth(AuthType.BEARER, header_name="Authorization", scheme_prefix="Bearer")
        assert auth_headers(auth, "tok") == {"Authorization": "Bearer tok"}

    def test_oauth_defaults(self) -> None:
        assert auth_headers(_auth(AuthType.OAUTH), "tok") == {"Authorization": "Bearer tok"}

    def test_api_key_header(self) -> None:
        assert auth_headers(_auth(AuthType.API_KEY, header_name="X-API-Key"), "k") == {"X-API-Key": "k"}

    def test_api_key_with_prefix(self) -> None:
        auth = _auth(AuthType.API_KEY, header_name="Authorization", scheme_prefix="Token")
        assert auth_headers(auth, "k") == {"Authorization": "Token k"}

    def test_cookie(self) -> None:
        assert auth_headers(_auth(AuthType.COOKIE, cookie_name="sid"), "abc") == {"Cookie": "sid=abc"}

    def test_nothing_to_inject(self) -> None:
        assert auth_headers(_auth(AuthType.UNKNOWN), "tok") == {}
