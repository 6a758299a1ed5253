"""Tests for token lookup and validation."""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from zen_assets.assets.auth import CredentialFile, TokenAuthProvider, env_var_names, token_instructions
from zen_assets.errors import (
    AuthenticationError,
    ConfigurationError,
    CredentialsNotFoundError,
    NetworkError,
    RateLimitedError,
)


def _provider(tmp_path: Path, status: int = 200, environ=None, seen=None) -> TokenAuthProvider:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status, json={"login": "octocat"})

    return TokenAuthProvider(
        credential_file=CredentialFile(tmp_path / "credentials.toml"),
        client=httpx.Client(transport=httpx.MockTransport(handler)),
        environ={"GITHUB_TOKEN": "ghp_test"} if environ is None else environ,
    )


class TestTokenLookup:
    """Test where tokens come from."""

    def test_env_var_priority(self):
        """Provider specific variables are consulted in order."""
        assert env_var_names("github") == ["GITHUB_TOKEN", "GH_TOKEN", "ZEN_GITHUB_TOKEN"]
        assert env_var_names("gitlab")[0] == "GITLAB_TOKEN"
        assert env_var_names("gitea") == ["ZEN_GITEA_TOKEN"]

    def test_token_from_environment(self, tmp_path: Path):
        """The first non-empty environment variable wins."""
        provider = _provider(tmp_path, environ={"GITHUB_TOKEN": " ", "GH_TOKEN": "gh_second"})
        assert provider.get_credentials("github") == "gh_second"

    def test_token_from_credentials_file(self, tmp_path: Path):
        """The TOML credentials file is the fallback."""
        (tmp_path / "credentials.toml").write_text('[gitlab]\ntoken = "glpat-file"\n', encoding="utf-8")
        provider = _provider(tmp_path, environ={})
        assert provider.get_credentials("gitlab") == "glpat-file"

    def test_corrupt_credentials_file_is_ignored(self, tmp_path: Path):
        """An unreadable credentials file behaves like a missing one."""
        (tmp_path / "credentials.toml").write_text("[github\n", encoding="utf-8")
        assert CredentialFile(tmp_path / "credentials.toml").token_for("github") is None

    def test_missing_token_has_instructions(self, tmp_path: Path):
        """No token raises CredentialsNotFoundError with setup help."""
        provider = _provider(tmp_path, environ={})
        with pytest.raises(CredentialsNotFoundError) as excinfo:
            provider.get_credentials("github")
        assert excinfo.value.details == token_instructions("github")
        assert isinstance(excinfo.value, AuthenticationError)

    def test_tokens_are_cached_until_forgotten(self, tmp_path: Path):
        """Lookups are memoized per provider."""
        environ = {"GITHUB_TOKEN": "first"}
        provider = _provider(tmp_path, environ=environ)
        assert provider.get_credentials("github") == "first"
        environ["GITHUB_TOKEN"] = "second"
        assert provider.get_credentials("github") == "first"
        provider.forget("github")
        assert provider.get_credentials("github") == "second"


class TestValidation:
    """Test validation against provider APIs."""

    def test_success_sends_token_and_user_agent(self, tmp_path: Path):
        """GitHub validation uses the token scheme."""
        seen: list[httpx.Request] = []
        _provider(tmp_path, seen=seen).authenticate("github")
        assert str(seen[0].url) == "https://api.github.com/user"
        assert seen[0].headers["Authorization"] == "token ghp_test"
        assert seen[0].headers["User-Agent"] == "zen-cli/1.0"

    def test_gitlab_uses_bearer(self, tmp_path: Path):
        """GitLab validation uses a bearer token."""
        seen: list[httpx.Request] = []
        _provider(tmp_path, environ={"GITLAB_TOKEN": "glpat"}, seen=seen).validate_credentials("gitlab")
        assert seen[0].headers["Authorization"] == "Bearer glpat"

    @pytest.mark.parametrize(
        "status,error,message",
        [
            (401, AuthenticationError, "invalid or expired"),
            (403, AuthenticationError, "lacks required permissions"),
            (429, RateLimitedError, "rate limit"),
            (500, NetworkError, "unexpected response"),
        ],
    )
    def test_failure_statuses(self, tmp_path: Path, status, error, message):
        """Each rejection status maps to a typed error."""
        with pytest.raises(error, match=message):
            _provider(tmp_path, status=status).validate_credentials("github")

    def test_rate_limit_has_retry_hint(self, tmp_path: Path):
        """Rate limited validation suggests an hour's wait."""
        with pytest.raises(RateLimitedError) as excinfo:
            _provider(tmp_path, status=429).validate_credentials("github")
        assert excinfo.value.retry_after_seconds == 3600

    def test_unsupported_provider(self, tmp_path: Path):
        """Providers without an endpoint are configuration errors."""
        with pytest.raises(ConfigurationError):
            _provider(tmp_path, environ={"ZEN_GITEA_TOKEN": "x"}).validate_credentials("gitea")

    def test_connection_error_is_network_error(self, tmp_path: Path):
        """Transport failures surface as NetworkError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        provider = TokenAuthProvider(
            credential_file=CredentialFile(tmp_path / "credentials.toml"),
            client=httpx.Client(transport=httpx.MockTransport(handler)),
            environ={"GITHUB_TOKEN": "ghp_test"},
        )
        with pytest.raises(NetworkError):
            provider.validate_credentials("github")

    def test_refresh_not_supported(self, tmp_path: Path):
        """Static tokens cannot be refreshed."""
        with pytest.raises(AuthenticationError, match="not supported"):
            _provider(tmp_path).refresh_credentials("github")
