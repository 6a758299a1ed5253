"""Credential lookup and validation for Git hosting providers.

Tokens are resolved from an in-memory cache, then environment variables,
then an optional TOML credentials file. The asset client treats a missing
token as "try anonymous access"; any other authentication failure is fatal.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Any, Optional, Protocol

import httpx
import toml
from filelock import FileLock, Timeout

from zen_assets.errors import (
    AuthenticationError,
    ConfigurationError,
    CredentialsNotFoundError,
    NetworkError,
    OperationCancelled,
    RateLimitedError,
)
from zen_assets.scope import CancelScope, check_scope, scope_timeout

logger = logging.getLogger(__name__)

ZEN_DIR = Path.home() / ".zen"
CREDENTIALS_PATH = ZEN_DIR / "credentials.toml"
USER_AGENT = "zen-cli/1.0"
VALIDATION_TIMEOUT = 10.0
RATE_LIMIT_RETRY_SECONDS = 3600

_VALIDATION_ENDPOINTS = {
    "github": ("https://api.github.com/user", "token", "GitHub", "repo"),
    "gitlab": ("https://gitlab.com/api/v4/user", "Bearer", "GitLab", "read_repository"),
}


class AuthContext(Protocol):
    """Credential supplier consumed by repository backends."""

    def authenticate(self, provider: str, scope: CancelScope | None = None) -> None: ...

    def get_credentials(self, provider: str) -> str: ...

    def validate_credentials(self, provider: str, scope: CancelScope | None = None) -> None: ...

    def refresh_credentials(self, provider: str, scope: CancelScope | None = None) -> None: ...


def env_var_names(provider: str) -> list[str]:
    """Environment variables consulted for ``provider``, in priority order."""
    if provider == "github":
        return ["GITHUB_TOKEN", "GH_TOKEN", "ZEN_GITHUB_TOKEN"]
    if provider == "gitlab":
        return ["GITLAB_TOKEN", "GL_TOKEN", "ZEN_GITLAB_TOKEN"]
    return [f"ZEN_{provider.upper()}_TOKEN"]


def token_instructions(provider: str) -> dict[str, Any]:
    """Setup instructions attached to credential errors."""
    if provider == "github":
        return {
            "message": "GitHub Personal Access Token required",
            "instructions": [
                "1. Go to https://github.com/settings/tokens",
                "2. Generate a new token with 'repo' scope",
                "3. Set the token in environment variable: export GITHUB_TOKEN=your_token",
                f"4. Or add it to {CREDENTIALS_PATH} under [github] token = \"...\"",
            ],
            "env_vars": env_var_names(provider),
        }
    if provider == "gitlab":
        return {
            "message": "GitLab Project Access Token required",
            "instructions": [
                "1. Go to your GitLab project settings",
                "2. Create a Project Access Token with 'read_repository' scope",
                "3. Set the token in environment variable: export GITLAB_TOKEN=your_token",
                f"4. Or add it to {CREDENTIALS_PATH} under [gitlab] token = \"...\"",
            ],
            "env_vars": env_var_names(provider),
        }
    return {
        "message": f"Authentication token required for provider '{provider}'",
        "env_vars": env_var_names(provider),
    }


class CredentialFile:
    """Read-only view of ~/.zen/credentials.toml.

    The file holds one table per provider::

        [github]
        token = "ghp_..."
    """

    def __init__(self, path: Path | None = None):
        self.path = path or CREDENTIALS_PATH
        self.lock_path = self.path.with_suffix(".lock")

    def token_for(self, provider: str) -> Optional[str]:
        if not self.path.exists():
            return None
        try:
            with FileLock(self.lock_path, timeout=10):
                with open(self.path, "r", encoding="utf-8") as handle:
                    data = toml.load(handle)
        except (toml.TomlDecodeError, OSError, Timeout) as exc:
            logger.warning("Could not read credentials file %s: %s", self.path, exc)
            return None

        section = data.get(provider)
        if isinstance(section, dict):
            token = section.get("token")
            if isinstance(token, str) and token.strip():
                return token.strip()
        return None


class TokenAuthProvider:
    """Token based ``AuthContext`` for GitHub, GitLab and generic providers."""

    def __init__(
        self,
        credential_file: CredentialFile | None = None,
        client: httpx.Client | None = None,
        environ: dict[str, str] | None = None,
    ):
        self.credential_file = credential_file or CredentialFile()
        self._environ = environ
        self._tokens: dict[str, str] = {}
        self._lock = threading.Lock()
        self._http_client = client
        self._owns_client = client is None

    def _get_http_client(self) -> httpx.Client:
        if self._http_client is None:
            self._http_client = httpx.Client(timeout=VALIDATION_TIMEOUT)
        return self._http_client

    def close(self) -> None:
        if self._http_client is not None and self._owns_client:
            self._http_client.close()
            self._http_client = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def authenticate(self, provider: str, scope: CancelScope | None = None) -> None:
        """Resolve a token for ``provider`` and validate it against the host API.

        Raises:
            CredentialsNotFoundError: No token is configured.
            AuthenticationError: The host rejected the token.
            RateLimitedError: The validation call was rate limited.
            NetworkError: The host could not be reached.
            ConfigurationError: ``provider`` has no validation endpoint.
        """
        logger.debug("Authenticating with provider %s", provider)
        self.get_credentials(provider)
        self.validate_credentials(provider, scope)
        logger.debug("Authentication successful for provider %s", provider)

    def get_credentials(self, provider: str) -> str:
        with self._lock:
            cached = self._tokens.get(provider)
        if cached:
            return cached

        token = self._token_from_env(provider) or self.credential_file.token_for(provider)
        if not token:
            raise CredentialsNotFoundError(
                f"no authentication token found for provider '{provider}'",
                details=token_instructions(provider),
            )

        with self._lock:
            self._tokens[provider] = token
        return token

    def validate_credentials(self, provider: str, scope: CancelScope | None = None) -> None:
        endpoint = _VALIDATION_ENDPOINTS.get(provider)
        if endpoint is None:
            raise ConfigurationError(f"unsupported provider '{provider}'")

        token = self.get_credentials(provider)
        url, scheme, label, required_scope = endpoint
        check_scope(scope)

        try:
            response = self._get_http_client().get(
                url,
                headers={"Authorization": f"{scheme} {token}", "User-Agent": USER_AGENT},
                timeout=scope_timeout(scope, VALIDATION_TIMEOUT),
            )
        except httpx.TimeoutException as exc:
            if scope is not None and scope.cancelled:
                raise OperationCancelled(f"{label} token validation timed out") from exc
            raise NetworkError(f"failed to validate {label} token", details=str(exc)) from exc
        except httpx.RequestError as exc:
            raise NetworkError(f"failed to validate {label} token", details=str(exc)) from exc

        status = response.status_code
        if status == 200:
            logger.debug("%s token validation successful", label)
            return
        if status == 401:
            raise AuthenticationError(
                f"{label} token is invalid or expired",
                details="Please check your token and ensure it has the required scopes",
            )
        if status == 403:
            raise AuthenticationError(
                f"{label} token lacks required permissions",
                details=f"Token needs '{required_scope}' scope for private repositories",
            )
        if status == 429:
            raise RateLimitedError(
                f"{label} API rate limit exceeded",
                retry_after_seconds=RATE_LIMIT_RETRY_SECONDS,
            )
        raise NetworkError(f"unexpected response from {label} API: {status}")

    def refresh_credentials(self, provider: str, scope: CancelScope | None = None) -> None:
        raise AuthenticationError(
            f"token refresh not supported for provider '{provider}'",
            details=token_instructions(provider),
        )

    def forget(self, provider: str) -> None:
        """Drop a cached token so the next lookup re-reads its sources."""
        with self._lock:
            self._tokens.pop(provider, None)

    def _token_from_env(self, provider: str) -> Optional[str]:
        env = os.environ if self._environ is None else self._environ
        for name in env_var_names(provider):
            value = (env.get(name) or "").strip()
            if value:
                logger.debug("Token for %s loaded from %s", provider, name)
                return value
        return None
