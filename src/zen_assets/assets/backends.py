"""Repository backends that fetch single files from the remote catalog.

``RepoBackend.get_file`` is the only operation the asset client needs.
Two transports are provided: a cloned working tree read straight from disk
and the raw-content HTTPS APIs of GitHub and GitLab.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Protocol
from urllib.parse import quote, urlparse, urlunparse

import httpx

from zen_assets.assets.auth import USER_AGENT, AuthContext
from zen_assets.errors import (
    AssetNotFoundError,
    AuthenticationError,
    ConfigurationError,
    NetworkError,
    OperationCancelled,
    RateLimitedError,
    RepositoryError,
)
from zen_assets.scope import CancelScope, check_scope, scope_timeout

logger = logging.getLogger(__name__)

MANIFEST_PATH = "manifest.yaml"
DEFAULT_HTTP_TIMEOUT = 30.0
DEFAULT_RETRY_AFTER = 3600
GIT_TIMEOUT = 120


class RepoBackend(Protocol):
    """Fetches one file from the remote catalog by logical path.

    ``ref`` selects a branch other than the configured one; empty means the
    configured branch.
    """

    def get_file(self, path: str, scope: CancelScope | None = None, ref: str = "") -> bytes: ...


def sanitize_url(raw_url: str) -> str:
    """Strip user info (tokens, passwords) from a URL before logging it."""
    try:
        parsed = urlparse(raw_url)
    except ValueError:
        return "[invalid-url]"
    netloc = parsed.hostname or ""
    if parsed.port:
        netloc = f"{netloc}:{parsed.port}"
    return urlunparse(parsed._replace(netloc=netloc))


class GitWorkingTreeBackend:
    """Serve catalog files from a local checkout of the assets repository."""

    def __init__(self, repo_path: Path):
        self.repo_path = Path(repo_path)

    def exists(self) -> bool:
        return self.repo_path.is_dir()

    def get_file(self, path: str, scope: CancelScope | None = None, ref: str = "") -> bytes:
        check_scope(scope)
        if not self.exists():
            raise RepositoryError("repository not found", details=str(self.repo_path))

        root = self.repo_path.resolve()
        target = (root / path).resolve()
        if not target.is_relative_to(root):
            raise AssetNotFoundError(f"file '{path}' not found in repository")
        if ref:
            return self._show(ref, target.relative_to(root).as_posix(), scope)
        if not target.is_file():
            raise AssetNotFoundError(f"file '{path}' not found in repository")

        try:
            content = target.read_bytes()
        except OSError as exc:
            raise RepositoryError(f"failed to read '{path}': {exc}") from exc

        check_scope(scope)
        logger.debug("Read %s from working tree (%d bytes)", path, len(content))
        return content

    def _show(self, ref: str, path: str, scope: CancelScope | None) -> bytes:
        """Read ``path`` as committed on ``ref`` without touching the checkout."""
        check_scope(scope)
        try:
            result = subprocess.run(
                ["git", "show", f"{ref}:{path}"],
                cwd=self.repo_path,
                capture_output=True,
                timeout=scope_timeout(scope, GIT_TIMEOUT),
            )
        except subprocess.TimeoutExpired as exc:
            raise OperationCancelled(f"git show timed out for '{path}'") from exc
        except OSError as exc:
            raise RepositoryError(f"git show failed: {exc}") from exc

        if result.returncode != 0:
            raise AssetNotFoundError(
                f"file '{path}' not found at ref '{ref}'",
                details=result.stderr.decode("utf-8", errors="replace").strip(),
            )
        check_scope(scope)
        logger.debug("Read %s at %s from working tree (%d bytes)", path, ref, len(result.stdout))
        return result.stdout

    def clone(self, url: str, branch: str, scope: CancelScope | None = None) -> None:
        """Shallow-clone ``url`` at ``branch`` into ``repo_path``."""
        self.repo_path.parent.mkdir(parents=True, exist_ok=True)
        self._git(
            ["clone", "--depth", "1", "--branch", branch, url, str(self.repo_path)],
            cwd=self.repo_path.parent,
            scope=scope,
            redact=url,
        )

    def pull(self, scope: CancelScope | None = None) -> None:
        if not self.exists():
            raise RepositoryError("repository not found", details=str(self.repo_path))
        self._git(["pull", "--ff-only"], cwd=self.repo_path, scope=scope)

    def _git(
        self,
        args: list[str],
        *,
        cwd: Path,
        scope: CancelScope | None,
        redact: str | None = None,
    ) -> None:
        check_scope(scope)
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=cwd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=scope_timeout(scope, GIT_TIMEOUT),
            )
        except subprocess.TimeoutExpired as exc:
            raise OperationCancelled(f"git {args[0]} timed out") from exc
        except OSError as exc:
            raise RepositoryError(f"git {args[0]} failed: {exc}") from exc

        if result.returncode != 0:
            stderr = result.stderr.strip()
            if redact:
                stderr = stderr.replace(redact, sanitize_url(redact))
            raise RepositoryError(f"git {args[0]} failed", details=stderr)


class HTTPRawBackend:
    """Fetch files through the GitHub or GitLab raw-content API.

    Args:
        repository_url: ``https://github.com/<owner>/<repo>(.git)`` or the
            GitLab equivalent.
        branch: Ref passed as ``?ref=``.
        provider: Auth provider name used for credential lookup.
        auth: Optional credential supplier. No token means anonymous access.
        client: Optional ``httpx.Client``; one is created and owned otherwise.
    """

    def __init__(
        self,
        repository_url: str,
        branch: str = "main",
        provider: str = "github",
        auth: AuthContext | None = None,
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ):
        self.repository_url = repository_url
        self.branch = branch
        self.provider = provider
        self.auth = auth
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

        parsed = urlparse(repository_url)
        self._host = (parsed.hostname or "").lower()
        self._repo_path = parsed.path.rstrip("/").removesuffix(".git")
        if self._host not in ("github.com", "gitlab.com"):
            raise ConfigurationError(f"unsupported Git provider: {self._host or repository_url}")

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    def build_api_url(self, file_path: str, ref: str = "") -> str:
        branch = quote(ref or self.branch, safe="")
        if self._host == "github.com":
            return (
                f"https://api.github.com/repos{self._repo_path}/contents/"
                f"{quote(file_path)}?ref={branch}"
            )
        encoded_project = quote(self._repo_path.lstrip("/"), safe="")
        encoded_file = quote(file_path, safe="")
        return (
            f"https://gitlab.com/api/v4/projects/{encoded_project}/repository/files/"
            f"{encoded_file}/raw?ref={branch}"
        )

    def _headers(self) -> dict[str, str]:
        headers = {"User-Agent": USER_AGENT}
        if self._host == "github.com":
            headers["Accept"] = "application/vnd.github.v3.raw"

        if self.auth is None:
            logger.debug("No auth context configured, using anonymous access")
            return headers
        try:
            token = self.auth.get_credentials(self.provider)
        except AuthenticationError as exc:
            logger.debug("No credentials for %s, using anonymous access: %s", self.provider, exc)
            return headers

        if self.provider == "gitlab":
            headers["Private-Token"] = token
        else:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def get_file(self, path: str, scope: CancelScope | None = None, ref: str = "") -> bytes:
        check_scope(scope)
        url = self.build_api_url(path, ref)
        logger.debug("Fetching %s from %s", path, sanitize_url(self.repository_url))

        try:
            response = self._get_client().get(
                url,
                headers=self._headers(),
                timeout=scope_timeout(scope, self.timeout),
            )
        except httpx.TimeoutException as exc:
            if scope is not None and scope.cancelled:
                raise OperationCancelled(f"fetching '{path}' timed out") from exc
            raise NetworkError(f"HTTP request timed out: {exc}") from exc
        except httpx.RequestError as exc:
            raise NetworkError(f"HTTP request failed: {exc}") from exc

        # Bytes fetched after cancellation are discarded.
        check_scope(scope)
        self._raise_for_status(response, path)
        logger.debug("Fetched %s (%d bytes)", path, len(response.content))
        return response.content

    @staticmethod
    def _raise_for_status(response: httpx.Response, path: str) -> None:
        status = response.status_code
        if 200 <= status < 300:
            return
        if status == 404:
            raise AssetNotFoundError(f"{path} not found in repository")
        if status in (401, 403):
            raise AuthenticationError("authentication failed or insufficient permissions")
        if status == 429:
            retry_after = response.headers.get("Retry-After", "")
            raise RateLimitedError(
                "repository API rate limit exceeded",
                retry_after_seconds=int(retry_after) if retry_after.isdigit() else DEFAULT_RETRY_AFTER,
            )
        raise RepositoryError(f"HTTP request failed with status {status}")


def build_backend(
    repository_url: str,
    branch: str,
    provider: str,
    auth: AuthContext | None,
) -> RepoBackend:
    """Pick a backend for ``repository_url``.

    Local directories (plain paths or ``file://`` URLs) are served as
    working trees; everything else goes through the HTTPS API.
    """
    parsed = urlparse(repository_url)
    if parsed.scheme == "file":
        return GitWorkingTreeBackend(Path(parsed.path))
    if not parsed.scheme:
        return GitWorkingTreeBackend(Path(repository_url).expanduser())
    return HTTPRawBackend(repository_url, branch=branch, provider=provider, auth=auth)
