"""Asset client: the facade the CLI and the template engine talk to.

Combines the catalog (metadata), the session cache (bytes) and a
repository backend (remote fetches). Every public call accepts an optional
``CancelScope`` that is honored at each I/O boundary.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from zen_assets.assets.auth import AuthContext, TokenAuthProvider
from zen_assets.assets.backends import MANIFEST_PATH, RepoBackend, build_backend
from zen_assets.assets.cache import FileCacheStore
from zen_assets.assets.catalog import CatalogEngine
from zen_assets.assets.manifest import ManifestParser, ManifestValidationError
from zen_assets.assets.models import (
    AssetContent,
    AssetFilter,
    AssetList,
    AssetRecord,
    CacheInfo,
    GetAssetOptions,
    SyncRequest,
    SyncResult,
    SyncStatus,
    compute_checksum,
)
from zen_assets.config import AssetConfig
from zen_assets.errors import (
    AssetClientError,
    AssetNotFoundError,
    AuthenticationError,
    CacheError,
    CredentialsNotFoundError,
    IntegrityError,
)
from zen_assets.fsutil import atomic_write
from zen_assets.scope import CancelScope, check_scope

logger = logging.getLogger(__name__)

BYTES_PER_MB = 1024 * 1024


def local_manifest_path(workspace_root: Path) -> Path:
    return workspace_root / ".zen" / "assets" / "manifest.yaml"


class SyncError(AssetClientError):
    """Sync ended in the ``error`` state. ``result`` holds the SyncResult."""

    def __init__(self, message: str, result: SyncResult, *, code: str | None = None, details: Any = None):
        super().__init__(message, code=code, details=details)
        self.result = result


class AssetClient:
    """Facade over catalog, cache and repository backend.

    Args:
        config: Asset settings.
        backend: Remote file source.
        cache: Session cache.
        auth: Credential supplier used during sync.
        parser: Manifest parser.
        workspace_root: Where ``.zen/assets/manifest.yaml`` is persisted.
        clock: Wall-clock source for ``last_sync``.
    """

    def __init__(
        self,
        config: AssetConfig,
        backend: RepoBackend,
        cache: FileCacheStore,
        auth: AuthContext | None = None,
        parser: ManifestParser | None = None,
        workspace_root: Path | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.config = config
        self.backend = backend
        self.cache = cache
        self.auth = auth
        self.parser = parser or ManifestParser()
        self.workspace_root = Path(workspace_root) if workspace_root is not None else Path.cwd()
        self.catalog = CatalogEngine()
        self._clock = clock
        self._metrics_lock = threading.Lock()
        self._load_lock = threading.Lock()
        self._cache_hits = 0
        self._cache_misses = 0
        self._sync_count = 0
        self._error_count = 0
        self._last_sync: Optional[datetime] = None
        # Ref of the last successful sync; empty means the configured branch.
        self._ref = ""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    @property
    def manifest_path(self) -> Path:
        return local_manifest_path(self.workspace_root)

    # ── Queries ───────────────────────────────────────────────────

    def list_assets(self, asset_filter: AssetFilter | None = None, scope: CancelScope | None = None) -> AssetList:
        self.ensure_catalog_loaded(scope)
        return self.catalog.filter(asset_filter or AssetFilter())

    def describe_asset(self, name: str, scope: CancelScope | None = None) -> AssetRecord | None:
        """Catalog row for ``name`` without fetching its content."""
        self.ensure_catalog_loaded(scope)
        return self.catalog.lookup(name)

    def get_asset(
        self,
        name: str,
        options: GetAssetOptions | None = None,
        scope: CancelScope | None = None,
    ) -> AssetContent:
        """Return the content of asset ``name``.

        Serves from the session cache when allowed, otherwise fetches
        through the backend and writes the result through to the cache.

        Raises:
            AssetNotFoundError: ``name`` is empty or not in the catalog.
            IntegrityError: Fetched bytes do not match the catalog checksum.
        """
        options = options or GetAssetOptions()
        if not name:
            raise AssetNotFoundError("name cannot be empty")

        self.ensure_catalog_loaded(scope)
        record = self.catalog.lookup(name)
        verify = options.verify_integrity and self.config.integrity_checks_enabled

        if options.use_cache:
            cached = self._get_cached(name, verify, scope)
            if cached is not None and verify and record is not None and record.checksum:
                if cached.checksum != record.checksum:
                    logger.debug("Cached %s is stale against the catalog, refetching", name)
                    self.cache.delete(name)
                    cached = None
            if cached is not None:
                self._count(hit=True)
                if not options.include_metadata:
                    cached = cached.model_copy(update={"metadata": None})
                elif record is not None:
                    cached = cached.model_copy(update={"metadata": record})
                return cached
            self._count(hit=False)

        if record is None:
            raise AssetNotFoundError(f"asset '{name}' not found")

        try:
            content = self.backend.get_file(record.path, scope, ref=self._ref)
        except AssetClientError:
            self._count_error()
            raise

        check_scope(scope)
        checksum = compute_checksum(content)
        if verify and record.checksum and record.checksum != checksum:
            self._count_error()
            raise IntegrityError(
                f"integrity check failed for asset '{name}'",
                details={"expected": record.checksum, "actual": checksum},
            )

        result = AssetContent(
            metadata=record if options.include_metadata else None,
            content=content,
            checksum=checksum,
            cached=False,
            cache_age_seconds=0,
        )

        if options.use_cache:
            try:
                self.cache.put(name, result.model_copy(update={"metadata": record}), scope=scope)
            except (AssetClientError, OSError) as exc:
                logger.warning("Failed to cache asset %s: %s", name, exc)
        return result

    def _get_cached(self, name: str, verify: bool, scope: CancelScope | None) -> AssetContent | None:
        try:
            return self.cache.get(name, verify_integrity=verify, scope=scope)
        except IntegrityError as exc:
            logger.warning("Discarded corrupted cache entry for %s: %s", name, exc)
        except AssetClientError as exc:
            if scope is not None and scope.cancelled:
                raise
            logger.warning("Cache read failed for %s: %s", name, exc)
        return None

    # ── Sync ──────────────────────────────────────────────────────

    def sync_repository(
        self,
        request: SyncRequest | None = None,
        scope: CancelScope | None = None,
    ) -> SyncResult:
        """Fetch, validate, persist and install the remote manifest.

        Returns a ``partial`` result (never raises) when the manifest cannot
        be fetched or persisted; the previous catalog stays in place.

        Raises:
            AuthenticationError: The provider rejected the configured token.
            SyncError: The manifest failed to parse (``result.status == "error"``).
        """
        request = request or SyncRequest()
        logger.info("Starting manifest sync (force=%s)", request.force)
        started = time.monotonic()
        result = SyncResult(status=SyncStatus.SUCCESS)

        self._authenticate(scope)

        fetch_scope = (scope.child(self.config.sync_timeout_seconds) if scope is not None
                       else CancelScope(self.config.sync_timeout_seconds))
        try:
            manifest_bytes = self.backend.get_file(MANIFEST_PATH, fetch_scope, ref=request.branch)
        except AssetClientError as exc:
            if scope is not None and scope.cancelled:
                raise
            self._count_error()
            result.status = SyncStatus.PARTIAL
            result.error = f"failed to load manifest: {exc}"
            return self._finish(result, started)

        try:
            records = self.parser.parse(manifest_bytes)
        except ManifestValidationError as exc:
            self._count_error()
            result.status = SyncStatus.ERROR
            result.error = f"invalid manifest: {exc}"
            self._finish(result, started)
            raise SyncError(
                "failed to parse manifest",
                result,
                code=exc.code,
                details=exc.details,
            ) from exc

        # Changes are counted against the manifest an earlier run persisted.
        with self._load_lock:
            if not self.catalog.loaded:
                self._load_local_catalog()

        try:
            check_scope(scope)
            self._save_manifest(manifest_bytes)
        except OSError as exc:
            logger.warning("Failed to save manifest to %s: %s", self.manifest_path, exc)
            result.status = SyncStatus.PARTIAL
            result.error = f"failed to persist manifest: {exc}"
            return self._finish(result, started)

        now = self._clock()
        diff = self.catalog.replace(records, source_bytes=manifest_bytes, last_sync=now)
        with self._metrics_lock:
            self._last_sync = now
            self._sync_count += 1
        self._ref = request.branch

        if request.force:
            self.cache.clear()
        else:
            for name in diff.changed:
                self.cache.delete(name)
            try:
                self.cache.cleanup()
            except CacheError as exc:
                logger.warning("Cache cleanup after sync failed: %s", exc)

        result.assets_added = len(diff.added)
        result.assets_updated = len(diff.updated)
        result.assets_removed = len(diff.removed)
        result.last_sync = now
        return self._finish(result, started)

    def _authenticate(self, scope: CancelScope | None) -> None:
        if self.auth is None:
            return
        provider = self.config.auth_provider
        try:
            self.auth.authenticate(provider, scope)
        except CredentialsNotFoundError:
            logger.warning("No authentication token found for %s, attempting anonymous access", provider)
        except AuthenticationError as exc:
            self._count_error()
            raise AuthenticationError(
                "failed to authenticate with Git provider",
                details=str(exc),
            ) from exc
        except AssetClientError as exc:
            if scope is not None and scope.cancelled:
                raise
            # Validation could not reach the provider; the fetch decides.
            logger.warning("Could not validate %s credentials: %s", provider, exc)

    def _finish(self, result: SyncResult, started: float) -> SyncResult:
        result.duration_ms = int((time.monotonic() - started) * 1000)
        result.cache_size_mb = self.cache.get_info().total_size / BYTES_PER_MB
        if result.last_sync is None:
            result.last_sync = self._last_sync
        logger.info("Manifest sync finished with status %s", result.status.value)
        return result

    def _save_manifest(self, content: bytes) -> None:
        path = self.manifest_path
        path.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
        atomic_write(path, content, mode=0o644)

    # ── Catalog loading ───────────────────────────────────────────

    def ensure_catalog_loaded(self, scope: CancelScope | None = None) -> None:
        """Load the catalog on first use: local manifest first, then the backend."""
        if self.catalog.loaded:
            return
        with self._load_lock:
            if self.catalog.loaded:
                return

            if self._load_local_catalog():
                return

            check_scope(scope)
            data = self.backend.get_file(MANIFEST_PATH, scope, ref=self._ref)
            records = self.parser.parse(data)
            try:
                self._save_manifest(data)
            except OSError as exc:
                logger.warning("Failed to save manifest to %s: %s", self.manifest_path, exc)
            self.catalog.replace(records, source_bytes=data)
            logger.debug("Loaded catalog from repository (%d assets)", len(records))

    def _load_local_catalog(self) -> bool:
        """Install the persisted manifest, if there is a usable one."""
        path = self.manifest_path
        if not path.exists():
            return False
        try:
            data = path.read_bytes()
            records = self.parser.parse(data)
        except (OSError, ManifestValidationError) as exc:
            logger.warning("Local manifest %s unusable: %s", path, exc)
            return False
        self.catalog.replace(records, source_bytes=data)
        logger.debug("Loaded catalog from %s", path)
        return True

    # ── Cache & metrics ───────────────────────────────────────────

    def get_cache_info(self) -> CacheInfo:
        info = self.cache.get_info()
        with self._metrics_lock:
            requests = self._cache_hits + self._cache_misses
            ratio = self._cache_hits / requests if requests else info.cache_hit_ratio
            last_sync = self._last_sync
        return info.model_copy(update={"last_sync": last_sync, "cache_hit_ratio": ratio})

    def clear_cache(self) -> None:
        self.cache.clear()
        logger.info("Asset cache cleared")

    def get_metrics(self) -> dict[str, Any]:
        with self._metrics_lock:
            requests = self._cache_hits + self._cache_misses
            return {
                "cache_hits": self._cache_hits,
                "cache_misses": self._cache_misses,
                "cache_hit_ratio": self._cache_hits / requests if requests else 0.0,
                "sync_count": self._sync_count,
                "error_count": self._error_count,
                "last_sync": self._last_sync,
            }

    def close(self) -> None:
        for collaborator in (self.backend, self.auth):
            close = getattr(collaborator, "close", None)
            if callable(close):
                close()

    def _count(self, hit: bool) -> None:
        with self._metrics_lock:
            if hit:
                self._cache_hits += 1
            else:
                self._cache_misses += 1

    def _count_error(self) -> None:
        with self._metrics_lock:
            self._error_count += 1


def build_asset_client(config: AssetConfig, workspace_root: Path) -> AssetClient:
    """Wire the default collaborators for ``config``."""
    config.validate()
    auth = TokenAuthProvider()
    backend = build_backend(config.repository_url, config.branch, config.auth_provider, auth)
    cache = FileCacheStore(
        config.resolved_cache_path(),
        size_limit=config.cache_size_bytes,
        default_ttl_seconds=int(config.default_ttl),
    )
    return AssetClient(
        config,
        backend=backend,
        cache=cache,
        auth=auth,
        workspace_root=workspace_root,
    )
