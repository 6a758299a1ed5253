"""Content-addressed on-disk cache for fetched assets.

Layout under the cache base directory::

    content/<sanitized_key>.cache   payload bytes
    metadata/index.json             {"entries": {...}, "stats": {...}}
    metadata/index.lock             cross-process lock for index writes

The index is rewritten in full after every mutation (temp file + rename).
An unreadable index is discarded and the cache starts fresh.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from filelock import FileLock, Timeout
from pydantic import ValidationError

from zen_assets.assets.models import AssetContent, CacheEntry, CacheInfo, compute_checksum
from zen_assets.assets.serializer import IdentitySerializer, Serializer
from zen_assets.errors import CacheError, IntegrityError
from zen_assets.fsutil import atomic_write
from zen_assets.scope import CancelScope, check_scope

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = '/\\:*?"<>|'
INDEX_LOCK_TIMEOUT = 10


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def sanitize_key(key: str) -> str:
    """Map a cache key to a file name that cannot escape the content dir."""
    cleaned = "".join("_" if char in _UNSAFE_KEY_CHARS else char for char in key)
    return os.path.basename(cleaned)


class FileCacheStore:
    """Key to AssetContent store with TTL, size-bounded LRU and integrity checks.

    Args:
        base_path: Cache root directory.
        size_limit: Maximum total payload size in bytes.
        default_ttl_seconds: TTL applied when ``put`` gets none. ``0`` never expires.
        serializer: Payload serializer, identity by default.
        clock: Returns the current aware UTC datetime. TTL is wall-clock
            based so it holds across processes.
    """

    def __init__(
        self,
        base_path: Path,
        size_limit: int,
        default_ttl_seconds: int = 24 * 3600,
        serializer: Serializer | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        if size_limit <= 0:
            raise CacheError("cache size limit must be positive")
        self.base_path = Path(base_path)
        self.content_dir = self.base_path / "content"
        self.metadata_dir = self.base_path / "metadata"
        self.index_path = self.metadata_dir / "index.json"
        self.size_limit = size_limit
        self.default_ttl_seconds = int(default_ttl_seconds)
        self.serializer = serializer or IdentitySerializer()
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, CacheEntry] = {}
        self._last_cleanup: Optional[datetime] = None
        self._hits = 0
        self._misses = 0
        self._load_index()

    # ── Public API ────────────────────────────────────────────────

    def get(
        self,
        key: str,
        verify_integrity: bool = False,
        scope: CancelScope | None = None,
    ) -> AssetContent | None:
        """Return the cached content for ``key`` or ``None`` on a miss.

        Expired entries and entries whose payload file vanished are evicted
        and reported as misses.

        Raises:
            IntegrityError: ``verify_integrity`` is set and the payload no
                longer matches the recorded checksum. The entry is deleted.
            CacheError: The payload could not be read.
        """
        check_scope(scope)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            now = self._clock()
            if entry.is_expired(now):
                logger.debug("Cache entry %s expired", key)
                self._drop(key)
                self._persist_index()
                self._misses += 1
                return None

            payload_path = Path(entry.path)
            try:
                raw = payload_path.read_bytes()
            except FileNotFoundError:
                logger.warning("Cache payload for %s is missing, evicting entry", key)
                self._drop(key)
                self._persist_index()
                self._misses += 1
                return None
            except OSError as exc:
                raise CacheError(f"failed to read cache entry '{key}': {exc}") from exc

            if len(raw) != entry.size:
                logger.warning("Cache payload for %s has unexpected size, evicting entry", key)
                self._drop(key)
                self._persist_index()
                self._misses += 1
                return None

            content = self.serializer.deserialize(raw)
            actual = compute_checksum(content)
            if verify_integrity and entry.checksum and actual != entry.checksum:
                self._drop(key)
                self._persist_index()
                raise IntegrityError(
                    f"cached asset '{key}' is corrupted",
                    details={"expected": entry.checksum, "actual": actual},
                )

            entry.accessed_at = now
            self._hits += 1
            self._persist_index()
            age = max(0, int((now - entry.created_at).total_seconds()))

        logger.debug("Cache hit for %s", key)
        return AssetContent(
            metadata=entry.metadata,
            content=content,
            checksum=actual,
            cached=True,
            cache_age_seconds=age,
        )

    def put(
        self,
        key: str,
        content: AssetContent,
        ttl_seconds: int | None = None,
        scope: CancelScope | None = None,
    ) -> None:
        """Store ``content`` under ``key``, evicting LRU entries if needed.

        Raises:
            CacheError: Empty key, payload larger than the whole cache, or I/O failure.
        """
        if not key:
            raise CacheError("cache key cannot be empty")

        data = self.serializer.serialize(content.content)
        size = len(data)
        if size > self.size_limit:
            raise CacheError(
                f"asset '{key}' ({size} bytes) exceeds cache size limit ({self.size_limit} bytes)"
            )
        ttl = self.default_ttl_seconds if ttl_seconds is None else int(ttl_seconds)
        payload_path = self.content_dir / f"{sanitize_key(key)}.cache"

        check_scope(scope)
        with self._lock:
            self._entries.pop(key, None)
            # Another key may sanitize to the same file name.
            for other_key, other in list(self._entries.items()):
                if Path(other.path) == payload_path:
                    self._entries.pop(other_key)
            self._evict_for(size)

            try:
                self.content_dir.mkdir(mode=0o755, parents=True, exist_ok=True)
                atomic_write(payload_path, data)
            except OSError as exc:
                raise CacheError(f"failed to write cache entry '{key}': {exc}") from exc

            now = self._clock()
            self._entries[key] = CacheEntry(
                key=key,
                path=str(payload_path),
                size=size,
                checksum=content.checksum or compute_checksum(content.content),
                created_at=now,
                accessed_at=now,
                ttl_seconds=ttl,
                metadata=content.metadata,
            )
            self._persist_index()
        logger.debug("Cached %s (%d bytes, ttl=%ss)", key, size, ttl)

    def delete(self, key: str) -> None:
        with self._lock:
            if key not in self._entries:
                return
            self._drop(key)
            self._persist_index()

    def clear(self) -> None:
        """Remove every entry, the index and any directories left empty."""
        with self._lock:
            for key in list(self._entries):
                self._drop(key)
            try:
                if self.content_dir.exists():
                    for stray in self.content_dir.iterdir():
                        if stray.is_file():
                            stray.unlink()
                self.index_path.unlink(missing_ok=True)
                self.index_path.with_suffix(".lock").unlink(missing_ok=True)
            except OSError as exc:
                raise CacheError(f"failed to clear cache: {exc}") from exc

            for directory in (self.content_dir, self.metadata_dir, self.base_path):
                try:
                    directory.rmdir()
                except OSError:
                    pass
            self._hits = 0
            self._misses = 0
        logger.debug("Cache cleared at %s", self.base_path)

    def cleanup(self) -> None:
        """Sweep expired entries, orphaned payloads, then evict down to the limit."""
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                self._drop(key)

            referenced = {Path(entry.path) for entry in self._entries.values()}
            if self.content_dir.exists():
                try:
                    for payload in self.content_dir.iterdir():
                        if payload.is_file() and payload not in referenced:
                            payload.unlink()
                except OSError as exc:
                    raise CacheError(f"failed to clean cache: {exc}") from exc

            self._evict_for(0)
            self._last_cleanup = now
            self._persist_index()
        if expired:
            logger.debug("Cache cleanup removed %d expired entries", len(expired))

    def get_info(self) -> CacheInfo:
        with self._lock:
            total_requests = self._hits + self._misses
            return CacheInfo(
                total_size=self._total_size(),
                entry_count=len(self._entries),
                cache_hit_ratio=self._hits / total_requests if total_requests else 0.0,
            )

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._entries)

    def entry(self, key: str) -> CacheEntry | None:
        with self._lock:
            entry = self._entries.get(key)
            return entry.model_copy() if entry is not None else None

    # ── Internal ──────────────────────────────────────────────────

    def _total_size(self) -> int:
        return sum(entry.size for entry in self._entries.values())

    def _evict_for(self, incoming: int) -> None:
        """Delete least recently used entries until ``incoming`` bytes fit."""
        total = self._total_size()
        if total + incoming <= self.size_limit:
            return

        candidates = sorted(self._entries.values(), key=lambda entry: (entry.accessed_at, entry.key))
        for entry in candidates:
            if total + incoming <= self.size_limit:
                break
            logger.debug("Evicting cache entry %s", entry.key)
            self._drop(entry.key)
            total -= entry.size

    def _drop(self, key: str) -> None:
        entry = self._entries.pop(key, None)
        if entry is None:
            return
        try:
            Path(entry.path).unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Failed to remove cache payload %s: %s", entry.path, exc)

    def _load_index(self) -> None:
        if not self.index_path.exists():
            return
        try:
            payload = json.loads(self.index_path.read_text(encoding="utf-8"))
            entries = {
                key: CacheEntry.model_validate(value)
                for key, value in (payload.get("entries") or {}).items()
            }
            stats = payload.get("stats") or {}
            last_cleanup = stats.get("last_cleanup")
            self._last_cleanup = datetime.fromisoformat(last_cleanup) if last_cleanup else None
        except (OSError, ValueError, TypeError, AttributeError, ValidationError) as exc:
            logger.warning("Cache index %s is unreadable, starting fresh: %s", self.index_path, exc)
            self._entries = {}
            return
        self._entries = entries

    def _persist_index(self) -> None:
        payload = {
            "entries": {
                key: entry.model_dump(mode="json") for key, entry in sorted(self._entries.items())
            },
            "stats": {
                "total_size": self._total_size(),
                "entry_count": len(self._entries),
                "last_cleanup": self._last_cleanup.isoformat() if self._last_cleanup else None,
            },
        }
        data = json.dumps(payload, indent=2).encode("utf-8")
        try:
            self.metadata_dir.mkdir(mode=0o755, parents=True, exist_ok=True)
            with FileLock(self.index_path.with_suffix(".lock"), timeout=INDEX_LOCK_TIMEOUT):
                atomic_write(self.index_path, data)
        except Timeout as exc:
            raise CacheError(
                "Cannot acquire lock on cache index. Another process may be using it."
            ) from exc
        except OSError as exc:
            raise CacheError(f"failed to write cache index: {exc}") from exc
