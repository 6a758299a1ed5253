"""In-memory cache of compiled templates.

Entries live for ``ttl`` seconds of monotonic time from insertion and are
evicted least-recently-used once ``capacity`` is reached. A lookup that
names a content checksum only hits when the cached template was compiled
from that exact content.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

from pydantic import BaseModel

if TYPE_CHECKING:
    from zen_assets.template.engine import Template

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100
DEFAULT_TTL_SECONDS = 30 * 60


class CacheStats(BaseModel):
    size: int = 0
    hits: int = 0
    misses: int = 0
    hit_ratio: float = 0.0


@dataclass(slots=True)
class _Item:
    template: "Template"
    created_at: float
    accessed_at: float
    access_count: int = 0


class TemplateCache:
    """LRU + TTL cache keyed by template name."""

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.capacity = capacity if capacity > 0 else DEFAULT_CAPACITY
        self.ttl = ttl if ttl > 0 else DEFAULT_TTL_SECONDS
        self._clock = clock
        self._lock = threading.Lock()
        self._items: OrderedDict[str, _Item] = OrderedDict()
        self._hits = 0
        self._misses = 0

    def get(self, name: str, checksum: str = "") -> Optional["Template"]:
        with self._lock:
            item = self._items.get(name)
            if item is None:
                self._misses += 1
                return None

            now = self._clock()
            if now - item.created_at > self.ttl:
                del self._items[name]
                self._misses += 1
                return None
            if checksum and item.template.checksum != checksum:
                logger.debug("Cached template %s was compiled from different content", name)
                del self._items[name]
                self._misses += 1
                return None

            item.accessed_at = now
            item.access_count += 1
            self._items.move_to_end(name)
            self._hits += 1
            logger.debug("Template cache hit for %s (access %d)", name, item.access_count)
            return item.template

    def set(self, name: str, template: "Template") -> None:
        with self._lock:
            self._items.pop(name, None)
            while len(self._items) >= self.capacity:
                evicted, _ = self._items.popitem(last=False)
                logger.debug("Evicted template %s from cache", evicted)
            now = self._clock()
            self._items[name] = _Item(template=template, created_at=now, accessed_at=now)

    def delete(self, name: str) -> None:
        with self._lock:
            self._items.pop(name, None)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
            self._hits = 0
            self._misses = 0

    def purge_expired(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [name for name, item in self._items.items() if now - item.created_at > self.ttl]
            for name in expired:
                del self._items[name]
        if expired:
            logger.debug("Purged %d expired templates", len(expired))
        return len(expired)

    def stats(self) -> CacheStats:
        with self._lock:
            total = self._hits + self._misses
            return CacheStats(
                size=len(self._items),
                hits=self._hits,
                misses=self._misses,
                hit_ratio=self._hits / total if total else 0.0,
            )


class NullTemplateCache:
    """Cache used when caching is disabled: every lookup misses."""

    def get(self, name: str, checksum: str = "") -> Optional["Template"]:
        return None

    def set(self, name: str, template: "Template") -> None:
        pass

    def delete(self, name: str) -> None:
        pass

    def clear(self) -> None:
        pass

    def purge_expired(self) -> int:
        return 0

    def stats(self) -> CacheStats:
        return CacheStats()
