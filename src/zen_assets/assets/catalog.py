"""In-memory asset catalog: snapshot holder, filtering and diffing."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Sequence

from zen_assets.assets.models import AssetFilter, AssetList, AssetRecord, Catalog

DEFAULT_LIST_LIMIT = 50


@dataclass(frozen=True)
class CatalogDiff:
    added: tuple[str, ...] = ()
    updated: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()

    @property
    def changed(self) -> tuple[str, ...]:
        """Names whose cached content may be stale."""
        return self.updated + self.removed


def _record_type(record: AssetRecord) -> str:
    return record.type.value if hasattr(record.type, "value") else str(record.type)


def matches(record: AssetRecord, asset_filter: AssetFilter) -> bool:
    """Return True if ``record`` satisfies every facet of ``asset_filter``.

    ``type`` and ``category`` use equality when set; every filter tag must
    be present on the record, compared case-insensitively.
    """
    if asset_filter.type and _record_type(record) != asset_filter.type:
        return False
    if asset_filter.category and record.category != asset_filter.category:
        return False
    if asset_filter.tags:
        record_tags = {tag.lower() for tag in record.tags}
        if not all(tag.lower() in record_tags for tag in asset_filter.tags):
            return False
    return True


def filter_records(records: Iterable[AssetRecord], asset_filter: AssetFilter) -> list[AssetRecord]:
    return [record for record in records if matches(record, asset_filter)]


def paginate(records: Sequence[AssetRecord], limit: int, offset: int) -> AssetList:
    if limit <= 0:
        limit = DEFAULT_LIST_LIMIT
    total = len(records)
    start = min(max(offset, 0), total)
    end = min(start + limit, total)
    return AssetList(assets=list(records[start:end]), total=total, has_more=end < total)


def diff_catalogs(old: Iterable[AssetRecord], new: Iterable[AssetRecord]) -> CatalogDiff:
    """Compare two record sets by name.

    A record is updated when its checksum or ``updated_at`` changed.
    """
    previous = {record.name: record for record in old}
    current = {record.name: record for record in new}

    added: list[str] = []
    updated: list[str] = []
    for name, record in current.items():
        before = previous.get(name)
        if before is None:
            added.append(name)
        elif before.checksum != record.checksum or before.updated_at != record.updated_at:
            updated.append(name)
    removed = [name for name in previous if name not in current]
    return CatalogDiff(added=tuple(added), updated=tuple(updated), removed=tuple(removed))


class CatalogEngine:
    """Owns the current catalog snapshot.

    The snapshot is immutable and swapped as a whole under a lock, so a
    reader sees either the previous catalog or the new one, never a mix.
    """

    def __init__(self, catalog: Catalog | None = None):
        self._lock = threading.Lock()
        self._catalog = catalog
        self._loaded = catalog is not None

    @property
    def loaded(self) -> bool:
        with self._lock:
            return self._loaded

    def snapshot(self) -> Catalog:
        with self._lock:
            return self._catalog if self._catalog is not None else Catalog()

    def replace(
        self,
        records: Sequence[AssetRecord],
        source_bytes: bytes = b"",
        last_sync: datetime | None = None,
    ) -> CatalogDiff:
        """Install a new catalog and return how it differs from the old one."""
        new_catalog = Catalog(records=tuple(records), last_sync=last_sync, source_bytes=source_bytes)
        with self._lock:
            old_records = self._catalog.records if self._catalog is not None else ()
            self._catalog = new_catalog
            self._loaded = True
        return diff_catalogs(old_records, new_catalog.records)

    def lookup(self, name: str) -> AssetRecord | None:
        return self.snapshot().lookup(name)

    def filter(self, asset_filter: AssetFilter) -> AssetList:
        records = filter_records(self.snapshot().records, asset_filter)
        return paginate(records, asset_filter.limit, asset_filter.offset)
