"""Data model for the asset catalog and the session cache.

AssetRecord rows come from the manifest, AssetContent values are ephemeral
fetch results, and CacheEntry rows are persisted in the cache index.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


CHECKSUM_PREFIX = "sha256:"


def compute_checksum(content: bytes) -> str:
    """Return ``sha256:<hex>`` for ``content``."""
    return CHECKSUM_PREFIX + hashlib.sha256(content).hexdigest()


def checksum_hex(checksum: str) -> str:
    """Strip the algorithm prefix from a checksum string."""
    return checksum[len(CHECKSUM_PREFIX):] if checksum.startswith(CHECKSUM_PREFIX) else checksum


class AssetType(str, Enum):
    """Kinds of artifact distributed through the catalog."""

    TEMPLATE = "template"
    PROMPT = "prompt"
    MCP = "mcp"
    SCHEMA = "schema"


class VariableSpec(BaseModel):
    """Declared input of a template."""

    name: str = Field(..., min_length=1, description="Variable name as used in the template")
    type: str = Field(default="string", description="string|int|float|bool|slice|map|any or an alias")
    required: bool = Field(default=False)
    default: Any = Field(default=None, description="Value applied when the caller omits the variable")
    validation: str = Field(default="", description="Constraint rule, e.g. 'length:3-10'")
    description: str = Field(default="")
    examples: list[str] = Field(default_factory=list)


class AssetRecord(BaseModel):
    """One catalog row."""

    name: str = Field(..., min_length=1)
    type: AssetType = AssetType.TEMPLATE
    format: str = Field(default="", description="Post-processor tag: markdown|yaml|json|prompt|...")
    description: str = ""
    category: str = ""
    tags: list[str] = Field(default_factory=list)
    workflow_stages: list[str] = Field(default_factory=list)
    path: str = Field(default="", description="Logical path inside the remote catalog")
    variables: list[VariableSpec] = Field(default_factory=list)
    checksum: str = Field(default="", description="Empty or 'sha256:<hex>'")
    updated_at: Optional[datetime] = None
    command: str = ""
    output_file: str = ""


class AssetContent(BaseModel):
    """Result of fetching one asset."""

    metadata: Optional[AssetRecord] = None
    content: bytes = b""
    checksum: str = ""
    cached: bool = False
    cache_age_seconds: int = 0

    @property
    def text(self) -> str:
        return self.content.decode("utf-8")


class CacheEntry(BaseModel):
    """Row of the on-disk cache index."""

    key: str
    path: str
    size: int
    checksum: str = ""
    created_at: datetime
    accessed_at: datetime
    ttl_seconds: int = 0
    metadata: Optional[AssetRecord] = None

    def is_expired(self, now: datetime) -> bool:
        if self.ttl_seconds <= 0:
            return False
        return (now - self.created_at).total_seconds() > self.ttl_seconds


class AssetList(BaseModel):
    assets: list[AssetRecord] = Field(default_factory=list)
    total: int = 0
    has_more: bool = False


class CacheInfo(BaseModel):
    total_size: int = 0
    entry_count: int = 0
    last_sync: Optional[datetime] = None
    cache_hit_ratio: float = 0.0


class SyncStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    ERROR = "error"


class SyncResult(BaseModel):
    status: SyncStatus = SyncStatus.SUCCESS
    duration_ms: int = 0
    assets_added: int = 0
    assets_updated: int = 0
    assets_removed: int = 0
    cache_size_mb: float = 0.0
    last_sync: Optional[datetime] = None
    error: str = ""


@dataclass(frozen=True)
class AssetFilter:
    type: str = ""
    category: str = ""
    tags: tuple[str, ...] = ()
    limit: int = 0
    offset: int = 0


@dataclass(frozen=True)
class GetAssetOptions:
    include_metadata: bool = True
    verify_integrity: bool = True
    use_cache: bool = True


@dataclass(frozen=True)
class SyncRequest:
    force: bool = False
    branch: str = ""


@dataclass(frozen=True)
class Catalog:
    """Immutable, name-unique catalog snapshot.

    Writers build a new ``Catalog`` and swap it in whole; readers keep
    whatever snapshot they grabbed.
    """

    records: tuple[AssetRecord, ...] = ()
    last_sync: Optional[datetime] = None
    source_bytes: bytes = b""
    _index: dict[str, AssetRecord] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self) -> None:
        index = {record.name: record for record in self.records}
        if len(index) != len(self.records):
            raise ValueError("catalog records must have unique names")
        object.__setattr__(self, "_index", index)

    def lookup(self, name: str) -> AssetRecord | None:
        return self._index.get(name)

    def __len__(self) -> int:
        return len(self.records)
