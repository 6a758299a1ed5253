"""Asset catalog access: backends, credentials, session cache and the client facade."""

from .client import AssetClient, SyncError, build_asset_client
from .models import (
    AssetContent,
    AssetFilter,
    AssetList,
    AssetRecord,
    AssetType,
    CacheInfo,
    GetAssetOptions,
    SyncRequest,
    SyncResult,
    SyncStatus,
    VariableSpec,
)

__all__ = [
    "AssetClient",
    "AssetContent",
    "AssetFilter",
    "AssetList",
    "AssetRecord",
    "AssetType",
    "CacheInfo",
    "GetAssetOptions",
    "SyncError",
    "SyncRequest",
    "SyncResult",
    "SyncStatus",
    "VariableSpec",
    "build_asset_client",
]
