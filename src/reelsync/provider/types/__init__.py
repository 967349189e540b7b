"""Provider data types."""

from .asset_info import AssetErrors, AssetInfo, PlaybackIdInfo, ProviderAssetStatus

__all__ = [
    "AssetErrors",
    "AssetInfo",
    "PlaybackIdInfo",
    "ProviderAssetStatus",
]
