from .mux_client import MuxClient
from .types import AssetInfo, PlaybackIdInfo, ProviderAssetStatus

__all__ = [
    "AssetInfo",
    "MuxClient",
    "PlaybackIdInfo",
    "ProviderAssetStatus",
]
