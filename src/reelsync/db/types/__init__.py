"""Database model and enum types."""

from .asset_record import (
    AssetRecord,
    is_placeholder_playback_id,
    make_placeholder_playback_id,
)
from .asset_status import AssetStatus
from .timezone_aware_datetime import TimezoneAwareDatetime

__all__ = [
    "AssetRecord",
    "AssetStatus",
    "TimezoneAwareDatetime",
    "is_placeholder_playback_id",
    "make_placeholder_playback_id",
]
