"""Asset record lifecycle values."""

from enum import Enum


class AssetStatus(str, Enum):
    """Represent where an asset record is in its upload and transcoding lifecycle.

    ``CANCELLED`` is terminal and sticky. ``READY`` requires a provider asset id.
    ``NEEDS_UPLOAD`` marks a record whose upload was never received by the
    provider and has to be retried by the user.
    """

    UPLOADING = "uploading"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"
    CANCELLED = "cancelled"
    NEEDS_UPLOAD = "needs_upload"

    @property
    def is_terminal(self) -> bool:
        """Whether a stale ``asset.created`` event must leave this status alone."""
        return self in (AssetStatus.READY, AssetStatus.ERROR, AssetStatus.CANCELLED)
