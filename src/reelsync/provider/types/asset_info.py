"""Provider-side view of a Mux asset."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ProviderAssetStatus(str, Enum):
    """Asset statuses reported by Mux."""

    PREPARING = "preparing"
    READY = "ready"
    ERRORED = "errored"


class PlaybackIdInfo(BaseModel):
    """A playback identifier attached to a provider asset.

    Attributes:
        id: The playback identifier.
        policy: Access policy, e.g. ``public`` or ``signed``.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    policy: str = "public"


class AssetErrors(BaseModel):
    """Error details attached to an errored provider asset."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    type: str | None = None
    messages: list[str] = Field(default_factory=list[str])


class AssetInfo(BaseModel):
    """Snapshot of a provider asset as returned by the Mux API.

    Attributes:
        id: Provider asset identifier.
        status: Raw provider status string.
        playback_ids: Playback identifiers attached to the asset.
        duration: Duration in seconds, once known.
        aspect_ratio: Aspect ratio such as ``16:9``, once known.
        upload_id: Direct-upload identifier the asset was created from.
        passthrough: Correlation token set when the upload was created.
        errors: Error details for errored assets.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    status: str
    playback_ids: list[PlaybackIdInfo] = Field(default_factory=list[PlaybackIdInfo])
    duration: float | None = None
    aspect_ratio: str | None = None
    upload_id: str | None = None
    passthrough: str | None = None
    errors: AssetErrors | None = None

    @property
    def provider_status(self) -> ProviderAssetStatus | None:
        """The status as an enum, or None for statuses this service does not know."""
        try:
            return ProviderAssetStatus(self.status)
        except ValueError:
            return None

    @property
    def public_playback_id(self) -> str | None:
        """The first playback id with the ``public`` policy, if any."""
        for playback in self.playback_ids:
            if playback.policy == "public":
                return playback.id
        return None
