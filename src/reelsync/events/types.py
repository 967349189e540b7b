"""Decoded provider events.

Every authentic webhook decodes into exactly one of the variants below.
Events are immutable and carry the raw provider ``data`` mapping for
diagnostics only; the reconciler reads the typed fields.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class PlaybackIdRef:
    """A playback identifier named in an event payload."""

    id: str
    policy: str = "public"


@dataclass(frozen=True)
class BaseEvent:
    """Fields shared by every event.

    Attributes:
        event_type: Provider event type, e.g. ``video.asset.ready``.
        provider_event_id: Provider's id for this delivery, if any.
        provider_asset_id: Provider asset the event concerns.
        provider_upload_id: Provider direct upload the event concerns.
        passthrough_id: Correlation token set at upload time (the local record id).
        payload: The raw ``data`` mapping.
    """

    event_type: str
    provider_event_id: str | None = None
    provider_asset_id: str | None = None
    provider_upload_id: str | None = None
    passthrough_id: str | None = None
    payload: Mapping[str, Any] = field(
        default_factory=dict[str, Any], compare=False, repr=False
    )


@dataclass(frozen=True)
class AssetCreated(BaseEvent):
    """The provider created an asset for an upload."""


@dataclass(frozen=True)
class AssetReady(BaseEvent):
    """The provider finished transcoding an asset.

    Attributes:
        duration: Duration in seconds, if reported.
        aspect_ratio: Aspect ratio such as ``16:9``, if reported.
        playback_ids: Playback identifiers attached to the asset.
    """

    duration: float | None = None
    aspect_ratio: str | None = None
    playback_ids: tuple[PlaybackIdRef, ...] = ()

    @property
    def public_playback_id(self) -> str | None:
        """The first playback id with the ``public`` policy, if any."""
        for playback in self.playback_ids:
            if playback.policy == "public":
                return playback.id
        return None


@dataclass(frozen=True)
class AssetErrored(BaseEvent):
    """The provider failed to process an asset.

    Attributes:
        error_messages: Messages the provider gave for the failure.
    """

    error_messages: tuple[str, ...] = ()


@dataclass(frozen=True)
class UploadCancelled(BaseEvent):
    """The upload was cancelled before an asset was produced."""


@dataclass(frozen=True)
class UnrecognizedEvent(BaseEvent):
    """An authentic event of a type this service does not act on."""


type Event = AssetCreated | AssetReady | AssetErrored | UploadCancelled | UnrecognizedEvent
