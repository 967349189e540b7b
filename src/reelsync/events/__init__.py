"""Inbound provider events: types, decoding and authentication."""

from .decoder import decode_event
from .types import (
    AssetCreated,
    AssetErrored,
    AssetReady,
    BaseEvent,
    Event,
    PlaybackIdRef,
    UnrecognizedEvent,
    UploadCancelled,
)
from .verifier import SIGNATURE_HEADER, EventVerifier, build_signature_header

__all__ = [
    "SIGNATURE_HEADER",
    "AssetCreated",
    "AssetErrored",
    "AssetReady",
    "BaseEvent",
    "Event",
    "EventVerifier",
    "PlaybackIdRef",
    "UnrecognizedEvent",
    "UploadCancelled",
    "build_signature_header",
    "decode_event",
]
