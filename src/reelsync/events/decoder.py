"""Decoding of verified Mux webhook bodies into Event variants."""

from collections.abc import Callable, Mapping
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from ..exceptions import MalformedEventError
from .types import (
    AssetCreated,
    AssetErrored,
    AssetReady,
    Event,
    PlaybackIdRef,
    UnrecognizedEvent,
    UploadCancelled,
)

logger = logging.getLogger(__name__)


class WebhookEnvelope(BaseModel):
    """Outer structure shared by all Mux webhook bodies."""

    model_config = ConfigDict(extra="ignore")

    type: str
    id: str | None = None
    data: dict[str, Any]


def _opt_str(data: Mapping[str, Any], key: str, event_type: str) -> str | None:
    value = data.get(key)
    match value:
        case None | "":
            return None
        case str():
            return value
        case _:
            raise MalformedEventError(
                f"Field 'data.{key}' must be a string, got {type(value).__name__}.",
                event_type=event_type,
            )


def _req_str(data: Mapping[str, Any], key: str, event_type: str) -> str:
    value = _opt_str(data, key, event_type)
    if value is None:
        raise MalformedEventError(
            f"Field 'data.{key}' is required.", event_type=event_type
        )
    return value


def _opt_float(data: Mapping[str, Any], key: str, event_type: str) -> float | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, int | float) and not isinstance(value, bool):
        return float(value)
    raise MalformedEventError(
        f"Field 'data.{key}' must be a number, got {type(value).__name__}.",
        event_type=event_type,
    )


def _upload_passthrough(data: Mapping[str, Any], event_type: str) -> str | None:
    """Upload objects carry the passthrough inside ``new_asset_settings``."""
    settings = data.get("new_asset_settings")
    if isinstance(settings, Mapping):
        nested = _opt_str(settings, "passthrough", event_type)  # type: ignore[reportUnknownArgumentType]
        if nested is not None:
            return nested
    return _opt_str(data, "passthrough", event_type)


def _playback_ids(data: Mapping[str, Any], event_type: str) -> tuple[PlaybackIdRef, ...]:
    raw = data.get("playback_ids") or []
    if not isinstance(raw, list):
        raise MalformedEventError(
            "Field 'data.playback_ids' must be a list.", event_type=event_type
        )
    refs: list[PlaybackIdRef] = []
    for entry in raw:  # type: ignore[reportUnknownVariableType]
        if not isinstance(entry, Mapping):
            raise MalformedEventError(
                "Entries of 'data.playback_ids' must be objects.", event_type=event_type
            )
        refs.append(
            PlaybackIdRef(
                id=_req_str(entry, "id", event_type),  # type: ignore[reportUnknownArgumentType]
                policy=_opt_str(entry, "policy", event_type) or "public",  # type: ignore[reportUnknownArgumentType]
            )
        )
    return tuple(refs)


def _error_messages(data: Mapping[str, Any]) -> tuple[str, ...]:
    errors = data.get("errors")
    if isinstance(errors, Mapping):
        messages = errors.get("messages")  # type: ignore[reportUnknownMemberType]
        if isinstance(messages, list):
            return tuple(str(m) for m in messages)  # type: ignore[reportUnknownVariableType]
    return ()


def _asset_created(envelope: WebhookEnvelope) -> Event:
    data, t = envelope.data, envelope.type
    return AssetCreated(
        event_type=t,
        provider_event_id=envelope.id,
        provider_asset_id=_req_str(data, "id", t),
        provider_upload_id=_opt_str(data, "upload_id", t),
        passthrough_id=_opt_str(data, "passthrough", t),
        payload=data,
    )


def _upload_asset_created(envelope: WebhookEnvelope) -> Event:
    data, t = envelope.data, envelope.type
    return AssetCreated(
        event_type=t,
        provider_event_id=envelope.id,
        provider_asset_id=_req_str(data, "asset_id", t),
        provider_upload_id=_req_str(data, "id", t),
        passthrough_id=_upload_passthrough(data, t),
        payload=data,
    )


def _asset_ready(envelope: WebhookEnvelope) -> Event:
    data, t = envelope.data, envelope.type
    return AssetReady(
        event_type=t,
        provider_event_id=envelope.id,
        provider_asset_id=_req_str(data, "id", t),
        provider_upload_id=_opt_str(data, "upload_id", t),
        passthrough_id=_opt_str(data, "passthrough", t),
        payload=data,
        duration=_opt_float(data, "duration", t),
        aspect_ratio=_opt_str(data, "aspect_ratio", t),
        playback_ids=_playback_ids(data, t),
    )


def _asset_errored(envelope: WebhookEnvelope) -> Event:
    data, t = envelope.data, envelope.type
    return AssetErrored(
        event_type=t,
        provider_event_id=envelope.id,
        provider_asset_id=_req_str(data, "id", t),
        provider_upload_id=_opt_str(data, "upload_id", t),
        passthrough_id=_opt_str(data, "passthrough", t),
        payload=data,
        error_messages=_error_messages(data),
    )


def _upload_cancelled(envelope: WebhookEnvelope) -> Event:
    data, t = envelope.data, envelope.type
    return UploadCancelled(
        event_type=t,
        provider_event_id=envelope.id,
        provider_asset_id=_opt_str(data, "asset_id", t),
        provider_upload_id=_req_str(data, "id", t),
        passthrough_id=_upload_passthrough(data, t),
        payload=data,
    )


_DECODERS: dict[str, Callable[[WebhookEnvelope], Event]] = {
    "video.asset.created": _asset_created,
    "video.upload.asset_created": _upload_asset_created,
    "video.asset.ready": _asset_ready,
    "video.asset.errored": _asset_errored,
    "video.upload.cancelled": _upload_cancelled,
}


def decode_event(raw_body: bytes) -> Event:
    """Decode a verified webhook body.

    Types without a decoder become UnrecognizedEvent. Handled types must
    carry the identifiers they are routed by.

    Args:
        raw_body: The raw request body.

    Returns:
        The decoded Event.

    Raises:
        MalformedEventError: If the body is not a valid Mux envelope or a
            handled event lacks a required field.
    """
    try:
        envelope = WebhookEnvelope.model_validate_json(raw_body)
    except ValidationError as e:
        raise MalformedEventError("Webhook body is not a valid Mux envelope.") from e

    decoder = _DECODERS.get(envelope.type)
    if decoder is None:
        logger.debug(
            "Decoded webhook of unhandled type.", extra={"event_type": envelope.type}
        )
        return UnrecognizedEvent(
            event_type=envelope.type,
            provider_event_id=envelope.id,
            payload=envelope.data,
        )
    return decoder(envelope)
