"""Pure transition function for asset records.

``transition`` is the single place where the lifecycle rules live. Both the
webhook path and the sweep path feed their observations through it, so a
record converges to the same state whichever path saw the change first and
in whatever order events arrive.

It never performs I/O and never mutates its input.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from ..db.types import AssetRecord, AssetStatus, is_placeholder_playback_id
from ..events import (
    AssetCreated,
    AssetErrored,
    AssetReady,
    Event,
    UnrecognizedEvent,
    UploadCancelled,
)

__all__ = [
    "AssetNeverUploaded",
    "AssetOrphaned",
    "Change",
    "SideEffect",
    "SweepObservation",
    "Transition",
    "TransitionOutcome",
    "is_placeholder_playback_id",
    "transition",
]


@dataclass(frozen=True)
class AssetOrphaned:
    """The sweep found that the provider no longer knows the record's asset."""

    provider_asset_id: str


@dataclass(frozen=True)
class AssetNeverUploaded:
    """The sweep found a ready record that has no provider asset at all."""


type SweepObservation = AssetOrphaned | AssetNeverUploaded
type Change = Event | SweepObservation


class SideEffect(str, Enum):
    """Work to perform after a transition has been persisted."""

    ENSURE_PLAYBACK_ID = "ensure_playback_id"


class TransitionOutcome(str, Enum):
    """How a change related to the record it was applied to.

    APPLIED: the record's content changed.
    UNCHANGED: the change was already reflected; only ``updated_at`` moves.
    IGNORED: the change does not apply to the record in its current state.
    DROPPED: there was no record to apply the change to.
    """

    APPLIED = "applied"
    UNCHANGED = "unchanged"
    IGNORED = "ignored"
    DROPPED = "dropped"


@dataclass(frozen=True)
class Transition:
    """Result of applying one change to one record.

    Attributes:
        record: The record to persist, or None when nothing must be written.
        side_effects: Work to run after persisting.
        outcome: How the change related to the record.
        reason: Short human-readable explanation, for logs.
    """

    record: AssetRecord | None
    side_effects: tuple[SideEffect, ...]
    outcome: TransitionOutcome
    reason: str

    @property
    def changed(self) -> bool:
        """Whether the record's content changed."""
        return self.outcome == TransitionOutcome.APPLIED


def _skip(outcome: TransitionOutcome, reason: str) -> Transition:
    return Transition(record=None, side_effects=(), outcome=outcome, reason=reason)


def _result(
    current: AssetRecord,
    now: datetime,
    reason: str,
    side_effects: tuple[SideEffect, ...] = (),
    **updates: Any,
) -> Transition:
    """Build the transition that moves ``current`` to ``current`` plus ``updates``.

    A candidate equal in content to ``current`` yields UNCHANGED, with only
    ``updated_at`` refreshed.
    """
    candidate = current.clone(**updates, updated_at=now)
    if candidate.content_equals(current):
        return Transition(
            record=candidate,
            side_effects=side_effects,
            outcome=TransitionOutcome.UNCHANGED,
            reason=f"already {current.status.value}",
        )
    return Transition(
        record=candidate,
        side_effects=side_effects,
        outcome=TransitionOutcome.APPLIED,
        reason=reason,
    )


def _on_created(record: AssetRecord, event: AssetCreated, now: datetime) -> Transition:
    asset_id = event.provider_asset_id
    if asset_id is None:
        return _skip(TransitionOutcome.IGNORED, "created event carries no asset id")

    upload_id = record.provider_upload_id or event.provider_upload_id

    if record.status.is_terminal:
        if record.provider_asset_id not in (None, asset_id):
            return _skip(
                TransitionOutcome.IGNORED,
                f"stale created event for a different asset on a {record.status.value} record",
            )
        # Stale created event: the status already moved past processing.
        return _result(
            record,
            now,
            "filled in asset id from a late created event",
            provider_asset_id=asset_id,
            provider_upload_id=upload_id,
        )

    return _result(
        record,
        now,
        "asset created, now processing",
        status=AssetStatus.PROCESSING,
        provider_asset_id=asset_id,
        provider_upload_id=upload_id,
    )


def _on_ready(record: AssetRecord, event: AssetReady, now: datetime) -> Transition:
    if record.status == AssetStatus.CANCELLED:
        return _skip(TransitionOutcome.IGNORED, "ready event on a cancelled record")

    asset_id = event.provider_asset_id or record.provider_asset_id
    if asset_id is None:
        return _skip(TransitionOutcome.IGNORED, "ready event carries no asset id")

    playback_id = record.playback_id
    if not record.has_confirmed_playback_id:
        playback_id = event.public_playback_id or playback_id

    needs_playback = not playback_id or is_placeholder_playback_id(playback_id)
    side_effects = (SideEffect.ENSURE_PLAYBACK_ID,) if needs_playback else ()

    return _result(
        record,
        now,
        "asset ready",
        side_effects,
        status=AssetStatus.READY,
        provider_asset_id=asset_id,
        provider_upload_id=record.provider_upload_id or event.provider_upload_id,
        playback_id=playback_id,
        duration=event.duration if event.duration is not None else record.duration,
        aspect_ratio=event.aspect_ratio or record.aspect_ratio,
    )


def _on_errored(record: AssetRecord, event: AssetErrored, now: datetime) -> Transition:
    if record.status == AssetStatus.CANCELLED:
        return _skip(TransitionOutcome.IGNORED, "errored event on a cancelled record")
    return _result(
        record,
        now,
        "asset errored",
        status=AssetStatus.ERROR,
        provider_asset_id=record.provider_asset_id or event.provider_asset_id,
    )


def _on_cancelled(record: AssetRecord, now: datetime) -> Transition:
    return _result(record, now, "upload cancelled", status=AssetStatus.CANCELLED)


def _on_orphaned(record: AssetRecord, now: datetime) -> Transition:
    if record.status == AssetStatus.CANCELLED:
        return _skip(TransitionOutcome.IGNORED, "orphaned asset on a cancelled record")
    return _result(
        record, now, "provider asset no longer exists", status=AssetStatus.ERROR
    )


def _on_never_uploaded(record: AssetRecord, now: datetime) -> Transition:
    if record.status != AssetStatus.READY or record.provider_asset_id is not None:
        return _skip(TransitionOutcome.IGNORED, "record has a provider asset")
    return _result(
        record,
        now,
        "ready record was never uploaded",
        status=AssetStatus.NEEDS_UPLOAD,
        playback_id=None,
    )


def transition(
    record: AssetRecord | None, change: Change, now: datetime
) -> Transition:
    """Compute what ``change`` does to ``record``.

    Args:
        record: The current record, or None when routing found nothing.
        change: A provider event or a sweep observation.
        now: Timestamp to stamp on the new record.

    Returns:
        The Transition to persist.
    """
    if record is None:
        return _skip(TransitionOutcome.DROPPED, "no matching record")

    match change:
        case AssetCreated():
            return _on_created(record, change, now)
        case AssetReady():
            return _on_ready(record, change, now)
        case AssetErrored():
            return _on_errored(record, change, now)
        case UploadCancelled():
            return _on_cancelled(record, now)
        case AssetOrphaned():
            return _on_orphaned(record, now)
        case AssetNeverUploaded():
            return _on_never_uploaded(record, now)
        case UnrecognizedEvent():
            return _skip(
                TransitionOutcome.IGNORED, f"unhandled event type {change.event_type}"
            )
