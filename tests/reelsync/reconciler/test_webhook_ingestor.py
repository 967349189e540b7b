# pyright: reportPrivateUsage=false

"""Tests for WebhookIngestor over a migrated database."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

from helpers.assets import WEBHOOK_SECRET, make_record, sign, webhook_body
import pytest

from reelsync.db import AssetDatabase
from reelsync.db.types import AssetStatus
from reelsync.events import EventVerifier
from reelsync.exceptions import (
    DatabaseOperationError,
    MalformedEventError,
    PlaybackIdError,
    SignatureVerificationError,
    TransientIngestError,
)
from reelsync.reconciler import (
    EnsureOutcome,
    EnsureResult,
    PlaybackIdEnsurer,
    TransitionApplier,
    TransitionOutcome,
    WebhookIngestor,
)

READY_DATA = {
    "id": "asset-1",
    "upload_id": "upload-1",
    "passthrough": "rec-1",
    "duration": 12.5,
    "aspect_ratio": "16:9",
    "playback_ids": [{"id": "play-1", "policy": "public"}],
}


@pytest.fixture
def mock_ensurer() -> MagicMock:
    """Provides a mock PlaybackIdEnsurer."""
    mock = MagicMock(spec=PlaybackIdEnsurer)
    mock.ensure = AsyncMock(
        return_value=EnsureResult(EnsureOutcome.UPDATED, "rec-1", "play-new", True)
    )
    return mock


@pytest.fixture
def ingestor(asset_db: AssetDatabase, mock_ensurer: MagicMock) -> WebhookIngestor:
    """Provides a WebhookIngestor with a real verifier and applier."""
    return WebhookIngestor(
        EventVerifier(WEBHOOK_SECRET),
        asset_db,
        TransitionApplier(asset_db),
        mock_ensurer,
    )


async def _deliver(ingestor: WebhookIngestor, event_type: str, data: dict[str, object]):
    body = webhook_body(event_type, data)
    return await ingestor.ingest(body, sign(body))


# --- authentication ---


@pytest.mark.unit
@pytest.mark.asyncio
async def test_bad_signature_rejected_without_write(
    ingestor: WebhookIngestor, asset_db: AssetDatabase
):
    """A forged delivery is rejected and the record is untouched."""
    await asset_db.create(make_record())
    body = webhook_body("video.asset.ready", READY_DATA)

    with pytest.raises(SignatureVerificationError):
        await ingestor.ingest(body, sign(body, secret="wrong"))

    stored = await asset_db.get_by_id("rec-1")
    assert stored is not None
    assert stored.status == AssetStatus.UPLOADING
    assert stored.version == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_missing_signature_rejected(ingestor: WebhookIngestor):
    """A delivery without a signature header is rejected."""
    with pytest.raises(SignatureVerificationError):
        await ingestor.ingest(webhook_body("video.asset.ready", READY_DATA), None)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_authentic_but_malformed_rejected(ingestor: WebhookIngestor):
    """A correctly signed body missing required fields is malformed."""
    with pytest.raises(MalformedEventError):
        await _deliver(ingestor, "video.asset.ready", {"status": "ready"})


# --- routing and transitions ---


@pytest.mark.unit
@pytest.mark.asyncio
async def test_created_event_routed_by_passthrough(
    ingestor: WebhookIngestor, asset_db: AssetDatabase
):
    """A created event moves the passthrough record to processing."""
    await asset_db.create(make_record())

    result = await _deliver(
        ingestor, "video.asset.created", {"id": "asset-1", "passthrough": "rec-1"}
    )

    assert result.outcome == TransitionOutcome.APPLIED
    assert result.record_id == "rec-1"
    assert result.provider_event_id == "evt-1"
    stored = await asset_db.get_by_id("rec-1")
    assert stored is not None
    assert stored.status == AssetStatus.PROCESSING
    assert stored.provider_asset_id == "asset-1"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_upload_asset_created_routed_by_upload_id(
    ingestor: WebhookIngestor, asset_db: AssetDatabase
):
    """An upload event without passthrough is routed by its upload id."""
    await asset_db.create(make_record())

    result = await _deliver(
        ingestor, "video.upload.asset_created", {"id": "upload-1", "asset_id": "asset-1"}
    )

    assert result.outcome == TransitionOutcome.APPLIED
    assert result.record_id == "rec-1"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_ready_event_with_playback_id_skips_ensure(
    ingestor: WebhookIngestor, asset_db: AssetDatabase, mock_ensurer: MagicMock
):
    """A ready event carrying a playback id needs no side effect."""
    await asset_db.create(make_record(status=AssetStatus.PROCESSING))

    result = await _deliver(ingestor, "video.asset.ready", READY_DATA)

    assert result.outcome == TransitionOutcome.APPLIED
    assert result.ensure_outcome is None
    mock_ensurer.ensure.assert_not_awaited()
    stored = await asset_db.get_by_id("rec-1")
    assert stored is not None
    assert stored.status == AssetStatus.READY
    assert stored.playback_id == "play-1"
    assert stored.duration == 12.5


@pytest.mark.unit
@pytest.mark.asyncio
async def test_ready_event_without_playback_id_runs_ensure(
    ingestor: WebhookIngestor, asset_db: AssetDatabase, mock_ensurer: MagicMock
):
    """A ready event with no playback id triggers the ensure side effect."""
    await asset_db.create(make_record(status=AssetStatus.PROCESSING))

    result = await _deliver(
        ingestor, "video.asset.ready", {**READY_DATA, "playback_ids": []}
    )

    assert result.ensure_outcome == EnsureOutcome.UPDATED
    mock_ensurer.ensure.assert_awaited_once()
    ensured = mock_ensurer.ensure.await_args.args[0]
    assert ensured.status == AssetStatus.READY


@pytest.mark.unit
@pytest.mark.asyncio
async def test_ensure_failure_is_logged_not_raised(
    ingestor: WebhookIngestor, asset_db: AssetDatabase, mock_ensurer: MagicMock
):
    """The delivery is acknowledged even when the ensure side effect fails."""
    await asset_db.create(make_record(status=AssetStatus.PROCESSING))
    mock_ensurer.ensure.side_effect = PlaybackIdError("nope", record_id="rec-1")

    result = await _deliver(
        ingestor, "video.asset.ready", {**READY_DATA, "playback_ids": []}
    )

    assert result.outcome == TransitionOutcome.APPLIED
    assert result.ensure_outcome is None
    stored = await asset_db.get_by_id("rec-1")
    assert stored is not None
    assert stored.status == AssetStatus.READY


@pytest.mark.unit
@pytest.mark.asyncio
async def test_redelivery_is_unchanged_but_touches_updated_at(
    ingestor: WebhookIngestor, asset_db: AssetDatabase
):
    """A repeated event changes nothing but the update timestamp."""
    await asset_db.create(make_record(status=AssetStatus.PROCESSING))
    await _deliver(ingestor, "video.asset.ready", READY_DATA)
    first = await asset_db.get_by_id("rec-1")

    result = await _deliver(ingestor, "video.asset.ready", READY_DATA)

    second = await asset_db.get_by_id("rec-1")
    assert result.outcome == TransitionOutcome.UNCHANGED
    assert first is not None and second is not None
    assert second.content_equals(first)
    assert second.version == first.version + 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cancelled_is_sticky(ingestor: WebhookIngestor, asset_db: AssetDatabase):
    """A ready event after cancellation leaves the record cancelled."""
    await asset_db.create(make_record())
    await _deliver(ingestor, "video.upload.cancelled", {"id": "upload-1"})

    result = await _deliver(ingestor, "video.asset.ready", READY_DATA)

    assert result.outcome == TransitionOutcome.IGNORED
    stored = await asset_db.get_by_id("rec-1")
    assert stored is not None
    assert stored.status == AssetStatus.CANCELLED


@pytest.mark.unit
@pytest.mark.asyncio
async def test_out_of_order_ready_then_created_converges(
    ingestor: WebhookIngestor, asset_db: AssetDatabase
):
    """Ready arriving before created still ends ready."""
    await asset_db.create(make_record())

    await _deliver(ingestor, "video.asset.ready", READY_DATA)
    await _deliver(
        ingestor, "video.asset.created", {"id": "asset-1", "passthrough": "rec-1"}
    )

    stored = await asset_db.get_by_id("rec-1")
    assert stored is not None
    assert stored.status == AssetStatus.READY
    assert stored.provider_asset_id == "asset-1"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unroutable_event_is_dropped(ingestor: WebhookIngestor):
    """An event matching no record is acknowledged as dropped."""
    result = await _deliver(ingestor, "video.asset.ready", READY_DATA)

    assert result.outcome == TransitionOutcome.DROPPED
    assert result.record_id is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unrecognized_type_is_ignored(
    ingestor: WebhookIngestor, asset_db: AssetDatabase
):
    """Event types without a handler are acknowledged and write nothing."""
    await asset_db.create(make_record())

    result = await _deliver(ingestor, "video.asset.track.ready", {"id": "track-1"})

    assert result.outcome == TransitionOutcome.IGNORED
    assert result.summary_dict()["event_type"] == "video.asset.track.ready"
    stored = await asset_db.get_by_id("rec-1")
    assert stored is not None
    assert stored.version == 0


# --- store failures ---


@pytest.mark.unit
@pytest.mark.asyncio
async def test_store_failure_is_transient(mock_ensurer: MagicMock):
    """A store failure asks the provider to redeliver."""
    mock_db = MagicMock(spec=AssetDatabase)
    mock_db.get_by_id = AsyncMock(side_effect=DatabaseOperationError("locked"))
    ingestor = WebhookIngestor(
        EventVerifier(WEBHOOK_SECRET),
        mock_db,
        TransitionApplier(mock_db),
        mock_ensurer,
    )

    with pytest.raises(TransientIngestError) as exc_info:
        await _deliver(ingestor, "video.asset.ready", READY_DATA)

    assert exc_info.value.event_type == "video.asset.ready"


# --- deadlines ---


@pytest.mark.unit
@pytest.mark.asyncio
async def test_ingest_timeout_is_transient(mock_ensurer: MagicMock):
    """Routing that outlives the deadline asks the provider to redeliver."""

    async def slow_lookup(_: str):
        await asyncio.sleep(2)

    mock_db = MagicMock(spec=AssetDatabase)
    mock_db.get_by_id = AsyncMock(side_effect=slow_lookup)
    ingestor = WebhookIngestor(
        EventVerifier(WEBHOOK_SECRET),
        mock_db,
        TransitionApplier(mock_db),
        mock_ensurer,
        timeout_seconds=0.05,
    )

    with pytest.raises(TransientIngestError) as exc_info:
        await _deliver(ingestor, "video.asset.ready", READY_DATA)

    assert exc_info.value.event_type == "video.asset.ready"
    mock_db.compare_and_swap.assert_not_called()
    mock_ensurer.ensure.assert_not_called()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_slow_ensure_is_bounded_and_acknowledged(
    asset_db: AssetDatabase, mock_ensurer: MagicMock
):
    """A playback id side effect that outlives the deadline is cut off, not rejected."""

    async def slow_ensure(_: object):
        await asyncio.sleep(2)

    mock_ensurer.ensure.side_effect = slow_ensure
    ingestor = WebhookIngestor(
        EventVerifier(WEBHOOK_SECRET),
        asset_db,
        TransitionApplier(asset_db),
        mock_ensurer,
        timeout_seconds=0.2,
    )
    await asset_db.create(make_record(status=AssetStatus.PROCESSING))
    loop = asyncio.get_running_loop()

    started = loop.time()
    result = await _deliver(
        ingestor, "video.asset.ready", {**READY_DATA, "playback_ids": []}
    )
    elapsed = loop.time() - started

    assert elapsed < 1.0
    assert result.outcome == TransitionOutcome.APPLIED
    assert result.ensure_outcome is None
    mock_ensurer.ensure.assert_awaited_once()
    stored = await asset_db.get_by_id("rec-1")
    assert stored is not None
    assert stored.status == AssetStatus.READY
