# pyright: reportPrivateUsage=false

"""Tests for PlaybackIdEnsurer against a migrated database and a mock provider."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

from helpers.assets import make_asset_info, make_record
import pytest

from reelsync.db import AssetDatabase
from reelsync.db.types import AssetStatus, make_placeholder_playback_id
from reelsync.exceptions import PlaybackIdError, TransientProviderError
from reelsync.provider import MuxClient
from reelsync.reconciler import EnsureOutcome, PlaybackIdEnsurer


@pytest.fixture
def mock_mux_client() -> MagicMock:
    """Provides a mock MuxClient with async methods."""
    mock = MagicMock(spec=MuxClient)
    mock.get_asset = AsyncMock(return_value=make_asset_info(playback_ids=[]))
    mock.create_public_playback_id = AsyncMock(return_value="play-new")
    return mock


@pytest.fixture
def ensurer(asset_db: AssetDatabase, mock_mux_client: MagicMock) -> PlaybackIdEnsurer:
    """Provides a PlaybackIdEnsurer over the test database."""
    return PlaybackIdEnsurer(asset_db, mock_mux_client)


def _ready(**overrides: object):
    values: dict[str, object] = {
        "id": "asset-1",
        "status": AssetStatus.READY,
        "provider_asset_id": "asset-1",
        "playback_id": make_placeholder_playback_id("asset-1"),
    }
    values.update(overrides)
    return make_record(**values)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_confirmed_playback_id_is_noop(
    ensurer: PlaybackIdEnsurer, asset_db: AssetDatabase, mock_mux_client: MagicMock
):
    """A record that already has a real playback id is left alone."""
    record = await asset_db.create(_ready(playback_id="play-1"))

    result = await ensurer.ensure(record)

    assert result.outcome == EnsureOutcome.NOOP
    assert result.playback_id == "play-1"
    mock_mux_client.get_asset.assert_not_awaited()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_adopts_existing_provider_playback_id(
    ensurer: PlaybackIdEnsurer, asset_db: AssetDatabase, mock_mux_client: MagicMock
):
    """A playback id already on the provider asset is adopted, not created."""
    mock_mux_client.get_asset.return_value = make_asset_info()
    record = await asset_db.create(_ready())

    result = await ensurer.ensure(record)

    assert result.outcome == EnsureOutcome.UPDATED
    assert result.playback_id == "play-1"
    assert result.created_at_provider is False
    mock_mux_client.create_public_playback_id.assert_not_awaited()
    stored = await asset_db.get_by_id("asset-1")
    assert stored is not None
    assert stored.playback_id == "play-1"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_creates_public_playback_id_when_none_exists(
    ensurer: PlaybackIdEnsurer, asset_db: AssetDatabase, mock_mux_client: MagicMock
):
    """A public playback id is created when the provider asset has none."""
    record = await asset_db.create(_ready(playback_id=None))

    result = await ensurer.ensure(record)

    assert result.outcome == EnsureOutcome.UPDATED
    assert result.playback_id == "play-new"
    assert result.created_at_provider is True
    mock_mux_client.create_public_playback_id.assert_awaited_once_with("asset-1")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_signed_only_asset_gets_public_playback_id(
    ensurer: PlaybackIdEnsurer, asset_db: AssetDatabase, mock_mux_client: MagicMock
):
    """A signed playback id is never adopted; a public one is created instead."""
    mock_mux_client.get_asset.return_value = make_asset_info(
        playback_ids=[{"id": "signed-1", "policy": "signed"}]
    )
    record = await asset_db.create(_ready())

    result = await ensurer.ensure(record)

    assert result.playback_id == "play-new"
    assert result.created_at_provider is True
    mock_mux_client.create_public_playback_id.assert_awaited_once_with("asset-1")
    stored = await asset_db.get_by_id("asset-1")
    assert stored is not None
    assert stored.playback_id == "play-new"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_public_playback_id_adopted_after_signed_one(
    ensurer: PlaybackIdEnsurer, asset_db: AssetDatabase, mock_mux_client: MagicMock
):
    """A public playback id is adopted even when a signed one is listed first."""
    mock_mux_client.get_asset.return_value = make_asset_info(
        playback_ids=[
            {"id": "signed-1", "policy": "signed"},
            {"id": "public-1", "policy": "public"},
        ]
    )
    record = await asset_db.create(_ready())

    result = await ensurer.ensure(record)

    assert result.playback_id == "public-1"
    assert result.created_at_provider is False
    mock_mux_client.create_public_playback_id.assert_not_awaited()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_second_call_is_noop(
    ensurer: PlaybackIdEnsurer, asset_db: AssetDatabase, mock_mux_client: MagicMock
):
    """Ensuring twice creates at most one playback id."""
    record = await asset_db.create(_ready())

    first = await ensurer.ensure(record)
    second = await ensurer.ensure(record)

    assert first.outcome == EnsureOutcome.UPDATED
    assert second.outcome == EnsureOutcome.NOOP
    assert second.playback_id == first.playback_id
    mock_mux_client.create_public_playback_id.assert_awaited_once()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_concurrent_calls_create_one_playback_id(
    ensurer: PlaybackIdEnsurer, asset_db: AssetDatabase, mock_mux_client: MagicMock
):
    """Concurrent ensures for the same asset create exactly one playback id."""
    record = await asset_db.create(_ready())

    async def slow_create(asset_id: str) -> str:
        await asyncio.sleep(0.01)
        return "play-new"

    mock_mux_client.create_public_playback_id.side_effect = slow_create

    results = await asyncio.gather(*(ensurer.ensure(record) for _ in range(5)))

    outcomes = sorted(r.outcome.value for r in results)
    assert outcomes == ["noop"] * 4 + ["updated"]
    assert {r.playback_id for r in results} == {"play-new"}
    mock_mux_client.create_public_playback_id.assert_awaited_once()
    assert ensurer._locks == {}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_follows_rekeyed_record(
    ensurer: PlaybackIdEnsurer, asset_db: AssetDatabase
):
    """A record re-keyed since it was read is found by its asset id."""
    stale = _ready(id="old-id")
    await asset_db.create(_ready())

    result = await ensurer.ensure(stale)

    assert result.outcome == EnsureOutcome.UPDATED
    assert result.record_id == "asset-1"


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"status": AssetStatus.PROCESSING},
        {"provider_asset_id": None},
    ],
)
async def test_preconditions(
    ensurer: PlaybackIdEnsurer, asset_db: AssetDatabase, overrides: dict[str, object]
):
    """Records that are not ready with an asset id are refused."""
    record = await asset_db.create(_ready(**overrides))

    with pytest.raises(PlaybackIdError):
        await ensurer.ensure(record)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unknown_provider_asset_raises(
    ensurer: PlaybackIdEnsurer, asset_db: AssetDatabase, mock_mux_client: MagicMock
):
    """An asset the provider does not know raises PlaybackIdError."""
    mock_mux_client.get_asset.return_value = None
    record = await asset_db.create(_ready())

    with pytest.raises(PlaybackIdError):
        await ensurer.ensure(record)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_transient_provider_failure_propagates(
    ensurer: PlaybackIdEnsurer, asset_db: AssetDatabase, mock_mux_client: MagicMock
):
    """Network trouble surfaces as TransientProviderError and writes nothing."""
    mock_mux_client.get_asset.side_effect = TransientProviderError("down")
    record = await asset_db.create(_ready())

    with pytest.raises(TransientProviderError):
        await ensurer.ensure(record)

    stored = await asset_db.get_by_id("asset-1")
    assert stored is not None
    assert stored.playback_id == make_placeholder_playback_id("asset-1")
    assert ensurer._locks == {}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_slow_provider_call_times_out(
    asset_db: AssetDatabase, mock_mux_client: MagicMock
):
    """A provider call past its deadline raises TimeoutError and writes nothing."""

    async def slow_create(_: str) -> str:
        await asyncio.sleep(2)
        return "play-late"

    mock_mux_client.create_public_playback_id.side_effect = slow_create
    ensurer = PlaybackIdEnsurer(asset_db, mock_mux_client, provider_timeout=0.05)
    record = await asset_db.create(_ready())

    with pytest.raises(TimeoutError):
        await ensurer.ensure(record)

    stored = await asset_db.get_by_id("asset-1")
    assert stored is not None
    assert stored.playback_id == make_placeholder_playback_id("asset-1")
    assert ensurer._locks == {}
