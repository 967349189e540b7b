# pyright: reportPrivateUsage=false

"""Tests for the admin router endpoints."""

from datetime import UTC, datetime
from unittest.mock import Mock

from fastapi import FastAPI
from fastapi.testclient import TestClient
from helpers.assets import make_record
import pytest

from reelsync.db import AssetDatabase
from reelsync.db.types import AssetStatus
from reelsync.exceptions import (
    AssetNotFoundError,
    ConflictError,
    DatabaseOperationError,
    PlaybackIdError,
    ProviderError,
    TransientProviderError,
)
from reelsync.reconciler import (
    EnsureOutcome,
    EnsureResult,
    IdentifierRepairer,
    PlaybackIdEnsurer,
    RepairReport,
    SweepReconciler,
    SweepReport,
)
from reelsync.server.routers.admin import router

ADMIN_PREFIX = "/admin"
STARTED = datetime(2025, 1, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def mock_asset_database() -> Mock:
    """Create a mock AssetDatabase for testing."""
    return Mock(spec=AssetDatabase)


@pytest.fixture
def mock_sweep_reconciler() -> Mock:
    """Create a mock SweepReconciler for testing."""
    return Mock(spec=SweepReconciler)


@pytest.fixture
def mock_identifier_repairer() -> Mock:
    """Create a mock IdentifierRepairer for testing."""
    return Mock(spec=IdentifierRepairer)


@pytest.fixture
def mock_playback_ensurer() -> Mock:
    """Create a mock PlaybackIdEnsurer for testing."""
    return Mock(spec=PlaybackIdEnsurer)


@pytest.fixture
def app(
    mock_asset_database: Mock,
    mock_sweep_reconciler: Mock,
    mock_identifier_repairer: Mock,
    mock_playback_ensurer: Mock,
) -> FastAPI:
    """Create a FastAPI app with the admin router and mocked dependencies."""
    app = FastAPI()
    app.include_router(router)

    app.state.asset_database = mock_asset_database
    app.state.sweep_reconciler = mock_sweep_reconciler
    app.state.identifier_repairer = mock_identifier_repairer
    app.state.playback_ensurer = mock_playback_ensurer
    return app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    """Create a test client for the admin router."""
    return TestClient(app)


# --- POST /admin/sweep ---


@pytest.mark.unit
def test_sweep_all(client: TestClient, mock_sweep_reconciler: Mock):
    """A full sweep returns the report summary."""
    report = SweepReport(scope="all", started_at=STARTED, examined=2)
    report.fixed_ids.append("rec-1")
    report.consistent_ids.append("rec-2")
    mock_sweep_reconciler.sweep.return_value = report

    response = client.post(f"{ADMIN_PREFIX}/sweep")

    assert response.status_code == 200
    data = response.json()
    assert data["scope"] == "all"
    assert data["fixed"] == 1
    assert data["consistent"] == 1
    assert data["overall_success"] is True
    mock_sweep_reconciler.sweep.assert_awaited_once_with(None)


@pytest.mark.unit
def test_sweep_single_record(client: TestClient, mock_sweep_reconciler: Mock):
    """The record_id query parameter scopes the sweep."""
    mock_sweep_reconciler.sweep.return_value = SweepReport(
        scope="rec-1", started_at=STARTED
    )

    response = client.post(f"{ADMIN_PREFIX}/sweep", params={"record_id": "rec-1"})

    assert response.status_code == 200
    mock_sweep_reconciler.sweep.assert_awaited_once_with("rec-1")


@pytest.mark.unit
@pytest.mark.parametrize(
    "error, status_code",
    [
        (AssetNotFoundError("missing", record_id="rec-x"), 404),
        (DatabaseOperationError("locked"), 500),
    ],
)
def test_sweep_errors(
    client: TestClient, mock_sweep_reconciler: Mock, error: Exception, status_code: int
):
    """Sweep failures map onto HTTP status codes."""
    mock_sweep_reconciler.sweep.side_effect = error

    response = client.post(f"{ADMIN_PREFIX}/sweep", params={"record_id": "rec-x"})

    assert response.status_code == status_code


# --- POST /admin/repair ---


@pytest.mark.unit
def test_repair(client: TestClient, mock_identifier_repairer: Mock):
    """The repair endpoint returns the repair summary."""
    mock_identifier_repairer.repair_miskeyed_records.return_value = RepairReport(
        repaired_ids=["rec-1"]
    )

    response = client.post(f"{ADMIN_PREFIX}/repair")

    assert response.status_code == 200
    assert response.json()["repaired"] == 1
    assert response.json()["repaired_ids"] == ["rec-1"]


@pytest.mark.unit
def test_repair_database_error(client: TestClient, mock_identifier_repairer: Mock):
    """A store failure while listing returns 500."""
    mock_identifier_repairer.repair_miskeyed_records.side_effect = (
        DatabaseOperationError("locked")
    )

    response = client.post(f"{ADMIN_PREFIX}/repair")

    assert response.status_code == 500


# --- GET /admin/assets/{record_id} ---


@pytest.mark.unit
def test_get_asset(client: TestClient, mock_asset_database: Mock):
    """An existing record is returned with its playback id state."""
    mock_asset_database.get_by_id.return_value = make_record(
        status=AssetStatus.READY,
        provider_asset_id="asset-1",
        playback_id="placeholder-rec-1",
    )

    response = client.get(f"{ADMIN_PREFIX}/assets/rec-1")

    assert response.status_code == 200
    data = response.json()
    assert data["id"] == "rec-1"
    assert data["status"] == "ready"
    assert data["playback_id_confirmed"] is False
    mock_asset_database.get_by_id.assert_awaited_once_with("rec-1")


@pytest.mark.unit
def test_get_asset_not_found(client: TestClient, mock_asset_database: Mock):
    """An unknown record returns 404."""
    mock_asset_database.get_by_id.return_value = None

    response = client.get(f"{ADMIN_PREFIX}/assets/missing")

    assert response.status_code == 404


# --- POST /admin/assets/{record_id}/ensure-playback ---


@pytest.mark.unit
def test_ensure_playback(
    client: TestClient, mock_asset_database: Mock, mock_playback_ensurer: Mock
):
    """A ready record gets its playback id ensured."""
    record = make_record(status=AssetStatus.READY, provider_asset_id="asset-1")
    mock_asset_database.get_by_id.return_value = record
    mock_playback_ensurer.ensure.return_value = EnsureResult(
        EnsureOutcome.UPDATED, "rec-1", "play-new", created_at_provider=True
    )

    response = client.post(f"{ADMIN_PREFIX}/assets/rec-1/ensure-playback")

    assert response.status_code == 200
    assert response.json() == {
        "record_id": "rec-1",
        "outcome": "updated",
        "playback_id": "play-new",
        "created_at_provider": True,
    }
    mock_playback_ensurer.ensure.assert_awaited_once_with(record)


@pytest.mark.unit
def test_ensure_playback_unknown_record(
    client: TestClient, mock_asset_database: Mock, mock_playback_ensurer: Mock
):
    """An unknown record returns 404 without calling the ensurer."""
    mock_asset_database.get_by_id.return_value = None

    response = client.post(f"{ADMIN_PREFIX}/assets/missing/ensure-playback")

    assert response.status_code == 404
    mock_playback_ensurer.ensure.assert_not_awaited()


@pytest.mark.unit
@pytest.mark.parametrize(
    "error, status_code",
    [
        (PlaybackIdError("not ready", record_id="rec-1"), 409),
        (ConflictError("raced", record_id="rec-1"), 409),
        (TransientProviderError("down"), 503),
        (TimeoutError(), 504),
        (ProviderError("bad token", status_code=401), 502),
        (DatabaseOperationError("locked"), 500),
    ],
)
def test_ensure_playback_errors(
    client: TestClient,
    mock_asset_database: Mock,
    mock_playback_ensurer: Mock,
    error: Exception,
    status_code: int,
):
    """Ensure failures map onto HTTP status codes."""
    mock_asset_database.get_by_id.return_value = make_record()
    mock_playback_ensurer.ensure.side_effect = error

    response = client.post(f"{ADMIN_PREFIX}/assets/rec-1/ensure-playback")

    assert response.status_code == status_code
