# pyright: reportPrivateUsage=false

"""Tests for the FastAPI application factories."""

from unittest.mock import AsyncMock, Mock

from fastapi import FastAPI
from fastapi.testclient import TestClient
import pytest

from reelsync.db import AssetDatabase
from reelsync.reconciler import (
    IdentifierRepairer,
    PlaybackIdEnsurer,
    SweepReconciler,
    WebhookIngestor,
)
from reelsync.server.app import create_admin_app, create_app


@pytest.fixture
def mock_webhook_ingestor() -> Mock:
    """Create a mock WebhookIngestor for testing."""
    return Mock(spec=WebhookIngestor)


@pytest.fixture
def admin_mocks() -> dict[str, Mock]:
    """Create the mocked admin dependencies."""
    return {
        "asset_database": Mock(spec=AssetDatabase),
        "sweep_reconciler": Mock(spec=SweepReconciler),
        "identifier_repairer": Mock(spec=IdentifierRepairer),
        "playback_ensurer": Mock(spec=PlaybackIdEnsurer),
    }


def _route_paths(app: FastAPI) -> set[str]:
    return {getattr(route, "path", "") for route in app.routes}


@pytest.mark.unit
def test_create_app_mounts_public_routes(mock_webhook_ingestor: Mock):
    """The public app serves webhooks and health but no admin routes."""
    app = create_app(mock_webhook_ingestor)

    paths = _route_paths(app)
    assert "/api/webhooks/mux" in paths
    assert "/api/health" in paths
    assert not any(p.startswith("/admin") for p in paths)
    assert app.state.webhook_ingestor is mock_webhook_ingestor


@pytest.mark.unit
def test_create_app_middleware_configured(mock_webhook_ingestor: Mock):
    """The logging middleware is installed."""
    app = create_app(mock_webhook_ingestor)

    assert any("LoggingMiddleware" in str(m.cls) for m in app.user_middleware)


@pytest.mark.unit
def test_shutdown_callback_runs_on_lifespan_exit(mock_webhook_ingestor: Mock):
    """The shutdown callback runs when the application stops."""
    shutdown = AsyncMock()
    app = create_app(mock_webhook_ingestor, shutdown_callback=shutdown)

    with TestClient(app) as client:
        assert client.get("/api/health").status_code == 200
        shutdown.assert_not_awaited()

    shutdown.assert_awaited_once()


@pytest.mark.unit
def test_create_admin_app(admin_mocks: dict[str, Mock]):
    """The admin app serves admin and health routes with its dependencies attached."""
    app = create_admin_app(**admin_mocks)

    paths = _route_paths(app)
    assert "/admin/sweep" in paths
    assert "/admin/assets/{record_id}" in paths
    assert "/api/health" in paths
    assert "/api/webhooks/mux" not in paths
    for name, mock in admin_mocks.items():
        assert getattr(app.state, name) is mock
